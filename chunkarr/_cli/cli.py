import logging
from typing import Annotated, Literal, Optional, cast

import numpy as np
import typer

import chunkarr
from chunkarr.indexing import parse_selection

app = typer.Typer()

logger = logging.getLogger(__name__)


def _set_logging_level(*, verbose: bool) -> None:
    if verbose:
        lvl = "INFO"
    else:
        lvl = "WARNING"
    chunkarr.set_log_level(cast(Literal["INFO", "WARNING"], lvl))
    chunkarr.set_format("%(message)s")


def _parse_ints(text: str) -> tuple:
    try:
        return tuple(int(s) for s in text.split(",") if s.strip())
    except ValueError:
        raise typer.BadParameter(f"expected comma separated integers, got {text!r}") from None


StoreArg = Annotated[
    str,
    typer.Argument(help="Path to the store directory e.g. 'data/example.chunkarr'."),
]
PathOpt = Annotated[
    Optional[str],
    typer.Option(help="Path of the array within the store."),
]


@app.command()  # type: ignore[misc]
def create(
    store: StoreArg,
    shape: Annotated[str, typer.Option(help="Array shape, e.g. '100,3,2160,3840'.")],
    chunks: Annotated[
        Optional[str],
        typer.Option(help="Chunk shape, e.g. '1,3,960,960'. Guessed when omitted."),
    ] = None,
    dtype: Annotated[str, typer.Option(help="Element type, e.g. 'uint8'.")] = "float64",
    compressor: Annotated[
        str,
        typer.Option(help="Registered codec id, 'default' or 'none'."),
    ] = "default",
    fill_value: Annotated[float, typer.Option(help="Value of never-written elements.")] = 0,
    shuffle: Annotated[bool, typer.Option(help="Byte-shuffle before compression.")] = False,
    nested: Annotated[
        bool,
        typer.Option(help="Use one directory per chunk axis ('/' separated chunk keys)."),
    ] = False,
    path: PathOpt = None,
    overwrite: Annotated[bool, typer.Option(help="Replace any existing node.")] = False,
) -> None:
    """Create an empty array."""
    z = chunkarr.create(
        shape=_parse_ints(shape),
        chunks=_parse_ints(chunks) if chunks else True,
        dtype=dtype,
        compressor=None if compressor.lower() == "none" else compressor,
        fill_value=fill_value,
        shuffle=shuffle,
        store=store,
        path=path,
        overwrite=overwrite,
        dimension_separator="/" if nested else None,
    )
    logger.info("created %r in %s", z, store)


@app.command()  # type: ignore[misc]
def inspect(store: StoreArg, path: PathOpt = None) -> None:
    """Print diagnostic information about an array or group."""
    node = chunkarr.open(store, mode="r", path=path)
    typer.echo(repr(node.info), nl=False)


@app.command("read-crop")  # type: ignore[misc]
def read_crop(
    store: StoreArg,
    selection: Annotated[
        str,
        typer.Argument(help="Numpy-style selection, e.g. '0,:,500:1460,1000:1960'."),
    ],
    output: Annotated[str, typer.Argument(help="Destination .npy file.")],
    path: PathOpt = None,
    timeout: Annotated[
        Optional[float],
        typer.Option(help="Give up after this many seconds."),
    ] = None,
) -> None:
    """Read a region of an array and save it as a .npy file."""
    try:
        sel = parse_selection(selection)
    except ValueError as e:
        raise typer.BadParameter(str(e)) from e
    z = chunkarr.open_array(store, mode="r", path=path)
    data = z.get_basic_selection(sel, timeout=timeout)
    np.save(output, data)
    logger.info("saved crop %s of %r to %s", np.shape(data), z, output)


@app.command()  # type: ignore[misc]
def write(
    store: StoreArg,
    data: Annotated[str, typer.Argument(help="Source .npy file.")],
    offset: Annotated[
        Optional[str],
        typer.Option(help="Index of the first element to write, e.g. '0,0,500,1000'."),
    ] = None,
    path: PathOpt = None,
    timeout: Annotated[
        Optional[float],
        typer.Option(help="Give up after this many seconds."),
    ] = None,
) -> None:
    """Write the contents of a .npy file into an array at an offset."""
    value = np.load(data)
    z = chunkarr.open_array(store, mode="r+", path=path)
    start = _parse_ints(offset) if offset else (0,) * z.ndim
    if len(start) != z.ndim or value.ndim != z.ndim:
        raise typer.BadParameter(
            f"offset and data must both have {z.ndim} dimensions")
    sel = tuple(slice(o, o + n) for o, n in zip(start, value.shape))
    z.set_basic_selection(sel, value, timeout=timeout)
    logger.info("wrote %s at %s into %r", value.shape, start, z)


@app.command()  # type: ignore[misc]
def tree(
    store: StoreArg,
    level: Annotated[Optional[int], typer.Option(help="Maximum depth to descend.")] = None,
) -> None:
    """Print the hierarchy of groups and arrays."""
    g = chunkarr.open_group(store, mode="r")
    typer.echo(str(g.tree(level=level)))


@app.callback()  # type: ignore[misc]
def main(
    verbose: Annotated[
        bool,
        typer.Option(help="enable verbose logging - will print info about arrays created and data written."),
    ] = False,
) -> None:
    """
    See available commands below - access help for individual commands with chunkarr COMMAND --help.
    """
    _set_logging_level(verbose=verbose)


if __name__ == "__main__":
    app()
