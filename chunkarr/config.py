"""
The config module holds the runtime configuration of chunkarr and is based on the Donfig
python library.

Example:
    Values can be changed programmatically, temporarily with a context manager, or with
    environment variables. The environment variable ``CHUNKARR_THREADING__MAX_WORKERS`` sets
    ``threading.max_workers``; the double underscore ``__`` is used to indicate nested access.

    ```python
    from chunkarr.config import config

    with config.set({"array.compressor": {"id": "zstd", "level": 3}}):
        z = chunkarr.zeros((100, 100), chunks=(10, 10))
    ```

For more information, see the Donfig documentation at https://github.com/pytroll/donfig.
"""

from typing import Any, Optional

from donfig import Config as DConfig


class BadConfigError(ValueError):
    _msg = "bad Config: %r"


class Config(DConfig):  # type: ignore[misc]
    """The Config will collect configuration from config files and environment variables

    Example environment variables:
    Grabs environment variables of the form "CHUNKARR_FOO__BAR_BAZ=123" and
    turns these into config variables of the form ``{"foo": {"bar-baz": 123}}``
    It transforms the key and value in the following way:

    -  Lower-cases the key text
    -  Treats ``__`` (double-underscore) as nested access
    -  Calls ``ast.literal_eval`` on the value

    """

    def reset(self) -> None:
        self.clear()
        self.refresh()


# The default configuration for chunkarr
config = Config(
    "chunkarr",
    defaults=[
        {
            "array": {
                "compressor": {"id": "lz4", "acceleration": 1},
                "shuffle": False,
                "dimension_separator": ".",
                "write_empty_chunks": True,
                "tolerate_decode_errors": False,
            },
            "threading": {"max_workers": None},
            "json_indent": 4,
        }
    ],
)


def parse_max_workers(data: Any) -> Optional[int]:
    if data is None:
        return None
    try:
        workers = int(data)
    except (TypeError, ValueError) as e:
        raise BadConfigError(f"threading.max_workers must be a positive int or None, got {data!r}") from e
    if workers < 1:
        raise BadConfigError(f"threading.max_workers must be a positive int or None, got {data!r}")
    return workers
