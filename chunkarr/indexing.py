"""Projection of basic selections onto the chunk grid.

A selection is first expanded to one integer or slice per axis. Each axis is
then split on its own into the chunks it touches, and the projections of the
whole selection are the cartesian product of the per-axis ones. Only chunks
that intersect the selection are ever produced.
"""
import itertools
import numbers
from typing import Any, List, NamedTuple, Tuple

from chunkarr.errors import BoundsCheckError, NegativeStepError, err_too_many_indices


class AxisProjection(NamedTuple):
    chunk_index: int
    # integer or slice into the chunk along this axis
    chunk_sel: Any
    # slice of the output along this axis, None where an integer drops the axis
    out_sel: Any


class ChunkProjection(NamedTuple):
    """Items of one chunk taking part in a selection.

    `chunk_selection` picks them out of the chunk array, `out_selection`
    places them in the output of a read or takes them from the value of a
    write.
    """
    chunk_coords: Tuple[int, ...]
    chunk_selection: Tuple[Any, ...]
    out_selection: Tuple[Any, ...]


def normalize_integer_selection(index, length):
    """Wrap a negative `index` and check it lies in ``[0, length)``."""
    index = int(index)
    if index < 0:
        index += length
    if not 0 <= index < length:
        raise BoundsCheckError(length)
    return index


def _project_integer(index, length, chunk_len) -> List[AxisProjection]:
    chunk_index, offset = divmod(normalize_integer_selection(index, length), chunk_len)
    return [AxisProjection(chunk_index, offset, None)]


def _project_slice(sel, length, chunk_len) -> Tuple[int, List[AxisProjection]]:
    if sel.step is not None and sel.step < 1:
        raise NegativeStepError()
    # clamps start and stop to the axis
    start, stop, step = sel.indices(length)
    nitems = len(range(start, stop, step))
    if not nitems:
        return 0, []

    last = start + (nitems - 1) * step
    projections = []
    for chunk_index in range(start // chunk_len, last // chunk_len + 1):
        chunk_start = chunk_index * chunk_len
        chunk_stop = min(chunk_start + chunk_len, length, stop)
        # first selected index inside this chunk
        first = start + max(0, -(-(chunk_start - start) // step)) * step
        if first >= chunk_stop:
            continue
        out_start = (first - start) // step
        n = len(range(first, chunk_stop, step))
        projections.append(AxisProjection(
            chunk_index,
            slice(first - chunk_start, chunk_stop - chunk_start, step),
            slice(out_start, out_start + n),
        ))
    return nitems, projections


def replace_ellipsis(selection, shape):
    """Expand `selection` to exactly one item per axis of `shape`, replacing
    an ``Ellipsis`` and padding the end with full slices."""
    if not isinstance(selection, tuple):
        selection = (selection,)
    found = [i for i, item in enumerate(selection) if item is Ellipsis]
    if len(found) > 1:
        raise IndexError("an index can only have a single ellipsis ('...')")
    if found:
        i = found[0]
        fill = (slice(None),) * max(len(shape) - len(selection) + 1, 0)
        selection = selection[:i] + fill + selection[i + 1:]
    if len(selection) > len(shape):
        err_too_many_indices(selection, shape)
    return selection + (slice(None),) * (len(shape) - len(selection))


class BasicIndexer:
    """Projects a selection of integers and slices onto the chunk grid of
    `meta`.

    `shape` is the shape of the selected region, axes selected by an integer
    dropped. Iterating yields one :class:`ChunkProjection` per chunk that
    intersects the selection.
    """

    def __init__(self, selection, meta):
        selection = replace_ellipsis(selection, meta.shape)
        shape = []
        self.axes = []
        for sel, length, chunk_len in zip(selection, meta.shape, meta.chunks):
            if isinstance(sel, numbers.Integral):
                self.axes.append(_project_integer(sel, length, chunk_len))
            elif isinstance(sel, slice):
                nitems, projections = _project_slice(sel, length, chunk_len)
                shape.append(nitems)
                self.axes.append(projections)
            else:
                raise IndexError('unsupported selection item for basic indexing; '
                                 f'expected integer or slice, got {type(sel)!r}')
        self.shape = tuple(shape)

    def __iter__(self):
        for per_axis in itertools.product(*self.axes):
            yield ChunkProjection(
                tuple(p.chunk_index for p in per_axis),
                tuple(p.chunk_sel for p in per_axis),
                tuple(p.out_sel for p in per_axis if p.out_sel is not None),
            )


def normalize_slice_spec(spec):
    """Convert a per-axis slice specification into a basic selection.

    Each item may be an integer, a slice, None (the whole axis), Ellipsis or a
    ``(start, stop)`` / ``(start, stop, step)`` tuple.

    Examples
    --------
    >>> normalize_slice_spec([0, None, (500, 1460), (1000, 1960)])
    (0, slice(None, None, None), slice(500, 1460, None), slice(1000, 1960, None))

    """
    if spec is None:
        return (Ellipsis,)
    if not isinstance(spec, (list, tuple)):
        spec = (spec,)

    selection = []
    for item in spec:
        if item is None:
            selection.append(slice(None))
        elif item is Ellipsis or isinstance(item, (numbers.Integral, slice)):
            selection.append(item)
        elif isinstance(item, (list, tuple)) and 2 <= len(item) <= 3:
            selection.append(slice(*item))
        else:
            raise IndexError(f'unsupported slice spec item {item!r}')
    return tuple(selection)


def parse_selection(text):
    """Parse a numpy-style selection string such as ``'0, :, 500:1460, ...'``."""
    selection = []
    for part in text.split(','):
        part = part.strip()
        if part in ('...', 'Ellipsis'):
            selection.append(Ellipsis)
        elif ':' in part:
            bounds = [int(b) if b.strip() else None for b in part.split(':')]
            if len(bounds) > 3:
                raise ValueError(f'invalid slice {part!r}')
            selection.append(slice(*bounds))
        elif part:
            selection.append(int(part))
        else:
            raise ValueError(f'empty selection item in {text!r}')
    return tuple(selection)
