import json
import math
import numbers
import time
from contextlib import nullcontext
from typing import Any, Callable, Dict, Iterable, Optional, Tuple, Union

import numpy as np
from asciitree import LeftAligned
from asciitree.drawing import BOX_ASCII, BOX_LIGHT, BoxStyle
from numcodecs.compat import ensure_ndarray, ensure_text

from chunkarr.errors import InvalidShapeError

# auto-chunking aims for encoded chunks of at most this many raw bytes
CHUNK_TARGET = 1 << 20

# stand-in for a synchronizer lock when no synchronizer is configured
nolock = nullcontext()


def json_dumps(o: Any) -> bytes:
    """Write JSON in a consistent, human-readable way."""
    from chunkarr.config import config

    return json.dumps(o, indent=config.get("json_indent"), sort_keys=True, ensure_ascii=True,
                      separators=(',', ': ')).encode('ascii')


def json_loads(s: Union[str, bytes]) -> Dict[str, Any]:
    """Read JSON in a consistent way."""
    return json.loads(ensure_text(s, 'ascii'))


def normalize_shape(shape) -> Tuple[int, ...]:
    """Convenience function to normalize the `shape` argument."""

    if shape is None:
        raise TypeError('shape is None')

    # handle 1D convenience form
    if isinstance(shape, numbers.Integral):
        shape = (int(shape),)

    shape = tuple(int(s) for s in shape)
    if not shape:
        raise InvalidShapeError(shape, None, 'arrays must have at least one dimension')
    if any(s <= 0 for s in shape):
        raise InvalidShapeError(shape, None, 'all dimensions must be positive')
    return shape


def guess_chunks(shape: Tuple[int, ...], typesize: int) -> Tuple[int, ...]:
    """Pick a chunk shape for an array of `shape` with `typesize`-byte items.

    Starts from a single chunk covering the whole array and halves the longest
    axis until a chunk holds at most :data:`CHUNK_TARGET` bytes or is a single
    item. On ties the leading axis is halved first.
    """
    chunks = [max(int(s), 1) for s in shape]
    while math.prod(chunks) * typesize > CHUNK_TARGET:
        longest = max(chunks)
        if longest == 1:
            break
        axis = chunks.index(longest)
        chunks[axis] = -(-longest // 2)
    return tuple(chunks)


def normalize_chunks(chunks: Any, shape: Tuple[int, ...], typesize: int) -> Tuple[int, ...]:
    """Convenience function to normalize the `chunks` argument for an array
    with the given `shape`."""

    # N.B., expect shape already normalized

    # handle auto-chunking
    if chunks is None or chunks is True:
        return guess_chunks(shape, typesize)

    # handle no chunking
    if chunks is False:
        return shape

    # handle 1D convenience form
    if isinstance(chunks, numbers.Integral):
        chunks = tuple(int(chunks) for _ in shape)

    chunks = tuple(chunks)
    if len(chunks) != len(shape):
        raise InvalidShapeError(shape, chunks, 'chunks must have the same rank as shape')

    # handle None or -1 in chunks
    chunks = tuple(s if c == -1 or c is None else int(c)
                   for s, c in zip(shape, chunks))

    if any(c <= 0 for c in chunks):
        raise InvalidShapeError(shape, chunks, 'all chunk dimensions must be positive')

    return chunks


def normalize_dimension_separator(sep: Optional[str]) -> str:
    if sep is None:
        from chunkarr.config import config

        sep = config.get("array.dimension_separator")
    if sep in (".", "/"):
        return sep
    raise ValueError(
        "dimension_separator must be either '.' or '/', found: %r" % sep)


def normalize_fill_value(fill_value, dtype: np.dtype):

    if fill_value is None or fill_value == 0:
        return np.zeros((), dtype=dtype)[()]

    try:
        return np.array(fill_value, dtype=dtype)[()]
    except (TypeError, ValueError, OverflowError) as e:
        raise ValueError(f'fill_value {fill_value!r} is not valid for dtype {dtype}') from e


def normalize_storage_path(path: Union[str, bytes, None]) -> str:
    """Return `path` as ``'a/b/c'``: no leading, trailing or repeated slashes,
    backslashes taken as slashes, and ``''`` for the root."""
    if not path:
        return ''
    if isinstance(path, bytes):
        path = path.decode('ascii')
    segments = [s for s in str(path).replace('\\', '/').split('/') if s]
    if '.' in segments or '..' in segments:
        raise ValueError("path containing '.' or '..' segment not allowed")
    return '/'.join(segments)


def is_total_slice(item, shape: Tuple[int, ...]) -> bool:
    """True if `item` selects the whole of a chunk of `shape`, in which case
    the chunk can be replaced without reading it. An integer covers an axis of
    length 1."""

    def covers(sel, length):
        if isinstance(sel, numbers.Integral):
            return length == 1
        if sel == slice(None):
            return True
        return sel.step in (1, None) and sel.stop - sel.start == length

    if item is Ellipsis:
        return True
    if isinstance(item, slice):
        item = (item,)
    if not isinstance(item, tuple):
        raise TypeError(f'expected slice or tuple of slices, found {item!r}')
    return all(covers(s, length) for s, length in zip(item, shape))


def normalize_resize_args(old_shape, *args):
    """Accept ``resize(200, 100)`` as well as ``resize((200, 100))``; ``None``
    keeps the length of that axis."""
    new_shape = args[0] if len(args) == 1 else args
    if isinstance(new_shape, numbers.Integral):
        new_shape = (new_shape,)
    new_shape = tuple(new_shape)
    if len(new_shape) != len(old_shape):
        raise ValueError('new shape must have same number of dimensions')
    return tuple(old if new is None else int(new) for old, new in zip(old_shape, new_shape))


def human_readable_size(size) -> str:
    if size < 2**10:
        return str(size)
    for exponent, suffix in enumerate('KMGTP', start=1):
        if size < 2**(10 * (exponent + 1)) or suffix == 'P':
            return f'{size / 2**(10 * exponent):.1f}{suffix}'


def buffer_size(v) -> int:
    return ensure_ndarray(v).nbytes


def all_equal(value: Any, array: np.ndarray) -> bool:
    """Test if all the elements of an array are equal to a value."""
    if value is None:
        return False
    if np.issubdtype(array.dtype, np.inexact) and np.isnan(value):
        # NaN never compares equal
        return bool(np.all(np.isnan(array)))
    return bool(np.all(array == value))


def check_array_shape(param, array, shape):
    if not hasattr(array, 'shape'):
        raise TypeError(f'parameter {param!r}: expected an array-like object, '
                        f'got {type(array)!r}')
    if array.shape != shape:
        raise ValueError(f'parameter {param!r}: expected array with shape {shape!r}, '
                         f'got {array.shape!r}')


def info_text_report(items: Iterable[Tuple[str, str]]) -> str:
    items = list(items)
    width = max((len(k) for k, _ in items), default=0)
    return ''.join(f'{k:<{width}} : {v}\n' for k, v in items)


class InfoReporter:
    """Shows the ``info_items()`` of an array or group as aligned
    ``key : value`` lines when displayed."""

    def __init__(self, obj):
        self.obj = obj

    def __repr__(self):
        return info_text_report(self.obj.info_items())


class TreeViewer:
    """Printable drawing of a group and its members, down to `level` below
    the group (everything when None). ``str()`` draws with box characters,
    ``bytes()`` with plain ASCII. Arrays are labelled with shape and dtype.
    """

    def __init__(self, group, level=None):
        self.group = group
        self.level = level

    @staticmethod
    def _label(node):
        label = node.name.rsplit('/', 1)[-1] or '/'
        if hasattr(node, 'shape'):
            label += f' {node.shape} {node.dtype}'
        return label

    def _children(self, node, depth):
        if not hasattr(node, 'group_keys'):
            return {}
        if self.level is not None and depth >= self.level:
            return {}
        return {self._label(member): self._children(member, depth + 1)
                for member in (node[name] for name in node)}

    def _draw(self, gfx):
        tree = {self._label(self.group): self._children(self.group, 0)}
        return LeftAligned(draw=BoxStyle(gfx=gfx))(tree)

    def __str__(self):
        return self._draw(BOX_LIGHT)

    def __bytes__(self):
        return self._draw(BOX_ASCII).encode()

    def __repr__(self):
        return str(self)


def retry_call(callabl: Callable,
               args=None,
               kwargs=None,
               exceptions: Tuple[Any, ...] = (),
               retries: int = 10,
               wait: float = 0.1) -> Any:
    """Call `callabl`, retrying up to `retries` times in all while it raises
    one of `exceptions`, sleeping `wait` seconds between attempts. The last
    failure propagates."""
    args = args or ()
    kwargs = kwargs or {}
    for attempt in range(retries, 0, -1):
        try:
            return callabl(*args, **kwargs)
        except exceptions:
            if attempt == 1:
                raise
            time.sleep(wait)
