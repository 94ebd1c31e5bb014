"""Convenience functions for storing and loading data."""
from typing import Any, Union

from chunkarr.core import Array
from chunkarr.creation import array as _create_array
from chunkarr.creation import open_array
from chunkarr.errors import PathNotFoundError
from chunkarr.hierarchy import open_group
from chunkarr.indexing import normalize_slice_spec
from chunkarr.storage import contains_array, contains_group, normalize_store_arg
from chunkarr.util import TreeViewer, normalize_storage_path

__all__ = ['open', 'save_array', 'load', 'tree', 'get_slice', 'set_slice']

StoreLike = Union[Any, str, None]


def open(store: StoreLike = None, mode: str = "a", *, path=None, **kwargs):
    """Open whatever lives at `path` in `store`, an array or a group.

    With ``'w'``, ``'w-'`` or ``'x'`` an array is created when `shape` is
    given and a group otherwise. ``'a'`` opens an existing array, creates one
    when `shape` is given, and otherwise opens or creates a group. ``'r'``
    and ``'r+'`` open what exists and raise :class:`PathNotFoundError` when
    nothing does. Remaining keyword arguments go to
    :func:`~chunkarr.creation.open_array` or
    :func:`~chunkarr.hierarchy.open_group`.

    >>> import chunkarr
    >>> chunkarr.open('data/example.chunkarr', mode='w', shape=100, dtype='i4')
    <chunkarr.core.Array (100,) int32>
    >>> chunkarr.open('data/example.chunkarr', mode='r')
    <chunkarr.core.Array (100,) int32 read-only>
    >>> chunkarr.open('data/example.chunkarr', mode='w')
    <chunkarr.hierarchy.Group '/'>

    """
    _store = normalize_store_arg(store)
    path = normalize_storage_path(path)
    kwargs['path'] = path

    if mode in ('w', 'w-', 'x'):
        want_array = 'shape' in kwargs
    elif mode == 'a':
        want_array = 'shape' in kwargs or contains_array(_store, path)
    elif contains_array(_store, path):
        want_array = True
    elif contains_group(_store, path):
        want_array = False
    else:
        raise PathNotFoundError(path)

    if want_array:
        return open_array(_store, mode=mode, **kwargs)
    return open_group(_store, mode=mode, **kwargs)


def save_array(store: StoreLike, arr, *, path=None, **kwargs):
    """Store the NumPy array `arr` at `path`, replacing anything there.
    Keyword arguments such as `chunks` or `compressor` go to
    :func:`~chunkarr.creation.array`."""
    _store = normalize_store_arg(store)
    _create_array(arr, store=_store, overwrite=True, path=normalize_storage_path(path),
                  **kwargs)


def load(store: StoreLike, path=None):
    """Read the whole array at `path` into a NumPy array."""
    _store = normalize_store_arg(store)
    path = normalize_storage_path(path)
    if not contains_array(_store, path=path):
        raise PathNotFoundError(path)
    return Array(store=_store, path=path, read_only=True)[...]


def tree(grp, level=None):
    """Same as ``grp.tree(level)``."""
    return TreeViewer(grp, level=level)


def _as_array(arr, mode, path):
    if isinstance(arr, Array):
        return arr
    return open_array(arr, mode=mode, path=path)


def get_slice(arr, slice_spec, *, path=None, timeout=None):
    """Read a region of an array.

    Parameters
    ----------
    arr : Array, MutableMapping or string
        An open array, or a store (or directory path) holding one.
    slice_spec : sequence
        One item per leading axis: an integer, a slice, None for the whole
        axis, or a ``(start, stop)`` / ``(start, stop, step)`` tuple.
        Missing trailing axes are read whole.
    path : str, optional
        Path of the array within the store, when `arr` is a store.
    timeout : float, optional
        Seconds to wait before giving up with :class:`OperationTimeoutError`.

    Examples
    --------
    >>> import chunkarr
    >>> z = chunkarr.zeros((100, 3, 2160, 3840), chunks=(1, 3, 960, 960), dtype='u1')
    >>> get_slice(z, [0, None, (500, 1460), (1000, 1960)]).shape
    (3, 960, 960)

    """
    z = _as_array(arr, 'r', path)
    return z.get_basic_selection(normalize_slice_spec(slice_spec), timeout=timeout)


def set_slice(arr, slice_spec, value, *, path=None, timeout=None):
    """Write `value` into a region of an array.

    Parameters are as for :func:`get_slice`; `value` must be a scalar or have
    the shape of the selected region.

    """
    z = _as_array(arr, 'r+', path)
    z.set_basic_selection(normalize_slice_spec(slice_spec), value, timeout=timeout)
