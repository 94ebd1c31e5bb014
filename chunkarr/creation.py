"""Creating and opening arrays.

Every function here ends in :func:`create` or :func:`open_array`. Keyword
arguments fall into two groups: those describing the array, which are written
to its metadata document (``chunks``, ``dtype``, ``compressor``,
``fill_value``, ``filters``, ``shuffle``, ``dimension_separator``,
``resizable``), and those configuring the :class:`~chunkarr.core.Array`
object returned (``synchronizer``, ``cache_metadata``, ``cache_attrs``,
``write_empty_chunks``, ``tolerate_decode_errors``, ``max_workers``).
"""
import logging

import numpy as np

from chunkarr.core import Array
from chunkarr.storage import init_array, normalize_store_arg, resolve_open_mode
from chunkarr.util import normalize_dimension_separator, normalize_storage_path

__all__ = ['create', 'empty', 'zeros', 'full', 'array', 'open_array']

logger = logging.getLogger(__name__)

_ARRAY_OPTIONS = frozenset([
    'synchronizer', 'cache_metadata', 'cache_attrs', 'write_empty_chunks',
    'tolerate_decode_errors', 'max_workers',
])


def _split_options(kwargs):
    """Separate the :class:`Array` options from the metadata arguments."""
    options = {k: v for k, v in kwargs.items() if k in _ARRAY_OPTIONS}
    meta_kwargs = {k: v for k, v in kwargs.items() if k not in _ARRAY_OPTIONS}
    return options, meta_kwargs


def _separator_for(store, dimension_separator):
    # a store may insist on a separator, e.g. NestedDirectoryStore
    store_separator = getattr(store, '_dimension_separator', None)
    if dimension_separator is None:
        return store_separator
    if store_separator not in (None, dimension_separator):
        raise ValueError(
            f'dimension_separator {dimension_separator!r} conflicts with the '
            f'separator {store_separator!r} of the store')
    return normalize_dimension_separator(dimension_separator)


def create(shape, store=None, path=None, chunk_store=None, overwrite=False,
           read_only=False, **kwargs):
    """Create an array.

    Parameters
    ----------
    shape : int or tuple of ints
        Array shape.
    store : MutableMapping or string, optional
        Store, or path to a directory in the file system. Defaults to a new
        :class:`~chunkarr.storage.MemoryStore`.
    path : string, optional
        Path of the array within the store.
    chunk_store : MutableMapping or string, optional
        Separate storage for chunks.
    overwrite : bool, optional
        Replace any array or group already at `path`.
    read_only : bool, optional
        Return the array protected against modification.
    **kwargs
        Metadata arguments, passed to :func:`chunkarr.storage.init_array`, and
        :class:`~chunkarr.core.Array` options.

    Examples
    --------
    >>> import chunkarr
    >>> from numcodecs import Zstd
    >>> z = chunkarr.create((10000, 10000), chunks=(1000, 1000), dtype='i1',
    ...                     compressor=Zstd(level=1), shuffle=True)
    >>> z
    <chunkarr.core.Array (10000, 10000) int8>

    """
    store = normalize_store_arg(store)
    if chunk_store is not None:
        chunk_store = normalize_store_arg(chunk_store)
    options, meta_kwargs = _split_options(kwargs)
    meta_kwargs['dimension_separator'] = _separator_for(
        store, meta_kwargs.get('dimension_separator'))

    meta = init_array(store, shape, path=path, chunk_store=chunk_store, overwrite=overwrite,
                      **meta_kwargs)
    logger.debug("created array %r shape=%s chunks=%s", normalize_storage_path(path),
                 meta.shape, meta.chunks)
    return Array(store, path=path, chunk_store=chunk_store, read_only=read_only, **options)


def empty(shape, **kwargs):
    """Create an array without a fill value; unwritten positions read as zero."""
    return create(shape, fill_value=None, **kwargs)


def zeros(shape, **kwargs):
    """Create an array whose unwritten positions read as zero.

    >>> import chunkarr
    >>> z = chunkarr.zeros((10000, 10000), chunks=(1000, 1000))
    >>> z[:2, :2]
    array([[0., 0.],
           [0., 0.]])

    """
    return create(shape, fill_value=0, **kwargs)


def full(shape, fill_value, **kwargs):
    """Create an array whose unwritten positions read as `fill_value`."""
    return create(shape, fill_value=fill_value, **kwargs)


def array(data, **kwargs):
    """Create an array holding a copy of `data`.

    The shape and, unless given, the dtype are taken from `data`. The chunk
    shape is taken from ``data.chunks`` when `data` is itself chunked (another
    :class:`~chunkarr.core.Array`, for instance) and no `chunks` is given.

    >>> import numpy as np
    >>> import chunkarr
    >>> z = chunkarr.array(np.arange(100000000).reshape(10000, 10000), chunks=(1000, 1000))
    >>> z
    <chunkarr.core.Array (10000, 10000) int64>

    """
    if not hasattr(data, 'shape') or not hasattr(data, 'dtype'):
        data = np.asanyarray(data)

    if kwargs.get('dtype') is None:
        kwargs['dtype'] = data.dtype
    if kwargs.get('chunks') is None:
        data_chunks = getattr(data, 'chunks', None)
        if isinstance(data_chunks, tuple) and len(data_chunks) == len(data.shape):
            kwargs['chunks'] = data_chunks
        else:
            kwargs['chunks'] = True

    # the data goes in before the array turns read-only
    read_only = kwargs.pop('read_only', False)
    z = create(data.shape, **kwargs)
    z[...] = data
    z.read_only = read_only
    return z


def open_array(store=None, mode='a', shape=None, path=None, chunk_store=None, **kwargs):
    """Open an array using file-mode-like semantics.

    Parameters
    ----------
    store : MutableMapping or string, optional
        Store, or path to a directory in the file system.
    mode : {'r', 'r+', 'a', 'w', 'w-', 'x'}, optional
        'r' opens an existing array read-only, 'r+' opens it read-write, 'a'
        creates it unless it exists, 'w' creates it replacing anything at
        `path`, 'w-' and 'x' create it and fail if something exists.
    shape : int or tuple of ints, optional
        Shape, used only when the array is created.
    path : string, optional
        Path of the array within the store.
    chunk_store : MutableMapping or string, optional
        Separate storage for chunks.
    **kwargs
        Metadata arguments, used only when the array is created, and
        :class:`~chunkarr.core.Array` options.

    Examples
    --------
    >>> import chunkarr
    >>> z1 = chunkarr.open_array('data/example.chunkarr', mode='w', shape=(10000, 10000),
    ...                          chunks=(1000, 1000), fill_value=0)
    >>> z2 = chunkarr.open_array('data/example.chunkarr', mode='r')
    >>> z2
    <chunkarr.core.Array (10000, 10000) float64 read-only>

    """
    store = normalize_store_arg(store)
    if chunk_store is not None:
        chunk_store = normalize_store_arg(chunk_store)
    path = normalize_storage_path(path)
    options, meta_kwargs = _split_options(kwargs)

    def initialize(overwrite):
        meta_kwargs['dimension_separator'] = _separator_for(
            store, meta_kwargs.get('dimension_separator'))
        init_array(store, shape, path=path, chunk_store=chunk_store, overwrite=overwrite,
                   **meta_kwargs)

    read_only = resolve_open_mode(store, path, mode, 'array', initialize)
    return Array(store, path=path, chunk_store=chunk_store, read_only=read_only, **options)
