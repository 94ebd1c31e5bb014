import binascii
import hashlib
import itertools
import logging
import math
import os
import threading
import time
from concurrent.futures import FIRST_COMPLETED, ThreadPoolExecutor, wait
from typing import Any, Callable, Iterable, Optional

import numpy as np

from chunkarr import sync
from chunkarr.attrs import Attributes
from chunkarr.codecs import ChunkCodec
from chunkarr.config import config, parse_max_workers
from chunkarr.errors import DecodeError, OperationTimeoutError, ReadOnlyError
from chunkarr.indexing import BasicIndexer
from chunkarr.meta import ArrayMetadata, array_meta_key, attrs_key
from chunkarr.storage import (ChunkStore, _path_to_prefix, getsize, load_array_metadata,
                              normalize_store_arg, save_array_metadata)
from chunkarr.util import (InfoReporter, all_equal, check_array_shape, human_readable_size,
                           is_total_slice, nolock, normalize_resize_args, normalize_storage_path)

__all__ = ['Array']

logger = logging.getLogger(__name__)


_pool: Optional[ThreadPoolExecutor] = None
_pool_lock = threading.Lock()


def _default_max_workers() -> int:
    return min(32, (os.cpu_count() or 1) + 4)


def _get_pool(max_workers: int) -> ThreadPoolExecutor:
    """Get a thread pool with at least *max_workers* threads.

    Reuses the cached pool when the requested size is <= the cached size.
    numcodecs compressors release the GIL during their C-level
    compress/decompress calls, so real parallelism is achieved across threads.
    """
    global _pool
    with _pool_lock:
        if _pool is None or _pool._max_workers < max_workers:
            # a replaced pool may still be serving other callers, let it drain
            _pool = ThreadPoolExecutor(max_workers=max_workers, thread_name_prefix='chunkarr')
        return _pool


def _reset_pool():
    # threads do not survive a fork; the child starts with no pool
    global _pool, _pool_lock
    _pool = None
    _pool_lock = threading.Lock()


if hasattr(os, 'register_at_fork'):
    os.register_at_fork(after_in_child=_reset_pool)


def _map_chunks(fn: Callable[[Any], None], items: Iterable, max_workers: int,
                timeout: Optional[float] = None) -> None:
    """Call `fn` on every item, running at most `max_workers` calls at a time.

    If `timeout` expires, no further items are started and
    :class:`OperationTimeoutError` is raised; calls already running are left to
    finish. The first exception raised by `fn` stops the remaining items and is
    re-raised.
    """
    items = list(items)
    total = len(items)
    deadline = None if timeout is None else time.monotonic() + timeout

    if max_workers <= 1 or total <= 1:
        for completed, item in enumerate(items):
            if deadline is not None and time.monotonic() >= deadline:
                raise OperationTimeoutError(timeout, completed, total)
            fn(item)
        return

    pool = _get_pool(max_workers)
    it = iter(items)
    pending = set()

    def submit_next():
        for item in it:
            pending.add(pool.submit(fn, item))
            return True
        return False

    for _ in range(max_workers):
        if not submit_next():
            break

    completed = 0
    try:
        while pending:
            remaining = None
            if deadline is not None:
                remaining = deadline - time.monotonic()
                if remaining <= 0:
                    raise OperationTimeoutError(timeout, completed, total)
            done, pending = wait(pending, timeout=remaining, return_when=FIRST_COMPLETED)
            for f in done:
                f.result()
                completed += 1
                submit_next()
    except BaseException:
        for f in pending:
            f.cancel()
        raise


class Array:
    """A chunked N-dimensional array whose metadata already lives in `store`.

    Parameters
    ----------
    store : MutableMapping
        Store holding the array metadata, and the chunks unless `chunk_store`
        is given.
    path : str, optional
        Location of the array inside the store.
    read_only : bool, optional
        Reject every write, resize and attribute change.
    chunk_store : MutableMapping, optional
        Store holding the chunk payloads instead of `store`.
    synchronizer : object, optional
        Supplies a lock per store key, taken around each chunk update and
        each metadata change.
    cache_metadata : bool, optional
        Keep the decoded metadata for the lifetime of the object. When False
        it is read again before every operation, so resizes made through
        another handle are seen.
    cache_attrs : bool, optional
        Keep the attributes document between reads.
    write_empty_chunks : bool, optional
        Store chunks equal to the fill value everywhere. When False such a
        chunk is deleted instead. Defaults to
        ``config['array.write_empty_chunks']``.
    tolerate_decode_errors : bool, optional
        Log an undecodable chunk and read it as fill value rather than raise
        :class:`DecodeError`. Defaults to
        ``config['array.tolerate_decode_errors']``.
    max_workers : int, optional
        Upper bound on chunks handled at once by one read or write; 1 keeps
        everything on the calling thread. Defaults to
        ``config['threading.max_workers']`` and then to the CPU count.

    """

    def __init__(self, store: Any, path=None, read_only=False, chunk_store=None,
                 synchronizer=None, cache_metadata=True, cache_attrs=True,
                 write_empty_chunks=None, tolerate_decode_errors=None,
                 max_workers=None):
        store = normalize_store_arg(store)
        if chunk_store is not None:
            chunk_store = normalize_store_arg(chunk_store)
        if max_workers is None:
            max_workers = config.get('threading.max_workers')

        self._store = store
        self._chunk_store = chunk_store
        self._path = normalize_storage_path(path)
        self._key_prefix = _path_to_prefix(self._path)
        self._read_only = bool(read_only)
        self._synchronizer = synchronizer
        self._cache_metadata = cache_metadata
        self._write_empty_chunks = bool(config.get('array.write_empty_chunks')
                                        if write_empty_chunks is None else write_empty_chunks)
        self._tolerate_decode_errors = bool(config.get('array.tolerate_decode_errors')
                                            if tolerate_decode_errors is None
                                            else tolerate_decode_errors)
        self._max_workers = parse_max_workers(max_workers)

        self._load_metadata()
        self._attrs = Attributes(store, key=self._key_prefix + attrs_key,
                                 read_only=read_only, synchronizer=synchronizer,
                                 cache=cache_attrs)

    def _load_metadata(self):
        lock = nolock
        if self._synchronizer is not None:
            lock = self._synchronizer[self._key_prefix + array_meta_key]
        with lock:
            self._load_metadata_nosync()

    def _load_metadata_nosync(self):
        self._set_meta(load_array_metadata(self._store, self._path))

    def _set_meta(self, meta: ArrayMetadata):
        self._meta = meta
        self._codec = ChunkCodec(compressor=meta.compressor, filters=meta.filters)
        self._chunk_io = ChunkStore(self.chunk_store, meta.dimension_separator)

    def _refresh_metadata(self):
        if not self._cache_metadata:
            self._load_metadata()

    def _refresh_metadata_nosync(self):
        if not self._cache_metadata:
            self._load_metadata_nosync()

    def _flush_metadata_nosync(self):
        save_array_metadata(self._store, self._path, self._meta)

    store = property(lambda self: self._store, doc="Store holding the array metadata.")
    path = property(lambda self: self._path, doc="Location of the array in its store.")

    @property
    def chunk_store(self):
        """Store holding the chunk payloads, `store` unless a separate one
        was given."""
        return self._store if self._chunk_store is None else self._chunk_store

    @property
    def name(self):
        """``'/'`` followed by the path, or None for an array at the store
        root."""
        return '/' + self._path if self._path else None

    @property
    def basename(self):
        return self._path.rsplit('/', 1)[-1] if self._path else None

    @property
    def read_only(self):
        return self._read_only

    @read_only.setter
    def read_only(self, value):
        self._read_only = bool(value)

    @property
    def metadata(self) -> ArrayMetadata:
        """Current :class:`ArrayMetadata`, reloaded first when metadata is
        not cached."""
        self._refresh_metadata()
        return self._meta

    @property
    def shape(self):
        """Length of every axis. Assigning to it resizes the array."""
        self._refresh_metadata()
        return self._meta.shape

    @shape.setter
    def shape(self, value):
        self.resize(value)

    # fixed at creation, never reloaded
    chunks = property(lambda self: self._meta.chunks)
    dtype = property(lambda self: self._meta.dtype)
    fill_value = property(lambda self: self._meta.fill_value)
    dimension_separator = property(lambda self: self._meta.dimension_separator)
    resizable = property(lambda self: self._meta.resizable,
                         doc="Axes along which append may grow the array.")
    compressor = property(lambda self: self._codec.compressor)
    filters = property(lambda self: self._codec.filters,
                       doc="Codecs applied before the compressor, in encode order.")
    synchronizer = property(lambda self: self._synchronizer)
    attrs = property(lambda self: self._attrs,
                     doc="JSON-serializable user attributes of the array.")
    write_empty_chunks = property(lambda self: self._write_empty_chunks)
    tolerate_decode_errors = property(lambda self: self._tolerate_decode_errors)

    @property
    def ndim(self):
        return len(self._meta.shape)

    @property
    def size(self):
        """Number of items in the array."""
        self._refresh_metadata()
        return math.prod(self._meta.shape)

    @property
    def itemsize(self):
        return self.dtype.itemsize

    @property
    def nbytes(self):
        """Bytes the whole array would take in memory."""
        return self.size * self.itemsize

    @property
    def nbytes_stored(self):
        """Bytes used in the store by metadata, attributes and chunks, or -1
        when a store cannot tell."""
        sizes = [getsize(self._store, self._path)]
        if self._chunk_store is not None:
            sizes.append(getsize(self._chunk_store, self._path))
        return -1 if min(sizes) < 0 else sum(sizes)

    @property
    def cdata_shape(self):
        """Number of chunks along every axis."""
        self._refresh_metadata()
        return self._meta.cdata_shape

    @property
    def nchunks(self):
        self._refresh_metadata()
        return self._meta.nchunks

    @property
    def nchunks_initialized(self):
        """Number of chunks present in the chunk store."""
        return sum(1 for _ in self._chunk_io.chunk_keys(self._path))

    @property
    def max_workers(self) -> int:
        return self._max_workers or _default_max_workers()

    def __eq__(self, other):
        # the store decides everything else
        return (isinstance(other, Array) and self.store == other.store
                and self.read_only == other.read_only and self.path == other.path)

    def __array__(self, *args, **kwargs):
        return np.array(self[...], *args, **kwargs)

    def __len__(self):
        return self.shape[0]

    def __getitem__(self, selection):
        """Read the items picked by `selection`, an integer, a slice or a tuple
        of them with at most one ``Ellipsis``.

        An integer drops its axis from the result; selecting an integer on
        every axis returns a scalar. Slices are clamped to the current shape
        and must not have a negative step.

        Examples
        --------
        >>> import chunkarr
        >>> import numpy as np
        >>> z = chunkarr.array(np.arange(100).reshape(10, 10), chunks=(3, 3))
        >>> z[2:5, 2:5]
        array([[22, 23, 24],
               [32, 33, 34],
               [42, 43, 44]])
        >>> z[8:100, 9]
        array([89, 99])
        >>> z[20:30]
        array([], shape=(0, 10), dtype=int64)

        """
        return self.get_basic_selection(selection)

    def get_basic_selection(self, selection=Ellipsis, timeout=None):
        """Like ``z[selection]``, giving up with :class:`OperationTimeoutError`
        once `timeout` seconds have passed.

        Only chunks intersecting the selection are fetched. They are fetched
        and decoded on up to :attr:`max_workers` threads, and chunks never
        written read as the fill value.
        """
        self._refresh_metadata()
        return self._get_selection(BasicIndexer(selection, self._meta), timeout=timeout)

    def _get_selection(self, indexer, timeout=None):
        out = np.empty(indexer.shape, dtype=self._meta.dtype)
        if out.size:
            projections = list(indexer)
            logger.debug("reading %d chunks from %r", len(projections), self._path)
            _map_chunks(
                lambda p: self._chunk_getitem(p.chunk_coords, p.chunk_selection,
                                              out, p.out_selection),
                projections, self.max_workers, timeout,
            )
        return out if out.shape else out[()]

    def _chunk_getitem(self, chunk_coords, chunk_selection, out, out_selection):
        cdata = self._chunk_io.read_chunk(self._path, chunk_coords)
        chunk = None if cdata is None else self._decode_chunk_or_none(cdata, chunk_coords)
        if chunk is None:
            out[out_selection] = self._meta.fill_value
        else:
            out[out_selection] = chunk[chunk_selection]

    def __setitem__(self, selection, value):
        """Write `value` to the items picked by `selection`.

        `value` is either a scalar, broadcast to the whole selection, or an
        array with exactly the shape of the selection.

        Examples
        --------
        >>> import chunkarr
        >>> z = chunkarr.zeros((5, 5), chunks=(2, 2), dtype='i4')
        >>> z[...] = 42
        >>> z[1:3, 1:3] = 7
        >>> z[0:4, 0:4]
        array([[42, 42, 42, 42],
               [42,  7,  7, 42],
               [42,  7,  7, 42],
               [42, 42, 42, 42]], dtype=int32)

        """
        self.set_basic_selection(selection, value)

    def set_basic_selection(self, selection, value, timeout=None):
        """Like ``z[selection] = value``, giving up with
        :class:`OperationTimeoutError` once `timeout` seconds have passed.
        Chunks written before that stay written.

        A chunk the selection covers completely is encoded from `value` alone.
        Any other chunk is read, patched and written back under the lock of
        that chunk.
        """
        if self._read_only:
            raise ReadOnlyError()
        self._refresh_metadata_nosync()
        self._set_selection(BasicIndexer(selection, self._meta), value, timeout=timeout)

    def _set_selection(self, indexer, value, timeout=None):
        sel_shape = indexer.shape

        if hasattr(value, 'shape') and value.shape == ():
            value = value[()]
        broadcast = sel_shape == () or np.isscalar(value)
        if not broadcast:
            if not hasattr(value, 'shape'):
                value = np.asanyarray(value)
            check_array_shape('value', value, sel_shape)

        if math.prod(sel_shape) == 0:
            return

        def set_chunk(projection):
            chunk_value = value if broadcast else value[projection.out_selection]
            self._chunk_setitem(projection.chunk_coords, projection.chunk_selection,
                                chunk_value)

        projections = list(indexer)
        logger.debug("writing %d chunks to %r", len(projections), self._path)
        _map_chunks(set_chunk, projections, self.max_workers, timeout)

    def _chunk_setitem(self, chunk_coords, chunk_selection, value):
        # writers in this process always serialize on the chunk; a synchronizer
        # extends that to writers elsewhere
        local_lock = sync.key_locks[self._chunk_io.lock_key(self._path, chunk_coords)]
        lock = nolock
        if self._synchronizer is not None:
            lock = self._synchronizer[self._chunk_key(chunk_coords)]
        with local_lock, lock:
            self._chunk_setitem_nosync(chunk_coords, chunk_selection, value)

    def _chunk_setitem_nosync(self, chunk_coords, chunk_selection, value):
        chunk = self._process_for_setitem(chunk_coords, chunk_selection, value)
        if not self._write_empty_chunks and all_equal(self._meta.fill_value, chunk):
            self._chunk_io.delete_chunk(self._path, chunk_coords)
        else:
            self._chunk_io.write_chunk(self._path, chunk_coords, self._encode_chunk(chunk))

    def _fill_chunk(self):
        return np.full(self._meta.chunks, self._meta.fill_value, dtype=self._meta.dtype)

    def _process_for_setitem(self, chunk_coords, chunk_selection, value):
        extent = self._meta.chunk_extent(chunk_coords)

        if not is_total_slice(chunk_selection, extent):
            cdata = self._chunk_io.read_chunk(self._path, chunk_coords)
            chunk = None if cdata is None else self._decode_chunk_or_none(cdata, chunk_coords)
            if chunk is None:
                chunk = self._fill_chunk()
            elif not chunk.flags.writeable:
                chunk = chunk.copy()
        elif extent == self._meta.chunks:
            # every item is overwritten below
            chunk = np.empty(self._meta.chunks, dtype=self._meta.dtype)
        else:
            # edge chunk, the part beyond the array holds the fill value
            chunk = self._fill_chunk()

        chunk[chunk_selection] = value
        return chunk

    def _chunk_key(self, chunk_coords):
        return self._chunk_io.chunk_key(self._path, chunk_coords)

    def _decode_chunk(self, cdata, chunk_coords):
        raw = self._codec.decode(cdata, self._meta.chunk_nbytes,
                                 key=self._chunk_key(chunk_coords))
        return np.frombuffer(raw, dtype=self._meta.dtype).reshape(self._meta.chunks)

    def _decode_chunk_or_none(self, cdata, chunk_coords):
        try:
            return self._decode_chunk(cdata, chunk_coords)
        except DecodeError:
            if not self._tolerate_decode_errors:
                raise
            logger.warning("treating chunk %r as missing, its payload cannot be decoded",
                           self._chunk_key(chunk_coords), exc_info=True)
            return None

    def _encode_chunk(self, chunk):
        # stored little-endian, C order
        chunk = np.ascontiguousarray(chunk, dtype=self._meta.dtype)
        return self._codec.encode(chunk)

    def __repr__(self):
        parts = [f'<{type(self).__module__}.{type(self).__name__}']
        if self.name:
            parts.append(repr(self.name))
        parts += [str(self.shape), str(self.dtype)]
        if self._read_only:
            parts.append('read-only')
        return ' '.join(parts) + '>'

    @property
    def info(self):
        """Printable summary: type, shape, chunk shape, codecs, store types,
        logical and stored size, and how many chunks exist."""
        return InfoReporter(self)

    def info_items(self):
        return self._synchronized_op(self._info_items_nosync)

    def _info_items_nosync(self):
        def typestr(o):
            return f"{type(o).__module__}.{type(o).__name__}"

        def sizestr(n):
            return f"{n} ({human_readable_size(n)})" if n > 2**10 else str(n)

        meta = self._meta
        items = [("Name", self.name)] if self.name is not None else []
        items += [("Type", typestr(self)), ("Data type", str(meta.dtype)),
                  ("Shape", str(meta.shape)), ("Chunk shape", str(meta.chunks)),
                  ("Read-only", str(self.read_only))]
        items += [(f"Filter [{i}]", repr(f)) for i, f in enumerate(self.filters or ())]
        items.append(("Compressor", repr(self.compressor)))
        if self._synchronizer is not None:
            items.append(("Synchronizer type", typestr(self._synchronizer)))

        items.append(("Store type", typestr(self._store)))
        if self._chunk_store is not None:
            items.append(("Chunk store type", typestr(self._chunk_store)))
        nbytes = math.prod(meta.shape) * meta.dtype.itemsize
        items.append(("No. bytes", sizestr(nbytes)))
        stored = self.nbytes_stored
        if stored > 0:
            items += [("No. bytes stored", sizestr(stored)),
                      ("Storage ratio", f"{nbytes / stored:.1f}")]
        items.append(("Chunks initialized", f"{self.nchunks_initialized}/{meta.nchunks}"))
        return items

    def digest(self, hashname="sha1"):
        """Hash of every chunk payload in grid order, then the metadata and
        attributes documents. Missing entries hash as empty bytes, so two
        arrays with equal stored content have equal digests.

        >>> import binascii
        >>> import chunkarr
        >>> z = chunkarr.zeros(shape=(10000, 10000), chunks=(1000, 1000))
        >>> len(binascii.hexlify(z.digest()))
        40
        """
        h = hashlib.new(hashname)
        for coords in itertools.product(*(range(n) for n in self.cdata_shape)):
            h.update(self.chunk_store.get(self._chunk_key(coords), b""))
        h.update(self.store.get(self._key_prefix + array_meta_key, b""))
        h.update(self.store.get(self.attrs.key, b""))
        return h.digest()

    def hexdigest(self, hashname="sha1"):
        """:meth:`digest` as a hex string."""
        return binascii.hexlify(self.digest(hashname=hashname)).decode("ascii")

    def __getstate__(self):
        return dict(store=self._store, path=self._path, read_only=self._read_only,
                    chunk_store=self._chunk_store, synchronizer=self._synchronizer,
                    cache_metadata=self._cache_metadata, cache_attrs=self._attrs.cache,
                    write_empty_chunks=self._write_empty_chunks,
                    tolerate_decode_errors=self._tolerate_decode_errors,
                    max_workers=self._max_workers)

    def __setstate__(self, state):
        self.__init__(**state)

    def _synchronized_op(self, f, *args, **kwargs):
        # metadata changes serialize on the metadata key
        lock = nolock
        if self._synchronizer is not None:
            lock = self._synchronizer[self._key_prefix + array_meta_key]
        with lock:
            self._refresh_metadata_nosync()
            return f(*args, **kwargs)

    def _write_op(self, f, *args, **kwargs):
        if self._read_only:
            raise ReadOnlyError()
        return self._synchronized_op(f, *args, **kwargs)

    def resize(self, *args):
        """Grow the array to a new shape, given as a tuple or as one length
        per axis; None keeps an axis as it is.

        Only the metadata document is rewritten, no chunk is touched. Items
        that become addressable read as the fill value until written.

        >>> import chunkarr
        >>> z = chunkarr.zeros(shape=(10000, 10000), chunks=(1000, 1000))
        >>> z.resize(20000, 10000)
        >>> z.shape
        (20000, 10000)

        Raises
        ------
        NotResizableError
            If an axis would shrink, or an axis that is not resizable would
            change.

        """
        return self._write_op(self._resize_nosync, *args)

    def _resize_nosync(self, *args):
        old_shape = self._meta.shape
        new_shape = normalize_resize_args(old_shape, *args)
        self._meta = self._meta.resize(new_shape)
        self._flush_metadata_nosync()
        logger.info("resized array %r from %s to %s", self._path, old_shape, new_shape)

    def append(self, data, axis=0):
        """Grow `axis` by the length of `data` along it and write `data` into
        the new region. Every other axis of `data` must match the array.
        Returns the new shape.

        >>> import numpy as np
        >>> import chunkarr
        >>> a = np.arange(10000000, dtype='i4').reshape(10000, 1000)
        >>> z = chunkarr.array(a, chunks=(1000, 100))
        >>> z.append(a)
        (20000, 1000)
        >>> z.append(np.vstack([a, a]), axis=1)
        (20000, 2000)

        """
        return self._write_op(self._append_nosync, data, axis=axis)

    def _append_nosync(self, data, axis=0):
        if not hasattr(data, 'shape'):
            data = np.asanyarray(data)
        shape = self._meta.shape
        if not 0 <= axis < len(shape):
            raise ValueError(f"axis {axis} is out of range for an array with {len(shape)} dimensions")

        def others(s):
            return s[:axis] + s[axis + 1:]

        if others(shape) != others(tuple(data.shape)):
            raise ValueError('shape of data to append is not compatible with the array; all '
                             'dimensions must match except for the dimension being '
                             'appended')

        new_shape = shape[:axis] + (shape[axis] + data.shape[axis],) + shape[axis + 1:]
        self._resize_nosync(new_shape)

        region = [slice(None)] * len(shape)
        region[axis] = slice(shape[axis], new_shape[axis])
        self[tuple(region)] = data
        return new_shape
