"""This module contains storage classes for use with chunkarr.

A store is a :class:`MutableMapping` with string keys and bytes values. Array
metadata, group markers, user attributes and chunk payloads are all kept as
individual entries, and setting an entry publishes it as a whole: readers see
either the previous value or the new one, never a partial write.

Chunk payloads are addressed through :class:`ChunkStore`, which derives the key
of every chunk deterministically from the array path and the chunk grid
coordinates, so independent readers and writers agree on where a chunk lives
without any coordination.

The :class:`DirectoryStore` stores each key as a file on the local file system.
Writes go to a temporary file next to the destination which is then moved into
place with :func:`os.replace`.

"""
import atexit
import logging
import os
import re
import shutil
import sys
import tempfile
import time
import uuid
from collections import defaultdict
from collections.abc import MutableMapping
from contextlib import contextmanager
from threading import Lock
from typing import Any, Callable, Dict, Iterator, List, Optional, Tuple, Union

from numcodecs.compat import ensure_bytes, ensure_contiguous_ndarray

from chunkarr.errors import (ArrayNotFoundError, ContainsArrayError, ContainsGroupError,
                             FSPathExistNotDir, GroupNotFoundError)
from chunkarr.meta import (ArrayMetadata, array_meta_key, create_array_metadata,
                           encode_group_metadata, group_meta_key)
from chunkarr.util import (buffer_size, normalize_dimension_separator, normalize_storage_path,
                           retry_call)

logger = logging.getLogger(__name__)

Path = Union[str, bytes, None]


class Store(MutableMapping):
    """Base class for stores: a :class:`MutableMapping` of string keys to
    bytes, plus `listdir`, `rmdir` and `close`.

    Stores are context managers. Nested ``with`` blocks on one store close it
    when the outermost block exits.
    """

    _open_count = 0

    def __enter__(self):
        self._open_count += 1
        return self

    def __exit__(self, exc_type, exc_value, traceback):
        self._open_count -= 1
        if not self._open_count:
            self.close()

    def close(self) -> None:
        pass

    def lock_scope(self) -> Any:
        """Hashable identity of the entries behind this store. Two store objects
        with the same scope read and write the same entries, so in-process
        writers lock on ``(scope, key)``."""
        return id(self)

    def listdir(self, path: Path = None) -> List[str]:
        return _listdir_from_keys(self, normalize_storage_path(path))

    def rmdir(self, path: Path = None) -> None:
        _rmdir_from_keys(self, normalize_storage_path(path))

    @staticmethod
    def _ensure_store(store: Any) -> "Store":
        """Return `store` itself if it is a :class:`Store`, or wrapped in a
        :class:`KVStore` if it is mapping-like."""
        if store is None or isinstance(store, Store):
            return store
        required = ("keys", "values", "get", "__getitem__", "__setitem__",
                    "__delitem__", "__contains__")
        if isinstance(store, MutableMapping) or all(hasattr(store, a) for a in required):
            return KVStore(store)
        raise ValueError(
            "stores must be subclasses of Store or expose the MutableMapping "
            f"interface, got {store!r}"
        )


StoreLike = Union[Store, MutableMapping]


def _path_to_prefix(path: Optional[str]) -> str:
    # path already normalized; the root has no prefix
    return path + '/' if path else ''


def _rmdir_from_keys(store: StoreLike, path: Optional[str] = None) -> None:
    prefix = _path_to_prefix(path)
    for key in [k for k in store.keys() if k.startswith(prefix)]:
        del store[key]


def _listdir_from_keys(store: StoreLike, path: Optional[str] = None) -> List[str]:
    prefix = _path_to_prefix(path)
    return sorted({key[len(prefix):].split('/', 1)[0] for key in list(store.keys())
                   if key.startswith(prefix) and len(key) > len(prefix)})


def contains_array(store: StoreLike, path: Path = None) -> bool:
    """True if an array metadata document exists at `path`."""
    return _path_to_prefix(normalize_storage_path(path)) + array_meta_key in store


def contains_group(store: StoreLike, path: Path = None) -> bool:
    """True if a group marker exists at `path`."""
    return _path_to_prefix(normalize_storage_path(path)) + group_meta_key in store


def normalize_store_arg(store: Any) -> Store:
    """Turn None into a :class:`MemoryStore`, a file system path into a
    :class:`DirectoryStore` and a plain mapping into a :class:`KVStore`."""
    if store is None:
        return MemoryStore()
    if isinstance(store, os.PathLike):
        store = os.fspath(store)
    if isinstance(store, str):
        return DirectoryStore(store)
    return Store._ensure_store(store)


def rmdir(store: StoreLike, path: Path = None):
    """Delete every entry under `path`, through ``store.rmdir`` when the store
    has one."""
    path = normalize_storage_path(path)
    if hasattr(store, "rmdir"):
        store.rmdir(path)  # type: ignore
    else:
        _rmdir_from_keys(store, path)


def listdir(store: StoreLike, path: Path = None) -> List[str]:
    """Sorted names of the direct children of `path`, through
    ``store.listdir`` when the store has one."""
    path = normalize_storage_path(path)
    if hasattr(store, "listdir"):
        return store.listdir(path)  # type: ignore
    return _listdir_from_keys(store, path)


def _getsize(store: StoreLike, path: Path = None) -> int:
    if path and path in store:
        return buffer_size(store[path])
    path = normalize_storage_path(path)
    prefix = _path_to_prefix(path)
    size = 0
    for name in listdir(store, path):
        try:
            value = store[prefix + name]
        except KeyError:
            # a child directory, or removed meanwhile
            continue
        try:
            size += buffer_size(value)
        except TypeError:
            return -1
    return size


def getsize(store: StoreLike, path: Path = None) -> int:
    """Bytes stored directly under `path` (or in the entry `path`), not
    counting nested directories. -1 when the store cannot tell."""
    if hasattr(store, "getsize"):
        return store.getsize(normalize_storage_path(path))  # type: ignore
    if isinstance(store, MutableMapping):
        return _getsize(store, path)
    return -1


def load_array_metadata(store: StoreLike, path: Path = None) -> ArrayMetadata:
    """Read and validate the metadata document of the array at `path`.

    Raises
    ------
    ArrayNotFoundError
        If there is no metadata document at `path`.
    CorruptMetadataError
        If the document cannot be parsed or describes an invalid array.

    """
    path = normalize_storage_path(path)
    key = _path_to_prefix(path) + array_meta_key
    try:
        data = store[key]
    except KeyError:
        raise ArrayNotFoundError(path) from None
    return ArrayMetadata.decode(data, path=path)


def save_array_metadata(store: StoreLike, path: Path, meta: ArrayMetadata) -> None:
    """Replace the metadata document of the array at `path` in a single store
    write."""
    path = normalize_storage_path(path)
    key = _path_to_prefix(path) + array_meta_key
    store[key] = meta.encode()
    logger.debug("saved array metadata %s shape=%s", key, meta.shape)


def _clear_node(store: StoreLike, path: str, chunk_store: Optional[StoreLike],
                overwrite: bool) -> None:
    # make room for a new node at path, or refuse if one is there
    if overwrite:
        rmdir(store, path)
        if chunk_store is not None:
            rmdir(chunk_store, path)
    elif contains_array(store, path):
        raise ContainsArrayError(path)
    elif contains_group(store, path):
        raise ContainsGroupError(path)


def _require_parent_group(path: Optional[str], store: StoreLike,
                          chunk_store: Optional[StoreLike], overwrite: bool):
    # every ancestor of path becomes a group; an array in the way is only
    # replaced when overwriting
    segments = path.split('/') if path else []
    for depth in range(len(segments)):
        parent = '/'.join(segments[:depth])
        if contains_array(store, parent):
            _init_group_metadata(store, path=parent, chunk_store=chunk_store,
                                 overwrite=overwrite)
        elif not contains_group(store, parent):
            _init_group_metadata(store, path=parent, chunk_store=chunk_store)


def init_array(
    store: StoreLike,
    shape,
    chunks=True,
    dtype=None,
    compressor="default",
    fill_value=0,
    filters=None,
    shuffle=None,
    overwrite: bool = False,
    path: Path = None,
    chunk_store: Optional[StoreLike] = None,
    dimension_separator=None,
    resizable=None,
) -> ArrayMetadata:
    """Write the metadata document of a new array at `path` and return it.

    Missing parent groups are created. Without `overwrite` an existing array
    or group at `path` is an error; with it, everything under `path` is
    deleted first, in `chunk_store` too.

    `chunks` True guesses a chunk shape, False makes the whole array one
    chunk. `dimension_separator` defaults to the store's preference and then
    to ``config['array.dimension_separator']``; `resizable` defaults to every
    axis. The other arguments are those of :func:`create_array_metadata`.

    >>> from chunkarr.storage import init_array, MemoryStore
    >>> store = MemoryStore()
    >>> meta = init_array(store, shape=(10000, 10000), chunks=(1000, 1000))
    >>> sorted(store.keys())
    ['.carray']

    """
    path = normalize_storage_path(path)
    _require_parent_group(path, store=store, chunk_store=chunk_store, overwrite=overwrite)

    if dimension_separator is None:
        dimension_separator = getattr(store, "_dimension_separator", None)
    dimension_separator = normalize_dimension_separator(dimension_separator)

    _clear_node(store, path, chunk_store, overwrite)
    meta = create_array_metadata(
        shape, chunks=chunks, dtype=dtype, compressor=compressor, fill_value=fill_value,
        filters=filters, shuffle=shuffle, dimension_separator=dimension_separator,
        resizable=resizable,
    )
    save_array_metadata(store, path, meta)
    return meta


def init_group(store: StoreLike, overwrite: bool = False, path: Path = None,
               chunk_store: Optional[StoreLike] = None):
    """Write a group marker at `path`, creating missing parents, with the
    same `overwrite` rules as :func:`init_array`."""
    path = normalize_storage_path(path)
    _require_parent_group(path, store=store, chunk_store=chunk_store, overwrite=overwrite)
    _init_group_metadata(store=store, overwrite=overwrite, path=path, chunk_store=chunk_store)


def _init_group_metadata(store: StoreLike, overwrite: Optional[bool] = False,
                         path: Optional[str] = None,
                         chunk_store: Optional[StoreLike] = None):
    path = normalize_storage_path(path)
    _clear_node(store, path, chunk_store, overwrite)
    store[_path_to_prefix(path) + group_meta_key] = encode_group_metadata()


_OPEN_MODES = ('r', 'r+', 'a', 'w', 'w-', 'x')


def resolve_open_mode(store: StoreLike, path: Path, mode: str, kind: str,
                      initialize: Callable[[bool], Any]) -> bool:
    """Apply file-mode semantics to the node at `path`.

    `kind` is ``'array'`` or ``'group'``, the kind of node the caller wants.
    `initialize(overwrite)` is called when the node has to be created. Returns
    True if the node must be opened read-only.

    ===== ==================================
    mode  behaviour
    ===== ==================================
    r     must exist, read-only
    r+    must exist
    a     created unless it exists
    w     created, replacing anything there
    w-, x created, fails if it exists
    ===== ==================================
    """
    if mode not in _OPEN_MODES:
        raise ValueError(f'invalid mode {mode!r}, expected one of {_OPEN_MODES}')
    path = normalize_storage_path(path)

    if mode == 'w':
        initialize(True)
        return False

    found = {'array': contains_array(store, path), 'group': contains_group(store, path)}
    other = 'group' if kind == 'array' else 'array'
    if found[other]:
        raise _contains_error[other](path)

    if mode in ('r', 'r+'):
        if not found[kind]:
            raise _not_found_error[kind](path)
    elif mode == 'a':
        if not found[kind]:
            initialize(False)
    else:
        if found[kind]:
            raise _contains_error[kind](path)
        initialize(False)

    return mode == 'r'


_contains_error = {'array': ContainsArrayError, 'group': ContainsGroupError}
_not_found_error = {'array': ArrayNotFoundError, 'group': GroupNotFoundError}


_prog_ckey = {
    '.': re.compile(r'^\d+(\.\d+)*$'),
    '/': re.compile(r'^\d+(/\d+)*$'),
}


class ChunkStore:
    """Maps chunk grid coordinates of an array to entries of a backing store.

    The key of the chunk at `coords` of the array at `array_id` is the array
    path followed by the coordinates joined with the dimension separator, e.g.
    ``'foo/bar/0.3.1'`` or, with ``'/'``, ``'foo/bar/0/3/1'``.

    Parameters
    ----------
    store : MutableMapping
        Backing store holding the encoded chunk payloads.
    dimension_separator : {'.', '/'}, optional
        Separator placed between chunk coordinates.

    """

    def __init__(self, store: StoreLike, dimension_separator: str = '.'):
        self.store = Store._ensure_store(store)
        self.dimension_separator = normalize_dimension_separator(dimension_separator)

    def __repr__(self):
        return f'{type(self).__name__}({self.store!r}, {self.dimension_separator!r})'

    def chunk_key(self, array_id: Path, chunk_coords: Tuple[int, ...]) -> str:
        prefix = _path_to_prefix(normalize_storage_path(array_id))
        return prefix + self.dimension_separator.join(map(str, chunk_coords))

    def read_chunk(self, array_id: Path, chunk_coords: Tuple[int, ...]) -> Optional[bytes]:
        """Return the encoded payload of a chunk, or None if it was never written."""
        try:
            return self.store[self.chunk_key(array_id, chunk_coords)]
        except KeyError:
            return None

    def write_chunk(self, array_id: Path, chunk_coords: Tuple[int, ...], cdata) -> None:
        self.store[self.chunk_key(array_id, chunk_coords)] = cdata

    def delete_chunk(self, array_id: Path, chunk_coords: Tuple[int, ...]) -> bool:
        try:
            del self.store[self.chunk_key(array_id, chunk_coords)]
        except KeyError:
            return False
        return True

    def lock_key(self, array_id: Path, chunk_coords: Tuple[int, ...]) -> Tuple[Any, str]:
        return self.store.lock_scope(), self.chunk_key(array_id, chunk_coords)

    def contains_chunk(self, array_id: Path, chunk_coords: Tuple[int, ...]) -> bool:
        return self.chunk_key(array_id, chunk_coords) in self.store

    def chunk_keys(self, array_id: Path) -> Iterator[str]:
        """Iterate over the keys of the stored chunks of an array."""
        path = normalize_storage_path(array_id)
        prefix = _path_to_prefix(path)
        prog = _prog_ckey[self.dimension_separator]
        if self.dimension_separator == '.':
            names = listdir(self.store, path)
        else:
            names = (k[len(prefix):] for k in self.store.keys() if k.startswith(prefix))
        for name in names:
            if prog.match(name):
                yield prefix + name


def _dict_store_keys(d: Dict, prefix="", cls=dict):
    # flatten nested containers into '/'-joined keys
    for name, value in list(d.items()):
        if isinstance(value, cls):
            yield from _dict_store_keys(value, prefix + name + "/", cls)
        else:
            yield prefix + name


class KVStore(Store):
    """Adapts any mutable mapping, such as a plain dict, to :class:`Store`.
    Every operation goes straight to the wrapped mapping."""

    def __init__(self, mutablemapping):
        self._mutable_mapping = mutablemapping

    def __getitem__(self, key):
        return self._mutable_mapping[key]

    def __setitem__(self, key, value):
        self._mutable_mapping[key] = value

    def __delitem__(self, key):
        del self._mutable_mapping[key]

    def __contains__(self, key):
        return key in self._mutable_mapping

    def get(self, key, default=None):
        return self._mutable_mapping.get(key, default)

    def values(self):
        return self._mutable_mapping.values()

    def __iter__(self):
        return iter(self._mutable_mapping)

    def __len__(self):
        return len(self._mutable_mapping)

    def lock_scope(self):
        return id(self._mutable_mapping)

    def __repr__(self):
        return f"<{type(self).__name__}: \n{self._mutable_mapping!r}\n at {id(self):#x}>"

    def __eq__(self, other):
        if not isinstance(other, KVStore):
            return NotImplemented
        return self._mutable_mapping == other._mutable_mapping


class MemoryStore(Store):
    """In-memory store keeping one nested `cls` container (dict by default)
    per path segment. It is the store used when none is given::

        >>> import chunkarr
        >>> type(chunkarr.group().store)
        <class 'chunkarr.storage.MemoryStore'>

    Mutations are serialized by an internal mutex, so threads may write
    concurrently. A key cannot also be the parent of other keys.
    """

    def __init__(self, root=None, cls=dict, dimension_separator=None):
        self.root = cls() if root is None else root
        self.cls = cls
        self.write_mutex = Lock()
        self._dimension_separator = dimension_separator

    def __getstate__(self):
        return self.root, self.cls

    def __setstate__(self, state):
        root, cls = state
        self.__init__(root=root, cls=cls)

    def _get_parent(self, item: str):
        *parents, name = item.split('/')
        node = self.root
        for segment in parents:
            node = node[segment]
            if not isinstance(node, self.cls):
                raise KeyError(item)
        return node, name

    def _require_parent(self, item):
        *parents, name = item.split('/')
        node = self.root
        for segment in parents:
            node = node.setdefault(segment, self.cls())
            if not isinstance(node, self.cls):
                raise KeyError(item)
        return node, name

    def _lookup(self, path):
        # value or container at path, None if absent
        if not path:
            return self.root
        try:
            parent, name = self._get_parent(path)
            return parent[name]
        except KeyError:
            return None

    def __getitem__(self, item: str):
        parent, name = self._get_parent(item)
        try:
            value = parent[name]
        except KeyError as e:
            raise KeyError(item) from e
        if isinstance(value, self.cls):
            raise KeyError(item)
        return value

    def __setitem__(self, item: str, value):
        value = ensure_bytes(value)
        with self.write_mutex:
            parent, name = self._require_parent(item)
            parent[name] = value

    def __delitem__(self, item: str):
        with self.write_mutex:
            parent, name = self._get_parent(item)
            try:
                del parent[name]
            except KeyError as e:
                raise KeyError(item) from e

    def __contains__(self, item: str):  # type: ignore[override]
        value = self._lookup(item)
        return value is not None and not isinstance(value, self.cls)

    def __eq__(self, other):
        return (isinstance(other, MemoryStore) and self.root == other.root
                and self.cls == other.cls)

    def keys(self):
        yield from _dict_store_keys(self.root, cls=self.cls)

    def __iter__(self):
        return self.keys()

    def __len__(self) -> int:
        return sum(1 for _ in self.keys())

    def listdir(self, path: Path = None) -> List[str]:
        node = self._lookup(normalize_storage_path(path))
        return sorted(node.keys()) if isinstance(node, self.cls) else []

    def rmdir(self, path: Path = None):
        path = normalize_storage_path(path)
        with self.write_mutex:
            if not path:
                self.root = self.cls()
                return
            try:
                parent, name = self._get_parent(path)
            except KeyError:
                return
            if isinstance(parent.get(name), self.cls):
                del parent[name]

    def getsize(self, path: Path = None):
        node = self._lookup(normalize_storage_path(path))
        if node is None:
            return 0
        if isinstance(node, self.cls):
            return sum(buffer_size(v) for v in node.values() if not isinstance(v, self.cls))
        return buffer_size(node)

    def clear(self):
        with self.write_mutex:
            self.root.clear()


class DirectoryStore(Store):
    """Store keeping every key as a file below the directory `path`, which is
    created on the first write. Slashes in keys become subdirectories.

    Parameters
    ----------
    path : str
        Root directory of the store.
    dimension_separator : {'.', '/'}, optional
        Default chunk key separator for arrays created in this store.

    Examples
    --------
    >>> import chunkarr
    >>> store = chunkarr.DirectoryStore('data/array.chunkarr')
    >>> z = chunkarr.zeros((10, 10), chunks=(5, 5), store=store, overwrite=True)
    >>> z[...] = 42
    >>> import os
    >>> sorted(os.listdir('data/array.chunkarr'))
    ['.carray', '0.0', '0.1', '1.0', '1.1']

    Notes
    -----
    A value is written to a uniquely named ``.partial`` file beside its
    destination and then renamed over it, so readers in any thread or process
    see either the old file or the new one. No file handle is kept open
    between operations.

    """

    def __init__(self, path, dimension_separator=None):
        path = os.path.abspath(path)
        if os.path.exists(path) and not os.path.isdir(path):
            raise FSPathExistNotDir(path)
        self.path = path
        self._dimension_separator = dimension_separator

    @staticmethod
    def _fromfile(fn):
        with open(fn, 'rb') as f:
            return f.read()

    @staticmethod
    def _tofile(a, fn):
        with open(fn, mode='wb') as f:
            f.write(a)

    def _file_path(self, key):
        return os.path.join(self.path, key)

    def __getitem__(self, key):
        file_path = self._file_path(key)
        if not os.path.isfile(file_path):
            raise KeyError(key)
        try:
            return self._fromfile(file_path)
        except FileNotFoundError:
            # removed by a concurrent delete since the check above
            raise KeyError(key) from None

    def __setitem__(self, key, value):
        value = ensure_contiguous_ndarray(value)
        file_path = self._file_path(key)
        if os.path.isdir(file_path):
            shutil.rmtree(file_path)

        dir_path, file_name = os.path.split(file_path)
        if os.path.isfile(dir_path):
            raise KeyError(key)
        try:
            os.makedirs(dir_path, exist_ok=True)
        except OSError as e:
            raise KeyError(key) from e

        # not NamedTemporaryFile, whose files are created owner-only
        temp_path = os.path.join(dir_path, f'{file_name}.{uuid.uuid4().hex}.partial')
        try:
            self._tofile(value, temp_path)
            # retried, the destination may be briefly locked on Windows
            retry_call(os.replace, (temp_path, file_path), exceptions=(PermissionError,))
        finally:
            if os.path.exists(temp_path):  # pragma: no cover
                os.remove(temp_path)

    def __delitem__(self, key):
        file_path = self._file_path(key)
        if os.path.isdir(file_path):
            # a whole subtree, although directories are not keys
            shutil.rmtree(file_path)
            return
        try:
            os.remove(file_path)
        except (FileNotFoundError, NotADirectoryError):
            raise KeyError(key) from None

    def __contains__(self, key):
        return os.path.isfile(self._file_path(key))

    def __eq__(self, other):
        return isinstance(other, DirectoryStore) and self.path == other.path

    def lock_scope(self):
        return self.path

    def keys(self):
        if os.path.exists(self.path):
            yield from self._keys_fast(self.path)

    @staticmethod
    def _keys_fast(path, walker=os.walk):
        for dirpath, _, filenames in walker(path):
            rel = os.path.relpath(dirpath, path).replace("\\", "/")
            prefix = '' if rel == os.curdir else rel + '/'
            for f in filenames:
                yield prefix + f

    def __iter__(self):
        return self.keys()

    def __len__(self):
        return sum(1 for _ in self.keys())

    def dir_path(self, path=None):
        store_path = normalize_storage_path(path)
        return os.path.join(self.path, store_path) if store_path else self.path

    def listdir(self, path=None):
        dir_path = self.dir_path(path)
        return sorted(os.listdir(dir_path)) if os.path.isdir(dir_path) else []

    def rmdir(self, path=None):
        dir_path = self.dir_path(path)
        if os.path.isdir(dir_path):
            shutil.rmtree(dir_path)

    def getsize(self, path=None):
        fs_path = self.dir_path(path)
        if os.path.isfile(fs_path):
            return os.path.getsize(fs_path)
        if os.path.isdir(fs_path):
            return sum(e.stat().st_size for e in os.scandir(fs_path) if e.is_file())
        return 0

    def clear(self):
        shutil.rmtree(self.path)


def atexit_rmtree(path, isdir=os.path.isdir, rmtree=shutil.rmtree):  # pragma: no cover
    """Remove the directory `path` if it still exists."""
    if isdir(path):
        rmtree(path)


class TempStore(DirectoryStore):
    """:class:`DirectoryStore` in a fresh temporary directory, made with
    :func:`tempfile.mkdtemp` from `suffix`, `prefix` and `dir` and removed
    when the interpreter exits."""

    # noinspection PyShadowingBuiltins
    def __init__(self, suffix='', prefix='chunkarr', dir=None, dimension_separator=None):
        path = tempfile.mkdtemp(suffix=suffix, prefix=prefix, dir=dir)
        atexit.register(atexit_rmtree, path)
        super().__init__(path, dimension_separator=dimension_separator)


class NestedDirectoryStore(DirectoryStore):
    """:class:`DirectoryStore` whose arrays always use ``'/'`` between chunk
    coordinates, giving one directory level per axis instead of a single
    directory holding every chunk file of an array.

    >>> import chunkarr
    >>> store = chunkarr.NestedDirectoryStore('data/array.chunkarr')
    >>> z = chunkarr.zeros((10, 10), chunks=(5, 5), store=store, overwrite=True)
    >>> z[...] = 42
    >>> import os
    >>> sorted(os.listdir('data/array.chunkarr'))
    ['.carray', '0', '1']
    >>> sorted(os.listdir('data/array.chunkarr/0'))
    ['0', '1']

    """

    def __init__(self, path, dimension_separator="/"):
        if dimension_separator not in (None, "/"):
            raise ValueError("NestedDirectoryStore only supports '/' as dimension_separator")
        super().__init__(path, dimension_separator="/")

    def __eq__(self, other):
        return isinstance(other, NestedDirectoryStore) and self.path == other.path


class LoggingStore(Store):
    """Wraps a store, logging every call with its duration and counting calls
    per method name in :attr:`counter`.

    Messages go to a logger named after the wrapped store, at `log_level`.
    If that logger has no handler yet, `log_handler` is attached, or a
    stdout handler when none is given.
    """

    def __init__(self, store: StoreLike, log_level: str = "DEBUG",
                 log_handler: Optional[logging.Handler] = None):
        self._store = Store._ensure_store(store)
        self.counter: Dict[str, int] = defaultdict(int)
        self.log_level = log_level
        self.logger = logging.getLogger(f"LoggingStore({self._store!r})")
        self.logger.setLevel(log_level)
        if not self.logger.hasHandlers():
            self.logger.addHandler(log_handler or self._default_handler())

    @property
    def _dimension_separator(self):
        return getattr(self._store, "_dimension_separator", None)

    def _default_handler(self) -> logging.Handler:
        handler = logging.StreamHandler(stream=sys.stdout)
        handler.setLevel(self.log_level)
        handler.setFormatter(
            logging.Formatter("%(asctime)s - %(name)s - %(levelname)s - %(message)s")
        )
        return handler

    @contextmanager
    def _call(self, method: str, hint: Any = ""):
        op = f"{type(self._store).__name__}.{method}"
        if hint:
            op = f"{op}({hint})"
        self.counter[method] += 1
        self.logger.info("Calling %s", op)
        start = time.perf_counter()
        try:
            yield
        finally:
            self.logger.info("Finished %s [%.2f s]", op, time.perf_counter() - start)

    def __repr__(self):
        return f"LoggingStore({type(self._store).__name__})"

    def __eq__(self, other):
        return type(self) is type(other) and self._store == other._store

    def lock_scope(self):
        return self._store.lock_scope()

    def __getitem__(self, key):
        with self._call('__getitem__', key):
            return self._store[key]

    def __setitem__(self, key, value):
        with self._call('__setitem__', key):
            self._store[key] = value

    def __delitem__(self, key):
        with self._call('__delitem__', key):
            del self._store[key]

    def __contains__(self, key):
        with self._call('__contains__', key):
            return key in self._store

    def keys(self):
        with self._call('keys'):
            return list(self._store.keys())

    def __iter__(self):
        with self._call('__iter__'):
            keys = list(self._store.keys())
        return iter(keys)

    def __len__(self):
        with self._call('__len__'):
            return len(self._store)

    def listdir(self, path=None):
        with self._call('listdir', path):
            return listdir(self._store, path)

    def rmdir(self, path=None):
        with self._call('rmdir', path):
            rmdir(self._store, path)

    def getsize(self, path=None):
        with self._call('getsize', path):
            return getsize(self._store, path)

    def close(self):
        with self._call('close'):
            self._store.close()
