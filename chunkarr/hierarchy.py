"""Groups, the interior nodes of a store.

A group is a ``.cgroup`` marker document at its path. Its members are the
immediate sub-paths holding an array (``.carray``) or another group; anything
else under the path is ignored.
"""
import logging
from collections.abc import MutableMapping

import numpy as np

from chunkarr import creation
from chunkarr.attrs import Attributes
from chunkarr.core import Array
from chunkarr.errors import ContainsArrayError, GroupNotFoundError, ReadOnlyError
from chunkarr.meta import attrs_key, decode_group_metadata, group_meta_key
from chunkarr.storage import (_path_to_prefix, contains_array, contains_group, init_group,
                              listdir, normalize_store_arg, resolve_open_mode, rmdir)
from chunkarr.util import (InfoReporter, TreeViewer, nolock, normalize_shape,
                           normalize_storage_path)

__all__ = ['Group', 'group', 'open_group']

logger = logging.getLogger(__name__)


class Group(MutableMapping):
    """A group in an initialized store, mapping member names to arrays and
    sub-groups.

    Parameters
    ----------
    store : MutableMapping
        Store holding the group marker. Closed on exit when the group is used
        as a context manager.
    path : string, optional
        Group path.
    read_only : bool, optional
        True if neither the group nor its members may be modified.
    chunk_store : MutableMapping, optional
        Separate storage for the chunks of member arrays.
    cache_attrs : bool, optional
        Cache user attributes of the group and of the members it hands out.
    synchronizer : object, optional
        Passed to member arrays. Changes to the membership of any group
        serialize on its ``.cgroup`` key.

    """

    def __init__(self, store, path=None, read_only=False, chunk_store=None,
                 cache_attrs=True, synchronizer=None):
        self._store = normalize_store_arg(store)
        self._chunk_store = None if chunk_store is None else normalize_store_arg(chunk_store)
        self._path = normalize_storage_path(path)
        self._key_prefix = _path_to_prefix(self._path)
        self._read_only = read_only
        self._synchronizer = synchronizer

        if contains_array(self._store, self._path):
            raise ContainsArrayError(self._path)
        try:
            marker = self._store[self._key_prefix + group_meta_key]
        except KeyError:
            raise GroupNotFoundError(self._path) from None
        self._meta = decode_group_metadata(marker)
        self._attrs = Attributes(self._store, key=self._key_prefix + attrs_key,
                                 read_only=read_only, cache=cache_attrs,
                                 synchronizer=synchronizer)

    store = property(lambda self: self._store)
    path = property(lambda self: self._path)
    read_only = property(lambda self: self._read_only)
    synchronizer = property(lambda self: self._synchronizer)
    attrs = property(lambda self: self._attrs, doc="User attributes, JSON values only.")

    @property
    def chunk_store(self):
        return self._store if self._chunk_store is None else self._chunk_store

    @property
    def name(self):
        """Absolute name, ``'/'`` for the root."""
        return '/' + self._path

    @property
    def basename(self):
        return self._path.rsplit('/', 1)[-1]

    @property
    def info(self):
        return InfoReporter(self)

    def __eq__(self, other):
        return (isinstance(other, Group) and self._store == other.store and
                self._path == other.path and self._read_only == other.read_only)

    def __repr__(self):
        t = type(self)
        flag = ' read-only' if self._read_only else ''
        return f'<{t.__module__}.{t.__name__} {self.name!r}{flag}>'

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self._store.close()

    def __getstate__(self):
        return (self._store, self._path, self._read_only, self._chunk_store,
                self._attrs.cache, self._synchronizer)

    def __setstate__(self, state):
        self.__init__(*state)

    # membership

    def _member_path(self, name):
        # a leading slash names a path from the store root
        path = normalize_storage_path(name)
        if isinstance(name, str) and name.startswith('/'):
            return path
        return self._key_prefix + path

    def _kind(self, path):
        if contains_array(self._store, path):
            return 'array'
        if contains_group(self._store, path):
            return 'group'
        return None

    def _open(self, path, kind, **kwargs):
        kwargs.setdefault('synchronizer', self._synchronizer)
        kwargs.setdefault('cache_attrs', self._attrs.cache)
        cls = Array if kind == 'array' else Group
        return cls(self._store, path=path, read_only=self._read_only,
                   chunk_store=self._chunk_store, **kwargs)

    def _members(self):
        for name in sorted(listdir(self._store, self._path)):
            kind = self._kind(self._key_prefix + name)
            if kind is not None:
                yield name, kind

    def __iter__(self):
        """Member names in sorted order.

        >>> import chunkarr
        >>> g = chunkarr.group()
        >>> _ = g.create_group('videos')
        >>> _ = g.zeros('labels', shape=100, chunks=10)
        >>> list(g)
        ['labels', 'videos']

        """
        return (name for name, _ in self._members())

    def __len__(self):
        return sum(1 for _ in self._members())

    def __contains__(self, name):
        return self._kind(self._member_path(name)) is not None

    def __getitem__(self, name):
        """Member array or group at `name`, which may be a nested path.

        >>> import chunkarr
        >>> g = chunkarr.group()
        >>> _ = g.zeros('train/clip0', shape=(8, 3, 64, 64), chunks=(1, 3, 64, 64))
        >>> g['train']
        <chunkarr.hierarchy.Group '/train'>
        >>> g['train/clip0']
        <chunkarr.core.Array '/train/clip0' (8, 3, 64, 64) float64>

        """
        path = self._member_path(name)
        kind = self._kind(path)
        if kind is None:
            raise KeyError(name)
        return self._open(path, kind)

    def __setitem__(self, name, value):
        self.array(name, value, overwrite=True)

    def __delitem__(self, name):
        path = self._member_path(name)
        with self._structure_lock():
            if self._kind(path) is None:
                raise KeyError(name)
            rmdir(self._store, path)
            if self._chunk_store is not None:
                rmdir(self._chunk_store, path)
        logger.debug("removed %r", path)

    def group_keys(self):
        return (name for name, kind in self._members() if kind == 'group')

    def groups(self):
        """Pairs of (name, group) for the sub-groups."""
        for name in self.group_keys():
            yield name, self._open(self._key_prefix + name, 'group')

    def array_keys(self, recurse=False):
        """Names of the member arrays; with `recurse`, also the names of the
        arrays in every group below, unqualified."""
        for name, _ in self._walk_arrays(recurse):
            yield name

    def arrays(self, recurse=False):
        """Pairs of (name, array), traversed as in :meth:`array_keys`."""
        for name, path in self._walk_arrays(recurse):
            yield name, self._open(path, 'array')

    def _walk_arrays(self, recurse):
        for name, kind in self._members():
            path = self._key_prefix + name
            if kind == 'array':
                yield name, path
            elif recurse:
                yield from self._open(path, 'group')._walk_arrays(recurse)

    def tree(self, level=None):
        """Drawing of the hierarchy below this group, `level` groups deep.

        >>> import chunkarr
        >>> g = chunkarr.group()
        >>> _ = g.zeros('train/clip0', shape=(8, 3, 64, 64), chunks=(1, 3, 64, 64))
        >>> _ = g.create_group('test')
        >>> g.tree()
        /
         ├── test
         └── train
             └── clip0 (8, 3, 64, 64) float64

        """
        return TreeViewer(self, level=level)

    def info_items(self):
        def typestr(o):
            return f'{type(o).__module__}.{type(o).__name__}'

        arrays = list(self.array_keys())
        groups = list(self.group_keys())
        items = [('Name', self.name), ('Type', typestr(self)),
                 ('Read-only', str(self._read_only))]
        if self._synchronizer is not None:
            items.append(('Synchronizer type', typestr(self._synchronizer)))
        items.append(('Store type', typestr(self._store)))
        if self._chunk_store is not None:
            items.append(('Chunk store type', typestr(self._chunk_store)))
        items += [('No. members', str(len(arrays) + len(groups))),
                  ('No. arrays', str(len(arrays))),
                  ('No. groups', str(len(groups)))]
        if arrays:
            items.append(('Arrays', ', '.join(arrays)))
        if groups:
            items.append(('Groups', ', '.join(groups)))
        return items

    # creating members

    def _structure_lock(self):
        if self._read_only:
            raise ReadOnlyError()
        if self._synchronizer is None:
            return nolock
        return self._synchronizer[group_meta_key]

    def create_group(self, name, overwrite=False):
        """Create a sub-group at `name`, along with any missing groups above
        it. Raises :class:`ContainsGroupError` or :class:`ContainsArrayError`
        if `name` is taken, unless `overwrite`."""
        path = self._member_path(name)
        with self._structure_lock():
            init_group(self._store, path=path, chunk_store=self._chunk_store,
                       overwrite=overwrite)
        return self._open(path, 'group')

    def require_group(self, name, overwrite=False):
        """Sub-group at `name`, created if it does not exist yet."""
        path = self._member_path(name)
        with self._structure_lock():
            if overwrite or not contains_group(self._store, path):
                init_group(self._store, path=path, chunk_store=self._chunk_store,
                           overwrite=overwrite)
        return self._open(path, 'group')

    def _new_array(self, factory, name, *args, **kwargs):
        kwargs.setdefault('synchronizer', self._synchronizer)
        kwargs.setdefault('cache_attrs', self._attrs.cache)
        path = self._member_path(name)
        with self._structure_lock():
            a = factory(*args, store=self._store, path=path,
                        chunk_store=self._chunk_store, **kwargs)
        logger.debug("created array %r in group %r", path, self.name)
        return a

    def create(self, name, **kwargs):
        """Create an array at `name`; keywords as for :func:`chunkarr.creation.create`."""
        return self._new_array(creation.create, name, **kwargs)

    def empty(self, name, **kwargs):
        return self._new_array(creation.empty, name, **kwargs)

    def zeros(self, name, **kwargs):
        return self._new_array(creation.zeros, name, **kwargs)

    def full(self, name, fill_value, **kwargs):
        return self._new_array(creation.full, name, fill_value=fill_value, **kwargs)

    def array(self, name, data, **kwargs):
        """Create an array at `name` holding a copy of `data`."""
        return self._new_array(creation.array, name, data, **kwargs)

    def create_dataset(self, name, data=None, **kwargs):
        """Create an array at `name`, filled from `data` when given, otherwise
        from `shape` and the other keywords of :func:`chunkarr.creation.create`.

        >>> import chunkarr
        >>> g = chunkarr.group()
        >>> g.create_dataset('frames', shape=(100, 3, 216, 384), chunks=(1, 3, 96, 96),
        ...                  dtype='u1')
        <chunkarr.core.Array '/frames' (100, 3, 216, 384) uint8>

        """
        if data is None:
            return self.create(name, **kwargs)
        return self.array(name, data, **kwargs)

    def require_dataset(self, name, shape, dtype=None, exact=False, **kwargs):
        """Array at `name`, created from `shape`, `dtype` and `kwargs` if it
        does not exist yet.

        An existing array must have exactly `shape`, and a dtype equal to
        `dtype` if `exact`, otherwise one `dtype` can be safely cast to;
        :class:`TypeError` is raised if not.
        """
        path = self._member_path(name)
        if not contains_array(self._store, path):
            return self.create(name, shape=shape, dtype=dtype, **kwargs)

        options = {k: kwargs[k] for k in ('synchronizer', 'cache_metadata', 'cache_attrs')
                   if k in kwargs}
        a = self._open(path, 'array', **options)
        shape = normalize_shape(shape)
        if shape != a.shape:
            raise TypeError(f'shape {shape} does not match existing array of shape {a.shape}')
        if dtype is not None:
            dtype = np.dtype(dtype)
            if exact and dtype != a.dtype:
                raise TypeError(f'dtype {dtype} does not match existing array of dtype {a.dtype}')
            if not exact and not np.can_cast(dtype, a.dtype):
                raise TypeError(f'dtype {dtype} cannot be safely cast to {a.dtype}')
        return a


def group(store=None, overwrite=False, chunk_store=None,
          cache_attrs=True, synchronizer=None, path=None):
    """Open the group at `path`, creating it (and its parent groups) if it does
    not exist. With `overwrite`, anything already at `path` is removed first.

    >>> import chunkarr
    >>> chunkarr.group()
    <chunkarr.hierarchy.Group '/'>

    """
    store = normalize_store_arg(store)
    path = normalize_storage_path(path)
    if overwrite or not contains_group(store, path):
        init_group(store, overwrite=overwrite, path=path, chunk_store=chunk_store)
    return Group(store, path=path, chunk_store=chunk_store, cache_attrs=cache_attrs,
                 synchronizer=synchronizer)


def open_group(store=None, mode='a', cache_attrs=True, synchronizer=None, path=None,
               chunk_store=None):
    """Open a group using file-mode-like semantics.

    Parameters
    ----------
    store : MutableMapping or string, optional
        Store, or path to a directory in the file system.
    mode : {'r', 'r+', 'a', 'w', 'w-', 'x'}, optional
        As for :func:`chunkarr.creation.open_array`.
    cache_attrs : bool, optional
        Cache user attributes.
    synchronizer : object, optional
        Passed to member arrays.
    path : string, optional
        Group path within the store.
    chunk_store : MutableMapping or string, optional
        Separate storage for the chunks of member arrays.

    """
    store = normalize_store_arg(store)
    if chunk_store is not None:
        chunk_store = normalize_store_arg(chunk_store)
    path = normalize_storage_path(path)

    def initialize(overwrite):
        init_group(store, overwrite=overwrite, path=path, chunk_store=chunk_store)

    read_only = resolve_open_mode(store, path, mode, 'group', initialize)
    return Group(store, path=path, read_only=read_only, chunk_store=chunk_store,
                 cache_attrs=cache_attrs, synchronizer=synchronizer)
