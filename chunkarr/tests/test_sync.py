import atexit
import os
import pickle
import shutil
import tempfile
from multiprocessing import Pool as ProcessPool
from multiprocessing.pool import ThreadPool

import numpy as np
import pytest
from numpy.testing import assert_array_equal

from chunkarr.core import Array
from chunkarr.hierarchy import Group
from chunkarr.storage import (ChunkStore, DirectoryStore, KVStore, LoggingStore, init_array,
                              init_group)
from chunkarr.sync import KeyLocks, ProcessSynchronizer, ThreadSynchronizer
from chunkarr.tests.test_attrs import TestAttributes
from chunkarr.tests.test_core import TestArray


class TestAttributesWithThreadSynchronizer(TestAttributes):

    def init_attributes(self, store, read_only=False, cache=True):
        from chunkarr.attrs import Attributes
        synchronizer = ThreadSynchronizer()
        return Attributes(store, synchronizer=synchronizer, key='attrs',
                          read_only=read_only, cache=cache)


class TestAttributesProcessSynchronizer(TestAttributes):

    def init_attributes(self, store, read_only=False, cache=True):
        from chunkarr.attrs import Attributes
        sync_path = tempfile.mkdtemp()
        atexit.register(shutil.rmtree, sync_path, ignore_errors=True)
        synchronizer = ProcessSynchronizer(sync_path)
        return Attributes(store, synchronizer=synchronizer, key='attrs',
                          read_only=read_only, cache=cache)


def _write_row(arg):
    z, i = arg
    z[i] = np.arange(z.shape[1])
    return i


def _append_block(arg):
    z, i = arg
    return z.append(np.full(1000, i, dtype='i4'))


def _fill_stripe(arg):
    # every writer updates a different part of the same chunk
    z, i = arg
    z[i * 10:(i + 1) * 10] = i + 1
    return i


class MixinArraySyncTests:

    def _run(self, func, z, n):
        pool = self.create_pool()
        try:
            return sorted(pool.map(func, [(z, i) for i in range(n)], chunksize=1))
        finally:
            pool.terminate()

    def test_parallel_row_writes(self):
        # ten rows per chunk, each row written by its own worker
        z = self.create_array(shape=(100, 50), chunks=(10, 50), dtype='i4')
        assert list(range(100)) == self._run(_write_row, z, 100)
        assert_array_equal(np.tile(np.arange(50), (100, 1)), z[...])

    def test_parallel_partial_chunk_updates(self):
        z = self.create_array(shape=(100,), chunks=(100,), dtype='i4', fill_value=0)
        assert list(range(10)) == self._run(_fill_stripe, z, 10)
        assert_array_equal(np.repeat(np.arange(1, 11, dtype='i4'), 10), z[...])

    def test_parallel_append(self):
        n = 40
        z = self.create_array(shape=1000, chunks=1000, dtype='i4')
        shapes = self._run(_append_block, z, n)
        # every append saw the growth of the ones before it
        assert [((i + 2) * 1000,) for i in range(n)] == shapes
        assert ((n + 1) * 1000,) == z.shape
        assert sorted(np.bincount(z[1000:])) == [1000] * n


class TestArrayWithThreadSynchronizer(TestArray, MixinArraySyncTests):

    def create_array(self, shape, **kwargs):
        kwargs.setdefault('synchronizer', ThreadSynchronizer())
        return super().create_array(shape, **kwargs)

    def create_pool(self):
        return ThreadPool(cpu_count())


class TestArrayWithProcessSynchronizer(TestArray, MixinArraySyncTests):

    def create_store(self):
        path = tempfile.mkdtemp()
        atexit.register(shutil.rmtree, path, ignore_errors=True)
        return DirectoryStore(path)

    def create_array(self, shape, **kwargs):
        sync_path = tempfile.mkdtemp()
        atexit.register(shutil.rmtree, sync_path, ignore_errors=True)
        kwargs.setdefault('synchronizer', ProcessSynchronizer(sync_path))
        # other processes grow the array, never trust a cached shape
        kwargs.setdefault('cache_metadata', False)
        return super().create_array(shape, **kwargs)

    def create_pool(self):
        return ProcessPool(processes=cpu_count())

    def test_synchronizer(self):
        z = self.create_array(shape=(100,), chunks=(10,), dtype='i4')
        assert isinstance(z.synchronizer, ProcessSynchronizer)
        z[:] = 1
        assert 'Synchronizer type' in repr(z.info)


def cpu_count():
    return max(2, min(os.cpu_count() or 1, 4))


def test_thread_synchronizer_locks_per_key():
    sync = ThreadSynchronizer()
    assert sync['foo'] is sync['foo']
    assert sync['foo'] is not sync['bar']
    sync2 = pickle.loads(pickle.dumps(sync))
    assert isinstance(sync2, ThreadSynchronizer)
    assert 0 == len(sync2.locks)


def test_process_synchronizer_lock_files(tmpdir):
    sync = ProcessSynchronizer(str(tmpdir))
    assert 'ProcessSynchronizer' in repr(sync)
    with sync['foo/0.0']:
        assert os.path.exists(os.path.join(str(tmpdir), 'foo', '0.0'))
    sync2 = pickle.loads(pickle.dumps(sync))
    assert sync.path == sync2.path


def test_group_with_synchronizer():
    store = KVStore(dict())
    init_group(store)
    g = Group(store, synchronizer=ThreadSynchronizer())
    a = g.zeros('foo/bar', shape=100, chunks=10, dtype='i4')
    assert isinstance(a.synchronizer, ThreadSynchronizer)
    a[:] = 7
    assert 7 == g['foo/bar'][99]
    with pytest.raises(KeyError):
        g['baz']


def test_array_pickle_keeps_synchronizer(tmpdir):
    store = DirectoryStore(str(tmpdir.join('data')))
    init_array(store, shape=100, chunks=10, dtype='i4')
    z = Array(store, synchronizer=ProcessSynchronizer(str(tmpdir.join('sync'))))
    z2 = pickle.loads(pickle.dumps(z))
    assert isinstance(z2.synchronizer, ProcessSynchronizer)
    z2[:] = 3
    assert_array_equal(np.full(100, 3, dtype='i4'), z[:])


def test_key_locks_same_key_same_lock():
    locks = KeyLocks(stripes=16)
    assert locks[('scope', 'foo/0.0')] is locks[('scope', 'foo/0.0')]
    assert 16 == len(set(map(id, locks.locks)))


def test_lock_scope_follows_backing_entries(tmpdir):
    d = dict()
    assert KVStore(d).lock_scope() == KVStore(d).lock_scope()
    assert KVStore(d).lock_scope() != KVStore(dict()).lock_scope()
    path = str(tmpdir)
    assert DirectoryStore(path).lock_scope() == DirectoryStore(path).lock_scope()
    store = KVStore(d)
    assert store.lock_scope() == LoggingStore(store).lock_scope()
    chunks = ChunkStore(d)
    assert (id(d), 'foo/1.2') == chunks.lock_key('foo', (1, 2))
