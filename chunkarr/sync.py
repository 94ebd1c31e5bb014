import os
from collections import defaultdict
from threading import Lock
from typing import Protocol

import fasteners


class Synchronizer(Protocol):
    """Anything that returns a lock when indexed with a store key."""

    def __getitem__(self, item):
        ...


class ThreadSynchronizer(Synchronizer):
    """One :class:`threading.Lock` per key, created on first use. Pickles to
    a fresh synchronizer with no locks."""

    def __init__(self):
        self.mutex = Lock()
        self.locks = defaultdict(Lock)

    def __getitem__(self, item):
        with self.mutex:
            return self.locks[item]

    def __getstate__(self):
        return True

    def __setstate__(self, *args):
        self.__init__()


class KeyLocks(Synchronizer):
    """Fixed set of thread locks shared by every array in the process.

    A key always maps to the same lock, so read-modify-write updates of one chunk
    through any number of arrays are serialized. Distinct keys may share a lock.
    """

    def __init__(self, stripes=1024):
        self.locks = [Lock() for _ in range(stripes)]

    def __getitem__(self, item):
        return self.locks[hash(item) % len(self.locks)]


key_locks = KeyLocks()


def _reset_key_locks():
    # a lock held by another thread at fork time would never be released in the child
    global key_locks
    key_locks = KeyLocks()


if hasattr(os, 'register_at_fork'):
    os.register_at_fork(after_in_child=_reset_key_locks)


class ProcessSynchronizer(Synchronizer):
    """File locks from `fasteners`_, one lock file per key below `path`, for
    processes that share a file system.

    `path` must be a directory every process can reach, and should not be
    inside the store itself, otherwise lock files show up as store keys.

    .. _fasteners: https://fasteners.readthedocs.io/en/latest/api/inter_process/
    """

    def __init__(self, path):
        self.path = path

    def __repr__(self):
        return f'{type(self).__name__}({self.path!r})'

    def __getitem__(self, item):
        return fasteners.InterProcessLock(os.path.join(self.path, item))
