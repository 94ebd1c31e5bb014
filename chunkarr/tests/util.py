import collections
import threading

from chunkarr.storage import Store


class CountingDict(Store):
    """Dict-backed store counting every access, per method and key."""

    def __init__(self):
        self.wrapped = dict()
        self.counter = collections.Counter()
        self._mutex = threading.Lock()

    def _count(self, *key):
        with self._mutex:
            self.counter[key if len(key) > 1 else key[0]] += 1

    def __len__(self):
        self._count('__len__')
        return len(self.wrapped)

    def keys(self):
        self._count('keys')
        return self.wrapped.keys()

    def __iter__(self):
        self._count('__iter__')
        return iter(self.wrapped)

    def __contains__(self, item):
        self._count('__contains__', item)
        return item in self.wrapped

    def __getitem__(self, item):
        self._count('__getitem__', item)
        return self.wrapped[item]

    def __setitem__(self, key, value):
        self._count('__setitem__', key)
        self.wrapped[key] = value

    def __delitem__(self, key):
        self._count('__delitem__', key)
        del self.wrapped[key]

    def chunk_reads(self):
        return sorted(k[1] for k, n in self.counter.items()
                      if isinstance(k, tuple) and k[0] == '__getitem__' and n)
