from collections.abc import MutableMapping

from chunkarr import sync
from chunkarr.errors import ReadOnlyError
from chunkarr.meta import attrs_key
from chunkarr.storage import Store
from chunkarr.util import json_dumps, json_loads, nolock


class Attributes(MutableMapping):
    """User attributes of an array or group, kept as one JSON document under
    `key`. Obtained through the `.attrs` property rather than built directly.

    Every change reloads the document, applies the change and stores it back,
    holding the process-wide lock for `key` and, when given, the
    `synchronizer` lock for it. With `cache` on, reads are served from the
    document as last loaded or stored by this object until :meth:`refresh`.
    """

    def __init__(self, store, key=attrs_key, read_only=False, cache=True,
                 synchronizer=None):
        self.store = Store._ensure_store(store)
        self.key = key
        self.read_only = read_only
        self.cache = cache
        self.synchronizer = synchronizer
        self._cached = None

    def _load(self):
        try:
            return json_loads(self.store[self.key])
        except KeyError:
            return {}

    def _modify(self, change):
        if self.read_only:
            raise ReadOnlyError()
        shared = self.synchronizer[self.key] if self.synchronizer is not None else nolock
        with sync.key_locks[(self.store.lock_scope(), self.key)], shared:
            d = change(self._load())
            self.store[self.key] = json_dumps(d)
        if self.cache:
            self._cached = d

    def asdict(self):
        """Return all attributes as a dictionary."""
        if self._cached is not None:
            return self._cached
        d = self._load()
        if self.cache:
            self._cached = d
        return d

    def refresh(self):
        """Reload cached attributes from the store."""
        if self.cache:
            self._cached = self._load()

    def put(self, d):
        """Replace all attributes with those in `d`."""
        self._modify(lambda _: dict(d))

    # noinspection PyMethodOverriding
    def update(self, *args, **kwargs):
        """Set several attributes in one store write."""
        def change(d):
            d.update(*args, **kwargs)
            return d
        self._modify(change)

    def __setitem__(self, item, value):
        self.update({item: value})

    def __delitem__(self, item):
        def change(d):
            del d[item]
            return d
        self._modify(change)

    def __getitem__(self, item):
        return self.asdict()[item]

    def __contains__(self, item):
        return item in self.asdict()

    def keys(self):
        return self.asdict().keys()

    def __iter__(self):
        return iter(self.asdict())

    def __len__(self):
        return len(self.asdict())
