import copy
import threading
from pymongo import ReturnDocument


RATE_LIMITS = "rate_limits"
DEVICE_FINGERPRINTS = "device_fingerprints"


class KeyValueStore:
    """Namespaced document store backing the engine's shared mutable state.

    Values are plain dicts. Implementations must make ``increment`` and
    ``add_member`` atomic for a single key.
    """

    def get(self, namespace, key):
        raise NotImplementedError

    def set(self, namespace, key, value):
        raise NotImplementedError

    def delete(self, namespace, key):
        raise NotImplementedError

    def increment(self, namespace, key, field, amount=1):
        """Atomically add ``amount`` to ``field``; returns the updated value or None"""
        raise NotImplementedError

    def add_member(self, namespace, key, field, member, updates=None):
        """Atomically add ``member`` to the set in ``field`` and apply ``updates``"""
        raise NotImplementedError

    def sweep(self, namespace, field, cutoff):
        """Delete entries whose ``field`` is below ``cutoff``; returns the count"""
        raise NotImplementedError


class MemoryStore(KeyValueStore):
    def __init__(self):
        self._lock = threading.RLock()
        self._data = {}

    def _bucket(self, namespace):
        return self._data.setdefault(namespace, {})

    def get(self, namespace, key):
        with self._lock:
            value = self._bucket(namespace).get(key)
            return copy.deepcopy(value) if value is not None else None

    def set(self, namespace, key, value):
        with self._lock:
            self._bucket(namespace)[key] = copy.deepcopy(value)

    def delete(self, namespace, key):
        with self._lock:
            self._bucket(namespace).pop(key, None)

    def increment(self, namespace, key, field, amount=1):
        with self._lock:
            value = self._bucket(namespace).get(key)
            if value is None:
                return None
            value[field] = value.get(field, 0) + amount
            return copy.deepcopy(value)

    def add_member(self, namespace, key, field, member, updates=None):
        with self._lock:
            value = self._bucket(namespace).setdefault(key, {})
            members = value.setdefault(field, [])
            if member not in members:
                members.append(member)
            value.update(updates or {})
            return copy.deepcopy(value)

    def sweep(self, namespace, field, cutoff):
        with self._lock:
            bucket = self._bucket(namespace)
            stale = [key for key, value in bucket.items() if value.get(field, 0) < cutoff]
            for key in stale:
                del bucket[key]
            return len(stale)

    def __len__(self):
        with self._lock:
            return sum(len(bucket) for bucket in self._data.values())


class MongoStore(KeyValueStore):
    """Store backed by one MongoDB collection per namespace, keyed by ``_id``"""

    def __init__(self, db):
        self.db = db

    def _strip(self, document):
        if document is None:
            return None
        document = dict(document)
        document.pop('_id', None)
        return document

    def get(self, namespace, key):
        return self._strip(self.db[namespace].find_one({"_id": key}))

    def set(self, namespace, key, value):
        self.db[namespace].replace_one({"_id": key}, dict(value), upsert=True)

    def delete(self, namespace, key):
        self.db[namespace].delete_one({"_id": key})

    def increment(self, namespace, key, field, amount=1):
        document = self.db[namespace].find_one_and_update(
            {"_id": key},
            {"$inc": {field: amount}},
            return_document=ReturnDocument.AFTER
        )
        return self._strip(document)

    def add_member(self, namespace, key, field, member, updates=None):
        update = {"$addToSet": {field: member}}
        if updates:
            update["$set"] = dict(updates)
        document = self.db[namespace].find_one_and_update(
            {"_id": key},
            update,
            upsert=True,
            return_document=ReturnDocument.AFTER
        )
        return self._strip(document)

    def sweep(self, namespace, field, cutoff):
        result = self.db[namespace].delete_many({field: {"$lt": cutoff}})
        return result.deleted_count
