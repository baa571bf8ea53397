"""
Key-value store backends for Inkwell.
The content cache, the comment hashes and the abuse counters all talk to one of these.
"""

import os
import re
import json
import time
import hashlib
import threading
from typing import Any, Dict, Optional


class StoreError(Exception):
    """Raised when a store backend cannot complete an operation."""


class KeyValueStore:
    """
    Minimal string and hash-map store interface.

    Implementations must raise StoreError for backend failures so callers can
    degrade gracefully instead of crashing.
    """

    def get(self, key: str) -> Optional[str]:
        raise NotImplementedError

    def set(self, key: str, value: str, ttl: Optional[int] = None) -> None:
        raise NotImplementedError

    def delete(self, key: str) -> None:
        raise NotImplementedError

    def exists(self, key: str) -> bool:
        return self.get(key) is not None

    def incr(self, key: str, ttl: Optional[int] = None) -> int:
        raise NotImplementedError

    def hget(self, key: str, field: str) -> Optional[str]:
        raise NotImplementedError

    def hset(self, key: str, field: str, value: str) -> None:
        raise NotImplementedError

    def hdel(self, key: str, field: str) -> None:
        raise NotImplementedError

    def hgetall(self, key: str) -> Dict[str, str]:
        raise NotImplementedError


class MemoryStore(KeyValueStore):
    """Thread-safe in-process store with per-key expiry."""

    def __init__(self):
        self._data: Dict[str, Any] = {}
        self._expires: Dict[str, float] = {}
        self._lock = threading.RLock()

    def _alive(self, key):
        expires_at = self._expires.get(key)
        if expires_at is not None and time.time() >= expires_at:
            self._data.pop(key, None)
            self._expires.pop(key, None)
        return key in self._data

    def _expire(self, key, ttl):
        if ttl:
            self._expires[key] = time.time() + ttl
        else:
            self._expires.pop(key, None)

    def get(self, key):
        with self._lock:
            if not self._alive(key):
                return None
            value = self._data[key]
            if isinstance(value, dict):
                raise StoreError(f"Key {key} holds a hash, not a string")
            return value

    def set(self, key, value, ttl=None):
        with self._lock:
            self._data[key] = str(value)
            self._expire(key, ttl)

    def delete(self, key):
        with self._lock:
            self._data.pop(key, None)
            self._expires.pop(key, None)

    def exists(self, key):
        with self._lock:
            return self._alive(key)

    def incr(self, key, ttl=None):
        with self._lock:
            current = self._data.get(key, '0') if self._alive(key) else '0'
            try:
                value = int(current) + 1
            except (TypeError, ValueError):
                raise StoreError(f"Key {key} does not hold an integer")
            fresh = key not in self._data
            self._data[key] = str(value)
            if fresh:
                self._expire(key, ttl)
            return value

    def _hash(self, key, create=False):
        if not self._alive(key):
            if not create:
                return {}
            self._data[key] = {}
        value = self._data[key]
        if not isinstance(value, dict):
            raise StoreError(f"Key {key} holds a string, not a hash")
        return value

    def hget(self, key, field):
        with self._lock:
            return self._hash(key).get(field)

    def hset(self, key, field, value):
        with self._lock:
            self._hash(key, create=True)[field] = str(value)

    def hdel(self, key, field):
        with self._lock:
            entries = self._hash(key)
            entries.pop(field, None)
            if not entries:
                self._data.pop(key, None)

    def hgetall(self, key):
        with self._lock:
            return dict(self._hash(key))


class FileStore(KeyValueStore):
    """
    Durable store keeping one JSON file per key in a directory.

    Used for the content snapshot when no volatile store is configured, so it
    trades speed for surviving restarts.
    """

    _SAFE_KEY_RE = re.compile(r'^[A-Za-z0-9][A-Za-z0-9._-]*$')

    def __init__(self, directory: str):
        self.directory = directory
        self._lock = threading.RLock()

    def _path(self, key):
        if self._SAFE_KEY_RE.match(key):
            name = key
        else:
            # Keys with path characters are hashed instead of trusted as filenames
            name = hashlib.md5(key.encode('utf-8')).hexdigest()
        return os.path.join(self.directory, f"{name}.cache")

    def _read(self, key):
        path = self._path(key)
        if not os.path.exists(path):
            return None
        try:
            with open(path, 'r', encoding='utf-8') as f:
                entry = json.load(f)
        except (IOError, OSError) as e:
            raise StoreError(f"Failed to read {path}: {e}")
        except json.JSONDecodeError:
            # Half-written or foreign file; treat as missing
            return None
        expires_at = entry.get('expires_at')
        if expires_at is not None and time.time() >= expires_at:
            self._remove(path)
            return None
        return entry

    def _write(self, key, value, expires_at=None):
        path = self._path(key)
        tmp_path = path + '.tmp'
        try:
            os.makedirs(self.directory, exist_ok=True)
            with open(tmp_path, 'w', encoding='utf-8') as f:
                json.dump({'value': value, 'expires_at': expires_at}, f)
            os.replace(tmp_path, path)
        except (IOError, OSError) as e:
            raise StoreError(f"Failed to write {path}: {e}")

    def _remove(self, path):
        try:
            if os.path.exists(path):
                os.remove(path)
        except OSError as e:
            raise StoreError(f"Failed to delete {path}: {e}")

    def get(self, key):
        with self._lock:
            entry = self._read(key)
            if entry is None:
                return None
            if isinstance(entry['value'], dict):
                raise StoreError(f"Key {key} holds a hash, not a string")
            return entry['value']

    def set(self, key, value, ttl=None):
        with self._lock:
            self._write(key, str(value), time.time() + ttl if ttl else None)

    def delete(self, key):
        with self._lock:
            self._remove(self._path(key))

    def incr(self, key, ttl=None):
        with self._lock:
            entry = self._read(key)
            if entry is None:
                value, expires_at = 1, (time.time() + ttl if ttl else None)
            else:
                try:
                    value = int(entry['value']) + 1
                except (TypeError, ValueError):
                    raise StoreError(f"Key {key} does not hold an integer")
                expires_at = entry.get('expires_at')
            self._write(key, str(value), expires_at)
            return value

    def _hash(self, key):
        entry = self._read(key)
        if entry is None:
            return {}
        if not isinstance(entry['value'], dict):
            raise StoreError(f"Key {key} holds a string, not a hash")
        return entry['value']

    def hget(self, key, field):
        with self._lock:
            return self._hash(key).get(field)

    def hset(self, key, field, value):
        with self._lock:
            entries = self._hash(key)
            entries[field] = str(value)
            self._write(key, entries)

    def hdel(self, key, field):
        with self._lock:
            entries = self._hash(key)
            if field not in entries:
                return
            del entries[field]
            if entries:
                self._write(key, entries)
            else:
                self._remove(self._path(key))

    def hgetall(self, key):
        with self._lock:
            return dict(self._hash(key))
