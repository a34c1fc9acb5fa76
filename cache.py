# cache.py
import enum
import threading
import time
from dataclasses import dataclass
from typing import Callable


class ErrorKind(enum.Enum):
    MISS = "miss"
    EXISTS = "exists"
    OTHER = "other"


class CacheError(Exception):
    kind = ErrorKind.OTHER


class CacheMiss(CacheError):
    kind = ErrorKind.MISS

    def __init__(self, key: str):
        super().__init__("cache miss")
        self.key = key


class EntryExists(CacheError):
    kind = ErrorKind.EXISTS

    def __init__(self, key: str):
        super().__init__("entry exists")
        self.key = key


class CacheBackendError(CacheError):
    """Lock or storage failure from a non-memory backend."""


def is_cache_miss(err: BaseException) -> bool:
    return isinstance(err, CacheError) and err.kind is ErrorKind.MISS


@dataclass(frozen=True)
class Entry:
    value: bytes
    expires_at: float  # epoch seconds


class EventCache:
    """Insert-once store with per-entry expiry.

    Expired entries are only dropped when a get/add touches them.
    """

    def __init__(self, now: Callable[[], float] = time.time):
        self._now = now
        self._lock = threading.Lock()
        self._data: dict[str, Entry] = {}

    def add(self, key: str, value: bytes, ttl_seconds: float) -> None:
        """Store value for ttl_seconds; raise EntryExists if the key is taken."""
        if not key:
            raise ValueError("key must be a non-empty string")
        if ttl_seconds <= 0:
            raise ValueError("ttl_seconds must be positive")
        if not isinstance(value, (bytes, bytearray, memoryview)):
            raise TypeError(f"value must be bytes-like, not {type(value).__name__}")
        with self._lock:
            now = self._now()
            entry = self._data.get(key)
            if entry is not None:
                # an expired entry is dropped, but this call still reports it
                if entry.expires_at < now:
                    del self._data[key]
                raise EntryExists(key)
            self._data[key] = Entry(bytes(value), now + ttl_seconds)

    def get(self, key: str) -> Entry:
        """Return the live entry; raise CacheMiss if missing/expired."""
        with self._lock:
            entry = self._data.get(key)
            if entry is None:
                raise CacheMiss(key)
            if entry.expires_at < self._now():
                del self._data[key]
                raise CacheMiss(key)
            return entry
