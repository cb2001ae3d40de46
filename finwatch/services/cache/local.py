"""
Local Result Cache

Previously fetched result sets, keyed by a string derived from entity
type + owner + query parameters, each stamped with its write time.

Reads come in two flavours:
- fresh: load(key, max_age=...) only returns entries younger than max_age
- stale: load(key) returns whatever is there, used as a last resort

The cache never raises. A corrupt or unreadable entry is a miss and a
failed write is logged and dropped.
"""

import json
import os
import re
import tempfile
from abc import ABC, abstractmethod
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Callable, Optional

from finwatch.log import get_logger


logger = get_logger(__name__)

Clock = Callable[[], datetime]

_ESCAPED_KEY_CHARS = re.compile(r"[^A-Za-z0-9-]")


def sanitize_key(key: str) -> str:
    """
    Make a key file-system safe.

    Characters outside [A-Za-z0-9-], the underscore included, become `_`
    plus six hex digits of their code point. The encoding is reversible,
    so distinct keys never share an entry, and it works character by
    character, so sanitized prefixes still match sanitized keys.
    """
    return _ESCAPED_KEY_CHARS.sub(lambda m: f"_{ord(m.group()):06x}", key)


def _as_utc(moment: datetime) -> datetime:
    if moment.tzinfo is None:
        return moment.replace(tzinfo=timezone.utc)
    return moment


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class LocalCache(ABC):
    """
    Abstract interface for the local result cache.

    Payloads are JSON-compatible values (lists of dicts for result sets).
    """

    def __init__(self, clock: Optional[Clock] = None):
        self._clock = clock or _utcnow

    def load(self, key: str, max_age: Optional[float] = None) -> Optional[Any]:
        """
        Load a payload.

        Args:
            key: Cache key
            max_age: Freshness window in seconds. None reads regardless of age.

        Returns:
            The payload, or None on a miss
        """
        envelope = self._read(sanitize_key(key))
        if envelope is None:
            return None

        try:
            written_at = _as_utc(datetime.fromisoformat(envelope["timestamp"]))
            value = envelope["value"]
        except (KeyError, TypeError, ValueError):
            logger.warning("cache_entry_corrupt", key=key)
            return None

        if max_age is not None:
            age = (_as_utc(self._clock()) - written_at).total_seconds()
            if age > max_age:
                return None

        return value

    def save(self, key: str, payload: Any) -> None:
        """Store a payload, overwriting any existing entry for the key."""
        envelope = {
            "timestamp": self._clock().isoformat(),
            "value": payload,
        }
        try:
            self._write(sanitize_key(key), envelope)
        except (OSError, TypeError, ValueError) as e:
            logger.warning("cache_write_failed", key=key, error=str(e))

    def remove(self, key: str) -> None:
        """Delete a single entry if present."""
        self._delete(sanitize_key(key))

    def remove_all(self, prefix: str) -> int:
        """
        Delete every entry whose key starts with prefix.

        Returns:
            Number of entries removed
        """
        sanitized = sanitize_key(prefix)
        removed = 0
        for key in self._keys():
            if key.startswith(sanitized):
                self._delete(key)
                removed += 1
        logger.debug("cache_prefix_removed", prefix=prefix, removed=removed)
        return removed

    @abstractmethod
    def _read(self, key: str) -> Optional[dict]:
        pass

    @abstractmethod
    def _write(self, key: str, envelope: dict) -> None:
        pass

    @abstractmethod
    def _delete(self, key: str) -> None:
        pass

    @abstractmethod
    def _keys(self) -> list[str]:
        pass


class MemoryCache(LocalCache):
    """In-process cache, useful for tests and short-lived hosts."""

    def __init__(self, clock: Optional[Clock] = None):
        super().__init__(clock)
        self._entries: dict[str, str] = {}

    def _read(self, key: str) -> Optional[dict]:
        raw = self._entries.get(key)
        if raw is None:
            return None
        try:
            return json.loads(raw)
        except ValueError:
            return None

    def _write(self, key: str, envelope: dict) -> None:
        # Serialize eagerly so callers can't mutate what was cached
        self._entries[key] = json.dumps(envelope)

    def _delete(self, key: str) -> None:
        self._entries.pop(key, None)

    def _keys(self) -> list[str]:
        return list(self._entries)


class FileCache(LocalCache):
    """
    Cache stored as one JSON file per key in a directory.

    Writes go to a temporary file that is then renamed over the entry,
    so a reader never sees a half-written envelope.
    """

    def __init__(self, directory: str, clock: Optional[Clock] = None):
        super().__init__(clock)
        self._directory = Path(directory)
        try:
            self._directory.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            logger.warning("cache_directory_unavailable", directory=directory, error=str(e))

    @property
    def directory(self) -> Path:
        return self._directory

    def _read(self, key: str) -> Optional[dict]:
        path = self._directory / key
        if not path.exists():
            return None
        try:
            return json.loads(path.read_text(encoding="utf-8"))
        except (OSError, ValueError) as e:
            logger.warning("cache_read_failed", key=key, error=str(e))
            return None

    def _write(self, key: str, envelope: dict) -> None:
        data = json.dumps(envelope)
        fd, tmp_path = tempfile.mkstemp(dir=self._directory, prefix=".tmp-")
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as handle:
                handle.write(data)
            os.replace(tmp_path, self._directory / key)
        except BaseException:
            try:
                os.unlink(tmp_path)
            except OSError:
                pass
            raise

    def _delete(self, key: str) -> None:
        try:
            (self._directory / key).unlink()
        except FileNotFoundError:
            pass
        except OSError as e:
            logger.warning("cache_delete_failed", key=key, error=str(e))

    def _keys(self) -> list[str]:
        try:
            return [
                path.name
                for path in self._directory.iterdir()
                if path.is_file() and not path.name.startswith(".tmp-")
            ]
        except OSError:
            return []
