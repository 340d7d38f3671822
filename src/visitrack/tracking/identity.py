"""Visitor and session identity."""

import json
import logging
import secrets
import string
import threading
import time
from pathlib import Path
from typing import Protocol

logger = logging.getLogger(__name__)

VISITOR_STORAGE_KEY = "analytics_visitor_id"

_SUFFIX_ALPHABET = string.digits + string.ascii_lowercase
_SUFFIX_LENGTH = 9


class Storage(Protocol):
    """Durable client-side key/value storage (``localStorage`` in a browser)."""

    def get_item(self, key: str) -> str | None: ...

    def set_item(self, key: str, value: str) -> None: ...


class MemoryStorage:
    """Storage that lives as long as the object; one instance is one storage scope."""

    def __init__(self, items: dict[str, str] | None = None) -> None:
        self._items: dict[str, str] = dict(items or {})

    def get_item(self, key: str) -> str | None:
        return self._items.get(key)

    def set_item(self, key: str, value: str) -> None:
        self._items[key] = value

    def clear(self) -> None:
        self._items.clear()


class FileStorage:
    """Storage persisted to a JSON file, surviving process restarts.

    An unreadable or corrupt file is treated as empty storage, the same way a
    browser treats cleared site data.
    """

    def __init__(self, path: str | Path) -> None:
        self.path = Path(path).expanduser()
        self._lock = threading.Lock()

    def _load(self) -> dict[str, str]:
        try:
            data = json.loads(self.path.read_text(encoding="utf-8"))
        except FileNotFoundError:
            return {}
        except (OSError, ValueError) as exc:
            logger.warning("Ignoring unreadable storage file %s: %s", self.path, exc)
            return {}
        return data if isinstance(data, dict) else {}

    def get_item(self, key: str) -> str | None:
        with self._lock:
            value = self._load().get(key)
        return value if isinstance(value, str) else None

    def set_item(self, key: str, value: str) -> None:
        with self._lock:
            data = self._load()
            data[key] = value
            self.path.parent.mkdir(parents=True, exist_ok=True)
            tmp = self.path.with_suffix(self.path.suffix + ".tmp")
            tmp.write_text(json.dumps(data), encoding="utf-8")
            tmp.replace(self.path)


def _random_suffix() -> str:
    return "".join(secrets.choice(_SUFFIX_ALPHABET) for _ in range(_SUFFIX_LENGTH))


def _generate_id(prefix: str) -> str:
    return f"{prefix}_{time.time_ns() // 1_000_000}_{_random_suffix()}"


def generate_visitor_id() -> str:
    """Return a new visitor id: ``visitor_<epoch-ms>_<9 base36 chars>``."""
    return _generate_id("visitor")


def generate_session_id() -> str:
    """Return a new session id: ``session_<epoch-ms>_<9 base36 chars>``."""
    return _generate_id("session")


def get_or_create_visitor_id(storage: Storage) -> str:
    """Read the visitor id from storage, creating and storing one if absent.

    When the new id cannot be written it is still returned, so identity lasts
    for the caller's lifetime only.
    """
    visitor_id = storage.get_item(VISITOR_STORAGE_KEY)
    if not visitor_id:
        visitor_id = generate_visitor_id()
        try:
            storage.set_item(VISITOR_STORAGE_KEY, visitor_id)
        except OSError as exc:
            logger.debug("Could not persist visitor id: %s", exc)
    return visitor_id
