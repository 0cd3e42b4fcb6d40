"""Key-value persistence for the booking ledger.

Every collection lives under its own namespaced key as one JSON document.
Reads never raise: a missing store, a missing key or malformed content all
degrade to the caller's fallback. Writes report success as a boolean and log
failures instead of raising.
"""

from __future__ import annotations

import json
import logging
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Any

from .database import (
    delete_value,
    get_connection,
    get_metadata,
    initialize_database,
    read_value,
    write_value,
)

logger = logging.getLogger(__name__)

STORAGE_PREFIX = "annisse_"
BOOKING_KEY = STORAGE_PREFIX + "bookings_v2"
STAY_KEY = STORAGE_PREFIX + "checkins_v2"
CAGE_KEY = STORAGE_PREFIX + "cages_v1"
PROFILE_KEY = STORAGE_PREFIX + "profile_v1"


class KeyValueStore(ABC):
    """Minimal capability interface over a string key-value substrate."""

    @abstractmethod
    def get(self, key: str) -> str | None:
        raise NotImplementedError

    @abstractmethod
    def set(self, key: str, value: str) -> None:
        raise NotImplementedError

    @abstractmethod
    def remove(self, key: str) -> None:
        raise NotImplementedError

    def close(self) -> None:
        pass


class MemoryStore(KeyValueStore):
    def __init__(self, initial: dict[str, str] | None = None) -> None:
        self._data: dict[str, str] = dict(initial or {})

    def get(self, key: str) -> str | None:
        return self._data.get(key)

    def set(self, key: str, value: str) -> None:
        self._data[key] = value

    def remove(self, key: str) -> None:
        self._data.pop(key, None)


class SQLiteStore(KeyValueStore):
    """Store backed by the ``kv_store`` table of a SQLite database."""

    def __init__(self, db_path: str | Path = ":memory:") -> None:
        self.conn = get_connection(db_path)
        initialize_database(self.conn)

    @property
    def schema_version(self) -> int:
        return int(get_metadata(self.conn, "schema_version", "0"))

    def get(self, key: str) -> str | None:
        return read_value(self.conn, key)

    def set(self, key: str, value: str) -> None:
        write_value(self.conn, key, value)

    def remove(self, key: str) -> None:
        delete_value(self.conn, key)

    def close(self) -> None:
        self.conn.close()


def _read_json(store: KeyValueStore | None, key: str) -> Any:
    if store is None:
        return None
    try:
        raw = store.get(key)
    except Exception as exc:
        logger.warning("Could not read %s: %s", key, exc)
        return None
    if not raw:
        return None
    try:
        return json.loads(raw)
    except ValueError:
        logger.warning("Ignoring malformed JSON stored under %s", key)
        return None


def _write_json(store: KeyValueStore | None, key: str, value: Any) -> bool:
    if store is None:
        return False
    try:
        store.set(key, json.dumps(value))
    except Exception as exc:
        logger.warning("Could not write %s: %s", key, exc)
        return False
    return True


def load_array(store: KeyValueStore | None, key: str) -> list[dict]:
    """Return the records stored under ``key``; entries that are not objects are skipped."""

    parsed = _read_json(store, key)
    if not isinstance(parsed, list):
        return []
    return [item for item in parsed if isinstance(item, dict)]


def save_array(store: KeyValueStore | None, key: str, value: list[dict]) -> bool:
    """Write ``value`` under ``key``.

    Stored entries that are not objects were never handed out by
    :func:`load_array`; they are carried over so other clients' data survives.
    """

    stored = _read_json(store, key)
    foreign = []
    if isinstance(stored, list):
        foreign = [item for item in stored if not isinstance(item, dict)]
    return _write_json(store, key, list(value) + foreign)


def load_object(store: KeyValueStore | None, key: str, fallback: Any) -> Any:
    parsed = _read_json(store, key)
    return fallback if parsed is None else parsed


def save_object(store: KeyValueStore | None, key: str, value: Any) -> bool:
    return _write_json(store, key, value)


__all__ = [
    "BOOKING_KEY",
    "CAGE_KEY",
    "KeyValueStore",
    "MemoryStore",
    "PROFILE_KEY",
    "SQLiteStore",
    "STAY_KEY",
    "STORAGE_PREFIX",
    "load_array",
    "load_object",
    "save_array",
    "save_object",
]
