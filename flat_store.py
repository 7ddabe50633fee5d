"""
flat_store.py — Synchronous repository over a string key-value medium.

Each collection is one JSON blob under its own key (see
repository.COLLECTION_KEYS); settings is a single JSON object. Every
operation re-reads the blob, so there is no cached state.

Writes are whole-collection read-modify-write with no locking. This is only
safe with a single writer; two processes sharing one flat store can lose
updates.
"""

import json
import os
import sqlite3
from typing import Dict, List, Optional

import structlog

from models import Area, GardenEvent, Plant, Seedling, Settings, to_record
from repository import (
    COLLECTION_KEYS,
    SETTINGS_KEY,
    GardenRepository,
    StorageError,
    StorageQuotaError,
    newest_first,
    upsert,
)
from utils.validators import revalidate, validate_items, validate_or_default

logger = structlog.get_logger(__name__)


# ========================================
# Storage media
# ========================================

class MemoryKeyValueStore:
    """
    Dict-backed medium. open_repository('flat', ':memory:') runs the flat
    backend on one of these, so nothing touches the disk.

    Args:
        max_bytes: Optional quota over the total size of keys and values.
            A write that would exceed it raises StorageQuotaError and leaves
            the store unchanged.
    """

    def __init__(self, max_bytes: Optional[int] = None):
        self._items: Dict[str, str] = {}
        self.max_bytes = max_bytes

    def get_item(self, key: str) -> Optional[str]:
        return self._items.get(key)

    def set_item(self, key: str, value: str) -> None:
        if self.max_bytes is not None:
            used = sum(len(k) + len(v) for k, v in self._items.items() if k != key)
            if used + len(key) + len(value) > self.max_bytes:
                raise StorageQuotaError(f"Quota of {self.max_bytes} bytes exceeded writing {key!r}")
        self._items[key] = value

    def remove_item(self, key: str) -> None:
        self._items.pop(key, None)

    def keys(self) -> List[str]:
        return list(self._items)


class SQLiteKeyValueStore:
    """Persistent medium: a single kv(key, value) table in a SQLite file."""

    def __init__(self, path: str):
        self.path = path

    def _connect(self) -> sqlite3.Connection:
        directory = os.path.dirname(self.path)
        if directory:
            os.makedirs(directory, exist_ok=True)
        conn = sqlite3.connect(self.path)
        conn.execute("PRAGMA journal_mode=WAL")
        conn.execute("""
            CREATE TABLE IF NOT EXISTS kv (
                key TEXT PRIMARY KEY,
                value TEXT NOT NULL
            )
        """)
        return conn

    def _run(self, sql: str, params=(), fetch=False):
        try:
            conn = self._connect()
        except (sqlite3.Error, OSError) as e:
            raise StorageError(f"Cannot open flat store {self.path}: {e}") from e
        try:
            rows = conn.execute(sql, params).fetchall()
            conn.commit()
            return rows if fetch else None
        except sqlite3.Error as e:
            conn.rollback()
            if 'full' in str(e).lower():
                raise StorageQuotaError(str(e)) from e
            raise StorageError(str(e)) from e
        finally:
            conn.close()

    def get_item(self, key: str) -> Optional[str]:
        rows = self._run("SELECT value FROM kv WHERE key = ?", (key,), fetch=True)
        return rows[0][0] if rows else None

    def set_item(self, key: str, value: str) -> None:
        self._run("INSERT OR REPLACE INTO kv (key, value) VALUES (?, ?)", (key, value))

    def remove_item(self, key: str) -> None:
        self._run("DELETE FROM kv WHERE key = ?", (key,))

    def keys(self) -> List[str]:
        return [row[0] for row in self._run("SELECT key FROM kv ORDER BY key", fetch=True)]


# ========================================
# Blob helpers
# ========================================

def load_blob(store, key: str):
    """
    Read and JSON-decode one key.

    Returns None when the key is missing or not valid JSON. A fault in the
    medium itself propagates as StorageError, so callers that are about to
    write can tell "nothing stored" apart from "could not read".
    """
    raw = store.get_item(key)
    if raw is None:
        return None
    try:
        return json.loads(raw)
    except ValueError:
        logger.warning("flat_store_unparsable_blob", key=key)
        return None


def read_blob(store, key: str):
    """Like load_blob, but an unreadable medium is reported and reads as None."""
    try:
        return load_blob(store, key)
    except StorageError as e:
        logger.error("flat_store_read_failed", key=key, error=str(e))
        return None


def write_blob(store, key: str, value) -> bool:
    """
    Serialize and write one key.

    Serialization finishes before the medium is touched, so a failure at
    either step leaves the stored blob exactly as it was.
    """
    try:
        payload = json.dumps(value)
    except (TypeError, ValueError) as e:
        logger.error("flat_store_serialize_failed", key=key, error=str(e))
        return False
    try:
        store.set_item(key, payload)
    except StorageError as e:
        logger.error(
            "flat_store_write_failed",
            key=key,
            error=str(e),
            quota=isinstance(e, StorageQuotaError),
        )
        return False
    return True


# ========================================
# Repository
# ========================================

class FlatStoreRepository(GardenRepository):
    """GardenRepository over a key-value medium (memory or SQLite kv table)."""

    def __init__(self, store):
        self.store = store

    def ready(self) -> None:
        """Nothing to prepare: the medium is usable as soon as it exists."""
        return None

    def _get_all(self, key: str, model) -> List:
        return validate_items(model, read_blob(self.store, key), key)

    def _get_all_for_write(self, key: str, model) -> Optional[List]:
        """Current items before a read-modify-write, or None if the read failed."""
        try:
            raw = load_blob(self.store, key)
        except StorageError as e:
            logger.error("flat_store_read_failed", key=key, error=str(e))
            return None
        return validate_items(model, raw, key)

    def _save(self, key: str, model, entity) -> bool:
        entity = revalidate(model, entity, f"{key}:save")
        if entity is None:
            return False
        current = self._get_all_for_write(key, model)
        if current is None:
            return False
        items = upsert(current, entity)
        return write_blob(self.store, key, [to_record(item) for item in items])

    def _delete(self, key: str, model, entity_id: str) -> bool:
        current = self._get_all_for_write(key, model)
        if current is None:
            return False
        remaining = [item for item in current if item.id != entity_id]
        if len(remaining) == len(current):
            return True
        return write_blob(self.store, key, [to_record(item) for item in remaining])

    # Areas
    def get_areas(self) -> List[Area]:
        return self._get_all(COLLECTION_KEYS['areas'], Area)

    def save_area(self, area) -> bool:
        return self._save(COLLECTION_KEYS['areas'], Area, area)

    def delete_area(self, area_id: str) -> bool:
        return self._delete(COLLECTION_KEYS['areas'], Area, area_id)

    # Custom plants
    def get_custom_plants(self) -> List[Plant]:
        return self._get_all(COLLECTION_KEYS['custom_plants'], Plant)

    def save_plant(self, plant) -> bool:
        return self._save(COLLECTION_KEYS['custom_plants'], Plant, plant)

    def delete_plant(self, plant_id: str) -> bool:
        return self._delete(COLLECTION_KEYS['custom_plants'], Plant, plant_id)

    # Seedlings
    def get_seedlings(self) -> List[Seedling]:
        return self._get_all(COLLECTION_KEYS['seedlings'], Seedling)

    def save_seedling(self, seedling) -> bool:
        return self._save(COLLECTION_KEYS['seedlings'], Seedling, seedling)

    def delete_seedling(self, seedling_id: str) -> bool:
        return self._delete(COLLECTION_KEYS['seedlings'], Seedling, seedling_id)

    # Events
    def get_events(self) -> List[GardenEvent]:
        return newest_first(self._get_all(COLLECTION_KEYS['events'], GardenEvent))

    def save_event(self, event) -> bool:
        return self._save(COLLECTION_KEYS['events'], GardenEvent, event)

    def delete_event(self, event_id: str) -> bool:
        return self._delete(COLLECTION_KEYS['events'], GardenEvent, event_id)

    # Settings
    def get_settings(self) -> Settings:
        return validate_or_default(Settings, read_blob(self.store, SETTINGS_KEY))

    def save_settings(self, settings) -> bool:
        settings = revalidate(Settings, settings, f"{SETTINGS_KEY}:save")
        if settings is None:
            return False
        return write_blob(self.store, SETTINGS_KEY, to_record(settings))

    def clear_all(self) -> bool:
        """Remove every collection key and the settings key. The migration flag stays."""
        managed = set(COLLECTION_KEYS.values()) | {SETTINGS_KEY}
        try:
            for key in self.store.keys():
                if key in managed:
                    self.store.remove_item(key)
        except StorageError as e:
            logger.error("flat_store_clear_failed", error=str(e))
            return False
        return True
