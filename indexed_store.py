"""
indexed_store.py — Asynchronous repository with one SQLite table per collection.

Each entity is its own row, so a corrupt row only ever drops itself and
writes to different rows never interfere. Rows keep the full camelCase
record in a `data` column next to a few indexed columns:

- areas          (id, profile_id, data)
- custom_plants  (id, source, data)
- seedlings      (id, data)
- events         (id, date, profile_id, data)
- settings       (key, data), single row keyed by SETTINGS_ROW_KEY

Blocking sqlite work runs in a worker thread with a fresh connection per
operation, so the handle holds no connection or event-loop state.
"""

import asyncio
import json
import os
import sqlite3
from typing import List, Optional

import structlog

from models import Area, GardenEvent, Plant, Seedling, Settings, to_record
from repository import AsyncGardenRepository, StorageError, newest_first
from utils.validators import revalidate, validate_item, validate_or_default

logger = structlog.get_logger(__name__)

SETTINGS_ROW_KEY = 'singleton'

# table -> indexed columns, each mapped to the record key it is copied from
TABLES = {
    'areas': {'profile_id': 'profileId'},
    'custom_plants': {'source': 'source'},
    'seedlings': {},
    'events': {'date': 'date', 'profile_id': 'profileId'},
}


class IndexedStoreRepository(AsyncGardenRepository):
    """AsyncGardenRepository backed by a SQLite database file."""

    def __init__(self, db_path: str):
        self.db_path = db_path

    # ========================================
    # Connection management
    # ========================================

    def _connect(self) -> sqlite3.Connection:
        directory = os.path.dirname(self.db_path)
        if directory:
            os.makedirs(directory, exist_ok=True)
        conn = sqlite3.connect(self.db_path)
        conn.execute("PRAGMA journal_mode=WAL")
        conn.row_factory = sqlite3.Row
        return conn

    def _execute(self, sql: str, params=(), fetch=False):
        """Run one statement in its own connection. Raises StorageError."""
        try:
            conn = self._connect()
        except (sqlite3.Error, OSError) as e:
            raise StorageError(f"Cannot open indexed store {self.db_path}: {e}") from e
        try:
            rows = conn.execute(sql, params).fetchall()
            conn.commit()
            return rows if fetch else None
        except sqlite3.Error as e:
            conn.rollback()
            raise StorageError(str(e)) from e
        finally:
            conn.close()

    def _init_db(self) -> None:
        """Create all tables and indexes if they don't exist. Idempotent."""
        try:
            conn = self._connect()
        except (sqlite3.Error, OSError) as e:
            raise StorageError(f"Cannot open indexed store {self.db_path}: {e}") from e
        try:
            cursor = conn.cursor()
            for table, columns in TABLES.items():
                extra = ''.join(f"{column} TEXT, " for column in columns)
                cursor.execute(f"""
                    CREATE TABLE IF NOT EXISTS {table} (
                        id TEXT PRIMARY KEY,
                        {extra}data TEXT NOT NULL
                    )
                """)
                for column in columns:
                    cursor.execute(f"""
                        CREATE INDEX IF NOT EXISTS idx_{table}_{column}
                        ON {table}({column})
                    """)

            cursor.execute("""
                CREATE TABLE IF NOT EXISTS settings (
                    key TEXT PRIMARY KEY,
                    data TEXT NOT NULL
                )
            """)
            conn.commit()
        except sqlite3.Error as e:
            conn.rollback()
            raise StorageError(f"Cannot initialize indexed store: {e}") from e
        finally:
            conn.close()

    async def ready(self) -> None:
        """Create the schema. Raises StorageError if the database is unusable."""
        await asyncio.to_thread(self._init_db)
        logger.info("indexed_store_ready", path=self.db_path)

    # ========================================
    # Generic row operations
    # ========================================

    async def _get_all(self, table: str, model) -> List:
        try:
            rows = await asyncio.to_thread(
                self._execute, f"SELECT id, data FROM {table} ORDER BY rowid", (), True
            )
        except StorageError as e:
            logger.error("indexed_store_read_failed", table=table, error=str(e))
            return []

        valid = []
        for row in rows:
            label = f"{table}[{row['id']}]"
            try:
                raw = json.loads(row['data'])
            except ValueError:
                logger.warning("indexed_store_unparsable_row", label=label)
                continue
            entity = validate_item(model, raw, label)
            if entity is not None:
                valid.append(entity)
        return valid

    async def _put(self, table: str, model, entity) -> bool:
        entity = revalidate(model, entity, f"{table}:save")
        if entity is None:
            return False

        record = to_record(entity)
        columns = TABLES[table]
        names = ['id'] + list(columns) + ['data']
        values = [entity.id] + [record[key] for key in columns.values()] + [json.dumps(record)]
        placeholders = ', '.join('?' for _ in names)
        updates = ', '.join(f"{name} = excluded.{name}" for name in names[1:])
        # Update in place so the row keeps its rowid, and with it its position
        sql = (
            f"INSERT INTO {table} ({', '.join(names)}) VALUES ({placeholders}) "
            f"ON CONFLICT(id) DO UPDATE SET {updates}"
        )
        try:
            await asyncio.to_thread(self._execute, sql, tuple(values))
        except StorageError as e:
            logger.error("indexed_store_write_failed", table=table, id=entity.id, error=str(e))
            return False
        return True

    async def _remove(self, table: str, entity_id: str) -> bool:
        try:
            await asyncio.to_thread(
                self._execute, f"DELETE FROM {table} WHERE id = ?", (entity_id,)
            )
        except StorageError as e:
            logger.error("indexed_store_delete_failed", table=table, id=entity_id, error=str(e))
            return False
        return True

    # ========================================
    # Areas
    # ========================================

    async def get_areas(self) -> List[Area]:
        return await self._get_all('areas', Area)

    async def save_area(self, area) -> bool:
        return await self._put('areas', Area, area)

    async def delete_area(self, area_id: str) -> bool:
        return await self._remove('areas', area_id)

    # ========================================
    # Custom plants
    # ========================================

    async def get_custom_plants(self) -> List[Plant]:
        return await self._get_all('custom_plants', Plant)

    async def save_plant(self, plant) -> bool:
        return await self._put('custom_plants', Plant, plant)

    async def delete_plant(self, plant_id: str) -> bool:
        return await self._remove('custom_plants', plant_id)

    # ========================================
    # Seedlings
    # ========================================

    async def get_seedlings(self) -> List[Seedling]:
        return await self._get_all('seedlings', Seedling)

    async def save_seedling(self, seedling) -> bool:
        return await self._put('seedlings', Seedling, seedling)

    async def delete_seedling(self, seedling_id: str) -> bool:
        return await self._remove('seedlings', seedling_id)

    # ========================================
    # Events
    # ========================================

    async def get_events(self) -> List[GardenEvent]:
        return newest_first(await self._get_all('events', GardenEvent))

    async def save_event(self, event) -> bool:
        return await self._put('events', GardenEvent, event)

    async def delete_event(self, event_id: str) -> bool:
        return await self._remove('events', event_id)

    # ========================================
    # Settings
    # ========================================

    async def get_settings(self) -> Settings:
        raw: Optional[dict] = None
        try:
            rows = await asyncio.to_thread(
                self._execute,
                "SELECT data FROM settings WHERE key = ?",
                (SETTINGS_ROW_KEY,),
                True,
            )
        except StorageError as e:
            logger.error("indexed_store_read_failed", table='settings', error=str(e))
            rows = []
        if rows:
            try:
                raw = json.loads(rows[0]['data'])
            except ValueError:
                logger.warning("indexed_store_unparsable_row", label='settings')
        return validate_or_default(Settings, raw)

    async def save_settings(self, settings) -> bool:
        settings = revalidate(Settings, settings, 'settings:save')
        if settings is None:
            return False
        try:
            await asyncio.to_thread(
                self._execute,
                "INSERT INTO settings (key, data) VALUES (?, ?) "
                "ON CONFLICT(key) DO UPDATE SET data = excluded.data",
                (SETTINGS_ROW_KEY, json.dumps(to_record(settings))),
            )
        except StorageError as e:
            logger.error("indexed_store_write_failed", table='settings', error=str(e))
            return False
        return True

    # ========================================
    # Maintenance
    # ========================================

    def _clear_tables(self) -> None:
        try:
            conn = self._connect()
        except (sqlite3.Error, OSError) as e:
            raise StorageError(f"Cannot open indexed store {self.db_path}: {e}") from e
        try:
            for table in list(TABLES) + ['settings']:
                conn.execute(f"DELETE FROM {table}")
            conn.commit()
        except sqlite3.Error as e:
            conn.rollback()
            raise StorageError(str(e)) from e
        finally:
            conn.close()

    async def clear_all(self) -> bool:
        try:
            await asyncio.to_thread(self._clear_tables)
        except StorageError as e:
            logger.error("indexed_store_clear_failed", error=str(e))
            return False
        return True
