"""
tests/test_indexed_store.py — Tests for the asynchronous indexed-store repository.
"""

import asyncio
import json
import sqlite3

import pytest
import pytest_asyncio
from structlog.testing import capture_logs

from factories import make_area, make_event, make_planter, make_plant, make_seedling, make_settings
from indexed_store import IndexedStoreRepository
from models import Settings
from repository import StorageError


@pytest.fixture
def db_path(tmp_path):
    return str(tmp_path / 'data' / 'garden.db')


@pytest_asyncio.fixture
async def repo(db_path):
    repo = IndexedStoreRepository(db_path)
    await repo.ready()
    return repo


def insert_row(db_path, sql, params):
    conn = sqlite3.connect(db_path)
    conn.execute(sql, params)
    conn.commit()
    conn.close()


# ========================================
# Schema
# ========================================

class TestReady:

    @pytest.mark.asyncio
    async def test_ready_is_idempotent(self, repo):
        await repo.ready()
        await repo.save_area(make_area())
        await repo.ready()
        assert len(await repo.get_areas()) == 1

    @pytest.mark.asyncio
    async def test_tables_and_indexes_exist(self, repo, db_path):
        conn = sqlite3.connect(db_path)
        names = {row[0] for row in conn.execute("SELECT name FROM sqlite_master")}
        conn.close()
        assert {'areas', 'custom_plants', 'seedlings', 'events', 'settings'} <= names
        assert {'idx_events_date', 'idx_custom_plants_source', 'idx_areas_profile_id'} <= names

    @pytest.mark.asyncio
    async def test_ready_raises_when_database_unusable(self, tmp_path):
        repo = IndexedStoreRepository(str(tmp_path))
        with pytest.raises(StorageError):
            await repo.ready()


# ========================================
# Collections
# ========================================

class TestCollections:

    @pytest.mark.asyncio
    async def test_empty_tables(self, repo):
        assert await repo.get_areas() == []
        assert await repo.get_custom_plants() == []
        assert await repo.get_seedlings() == []
        assert await repo.get_events() == []

    @pytest.mark.asyncio
    async def test_round_trip(self, repo):
        area = make_area(planters=[make_planter(rows=3, cols=2)])
        plant = make_plant(frost_hardy=False, spacing_cm=45.0)
        seedling = make_seedling(status='hardening')
        event = make_event(event_type='harvested')

        assert await repo.save_area(area) is True
        assert await repo.save_plant(plant) is True
        assert await repo.save_seedling(seedling) is True
        assert await repo.save_event(event) is True

        assert await repo.get_areas() == [area]
        assert await repo.get_custom_plants() == [plant]
        assert await repo.get_seedlings() == [seedling]
        assert await repo.get_events() == [event]

    @pytest.mark.asyncio
    async def test_upsert_keeps_single_row(self, repo):
        await repo.save_plant(make_plant())
        await repo.save_plant(make_plant())
        await repo.save_plant(make_plant(name='Cherry Tomato'))
        plants = await repo.get_custom_plants()
        assert len(plants) == 1
        assert plants[0].name == 'Cherry Tomato'

    @pytest.mark.asyncio
    async def test_update_keeps_position(self, repo):
        for area_id in ('a1', 'a2', 'a3'):
            await repo.save_area(make_area(area_id))
        await repo.save_area(make_area('a2', name='Front Yard'))
        await repo.save_area(make_area('a1', name='Side Yard'))

        areas = await repo.get_areas()
        assert [area.id for area in areas] == ['a1', 'a2', 'a3']
        assert [area.name for area in areas] == ['Side Yard', 'Front Yard', 'Backyard']

    @pytest.mark.asyncio
    async def test_delete(self, repo):
        await repo.save_seedling(make_seedling('s1'))
        await repo.save_seedling(make_seedling('s2'))
        assert await repo.delete_seedling('s1') is True
        assert [s.id for s in await repo.get_seedlings()] == ['s2']

    @pytest.mark.asyncio
    async def test_delete_unknown_id_is_noop(self, repo):
        await repo.save_area(make_area())
        assert await repo.delete_area('does-not-exist') is True
        assert await repo.delete_plant('does-not-exist') is True
        assert await repo.delete_event('does-not-exist') is True
        assert [area.id for area in await repo.get_areas()] == ['a1']

    @pytest.mark.asyncio
    async def test_concurrent_writes_to_different_rows(self, repo):
        await asyncio.gather(*(repo.save_event(make_event(f'e{i}', days=i)) for i in range(8)))
        assert [event.id for event in await repo.get_events()] == [f'e{i}' for i in range(7, -1, -1)]

    @pytest.mark.asyncio
    async def test_index_columns_follow_record(self, repo, db_path):
        await repo.save_plant(make_plant(source='synced'))
        conn = sqlite3.connect(db_path)
        row = conn.execute("SELECT source FROM custom_plants WHERE id = 'tomato'").fetchone()
        conn.close()
        assert row[0] == 'synced'

    @pytest.mark.asyncio
    async def test_save_rejects_invalid_entity(self, repo):
        assert await repo.save_event({'id': 'e1', 'type': 'flooded', 'date': '2025-04-01T09:00:00Z'}) is False
        assert await repo.get_events() == []


# ========================================
# Corruption and ordering
# ========================================

class TestCorruptRows:

    @pytest.mark.asyncio
    async def test_bad_rows_are_dropped_independently(self, repo, db_path):
        await repo.save_area(make_area('a1'))
        insert_row(db_path, "INSERT INTO areas (id, data) VALUES (?, ?)", ('bad', json.dumps({'id': 'bad'})))
        insert_row(db_path, "INSERT INTO areas (id, data) VALUES (?, ?)", ('junk', '{not json'))

        with capture_logs() as logs:
            areas = await repo.get_areas()

        assert [area.id for area in areas] == ['a1']
        events = {log['event'] for log in logs}
        assert events == {'invalid_record_dropped', 'indexed_store_unparsable_row'}

    @pytest.mark.asyncio
    async def test_events_newest_first(self, repo):
        await repo.save_event(make_event('t2', days=5))
        await repo.save_event(make_event('t1', days=1))
        await repo.save_event(make_event('t3', days=9))
        assert [event.id for event in await repo.get_events()] == ['t3', 't2', 't1']


# ========================================
# Settings
# ========================================

class TestSettings:

    @pytest.mark.asyncio
    async def test_defaults_when_absent(self, repo):
        assert await repo.get_settings() == Settings()

    @pytest.mark.asyncio
    async def test_partial_save_merges_defaults(self, repo):
        assert await repo.save_settings({'location': 'Amsterdam'}) is True
        assert await repo.get_settings() == Settings(location='Amsterdam')

    @pytest.mark.asyncio
    async def test_single_row(self, repo, db_path):
        await repo.save_settings(make_settings())
        await repo.save_settings(make_settings(locale='nl'))
        conn = sqlite3.connect(db_path)
        rows = conn.execute("SELECT key FROM settings").fetchall()
        conn.close()
        assert rows == [('singleton',)]
        assert (await repo.get_settings()).locale == 'nl'

    @pytest.mark.asyncio
    async def test_corrupt_settings_row_is_defaults(self, repo, db_path):
        insert_row(db_path, "INSERT INTO settings (key, data) VALUES ('singleton', ?)", ('][',))
        assert await repo.get_settings() == Settings()


# ========================================
# Maintenance and faults
# ========================================

class TestMaintenance:

    @pytest.mark.asyncio
    async def test_clear_all(self, repo):
        await repo.save_area(make_area())
        await repo.save_plant(make_plant())
        await repo.save_seedling(make_seedling())
        await repo.save_event(make_event())
        await repo.save_settings(make_settings())

        assert await repo.clear_all() is True
        assert await repo.get_areas() == []
        assert await repo.get_custom_plants() == []
        assert await repo.get_seedlings() == []
        assert await repo.get_events() == []
        assert await repo.get_settings() == Settings()

    @pytest.mark.asyncio
    async def test_storage_fault_is_reported_not_raised(self, tmp_path):
        repo = IndexedStoreRepository(str(tmp_path))
        with capture_logs() as logs:
            assert await repo.get_areas() == []
            assert await repo.get_settings() == Settings()
            assert await repo.save_area(make_area()) is False
            assert await repo.delete_area('a1') is False
            assert await repo.clear_all() is False
        assert {log['log_level'] for log in logs} == {'error'}
