"""
tests/test_app.py — Startup wiring and the JSON pass-through routes.
"""

import os

import pytest

from app import create_app
from factories import make_area, make_event
from flat_store import FlatStoreRepository, SQLiteKeyValueStore
from indexed_store import IndexedStoreRepository
from models import to_record
from repository import MIGRATION_FLAG_KEY
from utils.backup import list_backups


def app_config(tmp_path, **overrides):
    config = {
        'TESTING': True,
        'DB_PATH': str(tmp_path / 'data' / 'garden.db'),
        'FLAT_STORE_PATH': str(tmp_path / 'data' / 'garden_flat.db'),
        'BACKUP_DIR': str(tmp_path / 'backups'),
        'STORAGE_BACKEND': 'indexed',
    }
    config.update(overrides)
    return config


@pytest.fixture
def client(tmp_path):
    app = create_app(app_config(tmp_path))
    with app.test_client() as client:
        yield client


# ========================================
# Startup
# ========================================

def test_indexed_backend_is_default(tmp_path, monkeypatch):
    monkeypatch.delenv('GARDEN_STORAGE_BACKEND', raising=False)
    app = create_app({k: v for k, v in app_config(tmp_path).items() if k != 'STORAGE_BACKEND'})
    assert isinstance(app.extensions['garden_repository'], IndexedStoreRepository)
    assert os.path.exists(app.config['DB_PATH'])


def test_paths_come_from_environment(tmp_path, monkeypatch):
    monkeypatch.setenv('GARDEN_DB_PATH', str(tmp_path / 'env.db'))
    monkeypatch.setenv('GARDEN_FLAT_STORE_PATH', str(tmp_path / 'env_flat.db'))
    monkeypatch.setenv('GARDEN_BACKUP_DIR', str(tmp_path / 'env_backups'))
    app = create_app({'TESTING': True})
    assert app.config['DB_PATH'] == str(tmp_path / 'env.db')
    assert os.path.exists(tmp_path / 'env.db')


def test_startup_migrates_legacy_flat_store(tmp_path):
    config = app_config(tmp_path)
    legacy = FlatStoreRepository(SQLiteKeyValueStore(config['FLAT_STORE_PATH']))
    legacy.save_area(make_area('legacy-area'))
    legacy.save_settings({'location': 'Rotterdam'})

    app = create_app(config)
    client = app.test_client()

    assert [a['id'] for a in client.get('/api/areas').get_json()] == ['legacy-area']
    assert client.get('/api/settings').get_json()['location'] == 'Rotterdam'

    kv = SQLiteKeyValueStore(config['FLAT_STORE_PATH'])
    assert kv.keys() == [MIGRATION_FLAG_KEY]

    backups = list_backups(config['BACKUP_DIR'])
    assert len(backups) == 1
    assert backups[0]['reason'] == 'pre_migration'


def test_second_startup_does_not_migrate_again(tmp_path):
    config = app_config(tmp_path)
    FlatStoreRepository(SQLiteKeyValueStore(config['FLAT_STORE_PATH'])).save_area(make_area())

    create_app(config)
    app = create_app(config)

    assert len(app.test_client().get('/api/areas').get_json()) == 1
    assert len(list_backups(config['BACKUP_DIR'])) == 1


def test_flat_backend(tmp_path):
    app = create_app(app_config(tmp_path, STORAGE_BACKEND='flat'))
    assert isinstance(app.extensions['garden_repository'], FlatStoreRepository)

    client = app.test_client()
    rv = client.put('/api/areas/a1', json=to_record(make_area()))
    assert rv.status_code == 200
    assert [a['id'] for a in client.get('/api/areas').get_json()] == ['a1']


def test_unknown_backend_fails_fast(tmp_path):
    with pytest.raises(ValueError):
        create_app(app_config(tmp_path, STORAGE_BACKEND='cloud'))


# ========================================
# Routes
# ========================================

def test_settings_defaults(client):
    rv = client.get('/api/settings')
    assert rv.status_code == 200
    assert rv.get_json() == {
        'location': '',
        'growthZone': '6b',
        'weatherProvider': 'open-meteo',
        'aiProvider': {'kind': 'none'},
        'locale': 'en',
        'lat': None,
        'lng': None,
        'profileId': 'default',
    }


def test_put_settings(client):
    rv = client.put('/api/settings', json={
        'location': 'Amsterdam',
        'aiProvider': {'kind': 'proxy', 'proxyUrl': 'https://ai.example.org', 'token': 't'},
    })
    assert rv.status_code == 200
    settings = client.get('/api/settings').get_json()
    assert settings['location'] == 'Amsterdam'
    assert settings['aiProvider']['kind'] == 'proxy'
    assert settings['growthZone'] == '6b'


def test_put_invalid_settings(client):
    rv = client.put('/api/settings', json={'aiProvider': {'kind': 'byok', 'key': ''}})
    assert rv.status_code == 400


def test_record_lifecycle(client):
    area = to_record(make_area())
    assert client.put('/api/areas/a1', json=area).status_code == 200
    assert client.put('/api/areas/a1', json=area).status_code == 200
    assert client.get('/api/areas').get_json() == [area]

    assert client.delete('/api/areas/a1').status_code == 204
    assert client.get('/api/areas').get_json() == []


def test_delete_unknown_record(client):
    assert client.delete('/api/seedlings/does-not-exist').status_code == 204


def test_events_are_newest_first(client):
    client.put('/api/events/old', json=to_record(make_event('old', days=0)))
    client.put('/api/events/new', json=to_record(make_event('new', days=1)))
    assert [e['id'] for e in client.get('/api/events').get_json()] == ['new', 'old']


def test_invalid_record_is_rejected(client):
    rv = client.put('/api/plants/tomato', json={'id': 'tomato', 'name': ''})
    assert rv.status_code == 400
    assert client.get('/api/plants').get_json() == []


def test_id_mismatch_is_rejected(client):
    rv = client.put('/api/areas/other', json=to_record(make_area('a1')))
    assert rv.status_code == 400


def test_unknown_collection(client):
    assert client.get('/api/gnomes').status_code == 404
