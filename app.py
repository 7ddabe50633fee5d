"""
app.py — Flask entry point for the garden planner data service.

Owns the repository lifecycle at startup: resolve paths, open the active
backend, run ready(), migrate legacy flat-store data into the indexed store
(once), then expose the repository through the JSON blueprint.

Run: python app.py -> localhost:5000
"""

import asyncio
import os

import structlog
from flask import Flask

from config import (
    configure_logging,
    get_backup_dir,
    get_db_path,
    get_flat_store_path,
    get_storage_backend,
)
from flat_store import SQLiteKeyValueStore
from migration import MigrationError, migrate_flat_to_indexed, needs_migration
from repository import open_repository
from routes.data import data_bp
from utils.backup import backup_store

logger = structlog.get_logger(__name__)


async def start_indexed_store(repo, flat_store_path, backup_dir):
    """Prepare the indexed store and pull in any legacy flat-store data."""
    await repo.ready()

    if not os.path.exists(flat_store_path):
        return None

    store = SQLiteKeyValueStore(flat_store_path)
    if not needs_migration(store):
        return None

    backup_store(flat_store_path, backup_dir, reason='pre_migration')
    try:
        return await migrate_flat_to_indexed(store, repo)
    except MigrationError as e:
        # Sources are intact and the flag is unset; the next startup retries.
        logger.error("migration_failed", error=str(e))
        return None


def create_app(test_config=None):
    """Create and configure the Flask application."""
    configure_logging()

    app = Flask(__name__)
    app.config.from_mapping(
        DB_PATH=get_db_path(),
        FLAT_STORE_PATH=get_flat_store_path(),
        BACKUP_DIR=get_backup_dir(),
        STORAGE_BACKEND=get_storage_backend(),
    )
    if test_config:
        app.config.update(test_config)

    backend = app.config['STORAGE_BACKEND']
    if backend == 'flat':
        repo = open_repository('flat', app.config['FLAT_STORE_PATH'])
        repo.ready()
    else:
        repo = open_repository(backend, app.config['DB_PATH'])
        asyncio.run(start_indexed_store(
            repo, app.config['FLAT_STORE_PATH'], app.config['BACKUP_DIR']
        ))

    app.extensions['garden_repository'] = repo
    app.register_blueprint(data_bp)
    logger.info("app_started", backend=backend)

    return app


if __name__ == '__main__':
    app = create_app()
    # Debug mode: enabled by default for development (auto-reload on file changes)
    # Set FLASK_DEBUG=0 to disable
    debug = os.environ.get('FLASK_DEBUG', '1') != '0'
    app.run(host='localhost', port=5000, debug=debug)
