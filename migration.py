"""
migration.py — One-time move of flat-store data into the indexed store.

Run once at startup, before the application reads any data:

1. If the flat store holds the migration flag, do nothing.
2. Read every flat collection with strict-or-drop validation, and resolve
   settings with merge-with-defaults.
3. Write everything through the indexed repository's own save methods.
4. Only when every write succeeded: set the flag, then remove the flat keys.

The flag is the only record of "migration happened". It is set after all
destination writes and before any source key is removed, so an interrupted
run either left the sources untouched (and can be retried, the writes are
upserts by id) or already finished.
"""

import structlog

from flat_store import FlatStoreRepository, load_blob
from models import Area, GardenEvent, Plant, Seedling, Settings
from repository import COLLECTION_KEYS, MIGRATION_FLAG_KEY, SETTINGS_KEY, StorageError
from utils.validators import validate_items, validate_or_default

logger = structlog.get_logger(__name__)

MIGRATION_FLAG_VALUE = '1'


class MigrationError(Exception):
    """A source read or destination write failed; nothing was flagged or deleted."""


def needs_migration(store) -> bool:
    """True until a migration has completed against this flat store."""
    try:
        return store.get_item(MIGRATION_FLAG_KEY) != MIGRATION_FLAG_VALUE
    except StorageError as e:
        logger.error("migration_flag_unreadable", error=str(e))
        return False


def _read_source(store, key: str):
    """Decoded blob, or None when missing. An unreadable medium aborts the run."""
    try:
        return load_blob(store, key)
    except StorageError as e:
        raise MigrationError(f"Failed to read {key!r} from the flat store: {e}") from e


def _read_collection(store, name: str, model):
    return validate_items(model, _read_source(store, COLLECTION_KEYS[name]), name)


async def _write_all(label: str, save, entities) -> None:
    for entity in entities:
        if not await save(entity):
            raise MigrationError(f"Failed to write {label} {entity.id!r}")


async def migrate_flat_to_indexed(store, repo) -> dict:
    """
    Copy all flat-store data into an indexed repository, exactly once.

    Args:
        store: The flat key-value medium holding the legacy keys.
        repo: A ready IndexedStoreRepository (or any AsyncGardenRepository).

    Returns:
        {'status': 'skipped'} when already migrated, otherwise
        {'status': 'migrated', 'areas': n, 'custom_plants': n,
         'seedlings': n, 'events': n}.

    Raises:
        MigrationError: a source read, a destination write or the flag
            write failed. The flag is left unset and every source key is
            left in place.
    """
    if not needs_migration(store):
        return {'status': 'skipped'}

    areas = _read_collection(store, 'areas', Area)
    plants = _read_collection(store, 'custom_plants', Plant)
    seedlings = _read_collection(store, 'seedlings', Seedling)
    events = _read_collection(store, 'events', GardenEvent)
    settings = validate_or_default(Settings, _read_source(store, SETTINGS_KEY))

    await _write_all('area', repo.save_area, areas)
    await _write_all('plant', repo.save_plant, plants)
    await _write_all('seedling', repo.save_seedling, seedlings)
    await _write_all('event', repo.save_event, events)
    if not await repo.save_settings(settings):
        raise MigrationError("Failed to write settings")

    try:
        store.set_item(MIGRATION_FLAG_KEY, MIGRATION_FLAG_VALUE)
    except StorageError as e:
        raise MigrationError(f"Failed to set migration flag: {e}") from e

    if not FlatStoreRepository(store).clear_all():
        # Data is already safe in the destination and the flag is set; the
        # stale keys are simply never read again.
        logger.warning("migration_cleanup_incomplete")

    summary = {
        'status': 'migrated',
        'areas': len(areas),
        'custom_plants': len(plants),
        'seedlings': len(seedlings),
        'events': len(events),
    }
    logger.info("migration_complete", **summary)
    return summary
