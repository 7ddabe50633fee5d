"""
repository.py — The data-access contract for the garden planner.

Every caller talks to one of the two contracts below and never to a storage
medium directly:
- GardenRepository: synchronous, implemented by FlatStoreRepository
- AsyncGardenRepository: coroutine-based, implemented by IndexedStoreRepository

Both have the same methods and the same semantics:
- get_*: validated entities; corrupt records are reported and skipped.
  Events are always returned newest first.
- save_*: upsert by id. Returns True once the write reached storage, False
  when a storage fault was caught and reported.
- delete_*: remove by id; unknown ids are a no-op. Returns True/False as above.
- get_settings: never fails and never returns a partial object.
- ready(): call once before anything else.
- clear_all(): wipe everything. For tests and migration cleanup only.

Nothing here raises for "not found" or "malformed stored data".
"""

from abc import ABC, abstractmethod
from typing import List

# Storage keys shared by the flat store and the migration
COLLECTION_KEYS = {
    'areas': 'areas',
    'custom_plants': 'customPlants',
    'seedlings': 'seedlings',
    'events': 'events',
}
SETTINGS_KEY = 'settings'
MIGRATION_FLAG_KEY = 'migration-flag'

BACKENDS = ('flat', 'indexed')
MEMORY_PATH = ':memory:'


class StorageError(Exception):
    """The underlying storage medium is unavailable or failed an operation."""


class StorageQuotaError(StorageError):
    """A write was refused because the medium is full."""


def upsert(items: List, entity) -> List:
    """Replace the item with the same id in place, or append if there is none."""
    result = list(items)
    for index, item in enumerate(result):
        if item.id == entity.id:
            result[index] = entity
            return result
    result.append(entity)
    return result


def newest_first(events: List) -> List:
    """Sort garden events by date, newest first. Ties keep storage order."""
    return sorted(events, key=lambda event: event.date, reverse=True)


class GardenRepository(ABC):
    """Synchronous repository contract."""

    @abstractmethod
    def ready(self) -> None: ...

    # Areas
    @abstractmethod
    def get_areas(self): ...

    @abstractmethod
    def save_area(self, area) -> bool: ...

    @abstractmethod
    def delete_area(self, area_id: str) -> bool: ...

    # Custom plants
    @abstractmethod
    def get_custom_plants(self): ...

    @abstractmethod
    def save_plant(self, plant) -> bool: ...

    @abstractmethod
    def delete_plant(self, plant_id: str) -> bool: ...

    # Seedlings
    @abstractmethod
    def get_seedlings(self): ...

    @abstractmethod
    def save_seedling(self, seedling) -> bool: ...

    @abstractmethod
    def delete_seedling(self, seedling_id: str) -> bool: ...

    # Events
    @abstractmethod
    def get_events(self): ...

    @abstractmethod
    def save_event(self, event) -> bool: ...

    @abstractmethod
    def delete_event(self, event_id: str) -> bool: ...

    # Settings
    @abstractmethod
    def get_settings(self): ...

    @abstractmethod
    def save_settings(self, settings) -> bool: ...

    @abstractmethod
    def clear_all(self) -> bool: ...


class AsyncGardenRepository(ABC):
    """Asynchronous repository contract. Same methods, awaited."""

    @abstractmethod
    async def ready(self) -> None: ...

    @abstractmethod
    async def get_areas(self): ...

    @abstractmethod
    async def save_area(self, area) -> bool: ...

    @abstractmethod
    async def delete_area(self, area_id: str) -> bool: ...

    @abstractmethod
    async def get_custom_plants(self): ...

    @abstractmethod
    async def save_plant(self, plant) -> bool: ...

    @abstractmethod
    async def delete_plant(self, plant_id: str) -> bool: ...

    @abstractmethod
    async def get_seedlings(self): ...

    @abstractmethod
    async def save_seedling(self, seedling) -> bool: ...

    @abstractmethod
    async def delete_seedling(self, seedling_id: str) -> bool: ...

    @abstractmethod
    async def get_events(self): ...

    @abstractmethod
    async def save_event(self, event) -> bool: ...

    @abstractmethod
    async def delete_event(self, event_id: str) -> bool: ...

    @abstractmethod
    async def get_settings(self): ...

    @abstractmethod
    async def save_settings(self, settings) -> bool: ...

    @abstractmethod
    async def clear_all(self) -> bool: ...


def open_repository(backend: str, path: str):
    """
    Create a fresh repository handle for the given backend.

    The caller owns the handle: call ready() (awaited for 'indexed') before
    use. No instance is cached here.

    Args:
        backend: 'flat' or 'indexed'.
        path: SQLite file backing the store. For 'flat', ':memory:' keeps
            everything in process memory instead.
    """
    if backend == 'flat':
        from flat_store import FlatStoreRepository, MemoryKeyValueStore, SQLiteKeyValueStore
        if path == MEMORY_PATH:
            return FlatStoreRepository(MemoryKeyValueStore())
        return FlatStoreRepository(SQLiteKeyValueStore(path))
    if backend == 'indexed':
        from indexed_store import IndexedStoreRepository
        return IndexedStoreRepository(path)
    raise ValueError(f"Unknown storage backend {backend!r}, expected one of {BACKENDS}")
