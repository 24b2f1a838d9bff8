"""In-memory entity store for tests and local development

Same contract as the PostgreSQL store:
- commits are serialized by one asyncio.Lock
- every entity carries a version used for optimistic conflict detection
- incomplete keys get ids from a per-store counter at commit

State lives on the store instance; nothing is shared at module level.
"""

import asyncio
import copy
from typing import Any, Dict, List, Optional

from config import get_logger
from database.store import (
    BaseEntityStore,
    Delete,
    Entity,
    EntityKey,
    Insert,
    StoreTransaction,
    Write,
    matches_filters,
)
from exceptions import DataIntegrityError, EntityNotFoundError, TransactionConflictError

logger = get_logger(__name__).bind(component="memory_store")


def _copy_entity(entity: Optional[Entity]) -> Optional[Entity]:
    if entity is None:
        return None
    return Entity(key=entity.key, data=copy.deepcopy(entity.data), version=entity.version)


class InMemoryTransaction(StoreTransaction):
    def __init__(self, store: "InMemoryEntityStore"):
        super().__init__()
        self._store = store

    async def _read(self, key: EntityKey) -> Optional[Entity]:
        return await self._store.get(key)

    async def _read_many(
        self,
        kind: str,
        ancestor: Optional[EntityKey],
        filters: Optional[Dict[str, Any]],
    ) -> List[Entity]:
        return await self._store.query(kind, ancestor, filters)

    async def _apply_commit(self, writes: List[Write], read_versions: Dict[str, int]) -> List[EntityKey]:
        return await self._store._commit(writes, read_versions)


class InMemoryEntityStore(BaseEntityStore):
    """Dict-backed store keyed by the entity path string"""

    def __init__(self):
        self._entities: Dict[str, Entity] = {}
        self._lock = asyncio.Lock()
        self._next_id = 1
        # Monotonic write clock; entity versions never repeat, even across delete and re-insert
        self._clock = 0

    async def begin(self) -> StoreTransaction:
        return InMemoryTransaction(self)

    async def get(self, key: EntityKey) -> Optional[Entity]:
        # Yield like a network read would
        await asyncio.sleep(0)
        return _copy_entity(self._entities.get(str(key)))

    async def query(
        self,
        kind: str,
        ancestor: Optional[EntityKey] = None,
        filters: Optional[Dict[str, Any]] = None,
    ) -> List[Entity]:
        await asyncio.sleep(0)
        prefix = f"{ancestor}/" if ancestor is not None else None
        results = [
            _copy_entity(entity)
            for path, entity in self._entities.items()
            if entity.key.kind == kind
            and (prefix is None or path.startswith(prefix))
            and matches_filters(entity.data, filters)
        ]
        return sorted(results, key=lambda e: str(e.key))

    def __len__(self) -> int:
        return len(self._entities)

    async def _commit(self, writes: List[Write], read_versions: Dict[str, int]) -> List[EntityKey]:
        async with self._lock:
            for path, seen_version in read_versions.items():
                current = self._entities.get(path)
                current_version = current.version if current else 0
                if current_version != seen_version:
                    raise TransactionConflictError("Entity modified by a concurrent transaction", key=path)

            # Resolve keys and check preconditions before touching state
            final_keys: List[EntityKey] = []
            staged_paths = set()
            deleted_paths = set()
            for write in writes:
                key = write.key
                if not key.is_complete:
                    key = key.with_name(str(self._next_id))
                    self._next_id += 1
                path = str(key)

                if isinstance(write, Insert):
                    exists = (path in self._entities and path not in deleted_paths) or path in staged_paths
                    if exists:
                        raise DataIntegrityError("Entity already exists", key=path, constraint="insert_absent")

                if not isinstance(write, Delete) and write.require_parent and key.parent is not None:
                    parent_path = str(key.parent)
                    parent_exists = (
                        parent_path in staged_paths
                        or (parent_path in self._entities and parent_path not in deleted_paths)
                    )
                    if not parent_exists:
                        raise EntityNotFoundError("Parent entity does not exist", key=parent_path)

                if isinstance(write, Delete):
                    staged_paths.discard(path)
                    deleted_paths.add(path)
                else:
                    staged_paths.add(path)
                    deleted_paths.discard(path)
                final_keys.append(key)

            for write, key in zip(writes, final_keys):
                path = str(key)
                if isinstance(write, Delete):
                    self._entities.pop(path, None)
                    continue
                self._clock += 1
                self._entities[path] = Entity(key=key, data=copy.deepcopy(write.data), version=self._clock)

            logger.debug("applied commit", writes=len(final_keys), entities=len(self._entities))
            return final_keys
