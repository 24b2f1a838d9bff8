"""Transactional entity store - keys, writes and the transaction contract

All durable state flows through a StoreTransaction:

    txn = await store.begin()
    entity = await txn.get(key)          # reads are tracked for conflict checks
    txn.stage(Upsert(key, data))         # writes are buffered, nothing is visible yet
    await txn.commit()                   # all staged writes become visible at once

or, with automatic commit/rollback:

    async with store.transaction() as txn:
        txn.stage(Upsert(key, data))

Preconditions verified at commit (any failure rolls the whole unit back):
- entities read through the transaction are unchanged since the read
- Insert targets do not exist yet
- writes flagged require_parent have an existing (or co-staged) parent

Keys are ancestor paths such as User/u1/Response/v1:q1. A key whose last
element has no name is incomplete; the store assigns a numeric id at commit.
"""

from contextlib import asynccontextmanager
from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Protocol, Tuple, Union

from config import get_logger
from exceptions import DataIntegrityError

logger = get_logger(__name__).bind(component="store")

PATH_SEPARATOR = "/"


@dataclass(frozen=True)
class EntityKey:
    """Ancestor-path key: ((kind, name), (kind, name), ...)"""

    path: Tuple[Tuple[str, Optional[str]], ...]

    def __post_init__(self):
        if not self.path:
            raise ValueError("EntityKey path cannot be empty")
        for i, (kind, name) in enumerate(self.path):
            if not kind or PATH_SEPARATOR in kind:
                raise ValueError(f"Invalid kind in key: {kind!r}")
            if name is None and i < len(self.path) - 1:
                raise ValueError("Only the last path element may be incomplete")
            if name is not None and (not name or PATH_SEPARATOR in name):
                raise ValueError(f"Invalid name in key: {name!r}")

    @classmethod
    def of(cls, *parts: Any) -> "EntityKey":
        """Build a key from alternating kind/name parts.

        An odd number of parts yields an incomplete key:
            EntityKey.of("User", "u1", "Response", "v1:q1")
            EntityKey.of("Group")   # id assigned by the store
        """
        names = list(parts)
        if len(names) % 2:
            names.append(None)
        path = tuple(
            (str(names[i]), None if names[i + 1] is None else str(names[i + 1]))
            for i in range(0, len(names), 2)
        )
        return cls(path)

    @classmethod
    def from_path(cls, path: str) -> "EntityKey":
        return cls.of(*path.split(PATH_SEPARATOR))

    @property
    def kind(self) -> str:
        return self.path[-1][0]

    @property
    def name(self) -> Optional[str]:
        return self.path[-1][1]

    @property
    def is_complete(self) -> bool:
        return self.name is not None

    @property
    def parent(self) -> Optional["EntityKey"]:
        if len(self.path) == 1:
            return None
        return EntityKey(self.path[:-1])

    def with_name(self, name: str) -> "EntityKey":
        return EntityKey(self.path[:-1] + ((self.kind, name),))

    def child(self, kind: str, name: Optional[str] = None) -> "EntityKey":
        return EntityKey(self.path + ((kind, name),))

    def __str__(self) -> str:
        parts = []
        for kind, name in self.path:
            parts.append(kind)
            if name is not None:
                parts.append(name)
        return PATH_SEPARATOR.join(parts)


@dataclass
class Entity:
    """Stored entity. version is bumped on every write (0 = never written)."""

    key: EntityKey
    data: Dict[str, Any]
    version: int = 1


@dataclass(frozen=True)
class Upsert:
    """Insert-or-replace keyed by explicit identity"""
    key: EntityKey
    data: Dict[str, Any]
    require_parent: bool = False


@dataclass(frozen=True)
class Insert:
    """Insert that fails if the key already exists"""
    key: EntityKey
    data: Dict[str, Any]
    require_parent: bool = False


@dataclass(frozen=True)
class Delete:
    key: EntityKey


Write = Union[Upsert, Insert, Delete]


def matches_filters(data: Dict[str, Any], filters: Optional[Dict[str, Any]]) -> bool:
    """Equality filter on top-level data fields."""
    if not filters:
        return True
    return all(data.get(name) == value for name, value in filters.items())


class StoreTransaction:
    """One atomic unit of work.

    Subclasses implement the storage-specific reads and _apply_commit /
    _apply_rollback. This base class owns staging, read tracking and the
    commit/rollback state machine.
    """

    def __init__(self):
        self._writes: List[Write] = []
        # str(key) -> version observed when read (0 = absent)
        self._read_versions: Dict[str, int] = {}
        self._closed = False
        self.committed_keys: List[EntityKey] = []

    @property
    def closed(self) -> bool:
        return self._closed

    def _ensure_open(self) -> None:
        if self._closed:
            raise DataIntegrityError("Transaction already closed", constraint="transaction_open")

    def _track_read(self, key: EntityKey, entity: Optional[Entity]) -> None:
        self._read_versions.setdefault(str(key), entity.version if entity else 0)

    def stage(self, *writes: Write) -> None:
        """Buffer writes; nothing is visible until commit()."""
        self._ensure_open()
        for write in writes:
            key = write.key
            parent = key.parent
            if parent is not None and not parent.is_complete:
                raise ValueError(f"Cannot stage write under incomplete parent: {key}")
            if isinstance(write, Delete) and not key.is_complete:
                raise ValueError("Cannot delete an incomplete key")
            self._writes.append(write)

    async def get(self, key: EntityKey) -> Optional[Entity]:
        self._ensure_open()
        entity = await self._read(key)
        self._track_read(key, entity)
        return entity

    async def query(
        self,
        kind: str,
        ancestor: Optional[EntityKey] = None,
        filters: Optional[Dict[str, Any]] = None,
    ) -> List[Entity]:
        self._ensure_open()
        entities = await self._read_many(kind, ancestor, filters)
        for entity in entities:
            self._track_read(entity.key, entity)
        return entities

    async def commit(self) -> List[EntityKey]:
        """Apply all staged writes atomically.

        Returns:
            Final keys of the staged writes, in staging order (incomplete
            keys replaced by their store-assigned ids)

        Raises:
            TransactionConflictError: an entity read here changed concurrently
            DataIntegrityError: an Insert target already exists
            EntityNotFoundError: a require_parent write has no parent
        """
        self._ensure_open()
        try:
            keys = await self._apply_commit(list(self._writes), dict(self._read_versions))
        except Exception as e:
            await self._safe_rollback()
            logger.warning("transaction rolled back", error=str(e), error_type=type(e).__name__)
            raise
        self._closed = True
        self.committed_keys = keys
        logger.debug("transaction committed", writes=len(keys))
        return keys

    async def rollback(self) -> None:
        """Discard staged writes. Safe to call more than once."""
        if self._closed:
            return
        await self._safe_rollback()

    async def _safe_rollback(self) -> None:
        self._closed = True
        self._writes = []
        await self._apply_rollback()

    # Storage-specific hooks

    async def _read(self, key: EntityKey) -> Optional[Entity]:
        raise NotImplementedError

    async def _read_many(
        self,
        kind: str,
        ancestor: Optional[EntityKey],
        filters: Optional[Dict[str, Any]],
    ) -> List[Entity]:
        raise NotImplementedError

    async def _apply_commit(self, writes: List[Write], read_versions: Dict[str, int]) -> List[EntityKey]:
        raise NotImplementedError

    async def _apply_rollback(self) -> None:
        return None


class EntityStore(Protocol):
    """Store interface shared by the PostgreSQL and in-memory implementations"""

    async def begin(self) -> StoreTransaction: ...

    def transaction(self): ...

    async def get(self, key: EntityKey) -> Optional[Entity]: ...

    async def query(
        self,
        kind: str,
        ancestor: Optional[EntityKey] = None,
        filters: Optional[Dict[str, Any]] = None,
    ) -> List[Entity]: ...

    async def close(self) -> None: ...


class BaseEntityStore:
    """Shared transaction() context manager on top of begin()"""

    async def begin(self) -> StoreTransaction:
        raise NotImplementedError

    @asynccontextmanager
    async def transaction(self):
        """Context manager for explicit transactions

        Usage:
            async with store.transaction() as txn:
                member = await txn.get(member_key)
                txn.stage(Insert(member_key, data))
                # Commits on successful exit, rolls back on exception

        A transaction the block already committed or rolled back is left alone.
        """
        txn = await self.begin()
        try:
            yield txn
        except BaseException:
            await txn.rollback()
            raise
        if not txn.closed:
            await txn.commit()

    async def close(self) -> None:
        return None

