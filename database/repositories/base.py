"""Base repository on top of the transactional entity store

All repositories inherit from BaseRepository and share:
- One EntityStore (no store per-instance)
- Optional participation in a caller's transaction
- Logging infrastructure

Return Type Conventions
-----------------------
    get_X(id) -> Optional[T]
        Single entity lookup by key.
        Returns None if entity not found.

    get_Xs(...) -> List[T]
        Multiple entity retrieval with filters.
        Returns empty list [] if none match.

    X_write(model) -> Write
        Builds a write for the caller to stage; nothing is persisted.

Transaction Patterns
--------------------
    txn=None
        Plain read through the store (no preconditions recorded).

    txn=<StoreTransaction>
        Read inside the caller's transaction; the read becomes a commit
        precondition (optimistic concurrency).
"""

from contextlib import asynccontextmanager
from typing import Any, Dict, List, Optional

from config import get_logger
from database.store import Entity, EntityKey, EntityStore, StoreTransaction

logger = get_logger(__name__).bind(component="repository")


class BaseRepository:
    """Base class for store-backed repositories

    Design Principles:
    - Store is passed in, not created
    - Transactions are explicit (async with self.transaction())
    - Repositories never commit a caller's transaction
    """

    def __init__(self, store: EntityStore):
        self.store = store

    async def _get(self, key: EntityKey, txn: Optional[StoreTransaction] = None) -> Optional[Entity]:
        if txn is not None:
            return await txn.get(key)
        return await self.store.get(key)

    async def _query(
        self,
        kind: str,
        ancestor: Optional[EntityKey] = None,
        filters: Optional[Dict[str, Any]] = None,
        txn: Optional[StoreTransaction] = None,
    ) -> List[Entity]:
        if txn is not None:
            return await txn.query(kind, ancestor, filters)
        return await self.store.query(kind, ancestor, filters)

    @asynccontextmanager
    async def transaction(self):
        """Context manager for explicit transactions

        Usage:
            async with repo.transaction() as txn:
                group = await repo.get_group(group_id, txn=txn)
                txn.stage(repo.member_write(member))
                # Commits on successful exit, rolls back on exception
        """
        async with self.store.transaction() as txn:
            yield txn

    @asynccontextmanager
    async def _ensure_txn(self, txn: Optional[StoreTransaction] = None):
        """Use provided transaction or open a new one.

        Allows methods to participate in caller's transaction when txn is passed.
        """
        if txn is not None:
            yield txn
        else:
            async with self.transaction() as t:
                yield t
