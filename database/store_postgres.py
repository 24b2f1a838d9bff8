"""PostgreSQL entity store using asyncpg connection pooling

Every entity lives in one JSONB table keyed by its ancestor path:

    cg_entities(path PK, kind, parent_path, data JSONB, version, updated_at)

Transactions run at SERIALIZABLE isolation on one pooled connection.
Staged writes are buffered in Python and applied just before COMMIT, so a
failed precondition never leaves a partial write behind.

Connection Patterns
-------------------
    store.get() / store.query()
        Plain pooled reads, no transaction.

    store.begin() / store.transaction()
        Writes and reads that establish write preconditions.
"""

import json
from pathlib import Path
from typing import Any, Dict, List, Optional

import asyncpg

from config import config, get_logger
from database.store import (
    BaseEntityStore,
    Delete,
    Entity,
    EntityKey,
    Insert,
    StoreTransaction,
    Write,
)
from exceptions import (
    DatabaseConnectionError,
    DatabaseError,
    DataIntegrityError,
    EntityNotFoundError,
    TransactionConflictError,
)

logger = get_logger(__name__).bind(component="postgres_store")

_CONFLICT_ERRORS = (asyncpg.SerializationError, asyncpg.DeadlockDetectedError)

_SELECT_COLUMNS = "path, data, version"


def _jsonb_encoder(obj):
    """JSONB encoder with Pydantic model support (model_dump())"""
    def default(o):
        if hasattr(o, 'model_dump'):
            return o.model_dump(mode="json")
        raise TypeError(f"Object of type {type(o).__name__} is not JSON serializable")

    return json.dumps(obj, default=default)


def _row_to_entity(row: asyncpg.Record) -> Entity:
    return Entity(key=EntityKey.from_path(row["path"]), data=row["data"], version=row["version"])


def _like_prefix(key: EntityKey) -> str:
    """LIKE pattern matching every path below key, with wildcards in the key escaped"""
    escaped = str(key).replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")
    return f"{escaped}/%"


def _build_query(kind: str, ancestor: Optional[EntityKey], filters: Optional[Dict[str, Any]]):
    """Build the SELECT for kind/ancestor/filters. Filters use JSONB containment."""
    clauses = ["kind = $1"]
    params: List[Any] = [kind]

    if ancestor is not None:
        params.append(_like_prefix(ancestor))
        clauses.append(f"path LIKE ${len(params)} ESCAPE '\\'")

    if filters:
        params.append(filters)
        clauses.append(f"data @> ${len(params)}::jsonb")

    query = f"SELECT {_SELECT_COLUMNS} FROM cg_entities WHERE {' AND '.join(clauses)} ORDER BY path"
    return query, params


class PostgresTransaction(StoreTransaction):
    """Transaction bound to one pooled connection until commit/rollback"""

    def __init__(self, pool: asyncpg.Pool, conn: asyncpg.Connection, tr):
        super().__init__()
        self._pool = pool
        self._conn = conn
        self._tr = tr

    async def _read(self, key: EntityKey) -> Optional[Entity]:
        try:
            row = await self._conn.fetchrow(
                f"SELECT {_SELECT_COLUMNS} FROM cg_entities WHERE path = $1",
                str(key),
            )
        except _CONFLICT_ERRORS as e:
            raise TransactionConflictError(f"Read conflict: {e}", key=str(key))
        return _row_to_entity(row) if row else None

    async def _read_many(
        self,
        kind: str,
        ancestor: Optional[EntityKey],
        filters: Optional[Dict[str, Any]],
    ) -> List[Entity]:
        query, params = _build_query(kind, ancestor, filters)
        try:
            rows = await self._conn.fetch(query, *params)
        except _CONFLICT_ERRORS as e:
            raise TransactionConflictError(f"Read conflict: {e}")
        return [_row_to_entity(row) for row in rows]

    async def _apply_commit(self, writes: List[Write], read_versions: Dict[str, int]) -> List[EntityKey]:
        conn = self._conn
        try:
            if read_versions:
                rows = await conn.fetch(
                    "SELECT path, version FROM cg_entities WHERE path = ANY($1::text[]) FOR UPDATE",
                    list(read_versions.keys()),
                )
                current = {row["path"]: row["version"] for row in rows}
                for path, seen_version in read_versions.items():
                    if current.get(path, 0) != seen_version:
                        raise TransactionConflictError(
                            "Entity modified by a concurrent transaction", key=path
                        )

            final_keys: List[EntityKey] = []
            for write in writes:
                key = write.key
                if not key.is_complete:
                    new_id = await conn.fetchval("SELECT nextval('cg_entity_ids')")
                    key = key.with_name(str(new_id))
                final_keys.append(key)
                await self._apply_write(conn, write, key)

            await self._tr.commit()
        except _CONFLICT_ERRORS as e:
            raise TransactionConflictError(f"Serialization failure: {e}")
        except asyncpg.PostgresError as e:
            raise DatabaseError(f"Commit failed: {e}")

        # Failure paths release through _apply_rollback
        await self._release()
        return final_keys

    async def _apply_write(self, conn: asyncpg.Connection, write: Write, key: EntityKey) -> None:
        path = str(key)

        if isinstance(write, Delete):
            await conn.execute("DELETE FROM cg_entities WHERE path = $1", path)
            return

        parent = key.parent
        if write.require_parent and parent is not None:
            exists = await conn.fetchval("SELECT 1 FROM cg_entities WHERE path = $1", str(parent))
            if not exists:
                raise EntityNotFoundError("Parent entity does not exist", key=str(parent))

        parent_path = str(parent) if parent is not None else None

        if isinstance(write, Insert):
            inserted = await conn.fetchval(
                """
                INSERT INTO cg_entities (path, kind, parent_path, data, version, updated_at)
                VALUES ($1, $2, $3, $4, nextval('cg_entity_versions'), NOW())
                ON CONFLICT (path) DO NOTHING
                RETURNING path
                """,
                path,
                key.kind,
                parent_path,
                write.data,
            )
            if inserted is None:
                raise DataIntegrityError("Entity already exists", key=path, constraint="insert_absent")
            return

        await conn.execute(
            """
            INSERT INTO cg_entities (path, kind, parent_path, data, version, updated_at)
            VALUES ($1, $2, $3, $4, nextval('cg_entity_versions'), NOW())
            ON CONFLICT (path) DO UPDATE SET
                data = EXCLUDED.data,
                version = EXCLUDED.version,
                updated_at = NOW()
            """,
            path,
            key.kind,
            parent_path,
            write.data,
        )

    async def _apply_rollback(self) -> None:
        if self._conn is None:
            return
        try:
            await self._tr.rollback()
        except asyncpg.InterfaceError as e:
            # Transaction already finished (failed COMMIT)
            logger.debug("rollback skipped", reason=str(e))
        finally:
            await self._release()

    async def _release(self) -> None:
        if self._conn is not None:
            conn, self._conn = self._conn, None
            await self._pool.release(conn)


class PostgresEntityStore(BaseEntityStore):
    """Async PostgreSQL store

    Usage:
        store = await PostgresEntityStore.create()
        await store.init_schema()
        async with store.transaction() as txn:
            txn.stage(Upsert(key, data))
        await store.close()
    """

    def __init__(self, pool: asyncpg.Pool):
        self.pool = pool

    @classmethod
    async def create(
        cls,
        dsn: Optional[str] = None,
        min_size: int = config.POSTGRES_POOL_MIN_SIZE,
        max_size: int = config.POSTGRES_POOL_MAX_SIZE,
    ) -> "PostgresEntityStore":
        """Create store with connection pool

        Args:
            dsn: PostgreSQL connection string (defaults to config.get_postgres_dsn())
            min_size: Minimum pool size
            max_size: Maximum pool size
        """
        if dsn is None:
            dsn = config.get_postgres_dsn()

        async def init_connection(conn):
            """Initialize connection with JSONB codec for automatic serialization"""
            await conn.set_type_codec(
                'jsonb',
                encoder=_jsonb_encoder,
                decoder=json.loads,
                schema='pg_catalog'
            )

        try:
            pool = await asyncpg.create_pool(
                dsn,
                min_size=min_size,
                max_size=max_size,
                command_timeout=60,
                init=init_connection,
            )
            logger.info("connection pool created", min_size=min_size, max_size=max_size)
            return cls(pool)
        except (asyncpg.PostgresError, OSError, ConnectionError) as e:
            logger.error("failed to create connection pool", error=str(e))
            raise DatabaseConnectionError(f"Failed to connect to PostgreSQL: {e}")

    async def init_schema(self) -> None:
        """Create the entity table, indexes and sequences (idempotent)"""
        schema_path = Path(__file__).parent / "schema_postgres.sql"
        if not schema_path.exists():
            raise FileNotFoundError(f"Schema file not found: {schema_path}")

        async with self.pool.acquire() as conn:
            await conn.execute(schema_path.read_text())

        logger.info("schema initialized")

    async def begin(self) -> StoreTransaction:
        conn = await self.pool.acquire()
        try:
            tr = conn.transaction(isolation="serializable")
            await tr.start()
        except Exception:
            await self.pool.release(conn)
            raise
        return PostgresTransaction(self.pool, conn, tr)

    async def get(self, key: EntityKey) -> Optional[Entity]:
        async with self.pool.acquire() as conn:
            row = await conn.fetchrow(
                f"SELECT {_SELECT_COLUMNS} FROM cg_entities WHERE path = $1",
                str(key),
            )
        return _row_to_entity(row) if row else None

    async def query(
        self,
        kind: str,
        ancestor: Optional[EntityKey] = None,
        filters: Optional[Dict[str, Any]] = None,
    ) -> List[Entity]:
        query, params = _build_query(kind, ancestor, filters)
        async with self.pool.acquire() as conn:
            rows = await conn.fetch(query, *params)
        return [_row_to_entity(row) for row in rows]

    async def close(self) -> None:
        await self.pool.close()
        logger.info("connection pool closed")
