"""Database layer with repository pattern

Database wires one EntityStore to the repositories. It holds no data of
its own; durable state lives in the store.
"""

from typing import Optional

from config import Config, config, get_logger
from database.repositories import GroupRepository, ScoreRepository
from database.store import EntityStore
from database.store_memory import InMemoryEntityStore
from database.store_postgres import PostgresEntityStore

logger = get_logger(__name__).bind(component="database")


class Database:
    """Entity store plus repositories

    Usage:
        db = await Database.create()          # PostgreSQL
        db = Database.in_memory()             # tests, local development
        scores = await db.scores.get_topic_scores("u1", "v1")
        await db.close()
    """

    store: EntityStore

    # Repository attributes
    scores: ScoreRepository
    groups: GroupRepository

    def __init__(self, store: EntityStore):
        """Initialize with a store and repositories

        Use Database.create(), Database.in_memory() or Database.from_config()
        instead of direct instantiation.
        """
        self.store = store

        self.scores = ScoreRepository(store)
        self.groups = GroupRepository(store)

        logger.info("database initialized with repositories", store=type(store).__name__)

    @classmethod
    async def create(
        cls,
        dsn: Optional[str] = None,
        min_size: int = config.POSTGRES_POOL_MIN_SIZE,
        max_size: int = config.POSTGRES_POOL_MAX_SIZE,
        init_schema: bool = True,
    ) -> "Database":
        """Create database backed by PostgreSQL

        Args:
            dsn: PostgreSQL connection string (defaults to config.get_postgres_dsn())
            min_size: Minimum pool size
            max_size: Maximum pool size
            init_schema: Create the entity table if missing

        Example:
            db = await Database.create()
            group = await db.groups.get_group("42")
            await db.close()
        """
        store = await PostgresEntityStore.create(dsn=dsn, min_size=min_size, max_size=max_size)
        if init_schema:
            await store.init_schema()
        return cls(store)

    @classmethod
    def in_memory(cls) -> "Database":
        return cls(InMemoryEntityStore())

    @classmethod
    async def from_config(cls, cfg: Config = config) -> "Database":
        """Build the store selected by COMMONGROUND_STORE"""
        if cfg.STORE == "postgres":
            return await cls.create(
                dsn=cfg.get_postgres_dsn(),
                min_size=cfg.POSTGRES_POOL_MIN_SIZE,
                max_size=cfg.POSTGRES_POOL_MAX_SIZE,
            )
        return cls.in_memory()

    async def close(self) -> None:
        await self.store.close()
        logger.info("database closed")
