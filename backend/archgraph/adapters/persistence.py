"""
Persistence adapters for database nodes.

The runtime only needs three things from a relational backend: open a
connection, check that declared tables exist, and run a parameterized
insert. `SQLAlchemyPersistenceAdapter` provides them over an async engine;
`PersistencePool` hands out one adapter per connection string for the
lifetime of whoever owns the pool.
"""

import logging
from abc import ABC, abstractmethod
from typing import Any, Callable, Dict, List, Optional

from sqlalchemy import Column, MetaData, Table, inspect, insert, text
from sqlalchemy.engine import make_url
from sqlalchemy.ext.asyncio import AsyncEngine, create_async_engine

logger = logging.getLogger(__name__)

# Sync URL schemes mapped to the async driver used for them
ASYNC_DRIVERS = {
    "postgres": "postgresql+asyncpg",
    "postgresql": "postgresql+asyncpg",
    "sqlite": "sqlite+aiosqlite",
}


def to_async_url(connection_string: str) -> str:
    url = make_url(connection_string)
    driver = ASYNC_DRIVERS.get(url.drivername)
    if driver is None:
        return connection_string
    return url.set(drivername=driver).render_as_string(hide_password=False)


class PersistenceAdapter(ABC):
    @abstractmethod
    async def connect(self) -> None:
        """Open (or verify) the connection; raise on failure."""

    @abstractmethod
    async def table_exists(self, schemas: List[str], table: str) -> bool:
        """True if `table` exists in any of the candidate schemas."""

    @abstractmethod
    async def insert_row(self, schema: str, table: str, values: Dict[str, Any]) -> None:
        """Insert one row; identifiers are already validated, values are bound."""

    async def close(self) -> None:
        pass


class SQLAlchemyPersistenceAdapter(PersistenceAdapter):
    def __init__(self, connection_string: str):
        self.connection_string = connection_string
        self._engine: Optional[AsyncEngine] = None

    @property
    def engine(self) -> AsyncEngine:
        if self._engine is None:
            self._engine = create_async_engine(to_async_url(self.connection_string))
        return self._engine

    def _schema(self, schema: str) -> Optional[str]:
        # SQLite has a single unnamed schema
        if self.engine.dialect.name == "sqlite":
            return None
        return schema

    async def connect(self) -> None:
        async with self.engine.connect() as conn:
            await conn.execute(text("SELECT 1"))

    async def table_exists(self, schemas: List[str], table: str) -> bool:
        async with self.engine.connect() as conn:
            for schema in schemas:
                exists = await conn.run_sync(
                    lambda sync_conn, schema=self._schema(schema): inspect(sync_conn).has_table(
                        table, schema=schema
                    )
                )
                if exists:
                    return True
        return False

    async def insert_row(self, schema: str, table: str, values: Dict[str, Any]) -> None:
        target = Table(
            table,
            MetaData(),
            *(Column(name) for name in values),
            schema=self._schema(schema),
        )
        async with self.engine.begin() as conn:
            await conn.execute(insert(target).values(**values))

    async def close(self) -> None:
        if self._engine is not None:
            await self._engine.dispose()
            self._engine = None


AdapterFactory = Callable[[str], PersistenceAdapter]


class PersistencePool:
    """
    Connection-string keyed cache of persistence adapters.

    Entries are created on first use and never evicted; callers share
    whatever adapter is already registered for a connection string.
    """

    def __init__(self, factory: AdapterFactory = SQLAlchemyPersistenceAdapter):
        self._factory = factory
        self._adapters: Dict[str, PersistenceAdapter] = {}

    def get(self, connection_string: str) -> PersistenceAdapter:
        adapter = self._adapters.get(connection_string)
        if adapter is None:
            adapter = self._factory(connection_string)
            self._adapters[connection_string] = adapter
            logger.info("Created persistence adapter (%d pooled)", len(self._adapters))
        return adapter

    def __len__(self) -> int:
        return len(self._adapters)

    async def close(self) -> None:
        for adapter in self._adapters.values():
            await adapter.close()
        self._adapters.clear()
