"""
Connections to a tenant's import database.

Import data for a tenant lives either in its own SQLite file (aiosqlite) or
in its own PostgreSQL database (asyncpg). Store code writes queries once with
``?`` placeholders and opens a short-lived connection per operation from the
``TenantDatabase`` its scope carries; there is no module-level connection
state.
"""

from __future__ import annotations
import re
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any, Callable, Dict, List, Optional, Sequence
import aiosqlite
import asyncpg


@dataclass(frozen=True)
class TenantDatabase:
    """Location of one tenant's import tables."""
    backend: str = "sqlite"  # "sqlite" or "postgresql"

    sqlite_path: str = ""

    postgres_host: str = "localhost"
    postgres_port: int = 5432
    postgres_database: str = "importer"
    postgres_user: str = "importer"
    postgres_password: str = ""

    def connect(self) -> "Connection":
        return open_connection(self)


class Connection(ABC):
    """A connection used as ``async with db.connect() as conn: ...``."""

    async def __aenter__(self) -> "Connection":
        await self.open()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        await self.close()

    @abstractmethod
    async def open(self) -> None: ...

    @abstractmethod
    async def close(self) -> None: ...

    @abstractmethod
    async def execute(self, query: str, *args) -> Any: ...

    @abstractmethod
    async def fetchone(self, query: str, *args) -> Optional[Sequence]: ...

    @abstractmethod
    async def fetchall(self, query: str, *args) -> List[Sequence]:
        """All rows; also the way to run ``... RETURNING`` writes."""

    async def commit(self) -> None:
        """Make pending writes durable; a no-op on autocommitting backends."""


class SQLiteConnection(Connection):
    PRAGMAS = ("journal_mode=WAL", "synchronous=NORMAL", "busy_timeout=5000")

    def __init__(self, path: str):
        self.path = path
        self._db: Optional[aiosqlite.Connection] = None

    async def open(self):
        self._db = await aiosqlite.connect(self.path)
        for pragma in self.PRAGMAS:
            await self._db.execute(f"PRAGMA {pragma}")

    @property
    def db(self) -> aiosqlite.Connection:
        if self._db is None:
            raise RuntimeError("SQLite connection is not open")
        return self._db

    async def execute(self, query: str, *args) -> aiosqlite.Cursor:
        return await self.db.execute(query, args)

    async def fetchone(self, query: str, *args) -> Optional[Sequence]:
        async with self.db.execute(query, args) as cursor:
            return await cursor.fetchone()

    async def fetchall(self, query: str, *args) -> List[Sequence]:
        async with self.db.execute(query, args) as cursor:
            return list(await cursor.fetchall())

    async def commit(self) -> None:
        if self._db is not None:
            await self._db.commit()

    async def close(self) -> None:
        if self._db is not None:
            await self._db.close()
            self._db = None


_QMARK = re.compile(r"\?")


def to_numbered_params(query: str) -> str:
    """Rewrite ``?`` placeholders as asyncpg's ``$1, $2, ...``."""
    counter = iter(range(1, 10_000))
    return _QMARK.sub(lambda _m: f"${next(counter)}", query)


class PostgresConnection(Connection):
    """asyncpg connection; every statement autocommits."""

    def __init__(self, target: TenantDatabase):
        self.target = target
        self._db: Optional[asyncpg.Connection] = None

    async def open(self):
        self._db = await asyncpg.connect(
            host=self.target.postgres_host,
            port=self.target.postgres_port,
            database=self.target.postgres_database,
            user=self.target.postgres_user,
            password=self.target.postgres_password,
        )

    @property
    def db(self) -> asyncpg.Connection:
        if self._db is None:
            raise RuntimeError("PostgreSQL connection is not open")
        return self._db

    async def execute(self, query: str, *args) -> str:
        return await self.db.execute(to_numbered_params(query), *args)

    async def fetchone(self, query: str, *args) -> Optional[Sequence]:
        return await self.db.fetchrow(to_numbered_params(query), *args)

    async def fetchall(self, query: str, *args) -> List[Sequence]:
        return await self.db.fetch(to_numbered_params(query), *args)

    async def close(self) -> None:
        if self._db is not None:
            await self._db.close()
            self._db = None


_BACKENDS: Dict[str, Callable[[TenantDatabase], Connection]] = {
    "sqlite": lambda target: SQLiteConnection(target.sqlite_path),
    "postgresql": PostgresConnection,
}


def open_connection(target: TenantDatabase) -> Connection:
    """Unopened connection for the target's backend; enter it with ``async with``."""
    try:
        factory = _BACKENDS[target.backend]
    except KeyError:
        raise ValueError(f"Unsupported database backend: {target.backend}") from None
    return factory(target)
