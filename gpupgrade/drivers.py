"""Database drivers the topology querier can open connections with."""

from __future__ import annotations

import asyncio
import logging
import sqlite3
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Callable, Coroutine, Protocol, Sequence, TypeVar

import asyncpg

from .dsn import is_uri, parse_dsn
from .errors import ConnectionOpenError, UnsupportedDriverError

LOG = logging.getLogger(__name__)

T = TypeVar("T")


class DriverCursor(Protocol):
    """Result cursor returned by `DriverConnection.execute`."""

    @property
    def columns(self) -> tuple[str, ...]: ...

    def fetchall(self) -> Sequence[tuple[object, ...]]: ...

    def close(self) -> None: ...


class DriverConnection(Protocol):
    """Open connection produced by a driver."""

    def execute(self, sql: str) -> DriverCursor: ...

    def close(self) -> None: ...


class Driver(Protocol):
    """Interface implemented by database drivers."""

    name: str

    def open(self, dsn: str) -> DriverConnection: ...


DriverFactory = Callable[..., Driver]


@dataclass(slots=True)
class BufferedCursor:
    """Cursor over rows that were already fetched from the server."""

    columns: tuple[str, ...]
    rows: tuple[tuple[object, ...], ...]
    closed: bool = False

    def fetchall(self) -> Sequence[tuple[object, ...]]:
        if self.closed:
            raise RuntimeError("cursor is closed")
        return self.rows

    def close(self) -> None:
        self.closed = True
        self.rows = ()


class AsyncpgDriver:
    """Connects to PostgreSQL/Greenplum via asyncpg behind a blocking facade."""

    name = "postgres"

    _OPTION_MAP = {
        "host": "host",
        "hostaddr": "host",
        "port": "port",
        "user": "user",
        "password": "password",
        "dbname": "database",
        "sslmode": "ssl",
        "connect_timeout": "timeout",
    }

    def __init__(self, *, connect_timeout: float | None = 10.0, query_timeout: float | None = 60.0) -> None:
        self._connect_timeout = connect_timeout
        self._query_timeout = query_timeout

    def open(self, dsn: str) -> AsyncpgConnection:
        kwargs = self._connect_kwargs(dsn)
        loop = asyncio.new_event_loop()
        try:
            conn = loop.run_until_complete(asyncpg.connect(**kwargs))
        except BaseException:
            loop.close()
            raise
        return AsyncpgConnection(conn, loop, query_timeout=self._query_timeout)

    def _connect_kwargs(self, dsn: str) -> dict[str, object]:
        kwargs: dict[str, object] = {}
        if is_uri(dsn):
            kwargs["dsn"] = dsn
        else:
            for key, value in parse_dsn(dsn).items():
                target = self._OPTION_MAP.get(key)
                if target is None:
                    raise ConnectionOpenError(f"Unsupported connection option {key!r}")
                if target == "port":
                    try:
                        kwargs[target] = int(value)
                    except ValueError as exc:
                        raise ConnectionOpenError(f"Invalid port {value!r}") from exc
                elif target == "timeout":
                    kwargs[target] = float(value)
                else:
                    kwargs[target] = value
        if self._connect_timeout is not None:
            kwargs.setdefault("timeout", self._connect_timeout)
        return kwargs


class AsyncpgConnection:
    """Blocking wrapper owning one asyncpg connection and its event loop."""

    def __init__(
        self,
        conn: asyncpg.Connection,
        loop: asyncio.AbstractEventLoop,
        *,
        query_timeout: float | None = None,
    ) -> None:
        self._conn = conn
        self._loop = loop
        self._query_timeout = query_timeout

    def execute(self, sql: str) -> BufferedCursor:
        return self._run(self._fetch(sql))

    def close(self) -> None:
        try:
            self._run(self._conn.close())
        finally:
            self._loop.close()

    async def _fetch(self, sql: str) -> BufferedCursor:
        statement = await self._conn.prepare(sql, timeout=self._query_timeout)
        records = await statement.fetch(timeout=self._query_timeout)
        columns = tuple(attribute.name for attribute in statement.get_attributes())
        return BufferedCursor(columns=columns, rows=tuple(tuple(record) for record in records))

    def _run(self, coro: Coroutine[Any, Any, T]) -> T:
        return self._loop.run_until_complete(coro)


class SqliteDriver:
    """File-backed driver for tests; the DSN is the path of an SQLite catalog."""

    name = "sqlite3"

    def __init__(self, *, connect_timeout: float | None = 10.0, query_timeout: float | None = 60.0) -> None:
        self._connect_timeout = connect_timeout
        self._query_timeout = query_timeout

    def open(self, dsn: str) -> SqliteConnection:
        path = Path(dsn)
        if not path.is_file():
            raise ConnectionOpenError(f"SQLite catalog not found: {path}")
        # sqlite3 only has a busy timeout, which bounds how long a statement waits on locks.
        timeout = self._query_timeout if self._query_timeout is not None else 5.0
        conn = sqlite3.connect(f"{path.resolve().as_uri()}?mode=ro", uri=True, timeout=timeout)
        return SqliteConnection(conn)


class SqliteConnection:
    def __init__(self, conn: sqlite3.Connection) -> None:
        self._conn = conn

    def execute(self, sql: str) -> SqliteCursor:
        return SqliteCursor(self._conn.execute(sql))

    def close(self) -> None:
        self._conn.close()


class SqliteCursor:
    def __init__(self, cursor: sqlite3.Cursor) -> None:
        self._cursor = cursor

    @property
    def columns(self) -> tuple[str, ...]:
        description = self._cursor.description or ()
        return tuple(str(column[0]) for column in description)

    def fetchall(self) -> Sequence[tuple[object, ...]]:
        return [tuple(row) for row in self._cursor.fetchall()]

    def close(self) -> None:
        self._cursor.close()


DRIVERS: dict[str, DriverFactory] = {
    "postgres": AsyncpgDriver,
    "postgresql": AsyncpgDriver,
    "sqlite3": SqliteDriver,
}


def make_driver(
    name: str,
    *,
    connect_timeout: float | None = 10.0,
    query_timeout: float | None = 60.0,
) -> Driver:
    """Instantiate the driver registered under ``name``."""

    try:
        factory = DRIVERS[name.lower()]
    except KeyError as exc:
        supported = ", ".join(sorted(DRIVERS))
        raise UnsupportedDriverError(f"Unsupported database type {name!r} (expected one of: {supported})") from exc
    LOG.debug("Using %s driver", name)
    return factory(connect_timeout=connect_timeout, query_timeout=query_timeout)


__all__ = [
    "AsyncpgConnection",
    "AsyncpgDriver",
    "BufferedCursor",
    "DRIVERS",
    "Driver",
    "DriverConnection",
    "DriverCursor",
    "DriverFactory",
    "SqliteDriver",
    "make_driver",
]
