"""Segment topology introspection against the master node."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Iterator, Mapping

from .drivers import Driver, DriverConnection, DriverCursor
from .errors import CheckError, ConnectionOpenError, QueryExecutionError

LOG = logging.getLogger(__name__)

TOPOLOGY_QUERY = "select * from gp_segment_configuration, pg_filespace_entry where fsedbid = dbid"


@dataclass(frozen=True, slots=True)
class TopologySnapshot:
    """Rows returned by the topology query, in server order."""

    columns: tuple[str, ...]
    rows: tuple[tuple[object, ...], ...]

    def records(self) -> Iterator[Mapping[str, object]]:
        for row in self.rows:
            yield dict(zip(self.columns, row))

    def __len__(self) -> int:
        return len(self.rows)


class TopologyQuerier:
    """Runs the topology query and releases the connection and cursor on every path."""

    def __init__(self, driver: Driver, *, query: str = TOPOLOGY_QUERY) -> None:
        self._driver = driver
        self._query = query

    def query(self, dsn: str) -> TopologySnapshot:
        conn = self._open(dsn)
        try:
            cursor = self._execute(conn)
            try:
                columns = tuple(cursor.columns)
                rows = tuple(tuple(row) for row in cursor.fetchall())
            except Exception as exc:
                raise QueryExecutionError(f"Failed to read topology rows: {exc}") from exc
            finally:
                _close_quietly(cursor, "cursor")
        finally:
            _close_quietly(conn, "connection")
        LOG.debug("Topology query returned %d row(s)", len(rows))
        return TopologySnapshot(columns=columns, rows=rows)

    def _open(self, dsn: str) -> DriverConnection:
        try:
            return self._driver.open(dsn)
        except CheckError:
            raise
        except Exception as exc:
            raise ConnectionOpenError(f"Failed to open {self._driver.name} connection: {exc}") from exc

    def _execute(self, conn: DriverConnection) -> DriverCursor:
        try:
            return conn.execute(self._query)
        except Exception as exc:
            raise QueryExecutionError(f"Topology query failed: {exc}") from exc


def _close_quietly(resource: DriverConnection | DriverCursor, label: str) -> None:
    # A failing close must not mask the error that is already propagating.
    try:
        resource.close()
    except Exception:
        LOG.warning("Failed to close %s", label, exc_info=True)


__all__ = ["TOPOLOGY_QUERY", "TopologyQuerier", "TopologySnapshot"]
