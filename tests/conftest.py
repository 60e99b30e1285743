"""Shared fixtures for gpupgrade tests."""

from __future__ import annotations

import sqlite3
from pathlib import Path

import pytest

SEGMENT_ROWS = [
    (1, -1, "p", "p", "s", "u", 5432, "mdw", "mdw", None),
    (2, 0, "p", "p", "s", "u", 25432, "sdw1", "sdw1", 28432),
    (3, 0, "m", "m", "s", "u", 35432, "sdw2", "sdw2", 38432),
]

FILESPACE_ROWS = [
    (3052, 1, "/data/master/gpseg-1"),
    (3052, 2, "/data/primary/gpseg0"),
    (3052, 3, "/data/mirror/gpseg0"),
    # Orphaned entry that the join must drop.
    (3052, 99, "/data/unused"),
]


def seed_catalog(path: Path) -> Path:
    conn = sqlite3.connect(path)
    try:
        conn.executescript(
            """
            CREATE TABLE gp_segment_configuration (
                dbid INTEGER, content INTEGER, role TEXT, preferred_role TEXT, mode TEXT,
                status TEXT, port INTEGER, hostname TEXT, address TEXT, replication_port INTEGER
            );
            CREATE TABLE pg_filespace_entry (fsefsoid INTEGER, fsedbid INTEGER, fselocation TEXT);
            """
        )
        conn.executemany("INSERT INTO gp_segment_configuration VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?)", SEGMENT_ROWS)
        conn.executemany("INSERT INTO pg_filespace_entry VALUES (?, ?, ?)", FILESPACE_ROWS)
        conn.commit()
    finally:
        conn.close()
    return path


@pytest.fixture
def catalog_path(tmp_path: Path) -> Path:
    return seed_catalog(tmp_path / "catalog.db")
