"""Persist the cluster topology for later upgrade phases."""

from __future__ import annotations

import json
import logging
import os
import tempfile
from pathlib import Path
from typing import Callable, Protocol, Sequence

from pydantic import ValidationError

from . import config as config_module
from .errors import PersistenceError, SchemaMismatchError
from .models import REQUIRED_TOPOLOGY_COLUMNS, TopologyRow
from .topology import TopologySnapshot

LOG = logging.getLogger(__name__)

CONFIG_FILENAME = "cluster_config.json"


class Writer(Protocol):
    """Interface implemented by topology writers."""

    def write(self) -> Path: ...


WriterFactory = Callable[[TopologySnapshot], Writer]


class ConfigWriter:
    """Writes topology rows as a JSON array of column/value objects."""

    def __init__(self, rows: Sequence[TopologyRow], path: Path, *, columns: Sequence[str] = ()) -> None:
        self.rows = tuple(rows)
        self.path = path
        self.columns = tuple(columns)

    @classmethod
    def from_snapshot(cls, snapshot: TopologySnapshot, *, path: Path | None = None) -> ConfigWriter:
        """Validate the snapshot shape and build a writer for it."""

        missing = [name for name in REQUIRED_TOPOLOGY_COLUMNS if name not in snapshot.columns]
        if missing:
            raise SchemaMismatchError(f"Topology rows are missing column(s): {', '.join(missing)}")
        rows: list[TopologyRow] = []
        for index, record in enumerate(snapshot.records()):
            try:
                rows.append(TopologyRow.model_validate(record))
            except ValidationError as exc:
                raise SchemaMismatchError(f"Topology row {index} is invalid: {exc}") from exc
        target = path if path is not None else config_module.DEFAULT_STATE_DIR / CONFIG_FILENAME
        return cls(rows, target, columns=snapshot.columns)

    def render(self) -> str:
        payload = [self._dump(row) for row in self.rows]
        return json.dumps(payload, indent=2) + "\n"

    def _dump(self, row: TopologyRow) -> dict[str, object]:
        # Keep the query's column order and drop model defaults it never returned.
        data = row.model_dump(mode="json")
        if not self.columns:
            return data
        return {name: data[name] for name in self.columns if name in data}

    def write(self) -> Path:
        """Atomically replace the artifact with the current rows."""

        try:
            content = self.render()
        except (TypeError, ValueError) as exc:
            raise PersistenceError(f"Failed to serialize topology rows for {self.path}: {exc}") from exc
        try:
            self.path.parent.mkdir(mode=0o700, parents=True, exist_ok=True)
            fd, tmp_name = tempfile.mkstemp(prefix=f".{self.path.name}.", dir=self.path.parent)
            try:
                with os.fdopen(fd, "w", encoding="utf-8") as handle:
                    handle.write(content)
                os.replace(tmp_name, self.path)
            except BaseException:
                Path(tmp_name).unlink(missing_ok=True)
                raise
        except OSError as exc:
            raise PersistenceError(f"Failed to write {self.path}: {exc}") from exc
        LOG.info("Wrote %d topology row(s) to %s", len(self.rows), self.path)
        return self.path


def writer_for(state_dir: Path) -> WriterFactory:
    """Return a writer factory targeting ``state_dir``."""

    def _factory(snapshot: TopologySnapshot) -> ConfigWriter:
        return ConfigWriter.from_snapshot(snapshot, path=state_dir / CONFIG_FILENAME)

    return _factory


__all__ = ["CONFIG_FILENAME", "ConfigWriter", "Writer", "WriterFactory", "writer_for"]
