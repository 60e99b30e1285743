"""Shared models used across the check pipeline."""

from __future__ import annotations

from dataclasses import dataclass

from pydantic import BaseModel, ConfigDict, model_validator

DEFAULT_MASTER_PORT = 15432
DEFAULT_DATABASE_NAME = "template1"
DEFAULT_DATABASE_TYPE = "postgres"


@dataclass(frozen=True, slots=True)
class ClusterEndpoint:
    """Where the coordinating (master) node listens."""

    host: str
    port: int = DEFAULT_MASTER_PORT
    database_name: str = DEFAULT_DATABASE_NAME


@dataclass(frozen=True, slots=True)
class ConnectionDescriptor:
    """Driver name plus the DSN handed to it."""

    driver_name: str
    dsn: str


@dataclass(frozen=True, slots=True)
class SegmentConfig:
    """Segment half of a topology row (gp_segment_configuration)."""

    dbid: int
    content: int
    role: str
    preferred_role: str
    mode: str
    status: str
    port: int
    hostname: str
    address: str


@dataclass(frozen=True, slots=True)
class FilespaceEntry:
    """Filespace half of a topology row (pg_filespace_entry)."""

    fsefsoid: int
    segment_dbid: int
    location: str


class TopologyRow(BaseModel):
    """One segment joined with one of its filespace entries."""

    model_config = ConfigDict(extra="allow", frozen=True)

    dbid: int
    content: int
    role: str
    preferred_role: str
    mode: str
    status: str
    port: int
    hostname: str
    address: str
    replication_port: int | None = None
    san_mounts: object | None = None

    fsefsoid: int
    fsedbid: int
    fselocation: str

    @model_validator(mode="after")
    def check_join_key(self) -> TopologyRow:
        if self.fsedbid != self.dbid:
            raise ValueError(f"filespace entry for dbid {self.fsedbid} joined to segment dbid {self.dbid}")
        return self

    @property
    def segment_dbid(self) -> int:
        return self.fsedbid

    @property
    def segment(self) -> SegmentConfig:
        return SegmentConfig(
            dbid=self.dbid,
            content=self.content,
            role=self.role,
            preferred_role=self.preferred_role,
            mode=self.mode,
            status=self.status,
            port=self.port,
            hostname=self.hostname,
            address=self.address,
        )

    @property
    def filespace(self) -> FilespaceEntry:
        return FilespaceEntry(fsefsoid=self.fsefsoid, segment_dbid=self.fsedbid, location=self.fselocation)


REQUIRED_TOPOLOGY_COLUMNS: tuple[str, ...] = tuple(
    name for name, field in TopologyRow.model_fields.items() if field.is_required()
)


__all__ = [
    "ClusterEndpoint",
    "ConnectionDescriptor",
    "DEFAULT_DATABASE_NAME",
    "DEFAULT_DATABASE_TYPE",
    "DEFAULT_MASTER_PORT",
    "FilespaceEntry",
    "REQUIRED_TOPOLOGY_COLUMNS",
    "SegmentConfig",
    "TopologyRow",
]
