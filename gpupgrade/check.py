"""The `gpupgrade check` command: validate, query topology, write config."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from enum import Enum
from pathlib import Path

from .drivers import DriverFactory, make_driver
from .dsn import build_dsn
from .errors import CheckError, MissingRequiredFieldError
from .identity import EnvironmentIdentityResolver, IdentityResolver
from .models import (
    DEFAULT_DATABASE_NAME,
    DEFAULT_DATABASE_TYPE,
    DEFAULT_MASTER_PORT,
    ClusterEndpoint,
    ConnectionDescriptor,
)
from .topology import TopologyQuerier
from .writer import ConfigWriter, WriterFactory

LOG = logging.getLogger(__name__)


class CheckStage(str, Enum):
    VALIDATING = "validating"
    CONNECTING_AND_QUERYING = "connecting_and_querying"
    WRITING = "writing"
    DONE = "done"
    FAILED = "failed"


@dataclass(frozen=True, slots=True)
class CheckOptions:
    """Inputs accepted by the check command."""

    master_host: str = ""
    master_port: int = DEFAULT_MASTER_PORT
    database_name: str = DEFAULT_DATABASE_NAME
    database_type: str = DEFAULT_DATABASE_TYPE
    database_config: str = ""

    @property
    def endpoint(self) -> ClusterEndpoint:
        return ClusterEndpoint(host=self.master_host.strip(), port=self.master_port, database_name=self.database_name)


def validate(endpoint: ClusterEndpoint, explicit_dsn: str | None = None) -> None:
    """Fail fast on missing inputs before any I/O happens.

    The host is required even when an explicit DSN is supplied.
    """

    if not endpoint.host.strip():
        raise MissingRequiredFieldError("master-host")


class CheckCommand:
    """Runs one check invocation and tracks which stage it reached."""

    def __init__(
        self,
        options: CheckOptions,
        *,
        identity_resolver: IdentityResolver | None = None,
        driver_factory: DriverFactory = make_driver,
        writer_factory: WriterFactory = ConfigWriter.from_snapshot,
        connect_timeout: float | None = 10.0,
        query_timeout: float | None = 60.0,
    ) -> None:
        self._options = options
        self._identity_resolver = identity_resolver or EnvironmentIdentityResolver()
        self._driver_factory = driver_factory
        self._writer_factory = writer_factory
        self._connect_timeout = connect_timeout
        self._query_timeout = query_timeout
        self._stage = CheckStage.VALIDATING

    @property
    def stage(self) -> CheckStage:
        return self._stage

    def execute(self) -> Path:
        """Run every stage in order; the first failure aborts the rest."""

        self._enter(CheckStage.VALIDATING)
        try:
            validate(self._options.endpoint, self._options.database_config or None)

            self._enter(CheckStage.CONNECTING_AND_QUERYING)
            descriptor = self.connection_descriptor()
            driver = self._driver_factory(
                descriptor.driver_name,
                connect_timeout=self._connect_timeout,
                query_timeout=self._query_timeout,
            )
            snapshot = TopologyQuerier(driver).query(descriptor.dsn)

            self._enter(CheckStage.WRITING)
            writer = self._writer_factory(snapshot)
            path = writer.write()
        except CheckError as exc:
            exc.stage = self._stage
            exc.add_note(self._failure_note())
            self._enter(CheckStage.FAILED)
            raise
        except BaseException as exc:
            exc.add_note(self._failure_note())
            self._enter(CheckStage.FAILED)
            raise
        self._enter(CheckStage.DONE)
        return path

    def connection_descriptor(self) -> ConnectionDescriptor:
        """Use the explicit DSN when given, otherwise derive one from the endpoint."""

        options = self._options
        if options.database_config:
            return ConnectionDescriptor(driver_name=options.database_type, dsn=options.database_config)
        endpoint = options.endpoint
        user = self._identity_resolver.resolve(endpoint)
        return ConnectionDescriptor(driver_name=options.database_type, dsn=build_dsn(endpoint, user))

    def _failure_note(self) -> str:
        return f"gpupgrade check failed while {self._stage.value.replace('_', ' ')}"

    def _enter(self, stage: CheckStage) -> None:
        LOG.debug("check stage: %s -> %s", self._stage.value, stage.value)
        self._stage = stage


def run_check(
    options: CheckOptions,
    *,
    identity_resolver: IdentityResolver | None = None,
    driver_factory: DriverFactory = make_driver,
    writer_factory: WriterFactory = ConfigWriter.from_snapshot,
    connect_timeout: float | None = 10.0,
    query_timeout: float | None = 60.0,
) -> Path:
    """Build a `CheckCommand` and execute it."""

    command = CheckCommand(
        options,
        identity_resolver=identity_resolver,
        driver_factory=driver_factory,
        writer_factory=writer_factory,
        connect_timeout=connect_timeout,
        query_timeout=query_timeout,
    )
    return command.execute()


__all__ = ["CheckCommand", "CheckOptions", "CheckStage", "run_check", "validate"]
