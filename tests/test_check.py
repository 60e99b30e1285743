"""Tests for the check command orchestration."""

from __future__ import annotations

import json
from pathlib import Path

import pytest

from gpupgrade import check as check_module
from gpupgrade import identity as identity_module
from gpupgrade.check import CheckCommand, CheckOptions, CheckStage, run_check, validate
from gpupgrade.drivers import BufferedCursor
from gpupgrade.errors import (
    IdentityResolutionError,
    MissingRequiredFieldError,
    QueryExecutionError,
    SchemaMismatchError,
)
from gpupgrade.identity import EnvironmentIdentityResolver, StaticIdentityResolver
from gpupgrade.models import ClusterEndpoint
from gpupgrade.topology import TopologySnapshot
from gpupgrade.writer import writer_for

COLUMNS = ("dbid", "hostname", "fsedbid", "fselocation")
ROWS = ((1, "mdw", 1, "/data/master"), (2, "sdw1", 2, "/data/primary"))


class _FakeConnection:
    def __init__(self, error: Exception | None = None) -> None:
        self.error = error
        self.close_calls = 0

    def execute(self, sql: str) -> BufferedCursor:
        if self.error is not None:
            raise self.error
        return BufferedCursor(columns=COLUMNS, rows=ROWS)

    def close(self) -> None:
        self.close_calls += 1


class _FakeDriver:
    name = "fake"

    def __init__(self, connection: _FakeConnection) -> None:
        self.connection = connection
        self.opened: list[str] = []

    def open(self, dsn: str) -> _FakeConnection:
        self.opened.append(dsn)
        return self.connection


class _DriverFactory:
    def __init__(self, driver: _FakeDriver) -> None:
        self.driver = driver
        self.calls: list[tuple[str, float | None, float | None]] = []

    def __call__(self, name: str, *, connect_timeout: float | None, query_timeout: float | None) -> _FakeDriver:
        self.calls.append((name, connect_timeout, query_timeout))
        return self.driver


class _RecordingWriter:
    def __init__(self, path: Path) -> None:
        self.path = path
        self.snapshots: list[TopologySnapshot] = []
        self.write_calls = 0

    def __call__(self, snapshot: TopologySnapshot) -> _RecordingWriter:
        self.snapshots.append(snapshot)
        return self

    def write(self) -> Path:
        self.write_calls += 1
        return self.path


class _CountingResolver(StaticIdentityResolver):
    def __init__(self, user: str) -> None:
        super().__init__(user)
        self.calls = 0

    def resolve(self, endpoint: ClusterEndpoint) -> str:
        self.calls += 1
        return super().resolve(endpoint)


def _never_called(*args: object, **kwargs: object) -> None:
    raise AssertionError("should not be called")


def test_validate_requires_host() -> None:
    with pytest.raises(MissingRequiredFieldError) as excinfo:
        validate(ClusterEndpoint(host=""))

    assert excinfo.value.field == "master-host"
    assert "--master-host" in str(excinfo.value)


def test_validate_rejects_blank_host_even_with_explicit_dsn() -> None:
    with pytest.raises(MissingRequiredFieldError):
        validate(ClusterEndpoint(host="   "), "host=mdw")


def test_missing_host_fails_before_any_io() -> None:
    command = CheckCommand(
        CheckOptions(master_host="", database_config="host=mdw"),
        identity_resolver=_CountingResolver("gpadmin"),
        driver_factory=_never_called,  # type: ignore[arg-type]
        writer_factory=_never_called,  # type: ignore[arg-type]
    )

    with pytest.raises(MissingRequiredFieldError) as excinfo:
        command.execute()

    assert excinfo.value.stage is CheckStage.VALIDATING
    assert command.stage is CheckStage.FAILED


def test_end_to_end_writes_queried_rows(tmp_path: Path) -> None:
    connection = _FakeConnection()
    driver = _FakeDriver(connection)
    factory = _DriverFactory(driver)
    writer = _RecordingWriter(tmp_path / "cluster_config.json")
    command = CheckCommand(
        CheckOptions(master_host="mdw", master_port=5432, database_name="testdb"),
        identity_resolver=StaticIdentityResolver("gpadmin"),
        driver_factory=factory,  # type: ignore[arg-type]
        writer_factory=writer,
        connect_timeout=1.0,
        query_timeout=2.0,
    )

    result = command.execute()

    assert result == writer.path
    assert command.stage is CheckStage.DONE
    assert factory.calls == [("postgres", 1.0, 2.0)]
    assert driver.opened == ["host=mdw port=5432 user=gpadmin dbname=testdb sslmode=disable"]
    assert writer.snapshots == [TopologySnapshot(columns=COLUMNS, rows=ROWS)]
    assert writer.write_calls == 1
    assert connection.close_calls == 1


def test_explicit_dsn_skips_derivation(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setattr(check_module, "build_dsn", _never_called)
    resolver = _CountingResolver("gpadmin")
    driver = _FakeDriver(_FakeConnection())
    factory = _DriverFactory(driver)
    command = CheckCommand(
        CheckOptions(master_host="mdw", database_type="sqlite3", database_config="/tmp/catalog.db"),
        identity_resolver=resolver,
        driver_factory=factory,  # type: ignore[arg-type]
        writer_factory=_RecordingWriter(tmp_path / "out.json"),
    )

    command.execute()

    assert resolver.calls == 0
    assert factory.calls[0][0] == "sqlite3"
    assert driver.opened == ["/tmp/catalog.db"]


def test_query_failure_is_tagged_with_stage(tmp_path: Path) -> None:
    connection = _FakeConnection(error=RuntimeError("permission denied for relation gp_segment_configuration"))
    writer = _RecordingWriter(tmp_path / "out.json")
    command = CheckCommand(
        CheckOptions(master_host="mdw"),
        identity_resolver=StaticIdentityResolver("gpadmin"),
        driver_factory=_DriverFactory(_FakeDriver(connection)),  # type: ignore[arg-type]
        writer_factory=writer,
    )

    with pytest.raises(QueryExecutionError) as excinfo:
        command.execute()

    assert excinfo.value.stage is CheckStage.CONNECTING_AND_QUERYING
    assert any("connecting and querying" in note for note in excinfo.value.__notes__)
    assert isinstance(excinfo.value.__cause__, RuntimeError)
    assert connection.close_calls == 1
    assert writer.snapshots == []


def test_writer_failure_is_tagged_with_stage(tmp_path: Path) -> None:
    command = CheckCommand(
        CheckOptions(master_host="mdw"),
        identity_resolver=StaticIdentityResolver("gpadmin"),
        driver_factory=_DriverFactory(_FakeDriver(_FakeConnection())),  # type: ignore[arg-type]
        writer_factory=writer_for(tmp_path),
    )

    # The fake rows lack most segment columns.
    with pytest.raises(SchemaMismatchError) as excinfo:
        command.execute()

    assert excinfo.value.stage is CheckStage.WRITING
    assert not (tmp_path / "cluster_config.json").exists()


def test_run_check_against_sqlite_catalog(catalog_path: Path, tmp_path: Path) -> None:
    state_dir = tmp_path / "state"
    options = CheckOptions(master_host="mdw", database_type="sqlite3", database_config=str(catalog_path))

    path = run_check(options, writer_factory=writer_for(state_dir))

    payload = json.loads(path.read_text())
    assert path == state_dir / "cluster_config.json"
    assert [row["hostname"] for row in payload] == ["mdw", "sdw1", "sdw2"]
    assert all(row["fsedbid"] == row["dbid"] for row in payload)


def test_repeated_runs_are_identical(catalog_path: Path, tmp_path: Path) -> None:
    options = CheckOptions(master_host="mdw", database_type="sqlite3", database_config=str(catalog_path))
    first = run_check(options, writer_factory=writer_for(tmp_path / "a")).read_text()
    second = run_check(options, writer_factory=writer_for(tmp_path / "b")).read_text()

    assert first == second


def test_connection_descriptor_is_deterministic() -> None:
    options = CheckOptions(master_host="mdw", master_port=5432, database_name="testdb")
    command = CheckCommand(options, identity_resolver=StaticIdentityResolver("gpadmin"))

    assert command.connection_descriptor() == command.connection_descriptor()
    assert command.connection_descriptor().dsn == "host=mdw port=5432 user=gpadmin dbname=testdb sslmode=disable"


def test_padded_host_is_stripped_before_derivation() -> None:
    command = CheckCommand(CheckOptions(master_host=" mdw "), identity_resolver=StaticIdentityResolver("gpadmin"))

    assert command.connection_descriptor().dsn == "host=mdw port=15432 user=gpadmin dbname=template1 sslmode=disable"


def test_identity_failure_is_a_tagged_connection_error(monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> None:
    def _no_user() -> str:
        raise OSError("No username set in the environment")

    monkeypatch.setattr(identity_module.getpass, "getuser", _no_user)
    command = CheckCommand(
        CheckOptions(master_host="mdw"),
        identity_resolver=EnvironmentIdentityResolver({}),
        driver_factory=_never_called,  # type: ignore[arg-type]
        writer_factory=_RecordingWriter(tmp_path / "out.json"),
    )

    with pytest.raises(IdentityResolutionError) as excinfo:
        command.execute()

    assert excinfo.value.stage is CheckStage.CONNECTING_AND_QUERYING
    assert command.stage is CheckStage.FAILED


def test_unexpected_errors_still_carry_stage_note(tmp_path: Path) -> None:
    class _ExplodingWriter(_RecordingWriter):
        def write(self) -> Path:
            raise RuntimeError("disk vanished")

    command = CheckCommand(
        CheckOptions(master_host="mdw"),
        identity_resolver=StaticIdentityResolver("gpadmin"),
        driver_factory=_DriverFactory(_FakeDriver(_FakeConnection())),  # type: ignore[arg-type]
        writer_factory=_ExplodingWriter(tmp_path / "out.json"),
    )

    with pytest.raises(RuntimeError) as excinfo:
        command.execute()

    assert any("writing" in note for note in excinfo.value.__notes__)
    assert command.stage is CheckStage.FAILED


def test_rerun_starts_from_validation(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    command = CheckCommand(
        CheckOptions(master_host="mdw"),
        identity_resolver=StaticIdentityResolver("gpadmin"),
        driver_factory=_DriverFactory(_FakeDriver(_FakeConnection())),  # type: ignore[arg-type]
        writer_factory=_RecordingWriter(tmp_path / "out.json"),
    )
    command.execute()
    assert command.stage is CheckStage.DONE

    def _reject(endpoint: ClusterEndpoint, explicit_dsn: str | None = None) -> None:
        raise MissingRequiredFieldError("master-host")

    monkeypatch.setattr(check_module, "validate", _reject)

    with pytest.raises(MissingRequiredFieldError) as excinfo:
        command.execute()

    assert excinfo.value.stage is CheckStage.VALIDATING


def test_run_check_forwards_collaborators(tmp_path: Path) -> None:
    factory = _DriverFactory(_FakeDriver(_FakeConnection()))
    writer = _RecordingWriter(tmp_path / "out.json")

    result = run_check(
        CheckOptions(master_host="mdw"),
        identity_resolver=StaticIdentityResolver("gpadmin"),
        driver_factory=factory,  # type: ignore[arg-type]
        writer_factory=writer,
        connect_timeout=3.0,
        query_timeout=4.0,
    )

    assert result == writer.path
    assert factory.calls == [("postgres", 3.0, 4.0)]
