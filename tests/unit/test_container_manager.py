"""Unit tests for ContainerManager."""

import sys
import time
from pathlib import Path

import pytest

from dbbench.engines.base import ServerEngine
from dbbench.managers.container_manager import is_port_in_use_error, is_valid_name
from dbbench.managers.process_manager import ProcessManager
from dbbench.models.schemas import STATUS_RUNNING, STATUS_STOPPED, EngineKind
from dbbench.utils.exceptions import (
    ConflictError,
    ContainerAlreadyExistsError,
    ContainerNotFoundError,
    ContainerRunningError,
    InvalidEngineError,
    InvalidNameError,
    InvalidVersionError,
    SourceRunningError,
    StartFailureError,
    ValidationError,
)


def test_valid_names():
    """Test container name validation."""
    assert is_valid_name("mydb")
    assert is_valid_name("my-db_2")
    assert not is_valid_name("2db")
    assert not is_valid_name("-db")
    assert not is_valid_name("my db")
    assert not is_valid_name("")


def test_port_in_use_detection():
    """Test recognizing port conflicts in server output."""
    assert is_port_in_use_error("FATAL: could not bind IPv4 address: Address already in use")
    assert is_port_in_use_error("Error: listen EADDRINUSE 127.0.0.1:6379")
    assert is_port_in_use_error("Port 8123 is already in use")
    assert not is_port_in_use_error("database system is ready")
    assert not is_port_in_use_error("")


def test_create_server_container(container_manager, settings):
    """Test creating a server container allocates the default port."""
    container = container_manager.create("pg1", "postgresql")

    assert container.port == 5432
    assert container.status == STATUS_STOPPED
    assert container.database == "postgres"
    assert container.databases == ["postgres"]
    assert container.version == "17"
    assert Path(container.path) == settings.containers_dir / "postgresql" / "pg1" / "data"
    assert Path(container.path).is_dir()


def test_create_second_container_gets_next_port(container_manager):
    """Test ports recorded by other containers are skipped."""
    container_manager.create("pg1", "postgresql")
    second = container_manager.create("pg2", "postgresql")

    assert second.port == 5433


def test_create_aux_port_engine(container_manager):
    """Test engines with an auxiliary port reserve two consecutive ports."""
    first = container_manager.create("q1", "qdrant")
    second = container_manager.create("q2", "qdrant")

    assert first.port == 6333
    assert first.aux_ports == {"grpc": 6334}
    assert second.port == 6335
    assert second.aux_ports == {"grpc": 6336}


def test_create_duplicate_name(container_manager):
    """Test names are unique across engines."""
    container_manager.create("shared", "postgresql")

    with pytest.raises(ContainerAlreadyExistsError):
        container_manager.create("shared", "redis")


def test_create_rejects_bad_input(container_manager):
    """Test name, engine and version validation."""
    with pytest.raises(InvalidNameError):
        container_manager.create("1db", "postgresql")
    with pytest.raises(InvalidEngineError):
        container_manager.create("db", "oracle")
    with pytest.raises(InvalidVersionError):
        container_manager.create("db", "postgresql", version="latest")


def test_create_explicit_port_taken(container_manager):
    """Test an explicit port that is not free is a conflict."""
    container_manager.port_manager.taken.add(5440)

    with pytest.raises(ConflictError, match="5440"):
        container_manager.create("pg1", "postgresql", port=5440)


def test_create_file_container(container_manager, settings, db_manager):
    """Test file-based containers have a path and no port."""
    container = container_manager.create("lite", "sqlite")

    assert container.port is None
    assert container.path == str(settings.containers_dir / "sqlite" / "lite" / "lite.sqlite")

    from dbbench.repositories.file_databases import FileDatabaseRepository

    with db_manager.get_session() as session:
        entry = FileDatabaseRepository(session).get("lite")
    assert entry is not None
    assert entry.file_path == container.path


def test_create_file_container_path_already_registered(container_manager, tmp_path):
    """Test one file cannot back two containers."""
    path = tmp_path / "app.duckdb"
    container_manager.create("a", "duckdb", path=str(path))

    with pytest.raises(ConflictError):
        container_manager.create("b", "duckdb", path=str(path))


def test_get_missing_container(container_manager):
    """Test looking up an unknown container."""
    assert container_manager.get_config("nope") is None
    with pytest.raises(ContainerNotFoundError):
        container_manager.get("nope")


def test_update_config(container_manager):
    """Test updating fields bumps updated_at."""
    created = container_manager.create("pg1", "postgresql")

    updated = container_manager.update_config("pg1", port=5499)

    assert updated.port == 5499
    assert updated.updated_at >= created.updated_at
    assert updated.updated_at.tzinfo is None


def test_update_config_rejects_unknown_fields(container_manager):
    """Test unknown fields are refused."""
    container_manager.create("pg1", "postgresql")

    with pytest.raises(ValidationError):
        container_manager.update_config("pg1", name="other")


def test_add_and_remove_database(container_manager):
    """Test tracking database names on a container."""
    container_manager.create("pg1", "postgresql")

    container = container_manager.add_database("pg1", "app")
    assert container.databases == ["postgres", "app"]

    container = container_manager.add_database("pg1", "app")
    assert container.databases == ["postgres", "app"]

    container = container_manager.remove_database("pg1", "app")
    assert container.databases == ["postgres"]

    with pytest.raises(ValidationError):
        container_manager.remove_database("pg1", "postgres")


def test_start_and_stop(container_manager, fake_engines):
    """Test the basic lifecycle."""
    container_manager.create("pg1", "postgresql")

    result = container_manager.start("pg1")

    assert result.port == 5432
    assert result.connection_string == "postgresql://127.0.0.1:5432/postgres"
    assert not result.already_running
    assert result.port_changed_from is None
    assert container_manager.get("pg1").status == STATUS_RUNNING

    again = container_manager.start("pg1")
    assert again.already_running
    assert fake_engines["postgresql"].started_ports == [5432]

    container_manager.stop("pg1")
    assert container_manager.get("pg1").status == STATUS_STOPPED


def test_start_reassigns_taken_port(container_manager, fake_engines):
    """Test a port taken since creation is replaced before starting."""
    container_manager.create("pg1", "postgresql")
    container_manager.port_manager.taken.add(5432)

    result = container_manager.start("pg1")

    assert result.port == 5433
    assert result.port_changed_from == 5432
    assert fake_engines["postgresql"].started_ports == [5433]
    assert container_manager.get("pg1").port == 5433


def test_start_retries_when_port_lost_during_startup(container_manager, fake_engines):
    """Test a port-in-use startup failure is retried on another port."""
    container_manager.create("pg1", "postgresql")
    engine = fake_engines["postgresql"]
    engine.start_errors.append(
        StartFailureError("PostgreSQL exited during startup", output="Address already in use")
    )

    result = container_manager.start("pg1")

    assert engine.started_ports == [5432, 5433]
    assert result.port == 5433
    assert result.port_changed_from == 5432


def test_start_gives_up_after_max_retries(container_manager, fake_engines):
    """Test retries are bounded."""
    container_manager.create("pg1", "postgresql")
    engine = fake_engines["postgresql"]
    engine.start_errors.extend(
        StartFailureError("exited", output="Address already in use") for _ in range(3)
    )

    with pytest.raises(StartFailureError):
        container_manager.start("pg1")

    assert engine.started_ports == [5432, 5433, 5434]
    assert container_manager.get("pg1").status == STATUS_STOPPED


def test_start_other_failures_are_not_retried(container_manager, fake_engines):
    """Test only port conflicts trigger a retry."""
    container_manager.create("pg1", "postgresql")
    engine = fake_engines["postgresql"]
    engine.start_errors.append(StartFailureError("exited", output="GLIBC_2.38 not found"))

    with pytest.raises(StartFailureError):
        container_manager.start("pg1")

    assert engine.started_ports == [5432]


def test_start_file_container(container_manager):
    """Test starting a file container creates its file."""
    container = container_manager.create("lite", "sqlite")

    result = container_manager.start("lite")

    assert result.port is None
    assert Path(container.path).exists()


def test_list_refreshes_status(container_manager, fake_engines):
    """Test listing reconciles cached status with the engine."""
    container_manager.create("pg1", "postgresql")
    container_manager.create("r1", "redis")
    container_manager.start("pg1")
    fake_engines["postgresql"].running.clear()

    containers = container_manager.list()

    assert [c.name for c in containers] == ["pg1", "r1"]
    assert all(c.status == STATUS_STOPPED for c in containers)


def test_clone_refuses_running_source(container_manager, settings):
    """Test cloning a running container fails without touching disk."""
    container_manager.create("pg1", "postgresql")
    container_manager.start("pg1")

    with pytest.raises(SourceRunningError):
        container_manager.clone("pg1", "pg2")

    assert not (settings.containers_dir / "postgresql" / "pg2").exists()
    assert container_manager.get_config("pg2") is None


def test_clone_checks_names_first(container_manager):
    """Test clone validation order."""
    container_manager.create("pg1", "postgresql")
    container_manager.create("pg2", "postgresql")

    with pytest.raises(ContainerNotFoundError):
        container_manager.clone("missing", "pg3")
    with pytest.raises(ContainerAlreadyExistsError):
        container_manager.clone("pg1", "pg2")
    with pytest.raises(InvalidNameError):
        container_manager.clone("pg1", "3pg")


def test_clone_stopped_server_container(container_manager):
    """Test cloning copies data and allocates a new port."""
    source = container_manager.create("pg1", "postgresql")
    (Path(source.path) / "PG_VERSION").write_text("17\n")
    container_manager.add_database("pg1", "app")

    clone = container_manager.clone("pg1", "pg2")

    assert clone.port == 5433
    assert clone.cloned_from == "pg1"
    assert clone.status == STATUS_STOPPED
    assert clone.databases == ["postgres", "app"]
    assert (Path(clone.path) / "PG_VERSION").read_text() == "17\n"


def test_clone_file_container(container_manager):
    """Test cloning a file container copies the database file."""
    source = container_manager.create("lite", "sqlite")
    container_manager.start("lite")
    Path(source.path).write_bytes(b"SQLite format 3\x00")

    clone = container_manager.clone("lite", "lite2")

    assert clone.port is None
    assert Path(clone.path).read_bytes() == b"SQLite format 3\x00"


def test_remove(container_manager, settings):
    """Test removing a stopped container deletes its directory and record."""
    container_manager.create("pg1", "postgresql")

    container_manager.remove("pg1")

    assert container_manager.get_config("pg1") is None
    assert not (settings.containers_dir / "postgresql" / "pg1").exists()


def test_remove_running_requires_force(container_manager, fake_engines):
    """Test a running container is only removed with force."""
    container_manager.create("pg1", "postgresql")
    container_manager.start("pg1")

    with pytest.raises(ContainerRunningError):
        container_manager.remove("pg1")

    container_manager.remove("pg1", force=True)
    assert "pg1" not in fake_engines["postgresql"].running
    assert container_manager.get_config("pg1") is None


def test_remove_keeps_external_database_file(container_manager, tmp_path):
    """Test files outside the managed directory are left in place."""
    path = tmp_path / "keep.sqlite"
    container_manager.create("lite", "sqlite", path=str(path))
    container_manager.start("lite")

    container_manager.remove("lite")

    assert path.exists()
    assert container_manager.get_config("lite") is None


def test_get_connection_string(container_manager):
    """Test connection strings for named databases."""
    container_manager.create("pg1", "postgresql")

    assert container_manager.get_connection_string("pg1", "app") == (
        "postgresql://127.0.0.1:5432/app"
    )


BUSY_PORT_SERVER = """
import sys, time
from pathlib import Path

port, busy, ready_dir = sys.argv[1:4]
if port == busy:
    print("FATAL: could not bind: Address already in use", flush=True)
else:
    Path(ready_dir, port).touch()
time.sleep(30)
"""


class ReadyFileProbe:
    """Ready once the server touches its port file; waits for first output otherwise."""

    def __init__(self, ready_file: Path, read_output):
        self.ready_file = ready_file
        self.read_output = read_output

    def check(self) -> bool:
        deadline = time.monotonic() + 10
        while time.monotonic() < deadline and not self.ready_file.exists():
            if "already in use" in self.read_output():
                break
            time.sleep(0.05)
        return self.ready_file.exists()


class BusyPortServer(ServerEngine):
    """Python server that hangs without binding when handed its busy port."""

    kind = EngineKind.REDIS
    display_name = "Busy"
    default_port = 7100
    port_range = (7100, 7199)
    default_database = "0"
    default_version = "7.4"
    server_binary = sys.executable

    ready_dir: Path

    def server_args(self, config, server):
        return [server, "-c", BUSY_PORT_SERVER, str(config.port), "7100", str(self.ready_dir)]

    def readiness_probe(self, config):
        return ReadyFileProbe(
            self.ready_dir / str(config.port),
            lambda: self.supervisor.read_log_tail(config.name, config.engine.value),
        )

    def get_connection_string(self, config, database=None):
        return f"busy://127.0.0.1:{config.port}"


class RecordingSupervisor(ProcessManager):
    """Real process manager that keeps every spawned handle."""

    def __init__(self, settings):
        super().__init__(settings)
        self.processes = []

    def spawn(self, name, engine, args, env=None, cwd=None):
        process = super().spawn(name, engine, args, env=env, cwd=cwd)
        self.processes.append(process)
        return process


@pytest.mark.skipif(sys.platform.startswith("win"), reason="POSIX signals")
def test_start_retry_replaces_hung_server(container_manager, settings, tmp_path):
    """Test a server left hanging on a busy port is stopped before retrying elsewhere."""
    supervisor = RecordingSupervisor(settings)
    ready_dir = tmp_path / "ready"
    ready_dir.mkdir()

    def factory(engine, **kwargs):
        server = BusyPortServer(supervisor=supervisor, settings=settings)
        server.ready_dir = ready_dir
        return server

    manager = container_manager
    manager.supervisor = supervisor
    manager._engine_factory = factory
    manager.create("busy", "redis")

    try:
        result = manager.start("busy")

        assert result.port == 7101
        assert result.port_changed_from == 7100
        assert (ready_dir / "7101").exists()
        assert len(supervisor.processes) == 2
        assert supervisor.processes[0].poll() is not None
        assert supervisor.processes[1].poll() is None
        assert supervisor.get_pid("busy", "redis") == supervisor.processes[1].pid
        assert manager.get("busy").status == STATUS_RUNNING
    finally:
        for process in supervisor.processes:
            if process.poll() is None:
                process.kill()
                process.wait()
