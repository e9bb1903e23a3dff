"""Test configuration and fixtures."""

from pathlib import Path
from typing import Dict, Iterator, List, Set

import pytest

from dbbench.config import BinaryConfigStore, Settings
from dbbench.engines import get_engine_class
from dbbench.managers.container_manager import ContainerManager
from dbbench.managers.port_manager import PortManager
from dbbench.managers.process_manager import ProcessManager
from dbbench.models.database import DatabaseManager
from dbbench.models.schemas import EngineConfig


class FakePortManager(PortManager):
    """Port manager whose OS-level availability is controlled by the test."""

    def __init__(self, container_ports=None) -> None:
        super().__init__(container_ports)
        self.taken: Set[int] = set()

    def is_port_available(self, port: int, host: str | None = None) -> bool:
        return port not in self.taken


class FakeEngine:
    """Engine double keeping running state in memory and recording data operations."""

    def __init__(self, kind: str) -> None:
        impl = get_engine_class(kind)
        self.kind = impl.kind
        self.display_name = impl.display_name
        self.default_port = impl.default_port
        self.port_range = impl.port_range
        self.default_database = impl.default_database
        self.default_version = impl.default_version
        self.file_based = impl.file_based
        self.aux_port_name = impl.aux_port_name
        self.supports_pull = impl.supports_pull

        self.running: Set[str] = set()
        self.started_ports: List[int | None] = []
        self.start_errors: List[Exception] = []
        self.failures: Dict[str, Exception] = {}
        self.calls: List[tuple] = []
        self.local_version: str | None = None
        self.remote_version: str | None = None

    def is_running(self, config: EngineConfig) -> bool:
        if self.file_based:
            return Path(config.path).exists()
        return config.name in self.running

    def start(self, config: EngineConfig) -> None:
        self.started_ports.append(config.port)
        if self.start_errors:
            raise self.start_errors.pop(0)
        if self.file_based:
            Path(config.path).touch()
        else:
            self.running.add(config.name)

    def stop(self, config: EngineConfig) -> None:
        self.running.discard(config.name)

    def get_connection_string(self, config: EngineConfig, database: str | None = None) -> str:
        if self.file_based:
            return f"{self.kind.value}:///{config.path}"
        return f"{self.kind.value}://127.0.0.1:{config.port}/{database or config.database}"

    def _record(self, operation: str, *args) -> None:
        self.calls.append((operation, *args))
        if operation in self.failures:
            raise self.failures[operation]

    def create_database(self, config: EngineConfig, database: str) -> None:
        self._record("create_database", database)

    def drop_database(self, config: EngineConfig, database: str) -> None:
        self._record("drop_database", database)

    def terminate_connections(self, config: EngineConfig, database: str) -> None:
        self._record("terminate_connections", database)

    def dump_database(self, config: EngineConfig, database: str, out_path: str) -> None:
        self._record("dump_database", database)
        Path(out_path).write_bytes(b"local")

    def dump_from_connection_string(self, url: str, out_path: str) -> None:
        self._record("dump_from_connection_string", url)
        Path(out_path).write_bytes(b"remote")

    def restore(self, config: EngineConfig, dump_path: str, database: str) -> None:
        self._record("restore", Path(dump_path).name, database)

    def get_version(self, config: EngineConfig) -> str | None:
        return self.local_version

    def get_remote_version(self, url: str) -> str | None:
        return self.remote_version


@pytest.fixture
def settings(tmp_path) -> Settings:
    """Settings rooted in a temporary home directory."""
    return Settings(
        home=tmp_path / "home",
        readiness_attempts=2,
        readiness_interval_s=0,
        stop_timeout_s=1,
        start_max_retries=3,
    )


@pytest.fixture
def db_manager() -> Iterator[DatabaseManager]:
    """In-memory state database with tables created."""
    manager = DatabaseManager("sqlite://")
    manager.create_tables()
    yield manager
    manager.close()


@pytest.fixture
def fake_engines() -> Dict[str, FakeEngine]:
    """Shared fake engine instances, one per engine kind."""
    return {}


@pytest.fixture
def container_manager(settings, db_manager, fake_engines) -> ContainerManager:
    """Container manager wired to fake engines and a controllable port manager."""

    def factory(engine, **kwargs):
        kind = getattr(engine, "value", engine)
        if kind not in fake_engines:
            fake_engines[kind] = FakeEngine(kind)
        return fake_engines[kind]

    manager = ContainerManager(
        settings=settings,
        db_manager=db_manager,
        binaries=BinaryConfigStore(settings.config_file),
        supervisor=ProcessManager(settings),
        engine_factory=factory,
    )
    manager.port_manager = FakePortManager(manager._recorded_ports)
    return manager
