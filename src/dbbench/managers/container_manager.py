"""Container registry and lifecycle orchestration."""

import re
import shutil
from pathlib import Path
from typing import Callable, Dict, List, Set, Tuple

from dbbench import engines
from dbbench.config import BinaryConfigStore, Settings, get_settings
from dbbench.engines.versions import parse_version
from dbbench.managers.port_manager import PortManager
from dbbench.managers.process_manager import ProcessManager
from dbbench.models.base import utc_now
from dbbench.models.containers import Container
from dbbench.models.database import DatabaseManager, get_db_manager
from dbbench.models.file_databases import FileDatabase
from dbbench.models.schemas import STATUS_RUNNING, STATUS_STOPPED, EngineConfig, StartResult
from dbbench.repositories.containers import ContainerRepository
from dbbench.repositories.file_databases import FileDatabaseRepository
from dbbench.utils import get_logger
from dbbench.utils.exceptions import (
    ConflictError,
    ContainerAlreadyExistsError,
    ContainerNotFoundError,
    ContainerRunningError,
    InvalidNameError,
    InvalidVersionError,
    SourceRunningError,
    StartFailureError,
    ValidationError,
)

logger = get_logger(__name__)

NAME_PATTERN = re.compile(r"^[a-zA-Z][a-zA-Z0-9_-]*$")

FILE_EXTENSIONS = {"sqlite": ".sqlite", "duckdb": ".duckdb"}

UPDATABLE_FIELDS = {
    "version",
    "port",
    "path",
    "bind_address",
    "aux_ports",
    "database",
    "databases",
    "status",
    "binary_path",
    "cloned_from",
}

_PORT_IN_USE_MARKERS = (
    "address already in use",
    "eaddrinuse",
    "could not bind",
    "socket already in use",
)
_PORT_IN_USE_RE = re.compile(r"port\b.*\bin use", re.IGNORECASE)


def is_valid_name(name: str) -> bool:
    """Check a container name: a letter followed by letters, digits, hyphens or underscores."""
    return bool(NAME_PATTERN.match(name or ""))


def is_port_in_use_error(output: str) -> bool:
    """Check whether server output reports that its port is taken."""
    lower = (output or "").lower()
    return any(marker in lower for marker in _PORT_IN_USE_MARKERS) or bool(
        _PORT_IN_USE_RE.search(lower)
    )


class ContainerManager:
    """
    Owns persisted container metadata and drives container lifecycles.

    The registry is the only writer of container records; engines and the
    process supervisor report state back through it.
    """

    def __init__(
        self,
        settings: Settings | None = None,
        db_manager: DatabaseManager | None = None,
        binaries: BinaryConfigStore | None = None,
        supervisor: ProcessManager | None = None,
        port_manager: PortManager | None = None,
        engine_factory: Callable[..., "engines.BaseEngine"] | None = None,
    ) -> None:
        """
        Initialize container manager.

        Args:
            settings: Application settings
            db_manager: State database manager
            binaries: Binary configuration store handed to engines
            supervisor: Process supervisor handed to engines
            port_manager: Port allocator
            engine_factory: Callable resolving an engine kind to an engine
        """
        self.settings = settings or get_settings()
        self.db_manager = db_manager or get_db_manager()
        self.binaries = binaries or BinaryConfigStore(self.settings.config_file).load()
        self.supervisor = supervisor or ProcessManager(self.settings)
        self.port_manager = port_manager or PortManager(
            self._recorded_ports, host=self.settings.bind_address
        )
        self._engine_factory = engine_factory or engines.get_engine

    # Helpers

    def engine_for(self, engine: str) -> "engines.BaseEngine":
        """Instantiate the engine implementation for a kind."""
        return self._engine_factory(
            engine, binaries=self.binaries, supervisor=self.supervisor, settings=self.settings
        )

    def resolve(self, name: str) -> Tuple[Container, "engines.BaseEngine", EngineConfig]:
        """
        Load a container together with its engine and engine config.

        Raises:
            ContainerNotFoundError: If the container does not exist
        """
        container = self.get(name)
        return container, self.engine_for(container.engine), EngineConfig.from_container(container)

    def _recorded_ports(self, exclude: str | None = None) -> Set[int]:
        with self.db_manager.get_session() as session:
            return ContainerRepository(session).all_ports(exclude)

    def _allocate_port(
        self,
        engine: "engines.BaseEngine",
        preferred: int | None = None,
        exclude: str | None = None,
        avoid: Tuple[int, ...] = (),
    ) -> Tuple[int, Dict[str, int]]:
        span = 2 if engine.aux_port_name else 1
        result = self.port_manager.find_available_port(
            engine.port_range,
            preferred=preferred or engine.default_port,
            exclude=exclude,
            span=span,
            avoid=avoid,
        )
        aux = {engine.aux_port_name: result.port + 1} if engine.aux_port_name else {}
        return result.port, aux

    def _file_path(self, engine: str, name: str) -> Path:
        return self.settings.containers_dir / engine / name / f"{name}{FILE_EXTENSIONS[engine]}"

    # Registry

    def create(
        self,
        name: str,
        engine: str,
        version: str | None = None,
        port: int | None = None,
        database: str | None = None,
        path: str | None = None,
        binary_path: str | None = None,
    ) -> Container:
        """
        Create a new stopped container.

        Args:
            name: Container name, unique across all engines
            engine: Engine kind
            version: Engine version; defaults to the engine's default version
            port: Preferred port; defaults to the engine's default port
            database: Primary database name
            path: Database file for file-based engines
            binary_path: Directory with bundled binaries

        Returns:
            Created container

        Raises:
            InvalidNameError: If the name is malformed
            InvalidEngineError: If the engine is unknown
            InvalidVersionError: If the version cannot be parsed
            ContainerAlreadyExistsError: If the name is taken
            ConflictError: If the requested port is not free
        """
        if not is_valid_name(name):
            raise InvalidNameError(name)

        kind = engines.parse_engine_kind(engine)
        impl = self.engine_for(kind.value)

        version = version or impl.default_version
        if parse_version(kind, version) is None:
            raise InvalidVersionError(version, kind.value)

        if self.get_config(name) is not None:
            raise ContainerAlreadyExistsError(name)

        database = database or impl.default_database
        aux_ports: Dict[str, int] = {}
        assigned_port: int | None = None

        if impl.file_based:
            data_path = Path(path).expanduser().resolve() if path else self._file_path(kind.value, name)
            with self.db_manager.get_session() as session:
                owner = FileDatabaseRepository(session).get_by_path(str(data_path))
            if owner is not None:
                raise ConflictError(f"{data_path} is already registered as container \"{owner.name}\"")
            data_path.parent.mkdir(parents=True, exist_ok=True)
        else:
            assigned_port, aux_ports = self._allocate_port(impl, preferred=port)
            if port is not None and assigned_port != port:
                raise ConflictError(f"Port {port} is already in use")
            data_path = self.supervisor.container_dir(name, kind.value) / "data"
            data_path.mkdir(parents=True, exist_ok=True)

        now = utc_now()
        container = Container(
            name=name,
            engine=kind.value,
            version=version,
            port=assigned_port,
            bind_address=self.settings.bind_address,
            aux_ports=aux_ports,
            path=str(data_path),
            database=database,
            databases=[database],
            binary_path=binary_path,
            status=STATUS_STOPPED,
            created_at=now,
            updated_at=now,
        )

        with self.db_manager.get_session() as session:
            container = ContainerRepository(session).create(container)
            if impl.file_based:
                FileDatabaseRepository(session).create(
                    FileDatabase(
                        name=name, engine=kind.value, file_path=str(data_path), created_at=now
                    )
                )

        logger.info(
            "Container created",
            extra={"container": name, "engine": kind.value, "port": assigned_port},
        )
        return container

    def list(self) -> List[Container]:
        """
        List all containers with statuses refreshed from the process supervisor.

        Returns:
            Containers ordered by engine and name
        """
        with self.db_manager.get_session() as session:
            repo = ContainerRepository(session)
            containers = repo.list_all()
            for container in containers:
                engine = self.engine_for(container.engine)
                running = engine.is_running(EngineConfig.from_container(container))
                status = STATUS_RUNNING if running else STATUS_STOPPED
                if container.status != status:
                    repo.update_status(container.name, status)
        return containers

    def get_config(self, name: str) -> Container | None:
        """Get a container by name, or None."""
        with self.db_manager.get_session() as session:
            return ContainerRepository(session).get_by_name(name)

    def get(self, name: str) -> Container:
        """
        Get a container by name.

        Raises:
            ContainerNotFoundError: If the container does not exist
        """
        container = self.get_config(name)
        if container is None:
            raise ContainerNotFoundError(name)
        return container

    def update_config(self, name: str, /, **changes) -> Container:
        """
        Update container fields and bump ``updated_at``.

        Raises:
            ContainerNotFoundError: If the container does not exist
            ValidationError: If a field cannot be updated
        """
        unknown = set(changes) - UPDATABLE_FIELDS
        if unknown:
            raise ValidationError(f"Cannot update fields: {', '.join(sorted(unknown))}")

        with self.db_manager.get_session() as session:
            repo = ContainerRepository(session)
            container = repo.get_by_name(name)
            if container is None:
                raise ContainerNotFoundError(name)
            for field, value in changes.items():
                setattr(container, field, value)
            container.updated_at = utc_now()
            container = repo.update(container)

        logger.debug("Container updated", extra={"container": name, "fields": sorted(changes)})
        return container

    def add_database(self, name: str, database: str) -> Container:
        """Track a database name on a container."""
        container = self.get(name)
        databases = list(container.databases or [])
        if database in databases:
            return container
        return self.update_config(name, databases=databases + [database])

    def remove_database(self, name: str, database: str) -> Container:
        """
        Stop tracking a database name on a container.

        Raises:
            ValidationError: If the database is the container's primary database
        """
        container = self.get(name)
        if database == container.database:
            raise ValidationError(f'Cannot remove primary database "{database}"')
        databases = [d for d in (container.databases or []) if d != database]
        return self.update_config(name, databases=databases)

    def clone(self, source: str, target: str) -> Container:
        """
        Copy a stopped container's data and metadata under a new name.

        Args:
            source: Existing container
            target: New container name

        Returns:
            The new, stopped container

        Raises:
            ContainerNotFoundError: If the source does not exist
            ContainerAlreadyExistsError: If the target exists
            SourceRunningError: If the source is running
        """
        if not is_valid_name(target):
            raise InvalidNameError(target)

        src, engine, config = self.resolve(source)
        if self.get_config(target) is not None:
            raise ContainerAlreadyExistsError(target)
        # A file-based container has no server process to stop
        if not engine.file_based and engine.is_running(config):
            raise SourceRunningError(source)

        port: int | None = None
        aux_ports: Dict[str, int] = {}
        if engine.file_based:
            target_path = self._file_path(src.engine, target)
            target_path.parent.mkdir(parents=True, exist_ok=True)
            if Path(src.path).exists():
                shutil.copy2(src.path, target_path)
        else:
            port, aux_ports = self._allocate_port(engine)
            target_path = self.supervisor.container_dir(target, src.engine) / "data"
            target_path.parent.mkdir(parents=True, exist_ok=True)
            shutil.copytree(src.path, target_path)

        now = utc_now()
        clone = Container(
            name=target,
            engine=src.engine,
            version=src.version,
            port=port,
            bind_address=src.bind_address,
            aux_ports=aux_ports,
            path=str(target_path),
            database=src.database,
            databases=list(src.databases or [src.database]),
            binary_path=src.binary_path,
            cloned_from=source,
            status=STATUS_STOPPED,
            created_at=now,
            updated_at=now,
        )
        with self.db_manager.get_session() as session:
            clone = ContainerRepository(session).create(clone)
            if engine.file_based:
                FileDatabaseRepository(session).create(
                    FileDatabase(
                        name=target, engine=src.engine, file_path=str(target_path), created_at=now
                    )
                )

        logger.info(
            "Container cloned", extra={"source": source, "container": target, "port": port}
        )
        return clone

    # Lifecycle

    def start(self, name: str) -> StartResult:
        """
        Start a container, moving it to a free port if its port was taken.

        Args:
            name: Container name

        Returns:
            StartResult with the final port and any previous port

        Raises:
            ContainerNotFoundError: If the container does not exist
            StartFailureError: If the server cannot be started
        """
        container, engine, config = self.resolve(name)

        if engine.is_running(config):
            if container.status != STATUS_RUNNING:
                self.update_config(name, status=STATUS_RUNNING)
            return StartResult(
                name=name,
                port=config.port,
                connection_string=engine.get_connection_string(config),
                already_running=True,
            )

        if engine.file_based:
            engine.start(config)
            with self.db_manager.get_session() as session:
                FileDatabaseRepository(session).mark_verified(name)
            self.update_config(name, status=STATUS_RUNNING)
            return StartResult(
                name=name, port=None, connection_string=engine.get_connection_string(config)
            )

        original_port = config.port
        tried: List[int] = []
        max_attempts = max(1, self.settings.start_max_retries)

        for attempt in range(1, max_attempts + 1):
            if tried or not self._ports_free(config):
                config = self._reassign_port(name, engine, config, tried)

            try:
                engine.start(config)
                break
            except StartFailureError as e:
                if attempt < max_attempts and is_port_in_use_error(f"{e}\n{e.output}"):
                    logger.warning(
                        "Port taken during startup, retrying on another port",
                        extra={"container": name, "port": config.port, "attempt": attempt},
                    )
                    if engine.is_running(config):
                        # The failed server is still up and would satisfy the next attempt
                        self.supervisor.terminate(name, config.engine.value)
                    tried.append(config.port)
                    continue
                raise

        self.update_config(name, status=STATUS_RUNNING)
        changed_from = original_port if config.port != original_port else None
        return StartResult(
            name=name,
            port=config.port,
            connection_string=engine.get_connection_string(config),
            port_changed_from=changed_from,
        )

    def _ports_free(self, config: EngineConfig) -> bool:
        ports = [config.port, *config.aux_ports.values()]
        return all(self.port_manager.is_port_available(p) for p in ports if p is not None)

    def _reassign_port(
        self,
        name: str,
        engine: "engines.BaseEngine",
        config: EngineConfig,
        tried: List[int],
    ) -> EngineConfig:
        port, aux_ports = self._allocate_port(
            engine, exclude=name, avoid=tuple(tried) + (config.port,)
        )
        logger.info(
            "Port unavailable, reassigning",
            extra={"container": name, "old_port": config.port, "new_port": port},
        )
        container = self.update_config(name, port=port, aux_ports=aux_ports)
        return EngineConfig.from_container(container)

    def stop(self, name: str) -> None:
        """
        Stop a container. Stopping a stopped container is a no-op.

        Raises:
            ContainerNotFoundError: If the container does not exist
        """
        _, engine, config = self.resolve(name)
        engine.stop(config)
        self.update_config(name, status=STATUS_STOPPED)
        logger.info("Container stopped", extra={"container": name})

    def remove(self, name: str, force: bool = False) -> None:
        """
        Delete a container's data and metadata.

        Args:
            name: Container name
            force: Stop a running container instead of refusing

        Raises:
            ContainerNotFoundError: If the container does not exist
            ContainerRunningError: If it is running and ``force`` is False
        """
        container, engine, config = self.resolve(name)

        if not engine.file_based and engine.is_running(config):
            if not force:
                raise ContainerRunningError(name)
            engine.stop(config)

        managed_root = self.settings.containers_dir.resolve()
        if engine.file_based and managed_root in Path(container.path).resolve().parents:
            Path(container.path).unlink(missing_ok=True)
        container_dir = self.supervisor.container_dir(name, container.engine)
        if container_dir.exists():
            shutil.rmtree(container_dir)

        with self.db_manager.get_session() as session:
            repo = ContainerRepository(session)
            record = repo.get_by_name(name)
            if record is not None:
                repo.delete(record)
            file_repo = FileDatabaseRepository(session)
            entry = file_repo.get(name)
            if entry is not None:
                file_repo.delete(entry)

        logger.info("Container removed", extra={"container": name, "engine": container.engine})

    def get_connection_string(self, name: str, database: str | None = None) -> str:
        """
        Build the connection string of a container.

        Raises:
            ContainerNotFoundError: If the container does not exist
        """
        _, engine, config = self.resolve(name)
        return engine.get_connection_string(config, database)


# Global instance
_container_manager: ContainerManager | None = None


def get_container_manager() -> ContainerManager:
    """Get or create the global container manager instance."""
    global _container_manager
    if _container_manager is None:
        _container_manager = ContainerManager()
    return _container_manager
