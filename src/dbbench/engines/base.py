"""Engine capability contract shared by every supported database engine."""

import os
import re
import shutil
import subprocess
import sys
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Callable, Dict, List, Optional, Tuple

from dbbench.config import BinaryConfigStore, Settings, get_settings
from dbbench.engines.readiness import Probe, wait_for_ready
from dbbench.managers.library_env import detect_library_error, get_library_env
from dbbench.managers.process_manager import ProcessManager, get_process_manager
from dbbench.models.schemas import CommandResult, EngineConfig, EngineKind
from dbbench.utils import get_logger
from dbbench.utils.exceptions import (
    CommandFailedError,
    StartFailureError,
    ToolNotFoundError,
    UnsupportedOperationError,
)

logger = get_logger(__name__)

TIMEOUT_STATUS = 124

_VERSION_RE = re.compile(r"(\d+(?:\.\d+)+)")


def extract_version(output: str | None) -> str | None:
    """Pull the first dotted version number out of command output."""
    match = _VERSION_RE.search(output or "")
    return match.group(1) if match else None


def quote_identifier(name: str, quote: str = '"') -> str:
    """Quote an SQL identifier, doubling embedded quote characters."""
    return f"{quote}{name.replace(quote, quote * 2)}{quote}"


def quote_literal(value: str) -> str:
    """Quote an SQL string literal."""
    return "'" + value.replace("'", "''") + "'"


class BaseEngine(ABC):
    """
    Capability interface for one engine kind.

    Engines receive an :class:`EngineConfig` by value for every operation and
    never persist anything themselves; derived changes flow back through the
    container registry.
    """

    kind: EngineKind
    display_name: str
    default_port: Optional[int] = None
    port_range: Optional[Tuple[int, int]] = None
    default_database: str = ""
    default_version: str = ""
    file_based: bool = False
    server_binary: Optional[str] = None
    client_binary: Optional[str] = None
    process_signature: Optional[str] = None
    aux_port_name: Optional[str] = None
    extra_tools: Tuple[str, ...] = ()
    supports_pull: bool = False
    install_hint: Optional[str] = None

    def __init__(
        self,
        binaries: BinaryConfigStore | None = None,
        supervisor: ProcessManager | None = None,
        settings: Settings | None = None,
    ) -> None:
        """
        Initialize engine.

        Args:
            binaries: Binary configuration store used to resolve tool paths
            supervisor: Process supervisor for spawned servers
            settings: Application settings
        """
        self.settings = settings or get_settings()
        self.binaries = binaries
        self.supervisor = supervisor or get_process_manager()

    # Tools

    @classmethod
    def tools(cls) -> List[str]:
        """All binaries this engine may invoke."""
        names = [cls.server_binary, cls.client_binary, *cls.extra_tools]
        return list(dict.fromkeys(n for n in names if n))

    def resolve_tool(self, tool: str, config: EngineConfig | None = None) -> str:
        """
        Resolve a tool to an executable path.

        Lookup order: binary configuration store, the container's bundled
        ``bin/`` directory, then ``PATH``.

        Raises:
            ToolNotFoundError: If the tool cannot be found anywhere
        """
        if self.binaries is not None:
            configured = self.binaries.get_path(tool)
            if configured:
                return configured

        if config is not None and config.binary_path:
            for candidate in (tool, f"{tool}.exe"):
                bundled = Path(config.binary_path) / "bin" / candidate
                if bundled.exists():
                    return str(bundled)

        found = shutil.which(tool)
        if found:
            return found

        raise ToolNotFoundError(tool, self.install_hint)

    def tool_env(self, config: EngineConfig) -> Dict[str, str]:
        """Extra environment for any binary run against this container."""
        if config.binary_path:
            return get_library_env(config.binary_path) or {}
        return {}

    def connect_host(self, config: EngineConfig) -> str:
        """Address clients should dial to reach the server."""
        if config.bind_address in ("0.0.0.0", "::", ""):
            return "127.0.0.1"
        return config.bind_address

    def container_dir(self, config: EngineConfig) -> Path:
        """Per-container directory holding logs, PID file and rendered config."""
        return self.supervisor.container_dir(config.name, config.engine.value)

    # Lifecycle

    def is_running(self, config: EngineConfig) -> bool:
        """Ask the supervisor whether the container is alive."""
        return self.supervisor.is_running(
            config.name,
            config.engine.value,
            signature=self.process_signature,
            file_path=config.path if self.file_based else None,
        )

    @abstractmethod
    def start(self, config: EngineConfig) -> None:
        """
        Start the container and block until it is ready.

        Raises:
            StartFailureError: If the server fails to launch or become ready
        """

    @abstractmethod
    def stop(self, config: EngineConfig) -> None:
        """Stop the container. Stopping a stopped container is a no-op."""

    @abstractmethod
    def get_connection_string(self, config: EngineConfig, database: str | None = None) -> str:
        """Build the connection string for a database of this container."""

    def wait_for_ready(
        self,
        probe: Probe,
        max_attempts: int | None = None,
        interval_s: float | None = None,
        alive: Callable[[], bool] | None = None,
    ) -> bool:
        """Poll a readiness probe using configured defaults."""
        return wait_for_ready(
            probe,
            max_attempts=max_attempts or self.settings.readiness_attempts,
            interval_s=self.settings.readiness_interval_s if interval_s is None else interval_s,
            alive=alive,
        )

    # Client commands

    def client_args(self, config: EngineConfig, database: str | None = None) -> List[str]:
        """Command line that opens the client against this container."""
        raise UnsupportedOperationError(self.display_name, "client commands")

    def run_command(
        self, config: EngineConfig, args: List[str], database: str | None = None
    ) -> CommandResult:
        """
        Run the client binary with extra arguments and capture its output.

        A non-zero exit status is returned, not raised.
        """
        return self._run(
            self.client_args(config, database) + list(args), env=self.tool_env(config)
        )

    def run_command_streaming(
        self, config: EngineConfig, args: List[str], database: str | None = None
    ) -> int:
        """Run the client binary with output passed straight through; returns the exit code."""
        command = self.client_args(config, database) + list(args)
        env = dict(os.environ)
        env.update(self.tool_env(config))
        try:
            completed = subprocess.run(command, env=env, check=False)
        except FileNotFoundError as e:
            raise ToolNotFoundError(command[0], self.install_hint) from e
        return completed.returncode

    def connect(self, config: EngineConfig, database: str | None = None) -> int:
        """Open an interactive client session; REST engines print their endpoint."""
        if self.client_binary is None:
            sys.stdout.write(self.get_connection_string(config, database) + "\n")
            return 0
        return self.run_command_streaming(config, [], database)

    # Data movement

    def create_database(self, config: EngineConfig, database: str) -> None:
        """Create a database inside the running container."""
        raise UnsupportedOperationError(self.display_name, "create_database")

    def drop_database(self, config: EngineConfig, database: str) -> None:
        """Drop a database if it exists."""
        raise UnsupportedOperationError(self.display_name, "drop_database")

    def terminate_connections(self, config: EngineConfig, database: str) -> None:
        """Disconnect every other client from a database."""
        raise UnsupportedOperationError(self.display_name, "terminate_connections")

    def dump_database(self, config: EngineConfig, database: str, out_path: str) -> None:
        """Dump a local database to a file."""
        raise UnsupportedOperationError(self.display_name, "dump_database")

    def dump_from_connection_string(self, url: str, out_path: str) -> None:
        """Dump a remote database, addressed by URL, to a file."""
        raise UnsupportedOperationError(self.display_name, "dump_from_connection_string")

    def restore(self, config: EngineConfig, dump_path: str, database: str) -> None:
        """Restore a dump file into a local database."""
        raise UnsupportedOperationError(self.display_name, "restore")

    def get_version(self, config: EngineConfig) -> str | None:
        """Version reported by the running server."""
        raise UnsupportedOperationError(self.display_name, "get_version")

    def get_remote_version(self, url: str) -> str | None:
        """Version reported by a remote server, or None if it cannot be determined."""
        return None

    # Helpers

    def _run(
        self,
        args: List[str],
        env: Optional[Dict[str, str]] = None,
        stdin_path: Optional[str] = None,
        timeout_s: Optional[float] = None,
    ) -> CommandResult:
        """Run a command to completion and capture its output."""
        child_env = dict(os.environ)
        if env:
            child_env.update(env)
        timeout = timeout_s or self.settings.command_timeout_s

        logger.debug("Running command", extra={"binary": args[0], "engine": self.kind.value})
        try:
            if stdin_path:
                with open(stdin_path, "rb") as stdin:
                    completed = subprocess.run(
                        args, stdin=stdin, capture_output=True, env=child_env,
                        timeout=timeout, check=False,
                    )
            else:
                completed = subprocess.run(
                    args, stdin=subprocess.DEVNULL, capture_output=True, env=child_env,
                    timeout=timeout, check=False,
                )
        except FileNotFoundError as e:
            raise ToolNotFoundError(args[0], self.install_hint) from e
        except subprocess.TimeoutExpired:
            return CommandResult(
                status=TIMEOUT_STATUS, stdout="", stderr=f"{args[0]} timed out after {timeout}s"
            )

        return CommandResult(
            status=completed.returncode,
            stdout=completed.stdout.decode("utf-8", errors="replace"),
            stderr=completed.stderr.decode("utf-8", errors="replace"),
        )

    def _check(self, result: CommandResult, action: str) -> CommandResult:
        """Raise CommandFailedError unless the command succeeded."""
        if not result.ok:
            detail = (result.stderr or result.stdout).strip()
            raise CommandFailedError(f"{self.display_name}: {action} failed: {detail}", result)
        return result


class ServerEngine(BaseEngine):
    """Base for engines that run a native server process on a TCP port."""

    def initialize(self, config: EngineConfig) -> None:
        """Prepare the data directory and config files before spawning."""
        Path(config.path).mkdir(parents=True, exist_ok=True)

    @abstractmethod
    def server_args(self, config: EngineConfig, server: str) -> List[str]:
        """Command line that runs the server in the foreground."""

    @abstractmethod
    def readiness_probe(self, config: EngineConfig) -> Probe:
        """Probe that succeeds once the server accepts clients."""

    def shutdown(self, config: EngineConfig) -> None:
        """Ask the server to exit through its own mechanism; default relies on SIGTERM."""

    def start(self, config: EngineConfig) -> None:
        if self.is_running(config):
            logger.debug("Container already running", extra={"container": config.name})
            return

        self.initialize(config)
        server = self.resolve_tool(self.server_binary, config)
        args = self.server_args(config, server)

        try:
            process = self.supervisor.spawn(
                config.name,
                config.engine.value,
                args,
                env=self.tool_env(config),
                cwd=str(self.container_dir(config)),
            )
        except OSError as e:
            output = str(e)
            raise StartFailureError(
                f"{self.display_name} failed to launch: {e}",
                output=output,
                remediation=detect_library_error(output, self.display_name),
            ) from e

        ready = self.wait_for_ready(
            self.readiness_probe(config), alive=lambda: process.poll() is None
        )
        if ready:
            logger.info(
                "Server ready",
                extra={"container": config.name, "engine": config.engine.value, "port": config.port},
            )
            return

        output = self.supervisor.read_log_tail(config.name, config.engine.value)
        exited = process.poll() is not None
        if exited:
            # Clears the PID file of the dead process
            self.supervisor.terminate(config.name, config.engine.value)
            message = f"{self.display_name} exited during startup (code {process.returncode})"
        else:
            message = f"{self.display_name} did not become ready on port {config.port}"

        logger.error(
            "Server failed to start",
            extra={"container": config.name, "engine": config.engine.value, "exited": exited},
        )
        raise StartFailureError(
            message, output=output, remediation=detect_library_error(output, self.display_name)
        )

    def stop(self, config: EngineConfig) -> None:
        if not self.is_running(config):
            return

        pid = self.supervisor.get_pid(config.name, config.engine.value)
        try:
            self.shutdown(config)
        except (CommandFailedError, ToolNotFoundError) as e:
            logger.warning(
                "Graceful shutdown failed, falling back to signals",
                extra={"container": config.name, "error": str(e)},
            )
        else:
            if pid is not None:
                self.supervisor.wait_for_exit(pid, self.settings.stop_timeout_s)

        self.supervisor.terminate(config.name, config.engine.value)


class FileEngine(BaseEngine):
    """Base for embedded engines whose container is a single database file."""

    file_based = True
    scheme: str = ""

    @abstractmethod
    def create_file_args(self, client: str, path: str) -> List[str]:
        """Command line that creates an empty database file."""

    def start(self, config: EngineConfig) -> None:
        path = Path(config.path)
        if path.exists():
            return
        path.parent.mkdir(parents=True, exist_ok=True)
        client = self.resolve_tool(self.client_binary, config)
        result = self._run(self.create_file_args(client, str(path)), env=self.tool_env(config))
        if not result.ok or not path.exists():
            output = result.stderr or result.stdout
            raise StartFailureError(
                f"Could not create {self.display_name} database at {path}",
                output=output,
                remediation=detect_library_error(output, self.display_name),
            )
        logger.info("Database file created", extra={"container": config.name, "path": str(path)})

    def stop(self, config: EngineConfig) -> None:
        return None

    def get_connection_string(self, config: EngineConfig, database: str | None = None) -> str:
        return f"{self.scheme}:///{Path(config.path).resolve().as_posix()}"

    def client_args(self, config: EngineConfig, database: str | None = None) -> List[str]:
        return [self.resolve_tool(self.client_binary, config), config.path]
