"""MySQL and MariaDB engines."""

from pathlib import Path
from typing import Dict, List, Tuple
from urllib.parse import unquote, urlsplit

from dbbench.engines.base import ServerEngine, extract_version, quote_identifier, quote_literal
from dbbench.engines.readiness import CommandProbe, Probe
from dbbench.models.schemas import EngineConfig, EngineKind
from dbbench.utils import get_logger
from dbbench.utils.exceptions import InvalidUrlError, StartFailureError

logger = get_logger(__name__)

ROOT_USER = "root"


class MySQLEngine(ServerEngine):
    """MySQL server run with ``mysqld --no-defaults`` against a private data directory."""

    kind = EngineKind.MYSQL
    display_name = "MySQL"
    default_port = 3306
    port_range = (3306, 3400)
    default_database = "mysql"
    default_version = "8.4"
    server_binary = "mysqld"
    client_binary = "mysql"
    process_signature = "mysqld"
    admin_binary = "mysqladmin"
    dump_binary = "mysqldump"
    extra_tools = ("mysqladmin", "mysqldump")
    supports_pull = True
    install_hint = "Install MySQL (e.g. brew install mysql or apt-get install mysql-server)"

    def _is_initialized(self, config: EngineConfig) -> bool:
        return (Path(config.path) / "mysql").is_dir()

    def init_args(self, config: EngineConfig) -> List[str]:
        """Command line that creates the system tables in an empty data directory."""
        return [
            self.resolve_tool(self.server_binary, config),
            "--no-defaults",
            "--initialize-insecure",
            f"--datadir={config.path}",
        ]

    def initialize(self, config: EngineConfig) -> None:
        if self._is_initialized(config):
            return

        Path(config.path).mkdir(parents=True, exist_ok=True)
        result = self._run(self.init_args(config), env=self.tool_env(config))
        if not result.ok:
            raise StartFailureError(
                f"{self.display_name} data directory initialization failed",
                output=result.stderr or result.stdout,
            )
        logger.info(
            "Data directory initialized",
            extra={"container": config.name, "engine": self.kind.value},
        )

    def server_args(self, config: EngineConfig, server: str) -> List[str]:
        container_dir = self.container_dir(config)
        return [
            server,
            "--no-defaults",
            f"--datadir={config.path}",
            f"--port={config.port}",
            f"--bind-address={config.bind_address}",
            f"--socket={container_dir / 'mysqld.sock'}",
            f"--pid-file={container_dir / 'mysqld-server.pid'}",
        ]

    def _admin_args(self, config: EngineConfig) -> List[str]:
        return [
            self.resolve_tool(self.admin_binary, config),
            "-h", self.connect_host(config),
            "-P", str(config.port),
            "-u", ROOT_USER,
        ]

    def readiness_probe(self, config: EngineConfig) -> Probe:
        return CommandProbe(self._admin_args(config) + ["ping"])

    def shutdown(self, config: EngineConfig) -> None:
        self._check(
            self._run(self._admin_args(config) + ["shutdown"], env=self.tool_env(config)),
            "shutdown",
        )

    def get_connection_string(self, config: EngineConfig, database: str | None = None) -> str:
        db = database or config.database
        return f"mysql://{ROOT_USER}@{self.connect_host(config)}:{config.port}/{db}"

    def client_args(self, config: EngineConfig, database: str | None = None) -> List[str]:
        return [
            self.resolve_tool(self.client_binary, config),
            "-h", self.connect_host(config),
            "-P", str(config.port),
            "-u", ROOT_USER,
            database or config.database,
        ]

    def _sql(self, config: EngineConfig, sql: str):
        return self.run_command(config, ["-N", "-B", "-e", sql])

    def create_database(self, config: EngineConfig, database: str) -> None:
        self._check(
            self._sql(config, f"CREATE DATABASE {quote_identifier(database, '`')}"),
            f"create database {database}",
        )

    def drop_database(self, config: EngineConfig, database: str) -> None:
        self._check(
            self._sql(config, f"DROP DATABASE IF EXISTS {quote_identifier(database, '`')}"),
            f"drop database {database}",
        )

    def terminate_connections(self, config: EngineConfig, database: str) -> None:
        result = self._check(
            self._sql(
                config,
                "SELECT id FROM information_schema.processlist "
                f"WHERE db = {quote_literal(database)} AND id <> CONNECTION_ID()",
            ),
            f"list connections to {database}",
        )
        for line in result.stdout.split():
            if line.isdigit():
                # The session may already be gone
                self._sql(config, f"KILL {line}")

    def dump_database(self, config: EngineConfig, database: str, out_path: str) -> None:
        self._check(
            self._run(
                [
                    self.resolve_tool(self.dump_binary, config),
                    "-h", self.connect_host(config),
                    "-P", str(config.port),
                    "-u", ROOT_USER,
                    "--single-transaction",
                    "--routines",
                    "--triggers",
                    f"--result-file={out_path}",
                    database,
                ],
                env=self.tool_env(config),
            ),
            f"dump of {database}",
        )

    def dump_from_connection_string(self, url: str, out_path: str) -> None:
        args, env, database = _remote_args(url)
        if not database:
            raise InvalidUrlError("missing database name")
        self._check(
            self._run(
                [self.resolve_tool(self.dump_binary)] + args + [
                    "--single-transaction",
                    "--routines",
                    "--triggers",
                    f"--result-file={out_path}",
                    database,
                ],
                env=env,
            ),
            "remote dump",
        )

    def restore(self, config: EngineConfig, dump_path: str, database: str) -> None:
        self._check(
            self._run(
                self.client_args(config, database),
                env=self.tool_env(config),
                stdin_path=dump_path,
            ),
            f"restore into {database}",
        )

    def get_version(self, config: EngineConfig) -> str | None:
        result = self._sql(config, "SELECT VERSION()")
        return extract_version(result.stdout) if result.ok else None

    def get_remote_version(self, url: str) -> str | None:
        args, env, _ = _remote_args(url)
        result = self._run(
            [self.resolve_tool(self.client_binary)] + args + ["-N", "-B", "-e", "SELECT VERSION()"],
            env=env,
        )
        return extract_version(result.stdout) if result.ok else None


class MariaDBEngine(MySQLEngine):
    """MariaDB server; shares the MySQL client protocol and dump format."""

    kind = EngineKind.MARIADB
    display_name = "MariaDB"
    default_port = 3307
    port_range = (3307, 3400)
    default_version = "11.4"
    server_binary = "mariadbd"
    client_binary = "mariadb"
    process_signature = "mariadbd"
    admin_binary = "mariadb-admin"
    dump_binary = "mariadb-dump"
    extra_tools = ("mariadb-admin", "mariadb-dump", "mariadb-install-db")
    install_hint = "Install MariaDB (e.g. brew install mariadb or apt-get install mariadb-server)"

    def init_args(self, config: EngineConfig) -> List[str]:
        return [
            self.resolve_tool("mariadb-install-db", config),
            "--no-defaults",
            f"--datadir={config.path}",
            "--auth-root-authentication-method=normal",
            "--skip-test-db",
        ]


def _remote_args(url: str) -> Tuple[List[str], Dict[str, str], str]:
    """
    Translate a mysql:// URL into client arguments.

    The password travels through ``MYSQL_PWD`` so it never shows up in the
    process list.

    Returns:
        Connection arguments, extra environment and the database name
    """
    try:
        parts = urlsplit(url)
        port = parts.port
    except ValueError as e:
        raise InvalidUrlError(str(e)) from e
    if not parts.hostname:
        raise InvalidUrlError("missing host")

    args = ["-h", parts.hostname, "-P", str(port or 3306)]
    if parts.username:
        args += ["-u", unquote(parts.username)]
    env = {"MYSQL_PWD": unquote(parts.password)} if parts.password else {}
    return args, env, unquote(parts.path.lstrip("/"))
