"""PostgreSQL engine."""

from pathlib import Path
from typing import List

from dbbench.engines.base import ServerEngine, extract_version, quote_identifier, quote_literal
from dbbench.engines.readiness import CommandProbe, Probe
from dbbench.models.schemas import EngineConfig, EngineKind
from dbbench.utils import get_logger
from dbbench.utils.exceptions import StartFailureError

logger = get_logger(__name__)

SUPERUSER = "postgres"
MAINTENANCE_DB = "postgres"


class PostgreSQLEngine(ServerEngine):
    """PostgreSQL server managed through initdb, postgres and pg_ctl."""

    kind = EngineKind.POSTGRESQL
    display_name = "PostgreSQL"
    default_port = 5432
    port_range = (5432, 5500)
    default_database = "postgres"
    default_version = "17"
    server_binary = "postgres"
    client_binary = "psql"
    process_signature = "postgres"
    extra_tools = ("initdb", "pg_ctl", "pg_isready", "pg_dump", "pg_restore")
    supports_pull = True
    install_hint = "Install PostgreSQL client and server tools (e.g. brew install postgresql@17)"

    def initialize(self, config: EngineConfig) -> None:
        data_dir = Path(config.path)
        if (data_dir / "PG_VERSION").exists():
            return

        data_dir.mkdir(parents=True, exist_ok=True)
        initdb = self.resolve_tool("initdb", config)
        result = self._run(
            [
                initdb,
                "-D", str(data_dir),
                "-U", SUPERUSER,
                "--auth=trust",
                "--encoding=UTF8",
                "--no-locale",
            ],
            env=self.tool_env(config),
        )
        if not result.ok:
            raise StartFailureError(
                "PostgreSQL data directory initialization failed",
                output=result.stderr or result.stdout,
            )
        logger.info("PostgreSQL data directory initialized", extra={"container": config.name})

    def server_args(self, config: EngineConfig, server: str) -> List[str]:
        return [
            server,
            "-D", config.path,
            "-p", str(config.port),
            "-c", f"listen_addresses={config.bind_address}",
            "-c", "unix_socket_directories=",
        ]

    def readiness_probe(self, config: EngineConfig) -> Probe:
        return CommandProbe(
            [
                self.resolve_tool("pg_isready", config),
                "-h", self.connect_host(config),
                "-p", str(config.port),
                "-U", SUPERUSER,
            ]
        )

    def shutdown(self, config: EngineConfig) -> None:
        pg_ctl = self.resolve_tool("pg_ctl", config)
        self._check(
            self._run(
                [pg_ctl, "stop", "-D", config.path, "-m", "fast", "-w",
                 "-t", str(self.settings.stop_timeout_s)],
                env=self.tool_env(config),
            ),
            "pg_ctl stop",
        )

    def get_connection_string(self, config: EngineConfig, database: str | None = None) -> str:
        db = database or config.database
        return f"postgresql://{SUPERUSER}@{self.connect_host(config)}:{config.port}/{db}"

    def client_args(self, config: EngineConfig, database: str | None = None) -> List[str]:
        return [
            self.resolve_tool("psql", config),
            "-h", self.connect_host(config),
            "-p", str(config.port),
            "-U", SUPERUSER,
            "-d", database or config.database,
        ]

    def _sql(self, config: EngineConfig, sql: str, database: str = MAINTENANCE_DB):
        return self.run_command(config, ["-v", "ON_ERROR_STOP=1", "-tAc", sql], database)

    def create_database(self, config: EngineConfig, database: str) -> None:
        self._check(
            self._sql(config, f"CREATE DATABASE {quote_identifier(database)}"),
            f"create database {database}",
        )

    def drop_database(self, config: EngineConfig, database: str) -> None:
        self._check(
            self._sql(config, f"DROP DATABASE IF EXISTS {quote_identifier(database)}"),
            f"drop database {database}",
        )

    def terminate_connections(self, config: EngineConfig, database: str) -> None:
        self._check(
            self._sql(
                config,
                "SELECT pg_terminate_backend(pid) FROM pg_stat_activity "
                f"WHERE datname = {quote_literal(database)} AND pid <> pg_backend_pid()",
            ),
            f"terminate connections to {database}",
        )

    def dump_database(self, config: EngineConfig, database: str, out_path: str) -> None:
        self._check(
            self._run(
                [
                    self.resolve_tool("pg_dump", config),
                    "-h", self.connect_host(config),
                    "-p", str(config.port),
                    "-U", SUPERUSER,
                    "-Fc",
                    "-f", out_path,
                    database,
                ],
                env=self.tool_env(config),
            ),
            f"dump of {database}",
        )

    def dump_from_connection_string(self, url: str, out_path: str) -> None:
        self._check(
            self._run(
                [self.resolve_tool("pg_dump"), f"--dbname={url}", "-Fc", "--no-owner",
                 "-f", out_path]
            ),
            "remote dump",
        )

    def restore(self, config: EngineConfig, dump_path: str, database: str) -> None:
        self._check(
            self._run(
                [
                    self.resolve_tool("pg_restore", config),
                    "-h", self.connect_host(config),
                    "-p", str(config.port),
                    "-U", SUPERUSER,
                    "-d", database,
                    "--no-owner",
                    "--no-acl",
                    dump_path,
                ],
                env=self.tool_env(config),
            ),
            f"restore into {database}",
        )

    def get_version(self, config: EngineConfig) -> str | None:
        result = self._sql(config, "SHOW server_version")
        return extract_version(result.stdout) if result.ok else None

    def get_remote_version(self, url: str) -> str | None:
        result = self._run([self.resolve_tool("psql"), url, "-tAc", "SHOW server_version"])
        return extract_version(result.stdout) if result.ok else None

