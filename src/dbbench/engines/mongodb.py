"""MongoDB engine."""

from typing import List

from dbbench.engines.base import ServerEngine, extract_version
from dbbench.engines.readiness import CommandProbe, Probe
from dbbench.models.schemas import EngineConfig, EngineKind
from dbbench.utils import get_logger

logger = get_logger(__name__)


def _js_string(value: str) -> str:
    return "'" + value.replace("\\", "\\\\").replace("'", "\\'") + "'"


class MongoDBEngine(ServerEngine):
    """MongoDB server (mongod) driven through mongosh and the database tools."""

    kind = EngineKind.MONGODB
    display_name = "MongoDB"
    default_port = 27017
    port_range = (27017, 27100)
    default_database = "test"
    default_version = "8.0"
    server_binary = "mongod"
    client_binary = "mongosh"
    process_signature = "mongod"
    extra_tools = ("mongodump", "mongorestore")
    supports_pull = True
    install_hint = "Install MongoDB server, mongosh and the MongoDB Database Tools"

    def server_args(self, config: EngineConfig, server: str) -> List[str]:
        return [
            server,
            "--dbpath", config.path,
            "--port", str(config.port),
            "--bind_ip", config.bind_address,
        ]

    def _shell(self, config: EngineConfig, database: str = "admin") -> List[str]:
        return [
            self.resolve_tool(self.client_binary, config),
            "--quiet",
            "--host", self.connect_host(config),
            "--port", str(config.port),
            database,
        ]

    def readiness_probe(self, config: EngineConfig) -> Probe:
        return CommandProbe(
            self._shell(config) + ["--eval", "db.runCommand({ping: 1}).ok"], expect="1"
        )

    def shutdown(self, config: EngineConfig) -> None:
        # The connection drops while the server exits, so the exit status is meaningless
        self._run(self._shell(config) + ["--eval", "db.shutdownServer()"], env=self.tool_env(config))

    def get_connection_string(self, config: EngineConfig, database: str | None = None) -> str:
        db = database or config.database
        return f"mongodb://{self.connect_host(config)}:{config.port}/{db}"

    def client_args(self, config: EngineConfig, database: str | None = None) -> List[str]:
        return [
            self.resolve_tool(self.client_binary, config),
            self.get_connection_string(config, database),
        ]

    def _eval(self, config: EngineConfig, script: str):
        return self._run(self._shell(config) + ["--eval", script], env=self.tool_env(config))

    def create_database(self, config: EngineConfig, database: str) -> None:
        # Databases are materialized by their first write
        logger.debug(
            "MongoDB creates databases lazily", extra={"container": config.name, "database": database}
        )

    def drop_database(self, config: EngineConfig, database: str) -> None:
        self._check(
            self._eval(config, f"db.getSiblingDB({_js_string(database)}).dropDatabase()"),
            f"drop database {database}",
        )

    def terminate_connections(self, config: EngineConfig, database: str) -> None:
        # dropDatabase does not wait on other sessions
        return None

    def dump_database(self, config: EngineConfig, database: str, out_path: str) -> None:
        self._check(
            self._run(
                [
                    self.resolve_tool("mongodump", config),
                    "--host", self.connect_host(config),
                    "--port", str(config.port),
                    "--db", database,
                    f"--archive={out_path}",
                ],
                env=self.tool_env(config),
            ),
            f"dump of {database}",
        )

    def dump_from_connection_string(self, url: str, out_path: str) -> None:
        self._check(
            self._run([self.resolve_tool("mongodump"), f"--uri={url}", f"--archive={out_path}"]),
            "remote dump",
        )

    def restore(self, config: EngineConfig, dump_path: str, database: str) -> None:
        self._check(
            self._run(
                [
                    self.resolve_tool("mongorestore", config),
                    "--host", self.connect_host(config),
                    "--port", str(config.port),
                    f"--archive={dump_path}",
                    "--nsFrom", "$db$.$coll$",
                    "--nsTo", f"{database}.$coll$",
                    "--drop",
                ],
                env=self.tool_env(config),
            ),
            f"restore into {database}",
        )

    def get_version(self, config: EngineConfig) -> str | None:
        result = self._eval(config, "db.version()")
        return extract_version(result.stdout) if result.ok else None

    def get_remote_version(self, url: str) -> str | None:
        result = self._run([self.resolve_tool(self.client_binary), url, "--quiet", "--eval", "db.version()"])
        return extract_version(result.stdout) if result.ok else None
