"""Redis and Valkey engines."""

from typing import List

from dbbench.engines.base import ServerEngine
from dbbench.engines.readiness import CommandProbe, Probe
from dbbench.models.schemas import EngineConfig, EngineKind

REDIS_CONF_TEMPLATE = """# Generated by dbbench, rewritten on every start
port {port}
bind {bind}
dir {data_dir}
dbfilename dump.rdb
daemonize no
appendonly no
save 900 1
save 300 10
save 60 10000
"""


class RedisEngine(ServerEngine):
    """Redis server configured through a rendered ``redis.conf``."""

    kind = EngineKind.REDIS
    display_name = "Redis"
    default_port = 6379
    port_range = (6379, 6400)
    default_database = "0"
    default_version = "7.4"
    server_binary = "redis-server"
    client_binary = "redis-cli"
    process_signature = "redis-server"
    conf_name = "redis.conf"
    install_hint = "Install Redis (e.g. brew install redis or apt-get install redis-server)"

    def initialize(self, config: EngineConfig) -> None:
        super().initialize(config)
        conf = self.container_dir(config) / self.conf_name
        conf.write_text(
            REDIS_CONF_TEMPLATE.format(
                port=config.port, bind=config.bind_address, data_dir=config.path
            ),
            encoding="utf-8",
        )

    def server_args(self, config: EngineConfig, server: str) -> List[str]:
        return [server, str(self.container_dir(config) / self.conf_name)]

    def _cli(self, config: EngineConfig) -> List[str]:
        return [
            self.resolve_tool(self.client_binary, config),
            "-h", self.connect_host(config),
            "-p", str(config.port),
        ]

    def readiness_probe(self, config: EngineConfig) -> Probe:
        return CommandProbe(self._cli(config) + ["PING"], expect="PONG")

    def shutdown(self, config: EngineConfig) -> None:
        # The server closes the connection instead of replying
        self._run(self._cli(config) + ["SHUTDOWN", "SAVE"], env=self.tool_env(config))

    def get_connection_string(self, config: EngineConfig, database: str | None = None) -> str:
        db = database or config.database or "0"
        return f"redis://{self.connect_host(config)}:{config.port}/{db}"

    def client_args(self, config: EngineConfig, database: str | None = None) -> List[str]:
        return self._cli(config) + ["-n", database or config.database or "0"]


class ValkeyEngine(RedisEngine):
    """Valkey server; a Redis fork sharing its configuration format."""

    kind = EngineKind.VALKEY
    display_name = "Valkey"
    default_version = "8.0"
    server_binary = "valkey-server"
    client_binary = "valkey-cli"
    process_signature = "valkey-server"
    conf_name = "valkey.conf"
    install_hint = "Install Valkey (e.g. brew install valkey)"
