"""Meilisearch engine."""

from typing import List

from dbbench.engines.base import ServerEngine
from dbbench.engines.readiness import HttpProbe, Probe
from dbbench.models.schemas import EngineConfig, EngineKind


class MeilisearchEngine(ServerEngine):
    """Meilisearch server in development mode without a master key."""

    kind = EngineKind.MEILISEARCH
    display_name = "Meilisearch"
    default_port = 7700
    port_range = (7700, 7800)
    default_database = "default"
    default_version = "1.12"
    server_binary = "meilisearch"
    process_signature = "meilisearch"
    install_hint = "Install Meilisearch (e.g. brew install meilisearch)"

    def server_args(self, config: EngineConfig, server: str) -> List[str]:
        return [
            server,
            "--db-path", config.path,
            "--http-addr", f"{config.bind_address}:{config.port}",
            "--env", "development",
            "--no-analytics",
        ]

    def readiness_probe(self, config: EngineConfig) -> Probe:
        return HttpProbe(f"http://{self.connect_host(config)}:{config.port}/health")

    def get_connection_string(self, config: EngineConfig, database: str | None = None) -> str:
        return f"http://{self.connect_host(config)}:{config.port}"
