"""Qdrant vector database engine."""

from pathlib import Path
from typing import List

from dbbench.engines.base import ServerEngine
from dbbench.engines.readiness import HttpProbe, Probe
from dbbench.models.schemas import EngineConfig, EngineKind

CONFIG_TEMPLATE = """# Generated by dbbench, rewritten on every start
storage:
  storage_path: "{data_dir}"
service:
  host: "{bind}"
  http_port: {port}
  grpc_port: {grpc_port}
telemetry_disabled: true
"""


class QdrantEngine(ServerEngine):
    """Qdrant server; REST on ``port`` and gRPC on ``port + 1``."""

    kind = EngineKind.QDRANT
    display_name = "Qdrant"
    default_port = 6333
    port_range = (6333, 6400)
    default_database = "default"
    default_version = "1.16"
    server_binary = "qdrant"
    process_signature = "qdrant"
    aux_port_name = "grpc"
    install_hint = "Download Qdrant from https://github.com/qdrant/qdrant/releases"

    def grpc_port(self, config: EngineConfig) -> int:
        """gRPC port, always one above the REST port."""
        return config.aux_ports.get(self.aux_port_name) or config.port + 1

    def initialize(self, config: EngineConfig) -> None:
        super().initialize(config)
        (self.container_dir(config) / "config.yaml").write_text(
            CONFIG_TEMPLATE.format(
                data_dir=Path(config.path).as_posix(),
                bind=config.bind_address,
                port=config.port,
                grpc_port=self.grpc_port(config),
            ),
            encoding="utf-8",
        )

    def server_args(self, config: EngineConfig, server: str) -> List[str]:
        return [server, "--config-path", str(self.container_dir(config) / "config.yaml")]

    def readiness_probe(self, config: EngineConfig) -> Probe:
        return HttpProbe(f"http://{self.connect_host(config)}:{config.port}/healthz")

    def get_connection_string(self, config: EngineConfig, database: str | None = None) -> str:
        return f"http://{self.connect_host(config)}:{config.port}"
