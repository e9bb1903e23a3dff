"""ClickHouse engine."""

from pathlib import Path
from typing import List

from dbbench.engines.base import ServerEngine
from dbbench.engines.readiness import HttpProbe, Probe
from dbbench.models.schemas import EngineConfig, EngineKind

CONFIG_TEMPLATE = """<?xml version="1.0"?>
<!-- Generated by dbbench, rewritten on every start -->
<clickhouse>
    <logger>
        <console>1</console>
        <level>warning</level>
    </logger>
    <listen_host>{bind}</listen_host>
    <tcp_port>{port}</tcp_port>
    <http_port>{http_port}</http_port>
    <path>{data_dir}/</path>
    <tmp_path>{data_dir}/tmp/</tmp_path>
    <user_files_path>{data_dir}/user_files/</user_files_path>
    <format_schema_path>{data_dir}/format_schemas/</format_schema_path>
    <users>
        <default>
            <password></password>
            <networks><ip>::/0</ip></networks>
            <profile>default</profile>
            <quota>default</quota>
            <access_management>1</access_management>
        </default>
    </users>
    <profiles><default/></profiles>
    <quotas><default/></quotas>
</clickhouse>
"""


class ClickHouseEngine(ServerEngine):
    """ClickHouse server; native protocol on ``port`` and HTTP on ``port + 1``."""

    kind = EngineKind.CLICKHOUSE
    display_name = "ClickHouse"
    default_port = 9000
    port_range = (9000, 9100)
    default_database = "default"
    default_version = "25.6"
    server_binary = "clickhouse"
    client_binary = "clickhouse"
    process_signature = "clickhouse"
    aux_port_name = "http"
    install_hint = "Install ClickHouse (curl https://clickhouse.com/ | sh)"

    def http_port(self, config: EngineConfig) -> int:
        """Secondary HTTP port, always one above the native port."""
        return config.aux_ports.get(self.aux_port_name) or config.port + 1

    def initialize(self, config: EngineConfig) -> None:
        super().initialize(config)
        (self.container_dir(config) / "config.xml").write_text(
            CONFIG_TEMPLATE.format(
                bind=config.bind_address,
                port=config.port,
                http_port=self.http_port(config),
                data_dir=Path(config.path).as_posix(),
            ),
            encoding="utf-8",
        )

    def server_args(self, config: EngineConfig, server: str) -> List[str]:
        return [server, "server", f"--config-file={self.container_dir(config) / 'config.xml'}"]

    def readiness_probe(self, config: EngineConfig) -> Probe:
        return HttpProbe(f"http://{self.connect_host(config)}:{self.http_port(config)}/ping")

    def get_connection_string(self, config: EngineConfig, database: str | None = None) -> str:
        db = database or config.database
        return f"clickhouse://default@{self.connect_host(config)}:{config.port}/{db}"

    def client_args(self, config: EngineConfig, database: str | None = None) -> List[str]:
        return [
            self.resolve_tool(self.client_binary, config),
            "client",
            "--host", self.connect_host(config),
            "--port", str(config.port),
            "--database", database or config.database,
        ]
