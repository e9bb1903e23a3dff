"""CouchDB engine."""

from pathlib import Path
from typing import Dict, List

from dbbench.engines.base import ServerEngine
from dbbench.engines.readiness import HttpProbe, Probe
from dbbench.models.schemas import EngineConfig, EngineKind

ADMIN_USER = "admin"
ADMIN_PASSWORD = "admin"

LOCAL_INI_TEMPLATE = """; Generated by dbbench, rewritten on every start
[couchdb]
database_dir = {data_dir}
view_index_dir = {data_dir}

[chttpd]
port = {port}
bind_address = {bind}
require_valid_user = false

[chttpd_auth]
require_valid_user = false

[admins]
{user} = {password}
"""

# Node name carries the port so several instances can run side by side
VM_ARGS_TEMPLATE = """# Generated by dbbench
-name couchdb_{port}@127.0.0.1
-kernel inet_dist_use_interface {{127,0,0,1}}
-kernel error_logger silent
-sasl sasl_error_logger false
"""


class CouchDBEngine(ServerEngine):
    """CouchDB server; requires an admin account, fixed to admin/admin."""

    kind = EngineKind.COUCHDB
    display_name = "CouchDB"
    default_port = 5984
    port_range = (5984, 6084)
    default_database = "default"
    default_version = "3.4"
    server_binary = "couchdb"
    process_signature = "couchdb"
    install_hint = "Install CouchDB from https://couchdb.apache.org/#download"

    def initialize(self, config: EngineConfig) -> None:
        super().initialize(config)
        container_dir = self.container_dir(config)
        (container_dir / "local.ini").write_text(
            LOCAL_INI_TEMPLATE.format(
                data_dir=Path(config.path).as_posix(),
                port=config.port,
                bind=config.bind_address,
                user=ADMIN_USER,
                password=ADMIN_PASSWORD,
            ),
            encoding="utf-8",
        )
        (container_dir / "vm.args").write_text(
            VM_ARGS_TEMPLATE.format(port=config.port), encoding="utf-8"
        )

    def tool_env(self, config: EngineConfig) -> Dict[str, str]:
        env = super().tool_env(config)
        server = Path(self.resolve_tool(self.server_binary, config)).resolve()
        install_dir = server.parent.parent
        container_dir = self.container_dir(config)
        env.update(
            {
                "COUCHDB_INI_FILES": (
                    f"{install_dir / 'etc' / 'default.ini'} {container_dir / 'local.ini'}"
                ),
                "COUCHDB_ARGS_FILE": str(container_dir / "vm.args"),
            }
        )
        return env

    def server_args(self, config: EngineConfig, server: str) -> List[str]:
        return [server]

    def readiness_probe(self, config: EngineConfig) -> Probe:
        return HttpProbe(f"http://{self.connect_host(config)}:{config.port}/_up")

    def get_connection_string(self, config: EngineConfig, database: str | None = None) -> str:
        base = f"http://{ADMIN_USER}:{ADMIN_PASSWORD}@{self.connect_host(config)}:{config.port}"
        return f"{base}/{database}" if database else base
