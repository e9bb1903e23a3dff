"""Value types passed between dbbench components."""

from dataclasses import dataclass
from enum import Enum
from typing import Dict, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field

from .containers import Container


class EngineKind(str, Enum):
    """Closed set of supported database engines."""

    POSTGRESQL = "postgresql"
    MYSQL = "mysql"
    MARIADB = "mariadb"
    MONGODB = "mongodb"
    REDIS = "redis"
    VALKEY = "valkey"
    CLICKHOUSE = "clickhouse"
    QDRANT = "qdrant"
    MEILISEARCH = "meilisearch"
    COUCHDB = "couchdb"
    SQLITE = "sqlite"
    DUCKDB = "duckdb"


STATUS_RUNNING = "running"
STATUS_STOPPED = "stopped"


class EngineConfig(BaseModel):
    """Read-only view of a container handed to engine operations."""

    model_config = ConfigDict(frozen=True)

    name: str
    engine: EngineKind
    version: str
    port: Optional[int] = None
    path: str
    bind_address: str = "127.0.0.1"
    aux_ports: Dict[str, int] = Field(default_factory=dict)
    database: str
    binary_path: Optional[str] = None

    @classmethod
    def from_container(cls, container: Container) -> "EngineConfig":
        """Build an engine config from a persisted container."""
        return cls(
            name=container.name,
            engine=EngineKind(container.engine),
            version=container.version,
            port=container.port,
            path=container.path,
            bind_address=container.bind_address,
            aux_ports=dict(container.aux_ports or {}),
            database=container.database,
            binary_path=container.binary_path,
        )


@dataclass
class CommandResult:
    """Result of a buffered client-binary invocation."""

    status: int
    stdout: str
    stderr: str

    @property
    def ok(self) -> bool:
        """Whether the command exited with status 0."""
        return self.status == 0


@dataclass
class PortResult:
    """Port chosen by the port allocator."""

    port: int
    is_default: bool


@dataclass
class StartResult:
    """Outcome of starting a container."""

    name: str
    port: Optional[int]
    connection_string: str
    already_running: bool = False
    port_changed_from: Optional[int] = None


class PullRequest(BaseModel):
    """Intent to replicate a remote database into a local container."""

    container: str = Field(..., description="Local container name")
    from_url: str = Field(..., description="Connection URL of the remote source")
    database: Optional[str] = Field(
        None, description="Target database (defaults to the container's primary database)"
    )
    as_database: Optional[str] = Field(
        None, description="Clone into this new database instead of replacing the target"
    )
    no_backup: bool = Field(default=False, description="Skip the pre-replace backup")
    force: bool = Field(
        default=False,
        description="Confirm destructive choices (required with no_backup, overwrites clone target)",
    )
    dry_run: bool = Field(default=False, description="Compute the result without changing anything")
    post_script: Optional[str] = Field(None, description="Script to run after a successful pull")


class PullResult(BaseModel):
    """Outcome of a pull."""

    success: bool = Field(..., description="Whether the pull completed")
    mode: Literal["replace", "clone"] = Field(..., description="Resolved pull mode")
    container: str = Field(..., description="Local container name")
    port: Optional[int] = Field(None, description="Local container port")
    database: str = Field(..., description="Database holding the pulled data")
    database_url: str = Field(..., description="Connection string of that database")
    backup_database: Optional[str] = Field(None, description="Backup of the replaced data")
    backup_url: Optional[str] = Field(None, description="Connection string of the backup")
    source: str = Field(..., description="Source URL with credentials redacted")
    message: str = Field(..., description="Human readable summary")
