"""SQLAlchemy models and value types for dbbench."""

from .base import Base
from .containers import Container
from .file_databases import FileDatabase
from .schemas import (
    STATUS_RUNNING,
    STATUS_STOPPED,
    CommandResult,
    EngineConfig,
    EngineKind,
    PortResult,
    PullRequest,
    PullResult,
    StartResult,
)

__all__ = [
    "Base",
    "CommandResult",
    "Container",
    "EngineConfig",
    "EngineKind",
    "FileDatabase",
    "PortResult",
    "PullRequest",
    "PullResult",
    "STATUS_RUNNING",
    "STATUS_STOPPED",
    "StartResult",
]
