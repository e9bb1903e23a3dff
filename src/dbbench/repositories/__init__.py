"""Repository pattern implementations for data access."""

from .base import BaseRepository
from .containers import ContainerRepository
from .file_databases import FileDatabaseRepository

__all__ = [
    "BaseRepository",
    "ContainerRepository",
    "FileDatabaseRepository",
]
