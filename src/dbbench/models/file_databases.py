"""Central registry of file-based databases (sqlite, duckdb)."""

from datetime import datetime

from sqlalchemy import DateTime, String
from sqlalchemy.orm import Mapped, mapped_column

from .base import Base


class FileDatabase(Base):
    """Model mapping a container name to a database file living outside the dbbench home."""

    __tablename__ = "file_databases"

    name: Mapped[str] = mapped_column(String(100), primary_key=True)
    engine: Mapped[str] = mapped_column(String(20), nullable=False)
    file_path: Mapped[str] = mapped_column(String(1000), nullable=False, unique=True)

    created_at: Mapped[datetime] = mapped_column(DateTime, nullable=False)
    last_verified_at: Mapped[datetime | None] = mapped_column(DateTime, nullable=True)

    def __repr__(self) -> str:
        """String representation of FileDatabase."""
        return f"<FileDatabase(name={self.name}, engine={self.engine}, file_path={self.file_path})>"
