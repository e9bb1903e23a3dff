"""Container model for tracking managed database instances."""

from datetime import datetime

from sqlalchemy import DateTime, Integer, String
from sqlalchemy.orm import Mapped, mapped_column
from sqlalchemy.types import JSON

from .base import Base


class Container(Base):
    """Model for a named, engine-typed database instance managed by dbbench."""

    __tablename__ = "containers"

    # Primary key - unique across all engines
    name: Mapped[str] = mapped_column(String(100), primary_key=True)

    # Engine information
    engine: Mapped[str] = mapped_column(String(20), nullable=False)
    version: Mapped[str] = mapped_column(String(50), nullable=False)

    # Network - port is NULL for file-based engines
    port: Mapped[int | None] = mapped_column(Integer, nullable=True)
    bind_address: Mapped[str] = mapped_column(String(100), nullable=False, default="127.0.0.1")
    aux_ports: Mapped[dict] = mapped_column(JSON, nullable=False, default=dict)

    # Data directory, or database file for file-based engines
    path: Mapped[str] = mapped_column(String(1000), nullable=False)

    # Databases
    database: Mapped[str] = mapped_column(String(200), nullable=False)
    databases: Mapped[list] = mapped_column(JSON, nullable=False, default=list)

    # Optional directory with bundled binaries (bin/, lib/)
    binary_path: Mapped[str | None] = mapped_column(String(1000), nullable=True)

    cloned_from: Mapped[str | None] = mapped_column(String(100), nullable=True)

    # Cached status - the process supervisor is authoritative
    status: Mapped[str] = mapped_column(String(20), nullable=False, default="stopped")

    # Timestamps
    created_at: Mapped[datetime] = mapped_column(DateTime, nullable=False)
    updated_at: Mapped[datetime] = mapped_column(DateTime, nullable=False)

    def __repr__(self) -> str:
        """String representation of Container."""
        return (
            f"<Container(name={self.name}, engine={self.engine}, "
            f"port={self.port}, status={self.status})>"
        )
