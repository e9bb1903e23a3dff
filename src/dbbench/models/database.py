"""Database session management for dbbench."""

from contextlib import contextmanager
from pathlib import Path
from typing import Iterator

from sqlalchemy import Engine, create_engine
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from dbbench.config import get_settings
from dbbench.models.base import Base
from dbbench.utils import get_logger

logger = get_logger(__name__)


class DatabaseManager:
    """Manages the state database connection and sessions."""

    def __init__(self, db_url: str | None = None) -> None:
        """
        Initialize database manager.

        Args:
            db_url: SQLAlchemy URL; defaults to the configured state database
        """
        self._engine: Engine | None = None
        self._session_maker: sessionmaker[Session] | None = None
        self.settings = get_settings()
        self._db_url = db_url

    def get_engine(self) -> Engine:
        """
        Get or create the database engine.

        Returns:
            Engine instance
        """
        if self._engine is None:
            db_url = self._db_url
            if db_url is None:
                db_path = self.settings.state_db_path
                if db_path.startswith("sqlite"):
                    db_url = db_path
                else:
                    Path(db_path).parent.mkdir(parents=True, exist_ok=True)
                    db_url = f"sqlite:///{db_path}"

            if db_url in ("sqlite://", "sqlite:///:memory:"):
                # A single shared connection keeps the in-memory schema alive
                self._engine = create_engine(
                    db_url,
                    connect_args={"check_same_thread": False},
                    poolclass=StaticPool,
                )
            else:
                self._engine = create_engine(db_url, echo=False)
            logger.debug("Database engine created", extra={"db_url": db_url})

        return self._engine

    def get_session_maker(self) -> sessionmaker[Session]:
        """
        Get or create session maker.

        Returns:
            sessionmaker instance
        """
        if self._session_maker is None:
            self._session_maker = sessionmaker(
                self.get_engine(),
                class_=Session,
                expire_on_commit=False,
            )
        return self._session_maker

    def create_tables(self) -> None:
        """Create all database tables."""
        Base.metadata.create_all(self.get_engine())
        logger.debug("Database tables created")

    def close(self) -> None:
        """Close database engine."""
        if self._engine:
            self._engine.dispose()
            self._engine = None
            self._session_maker = None
            logger.debug("Database engine closed")

    @contextmanager
    def get_session(self) -> Iterator[Session]:
        """
        Get a database session that commits on success and rolls back on error.

        Yields:
            Session instance
        """
        session_maker = self.get_session_maker()
        with session_maker() as session:
            try:
                yield session
                session.commit()
            except Exception:
                session.rollback()
                raise


# Global instance
_db_manager: DatabaseManager | None = None


def get_db_manager() -> DatabaseManager:
    """
    Get global database manager instance, creating tables on first use.

    Returns:
        DatabaseManager instance
    """
    global _db_manager
    if _db_manager is None:
        _db_manager = DatabaseManager()
        _db_manager.create_tables()
    return _db_manager


def close_db() -> None:
    """Close database connection."""
    global _db_manager
    if _db_manager:
        _db_manager.close()
        _db_manager = None
