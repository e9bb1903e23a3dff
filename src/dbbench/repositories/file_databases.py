"""Repository for the file-based database registry."""

from sqlalchemy import select
from sqlalchemy.orm import Session

from dbbench.models.base import utc_now
from dbbench.models.file_databases import FileDatabase

from .base import BaseRepository


class FileDatabaseRepository(BaseRepository[FileDatabase]):
    """Repository for file database registry entries."""

    def __init__(self, session: Session) -> None:
        """
        Initialize file database repository.

        Args:
            session: Database session
        """
        super().__init__(session, FileDatabase)

    def get_by_path(self, file_path: str) -> FileDatabase | None:
        """
        Get a registry entry by its file path.

        Args:
            file_path: Absolute path of the database file

        Returns:
            Entry or None if not found
        """
        stmt = select(FileDatabase).where(FileDatabase.file_path == file_path)
        result = self.session.execute(stmt)
        return result.scalar_one_or_none()

    def mark_verified(self, name: str) -> FileDatabase | None:
        """Stamp an entry's last_verified_at with the current time."""
        entry = self.get(name)
        if entry:
            entry.last_verified_at = utc_now()
            self.session.flush()
        return entry
