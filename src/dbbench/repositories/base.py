"""Shared persistence helpers for name-keyed state records."""

from typing import Generic, List, TypeVar

from sqlalchemy import select
from sqlalchemy.orm import Session

from dbbench.models.base import Base

T = TypeVar("T", bound=Base)


class BaseRepository(Generic[T]):
    """
    Persistence for one model whose primary key is the container name.

    Writes are flushed immediately so that conflicts (a duplicate name, a
    missing row) surface inside the caller's session block; committing is
    left to ``DatabaseManager.get_session``.
    """

    def __init__(self, session: Session, model: type[T]) -> None:
        self.session = session
        self.model = model

    def get(self, name: str) -> T | None:
        """Look up a record by container name."""
        return self.session.get(self.model, name)

    def all(self) -> List[T]:
        """Every record of this model, in storage order."""
        return list(self.session.scalars(select(self.model)))

    def create(self, entity: T) -> T:
        """
        Insert a record and reload server-side defaults.

        Raises:
            sqlalchemy.exc.IntegrityError: If the name is already taken
        """
        self.session.add(entity)
        self.session.flush()
        self.session.refresh(entity)
        return entity

    def update(self, entity: T) -> T:
        """Flush pending attribute changes on a loaded record."""
        self.session.flush()
        self.session.refresh(entity)
        return entity

    def delete(self, entity: T) -> None:
        self.session.delete(entity)
        self.session.flush()
