"""Repository for Container model operations."""

from typing import List, Set

from sqlalchemy import select
from sqlalchemy.orm import Session

from dbbench.models.base import utc_now
from dbbench.models.containers import Container

from .base import BaseRepository


class ContainerRepository(BaseRepository[Container]):
    """Repository for container CRUD operations."""

    def __init__(self, session: Session) -> None:
        """
        Initialize container repository.

        Args:
            session: Database session
        """
        super().__init__(session, Container)

    def get_by_name(self, name: str) -> Container | None:
        """
        Get container by name.

        Args:
            name: Container name

        Returns:
            Container or None if not found
        """
        return self.get(name)

    def list_all(self) -> List[Container]:
        """List all containers ordered by engine and name."""
        stmt = select(Container).order_by(Container.engine, Container.name)
        result = self.session.execute(stmt)
        return list(result.scalars().all())

    def update_status(self, name: str, status: str) -> Container | None:
        """
        Update container status.

        Args:
            name: Container name
            status: New status

        Returns:
            Updated container or None if not found
        """
        container = self.get(name)
        if container:
            container.status = status
            container.updated_at = utc_now()
            self.session.flush()
            self.session.refresh(container)
        return container

    def all_ports(self, exclude: str | None = None) -> Set[int]:
        """
        Collect every primary and auxiliary port recorded by containers.

        Args:
            exclude: Container name whose ports are left out

        Returns:
            Set of port numbers
        """
        ports: Set[int] = set()
        for container in self.all():
            if container.name == exclude:
                continue
            if container.port is not None:
                ports.add(container.port)
            ports.update(int(p) for p in (container.aux_ports or {}).values())
        return ports
