"""Declarative base for dbbench models."""

from datetime import datetime, timezone

from sqlalchemy.orm import DeclarativeBase


class Base(DeclarativeBase):
    """Base class for all SQLAlchemy models."""

    pass


def utc_now() -> datetime:
    """Current UTC time as a naive datetime, the form timestamps are stored in."""
    return datetime.now(timezone.utc).replace(tzinfo=None)
