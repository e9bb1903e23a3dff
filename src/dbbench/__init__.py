"""dbbench - run and sync local database instances across engines."""

__version__ = "0.1.0"
