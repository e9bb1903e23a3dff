"""Engine implementations and the closed engine-kind registry."""

from typing import Dict, List, Type

from dbbench.config import BinaryConfigStore, Settings
from dbbench.managers.process_manager import ProcessManager
from dbbench.models.schemas import EngineKind
from dbbench.utils.exceptions import InvalidEngineError

from .base import BaseEngine, FileEngine, ServerEngine
from .clickhouse import ClickHouseEngine
from .couchdb import CouchDBEngine
from .files import DuckDBEngine, SQLiteEngine
from .meilisearch import MeilisearchEngine
from .mongodb import MongoDBEngine
from .mysql import MariaDBEngine, MySQLEngine
from .postgresql import PostgreSQLEngine
from .qdrant import QdrantEngine
from .redis import RedisEngine, ValkeyEngine

ENGINE_CLASSES: Dict[EngineKind, Type[BaseEngine]] = {
    EngineKind.POSTGRESQL: PostgreSQLEngine,
    EngineKind.MYSQL: MySQLEngine,
    EngineKind.MARIADB: MariaDBEngine,
    EngineKind.MONGODB: MongoDBEngine,
    EngineKind.REDIS: RedisEngine,
    EngineKind.VALKEY: ValkeyEngine,
    EngineKind.CLICKHOUSE: ClickHouseEngine,
    EngineKind.QDRANT: QdrantEngine,
    EngineKind.MEILISEARCH: MeilisearchEngine,
    EngineKind.COUCHDB: CouchDBEngine,
    EngineKind.SQLITE: SQLiteEngine,
    EngineKind.DUCKDB: DuckDBEngine,
}


def parse_engine_kind(engine: EngineKind | str) -> EngineKind:
    """
    Validate an engine name.

    Raises:
        InvalidEngineError: If the name is not a supported engine kind
    """
    try:
        return EngineKind(engine)
    except ValueError:
        raise InvalidEngineError(str(engine), [k.value for k in EngineKind]) from None


def get_engine_class(engine: EngineKind | str) -> Type[BaseEngine]:
    """Get the engine class for a kind without instantiating it."""
    return ENGINE_CLASSES[parse_engine_kind(engine)]


def get_engine(
    engine: EngineKind | str,
    binaries: BinaryConfigStore | None = None,
    supervisor: ProcessManager | None = None,
    settings: Settings | None = None,
) -> BaseEngine:
    """
    Resolve an engine kind to an engine instance.

    Args:
        engine: Engine kind or its string value
        binaries: Binary configuration store injected into the engine
        supervisor: Process supervisor injected into the engine
        settings: Settings injected into the engine

    Returns:
        Engine instance

    Raises:
        InvalidEngineError: If the kind is unknown
    """
    return get_engine_class(engine)(binaries=binaries, supervisor=supervisor, settings=settings)


def all_tools() -> List[str]:
    """Every binary any engine may invoke, for PATH detection."""
    tools: List[str] = []
    for engine_class in ENGINE_CLASSES.values():
        tools.extend(engine_class.tools())
    return sorted(set(tools))


__all__ = [
    "BaseEngine",
    "ENGINE_CLASSES",
    "FileEngine",
    "ServerEngine",
    "all_tools",
    "get_engine",
    "get_engine_class",
    "parse_engine_kind",
]
