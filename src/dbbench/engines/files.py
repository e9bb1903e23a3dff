"""File-based engines: SQLite and DuckDB."""

from typing import List

from dbbench.engines.base import FileEngine
from dbbench.models.schemas import EngineKind


class SQLiteEngine(FileEngine):
    """SQLite database file, opened with the sqlite3 shell."""

    kind = EngineKind.SQLITE
    display_name = "SQLite"
    default_database = "main"
    default_version = "3"
    client_binary = "sqlite3"
    scheme = "sqlite"
    install_hint = "Install the sqlite3 command line shell"

    def create_file_args(self, client: str, path: str) -> List[str]:
        return [client, path, "VACUUM;"]


class DuckDBEngine(FileEngine):
    """DuckDB database file, opened with the duckdb CLI."""

    kind = EngineKind.DUCKDB
    display_name = "DuckDB"
    default_database = "main"
    default_version = "1.1"
    client_binary = "duckdb"
    scheme = "duckdb"
    install_hint = "Install the DuckDB CLI (e.g. brew install duckdb)"

    def create_file_args(self, client: str, path: str) -> List[str]:
        return [client, path, "-c", "CHECKPOINT;"]
