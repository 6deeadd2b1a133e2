"""Database connectivity and statement execution."""

from sqlfixture.db.connection import ConnectionProvider, PooledConnection
from sqlfixture.db.engines import EngineDialect, EngineRegistry
from sqlfixture.db.executor import SqlExecutor, convert_value
from sqlfixture.db.params import ParamKind, SqlParam, build_statement

__all__ = [
    # Connection management
    "ConnectionProvider",
    "PooledConnection",
    # Engine dialects
    "EngineDialect",
    "EngineRegistry",
    # Execution
    "SqlExecutor",
    "convert_value",
    # Parameters
    "ParamKind",
    "SqlParam",
    "build_statement",
]
