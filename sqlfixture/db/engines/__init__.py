"""Engine dialects for the supported database types."""

from typing import Dict, List, Type

from sqlfixture.config.models import DatabaseType
from sqlfixture.db.engines.base import EngineDialect
from sqlfixture.db.engines.mysql import MariaDBDialect, MySQLDialect
from sqlfixture.db.engines.oracle import OracleDialect
from sqlfixture.db.engines.postgresql import PostgreSQLDialect
from sqlfixture.db.engines.sqlite import SQLiteDialect
from sqlfixture.db.engines.sqlserver import SQLServerDialect
from sqlfixture.exceptions import UnsupportedEngineError


class EngineRegistry:
    """Registry of engine dialects keyed by database type."""

    _dialects: Dict[DatabaseType, Type[EngineDialect]] = {
        DatabaseType.POSTGRESQL: PostgreSQLDialect,
        DatabaseType.MYSQL: MySQLDialect,
        DatabaseType.MARIADB: MariaDBDialect,
        DatabaseType.SQLITE: SQLiteDialect,
        DatabaseType.SQLSERVER: SQLServerDialect,
        DatabaseType.ORACLE: OracleDialect,
    }

    @classmethod
    def get_dialect(cls, db_type: DatabaseType) -> EngineDialect:
        """Get the dialect for a database type.

        Raises:
            UnsupportedEngineError: If no dialect is registered for the type.
        """
        dialect_class = cls._dialects.get(db_type)
        if dialect_class is None:
            raise UnsupportedEngineError(db_type, cls.get_supported_types())
        return dialect_class()

    @classmethod
    def register_dialect(cls, db_type: DatabaseType, dialect_class: Type[EngineDialect]) -> None:
        """Register a custom engine dialect."""
        cls._dialects[db_type] = dialect_class

    @classmethod
    def unregister_dialect(cls, db_type: DatabaseType) -> None:
        cls._dialects.pop(db_type, None)

    @classmethod
    def get_supported_types(cls) -> List[DatabaseType]:
        """Get list of supported database types."""
        return list(cls._dialects.keys())


__all__ = [
    "EngineDialect",
    "EngineRegistry",
    "PostgreSQLDialect",
    "MySQLDialect",
    "MariaDBDialect",
    "SQLiteDialect",
    "SQLServerDialect",
    "OracleDialect",
]
