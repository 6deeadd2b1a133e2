"""SQLite engine dialect."""

import sqlite3
from pathlib import Path
from typing import Any, Dict, List, Optional

from sqlfixture.config.models import ConnectionProfile, DatabaseType, IsolationLevel
from sqlfixture.db.engines.base import EngineDialect, trim_statement
from sqlfixture.db.params import find_keyword
from sqlfixture.exceptions import UnsupportedOperationError


class SQLiteDialect(EngineDialect):
    """SQLite through the standard library driver."""

    database_type = DatabaseType.SQLITE
    lastrowid_is_key = True

    def get_driver_name(self) -> str:
        """Get the driver name for SQLite."""
        return "sqlite3"

    def build_connection_string(self, profile: ConnectionProfile) -> str:
        """Build SQLite connection string.

        Relative paths resolve against the working directory and missing
        parent directories are created. ``:memory:`` is passed through.
        """
        if profile.database == ":memory:":
            return "sqlite://"

        db_path = Path(profile.database)
        if not db_path.is_absolute():
            db_path = Path.cwd() / db_path
        db_path.parent.mkdir(parents=True, exist_ok=True)

        return f"sqlite:///{db_path}"

    def connect_args(self, profile: ConnectionProfile) -> Dict[str, Any]:
        """Get SQLite-specific connect arguments."""
        args: Dict[str, Any] = {'check_same_thread': False}
        if profile.network_timeout_seconds:
            args['timeout'] = profile.network_timeout_seconds
        return args

    def isolation_level_name(self, level: IsolationLevel) -> str:
        # SQLite only distinguishes dirty reads from serializable
        if level == IsolationLevel.READ_UNCOMMITTED:
            return "READ UNCOMMITTED"
        return "SERIALIZABLE"

    def read_only_statements(self) -> List[str]:
        return ["PRAGMA query_only = ON"]

    def returning_insert(self, statement: str, key_column: str) -> Optional[str]:
        """RETURNING on SQLite 3.35+.

        Older libraries fall back to the cursor's last row id, which is only
        the key for rowid tables whose key column is an ``INTEGER PRIMARY KEY``.
        """
        if sqlite3.sqlite_version_info < (3, 35) or find_keyword(statement, "RETURNING") >= 0:
            return None
        return f"{trim_statement(statement)} RETURNING {key_column}"

    def procedure_call(self, name: str, parameter_count: int) -> str:
        raise UnsupportedOperationError(
            "SQLite does not support stored procedures",
            database_type=self.database_type.value,
        )
