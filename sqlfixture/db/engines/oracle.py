"""Oracle engine dialect."""

from typing import Any, Dict, Optional

from sqlfixture.config.models import ConnectionProfile, DatabaseType, IsolationLevel
from sqlfixture.db.engines.base import EngineDialect, trim_statement
from sqlfixture.db.params import find_keyword


class OracleDialect(EngineDialect):
    """Oracle via python-oracledb (thin mode)."""

    database_type = DatabaseType.ORACLE
    default_port = 1521
    probe_query = "SELECT 1 FROM DUAL"
    key_out_parameter = True

    def get_driver_name(self) -> str:
        """Get the driver name for Oracle."""
        return "oracledb"

    def build_connection_string(self, profile: ConnectionProfile) -> str:
        """Build Oracle connection string; the database name is the service name."""
        url = self._server_url("oracle+oracledb", profile, database="")
        return self._with_properties(url, profile)

    def default_properties(self, profile: ConnectionProfile) -> Dict[str, str]:
        return {'service_name': profile.database}

    def connect_args(self, profile: ConnectionProfile) -> Dict[str, Any]:
        if not profile.network_timeout_seconds:
            return {}
        return {'tcp_connect_timeout': float(profile.network_timeout_seconds)}

    def isolation_level_name(self, level: IsolationLevel) -> str:
        # Oracle offers READ COMMITTED and SERIALIZABLE only
        if level in (IsolationLevel.READ_UNCOMMITTED, IsolationLevel.READ_COMMITTED):
            return "READ COMMITTED"
        return "SERIALIZABLE"

    def procedure_call(self, name: str, parameter_count: int) -> str:
        placeholders = ", ".join("?" for _ in range(parameter_count))
        return f"BEGIN {name}({placeholders}); END;"

    def returning_insert(self, statement: str, key_column: str) -> Optional[str]:
        """``RETURNING <key> INTO ?`` for single-row ``INSERT ... VALUES``.

        The trailing placeholder is an OUT bind; Oracle cannot return keys
        from ``INSERT ... SELECT``.
        """
        if find_keyword(statement, "RETURNING") >= 0 or find_keyword(statement, "VALUES") < 0:
            return None
        return f"{trim_statement(statement)} RETURNING {key_column} INTO ?"
