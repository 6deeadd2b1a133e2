"""Microsoft SQL Server engine dialect."""

from typing import Any, Dict, Optional

from sqlfixture.config.models import ConnectionProfile, DatabaseType
from sqlfixture.db.engines.base import EngineDialect
from sqlfixture.db.params import find_keyword

# clauses that may follow the column list of an INSERT
_INSERT_SOURCES = ("VALUES", "SELECT", "DEFAULT", "EXEC", "EXECUTE")


class SQLServerDialect(EngineDialect):
    """SQL Server via pyodbc."""

    database_type = DatabaseType.SQLSERVER
    default_port = 1433

    def get_driver_name(self) -> str:
        """Get the driver name for SQL Server."""
        return "pyodbc"

    def build_connection_string(self, profile: ConnectionProfile) -> str:
        """Build SQL Server connection string."""
        url = self._server_url("mssql+pyodbc", profile)
        return self._with_properties(url, profile)

    def default_properties(self, profile: ConnectionProfile) -> Dict[str, str]:
        properties = {
            'driver': 'ODBC Driver 18 for SQL Server',
            'TrustServerCertificate': 'yes',
        }
        if profile.read_only:
            properties['ApplicationIntent'] = 'ReadOnly'
        return properties

    def connect_args(self, profile: ConnectionProfile) -> Dict[str, Any]:
        """Login timeout in seconds."""
        if not profile.network_timeout_seconds:
            return {}
        return {'timeout': profile.network_timeout_seconds}

    def procedure_call(self, name: str, parameter_count: int) -> str:
        placeholders = ", ".join("?" for _ in range(parameter_count))
        return f"EXEC {name} {placeholders}".rstrip()

    def returning_insert(self, statement: str, key_column: str) -> Optional[str]:
        """Place ``OUTPUT INSERTED.<key>`` ahead of the row source.

        Tables with triggers reject a bare OUTPUT clause; insert into those
        with an explicit key instead.
        """
        if find_keyword(statement, "INSERTED") >= 0:
            return None
        positions = [find_keyword(statement, source) for source in _INSERT_SOURCES]
        positions = [position for position in positions if position >= 0]
        if not positions:
            return None
        source = min(positions)
        return f"{statement[:source]}OUTPUT INSERTED.{key_column} {statement[source:]}"
