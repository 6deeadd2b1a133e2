"""PostgreSQL engine dialect."""

from typing import Any, Dict, List, Optional

from sqlfixture.config.models import ConnectionProfile, DatabaseType
from sqlfixture.db.engines.base import EngineDialect, trim_statement
from sqlfixture.db.params import find_keyword


class PostgreSQLDialect(EngineDialect):
    """PostgreSQL via psycopg2."""

    database_type = DatabaseType.POSTGRESQL
    default_port = 5432

    def get_driver_name(self) -> str:
        """Get the driver name for PostgreSQL."""
        return "psycopg2"

    def build_connection_string(self, profile: ConnectionProfile) -> str:
        """Build PostgreSQL connection string."""
        url = self._server_url("postgresql+psycopg2", profile)
        return self._with_properties(url, profile)

    def default_properties(self, profile: ConnectionProfile) -> Dict[str, str]:
        return {'sslmode': 'prefer'}

    def connect_args(self, profile: ConnectionProfile) -> Dict[str, Any]:
        """Get PostgreSQL-specific connect arguments."""
        args: Dict[str, Any] = {'application_name': 'sqlfixture'}
        if profile.network_timeout_seconds:
            args['connect_timeout'] = profile.network_timeout_seconds
            args['options'] = f"-c statement_timeout={profile.network_timeout_ms}"
        return args

    def read_only_statements(self) -> List[str]:
        return ["SET SESSION CHARACTERISTICS AS TRANSACTION READ ONLY"]

    def procedure_call(self, name: str, parameter_count: int) -> str:
        # Result-set producing routines are functions in PostgreSQL
        placeholders = ", ".join("?" for _ in range(parameter_count))
        return f"SELECT * FROM {name}({placeholders})"

    def returning_insert(self, statement: str, key_column: str) -> Optional[str]:
        if find_keyword(statement, "RETURNING") >= 0:
            return None
        return f"{trim_statement(statement)} RETURNING {key_column}"
