"""MySQL and MariaDB engine dialects."""

from typing import Any, Dict, List

from sqlfixture.config.models import ConnectionProfile, DatabaseType
from sqlfixture.db.engines.base import EngineDialect


class MySQLDialect(EngineDialect):
    """MySQL via PyMySQL."""

    database_type = DatabaseType.MYSQL
    default_port = 3306
    lastrowid_is_key = True
    url_scheme = "mysql+pymysql"

    def get_driver_name(self) -> str:
        """Get the driver name for MySQL."""
        return "pymysql"

    def build_connection_string(self, profile: ConnectionProfile) -> str:
        """Build MySQL connection string."""
        url = self._server_url(self.url_scheme, profile)
        return self._with_properties(url, profile)

    def default_properties(self, profile: ConnectionProfile) -> Dict[str, str]:
        return {'charset': 'utf8mb4'}

    def connect_args(self, profile: ConnectionProfile) -> Dict[str, Any]:
        """Get MySQL-specific connect arguments."""
        timeout = profile.network_timeout_seconds
        if not timeout:
            return {}
        return {
            'connect_timeout': timeout,
            'read_timeout': timeout,
            'write_timeout': timeout,
        }

    def read_only_statements(self) -> List[str]:
        return ["SET SESSION TRANSACTION READ ONLY"]


class MariaDBDialect(MySQLDialect):
    """MariaDB through the MySQL wire protocol."""

    database_type = DatabaseType.MARIADB
    url_scheme = "mariadb+pymysql"
