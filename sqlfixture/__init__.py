"""SQLFixture: database test-fixture lifecycle management.

SQLFixture provides:
- Named connection profiles for PostgreSQL, MySQL, MariaDB, SQLite, SQL Server and Oracle
- Parameterized SQL execution with typed parameters
- Tracked test data with reverse-order teardown per test context
- Read-only data validation probes
- YAML-based configuration
"""

__version__ = "0.1.0"
__license__ = "MIT"

# Core exports
from sqlfixture.exceptions import (
    SQLFixtureError,
    ConfigurationError,
    DatabaseError,
    CleanupPartialFailure,
)

__all__ = [
    "__version__",
    "SQLFixtureError",
    "ConfigurationError",
    "DatabaseError",
    "CleanupPartialFailure",
]
