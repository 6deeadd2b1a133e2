"""Core exceptions for SQLFixture."""

from typing import Any, Dict, Optional


class SQLFixtureError(Exception):
    """Base exception for all SQLFixture errors."""

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}


class ConfigurationError(SQLFixtureError):
    """Raised when there's an error in configuration parsing or validation."""
    pass


class UnsupportedEngineError(ConfigurationError):
    """Raised when a profile names an engine type with no registered dialect."""

    def __init__(self, engine_type: Any, supported: Optional[list] = None):
        supported = supported or []
        engine_name = getattr(engine_type, "value", engine_type)
        super().__init__(
            f"Unsupported database engine: {engine_name}. "
            f"Supported engines: {[str(getattr(s, 'value', s)) for s in supported]}",
            details={'engine_type': str(engine_name)},
        )
        self.engine_type = engine_type
        self.supported = supported


class DatabaseError(SQLFixtureError):
    """Raised when there's an error connecting to or using a database."""

    def __init__(
        self,
        message: str,
        database_type: Optional[str] = None,
        connection_string: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None
    ):
        super().__init__(message, details)
        self.database_type = database_type
        self.connection_string = connection_string


class DriverNotFoundError(DatabaseError):
    """Raised when the DBAPI driver for an engine cannot be loaded. Never retried."""
    pass


class ConnectionFailedError(DatabaseError):
    """Raised when opening a connection fails (network, authentication, timeout)."""
    pass


class TransactionStateError(DatabaseError):
    """Raised when batch/transaction calls are nested on one connection."""
    pass


class UnsupportedOperationError(DatabaseError):
    """Raised when an engine cannot perform the requested operation."""
    pass


class ParameterError(DatabaseError):
    """Raised when statement placeholders and supplied parameters disagree."""
    pass


class CleanupPartialFailure(SQLFixtureError):
    """Raised when some tracked records of a context could not be deleted.

    The context is already discarded when this is raised; the rows named in
    ``details['failed_records']`` are orphans left in the database.
    """

    def __init__(
        self,
        context_id: str,
        failed_count: int,
        total_count: int,
        failed_records: Optional[list] = None,
    ):
        super().__init__(
            f"Test data cleanup for context '{context_id}' failed to delete "
            f"{failed_count} of {total_count} tracked records",
            details={'failed_records': failed_records or []},
        )
        self.context_id = context_id
        self.failed_count = failed_count
        self.total_count = total_count
