"""Connection provider: one live connection per (owner, profile) pair."""

import logging
import threading
import time
from datetime import datetime
from typing import Any, Dict, Hashable, List, Optional, Tuple

from sqlalchemy import create_engine
from sqlalchemy.engine import Connection, Engine
from sqlalchemy.exc import ArgumentError, NoSuchModuleError, SQLAlchemyError
from sqlalchemy.pool import NullPool

from sqlfixture.config.models import ConnectionProfile, SQLFixtureConfig
from sqlfixture.db.engines import EngineDialect, EngineRegistry
from sqlfixture.exceptions import (
    ConfigurationError,
    ConnectionFailedError,
    DatabaseError,
    DriverNotFoundError,
)

logger = logging.getLogger(__name__)


class PooledConnection:
    """A live connection bound to one profile and one owner.

    The owner is the execution context (thread identity or test context)
    that created the connection; a PooledConnection is never handed to
    another owner.
    """

    def __init__(
        self,
        connection: Connection,
        profile_name: str,
        profile: ConnectionProfile,
        dialect: EngineDialect,
        owner: Hashable,
    ) -> None:
        self.connection = connection
        self.profile_name = profile_name
        self.profile = profile
        self.dialect = dialect
        self.owner = owner
        self.auto_commit = profile.auto_commit
        self.created_at = datetime.now()
        # Set while batch() or transaction() runs on this connection
        self.in_unit_of_work = False

    @property
    def closed(self) -> bool:
        return self.connection.closed

    def is_valid(self) -> bool:
        """True while the connection is open and has not been invalidated."""
        return not self.connection.closed and not self.connection.invalidated

    def close(self) -> None:
        """Close the connection; any open transaction is rolled back."""
        if not self.connection.closed:
            self.connection.close()

    def __repr__(self) -> str:
        state = "open" if self.is_valid() else "closed"
        return (
            f"PooledConnection(profile={self.profile_name!r}, owner={self.owner!r}, "
            f"type={self.profile.type.value}, {state})"
        )


class ConnectionProvider:
    """Resolves named profiles into live connections and caches them per owner.

    ``owner`` identifies the calling execution context. When omitted the
    calling thread is the owner, so concurrently running tests on different
    threads never share a connection.
    """

    def __init__(self, config: SQLFixtureConfig) -> None:
        """Initialize connection provider.

        Args:
            config: SQLFixture configuration.
        """
        self.config = config
        self._engines: Dict[str, Engine] = {}
        self._connections: Dict[Tuple[Hashable, str], PooledConnection] = {}
        self._lock = threading.Lock()

    def resolve_profile(self, profile_name: Optional[str] = None) -> Tuple[str, ConnectionProfile]:
        """Resolve a profile name (default profile when None).

        Raises:
            ConfigurationError: If the profile is not configured.
        """
        if profile_name is None:
            profile_name = self.config.default_profile

        if not profile_name:
            raise ConfigurationError("No profile specified and no default profile configured")

        if profile_name not in self.config.profiles:
            available = list(self.config.profiles.keys())
            raise ConfigurationError(
                f"Profile '{profile_name}' not found in configuration. "
                f"Available profiles: {available}"
            )

        return profile_name, self.config.profiles[profile_name]

    @staticmethod
    def _resolve_owner(owner: Optional[Hashable]) -> Hashable:
        return owner if owner is not None else threading.get_ident()

    def get_connection(
        self,
        profile_name: Optional[str] = None,
        owner: Optional[Hashable] = None,
    ) -> PooledConnection:
        """Get the cached connection for (owner, profile), opening one if needed.

        Args:
            profile_name: Profile name. If None, uses the default profile.
            owner: Calling context identity. If None, the calling thread.

        Returns:
            Open PooledConnection exclusively owned by ``owner``.

        Raises:
            UnsupportedEngineError: If the profile names an unsupported engine.
            DriverNotFoundError: If the engine's driver cannot be loaded.
            ConnectionFailedError: If the database cannot be reached.
        """
        name, profile = self.resolve_profile(profile_name)
        owner = self._resolve_owner(owner)
        key = (owner, name)

        with self._lock:
            cached = self._connections.get(key)

        if cached is not None:
            if cached.is_valid():
                return cached
            logger.info(f"Replacing closed connection for profile '{name}' (owner {owner})")
            with self._lock:
                self._connections.pop(key, None)

        pooled = self._open_connection(name, profile, owner)

        with self._lock:
            self._connections[key] = pooled

        return pooled

    def _get_engine(self, name: str, profile: ConnectionProfile, dialect: EngineDialect) -> Engine:
        """Get or create the SQLAlchemy engine for a profile."""
        with self._lock:
            engine = self._engines.get(name)
            if engine is not None:
                return engine

            connection_string = dialect.build_connection_string(profile)
            try:
                # Connections are cached per owner here, so the engine keeps no pool
                engine = create_engine(
                    connection_string,
                    poolclass=NullPool,
                    connect_args=dialect.connect_args(profile),
                )
            except (NoSuchModuleError, ImportError) as e:
                logger.error(f"Database driver not found for {profile.type.value}: {e}")
                raise DriverNotFoundError(
                    f"Database driver not found: {dialect.get_driver_name()} ({e})",
                    database_type=profile.type.value,
                ) from e
            except ArgumentError as e:
                raise ConfigurationError(f"Invalid connection settings for profile '{name}': {e}") from e

            self._engines[name] = engine
            return engine

    def _open_connection(
        self,
        name: str,
        profile: ConnectionProfile,
        owner: Hashable,
    ) -> PooledConnection:
        dialect = EngineRegistry.get_dialect(profile.type)
        engine = self._get_engine(name, profile, dialect)
        masked_url = engine.url.render_as_string(hide_password=True)

        logger.info(f"Creating database connection: {profile.type.value} to {profile.host or profile.database}")

        try:
            connection = engine.connect()
        except SQLAlchemyError as e:
            logger.error(f"Failed to create database connection: {e}")
            raise ConnectionFailedError(
                f"Failed to connect to profile '{name}': {e}",
                database_type=profile.type.value,
                connection_string=masked_url,
            ) from e

        try:
            self._configure_connection(connection, profile, dialect)
        except SQLAlchemyError as e:
            connection.close()
            raise DatabaseError(
                f"Failed to apply connection settings for profile '{name}': {e}",
                database_type=profile.type.value,
                connection_string=masked_url,
            ) from e

        logger.info(f"Database connection established successfully: {masked_url}")
        return PooledConnection(connection, name, profile, dialect, owner)

    def _configure_connection(
        self,
        connection: Connection,
        profile: ConnectionProfile,
        dialect: EngineDialect,
    ) -> None:
        """Apply isolation level and read-only mode; auto-commit is tracked on the wrapper."""
        connection.execution_options(
            isolation_level=dialect.isolation_level_name(profile.isolation_level)
        )

        if profile.read_only:
            statements = dialect.read_only_statements()
            if not statements:
                logger.warning(
                    f"Read-only sessions are not enforced for {profile.type.value}; "
                    "relying on database permissions"
                )
            for statement in statements:
                connection.exec_driver_sql(statement)
            connection.commit()

    def close_connection(self, profile_name: Optional[str] = None, owner: Optional[Hashable] = None) -> None:
        """Close the connection held by ``owner`` for a profile."""
        name, _ = self.resolve_profile(profile_name)
        key = (self._resolve_owner(owner), name)

        with self._lock:
            pooled = self._connections.pop(key, None)

        if pooled is not None:
            self._close_quietly(pooled)

    def close_owner(self, owner: Optional[Hashable] = None) -> int:
        """Close every connection held by one owner.

        Returns:
            Number of connections closed.
        """
        owner = self._resolve_owner(owner)
        with self._lock:
            keys = [key for key in self._connections if key[0] == owner]
            closing = [self._connections.pop(key) for key in keys]

        for pooled in closing:
            self._close_quietly(pooled)
        return len(closing)

    def close_all(self) -> None:
        """Close all connections and dispose engines."""
        with self._lock:
            closing = list(self._connections.values())
            self._connections.clear()
            engines = list(self._engines.values())
            self._engines.clear()

        for pooled in closing:
            self._close_quietly(pooled)
        for engine in engines:
            engine.dispose()

        logger.info("All database connections closed")

    @staticmethod
    def _close_quietly(pooled: PooledConnection) -> None:
        try:
            pooled.close()
            logger.debug(f"Database connection closed: {pooled.profile_name} (owner {pooled.owner})")
        except SQLAlchemyError as e:
            logger.warning(f"Error closing database connection {pooled.profile_name}: {e}")

    def test_connection(self, profile_name: Optional[str] = None) -> Dict[str, Any]:
        """Open a throwaway connection and run the engine's probe query.

        Returns:
            Connection test result with timing and status information.
        """
        start_time = time.time()
        name = profile_name or self.config.default_profile

        try:
            name, profile = self.resolve_profile(profile_name)
            pooled = self._open_connection(name, profile, owner=("probe", threading.get_ident()))
            try:
                pooled.connection.exec_driver_sql(pooled.dialect.probe_query).fetchone()
            finally:
                pooled.close()

            return {
                'profile': name,
                'status': 'success',
                'message': 'Connection successful',
                'response_time': round((time.time() - start_time) * 1000, 2),
                'driver': pooled.dialect.get_driver_name(),
                'database_type': profile.type.value,
            }

        except (ConfigurationError, DatabaseError, SQLAlchemyError) as e:
            logger.error(f"Database connection test failed: {e}")
            return {
                'profile': name,
                'status': 'failed',
                'message': str(e),
                'response_time': round((time.time() - start_time) * 1000, 2),
                'error': type(e).__name__,
            }

    def test_all_connections(self) -> Dict[str, Dict[str, Any]]:
        """Test all configured profiles."""
        return {name: self.test_connection(name) for name in self.config.profiles}

    def get_database_info(self, profile_name: Optional[str] = None) -> Dict[str, Any]:
        """Get product and driver information for a profile's database."""
        pooled = self.get_connection(profile_name)
        connection = pooled.connection
        dialect = connection.dialect
        version = dialect.server_version_info

        return {
            'profile': pooled.profile_name,
            'product_name': dialect.name,
            'product_version': ".".join(str(part) for part in version) if version else None,
            'driver_name': dialect.driver,
            'url': connection.engine.url.render_as_string(hide_password=True),
            'user_name': pooled.profile.username,
            'database': pooled.profile.database,
        }

    def health_check(self, profile_name: Optional[str] = None) -> Dict[str, Any]:
        """Connection test, database info and probe query in one report."""
        start_time = time.time()
        health: Dict[str, Any] = {}

        test_result = self.test_connection(profile_name)
        health['connection_valid'] = test_result['status'] == 'success'

        if not health['connection_valid']:
            health['status'] = 'UNHEALTHY'
            health['error'] = test_result['message']
            return health

        try:
            health['database_info'] = self.get_database_info(profile_name)
            pooled = self.get_connection(profile_name)
            row = pooled.connection.exec_driver_sql(pooled.dialect.probe_query).fetchone()
            if pooled.auto_commit:
                pooled.connection.commit()
            health['query_execution_working'] = row is not None
            health['response_time_ms'] = round((time.time() - start_time) * 1000, 2)
            health['status'] = 'HEALTHY'
        except (DatabaseError, SQLAlchemyError) as e:
            logger.error(f"Database health check failed: {e}")
            health['status'] = 'UNHEALTHY'
            health['error'] = str(e)

        return health

    def get_connection_status(self) -> Dict[str, Any]:
        """Get status of configured profiles and cached connections."""
        with self._lock:
            cached: List[PooledConnection] = list(self._connections.values())

        status: Dict[str, Any] = {
            'total_configured': len(self.config.profiles),
            'total_active': sum(1 for pooled in cached if pooled.is_valid()),
            'default_profile': self.config.default_profile,
            'connections': {},
        }

        for name, profile in self.config.profiles.items():
            owners = [pooled.owner for pooled in cached if pooled.profile_name == name and pooled.is_valid()]
            status['connections'][name] = {
                'active': bool(owners),
                'owners': len(owners),
                'type': profile.type.value,
            }

        return status

    def __enter__(self) -> "ConnectionProvider":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close_all()
