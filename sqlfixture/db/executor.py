"""Parameterized SQL execution against provider-managed connections."""

import logging
import time
from contextlib import contextmanager
from decimal import Decimal
from typing import Any, Callable, Dict, Generator, Hashable, Iterable, List, Optional, Sequence

import pandas as pd
from sqlalchemy import inspect
from sqlalchemy.engine import CursorResult

from sqlfixture.db.connection import ConnectionProvider, PooledConnection
from sqlfixture.db.params import build_statement
from sqlfixture.exceptions import TransactionStateError

logger = logging.getLogger(__name__)


def _to_bool(value: Any) -> bool:
    if isinstance(value, (int, float, Decimal)):
        return value != 0
    return str(value).strip().lower() == "true"


def _to_int(value: Any) -> Any:
    if isinstance(value, (int, float, Decimal)):
        return int(value)
    return value


def _to_float(value: Any) -> Any:
    if isinstance(value, (int, float, Decimal)):
        return float(value)
    return value


def _to_decimal(value: Any) -> Any:
    if isinstance(value, (int, float)):
        return Decimal(str(value))
    return value


# Values that cannot be widened to the requested type are returned as read
_CONVERTERS: Dict[type, Callable[[Any], Any]] = {
    str: str,
    int: _to_int,
    float: _to_float,
    bool: _to_bool,
    Decimal: _to_decimal,
}


def _flatten_out_values(values: Iterable[Any]) -> List[Any]:
    # DML RETURNING INTO binds come back as one list per bind
    keys: List[Any] = []
    for value in values:
        if isinstance(value, (list, tuple)):
            keys.extend(item for item in value if item is not None)
        elif value is not None:
            keys.append(value)
    return keys


def convert_value(value: Any, target_type: Optional[type]) -> Any:
    """Convert a database value to ``target_type`` using widening rules.

    ``None`` and ``object`` leave the value untouched, as does a value that
    already is an instance of the target (``bool`` is never treated as ``int``).
    """
    if value is None or target_type in (None, object):
        return value
    if isinstance(value, target_type) and not (target_type is int and isinstance(value, bool)):
        return value
    converter = _CONVERTERS.get(target_type)
    if converter is None:
        return value
    return converter(value)


class SqlExecutor:
    """Executes parameterized statements for one (owner, profile) pair.

    Every call obtains its connection from the provider, so a closed or
    invalidated connection is replaced transparently between calls.
    """

    def __init__(
        self,
        provider: ConnectionProvider,
        profile_name: Optional[str] = None,
        owner: Optional[Hashable] = None,
    ) -> None:
        """Initialize SQL executor.

        Args:
            provider: Connection provider.
            profile_name: Profile to execute against. If None, the default profile.
            owner: Connection owner. If None, the calling thread.
        """
        self.provider = provider
        self.profile_name = profile_name
        self.owner = owner

    def get_connection(self) -> PooledConnection:
        """Get this executor's connection."""
        return self.provider.get_connection(self.profile_name, self.owner)

    def _run(self, statement: str, params: Sequence[Any], out_params: int = 0) -> CursorResult:
        """Execute one statement, rolling back a failed statement in auto-commit mode."""
        pooled = self.get_connection()
        clause = build_statement(statement, params, out_params)
        try:
            result = pooled.connection.execute(clause)
        except Exception:
            if pooled.auto_commit and not pooled.in_unit_of_work:
                pooled.connection.rollback()
            raise
        return result

    def _finish(self, pooled: PooledConnection) -> None:
        if pooled.auto_commit and not pooled.in_unit_of_work:
            pooled.connection.commit()

    def query(self, statement: str, *params: Any) -> List[Dict[str, Any]]:
        """Execute a read statement and return every row as a column-label map.

        Args:
            statement: SQL with positional ``?`` placeholders.
            *params: Parameter values or SqlParam instances.

        Returns:
            List of rows, each an insertion-ordered dict keyed by column label.
        """
        logger.debug(f"Executing SELECT query: {statement}")
        start_time = time.time()

        result = self._run(statement, params)
        try:
            columns = list(result.keys())
            rows = [dict(zip(columns, row)) for row in result.fetchall()]
        finally:
            result.close()
        self._finish(self.get_connection())

        execution_time = (time.time() - start_time) * 1000
        logger.debug(f"Query executed in {execution_time:.2f} ms, returned {len(rows)} rows")
        return rows

    def query_frame(self, statement: str, *params: Any) -> pd.DataFrame:
        """Execute a read statement and return the rows as a DataFrame."""
        result = self._run(statement, params)
        try:
            columns = list(result.keys())
            rows = result.fetchall()
        finally:
            result.close()
        self._finish(self.get_connection())
        return pd.DataFrame(rows, columns=columns) if rows else pd.DataFrame(columns=columns)

    def execute(self, statement: str, *params: Any) -> int:
        """Execute an INSERT/UPDATE/DELETE statement.

        Returns:
            Number of affected rows.
        """
        logger.debug(f"Executing DML statement: {statement}")
        start_time = time.time()

        result = self._run(statement, params)
        affected_rows = result.rowcount if result.rowcount is not None and result.rowcount >= 0 else 0
        result.close()
        self._finish(self.get_connection())

        execution_time = (time.time() - start_time) * 1000
        logger.debug(f"Update executed in {execution_time:.2f} ms, affected {affected_rows} rows")
        return affected_rows

    def insert_returning_keys(
        self,
        statement: str,
        *params: Any,
        key_column: Optional[str] = None,
    ) -> List[Any]:
        """Execute an INSERT and collect the generated keys.

        With ``key_column`` the engine dialect rewrites the statement to hand
        the key back (``RETURNING``, ``OUTPUT INSERTED`` or an Oracle
        ``RETURNING ... INTO`` OUT bind). A statement that already asks for
        its keys runs as written and its rows are the keys. Otherwise the
        cursor's last row id is used on engines where that is the key.

        Returns:
            Generated keys; empty when the driver reported none.
        """
        logger.debug(f"Executing INSERT with generated keys: {statement}")
        pooled = self.get_connection()
        dialect = pooled.dialect

        out_params = 0
        if key_column:
            rewritten = dialect.returning_insert(statement, key_column)
            if rewritten is not None:
                statement = rewritten
                out_params = 1 if dialect.key_out_parameter else 0

        result = self._run(statement, params, out_params=out_params)
        keys: List[Any] = []
        try:
            if out_params:
                keys = _flatten_out_values(result.out_parameters.values())
            elif result.returns_rows:
                keys = [row[0] for row in result.fetchall() if row[0] is not None]
            elif dialect.lastrowid_is_key and result.rowcount and result.rowcount > 0:
                last_id = result.lastrowid
                if last_id:
                    keys = [last_id]
            affected_rows = result.rowcount
        finally:
            result.close()
        self._finish(pooled)

        logger.debug(f"Insert affected {affected_rows} rows, generated {len(keys)} keys")
        return keys

    @contextmanager
    def _unit_of_work(self, operation: str) -> Generator[PooledConnection, None, None]:
        """Run a block in one transaction with auto-commit suspended.

        Raises:
            TransactionStateError: If a batch or transaction is already running
                on this connection.
        """
        pooled = self.get_connection()
        if pooled.in_unit_of_work:
            raise TransactionStateError(
                f"Cannot start {operation} while another batch/transaction is active on this connection",
                database_type=pooled.profile.type.value,
            )

        previous_auto_commit = pooled.auto_commit
        pooled.auto_commit = False
        pooled.in_unit_of_work = True
        connection = pooled.connection
        try:
            # Settle anything the caller left pending so the block starts clean
            if connection.in_transaction() and previous_auto_commit:
                connection.commit()
            yield pooled
            connection.commit()
        except BaseException:
            connection.rollback()
            logger.error(f"{operation.capitalize()} rolled back")
            raise
        finally:
            pooled.in_unit_of_work = False
            pooled.auto_commit = previous_auto_commit

    def batch(self, statement: str, param_sets: Iterable[Sequence[Any]]) -> List[int]:
        """Execute one statement for every parameter set in a single transaction.

        Any failure rolls back the whole batch before the error propagates.

        Returns:
            Affected row count per parameter set.
        """
        param_sets = [list(params) for params in param_sets]
        logger.debug(f"Executing batch operation: {statement} with {len(param_sets)} parameter sets")
        start_time = time.time()

        results: List[int] = []
        with self._unit_of_work("batch"):
            for params in param_sets:
                result = self._run(statement, params)
                results.append(result.rowcount if result.rowcount is not None and result.rowcount >= 0 else 0)
                result.close()

        execution_time = (time.time() - start_time) * 1000
        logger.debug(f"Batch executed in {execution_time:.2f} ms, total affected rows: {sum(results)}")
        return results

    def transaction(self, statements: Sequence[str]) -> bool:
        """Execute non-parameterized statements atomically.

        Nesting transaction() or batch() calls on one connection is not
        supported and raises TransactionStateError.

        Returns:
            True once every statement is committed.
        """
        logger.debug(f"Executing transaction with {len(statements)} statements")
        start_time = time.time()

        with self._unit_of_work("transaction") as pooled:
            for statement in statements:
                logger.debug(f"Executing transaction statement: {statement}")
                pooled.connection.exec_driver_sql(statement).close()

        execution_time = (time.time() - start_time) * 1000
        logger.debug(f"Transaction executed successfully in {execution_time:.2f} ms")
        return True

    def single_value(self, statement: str, *params: Any, target_type: Optional[type] = None) -> Any:
        """Return the first column of the first row, converted to ``target_type``.

        Returns:
            The converted value, or None when there is no row or the value is NULL.
        """
        logger.debug(f"Executing single value query: {statement}")
        result = self._run(statement, params)
        try:
            row = result.fetchone()
        finally:
            result.close()
        self._finish(self.get_connection())

        if row is None:
            logger.debug("Single value query returned no rows")
            return None
        value = convert_value(row[0], target_type)
        logger.debug(f"Single value query returned: {value!r}")
        return value

    def record_count(self, statement: str, *params: Any) -> int:
        """Run a ``SELECT COUNT(*)`` style statement; missing results count as 0."""
        count = self.single_value(statement, *params, target_type=int)
        return count if count is not None else 0

    def record_exists(self, statement: str, *params: Any) -> bool:
        """True if the statement returns at least one row."""
        result = self._run(statement, params)
        try:
            exists = result.fetchone() is not None
        finally:
            result.close()
        self._finish(self.get_connection())
        logger.debug(f"Record exists check returned: {exists}")
        return exists

    def execute_ddl(self, statement: str) -> None:
        """Execute a DDL statement verbatim."""
        logger.debug(f"Executing DDL statement: {statement}")
        pooled = self.get_connection()
        try:
            pooled.connection.exec_driver_sql(statement).close()
        except Exception:
            if pooled.auto_commit and not pooled.in_unit_of_work:
                pooled.connection.rollback()
            raise
        self._finish(pooled)

    def call_procedure(self, name: str, *params: Any) -> Dict[str, Any]:
        """Call a stored procedure with positional parameters.

        Returns:
            ``{"result_set": rows}`` when the procedure produced rows, else ``{}``.

        Raises:
            UnsupportedOperationError: If the engine has no stored procedures.
        """
        logger.debug(f"Executing stored procedure: {name}")
        pooled = self.get_connection()
        call_sql = pooled.dialect.procedure_call(name, len(params))

        result = self._run(call_sql, params)
        output: Dict[str, Any] = {}
        try:
            if result.returns_rows:
                columns = list(result.keys())
                output['result_set'] = [dict(zip(columns, row)) for row in result.fetchall()]
        finally:
            result.close()
        self._finish(pooled)

        logger.debug(f"Stored procedure {name} executed successfully")
        return output

    def table_structure(self, table_name: str, schema: Optional[str] = None) -> List[Dict[str, Any]]:
        """Describe the columns of a table.

        Returns:
            One dict per column with ``column_name``, ``data_type``, ``size``,
            ``nullable`` and ``default_value``.
        """
        pooled = self.get_connection()
        inspector = inspect(pooled.connection)
        columns = []
        for column in inspector.get_columns(table_name, schema=schema):
            column_type = column['type']
            columns.append({
                'column_name': column['name'],
                'data_type': str(column_type),
                'size': getattr(column_type, 'length', None) or getattr(column_type, 'precision', None),
                'nullable': bool(column.get('nullable', True)),
                'default_value': column.get('default'),
            })
        self._finish(pooled)

        logger.debug(f"Retrieved structure for table {table_name}: {len(columns)} columns")
        return columns

    def commit(self) -> None:
        """Commit pending work (profiles with ``auto_commit: false``)."""
        self.get_connection().connection.commit()

    def rollback(self) -> None:
        """Roll back pending work."""
        self.get_connection().connection.rollback()
