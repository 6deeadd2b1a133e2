"""Test fixture registry: tracked inserts and reverse-order teardown per test context."""

import itertools
import logging
import threading
from collections import Counter
from dataclasses import dataclass, field
from datetime import datetime
from types import MappingProxyType
from typing import Any, Dict, Hashable, List, Mapping, Optional, Union

from sqlalchemy.exc import SQLAlchemyError

from sqlfixture.config.models import FixtureSettings
from sqlfixture.db.connection import ConnectionProvider
from sqlfixture.db.executor import SqlExecutor
from sqlfixture.exceptions import CleanupPartialFailure, DatabaseError

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class TestDataRecord:
    """A row inserted by a test, remembered so cleanup can delete it.

    Two records are equal when they name the same table, key column and key
    value; timestamps and the original column values do not take part.
    """

    __test__ = False

    table_name: str
    primary_key_column: str
    primary_key_value: Any
    created_at: datetime = field(default_factory=datetime.now, compare=False)
    sequence: int = field(default=0, compare=False)
    original_data: Mapping[str, Any] = field(default_factory=dict, compare=False)

    def __post_init__(self) -> None:
        object.__setattr__(self, 'original_data', MappingProxyType(dict(self.original_data)))


class _ContextEntry:
    """Records tracked for one context."""

    def __init__(self, context_id: str, owner: Optional[Hashable]) -> None:
        self.context_id = context_id
        self.owner = owner
        self.started_at = datetime.now()
        self.records: List[TestDataRecord] = []


ContextRef = Union[str, "TestContext", None]


class FixtureRegistry:
    """Tracks rows inserted by tests and deletes them when the test ends.

    Each named context owns its own connection (owner ``context:<id>``).
    Operations that name no context use the default context, whose
    connection belongs to the calling thread.
    """

    def __init__(
        self,
        provider: ConnectionProvider,
        profile_name: Optional[str] = None,
        settings: Optional[FixtureSettings] = None,
    ) -> None:
        """Initialize fixture registry.

        Args:
            provider: Connection provider used for every context.
            profile_name: Profile the tracked rows live in. If None, the default profile.
            settings: Registry settings. If None, taken from the provider's configuration.
        """
        self.provider = provider
        self.profile_name = profile_name
        self.settings = settings or provider.config.fixtures
        self._contexts: Dict[str, _ContextEntry] = {}
        self._lock = threading.Lock()
        self._sequence = itertools.count(1)

    @property
    def default_context(self) -> str:
        return self.settings.default_context

    def _context_id(self, context: ContextRef) -> str:
        if context is None:
            return self.default_context
        if isinstance(context, TestContext):
            return context.context_id
        return str(context)

    def _owner_for(self, context_id: str) -> Optional[Hashable]:
        if context_id == self.default_context:
            return None
        return f"context:{context_id}"

    def _ensure_entry(self, context_id: str) -> _ContextEntry:
        with self._lock:
            return self._live_entry(context_id)

    def _live_entry(self, context_id: str) -> _ContextEntry:
        # caller holds self._lock
        entry = self._contexts.get(context_id)
        if entry is None:
            entry = _ContextEntry(context_id, self._owner_for(context_id))
            self._contexts[context_id] = entry
            logger.info(f"Started test context: {context_id}")
        return entry

    def start_context(self, context_id: str) -> "TestContext":
        """Start (or rejoin) a test context and return its handle."""
        self._ensure_entry(context_id)
        return TestContext(context_id, self)

    def get_context(self, context_id: str) -> Optional["TestContext"]:
        """Handle for an active context, or None if it is not active."""
        with self._lock:
            active = context_id in self._contexts
        return TestContext(context_id, self) if active else None

    def active_contexts(self) -> List[str]:
        with self._lock:
            return list(self._contexts.keys())

    def executor_for(self, context: ContextRef = None) -> SqlExecutor:
        """SQL executor bound to the connection owned by ``context``."""
        context_id = self._context_id(context)
        return SqlExecutor(self.provider, self.profile_name, self._owner_for(context_id))

    def insert_tracked(
        self,
        table_name: str,
        column_values: Mapping[str, Any],
        primary_key_column: str,
        context: ContextRef = None,
    ) -> Any:
        """Insert a row and track it for cleanup.

        A primary key value present in ``column_values`` is used as the
        record's key; otherwise the first generated key reported by the
        driver. A row with neither is inserted but cannot be tracked.

        Args:
            table_name: Table to insert into.
            column_values: Column name to value mapping, in column order.
            primary_key_column: Column identifying the row for cleanup.
            context: Owning context. If None, the default context.

        Returns:
            The primary key value, or None if the row could not be tracked.
        """
        context_id = self._context_id(context)
        entry = self._ensure_entry(context_id)
        executor = self.executor_for(context_id)

        columns = list(column_values.keys())
        values = [column_values[column] for column in columns]
        if columns:
            placeholders = ", ".join("?" for _ in columns)
            sql = f"INSERT INTO {table_name} ({', '.join(columns)}) VALUES ({placeholders})"
        else:
            sql = f"INSERT INTO {table_name} DEFAULT VALUES"

        generated_keys = executor.insert_returning_keys(sql, *values, key_column=primary_key_column)

        if column_values.get(primary_key_column) is not None:
            key = column_values[primary_key_column]
        elif generated_keys:
            key = generated_keys[0]
        else:
            logger.warning(
                f"Inserted row into {table_name} without a usable {primary_key_column} value; "
                "it will not be cleaned up"
            )
            return None

        record = TestDataRecord(
            table_name=table_name,
            primary_key_column=primary_key_column,
            primary_key_value=key,
            sequence=next(self._sequence),
            original_data=column_values,
        )
        with self._lock:
            # a cleanup that ran during the insert has detached the entry
            # looked up above; the row belongs to the context's next entry
            if self._contexts.get(context_id) is not entry:
                entry = self._live_entry(context_id)
            entry.records.append(record)

        logger.debug(f"Inserted test data into {table_name} with {primary_key_column}={key} (context {context_id})")
        return key

    def update_tracked(
        self,
        table_name: str,
        update_values: Mapping[str, Any],
        where_clause: str,
        *where_params: Any,
        context: ContextRef = None,
    ) -> int:
        """Update rows in the context's connection. Updates are not undone by cleanup.

        Returns:
            Number of rows updated.
        """
        context_id = self._context_id(context)
        self._ensure_entry(context_id)

        columns = list(update_values.keys())
        set_clause = ", ".join(f"{column} = ?" for column in columns)
        sql = f"UPDATE {table_name} SET {set_clause} WHERE {where_clause}"
        params = [update_values[column] for column in columns] + list(where_params)

        affected_rows = self.executor_for(context_id).execute(sql, *params)
        logger.debug(f"Updated {affected_rows} rows in {table_name} (context {context_id})")
        return affected_rows

    def delete_tracked(
        self,
        table_name: str,
        where_clause: str,
        *where_params: Any,
        context: ContextRef = None,
    ) -> int:
        """Delete rows in the context's connection. Deleted rows are not restored by cleanup.

        Returns:
            Number of rows deleted.
        """
        context_id = self._context_id(context)
        self._ensure_entry(context_id)

        sql = f"DELETE FROM {table_name} WHERE {where_clause}"
        affected_rows = self.executor_for(context_id).execute(sql, *where_params)
        logger.debug(f"Deleted {affected_rows} rows from {table_name} (context {context_id})")
        return affected_rows

    def registered_records(self, context: ContextRef = None) -> List[TestDataRecord]:
        """Tracked records of a context in creation order."""
        context_id = self._context_id(context)
        with self._lock:
            entry = self._contexts.get(context_id)
            return list(entry.records) if entry else []

    def cleanup(self, context: ContextRef = None) -> int:
        """Delete every tracked record of a context, newest first, and discard the context.

        Each delete is committed on its own so one failure cannot undo or
        block the others. Records are dropped from the registry whether or
        not their delete succeeded. Rows tracked while the cleanup is running
        stay registered under a fresh entry for the same context.

        Returns:
            Number of rows deleted.

        Raises:
            CleanupPartialFailure: If any record could not be deleted and
                ``fail_on_partial_cleanup`` is enabled.
        """
        context_id = self._context_id(context)
        with self._lock:
            # detach first so inserts from here on start a fresh entry
            entry = self._contexts.pop(context_id, None)
            records = list(entry.records) if entry else []

        if entry is None:
            logger.debug(f"No test data to cleanup for context: {context_id}")
            return 0

        logger.info(f"Cleaning up {len(records)} test records for context: {context_id}")
        records.sort(key=lambda record: (record.created_at, record.sequence), reverse=True)

        executor = self.executor_for(context_id)
        deleted_rows = 0
        failed: List[TestDataRecord] = []

        for record in records:
            sql = f"DELETE FROM {record.table_name} WHERE {record.primary_key_column} = ?"
            try:
                affected = executor.execute(sql, record.primary_key_value)
                executor.commit()
                if affected > 0:
                    deleted_rows += affected
                    logger.debug(
                        f"Deleted test record from {record.table_name} "
                        f"where {record.primary_key_column} = {record.primary_key_value}"
                    )
                else:
                    logger.warning(
                        f"Test record not found for deletion: {record.table_name} "
                        f"where {record.primary_key_column} = {record.primary_key_value}"
                    )
            except (SQLAlchemyError, DatabaseError) as e:
                failed.append(record)
                logger.error(
                    f"Failed to delete test record from {record.table_name} "
                    f"where {record.primary_key_column} = {record.primary_key_value}: {e}"
                )
                self._rollback_quietly(executor)

        logger.info(
            f"Cleanup completed for context {context_id}: {deleted_rows} rows deleted, "
            f"{len(failed)} errors"
        )

        if failed:
            failed_records = [
                {
                    'table_name': record.table_name,
                    'primary_key_column': record.primary_key_column,
                    'primary_key_value': record.primary_key_value,
                }
                for record in failed
            ]
            if self.settings.fail_on_partial_cleanup:
                raise CleanupPartialFailure(context_id, len(failed), len(records), failed_records)
            logger.error(f"Orphaned test records left by context {context_id}: {failed_records}")

        return deleted_rows

    @staticmethod
    def _rollback_quietly(executor: SqlExecutor) -> None:
        try:
            executor.rollback()
        except (SQLAlchemyError, DatabaseError) as e:
            logger.warning(f"Rollback after failed cleanup delete did not succeed: {e}")

    def end_context(self, context: ContextRef = None) -> int:
        """Clean up a context and release the connection it owns.

        Returns:
            Number of rows deleted.
        """
        context_id = self._context_id(context)
        try:
            return self.cleanup(context_id)
        finally:
            owner = self._owner_for(context_id)
            if owner is not None:
                self.provider.close_owner(owner)
            logger.info(f"Ended test context: {context_id}")

    def get_statistics(self, context: ContextRef = None) -> Dict[str, Any]:
        """Summarize the tracked records of a context.

        Returns:
            ``context_id``, ``total_records``, ``records_by_table``,
            ``oldest_record_age`` (timedelta or None) and
            ``oldest_record_created_at``.
        """
        context_id = self._context_id(context)
        records = self.registered_records(context_id)

        oldest = min((record.created_at for record in records), default=None)
        return {
            'context_id': context_id,
            'total_records': len(records),
            'records_by_table': dict(Counter(record.table_name for record in records)),
            'oldest_record_age': datetime.now() - oldest if oldest else None,
            'oldest_record_created_at': oldest,
        }


class TestContext:
    """Caller-held handle for one test context.

    Used as a context manager, the context is ended (and its rows deleted)
    when the block exits::

        with registry.start_context("login-test") as ctx:
            emp = ctx.insert_tracked("hs_hr_employees", {...}, "emp_number")
    """

    __test__ = False

    def __init__(self, context_id: str, registry: FixtureRegistry) -> None:
        self.context_id = context_id
        self.registry = registry

    @property
    def executor(self) -> SqlExecutor:
        return self.registry.executor_for(self.context_id)

    def insert_tracked(self, table_name: str, column_values: Mapping[str, Any], primary_key_column: str) -> Any:
        return self.registry.insert_tracked(table_name, column_values, primary_key_column, context=self.context_id)

    def update_tracked(self, table_name: str, update_values: Mapping[str, Any], where_clause: str, *where_params: Any) -> int:
        return self.registry.update_tracked(
            table_name, update_values, where_clause, *where_params, context=self.context_id
        )

    def delete_tracked(self, table_name: str, where_clause: str, *where_params: Any) -> int:
        return self.registry.delete_tracked(table_name, where_clause, *where_params, context=self.context_id)

    def records(self) -> List[TestDataRecord]:
        return self.registry.registered_records(self.context_id)

    def statistics(self) -> Dict[str, Any]:
        return self.registry.get_statistics(self.context_id)

    def cleanup(self) -> int:
        return self.registry.cleanup(self.context_id)

    def end(self) -> int:
        return self.registry.end_context(self.context_id)

    def __enter__(self) -> "TestContext":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.end()

    def __repr__(self) -> str:
        return f"TestContext({self.context_id!r})"
