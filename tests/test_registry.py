"""Tests for the test fixture registry."""

import sqlite3
from datetime import timedelta
from types import MappingProxyType
from unittest.mock import patch

import pytest

from sqlfixture.config.models import FixtureSettings
from sqlfixture.db import SqlExecutor
from sqlfixture.exceptions import CleanupPartialFailure
from sqlfixture.registry import FixtureRegistry, TestContext, TestDataRecord


pytestmark = pytest.mark.database

requires_sqlite_returning = pytest.mark.skipif(
    sqlite3.sqlite_version_info < (3, 35), reason="INSERT ... RETURNING needs SQLite 3.35+"
)


def employee(first_name="Jane", last_name="Doe", **extra):
    values = {'first_name': first_name, 'last_name': last_name}
    values.update(extra)
    return values


class TestTestDataRecord:

    def test_identity_is_table_and_key(self):
        first = TestDataRecord("hs_hr_employees", "emp_number", 1, sequence=1, original_data={'a': 1})
        second = TestDataRecord("hs_hr_employees", "emp_number", 1, sequence=2, original_data={'a': 2})
        other = TestDataRecord("hs_hr_employees", "emp_number", 2)

        assert first == second
        assert hash(first) == hash(second)
        assert first != other

    def test_original_data_is_a_read_only_snapshot(self):
        values = {'first_name': 'Jane'}
        record = TestDataRecord("hs_hr_employees", "emp_number", 1, original_data=values)
        values['first_name'] = 'Changed'

        assert isinstance(record.original_data, MappingProxyType)
        assert record.original_data['first_name'] == 'Jane'
        with pytest.raises(TypeError):
            record.original_data['first_name'] = 'Other'


class TestInsertTracked:

    def test_round_trip(self, registry, executor):
        key = registry.insert_tracked("hs_hr_employees", employee(), "emp_number")

        assert key == 1
        assert executor.record_exists("SELECT 1 FROM hs_hr_employees WHERE emp_number = ?", key)

        records = registry.registered_records()
        assert len(records) == 1
        assert records[0].table_name == "hs_hr_employees"
        assert records[0].primary_key_value == 1
        assert records[0].original_data['first_name'] == 'Jane'

    def test_supplied_key_is_authoritative(self, registry):
        key = registry.insert_tracked(
            "ohrm_user_role", {'id': 40, 'name': 'Auditor'}, "id", context="t1"
        )

        assert key == 40
        assert registry.registered_records("t1")[0].primary_key_value == 40

    def test_untrackable_row_is_not_registered(self, registry):
        with patch.object(SqlExecutor, "insert_returning_keys", return_value=[]):
            key = registry.insert_tracked("hs_hr_employees", employee(), "emp_number")

        assert key is None
        assert registry.registered_records() == []

    def test_records_default_to_default_context(self, registry):
        registry.insert_tracked("hs_hr_employees", employee(), "emp_number")

        assert registry.active_contexts() == ["default"]
        assert registry.get_statistics()['context_id'] == "default"


class TestGeneratedKeys:

    @requires_sqlite_returning
    def test_key_from_rewritten_insert_without_lastrowid(self, key_clause_only_sqlite, registry, count_rows):
        ctx = registry.start_context("t1")

        emp = ctx.insert_tracked("hs_hr_employees", employee(), "emp_number")

        assert emp == 1
        assert [record.primary_key_value for record in ctx.records()] == [1]
        assert ctx.end() == 1
        assert count_rows("SELECT COUNT(*) FROM hs_hr_employees") == 0

    @requires_sqlite_returning
    def test_key_column_named_like_a_keyword(self, key_clause_only_sqlite, registry, db_path, count_rows):
        conn = sqlite3.connect(db_path)
        conn.execute(
            "CREATE TABLE ohrm_rehire (id INTEGER PRIMARY KEY AUTOINCREMENT, is_returning_hire INTEGER)"
        )
        conn.commit()
        conn.close()

        key = registry.insert_tracked("ohrm_rehire", {'is_returning_hire': 1}, "id", context="t1")

        assert key == 1
        assert registry.end_context("t1") == 1
        assert count_rows("SELECT COUNT(*) FROM ohrm_rehire") == 0

    @requires_sqlite_returning
    def test_text_key_of_table_without_rowid(self, registry, db_path, count_rows):
        conn = sqlite3.connect(db_path)
        conn.execute(
            "CREATE TABLE ohrm_api_token ("
            "token TEXT PRIMARY KEY DEFAULT (lower(hex(randomblob(8)))), label TEXT"
            ") WITHOUT ROWID"
        )
        conn.commit()
        conn.close()

        key = registry.insert_tracked("ohrm_api_token", {'label': 'ci'}, "token", context="t1")

        conn = sqlite3.connect(db_path)
        try:
            stored = conn.execute("SELECT token FROM ohrm_api_token").fetchone()[0]
        finally:
            conn.close()
        assert key == stored
        assert registry.end_context("t1") == 1
        assert count_rows("SELECT COUNT(*) FROM ohrm_api_token") == 0


class TestCleanupDuringInserts:

    def test_insert_finishing_after_cleanup_stays_tracked(self, registry, count_rows):
        real_insert = SqlExecutor.insert_returning_keys

        def insert_then_cleanup(self, *args, **kwargs):
            keys = real_insert(self, *args, **kwargs)
            registry.cleanup("t1")
            return keys

        registry.start_context("t1")
        with patch.object(SqlExecutor, "insert_returning_keys", insert_then_cleanup):
            key = registry.insert_tracked("hs_hr_employees", employee(), "emp_number", context="t1")

        assert registry.active_contexts() == ["t1"]
        assert [record.primary_key_value for record in registry.registered_records("t1")] == [key]
        assert registry.end_context("t1") == 1
        assert count_rows("SELECT COUNT(*) FROM hs_hr_employees") == 0

    def test_rows_tracked_while_deleting_are_kept(self, registry, count_rows):
        registry.insert_tracked("hs_hr_employees", employee(), "emp_number", context="t1")
        real_execute = SqlExecutor.execute
        late_keys = []

        def insert_before_first_delete(self, statement, *params):
            if statement.startswith("DELETE") and not late_keys:
                late_keys.append(
                    registry.insert_tracked("hs_hr_employees", employee("Late"), "emp_number", context="t1")
                )
            return real_execute(self, statement, *params)

        with patch.object(SqlExecutor, "execute", insert_before_first_delete):
            assert registry.cleanup("t1") == 1

        assert [record.primary_key_value for record in registry.registered_records("t1")] == late_keys
        assert registry.end_context("t1") == 1
        assert count_rows("SELECT COUNT(*) FROM hs_hr_employees") == 0


class TestCleanup:

    def test_cleanup_deletes_everything(self, registry, count_rows):
        ctx = registry.start_context("t1")
        emp = ctx.insert_tracked("hs_hr_employees", employee(), "emp_number")
        ctx.insert_tracked("ohrm_user", {'user_name': 'jane.doe', 'emp_number': emp}, "id")

        deleted = registry.cleanup("t1")

        assert deleted == 2
        assert count_rows("SELECT COUNT(*) FROM hs_hr_employees") == 0
        assert count_rows("SELECT COUNT(*) FROM ohrm_user") == 0
        assert registry.registered_records("t1") == []
        assert "t1" not in registry.active_contexts()

    def test_reverse_creation_order(self, registry):
        ctx = registry.start_context("fk")
        # Foreign keys are enforced per connection; the context owns this one
        ctx.executor.execute_ddl("PRAGMA foreign_keys = ON")

        emp = ctx.insert_tracked("hs_hr_employees", employee(), "emp_number")
        ctx.insert_tracked("ohrm_user", {'user_name': 'jane.doe', 'emp_number': emp}, "id")

        deleted_tables = []
        original_execute = SqlExecutor.execute

        def recording_execute(self, statement, *params):
            if statement.startswith("DELETE"):
                deleted_tables.append(statement.split()[2])
            return original_execute(self, statement, *params)

        with patch.object(SqlExecutor, "execute", recording_execute):
            assert ctx.cleanup() == 2

        assert deleted_tables == ["ohrm_user", "hs_hr_employees"]

    def test_partial_failure_is_reported(self, registry, executor, count_rows):
        ctx = registry.start_context("partial")
        ctx.executor.execute_ddl("PRAGMA foreign_keys = ON")
        emp = ctx.insert_tracked("hs_hr_employees", employee(), "emp_number")
        ctx.insert_tracked("ohrm_leave_type", {'name': 'Annual'}, "id")

        # A row the registry does not know about keeps the employee referenced
        ctx.executor.execute("INSERT INTO ohrm_user (user_name, emp_number) VALUES (?, ?)", "untracked", emp)

        with pytest.raises(CleanupPartialFailure) as exc_info:
            ctx.cleanup()

        error = exc_info.value
        assert error.context_id == "partial"
        assert error.failed_count == 1
        assert error.total_count == 2
        assert error.details['failed_records'] == [
            {'table_name': 'hs_hr_employees', 'primary_key_column': 'emp_number', 'primary_key_value': emp}
        ]
        assert "1 of 2" in str(error)

        # The other record was still deleted and the context is gone
        assert count_rows("SELECT COUNT(*) FROM ohrm_leave_type") == 0
        assert count_rows("SELECT COUNT(*) FROM hs_hr_employees") == 1
        assert "partial" not in registry.active_contexts()
        assert registry.registered_records("partial") == []

    def test_partial_failure_can_be_logged_only(self, provider):
        registry = FixtureRegistry(provider, settings=FixtureSettings(fail_on_partial_cleanup=False))
        ctx = registry.start_context("lenient")
        ctx.executor.execute_ddl("PRAGMA foreign_keys = ON")
        emp = ctx.insert_tracked("hs_hr_employees", employee(), "emp_number")
        ctx.executor.execute("INSERT INTO ohrm_user (user_name, emp_number) VALUES (?, ?)", "untracked", emp)

        assert ctx.cleanup() == 0
        assert registry.active_contexts() == []

    def test_already_deleted_row_is_not_a_failure(self, registry, executor):
        key = registry.insert_tracked("hs_hr_employees", employee(), "emp_number")
        executor.execute("DELETE FROM hs_hr_employees WHERE emp_number = ?", key)

        assert registry.cleanup() == 0

    def test_cleanup_of_unknown_context(self, registry):
        assert registry.cleanup("never-started") == 0


class TestContexts:

    def test_start_context_is_idempotent(self, registry):
        first = registry.start_context("t1")
        first.insert_tracked("hs_hr_employees", employee(), "emp_number")
        second = registry.start_context("t1")

        assert isinstance(second, TestContext)
        assert len(second.records()) == 1
        assert registry.get_context("t1").context_id == "t1"
        assert registry.get_context("missing") is None

    def test_contexts_are_isolated(self, registry):
        registry.insert_tracked("hs_hr_employees", employee("A"), "emp_number", context="t1")
        registry.insert_tracked("hs_hr_employees", employee("B"), "emp_number", context="t2")

        registry.cleanup("t1")

        assert [r.original_data['first_name'] for r in registry.registered_records("t2")] == ["B"]

    def test_context_owns_its_connection(self, registry, provider):
        ctx = registry.start_context("owned")
        ctx.insert_tracked("hs_hr_employees", employee(), "emp_number")

        assert ctx.executor.get_connection().owner == "context:owned"

        ctx.end()

        status = provider.get_connection_status()
        assert status['connections']['local']['owners'] == 0

    def test_context_manager_ends_context(self, registry, count_rows):
        with registry.start_context("scoped") as ctx:
            ctx.insert_tracked("hs_hr_employees", employee(), "emp_number")
            assert count_rows("SELECT COUNT(*) FROM hs_hr_employees") == 1

        assert count_rows("SELECT COUNT(*) FROM hs_hr_employees") == 0
        assert "scoped" not in registry.active_contexts()

    def test_context_manager_cleans_up_after_errors(self, registry, count_rows):
        with pytest.raises(RuntimeError):
            with registry.start_context("failing") as ctx:
                ctx.insert_tracked("hs_hr_employees", employee(), "emp_number")
                raise RuntimeError("test failed")

        assert count_rows("SELECT COUNT(*) FROM hs_hr_employees") == 0


class TestUpdateAndDelete:

    def test_update_tracked(self, registry, executor):
        key = registry.insert_tracked("hs_hr_employees", employee(), "emp_number")

        updated = registry.update_tracked(
            "hs_hr_employees", {'status': 'Terminated', 'email': 'jane@x.com'}, "emp_number = ?", key
        )

        assert updated == 1
        row = executor.query("SELECT status, email FROM hs_hr_employees WHERE emp_number = ?", key)[0]
        assert row == {'status': 'Terminated', 'email': 'jane@x.com'}

    def test_delete_tracked(self, registry, executor):
        registry.insert_tracked("hs_hr_employees", employee("A"), "emp_number")
        registry.insert_tracked("hs_hr_employees", employee("B"), "emp_number")

        assert registry.delete_tracked("hs_hr_employees", "first_name = ?", "A") == 1
        assert executor.record_count("SELECT COUNT(*) FROM hs_hr_employees") == 1
        # The deleted row stays tracked; cleanup tolerates it
        assert len(registry.registered_records()) == 2


class TestStatistics:

    def test_statistics(self, registry):
        registry.insert_tracked("hs_hr_employees", employee("A"), "emp_number", context="s")
        registry.insert_tracked("hs_hr_employees", employee("B"), "emp_number", context="s")
        registry.insert_tracked("ohrm_leave_type", {'name': 'Annual'}, "id", context="s")

        stats = registry.get_statistics("s")

        assert stats['context_id'] == "s"
        assert stats['total_records'] == 3
        assert stats['records_by_table'] == {'hs_hr_employees': 2, 'ohrm_leave_type': 1}
        assert isinstance(stats['oldest_record_age'], timedelta)
        assert stats['oldest_record_age'] >= timedelta(0)
        assert stats['oldest_record_created_at'] is not None

    def test_statistics_of_empty_context(self, registry):
        stats = registry.get_statistics("empty")

        assert stats['total_records'] == 0
        assert stats['records_by_table'] == {}
        assert stats['oldest_record_age'] is None
