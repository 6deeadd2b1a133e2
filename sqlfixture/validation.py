"""Data validator: read-only probes that report pass/fail as ValidationResult values.

A failed expectation is a result, never an exception. Errors raised while
talking to the database (unreachable server, malformed SQL) propagate.
"""

import logging
import re
from dataclasses import dataclass
from datetime import date, datetime, timedelta
from enum import Enum
from typing import Any, Iterable, Optional

from sqlfixture.db.executor import SqlExecutor

logger = logging.getLogger(__name__)


class ValidationKind(str, Enum):
    """Kinds of validation probe."""
    RECORD_EXISTS = "RECORD_EXISTS"
    RECORD_NOT_EXISTS = "RECORD_NOT_EXISTS"
    FIELD_VALUE = "FIELD_VALUE"
    FIELD_RANGE = "FIELD_RANGE"
    FIELD_PATTERN = "FIELD_PATTERN"
    RECORD_COUNT = "RECORD_COUNT"
    REFERENTIAL_INTEGRITY = "REFERENTIAL_INTEGRITY"
    DATA_CONSISTENCY = "DATA_CONSISTENCY"
    FIELD_NOT_NULL = "FIELD_NOT_NULL"
    TIMESTAMP_RECENT = "TIMESTAMP_RECENT"
    VALIDATION_SUMMARY = "VALIDATION_SUMMARY"


@dataclass(frozen=True)
class ValidationResult:
    """Outcome of one validation probe."""
    passed: bool
    kind: ValidationKind
    message: str
    actual: Any = None
    expected: Any = None

    def __bool__(self) -> bool:
        return self.passed

    def __str__(self) -> str:
        return f"ValidationResult(kind={self.kind.value}, passed={self.passed}, message='{self.message}')"


def _as_datetime(value: Any) -> Optional[datetime]:
    """Interpret a stored value as a timestamp; None when it is not one."""
    if isinstance(value, datetime):
        return value
    if isinstance(value, date):
        return datetime.combine(value, datetime.min.time())
    if isinstance(value, str):
        try:
            return datetime.fromisoformat(value.strip())
        except ValueError:
            return None
    return None


class DataValidator:
    """Runs validation probes through an SQL executor."""

    def __init__(self, executor: SqlExecutor):
        self.executor = executor

    def _report(self, result: ValidationResult) -> ValidationResult:
        if result.passed:
            logger.debug(result.message)
        else:
            logger.warning(result.message)
        return result

    def _field_value(self, table_name: str, column_name: str, where_clause: str, params: Iterable[Any]) -> Any:
        query = f"SELECT {column_name} FROM {table_name} WHERE {where_clause}"
        return self.executor.single_value(query, *params)

    def record_exists(self, table_name: str, where_clause: str, *params: Any) -> ValidationResult:
        """Pass if at least one row matches the WHERE clause."""
        logger.debug(f"Validating record exists in {table_name} with condition: {where_clause}")
        count = self.executor.record_count(f"SELECT COUNT(*) FROM {table_name} WHERE {where_clause}", *params)

        if count > 0:
            message = f"Record exists in table {table_name} (found {count} records)"
            return self._report(ValidationResult(True, ValidationKind.RECORD_EXISTS, message, actual=count))
        message = f"No records found in table {table_name} with condition: {where_clause}"
        return self._report(ValidationResult(False, ValidationKind.RECORD_EXISTS, message, actual=count))

    def record_not_exists(self, table_name: str, where_clause: str, *params: Any) -> ValidationResult:
        """Pass if no row matches the WHERE clause."""
        logger.debug(f"Validating record does not exist in {table_name} with condition: {where_clause}")
        count = self.executor.record_count(f"SELECT COUNT(*) FROM {table_name} WHERE {where_clause}", *params)

        if count == 0:
            message = f"Record correctly does not exist in table {table_name}"
            return self._report(ValidationResult(True, ValidationKind.RECORD_NOT_EXISTS, message, actual=0))
        message = f"Unexpected records found in table {table_name} (found {count} records)"
        return self._report(ValidationResult(False, ValidationKind.RECORD_NOT_EXISTS, message, actual=count))

    def field_equals(
        self, table_name: str, column_name: str, expected: Any, where_clause: str, *params: Any
    ) -> ValidationResult:
        """Pass if the column value equals ``expected``; NULL equals None."""
        actual = self._field_value(table_name, column_name, where_clause, params)

        if actual == expected:
            message = f"Field {table_name}.{column_name} has expected value: {expected}"
            passed = True
        else:
            message = (
                f"Field {table_name}.{column_name} has unexpected value. "
                f"Expected: {expected}, Actual: {actual}"
            )
            passed = False
        return self._report(
            ValidationResult(passed, ValidationKind.FIELD_VALUE, message, actual=actual, expected=expected)
        )

    def field_in_range(
        self,
        table_name: str,
        column_name: str,
        min_value: Any,
        max_value: Any,
        where_clause: str,
        *params: Any,
    ) -> ValidationResult:
        """Pass if ``min_value <= value <= max_value``.

        A NULL or non-comparable stored value fails the probe.
        """
        actual = self._field_value(table_name, column_name, where_clause, params)
        expected = f"[{min_value}, {max_value}]"

        try:
            if actual is None:
                raise TypeError("NULL is not comparable")
            in_range = min_value <= actual <= max_value
        except TypeError:
            message = f"Field {table_name}.{column_name} value is not comparable: {actual}"
            return self._report(
                ValidationResult(False, ValidationKind.FIELD_RANGE, message, actual=actual, expected=expected)
            )

        if in_range:
            message = f"Field {table_name}.{column_name} is within expected range {expected}: {actual}"
        else:
            message = f"Field {table_name}.{column_name} is outside expected range {expected}: {actual}"
        return self._report(
            ValidationResult(in_range, ValidationKind.FIELD_RANGE, message, actual=actual, expected=expected)
        )

    def field_matches_pattern(
        self, table_name: str, column_name: str, pattern: str, where_clause: str, *params: Any
    ) -> ValidationResult:
        """Pass if the whole string form of the value matches ``pattern``."""
        actual = self._field_value(table_name, column_name, where_clause, params)

        if actual is None:
            message = f"Field {table_name}.{column_name} is null, cannot match pattern '{pattern}'"
            return self._report(
                ValidationResult(False, ValidationKind.FIELD_PATTERN, message, expected=pattern)
            )

        try:
            matched = re.fullmatch(pattern, str(actual)) is not None
        except re.error as e:
            message = f"Invalid pattern '{pattern}' for field {table_name}.{column_name}: {e}"
            return self._report(
                ValidationResult(False, ValidationKind.FIELD_PATTERN, message, actual=actual, expected=pattern)
            )

        if matched:
            message = f"Field {table_name}.{column_name} matches expected pattern '{pattern}': {actual}"
        else:
            message = f"Field {table_name}.{column_name} does not match expected pattern '{pattern}': {actual}"
        return self._report(
            ValidationResult(matched, ValidationKind.FIELD_PATTERN, message, actual=actual, expected=pattern)
        )

    def record_count(
        self, table_name: str, expected_count: int, where_clause: Optional[str] = None, *params: Any
    ) -> ValidationResult:
        """Pass if the number of matching rows (the whole table without a WHERE clause) is ``expected_count``."""
        if where_clause:
            query = f"SELECT COUNT(*) FROM {table_name} WHERE {where_clause}"
        else:
            query = f"SELECT COUNT(*) FROM {table_name}"
        actual_count = self.executor.record_count(query, *params)

        if actual_count == expected_count:
            message = f"Table {table_name} has expected record count: {expected_count}"
            passed = True
        else:
            message = (
                f"Table {table_name} has unexpected record count. "
                f"Expected: {expected_count}, Actual: {actual_count}"
            )
            passed = False
        return self._report(
            ValidationResult(passed, ValidationKind.RECORD_COUNT, message, actual=actual_count, expected=expected_count)
        )

    def referential_integrity(
        self, child_table: str, child_column: str, parent_table: str, parent_column: str
    ) -> ValidationResult:
        """Pass if every non-null child value has a matching parent value.

        ``actual`` carries the orphan count.
        """
        query = (
            f"SELECT COUNT(*) FROM {child_table} c "
            f"WHERE c.{child_column} IS NOT NULL "
            f"AND c.{child_column} NOT IN "
            f"(SELECT p.{parent_column} FROM {parent_table} p WHERE p.{parent_column} IS NOT NULL)"
        )
        orphan_count = self.executor.record_count(query)

        if orphan_count == 0:
            message = (
                f"Referential integrity valid: {child_table}.{child_column} -> "
                f"{parent_table}.{parent_column}"
            )
        else:
            message = (
                f"Referential integrity violation: {orphan_count} orphaned records in "
                f"{child_table}.{child_column}"
            )
        return self._report(
            ValidationResult(orphan_count == 0, ValidationKind.REFERENTIAL_INTEGRITY, message, actual=orphan_count, expected=0)
        )

    def data_consistency(self, query: str, *params: Any, description: str = "") -> ValidationResult:
        """Pass if ``query`` (written to select inconsistent rows) returns nothing."""
        rows = self.executor.query(query, *params)

        if not rows:
            message = f"Data consistency check passed: {description}"
        else:
            message = f"Data consistency check failed: {description} (found {len(rows)} inconsistent records)"
        return self._report(
            ValidationResult(not rows, ValidationKind.DATA_CONSISTENCY, message, actual=len(rows), expected=0)
        )

    def field_not_null(self, table_name: str, column_name: str, where_clause: str, *params: Any) -> ValidationResult:
        actual = self._field_value(table_name, column_name, where_clause, params)

        if actual is not None:
            message = f"Field {table_name}.{column_name} is not null: {actual}"
        else:
            message = f"Field {table_name}.{column_name} is null when it should not be"
        return self._report(
            ValidationResult(actual is not None, ValidationKind.FIELD_NOT_NULL, message, actual=actual, expected="NOT NULL")
        )

    def timestamp_recent(
        self, table_name: str, column_name: str, within_minutes: int, where_clause: str, *params: Any
    ) -> ValidationResult:
        """Pass if the stored timestamp is later than ``now - within_minutes``.

        Timestamps stored as ISO-8601 text are parsed; values that are not
        timestamps fail the probe.
        """
        actual = self._field_value(table_name, column_name, where_clause, params)
        record_time = _as_datetime(actual)
        cutoff_time = datetime.now() - timedelta(minutes=within_minutes)

        if record_time is None:
            message = f"Field {table_name}.{column_name} is not a timestamp: {actual}"
            return self._report(
                ValidationResult(False, ValidationKind.TIMESTAMP_RECENT, message, actual=actual, expected=cutoff_time)
            )

        # Aware values are compared in local time
        if record_time.tzinfo is not None:
            record_time = record_time.astimezone().replace(tzinfo=None)

        if record_time > cutoff_time:
            message = (
                f"Timestamp {table_name}.{column_name} is recent: {record_time} "
                f"(within {within_minutes} minutes)"
            )
            passed = True
        else:
            message = (
                f"Timestamp {table_name}.{column_name} is not recent: {record_time} "
                f"(older than {within_minutes} minutes)"
            )
            passed = False
        return self._report(
            ValidationResult(passed, ValidationKind.TIMESTAMP_RECENT, message, actual=actual, expected=cutoff_time)
        )

    def validate_all(self, results: Iterable[ValidationResult]) -> ValidationResult:
        """Combine results into one summary that passes only if all of them passed."""
        results = list(results)
        failures = [result for result in results if not result.passed]
        passed_count = len(results) - len(failures)

        message = (
            f"Validation summary: {passed_count} passed, {len(failures)} failed "
            f"out of {len(results)} total validations"
        )
        if failures:
            message += ". Failures: " + "; ".join(result.message for result in failures)

        return self._report(
            ValidationResult(
                not failures,
                ValidationKind.VALIDATION_SUMMARY,
                message,
                actual=passed_count,
                expected=len(results),
            )
        )
