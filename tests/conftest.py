"""Shared fixtures: file-backed SQLite databases with the HRM schema."""

from __future__ import annotations

import sqlite3
from pathlib import Path
from typing import Iterator

import pytest

from sqlfixture.config import ConnectionProfile, DatabaseType, SQLFixtureConfig
from sqlfixture.db import ConnectionProvider, SqlExecutor
from sqlfixture.db.engines import EngineRegistry, SQLiteDialect
from sqlfixture.registry import FixtureRegistry

HRM_SCHEMA = """
    CREATE TABLE hs_hr_employees (
        emp_number INTEGER PRIMARY KEY AUTOINCREMENT,
        employee_id TEXT,
        first_name TEXT NOT NULL,
        last_name TEXT NOT NULL,
        email TEXT,
        salary REAL,
        hire_date DATE,
        status TEXT,
        created_date TIMESTAMP
    );

    CREATE TABLE ohrm_user_role (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        name TEXT NOT NULL UNIQUE,
        display_name TEXT,
        is_assignable INTEGER,
        is_predefined INTEGER
    );

    CREATE TABLE ohrm_user (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        user_role_id INTEGER REFERENCES ohrm_user_role (id),
        emp_number INTEGER REFERENCES hs_hr_employees (emp_number),
        user_name TEXT NOT NULL UNIQUE,
        user_password TEXT,
        created_date TIMESTAMP,
        status INTEGER
    );

    CREATE TABLE ohrm_leave_type (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        name TEXT NOT NULL,
        deleted INTEGER DEFAULT 0
    );

    CREATE TABLE ohrm_leave (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        emp_number INTEGER REFERENCES hs_hr_employees (emp_number),
        leave_type_id INTEGER REFERENCES ohrm_leave_type (id),
        date_applied DATE,
        leave_comments TEXT
    );

    CREATE TABLE ohrm_leave_leave_entitlement (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        leave_id INTEGER REFERENCES ohrm_leave (id),
        leave_date DATE,
        status TEXT,
        duration REAL
    );

    CREATE TABLE ohrm_job_title (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        job_title TEXT NOT NULL,
        job_description TEXT,
        is_deleted INTEGER DEFAULT 0
    );

    CREATE TABLE ohrm_subunit (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        name TEXT NOT NULL,
        unit_id TEXT,
        description TEXT
    );
"""


def pytest_configure(config: pytest.Config) -> None:
    config.addinivalue_line("markers", "unit: fast tests without a database")
    config.addinivalue_line("markers", "integration: tests that combine several components")
    config.addinivalue_line("markers", "database: tests that use a real (SQLite) database")


@pytest.fixture
def db_path(tmp_path: Path) -> Path:
    """Empty SQLite database file with the HRM schema."""
    path = tmp_path / "hrm.db"
    conn = sqlite3.connect(path)
    conn.executescript(HRM_SCHEMA)
    conn.commit()
    conn.close()
    return path


@pytest.fixture
def sqlite_config(db_path: Path) -> SQLFixtureConfig:
    return SQLFixtureConfig(
        profiles={'local': ConnectionProfile(type="sqlite", database=str(db_path))},
        default_profile='local',
    )


@pytest.fixture
def provider(sqlite_config: SQLFixtureConfig) -> Iterator[ConnectionProvider]:
    provider = ConnectionProvider(sqlite_config)
    try:
        yield provider
    finally:
        provider.close_all()


@pytest.fixture
def executor(provider: ConnectionProvider) -> SqlExecutor:
    return SqlExecutor(provider)


@pytest.fixture
def registry(provider: ConnectionProvider) -> FixtureRegistry:
    return FixtureRegistry(provider)


@pytest.fixture
def count_rows(db_path: Path):
    """Count rows through an independent sqlite3 connection."""
    def _count(sql: str, *params) -> int:
        conn = sqlite3.connect(db_path)
        try:
            return conn.execute(sql, params).fetchone()[0]
        finally:
            conn.close()
    return _count


class KeyClauseOnlySQLiteDialect(SQLiteDialect):
    """SQLite whose generated keys come only from the rewritten INSERT.

    Matches SQL Server and Oracle, where the cursor's last row id is never
    the key.
    """

    lastrowid_is_key = False


@pytest.fixture
def key_clause_only_sqlite() -> Iterator[type]:
    original = EngineRegistry._dialects[DatabaseType.SQLITE]
    EngineRegistry.register_dialect(DatabaseType.SQLITE, KeyClauseOnlySQLiteDialect)
    try:
        yield KeyClauseOnlySQLiteDialect
    finally:
        EngineRegistry.register_dialect(DatabaseType.SQLITE, original)
