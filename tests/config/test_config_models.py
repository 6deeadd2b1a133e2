"""Tests for configuration models."""

import pytest
from pydantic import ValidationError

from sqlfixture.config.models import (
    ConnectionProfile,
    DatabaseType,
    EnvironmentSettings,
    IsolationLevel,
    SQLFixtureConfig,
    parse_extra_properties,
)


pytestmark = pytest.mark.unit


class TestConnectionProfile:
    """Test connection profile validation."""

    def test_defaults(self):
        profile = ConnectionProfile(type="mysql", host="localhost", database="hrm", username="root")

        assert profile.type == DatabaseType.MYSQL
        assert profile.port is None
        assert profile.auto_commit is True
        assert profile.isolation_level == IsolationLevel.READ_COMMITTED
        assert profile.read_only is False
        assert profile.network_timeout_ms == 30000
        assert profile.extra_properties == {}

    def test_driver_alias(self):
        profile = ConnectionProfile(driver="postgresql", host="db", database="hrm", username="app")
        assert profile.type == DatabaseType.POSTGRESQL

    def test_unknown_engine_rejected(self):
        with pytest.raises(ValidationError):
            ConnectionProfile(type="h2", host="localhost", database="hrm", username="sa")

    def test_server_engines_require_host_database_username(self):
        with pytest.raises(ValidationError, match="host"):
            ConnectionProfile(type="postgresql", database="hrm", username="app")

        with pytest.raises(ValidationError, match="username"):
            ConnectionProfile(type="oracle", host="db", database="ORCL")

    def test_sqlite_requires_database(self):
        with pytest.raises(ValidationError, match="database"):
            ConnectionProfile(type="sqlite")

        profile = ConnectionProfile(type="sqlite", database=":memory:")
        assert profile.host is None

    def test_port_range(self):
        with pytest.raises(ValidationError, match="Port"):
            ConnectionProfile(type="mysql", host="h", database="d", username="u", port=70000)

    @pytest.mark.parametrize("spelling", ["read committed", "READ-COMMITTED", "read_committed"])
    def test_isolation_level_spellings(self, spelling):
        profile = ConnectionProfile(type="sqlite", database="x.db", isolation_level=spelling)
        assert profile.isolation_level == IsolationLevel.READ_COMMITTED
        assert profile.isolation_level.sql_name == "READ COMMITTED"

    def test_extra_properties_string(self):
        profile = ConnectionProfile(
            type="mysql",
            host="h",
            database="d",
            username="u",
            extra_properties="useSSL=false; connect_timeout=10;broken;a=b=c",
        )
        assert profile.extra_properties == {'useSSL': 'false', 'connect_timeout': '10'}

    def test_profile_is_immutable(self):
        profile = ConnectionProfile(type="sqlite", database="x.db")
        with pytest.raises(ValidationError):
            profile.read_only = True

    def test_network_timeout_seconds_rounds_up(self):
        assert ConnectionProfile(type="sqlite", database="x", network_timeout_ms=1500).network_timeout_seconds == 2
        assert ConnectionProfile(type="sqlite", database="x", network_timeout_ms=30000).network_timeout_seconds == 30
        assert ConnectionProfile(type="sqlite", database="x", network_timeout_ms=0).network_timeout_seconds == 0


def test_parse_extra_properties_mapping():
    assert parse_extra_properties({'port': 1}) == {'port': '1'}
    assert parse_extra_properties(None) == {}
    assert parse_extra_properties("") == {}


class TestSQLFixtureConfig:
    """Test top-level configuration."""

    def test_default_profile_falls_back_to_first(self):
        config = SQLFixtureConfig(profiles={
            'first': {'type': 'sqlite', 'database': 'a.db'},
            'second': {'type': 'sqlite', 'database': 'b.db'},
        })
        assert config.default_profile == 'first'
        assert config.fixtures.default_context == 'default'
        assert config.fixtures.fail_on_partial_cleanup is True

    def test_unknown_default_profile(self):
        with pytest.raises(ValidationError, match="missing"):
            SQLFixtureConfig(
                profiles={'local': {'type': 'sqlite', 'database': 'a.db'}},
                default_profile='missing',
            )


def test_environment_settings(monkeypatch):
    monkeypatch.setenv("SQLFIXTURE_LOG_LEVEL", "DEBUG")
    monkeypatch.setenv("SQLFIXTURE_CONFIG_FILE", "/tmp/custom.yaml")

    settings = EnvironmentSettings()

    assert settings.log_level == "DEBUG"
    assert settings.config_file == "/tmp/custom.yaml"
    assert settings.debug is False
