"""Configuration management for SQLFixture."""

from sqlfixture.config.models import (
    DatabaseType,
    IsolationLevel,
    ConnectionProfile,
    FixtureSettings,
    SQLFixtureConfig,
    EnvironmentSettings,
    parse_extra_properties,
)
from sqlfixture.config.parser import (
    ConfigParser,
    get_config,
    validate_config_file,
    create_sample_config,
)

__all__ = [
    # Models
    "DatabaseType",
    "IsolationLevel",
    "ConnectionProfile",
    "FixtureSettings",
    "SQLFixtureConfig",
    "EnvironmentSettings",
    "parse_extra_properties",
    # Parser
    "ConfigParser",
    "get_config",
    "validate_config_file",
    "create_sample_config",
]
