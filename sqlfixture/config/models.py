"""Pydantic models for SQLFixture configuration."""

from enum import Enum
from typing import Any, Dict, Optional

from pydantic import (
    AliasChoices,
    BaseModel,
    ConfigDict,
    Field,
    field_validator,
    model_validator,
)
from pydantic_settings import BaseSettings, SettingsConfigDict


class DatabaseType(str, Enum):
    """Supported database engines."""
    POSTGRESQL = "postgresql"
    MYSQL = "mysql"
    MARIADB = "mariadb"
    SQLITE = "sqlite"
    SQLSERVER = "sqlserver"
    ORACLE = "oracle"


class IsolationLevel(str, Enum):
    """ANSI transaction isolation levels accepted in profiles."""
    READ_UNCOMMITTED = "READ_UNCOMMITTED"
    READ_COMMITTED = "READ_COMMITTED"
    REPEATABLE_READ = "REPEATABLE_READ"
    SERIALIZABLE = "SERIALIZABLE"

    @property
    def sql_name(self) -> str:
        """Isolation level as written in SQL (``READ COMMITTED``)."""
        return self.value.replace("_", " ")


def parse_extra_properties(value: Any) -> Dict[str, str]:
    """Parse ``key1=value1;key2=value2`` strings into a mapping.

    Pairs without exactly one ``=`` are ignored, as are blank segments.
    """
    if value is None:
        return {}
    if isinstance(value, dict):
        return {str(k): str(v) for k, v in value.items()}
    if not isinstance(value, str):
        raise ValueError("extra_properties must be a mapping or 'key=value;...' string")

    properties: Dict[str, str] = {}
    for pair in value.split(";"):
        parts = pair.split("=")
        if len(parts) == 2 and parts[0].strip():
            properties[parts[0].strip()] = parts[1].strip()
    return properties


class ConnectionProfile(BaseModel):
    """A named set of connection parameters for one database target."""

    model_config = ConfigDict(populate_by_name=True, frozen=True)

    type: DatabaseType = Field(validation_alias=AliasChoices("type", "driver"))
    host: Optional[str] = None
    port: Optional[int] = None
    database: Optional[str] = None
    username: Optional[str] = None
    password: Optional[str] = None
    auto_commit: bool = True
    isolation_level: IsolationLevel = IsolationLevel.READ_COMMITTED
    read_only: bool = False
    network_timeout_ms: int = Field(default=30000, ge=0)
    extra_properties: Dict[str, str] = Field(default_factory=dict)

    @field_validator('port')
    def validate_port(cls, v):
        """Validate port number range."""
        if v is not None and (v < 1 or v > 65535):
            raise ValueError("Port must be between 1 and 65535")
        return v

    @field_validator('isolation_level', mode='before')
    def normalize_isolation_level(cls, v):
        """Accept ``read committed`` / ``READ-COMMITTED`` spellings."""
        if isinstance(v, str):
            return v.strip().upper().replace(" ", "_").replace("-", "_")
        return v

    @field_validator('extra_properties', mode='before')
    def split_extra_properties(cls, v):
        return parse_extra_properties(v)

    @model_validator(mode='after')
    def validate_required_fields(self):
        """Validate engine-specific required fields."""
        if self.type == DatabaseType.SQLITE:
            if not self.database:
                raise ValueError("SQLite profiles require a 'database' path (or ':memory:')")
            return self

        for field in ('host', 'database', 'username'):
            if not getattr(self, field):
                raise ValueError(f"{self.type.value} profiles require '{field}' field")
        return self

    @property
    def network_timeout_seconds(self) -> int:
        """Network timeout rounded up to whole seconds (0 disables)."""
        if self.network_timeout_ms <= 0:
            return 0
        return max(1, -(-self.network_timeout_ms // 1000))


class FixtureSettings(BaseModel):
    """Test fixture registry settings."""
    default_context: str = Field(default="default", min_length=1)
    fail_on_partial_cleanup: bool = Field(
        default=True,
        description="Raise CleanupPartialFailure when tracked rows could not be deleted",
    )


class SQLFixtureConfig(BaseModel):
    """Main configuration model for SQLFixture."""
    profiles: Dict[str, ConnectionProfile]
    default_profile: Optional[str] = None
    fixtures: FixtureSettings = Field(default_factory=FixtureSettings)

    @model_validator(mode='after')
    def validate_default_profile(self):
        """Ensure default_profile exists in profiles, defaulting to the first one."""
        if self.default_profile and self.default_profile not in self.profiles:
            raise ValueError(f"default_profile '{self.default_profile}' not found in profiles")
        if not self.default_profile and self.profiles:
            self.default_profile = next(iter(self.profiles))
        return self


class EnvironmentSettings(BaseSettings):
    """Environment-specific settings."""

    model_config = SettingsConfigDict(env_prefix="SQLFIXTURE_", case_sensitive=False)

    log_level: str = Field(default="INFO")
    debug: bool = Field(default=False)
    config_file: Optional[str] = Field(default=None)
