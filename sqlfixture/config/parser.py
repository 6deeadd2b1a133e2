"""Configuration parser for SQLFixture.

Profiles are read from YAML. String values may reference environment
variables as ``${NAME}`` (required) or ``${NAME:-default}``, and a file may
pull in other files with ``include:``; included values have lower priority
than the including file.
"""

import logging
import os
import re
from pathlib import Path
from typing import Any, Dict, List, Optional, Set, Union

import yaml
from pydantic import ValidationError

from sqlfixture.config.models import EnvironmentSettings, SQLFixtureConfig
from sqlfixture.exceptions import ConfigurationError

logger = logging.getLogger(__name__)

CONFIG_FILE_NAMES = ("sqlfixture.yaml", "sqlfixture.yml", "config/sqlfixture.yaml")

_ENV_REFERENCE = re.compile(r'\$\{\s*(?P<name>[^}:\s]+)\s*(?::-(?P<default>[^}]*))?\}')


def deep_merge(base: Dict[str, Any], override: Dict[str, Any]) -> Dict[str, Any]:
    """Merge ``override`` into a copy of ``base``; nested mappings merge key by key."""
    merged = dict(base)
    for key, value in override.items():
        current = merged.get(key)
        if isinstance(current, dict) and isinstance(value, dict):
            merged[key] = deep_merge(current, value)
        else:
            merged[key] = value
    return merged


def _read_yaml(path: Path, description: str) -> Any:
    try:
        with open(path, 'r', encoding='utf-8') as file:
            return yaml.safe_load(file)
    except FileNotFoundError:
        raise ConfigurationError(f"{description} '{path}' not found")
    except yaml.YAMLError as e:
        raise ConfigurationError(f"Invalid YAML in {description.lower()} '{path}': {e}")


class ConfigParser:
    """Loads SQLFixture configuration files."""

    def __init__(self) -> None:
        self.env_settings = EnvironmentSettings()

    def load_config(self, config_path: Optional[Union[str, Path]] = None) -> SQLFixtureConfig:
        """Load and validate configuration from YAML file.

        Args:
            config_path: Path to configuration file. If None, looks for default locations.

        Returns:
            Validated SQLFixtureConfig instance.

        Raises:
            ConfigurationError: If configuration is invalid or file not found.
        """
        config_file = self.find_config_file(config_path)
        logger.debug(f"Loading configuration from {config_file}")

        raw_config = _read_yaml(config_file, "Configuration file")
        if not raw_config:
            raise ConfigurationError(f"Configuration file '{config_file}' is empty")
        if not isinstance(raw_config, dict):
            raise ConfigurationError(f"Configuration file '{config_file}' must contain a mapping")

        return self.load_dict(raw_config, base_path=config_file)

    def load_dict(
        self,
        raw_config: Dict[str, Any],
        base_path: Optional[Union[str, Path]] = None,
    ) -> SQLFixtureConfig:
        """Validate an already-parsed configuration mapping.

        Args:
            raw_config: Configuration mapping (as loaded from YAML).
            base_path: File the mapping came from; ``include:`` paths resolve
                relative to its directory (the working directory if None).
        """
        origin = Path(base_path) if base_path else Path.cwd() / CONFIG_FILE_NAMES[0]
        resolved = self._resolve_includes(self.interpolate(raw_config), origin, seen={origin.resolve()})

        try:
            return SQLFixtureConfig(**resolved)
        except ValidationError as e:
            raise ConfigurationError(f"Configuration validation failed: {e}")

    def candidate_paths(self) -> List[Path]:
        """Locations searched when no explicit path is given, in order."""
        candidates = []
        if self.env_settings.config_file:
            candidates.append(Path(self.env_settings.config_file))
        candidates.extend(Path.cwd() / name for name in CONFIG_FILE_NAMES)
        return candidates

    def find_config_file(self, config_path: Optional[Union[str, Path]] = None) -> Path:
        """Resolve the configuration file to load.

        Raises:
            ConfigurationError: If the explicit path does not exist or no
                default location holds a configuration file.
        """
        if config_path:
            path = Path(config_path)
            if not path.exists():
                raise ConfigurationError(f"Configuration file '{config_path}' not found")
            return path

        candidates = self.candidate_paths()
        for candidate in candidates:
            if candidate.exists():
                return candidate

        searched = ", ".join(str(candidate) for candidate in candidates)
        raise ConfigurationError(f"No configuration file found; searched: {searched}")

    def interpolate(self, node: Any) -> Any:
        """Resolve environment references in every string of a parsed document."""
        if isinstance(node, dict):
            return {key: self.interpolate(value) for key, value in node.items()}
        if isinstance(node, list):
            return [self.interpolate(item) for item in node]
        if isinstance(node, str):
            return _ENV_REFERENCE.sub(self._env_value, node)
        return node

    @staticmethod
    def _env_value(match: "re.Match[str]") -> str:
        name, default = match.group('name'), match.group('default')
        value = os.getenv(name)
        if value is not None:
            return value
        if default is not None:
            return default.strip()
        raise ConfigurationError(f"Required environment variable '{name}' is not set")

    def _resolve_includes(self, config: Dict[str, Any], origin: Path, seen: Set[Path]) -> Dict[str, Any]:
        includes = config.pop('include', None)
        if includes is None:
            return config
        if not isinstance(includes, list):
            includes = [includes]

        for include in includes:
            include_path = origin.parent / include
            if include_path.resolve() in seen:
                raise ConfigurationError(f"Circular include of '{include_path}'")

            included = _read_yaml(include_path, "Included file")
            if not included:
                continue
            logger.debug(f"Including configuration from {include_path}")
            included = self._resolve_includes(
                self.interpolate(included), include_path, seen | {include_path.resolve()}
            )
            config = deep_merge(included, config)

        return config

    def validate_config_file(self, config_path: Union[str, Path]) -> SQLFixtureConfig:
        """Validate a configuration file without touching the cached global config.

        Returns:
            The parsed configuration.

        Raises:
            ConfigurationError: If configuration is invalid.
        """
        return self.load_config(config_path)

    def create_sample_config(self, output_path: Union[str, Path]) -> None:
        """Write a sample configuration with one profile per common setup."""
        sample_config = {
            'profiles': {
                'hrm': {
                    'type': 'mysql',
                    'host': 'localhost',
                    'port': 3306,
                    'database': 'phoenix_hrm',
                    'username': 'root',
                    'password': '${HRM_DB_PASSWORD:-secret}',
                    'auto_commit': True,
                    'isolation_level': 'READ_COMMITTED',
                    'read_only': False,
                    'network_timeout_ms': 30000,
                    'extra_properties': 'connect_timeout=10',
                },
                'reporting': {
                    'type': 'postgresql',
                    'host': 'localhost',
                    'database': 'hrm_reporting',
                    'username': 'reporter',
                    'password': '${REPORTING_DB_PASSWORD:-reporter}',
                    'read_only': True,
                },
                'local': {
                    'type': 'sqlite',
                    'database': './fixtures.db',
                },
            },
            'default_profile': 'hrm',
            'fixtures': {
                'default_context': 'default',
                'fail_on_partial_cleanup': True,
            },
        }

        with open(output_path, 'w', encoding='utf-8') as file:
            yaml.safe_dump(sample_config, file, default_flow_style=False, sort_keys=False)


_config_parser = ConfigParser()
_loaded_config: Optional[SQLFixtureConfig] = None


def get_config(config_path: Optional[Union[str, Path]] = None, reload: bool = False) -> SQLFixtureConfig:
    """Get the process-wide configuration, loading it on first use.

    An explicit ``config_path`` always loads that file.
    """
    global _loaded_config

    if _loaded_config is None or reload or config_path is not None:
        _loaded_config = _config_parser.load_config(config_path)

    return _loaded_config


def validate_config_file(config_path: Union[str, Path]) -> SQLFixtureConfig:
    return _config_parser.validate_config_file(config_path)


def create_sample_config(output_path: Union[str, Path]) -> None:
    _config_parser.create_sample_config(output_path)
