"""Configuration loader for the mirror engine."""

import logging
import os
from enum import Enum
from pathlib import Path
from typing import Any, Dict, List, Optional, Type, TypeVar

import yaml

from mirror_sync.options import ExistingType, FileErrorType, FollowLinkType, PermissionType

E = TypeVar("E", bound=Enum)


class ConfigError(Exception):
    """Raised when config validation fails."""

    pass


class Config:
    """Configuration object for the mirror engine."""

    def __init__(self, config_dict: Dict[str, Any]):
        """Initialize config from dictionary."""
        self._config = config_dict
        self._validate()

    def _validate(self) -> None:
        """Validate required configuration fields and option values."""
        required_keys = ["remote_root"]
        for key in required_keys:
            if key not in self._config:
                raise ConfigError(f"Missing required config key: {key}")

            value = self._config[key]
            if not isinstance(value, str):
                raise ConfigError(f"Config key '{key}' must be a string")

        for key in ("include", "exclude"):
            value = self._config.get(key)
            if value is not None and not isinstance(value, list):
                raise ConfigError(f"Config key '{key}' must be a list of patterns")

        if not isinstance(logging.getLevelName(str(self.log_level).upper()), int):
            raise ConfigError(f"Unknown log level: {self.log_level}")

        # Resolve every policy once so bad values fail at load time
        _ = (self.follow_links, self.permissions, self.existing, self.file_errors)

    def _option(self, key: str, enum_type: Type[E], default: E) -> E:
        raw = self._config.get(key)
        if raw is None:
            return default
        try:
            return enum_type(str(raw).lower())
        except ValueError:
            allowed = ", ".join(member.value for member in enum_type)
            raise ConfigError(f"Config key '{key}' must be one of: {allowed}") from None

    @property
    def name(self) -> str:
        """Get the mirror name used for the {name} token."""
        return self._config.get("name", "mirror")

    @property
    def remote_root(self) -> str:
        """Get remote storage root path."""
        return self._config["remote_root"]

    @property
    def cache_file(self) -> str:
        """Get cache file path template."""
        return self._config.get("cache_file", ".mirror_sync_{name}.cache")

    @property
    def lock_file(self) -> str:
        """Get lock file path template."""
        return self._config.get("lock_file", ".mirror_sync_{name}.lock")

    @property
    def pid_file(self) -> str:
        """Get PID file path template."""
        return self._config.get("pid_file", ".mirror_sync_{name}.pid")

    @property
    def nocache(self) -> bool:
        """Whether to ignore the cache file and always list the remote."""
        return bool(self._config.get("nocache", False))

    @property
    def forcestart(self) -> bool:
        """Whether to start even if a PID file exists."""
        return bool(self._config.get("forcestart", False))

    @property
    def dry_run(self) -> bool:
        """Get dry run flag."""
        return bool(self._config.get("dry_run", False))

    @property
    def include(self) -> Optional[List[str]]:
        """Get include patterns, or None when no include list is configured."""
        items = self._config.get("include")
        if not items:
            return None
        return [str(i) for i in items if i]

    @property
    def exclude(self) -> Optional[List[str]]:
        """Get exclude patterns, or None when no exclude list is configured."""
        items = self._config.get("exclude")
        if not items:
            return None
        return [str(i) for i in items if i]

    @property
    def follow_links(self) -> FollowLinkType:
        """Get symbolic link policy."""
        return self._option("follow_links", FollowLinkType, FollowLinkType.EXTERNAL)

    @property
    def permissions(self) -> PermissionType:
        """Get permission restore policy."""
        return self._option("permissions", PermissionType, PermissionType.SET)

    @property
    def existing(self) -> ExistingType:
        """Get policy for existing restore targets."""
        return self._option("existing", ExistingType, ExistingType.RENAME)

    @property
    def file_errors(self) -> FileErrorType:
        """Get policy for unreadable local items."""
        return self._option("file_errors", FileErrorType, FileErrorType.MESSAGE)

    @property
    def log_file_path(self) -> str:
        """Get log file path."""
        return (self._config.get("logging") or {}).get("file_path", "mirror_sync.log")

    @property
    def log_level(self) -> str:
        """Get log level."""
        return (self._config.get("logging") or {}).get("level", "INFO")

    @property
    def log_max_size_mb(self) -> int:
        """Get max log size in MB before rotation."""
        return (self._config.get("logging") or {}).get("max_size_mb", 10)

    @property
    def log_backup_count(self) -> int:
        """Get number of rotated log files to keep."""
        return (self._config.get("logging") or {}).get("backup_count", 5)

    @property
    def log_rotation_enabled(self) -> bool:
        """Get log rotation flag."""
        return (self._config.get("logging") or {}).get("rotation_enabled", True)

    def to_dict(self) -> Dict[str, Any]:
        """Return config as dictionary."""
        return self._config.copy()


def load_config(config_path: str) -> Config:
    """Load configuration from YAML file.

    Args:
        config_path: Path to config.yaml file

    Returns:
        Config object

    Raises:
        ConfigError: If config file doesn't exist or is invalid
        yaml.YAMLError: If YAML parsing fails
    """
    path = Path(config_path)

    if not path.exists():
        raise ConfigError(f"Config file not found: {config_path}")

    with open(path, "r", encoding="utf-8") as f:
        config_dict = yaml.safe_load(f) or {}

    if not isinstance(config_dict, dict):
        raise ConfigError(f"Config file must contain a mapping: {config_path}")

    return Config(config_dict)


def load_config_from_env(env_var: str = "MIRROR_SYNC_CONFIG") -> Config:
    """Load configuration from environment variable.

    Args:
        env_var: Name of environment variable containing config path

    Returns:
        Config object

    Raises:
        ConfigError: If environment variable not set or config invalid
    """
    config_path = os.getenv(env_var)
    if not config_path:
        raise ConfigError(f"Environment variable {env_var} not set")

    return load_config(config_path)
