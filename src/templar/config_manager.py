"""Configuration management module.

Engine settings are stored in TOML at ``~/.templar/config.toml`` (or the file
named by ``TEMPLAR_CONFIG``). Missing files fall back to defaults.

Security:
- Config file permissions: 0600 (owner read/write only)
- Atomic writes (temp file + rename)
"""

import logging
import os
import tomllib
from dataclasses import asdict, dataclass
from pathlib import Path
from typing import Any

import tomlkit
import tomlkit.exceptions

logger = logging.getLogger(__name__)

CONFIG_ENV_VAR = "TEMPLAR_CONFIG"


class ConfigError(Exception):
    """Raised when configuration operations fail."""

    pass


@dataclass
class EngineConfig:
    """Version engine configuration data."""

    data_dir: str = "~/.templar/data"
    lock_timeout_seconds: float = 5.0
    max_resolution_depth: int = 32
    max_dependency_fanout: int = 64
    audit_log: str | None = None  # JSON lines file; no file audit when unset

    def __post_init__(self):
        if self.lock_timeout_seconds <= 0:
            raise ConfigError(f"lock_timeout_seconds must be positive, got {self.lock_timeout_seconds}")
        if self.max_resolution_depth < 0:
            raise ConfigError(f"max_resolution_depth must be >= 0, got {self.max_resolution_depth}")
        if self.max_dependency_fanout < 1:
            raise ConfigError(f"max_dependency_fanout must be >= 1, got {self.max_dependency_fanout}")

    @property
    def data_path(self) -> Path:
        return Path(self.data_dir).expanduser()

    @property
    def audit_log_path(self) -> Path | None:
        return Path(self.audit_log).expanduser() if self.audit_log else None

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary, excluding None values."""
        data = asdict(self)
        # TOML has no null
        return {k: v for k, v in data.items() if v is not None}

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "EngineConfig":
        """Create from dictionary, ignoring unknown keys.

        Raises:
            ConfigError: If a value has the wrong type or is out of range
        """
        try:
            return cls(
                data_dir=str(data.get("data_dir", "~/.templar/data")),
                lock_timeout_seconds=float(data.get("lock_timeout_seconds", 5.0)),
                max_resolution_depth=int(data.get("max_resolution_depth", 32)),
                max_dependency_fanout=int(data.get("max_dependency_fanout", 64)),
                audit_log=data.get("audit_log"),
            )
        except (TypeError, ValueError) as e:
            raise ConfigError(f"Invalid configuration value: {e}") from e


class ConfigManager:
    """Manage the engine configuration file."""

    DEFAULT_CONFIG_DIR = Path.home() / ".templar"
    DEFAULT_CONFIG_FILE = DEFAULT_CONFIG_DIR / "config.toml"

    @classmethod
    def get_config_path(cls, custom_path: str | Path | None = None) -> Path:
        """Get configuration file path.

        Precedence: ``custom_path``, then ``TEMPLAR_CONFIG``, then the default.

        Raises:
            ConfigError: If an explicit custom path does not exist
        """
        if custom_path:
            path = Path(custom_path).expanduser().resolve()
            if not path.exists():
                raise ConfigError(f"Config file not found: {path}")
            return path

        env_path = os.environ.get(CONFIG_ENV_VAR)
        if env_path:
            return Path(env_path).expanduser()

        return cls.DEFAULT_CONFIG_FILE

    @classmethod
    def load_config(cls, custom_path: str | Path | None = None) -> EngineConfig:
        """Load configuration from file.

        Returns:
            EngineConfig (defaults when no config file exists)

        Raises:
            ConfigError: If the file cannot be read or holds invalid values
        """
        config_path = cls.get_config_path(custom_path)

        if not config_path.exists():
            logger.debug("Config file not found, using defaults")
            return EngineConfig()

        try:
            mode = config_path.stat().st_mode & 0o777
            if mode & 0o077:
                logger.warning(f"Config file has insecure permissions: {oct(mode)}. Fixing to 0600...")
                os.chmod(config_path, 0o600)

            with open(config_path, "rb") as f:
                data = tomllib.load(f)
        except (OSError, tomllib.TOMLDecodeError) as e:
            raise ConfigError(f"Failed to load config: {e}") from e

        logger.debug(f"Loaded config from: {config_path}")
        return EngineConfig.from_dict(data)

    @classmethod
    def save_config(cls, config: EngineConfig, custom_path: str | Path | None = None) -> Path:
        """Save configuration to file, preserving comments in an existing file.

        Returns:
            Path written

        Raises:
            ConfigError: If saving fails
        """
        if custom_path:
            config_path = Path(custom_path).expanduser().resolve()
        else:
            config_path = cls.get_config_path()
        temp_path = config_path.with_suffix(".tmp")

        try:
            config_path.parent.mkdir(parents=True, exist_ok=True)

            if config_path.exists():
                with open(config_path) as f:
                    doc = tomlkit.load(f)
            else:
                doc = tomlkit.document()

            values = config.to_dict()
            for key, value in values.items():
                doc[key] = value
            if "audit_log" not in values and "audit_log" in doc:
                del doc["audit_log"]

            with open(temp_path, "w") as f:
                tomlkit.dump(doc, f)
            os.chmod(temp_path, 0o600)
            temp_path.replace(config_path)
        except (OSError, tomlkit.exceptions.TOMLKitError) as e:
            if temp_path.exists():
                temp_path.unlink()
            raise ConfigError(f"Failed to save config: {e}") from e

        logger.debug(f"Saved config to: {config_path}")
        return config_path


__all__ = ["CONFIG_ENV_VAR", "ConfigError", "ConfigManager", "EngineConfig"]
