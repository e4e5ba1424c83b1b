"""
Shellcore Configuration Loader

Configuration management for the shell core:
- Nested dataclass sections with defaults
- JSON configuration file loading with key validation
- Dot-notation runtime access and overrides

Version: 1.0.0
"""

import json
import threading
from dataclasses import dataclass, field, fields, is_dataclass
from pathlib import Path
from typing import Any, Optional, List

from shellcore.exceptions import ConfigValidationError, BootFailureError


@dataclass
class SystemConfig:
    """Identification of the simulated system."""
    name: str = "OopisOS"
    version: str = "1.0.0"
    host: str = "OopisOs"


@dataclass
class FilesystemConfig:
    """Virtual filesystem settings."""
    max_vfs_size: int = 640 * 1024 * 1024  # 640 MiB
    default_file_mode: int = 0o644
    default_dir_mode: int = 0o755
    symlink_mode: int = 0o777
    max_symlink_depth: int = 10


@dataclass
class UsersConfig:
    """User, group and authentication settings."""
    default_user: str = "Guest"
    root_user: str = "root"
    home_prefix: str = "/home"
    min_username_length: int = 3
    max_username_length: int = 20
    reserved_usernames: List[str] = field(default_factory=lambda: [
        "guest", "root", "admin", "system"
    ])
    password_iterations: int = 100000
    root_password: Optional[str] = None
    default_groups: List[str] = field(default_factory=lambda: [
        "root", "Guest", "userDiag", "towncrier"
    ])


@dataclass
class ShellConfig:
    """Shell and executor settings."""
    prompt_char: str = ">"
    history_size: int = 50
    max_script_steps: int = 10000
    max_script_depth: int = 100
    yield_interval: int = 1000
    enable_autocomplete: bool = True
    default_aliases: dict[str, str] = field(default_factory=lambda: {
        "ll": "ls -la",
        "la": "ls -a",
        "..": "cd ..",
        "...": "cd ../..",
        "h": "history",
        "c": "clear",
    })


@dataclass
class StorageConfig:
    """Persistent storage settings."""
    backend: str = "memory"  # "memory" or "file"
    path: str = "~/.shellcore/storage.json"


@dataclass
class LoggingConfig:
    """Logging configuration settings."""
    level: str = "WARNING"
    log_file: Optional[str] = None
    console_output: bool = False
    use_colors: bool = True


@dataclass
class Config:
    """
    Main configuration container.

    Holds every configuration section of the shell core.
    """
    system: SystemConfig = field(default_factory=SystemConfig)
    filesystem: FilesystemConfig = field(default_factory=FilesystemConfig)
    users: UsersConfig = field(default_factory=UsersConfig)
    shell: ShellConfig = field(default_factory=ShellConfig)
    storage: StorageConfig = field(default_factory=StorageConfig)
    logging: LoggingConfig = field(default_factory=LoggingConfig)


class ConfigLoader:
    """
    Configuration loader and manager.

    Loads settings from JSON, rejecting unknown sections and keys, and
    offers runtime access by dot-notation key.

    Example:
        >>> loader = ConfigLoader()
        >>> config = loader.load('shellcore.json')
        >>> print(config.shell.prompt_char)
        >
    """

    _instance: Optional['ConfigLoader'] = None
    _lock = threading.Lock()

    def __new__(cls) -> 'ConfigLoader':
        """Singleton pattern for configuration access."""
        with cls._lock:
            if cls._instance is None:
                cls._instance = super().__new__(cls)
                cls._instance._config = Config()
                cls._instance._loaded = False
            return cls._instance

    def load(self, config_path: str) -> Config:
        """
        Load configuration from a JSON file.

        Args:
            config_path: Path to the configuration file

        Returns:
            Config object with loaded settings

        Raises:
            BootFailureError: If the file cannot be read or parsed
            ConfigValidationError: If the file contains unknown keys
        """
        path = Path(config_path).expanduser()

        if not path.exists():
            raise BootFailureError(
                f"Configuration file not found: {config_path}",
                subsystem="config"
            )

        try:
            with open(path, 'r', encoding='utf-8') as f:
                data = json.load(f)
        except json.JSONDecodeError as e:
            raise BootFailureError(
                f"Invalid JSON in configuration file: {e}",
                subsystem="config"
            )
        except OSError as e:
            raise BootFailureError(
                f"Cannot read configuration file: {e}",
                subsystem="config"
            )

        self._config = self.parse(data)
        self._loaded = True
        return self._config

    @staticmethod
    def parse(data: dict[str, Any]) -> Config:
        """
        Build a Config from a plain dictionary.

        Sections and keys absent from ``data`` keep their defaults.

        Raises:
            ConfigValidationError: On unknown sections or keys
        """
        if not isinstance(data, dict):
            raise ConfigValidationError("Configuration root must be an object")

        config = Config()
        known_sections = {f.name for f in fields(Config)}

        for section_name, section_data in data.items():
            if section_name not in known_sections:
                raise ConfigValidationError(
                    f"Unknown configuration section: {section_name}",
                    key=section_name
                )
            if not isinstance(section_data, dict):
                raise ConfigValidationError(
                    f"Configuration section '{section_name}' must be an object",
                    key=section_name
                )

            section = getattr(config, section_name)
            known_keys = {f.name for f in fields(section)}
            for key, value in section_data.items():
                if key not in known_keys:
                    raise ConfigValidationError(
                        f"Unknown configuration key: {section_name}.{key}",
                        key=f"{section_name}.{key}"
                    )
                setattr(section, key, value)

        return config

    @property
    def config(self) -> Config:
        """Get the current configuration."""
        return self._config

    @property
    def loaded(self) -> bool:
        return self._loaded

    def get(self, key: str, default: Any = None) -> Any:
        """
        Get a configuration value by dot-notation key.

        Args:
            key: Dot-notation key (e.g., 'shell.history_size')
            default: Default value if key not found

        Returns:
            Configuration value or default
        """
        obj: Any = self._config
        for part in key.split('.'):
            if not hasattr(obj, part):
                return default
            obj = getattr(obj, part)
        return obj

    def set(self, key: str, value: Any) -> None:
        """
        Set a configuration value at runtime.

        Args:
            key: Dot-notation key (e.g., 'shell.max_script_steps')
            value: Value to set

        Raises:
            ConfigValidationError: If the key does not exist
        """
        parts = key.split('.')
        obj: Any = self._config

        for part in parts[:-1]:
            if not hasattr(obj, part):
                raise ConfigValidationError(f"Invalid configuration key: {key}", key=key)
            obj = getattr(obj, part)

        if not is_dataclass(obj) or not hasattr(obj, parts[-1]):
            raise ConfigValidationError(f"Invalid configuration key: {key}", key=key)
        setattr(obj, parts[-1], value)

    def reset(self) -> None:
        """Restore default settings."""
        self._config = Config()
        self._loaded = False

    def to_dict(self) -> dict[str, Any]:
        """Convert configuration to a dictionary."""
        def dataclass_to_dict(obj: Any) -> Any:
            if is_dataclass(obj):
                return {f.name: dataclass_to_dict(getattr(obj, f.name)) for f in fields(obj)}
            if isinstance(obj, list):
                return [dataclass_to_dict(item) for item in obj]
            if isinstance(obj, dict):
                return {k: dataclass_to_dict(v) for k, v in obj.items()}
            return obj

        return dataclass_to_dict(self._config)


def get_config() -> Config:
    """
    Get the global configuration instance.

    Returns:
        Config object with current settings
    """
    return ConfigLoader().config
