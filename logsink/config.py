"""Settings for the file sink and the supervisor, loaded from YAML and env vars."""

import logging
import os
from dataclasses import dataclass, field, fields, replace
from typing import Mapping

import yaml

from logsink.categories import CategoryMask, parse_categories
from logsink.errors import ConfigurationError
from logsink.retry import RetryPolicy

logger = logging.getLogger(__name__)

GZ_SUFFIX = ".gz"


def _parse_bool(value) -> bool:
    if isinstance(value, bool):
        return value
    return str(value).strip().lower() in ("true", "1", "yes")


@dataclass(frozen=True)
class FileSinkConfig:
    base_directory: str
    base_name: str
    extension: str = ".log"
    enable_compression: bool = False
    enabled_categories: CategoryMask = CategoryMask.ALL
    max_file_size: int = 10 * 1024 * 1024  # 10 MB
    max_file_count: int = 10               # 0 = unlimited
    max_days_old: int = 30                 # 0 = unlimited
    daily_files: bool = True
    date_subdirectory: str = ""            # may contain strftime codes
    auto_flush: bool = True
    compression_buffer_size: int = 80 * 1024
    retry_policy: RetryPolicy = field(default_factory=RetryPolicy)
    dispose_timeout: float = 0.5

    def __post_init__(self):
        # A ".gz" extension turns compression on and vice versa, so the two
        # can never disagree.
        if self.extension.lower().endswith(GZ_SUFFIX):
            object.__setattr__(self, "enable_compression", True)
        elif self.enable_compression:
            object.__setattr__(self, "extension", self.extension + GZ_SUFFIX)

    @property
    def plain_extension(self) -> str:
        """Extension of the file being written; compressed files add ``.gz``."""
        if self.enable_compression:
            return self.extension[: -len(GZ_SUFFIX)]
        return self.extension

    def validate(self):
        if not self.base_name:
            raise ConfigurationError("base_name must not be empty")
        if not self.base_directory:
            raise ConfigurationError("base_directory must not be empty")
        if self.max_file_size <= 0:
            raise ConfigurationError("max_file_size must be positive")
        if self.max_file_count < 0 or self.max_days_old < 0:
            raise ConfigurationError("retention limits must not be negative")


@dataclass(frozen=True)
class InitSettings:
    app_name: str = ""
    log_directory: str = "logs"
    enabled_categories: CategoryMask = CategoryMask.ALL
    max_file_size: int = 102400
    max_days_old: int = 30
    max_file_count: int = 10
    log_to_console: bool = True
    enable_compression: bool = True
    daily_files: bool = True
    date_subdirectory: str = ""
    auto_flush: bool = True
    health_check_enabled: bool = False
    health_check_interval: float = 300.0
    auto_restart: bool = True
    restart_delay: float = 3.0

    def validate(self):
        if not self.app_name or not self.app_name.strip():
            raise ConfigurationError("app_name must not be empty")
        if any(sep in self.app_name for sep in ("/", "\\", "\0")):
            raise ConfigurationError(f"app_name is not a valid file name: {self.app_name!r}")
        if not self.log_directory or "\0" in self.log_directory:
            raise ConfigurationError(f"Invalid log directory: {self.log_directory!r}")
        if self.max_file_size <= 0:
            raise ConfigurationError("max_file_size must be positive")
        if self.max_days_old < 0 or self.max_file_count < 0:
            raise ConfigurationError("retention limits must not be negative")
        if self.health_check_interval <= 0:
            raise ConfigurationError("health_check_interval must be positive")

    @property
    def resolved_directory(self) -> str:
        return os.path.abspath(self.log_directory)

    def file_sink_config(self) -> FileSinkConfig:
        return FileSinkConfig(
            base_directory=self.resolved_directory,
            base_name=self.app_name,
            extension=".log.gz" if self.enable_compression else ".log",
            enabled_categories=self.enabled_categories,
            max_file_size=self.max_file_size,
            max_file_count=self.max_file_count,
            max_days_old=self.max_days_old,
            daily_files=self.daily_files,
            date_subdirectory=self.date_subdirectory,
            auto_flush=self.auto_flush,
        )


# env var -> (field, parser)
_ENV_VARS = {
    "LOGSINK_APP_NAME": ("app_name", str),
    "LOGSINK_DIR": ("log_directory", str),
    "LOGSINK_CATEGORIES": ("enabled_categories", parse_categories),
    "LOGSINK_MAX_FILE_SIZE": ("max_file_size", int),
    "LOGSINK_MAX_DAYS_OLD": ("max_days_old", int),
    "LOGSINK_MAX_FILE_COUNT": ("max_file_count", int),
    "LOGSINK_CONSOLE": ("log_to_console", _parse_bool),
    "LOGSINK_COMPRESSION": ("enable_compression", _parse_bool),
    "LOGSINK_HEALTH_CHECK": ("health_check_enabled", _parse_bool),
    "LOGSINK_HEALTH_INTERVAL": ("health_check_interval", float),
    "LOGSINK_AUTO_RESTART": ("auto_restart", _parse_bool),
}

_FIELD_PARSERS = {
    "app_name": str,
    "log_directory": str,
    "enabled_categories": parse_categories,
    "max_file_size": int,
    "max_days_old": int,
    "max_file_count": int,
    "log_to_console": _parse_bool,
    "enable_compression": _parse_bool,
    "daily_files": _parse_bool,
    "date_subdirectory": str,
    "auto_flush": _parse_bool,
    "health_check_enabled": _parse_bool,
    "health_check_interval": float,
    "auto_restart": _parse_bool,
    "restart_delay": float,
}


def load_yaml_config(path: str | None) -> dict:
    """Load settings overrides from a YAML file. Returns empty dict if no path."""
    if not path:
        return {}
    try:
        with open(path, "r", encoding="utf-8") as f:
            data = yaml.safe_load(f) or {}
    except FileNotFoundError:
        logger.warning("Config file %s not found, using defaults", path)
        return {}
    except yaml.YAMLError as e:
        logger.warning("Invalid YAML in %s, using defaults: %s", path, e)
        return {}
    if not isinstance(data, dict):
        logger.warning("Config file %s is not a mapping, using defaults", path)
        return {}
    logger.info("Loaded YAML config from %s", path)
    # Settings may also live under a top-level "logging" key.
    section = data.get("logging")
    return section if isinstance(section, dict) else data


def load_settings(
    yaml_data: Mapping | None = None,
    env: Mapping[str, str] | None = None,
    base: InitSettings | None = None,
) -> InitSettings:
    """Build InitSettings from defaults, then YAML data, then LOGSINK_* env vars."""
    env = os.environ if env is None else env
    settings = base or InitSettings()
    known = {f.name for f in fields(InitSettings)}

    overrides = {}
    for key, value in (yaml_data or {}).items():
        if key not in known:
            logger.warning("Ignoring unknown config key %r", key)
            continue
        try:
            overrides[key] = _FIELD_PARSERS[key](value)
        except (TypeError, ValueError) as e:
            raise ConfigurationError(f"Invalid value for {key}: {value!r}") from e

    for var, (key, parser) in _ENV_VARS.items():
        raw = env.get(var)
        if raw is None:
            continue
        try:
            overrides[key] = parser(raw)
        except (TypeError, ValueError) as e:
            raise ConfigurationError(f"Invalid value for {var}: {raw!r}") from e

    return replace(settings, **overrides)
