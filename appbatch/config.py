"""Configuration file loader for appbatch.

Handles discovery, loading, parsing, and validation of configuration files.
Supports two formats:

- ``appbatch.toml``: settings under ``[appbatch]`` table
- ``pyproject.toml``: settings under ``[tool.appbatch]`` table

Discovery order:

1. Explicit path from ``--config`` or ``APPBATCH_CONFIG``
2. ``appbatch.toml`` in current directory
3. ``pyproject.toml`` with ``[tool.appbatch]`` section

Configuration precedence: defaults < config file < environment < CLI args.
The resulting :class:`AppBatchConfig` is immutable; command-line overrides
produce a new instance via :meth:`AppBatchConfig.with_overrides`.

Example (``appbatch.toml``)::

    [appbatch]
    instance_url = "https://dev12345.service-now.com"
    compatibility_tag = "washingtondc"
    batch_size = 5
    poll_interval = 300
    max_poll_cycles = 72
    app_limit = 20
    include_system_apps = false
"""

from __future__ import annotations

import dataclasses
from pathlib import Path
from dataclasses import dataclass, field
from typing import Any, Dict, Optional, Tuple, Type

import tomli as tomllib

from appbatch.exceptions import ConfigError
from appbatch.utils.logger import get_logger
from appbatch.constants import (
    DEFAULT_APP_LIMIT,
    DEFAULT_BATCH_SIZE,
    DEFAULT_DRY_RUN,
    DEFAULT_INCLUDE_SYSTEM_APPS,
    DEFAULT_LOAD_DEMO_DATA,
    DEFAULT_MAX_POLL_CYCLES,
    DEFAULT_MAX_RETRIES,
    DEFAULT_PASSWORD_PROPERTY,
    DEFAULT_POLL_INTERVAL,
    DEFAULT_PRESERVE_DEMO_DATA,
    DEFAULT_TIMEOUT,
    DEFAULT_USER_PROPERTY,
)

logger = get_logger("config")

#: Accepted TOML types per option. ``bool`` is rejected where ``int`` is expected.
_OPTION_TYPES: Dict[str, Tuple[Type[Any], ...]] = {
    "instance_url": (str,),
    "compatibility_tag": (str,),
    "batch_size": (int,),
    "poll_interval": (int, float),
    "max_poll_cycles": (int,),
    "dry_run": (bool,),
    "load_demo_data_default": (bool,),
    "preserve_demo_data": (bool,),
    "app_limit": (int,),
    "include_system_apps": (bool,),
    "user_property": (str,),
    "password_property": (str,),
    "http_timeout": (int,),
    "http_retries": (int,),
}


@dataclass(frozen=True)
class AppBatchConfig:
    """Parsed and validated appbatch configuration.

    All fields have defaults, so empty config files are valid.

    Attributes:
        instance_url: Base URL of the instance hosting the CI/CD API.
        compatibility_tag: Build family used to filter compatible versions.
            When empty, the instance's ``glide.buildname`` is used.
        batch_size: Applications per install job.
        poll_interval: Seconds between progress polls.
        max_poll_cycles: Poll cycles allowed per batch before timing out.
        dry_run: Report planned payloads without submitting anything.
        load_demo_data_default: Demo-data flag when not preserving state.
        preserve_demo_data: Carry over each application's demo-data state.
        app_limit: Maximum number of candidates considered.
        include_system_apps: Include ``@``-prefixed system applications.
        user_property: Credential key of the API user.
        password_property: Credential key of the API password.
        http_timeout: Request timeout in seconds.
        http_retries: Retries for idempotent requests.
        source_path: Path to loaded config file, or ``None`` for defaults.
    """

    instance_url: str = ""
    compatibility_tag: str = ""
    batch_size: int = DEFAULT_BATCH_SIZE
    poll_interval: float = DEFAULT_POLL_INTERVAL
    max_poll_cycles: int = DEFAULT_MAX_POLL_CYCLES
    dry_run: bool = DEFAULT_DRY_RUN
    load_demo_data_default: bool = DEFAULT_LOAD_DEMO_DATA
    preserve_demo_data: bool = DEFAULT_PRESERVE_DEMO_DATA
    app_limit: int = DEFAULT_APP_LIMIT
    include_system_apps: bool = DEFAULT_INCLUDE_SYSTEM_APPS
    user_property: str = DEFAULT_USER_PROPERTY
    password_property: str = DEFAULT_PASSWORD_PROPERTY
    http_timeout: int = DEFAULT_TIMEOUT
    http_retries: int = DEFAULT_MAX_RETRIES

    # Metadata (not a user-facing option)
    source_path: Optional[Path] = field(default=None, repr=False, compare=False)

    def __post_init__(self) -> None:
        path = str(self.source_path) if self.source_path else None
        _require(self.batch_size >= 1, "batch_size must be at least 1", path, "batch_size")
        _require(
            self.max_poll_cycles >= 1,
            "max_poll_cycles must be at least 1",
            path,
            "max_poll_cycles",
        )
        _require(
            self.poll_interval >= 0,
            "poll_interval must not be negative",
            path,
            "poll_interval",
        )
        _require(self.app_limit >= 0, "app_limit must not be negative", path, "app_limit")
        _require(self.http_timeout > 0, "http_timeout must be positive", path, "http_timeout")
        _require(
            self.http_retries >= 0,
            "http_retries must not be negative",
            path,
            "http_retries",
        )

    @property
    def base_url(self) -> str:
        """Instance URL without trailing slashes."""
        return self.instance_url.rstrip("/")

    def with_overrides(self, **overrides: Any) -> "AppBatchConfig":
        """Return a copy with every non-``None`` override applied.

        Raises:
            ConfigError: An override is out of range.
        """
        changes = {k: v for k, v in overrides.items() if v is not None}
        if not changes:
            return self
        return dataclasses.replace(self, **changes)

    def to_log_dict(self) -> Dict[str, Any]:
        """Return configuration as dictionary for debug logging.

        Excludes ``source_path`` metadata.
        """
        return {name: getattr(self, name) for name in _OPTION_TYPES}


def _require(condition: bool, message: str, path: Optional[str], option: str) -> None:
    if not condition:
        raise ConfigError(message, config_path=path, option=option)


def discover_config_file(explicit_path: Optional[Path] = None) -> Optional[Path]:
    """Find the configuration file to load.

    Search order:

    1. ``explicit_path`` (from ``--config`` or ``APPBATCH_CONFIG``)
    2. ``appbatch.toml`` in current directory
    3. ``pyproject.toml`` with ``[tool.appbatch]`` section in current directory

    Args:
        explicit_path: Explicit config path. If provided, must exist.

    Returns:
        Resolved path to config file, or ``None`` if not found.

    Raises:
        ConfigError: Explicit path provided but does not exist.
    """
    if explicit_path is not None:
        resolved = explicit_path.resolve()
        if not resolved.is_file():
            raise ConfigError(
                f"Configuration file not found: {explicit_path}",
                config_path=str(explicit_path),
            )
        logger.debug("Using explicit config: %s", resolved)
        return resolved

    cwd = Path.cwd()

    appbatch_toml = cwd / "appbatch.toml"
    if appbatch_toml.is_file():
        logger.debug("Found appbatch.toml: %s", appbatch_toml)
        return appbatch_toml

    pyproject_toml = cwd / "pyproject.toml"
    if pyproject_toml.is_file() and _pyproject_has_appbatch_section(pyproject_toml):
        logger.debug("Found [tool.appbatch] in pyproject.toml: %s", pyproject_toml)
        return pyproject_toml

    logger.debug("No configuration file found")
    return None


def _pyproject_has_appbatch_section(path: Path) -> bool:
    """Check if pyproject.toml contains a [tool.appbatch] section.

    Parse errors count as "no section" so that an unrelated broken
    pyproject.toml does not prevent running with defaults.
    """
    try:
        raw = _read_toml(path)
    except ConfigError:
        return False
    return "appbatch" in raw.get("tool", {})


def load_config(config_path: Optional[Path] = None) -> AppBatchConfig:
    """Load and validate appbatch configuration.

    Args:
        config_path: Explicit path to config file. If ``None``, uses
            auto-discovery (see :func:`discover_config_file`).

    Returns:
        Validated :class:`AppBatchConfig` with values from file or defaults.

    Raises:
        ConfigError: File cannot be parsed, has unknown keys, or invalid values.
    """
    resolved = discover_config_file(config_path)

    if resolved is None:
        logger.debug("No config file found, using defaults")
        return AppBatchConfig()

    logger.debug("Loading configuration from %s", resolved)
    raw = _read_toml(resolved)

    if resolved.name == "pyproject.toml":
        section = raw.get("tool", {}).get("appbatch", {})
    else:
        section = raw.get("appbatch", {})

    if not section:
        logger.debug("Config file found but no appbatch section, using defaults")
        return AppBatchConfig(source_path=resolved)

    config = _parse_section(section, config_path=resolved)
    logger.debug("Loaded configuration: %s", config.to_log_dict())
    return config


def _read_toml(path: Path) -> Dict[str, Any]:
    """Read and parse a TOML file.

    Raises:
        ConfigError: File cannot be read or is not valid TOML.
    """
    try:
        with open(path, "rb") as fh:
            return tomllib.load(fh)
    except tomllib.TOMLDecodeError as exc:
        raise ConfigError(
            f"Invalid TOML in {path.name}: {exc}",
            config_path=str(path),
        ) from exc
    except OSError as exc:
        raise ConfigError(
            f"Cannot read configuration file {path}: {exc}",
            config_path=str(path),
        ) from exc


def _parse_section(
    section: Dict[str, Any],
    *,
    config_path: Path,
) -> AppBatchConfig:
    """Parse and validate an ``[appbatch]`` or ``[tool.appbatch]`` table.

    Rejects unknown keys and type mismatches.

    Raises:
        ConfigError: Unknown keys, incorrect types or out-of-range values.
    """
    unknown = set(section.keys()) - set(_OPTION_TYPES)
    if unknown:
        raise ConfigError(
            f"Unknown configuration keys: {', '.join(sorted(unknown))}",
            config_path=str(config_path),
        )

    values: Dict[str, Any] = {}
    for option, value in section.items():
        expected = _OPTION_TYPES[option]
        # bool is a subclass of int; only accept it where bool is expected
        if not isinstance(value, expected) or (
            isinstance(value, bool) and bool not in expected
        ):
            type_names = " or ".join(t.__name__ for t in expected)
            raise ConfigError(
                f"{option} must be {type_names}, got {type(value).__name__}",
                config_path=str(config_path),
                option=option,
            )
        values[option] = value

    return AppBatchConfig(source_path=config_path, **values)
