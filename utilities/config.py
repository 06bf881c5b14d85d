"""
Configuration management using environment variables.
Handles all daemon settings with proper validation and defaults.
"""

import json
import os
import re
from datetime import timedelta
from pathlib import Path
from typing import Any, Dict, List, Optional

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings

from jobsync.errors import ConfigError


DEFAULT_FALLBACK_INTERVAL = timedelta(minutes=1)

# Nanoseconds per unit; the total is rounded to whole microseconds.
_DURATION_UNITS = {
    "ns": 1,
    "us": 1_000,
    "µs": 1_000,
    "μs": 1_000,
    "ms": 1_000_000,
    "s": 1_000_000_000,
    "m": 60 * 1_000_000_000,
    "h": 3600 * 1_000_000_000,
}
_DURATION_PART = re.compile(r"(\d+(?:\.\d*)?|\.\d+)(ns|us|µs|μs|ms|s|m|h)")


def parse_duration(value: str) -> timedelta:
    """
    Parse a duration string such as ``90s``, ``1h30m`` or ``250ms``.

    Sub-microsecond parts are rounded to the nearest microsecond, so
    ``1500ns`` parses as 2 microseconds and ``1ns`` as zero.

    Args:
        value: Duration string (optionally signed, units ns/us/ms/s/m/h)

    Returns:
        Parsed duration

    Raises:
        ValueError: If the string is not a valid duration
    """
    raw = (value or "").strip()
    if not raw:
        raise ValueError("empty duration")

    sign = 1
    if raw[0] in "+-":
        sign = -1 if raw[0] == "-" else 1
        raw = raw[1:]

    if raw == "0":
        return timedelta(0)

    total_ns = 0.0
    position = 0
    for match in _DURATION_PART.finditer(raw):
        if match.start() != position:
            raise ValueError(f"invalid duration: {value!r}")
        total_ns += _DURATION_UNITS[match.group(2)] * float(match.group(1))
        position = match.end()

    if position == 0 or position != len(raw):
        raise ValueError(f"invalid duration: {value!r}")

    return timedelta(microseconds=round(total_ns / 1000)) * sign


class DaemonConfig(BaseSettings):
    """
    Configuration class for daemon settings.
    Uses pydantic BaseSettings for environment variable management.
    """

    # Wiki Configuration
    wiki_api_url: str = Field(default="")
    wiki_username: str = Field(default="")
    wiki_password: str = Field(default="")
    wiki_namespace: str = Field(default="Module")
    module_file: Optional[str] = Field(default=None)
    queue_note: str = Field(default="Publish this page and wait at least a minute for data to be fetched.")
    field_path_not_found: str = Field(default="Field path not found (%s), [[%s|see fields]].")

    # Dynamic Endpoints
    category_prefix: str = Field(default="roapid")
    api_map: Dict[str, str] = Field(default_factory=lambda: {
        "badges": "https://badges.roblox.com/v1/badges/%s",
        "games": "https://games.roblox.com/v1/games?universeIds=%s",
        "users": "https://apis.roblox.com/cloud/v2/users/%s",
        "groups": "https://apis.roblox.com/cloud/v2/groups/%s",
        "universes": "https://apis.roblox.com/cloud/v2/universes/%s",
        "places": "https://apis.roblox.com/cloud/v2/%s",
    })
    refresh_intervals: Dict[str, str] = Field(default_factory=dict)
    authenticated_endpoints: List[str] = Field(
        default_factory=lambda: ["users", "groups", "universes", "places"]
    )
    composite_endpoints: Dict[str, str] = Field(
        default_factory=lambda: {"places": "universes/{0}/places/{1}"}
    )
    open_cloud_api_key: str = Field(default="")

    # Scheduling
    category_check_interval: str = Field(default="1m")
    data_refresh_interval: str = Field(default="5m")

    # Storage
    data_dir: str = Field(default="data")
    config_dir: str = Field(default="config")

    # HTTP
    request_timeout: int = Field(default=30)
    user_agent: str = Field(default="RobloxAPID/1.0 (https://github.com/paradoxum-wikis/RobloxAPID)")

    # Logging Configuration
    log_level: str = Field(default="INFO")
    log_format: str = Field(default="json")
    log_file: Optional[str] = Field(default="logs/roapid.log")

    # Development/Testing
    debug: bool = Field(default=False)

    model_config = {
        "env_file": ".env",
        "env_file_encoding": "utf-8",
        "case_sensitive": False,
        "extra": "ignore",  # Ignore extra fields from .env
    }

    @field_validator("category_check_interval", "data_refresh_interval")
    @classmethod
    def validate_positive_interval(cls, v):
        """Ensure scheduling intervals parse to a positive duration."""
        if parse_duration(v) <= timedelta(0):
            raise ValueError("interval must be a positive duration")
        return v

    @field_validator("request_timeout")
    @classmethod
    def validate_timeout(cls, v):
        """Ensure timeout is reasonable."""
        if v < 1 or v > 300:
            raise ValueError("request_timeout must be between 1 and 300 seconds")
        return v

    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, v):
        """Ensure log level is valid."""
        valid_levels = ["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]
        if v.upper() not in valid_levels:
            raise ValueError(f"log_level must be one of: {valid_levels}")
        return v.upper()

    @field_validator("log_format")
    @classmethod
    def validate_log_format(cls, v):
        """Ensure log format is valid."""
        valid_formats = ["json", "console"]
        if v.lower() not in valid_formats:
            raise ValueError(f"log_format must be one of: {valid_formats}")
        return v.lower()

    def get_category_check_interval(self) -> timedelta:
        return parse_duration(self.category_check_interval)

    def get_data_refresh_interval(self) -> timedelta:
        return parse_duration(self.data_refresh_interval)

    def resolve_refresh_interval(self, endpoint_type: str) -> timedelta:
        """
        Get the configured refresh interval for an endpoint type.

        Falls back to the data refresh interval when the endpoint type has
        no entry of its own.

        Raises:
            ConfigError: If the per-endpoint value is not a positive duration
        """
        raw = self.refresh_intervals.get(endpoint_type)
        if not raw:
            return self.get_data_refresh_interval()
        try:
            interval = parse_duration(raw)
        except ValueError as e:
            raise ConfigError(f"invalid refresh interval for {endpoint_type}: {e}") from e
        if interval <= timedelta(0):
            raise ConfigError(f"refresh interval for {endpoint_type} must be positive: {raw!r}")
        return interval

    def interval_resolver(self, endpoint_type: str) -> timedelta:
        """Resolve an interval, never failing and never returning zero."""
        try:
            return self.resolve_refresh_interval(endpoint_type)
        except (ConfigError, ValueError):
            pass
        try:
            interval = self.get_data_refresh_interval()
        except ValueError:
            return DEFAULT_FALLBACK_INTERVAL
        return interval if interval > timedelta(0) else DEFAULT_FALLBACK_INTERVAL

    def get_documentation_interval(self) -> timedelta:
        """
        Interval of the usage guide sync.

        Uses ``refresh_intervals["documentation"]`` when set. Older config
        files have no such entry and time the guides with the ``badges``
        interval, so that is the fallback.
        """
        if self.refresh_intervals.get("documentation"):
            return self.interval_resolver("documentation")
        return self.interval_resolver("badges")

    def validate_for_startup(self) -> None:
        """Raise ConfigError when required secrets are missing."""
        missing = [
            name for name in ("wiki_api_url", "wiki_username", "wiki_password")
            if not getattr(self, name)
        ]
        if missing:
            raise ConfigError(f"missing required settings: {', '.join(missing)}")
        if not self.category_prefix:
            raise ConfigError("category_prefix cannot be empty")

    def get_log_file_path(self) -> Optional[Path]:
        """Get log file path as Path object."""
        if self.log_file:
            return Path(self.log_file)
        return None

    def get_data_dir(self) -> Path:
        return Path(self.data_dir)

    def get_config_dir(self) -> Path:
        return Path(self.config_dir)

    def get_module_title(self) -> str:
        return f"{self.wiki_namespace}:Roapid"


def _flatten_legacy_config(raw: Dict[str, Any]) -> Dict[str, Any]:
    """Map the nested JSON config layout onto DaemonConfig field names."""
    layout = {
        ("server", "categoryCheckInterval"): "category_check_interval",
        ("server", "dataRefreshInterval"): "data_refresh_interval",
        ("wiki", "apiUrl"): "wiki_api_url",
        ("wiki", "username"): "wiki_username",
        ("wiki", "password"): "wiki_password",
        ("wiki", "namespace"): "wiki_namespace",
        ("dynamicEndpoints", "categoryPrefix"): "category_prefix",
        ("dynamicEndpoints", "apiMap"): "api_map",
        ("dynamicEndpoints", "refreshIntervals"): "refresh_intervals",
        ("openCloud", "apiKey"): "open_cloud_api_key",
        ("luaMessages", "queueNote"): "queue_note",
        ("luaMessages", "fieldPathNotFound"): "field_path_not_found",
    }
    values = {}
    for (section, key), field_name in layout.items():
        value = (raw.get(section) or {}).get(key)
        if value not in (None, ""):
            values[field_name] = value
    return values


def load_config(path: Optional[str] = None) -> DaemonConfig:
    """
    Load configuration from environment, optionally overlaid with a JSON file.

    The JSON file uses the nested layout (server, wiki, dynamicEndpoints,
    openCloud, luaMessages) and may reference environment variables as
    ``$NAME`` or ``${NAME}``.

    Args:
        path: Optional path to a JSON config file

    Returns:
        Validated DaemonConfig
    """
    if path and Path(path).exists():
        expanded = os.path.expandvars(Path(path).read_text(encoding="utf-8"))
        try:
            raw = json.loads(expanded)
        except json.JSONDecodeError as e:
            raise ConfigError(f"cannot parse {path}: {e}") from e
        return DaemonConfig(**_flatten_legacy_config(raw))
    return DaemonConfig()

