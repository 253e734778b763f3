"""Configuration management for meetwatch."""

from __future__ import annotations

import logging
import os
from pathlib import Path
from typing import Any, Callable, Optional

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from meetwatch.core.timezone_utils import DEFAULT_LOCAL_TIMEZONE

logger = logging.getLogger(__name__)

DEFAULT_CONFIG_PATH = Path.home() / ".config" / "meetwatch" / "meetwatch_config.env"


def parse_env_file(path: Path) -> dict[str, str]:
    """Parse a .env file and return key-value pairs.

    Args:
        path: Path to .env file

    Returns:
        Dictionary of key-value pairs from the .env file.
        Empty dict if file doesn't exist or cannot be read.

    Note:
        - Skips empty lines and comments (lines starting with #)
        - Accepts an optional leading ``export``
        - Strips quotes (both single and double) from values
    """
    if not path.exists():
        return {}

    result: dict[str, str] = {}
    try:
        content = path.read_text(encoding="utf-8")
    except (OSError, UnicodeDecodeError):
        logger.debug("Failed to read .env file (continuing): %s", str(path), exc_info=True)
        return result

    for raw_line in content.splitlines():
        line = raw_line.strip()
        if not line or line.startswith("#") or "=" not in line:
            continue
        if line.startswith("export "):
            line = line[len("export ") :]

        key, val = line.split("=", 1)
        key = key.strip()
        val = val.strip().strip('"').strip("'")
        if key:
            result[key] = val

    return result


def _parse_bool(value: str) -> bool:
    lowered = value.strip().lower()
    if lowered in ("1", "true", "yes", "on"):
        return True
    if lowered in ("0", "false", "no", "off"):
        return False
    raise ValueError(f"not a boolean: {value!r}")


def _parse_positive_int(value: str) -> int:
    number = int(value)
    if number < 0:
        raise ValueError(f"must not be negative: {value!r}")
    return number


# Environment variable -> (settings field, converter)
ENV_SETTINGS: dict[str, tuple[str, Callable[[str], Any]]] = {
    "MEETWATCH_ICAL_URL": ("ics_url", str),
    "MEETWATCH_LOCAL_TIMEZONE": ("local_timezone", str),
    "MEETWATCH_WINDOW_DAYS": ("window_days", _parse_positive_int),
    "MEETWATCH_POLLING_INTERVAL_SECONDS": ("poll_interval_seconds", _parse_positive_int),
    "MEETWATCH_EVENT_WARNING_TIME_SECONDS": ("event_warning_seconds", _parse_positive_int),
    "MEETWATCH_EVENT_NOTIFICATION": ("show_notifications", _parse_bool),
    "MEETWATCH_REQUEST_TIMEOUT": ("request_timeout", _parse_positive_int),
    "MEETWATCH_MAX_OCCURRENCES_PER_RULE": ("max_occurrences_per_rule", _parse_positive_int),
    "MEETWATCH_MAX_RETRIES": ("max_retries", _parse_positive_int),
}


class MeetwatchSettings(BaseModel):
    """Validated application settings."""

    ics_url: Optional[str] = Field(default=None, description="Calendar feed URL")
    local_timezone: str = Field(default=DEFAULT_LOCAL_TIMEZONE, description="Output timezone")
    window_days: int = Field(default=1, ge=0, description="Days after today to resolve")
    poll_interval_seconds: int = Field(default=120, ge=1, description="Feed refresh interval")
    event_warning_seconds: int = Field(
        default=60, ge=0, description="Notify this many seconds before a meeting"
    )
    show_notifications: bool = Field(default=True, description="Enable meeting notifications")
    request_timeout: int = Field(default=30, ge=1, description="HTTP read timeout in seconds")
    max_occurrences_per_rule: int = Field(default=250, ge=1, description="Expansion cap per RRULE")
    max_retries: int = Field(default=2, ge=0, description="Network retries per fetch")
    retry_backoff_factor: float = Field(default=1.5, gt=0)

    model_config = ConfigDict(frozen=True)

    @field_validator("ics_url")
    @classmethod
    def _strip_url(cls, v: Optional[str]) -> Optional[str]:
        if v is None:
            return None
        return v.strip() or None


class ConfigManager:
    """Manages application configuration from environment variables and .env files."""

    def __init__(self, env_file_path: Optional[Path] = None):
        """Initialize configuration manager.

        Args:
            env_file_path: Optional path to .env file. Defaults to
                ~/.config/meetwatch/meetwatch_config.env, then ./.env
        """
        self.env_file_path = env_file_path or self._default_env_path()

    @staticmethod
    def _default_env_path() -> Path:
        if DEFAULT_CONFIG_PATH.exists():
            return DEFAULT_CONFIG_PATH
        return Path.cwd() / ".env"

    def load_env_file(self) -> list[str]:
        """Load .env file into the environment.

        Only sets variables that are not already in the environment.

        Returns:
            List of environment variable keys that were loaded from .env file
        """
        if not self.env_file_path.exists():
            logger.debug("No .env file found at %s", self.env_file_path)
            return []

        set_keys = []
        for key, val in parse_env_file(self.env_file_path).items():
            if key not in os.environ:
                os.environ[key] = val
                set_keys.append(key)

        if set_keys:
            logger.debug("Loaded .env defaults for keys: %s", ", ".join(set_keys))
        return set_keys

    def build_config_from_env(self) -> dict[str, Any]:
        """Build a settings dictionary from MEETWATCH_* environment variables.

        Invalid values are logged and ignored.
        """
        cfg: dict[str, Any] = {}
        for env_name, (key, convert) in ENV_SETTINGS.items():
            raw = os.environ.get(env_name)
            if raw is None or not raw.strip():
                continue
            try:
                cfg[key] = convert(raw.strip())
            except ValueError:
                logger.warning("Invalid %s=%r; ignoring", env_name, raw)
        return cfg

    def load_settings(self, **overrides: Any) -> MeetwatchSettings:
        """Load .env file and environment into validated settings.

        Args:
            **overrides: Values taking precedence over the environment
                (None values are skipped)

        Returns:
            MeetwatchSettings
        """
        self.load_env_file()
        cfg = self.build_config_from_env()
        cfg.update({k: v for k, v in overrides.items() if v is not None})

        try:
            return MeetwatchSettings(**cfg)
        except ValidationError as e:
            bad_fields = {str(err["loc"][0]) for err in e.errors() if err.get("loc")}
            for name in sorted(bad_fields):
                logger.warning("Invalid setting %s=%r; using default", name, cfg.get(name))
            return MeetwatchSettings(**{k: v for k, v in cfg.items() if k not in bad_fields})
