"""Configuration loading with environment overrides."""

import copy
import json
import logging
from pathlib import Path
from typing import Any, Dict, Mapping, Optional

from pydantic import PositiveInt, field_validator
from pydantic import ValidationError as PydanticValidationError
from pydantic_settings import BaseSettings, SettingsConfigDict

from utils.errors import ValidationError

logger = logging.getLogger(__name__)

DEFAULT_CONFIG_PATH = Path(__file__).parent.parent / "config.json"

DEFAULT_CONFIG: Dict[str, Any] = {
    "log_level": "INFO",
    "source": {
        "portal": "shiawasehome",
        "search_url": None,
        "max_pages": 10,
    },
    "queue": {
        "listing_concurrency": 1,
        "detail_concurrency": 3,
        "retry_limit": 3,
        "backoff_delay": 5.0,
        "retry_attempts": 2,
        "retry_backoff_delay": 10.0,
    },
    "browser": {
        "headless": True,
        "navigation_timeout": 30.0,
        "user_agent": None,
    },
    "coordinates": {
        "max_retries": 2,
        "retry_delay": 0.5,
    },
    "storage": {
        "database_path": "data/listings.db",
        "backup_dir": "data/backups",
        "max_backups_per_listing": 5,
        "failed_jobs_path": "data/failed-jobs.json",
    },
    "merge_rules": {},
    "llm_settings": {
        "enabled": False,
        "model": "qwen3:8b",
        "base_url": "http://localhost:11434",
        "timeout": 60.0,
    },
}


class EnvOverrides(BaseSettings):
    """Process-start overrides for worker counts, retry limit and log level."""

    listing_concurrency: Optional[PositiveInt] = None
    detail_concurrency: Optional[PositiveInt] = None
    retry_limit: Optional[PositiveInt] = None
    log_level: Optional[str] = None

    model_config = SettingsConfigDict(extra="ignore")

    @field_validator("*", mode="before")
    @classmethod
    def blank_is_unset(cls, value):
        if isinstance(value, str) and not value.strip():
            return None
        return value

    @field_validator("log_level")
    @classmethod
    def upper_level(cls, value: Optional[str]) -> Optional[str]:
        return value.strip().upper() if value else value


# EnvOverrides field -> (section, key)
ENV_OVERRIDES = {
    "listing_concurrency": ("queue", "listing_concurrency"),
    "detail_concurrency": ("queue", "detail_concurrency"),
    "retry_limit": ("queue", "retry_limit"),
}


def _deep_merge(base: Dict[str, Any], override: Mapping[str, Any]) -> Dict[str, Any]:
    for key, value in override.items():
        if isinstance(value, Mapping) and isinstance(base.get(key), dict):
            _deep_merge(base[key], value)
        else:
            base[key] = value
    return base


def read_env_overrides(environ: Optional[Mapping[str, str]] = None) -> EnvOverrides:
    """
    Read overrides from the process environment (or an explicit mapping).

    Invalid values are logged and ignored; the remaining overrides still apply.
    """
    if environ is None:
        values: Dict[str, Any] = {}
    else:
        # every field given explicitly, so the process environment is not consulted
        values = {name: environ.get(name.upper()) for name in EnvOverrides.model_fields}

    try:
        return EnvOverrides(**values)
    except PydanticValidationError as e:
        invalid = sorted({str(error["loc"][0]) for error in e.errors()})
        for name in invalid:
            logger.warning(f"Ignoring {name.upper()}: must be a positive integer")
        values.update({name: None for name in invalid})
        return EnvOverrides(**values)


def apply_env_overrides(
    config: Dict[str, Any], environ: Optional[Mapping[str, str]] = None
) -> Dict[str, Any]:
    """
    Apply worker concurrency, retry limit and log level from the environment.

    Args:
        config: Configuration dictionary (modified in place)
        environ: Environment mapping (defaults to the process environment)

    Returns:
        The same configuration dictionary
    """
    overrides = read_env_overrides(environ)

    for name, (section, key) in ENV_OVERRIDES.items():
        value = getattr(overrides, name)
        if value is None:
            continue
        config.setdefault(section, {})[key] = value
        logger.debug(f"{name.upper()} overrides {section}.{key} = {value}")

    if overrides.log_level:
        config["log_level"] = overrides.log_level

    return config


def load_config(
    path: Optional[Path] = None, environ: Optional[Mapping[str, str]] = None
) -> Dict[str, Any]:
    """
    Load configuration from config.json merged over the defaults.

    Args:
        path: Path to the JSON file (defaults to config.json in the repo root)
        environ: Environment mapping used for overrides

    Returns:
        Complete configuration dictionary

    Raises:
        ValidationError: If the file exists but is not valid JSON
    """
    config = copy.deepcopy(DEFAULT_CONFIG)
    config_path = Path(path) if path else DEFAULT_CONFIG_PATH

    try:
        with open(config_path, "r", encoding="utf-8") as f:
            file_config = json.load(f)
    except FileNotFoundError:
        logger.warning(f"{config_path} not found, using default configuration")
        file_config = {}
    except json.JSONDecodeError as e:
        raise ValidationError(
            f"Invalid JSON in {config_path}: {e}", {"path": str(config_path)}
        ) from e

    if not isinstance(file_config, dict):
        raise ValidationError(
            f"{config_path} must contain a JSON object", {"path": str(config_path)}
        )

    _deep_merge(config, file_config)
    return apply_env_overrides(config, environ)
