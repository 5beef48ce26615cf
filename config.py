"""
Configuration helper for the table backup job
Reads PG_* / DATABASE_URL for the connection and BACKUP_* for the backup rules,
optionally overridden by a JSON config file
"""

import json
import os
from dataclasses import dataclass, field
from urllib.parse import urlparse

from dotenv import load_dotenv

load_dotenv()

DEFAULT_PREFIX = "autobackup"
DEFAULT_RETENTION_DAYS = 14


class ConfigError(ValueError):
    """Raised when the configuration cannot be read or is invalid."""


@dataclass
class Settings:
    postgres: dict = field(default_factory=dict)
    prefix: str = DEFAULT_PREFIX
    retention_days: int = DEFAULT_RETENTION_DAYS


def parse_database_url() -> dict[str, str]:
    """
    Parse DATABASE_URL into individual components
    PG_* variables that are already set take precedence
    """
    database_url = os.getenv("DATABASE_URL")

    if database_url:
        parsed = urlparse(database_url)

        if not os.getenv("PG_HOST"):
            os.environ["PG_HOST"] = parsed.hostname or "localhost"
        if not os.getenv("PG_PORT"):
            os.environ["PG_PORT"] = str(parsed.port) if parsed.port else "5432"
        if not os.getenv("PG_USER"):
            os.environ["PG_USER"] = parsed.username or "postgres"
        if not os.getenv("PG_PASSWORD"):
            os.environ["PG_PASSWORD"] = parsed.password or ""
        if not os.getenv("PG_DATABASE"):
            # Remove leading slash from path
            os.environ["PG_DATABASE"] = parsed.path[1:] if parsed.path else "postgres"

    return {
        "host": os.getenv("PG_HOST", "localhost"),
        "port": os.getenv("PG_PORT", "5432"),
        "user": os.getenv("PG_USER", "postgres"),
        "password": os.getenv("PG_PASSWORD", ""),
        "database": os.getenv("PG_DATABASE", "postgres"),
    }


def get_redis_url() -> str:
    """
    Get Redis URL for the Celery broker
    """
    return (
        os.getenv("REDIS_URL") or os.getenv("broker_url") or "redis://localhost:6379/0"
    )


def _read_config_file(path):
    try:
        with open(path, "r", encoding="utf-8") as f:
            data = json.load(f)
    except OSError as e:
        raise ConfigError(f"cannot read config file {path}: {e}") from e
    except json.JSONDecodeError as e:
        raise ConfigError(f"cannot parse config file {path}: {e}") from e
    if not isinstance(data, dict):
        raise ConfigError(f"config file {path} must contain a JSON object")
    return data


def _config_section(data, name, path) -> dict:
    section = data.get(name)
    if section is None:
        return {}
    if not isinstance(section, dict):
        raise ConfigError(f"config file {path}: {name!r} must be an object")
    return section


def parse_retention(value) -> int:
    # int() would accept True and truncate 14.9
    if isinstance(value, bool) or (
        isinstance(value, float) and not value.is_integer()
    ):
        raise ConfigError(f"retention must be an integer, got {value!r}")
    try:
        retention = int(value)
    except (TypeError, ValueError) as e:
        raise ConfigError(f"retention must be an integer, got {value!r}") from e
    if retention < 0:
        raise ConfigError(f"retention must be >= 0, got {retention}")
    # 0 means "not configured"
    return retention or DEFAULT_RETENTION_DAYS


def validate_prefix(prefix) -> str:
    if not isinstance(prefix, str) or not prefix.strip():
        raise ConfigError("backup prefix must be a non-empty string")
    if "\x00" in prefix:
        raise ConfigError("backup prefix must not contain NUL characters")
    return prefix


def load_settings(path=None) -> Settings:
    """
    Build the settings from the environment, then apply the JSON config file
    at `path` when one is given.

    The file uses the layout
        {"postgres": {"host", "port", "user", "password", "dbname"},
         "backup": {"prefix", "retention"}}
    and any key it sets wins over the environment.
    """
    postgres = parse_database_url()
    prefix = os.getenv("BACKUP_PREFIX") or DEFAULT_PREFIX
    retention = os.getenv("BACKUP_RETENTION_DAYS") or DEFAULT_RETENTION_DAYS

    if path:
        data = _read_config_file(path)
        pg_section = _config_section(data, "postgres", path)
        backup_section = _config_section(data, "backup", path)
        for key, target in (
            ("host", "host"),
            ("port", "port"),
            ("user", "user"),
            ("password", "password"),
            ("dbname", "database"),
        ):
            if pg_section.get(key) not in (None, ""):
                postgres[target] = str(pg_section[key])
        if backup_section.get("prefix"):
            prefix = backup_section["prefix"]
        if backup_section.get("retention") is not None:
            retention = backup_section["retention"]

    return Settings(
        postgres=postgres,
        prefix=validate_prefix(prefix),
        retention_days=parse_retention(retention),
    )
