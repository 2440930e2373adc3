# config.py
from __future__ import annotations

import os
import re
from dataclasses import dataclass, fields, replace
from typing import Any, Mapping

from sqljobs.errors import ConfigurationError

ENV_PREFIX = "SQLJOBS_"
TABLE_NAME_RE = re.compile(r"^[A-Za-z_][A-Za-z0-9_]*$")

# Keys that may be persisted in the config table and changed from the CLI.
TUNABLE_KEYS = ("jobs_table", "max_concurrent_jobs", "process_every", "max_retries")


@dataclass(frozen=True)
class SchedulerConfig:
    """Runtime configuration for a scheduler instance.

    - database: SQLite file path (``:memory:`` for a private in-process db)
    - jobs_table: backing table name (default: jobs)
    - max_concurrent_jobs: upper bound on handlers running at once (default: 10)
    - process_every: poll interval in milliseconds (default: 5000)
    - max_retries: claimed attempts before a job is marked failed (default: 3)
    - time_queries / log_queries: DEBUG logging of statement timings / text

    Every field can be set from the environment with the SQLJOBS_ prefix,
    e.g. SQLJOBS_PROCESS_EVERY=1000.
    """

    database: str = "jobs.db"
    jobs_table: str = "jobs"
    max_concurrent_jobs: int = 10
    process_every: int = 5000
    max_retries: int = 3
    time_queries: bool = False
    log_queries: bool = False

    def __post_init__(self):
        if not isinstance(self.jobs_table, str) or not TABLE_NAME_RE.match(self.jobs_table):
            raise ConfigurationError(f"Invalid jobs table name: {self.jobs_table!r}")
        if self.jobs_table == "config":
            raise ConfigurationError("The 'config' table is reserved")
        for name in ("max_concurrent_jobs", "process_every", "max_retries"):
            value = getattr(self, name)
            if isinstance(value, bool) or not isinstance(value, int) or value < 1:
                raise ConfigurationError(f"{name} must be a positive integer, got {value!r}")
        if not self.database:
            raise ConfigurationError("database must not be empty")

    @classmethod
    def from_env(cls) -> "SchedulerConfig":
        defaults = cls()
        return cls(
            database=(os.environ.get(ENV_PREFIX + "DATABASE") or defaults.database).strip(),
            jobs_table=(os.environ.get(ENV_PREFIX + "JOBS_TABLE") or defaults.jobs_table).strip(),
            max_concurrent_jobs=_env_int("MAX_CONCURRENT_JOBS", defaults.max_concurrent_jobs),
            process_every=_env_int("PROCESS_EVERY", defaults.process_every),
            max_retries=_env_int("MAX_RETRIES", defaults.max_retries),
            time_queries=_env_bool("TIME_QUERIES", defaults.time_queries),
            log_queries=_env_bool("LOG_QUERIES", defaults.log_queries),
        )

    def merge(self, values: Mapping[str, Any]) -> "SchedulerConfig":
        """Return a copy with ``values`` applied; strings are coerced."""
        known = {f.name: f for f in fields(self)}
        changes = {}
        for key, raw in values.items():
            if raw is None:
                continue
            if key not in known:
                raise ConfigurationError(f"Unknown config key: {key!r}")
            current = getattr(self, key)
            changes[key] = _coerce(key, raw, type(current))
        return replace(self, **changes)


def _coerce(key, raw, kind):
    if kind is bool:
        if isinstance(raw, bool):
            return raw
        return _parse_bool(str(raw), key)
    if kind is int:
        try:
            return int(str(raw).strip())
        except ValueError:
            raise ConfigurationError(f"{key} must be an integer, got {raw!r}") from None
    return str(raw).strip()


def _parse_bool(raw, key):
    value = raw.strip().lower()
    if value in {"1", "true", "yes", "y", "on"}:
        return True
    if value in {"0", "false", "no", "n", "off"}:
        return False
    raise ConfigurationError(f"{key} must be a boolean, got {raw!r}")


def _env_int(name: str, default: int) -> int:
    raw = os.environ.get(ENV_PREFIX + name)
    if raw is None:
        return int(default)
    try:
        return int(str(raw).strip())
    except ValueError:
        return int(default)


def _env_bool(name: str, default: bool) -> bool:
    raw = (os.environ.get(ENV_PREFIX + name) or "").strip()
    if not raw:
        return bool(default)
    try:
        return _parse_bool(raw, name)
    except ConfigurationError:
        return bool(default)
