"""
Configuration loader for the message dispatcher.
Reads settings from YAML file with environment variable substitution.

    ${VAR}           → value of VAR (possibly empty), left as-is when VAR is unset
    ${VAR:default}   → value of VAR, or "default" when VAR is unset or empty
"""
from __future__ import annotations

import os
import re
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Optional

import structlog
import yaml

from core.errors import ConfigError


@dataclass
class DatabaseConfig:
    url: str = "sqlite:///./messages.db"              # postgresql:// | mysql:// | sqlite://
    store_backend: str = "memory"                      # "sql" | "memory"


@dataclass
class CacheConfig:
    enabled: bool = False
    backend: str = "redis"                             # "redis" | "memory"
    redis_url: str = "redis://localhost:6379/0"
    ttl_days: int = 30


@dataclass
class WebhookConfig:
    url: str = ""
    auth_key: str = ""
    timeout_seconds: float = 30.0
    max_retries: int = 3
    backend: str = "http"                              # "http" | "mock"


@dataclass
class SenderConfig:
    interval_seconds: float = 120.0     # how often to check for pending messages
    batch_size: int = 2                 # messages sent per cycle
    failure_policy: str = "retry"       # "retry" | "fail" | "bounded"
    max_attempts: int = 5               # used by the "bounded" policy
    aggregate_policy: str = "all"       # "all" | "any"
    auto_start: bool = True             # start the job with the API process
    stop_timeout_seconds: float = 5.0


@dataclass
class Settings:
    app_name: str = "MessageDispatcher"
    debug: bool = False
    database: DatabaseConfig = field(default_factory=DatabaseConfig)
    cache: CacheConfig = field(default_factory=CacheConfig)
    webhook: WebhookConfig = field(default_factory=WebhookConfig)
    sender: SenderConfig = field(default_factory=SenderConfig)

    def validate(self) -> Settings:
        """Raise ConfigError on the first invalid value."""
        if self.database.store_backend not in ("sql", "memory"):
            raise ConfigError(f"Unknown store backend: {self.database.store_backend}")
        if self.database.store_backend == "sql" and not self.database.url:
            raise ConfigError("database.url is required for the sql store")
        if self.webhook.backend not in ("http", "mock"):
            raise ConfigError(f"Unknown webhook backend: {self.webhook.backend}")
        if self.webhook.backend == "http":
            if not self.webhook.url:
                raise ConfigError("webhook.url is required")
            if not self.webhook.auth_key:
                raise ConfigError("webhook.auth_key is required")
        if self.webhook.timeout_seconds <= 0:
            raise ConfigError("webhook.timeout_seconds must be positive")
        if self.webhook.max_retries < 1:
            raise ConfigError("webhook.max_retries must be at least 1")
        if self.cache.backend not in ("redis", "memory"):
            raise ConfigError(f"Unknown cache backend: {self.cache.backend}")
        if self.cache.ttl_days <= 0:
            raise ConfigError("cache.ttl_days must be positive")
        if self.sender.interval_seconds <= 0:
            raise ConfigError("sender.interval_seconds must be positive")
        if self.sender.batch_size <= 0:
            raise ConfigError("sender.batch_size must be positive")
        if self.sender.failure_policy not in ("retry", "fail", "bounded"):
            raise ConfigError(f"Unknown failure policy: {self.sender.failure_policy}")
        if self.sender.max_attempts < 1:
            raise ConfigError("sender.max_attempts must be at least 1")
        if self.sender.aggregate_policy not in ("all", "any"):
            raise ConfigError(f"Unknown aggregate policy: {self.sender.aggregate_policy}")
        return self


logger = structlog.get_logger()

_settings: Optional[Settings] = None

_ENV_PATTERN = re.compile(r'\$\{(\w+)(?::([^}]*))?\}')


def _substitute_env_vars(value: str) -> str:
    """Replace ${VAR_NAME} / ${VAR_NAME:default} patterns with environment values."""
    def replacer(match):
        var_name, default = match.group(1), match.group(2)
        env_value = os.environ.get(var_name)
        if env_value or (env_value is not None and default is None):
            return env_value
        if default is not None:
            return default
        return match.group(0)
    return _ENV_PATTERN.sub(replacer, value)


def _process_values(obj: Any) -> Any:
    """Recursively substitute env vars in all string values."""
    if isinstance(obj, str):
        return _substitute_env_vars(obj)
    elif isinstance(obj, dict):
        return {k: _process_values(v) for k, v in obj.items()}
    elif isinstance(obj, list):
        return [_process_values(v) for v in obj]
    return obj


def _positive(section: dict[str, Any], key: str, default, cast=float):
    """
    Read a positive number. Blank, unparsable or non-positive values (typically
    from an unset or mistyped env var) are ignored in favour of `default`.
    """
    value = section.get(key, default)
    if value is None or (isinstance(value, str) and not value.strip()):
        return default
    try:
        number = cast(value)
    except (TypeError, ValueError):
        logger.warning("config_value_ignored", key=key, value=value, reason="not a number", default=default)
        return default
    if not number > 0:
        logger.warning("config_value_ignored", key=key, value=value, reason="not positive", default=default)
        return default
    return number


def _as_bool(value: Any) -> bool:
    if isinstance(value, str):
        return value.strip().lower() in ("1", "true", "yes", "on")
    return bool(value)


def settings_from_dict(raw: dict[str, Any]) -> Settings:
    """Build Settings from an already-parsed mapping (env vars substituted)."""
    settings = Settings()

    settings.app_name = raw.get("app_name", settings.app_name)
    settings.debug = _as_bool(raw.get("debug", settings.debug))

    if "database" in raw:
        db = raw["database"] or {}
        settings.database = DatabaseConfig(
            url=db.get("url", settings.database.url),
            store_backend=db.get("store_backend", settings.database.store_backend),
        )

    if "cache" in raw:
        c = raw["cache"] or {}
        settings.cache = CacheConfig(
            enabled=_as_bool(c.get("enabled", False)),
            backend=c.get("backend", "redis"),
            redis_url=c.get("redis_url", "redis://localhost:6379/0"),
            ttl_days=_positive(c, "ttl_days", 30, int),
        )

    if "webhook" in raw:
        w = raw["webhook"] or {}
        settings.webhook = WebhookConfig(
            url=w.get("url", ""),
            auth_key=w.get("auth_key", ""),
            timeout_seconds=_positive(w, "timeout_seconds", 30.0),
            max_retries=_positive(w, "max_retries", 3, int),
            backend=w.get("backend", "http"),
        )

    if "sender" in raw:
        s = raw["sender"] or {}
        settings.sender = SenderConfig(
            interval_seconds=_positive(s, "interval_seconds", 120.0),
            batch_size=_positive(s, "batch_size", 2, int),
            failure_policy=s.get("failure_policy", "retry"),
            max_attempts=_positive(s, "max_attempts", 5, int),
            aggregate_policy=s.get("aggregate_policy", "all"),
            auto_start=_as_bool(s.get("auto_start", True)),
            stop_timeout_seconds=_positive(s, "stop_timeout_seconds", 5.0),
        )

    return settings


def load_settings(config_path: str = None) -> Settings:
    """Load settings from YAML file."""
    global _settings

    if config_path is None:
        config_path = os.environ.get(
            "DISPATCHER_CONFIG",
            str(Path(__file__).parent / "settings.yaml"),
        )

    raw: dict[str, Any] = {}
    if Path(config_path).exists():
        with open(config_path) as f:
            try:
                raw = yaml.safe_load(f) or {}
            except yaml.YAMLError as e:
                raise ConfigError(f"Invalid YAML in {config_path}").with_error(e) from e
        raw = _process_values(raw)

    settings = settings_from_dict(raw).validate()

    _settings = settings
    return settings


def get_settings() -> Settings:
    """Return cached settings or load from default path."""
    global _settings
    if _settings is None:
        _settings = load_settings()
    return _settings


def reset_settings() -> None:
    """Drop cached settings (for testing)."""
    global _settings
    _settings = None
