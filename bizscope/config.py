"""Configuration management for bizscope."""

import os
from pathlib import Path
from typing import Literal, Mapping, Optional

import yaml
from pydantic import BaseModel, Field, SecretStr

_TRUTHY = {"1", "true", "yes", "on"}


class DatabaseConfig(BaseModel):
    """Database connection settings."""

    url: str = Field(
        default="sqlite+aiosqlite:///./bizscope.db",
        description="SQLAlchemy async database URL",
    )
    echo: bool = False


class ServerConfig(BaseModel):
    """HTTP server settings."""

    host: str = "127.0.0.1"
    port: int = Field(default=8080, ge=1, le=65535)
    environment: Literal["development", "production"] = "production"


class WebhookConfig(BaseModel):
    """Webhook ingestion settings."""

    sources: list[str] = Field(default_factory=lambda: ["n8n"], min_length=1)
    persist_timeout_seconds: float = Field(default=10.0, gt=0)
    rate_limit_enabled: bool = True


class RateLimitConfig(BaseModel):
    """Backing cache for the in-memory rate limiters."""

    cache_max_entries: int = Field(default=500, ge=1)
    cache_ttl_seconds: float = Field(default=60.0, gt=0)


class LockoutConfig(BaseModel):
    """Account lockout policy."""

    max_failed_attempts: int = Field(default=5, ge=1)
    lock_duration_minutes: int = Field(default=30, ge=1)


class Config(BaseModel):
    """Root configuration model."""

    database: DatabaseConfig = DatabaseConfig()
    server: ServerConfig = ServerConfig()
    webhook: WebhookConfig = WebhookConfig()
    rate_limit: RateLimitConfig = RateLimitConfig()
    lockout: LockoutConfig = LockoutConfig()

    @property
    def is_development(self) -> bool:
        return self.server.environment == "development"


class WebhookSecurityConfig(BaseModel):
    """Opt-in security checks for inbound webhooks.

    Every setting left at its default disables the matching check.
    """

    secret: Optional[SecretStr] = None
    allowed_ips: list[str] = Field(default_factory=list)
    require_source: bool = False
    require_user_agent: bool = False

    @classmethod
    def from_env(cls, environ: Optional[Mapping[str, str]] = None) -> "WebhookSecurityConfig":
        """Build settings from WEBHOOK_* environment variables.

        Called on every request so changes apply without a restart.
        """
        env = os.environ if environ is None else environ

        secret = env.get("WEBHOOK_SECRET") or None
        allowed_ips = [
            ip.strip() for ip in env.get("WEBHOOK_ALLOWED_IPS", "").split(",") if ip.strip()
        ]

        return cls(
            secret=SecretStr(secret) if secret else None,
            allowed_ips=allowed_ips,
            require_source=_env_flag(env, "WEBHOOK_REQUIRE_SOURCE"),
            require_user_agent=_env_flag(env, "WEBHOOK_REQUIRE_USER_AGENT"),
        )


def _env_flag(env: Mapping[str, str], name: str) -> bool:
    return env.get(name, "").strip().lower() in _TRUTHY


def load_config(config_path: str | Path | None = None) -> Config:
    """Load and validate configuration from YAML file.

    Supports ${VAR_NAME} syntax for environment variable expansion.
    Without a path, the built-in defaults are returned.

    Args:
        config_path: Path to the configuration file.

    Returns:
        Validated Config object.

    Raises:
        FileNotFoundError: If config file doesn't exist.
        ValidationError: If config is invalid.
        ValueError: If referenced environment variable is not set.
    """
    if config_path is None:
        return Config()

    path = Path(config_path)
    if not path.exists():
        raise FileNotFoundError(f"Config file not found: {path}")

    with path.open() as f:
        raw_config = yaml.safe_load(f) or {}

    # Expand environment variables in the format ${VAR_NAME}
    def expand_env_vars(obj):
        if isinstance(obj, dict):
            return {k: expand_env_vars(v) for k, v in obj.items()}
        elif isinstance(obj, list):
            return [expand_env_vars(item) for item in obj]
        elif isinstance(obj, str) and obj.startswith("${") and obj.endswith("}"):
            env_var = obj[2:-1]
            value = os.getenv(env_var)
            if value is None:
                raise ValueError(f"Environment variable '{env_var}' is not set")
            return value
        return obj

    raw_config = expand_env_vars(raw_config)

    return Config(**raw_config)
