"""
Pydantic Settings Configuration
=================================

Type-safe configuration management using Pydantic.
Validates all configuration values at startup and fails fast with clear error
messages. The resulting Settings object is frozen and passed explicitly to the
approval pipeline; nothing reads the environment after startup.
"""

import os
from collections.abc import Mapping
from importlib import metadata
from pathlib import Path
from typing import Any

import yaml
from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic_settings import BaseSettings

from pairing_service.core.exceptions import ConfigurationError
from pairing_service.core.structured_logger import get_logger, mask_secret

logger = get_logger("Settings")

ENV_PREFIX = "PAIRING_SERVICE_"


def _project_version() -> str:
    """Resolve the project version from package metadata."""
    try:
        return metadata.version("pairing-service")
    except metadata.PackageNotFoundError:
        return "0.0.0-dev"


_CHANGEME_PREFIXES = ("changeme", "change-me", "your_", "your-", "placeholder", "secret-change-me")


def _is_placeholder(value: str) -> bool:
    """Return True if value looks like an unfilled template placeholder."""
    v = value.lower()
    return any(v.startswith(p) or p in v for p in _CHANGEME_PREFIXES)


_SECRET_MIN_LENGTH = 16


def _is_weak_secret(value: str) -> bool:
    """Return True if value is too short or low-entropy for use as an API key."""
    stripped = value.strip()
    if len(stripped) < _SECRET_MIN_LENGTH:
        return True
    if len(set(stripped)) < 4:
        return True
    return False


class DirectoryConfig(BaseModel):
    """Railway GraphQL directory used to resolve service ids"""
    endpoint: str = Field("https://backboard.railway.app/graphql/v2", description="GraphQL endpoint")
    token: str | None = Field(None, description="Railway API token")
    project_id: str | None = Field(None, description="Project hosting the OpenClaw workers")
    environment_id: str | None = Field(None, description="Environment hosting the OpenClaw workers")
    timeout_seconds: float = Field(10.0, gt=0, le=120, description="Directory request timeout")
    private_domain_suffix: str = Field(".railway.internal", description="Suffix of private network names")

    @field_validator('token')
    @classmethod
    def validate_token(cls, v: str | None) -> str | None:
        if v is not None and _is_placeholder(v):
            raise ValueError(
                "RAILWAY_TOKEN is still set to a placeholder value. "
                "Create a token in Railway: Account Settings → Tokens."
            )
        return v

    model_config = ConfigDict(frozen=True)


class GatewayConfig(BaseModel):
    """Worker gateway (WebSocket control protocol) configuration"""
    port: int = Field(18789, ge=1, le=65535, description="Gateway port on the worker")
    path: str = Field("/", description="WebSocket path")
    watchdog_seconds: float = Field(15.0, gt=0, le=300, description="Per-session watchdog")
    protocol_version: int = Field(3, ge=1, description="Gateway protocol version sent in connect")
    client_name: str = Field("openclaw-pairing-service", description="Client name sent in connect")
    role: str = Field("operator", description="Requested role")
    scopes: tuple[str, ...] = Field(("operator.pairing",), description="Requested scopes")

    @field_validator('path')
    @classmethod
    def validate_path(cls, v: str) -> str:
        return v if v.startswith("/") else f"/{v}"

    model_config = ConfigDict(frozen=True)


class FallbackConfig(BaseModel):
    """Worker secondary HTTP approval endpoint"""
    port: int = Field(8080, ge=1, le=65535, description="Fallback port on the worker")
    path: str = Field("/pairing/approve", description="Fallback approval path")
    timeout_seconds: float = Field(12.0, gt=0, le=120, description="Whole-call timeout")
    token: str | None = Field(None, description="Optional bearer token for the fallback endpoint")

    @field_validator('path')
    @classmethod
    def validate_path(cls, v: str) -> str:
        return v if v.startswith("/") else f"/{v}"

    model_config = ConfigDict(frozen=True)


class OrchestratorConfig(BaseModel):
    """Retry and remediation policy"""
    gateway_attempts: int = Field(2, ge=1, le=10, description="Gateway attempts before fallback")
    backoff_seconds: float = Field(3.0, ge=0, le=60, description="Delay between gateway attempts")
    control_tool: str = Field("openclaw", description="CLI named in the manual remediation command")

    model_config = ConfigDict(frozen=True)


class WebConfig(BaseModel):
    """Web interface configuration"""
    host: str = Field("0.0.0.0", description="Host to bind to")
    port: int = Field(3001, ge=1, le=65535, description="Port to bind to")

    model_config = ConfigDict(frozen=True)


class LoggingConfig(BaseModel):
    """Logging configuration"""
    level: str = Field("INFO", description="Log level (DEBUG, INFO, WARNING, ERROR)")
    format: str = Field("json", description="Log format (json, text)")

    @field_validator('level')
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        valid_levels = {'DEBUG', 'INFO', 'WARNING', 'ERROR', 'CRITICAL'}
        v_upper = v.upper()
        if v_upper not in valid_levels:
            raise ValueError(f"Log level must be one of: {', '.join(sorted(valid_levels))}")
        return v_upper

    @field_validator('format')
    @classmethod
    def validate_format(cls, v: str) -> str:
        if v not in ('json', 'text'):
            raise ValueError("Log format must be 'json' or 'text'")
        return v

    model_config = ConfigDict(frozen=True)


class Settings(BaseSettings):
    """
    Main application settings with type validation.

    Configuration is loaded from:
    1. YAML config file (if provided)
    2. Environment variables with PAIRING_SERVICE_ prefix (override)
    3. Legacy deployment variables (RAILWAY_TOKEN, RAILWAY_PROJECT_ID, ...)
    4. Default values (fallback)

    Environment variable mapping uses double-underscore nesting:
      PAIRING_SERVICE_API_KEY
      PAIRING_SERVICE_DIRECTORY__TOKEN
      PAIRING_SERVICE_ORCHESTRATOR__GATEWAY_ATTEMPTS
    """

    api_key: str | None = Field(None, description="Bearer key required on /pairing/approve")
    service_name: str = Field("openclaw-pairing-service", description="Name reported by /health")
    version: str = Field(default_factory=_project_version, description="Project version")

    directory: DirectoryConfig = Field(default_factory=DirectoryConfig)
    gateway: GatewayConfig = Field(default_factory=GatewayConfig)
    fallback: FallbackConfig = Field(default_factory=FallbackConfig)
    orchestrator: OrchestratorConfig = Field(default_factory=OrchestratorConfig)
    web: WebConfig = Field(default_factory=WebConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)

    model_config = ConfigDict(
        env_prefix=ENV_PREFIX,
        env_nested_delimiter='__',
        extra='ignore',
        frozen=True,
    )

    @field_validator('api_key')
    @classmethod
    def validate_api_key(cls, v: str | None) -> str | None:
        if v is None:
            return v
        if _is_placeholder(v):
            raise ValueError(
                "PAIRING_SERVICE_API_KEY is still set to a placeholder value. "
                "Set a strong random key before starting the service."
            )
        if _is_weak_secret(v):
            raise ValueError(
                f"PAIRING_SERVICE_API_KEY is too weak (minimum {_SECRET_MIN_LENGTH} characters "
                "with reasonable entropy). Generate one with: python -c \"import secrets; print(secrets.token_urlsafe(32))\""
            )
        return v

    @classmethod
    def from_yaml(cls, config_path: str | Path) -> "Settings":
        """
        Load settings from a YAML file.

        Raises:
            FileNotFoundError: If config file doesn't exist
            ValueError: If configuration is invalid
        """
        config_path = Path(config_path)
        if not config_path.exists():
            raise FileNotFoundError(f"Config file not found: {config_path}")

        with open(config_path) as f:
            config_data = yaml.safe_load(f) or {}

        return cls(**config_data)

    @classmethod
    def from_env(cls) -> "Settings":
        """Load settings from environment variables, honouring legacy names."""
        return cls(**_legacy_env_overrides(os.environ))

    def validate_required_config(self) -> tuple[list[str], list[str]]:
        """
        Check that the configuration is usable.

        Returns:
            (errors, warnings). Errors are fatal at startup.
        """
        errors = []
        warnings = []

        if not self.api_key:
            errors.append("PAIRING_SERVICE_API_KEY environment variable not set")
        if not self.directory.token:
            errors.append("RAILWAY_TOKEN not set (directory lookups are impossible)")
        if not self.directory.project_id or not self.directory.environment_id:
            warnings.append(
                "RAILWAY_PROJECT_ID or RAILWAY_ENVIRONMENT_ID not set; "
                "manual remediation results will not link the Railway dashboard"
            )

        return errors, warnings


def _legacy_env_overrides(environ: Mapping[str, str]) -> dict[str, Any]:
    """Map the original deployment's variable names onto nested settings.

    Prefixed variables always win; legacy names only fill gaps. TARGET_*
    variables point at the project where the workers live and take precedence
    over the service's own RAILWAY_* ids.
    """
    def _unset(name: str) -> bool:
        return not environ.get(f"{ENV_PREFIX}{name}")

    directory: dict[str, str] = {}
    if _unset("DIRECTORY__TOKEN") and environ.get("RAILWAY_TOKEN"):
        directory["token"] = environ["RAILWAY_TOKEN"]
    project_id = environ.get("TARGET_RAILWAY_PROJECT_ID") or environ.get("RAILWAY_PROJECT_ID")
    if _unset("DIRECTORY__PROJECT_ID") and project_id:
        directory["project_id"] = project_id
    environment_id = environ.get("TARGET_RAILWAY_ENVIRONMENT_ID") or environ.get("RAILWAY_ENVIRONMENT_ID")
    if _unset("DIRECTORY__ENVIRONMENT_ID") and environment_id:
        directory["environment_id"] = environment_id

    overrides: dict[str, Any] = {}
    if directory:
        overrides["directory"] = directory
    if _unset("WEB__PORT") and environ.get("PORT"):
        overrides["web"] = {"port": environ["PORT"]}
    return overrides


def log_startup_report(settings: Settings) -> None:
    """Log which credentials are present without leaking them."""
    logger.info(
        "Checking configuration",
        api_key="SET" if settings.api_key else "MISSING",
        railway_token=mask_secret(settings.directory.token),
        project_id=settings.directory.project_id or "MISSING",
        environment_id=settings.directory.environment_id or "MISSING",
    )


def load_settings(config_path: str | Path | None = None) -> Settings:
    """
    Load and validate application settings.

    Args:
        config_path: Optional path to YAML config file

    Returns:
        Validated Settings instance

    Raises:
        ConfigurationError: If required configuration is missing or invalid
    """
    try:
        if config_path:
            settings = Settings.from_yaml(config_path)
        else:
            settings = Settings.from_env()
    except (ValueError, FileNotFoundError) as e:
        raise ConfigurationError(f"Invalid configuration: {e}") from e

    log_startup_report(settings)

    errors, warnings = settings.validate_required_config()
    for warning in warnings:
        logger.warning(warning)
    if errors:
        raise ConfigurationError(
            "Configuration validation failed:\n" + "\n".join(f"  - {e}" for e in errors),
            details={"errors": errors},
        )

    return settings


__all__ = [
    'DirectoryConfig',
    'FallbackConfig',
    'GatewayConfig',
    'LoggingConfig',
    'OrchestratorConfig',
    'Settings',
    'WebConfig',
    'load_settings',
    'log_startup_report',
]
