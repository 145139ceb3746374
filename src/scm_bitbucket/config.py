"""Configuration management for the Bitbucket SCM adapter."""

import os
from functools import lru_cache
from typing import Any, Dict, Mapping, Optional

from pydantic import BaseModel, ConfigDict, Field, ValidationError
from pydantic.alias_generators import to_camel
from pydantic_settings import BaseSettings, SettingsConfigDict

from .scm.exceptions import ConfigurationError


class FuseboxConfig(BaseModel):
    """Retry, timeout and circuit breaker options for the HTTP executor."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, extra="ignore")

    timeout: float = Field(default=10.0, gt=0)
    max_retries: int = Field(default=3, ge=0)
    base_delay: float = Field(default=1.0, ge=0)
    max_delay: float = Field(default=30.0, ge=0)
    failure_threshold: int = Field(default=5, ge=1)
    reset_timeout: float = Field(default=30.0, ge=0)


class BitbucketConfig(BaseModel):
    """Validated constructor options for BitbucketScm.

    Accepts the platform's camelCase keys (``oauthClientId``) as well as
    snake_case. Unknown keys are kept so shared plugin config can be passed
    through untouched.
    """

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, extra="allow")

    oauth_client_id: str = Field(min_length=1)
    oauth_client_secret: str = Field(min_length=1)
    username: str = "sd-buildbot"
    email: str = "dev-null@screwdriver.cd"
    https: bool = False
    fusebox: FuseboxConfig = Field(default_factory=FuseboxConfig)

    @classmethod
    def load(cls, config: Optional[Mapping[str, Any]]) -> "BitbucketConfig":
        """Validate raw config, raising ConfigurationError on failure."""
        if isinstance(config, cls):
            return config
        try:
            return cls.model_validate(dict(config or {}))
        except ValidationError as exc:
            raise ConfigurationError(f"Invalid config for Bitbucket: {exc}") from exc


class Settings(BaseSettings):
    """Service settings, read from the environment."""

    model_config = SettingsConfigDict(
        env_file=".env" if os.getenv("ENVIRONMENT") != "test" else None,
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Application
    app_name: str = "SCM Bitbucket"
    app_version: str = "0.1.0"
    debug: bool = False
    environment: str = "development"
    log_level: str = "INFO"

    # Server
    host: str = "0.0.0.0"
    port: int = 8000

    # OAuth consumer for the Bitbucket account
    bitbucket_oauth_client_id: Optional[str] = None
    bitbucket_oauth_client_secret: Optional[str] = None

    # Identity used for git commits made by the checkout step
    bitbucket_username: str = "sd-buildbot"
    bitbucket_email: str = "dev-null@screwdriver.cd"

    # Whether the platform API is served over HTTPS (OAuth cookie flags)
    bitbucket_https: bool = False

    # HTTP executor
    http_timeout: float = 10.0
    http_max_retries: int = 3
    breaker_failure_threshold: int = 5
    breaker_reset_timeout: float = 30.0

    def to_scm_config(self) -> Dict[str, Any]:
        """Constructor config for BitbucketScm built from these settings."""
        return {
            "oauthClientId": self.bitbucket_oauth_client_id,
            "oauthClientSecret": self.bitbucket_oauth_client_secret,
            "username": self.bitbucket_username,
            "email": self.bitbucket_email,
            "https": self.bitbucket_https,
            "fusebox": {
                "timeout": self.http_timeout,
                "maxRetries": self.http_max_retries,
                "failureThreshold": self.breaker_failure_threshold,
                "resetTimeout": self.breaker_reset_timeout,
            },
        }


@lru_cache()
def get_settings() -> Settings:
    """Get cached application settings."""
    return Settings()
