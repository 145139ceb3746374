"""Bitbucket Cloud SCM adapter for the Screwdriver CI/CD platform."""

from .bitbucket import BitbucketScm
from .scm.exceptions import (
    AuthenticationError,
    CircuitOpenError,
    ConfigurationError,
    ProviderError,
    ScmError,
    ScmValidationError,
    TransportError,
    WebhookPayloadError,
)

__version__ = "0.1.0"

__all__ = [
    "BitbucketScm",
    "ScmError",
    "TransportError",
    "CircuitOpenError",
    "ProviderError",
    "AuthenticationError",
    "ConfigurationError",
    "ScmValidationError",
    "WebhookPayloadError",
]
