"""SCM adapter exception types.

Transport failures, provider responses and token problems each get their own
type so callers can tell a flaky network apart from a rejected request. The
webhook receiver catches ScmError generically, so new subclasses don't break
the existing interface.
"""

from typing import Any, Optional


class ScmError(Exception):
    """Base exception for all SCM adapter errors."""

    def __init__(self, message: str, scm_context: str = ""):
        self.scm_context = scm_context
        super().__init__(message)


class TransportError(ScmError):
    """The HTTP executor could not complete the request (DNS, connect, timeout)."""

    pass


class CircuitOpenError(TransportError):
    """The circuit breaker is open and rejected the call without sending it."""

    pass


class ProviderError(ScmError):
    """Bitbucket returned a non-2xx response."""

    def __init__(
        self,
        message: str,
        status_code: int = 0,
        response_body: Any = None,
        scm_context: str = "",
    ):
        self.status_code = status_code
        self.response_body = response_body
        super().__init__(message, scm_context)

    @property
    def code(self) -> int:
        """HTTP status code of the failed response."""
        return self.status_code


class AuthenticationError(ScmError):
    """OAuth token issuance or refresh failed."""

    def __init__(
        self,
        message: str,
        status_code: Optional[int] = None,
        scm_context: str = "",
    ):
        self.status_code = status_code
        super().__init__(message, scm_context)


class ConfigurationError(ScmError):
    """Adapter configuration is missing required values or is malformed."""

    pass


class ScmValidationError(ScmError):
    """Invalid input provided to an SCM operation."""

    pass


class WebhookPayloadError(ScmValidationError):
    """A supported webhook event arrived without the fields it must carry."""

    pass
