"""
Application-wide exception hierarchy.

Services raise these; blueprints translate them into JSON error responses
via ``snowdash.utils.errors``. ServiceNow failures are modelled separately
from local validation so the upstream message can be passed through verbatim.

Usage:
    from snowdash.core.exceptions import NotFoundError, ValidationError

    raise NotFoundError(resource="RITM", resource_id=sys_id)
    raise ValidationError("Invalid emailNum. Must be 1, 2, or 3.")
"""


class NotFoundError(Exception):
    """Raised when a requested record or document entry does not exist.

    Args:
        resource: Human-readable entity name (e.g. "RITM", "Dashboard").
        resource_id: The identifier that was looked up. Logged, not echoed.
        message: Optional override for the HTTP-facing message.
    """

    def __init__(
        self,
        resource: str,
        resource_id: str | None = None,
        message: str | None = None,
    ) -> None:
        self.resource = resource
        self.resource_id = resource_id
        self.message = message or f"{resource} not found"
        super().__init__(self.message)


class ValidationError(Exception):
    """Raised when caller input is missing or malformed.

    Maps to HTTP 400.

    Args:
        message: Human-readable explanation of what failed.
        details: Optional field-level breakdown.
    """

    def __init__(self, message: str, details: dict | None = None) -> None:
        self.message = message
        self.details = details or {}
        super().__init__(message)


class ServiceNowError(Exception):
    """Raised by the gateway when a ServiceNow call fails.

    ``status_code`` is the upstream HTTP status, or None for network-level
    failures (timeout, DNS, connection refused). ``message`` carries the
    upstream error text unchanged.
    """

    def __init__(
        self,
        message: str,
        status_code: int | None = None,
        details: dict | None = None,
    ) -> None:
        self.message = message
        self.status_code = status_code
        self.details = details or {}
        super().__init__(message)


class ConfigurationError(Exception):
    """Raised when required server configuration is missing (e.g. instance URL)."""
