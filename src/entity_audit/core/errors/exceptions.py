"""Domain exceptions for the audit package.

Only mapping inconsistencies and configuration mistakes are raised to the
caller. Validation failures and unavailable correlation ids are recorded
as data on the audit event instead.
"""

from typing import Any


class AuditError(Exception):
    """Base exception for all audit errors.

    Attributes:
        message: Human-readable error message
        error_code: Machine-readable error code
        details: Additional error details
    """

    message: str = "An unexpected audit error occurred"
    error_code: str = "audit_error"

    def __init__(
        self,
        message: str | None = None,
        error_code: str | None = None,
        details: dict[str, Any] | None = None,
    ) -> None:
        self.message = message or self.message
        self.error_code = error_code or self.error_code
        self.details = details or {}
        super().__init__(self.message)


class MappingError(AuditError):
    """Raised when entity metadata does not match the live instance.

    Example:
        raise MappingError(
            "Primary key attribute missing",
            entity_type="Order",
            attribute="order_no",
        )
    """

    message = "Entity mapping is inconsistent"
    error_code = "mapping_error"

    def __init__(
        self,
        message: str | None = None,
        entity_type: str | None = None,
        attribute: str | None = None,
        **kwargs: Any,
    ) -> None:
        details = kwargs.pop("details", {})
        if entity_type:
            details["entity_type"] = entity_type
        if attribute:
            details["attribute"] = attribute
        super().__init__(message=message, details=details, **kwargs)


class ConfigurationError(AuditError):
    """Raised when audit settings name an unknown backend or option.

    Example:
        raise ConfigurationError("Unknown correlation backend: oracle")
    """

    message = "Invalid audit configuration"
    error_code = "configuration_error"


class SinkError(AuditError):
    """Raised by sinks when an event cannot be delivered.

    Example:
        raise SinkError("Audit queue unavailable", details={"queue": "audit"})
    """

    message = "Audit event could not be delivered"
    error_code = "sink_error"
