"""
Platform-wide exception hierarchy.

Every service in the workflow core raises one of these types and nothing
else for caller-recoverable conditions. Blueprints register handlers against
them once and get consistent HTTP status codes everywhere:

    NotFoundError       → 404
    ValidationError     → 422
    AuthorizationError  → 403
    ConflictError       → 409

Usage:
    from qms.core.exceptions import NotFoundError, ValidationError

    raise NotFoundError(resource="Assessment", resource_id=42)
    raise ValidationError("Score must be 1, 2, or 3", details={"score": 7})
"""


class NotFoundError(Exception):
    """Raised when a requested resource does not exist within the given scope.

    Security note: Used for BOTH genuinely missing records AND cross-organization
    access attempts. A 403 would confirm the resource exists in another
    organization; a 404 does not.

    Args:
        resource: Human-readable entity name (e.g. "Assessment", "NonConformity").
        resource_id: The PK that was looked up. Included in logs, not in HTTP response.
        organization_id: Optional — the scope that was enforced. For debug logging only.
    """

    def __init__(
        self,
        resource: str,
        resource_id: int | str | None = None,
        organization_id: int | None = None,
    ) -> None:
        self.resource = resource
        self.resource_id = resource_id
        self.organization_id = organization_id
        msg = f"{resource}"
        if resource_id is not None:
            msg += f" id={resource_id}"
        msg += " not found"
        super().__init__(msg)


class ValidationError(Exception):
    """Raised when input violates a business rule in the service layer.

    Covers bad enum values, illegal state transitions, guard-condition
    failures and malformed scores. The message is meant for the end user;
    ``details`` carries the machine-readable breakdown (for transitions:
    ``current_status`` and ``requested_status``; for guards: ``guard``).

    Args:
        message: Human-readable explanation of what failed.
        details: Optional structured breakdown for API responses.
    """

    def __init__(self, message: str, details: dict | None = None) -> None:
        self.details = details or {}
        super().__init__(message)


class AuthorizationError(Exception):
    """Raised when the caller lacks the role or relationship for an operation.

    Only raised for entities that exist and are inside the caller's
    organization; out-of-scope entities raise NotFoundError instead.
    """

    def __init__(self, message: str = "Insufficient permissions") -> None:
        super().__init__(message)


class ConflictError(Exception):
    """Raised when an operation would duplicate a unique key.

    Args:
        resource: Model name.
        field: The unique field that would be duplicated.
        value: The conflicting value.
    """

    def __init__(self, resource: str, field: str, value: str | None = None) -> None:
        self.resource = resource
        self.field = field
        self.value = value
        super().__init__(f"{resource} with {field}={value!r} already exists")
