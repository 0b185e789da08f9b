"""
Portal-wide exception hierarchy.

Services raise these types; the application registers a single error
handler against ``PortalError`` and maps each subclass to its HTTP status
and machine-readable code.

Usage:
    from portal.core.exceptions import NotFoundError, ValidationError

    raise NotFoundError(resource="Delivery", resource_id="d-1")
    raise ValidationError("deadline must be YYYY-MM-DD", details={"deadline": "invalid"})

Hard failures (validation, authorization, transition, not-found) are raised
before any write. StoreUnavailable may surface after earlier writes have
committed. PartialCascadeFailure is never raised to the HTTP layer: it is
returned as a warning next to a successful primary mutation.
"""

from portal.utils.errors import E


class PortalError(Exception):
    """Base class for errors that map onto the JSON error envelope."""

    status = 400
    code = E.INTERNAL

    def __init__(self, message: str, details: dict | None = None) -> None:
        self.message = message
        self.details = details or {}
        super().__init__(message)


class ValidationError(PortalError):
    """Malformed input: empty required field, bad date string, invalid URL or enum.

    Args:
        message: Human-readable explanation of what failed.
        details: Optional field-level breakdown. Keys are field names.
    """

    status = 400
    code = E.VALIDATION_INVALID


class AuthenticationRequired(PortalError):
    """No identity token, or one the identity provider did not sign."""

    status = 401
    code = E.UNAUTHENTICATED


class AuthorizationDenied(PortalError):
    """The caller's role or account state does not permit the mutation."""

    status = 403
    code = E.FORBIDDEN


class NotFoundError(PortalError):
    """Raised when a requested record does not exist within the caller's scope.

    Used for BOTH genuinely missing records AND out-of-scope reads (a
    contractor asking for someone else's delivery). A 403 would confirm the
    record exists; a 404 does not.

    Args:
        resource: Human-readable entity name (e.g. "Project", "Delivery").
        resource_id: The id that was looked up.
    """

    status = 404
    code = E.NOT_FOUND

    def __init__(self, resource: str, resource_id: str | None = None) -> None:
        self.resource = resource
        self.resource_id = resource_id
        msg = f"{resource}"
        if resource_id is not None:
            msg += f" id={resource_id}"
        msg += " not found"
        super().__init__(msg)


class TransitionDenied(PortalError):
    """A delivery status change outside the transition table, or with an unmet precondition.

    The message names the unmet precondition so the UI can show it as-is.
    """

    status = 409
    code = E.TRANSITION_DENIED

    def __init__(
        self,
        message: str,
        *,
        current: str | None = None,
        requested: str | None = None,
        role: str | None = None,
        precondition: str | None = None,
    ) -> None:
        self.current = current
        self.requested = requested
        self.role = role
        self.precondition = precondition
        details = {"current": current, "requested": requested, "role": role}
        if precondition:
            details["precondition"] = precondition
        super().__init__(message, details={k: v for k, v in details.items() if v is not None})


class StoreUnavailable(PortalError):
    """The document store rejected or failed a read/write. Retrying is left to the user."""

    status = 503
    code = E.STORE_UNAVAILABLE


class PartialCascadeFailure(Exception):
    """A multi-record cascade (project deletion, notification fan-out) finished only part of its writes.

    Returned as a warning alongside the already-committed primary mutation,
    never raised through the request.
    """

    def __init__(self, operation: str, *, completed: int, failed: int, reason: str = "") -> None:
        self.operation = operation
        self.completed = completed
        self.failed = failed
        self.reason = reason
        msg = f"{operation}: {failed} of {completed + failed} writes failed"
        if reason:
            msg += f" ({reason})"
        super().__init__(msg)

    def to_dict(self) -> dict:
        return {
            "operation": self.operation,
            "completed": self.completed,
            "failed": self.failed,
            "message": str(self),
        }
