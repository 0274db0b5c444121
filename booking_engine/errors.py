"""Error taxonomy shared by the scheduling engine.

Every failure a caller can act on maps to exactly one category so the
presentation layer can react specifically (refresh slots on a conflict,
retry on a persistence failure, show the policy message otherwise).
"""

from typing import Any, Optional


class SchedulingError(Exception):
    """Base class for all scheduling engine errors."""

    category = "error"

    def __init__(self, message: str, **details: Any) -> None:
        super().__init__(message)
        self.message = message
        self.details = details

    def to_dict(self) -> dict[str, Any]:
        return {"category": self.category, "message": self.message, **self.details}


class ValidationError(SchedulingError, ValueError):
    """Malformed input: bad timezone, unparsable time, end <= start."""

    category = "validation"


class PolicyViolation(SchedulingError):
    """Advance-time window, cancellation window, holiday or availability rule."""

    category = "policy_violation"


class InvalidTransitionError(PolicyViolation):
    """Raised when a status transition is not valid from the current status."""

    category = "invalid_transition"


class ConflictError(SchedulingError):
    """The requested interval is already occupied."""

    category = "conflict"


class UnauthorizedError(SchedulingError):
    """The acting user does not own the resource."""

    category = "unauthorized"


class NotFoundError(SchedulingError):
    """Unknown booking, service or provider id."""

    category = "not_found"

    def __init__(self, entity: str, entity_id: Optional[str]) -> None:
        super().__init__(f"{entity} {entity_id} not found.", entity=entity, id=entity_id)


class PersistenceError(SchedulingError):
    """The backend failed for a reason other than a constraint violation."""

    category = "persistence"
