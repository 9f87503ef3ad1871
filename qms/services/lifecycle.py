"""
Lifecycle transition checks shared by all three state machines.

The machines themselves are plain adjacency maps living next to their
models:

    ASSESSMENT_TRANSITIONS   qms.models.assessment
    NCR_TRANSITIONS          qms.models.nonconformity
    ACTION_TRANSITIONS       qms.models.nonconformity

This module checks any of them generically, so the three machines stay
structurally identical and every (from, to) pair can be enumerated in tests.

Usage:
    from qms.services.lifecycle import require_transition

    require_transition("NonConformity", NCR_TRANSITIONS, ncr.status, "RESOLVED")
"""

from collections.abc import Iterable, Mapping

from qms.core.exceptions import ValidationError


def is_valid_transition(transitions: Mapping[str, list], current: str, requested: str) -> bool:
    """Return True if *requested* is an outgoing edge of *current*."""
    return requested in transitions.get(current, [])


def allowed_transitions(transitions: Mapping[str, list], current: str) -> list[str]:
    """Return the outgoing edges of *current* (empty for terminal states)."""
    return list(transitions.get(current, []))


def terminal_states(transitions: Mapping[str, list]) -> set[str]:
    """States with no outgoing edge."""
    return {state for state, targets in transitions.items() if not targets}


def require_member(value, allowed: Iterable[str], field: str) -> str:
    """Raise ValidationError unless *value* is one of *allowed*."""
    allowed = list(allowed)
    if value not in allowed:
        raise ValidationError(
            f"Invalid {field}: {value}. Must be one of: {', '.join(allowed)}",
            details={field: value, "allowed": allowed},
        )
    return value


def require_transition(entity: str, transitions: Mapping[str, list], current: str, requested: str) -> None:
    """Raise ValidationError unless current → requested is an edge of the table.

    The message names both states and the permitted targets so callers can
    show an actionable error.
    """
    require_member(requested, transitions.keys(), "status")
    if is_valid_transition(transitions, current, requested):
        return
    allowed = allowed_transitions(transitions, current)
    raise ValidationError(
        f"Cannot transition {entity} from {current} to {requested}. "
        f"Allowed transitions: {', '.join(allowed) if allowed else 'none (terminal state)'}",
        details={
            "current_status": current,
            "requested_status": requested,
            "allowed": allowed,
        },
    )


def guard_failed(message: str, guard: str, **details) -> ValidationError:
    """Build the ValidationError for a failed guard condition."""
    return ValidationError(message, details={"guard": guard, **details})


def require_unlocked(assessment, action: str) -> None:
    """Reject writes below an assessment that is COMPLETED or ARCHIVED."""
    if assessment.is_locked:
        raise guard_failed(
            f"Cannot {action} for a {assessment.status.lower()} assessment",
            "assessment_locked",
            assessment_status=assessment.status,
        )
