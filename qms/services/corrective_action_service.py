"""
Corrective action service — remediation tasks raised against an NCR.

Lifecycle (ACTION_TRANSITIONS):
    PENDING → IN_PROGRESS → COMPLETED → VERIFIED (terminal)

The generic status entry point never reaches VERIFIED; verification is
verify_action, gated by can_verify and allowed only from COMPLETED. Entering
COMPLETED stamps completed_date. A VERIFIED action is read-only.

Creation, edits, assignment and deletes are rejected once the assessment is
COMPLETED or ARCHIVED; status transitions and verification are not.
"""

import logging
from datetime import date, datetime, timezone

from sqlalchemy import func, select

from qms.core.exceptions import ValidationError
from qms.models import db
from qms.models.audit import write_audit_safely
from qms.models.nonconformity import (
    ACTION_STATUSES,
    ACTION_TRANSITIONS,
    FINISHED_ACTION_STATUSES,
    PRIORITIES,
    ActionStatus,
    CorrectiveAction,
    NCRStatus,
    Priority,
)
from qms.models.organization import User
from qms.services.helpers.pagination import paginate_select
from qms.services.helpers.scoped_queries import get_action_scoped, get_ncr_scoped, get_scoped
from qms.services.lifecycle import guard_failed, require_member, require_transition, require_unlocked
from qms.services.permission import AccessContext, Caller, can_delete, can_manage, can_verify, check_permission
from qms.utils.helpers import parse_date_input

logger = logging.getLogger(__name__)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _resolve_assignee(caller: Caller, user_id):
    """Assignee must be a user of the caller's organization (NotFoundError otherwise)."""
    if user_id is None:
        return None
    return get_scoped(User, user_id, organization_id=caller.organization_id).id


def _require_not_verified(action: CorrectiveAction, verb: str) -> None:
    if action.status == ActionStatus.VERIFIED:
        raise guard_failed(f"Cannot {verb} a verified corrective action", "action_verified")


def _ctx(action: CorrectiveAction) -> AccessContext:
    return AccessContext.for_assessment(action.non_conformity.assessment)


# ── Reads ─────────────────────────────────────────────────────────────────────


def list_actions(
    caller: Caller,
    ncr_id: int,
    *,
    status=None,
    priority=None,
    assigned_to_id=None,
    page=1,
    page_size=20,
) -> dict:
    ncr = get_ncr_scoped(ncr_id, organization_id=caller.organization_id)
    stmt = select(CorrectiveAction).where(CorrectiveAction.non_conformity_id == ncr.id)
    if status:
        stmt = stmt.where(CorrectiveAction.status == require_member(status, ACTION_STATUSES, "status"))
    if priority:
        stmt = stmt.where(CorrectiveAction.priority == require_member(priority, PRIORITIES, "priority"))
    if assigned_to_id:
        stmt = stmt.where(CorrectiveAction.assigned_to_id == assigned_to_id)
    result = paginate_select(stmt.order_by(CorrectiveAction.created_at.desc(), CorrectiveAction.id.desc()), page, page_size)
    return {"items": [a.to_dict() for a in result.items], "pagination": result.meta()}


def get_action(caller: Caller, action_id: int) -> dict:
    action = get_action_scoped(action_id, organization_id=caller.organization_id)
    d = action.to_dict()
    ncr = action.non_conformity
    d["non_conformity"] = {"id": ncr.id, "title": ncr.title, "status": ncr.status, "assessment_id": ncr.assessment_id}
    return d


def summarize_actions(caller: Caller, ncr_id: int) -> dict:
    """Counts for one NCR; every status and priority key is present."""
    ncr = get_ncr_scoped(ncr_id, organization_id=caller.organization_id)
    by_status = dict.fromkeys(ACTION_STATUSES, 0)
    by_status.update(db.session.execute(
        select(CorrectiveAction.status, func.count(CorrectiveAction.id))
        .where(CorrectiveAction.non_conformity_id == ncr.id)
        .group_by(CorrectiveAction.status)
    ).all())
    by_priority = dict.fromkeys(PRIORITIES, 0)
    by_priority.update(db.session.execute(
        select(CorrectiveAction.priority, func.count(CorrectiveAction.id))
        .where(CorrectiveAction.non_conformity_id == ncr.id)
        .group_by(CorrectiveAction.priority)
    ).all())
    overdue = db.session.execute(
        select(func.count(CorrectiveAction.id)).where(
            CorrectiveAction.non_conformity_id == ncr.id,
            CorrectiveAction.target_date < date.today(),
            CorrectiveAction.status.not_in(list(FINISHED_ACTION_STATUSES)),
        )
    ).scalar_one()
    return {
        "total": sum(by_status.values()),
        "by_status": by_status,
        "by_priority": by_priority,
        "overdue_count": overdue,
        "completed_count": by_status[ActionStatus.COMPLETED] + by_status[ActionStatus.VERIFIED],
        "pending_count": by_status[ActionStatus.PENDING] + by_status[ActionStatus.IN_PROGRESS],
    }


# ── Writes ────────────────────────────────────────────────────────────────────


def create_action(caller: Caller, ncr_id: int, data: dict) -> dict:
    """Raise a PENDING corrective action against an NCR."""
    ncr = get_ncr_scoped(ncr_id, organization_id=caller.organization_id, lock=True)
    check_permission(
        can_manage, AccessContext.for_assessment(ncr.assessment), caller,
        "You do not have permission to create corrective actions",
    )
    require_unlocked(ncr.assessment, "create corrective actions")
    if ncr.status == NCRStatus.CLOSED:
        raise guard_failed("Cannot create corrective actions for a closed non-conformity", "ncr_closed")

    description = (data.get("description") or "").strip()
    if not description:
        raise ValidationError("description is required")
    priority = require_member(data.get("priority") or Priority.MEDIUM, PRIORITIES, "priority")
    target_date = parse_date_input(data.get("target_date"), "target_date")
    assigned_to_id = _resolve_assignee(caller, data.get("assigned_to_id"))

    action = CorrectiveAction(
        non_conformity_id=ncr.id,
        description=description,
        priority=priority,
        status=ActionStatus.PENDING,
        assigned_to_id=assigned_to_id,
        target_date=target_date,
    )
    db.session.add(action)
    db.session.flush()
    write_audit_safely(
        entity_type="corrective_action",
        entity_id=action.id,
        action="corrective_action.create",
        organization_id=caller.organization_id,
        actor_user_id=caller.user_id,
        diff={"non_conformity_id": ncr.id, "priority": priority, "assigned_to_id": assigned_to_id},
    )
    db.session.commit()
    logger.info("CorrectiveAction created id=%s ncr=%s priority=%s", action.id, ncr.id, priority)
    return action.to_dict()


def update_action(caller: Caller, action_id: int, data: dict) -> dict:
    """Edit description, priority, assignee or target date of a non-VERIFIED action."""
    action = get_action_scoped(action_id, organization_id=caller.organization_id, lock=True)
    check_permission(can_manage, _ctx(action), caller, "You do not have permission to update this corrective action")
    require_unlocked(action.non_conformity.assessment, "update corrective actions")
    _require_not_verified(action, "update")

    changes = {}
    if "description" in data:
        description = (data["description"] or "").strip()
        if not description:
            raise ValidationError("description cannot be empty")
        changes["description"] = description
    if "priority" in data:
        changes["priority"] = require_member(data["priority"], PRIORITIES, "priority")
    if "target_date" in data:
        changes["target_date"] = parse_date_input(data["target_date"], "target_date")
    if "assigned_to_id" in data:
        changes["assigned_to_id"] = _resolve_assignee(caller, data["assigned_to_id"])

    for field, value in changes.items():
        setattr(action, field, value)
    db.session.commit()
    logger.info("CorrectiveAction updated id=%s fields=%s", action.id, sorted(changes))
    return action.to_dict()


def assign_action(caller: Caller, action_id: int, assigned_to_id) -> dict:
    """Set (or clear, with None) the assignee."""
    action = get_action_scoped(action_id, organization_id=caller.organization_id, lock=True)
    check_permission(can_manage, _ctx(action), caller, "You do not have permission to assign this corrective action")
    require_unlocked(action.non_conformity.assessment, "assign corrective actions")
    _require_not_verified(action, "assign")

    old_assignee = action.assigned_to_id
    action.assigned_to_id = _resolve_assignee(caller, assigned_to_id)
    write_audit_safely(
        entity_type="corrective_action",
        entity_id=action.id,
        action="corrective_action.assign",
        organization_id=caller.organization_id,
        actor_user_id=caller.user_id,
        diff={"assigned_to_id": {"old": old_assignee, "new": action.assigned_to_id}},
    )
    db.session.commit()
    logger.info("CorrectiveAction assigned id=%s user=%s", action.id, action.assigned_to_id)
    return action.to_dict()


def delete_action(caller: Caller, action_id: int) -> None:
    action = get_action_scoped(action_id, organization_id=caller.organization_id, lock=True)
    check_permission(
        can_delete, _ctx(action), caller,
        "Only system administrators and quality managers can delete corrective actions",
    )
    ncr = action.non_conformity
    require_unlocked(ncr.assessment, "delete corrective actions")
    if ncr.status == NCRStatus.CLOSED:
        raise guard_failed("Cannot delete corrective actions from a closed non-conformity", "ncr_closed")
    _require_not_verified(action, "delete")

    write_audit_safely(
        entity_type="corrective_action",
        entity_id=action.id,
        action="corrective_action.delete",
        organization_id=caller.organization_id,
        actor_user_id=caller.user_id,
        diff={"non_conformity_id": ncr.id, "status": action.status},
    )
    db.session.delete(action)
    db.session.commit()
    logger.info("CorrectiveAction deleted id=%s ncr=%s", action_id, ncr.id)


def transition_action_status(caller: Caller, action_id: int, new_status: str) -> dict:
    """Generic status change along ACTION_TRANSITIONS, excluding VERIFIED."""
    action = get_action_scoped(action_id, organization_id=caller.organization_id, lock=True)
    check_permission(
        can_manage, _ctx(action), caller,
        "You do not have permission to update the status of this corrective action",
    )
    require_member(new_status, ACTION_STATUSES, "status")
    if new_status == ActionStatus.VERIFIED:
        raise ValidationError(
            f"Cannot transition CorrectiveAction from {action.status} to VERIFIED through a status update. "
            "Use the verify operation.",
            details={"current_status": action.status, "requested_status": new_status, "guard": "verify_required"},
        )
    require_transition("CorrectiveAction", ACTION_TRANSITIONS, action.status, new_status)

    old_status = action.status
    action.status = new_status
    if new_status == ActionStatus.COMPLETED:
        action.completed_date = _utcnow()
    write_audit_safely(
        entity_type="corrective_action",
        entity_id=action.id,
        action="corrective_action.transition",
        organization_id=caller.organization_id,
        actor_user_id=caller.user_id,
        diff={"status": {"old": old_status, "new": new_status}},
    )
    db.session.commit()
    logger.info("CorrectiveAction transitioned id=%s %s → %s", action.id, old_status, new_status)
    return action.to_dict()


def verify_action(caller: Caller, action_id: int, effectiveness_notes: str | None = None) -> dict:
    """COMPLETED → VERIFIED, recording verifier, timestamp and effectiveness notes.

    Raises:
        AuthorizationError: Caller is neither admin, quality manager nor the
                            lead auditor of the assessment.
        ValidationError: Action is not COMPLETED.
    """
    action = get_action_scoped(action_id, organization_id=caller.organization_id, lock=True)
    check_permission(
        can_verify, _ctx(action), caller,
        "You do not have permission to verify corrective actions. "
        "Only lead auditors, quality managers, or system administrators can verify actions.",
    )
    if action.status != ActionStatus.COMPLETED:
        raise ValidationError(
            f"Cannot verify an action with status {action.status}. Action must be COMPLETED first.",
            details={
                "current_status": action.status,
                "requested_status": ActionStatus.VERIFIED,
                "guard": "verify_requires_completed",
            },
        )
    require_transition("CorrectiveAction", ACTION_TRANSITIONS, action.status, ActionStatus.VERIFIED)

    action.status = ActionStatus.VERIFIED
    action.verified_by_id = caller.user_id
    action.verified_date = _utcnow()
    action.effectiveness_notes = effectiveness_notes or None
    write_audit_safely(
        entity_type="corrective_action",
        entity_id=action.id,
        action="corrective_action.verify",
        organization_id=caller.organization_id,
        actor_user_id=caller.user_id,
        diff={"status": {"old": ActionStatus.COMPLETED, "new": ActionStatus.VERIFIED}},
    )
    db.session.commit()
    logger.info("CorrectiveAction verified id=%s by user=%s", action.id, caller.user_id)
    return action.to_dict()
