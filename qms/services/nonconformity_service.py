"""
Non-conformity service — NCR lifecycle and the cross-entity guards on it.

Transition guards, checked in order (first failure wins):
    1. requested status is an NCRStatus
    2. (current, requested) is an edge of NCR_TRANSITIONS
    3. → RESOLVED: ≥1 corrective action, all COMPLETED or VERIFIED
    4. → CLOSED:   non-empty root cause, all corrective actions VERIFIED

The NCR row is loaded FOR UPDATE and its action collection re-read inside
the same transaction before the guards run, so a concurrent action
transition cannot slip between the check and the write.

Creation, edits and deletes are rejected once the parent assessment is
COMPLETED or ARCHIVED. Status transitions are not: remediation continues
after the audit closes.

Usage:
    from qms.services import nonconformity_service

    nonconformity_service.transition_ncr_status(caller, ncr_id, "CLOSED")
"""

import logging

from sqlalchemy import func, or_, select

from qms.core.exceptions import NotFoundError, ValidationError
from qms.models import db
from qms.models.assessment import Assessment, QuestionResponse
from qms.models.audit import write_audit_safely
from qms.models.nonconformity import (
    FINISHED_ACTION_STATUSES,
    NCR_STATUSES,
    NCR_TRANSITIONS,
    ROOT_CAUSE_METHODS,
    SEVERITIES,
    ActionStatus,
    CorrectiveAction,
    NCRStatus,
    NonConformity,
)
from qms.services import ncr_generator
from qms.services.helpers.pagination import paginate_select
from qms.services.helpers.scoped_queries import get_ncr_scoped, get_scoped
from qms.services.lifecycle import guard_failed, require_member, require_transition, require_unlocked
from qms.services.permission import AccessContext, Caller, can_delete, can_manage, check_permission

logger = logging.getLogger(__name__)

UPDATABLE_FIELDS = ("title", "description", "severity", "root_cause", "root_cause_method")


def actions_select(ncr_id: int, *, lock: bool = False):
    stmt = (
        select(CorrectiveAction)
        .where(CorrectiveAction.non_conformity_id == ncr_id)
        .order_by(CorrectiveAction.id)
        .execution_options(populate_existing=True)
    )
    return stmt.with_for_update() if lock else stmt


def _current_actions(ncr_id: int, *, lock: bool = False) -> list[CorrectiveAction]:
    """Fresh read of an NCR's actions, bypassing the identity-map collection.

    With *lock*, the rows stay locked until commit so an action cannot leave
    COMPLETED between the guard check and the NCR status write.
    """
    return list(db.session.execute(actions_select(ncr_id, lock=lock)).scalars().all())


def check_ncr_guards(ncr: NonConformity, requested: str, actions) -> None:
    """Guard conditions 3 and 4; the edge check has already passed."""
    if requested == NCRStatus.RESOLVED:
        if not actions:
            raise guard_failed(
                "Cannot resolve an NCR without any corrective actions",
                "resolve_requires_actions",
            )
        unfinished = [a.id for a in actions if a.status not in FINISHED_ACTION_STATUSES]
        if unfinished:
            raise guard_failed(
                "Cannot resolve an NCR until all corrective actions are completed",
                "resolve_requires_completed_actions",
                action_ids=unfinished,
            )
    elif requested == NCRStatus.CLOSED:
        if not (ncr.root_cause or "").strip():
            raise guard_failed(
                "Cannot close an NCR without documenting the root cause",
                "close_requires_root_cause",
            )
        unverified = [a.id for a in actions if a.status != ActionStatus.VERIFIED]
        if unverified:
            raise guard_failed(
                "Cannot close an NCR until all corrective actions are verified",
                "close_requires_verified_actions",
                action_ids=unverified,
            )


# ── Reads ─────────────────────────────────────────────────────────────────────


def list_ncrs(caller: Caller, assessment_id: int, *, status=None, severity=None) -> list[dict]:
    assessment = get_scoped(Assessment, assessment_id, organization_id=caller.organization_id)
    stmt = select(NonConformity).where(NonConformity.assessment_id == assessment.id)
    if status:
        stmt = stmt.where(NonConformity.status == require_member(status, NCR_STATUSES, "status"))
    if severity:
        stmt = stmt.where(NonConformity.severity == require_member(severity, SEVERITIES, "severity"))
    rows = db.session.execute(stmt.order_by(NonConformity.created_at.desc(), NonConformity.id.desc())).scalars()
    return [n.to_dict() for n in rows]


def list_organization_ncrs(caller: Caller, *, status=None, severity=None, search=None, page=1, page_size=20) -> dict:
    """Every NCR across the caller's organization, paginated."""
    stmt = (
        select(NonConformity)
        .join(Assessment, NonConformity.assessment_id == Assessment.id)
        .where(Assessment.organization_id == caller.organization_id)
    )
    if status:
        stmt = stmt.where(NonConformity.status == require_member(status, NCR_STATUSES, "status"))
    if severity:
        stmt = stmt.where(NonConformity.severity == require_member(severity, SEVERITIES, "severity"))
    if search:
        pattern = f"%{search.strip()}%"
        stmt = stmt.where(or_(NonConformity.title.ilike(pattern), NonConformity.description.ilike(pattern)))

    result = paginate_select(stmt.order_by(NonConformity.created_at.desc(), NonConformity.id.desc()), page, page_size)
    items = []
    for n in result.items:
        d = n.to_dict()
        d["assessment"] = {"id": n.assessment.id, "title": n.assessment.title, "status": n.assessment.status}
        items.append(d)
    return {"items": items, "pagination": result.meta()}


def get_ncr(caller: Caller, ncr_id: int) -> dict:
    ncr = get_ncr_scoped(ncr_id, organization_id=caller.organization_id)
    d = ncr.to_dict(include_actions=False)
    d["corrective_actions"] = [a.to_dict() for a in ncr.corrective_actions]
    d["assessment"] = {"id": ncr.assessment.id, "title": ncr.assessment.title, "status": ncr.assessment.status}
    return d


def summarize_ncrs(caller: Caller, assessment_id: int) -> dict:
    """Counts for one assessment; every status and severity key is present."""
    assessment = get_scoped(Assessment, assessment_id, organization_id=caller.organization_id)
    by_status = dict.fromkeys(NCR_STATUSES, 0)
    by_status.update(db.session.execute(
        select(NonConformity.status, func.count(NonConformity.id))
        .where(NonConformity.assessment_id == assessment.id)
        .group_by(NonConformity.status)
    ).all())
    by_severity = dict.fromkeys(SEVERITIES, 0)
    by_severity.update(db.session.execute(
        select(NonConformity.severity, func.count(NonConformity.id))
        .where(NonConformity.assessment_id == assessment.id)
        .group_by(NonConformity.severity)
    ).all())
    return {
        "total": sum(by_status.values()),
        "by_status": by_status,
        "by_severity": by_severity,
        "open_count": by_status[NCRStatus.OPEN] + by_status[NCRStatus.IN_PROGRESS],
        "closed_count": by_status[NCRStatus.CLOSED],
    }


# ── Writes ────────────────────────────────────────────────────────────────────


def create_ncr(caller: Caller, assessment_id: int, data: dict) -> dict:
    """Raise an NCR manually, optionally linked to one of the assessment's responses."""
    assessment = get_scoped(Assessment, assessment_id, organization_id=caller.organization_id)
    check_permission(
        can_manage, AccessContext.for_assessment(assessment), caller,
        "You do not have permission to create non-conformities for this assessment",
    )
    require_unlocked(assessment, "create non-conformities")

    title = (data.get("title") or "").strip()
    if not title:
        raise ValidationError("title is required")
    severity = require_member(data.get("severity"), SEVERITIES, "severity")
    root_cause_method = data.get("root_cause_method")
    if root_cause_method is not None:
        require_member(root_cause_method, sorted(ROOT_CAUSE_METHODS), "root_cause_method")

    response_id = data.get("response_id")
    if response_id is not None:
        response = db.session.get(QuestionResponse, response_id)
        if response is None:
            raise NotFoundError(resource="QuestionResponse", resource_id=response_id)
        if response.assessment_id != assessment.id:
            raise ValidationError(
                "The response does not belong to this assessment",
                details={"response_id": response_id, "assessment_id": assessment.id},
            )

    ncr = NonConformity(
        assessment_id=assessment.id,
        response_id=response_id,
        title=title,
        description=data.get("description") or "",
        severity=severity,
        status=NCRStatus.OPEN,
        root_cause=data.get("root_cause"),
        root_cause_method=root_cause_method,
    )
    db.session.add(ncr)
    db.session.flush()
    write_audit_safely(
        entity_type="non_conformity",
        entity_id=ncr.id,
        action="non_conformity.create",
        organization_id=caller.organization_id,
        actor_user_id=caller.user_id,
        diff={"assessment_id": assessment.id, "severity": severity},
    )
    db.session.commit()
    logger.info("NonConformity created id=%s assessment=%s severity=%s", ncr.id, assessment.id, severity)
    return ncr.to_dict()


def update_ncr(caller: Caller, ncr_id: int, data: dict) -> dict:
    ncr = get_ncr_scoped(ncr_id, organization_id=caller.organization_id, lock=True)
    check_permission(
        can_manage, AccessContext.for_assessment(ncr.assessment), caller,
        "You do not have permission to update this non-conformity",
    )
    require_unlocked(ncr.assessment, "update non-conformities")
    if ncr.status == NCRStatus.CLOSED:
        raise guard_failed("Cannot update a closed non-conformity", "ncr_closed")

    changes = {}
    for field in UPDATABLE_FIELDS:
        if field not in data:
            continue
        value = data[field]
        if field == "title":
            value = (value or "").strip()
            if not value:
                raise ValidationError("title cannot be empty")
        elif field == "severity":
            value = require_member(value, SEVERITIES, "severity")
        elif field == "root_cause_method" and value is not None:
            require_member(value, sorted(ROOT_CAUSE_METHODS), "root_cause_method")
        elif field == "description":
            value = value or ""
        changes[field] = value

    for field, value in changes.items():
        setattr(ncr, field, value)
    db.session.commit()
    logger.info("NonConformity updated id=%s fields=%s", ncr.id, sorted(changes))
    return ncr.to_dict()


def delete_ncr(caller: Caller, ncr_id: int) -> None:
    """Hard-delete an NCR that has no corrective actions and is not CLOSED."""
    ncr = get_ncr_scoped(ncr_id, organization_id=caller.organization_id, lock=True)
    check_permission(
        can_delete, AccessContext.for_assessment(ncr.assessment), caller,
        "Only system administrators and quality managers can delete non-conformities",
    )
    require_unlocked(ncr.assessment, "delete non-conformities")
    if _current_actions(ncr.id):
        raise guard_failed(
            "Cannot delete a non-conformity that has corrective actions. Delete the corrective actions first.",
            "ncr_has_actions",
        )
    if ncr.status == NCRStatus.CLOSED:
        raise guard_failed("Cannot delete a closed non-conformity", "ncr_closed")

    organization_id = ncr.assessment.organization_id
    write_audit_safely(
        entity_type="non_conformity",
        entity_id=ncr.id,
        action="non_conformity.delete",
        organization_id=organization_id,
        actor_user_id=caller.user_id,
        diff={"title": ncr.title, "status": ncr.status},
    )
    db.session.delete(ncr)
    db.session.commit()
    logger.info("NonConformity deleted id=%s", ncr_id)


def transition_ncr_status(caller: Caller, ncr_id: int, new_status: str) -> dict:
    """Move an NCR along one edge of NCR_TRANSITIONS, enforcing the guards.

    Raises:
        NotFoundError: NCR outside the caller's organization.
        AuthorizationError: Caller may not manage the parent assessment.
        ValidationError: Unknown status, missing edge, or failed guard. The
                         NCR is left unmodified.
    """
    ncr = get_ncr_scoped(ncr_id, organization_id=caller.organization_id, lock=True)
    check_permission(
        can_manage, AccessContext.for_assessment(ncr.assessment), caller,
        "You do not have permission to change the status of this non-conformity",
    )
    require_transition("NonConformity", NCR_TRANSITIONS, ncr.status, new_status)
    check_ncr_guards(ncr, new_status, _current_actions(ncr.id, lock=True))

    old_status = ncr.status
    ncr.status = new_status
    write_audit_safely(
        entity_type="non_conformity",
        entity_id=ncr.id,
        action="non_conformity.transition",
        organization_id=caller.organization_id,
        actor_user_id=caller.user_id,
        diff={"status": {"old": old_status, "new": new_status}},
    )
    db.session.commit()
    logger.info("NonConformity transitioned id=%s %s → %s", ncr.id, old_status, new_status)
    return ncr.to_dict()


def generate_ncrs_from_failing_responses(caller: Caller, assessment_id: int) -> dict:
    """Create one OPEN NCR per non-draft response scored 1–2 that has none yet.

    Returns:
        {"created": int, "ncrs": [dict], "message": str}; created is 0 (not an
        error) when nothing qualifies.
    """
    assessment = get_scoped(Assessment, assessment_id, organization_id=caller.organization_id, lock=True)
    check_permission(
        can_manage, AccessContext.for_assessment(assessment), caller,
        "You do not have permission to create non-conformities for this assessment",
    )
    require_unlocked(assessment, "create non-conformities")

    ncrs = ncr_generator.generate_for_assessment(
        assessment.id,
        organization_id=caller.organization_id,
        actor_user_id=caller.user_id,
    )
    if not ncrs:
        return {"created": 0, "ncrs": [], "message": "No failing responses found without existing NCRs"}
    return {
        "created": len(ncrs),
        "ncrs": [n.to_dict() for n in ncrs],
        "message": f"Created {len(ncrs)} non-conformity record(s) from failing responses",
    }
