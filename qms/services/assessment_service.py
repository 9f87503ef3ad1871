"""
Assessment service — audit instances, their team and their score snapshot.

Rules:
  - Every entry point takes the caller identity (qms.services.permission.Caller)
    and resolves organization scope before anything else (NotFoundError on
    mismatch), then checks the access gate (AuthorizationError).
  - Status changes always go through ASSESSMENT_TRANSITIONS; entering
    COMPLETED stamps completed_date.
  - "Delete" archives. Nothing here hard-deletes an assessment.
  - db.session.commit() happens only in the service layer.

Usage:
    from qms.services import assessment_service

    data = assessment_service.transition_assessment_status(caller, 42, "IN_PROGRESS")
"""

import logging
from datetime import datetime, timezone

from sqlalchemy import func, or_, select
from sqlalchemy.exc import IntegrityError

from qms.core.exceptions import AuthorizationError, ConflictError, NotFoundError, ValidationError
from qms.models import db
from qms.models.assessment import (
    ASSESSMENT_TRANSITIONS,
    AUDIT_TYPES,
    TEAM_MEMBER_ROLES,
    Assessment,
    AssessmentStatus,
    AssessmentTeamMember,
    AssessmentTemplate,
    QuestionResponse,
)
from qms.models.audit import write_audit_safely
from qms.models.nonconformity import NonConformity
from qms.models.organization import User
from qms.models.standard import AuditQuestion
from qms.services import scoring
from qms.services.helpers.pagination import paginate_select
from qms.services.helpers.scoped_queries import get_scoped, get_scoped_or_none
from qms.services.lifecycle import require_member, require_transition
from qms.services.permission import (
    AccessContext,
    Caller,
    can_create_assessment,
    can_delete,
    can_edit_assessment,
    check_permission,
)
from qms.utils.helpers import parse_date, parse_date_input

logger = logging.getLogger(__name__)

# Fields a caller may change through update_assessment.
UPDATABLE_FIELDS = ("title", "description", "audit_type", "scope", "objectives", "scheduled_date", "due_date")


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _active_question_count() -> int:
    return db.session.execute(
        select(func.count(AuditQuestion.id)).where(AuditQuestion.is_active.is_(True))
    ).scalar_one()


def _validate_team_member_ids(organization_id: int, user_ids) -> list[int]:
    """Every id must be an active user of *organization_id*."""
    try:
        ids = list(dict.fromkeys(int(uid) for uid in user_ids or []))
    except (TypeError, ValueError):
        raise ValidationError("One or more team members are invalid", details={"team_member_ids": user_ids}) from None
    if not ids:
        return []
    valid = db.session.execute(
        select(func.count(User.id)).where(
            User.id.in_(ids),
            User.organization_id == organization_id,
            User.is_active.is_(True),
        )
    ).scalar_one()
    if valid != len(ids):
        raise ValidationError("One or more team members are invalid", details={"team_member_ids": ids})
    return ids


def _apply_status(assessment: Assessment, new_status: str) -> str:
    """Validate and apply one edge of the assessment machine; returns the old status."""
    require_transition("Assessment", ASSESSMENT_TRANSITIONS, assessment.status, new_status)
    old_status = assessment.status
    assessment.status = new_status
    if new_status == AssessmentStatus.COMPLETED:
        assessment.completed_date = _utcnow()
    return old_status


# ── Create / read ─────────────────────────────────────────────────────────────


def create_assessment(caller: Caller, data: dict) -> dict:
    """Create a DRAFT assessment led by the caller.

    Args:
        caller: Invoking identity; becomes the lead auditor.
        data: title (required), description, audit_type, scope, objectives,
              scheduled_date, due_date, template_id, team_member_ids.

    Raises:
        AuthorizationError: Role may not create assessments.
        ValidationError: Missing title, bad audit type, template or team
                         members outside the organization.
    """
    if not can_create_assessment(caller.role):
        raise AuthorizationError("You do not have permission to create assessments")

    title = (data.get("title") or "").strip()
    if not title:
        raise ValidationError("title is required")
    audit_type = require_member(data.get("audit_type") or "INTERNAL", sorted(AUDIT_TYPES), "audit_type")

    template_id = data.get("template_id")
    if template_id is not None:
        if get_scoped_or_none(AssessmentTemplate, template_id, organization_id=caller.organization_id) is None:
            raise ValidationError("Assessment template is invalid", details={"template_id": template_id})

    member_ids = _validate_team_member_ids(caller.organization_id, data.get("team_member_ids"))

    assessment = Assessment(
        organization_id=caller.organization_id,
        title=title,
        description=data.get("description"),
        audit_type=audit_type,
        scope=data.get("scope"),
        objectives=list(data.get("objectives") or []),
        scheduled_date=parse_date_input(data.get("scheduled_date"), "scheduled_date"),
        due_date=parse_date_input(data.get("due_date"), "due_date"),
        lead_auditor_id=caller.user_id,
        template_id=template_id,
        status=AssessmentStatus.DRAFT,
    )
    assessment.team_members = [AssessmentTeamMember(user_id=uid) for uid in member_ids]
    db.session.add(assessment)
    db.session.flush()
    write_audit_safely(
        entity_type="assessment",
        entity_id=assessment.id,
        action="assessment.create",
        organization_id=caller.organization_id,
        actor_user_id=caller.user_id,
        diff={"title": title, "team_member_ids": member_ids},
    )
    db.session.commit()
    logger.info("Assessment created id=%s org=%s lead=%s", assessment.id, caller.organization_id, caller.user_id)
    return assessment.to_dict()


def get_assessment(caller: Caller, assessment_id: int) -> dict:
    assessment = get_scoped(Assessment, assessment_id, organization_id=caller.organization_id)
    d = assessment.to_dict()
    d["response_count"] = assessment.responses.count()
    d["non_conformity_count"] = assessment.non_conformities.count()
    return d


def list_assessments(
    caller: Caller,
    *,
    statuses=None,
    lead_auditor_id=None,
    start_date=None,
    end_date=None,
    search=None,
    page=1,
    page_size=20,
) -> dict:
    """Paginated assessments of the caller's organization, newest first.

    ``progress`` on each item is responses / active questions, as a whole
    percentage.
    """
    stmt = select(Assessment).where(Assessment.organization_id == caller.organization_id)
    if statuses:
        for s in statuses:
            require_member(s, ASSESSMENT_TRANSITIONS.keys(), "status")
        stmt = stmt.where(Assessment.status.in_(list(statuses)))
    if lead_auditor_id:
        stmt = stmt.where(Assessment.lead_auditor_id == lead_auditor_id)
    start, end = parse_date(start_date), parse_date(end_date)
    if start:
        stmt = stmt.where(Assessment.scheduled_date >= start)
    if end:
        stmt = stmt.where(Assessment.scheduled_date <= end)
    if search:
        pattern = f"%{search.strip()}%"
        stmt = stmt.where(or_(Assessment.title.ilike(pattern), Assessment.description.ilike(pattern)))

    result = paginate_select(stmt.order_by(Assessment.created_at.desc(), Assessment.id.desc()), page, page_size)

    ids = [a.id for a in result.items]
    response_counts = dict(db.session.execute(
        select(QuestionResponse.assessment_id, func.count(QuestionResponse.id))
        .where(QuestionResponse.assessment_id.in_(ids))
        .group_by(QuestionResponse.assessment_id)
    ).all()) if ids else {}
    ncr_counts = dict(db.session.execute(
        select(NonConformity.assessment_id, func.count(NonConformity.id))
        .where(NonConformity.assessment_id.in_(ids))
        .group_by(NonConformity.assessment_id)
    ).all()) if ids else {}
    total_questions = _active_question_count()

    items = []
    for a in result.items:
        d = a.to_dict(include_team=False)
        answered = response_counts.get(a.id, 0)
        d["response_count"] = answered
        d["non_conformity_count"] = ncr_counts.get(a.id, 0)
        d["progress"] = round(answered / total_questions * 100) if total_questions else 0
        items.append(d)

    return {"items": items, "pagination": result.meta()}


# ── Update / status ───────────────────────────────────────────────────────────


def update_assessment(caller: Caller, assessment_id: int, data: dict) -> dict:
    """Update whitelisted metadata; a ``status`` key is routed through the transition table.

    Raises:
        NotFoundError, AuthorizationError, ValidationError
    """
    assessment = get_scoped(Assessment, assessment_id, organization_id=caller.organization_id, lock=True)
    check_permission(
        can_edit_assessment, AccessContext.for_assessment(assessment), caller,
        "You do not have permission to edit this assessment",
    )

    changes = {}
    for field in UPDATABLE_FIELDS:
        if field not in data:
            continue
        value = data[field]
        if field == "title":
            value = (value or "").strip()
            if not value:
                raise ValidationError("title cannot be empty")
        elif field == "audit_type":
            value = require_member(value, sorted(AUDIT_TYPES), "audit_type")
        elif field in ("scheduled_date", "due_date"):
            value = parse_date_input(value, field)
        elif field == "objectives":
            value = list(value or [])
        changes[field] = value

    old_status = None
    if data.get("status"):
        old_status = _apply_status(assessment, data["status"])

    for field, value in changes.items():
        setattr(assessment, field, value)

    if old_status is not None:
        write_audit_safely(
            entity_type="assessment",
            entity_id=assessment.id,
            action="assessment.transition",
            organization_id=caller.organization_id,
            actor_user_id=caller.user_id,
            diff={"status": {"old": old_status, "new": assessment.status}},
        )
    db.session.commit()
    logger.info("Assessment updated id=%s fields=%s", assessment.id, sorted(changes))
    return assessment.to_dict()


def transition_assessment_status(caller: Caller, assessment_id: int, new_status: str) -> dict:
    """Move an assessment along one edge of ASSESSMENT_TRANSITIONS."""
    assessment = get_scoped(Assessment, assessment_id, organization_id=caller.organization_id, lock=True)
    check_permission(
        can_edit_assessment, AccessContext.for_assessment(assessment), caller,
        "You do not have permission to edit this assessment",
    )
    old_status = _apply_status(assessment, new_status)
    write_audit_safely(
        entity_type="assessment",
        entity_id=assessment.id,
        action="assessment.transition",
        organization_id=caller.organization_id,
        actor_user_id=caller.user_id,
        diff={"status": {"old": old_status, "new": new_status}},
    )
    db.session.commit()
    logger.info("Assessment transitioned id=%s %s → %s", assessment.id, old_status, new_status)
    return assessment.to_dict()


def restore_assessment(caller: Caller, assessment_id: int) -> dict:
    """Un-archive: take the ARCHIVED → DRAFT edge.

    Same permission as archiving, since it reverses a delete.
    """
    assessment = get_scoped(Assessment, assessment_id, organization_id=caller.organization_id, lock=True)
    check_permission(
        can_delete, AccessContext.for_assessment(assessment), caller,
        "You do not have permission to restore assessments",
    )
    if assessment.status != AssessmentStatus.ARCHIVED:
        raise ValidationError(
            f"Only archived assessments can be restored (current status: {assessment.status})",
            details={"current_status": assessment.status, "requested_status": AssessmentStatus.DRAFT},
        )
    _apply_status(assessment, AssessmentStatus.DRAFT)
    write_audit_safely(
        entity_type="assessment",
        entity_id=assessment.id,
        action="assessment.restore",
        organization_id=caller.organization_id,
        actor_user_id=caller.user_id,
    )
    db.session.commit()
    logger.info("Assessment restored id=%s", assessment.id)
    return assessment.to_dict()


def delete_assessment(caller: Caller, assessment_id: int) -> dict:
    """Archive an assessment (soft delete)."""
    assessment = get_scoped(Assessment, assessment_id, organization_id=caller.organization_id, lock=True)
    check_permission(
        can_delete, AccessContext.for_assessment(assessment), caller,
        "You do not have permission to delete assessments",
    )
    old_status = _apply_status(assessment, AssessmentStatus.ARCHIVED)
    write_audit_safely(
        entity_type="assessment",
        entity_id=assessment.id,
        action="assessment.archive",
        organization_id=caller.organization_id,
        actor_user_id=caller.user_id,
        diff={"status": {"old": old_status, "new": AssessmentStatus.ARCHIVED}},
    )
    db.session.commit()
    logger.info("Assessment archived id=%s (was %s)", assessment.id, old_status)
    return {"success": True, "id": assessment.id, "status": assessment.status}


def clone_assessment(caller: Caller, assessment_id: int, new_title: str) -> dict:
    """Copy an assessment's setup into a new DRAFT for period-over-period comparison.

    Copies description, audit type, scope, objectives, template and team.
    Responses, NCRs and scores are not copied. The caller becomes lead
    auditor and previous_assessment_id points at the source.
    """
    source = get_scoped(Assessment, assessment_id, organization_id=caller.organization_id)
    if not can_create_assessment(caller.role):
        raise AuthorizationError("You do not have permission to create assessments")
    title = (new_title or "").strip()
    if not title:
        raise ValidationError("title is required")

    clone = Assessment(
        organization_id=caller.organization_id,
        title=title,
        description=source.description,
        audit_type=source.audit_type,
        scope=source.scope,
        objectives=list(source.objectives or []),
        template_id=source.template_id,
        lead_auditor_id=caller.user_id,
        previous_assessment_id=source.id,
        status=AssessmentStatus.DRAFT,
    )
    clone.team_members = [
        AssessmentTeamMember(user_id=tm.user_id, role=tm.role) for tm in source.team_members
    ]
    db.session.add(clone)
    db.session.flush()
    write_audit_safely(
        entity_type="assessment",
        entity_id=clone.id,
        action="assessment.clone",
        organization_id=caller.organization_id,
        actor_user_id=caller.user_id,
        diff={"source_id": source.id},
    )
    db.session.commit()
    logger.info("Assessment cloned id=%s → id=%s", source.id, clone.id)
    return clone.to_dict()


# ── Team ──────────────────────────────────────────────────────────────────────


def add_team_member(caller: Caller, assessment_id: int, user_id: int, role: str = "AUDITOR") -> dict:
    """Add (or relabel) a team member; upsert on (assessment, user)."""
    assessment = get_scoped(Assessment, assessment_id, organization_id=caller.organization_id)
    check_permission(
        can_edit_assessment, AccessContext.for_assessment(assessment), caller,
        "You do not have permission to edit this assessment",
    )
    role = require_member(role or "AUDITOR", sorted(TEAM_MEMBER_ROLES), "role")
    user = get_scoped(User, user_id, organization_id=caller.organization_id)
    if not user.is_active:
        raise ValidationError("Inactive users cannot join an assessment team", details={"user_id": user_id})

    member = db.session.execute(
        select(AssessmentTeamMember).where(
            AssessmentTeamMember.assessment_id == assessment.id,
            AssessmentTeamMember.user_id == user.id,
        )
    ).scalar_one_or_none()
    if member is None:
        member = AssessmentTeamMember(assessment_id=assessment.id, user_id=user.id, role=role)
        db.session.add(member)
    else:
        member.role = role
    try:
        db.session.commit()
    except IntegrityError:
        db.session.rollback()
        raise ConflictError("AssessmentTeamMember", "user_id", str(user.id)) from None
    logger.info("Team member set assessment=%s user=%s role=%s", assessment.id, user.id, role)
    return member.to_dict()


def remove_team_member(caller: Caller, assessment_id: int, user_id: int) -> None:
    assessment = get_scoped(Assessment, assessment_id, organization_id=caller.organization_id)
    check_permission(
        can_edit_assessment, AccessContext.for_assessment(assessment), caller,
        "You do not have permission to edit this assessment",
    )
    member = db.session.execute(
        select(AssessmentTeamMember).where(
            AssessmentTeamMember.assessment_id == assessment.id,
            AssessmentTeamMember.user_id == user_id,
        )
    ).scalar_one_or_none()
    if member is None:
        raise NotFoundError(resource="AssessmentTeamMember", resource_id=user_id)
    db.session.delete(member)
    db.session.commit()
    logger.info("Team member removed assessment=%s user=%s", assessment.id, user_id)


# ── Scores ────────────────────────────────────────────────────────────────────


def recalculate_scores(caller: Caller, assessment_id: int) -> dict:
    """On-demand recompute of the score snapshot (organization scope only)."""
    assessment = get_scoped(Assessment, assessment_id, organization_id=caller.organization_id)
    write_audit_safely(
        entity_type="assessment",
        entity_id=assessment.id,
        action="assessment.recalculate_scores",
        organization_id=caller.organization_id,
        actor_user_id=caller.user_id,
    )
    result = scoring.recalculate_assessment_scores(assessment.id)
    return result.to_dict()


def get_scores(caller: Caller, assessment_id: int) -> dict:
    """The persisted snapshot, as last written by the aggregator."""
    assessment = get_scoped(Assessment, assessment_id, organization_id=caller.organization_id)
    return {
        "assessment_id": assessment.id,
        "overall_score": assessment.overall_score,
        "section_scores": assessment.section_scores or [],
    }
