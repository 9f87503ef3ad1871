"""
Compliance dashboard — organization-wide read models.

  - Assessment counts by status
  - NCR counts by status / severity, open vs closed
  - Open and overdue corrective actions
  - Compliance score: mean overall_score of COMPLETED assessments
  - Section breakdown, computed through the score aggregator

Read-only; nothing here commits.
"""

import logging
from datetime import date, datetime, timezone
from decimal import ROUND_HALF_UP, Decimal

from sqlalchemy import func, select

from qms.models import db
from qms.models.assessment import ASSESSMENT_STATUSES, Assessment, AssessmentStatus, QuestionResponse
from qms.models.nonconformity import (
    FINISHED_ACTION_STATUSES,
    NCR_STATUSES,
    SEVERITIES,
    CorrectiveAction,
    NCRStatus,
    NonConformity,
)
from qms.services.helpers.scoped_queries import get_scoped
from qms.services.scoring import aggregate_scores

logger = logging.getLogger(__name__)


def _grouped(column, stmt, keys) -> dict:
    counts = dict.fromkeys(keys, 0)
    counts.update(db.session.execute(stmt.add_columns(func.count()).group_by(column)).all())
    return counts


def _start_of_month() -> datetime:
    now = datetime.now(timezone.utc)
    return now.replace(day=1, hour=0, minute=0, second=0, microsecond=0)


def get_overview(organization_id: int) -> dict:
    """Headline numbers for one organization."""
    assessments_by_status = _grouped(
        Assessment.status,
        select(Assessment.status).where(Assessment.organization_id == organization_id),
        ASSESSMENT_STATUSES,
    )

    ncr_base = (
        select(NonConformity.status)
        .join(Assessment, NonConformity.assessment_id == Assessment.id)
        .where(Assessment.organization_id == organization_id)
    )
    ncrs_by_status = _grouped(NonConformity.status, ncr_base, NCR_STATUSES)
    ncrs_by_severity = _grouped(
        NonConformity.severity,
        select(NonConformity.severity)
        .join(Assessment, NonConformity.assessment_id == Assessment.id)
        .where(Assessment.organization_id == organization_id),
        SEVERITIES,
    )

    action_scope = (
        select(func.count(CorrectiveAction.id))
        .join(NonConformity, CorrectiveAction.non_conformity_id == NonConformity.id)
        .join(Assessment, NonConformity.assessment_id == Assessment.id)
        .where(
            Assessment.organization_id == organization_id,
            CorrectiveAction.status.not_in(list(FINISHED_ACTION_STATUSES)),
        )
    )
    open_actions = db.session.execute(action_scope).scalar_one()
    overdue_actions = db.session.execute(
        action_scope.where(CorrectiveAction.target_date < date.today())
    ).scalar_one()

    completed_scores = db.session.execute(
        select(Assessment.overall_score).where(
            Assessment.organization_id == organization_id,
            Assessment.status == AssessmentStatus.COMPLETED,
            Assessment.overall_score.is_not(None),
        )
    ).scalars().all()
    compliance_score = 0.0
    if completed_scores:
        mean = Decimal(str(sum(completed_scores))) / len(completed_scores)
        compliance_score = float(mean.quantize(Decimal("0.1"), rounding=ROUND_HALF_UP))

    month_start = _start_of_month()
    assessments_this_month = db.session.execute(
        select(func.count(Assessment.id)).where(
            Assessment.organization_id == organization_id,
            Assessment.created_at >= month_start,
        )
    ).scalar_one()
    ncrs_this_month = db.session.execute(
        select(func.count(NonConformity.id))
        .join(Assessment, NonConformity.assessment_id == Assessment.id)
        .where(Assessment.organization_id == organization_id, NonConformity.created_at >= month_start)
    ).scalar_one()

    return {
        "compliance_score": compliance_score,
        "assessment_counts": {
            "total": sum(assessments_by_status.values()),
            "by_status": assessments_by_status,
        },
        "ncr_counts": {
            "total": sum(ncrs_by_status.values()),
            "open": ncrs_by_status[NCRStatus.OPEN] + ncrs_by_status[NCRStatus.IN_PROGRESS],
            "closed": ncrs_by_status[NCRStatus.CLOSED],
            "by_status": ncrs_by_status,
            "by_severity": ncrs_by_severity,
        },
        "action_counts": {
            "open": open_actions,
            "overdue": overdue_actions,
        },
        "recent_activity": {
            "assessments_this_month": assessments_this_month,
            "ncrs_created_this_month": ncrs_this_month,
        },
    }


def get_section_breakdown(organization_id: int, assessment_id: int | None = None) -> list[dict]:
    """Section scores over one assessment, or over every COMPLETED assessment.

    Uses the same aggregation as the persisted snapshot, so the numbers
    match what recalculation would write.
    """
    stmt = (
        select(QuestionResponse)
        .join(Assessment, QuestionResponse.assessment_id == Assessment.id)
        .where(
            Assessment.organization_id == organization_id,
            QuestionResponse.is_draft.is_(False),
        )
        .order_by(QuestionResponse.id)
    )
    if assessment_id is not None:
        assessment = get_scoped(Assessment, assessment_id, organization_id=organization_id)
        stmt = stmt.where(QuestionResponse.assessment_id == assessment.id)
    else:
        stmt = stmt.where(Assessment.status == AssessmentStatus.COMPLETED)

    responses = db.session.execute(stmt).scalars().all()
    return [s.to_dict() for s in aggregate_scores(responses).section_scores]
