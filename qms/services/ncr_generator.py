"""
NCR Auto-Generator — derive NonConformity records from failing responses.

Selects every non-draft QuestionResponse of an assessment scored 1 or 2
that no NonConformity references yet, and creates one OPEN NCR per response
in a single transaction: either all rows are committed or none are.

Severity is derived from the score:
    1 (non-compliant) → MAJOR
    2 (initial)       → MINOR

Re-running only fills gaps; a response that already has an NCR (manual or
generated) is never given a second one.

Authorization and scope are checked by
qms.services.nonconformity_service.generate_ncrs_from_failing_responses,
which is the public entry point.
"""

import logging

from sqlalchemy import exists, select
from sqlalchemy.orm import selectinload

from qms.models import db
from qms.models.assessment import QuestionResponse
from qms.models.audit import write_audit_safely
from qms.models.nonconformity import NCRStatus, NonConformity, Severity

logger = logging.getLogger(__name__)

FAILING_SCORES = (1, 2)

SEVERITY_BY_SCORE = {
    1: Severity.MAJOR,
    2: Severity.MINOR,
}


def severity_for_score(score: int) -> str:
    """Map a failing score to an NCR severity."""
    try:
        return SEVERITY_BY_SCORE[score]
    except KeyError:
        raise ValueError(f"Score {score} does not produce a non-conformity") from None


def find_failing_responses(assessment_id: int) -> list[QuestionResponse]:
    """Non-draft responses scored 1–2 with no NCR referencing them."""
    has_ncr = exists().where(NonConformity.response_id == QuestionResponse.id)
    stmt = (
        select(QuestionResponse)
        .options(
            selectinload(QuestionResponse.question),
            selectinload(QuestionResponse.section),
        )
        .where(
            QuestionResponse.assessment_id == assessment_id,
            QuestionResponse.is_draft.is_(False),
            QuestionResponse.score.in_(FAILING_SCORES),
            ~has_ncr,
        )
        .order_by(QuestionResponse.id)
    )
    return list(db.session.execute(stmt).scalars().all())


def build_ncr(response: QuestionResponse) -> NonConformity:
    """Synthesize an OPEN NonConformity for one failing response."""
    question = response.question
    section = response.section
    section_info = f"{section.section_number} {section.title}" if section else "Unknown Section"
    return NonConformity(
        assessment_id=response.assessment_id,
        response_id=response.id,
        title=f"Non-Compliance: {question.question_number}",
        description=(
            f"Non-compliance identified for question {question.question_number} in {section_info}.\n\n"
            f"Question: {question.question_text}"
        ),
        severity=severity_for_score(response.score),
        status=NCRStatus.OPEN,
    )


def generate_for_assessment(
    assessment_id: int,
    *,
    organization_id: int | None = None,
    actor_user_id: int | None = None,
) -> list[NonConformity]:
    """Create NCRs for every uncovered failing response and commit them together.

    Args:
        assessment_id: Assessment to scan.
        organization_id: Recorded on the audit row.
        actor_user_id: Recorded on the audit row.

    Returns:
        The newly created NonConformity rows (empty when nothing qualifies).
    """
    failing = find_failing_responses(assessment_id)
    if not failing:
        logger.info("NCR auto-generation: nothing to create for assessment id=%s", assessment_id)
        return []

    ncrs = [build_ncr(r) for r in failing]
    try:
        db.session.add_all(ncrs)
        db.session.flush()
        write_audit_safely(
            entity_type="assessment",
            entity_id=assessment_id,
            action="non_conformity.auto_generate",
            organization_id=organization_id,
            actor_user_id=actor_user_id,
            diff={"created": [n.id for n in ncrs], "response_ids": [r.id for r in failing]},
        )
        db.session.commit()
    except Exception:
        db.session.rollback()
        logger.error("NCR auto-generation rolled back for assessment id=%s", assessment_id, exc_info=True)
        raise

    logger.info("NCR auto-generation created %d NCR(s) for assessment id=%s", len(ncrs), assessment_id)
    return ncrs
