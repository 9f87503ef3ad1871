"""
Response service — question scores and justifications within an assessment.

A response is unique per (assessment, question) and is always written by
upsert. section_id is copied from the question at write time.

Rules:
  - Responses are frozen once the assessment is COMPLETED or ARCHIVED.
  - score ∈ {1, 2, 3} or None.
  - A non-draft response scored below 3 needs a non-empty justification.
  - is_draft defaults to True.
  - A bulk batch is validated in full before any row is written and is
    committed in one transaction.
  - After a commit that writes a non-draft response, or turns a non-draft
    response back into a draft, the assessment score snapshot is refreshed best-effort (qms.services.scoring.recalculate_after_write):
    a failed refresh never fails the save.
"""

import logging

from sqlalchemy import func, select

from qms.core.exceptions import NotFoundError, ValidationError
from qms.models import db
from qms.models.assessment import VALID_SCORES, Assessment, QuestionResponse
from qms.models.standard import AuditQuestion
from qms.services import scoring
from qms.services.scoring import section_sort_key
from qms.services.helpers.scoped_queries import get_scoped
from qms.services.lifecycle import require_unlocked
from qms.services.permission import AccessContext, Caller, can_manage, check_permission

logger = logging.getLogger(__name__)

WRITABLE_FIELDS = ("score", "justification", "is_draft", "action_proposal", "conclusion")


def _load_for_write(caller: Caller, assessment_id: int) -> Assessment:
    assessment = get_scoped(Assessment, assessment_id, organization_id=caller.organization_id)
    check_permission(
        can_manage, AccessContext.for_assessment(assessment), caller,
        "You do not have permission to edit responses for this assessment",
    )
    require_unlocked(assessment, "modify responses")
    return assessment


def validate_response_payload(data: dict) -> dict:
    """Normalise one response payload or raise ValidationError.

    Returns a dict with question_id plus every WRITABLE_FIELDS key.
    """
    question_id = data.get("question_id")
    if question_id is None:
        raise ValidationError("question_id is required")
    if isinstance(question_id, bool) or not isinstance(question_id, int):
        raise ValidationError(
            f"question_id must be an integer, got {question_id!r}",
            details={"question_id": question_id},
        )

    score = data.get("score")
    if score is not None and (isinstance(score, bool) or not isinstance(score, int) or score not in VALID_SCORES):
        raise ValidationError(
            f"Invalid score {score!r} for question {question_id}. Score must be 1, 2, or 3",
            details={"question_id": question_id, "score": score},
        )

    is_draft = data.get("is_draft")
    is_draft = True if is_draft is None else bool(is_draft)
    justification = data.get("justification")

    if not is_draft and score is not None and score < 3 and not (justification or "").strip():
        raise ValidationError(
            f"Justification is required for question {question_id} with score {score}",
            details={"question_id": question_id, "score": score, "guard": "justification_required"},
        )

    return {
        "question_id": question_id,
        "score": score,
        "justification": justification,
        "is_draft": is_draft,
        "action_proposal": data.get("action_proposal"),
        "conclusion": data.get("conclusion"),
    }


def _questions_by_id(question_ids) -> dict:
    ids = list(dict.fromkeys(question_ids))
    rows = db.session.execute(select(AuditQuestion).where(AuditQuestion.id.in_(ids))).scalars().all()
    return {q.id: q for q in rows}


def _apply(assessment_id: int, user_id: int, question: AuditQuestion, payload: dict) -> tuple[QuestionResponse, bool]:
    """Upsert on (assessment, question); copies section_id from the question.

    Returns the row and whether it counted towards the score before the
    write or does after it.
    """
    response = db.session.execute(
        select(QuestionResponse).where(
            QuestionResponse.assessment_id == assessment_id,
            QuestionResponse.question_id == question.id,
        )
    ).scalar_one_or_none()
    was_final = response is not None and not response.is_draft
    if response is None:
        response = QuestionResponse(assessment_id=assessment_id, question_id=question.id)
        db.session.add(response)
    response.section_id = question.section_id
    response.user_id = user_id
    for field in WRITABLE_FIELDS:
        setattr(response, field, payload[field])
    return response, was_final or not response.is_draft


# ── Reads ─────────────────────────────────────────────────────────────────────


def list_responses(caller: Caller, assessment_id: int, *, section_id=None, is_draft=None, has_score=None) -> dict:
    """Responses of one assessment in clause order, plus a progress summary."""
    assessment = get_scoped(Assessment, assessment_id, organization_id=caller.organization_id)

    stmt = (
        select(QuestionResponse)
        .join(AuditQuestion, QuestionResponse.question_id == AuditQuestion.id)
        .where(QuestionResponse.assessment_id == assessment.id)
    )
    if section_id is not None:
        stmt = stmt.where(QuestionResponse.section_id == section_id)
    if is_draft is not None:
        stmt = stmt.where(QuestionResponse.is_draft.is_(bool(is_draft)))
    if has_score is True:
        stmt = stmt.where(QuestionResponse.score.is_not(None))
    elif has_score is False:
        stmt = stmt.where(QuestionResponse.score.is_(None))
    responses = db.session.execute(stmt.order_by(AuditQuestion.order, QuestionResponse.id)).scalars().all()
    # Clause order is natural ("4.2" < "4.10"), which SQL ordering can't express.
    responses = sorted(
        responses,
        key=lambda r: section_sort_key(r.section.section_number if r.section else None),
    )

    total_questions = db.session.execute(
        select(func.count(AuditQuestion.id)).where(AuditQuestion.is_active.is_(True))
    ).scalar_one()
    answered = sum(1 for r in responses if r.score is not None)
    drafts = sum(1 for r in responses if r.is_draft)

    return {
        "responses": [r.to_dict(include_evidence=True) for r in responses],
        "summary": {
            "total_questions": total_questions,
            "answered_count": answered,
            "draft_count": drafts,
            "progress": round(answered / total_questions * 100) if total_questions else 0,
        },
    }


def get_response(caller: Caller, assessment_id: int, question_id: int) -> dict:
    assessment = get_scoped(Assessment, assessment_id, organization_id=caller.organization_id)
    response = db.session.execute(
        select(QuestionResponse).where(
            QuestionResponse.assessment_id == assessment.id,
            QuestionResponse.question_id == question_id,
        )
    ).scalar_one_or_none()
    if response is None:
        raise NotFoundError(resource="QuestionResponse", resource_id=question_id)
    d = response.to_dict(include_evidence=True)
    d["question"] = response.question.to_dict()
    return d


# ── Writes ────────────────────────────────────────────────────────────────────


def upsert_response(caller: Caller, assessment_id: int, data: dict) -> dict:
    """Create or update the response to one question.

    Raises:
        NotFoundError: Assessment out of scope or unknown question.
        AuthorizationError: Caller may not manage this assessment.
        ValidationError: Locked assessment, bad score, missing justification.
    """
    assessment = _load_for_write(caller, assessment_id)
    payload = validate_response_payload(data)
    question = db.session.get(AuditQuestion, payload["question_id"])
    if question is None:
        raise NotFoundError(resource="AuditQuestion", resource_id=payload["question_id"])

    response, affects_score = _apply(assessment.id, caller.user_id, question, payload)
    db.session.commit()
    logger.info(
        "Response saved assessment=%s question=%s score=%s draft=%s",
        assessment.id, question.id, response.score, response.is_draft,
    )
    result = response.to_dict()

    # Also when a final response goes back to draft, so its score drops out
    if affects_score:
        scoring.recalculate_after_write(assessment.id)
    return result


def bulk_upsert_responses(caller: Caller, assessment_id: int, items: list) -> dict:
    """Upsert many responses atomically; nothing is written if any item is invalid."""
    assessment = _load_for_write(caller, assessment_id)
    if not items:
        raise ValidationError("responses must be a non-empty list")

    payloads = [validate_response_payload(item or {}) for item in items]
    questions = _questions_by_id(p["question_id"] for p in payloads)
    missing = sorted({p["question_id"] for p in payloads if p["question_id"] not in questions}, key=str)
    if missing:
        raise ValidationError(
            f"Invalid question IDs: {', '.join(str(m) for m in missing)}",
            details={"question_ids": missing},
        )

    try:
        applied = [_apply(assessment.id, caller.user_id, questions[p["question_id"]], p) for p in payloads]
        responses = [response for response, _ in applied]
        db.session.commit()
    except Exception:
        db.session.rollback()
        logger.error("Bulk response save rolled back for assessment id=%s", assessment.id, exc_info=True)
        raise

    logger.info("Bulk responses saved assessment=%s count=%d", assessment.id, len(responses))
    result = [r.to_dict() for r in responses]

    if any(affects_score for _, affects_score in applied):
        scoring.recalculate_after_write(assessment.id)
    return {"responses": result, "count": len(result)}


def save_draft_response(caller: Caller, assessment_id: int, data: dict) -> dict:
    """Auto-save: same as upsert_response with is_draft forced on."""
    return upsert_response(caller, assessment_id, {**data, "is_draft": True})
