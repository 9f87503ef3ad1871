"""
Score Aggregator — per-section and overall compliance percentages.

Input is the set of non-draft QuestionResponses of one assessment, each
carrying a score (1–3) and the denormalised section reference.

Algorithm:
    1. Partition by section_id. Responses without a section are counted in
       ``unsectioned_answered`` but never appear in the section breakdown
       or the overall score.
    2. Per section with ≥1 scored response:
           actual  = Σ score
           maximum = 3 × scored count
           score   = round(actual / maximum × 100, 1)
    3. overall = round(Σ actual / Σ maximum × 100, 1), or 0.0 when no
       section has a scored response.
    4. The overall score and the full section breakdown are written to the
       Assessment in one commit.

Rounding is half-up on the decimal value, so 6.25 → 6.3 regardless of the
binary float representation.

``aggregate_scores`` is pure; ``recalculate_assessment_scores`` loads,
aggregates and persists. Recalculation is deterministic: two runs without an
intervening response write produce identical snapshots.
"""

import logging
from dataclasses import asdict, dataclass, field
from decimal import ROUND_HALF_UP, Decimal

from sqlalchemy import select
from sqlalchemy.orm import selectinload

from qms.core.exceptions import NotFoundError
from qms.models import db
from qms.models.assessment import Assessment, QuestionResponse

logger = logging.getLogger(__name__)

MAX_SCORE = 3


@dataclass
class SectionScore:
    section_id: int
    section_number: str | None
    section_title: str | None
    score: float
    actual_score: int
    max_possible_score: int
    questions_answered: int
    total_questions: int

    def to_dict(self) -> dict:
        return asdict(self)


@dataclass
class ScoreResult:
    overall_score: float
    section_scores: list[SectionScore] = field(default_factory=list)
    unsectioned_answered: int = 0

    def to_dict(self) -> dict:
        return {
            "overall_score": self.overall_score,
            "section_scores": [s.to_dict() for s in self.section_scores],
            "unsectioned_answered": self.unsectioned_answered,
        }


def percentage(actual: int, maximum: int) -> float:
    """actual / maximum × 100 rounded half-up to one decimal; 0.0 when maximum is 0."""
    if maximum <= 0:
        return 0.0
    value = Decimal(actual) * 100 / Decimal(maximum)
    return float(value.quantize(Decimal("0.1"), rounding=ROUND_HALF_UP))


def section_sort_key(number: str | None):
    """Natural clause order: 4 < 4.1 < 4.2 < 4.10 < 5."""
    if not number:
        return ((1, ""),)
    parts = []
    for chunk in number.split("."):
        parts.append((0, int(chunk)) if chunk.isdigit() else (1, chunk))
    return tuple(parts)


def aggregate_scores(responses) -> ScoreResult:
    """Aggregate scored responses into section and overall percentages.

    Args:
        responses: Iterable of objects exposing ``section_id``, ``score`` and
            optionally ``section`` (with ``section_number`` / ``title``).
            Draft filtering is the caller's job.

    Returns:
        ScoreResult with sections in clause order.
    """
    buckets: dict[int, list] = {}
    unsectioned = 0
    for r in responses:
        if r.section_id is None:
            if r.score is not None:
                unsectioned += 1
            continue
        buckets.setdefault(r.section_id, []).append(r)

    sections: list[SectionScore] = []
    total_actual = 0
    total_max = 0
    for section_id, bucket in buckets.items():
        scored = [r for r in bucket if r.score is not None]
        if not scored:
            continue
        actual = sum(r.score for r in scored)
        maximum = MAX_SCORE * len(scored)
        section = next((r.section for r in bucket if getattr(r, "section", None) is not None), None)
        sections.append(SectionScore(
            section_id=section_id,
            section_number=section.section_number if section else None,
            section_title=section.title if section else None,
            score=percentage(actual, maximum),
            actual_score=actual,
            max_possible_score=maximum,
            questions_answered=len(scored),
            total_questions=len(bucket),
        ))
        total_actual += actual
        total_max += maximum

    sections.sort(key=lambda s: (section_sort_key(s.section_number), s.section_id))
    return ScoreResult(
        overall_score=percentage(total_actual, total_max),
        section_scores=sections,
        unsectioned_answered=unsectioned,
    )


def load_scored_responses(assessment_id: int) -> list[QuestionResponse]:
    """Non-draft responses of one assessment, in a stable order."""
    stmt = (
        select(QuestionResponse)
        .options(selectinload(QuestionResponse.section))
        .where(
            QuestionResponse.assessment_id == assessment_id,
            QuestionResponse.is_draft.is_(False),
        )
        .order_by(QuestionResponse.id)
    )
    return list(db.session.execute(stmt).scalars().all())


def recalculate_assessment_scores(assessment_id: int) -> ScoreResult:
    """Recompute and persist the score snapshot of one assessment.

    Scope and permission checks belong to the caller; this function is the
    shared step behind both the on-demand endpoint and the post-write hook.

    Raises:
        NotFoundError: If the assessment does not exist.
    """
    assessment = db.session.get(Assessment, assessment_id)
    if assessment is None:
        raise NotFoundError(resource="Assessment", resource_id=assessment_id)

    result = aggregate_scores(load_scored_responses(assessment_id))
    assessment.overall_score = result.overall_score
    assessment.section_scores = [s.to_dict() for s in result.section_scores]
    db.session.commit()
    logger.info(
        "Assessment scores recalculated id=%s overall=%s sections=%d",
        assessment_id, result.overall_score, len(result.section_scores),
    )
    return result


def recalculate_after_write(assessment_id: int) -> ScoreResult | None:
    """Post-commit hook for response writes.

    Best effort: a failure is rolled back and logged, never raised, so the
    response save that triggered it still counts as successful.
    """
    try:
        return recalculate_assessment_scores(assessment_id)
    except Exception:
        db.session.rollback()
        logger.error(
            "Score recalculation failed for assessment id=%s; response write unaffected",
            assessment_id, exc_info=True,
        )
        return None
