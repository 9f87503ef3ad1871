"""
Organization-scoped query helpers.

Every get-by-id in the workflow core MUST use these helpers instead of
Model.query.get(pk) or db.session.get(Model, pk). Direct .get() calls
bypass organization isolation.

Two scoping shapes exist:
  1. Direct — the model has an ``organization_id`` column
     (Assessment, User, AssessmentTemplate).
  2. Transitive — the model reaches its organization through Assessment
     (NonConformity, CorrectiveAction, QuestionResponse).

Cross-organization access is indistinguishable from a missing record: both
raise NotFoundError → HTTP 404.

``lock=True`` loads the row with SELECT … FOR UPDATE so that a
read-modify-write on a single entity's status cannot interleave with a
concurrent transition on the same row. SQLite ignores the clause.

Usage:
    assessment = get_scoped(Assessment, assessment_id, organization_id=org_id)
    ncr = get_ncr_scoped(ncr_id, organization_id=org_id, lock=True)
"""

import logging

from sqlalchemy import select

from qms.core.exceptions import NotFoundError
from qms.models import db
from qms.models.assessment import Assessment
from qms.models.nonconformity import CorrectiveAction, NonConformity

logger = logging.getLogger(__name__)


def get_scoped(model, pk: int, *, organization_id: int, lock: bool = False):
    """Fetch a single entity by PK with a mandatory organization filter.

    Args:
        model: SQLAlchemy model class with ``id`` and ``organization_id`` columns.
        pk: Primary key value to look up.
        organization_id: Caller's organization.
        lock: Load with SELECT … FOR UPDATE.

    Returns:
        The model instance if found within the organization.

    Raises:
        ValueError: If organization_id is missing or the model has no
                    organization_id column (an unscoped lookup).
        NotFoundError: If the entity does not exist OR belongs to a different
                       organization. The two cases are intentionally indistinguishable.
    """
    if organization_id is None:
        raise ValueError(
            f"{model.__name__} id={pk} requires organization_id. "
            "Unscoped lookups are forbidden — they bypass tenant isolation."
        )
    if not hasattr(model, "organization_id"):
        raise ValueError(
            f"{model.__name__} has no organization_id column; "
            "use the transitive helpers for assessment-scoped entities."
        )

    stmt = select(model).where(model.id == pk, model.organization_id == organization_id)
    if lock:
        stmt = stmt.with_for_update()
    result = db.session.execute(stmt).scalar_one_or_none()

    if result is None:
        logger.debug("get_scoped: %s id=%s not found in organization %s", model.__name__, pk, organization_id)
        raise NotFoundError(resource=model.__name__, resource_id=pk, organization_id=organization_id)
    return result


def get_scoped_or_none(model, pk: int, *, organization_id: int, lock: bool = False):
    """Same as get_scoped but returns None instead of raising NotFoundError."""
    try:
        return get_scoped(model, pk, organization_id=organization_id, lock=lock)
    except NotFoundError:
        return None


def get_ncr_scoped(ncr_id: int, *, organization_id: int, lock: bool = False) -> NonConformity:
    """Fetch a NonConformity whose assessment belongs to *organization_id*."""
    stmt = (
        select(NonConformity)
        .join(Assessment, NonConformity.assessment_id == Assessment.id)
        .where(NonConformity.id == ncr_id, Assessment.organization_id == organization_id)
    )
    if lock:
        stmt = stmt.with_for_update(of=NonConformity)
    ncr = db.session.execute(stmt).scalar_one_or_none()
    if ncr is None:
        raise NotFoundError(resource="NonConformity", resource_id=ncr_id, organization_id=organization_id)
    return ncr


def get_action_scoped(action_id: int, *, organization_id: int, lock: bool = False) -> CorrectiveAction:
    """Fetch a CorrectiveAction whose NCR's assessment belongs to *organization_id*."""
    stmt = (
        select(CorrectiveAction)
        .join(NonConformity, CorrectiveAction.non_conformity_id == NonConformity.id)
        .join(Assessment, NonConformity.assessment_id == Assessment.id)
        .where(CorrectiveAction.id == action_id, Assessment.organization_id == organization_id)
    )
    if lock:
        stmt = stmt.with_for_update(of=CorrectiveAction)
    action = db.session.execute(stmt).scalar_one_or_none()
    if action is None:
        raise NotFoundError(resource="CorrectiveAction", resource_id=action_id, organization_id=organization_id)
    return action
