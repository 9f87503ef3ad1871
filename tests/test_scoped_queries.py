"""
Tests for qms/services/helpers/scoped_queries.py

Tenant isolation: an entity of another organization must look exactly like
a missing one.

Scenarios covered:
  1. ValueError when organization_id is missing
  2. ValueError for a model without an organization_id column
  3. NotFoundError when the PK exists but belongs to another organization
  4. Correct entity returned when PK + organization both match
  5. get_scoped_or_none returns None instead of raising
  6. Transitive lookups (NCR, corrective action) follow the assessment's organization
"""

import pytest

from qms.core.exceptions import NotFoundError
from qms.models.assessment import Assessment
from qms.models.nonconformity import NonConformity
from qms.models.organization import Role
from qms.services.helpers.scoped_queries import (
    get_action_scoped,
    get_ncr_scoped,
    get_scoped,
    get_scoped_or_none,
)


class TestGetScopedRejectsUnscopedLookups:
    def test_missing_organization_raises_value_error(self, make_user, make_assessment):
        assessment = make_assessment(make_user())
        with pytest.raises(ValueError, match="requires organization_id"):
            get_scoped(Assessment, assessment.id, organization_id=None)

    def test_model_without_organization_column(self, org):
        with pytest.raises(ValueError, match="no organization_id column"):
            get_scoped(NonConformity, 1, organization_id=org.id)


class TestGetScopedIsolation:
    def test_correct_scope_returns_entity(self, make_user, make_assessment):
        lead = make_user()
        assessment = make_assessment(lead)
        assert get_scoped(Assessment, assessment.id, organization_id=lead.organization_id) is assessment

    def test_other_organization_is_not_found(self, make_user, make_assessment, other_org):
        assessment = make_assessment(make_user())
        with pytest.raises(NotFoundError) as exc:
            get_scoped(Assessment, assessment.id, organization_id=other_org.id)
        assert exc.value.resource == "Assessment"

    def test_other_organization_matches_missing_row_message(self, make_user, make_assessment, other_org):
        assessment = make_assessment(make_user())
        with pytest.raises(NotFoundError) as foreign:
            get_scoped(Assessment, assessment.id, organization_id=other_org.id)
        with pytest.raises(NotFoundError) as missing:
            get_scoped(Assessment, 999999, organization_id=other_org.id)
        assert type(foreign.value) is type(missing.value)
        assert str(foreign.value) == f"Assessment id={assessment.id} not found"
        assert str(missing.value) == "Assessment id=999999 not found"

    def test_lock_flag_still_filters(self, make_user, make_assessment, other_org):
        lead = make_user()
        assessment = make_assessment(lead)
        assert get_scoped(Assessment, assessment.id, organization_id=lead.organization_id, lock=True) is assessment
        with pytest.raises(NotFoundError):
            get_scoped(Assessment, assessment.id, organization_id=other_org.id, lock=True)


class TestGetScopedOrNone:
    def test_returns_none_for_foreign_row(self, make_user, make_assessment, other_org):
        assessment = make_assessment(make_user())
        assert get_scoped_or_none(Assessment, assessment.id, organization_id=other_org.id) is None

    def test_still_requires_scope(self):
        with pytest.raises(ValueError):
            get_scoped_or_none(Assessment, 1, organization_id=None)


class TestTransitiveScope:
    def test_ncr_follows_assessment_organization(self, make_user, make_assessment, make_ncr, other_org):
        lead = make_user()
        ncr = make_ncr(make_assessment(lead))

        assert get_ncr_scoped(ncr.id, organization_id=lead.organization_id) is ncr
        with pytest.raises(NotFoundError):
            get_ncr_scoped(ncr.id, organization_id=other_org.id)

    def test_action_follows_assessment_organization(
        self, make_user, make_assessment, make_ncr, make_action, other_org,
    ):
        lead = make_user()
        action = make_action(make_ncr(make_assessment(lead)))

        assert get_action_scoped(action.id, organization_id=lead.organization_id, lock=True) is action
        with pytest.raises(NotFoundError):
            get_action_scoped(action.id, organization_id=other_org.id)

    def test_each_organization_sees_only_its_own(self, make_user, make_assessment, make_ncr, other_org):
        ours = make_ncr(make_assessment(make_user()))
        theirs = make_ncr(make_assessment(make_user(Role.QUALITY_MANAGER, other_org)))

        assert get_ncr_scoped(theirs.id, organization_id=other_org.id) is theirs
        with pytest.raises(NotFoundError):
            get_ncr_scoped(ours.id, organization_id=other_org.id)
