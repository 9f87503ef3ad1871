"""
Tests for qms/services/nonconformity_service.py.

Covers the guarded NCR machine (RESOLVED needs finished actions, CLOSED
needs a root cause and verified actions), CRUD restrictions around locked
assessments and closed NCRs, summaries, and organization isolation.
"""

import pytest
from sqlalchemy import select
from sqlalchemy.dialects import postgresql

from qms.core.exceptions import AuthorizationError, NotFoundError, ValidationError
from qms.models import db
from qms.models.assessment import AssessmentStatus
from qms.models.audit import AuditLog
from qms.models.nonconformity import ActionStatus, NCRStatus, NonConformity, Severity
from qms.models.organization import Role
from qms.services import nonconformity_service as svc
from conftest import caller_for


def _status(ncr_id):
    db.session.expire_all()
    return db.session.get(NonConformity, ncr_id).status


# ── Transitions & guards ─────────────────────────────────────────────────────


def test_scenario_e_close_rejected_while_an_action_is_unverified(make_user, make_assessment, make_ncr, make_action):
    lead = make_user()
    assessment = make_assessment(lead)
    ncr = make_ncr(assessment, status=NCRStatus.RESOLVED, root_cause="Missing procedure owner")
    make_action(ncr, status=ActionStatus.VERIFIED)
    make_action(ncr, status=ActionStatus.COMPLETED)

    with pytest.raises(ValidationError) as exc:
        svc.transition_ncr_status(caller_for(lead), ncr.id, NCRStatus.CLOSED)

    assert exc.value.details["guard"] == "close_requires_verified_actions"
    assert "verified" in str(exc.value)
    assert _status(ncr.id) == NCRStatus.RESOLVED


def test_close_requires_root_cause_first(make_user, make_assessment, make_ncr, make_action):
    lead = make_user()
    assessment = make_assessment(lead)
    ncr = make_ncr(assessment, status=NCRStatus.RESOLVED, root_cause="   ")
    make_action(ncr, status=ActionStatus.VERIFIED)

    with pytest.raises(ValidationError) as exc:
        svc.transition_ncr_status(caller_for(lead), ncr.id, NCRStatus.CLOSED)
    assert exc.value.details["guard"] == "close_requires_root_cause"
    assert _status(ncr.id) == NCRStatus.RESOLVED


def test_close_succeeds_with_root_cause_and_all_actions_verified(make_user, make_assessment, make_ncr, make_action):
    lead = make_user()
    assessment = make_assessment(lead)
    ncr = make_ncr(assessment, status=NCRStatus.RESOLVED, root_cause="Training gap")
    make_action(ncr, status=ActionStatus.VERIFIED)
    make_action(ncr, status=ActionStatus.VERIFIED)

    result = svc.transition_ncr_status(caller_for(lead), ncr.id, NCRStatus.CLOSED)

    assert result["status"] == NCRStatus.CLOSED
    assert _status(ncr.id) == NCRStatus.CLOSED


def test_resolve_requires_at_least_one_action(make_user, make_assessment, make_ncr):
    lead = make_user()
    ncr = make_ncr(make_assessment(lead), status=NCRStatus.IN_PROGRESS)

    with pytest.raises(ValidationError) as exc:
        svc.transition_ncr_status(caller_for(lead), ncr.id, NCRStatus.RESOLVED)
    assert exc.value.details["guard"] == "resolve_requires_actions"


def test_resolve_requires_finished_actions(make_user, make_assessment, make_ncr, make_action):
    lead = make_user()
    ncr = make_ncr(make_assessment(lead), status=NCRStatus.IN_PROGRESS)
    make_action(ncr, status=ActionStatus.COMPLETED)
    pending = make_action(ncr, status=ActionStatus.IN_PROGRESS)

    with pytest.raises(ValidationError) as exc:
        svc.transition_ncr_status(caller_for(lead), ncr.id, NCRStatus.RESOLVED)
    assert exc.value.details["guard"] == "resolve_requires_completed_actions"
    assert exc.value.details["action_ids"] == [pending.id]


def test_resolve_accepts_completed_and_verified_mix(make_user, make_assessment, make_ncr, make_action):
    lead = make_user()
    ncr = make_ncr(make_assessment(lead), status=NCRStatus.IN_PROGRESS)
    make_action(ncr, status=ActionStatus.COMPLETED)
    make_action(ncr, status=ActionStatus.VERIFIED)

    assert svc.transition_ncr_status(caller_for(lead), ncr.id, NCRStatus.RESOLVED)["status"] == NCRStatus.RESOLVED


def test_actions_select_locks_rows_when_asked():
    pg = postgresql.dialect()
    assert "FOR UPDATE" in str(svc.actions_select(1, lock=True).compile(dialect=pg))
    assert "FOR UPDATE" not in str(svc.actions_select(1).compile(dialect=pg))


def test_resolve_guard_reads_actions_under_lock(make_user, make_assessment, make_ncr, make_action, monkeypatch):
    lead = make_user()
    ncr = make_ncr(make_assessment(lead), status=NCRStatus.IN_PROGRESS)
    make_action(ncr, status=ActionStatus.COMPLETED)
    locks = []
    read_actions = svc._current_actions

    def _recording(ncr_id, *, lock=False):
        locks.append(lock)
        return read_actions(ncr_id, lock=lock)

    monkeypatch.setattr(svc, "_current_actions", _recording)
    svc.transition_ncr_status(caller_for(lead), ncr.id, NCRStatus.RESOLVED)

    assert locks == [True]


def test_edge_check_runs_before_guards(make_user, make_assessment, make_ncr):
    lead = make_user()
    ncr = make_ncr(make_assessment(lead), status=NCRStatus.OPEN, root_cause=None)

    with pytest.raises(ValidationError) as exc:
        svc.transition_ncr_status(caller_for(lead), ncr.id, NCRStatus.CLOSED)
    assert exc.value.details["current_status"] == NCRStatus.OPEN
    assert exc.value.details["requested_status"] == NCRStatus.CLOSED
    assert "guard" not in exc.value.details


@pytest.mark.parametrize("current", [NCRStatus.OPEN, NCRStatus.IN_PROGRESS, NCRStatus.RESOLVED, NCRStatus.CLOSED])
def test_closed_only_via_guarded_edge(current, make_user, make_assessment, make_ncr, make_action):
    """With unverified actions, no starting status ever reaches CLOSED."""
    lead = make_user()
    ncr = make_ncr(make_assessment(lead), status=current, root_cause="Known")
    make_action(ncr, status=ActionStatus.COMPLETED)

    with pytest.raises(ValidationError):
        svc.transition_ncr_status(caller_for(lead), ncr.id, NCRStatus.CLOSED)
    assert _status(ncr.id) == current


def test_transition_writes_audit_row(make_user, make_assessment, make_ncr):
    lead = make_user()
    ncr = make_ncr(make_assessment(lead))

    svc.transition_ncr_status(caller_for(lead), ncr.id, NCRStatus.IN_PROGRESS)

    log = db.session.execute(select(AuditLog).where(AuditLog.action == "non_conformity.transition")).scalar_one()
    assert log.entity_id == str(ncr.id)
    assert log.actor_user_id == lead.id
    assert log.diff == {"status": {"old": NCRStatus.OPEN, "new": NCRStatus.IN_PROGRESS}}


def test_transition_allowed_after_assessment_completed(make_user, make_assessment, make_ncr):
    lead = make_user()
    ncr = make_ncr(make_assessment(lead, status=AssessmentStatus.COMPLETED))
    assert svc.transition_ncr_status(caller_for(lead), ncr.id, NCRStatus.IN_PROGRESS)["status"] == NCRStatus.IN_PROGRESS


def test_department_head_team_member_cannot_transition(make_user, make_assessment, make_ncr):
    lead = make_user()
    head = make_user(Role.DEPARTMENT_HEAD)
    ncr = make_ncr(make_assessment(lead, team=[head]))

    with pytest.raises(AuthorizationError):
        svc.transition_ncr_status(caller_for(head), ncr.id, NCRStatus.IN_PROGRESS)
    assert _status(ncr.id) == NCRStatus.OPEN


def test_internal_auditor_team_member_can_transition(make_user, make_assessment, make_ncr):
    lead = make_user()
    auditor = make_user(Role.INTERNAL_AUDITOR)
    ncr = make_ncr(make_assessment(lead, team=[auditor]))
    assert svc.transition_ncr_status(caller_for(auditor), ncr.id, NCRStatus.IN_PROGRESS)["status"] == NCRStatus.IN_PROGRESS


def test_cross_organization_transition_is_not_found(other_org, make_user, make_assessment, make_ncr):
    lead = make_user()
    admin_elsewhere = make_user(Role.SYSTEM_ADMIN, other_org)
    ncr = make_ncr(make_assessment(lead))

    with pytest.raises(NotFoundError):
        svc.transition_ncr_status(caller_for(admin_elsewhere), ncr.id, NCRStatus.IN_PROGRESS)


# ── Create / update / delete ─────────────────────────────────────────────────


def test_create_ncr_linked_to_response(standard, make_user, make_assessment, make_response):
    lead = make_user()
    assessment = make_assessment(lead)
    response = make_response(assessment, standard.q411, 2)

    ncr = svc.create_ncr(caller_for(lead), assessment.id, {
        "title": "Context not reviewed",
        "severity": Severity.MAJOR,
        "response_id": response.id,
        "root_cause_method": "FIVE_WHYS",
    })

    assert ncr["status"] == NCRStatus.OPEN
    assert ncr["response_id"] == response.id
    assert ncr["question"]["question_number"] == "4.1-01"


def test_create_ncr_rejects_response_from_other_assessment(standard, make_user, make_assessment, make_response):
    lead = make_user()
    a1 = make_assessment(lead)
    a2 = make_assessment(lead, title="Follow-up")
    foreign = make_response(a2, standard.q411, 1)

    with pytest.raises(ValidationError):
        svc.create_ncr(caller_for(lead), a1.id, {"title": "X", "severity": Severity.MINOR, "response_id": foreign.id})


@pytest.mark.parametrize("payload", [
    {"title": "", "severity": Severity.MINOR},
    {"title": "Gap", "severity": "SEVERE"},
    {"title": "Gap"},
    {"title": "Gap", "severity": Severity.MINOR, "root_cause_method": "GUESSING"},
])
def test_create_ncr_validation(payload, make_user, make_assessment):
    lead = make_user()
    with pytest.raises(ValidationError):
        svc.create_ncr(caller_for(lead), make_assessment(lead).id, payload)


def test_create_ncr_rejected_on_archived_assessment(make_user, make_assessment):
    lead = make_user()
    assessment = make_assessment(lead, status=AssessmentStatus.ARCHIVED)
    with pytest.raises(ValidationError) as exc:
        svc.create_ncr(caller_for(lead), assessment.id, {"title": "Gap", "severity": Severity.MINOR})
    assert exc.value.details["guard"] == "assessment_locked"


def test_update_closed_ncr_rejected(make_user, make_assessment, make_ncr):
    lead = make_user()
    ncr = make_ncr(make_assessment(lead), status=NCRStatus.CLOSED, root_cause="Done")
    with pytest.raises(ValidationError) as exc:
        svc.update_ncr(caller_for(lead), ncr.id, {"title": "Renamed"})
    assert exc.value.details["guard"] == "ncr_closed"


def test_update_ncr_fields(make_user, make_assessment, make_ncr):
    lead = make_user()
    ncr = make_ncr(make_assessment(lead))
    result = svc.update_ncr(caller_for(lead), ncr.id, {"severity": Severity.CRITICAL, "root_cause": "No owner"})
    assert result["severity"] == Severity.CRITICAL
    assert result["root_cause"] == "No owner"


def test_delete_requires_elevated_role(make_user, make_assessment, make_ncr):
    lead = make_user()
    ncr = make_ncr(make_assessment(lead))
    with pytest.raises(AuthorizationError):
        svc.delete_ncr(caller_for(lead), ncr.id)


def test_delete_rejected_when_actions_exist(make_user, make_assessment, make_ncr, make_action):
    lead = make_user()
    qm = make_user(Role.QUALITY_MANAGER)
    ncr = make_ncr(make_assessment(lead))
    make_action(ncr)
    with pytest.raises(ValidationError) as exc:
        svc.delete_ncr(caller_for(qm), ncr.id)
    assert exc.value.details["guard"] == "ncr_has_actions"


def test_delete_ncr(make_user, make_assessment, make_ncr):
    lead = make_user()
    qm = make_user(Role.QUALITY_MANAGER)
    ncr = make_ncr(make_assessment(lead))
    ncr_id = ncr.id

    svc.delete_ncr(caller_for(qm), ncr_id)

    assert db.session.get(NonConformity, ncr_id) is None
    log = db.session.execute(select(AuditLog).where(AuditLog.action == "non_conformity.delete")).scalar_one()
    assert log.entity_id == str(ncr_id)


# ── Reads ────────────────────────────────────────────────────────────────────


def test_summary_has_every_key(make_user, make_assessment, make_ncr):
    lead = make_user()
    assessment = make_assessment(lead)
    make_ncr(assessment, severity=Severity.MAJOR)
    make_ncr(assessment, status=NCRStatus.IN_PROGRESS)
    make_ncr(assessment, status=NCRStatus.CLOSED, root_cause="x")

    summary = svc.summarize_ncrs(caller_for(lead), assessment.id)

    assert summary["total"] == 3
    assert summary["by_status"] == {"OPEN": 1, "IN_PROGRESS": 1, "RESOLVED": 0, "CLOSED": 1}
    assert summary["by_severity"] == {"MINOR": 2, "MAJOR": 1, "CRITICAL": 0}
    assert summary["open_count"] == 2
    assert summary["closed_count"] == 1


def test_organization_list_is_isolated_and_paginated(other_org, make_user, make_assessment, make_ncr):
    lead = make_user()
    outsider = make_user(Role.QUALITY_MANAGER, other_org)
    assessment = make_assessment(lead)
    for _ in range(3):
        make_ncr(assessment)
    make_ncr(make_assessment(outsider))

    page = svc.list_organization_ncrs(caller_for(lead), page=1, page_size=2)

    assert len(page["items"]) == 2
    assert page["pagination"] == {"page": 1, "page_size": 2, "total_items": 3, "total_pages": 2}
    assert all(item["assessment"]["id"] == assessment.id for item in page["items"])


def test_list_filters_by_status(make_user, make_assessment, make_ncr):
    lead = make_user()
    assessment = make_assessment(lead)
    make_ncr(assessment)
    make_ncr(assessment, status=NCRStatus.IN_PROGRESS)

    items = svc.list_ncrs(caller_for(lead), assessment.id, status=NCRStatus.IN_PROGRESS)
    assert [i["status"] for i in items] == [NCRStatus.IN_PROGRESS]

    with pytest.raises(ValidationError):
        svc.list_ncrs(caller_for(lead), assessment.id, status="PENDING")
