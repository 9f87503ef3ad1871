"""
Tests for the three transition tables and the generic checks in
qms/services/lifecycle.py. Pure: no database access.

Every (from, to) pair of every machine is enumerated, so an edge added to or
removed from a table without a matching change here fails loudly.
"""

import itertools

import pytest

from qms.core.exceptions import ValidationError
from qms.models.assessment import ASSESSMENT_TRANSITIONS, Assessment, AssessmentStatus
from qms.models.nonconformity import ACTION_TRANSITIONS, NCR_TRANSITIONS, ActionStatus, NCRStatus
from qms.services.lifecycle import (
    allowed_transitions,
    guard_failed,
    is_valid_transition,
    require_member,
    require_transition,
    require_unlocked,
    terminal_states,
)

A = AssessmentStatus
N = NCRStatus
C = ActionStatus

ASSESSMENT_EDGES = {
    (A.DRAFT, A.IN_PROGRESS), (A.DRAFT, A.ARCHIVED),
    (A.IN_PROGRESS, A.UNDER_REVIEW), (A.IN_PROGRESS, A.DRAFT), (A.IN_PROGRESS, A.ARCHIVED),
    (A.UNDER_REVIEW, A.COMPLETED), (A.UNDER_REVIEW, A.IN_PROGRESS), (A.UNDER_REVIEW, A.ARCHIVED),
    (A.COMPLETED, A.ARCHIVED),
    (A.ARCHIVED, A.DRAFT),
}

NCR_EDGES = {
    (N.OPEN, N.IN_PROGRESS),
    (N.IN_PROGRESS, N.RESOLVED), (N.IN_PROGRESS, N.OPEN),
    (N.RESOLVED, N.CLOSED), (N.RESOLVED, N.IN_PROGRESS),
}

ACTION_EDGES = {
    (C.PENDING, C.IN_PROGRESS),
    (C.IN_PROGRESS, C.COMPLETED), (C.IN_PROGRESS, C.PENDING),
    (C.COMPLETED, C.VERIFIED), (C.COMPLETED, C.IN_PROGRESS),
}

MACHINES = [
    pytest.param(ASSESSMENT_TRANSITIONS, ASSESSMENT_EDGES, id="assessment"),
    pytest.param(NCR_TRANSITIONS, NCR_EDGES, id="ncr"),
    pytest.param(ACTION_TRANSITIONS, ACTION_EDGES, id="action"),
]


@pytest.mark.parametrize("table,edges", MACHINES)
def test_every_pair_matches_the_edge_list(table, edges):
    for current, requested in itertools.product(table, repeat=2):
        assert is_valid_transition(table, current, requested) == ((current, requested) in edges), (current, requested)


@pytest.mark.parametrize("table,edges", MACHINES)
def test_require_transition_rejects_every_missing_edge(table, edges):
    for current, requested in itertools.product(table, repeat=2):
        if (current, requested) in edges:
            require_transition("Entity", table, current, requested)
            continue
        with pytest.raises(ValidationError) as exc:
            require_transition("Entity", table, current, requested)
        assert exc.value.details["current_status"] == current
        assert exc.value.details["requested_status"] == requested
        assert current in str(exc.value) and requested in str(exc.value)


def test_assessment_review_is_mandatory():
    assert not is_valid_transition(ASSESSMENT_TRANSITIONS, A.DRAFT, A.COMPLETED)
    assert not is_valid_transition(ASSESSMENT_TRANSITIONS, A.IN_PROGRESS, A.COMPLETED)
    assert not is_valid_transition(ASSESSMENT_TRANSITIONS, A.DRAFT, A.UNDER_REVIEW)


def test_archived_reachable_from_every_other_assessment_status():
    for status in ASSESSMENT_TRANSITIONS:
        if status != A.ARCHIVED:
            assert is_valid_transition(ASSESSMENT_TRANSITIONS, status, A.ARCHIVED)
    assert allowed_transitions(ASSESSMENT_TRANSITIONS, A.ARCHIVED) == [A.DRAFT]


def test_terminal_states():
    assert terminal_states(NCR_TRANSITIONS) == {N.CLOSED}
    assert terminal_states(ACTION_TRANSITIONS) == {C.VERIFIED}
    assert terminal_states(ASSESSMENT_TRANSITIONS) == set()


def test_action_verified_only_from_completed():
    sources = {current for current, targets in ACTION_TRANSITIONS.items() if C.VERIFIED in targets}
    assert sources == {C.COMPLETED}


def test_unknown_status_is_rejected_before_edge_lookup():
    with pytest.raises(ValidationError) as exc:
        require_transition("NonConformity", NCR_TRANSITIONS, N.OPEN, "REOPENED")
    assert exc.value.details["status"] == "REOPENED"
    assert "Must be one of" in str(exc.value)


def test_terminal_state_message_names_no_targets():
    with pytest.raises(ValidationError) as exc:
        require_transition("NonConformity", NCR_TRANSITIONS, N.CLOSED, N.OPEN)
    assert "terminal state" in str(exc.value)
    assert exc.value.details["allowed"] == []


def test_require_member_returns_value():
    assert require_member("MAJOR", ["MINOR", "MAJOR"], "severity") == "MAJOR"
    with pytest.raises(ValidationError):
        require_member("SEVERE", ["MINOR", "MAJOR"], "severity")


def test_guard_failed_carries_guard_name():
    err = guard_failed("Cannot close", "close_requires_root_cause", ncr_id=4)
    assert isinstance(err, ValidationError)
    assert err.details == {"guard": "close_requires_root_cause", "ncr_id": 4}


@pytest.mark.parametrize("status", [A.COMPLETED, A.ARCHIVED])
def test_require_unlocked_rejects_locked_assessments(status):
    assessment = Assessment(status=status)
    with pytest.raises(ValidationError) as exc:
        require_unlocked(assessment, "modify responses")
    assert exc.value.details["guard"] == "assessment_locked"
    assert exc.value.details["assessment_status"] == status
    assert assessment.is_locked


@pytest.mark.parametrize("status", [A.DRAFT, A.IN_PROGRESS, A.UNDER_REVIEW])
def test_require_unlocked_allows_open_assessments(status):
    assessment = Assessment(status=status)
    assert not assessment.is_locked
    require_unlocked(assessment, "modify responses")
