"""
Shared pytest fixtures for the quality management test suite.

Provides:
    - app: Flask application (session-scoped)
    - _setup_db: Database table creation/teardown (session-scoped)
    - session: Per-test app context, rollback + recreate tables (autouse)
    - client: Flask test client (function-scoped)
    - org / other_org: two organizations for isolation tests
    - standard: a small clause tree with questions
    - make_user / make_assessment / make_response / make_ncr / make_action:
      ORM factories (flush only, the services own commits)
    - caller_for / auth_headers: identity helpers for services and the API
"""

from types import SimpleNamespace

import pytest

from qms import create_app
from qms.models import db as _db
from qms.models.assessment import Assessment, AssessmentStatus, AssessmentTeamMember, QuestionResponse
from qms.models.nonconformity import ActionStatus, CorrectiveAction, NCRStatus, NonConformity, Priority, Severity
from qms.models.organization import Organization, Role, User
from qms.models.standard import AuditQuestion, StandardSection
from qms.services.jwt_service import encode_caller_token
from qms.services.permission import Caller


# ── App & DB fixtures ────────────────────────────────────────────────────


@pytest.fixture(scope="session")
def app():
    """Create the Flask application once per test session."""
    return create_app("testing")


@pytest.fixture(scope="session")
def _setup_db(app):
    """Create all tables at session start, drop at end."""
    with app.app_context():
        _db.create_all()
    yield
    with app.app_context():
        _db.drop_all()


@pytest.fixture(autouse=True)
def session(app, _setup_db):
    """Per-test: open app context, rollback after test, recreate tables."""
    with app.app_context():
        yield
        _db.session.rollback()
        _db.drop_all()
        _db.create_all()


@pytest.fixture()
def client(app):
    """Flask test client."""
    return app.test_client()


# ── Organizations & reference data ───────────────────────────────────────


def _make_org(slug: str) -> Organization:
    org = Organization(name=slug.replace("-", " ").title(), slug=slug)
    _db.session.add(org)
    _db.session.flush()
    return org


@pytest.fixture()
def org():
    return _make_org("acme")


@pytest.fixture()
def other_org():
    return _make_org("globex")


@pytest.fixture()
def standard():
    """Clause 4 with 4.1 and 4.2, clause 5 with 5.1; two questions under 4.1,
    one under 4.2 and one under 5.1."""
    s4 = StandardSection(section_number="4", title="Context of the organization", order=4)
    s5 = StandardSection(section_number="5", title="Leadership", order=5)
    _db.session.add_all([s4, s5])
    _db.session.flush()
    s41 = StandardSection(section_number="4.1", title="Understanding the organization", order=1, parent_id=s4.id)
    s42 = StandardSection(section_number="4.2", title="Interested parties", order=2, parent_id=s4.id)
    s51 = StandardSection(section_number="5.1", title="Leadership and commitment", order=1, parent_id=s5.id)
    _db.session.add_all([s41, s42, s51])
    _db.session.flush()

    def q(number, section, order):
        question = AuditQuestion(
            section_id=section.id,
            question_number=number,
            question_text=f"Is requirement {number} met?",
            order=order,
        )
        _db.session.add(question)
        return question

    questions = [q("4.1-01", s41, 1), q("4.1-02", s41, 2), q("4.2-01", s42, 1), q("5.1-01", s51, 1)]
    _db.session.flush()
    return SimpleNamespace(
        s4=s4, s5=s5, s41=s41, s42=s42, s51=s51,
        questions=questions,
        q411=questions[0], q412=questions[1], q421=questions[2], q511=questions[3],
    )


# ── ORM factories ────────────────────────────────────────────────────────


@pytest.fixture()
def make_user(org):
    counter = {"n": 0}

    def _make(role=Role.INTERNAL_AUDITOR, organization=None, *, is_active=True, email=None):
        counter["n"] += 1
        organization = organization or org
        user = User(
            organization_id=organization.id,
            email=email or f"user{counter['n']}@{organization.slug}.test",
            first_name="Test",
            last_name=f"User{counter['n']}",
            role=role,
            is_active=is_active,
        )
        _db.session.add(user)
        _db.session.flush()
        return user

    return _make


@pytest.fixture()
def make_assessment():
    def _make(lead, *, status=AssessmentStatus.IN_PROGRESS, team=(), title="Annual QMS audit"):
        assessment = Assessment(
            organization_id=lead.organization_id,
            title=title,
            lead_auditor_id=lead.id,
            status=status,
        )
        assessment.team_members = [AssessmentTeamMember(user_id=u.id) for u in team]
        _db.session.add(assessment)
        _db.session.flush()
        return assessment

    return _make


@pytest.fixture()
def make_response():
    def _make(assessment, question, score, *, is_draft=False, justification="Observed during audit"):
        response = QuestionResponse(
            assessment_id=assessment.id,
            question_id=question.id,
            section_id=question.section_id,
            score=score,
            justification=justification,
            is_draft=is_draft,
        )
        _db.session.add(response)
        _db.session.flush()
        return response

    return _make


@pytest.fixture()
def make_ncr():
    def _make(assessment, *, status=NCRStatus.OPEN, root_cause=None, response=None, severity=Severity.MINOR):
        ncr = NonConformity(
            assessment_id=assessment.id,
            response_id=response.id if response else None,
            title="Document control gap",
            description="Procedures are not version controlled",
            severity=severity,
            status=status,
            root_cause=root_cause,
        )
        _db.session.add(ncr)
        _db.session.flush()
        return ncr

    return _make


@pytest.fixture()
def make_action():
    def _make(ncr, *, status=ActionStatus.PENDING, priority=Priority.MEDIUM, target_date=None, assigned_to=None):
        action = CorrectiveAction(
            non_conformity_id=ncr.id,
            description="Introduce document register",
            status=status,
            priority=priority,
            target_date=target_date,
            assigned_to_id=assigned_to.id if assigned_to else None,
        )
        _db.session.add(action)
        _db.session.flush()
        return action

    return _make


# ── Identity helpers ─────────────────────────────────────────────────────


def caller_for(user: User) -> Caller:
    return Caller(user_id=user.id, role=user.role, organization_id=user.organization_id)


def auth_headers(user: User) -> dict:
    token = encode_caller_token(user.id, user.role, user.organization_id)
    return {"Authorization": f"Bearer {token}"}

