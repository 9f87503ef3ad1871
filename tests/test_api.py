"""
HTTP-level tests: authentication, the error mapping shared by every
blueprint, and one audit cycle driven end to end through the API.
"""

import pytest

from qms.models.assessment import AssessmentStatus
from qms.models.organization import Role
from qms.services.jwt_service import encode_caller_token
from conftest import auth_headers


@pytest.fixture()
def qm(make_user):
    return make_user(Role.QUALITY_MANAGER)


# ── Health & auth ────────────────────────────────────────────────────────────


def test_health_needs_no_token(client):
    res = client.get("/api/v1/health")
    assert res.status_code == 200
    assert res.get_json()["status"] == "ok"

    ready = client.get("/api/v1/health/ready")
    assert ready.status_code == 200


def test_request_id_is_echoed(client):
    res = client.get("/api/v1/health", headers={"X-Request-ID": "trace-123"})
    assert res.headers["X-Request-ID"] == "trace-123"
    assert float(res.headers["X-Request-Duration-Ms"]) >= 0

    generated = client.get("/api/v1/health")
    assert len(generated.headers["X-Request-ID"]) == 12


def test_missing_token_is_401(client):
    res = client.get("/api/v1/assessments")
    assert res.status_code == 401
    assert res.get_json() == {"error": "Authentication required"}


def test_expired_and_malformed_tokens_are_401(client, qm):
    expired = encode_caller_token(qm.id, qm.role, qm.organization_id, expires_in=-60)
    for token, reason in ((expired, "Token expired"), ("not-a-jwt", "Invalid token")):
        res = client.get("/api/v1/assessments", headers={"Authorization": f"Bearer {token}"})
        assert res.status_code == 401
        assert res.get_json() == {"error": "Authentication required", "reason": reason}


def test_unknown_route_is_json_404(client):
    res = client.get("/api/v1/nowhere")
    assert res.status_code == 404
    assert res.get_json()["path"] == "/api/v1/nowhere"


# ── Error mapping ────────────────────────────────────────────────────────────


def test_validation_error_is_422_with_details(client, qm):
    created = client.post("/api/v1/assessments", json={"title": "Audit"}, headers=auth_headers(qm)).get_json()

    res = client.put(
        f"/api/v1/assessments/{created['id']}/status",
        json={"status": AssessmentStatus.COMPLETED},
        headers=auth_headers(qm),
    )
    assert res.status_code == 422
    body = res.get_json()
    assert body["details"]["current_status"] == "DRAFT"
    assert body["details"]["requested_status"] == "COMPLETED"
    assert "COMPLETED" not in body["details"]["allowed"]


def test_forbidden_role_is_403(client, make_user):
    viewer = make_user(Role.VIEWER)
    res = client.post("/api/v1/assessments", json={"title": "Audit"}, headers=auth_headers(viewer))
    assert res.status_code == 403


def test_cross_organization_is_404(client, make_user, make_assessment, other_org):
    assessment = make_assessment(make_user())
    outsider = make_user(Role.SYSTEM_ADMIN, other_org)

    assert client.get(f"/api/v1/assessments/{assessment.id}", headers=auth_headers(outsider)).status_code == 404
    assert client.get("/api/v1/dashboard/overview", headers=auth_headers(outsider)).get_json()[
        "assessment_counts"]["total"] == 0


def test_missing_required_body_fields_are_400(client, qm, make_assessment):
    assessment = make_assessment(qm)
    headers = auth_headers(qm)

    assert client.put(f"/api/v1/assessments/{assessment.id}/status", json={}, headers=headers).status_code == 400
    assert client.post(
        f"/api/v1/assessments/{assessment.id}/responses/bulk", json={"responses": "all"}, headers=headers,
    ).status_code == 400


def test_standards_reference_endpoints(client, qm, standard):
    headers = auth_headers(qm)
    tree = client.get("/api/v1/standards/sections", headers=headers)
    assert tree.status_code == 200
    assert [n["section_number"] for n in tree.get_json()["sections"]] == ["4", "5"]

    questions = client.get(f"/api/v1/standards/questions?section_id={standard.s41.id}", headers=headers)
    assert questions.get_json()["total"] == 2


# ── One audit cycle ──────────────────────────────────────────────────────────


def test_audit_cycle_end_to_end(client, qm, standard):
    headers = auth_headers(qm)

    res = client.post("/api/v1/assessments", json={"title": "Annual audit 2026"}, headers=headers)
    assert res.status_code == 201
    assessment_id = res.get_json()["id"]
    base = f"/api/v1/assessments/{assessment_id}"

    assert client.put(f"{base}/status", json={"status": "IN_PROGRESS"}, headers=headers).status_code == 200

    res = client.post(f"{base}/responses/bulk", headers=headers, json={"responses": [
        {"question_id": standard.q411.id, "score": 1, "is_draft": False, "justification": "No context analysis"},
        {"question_id": standard.q412.id, "score": 3, "is_draft": False},
    ]})
    assert res.status_code == 200
    assert client.get(f"{base}/scores", headers=headers).get_json()["overall_score"] == 66.7

    res = client.post(f"{base}/non-conformities/generate", headers=headers)
    assert res.status_code == 201
    ncr = res.get_json()["ncrs"][0]
    assert ncr["severity"] == "MAJOR"
    assert client.post(f"{base}/non-conformities/generate", headers=headers).status_code == 200

    ncr_url = f"/api/v1/non-conformities/{ncr['id']}"
    assert client.put(f"{ncr_url}/status", json={"status": "IN_PROGRESS"}, headers=headers).status_code == 200

    res = client.post(f"{ncr_url}/corrective-actions", json={"description": "Run a context workshop"}, headers=headers)
    assert res.status_code == 201
    action_url = f"/api/v1/corrective-actions/{res.get_json()['id']}"

    res = client.put(f"{ncr_url}/status", json={"status": "RESOLVED"}, headers=headers)
    assert res.status_code == 422
    assert res.get_json()["details"]["guard"] == "resolve_requires_completed_actions"

    for status in ("IN_PROGRESS", "COMPLETED"):
        assert client.put(f"{action_url}/status", json={"status": status}, headers=headers).status_code == 200
    assert client.put(f"{ncr_url}/status", json={"status": "RESOLVED"}, headers=headers).status_code == 200

    res = client.put(f"{ncr_url}/status", json={"status": "CLOSED"}, headers=headers)
    assert res.get_json()["details"]["guard"] == "close_requires_root_cause"
    assert client.put(ncr_url, json={"root_cause": "Context never reviewed"}, headers=headers).status_code == 200

    res = client.put(f"{ncr_url}/status", json={"status": "CLOSED"}, headers=headers)
    assert res.get_json()["details"]["guard"] == "close_requires_verified_actions"

    res = client.post(f"{action_url}/verify", json={"effectiveness_notes": "Workshop held"}, headers=headers)
    assert res.status_code == 200
    assert res.get_json()["status"] == "VERIFIED"
    assert client.put(f"{ncr_url}/status", json={"status": "CLOSED"}, headers=headers).status_code == 200

    for status in ("UNDER_REVIEW", "COMPLETED"):
        assert client.put(f"{base}/status", json={"status": status}, headers=headers).status_code == 200

    res = client.post(f"{base}/responses", headers=headers, json={"question_id": standard.q421.id, "score": 3})
    assert res.status_code == 422

    overview = client.get("/api/v1/dashboard/overview", headers=headers).get_json()
    assert overview["compliance_score"] == 66.7
    assert overview["ncr_counts"]["closed"] == 1
