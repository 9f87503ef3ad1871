"""
Assessment blueprint — audit assessments, their team and score snapshot.

Endpoints:
    GET    /api/v1/assessments                            — list (filters + pagination)
    POST   /api/v1/assessments                            — create (caller becomes lead auditor)
    GET    /api/v1/assessments/<id>                       — detail
    PUT    /api/v1/assessments/<id>                       — update metadata / status
    DELETE /api/v1/assessments/<id>                       — archive
    PUT    /api/v1/assessments/<id>/status                — status transition
    POST   /api/v1/assessments/<id>/restore               — ARCHIVED → DRAFT
    POST   /api/v1/assessments/<id>/clone                 — copy into a new DRAFT
    GET    /api/v1/assessments/<id>/scores                — persisted score snapshot
    POST   /api/v1/assessments/<id>/scores/recalculate    — recompute snapshot
    POST   /api/v1/assessments/<id>/team                  — add / update team member
    DELETE /api/v1/assessments/<id>/team/<user_id>        — remove team member
"""

import logging

from flask import Blueprint, jsonify, request

from qms.blueprints import caller_required, json_body, page_args, register_error_handlers
from qms.services import assessment_service

logger = logging.getLogger(__name__)

assessment_bp = Blueprint("assessment", __name__, url_prefix="/api/v1")
register_error_handlers(assessment_bp)


@assessment_bp.route("/assessments", methods=["GET"])
def list_assessments():
    """Query params: status (repeatable or comma-separated), lead_auditor_id,
    start_date, end_date, search, page, page_size."""
    caller, err = caller_required()
    if err:
        return err
    statuses = [s.strip() for raw in request.args.getlist("status") for s in raw.split(",") if s.strip()]
    result = assessment_service.list_assessments(
        caller,
        statuses=statuses or None,
        lead_auditor_id=request.args.get("lead_auditor_id", type=int),
        start_date=request.args.get("start_date"),
        end_date=request.args.get("end_date"),
        search=request.args.get("search"),
        **page_args(),
    )
    return jsonify(result), 200


@assessment_bp.route("/assessments", methods=["POST"])
def create_assessment():
    caller, err = caller_required()
    if err:
        return err
    return jsonify(assessment_service.create_assessment(caller, json_body())), 201


@assessment_bp.route("/assessments/<int:assessment_id>", methods=["GET"])
def get_assessment(assessment_id):
    caller, err = caller_required()
    if err:
        return err
    return jsonify(assessment_service.get_assessment(caller, assessment_id)), 200


@assessment_bp.route("/assessments/<int:assessment_id>", methods=["PUT"])
def update_assessment(assessment_id):
    caller, err = caller_required()
    if err:
        return err
    return jsonify(assessment_service.update_assessment(caller, assessment_id, json_body())), 200


@assessment_bp.route("/assessments/<int:assessment_id>", methods=["DELETE"])
def delete_assessment(assessment_id):
    caller, err = caller_required()
    if err:
        return err
    return jsonify(assessment_service.delete_assessment(caller, assessment_id)), 200


@assessment_bp.route("/assessments/<int:assessment_id>/status", methods=["PUT"])
def transition_status(assessment_id):
    caller, err = caller_required()
    if err:
        return err
    new_status = (json_body().get("status") or "").strip()
    if not new_status:
        return jsonify({"error": "status is required"}), 400
    return jsonify(assessment_service.transition_assessment_status(caller, assessment_id, new_status)), 200


@assessment_bp.route("/assessments/<int:assessment_id>/restore", methods=["POST"])
def restore_assessment(assessment_id):
    caller, err = caller_required()
    if err:
        return err
    return jsonify(assessment_service.restore_assessment(caller, assessment_id)), 200


@assessment_bp.route("/assessments/<int:assessment_id>/clone", methods=["POST"])
def clone_assessment(assessment_id):
    """Body: {title}"""
    caller, err = caller_required()
    if err:
        return err
    title = (json_body().get("title") or "").strip()
    if not title:
        return jsonify({"error": "title is required"}), 400
    return jsonify(assessment_service.clone_assessment(caller, assessment_id, title)), 201


@assessment_bp.route("/assessments/<int:assessment_id>/scores", methods=["GET"])
def get_scores(assessment_id):
    caller, err = caller_required()
    if err:
        return err
    return jsonify(assessment_service.get_scores(caller, assessment_id)), 200


@assessment_bp.route("/assessments/<int:assessment_id>/scores/recalculate", methods=["POST"])
def recalculate_scores(assessment_id):
    caller, err = caller_required()
    if err:
        return err
    return jsonify(assessment_service.recalculate_scores(caller, assessment_id)), 200


@assessment_bp.route("/assessments/<int:assessment_id>/team", methods=["POST"])
def add_team_member(assessment_id):
    """Body: {user_id, role?}"""
    caller, err = caller_required()
    if err:
        return err
    data = json_body()
    user_id = data.get("user_id")
    if not isinstance(user_id, int) or isinstance(user_id, bool):
        return jsonify({"error": "user_id is required"}), 400
    member = assessment_service.add_team_member(caller, assessment_id, user_id, data.get("role") or "AUDITOR")
    return jsonify(member), 201


@assessment_bp.route("/assessments/<int:assessment_id>/team/<int:user_id>", methods=["DELETE"])
def remove_team_member(assessment_id, user_id):
    caller, err = caller_required()
    if err:
        return err
    assessment_service.remove_team_member(caller, assessment_id, user_id)
    return "", 204
