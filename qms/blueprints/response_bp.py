"""
Response blueprint — question responses of an assessment.

Endpoints:
    GET  /api/v1/assessments/<id>/responses                 — list + progress summary
    GET  /api/v1/assessments/<id>/responses/<question_id>   — one response
    POST /api/v1/assessments/<id>/responses                 — upsert one response
    POST /api/v1/assessments/<id>/responses/bulk            — upsert many, all or nothing
    POST /api/v1/assessments/<id>/responses/draft           — auto-save (always draft)

Final (non-draft) writes trigger a best-effort score recalculation in the
service layer.
"""

import logging

from flask import Blueprint, jsonify, request

from qms.blueprints import caller_required, json_body, register_error_handlers
from qms.services import response_service
from qms.utils.helpers import parse_bool

logger = logging.getLogger(__name__)

response_bp = Blueprint("response", __name__, url_prefix="/api/v1")
register_error_handlers(response_bp)


@response_bp.route("/assessments/<int:assessment_id>/responses", methods=["GET"])
def list_responses(assessment_id):
    """Query params: section_id, is_draft, has_score."""
    caller, err = caller_required()
    if err:
        return err
    result = response_service.list_responses(
        caller,
        assessment_id,
        section_id=request.args.get("section_id", type=int),
        is_draft=parse_bool(request.args.get("is_draft")),
        has_score=parse_bool(request.args.get("has_score")),
    )
    return jsonify(result), 200


@response_bp.route("/assessments/<int:assessment_id>/responses/<int:question_id>", methods=["GET"])
def get_response(assessment_id, question_id):
    caller, err = caller_required()
    if err:
        return err
    return jsonify(response_service.get_response(caller, assessment_id, question_id)), 200


@response_bp.route("/assessments/<int:assessment_id>/responses", methods=["POST"])
def upsert_response(assessment_id):
    """Body: {question_id, score?, justification?, action_proposal?, conclusion?, is_draft?}"""
    caller, err = caller_required()
    if err:
        return err
    return jsonify(response_service.upsert_response(caller, assessment_id, json_body())), 200


@response_bp.route("/assessments/<int:assessment_id>/responses/bulk", methods=["POST"])
def bulk_upsert_responses(assessment_id):
    """Body: {responses: [...]}"""
    caller, err = caller_required()
    if err:
        return err
    items = json_body().get("responses")
    if not isinstance(items, list) or not all(isinstance(i, dict) for i in items):
        return jsonify({"error": "responses must be a list of objects"}), 400
    return jsonify(response_service.bulk_upsert_responses(caller, assessment_id, items)), 200


@response_bp.route("/assessments/<int:assessment_id>/responses/draft", methods=["POST"])
def save_draft(assessment_id):
    caller, err = caller_required()
    if err:
        return err
    return jsonify(response_service.save_draft_response(caller, assessment_id, json_body())), 200
