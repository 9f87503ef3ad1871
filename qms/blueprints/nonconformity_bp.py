"""
Non-conformity blueprint — NCRs raised against an assessment.

Endpoints:
    GET    /api/v1/assessments/<id>/non-conformities            — list for an assessment
    POST   /api/v1/assessments/<id>/non-conformities            — raise manually
    POST   /api/v1/assessments/<id>/non-conformities/generate   — from failing responses
    GET    /api/v1/assessments/<id>/non-conformities/summary    — counts
    GET    /api/v1/non-conformities                             — organization-wide list
    GET    /api/v1/non-conformities/<id>                        — detail with actions
    PUT    /api/v1/non-conformities/<id>                        — update
    DELETE /api/v1/non-conformities/<id>                        — delete (no actions, not closed)
    PUT    /api/v1/non-conformities/<id>/status                 — guarded status transition
"""

import logging

from flask import Blueprint, jsonify, request

from qms.blueprints import caller_required, json_body, page_args, register_error_handlers
from qms.services import nonconformity_service

logger = logging.getLogger(__name__)

nonconformity_bp = Blueprint("nonconformity", __name__, url_prefix="/api/v1")
register_error_handlers(nonconformity_bp)


@nonconformity_bp.route("/assessments/<int:assessment_id>/non-conformities", methods=["GET"])
def list_ncrs(assessment_id):
    """Query params: status, severity."""
    caller, err = caller_required()
    if err:
        return err
    items = nonconformity_service.list_ncrs(
        caller,
        assessment_id,
        status=request.args.get("status"),
        severity=request.args.get("severity"),
    )
    return jsonify({"items": items, "total": len(items)}), 200


@nonconformity_bp.route("/assessments/<int:assessment_id>/non-conformities", methods=["POST"])
def create_ncr(assessment_id):
    """Body: {title, severity, description?, response_id?, root_cause?, root_cause_method?}"""
    caller, err = caller_required()
    if err:
        return err
    return jsonify(nonconformity_service.create_ncr(caller, assessment_id, json_body())), 201


@nonconformity_bp.route("/assessments/<int:assessment_id>/non-conformities/generate", methods=["POST"])
def generate_ncrs(assessment_id):
    caller, err = caller_required()
    if err:
        return err
    result = nonconformity_service.generate_ncrs_from_failing_responses(caller, assessment_id)
    return jsonify(result), 201 if result["created"] else 200


@nonconformity_bp.route("/assessments/<int:assessment_id>/non-conformities/summary", methods=["GET"])
def summarize_ncrs(assessment_id):
    caller, err = caller_required()
    if err:
        return err
    return jsonify(nonconformity_service.summarize_ncrs(caller, assessment_id)), 200


@nonconformity_bp.route("/non-conformities", methods=["GET"])
def list_organization_ncrs():
    """Query params: status, severity, search, page, page_size."""
    caller, err = caller_required()
    if err:
        return err
    result = nonconformity_service.list_organization_ncrs(
        caller,
        status=request.args.get("status"),
        severity=request.args.get("severity"),
        search=request.args.get("search"),
        **page_args(),
    )
    return jsonify(result), 200


@nonconformity_bp.route("/non-conformities/<int:ncr_id>", methods=["GET"])
def get_ncr(ncr_id):
    caller, err = caller_required()
    if err:
        return err
    return jsonify(nonconformity_service.get_ncr(caller, ncr_id)), 200


@nonconformity_bp.route("/non-conformities/<int:ncr_id>", methods=["PUT"])
def update_ncr(ncr_id):
    caller, err = caller_required()
    if err:
        return err
    return jsonify(nonconformity_service.update_ncr(caller, ncr_id, json_body())), 200


@nonconformity_bp.route("/non-conformities/<int:ncr_id>", methods=["DELETE"])
def delete_ncr(ncr_id):
    caller, err = caller_required()
    if err:
        return err
    nonconformity_service.delete_ncr(caller, ncr_id)
    return "", 204


@nonconformity_bp.route("/non-conformities/<int:ncr_id>/status", methods=["PUT"])
def transition_ncr_status(ncr_id):
    """Body: {status}"""
    caller, err = caller_required()
    if err:
        return err
    new_status = (json_body().get("status") or "").strip()
    if not new_status:
        return jsonify({"error": "status is required"}), 400
    return jsonify(nonconformity_service.transition_ncr_status(caller, ncr_id, new_status)), 200
