"""
Corrective action blueprint — remediation steps of a non-conformity.

Endpoints:
    GET    /api/v1/non-conformities/<id>/corrective-actions           — list (filters + pagination)
    POST   /api/v1/non-conformities/<id>/corrective-actions           — create (PENDING)
    GET    /api/v1/non-conformities/<id>/corrective-actions/summary   — counts
    GET    /api/v1/corrective-actions/<id>                            — detail
    PUT    /api/v1/corrective-actions/<id>                            — update
    DELETE /api/v1/corrective-actions/<id>                            — delete
    PUT    /api/v1/corrective-actions/<id>/status                     — status transition
    PUT    /api/v1/corrective-actions/<id>/assign                     — (re)assign
    POST   /api/v1/corrective-actions/<id>/verify                     — COMPLETED → VERIFIED
"""

import logging

from flask import Blueprint, jsonify, request

from qms.blueprints import caller_required, json_body, page_args, register_error_handlers
from qms.services import corrective_action_service

logger = logging.getLogger(__name__)

corrective_action_bp = Blueprint("corrective_action", __name__, url_prefix="/api/v1")
register_error_handlers(corrective_action_bp)


@corrective_action_bp.route("/non-conformities/<int:ncr_id>/corrective-actions", methods=["GET"])
def list_actions(ncr_id):
    """Query params: status, priority, assigned_to_id, page, page_size."""
    caller, err = caller_required()
    if err:
        return err
    result = corrective_action_service.list_actions(
        caller,
        ncr_id,
        status=request.args.get("status"),
        priority=request.args.get("priority"),
        assigned_to_id=request.args.get("assigned_to_id", type=int),
        **page_args(),
    )
    return jsonify(result), 200


@corrective_action_bp.route("/non-conformities/<int:ncr_id>/corrective-actions", methods=["POST"])
def create_action(ncr_id):
    """Body: {description, priority?, assigned_to_id?, target_date?}"""
    caller, err = caller_required()
    if err:
        return err
    return jsonify(corrective_action_service.create_action(caller, ncr_id, json_body())), 201


@corrective_action_bp.route("/non-conformities/<int:ncr_id>/corrective-actions/summary", methods=["GET"])
def summarize_actions(ncr_id):
    caller, err = caller_required()
    if err:
        return err
    return jsonify(corrective_action_service.summarize_actions(caller, ncr_id)), 200


@corrective_action_bp.route("/corrective-actions/<int:action_id>", methods=["GET"])
def get_action(action_id):
    caller, err = caller_required()
    if err:
        return err
    return jsonify(corrective_action_service.get_action(caller, action_id)), 200


@corrective_action_bp.route("/corrective-actions/<int:action_id>", methods=["PUT"])
def update_action(action_id):
    caller, err = caller_required()
    if err:
        return err
    return jsonify(corrective_action_service.update_action(caller, action_id, json_body())), 200


@corrective_action_bp.route("/corrective-actions/<int:action_id>", methods=["DELETE"])
def delete_action(action_id):
    caller, err = caller_required()
    if err:
        return err
    corrective_action_service.delete_action(caller, action_id)
    return "", 204


@corrective_action_bp.route("/corrective-actions/<int:action_id>/status", methods=["PUT"])
def transition_action_status(action_id):
    """Body: {status}"""
    caller, err = caller_required()
    if err:
        return err
    new_status = (json_body().get("status") or "").strip()
    if not new_status:
        return jsonify({"error": "status is required"}), 400
    return jsonify(corrective_action_service.transition_action_status(caller, action_id, new_status)), 200


@corrective_action_bp.route("/corrective-actions/<int:action_id>/assign", methods=["PUT"])
def assign_action(action_id):
    """Body: {assigned_to_id} (null unassigns)"""
    caller, err = caller_required()
    if err:
        return err
    data = json_body()
    if "assigned_to_id" not in data:
        return jsonify({"error": "assigned_to_id is required"}), 400
    return jsonify(corrective_action_service.assign_action(caller, action_id, data["assigned_to_id"])), 200


@corrective_action_bp.route("/corrective-actions/<int:action_id>/verify", methods=["POST"])
def verify_action(action_id):
    """Body: {effectiveness_notes?}"""
    caller, err = caller_required()
    if err:
        return err
    notes = json_body().get("effectiveness_notes")
    return jsonify(corrective_action_service.verify_action(caller, action_id, notes)), 200
