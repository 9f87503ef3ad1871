"""
Dashboard blueprint — organization-wide compliance read models.

Endpoints:
    GET /api/v1/dashboard/overview    — counts + compliance score
    GET /api/v1/dashboard/sections    — section breakdown (?assessment_id=)
"""

from flask import Blueprint, jsonify, request

from qms.blueprints import caller_required, register_error_handlers
from qms.services import dashboard_service

dashboard_bp = Blueprint("dashboard", __name__, url_prefix="/api/v1/dashboard")
register_error_handlers(dashboard_bp)


@dashboard_bp.route("/overview", methods=["GET"])
def overview():
    caller, err = caller_required()
    if err:
        return err
    return jsonify(dashboard_service.get_overview(caller.organization_id)), 200


@dashboard_bp.route("/sections", methods=["GET"])
def section_breakdown():
    caller, err = caller_required()
    if err:
        return err
    sections = dashboard_service.get_section_breakdown(
        caller.organization_id,
        assessment_id=request.args.get("assessment_id", type=int),
    )
    return jsonify({"sections": sections}), 200
