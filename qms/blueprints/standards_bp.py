"""
Standards blueprint — ISO 9001:2015 reference data (read-only).

Endpoints:
    GET /api/v1/standards/sections            — clause tree
    GET /api/v1/standards/sections/<id>       — one clause with its questions
    GET /api/v1/standards/questions           — questions (?section_id=&is_active=&search=)
"""

from flask import Blueprint, jsonify, request

from qms.blueprints import caller_required, register_error_handlers
from qms.services import standards_service
from qms.utils.helpers import parse_bool

standards_bp = Blueprint("standards", __name__, url_prefix="/api/v1/standards")
register_error_handlers(standards_bp)


@standards_bp.route("/sections", methods=["GET"])
def section_tree():
    _, err = caller_required()
    if err:
        return err
    return jsonify({"sections": standards_service.get_section_tree()}), 200


@standards_bp.route("/sections/<int:section_id>", methods=["GET"])
def get_section(section_id):
    _, err = caller_required()
    if err:
        return err
    return jsonify(standards_service.get_section(section_id)), 200


@standards_bp.route("/questions", methods=["GET"])
def list_questions():
    _, err = caller_required()
    if err:
        return err
    items = standards_service.list_questions(
        section_id=request.args.get("section_id", type=int),
        is_active=parse_bool(request.args.get("is_active")),
        search=request.args.get("search"),
    )
    return jsonify({"items": items, "total": len(items)}), 200
