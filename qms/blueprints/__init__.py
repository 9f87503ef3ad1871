"""
Quality Management System
Blueprint registry and shared controller helpers.

Every blueprint registers the same error mapping through
register_error_handlers(); controllers resolve the caller with
caller_required() and hand everything else to the service layer.
"""

import logging

from flask import g, jsonify, request
from werkzeug.exceptions import HTTPException

from qms.core.exceptions import AuthorizationError, ConflictError, NotFoundError, ValidationError
from qms.services.helpers.pagination import DEFAULT_PAGE_SIZE

logger = logging.getLogger(__name__)


def register_error_handlers(bp):
    """Map the service exception taxonomy to HTTP responses on *bp*."""

    @bp.errorhandler(NotFoundError)
    def _handle_not_found(error: NotFoundError):
        return jsonify({"error": str(error)}), 404

    @bp.errorhandler(ValidationError)
    def _handle_validation(error: ValidationError):
        return jsonify({"error": str(error), "details": error.details}), 422

    @bp.errorhandler(AuthorizationError)
    def _handle_forbidden(error: AuthorizationError):
        return jsonify({"error": str(error)}), 403

    @bp.errorhandler(ConflictError)
    def _handle_conflict(error: ConflictError):
        return jsonify({"error": str(error)}), 409

    @bp.errorhandler(Exception)
    def _handle_unexpected(error: Exception):
        if isinstance(error, HTTPException):
            return error
        logger.exception("Unexpected error in %s endpoint=%s", bp.name, request.endpoint)
        return jsonify({"error": "Internal server error"}), 500


def caller_required():
    """Return (caller, None) or (None, 401 response) for the current request."""
    caller = getattr(g, "caller", None)
    if caller is None:
        body = {"error": "Authentication required"}
        reason = getattr(g, "auth_error", None)
        if reason:
            body["reason"] = reason
        return None, (jsonify(body), 401)
    return caller, None


def json_body() -> dict:
    data = request.get_json(silent=True)
    return data if isinstance(data, dict) else {}


def page_args() -> dict:
    """page / page_size query params; the service layer clamps them."""
    return {
        "page": request.args.get("page", 1, type=int),
        "page_size": request.args.get("page_size", DEFAULT_PAGE_SIZE, type=int),
    }
