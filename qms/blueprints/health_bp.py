"""
Health check blueprint.

Endpoints:
    GET /api/v1/health         — liveness, always 200 while the app runs
    GET /api/v1/health/ready   — readiness, checks the database
"""

import logging
import time

from flask import Blueprint, jsonify
from sqlalchemy import text

from qms.models import db

logger = logging.getLogger(__name__)

health_bp = Blueprint("health", __name__, url_prefix="/api/v1/health")


@health_bp.route("", methods=["GET"])
def live():
    return jsonify({"status": "ok", "app": "Quality Management System"}), 200


@health_bp.route("/ready", methods=["GET"])
def ready():
    try:
        t0 = time.perf_counter()
        db.session.execute(text("SELECT 1"))
        db_ms = (time.perf_counter() - t0) * 1000
    except Exception as exc:
        logger.error("Health check — database failed: %s", exc)
        db.session.rollback()
        return jsonify({"status": "error", "database": {"status": "error", "detail": str(exc)}}), 503
    return jsonify({"status": "ok", "database": {"status": "ok", "latency_ms": round(db_ms, 1)}}), 200
