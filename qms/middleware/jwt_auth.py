"""
Bearer-token middleware.

Sets ``g.caller`` for every request under /api/v1/ (None when no valid token
was sent) and ``g.auth_error`` with the reason a presented token was
refused. Endpoints enforce authentication through caller_required().
"""

import logging

import jwt
from flask import g, request

from qms.services.jwt_service import caller_from_token

logger = logging.getLogger(__name__)

API_PREFIX = "/api/v1/"
PUBLIC_PREFIXES = ("/api/v1/health",)


def _bearer_token() -> str | None:
    scheme, _, token = request.headers.get("Authorization", "").partition(" ")
    if scheme.lower() != "bearer" or not token.strip():
        return None
    return token.strip()


def init_jwt_middleware(app):
    @app.before_request
    def _identify_caller():
        g.caller = None
        g.auth_error = None

        path = request.path
        if not path.startswith(API_PREFIX) or path.startswith(PUBLIC_PREFIXES):
            return

        token = _bearer_token()
        if token is None:
            return
        try:
            g.caller = caller_from_token(token)
        except jwt.ExpiredSignatureError:
            g.auth_error = "Token expired"
            logger.info("Expired token on %s %s", request.method, path)
        except jwt.InvalidTokenError as exc:
            g.auth_error = "Invalid token"
            logger.warning("Invalid token on %s %s: %s", request.method, path, exc)
