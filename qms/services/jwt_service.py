"""
Caller tokens (HS256 JWT).

The identity provider issues tokens; this module only verifies them and maps
their claims onto a Caller. ``encode_caller_token`` is for tests and local
tooling. Claims:

    sub              user id (string)
    organization_id  tenant of the caller
    role             one of USER_ROLES
    type             always "access"
    iat / exp / jti
"""

import uuid
from datetime import datetime, timedelta, timezone

import jwt
from flask import current_app

from qms.core.exceptions import ValidationError
from qms.services.permission import Caller

ALGORITHM = "HS256"
TOKEN_TYPE = "access"
REQUIRED_CLAIMS = ("sub", "organization_id", "role", "exp")


def _signing_key() -> str:
    cfg = current_app.config
    return cfg.get("JWT_SECRET_KEY") or cfg["SECRET_KEY"]


def encode_caller_token(user_id: int, role: str, organization_id: int, expires_in: int | None = None) -> str:
    """Sign a token for the given identity; *expires_in* seconds, negative for an already expired one."""
    if expires_in is None:
        expires_in = current_app.config.get("JWT_ACCESS_EXPIRES", 900)
    issued = datetime.now(timezone.utc)
    claims = {
        "sub": str(user_id),
        "organization_id": organization_id,
        "role": role,
        "type": TOKEN_TYPE,
        "iat": issued,
        "exp": issued + timedelta(seconds=expires_in),
        "jti": uuid.uuid4().hex,
    }
    return jwt.encode(claims, _signing_key(), algorithm=ALGORITHM)


def caller_from_token(token: str) -> Caller:
    """Verify *token* and return the Caller it names.

    Raises:
        jwt.ExpiredSignatureError: Token is past its exp.
        jwt.InvalidTokenError: Any other signature, type or claim problem.
    """
    claims = jwt.decode(
        token, _signing_key(), algorithms=[ALGORITHM], options={"require": list(REQUIRED_CLAIMS)},
    )
    if claims.get("type") != TOKEN_TYPE:
        raise jwt.InvalidTokenError(f"Unexpected token type {claims.get('type')!r}")
    try:
        return Caller(
            user_id=int(claims["sub"]),
            role=claims["role"],
            organization_id=int(claims["organization_id"]),
        )
    except (TypeError, ValueError, ValidationError) as exc:
        raise jwt.InvalidTokenError(f"Claims do not name a caller: {exc}") from exc
