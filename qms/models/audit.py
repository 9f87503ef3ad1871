"""
Audit trail.

AuditLog rows are append-only: status transitions, verifications, NCR
auto-generation, assignments and deletes each leave one row. Services write
them through write_audit_safely so a failed audit insert never undoes the
workflow change it describes.
"""

import json
import logging
from datetime import datetime, timezone

from qms.models import db

logger = logging.getLogger(__name__)

_VERBS = {
    "assessment": (
        "create", "transition", "archive", "restore", "clone", "recalculate_scores",
    ),
    "non_conformity": ("create", "transition", "auto_generate", "delete"),
    "corrective_action": ("create", "transition", "verify", "assign", "delete"),
}

AUDIT_ENTITY_TYPES = frozenset(_VERBS)
AUDIT_ACTIONS = frozenset(f"{prefix}.{verb}" for prefix, verbs in _VERBS.items() for verb in verbs)


def is_known_action(entity_type: str, action: str) -> bool:
    # auto_generate is logged against the assessment, so the prefix may differ
    return entity_type in AUDIT_ENTITY_TYPES and action in AUDIT_ACTIONS


class AuditLog(db.Model):
    __tablename__ = "audit_logs"
    __table_args__ = (
        db.Index("idx_audit_entity", "entity_type", "entity_id"),
        db.Index("idx_audit_org_ts", "organization_id", "timestamp"),
    )

    id = db.Column(db.Integer, primary_key=True)
    organization_id = db.Column(
        db.Integer, db.ForeignKey("organizations.id", ondelete="CASCADE"), nullable=True, index=True,
    )
    entity_type = db.Column(db.String(30), nullable=False)
    # String so deleted rows and non-integer keys can still be referenced
    entity_id = db.Column(db.String(36), nullable=False)
    action = db.Column(db.String(60), nullable=False)
    actor_user_id = db.Column(
        db.Integer, db.ForeignKey("users.id", ondelete="SET NULL"), nullable=True, index=True,
    )
    diff = db.Column(db.JSON, nullable=False, default=dict)
    timestamp = db.Column(
        db.DateTime(timezone=True), nullable=False, default=lambda: datetime.now(timezone.utc),
    )

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "organization_id": self.organization_id,
            "entity_type": self.entity_type,
            "entity_id": self.entity_id,
            "action": self.action,
            "actor_user_id": self.actor_user_id,
            "diff": self.diff or {},
            "timestamp": self.timestamp.isoformat() if self.timestamp else None,
        }

    def __repr__(self):
        return f"<AuditLog {self.action} {self.entity_type}/{self.entity_id}>"


def write_audit(*, entity_type: str, entity_id, action: str, organization_id=None,
                actor_user_id=None, diff: dict | None = None) -> AuditLog:
    """Add one audit row and flush; the caller owns the commit.

    Raises:
        ValueError: *action* is not registered for *entity_type*.
    """
    if not is_known_action(entity_type, action):
        raise ValueError(f"Unknown audit action {action!r} for {entity_type!r}")

    row = AuditLog(
        organization_id=organization_id,
        entity_type=entity_type,
        entity_id=str(entity_id),
        action=action,
        actor_user_id=actor_user_id,
        # dates and Decimals are stored as strings
        diff=json.loads(json.dumps(diff or {}, default=str)),
    )
    db.session.add(row)
    db.session.flush()
    return row


def write_audit_safely(**kwargs) -> None:
    """write_audit inside a savepoint; a database failure is logged, not raised."""
    if not is_known_action(kwargs["entity_type"], kwargs["action"]):
        raise ValueError(f"Unknown audit action {kwargs['action']!r} for {kwargs['entity_type']!r}")
    try:
        with db.session.begin_nested():
            write_audit(**kwargs)
    except Exception:
        logger.warning(
            "Audit write failed for %s id=%s; workflow change kept",
            kwargs["action"], kwargs.get("entity_id"), exc_info=True,
        )
