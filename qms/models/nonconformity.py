"""
Non-conformity domain models.

Models:
    - NonConformity:     a documented instance where an audited requirement was not met
    - CorrectiveAction:  a remediation task raised against a NonConformity

Architecture:
    Assessment ──1:N──▶ NonConformity ──1:N──▶ CorrectiveAction
    QuestionResponse ──0:N──▶ NonConformity     (response_id, set by auto-generation)

Lifecycle states:
    NonConformity:     OPEN → IN_PROGRESS → RESOLVED → CLOSED (terminal)
    CorrectiveAction:  PENDING → IN_PROGRESS → COMPLETED → VERIFIED (terminal)

Both reach their organization through Assessment; see
qms.services.helpers.scoped_queries for the scoped lookups.
"""

from datetime import date, datetime, timezone

from qms.models import db


# ── Constants ────────────────────────────────────────────────────────────────

class NCRStatus:
    OPEN = "OPEN"
    IN_PROGRESS = "IN_PROGRESS"
    RESOLVED = "RESOLVED"
    CLOSED = "CLOSED"


NCR_STATUSES = (NCRStatus.OPEN, NCRStatus.IN_PROGRESS, NCRStatus.RESOLVED, NCRStatus.CLOSED)


class Severity:
    MINOR = "MINOR"
    MAJOR = "MAJOR"
    CRITICAL = "CRITICAL"


SEVERITIES = (Severity.MINOR, Severity.MAJOR, Severity.CRITICAL)

ROOT_CAUSE_METHODS = frozenset({"FIVE_WHYS", "FISHBONE", "FAULT_TREE", "PARETO", "OTHER"})


class ActionStatus:
    PENDING = "PENDING"
    IN_PROGRESS = "IN_PROGRESS"
    COMPLETED = "COMPLETED"
    VERIFIED = "VERIFIED"


ACTION_STATUSES = (
    ActionStatus.PENDING,
    ActionStatus.IN_PROGRESS,
    ActionStatus.COMPLETED,
    ActionStatus.VERIFIED,
)

# Statuses that count as "done" for NCR resolution and overdue checks.
FINISHED_ACTION_STATUSES = frozenset({ActionStatus.COMPLETED, ActionStatus.VERIFIED})


class Priority:
    LOW = "LOW"
    MEDIUM = "MEDIUM"
    HIGH = "HIGH"
    CRITICAL = "CRITICAL"


PRIORITIES = (Priority.LOW, Priority.MEDIUM, Priority.HIGH, Priority.CRITICAL)


# ── Lifecycle Transition Tables ──────────────────────────────────────────────

NCR_TRANSITIONS = {
    NCRStatus.OPEN:        [NCRStatus.IN_PROGRESS],
    NCRStatus.IN_PROGRESS: [NCRStatus.RESOLVED, NCRStatus.OPEN],
    NCRStatus.RESOLVED:    [NCRStatus.CLOSED, NCRStatus.IN_PROGRESS],
    NCRStatus.CLOSED:      [],
}

# COMPLETED → VERIFIED exists in the table but is only taken by
# corrective_action_service.verify_action, never by the generic status update.
ACTION_TRANSITIONS = {
    ActionStatus.PENDING:     [ActionStatus.IN_PROGRESS],
    ActionStatus.IN_PROGRESS: [ActionStatus.COMPLETED, ActionStatus.PENDING],
    ActionStatus.COMPLETED:   [ActionStatus.VERIFIED, ActionStatus.IN_PROGRESS],
    ActionStatus.VERIFIED:    [],
}


def _iso(value):
    return value.isoformat() if value else None


class NonConformity(db.Model):
    __tablename__ = "non_conformities"
    __table_args__ = (
        db.Index("ix_ncr_assessment_status", "assessment_id", "status"),
    )

    id = db.Column(db.Integer, primary_key=True)
    assessment_id = db.Column(
        db.Integer,
        db.ForeignKey("assessments.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    response_id = db.Column(
        db.Integer,
        db.ForeignKey("question_responses.id", ondelete="SET NULL"),
        nullable=True,
        index=True,
        comment="Response that triggered this NCR (auto-generated or manually linked)",
    )
    title = db.Column(db.String(255), nullable=False)
    description = db.Column(db.Text, nullable=False, default="")
    severity = db.Column(db.String(20), nullable=False, default=Severity.MINOR, comment="MINOR | MAJOR | CRITICAL")
    status = db.Column(
        db.String(20), nullable=False, default=NCRStatus.OPEN,
        comment="OPEN | IN_PROGRESS | RESOLVED | CLOSED",
    )
    root_cause = db.Column(db.Text, nullable=True)
    root_cause_method = db.Column(db.String(30), nullable=True)
    created_at = db.Column(db.DateTime(timezone=True), default=lambda: datetime.now(timezone.utc))
    updated_at = db.Column(
        db.DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        onupdate=lambda: datetime.now(timezone.utc),
    )

    assessment = db.relationship("Assessment", back_populates="non_conformities")
    response = db.relationship("QuestionResponse", back_populates="non_conformities")
    corrective_actions = db.relationship(
        "CorrectiveAction", back_populates="non_conformity",
        cascade="all, delete-orphan", lazy="selectin",
        order_by="CorrectiveAction.id",
    )

    def to_dict(self, include_actions=True):
        d = {
            "id": self.id,
            "assessment_id": self.assessment_id,
            "response_id": self.response_id,
            "title": self.title,
            "description": self.description,
            "severity": self.severity,
            "status": self.status,
            "root_cause": self.root_cause,
            "root_cause_method": self.root_cause_method,
            "created_at": _iso(self.created_at),
            "updated_at": _iso(self.updated_at),
        }
        if self.response is not None and self.response.question is not None:
            d["question"] = self.response.question.to_summary()
        if include_actions:
            d["corrective_actions"] = [
                {"id": a.id, "status": a.status, "priority": a.priority, "target_date": _iso(a.target_date)}
                for a in self.corrective_actions
            ]
        return d

    def __repr__(self):
        return f"<NonConformity {self.id}: {self.title} [{self.status}]>"


class CorrectiveAction(db.Model):
    __tablename__ = "corrective_actions"
    __table_args__ = (
        db.Index("ix_action_ncr_status", "non_conformity_id", "status"),
    )

    id = db.Column(db.Integer, primary_key=True)
    non_conformity_id = db.Column(
        db.Integer,
        db.ForeignKey("non_conformities.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    description = db.Column(db.Text, nullable=False)
    priority = db.Column(db.String(20), nullable=False, default=Priority.MEDIUM)
    status = db.Column(
        db.String(20), nullable=False, default=ActionStatus.PENDING,
        comment="PENDING | IN_PROGRESS | COMPLETED | VERIFIED",
    )
    assigned_to_id = db.Column(
        db.Integer,
        db.ForeignKey("users.id", ondelete="SET NULL"),
        nullable=True,
        index=True,
    )
    target_date = db.Column(db.Date, nullable=True)
    completed_date = db.Column(db.DateTime(timezone=True), nullable=True)
    verified_by_id = db.Column(
        db.Integer,
        db.ForeignKey("users.id", ondelete="SET NULL"),
        nullable=True,
    )
    verified_date = db.Column(db.DateTime(timezone=True), nullable=True)
    effectiveness_notes = db.Column(db.Text, nullable=True)
    created_at = db.Column(db.DateTime(timezone=True), default=lambda: datetime.now(timezone.utc))
    updated_at = db.Column(
        db.DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        onupdate=lambda: datetime.now(timezone.utc),
    )

    non_conformity = db.relationship("NonConformity", back_populates="corrective_actions")
    assigned_to = db.relationship("User", foreign_keys=[assigned_to_id])
    verified_by = db.relationship("User", foreign_keys=[verified_by_id])

    @property
    def is_overdue(self) -> bool:
        return (
            self.target_date is not None
            and self.target_date < date.today()
            and self.status not in FINISHED_ACTION_STATUSES
        )

    def to_dict(self):
        return {
            "id": self.id,
            "non_conformity_id": self.non_conformity_id,
            "description": self.description,
            "priority": self.priority,
            "status": self.status,
            "assigned_to_id": self.assigned_to_id,
            "assigned_to": self.assigned_to.to_summary() if self.assigned_to else None,
            "target_date": _iso(self.target_date),
            "completed_date": _iso(self.completed_date),
            "verified_by_id": self.verified_by_id,
            "verified_by": self.verified_by.to_summary() if self.verified_by else None,
            "verified_date": _iso(self.verified_date),
            "effectiveness_notes": self.effectiveness_notes,
            "is_overdue": self.is_overdue,
            "created_at": _iso(self.created_at),
            "updated_at": _iso(self.updated_at),
        }

    def __repr__(self):
        return f"<CorrectiveAction {self.id} ncr={self.non_conformity_id} [{self.status}]>"
