"""
Assessment domain models.

Models:
    - AssessmentTemplate:    reusable assessment blueprint owned by an organization
    - Assessment:            one audit instance against the standard
    - AssessmentTeamMember:  Assessment × User join with a role label
    - QuestionResponse:      Assessment × AuditQuestion score + justification
    - Evidence:              file or link attached to a QuestionResponse

Architecture:
    Organization ──1:N──▶ Assessment ──1:N──▶ AssessmentTeamMember
    Assessment ──1:N──▶ QuestionResponse ──1:N──▶ Evidence
    Assessment ──1:N──▶ NonConformity           (qms.models.nonconformity)
    Assessment ──0:1──▶ Assessment              (previous_assessment_id, set on clone)

Lifecycle states:
    Assessment:  DRAFT → IN_PROGRESS → UNDER_REVIEW → COMPLETED → ARCHIVED
                 ARCHIVED → DRAFT (restore)
"""

from datetime import datetime, timezone

from qms.models import db
from qms.models.base import OrganizationModel


# ── Constants ────────────────────────────────────────────────────────────────

class AssessmentStatus:
    DRAFT = "DRAFT"
    IN_PROGRESS = "IN_PROGRESS"
    UNDER_REVIEW = "UNDER_REVIEW"
    COMPLETED = "COMPLETED"
    ARCHIVED = "ARCHIVED"


ASSESSMENT_STATUSES = (
    AssessmentStatus.DRAFT,
    AssessmentStatus.IN_PROGRESS,
    AssessmentStatus.UNDER_REVIEW,
    AssessmentStatus.COMPLETED,
    AssessmentStatus.ARCHIVED,
)

# Responses, NCRs and corrective actions are frozen once the assessment is here.
LOCKED_ASSESSMENT_STATUSES = frozenset({AssessmentStatus.COMPLETED, AssessmentStatus.ARCHIVED})

AUDIT_TYPES = frozenset({"INTERNAL", "EXTERNAL", "SURVEILLANCE", "CERTIFICATION"})

TEAM_MEMBER_ROLES = frozenset({"LEAD_AUDITOR", "AUDITOR", "OBSERVER"})

EVIDENCE_TYPES = frozenset({"DOCUMENT", "IMAGE", "LINK"})

VALID_SCORES = (1, 2, 3)


# ── Lifecycle Transition Table ───────────────────────────────────────────────

ASSESSMENT_TRANSITIONS = {
    AssessmentStatus.DRAFT:        [AssessmentStatus.IN_PROGRESS, AssessmentStatus.ARCHIVED],
    AssessmentStatus.IN_PROGRESS:  [AssessmentStatus.UNDER_REVIEW, AssessmentStatus.DRAFT,
                                    AssessmentStatus.ARCHIVED],
    AssessmentStatus.UNDER_REVIEW: [AssessmentStatus.COMPLETED, AssessmentStatus.IN_PROGRESS,
                                    AssessmentStatus.ARCHIVED],
    AssessmentStatus.COMPLETED:    [AssessmentStatus.ARCHIVED],
    AssessmentStatus.ARCHIVED:     [AssessmentStatus.DRAFT],   # restore
}


def _iso(value):
    return value.isoformat() if value else None


class AssessmentTemplate(OrganizationModel):
    __tablename__ = "assessment_templates"

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(200), nullable=False)
    description = db.Column(db.Text, nullable=True)
    is_active = db.Column(db.Boolean, nullable=False, default=True)
    created_at = db.Column(db.DateTime(timezone=True), default=lambda: datetime.now(timezone.utc))

    def to_summary(self) -> dict:
        return {"id": self.id, "name": self.name}

    def __repr__(self):
        return f"<AssessmentTemplate {self.id}: {self.name}>"


class Assessment(OrganizationModel):
    """
    The audit instance.

    Mutated only through qms.services.assessment_service (status, metadata,
    team) and qms.services.scoring (overall_score / section_scores snapshot).
    Never hard-deleted by the service layer: "delete" archives.
    """

    __tablename__ = "assessments"

    id = db.Column(db.Integer, primary_key=True)
    title = db.Column(db.String(255), nullable=False)
    description = db.Column(db.Text, nullable=True)
    status = db.Column(
        db.String(20), nullable=False, default=AssessmentStatus.DRAFT, index=True,
        comment="DRAFT | IN_PROGRESS | UNDER_REVIEW | COMPLETED | ARCHIVED",
    )
    audit_type = db.Column(db.String(20), nullable=False, default="INTERNAL")
    scope = db.Column(db.Text, nullable=True)
    objectives = db.Column(db.JSON, nullable=False, default=list)

    lead_auditor_id = db.Column(
        db.Integer,
        db.ForeignKey("users.id", ondelete="RESTRICT"),
        nullable=False,
        index=True,
    )
    template_id = db.Column(
        db.Integer,
        db.ForeignKey("assessment_templates.id", ondelete="SET NULL"),
        nullable=True,
    )
    previous_assessment_id = db.Column(
        db.Integer,
        db.ForeignKey("assessments.id", ondelete="SET NULL"),
        nullable=True,
        comment="Source assessment when this one was cloned for comparison",
    )

    # Score snapshot (written atomically by qms.services.scoring)
    overall_score = db.Column(db.Float, nullable=True)
    section_scores = db.Column(db.JSON, nullable=True)

    scheduled_date = db.Column(db.Date, nullable=True)
    due_date = db.Column(db.Date, nullable=True)
    completed_date = db.Column(db.DateTime(timezone=True), nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), default=lambda: datetime.now(timezone.utc))
    updated_at = db.Column(
        db.DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        onupdate=lambda: datetime.now(timezone.utc),
    )

    lead_auditor = db.relationship("User", foreign_keys=[lead_auditor_id])
    template = db.relationship("AssessmentTemplate")
    previous_assessment = db.relationship("Assessment", remote_side=[id])
    team_members = db.relationship(
        "AssessmentTeamMember", back_populates="assessment",
        cascade="all, delete-orphan", lazy="selectin",
        order_by="AssessmentTeamMember.id",
    )
    responses = db.relationship(
        "QuestionResponse", back_populates="assessment",
        cascade="all, delete-orphan", lazy="dynamic",
    )
    non_conformities = db.relationship(
        "NonConformity", back_populates="assessment",
        cascade="all, delete-orphan", lazy="dynamic",
    )

    @property
    def team_member_ids(self) -> frozenset:
        return frozenset(tm.user_id for tm in self.team_members)

    @property
    def is_locked(self) -> bool:
        return self.status in LOCKED_ASSESSMENT_STATUSES

    def to_dict(self, include_team=True):
        d = {
            "id": self.id,
            "organization_id": self.organization_id,
            "title": self.title,
            "description": self.description,
            "status": self.status,
            "audit_type": self.audit_type,
            "scope": self.scope,
            "objectives": self.objectives or [],
            "lead_auditor_id": self.lead_auditor_id,
            "lead_auditor": self.lead_auditor.to_summary() if self.lead_auditor else None,
            "template": self.template.to_summary() if self.template else None,
            "previous_assessment_id": self.previous_assessment_id,
            "overall_score": self.overall_score,
            "section_scores": self.section_scores,
            "scheduled_date": _iso(self.scheduled_date),
            "due_date": _iso(self.due_date),
            "completed_date": _iso(self.completed_date),
            "is_locked": self.is_locked,
            "created_at": _iso(self.created_at),
            "updated_at": _iso(self.updated_at),
        }
        if include_team:
            d["team_members"] = [tm.to_dict() for tm in self.team_members]
        return d

    def __repr__(self):
        return f"<Assessment {self.id}: {self.title} [{self.status}]>"


class AssessmentTeamMember(db.Model):
    __tablename__ = "assessment_team_members"
    __table_args__ = (
        db.UniqueConstraint("assessment_id", "user_id", name="uq_team_member_assessment_user"),
    )

    id = db.Column(db.Integer, primary_key=True)
    assessment_id = db.Column(
        db.Integer,
        db.ForeignKey("assessments.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    user_id = db.Column(
        db.Integer,
        db.ForeignKey("users.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    role = db.Column(db.String(20), nullable=False, default="AUDITOR")
    created_at = db.Column(db.DateTime(timezone=True), default=lambda: datetime.now(timezone.utc))

    assessment = db.relationship("Assessment", back_populates="team_members")
    user = db.relationship("User")

    def to_dict(self):
        return {
            "id": self.id,
            "user_id": self.user_id,
            "role": self.role,
            "user": self.user.to_summary() if self.user else None,
        }


class QuestionResponse(db.Model):
    """
    One score + justification per (assessment, question).

    section_id is denormalised from the question at write time so score
    aggregation never has to join through AuditQuestion.
    """

    __tablename__ = "question_responses"
    __table_args__ = (
        db.UniqueConstraint("assessment_id", "question_id", name="uq_response_assessment_question"),
        db.Index("ix_response_assessment_draft", "assessment_id", "is_draft"),
    )

    id = db.Column(db.Integer, primary_key=True)
    assessment_id = db.Column(
        db.Integer,
        db.ForeignKey("assessments.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    question_id = db.Column(
        db.Integer,
        db.ForeignKey("audit_questions.id", ondelete="RESTRICT"),
        nullable=False,
    )
    section_id = db.Column(
        db.Integer,
        db.ForeignKey("standard_sections.id", ondelete="SET NULL"),
        nullable=True,
        index=True,
    )
    user_id = db.Column(
        db.Integer,
        db.ForeignKey("users.id", ondelete="SET NULL"),
        nullable=True,
        comment="Last user who modified the response",
    )
    score = db.Column(db.Integer, nullable=True, comment="1 | 2 | 3, NULL when unanswered")
    justification = db.Column(db.Text, nullable=True)
    is_draft = db.Column(db.Boolean, nullable=False, default=True)
    action_proposal = db.Column(db.Text, nullable=True)
    conclusion = db.Column(db.Text, nullable=True)
    created_at = db.Column(db.DateTime(timezone=True), default=lambda: datetime.now(timezone.utc))
    updated_at = db.Column(
        db.DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        onupdate=lambda: datetime.now(timezone.utc),
    )

    assessment = db.relationship("Assessment", back_populates="responses")
    question = db.relationship("AuditQuestion")
    section = db.relationship("StandardSection")
    user = db.relationship("User")
    evidence = db.relationship(
        "Evidence", back_populates="response",
        cascade="all, delete-orphan", lazy="selectin",
    )
    non_conformities = db.relationship("NonConformity", back_populates="response", lazy="dynamic")

    def to_dict(self, include_evidence=False):
        d = {
            "id": self.id,
            "assessment_id": self.assessment_id,
            "question_id": self.question_id,
            "section_id": self.section_id,
            "user_id": self.user_id,
            "score": self.score,
            "justification": self.justification,
            "is_draft": self.is_draft,
            "action_proposal": self.action_proposal,
            "conclusion": self.conclusion,
            "question": self.question.to_summary() if self.question else None,
            "section": self.section.to_summary() if self.section else None,
            "updated_at": _iso(self.updated_at),
        }
        if include_evidence:
            d["evidence"] = [e.to_dict() for e in self.evidence]
        return d

    def __repr__(self):
        return f"<QuestionResponse a={self.assessment_id} q={self.question_id} score={self.score}>"


class Evidence(db.Model):
    __tablename__ = "evidence"

    id = db.Column(db.Integer, primary_key=True)
    response_id = db.Column(
        db.Integer,
        db.ForeignKey("question_responses.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    uploaded_by_id = db.Column(
        db.Integer,
        db.ForeignKey("users.id", ondelete="SET NULL"),
        nullable=True,
    )
    type = db.Column(db.String(20), nullable=False, default="DOCUMENT", comment="DOCUMENT | IMAGE | LINK")
    file_name = db.Column(db.String(255), nullable=True)
    file_url = db.Column(db.String(1000), nullable=True)
    file_size = db.Column(db.Integer, nullable=True)
    mime_type = db.Column(db.String(100), nullable=True)
    description = db.Column(db.Text, nullable=True)
    uploaded_at = db.Column(db.DateTime(timezone=True), default=lambda: datetime.now(timezone.utc))

    response = db.relationship("QuestionResponse", back_populates="evidence")

    def to_dict(self):
        return {
            "id": self.id,
            "type": self.type,
            "file_name": self.file_name,
            "file_url": self.file_url,
            "file_size": self.file_size,
            "mime_type": self.mime_type,
            "description": self.description,
            "uploaded_by_id": self.uploaded_by_id,
            "uploaded_at": _iso(self.uploaded_at),
        }
