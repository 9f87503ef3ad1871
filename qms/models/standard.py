"""
ISO 9001:2015 reference data — StandardSection tree and AuditQuestion.

Immutable after seeding (see qms.services.standards_service.seed_standard).

Architecture:
    StandardSection ──1:N──▶ StandardSection   (parent_id, clause hierarchy)
    StandardSection ──1:N──▶ AuditQuestion

Inactive questions are excluded from progress totals, but responses that
already reference them remain valid and keep counting toward the scores
of the assessments they belong to.
"""

from datetime import datetime, timezone

from qms.models import db


class StandardSection(db.Model):
    """A clause of the standard, e.g. "4" or "4.1"."""

    __tablename__ = "standard_sections"

    id = db.Column(db.Integer, primary_key=True)
    parent_id = db.Column(
        db.Integer,
        db.ForeignKey("standard_sections.id", ondelete="CASCADE"),
        nullable=True,
        index=True,
    )
    section_number = db.Column(db.String(20), unique=True, nullable=False)
    title = db.Column(db.String(255), nullable=False)
    description = db.Column(db.Text, nullable=True)
    order = db.Column(db.Integer, nullable=False, default=0)
    created_at = db.Column(db.DateTime(timezone=True), default=lambda: datetime.now(timezone.utc))

    parent = db.relationship("StandardSection", remote_side=[id], backref=db.backref("children", lazy="selectin"))
    questions = db.relationship("AuditQuestion", back_populates="section", lazy="dynamic")

    def to_summary(self) -> dict:
        return {
            "id": self.id,
            "section_number": self.section_number,
            "title": self.title,
        }

    def to_dict(self):
        return {
            **self.to_summary(),
            "parent_id": self.parent_id,
            "description": self.description,
            "order": self.order,
        }

    def __repr__(self):
        return f"<StandardSection {self.section_number}>"


class AuditQuestion(db.Model):
    __tablename__ = "audit_questions"

    id = db.Column(db.Integer, primary_key=True)
    section_id = db.Column(
        db.Integer,
        db.ForeignKey("standard_sections.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    question_number = db.Column(db.String(30), unique=True, nullable=False)
    question_text = db.Column(db.Text, nullable=False)
    guidance = db.Column(db.Text, nullable=True)
    score1_criteria = db.Column(db.Text, nullable=True)
    score2_criteria = db.Column(db.Text, nullable=True)
    score3_criteria = db.Column(db.Text, nullable=True)
    standard_reference = db.Column(db.String(100), nullable=True)
    order = db.Column(db.Integer, nullable=False, default=0)
    is_active = db.Column(db.Boolean, nullable=False, default=True, index=True)
    created_at = db.Column(db.DateTime(timezone=True), default=lambda: datetime.now(timezone.utc))

    section = db.relationship("StandardSection", back_populates="questions")

    def to_summary(self) -> dict:
        return {
            "id": self.id,
            "question_number": self.question_number,
            "question_text": self.question_text,
        }

    def to_dict(self):
        return {
            **self.to_summary(),
            "section_id": self.section_id,
            "guidance": self.guidance,
            "score1_criteria": self.score1_criteria,
            "score2_criteria": self.score2_criteria,
            "score3_criteria": self.score3_criteria,
            "standard_reference": self.standard_reference,
            "order": self.order,
            "is_active": self.is_active,
        }

    def __repr__(self):
        return f"<AuditQuestion {self.question_number}>"
