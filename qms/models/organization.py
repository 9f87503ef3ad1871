"""
Organization & User models — the tenant boundary and its members.

Every other entity is scoped to exactly one Organization, directly through
``organization_id`` or transitively through its Assessment.

Users carry exactly one role from a fixed set. Deactivation is a soft flag;
users are never deleted because responses, NCR verifications and audit rows
reference them.
"""

from datetime import datetime, timezone

from qms.models import db
from qms.models.base import OrganizationModel


class Role:
    """User role constants."""

    SYSTEM_ADMIN = "SYSTEM_ADMIN"
    QUALITY_MANAGER = "QUALITY_MANAGER"
    INTERNAL_AUDITOR = "INTERNAL_AUDITOR"
    DEPARTMENT_HEAD = "DEPARTMENT_HEAD"
    VIEWER = "VIEWER"


USER_ROLES = frozenset({
    Role.SYSTEM_ADMIN,
    Role.QUALITY_MANAGER,
    Role.INTERNAL_AUDITOR,
    Role.DEPARTMENT_HEAD,
    Role.VIEWER,
})


class Organization(db.Model):
    __tablename__ = "organizations"

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(200), nullable=False)
    slug = db.Column(db.String(100), unique=True, nullable=False)
    is_active = db.Column(db.Boolean, nullable=False, default=True)
    created_at = db.Column(db.DateTime(timezone=True), default=lambda: datetime.now(timezone.utc))
    updated_at = db.Column(
        db.DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        onupdate=lambda: datetime.now(timezone.utc),
    )

    users = db.relationship("User", back_populates="organization", lazy="dynamic")

    def to_dict(self):
        return {
            "id": self.id,
            "name": self.name,
            "slug": self.slug,
            "is_active": self.is_active,
            "created_at": self.created_at.isoformat() if self.created_at else None,
        }

    def __repr__(self):
        return f"<Organization {self.id}: {self.slug}>"


class User(OrganizationModel):
    __tablename__ = "users"

    id = db.Column(db.Integer, primary_key=True)
    email = db.Column(db.String(255), unique=True, nullable=False)
    first_name = db.Column(db.String(100), nullable=False, default="")
    last_name = db.Column(db.String(100), nullable=False, default="")
    role = db.Column(
        db.String(30), nullable=False, default=Role.VIEWER,
        comment="SYSTEM_ADMIN | QUALITY_MANAGER | INTERNAL_AUDITOR | DEPARTMENT_HEAD | VIEWER",
    )
    is_active = db.Column(db.Boolean, nullable=False, default=True)
    last_login_at = db.Column(db.DateTime(timezone=True), nullable=True)
    created_at = db.Column(db.DateTime(timezone=True), default=lambda: datetime.now(timezone.utc))

    organization = db.relationship("Organization", back_populates="users")

    @property
    def full_name(self) -> str:
        return f"{self.first_name} {self.last_name}".strip() or self.email

    def to_summary(self) -> dict:
        """Compact form embedded in assessment / action payloads."""
        return {
            "id": self.id,
            "first_name": self.first_name,
            "last_name": self.last_name,
            "full_name": self.full_name,
            "email": self.email,
        }

    def to_dict(self):
        return {
            **self.to_summary(),
            "organization_id": self.organization_id,
            "role": self.role,
            "is_active": self.is_active,
            "last_login_at": self.last_login_at.isoformat() if self.last_login_at else None,
            "created_at": self.created_at.isoformat() if self.created_at else None,
        }

    def __repr__(self):
        return f"<User {self.id}: {self.email} ({self.role})>"
