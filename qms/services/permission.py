"""
Access Gate — role/relationship authorization for the workflow core.

Pure predicates over a small context; nothing here touches the database,
so the gate is unit-testable without persistence.

    can_manage  create/update/assign NCRs, corrective actions, responses;
                transition NCR and action status; generate NCRs
    can_verify  verify a corrective action, generate a report
    can_delete  delete NCR / action / assessment (archive)
    can_edit_assessment   update assessment metadata and status
    can_create_assessment create or clone an assessment

Every mutating service first resolves organization scope (NotFoundError on
mismatch) and only then consults one of these predicates.

Usage:
    from qms.services.permission import AccessContext, can_manage, check_permission

    ctx = AccessContext.for_assessment(assessment)
    check_permission(can_manage, ctx, caller, "You do not have permission to create non-conformities")
"""

from collections.abc import Callable
from dataclasses import dataclass, field

from qms.core.exceptions import AuthorizationError, ValidationError
from qms.models.organization import USER_ROLES, Role

# Roles that may act on any assessment inside their organization.
ELEVATED_ROLES = frozenset({Role.SYSTEM_ADMIN, Role.QUALITY_MANAGER})

ASSESSMENT_CREATOR_ROLES = frozenset({Role.SYSTEM_ADMIN, Role.QUALITY_MANAGER, Role.INTERNAL_AUDITOR})


@dataclass(frozen=True)
class Caller:
    """Identity of whoever invokes a workflow operation."""

    user_id: int
    role: str
    organization_id: int

    def __post_init__(self):
        if self.role not in USER_ROLES:
            raise ValidationError(f"Unknown role: {self.role}", details={"role": self.role})


@dataclass(frozen=True)
class AccessContext:
    """Relationship facts about one assessment."""

    lead_auditor_id: int | None
    team_member_ids: frozenset = field(default_factory=frozenset)

    @classmethod
    def for_assessment(cls, assessment) -> "AccessContext":
        return cls(
            lead_auditor_id=assessment.lead_auditor_id,
            team_member_ids=frozenset(assessment.team_member_ids),
        )

    def is_lead_auditor(self, user_id: int) -> bool:
        return self.lead_auditor_id is not None and self.lead_auditor_id == user_id

    def is_team_member(self, user_id: int) -> bool:
        return user_id in self.team_member_ids


def can_manage(ctx: AccessContext, user_id: int, role: str) -> bool:
    if role in ELEVATED_ROLES:
        return True
    if ctx.is_lead_auditor(user_id):
        return True
    return ctx.is_team_member(user_id) and role == Role.INTERNAL_AUDITOR


def can_verify(ctx: AccessContext, user_id: int, role: str) -> bool:
    # Team-member-only auditors never verify.
    return role in ELEVATED_ROLES or ctx.is_lead_auditor(user_id)


def can_delete(ctx: AccessContext, user_id: int, role: str) -> bool:
    return role in ELEVATED_ROLES


def can_edit_assessment(ctx: AccessContext, user_id: int, role: str) -> bool:
    return role in ELEVATED_ROLES or ctx.is_lead_auditor(user_id)


def can_create_assessment(role: str) -> bool:
    return role in ASSESSMENT_CREATOR_ROLES


def check_permission(
    predicate: Callable[[AccessContext, int, str], bool],
    ctx: AccessContext,
    caller: Caller,
    message: str,
) -> None:
    """Raise AuthorizationError with *message* unless *predicate* allows the caller."""
    if not predicate(ctx, caller.user_id, caller.role):
        raise AuthorizationError(message)
