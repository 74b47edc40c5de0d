"""Rules for which role combinations a single identity may hold.

Every function here is pure: no store access, no exceptions for bad input.
Denials come back as ``RoleDecision(allowed=False, reason=...)``.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Iterable

from app.models.user_role import ROLE_NAMES

ADMIN = "admin"
LOAN_OFFICER = "loan_officer"
CLIENT = "client"

OPERATIONS = ("add", "remove")

LEGAL_ROLE_SETS = (
    frozenset(),
    frozenset({CLIENT}),
    frozenset({LOAN_OFFICER}),
    frozenset({ADMIN}),
    frozenset({ADMIN, LOAN_OFFICER}),
)

ROLE_LABELS = {
    ADMIN: "Admin",
    LOAN_OFFICER: "Loan Officer",
    CLIENT: "Client",
}


@dataclass(frozen=True)
class RoleDecision:
    allowed: bool
    reason: str


@dataclass(frozen=True)
class AllowedRoles:
    can_add: list[str]
    can_remove: list[str]
    description: str


def normalize_roles(roles: Iterable[str] | None) -> frozenset[str]:
    """Keep known role names only; anything else is ignored."""
    if not roles:
        return frozenset()
    return frozenset(str(role) for role in roles if str(role) in ROLE_NAMES)


def evaluate(
    current_roles: Iterable[str] | None,
    operation: str,
    target_role: str,
    *,
    is_super_admin: bool = False,
) -> RoleDecision:
    roles = normalize_roles(current_roles)
    if operation not in OPERATIONS:
        return RoleDecision(False, f"Invalid operation '{operation}'")
    if target_role not in ROLE_NAMES:
        return RoleDecision(False, f"Unknown role '{target_role}'")
    label = ROLE_LABELS[target_role]

    if is_super_admin:
        return RoleDecision(True, "Super Admin can have any role combination")

    if operation == "remove":
        if target_role not in roles:
            return RoleDecision(False, f"User does not hold the {label} role")
        return RoleDecision(True, f"{label} role can be removed")

    if target_role in roles:
        return RoleDecision(True, f"User already holds the {label} role")

    if CLIENT in roles:
        return RoleDecision(
            False,
            f"Cannot add {label} role: a client can only hold the client role. "
            "Remove the Client role first.",
        )

    if ADMIN in roles:
        if target_role == CLIENT:
            return RoleDecision(
                False,
                "Cannot add Client role: an admin cannot also be a client. "
                "Remove the Admin role first.",
            )
        return RoleDecision(True, "Admin can also act as a loan officer")

    if LOAN_OFFICER in roles:
        if target_role == ADMIN:
            return RoleDecision(True, "Loan Officer can be promoted to Admin")
        return RoleDecision(
            False,
            "Cannot add Client role: a loan officer cannot also be a client. "
            "Remove the Loan Officer role first.",
        )

    return RoleDecision(True, f"No roles assigned; {label} role can be added")


def _describe(roles: frozenset[str], is_super_admin: bool) -> str:
    if is_super_admin:
        return "Super Admin can have any role combination"
    if CLIENT in roles:
        return "Client can only have the client role"
    if ADMIN in roles:
        return "Admin can be admin + loan officer, but cannot be client"
    if LOAN_OFFICER in roles:
        return "Loan Officer holds a single role and may be promoted to admin"
    return "No roles assigned - can add any role"


def allowed_roles(
    current_roles: Iterable[str] | None,
    *,
    is_super_admin: bool = False,
) -> AllowedRoles:
    roles = normalize_roles(current_roles)
    can_add = [
        role
        for role in ROLE_NAMES
        if role not in roles and evaluate(roles, "add", role, is_super_admin=is_super_admin).allowed
    ]
    can_remove = [
        role
        for role in ROLE_NAMES
        if role in roles and evaluate(roles, "remove", role, is_super_admin=is_super_admin).allowed
    ]
    return AllowedRoles(
        can_add=can_add,
        can_remove=can_remove,
        description=_describe(roles, is_super_admin),
    )


def validate_role_hierarchy(roles: Iterable[str] | None, *, is_super_admin: bool = False) -> bool:
    """Whether a whole role set is a legal end state."""
    if is_super_admin:
        return True
    return normalize_roles(roles) in LEGAL_ROLE_SETS


def is_super_admin_email(email: str | None, super_admin_emails: Iterable[str]) -> bool:
    if not email:
        return False
    normalized = email.strip().lower()
    return any(normalized == candidate.strip().lower() for candidate in super_admin_emails)
