from __future__ import annotations

import logging
from datetime import datetime, timezone
from uuid import UUID

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.settings import settings
from app.models.profile import Profile
from app.models.user_role import UserRole
from app.services import role_hierarchy
from app.services.audit import record_audit_event
from app.services.workflow_errors import RoleOperationDenied

logger = logging.getLogger(__name__)

REVIEWER_ROLES = (role_hierarchy.ADMIN, role_hierarchy.LOAN_OFFICER)


def _lock_key(user_id) -> int:
    return int.from_bytes(UUID(str(user_id)).bytes[:8], "big", signed=True)


async def _lock_user_roles(db: AsyncSession, user_id) -> None:
    # Transaction-scoped; released on commit or rollback.
    await db.execute(select(func.pg_advisory_xact_lock(_lock_key(user_id))))


async def list_user_roles(db: AsyncSession, user_id) -> list[UserRole]:
    stmt = select(UserRole).where(UserRole.user_id == user_id).order_by(UserRole.created_at.asc())
    result = await db.execute(stmt)
    return list(result.scalars().all())


async def current_role_names(db: AsyncSession, user_id) -> list[str]:
    return sorted({row.role for row in await list_user_roles(db, user_id)})


async def is_super_admin(db: AsyncSession, user_id) -> bool:
    if not settings.super_admin_emails:
        return False
    result = await db.execute(select(Profile).where(Profile.id == user_id))
    profile = result.scalar_one_or_none()
    email = profile.email if profile is not None else None
    return role_hierarchy.is_super_admin_email(email, settings.super_admin_emails)


async def reviewer_pool(db: AsyncSession) -> list[UUID]:
    stmt = select(UserRole.user_id).where(UserRole.role.in_(REVIEWER_ROLES)).distinct()
    result = await db.execute(stmt)
    return list(result.scalars().all())


async def describe_user_roles(
    db: AsyncSession, user_id
) -> tuple[list[UserRole], role_hierarchy.AllowedRoles, bool]:
    rows = await list_user_roles(db, user_id)
    super_admin = await is_super_admin(db, user_id)
    allowed = role_hierarchy.allowed_roles(
        [row.role for row in rows], is_super_admin=super_admin
    )
    return rows, allowed, super_admin


async def _deny(db: AsyncSession, reason: str, *, user_id, operation: str, role: str) -> None:
    await db.rollback()
    logger.info(
        "Role operation denied",
        extra={"target_user_id": str(user_id), "operation": operation, "role": role, "reason": reason},
    )
    raise RoleOperationDenied(
        reason,
        details={"user_id": str(user_id), "operation": operation, "role": role},
    )


async def assign_role(db: AsyncSession, user_id, role: str, *, actor_id) -> list[str]:
    """Grant ``role`` after the hierarchy check; a role already held is a no-op."""
    await _lock_user_roles(db, user_id)
    held = set(await current_role_names(db, user_id))
    super_admin = await is_super_admin(db, user_id)

    decision = role_hierarchy.evaluate(held, "add", role, is_super_admin=super_admin)
    if not decision.allowed:
        await _deny(db, decision.reason, user_id=user_id, operation="add", role=role)
    if role in held:
        await db.commit()
        return sorted(held)

    resulting = held | {role}
    if not role_hierarchy.validate_role_hierarchy(resulting, is_super_admin=super_admin):
        await _deny(
            db,
            "Resulting role combination is not permitted",
            user_id=user_id,
            operation="add",
            role=role,
        )

    db.add(UserRole(user_id=user_id, role=role, created_at=datetime.now(timezone.utc)))
    await db.commit()
    record_audit_event(
        "user_role.assign",
        actor_id=actor_id,
        resource_type="user_role",
        resource_id=user_id,
        old_value={"roles": sorted(held)},
        new_value={"roles": sorted(resulting)},
    )
    return sorted(resulting)


async def remove_role(db: AsyncSession, user_id, role: str, *, actor_id) -> list[str]:
    await _lock_user_roles(db, user_id)
    rows = await list_user_roles(db, user_id)
    held = {row.role for row in rows}
    super_admin = await is_super_admin(db, user_id)

    decision = role_hierarchy.evaluate(held, "remove", role, is_super_admin=super_admin)
    if not decision.allowed:
        await _deny(db, decision.reason, user_id=user_id, operation="remove", role=role)

    resulting = held - {role}
    if not role_hierarchy.validate_role_hierarchy(resulting, is_super_admin=super_admin):
        await _deny(
            db,
            "Resulting role combination is not permitted",
            user_id=user_id,
            operation="remove",
            role=role,
        )

    for row in rows:
        if row.role == role:
            await db.delete(row)
    await db.commit()
    record_audit_event(
        "user_role.remove",
        actor_id=actor_id,
        resource_type="user_role",
        resource_id=user_id,
        old_value={"roles": sorted(held)},
        new_value={"roles": sorted(resulting)},
    )
    return sorted(resulting)
