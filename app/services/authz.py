from __future__ import annotations

from typing import Iterable, Set, TYPE_CHECKING

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.permissions import BASELINE_PERMISSIONS, ROLE_PERMISSIONS, PermissionCode
from app.models.user_role import UserRole

if TYPE_CHECKING:
    from app.api.deps import CurrentUser


async def load_roles(db: AsyncSession, user_id) -> list[str]:
    stmt = select(UserRole.role).where(UserRole.user_id == user_id)
    result = await db.execute(stmt)
    return sorted({str(role) for role in result.scalars().all()})


def permissions_for_roles(roles: Iterable[str]) -> Set[str]:
    """Union of role buckets plus the baseline every identity gets."""
    permissions: set[str] = set(BASELINE_PERMISSIONS)
    for role in roles:
        permissions.update(ROLE_PERMISSIONS.get(role, []))
    return permissions


async def check_permission(
    user: "CurrentUser",
    permission_code: PermissionCode | str,
    db: AsyncSession | None = None,
) -> bool:
    target = permission_code.value if isinstance(permission_code, PermissionCode) else str(permission_code)
    return target in permissions_for_roles(user.roles)


def has_permission(user: "CurrentUser", permission_code: PermissionCode | str) -> bool:
    target = permission_code.value if isinstance(permission_code, PermissionCode) else str(permission_code)
    return target in permissions_for_roles(user.roles)
