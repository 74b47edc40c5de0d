from uuid import UUID

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from app.api import deps
from app.core.permissions import PermissionCode
from app.db.session import get_db
from app.schemas.roles import (
    AllowedRolesDTO,
    RoleAssignmentRequest,
    RoleName,
    UserRoleDTO,
    UserRoleManagementResponse,
    UserRolesResponse,
)
from app.services import role_assignment
from app.services.store_guard import guarded

router = APIRouter(tags=["roles"])


async def _management_view(db: AsyncSession, user_id: UUID) -> UserRoleManagementResponse:
    rows, allowed, super_admin = await guarded(
        role_assignment.describe_user_roles(db, user_id), operation="roles.describe"
    )
    return UserRoleManagementResponse(
        user_id=user_id,
        roles=[UserRoleDTO.model_validate(row) for row in rows],
        allowed=AllowedRolesDTO(
            can_add=allowed.can_add,
            can_remove=allowed.can_remove,
            description=allowed.description,
        ),
        is_super_admin=super_admin,
    )


@router.get("/me/roles", response_model=UserRolesResponse, summary="Read the current user's roles")
async def read_my_roles(
    current_user: deps.CurrentUser = Depends(deps.require_permission(PermissionCode.ROLE_VIEW_OWN)),
    db: AsyncSession = Depends(get_db),
) -> UserRolesResponse:
    rows = await guarded(role_assignment.list_user_roles(db, current_user.id), operation="roles.list")
    return UserRolesResponse(
        user_id=current_user.id,
        roles=[UserRoleDTO.model_validate(row) for row in rows],
    )


@router.get(
    "/admin/users/{user_id}/roles",
    response_model=UserRoleManagementResponse,
    summary="Current roles and the operations the hierarchy permits",
)
async def read_user_roles(
    user_id: UUID,
    current_user: deps.CurrentUser = Depends(deps.require_permission(PermissionCode.ROLE_MANAGE)),
    db: AsyncSession = Depends(get_db),
) -> UserRoleManagementResponse:
    return await _management_view(db, user_id)


@router.post(
    "/admin/users/{user_id}/roles",
    response_model=UserRoleManagementResponse,
    summary="Grant a role, subject to the role hierarchy",
)
async def assign_user_role(
    user_id: UUID,
    payload: RoleAssignmentRequest,
    current_user: deps.CurrentUser = Depends(deps.require_permission(PermissionCode.ROLE_MANAGE)),
    db: AsyncSession = Depends(get_db),
) -> UserRoleManagementResponse:
    await guarded(
        role_assignment.assign_role(db, user_id, payload.role, actor_id=current_user.id),
        operation="roles.assign",
    )
    return await _management_view(db, user_id)


@router.delete(
    "/admin/users/{user_id}/roles/{role}",
    response_model=UserRoleManagementResponse,
    summary="Revoke a role, subject to the role hierarchy",
)
async def remove_user_role(
    user_id: UUID,
    role: RoleName,
    current_user: deps.CurrentUser = Depends(deps.require_permission(PermissionCode.ROLE_MANAGE)),
    db: AsyncSession = Depends(get_db),
) -> UserRoleManagementResponse:
    await guarded(
        role_assignment.remove_role(db, user_id, role.value, actor_id=current_user.id),
        operation="roles.remove",
    )
    return await _management_view(db, user_id)
