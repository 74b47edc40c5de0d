from datetime import datetime
from enum import Enum
from uuid import UUID

from pydantic import BaseModel, ConfigDict


class RoleName(str, Enum):
    ADMIN = "admin"
    LOAN_OFFICER = "loan_officer"
    CLIENT = "client"


class RoleAssignmentRequest(BaseModel):
    model_config = ConfigDict(use_enum_values=True)

    role: RoleName


class UserRoleDTO(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    role: str
    created_at: datetime | None = None


class AllowedRolesDTO(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    can_add: list[str]
    can_remove: list[str]
    description: str


class UserRolesResponse(BaseModel):
    user_id: UUID
    roles: list[UserRoleDTO]


class UserRoleManagementResponse(BaseModel):
    user_id: UUID
    roles: list[UserRoleDTO]
    allowed: AllowedRolesDTO
    is_super_admin: bool = False
