"""Pydantic request/response schemas."""

from app.schemas.auth import LoginRequest, Principal, ScopeGrant, TokenResponse
from app.schemas.users import (
    AssignableRole,
    DepartmentNode,
    MutationResponse,
    PasswordReset,
    PostOut,
    RoleAssignmentRequest,
    RoleOut,
    StatusChange,
    UserCreate,
    UserDetailResponse,
    UserFilter,
    UserOption,
    UserOut,
    UserRolesResponse,
    UsersListResponse,
    UserUpdate,
)

__all__ = [
    "AssignableRole",
    "DepartmentNode",
    "LoginRequest",
    "MutationResponse",
    "PasswordReset",
    "PostOut",
    "Principal",
    "RoleAssignmentRequest",
    "RoleOut",
    "ScopeGrant",
    "StatusChange",
    "TokenResponse",
    "UserCreate",
    "UserDetailResponse",
    "UserFilter",
    "UserOption",
    "UserOut",
    "UserRolesResponse",
    "UsersListResponse",
    "UserUpdate",
]
