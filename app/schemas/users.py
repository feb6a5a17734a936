"""Pydantic schemas for user management: write payloads, filters and read models."""

from datetime import datetime
from typing import Literal

from pydantic import BaseModel, Field, field_validator

from app.core.security import (
    PASSWORD_MAX_LEN,
    PASSWORD_MIN_LEN,
    USERNAME_MAX_LEN,
    USERNAME_MIN_LEN,
)

UserStatus = Literal["active", "disabled"]


def _blank_to_none(value: str | None) -> str | None:
    """Blank identity values are stored as NULL so they never collide."""
    if value is None:
        return None
    value = value.strip()
    return value or None


def _validate_email(value: str | None) -> str | None:
    value = _blank_to_none(value)
    if value is not None and ("@" not in value or value.startswith("@") or value.endswith("@")):
        raise ValueError(f"email must be a valid address, got {value!r}")
    return value


class UserCreate(BaseModel):
    """Payload for creating a user. Password is plaintext here and hashed before storage."""

    username: str = Field(..., min_length=USERNAME_MIN_LEN, max_length=USERNAME_MAX_LEN)
    password: str = Field(..., min_length=PASSWORD_MIN_LEN, max_length=PASSWORD_MAX_LEN)
    nickname: str = Field(default="", max_length=64)
    phone: str | None = Field(default=None, max_length=32)
    email: str | None = Field(default=None, max_length=255)
    status: UserStatus = "active"
    dept_id: int | None = None
    role_ids: list[int] = Field(default_factory=list)
    post_ids: list[int] = Field(default_factory=list)

    @field_validator("username")
    @classmethod
    def strip_username(cls, v: str) -> str:
        v = v.strip()
        if len(v) < USERNAME_MIN_LEN:
            raise ValueError(f"username must be at least {USERNAME_MIN_LEN} characters")
        return v

    @field_validator("phone")
    @classmethod
    def normalize_phone(cls, v: str | None) -> str | None:
        return _blank_to_none(v)

    @field_validator("email")
    @classmethod
    def normalize_email(cls, v: str | None) -> str | None:
        return _validate_email(v)


class UserUpdate(BaseModel):
    """
    Partial update of a user's profile fields.

    Only fields present in the request are written; the service reads them
    with model_dump(exclude_unset=True). An explicit null clears phone, email
    or dept_id. Roles are never changed here. post_ids replaces the user's
    posts only when supplied.
    """

    username: str | None = Field(default=None, min_length=USERNAME_MIN_LEN, max_length=USERNAME_MAX_LEN)
    nickname: str | None = Field(default=None, max_length=64)
    phone: str | None = Field(default=None, max_length=32)
    email: str | None = Field(default=None, max_length=255)
    status: UserStatus | None = None
    dept_id: int | None = None
    post_ids: list[int] | None = None

    @field_validator("username")
    @classmethod
    def strip_username(cls, v: str | None) -> str | None:
        if v is None:
            return v
        v = v.strip()
        if len(v) < USERNAME_MIN_LEN:
            raise ValueError(f"username must be at least {USERNAME_MIN_LEN} characters")
        return v

    @field_validator("phone")
    @classmethod
    def normalize_phone(cls, v: str | None) -> str | None:
        return _blank_to_none(v)

    @field_validator("email")
    @classmethod
    def normalize_email(cls, v: str | None) -> str | None:
        return _validate_email(v)


class PasswordReset(BaseModel):
    password: str = Field(..., min_length=PASSWORD_MIN_LEN, max_length=PASSWORD_MAX_LEN)


class StatusChange(BaseModel):
    status: UserStatus


class RoleAssignmentRequest(BaseModel):
    """Full replacement set of role ids; an empty list removes every role."""

    role_ids: list[int] = Field(default_factory=list)


class UserFilter(BaseModel):
    """Optional list filters; all are combined with AND."""

    username: str | None = None
    phone: str | None = None
    status: UserStatus | None = None
    dept_id: int | None = Field(
        default=None,
        description="Department id; matches the department and all of its descendants.",
    )


class UserOut(BaseModel):
    """User as returned to the console (never includes the password hash)."""

    model_config = {"from_attributes": True}

    id: int
    username: str
    nickname: str
    phone: str | None = None
    email: str | None = None
    status: UserStatus
    dept_id: int | None = None
    created_by: str = ""
    updated_by: str = ""
    created_at: datetime | None = None
    updated_at: datetime | None = None


class RoleOut(BaseModel):
    model_config = {"from_attributes": True}

    id: int
    name: str
    role_key: str
    data_scope: str
    is_admin: bool
    status: str


class AssignableRole(RoleOut):
    """Role entry in the authorization view, flagged when the user holds it."""

    assigned: bool = False


class PostOut(BaseModel):
    model_config = {"from_attributes": True}

    id: int
    post_code: str
    post_name: str
    status: str


class UserOption(BaseModel):
    model_config = {"from_attributes": True}

    id: int
    username: str
    nickname: str


class UserDetailResponse(BaseModel):
    """
    Single-user detail. user/role_ids/post_ids are empty for the blank new-user
    form; roles/posts are only filled when associations are requested.
    """

    user: UserOut | None = None
    role_ids: list[int] = Field(default_factory=list)
    post_ids: list[int] = Field(default_factory=list)
    roles: list[RoleOut] | None = None
    posts: list[PostOut] | None = None


class UsersListResponse(BaseModel):
    users: list[UserOut]
    total: int


class UserRolesResponse(BaseModel):
    """Authorization view: the user plus every role the caller may assign."""

    user: UserOut
    roles: list[AssignableRole]


class MutationResponse(BaseModel):
    """Result of a write: rows affected, and the new id for creates."""

    affected: int
    user_id: int | None = None


class DepartmentNode(BaseModel):
    id: int
    parent_id: int | None = None
    name: str
    children: list["DepartmentNode"] = Field(default_factory=list)


DepartmentNode.model_rebuild()
