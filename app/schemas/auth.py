"""Request/response schemas for auth endpoints and the acting principal."""

from typing import Literal

from pydantic import BaseModel, Field

DataScope = Literal["all", "custom", "dept", "dept_and_child", "self"]


class LoginRequest(BaseModel):
    """Credentials for login."""

    username: str = Field(..., min_length=1, max_length=64, description="Username")
    password: str = Field(..., min_length=1, max_length=72, description="Password")


class TokenResponse(BaseModel):
    """JWT access token returned after successful login."""

    access_token: str = Field(..., description="JWT access token")
    token_type: str = Field(default="bearer", description="Token type")


class ScopeGrant(BaseModel):
    """Data-scope policy contributed by one of the principal's roles."""

    model_config = {"frozen": True}

    role_id: int
    data_scope: DataScope


class Principal(BaseModel):
    """
    The acting user, passed explicitly into every user-management operation.

    scopes: one grant per active role; the union of them is the principal's
    data scope. permissions: permission strings from those roles.
    """

    model_config = {"frozen": True}

    id: int
    username: str
    dept_id: int | None = None
    is_superuser: bool = False
    scopes: tuple[ScopeGrant, ...] = ()
    permissions: frozenset[str] = frozenset()
