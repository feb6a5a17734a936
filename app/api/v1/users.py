"""User management endpoints: list, detail, create, update, delete, password, status, roles."""

from typing import Annotated

from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy.orm import Session

from app.api.v1.auth import get_current_user
from app.core.config import settings
from app.core.database import get_db
from app.core.exceptions import (
    ConflictError,
    InternalError,
    NotFoundError,
    OperationRejectedError,
    PermissionDeniedError,
    UserCenterError,
)
from app.schemas.auth import Principal
from app.schemas.users import (
    DepartmentNode,
    MutationResponse,
    PasswordReset,
    RoleAssignmentRequest,
    StatusChange,
    UserCreate,
    UserDetailResponse,
    UserFilter,
    UserOption,
    UserOut,
    UserRolesResponse,
    UsersListResponse,
    UserStatus,
    UserUpdate,
)
from app.services import role_assignment, user_records
from app.services.departments import department_tree

router = APIRouter()

_STATUS_BY_ERROR: tuple[tuple[type[UserCenterError], int], ...] = (
    (ConflictError, 409),
    (PermissionDeniedError, 403),
    (OperationRejectedError, 400),
    (NotFoundError, 404),
    (InternalError, 500),
)


def _http_error(err: UserCenterError) -> HTTPException:
    """Map a service error to an HTTPException carrying its message."""
    for error_type, status_code in _STATUS_BY_ERROR:
        if isinstance(err, error_type):
            return HTTPException(status_code=status_code, detail=err.message)
    return HTTPException(status_code=500, detail=err.message)


def _parse_user_ids(raw: str) -> list[int]:
    """Parse '1,2,3' into ids; 422 on anything that is not a positive integer list."""
    parts = [p.strip() for p in raw.split(",") if p.strip()]
    if not parts:
        raise HTTPException(status_code=422, detail="At least one user id is required.")
    if len(parts) > settings.MAX_DELETE_IDS:
        raise HTTPException(
            status_code=422,
            detail=f"At most {settings.MAX_DELETE_IDS} users can be deleted per request.",
        )
    try:
        ids = [int(p) for p in parts]
    except ValueError as e:
        raise HTTPException(status_code=422, detail="User ids must be integers.") from e
    if any(i < 1 for i in ids):
        raise HTTPException(status_code=422, detail="User ids must be positive.")
    return ids


@router.get("", response_model=UsersListResponse)
def list_users(
    db: Annotated[Session, Depends(get_db)],
    principal: Annotated[Principal, Depends(get_current_user)],
    username: Annotated[str | None, Query(max_length=64)] = None,
    phone: Annotated[str | None, Query(max_length=32)] = None,
    status: Annotated[UserStatus | None, Query()] = None,
    dept_id: Annotated[int | None, Query()] = None,
) -> UsersListResponse:
    """
    List users visible to the caller. dept_id matches the department and all
    of its descendants; username and phone are substring filters.
    """
    filters = UserFilter(username=username, phone=phone, status=status, dept_id=dept_id)
    try:
        users = user_records.list_users(db, principal, filters)
    except UserCenterError as e:
        raise _http_error(e) from e
    return UsersListResponse(users=[UserOut.model_validate(u) for u in users], total=len(users))


@router.get("/options", response_model=list[UserOption])
def list_user_options(
    db: Annotated[Session, Depends(get_db)],
    principal: Annotated[Principal, Depends(get_current_user)],
) -> list[UserOption]:
    """Active users for select boxes."""
    try:
        return user_records.list_user_options(db, principal)
    except UserCenterError as e:
        raise _http_error(e) from e


@router.get("/dept-tree", response_model=list[DepartmentNode])
def get_department_tree(
    db: Annotated[Session, Depends(get_db)],
    principal: Annotated[Principal, Depends(get_current_user)],
) -> list[DepartmentNode]:
    """Department tree limited to the caller's data scope."""
    try:
        return department_tree(db, principal)
    except UserCenterError as e:
        raise _http_error(e) from e


@router.get("/new", response_model=UserDetailResponse)
def get_new_user_form(
    db: Annotated[Session, Depends(get_db)],
    principal: Annotated[Principal, Depends(get_current_user)],
) -> UserDetailResponse:
    """Roles the caller may assign and all posts, for a blank new-user form."""
    try:
        return user_records.get_user(db, principal, None, include_associations=True)
    except UserCenterError as e:
        raise _http_error(e) from e


@router.get("/{user_id}", response_model=UserDetailResponse)
def get_user(
    user_id: int,
    db: Annotated[Session, Depends(get_db)],
    principal: Annotated[Principal, Depends(get_current_user)],
    include_associations: bool = False,
) -> UserDetailResponse:
    """
    One user with its role_ids and post_ids. With include_associations=true
    the response also lists assignable roles and all posts.
    """
    try:
        return user_records.get_user(
            db, principal, user_id, include_associations=include_associations
        )
    except UserCenterError as e:
        raise _http_error(e) from e


@router.post("", response_model=MutationResponse, status_code=201)
def create_user(
    body: UserCreate,
    db: Annotated[Session, Depends(get_db)],
    principal: Annotated[Principal, Depends(get_current_user)],
) -> MutationResponse:
    """Create a user with initial roles and posts. 409 if username, phone or email is taken."""
    try:
        user = user_records.create_user(db, principal, body)
    except UserCenterError as e:
        raise _http_error(e) from e
    return MutationResponse(affected=1, user_id=user.id)


@router.put("/{user_id}", response_model=MutationResponse)
def update_user(
    user_id: int,
    body: UserUpdate,
    db: Annotated[Session, Depends(get_db)],
    principal: Annotated[Principal, Depends(get_current_user)],
) -> MutationResponse:
    """Update only the profile fields sent; roles are changed only through PUT /{user_id}/roles."""
    try:
        affected = user_records.update_user(db, principal, user_id, body)
    except UserCenterError as e:
        raise _http_error(e) from e
    return MutationResponse(affected=affected, user_id=user_id)


@router.delete("/{user_ids}", response_model=MutationResponse)
def delete_users(
    user_ids: str,
    db: Annotated[Session, Depends(get_db)],
    principal: Annotated[Principal, Depends(get_current_user)],
) -> MutationResponse:
    """Delete comma-separated user ids. Unknown ids are ignored; the caller's own id is refused."""
    ids = _parse_user_ids(user_ids)
    try:
        affected = user_records.delete_users(db, principal, ids)
    except UserCenterError as e:
        raise _http_error(e) from e
    return MutationResponse(affected=affected)


@router.put("/{user_id}/password", response_model=MutationResponse)
def reset_password(
    user_id: int,
    body: PasswordReset,
    db: Annotated[Session, Depends(get_db)],
    principal: Annotated[Principal, Depends(get_current_user)],
) -> MutationResponse:
    try:
        affected = user_records.reset_password(db, principal, user_id, body.password)
    except UserCenterError as e:
        raise _http_error(e) from e
    return MutationResponse(affected=affected, user_id=user_id)


@router.put("/{user_id}/status", response_model=MutationResponse)
def change_status(
    user_id: int,
    body: StatusChange,
    db: Annotated[Session, Depends(get_db)],
    principal: Annotated[Principal, Depends(get_current_user)],
) -> MutationResponse:
    try:
        affected = user_records.change_status(db, principal, user_id, body.status)
    except UserCenterError as e:
        raise _http_error(e) from e
    return MutationResponse(affected=affected, user_id=user_id)


@router.get("/{user_id}/roles", response_model=UserRolesResponse)
def get_user_roles(
    user_id: int,
    db: Annotated[Session, Depends(get_db)],
    principal: Annotated[Principal, Depends(get_current_user)],
) -> UserRolesResponse:
    """The user and every role the caller may assign, each flagged when already held."""
    try:
        return role_assignment.get_user_roles(db, principal, user_id)
    except UserCenterError as e:
        raise _http_error(e) from e


@router.put("/{user_id}/roles", response_model=list[int])
def assign_roles(
    user_id: int,
    body: RoleAssignmentRequest,
    db: Annotated[Session, Depends(get_db)],
    principal: Annotated[Principal, Depends(get_current_user)],
) -> list[int]:
    """Replace the user's roles with role_ids (an empty list removes all). Returns the stored ids."""
    try:
        return role_assignment.assign_roles(db, principal, user_id, body.role_ids)
    except UserCenterError as e:
        raise _http_error(e) from e
