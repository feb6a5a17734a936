"""
Uniqueness checks for the identity fields of a user: username, phone, email.

The checks are an optimistic pre-check that gives a friendly message. The
partial unique indexes on the users table remain the final authority; a
concurrent duplicate that slips past is translated by
conflict_from_integrity_error into the same ConflictError.
"""

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session
from sqlalchemy.orm.attributes import InstrumentedAttribute

from app.core.exceptions import ConflictError
from app.models import User

# Checked in this order; only the first violation is reported.
IDENTITY_FIELDS = ("username", "phone", "email")

FIELD_LABELS = {
    "username": "username",
    "phone": "phone number",
    "email": "email address",
}


def _is_value_unique(
    db: Session,
    column: InstrumentedAttribute,
    value: str | None,
    user_id: int | None,
) -> bool:
    if value is None or not value.strip():
        return True
    query = db.query(User.id).filter(column == value, User.is_deleted.is_(False))
    if user_id:
        query = query.filter(User.id != user_id)
    return query.first() is None


def is_username_unique(db: Session, username: str | None, user_id: int | None = None) -> bool:
    """True if no other live user holds username. user_id excludes the record being updated."""
    return _is_value_unique(db, User.username, username, user_id)


def is_phone_unique(db: Session, phone: str | None, user_id: int | None = None) -> bool:
    """True if no other live user holds phone; blank phones are always unique."""
    return _is_value_unique(db, User.phone, phone, user_id)


def is_email_unique(db: Session, email: str | None, user_id: int | None = None) -> bool:
    """True if no other live user holds email; blank emails are always unique."""
    return _is_value_unique(db, User.email, email, user_id)


def conflict_error(field: str, values: dict[str, str | None], action: str) -> ConflictError:
    """Build the ConflictError for field, naming the attempted username."""
    message = (
        f"Failed to {action} user '{values.get('username')}': "
        f"{FIELD_LABELS[field]} already exists"
    )
    return ConflictError(message, field=field, value=values.get(field))


def ensure_unique(
    db: Session,
    *,
    username: str | None,
    phone: str | None,
    email: str | None,
    user_id: int | None = None,
    action: str = "add",
) -> None:
    """
    Raise ConflictError for the first identity field already taken by another user.

    Order is username, phone, email. action ('add' or 'update') only shapes
    the message.
    """
    values = {"username": username, "phone": phone, "email": email}
    if not is_username_unique(db, username, user_id):
        raise conflict_error("username", values, action)
    if not is_phone_unique(db, phone, user_id):
        raise conflict_error("phone", values, action)
    if not is_email_unique(db, email, user_id):
        raise conflict_error("email", values, action)


def conflict_from_integrity_error(
    exc: IntegrityError,
    values: dict[str, str | None],
    action: str,
) -> ConflictError | None:
    """
    Map a unique-index violation on users to a ConflictError.

    Returns None for any other integrity failure (foreign keys, other tables).
    PostgreSQL names the index (uq_users_phone_live); SQLite names the column
    (users.phone).
    """
    detail = str(exc.orig).lower()
    if "unique" not in detail and "duplicate" not in detail:
        return None
    for field in IDENTITY_FIELDS:
        if f"uq_users_{field}" in detail or f"users.{field}" in detail:
            return conflict_error(field, values, action)
    return None
