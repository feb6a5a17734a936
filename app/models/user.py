"""ORM model for console user accounts."""

from sqlalchemy import (
    Boolean,
    Column,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    String,
    func,
    text,
)

from app.models.base import Base

USER_STATUS_ACTIVE = "active"
USER_STATUS_DISABLED = "disabled"


def _live_unique_index(column: str) -> Index:
    """Unique index over non-deleted rows only; NULLs (blank values) never collide."""
    return Index(
        f"uq_users_{column}_live",
        column,
        unique=True,
        postgresql_where=text("is_deleted = false"),
        sqlite_where=text("is_deleted = 0"),
    )


class User(Base):
    """
    User account managed from the administrative console.

    status: 'active' or 'disabled'. Rows are soft-deleted (is_deleted) and
    drop out of every read path; their username/phone/email become reusable.
    """

    __tablename__ = "users"
    __table_args__ = (
        _live_unique_index("username"),
        _live_unique_index("phone"),
        _live_unique_index("email"),
    )

    id = Column(Integer, primary_key=True, autoincrement=True)
    username = Column(String(64), nullable=False)
    nickname = Column(String(64), nullable=False, default="")
    phone = Column(String(32), nullable=True)
    email = Column(String(255), nullable=True)
    password_hash = Column(String(255), nullable=False)
    status = Column(String(16), nullable=False, default=USER_STATUS_ACTIVE)
    dept_id = Column(Integer, ForeignKey("departments.id"), nullable=True, index=True)
    created_by = Column(String(64), nullable=False, default="")
    updated_by = Column(String(64), nullable=False, default="")
    created_at = Column(
        DateTime(timezone=True),
        nullable=False,
        server_default=func.now(),
    )
    updated_at = Column(
        DateTime(timezone=True),
        nullable=True,
        onupdate=func.now(),
    )
    is_deleted = Column(Boolean, nullable=False, default=False)
