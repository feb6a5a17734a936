"""ORM model for the department tree (read-only for user management)."""

from sqlalchemy import Column, ForeignKey, Integer, String

from app.models.base import Base


class Department(Base):
    """Department node; parent_id is NULL for the root."""

    __tablename__ = "departments"

    id = Column(Integer, primary_key=True, autoincrement=True)
    parent_id = Column(Integer, ForeignKey("departments.id"), nullable=True, index=True)
    name = Column(String(64), nullable=False)
    order_num = Column(Integer, nullable=False, default=0)
    status = Column(String(16), nullable=False, default="active")
