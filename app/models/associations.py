"""Join rows linking users to roles and posts. Composite keys forbid duplicates."""

from sqlalchemy import Column, ForeignKey, Integer

from app.models.base import Base


class UserRole(Base):
    __tablename__ = "user_roles"

    user_id = Column(Integer, ForeignKey("users.id"), primary_key=True)
    role_id = Column(Integer, ForeignKey("roles.id"), primary_key=True, index=True)


class UserPost(Base):
    __tablename__ = "user_posts"

    user_id = Column(Integer, ForeignKey("users.id"), primary_key=True)
    post_id = Column(Integer, ForeignKey("posts.id"), primary_key=True, index=True)
