"""ORM model for job posts."""

from sqlalchemy import Column, Integer, String

from app.models.base import Base


class Post(Base):
    __tablename__ = "posts"

    id = Column(Integer, primary_key=True, autoincrement=True)
    post_code = Column(String(64), nullable=False, unique=True)
    post_name = Column(String(64), nullable=False)
    order_num = Column(Integer, nullable=False, default=0)
    status = Column(String(16), nullable=False, default="active")
