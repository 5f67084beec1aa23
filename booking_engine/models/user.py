"""User model definitions."""

from sqlalchemy import Boolean, Column, Integer, String
from booking_engine.database import Base


class User(Base):
    """Represents an application user."""
    __tablename__ = "users"

    id = Column(Integer, primary_key=True, index=True)
    email = Column(String, unique=True, index=True)
    full_name = Column(String)
    hashed_password = Column(String)
    role = Column(String)  # student/instructor/admin/super_admin
    is_active = Column(Boolean, nullable=False, default=True)
