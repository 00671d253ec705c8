"""User model definitions."""

from sqlalchemy import Column, Integer, String
from backend.database import Base

ROLE_ADMIN = 'admin'


class User(Base):
    """Represents a dashboard user."""
    __tablename__ = "users"

    id = Column(Integer, primary_key=True, index=True)
    email = Column(String, unique=True, index=True)
    hashed_password = Column(String)
    role = Column(String)  # admin
