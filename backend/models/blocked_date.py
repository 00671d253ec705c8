"""Blocked date model definitions."""

from sqlalchemy import Column, Date, DateTime, Integer, String, func
from backend.database import Base


class BlockedDate(Base):
    """A single calendar date on which no bookings are accepted."""
    __tablename__ = "blocked_dates"

    id = Column(Integer, primary_key=True)
    blocked_date = Column(Date, nullable=False, unique=True)
    reason = Column(String(255))
    created_at = Column(DateTime, nullable=False, server_default=func.now())
