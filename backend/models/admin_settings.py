"""Admin settings model definitions."""

from sqlalchemy import Column, DateTime, Integer, String, func
from backend.database import Base

DEFAULT_APPOINTMENT_DURATION_MINUTES = 30
DEFAULT_BUFFER_MINUTES = 0
DEFAULT_ADVANCE_BOOKING_DAYS = 30
DEFAULT_MONTHLY_CAPACITY = 5


class AdminSettings(Base):
    """Singleton scheduling configuration edited from the admin dashboard."""
    __tablename__ = "admin_settings"

    id = Column(Integer, primary_key=True)
    appointment_duration_minutes = Column(Integer, nullable=False, default=DEFAULT_APPOINTMENT_DURATION_MINUTES)
    buffer_minutes = Column(Integer, nullable=False, default=DEFAULT_BUFFER_MINUTES)
    advance_booking_days = Column(Integer, nullable=False, default=DEFAULT_ADVANCE_BOOKING_DAYS)
    default_monthly_capacity = Column(Integer, nullable=False, default=DEFAULT_MONTHLY_CAPACITY)
    timezone = Column(String(64), nullable=False)
    updated_at = Column(DateTime, nullable=False, server_default=func.now(), onupdate=func.now())
