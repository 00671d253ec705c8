"""Working hours model definitions."""

from sqlalchemy import Boolean, Column, Integer, Time
from backend.database import Base


class WorkingHours(Base):
    """Recurring bookable hours for one day of the week (0 = Sunday)."""
    __tablename__ = "working_hours"

    id = Column(Integer, primary_key=True)
    day_of_week = Column(Integer, nullable=False, unique=True)
    start_time = Column(Time, nullable=False)
    end_time = Column(Time, nullable=False)
    is_available = Column(Boolean, nullable=False, default=True)
