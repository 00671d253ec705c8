"""Assessment response model definitions."""

from sqlalchemy import Column, DateTime, ForeignKey, Integer, String, func
from backend.database import Base


class AssessmentResponse(Base):
    """AI-readiness quiz submission that may lead to a booked call."""
    __tablename__ = "assessment_responses"

    id = Column(Integer, primary_key=True)
    email = Column(String(255))
    overall_score = Column(Integer)
    appointment_id = Column(Integer, ForeignKey("appointments.id"), nullable=True)
    created_at = Column(DateTime, nullable=False, server_default=func.now())
