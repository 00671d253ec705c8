"""Appointment model definitions."""

from sqlalchemy import Boolean, Column, Date, DateTime, Index, Integer, String, Text, Time, false, func, text
from backend.database import ACTIVE_SLOT_INDEX, Base

STATUS_CONFIRMED = 'confirmed'
STATUS_CANCELLED = 'cancelled'


class Appointment(Base):
    """Represents a booked strategy call."""
    __tablename__ = "appointments"
    __table_args__ = (
        Index(
            ACTIVE_SLOT_INDEX,
            'appointment_date',
            'appointment_time',
            unique=True,
            postgresql_where=text("status <> 'cancelled'"),
            sqlite_where=text("status <> 'cancelled'"),
        ),
        Index('uq_appointments_cancel_token', 'cancel_token', unique=True),
        Index('idx_appointments_date_status', 'appointment_date', 'status'),
    )

    id = Column(Integer, primary_key=True)
    appointment_date = Column(Date, nullable=False)
    appointment_time = Column(Time, nullable=False)
    duration_minutes = Column(Integer, nullable=False, default=30)
    guest_name = Column(String(255), nullable=False)
    guest_email = Column(String(255), nullable=False)
    guest_phone = Column(String(64))
    notes = Column(Text)
    status = Column(String(32), nullable=False, default=STATUS_CONFIRMED)
    cancel_token = Column(String(64), nullable=False)
    meeting_id = Column(String(255))
    meeting_join_url = Column(String(512))
    reminder_24h_sent = Column(Boolean, nullable=False, default=False, server_default=false())
    reminder_1h_sent = Column(Boolean, nullable=False, default=False, server_default=false())
    created_at = Column(DateTime, nullable=False, server_default=func.now())
    updated_at = Column(DateTime, nullable=False, server_default=func.now(), onupdate=func.now())

    @property
    def is_cancelled(self) -> bool:
        return self.status == STATUS_CANCELLED
