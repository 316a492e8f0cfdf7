"""Time slot model definitions."""

import enum

from sqlalchemy import Boolean, Column, DateTime, Enum, Integer, UniqueConstraint
from booking_backend.database import Base


class SlotStatus(str, enum.Enum):
    AVAILABLE = "AVAILABLE"
    BOOKED = "BOOKED"


class TimeSlot(Base):
    """Represents a bookable time window."""
    __tablename__ = "time_slots"
    __table_args__ = (
        UniqueConstraint("start_time", "end_time", name="uq_time_slots_window"),
    )

    id = Column(Integer, primary_key=True)
    start_time = Column(DateTime, nullable=False)
    end_time = Column(DateTime, nullable=False)
    status = Column(Enum(SlotStatus, name="slot_status"), nullable=False, default=SlotStatus.AVAILABLE)
    is_visible = Column(Boolean, nullable=False, default=True)
    # No foreign key: appointments already point here, and the lifecycle
    # manager keeps both sides in step.
    appointment_id = Column(Integer, nullable=True)
