"""Appointment model definitions."""

from sqlalchemy import Boolean, CheckConstraint, Column, DateTime, ForeignKey, Integer, String
from sqlalchemy.orm import relationship

from booking_backend.database import Base
from booking_backend.models.location import Location
from booking_backend.models.user import User


class Appointment(Base):
    """Represents a booked lesson or exam."""
    __tablename__ = "appointments"
    __table_args__ = (
        CheckConstraint(
            "location_id IS NULL OR ("
            "custom_pickup_street IS NULL AND custom_pickup_house_number IS NULL "
            "AND custom_pickup_postal_code IS NULL AND custom_pickup_city IS NULL)",
            name="ck_appointments_single_location",
        ),
    )

    id = Column(Integer, primary_key=True)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    time_slot_id = Column(Integer, ForeignKey("time_slots.id"), nullable=True, unique=True)
    location_id = Column(Integer, ForeignKey("locations.id"), nullable=True)
    custom_pickup_street = Column(String, nullable=True)
    custom_pickup_house_number = Column(String, nullable=True)
    custom_pickup_postal_code = Column(String, nullable=True)
    custom_pickup_city = Column(String, nullable=True)
    start_time = Column(DateTime, nullable=False)
    end_time = Column(DateTime, nullable=False)
    is_exam = Column(Boolean, nullable=False, default=False)
    calendar_event_id = Column(String, nullable=True)

    user = relationship(User)
    location = relationship(Location)
