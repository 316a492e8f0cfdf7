from datetime import datetime
from typing import Annotated, Literal, Union

from pydantic import BaseModel, Field, field_validator

from booking_backend.models.appointment import Appointment
from booking_backend.models.time_slot import SlotStatus

MAX_ADDRESS_FIELD_LENGTH = 120


class NamedLocation(BaseModel):
    kind: Literal['location'] = 'location'
    location_id: int


class CustomAddress(BaseModel):
    kind: Literal['custom'] = 'custom'
    street: str
    house_number: str
    postal_code: str
    city: str

    @field_validator('street', 'house_number', 'postal_code', 'city')
    @classmethod
    def validate_address_part(cls, value: str) -> str:
        normalized = value.strip()
        if not normalized:
            raise ValueError('Address fields cannot be blank.')
        if len(normalized) > MAX_ADDRESS_FIELD_LENGTH:
            raise ValueError(f'Address fields must be {MAX_ADDRESS_FIELD_LENGTH} characters or fewer.')
        return normalized

    def format(self) -> str:
        return f'{self.street} {self.house_number}, {self.postal_code} {self.city}'


LocationChoice = Annotated[Union[NamedLocation, CustomAddress], Field(discriminator='kind')]


def location_from_appointment(appointment: Appointment) -> NamedLocation | CustomAddress | None:
    if appointment.location_id is not None:
        return NamedLocation(location_id=appointment.location_id)
    if appointment.custom_pickup_street is not None:
        return CustomAddress(
            street=appointment.custom_pickup_street,
            house_number=appointment.custom_pickup_house_number or '',
            postal_code=appointment.custom_pickup_postal_code or '',
            city=appointment.custom_pickup_city or '',
        )
    return None


class CreateTimeSlotRequest(BaseModel):
    start_time: datetime
    end_time: datetime
    is_visible: bool = True


class TimeSlotResponse(BaseModel):
    id: int
    start_time: datetime
    end_time: datetime
    status: SlotStatus
    is_visible: bool
    appointment_id: int | None = None

    class Config:
        from_attributes = True


class CreateBookingRequest(BaseModel):
    time_slot_id: int
    # Admins may book on behalf of another user; everyone else books for themselves.
    user_id: int | None = None
    location: LocationChoice | None = None


class AssignAppointmentRequest(BaseModel):
    user_id: int
    start_time: datetime
    end_time: datetime
    location: LocationChoice | None = None
    is_exam: bool = False


class UpdateAppointmentRequest(BaseModel):
    location: LocationChoice | None = None

    class Config:
        extra = 'forbid'


class AppointmentResponse(BaseModel):
    id: int
    user_id: int
    time_slot_id: int | None = None
    location: LocationChoice | None = None
    start_time: datetime
    end_time: datetime
    is_exam: bool
    calendar_event_id: str | None = None

    @classmethod
    def from_appointment(cls, appointment: Appointment) -> 'AppointmentResponse':
        return cls(
            id=appointment.id,
            user_id=appointment.user_id,
            time_slot_id=appointment.time_slot_id,
            location=location_from_appointment(appointment),
            start_time=appointment.start_time,
            end_time=appointment.end_time,
            is_exam=bool(appointment.is_exam),
            calendar_event_id=appointment.calendar_event_id,
        )


class BookingResponse(BaseModel):
    appointment: AppointmentResponse
    calendar_sync: str


class CancellationResponse(BaseModel):
    appointment_id: int
    calendar_sync: str


class LocationResponse(BaseModel):
    id: int
    name: str
    street: str | None = None
    house_number: str | None = None
    postal_code: str | None = None
    city: str | None = None

    class Config:
        from_attributes = True
