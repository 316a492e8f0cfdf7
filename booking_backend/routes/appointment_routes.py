from fastapi import APIRouter, Depends, HTTPException, status

from booking_backend.auth.dependencies import get_current_user, get_lifecycle_manager, require_admin
from booking_backend.booking.errors import BookingError
from booking_backend.booking.lifecycle import AppointmentLifecycleManager, BookingResult
from booking_backend.models.user import User, UserRole
from booking_backend.schemas import (
    AppointmentResponse,
    AssignAppointmentRequest,
    BookingResponse,
    CancellationResponse,
    CreateBookingRequest,
    UpdateAppointmentRequest,
)

router = APIRouter(tags=['appointments'])


def to_booking_response(result: BookingResult) -> BookingResponse:
    return BookingResponse(
        appointment=AppointmentResponse.from_appointment(result.appointment),
        calendar_sync=result.calendar_sync.value,
    )


@router.get('', response_model=list[AppointmentResponse])
def list_appointments(
    admin: User = Depends(require_admin),
    manager: AppointmentLifecycleManager = Depends(get_lifecycle_manager),
):
    try:
        return [AppointmentResponse.from_appointment(appointment) for appointment in manager.list_appointments()]
    except BookingError as exc:
        raise exc.to_http_exception() from exc


@router.get('/me', response_model=list[AppointmentResponse])
def list_my_appointments(
    user: User = Depends(get_current_user),
    manager: AppointmentLifecycleManager = Depends(get_lifecycle_manager),
):
    try:
        appointments = manager.list_appointments(user_id=user.id)
        return [AppointmentResponse.from_appointment(appointment) for appointment in appointments]
    except BookingError as exc:
        raise exc.to_http_exception() from exc


@router.post('', response_model=BookingResponse, status_code=status.HTTP_201_CREATED)
def book_time_slot(
    data: CreateBookingRequest,
    user: User = Depends(get_current_user),
    manager: AppointmentLifecycleManager = Depends(get_lifecycle_manager),
):
    user_id = data.user_id if data.user_id is not None else user.id
    if user_id != user.id and user.role != UserRole.ADMIN:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail='Only admins can book appointments for other users.',
        )

    try:
        result = manager.create_booking_on_existing_slot(data.time_slot_id, user_id, data.location)
    except BookingError as exc:
        raise exc.to_http_exception() from exc

    return to_booking_response(result)


@router.post('/assign', response_model=BookingResponse, status_code=status.HTTP_201_CREATED)
def assign_appointment(
    data: AssignAppointmentRequest,
    admin: User = Depends(require_admin),
    manager: AppointmentLifecycleManager = Depends(get_lifecycle_manager),
):
    try:
        result = manager.create_booking_with_new_slot(
            data.start_time,
            data.end_time,
            data.user_id,
            location=data.location,
            is_exam=data.is_exam,
        )
    except BookingError as exc:
        raise exc.to_http_exception() from exc

    return to_booking_response(result)


@router.patch('/{appointment_id}', response_model=AppointmentResponse)
def update_appointment(
    appointment_id: int,
    data: UpdateAppointmentRequest,
    admin: User = Depends(require_admin),
    manager: AppointmentLifecycleManager = Depends(get_lifecycle_manager),
):
    fields = {name: getattr(data, name) for name in data.model_fields_set}

    try:
        appointment = manager.update_appointment(appointment_id, fields)
    except BookingError as exc:
        raise exc.to_http_exception() from exc

    return AppointmentResponse.from_appointment(appointment)


@router.delete('/{appointment_id}', response_model=CancellationResponse)
def cancel_appointment(
    appointment_id: int,
    user: User = Depends(get_current_user),
    manager: AppointmentLifecycleManager = Depends(get_lifecycle_manager),
):
    try:
        # Plain users may only cancel their own appointments.
        owner_id = None if user.role == UserRole.ADMIN else user.id
        result = manager.cancel_appointment(appointment_id, owner_id=owner_id)
    except BookingError as exc:
        raise exc.to_http_exception() from exc

    return CancellationResponse(appointment_id=result.appointment_id, calendar_sync=result.calendar_sync.value)
