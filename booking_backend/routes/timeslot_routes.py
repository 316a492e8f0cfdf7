from datetime import datetime

from fastapi import APIRouter, Depends, Query, status

from booking_backend.auth.dependencies import get_current_user, get_lifecycle_manager, require_admin
from booking_backend.booking.errors import BookingError
from booking_backend.booking.lifecycle import AppointmentLifecycleManager
from booking_backend.models.user import User
from booking_backend.schemas import CreateTimeSlotRequest, TimeSlotResponse

router = APIRouter(tags=['timeslots'])


@router.get('', response_model=list[TimeSlotResponse])
def list_time_slots(
    admin: User = Depends(require_admin),
    manager: AppointmentLifecycleManager = Depends(get_lifecycle_manager),
):
    try:
        return manager.list_slots()
    except BookingError as exc:
        raise exc.to_http_exception() from exc


@router.post('', response_model=TimeSlotResponse, status_code=status.HTTP_201_CREATED)
def create_time_slot(
    data: CreateTimeSlotRequest,
    admin: User = Depends(require_admin),
    manager: AppointmentLifecycleManager = Depends(get_lifecycle_manager),
):
    try:
        return manager.create_open_slot(data.start_time, data.end_time, is_visible=data.is_visible)
    except BookingError as exc:
        raise exc.to_http_exception() from exc


@router.get('/available', response_model=list[TimeSlotResponse])
def list_available_time_slots(
    user: User = Depends(get_current_user),
    manager: AppointmentLifecycleManager = Depends(get_lifecycle_manager),
):
    try:
        return manager.list_available_slots()
    except BookingError as exc:
        raise exc.to_http_exception() from exc


@router.get('/by-start', response_model=TimeSlotResponse)
def get_time_slot_by_start(
    start_time: datetime = Query(...),
    user: User = Depends(get_current_user),
    manager: AppointmentLifecycleManager = Depends(get_lifecycle_manager),
):
    try:
        return manager.get_slot_by_start(start_time)
    except BookingError as exc:
        raise exc.to_http_exception() from exc


@router.delete('/{slot_id}', status_code=status.HTTP_204_NO_CONTENT)
def delete_time_slot(
    slot_id: int,
    admin: User = Depends(require_admin),
    manager: AppointmentLifecycleManager = Depends(get_lifecycle_manager),
):
    try:
        manager.delete_slot(slot_id)
    except BookingError as exc:
        raise exc.to_http_exception() from exc
