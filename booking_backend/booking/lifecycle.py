"""
Appointment lifecycle.

``AppointmentLifecycleManager`` is the only code that moves a time slot
between AVAILABLE and BOOKED. Each booking or cancellation runs in a single
database transaction so that the slot and its appointment never disagree:

    AVAILABLE --book--> BOOKED --cancel(lesson)--> AVAILABLE
                        BOOKED --cancel(exam)----> deleted

Calendar calls happen after the commit. Their failures are logged and
reported through ``CalendarSyncStatus`` but never undo the booking.
"""

import enum
import logging
from collections.abc import Iterator
from contextlib import contextmanager
from dataclasses import dataclass
from datetime import datetime
from typing import Any

from sqlalchemy import text
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from booking_backend.booking.errors import (
    BookingError,
    ConflictError,
    ExternalServiceError,
    ForbiddenError,
    NotFoundError,
    PersistenceError,
    ValidationError,
)
from booking_backend.booking.overlap import (
    describe_window,
    find_overlapping_slot,
    truncate_to_seconds,
    utc_now,
)
from booking_backend.integrations.google_calendar import CalendarClient
from booking_backend.models.appointment import Appointment
from booking_backend.models.location import Location
from booking_backend.models.time_slot import SlotStatus, TimeSlot
from booking_backend.models.user import User
from booking_backend.schemas import CustomAddress, NamedLocation

logger = logging.getLogger(__name__)

MUTABLE_APPOINTMENT_FIELDS = frozenset({'location'})


class CalendarSyncStatus(str, enum.Enum):
    SYNCED = 'synced'
    FAILED = 'failed'
    SKIPPED = 'skipped'


@dataclass
class BookingResult:
    appointment: Appointment
    calendar_sync: CalendarSyncStatus


@dataclass
class CancellationResult:
    appointment_id: int
    time_slot_id: int | None
    slot_deleted: bool
    calendar_sync: CalendarSyncStatus


class AppointmentLifecycleManager:
    def __init__(self, db: Session, calendar: CalendarClient) -> None:
        self.db = db
        self.calendar = calendar

    @contextmanager
    def _transaction(self, action: str) -> Iterator[None]:
        try:
            yield
            self.db.commit()
        except BookingError:
            self.db.rollback()
            raise
        except IntegrityError as exc:
            self.db.rollback()
            logger.warning('Integrity violation while %s: %s', action, exc.orig)
            raise ConflictError('This time slot is no longer available.') from exc
        except SQLAlchemyError as exc:
            self.db.rollback()
            logger.exception('Database error while %s', action)
            raise PersistenceError() from exc

    @contextmanager
    def _reading(self, action: str) -> Iterator[None]:
        try:
            yield
        except SQLAlchemyError as exc:
            self.db.rollback()
            logger.exception('Database error while %s', action)
            raise PersistenceError() from exc

    def _validate_window(self, start_time: datetime, end_time: datetime) -> tuple[datetime, datetime]:
        start_time = truncate_to_seconds(start_time)
        end_time = truncate_to_seconds(end_time)
        if end_time <= start_time:
            raise ValidationError(
                'End time must be after start time.',
                details={'start_time': start_time.isoformat(), 'end_time': end_time.isoformat()},
            )
        return start_time, end_time

    def _get_user(self, user_id: int, require_confirmed: bool) -> User:
        user = self.db.get(User, user_id)
        if user is None:
            raise NotFoundError('User not found.', details={'user_id': user_id})
        if require_confirmed and not user.is_confirmed:
            raise ForbiddenError('This account has not been approved yet.', details={'user_id': user_id})
        return user

    def _lock_slot_table(self) -> None:
        # Serialises overlap checks with concurrent slot inserts on PostgreSQL.
        # Other backends rely on the re-check in _insert_slot.
        if self.db.get_bind().dialect.name == 'postgresql':
            self.db.execute(text('LOCK TABLE time_slots IN SHARE ROW EXCLUSIVE MODE'))

    def _reject_overlap(self, start_time: datetime, end_time: datetime, exclude_id: int | None = None) -> None:
        overlapping = find_overlapping_slot(self.db, start_time, end_time, exclude_id=exclude_id)
        if overlapping is None:
            return

        window = describe_window(overlapping.start_time, overlapping.end_time)
        logger.warning(
            'Rejected slot %s: overlaps time slot %s (%s)',
            describe_window(start_time, end_time),
            overlapping.id,
            window,
        )
        raise ConflictError(
            f'These hours overlap with the time slot of {window}.',
            details={
                'time_slot_id': overlapping.id,
                'start_time': overlapping.start_time.isoformat(),
                'end_time': overlapping.end_time.isoformat(),
            },
        )

    def _insert_slot(self, start_time: datetime, end_time: datetime, status: SlotStatus, is_visible: bool) -> TimeSlot:
        self._lock_slot_table()
        self._reject_overlap(start_time, end_time)

        slot = TimeSlot(start_time=start_time, end_time=end_time, status=status, is_visible=is_visible)
        self.db.add(slot)
        self.db.flush()

        # The flush holds the write lock, so a concurrent insert that passed the
        # first check is visible here.
        self._reject_overlap(start_time, end_time, exclude_id=slot.id)
        return slot

    def _lock_slot(self, slot_id: int) -> TimeSlot | None:
        return (
            self.db.query(TimeSlot)
            .filter(TimeSlot.id == slot_id)
            .with_for_update()
            .populate_existing()
            .first()
        )

    def _apply_location(self, appointment: Appointment, location: NamedLocation | CustomAddress | None) -> None:
        appointment.location_id = None
        appointment.custom_pickup_street = None
        appointment.custom_pickup_house_number = None
        appointment.custom_pickup_postal_code = None
        appointment.custom_pickup_city = None

        if isinstance(location, NamedLocation):
            if self.db.get(Location, location.location_id) is None:
                raise NotFoundError('Location not found.', details={'location_id': location.location_id})
            appointment.location_id = location.location_id
        elif isinstance(location, CustomAddress):
            appointment.custom_pickup_street = location.street
            appointment.custom_pickup_house_number = location.house_number
            appointment.custom_pickup_postal_code = location.postal_code
            appointment.custom_pickup_city = location.city

    def _sync_calendar(self, appointment: Appointment, user: User) -> CalendarSyncStatus:
        if not self.calendar.enabled:
            return CalendarSyncStatus.SKIPPED

        appointment_id = appointment.id
        try:
            event_id = self.calendar.add_event(appointment, user)
        except ExternalServiceError:
            logger.exception('Calendar sync failed for appointment %s; booking kept', appointment_id)
            return CalendarSyncStatus.FAILED
        except Exception:
            # The booking is already committed.
            logger.exception('Unexpected calendar error for appointment %s; booking kept', appointment_id)
            return CalendarSyncStatus.FAILED

        try:
            appointment.calendar_event_id = event_id
            self.db.commit()
        except SQLAlchemyError:
            self.db.rollback()
            logger.exception('Could not store calendar event %s for appointment %s', event_id, appointment_id)
            self._delete_calendar_event(event_id)
            return CalendarSyncStatus.FAILED

        return CalendarSyncStatus.SYNCED

    def _delete_calendar_event(self, event_id: str) -> CalendarSyncStatus:
        if not self.calendar.enabled:
            return CalendarSyncStatus.SKIPPED

        try:
            self.calendar.delete_event(event_id)
        except ExternalServiceError:
            logger.exception('Could not delete calendar event %s', event_id)
            return CalendarSyncStatus.FAILED
        except Exception:
            logger.exception('Unexpected calendar error while deleting event %s', event_id)
            return CalendarSyncStatus.FAILED
        return CalendarSyncStatus.SYNCED

    def create_open_slot(self, start_time: datetime, end_time: datetime, is_visible: bool = True) -> TimeSlot:
        start_time, end_time = self._validate_window(start_time, end_time)

        with self._transaction('creating time slot'):
            slot = self._insert_slot(start_time, end_time, SlotStatus.AVAILABLE, is_visible)

        logger.info('Created time slot %s (%s)', slot.id, describe_window(start_time, end_time))
        return slot

    def create_booking_on_existing_slot(
        self,
        slot_id: int,
        user_id: int,
        location: NamedLocation | CustomAddress | None = None,
    ) -> BookingResult:
        not_available = ConflictError(
            'This time slot is no longer available.',
            details={'time_slot_id': slot_id},
        )

        with self._transaction('booking time slot'):
            user = self._get_user(user_id, require_confirmed=True)

            slot = self._lock_slot(slot_id)
            if slot is None or slot.status != SlotStatus.AVAILABLE:
                raise not_available

            # Matches zero rows if another request claimed the slot first.
            claimed = (
                self.db.query(TimeSlot)
                .filter(TimeSlot.id == slot_id, TimeSlot.status == SlotStatus.AVAILABLE)
                .update(
                    {TimeSlot.status: SlotStatus.BOOKED, TimeSlot.is_visible: False},
                    synchronize_session=False,
                )
            )
            if claimed != 1:
                raise not_available

            appointment = Appointment(
                user_id=user.id,
                time_slot_id=slot.id,
                start_time=slot.start_time,
                end_time=slot.end_time,
                is_exam=False,
            )
            self._apply_location(appointment, location)
            self.db.add(appointment)
            self.db.flush()

            slot.status = SlotStatus.BOOKED
            slot.is_visible = False
            slot.appointment_id = appointment.id

        logger.info('User %s booked time slot %s as appointment %s', user.id, slot_id, appointment.id)
        return BookingResult(appointment=appointment, calendar_sync=self._sync_calendar(appointment, user))

    def create_booking_with_new_slot(
        self,
        start_time: datetime,
        end_time: datetime,
        user_id: int,
        location: NamedLocation | CustomAddress | None = None,
        is_exam: bool = False,
    ) -> BookingResult:
        start_time, end_time = self._validate_window(start_time, end_time)

        with self._transaction('creating appointment with new time slot'):
            user = self._get_user(user_id, require_confirmed=False)

            slot = self._insert_slot(start_time, end_time, SlotStatus.BOOKED, is_visible=False)

            appointment = Appointment(
                user_id=user.id,
                time_slot_id=slot.id,
                start_time=start_time,
                end_time=end_time,
                is_exam=is_exam,
            )
            self._apply_location(appointment, location)
            self.db.add(appointment)
            self.db.flush()

            slot.appointment_id = appointment.id

        logger.info(
            'Assigned %s %s to user %s in new time slot %s',
            'exam' if is_exam else 'lesson',
            appointment.id,
            user.id,
            slot.id,
        )
        return BookingResult(appointment=appointment, calendar_sync=self._sync_calendar(appointment, user))

    def cancel_appointment(self, appointment_id: int, owner_id: int | None = None) -> CancellationResult:
        """Delete the appointment and release its slot, or delete the slot for an exam.

        With ``owner_id`` set, appointments of other users are reported as not found.
        """
        with self._transaction('cancelling appointment'):
            appointment = (
                self.db.query(Appointment)
                .filter(Appointment.id == appointment_id)
                .with_for_update()
                .populate_existing()
                .first()
            )
            if appointment is None or (owner_id is not None and appointment.user_id != owner_id):
                raise NotFoundError('Appointment not found.', details={'appointment_id': appointment_id})

            event_id = appointment.calendar_event_id
            slot_id = appointment.time_slot_id
            is_exam = appointment.is_exam
            slot = self._lock_slot(slot_id) if slot_id is not None else None
            slot_deleted = False

            self.db.delete(appointment)
            self.db.flush()

            if slot is None:
                logger.warning('Appointment %s had no time slot to release', appointment_id)
            elif is_exam:
                self.db.delete(slot)
                slot_deleted = True
            else:
                slot.status = SlotStatus.AVAILABLE
                slot.is_visible = True
                slot.appointment_id = None

        logger.info(
            'Cancelled appointment %s; time slot %s %s',
            appointment_id,
            slot_id,
            'deleted' if slot_deleted else 'released',
        )

        calendar_sync = self._delete_calendar_event(event_id) if event_id else CalendarSyncStatus.SKIPPED
        return CancellationResult(
            appointment_id=appointment_id,
            time_slot_id=slot_id,
            slot_deleted=slot_deleted,
            calendar_sync=calendar_sync,
        )

    def update_appointment(self, appointment_id: int, fields: dict[str, Any]) -> Appointment:
        rejected = sorted(set(fields) - MUTABLE_APPOINTMENT_FIELDS)
        if rejected:
            raise ValidationError(
                'These appointment fields cannot be changed.',
                details={'fields': rejected},
            )

        with self._transaction('updating appointment'):
            appointment = self.db.get(Appointment, appointment_id)
            if appointment is None:
                raise NotFoundError('Appointment not found.', details={'appointment_id': appointment_id})

            if 'location' in fields:
                self._apply_location(appointment, fields['location'])

        return appointment

    def list_available_slots(self, now: datetime | None = None) -> list[TimeSlot]:
        now = truncate_to_seconds(now) if now is not None else utc_now()
        with self._reading('listing available time slots'):
            return (
                self.db.query(TimeSlot)
                .filter(
                    TimeSlot.status == SlotStatus.AVAILABLE,
                    TimeSlot.is_visible.is_(True),
                    TimeSlot.start_time >= now,
                )
                .order_by(TimeSlot.start_time.asc(), TimeSlot.id.asc())
                .all()
            )

    def list_slots(self) -> list[TimeSlot]:
        with self._reading('listing time slots'):
            return self.db.query(TimeSlot).order_by(TimeSlot.start_time.asc(), TimeSlot.id.asc()).all()

    def get_slot_by_start(self, start_time: datetime) -> TimeSlot:
        start_time = truncate_to_seconds(start_time)
        with self._reading('looking up time slot'):
            slot = self.db.query(TimeSlot).filter(TimeSlot.start_time == start_time).first()
        if slot is None:
            raise NotFoundError('Time slot not found.', details={'start_time': start_time.isoformat()})
        return slot

    def delete_slot(self, slot_id: int) -> None:
        with self._transaction('deleting time slot'):
            slot = self._lock_slot(slot_id)
            if slot is None:
                raise NotFoundError('Time slot not found.', details={'time_slot_id': slot_id})
            if slot.status == SlotStatus.BOOKED:
                raise ConflictError(
                    'This time slot is booked; cancel its appointment first.',
                    details={'time_slot_id': slot_id, 'appointment_id': slot.appointment_id},
                )
            self.db.delete(slot)

        logger.info('Deleted time slot %s', slot_id)

    def list_appointments(self, user_id: int | None = None) -> list[Appointment]:
        with self._reading('listing appointments'):
            query = self.db.query(Appointment)
            if user_id is not None:
                query = query.filter(Appointment.user_id == user_id)
            return query.order_by(Appointment.start_time.asc(), Appointment.id.asc()).all()
