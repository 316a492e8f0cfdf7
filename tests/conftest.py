from datetime import datetime

import pytest
from sqlalchemy import create_engine
from sqlalchemy.pool import StaticPool

from booking_backend.booking.errors import ExternalServiceError
from booking_backend.booking.lifecycle import AppointmentLifecycleManager
from booking_backend.database import create_session_factory, ensure_booking_schema
from booking_backend.models.location import Location
from booking_backend.models.time_slot import SlotStatus, TimeSlot
from booking_backend.models.user import User, UserRole


class FakeCalendarClient:
    enabled = True

    def __init__(self) -> None:
        self.fail_add = False
        self.fail_delete = False
        self.added: list[str] = []
        self.deleted: list[str] = []

    def add_event(self, appointment, user) -> str:
        if self.fail_add:
            raise ExternalServiceError('Calendar unavailable.')
        event_id = f'event-{appointment.id}'
        self.added.append(event_id)
        return event_id

    def delete_event(self, event_id: str) -> None:
        if self.fail_delete:
            raise ExternalServiceError('Calendar unavailable.')
        self.deleted.append(event_id)

    def close(self) -> None:
        pass


@pytest.fixture
def engine():
    engine = create_engine(
        'sqlite://',
        connect_args={'check_same_thread': False},
        poolclass=StaticPool,
    )
    ensure_booking_schema(engine)
    try:
        yield engine
    finally:
        engine.dispose()


@pytest.fixture
def session_factory(engine):
    return create_session_factory(engine)


@pytest.fixture
def db(session_factory):
    session = session_factory()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture
def calendar() -> FakeCalendarClient:
    return FakeCalendarClient()


@pytest.fixture
def manager(db, calendar) -> AppointmentLifecycleManager:
    return AppointmentLifecycleManager(db, calendar)


def _add_user(db, email: str, first_name: str, role: UserRole = UserRole.USER, is_confirmed: bool = True) -> User:
    user = User(email=email, first_name=first_name, last_name='Peeters', role=role, is_confirmed=is_confirmed)
    db.add(user)
    db.commit()
    return user


@pytest.fixture
def student(db) -> User:
    return _add_user(db, 'sam@example.com', 'Sam')


@pytest.fixture
def other_student(db) -> User:
    return _add_user(db, 'lotte@example.com', 'Lotte')


@pytest.fixture
def pending_student(db) -> User:
    return _add_user(db, 'pending@example.com', 'Jonas', is_confirmed=False)


@pytest.fixture
def admin(db) -> User:
    return _add_user(db, 'admin@example.com', 'Ann', role=UserRole.ADMIN)


@pytest.fixture
def location(db) -> Location:
    location = Location(name='Station Gent', street='Koningin Maria Hendrikaplein', house_number='1',
                        postal_code='9000', city='Gent')
    db.add(location)
    db.commit()
    return location


@pytest.fixture
def open_slot(db) -> TimeSlot:
    slot = TimeSlot(
        start_time=datetime(2025, 1, 10, 9, 0),
        end_time=datetime(2025, 1, 10, 9, 30),
        status=SlotStatus.AVAILABLE,
        is_visible=True,
    )
    db.add(slot)
    db.commit()
    return slot
