from collections.abc import Iterator

from fastapi import Request
from sqlalchemy import create_engine, inspect, text
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session, declarative_base, sessionmaker


Base = declarative_base()


def create_database_engine(database_url: str, echo: bool = False) -> Engine:
    connect_args = {}
    if database_url.startswith('sqlite'):
        connect_args['check_same_thread'] = False
    return create_engine(database_url, echo=echo, connect_args=connect_args)


def create_session_factory(engine: Engine) -> sessionmaker:
    return sessionmaker(
        autocommit=False,
        autoflush=False,
        expire_on_commit=False,
        bind=engine,
    )


def ensure_booking_schema(engine: Engine) -> None:
    # Model modules register their tables on Base when imported.
    from booking_backend.models import appointment, location, time_slot, user  # noqa: F401

    Base.metadata.create_all(bind=engine)

    inspector = inspect(engine)
    table_names = set(inspector.get_table_names())

    with engine.begin() as connection:
        if 'time_slots' in table_names:
            connection.execute(
                text('CREATE INDEX IF NOT EXISTS idx_time_slots_time_range ON time_slots(start_time, end_time)')
            )
            connection.execute(
                text(
                    'CREATE INDEX IF NOT EXISTS idx_time_slots_status_visible_start '
                    'ON time_slots(status, is_visible, start_time)'
                )
            )
        if 'appointments' in table_names:
            connection.execute(
                text('CREATE INDEX IF NOT EXISTS idx_appointments_user_start ON appointments(user_id, start_time)')
            )


def get_db(request: Request) -> Iterator[Session]:
    db = request.app.state.session_factory()
    try:
        yield db
    finally:
        db.close()
