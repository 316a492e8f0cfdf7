import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from sqlalchemy.exc import SQLAlchemyError

from booking_backend.core import config
from booking_backend.database import create_database_engine, create_session_factory, ensure_booking_schema
from booking_backend.integrations.google_calendar import create_calendar_client
from booking_backend.routes import appointment_routes, location_routes, timeslot_routes

logging.basicConfig(
    level=config.LOG_LEVEL.upper(),
    format='%(asctime)s %(levelname)s %(name)s: %(message)s',
)

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    config.validate_runtime_config()

    engine = create_database_engine(config.DATABASE_URL, echo=config.DATABASE_ECHO)
    try:
        ensure_booking_schema(engine)
    except SQLAlchemyError:
        logger.exception('Database initialization failed. Check DATABASE_URL and database credentials.')

    app.state.engine = engine
    app.state.session_factory = create_session_factory(engine)
    app.state.calendar_client = create_calendar_client()
    try:
        yield
    finally:
        app.state.calendar_client.close()
        engine.dispose()


app = FastAPI(lifespan=lifespan)

app.add_middleware(
    CORSMiddleware,
    allow_origins=config.CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=['*'],
    allow_headers=['*'],
)


@app.get('/')
def root():
    return {'status': 'Driving School Booking API Running'}


app.include_router(timeslot_routes.router, prefix='/timeslots')
app.include_router(appointment_routes.router, prefix='/appointments')
app.include_router(location_routes.router, prefix='/locations')
