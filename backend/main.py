import logging

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from sqlalchemy.exc import SQLAlchemyError

from backend.core import config
from backend.core.logging_config import configure_logging
from backend.database import Base, engine, ensure_booking_schema
from backend.models import admin_settings, appointment, assessment, blocked_date, user, working_hours  # noqa: F401
from backend.routes import admin_routes, auth_routes, booking_routes

configure_logging()

app = FastAPI(title='Vantage Booking API')

app.add_middleware(
    CORSMiddleware,
    allow_origins=config.CORS_ALLOW_ORIGINS,
    allow_credentials=True,
    allow_methods=['*'],
    allow_headers=['*'],
)

logger = logging.getLogger(__name__)


@app.on_event('startup')
def initialize_database() -> None:
    config.validate_runtime_config()
    if not (config.GOOGLE_SERVICE_ACCOUNT_KEY and config.GOOGLE_CALENDAR_ID):
        logger.warning('Google Calendar is not configured; bookings will fail until it is.')

    try:
        Base.metadata.create_all(bind=engine)
        ensure_booking_schema()
    except SQLAlchemyError:
        logger.exception('Database initialization failed. Check DATABASE_URL and database credentials.')


@app.get('/')
def root():
    return {'status': 'Booking API Running'}


app.include_router(auth_routes.router, prefix='/auth')
app.include_router(booking_routes.router, prefix='/booking')
app.include_router(admin_routes.router, prefix='/admin')
