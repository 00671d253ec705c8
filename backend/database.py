from threading import Lock

from sqlalchemy import create_engine, inspect, text
from sqlalchemy.engine import Engine
from sqlalchemy.orm import declarative_base, sessionmaker

from backend.core import config


def build_engine(database_url: str) -> Engine:
    connect_args = {}
    if database_url.startswith('sqlite'):
        connect_args['check_same_thread'] = False
    return create_engine(database_url, connect_args=connect_args, pool_pre_ping=True)


engine = build_engine(config.DATABASE_URL)

SessionLocal = sessionmaker(
    autocommit=False,
    autoflush=False,
    bind=engine,
)

Base = declarative_base()


def get_db():
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


_schema_lock = Lock()
_booking_schema_checked = False

# Partial unique index: the only concurrency control for slot occupancy.
ACTIVE_SLOT_INDEX = 'uq_appointments_active_slot'


def ensure_booking_schema(bind: Engine | None = None) -> None:
    global _booking_schema_checked

    if _booking_schema_checked and bind is None:
        return

    target = bind or engine

    with _schema_lock:
        if _booking_schema_checked and bind is None:
            return

        inspector = inspect(target)

        if 'appointments' not in inspector.get_table_names():
            if bind is None:
                _booking_schema_checked = True
            return

        existing_columns = {column['name'] for column in inspector.get_columns('appointments')}
        migration_steps = [
            ('cancel_token', 'ALTER TABLE appointments ADD COLUMN cancel_token VARCHAR(64)'),
            ('meeting_id', 'ALTER TABLE appointments ADD COLUMN meeting_id VARCHAR(255)'),
            ('meeting_join_url', 'ALTER TABLE appointments ADD COLUMN meeting_join_url VARCHAR(512)'),
            ('updated_at', 'ALTER TABLE appointments ADD COLUMN updated_at TIMESTAMP'),
            ('reminder_24h_sent', 'ALTER TABLE appointments ADD COLUMN reminder_24h_sent BOOLEAN NOT NULL DEFAULT FALSE'),
            ('reminder_1h_sent', 'ALTER TABLE appointments ADD COLUMN reminder_1h_sent BOOLEAN NOT NULL DEFAULT FALSE'),
        ]

        with target.begin() as connection:
            for column_name, statement in migration_steps:
                if column_name not in existing_columns:
                    connection.execute(text(statement))
            connection.execute(
                text(
                    f'CREATE UNIQUE INDEX IF NOT EXISTS {ACTIVE_SLOT_INDEX} '
                    "ON appointments(appointment_date, appointment_time) WHERE status <> 'cancelled'"
                )
            )
            connection.execute(
                text('CREATE UNIQUE INDEX IF NOT EXISTS uq_appointments_cancel_token ON appointments(cancel_token)')
            )
            connection.execute(
                text('CREATE INDEX IF NOT EXISTS idx_appointments_date_status ON appointments(appointment_date, status)')
            )

        if bind is None:
            _booking_schema_checked = True
