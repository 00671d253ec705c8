import os

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker

os.environ.setdefault('DATABASE_URL', 'sqlite:///./test.db')
os.environ.setdefault('EMAIL_NOTIFICATIONS_ENABLED', 'false')

from backend.database import Base  # noqa: E402
from backend.models import admin_settings, appointment, assessment, blocked_date, user, working_hours  # noqa: E402,F401
from tests.backend.fakes import FakeCalendarGateway, FakeNotifier  # noqa: E402


@pytest.fixture
def session_factory(tmp_path):
    engine = create_engine(
        f'sqlite:///{tmp_path / "booking.db"}',
        connect_args={'check_same_thread': False},
    )
    Base.metadata.create_all(bind=engine)
    factory = sessionmaker(autocommit=False, autoflush=False, bind=engine)
    try:
        yield factory
    finally:
        Base.metadata.drop_all(bind=engine)
        engine.dispose()


@pytest.fixture
def db(session_factory):
    session = session_factory()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture
def gateway():
    return FakeCalendarGateway()


@pytest.fixture
def notifier():
    return FakeNotifier()
