from __future__ import annotations

from typing import Iterator

import pytest
from sqlalchemy import create_engine
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool
from starlette.testclient import TestClient

import labbooking.presentation.routers as routers
from labbooking.core.entities.user import User
from labbooking.infrastructure.database import Base
from labbooking.infrastructure.seed import seed_catalog
from labbooking.main import app
from labbooking.services.booking_service import BookingContext, open_booking_context
from labbooking.tests.factories import (
    ADMIN_ID,
    CATALOG,
    MANAGER_ID,
    OTHER_PROFESSOR_ID,
    PHYSICS_MANAGER_ID,
    PROFESSOR_ID,
    RecordingSink,
    fixed_clock,
)


@pytest.fixture()
def engine() -> Iterator[Engine]:
    test_engine = create_engine(
        "sqlite+pysqlite:///:memory:",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(bind=test_engine)
    yield test_engine
    test_engine.dispose()


@pytest.fixture()
def session_factory(engine: Engine) -> sessionmaker:
    factory = sessionmaker(bind=engine)
    db = factory()
    try:
        seed_catalog(db, CATALOG)
    finally:
        db.close()
    return factory


@pytest.fixture()
def db(session_factory: sessionmaker) -> Iterator[Session]:
    session = session_factory()
    yield session
    session.close()


@pytest.fixture()
def sink() -> RecordingSink:
    return RecordingSink()


@pytest.fixture()
def booking(db: Session, sink: RecordingSink) -> BookingContext:
    """Use cases with immediate notifications, so tests see them without committing."""
    return open_booking_context(db, sink=sink, clock=fixed_clock, deferred_notifications=False)


@pytest.fixture()
def admin(booking: BookingContext) -> User:
    return booking.users.get(ADMIN_ID)


@pytest.fixture()
def manager(booking: BookingContext) -> User:
    return booking.users.get(MANAGER_ID)


@pytest.fixture()
def physics_manager(booking: BookingContext) -> User:
    return booking.users.get(PHYSICS_MANAGER_ID)


@pytest.fixture()
def professor(booking: BookingContext) -> User:
    return booking.users.get(PROFESSOR_ID)


@pytest.fixture()
def other_professor(booking: BookingContext) -> User:
    return booking.users.get(OTHER_PROFESSOR_ID)


@pytest.fixture()
def client(session_factory: sessionmaker, sink: RecordingSink) -> Iterator[TestClient]:
    """
    TestClient on the real app, with the database, notification sink and clock swapped for test doubles.
    """

    def _override_get_db():
        db = session_factory()
        try:
            yield db
        finally:
            db.close()

    app.dependency_overrides[routers.get_db] = _override_get_db
    app.dependency_overrides[routers.get_notification_sink] = lambda: sink
    app.dependency_overrides[routers.get_clock] = lambda: fixed_clock
    yield TestClient(app)
    app.dependency_overrides.clear()
