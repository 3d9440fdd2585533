"""
Shared fixtures.

The suite runs against an in-memory SQLite database (single shared
connection) built from the models. Time is pinned to Friday 2026-03-06
08:00 studio time unless a test moves the clock.
"""
import os

os.environ["DATABASE_URL"] = "sqlite+pysqlite:///:memory:"
os.environ.setdefault("JWT_SECRET", "test-secret-key-for-the-suite-only")

from datetime import date, datetime, timedelta
from itertools import count
from uuid import uuid4

import pytest

from runafit.lib.clock import FixedClock
from runafit.lib.config_flags import reset_all_configs
from runafit.lib.db import Base, SessionLocal, engine, init_db
from runafit.lib.metrics import reset_metrics
from runafit.lib.request_context import SessionContext
from runafit.models import Client, ClientRole, CreditLot, CreditLotStatus, Pack
from runafit.services.notification_service import (
    LogNotificationProvider,
    NotificationService,
    set_notification_service,
)


init_db()

NOW = datetime(2026, 3, 6, 8, 0)  # Friday
TODAY = NOW.date()

_dni_counter = count(30100200)


@pytest.fixture(autouse=True)
def _reset_state():
    """Fresh tables, counters, configuration and notification register per test."""
    reset_metrics()
    reset_all_configs()
    set_notification_service(None)
    yield
    with engine.begin() as conn:
        for table in reversed(Base.metadata.sorted_tables):
            conn.execute(table.delete())
    reset_all_configs()
    set_notification_service(None)


@pytest.fixture
def clock():
    return FixedClock(NOW)


@pytest.fixture
def db():
    session = SessionLocal()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture
def notifier():
    return NotificationService(LogNotificationProvider())


@pytest.fixture
def make_client(db):
    """Factory for committed clients."""

    def _make(name="Lucia Gomez", role=ClientRole.CLIENT, studio_id=1, **kwargs):
        client = Client(
            dni=str(next(_dni_counter)),
            name=name,
            role=role,
            studio_id=studio_id,
            **kwargs,
        )
        db.add(client)
        db.commit()
        return client

    return _make


@pytest.fixture
def make_lot(db):
    """
    Factory for committed credit lots.

    remaining defaults to total; expiry is given in days from TODAY.
    """

    def _make(client, total=8, remaining=None, expires_in_days=30, purchased_days_ago=0, status=CreditLotStatus.ACTIVE):
        remaining = total if remaining is None else remaining
        lot = CreditLot(
            client_id=client.id,
            total_credits=total,
            remaining_credits=remaining,
            carried_over_credits=0,
            purchase_date=TODAY - timedelta(days=purchased_days_ago),
            expiry_date=TODAY + timedelta(days=expires_in_days),
            status=CreditLotStatus.EXHAUSTED if remaining == 0 and status == CreditLotStatus.ACTIVE else status,
        )
        db.add(lot)
        db.commit()
        return lot

    return _make


@pytest.fixture
def make_pack(db):
    def _make(class_count=8, duration_days=30, price=24000, active=True, name=None):
        pack = Pack(
            studio_id=1,
            name=name or f"{class_count} classes",
            class_count=class_count,
            price=price,
            duration_days=duration_days,
            active=active,
        )
        db.add(pack)
        db.commit()
        return pack

    return _make


def build_session(client, session_id=None) -> SessionContext:
    return SessionContext(
        client_id=client.id,
        role=client.role,
        session_id=session_id or uuid4().hex,
        studio_id=client.studio_id,
        shift_preference=client.shift_preference,
    )


@pytest.fixture
def session_for():
    """Session context factory for a stored client."""
    return build_session


@pytest.fixture
def admin(make_client):
    return make_client(name="Front Desk", role=ClientRole.ADMIN)


@pytest.fixture
def admin_session(admin):
    return build_session(admin)


@pytest.fixture
def on():
    """Date factory: TODAY plus a number of days."""

    def _on(day_offset: int) -> date:
        return TODAY + timedelta(days=day_offset)

    return _on
