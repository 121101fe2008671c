"""
Shared fixtures

Each test gets a fresh SQLite file database wired the same way the app wires
Postgres: a ``Database`` handle on ``app.state``. Writers take the database
lock up front (BEGIN IMMEDIATE) so concurrent bookings serialize instead of
failing on lock upgrades.
"""
import os

os.environ.setdefault("RATE_LIMIT_ENABLED", "false")
os.environ.setdefault("RAZORPAY_KEY_ID", "rzp_test_key")
os.environ.setdefault("RAZORPAY_KEY_SECRET", "test_key_secret")
os.environ.setdefault("RAZORPAY_WEBHOOK_SECRET", "test_webhook_secret")

import hashlib
import hmac
import itertools
import threading
from datetime import timedelta
from decimal import Decimal

import pytest
import razorpay
from fastapi.testclient import TestClient
from sqlalchemy import create_engine, event

from app.config import settings
from app.db.session import Database
from app.main import app
from app.middleware.rate_limit import limiter
from app.models.availability import AvailabilitySlot
from app.models.consultant import Consultant
from app.models.enums import SessionType
from app.services.cache_service import CacheService
from app.services.notification_service import SideEffectDispatcher
from app.services.payment_service import RazorpayGateway
from app.utils.auth import create_access_token
from app.utils.time_utils import today_in

KEY_ID = "rzp_test_key"
KEY_SECRET = "test_key_secret"
WEBHOOK_SECRET = "test_webhook_secret"


# ============================================================================
# FAKES
# ============================================================================

class FakeEmailService:
    """Records what would have been sent"""

    def __init__(self):
        self.lock = threading.Lock()
        self.session_confirmations = []
        self.payment_confirmations = []
        self.refund_notifications = []

    def send_session_confirmation_email(self, data):
        with self.lock:
            self.session_confirmations.append(data)
        return True

    def send_payment_confirmation_email(self, data):
        with self.lock:
            self.payment_confirmations.append(data)
        return True

    def send_refund_notification_email(self, data):
        with self.lock:
            self.refund_notifications.append(data)
        return True


class FakeOrders:
    def __init__(self):
        self.created = []
        self._ids = itertools.count(1)

    def create(self, data=None, **kwargs):
        order = {
            "id": f"order_test{next(self._ids):04d}",
            "entity": "order",
            "amount": data["amount"],
            "currency": data["currency"],
            "receipt": data["receipt"],
            "status": "created",
            "notes": data.get("notes", {}),
            "created_at": 1790000000,
        }
        self.created.append(order)
        return order


class FakePayments:
    """Payments keyed by id; tests register what the gateway should report"""

    def __init__(self):
        self.entities = {}
        self.refunds = []

    def add(self, payment_id, order_id, amount_paise, status="captured", method="upi"):
        self.entities[payment_id] = {
            "id": payment_id,
            "entity": "payment",
            "order_id": order_id,
            "amount": amount_paise,
            "currency": "INR",
            "status": status,
            "method": method,
        }
        return self.entities[payment_id]

    def fetch(self, payment_id, data=None, **kwargs):
        return self.entities[payment_id]

    def refund(self, payment_id, data=None, **kwargs):
        refund = {
            "id": f"rfnd_test{len(self.refunds) + 1:04d}",
            "entity": "refund",
            "payment_id": payment_id,
            "amount": data["amount"],
            "status": "processed",
        }
        self.refunds.append(refund)
        return refund


def payment_signature(order_id: str, payment_id: str) -> str:
    return hmac.new(
        KEY_SECRET.encode(), f"{order_id}|{payment_id}".encode(), hashlib.sha256
    ).hexdigest()


def webhook_signature(body: str) -> str:
    return hmac.new(WEBHOOK_SECRET.encode(), body.encode(), hashlib.sha256).hexdigest()


# ============================================================================
# DATABASE
# ============================================================================

def _sqlite_engine(path: str):
    engine = create_engine(
        f"sqlite:///{path}",
        connect_args={"timeout": 30, "check_same_thread": False},
    )

    @event.listens_for(engine, "connect")
    def _disable_pysqlite_transactions(dbapi_connection, connection_record):
        dbapi_connection.isolation_level = None

    @event.listens_for(engine, "begin")
    def _begin_immediate(conn):
        conn.exec_driver_sql("BEGIN IMMEDIATE")

    return engine


@pytest.fixture
def database(tmp_path):
    path = tmp_path / "test.db"
    handle = Database(f"sqlite:///{path}", engine=_sqlite_engine(str(path)))
    handle.create_all()
    yield handle
    handle.dispose()


@pytest.fixture
def db(database):
    session = database.SessionLocal()
    yield session
    session.rollback()
    session.close()


# ============================================================================
# APPLICATION
# ============================================================================

@pytest.fixture
def email_service():
    return FakeEmailService()


@pytest.fixture
def razorpay_client():
    client = razorpay.Client(auth=(KEY_ID, KEY_SECRET))
    client.order = FakeOrders()
    client.payment = FakePayments()
    return client


@pytest.fixture
def gateway(razorpay_client):
    return RazorpayGateway(razorpay_client, key_id=KEY_ID, webhook_secret=WEBHOOK_SECRET)


@pytest.fixture
def side_effects(email_service):
    dispatcher = SideEffectDispatcher(email_service, CacheService(None), max_workers=2)
    yield dispatcher
    dispatcher.shutdown(wait=True)


@pytest.fixture
def client(database, gateway, side_effects):
    limiter.enabled = False
    app.state.database = database
    app.state.cache = CacheService(None)
    app.state.payment_gateway = gateway
    app.state.side_effects = side_effects
    with TestClient(app) as test_client:
        yield test_client
    for name in ("database", "cache", "payment_gateway", "side_effects"):
        setattr(app.state, name, None)


# ============================================================================
# DATA
# ============================================================================

@pytest.fixture
def today():
    return today_in(settings.DEFAULT_TIMEZONE)


@pytest.fixture
def booking_day(today):
    return today + timedelta(days=3)


@pytest.fixture
def consultant(db):
    consultant = Consultant(
        email="meera@example.com",
        first_name="Meera",
        last_name="Iyer",
        slug="meera-iyer",
        personal_session_price=Decimal("1500.00"),
        webinar_session_price=Decimal("500.00"),
        is_active=True,
        is_email_verified=True,
        is_approved_by_admin=True,
    )
    db.add(consultant)
    db.commit()
    return consultant


@pytest.fixture
def unapproved_consultant(db):
    consultant = Consultant(
        email="pending@example.com",
        first_name="Ravi",
        last_name="Kumar",
        slug="ravi-kumar",
        personal_session_price=Decimal("1000.00"),
        is_active=True,
        is_email_verified=True,
        is_approved_by_admin=False,
    )
    db.add(consultant)
    db.commit()
    return consultant


@pytest.fixture
def open_slot(db, consultant, booking_day):
    slot = AvailabilitySlot(
        consultant_id=consultant.id,
        session_type=SessionType.PERSONAL,
        date=booking_day,
        start_time="10:00",
        end_time="11:00",
    )
    db.add(slot)
    db.commit()
    return slot


@pytest.fixture
def auth_headers(consultant):
    return {"Authorization": f"Bearer {create_access_token({'sub': consultant.id})}"}


@pytest.fixture
def booking_payload(consultant, booking_day):
    return {
        "fullName": "Anita Desai",
        "email": "Anita.Desai@Example.com",
        "phone": "9812345678",
        "sessionType": "PERSONAL",
        "selectedDate": booking_day.isoformat(),
        "selectedTime": "10:00",
        "duration": 60,
        "amount": 1500,
        "clientNotes": "Resume review",
        "consultantSlug": consultant.slug,
    }
