"""
Shared test fixtures.

Every test gets a fresh app bound to a temporary SQLite file (a file rather
than :memory: so worker threads share one database), seeded roles, and a fake
payment gateway in place of Stripe.
"""
import hashlib
import hmac
import json
import time
from datetime import date, timedelta

import pytest

from app import create_app
from models import db, Court, Facility, Role, User
from security.session import create_session
from services import OrderHandle, PaymentDetails, StripeGateway, build_lifecycle, build_reconciler, build_resolver

SIGNING_SECRET = "test-signing-secret"
WEBHOOK_SECRET = "whsec_test_secret"
CSRF_TOKEN = "csrf-test-token"


class FakeGateway(StripeGateway):
    """
    Records orders instead of calling Stripe. Webhook parsing is inherited, so
    events still go through real Stripe signature verification.
    """

    provider = "FAKE"

    def __init__(self):
        super().__init__(api_key=None)
        self.orders = []
        self.error = None

    def create_order(self, amount, currency, receipt, notes):
        if self.error is not None:
            raise self.error
        handle = OrderHandle(id=f"order_{len(self.orders) + 1}", amount=amount, currency=currency, receipt=receipt)
        self.orders.append((handle, notes))
        return handle

    def fetch_payment(self, payment_id):
        if self.error is not None:
            raise self.error
        for handle, _ in self.orders:
            if payment_id in (handle.id, f"pay_for_{handle.id}"):
                return PaymentDetails(id=payment_id, order_id=handle.id, amount=handle.amount,
                                      currency=handle.currency, status="succeeded")
        raise LookupError(payment_id)


def signed_stripe_event(event_type, intent, secret=WEBHOOK_SECRET):
    """Body and Stripe-Signature header as Stripe would send them (t=...,v1=HMAC-SHA256 of "t.body")."""
    payload = json.dumps({"id": "evt_test", "object": "event", "type": event_type, "data": {"object": intent}})
    timestamp = int(time.time())
    signature = hmac.new(secret.encode("utf-8"), f"{timestamp}.{payload}".encode("utf-8"), hashlib.sha256).hexdigest()
    return payload, f"t={timestamp},v1={signature}"


@pytest.fixture()
def app(tmp_path):
    app = create_app({
        "TESTING": True,
        "SQLALCHEMY_DATABASE_URI": "sqlite:///" + str(tmp_path / "test.db"),
        "SQLALCHEMY_ENGINE_OPTIONS": {"connect_args": {"timeout": 30, "check_same_thread": False}},
        "CREATE_TABLES_ON_STARTUP": True,
        "PAYMENT_SIGNING_SECRET": SIGNING_SECRET,
        "STRIPE_WEBHOOK_SECRET": WEBHOOK_SECRET,
        "PAYMENT_PUBLIC_KEY": "pk_test_123",
    })
    app.extensions["payment_gateway"] = FakeGateway()

    with app.app_context():
        yield app
        db.session.remove()
        db.engine.dispose()


@pytest.fixture()
def gateway(app):
    return app.extensions["payment_gateway"]


def _make_user(email, *role_names):
    user = User(email=email, full_name=email.split("@")[0].title())
    user.roles = Role.query.filter(Role.name.in_(role_names)).all()
    db.session.add(user)
    db.session.commit()
    return user


@pytest.fixture()
def owner(app):
    return _make_user("owner@example.com", "OWNER")


@pytest.fixture()
def player(app):
    return _make_user("player@example.com", "PLAYER")


@pytest.fixture()
def other_player(app):
    return _make_user("other@example.com", "PLAYER")


@pytest.fixture()
def facility(owner):
    f = Facility(name="Downtown Sports Arena", address="1 Main St", owner_user_id=owner.id)
    db.session.add(f)
    db.session.commit()
    return f


@pytest.fixture()
def court(facility):
    c = Court(facility_id=facility.id, name="Court 1", sport_type="Badminton", price_per_hour=50000)
    db.session.add(c)
    db.session.commit()
    return c


@pytest.fixture()
def game_day():
    return date.today() + timedelta(days=7)


@pytest.fixture()
def lifecycle(app):
    return build_lifecycle(db.session, app.config)


@pytest.fixture()
def resolver(app):
    return build_resolver(db.session, app.config)


@pytest.fixture()
def reconciler(app, gateway):
    return build_reconciler(db.session, app.config, gateway)


@pytest.fixture()
def client(app):
    return app.test_client()


@pytest.fixture()
def login(app, client):
    """Log the test client in as `user`; returns the headers a mutating request needs."""
    def _login(user):
        token = create_session(user.id)
        client.set_cookie(app.config["AUTH_COOKIE_NAME"], token)
        client.set_cookie("csrf_token", CSRF_TOKEN)
        return {"X-CSRF-Token": CSRF_TOKEN}
    return _login
