"""
Shared fixtures: in-memory database, fake payment gateway, recording push sender.
"""
import os

os.environ["POSTGRES_DSN"] = "sqlite://"
os.environ["JWT_SECRET"] = "test-secret"
os.environ["DASHBOARD_PASSWORD"] = "staff-secret"
os.environ["VAPID_PUBLIC_KEY"] = "test-vapid-public-key"

import pytest
from fastapi.testclient import TestClient

from canteen.core.errors import GatewayError
from canteen.db.models import PushSubscription, User, Wallet
from canteen.db.session import Base, SessionLocal, engine
from canteen.security.utils import create_access_token
from canteen.services.ledger import LedgerStore
from canteen.services.notify import NotificationDispatcher
from canteen.services.orders import OrderLifecycleManager
from canteen.services.paymob import CardCheckout


class FakeGateway:
    def __init__(self):
        self.calls = []
        self.fail = False

    def checkout(self, merchant_order_id, amount_cents, billing):
        if self.fail:
            raise GatewayError("gateway down")
        self.calls.append({"merchant_order_id": merchant_order_id, "amount_cents": amount_cents, "billing": billing})
        key = f"key-{merchant_order_id}"
        return CardCheckout(
            gateway_order_id=f"pm-{merchant_order_id}",
            payment_key=key,
            redirect_url=f"https://pay.test/iframes/1?payment_token={key}",
        )


class RecordingSender:
    def __init__(self):
        self.sent = []
        self.errors = {}

    def __call__(self, subscription_info, payload):
        exc = self.errors.get(subscription_info["endpoint"])
        if exc is not None:
            raise exc
        self.sent.append((subscription_info["endpoint"], payload))


@pytest.fixture(autouse=True)
def schema():
    Base.metadata.create_all(engine)
    yield
    Base.metadata.drop_all(engine)


@pytest.fixture
def db():
    session = SessionLocal()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture
def gateway():
    return FakeGateway()


@pytest.fixture
def sender():
    return RecordingSender()


@pytest.fixture
def ledger(db):
    return LedgerStore(db)


@pytest.fixture
def manager(ledger, gateway, sender):
    return OrderLifecycleManager(ledger, gateway, NotificationDispatcher(ledger, sender))


@pytest.fixture
def make_user(db):
    counter = {"n": 0}

    def _make(name="Sara Ahmed", balance_cents=0, student_id=None, endpoints=()):
        counter["n"] += 1
        user = User(
            name=name,
            student_id=student_id or f"2024{counter['n']:04d}",
            password_hash="not-a-real-hash",
        )
        user.wallet = Wallet(balance_cents=balance_cents)
        for i, endpoint in enumerate(endpoints):
            user.subscriptions.append(PushSubscription(endpoint=endpoint, p256dh=f"p{i}", auth=f"a{i}"))
        db.add(user)
        db.commit()
        db.refresh(user)
        return user

    return _make


@pytest.fixture
def client(gateway, sender):
    from canteen.api.deps import get_gateway, get_push_sender
    from canteen.main import app

    app.dependency_overrides[get_gateway] = lambda: gateway
    app.dependency_overrides[get_push_sender] = lambda: sender
    with TestClient(app) as c:
        yield c
    app.dependency_overrides.clear()


def auth_headers(user_id: int) -> dict:
    token, _ = create_access_token(user_id)
    return {"Authorization": f"Bearer {token}"}


DASHBOARD = {"Authorization": "Bearer staff-secret"}
