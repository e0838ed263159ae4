"""
Concurrent requests against a file-backed database, one session per thread.

The shared in-memory engine the other tests use hands every session the same
connection, so these tests build their own engine with a real pool.
"""
from concurrent.futures import ThreadPoolExecutor

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker

from canteen.core.errors import InsufficientFunds, InvalidTransition
from canteen.db.models import Order, OrderStatus, User, Wallet
from canteen.db.session import Base
from canteen.services.ledger import LedgerStore
from canteen.services.notify import NotificationDispatcher
from canteen.services.orders import LineItem, OrderLifecycleManager
from tests.conftest import FakeGateway, RecordingSender

WORKERS = 8


@pytest.fixture
def session_factory(tmp_path):
    engine = create_engine(
        f"sqlite:///{tmp_path / 'canteen.db'}",
        connect_args={"timeout": 30, "check_same_thread": False},
    )
    Base.metadata.create_all(engine)
    try:
        yield sessionmaker(bind=engine, autoflush=False, autocommit=False)
    finally:
        engine.dispose()


@pytest.fixture
def run_in_sessions(session_factory):
    """Run ``fn(manager)`` once per task, each on its own thread and session."""

    def _run(fn, tasks):
        def worker(_):
            session = session_factory()
            ledger = LedgerStore(session)
            manager = OrderLifecycleManager(ledger, FakeGateway(), NotificationDispatcher(ledger, RecordingSender()))
            try:
                return fn(manager)
            except (InsufficientFunds, InvalidTransition) as exc:
                return exc
            finally:
                session.close()

        with ThreadPoolExecutor(max_workers=WORKERS) as pool:
            return list(pool.map(worker, range(tasks)))

    return _run


def add_user(session_factory, balance_cents):
    with session_factory() as session:
        user = User(name="Sara Ahmed", student_id="20240001", password_hash="x")
        user.wallet = Wallet(balance_cents=balance_cents)
        session.add(user)
        session.commit()
        return user.id


def balance_of(session_factory, user_id):
    with session_factory() as session:
        return LedgerStore(session).get_balance(user_id)


class TestConcurrentSessions:

    def test_display_ids_are_unique_across_sessions(self, run_in_sessions):
        batches = run_in_sessions(lambda m: [m.ledger.next_display_id() for _ in range(5)], WORKERS)
        ids = [i for batch in batches for i in batch]
        assert len(ids) == WORKERS * 5
        assert len(set(ids)) == len(ids)

    def test_wallet_cannot_be_overspent(self, session_factory, run_in_sessions):
        user_id = add_user(session_factory, balance_cents=5000)
        cart = [LineItem(name="Koshari", unit_price_cents=1000, quantity=1)]

        results = run_in_sessions(lambda m: m.place_wallet_order(user_id, cart).display_id, 10)

        placed = [r for r in results if not isinstance(r, Exception)]
        refused = [r for r in results if isinstance(r, InsufficientFunds)]
        assert len(placed) == 5
        assert len(refused) == 5
        assert len(set(placed)) == 5
        assert balance_of(session_factory, user_id) == 0
        with session_factory() as session:
            assert session.query(Order).filter_by(user_id=user_id).count() == 5

    def test_parallel_rejects_refund_once(self, session_factory, run_in_sessions):
        user_id = add_user(session_factory, balance_cents=5000)
        with session_factory() as session:
            ledger = LedgerStore(session)
            manager = OrderLifecycleManager(ledger, FakeGateway(), NotificationDispatcher(ledger, RecordingSender()))
            display_id = manager.place_wallet_order(
                user_id, [LineItem(name="Feast", unit_price_cents=5000, quantity=1)]
            ).display_id

        results = run_in_sessions(lambda m: m.reject_order(display_id, "double click").display_id, WORKERS)

        assert results.count(display_id) == 1
        assert all(isinstance(r, InvalidTransition) for r in results if r != display_id)
        assert balance_of(session_factory, user_id) == 5000
        with session_factory() as session:
            assert LedgerStore(session).get_order(display_id).status == OrderStatus.REJECTED.value
