from types import SimpleNamespace

from pywebpush import WebPushException

from canteen.core.errors import StoreError
from canteen.db.models import PushSubscription
from canteen.services.notify import Message, NotificationDispatcher


def push_error(status):
    return WebPushException("push failed", response=SimpleNamespace(status_code=status, text=""))


def endpoints_of(db, user_id):
    return sorted(s.endpoint for s in db.query(PushSubscription).filter_by(user_id=user_id))


class TestNotificationDispatcher:

    def test_sends_to_every_endpoint(self, ledger, sender, make_user):
        user = make_user(endpoints=["https://push.test/1", "https://push.test/2"])
        delivered = NotificationDispatcher(ledger, sender).notify(user.id, Message("Hi", "Order ready"))

        assert delivered == 2
        assert sorted(e for e, _ in sender.sent) == ["https://push.test/1", "https://push.test/2"]
        _, payload = sender.sent[0]
        assert payload["title"] == "Hi"
        assert payload["body"] == "Order ready"
        assert payload["icon"] == "/icon-192.png"

    def test_explicit_icon_is_kept(self, ledger, sender, make_user):
        user = make_user(endpoints=["https://push.test/1"])
        NotificationDispatcher(ledger, sender).notify(user.id, Message("t", "b", icon="/logo.png"))
        assert sender.sent[0][1]["icon"] == "/logo.png"

    def test_gone_endpoints_are_pruned(self, db, ledger, sender, make_user):
        user = make_user(endpoints=["https://push.test/live", "https://push.test/gone", "https://push.test/missing"])
        sender.errors["https://push.test/gone"] = push_error(410)
        sender.errors["https://push.test/missing"] = push_error(404)

        delivered = NotificationDispatcher(ledger, sender).notify(user.id, Message("t", "b"))

        assert delivered == 1
        assert endpoints_of(db, user.id) == ["https://push.test/live"]

    def test_other_failures_keep_subscription_and_continue(self, db, ledger, sender, make_user):
        user = make_user(endpoints=["https://push.test/flaky", "https://push.test/broken", "https://push.test/ok"])
        sender.errors["https://push.test/flaky"] = push_error(500)
        sender.errors["https://push.test/broken"] = ConnectionError("reset")

        delivered = NotificationDispatcher(ledger, sender).notify(user.id, Message("t", "b"))

        assert delivered == 1
        assert [e for e, _ in sender.sent] == ["https://push.test/ok"]
        assert len(endpoints_of(db, user.id)) == 3

    def test_failed_prune_is_logged_not_raised(self, db, ledger, sender, make_user, monkeypatch, caplog):
        user = make_user(endpoints=["https://push.test/gone", "https://push.test/live"])
        sender.errors["https://push.test/gone"] = push_error(410)

        def broken_delete(sub):
            raise StoreError("database unavailable")
        monkeypatch.setattr(ledger, "delete_subscription", broken_delete)

        delivered = NotificationDispatcher(ledger, sender).notify(user.id, Message("t", "b"))

        assert delivered == 1
        assert [e for e, _ in sender.sent] == ["https://push.test/live"]
        assert "could not remove gone subscription" in caplog.text
        assert len(endpoints_of(db, user.id)) == 2

    def test_user_without_subscriptions(self, ledger, sender, make_user):
        user = make_user()
        assert NotificationDispatcher(ledger, sender).notify(user.id, Message("t", "b")) == 0
        assert sender.sent == []
