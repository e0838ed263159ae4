import json
import logging
from dataclasses import asdict, dataclass
from typing import Callable, Optional

from pywebpush import WebPushException, webpush

from canteen.core.config import settings
from canteen.db.models import PushSubscription
from canteen.services.ledger import LedgerStore

log = logging.getLogger(__name__)

# Push services answer 404/410 for subscriptions that no longer exist
GONE_STATUSES = (404, 410)


@dataclass
class Message:
    title: str
    body: str
    icon: str = ""


def send_web_push(subscription_info: dict, payload: dict) -> None:
    webpush(
        subscription_info=subscription_info,
        data=json.dumps(payload),
        vapid_private_key=settings.VAPID_PRIVATE_KEY,
        vapid_claims={"sub": settings.VAPID_CLAIMS_EMAIL},
        timeout=10,
    )


Sender = Callable[[dict, dict], None]


class NotificationDispatcher:
    def __init__(self, ledger: LedgerStore, sender: Sender = send_web_push):
        self.ledger = ledger
        self.sender = sender

    def notify(self, user_id: int, message: Message) -> int:
        """Push to every endpoint of the user; returns how many deliveries succeeded."""
        payload = asdict(message)
        if not payload["icon"]:
            payload["icon"] = settings.PUSH_ICON
        delivered = 0
        for sub in self.ledger.subscriptions_for(user_id):
            if self._deliver(sub, payload):
                delivered += 1
        return delivered

    def _deliver(self, sub: PushSubscription, payload: dict) -> bool:
        info = {"endpoint": sub.endpoint, "keys": {"p256dh": sub.p256dh, "auth": sub.auth}}
        try:
            self.sender(info, payload)
            return True
        except WebPushException as exc:
            status = _status_of(exc)
            if status in GONE_STATUSES:
                log.info("push endpoint gone (%s), removing subscription %s", status, sub.id)
                self._prune(sub)
            else:
                log.warning("push to subscription %s failed: %s", sub.id, exc)
        except Exception:
            log.exception("push to subscription %s failed", sub.id)
        return False

    def _prune(self, sub: PushSubscription) -> None:
        # the order transition is already committed; cleanup failures are only logged
        sub_id = sub.id
        try:
            self.ledger.delete_subscription(sub)
        except Exception:
            log.exception("could not remove gone subscription %s", sub_id)


def _status_of(exc: WebPushException) -> Optional[int]:
    response = getattr(exc, "response", None)
    return getattr(response, "status_code", None)
