"""Order lifecycle: wallet and card checkout, payment reconciliation, staff actions.

Wallet orders are debited and inserted in one transaction. Card orders sit in
``Card_Pending`` until the gateway callback confirms them; only then do they
enter the kitchen queue as ``Preparing``.
"""
import logging
from dataclasses import dataclass
from typing import Any, List, Optional, Sequence

from canteen.core.errors import InsufficientFunds, InvalidTransition, NotFound, ValidationError
from canteen.core.config import settings
from canteen.core.money import from_cents
from canteen.db.models import Order, OrderStatus, PaymentMethod, User
from canteen.services.ledger import LedgerStore
from canteen.services.notify import Message, NotificationDispatcher
from canteen.services.paymob import Billing, PaymobGateway, parse_callback, split_name

log = logging.getLogger(__name__)

# Staff-driven moves through advance_status; rejection has its own operation
ADVANCE_TRANSITIONS = {
    OrderStatus.PREPARING: {OrderStatus.READY},
}
REJECTABLE = {OrderStatus.PREPARING, OrderStatus.PENDING_PAYMENT}


@dataclass(frozen=True)
class LineItem:
    name: str
    unit_price_cents: int
    quantity: int


@dataclass
class CardPaymentStart:
    display_id: int
    redirect_url: str


def validate_items(items: Sequence[LineItem]) -> None:
    if not items:
        raise ValidationError("Cart is empty")
    for it in items:
        if not it.name:
            raise ValidationError("Item name is required")
        if it.quantity <= 0:
            raise ValidationError(f"Quantity for '{it.name}' must be positive")
        if it.unit_price_cents < 0:
            raise ValidationError(f"Price for '{it.name}' cannot be negative")


def total_of(items: Sequence[LineItem]) -> int:
    return sum(it.unit_price_cents * it.quantity for it in items)


class OrderLifecycleManager:
    def __init__(self, ledger: LedgerStore, gateway: PaymobGateway, notifier: NotificationDispatcher):
        self.ledger = ledger
        self.gateway = gateway
        self.notifier = notifier

    def place_wallet_order(self, user_id: int, items: List[LineItem], notes: str = "") -> Order:
        validate_items(items)
        total = total_of(items)

        if self.ledger.get_balance(user_id) < total:
            raise InsufficientFunds()

        display_id = self.ledger.next_display_id()

        # balance may have moved since the read above; the debit re-checks it
        if not self.ledger.debit(user_id, total):
            self.ledger.rollback()
            raise InsufficientFunds()
        order = self.ledger.add_order(
            display_id=display_id,
            user_id=user_id,
            items=items,
            total_cents=total,
            payment_method=PaymentMethod.WALLET,
            status=OrderStatus.PREPARING,
            notes=notes,
        )
        self.ledger.commit()
        log.info("wallet order %s placed by user %s for %s cents", display_id, user_id, total)
        return order

    def start_card_payment(self, user: User, items: List[LineItem], notes: str = "") -> CardPaymentStart:
        validate_items(items)
        total = total_of(items)
        display_id = self.ledger.next_display_id()

        first, last = split_name(user.name)
        billing = Billing(
            first_name=first,
            last_name=last,
            email=f"{user.student_id}@{settings.STUDENT_EMAIL_DOMAIN}",
        )
        checkout = self.gateway.checkout(display_id, total, billing)

        self.ledger.add_order(
            display_id=display_id,
            user_id=user.id,
            items=items,
            total_cents=total,
            payment_method=PaymentMethod.CARD_PENDING,
            status=OrderStatus.PENDING_PAYMENT,
            notes=notes,
            external_payment_id=checkout.gateway_order_id,
        )
        self.ledger.commit()
        log.info("card order %s pending (gateway order %s)", display_id, checkout.gateway_order_id)
        return CardPaymentStart(display_id=display_id, redirect_url=checkout.redirect_url)

    def confirm_payment_callback(self, payload: Any) -> bool:
        """Apply a gateway callback. Never raises; returns True if an order moved."""
        try:
            return self._apply_callback(payload)
        except Exception:
            self.ledger.rollback()
            log.exception("payment callback could not be applied")
            return False

    def _apply_callback(self, payload: Any) -> bool:
        result = parse_callback(payload)
        if not result.success:
            log.info("payment callback without success for merchant order %s", result.merchant_order_id)
            return False

        order: Optional[Order] = None
        if result.merchant_order_id is not None:
            order = self.ledger.find_order(result.merchant_order_id)
        if order is None and result.gateway_order_id:
            order = self.ledger.find_order_by_payment_id(result.gateway_order_id)
        if order is None:
            log.warning("payment callback for unknown order (merchant=%s, gateway=%s)",
                        result.merchant_order_id, result.gateway_order_id)
            return False

        if not self.ledger.confirm_card_payment(order.id):
            if order.status == OrderStatus.REJECTED.value:
                log.warning("payment arrived for rejected order %s (gateway order %s); not reopening it",
                            order.display_id, result.gateway_order_id)
            return False
        log.info("card payment confirmed for order %s", order.display_id)
        self.notifier.notify(order.user_id, Message(
            title="Payment received",
            body=f"Order #{order.display_id} is paid and being prepared.",
        ))
        return True

    def advance_status(self, display_id: int, new_status: str) -> Order:
        target = _parse_status(new_status)
        if target == OrderStatus.REJECTED:
            raise ValidationError("Use the reject operation to reject an order")

        order = self.ledger.get_order(display_id)
        sources = [s for s, targets in ADVANCE_TRANSITIONS.items() if target in targets]
        if not self.ledger.transition_order(order.id, sources, target):
            self.ledger.rollback()
            raise InvalidTransition(f"Order {display_id} cannot move from {order.status} to {target.value}")
        self.ledger.commit()
        log.info("order %s -> %s", display_id, target.value)

        if target == OrderStatus.READY:
            self.notifier.notify(order.user_id, Message(
                title="Your order is ready",
                body=f"Order #{display_id} is ready for pickup.",
            ))
        return order

    def reject_order(self, display_id: int, reason: str) -> Order:
        order = self.ledger.get_order(display_id)
        # the status guard and the refund share one transaction
        if not self.ledger.transition_order(order.id, REJECTABLE, OrderStatus.REJECTED, notes=reason or ""):
            self.ledger.rollback()
            raise InvalidTransition(f"Order {display_id} cannot be rejected from {order.status}")

        refunded = order.payment_method == PaymentMethod.WALLET.value
        if refunded:
            self.ledger.credit(order.user_id, order.total_cents)
        self.ledger.commit()
        log.info("order %s rejected (refunded=%s)", display_id, refunded)

        body = f"Order #{display_id} was rejected"
        if reason:
            body += f": {reason}"
        if refunded:
            body += f". {from_cents(order.total_cents):.2f} was returned to your wallet."
        self.notifier.notify(order.user_id, Message(title="Order rejected", body=body))
        return order

    def order_status(self, user_id: int, display_id: int) -> str:
        order = self.ledger.get_order(display_id)
        if order.user_id != user_id:
            # other users' orders are indistinguishable from missing ones
            raise NotFound("Order not found")
        return order.status


def _parse_status(value: str) -> OrderStatus:
    try:
        return OrderStatus(value)
    except ValueError:
        raise ValidationError(f"Unknown status '{value}'")
