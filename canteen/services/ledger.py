"""Ledger store: the persistence operations the order workflow relies on.

Every balance change is a single conditional UPDATE so concurrent requests
cannot overspend a wallet.
"""
import logging
from typing import Iterable, List, Optional

from sqlalchemy import select, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from canteen.core.errors import IdAllocationError, NotFound, StoreError
from canteen.db.models import (
    Order,
    OrderItem,
    OrderNumber,
    PaymentMethod,
    OrderStatus,
    PushSubscription,
    User,
    Wallet,
)
from canteen.security.utils import now_utc

log = logging.getLogger(__name__)


class LedgerStore:
    def __init__(self, db: Session):
        self.db = db

    # --- users & wallets ---

    def get_user(self, user_id: int) -> User:
        user = self.db.get(User, user_id)
        if not user:
            raise NotFound("User not found")
        return user

    def get_balance(self, user_id: int) -> int:
        balance = self.db.execute(
            select(Wallet.balance_cents).where(Wallet.user_id == user_id)
        ).scalar_one_or_none()
        if balance is None:
            raise NotFound("Wallet not found")
        return balance

    def debit(self, user_id: int, amount_cents: int) -> bool:
        """Decrement the balance only if it covers the amount. Not committed."""
        res = self.db.execute(
            update(Wallet)
            .where(Wallet.user_id == user_id, Wallet.balance_cents >= amount_cents)
            .values(balance_cents=Wallet.balance_cents - amount_cents, updated_at=now_utc())
        )
        return res.rowcount == 1

    def credit(self, user_id: int, amount_cents: int) -> None:
        """Increment the balance. Not committed."""
        res = self.db.execute(
            update(Wallet)
            .where(Wallet.user_id == user_id)
            .values(balance_cents=Wallet.balance_cents + amount_cents, updated_at=now_utc())
        )
        if res.rowcount != 1:
            raise NotFound("Wallet not found")

    # --- orders ---

    def next_display_id(self) -> int:
        """Allocate a display id from the counter table and commit it at once."""
        try:
            row = OrderNumber(created_at=now_utc())
            self.db.add(row)
            self.db.flush()
            display_id = row.id
            self.db.commit()
            return display_id
        except SQLAlchemyError as exc:
            self.db.rollback()
            raise IdAllocationError(f"display id allocation failed: {exc}") from exc

    def add_order(
        self,
        *,
        display_id: int,
        user_id: int,
        items: Iterable,
        total_cents: int,
        payment_method: PaymentMethod,
        status: OrderStatus,
        notes: str = "",
        external_payment_id: Optional[str] = None,
    ) -> Order:
        """Stage an order with its line items. Not committed."""
        now = now_utc()
        order = Order(
            display_id=display_id,
            external_payment_id=external_payment_id,
            user_id=user_id,
            total_cents=total_cents,
            payment_method=payment_method.value,
            status=status.value,
            notes=notes or "",
            created_at=now,
            updated_at=now,
        )
        for it in items:
            order.items.append(
                OrderItem(name=it.name, unit_price_cents=it.unit_price_cents, quantity=it.quantity)
            )
        self.db.add(order)
        return order

    def find_order(self, display_id: int) -> Optional[Order]:
        return self.db.execute(
            select(Order).where(Order.display_id == display_id)
        ).scalar_one_or_none()

    def get_order(self, display_id: int) -> Order:
        order = self.find_order(display_id)
        if not order:
            raise NotFound("Order not found")
        return order

    def find_order_by_payment_id(self, external_payment_id: str) -> Optional[Order]:
        return self.db.execute(
            select(Order).where(Order.external_payment_id == external_payment_id)
        ).scalar_one_or_none()

    def confirm_card_payment(self, order_id: int) -> bool:
        """Move a Card_Pending order awaiting payment to Card/Preparing.

        Committed. False if the order was already confirmed or has left
        Pending Payment (e.g. rejected before the callback arrived).
        """
        res = self.db.execute(
            update(Order)
            .where(
                Order.id == order_id,
                Order.payment_method == PaymentMethod.CARD_PENDING.value,
                Order.status == OrderStatus.PENDING_PAYMENT.value,
            )
            .values(
                payment_method=PaymentMethod.CARD.value,
                status=OrderStatus.PREPARING.value,
                updated_at=now_utc(),
            )
        )
        self.db.commit()
        return res.rowcount == 1

    def transition_order(
        self,
        order_id: int,
        from_statuses: Iterable[OrderStatus],
        to_status: OrderStatus,
        notes: Optional[str] = None,
    ) -> bool:
        """Set the status only if the row is still in one of ``from_statuses``. Not committed.

        Of two callers racing on the same order exactly one sees True.
        """
        values = {"status": to_status.value, "updated_at": now_utc()}
        if notes is not None:
            values["notes"] = notes
        res = self.db.execute(
            update(Order)
            .where(Order.id == order_id, Order.status.in_([s.value for s in from_statuses]))
            .values(**values)
            .execution_options(synchronize_session=False)
        )
        return res.rowcount == 1

    def commit(self) -> None:
        try:
            self.db.commit()
        except SQLAlchemyError as exc:
            self.db.rollback()
            raise StoreError(f"commit failed: {exc}") from exc

    def rollback(self) -> None:
        self.db.rollback()

    # --- push subscriptions ---

    def subscriptions_for(self, user_id: int) -> List[PushSubscription]:
        return list(
            self.db.execute(
                select(PushSubscription).where(PushSubscription.user_id == user_id)
            ).scalars()
        )

    def delete_subscription(self, sub: PushSubscription) -> None:
        sub_id = sub.id
        try:
            self.db.delete(sub)
            self.db.commit()
        except SQLAlchemyError as exc:
            self.db.rollback()
            raise StoreError(f"could not delete subscription {sub_id}: {exc}") from exc
