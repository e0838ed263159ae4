from datetime import datetime, timedelta
from typing import Optional

from sqlalchemy import func, select
from sqlalchemy.orm import Session

from canteen.core.errors import ValidationError
from canteen.core.money import from_cents
from canteen.db.models import Order, OrderItem, OrderStatus, PaymentMethod
from canteen.security.utils import now_utc

PERIODS = ("today", "week", "month", "all")


def period_start(period: str, now: Optional[datetime] = None) -> Optional[datetime]:
    now = now or now_utc()
    if period == "today":
        return now.replace(hour=0, minute=0, second=0, microsecond=0)
    if period == "week":
        return now - timedelta(days=7)
    if period == "month":
        return now - timedelta(days=30)
    if period == "all":
        return None
    raise ValidationError(f"Unknown period '{period}', expected one of {', '.join(PERIODS)}")


def summarize(db: Session, period: str = "today", top: int = 5) -> dict:
    since = period_start(period)
    counted = [
        Order.status != OrderStatus.REJECTED.value,
        Order.payment_method != PaymentMethod.CARD_PENDING.value,
    ]
    if since is not None:
        counted.append(Order.created_at >= since)

    count, revenue = db.execute(
        select(func.count(Order.id), func.coalesce(func.sum(Order.total_cents), 0)).where(*counted)
    ).one()

    by_method = {
        method: from_cents(cents)
        for method, cents in db.execute(
            select(Order.payment_method, func.sum(Order.total_cents))
            .where(*counted)
            .group_by(Order.payment_method)
        )
    }

    qty = func.sum(OrderItem.quantity).label("qty")
    top_items = [
        {"name": name, "quantity": int(q), "revenue": from_cents(int(cents))}
        for name, q, cents in db.execute(
            select(OrderItem.name, qty, func.sum(OrderItem.unit_price_cents * OrderItem.quantity))
            .join(Order, Order.id == OrderItem.order_id)
            .where(*counted)
            .group_by(OrderItem.name)
            .order_by(qty.desc(), OrderItem.name)
            .limit(top)
        )
    ]

    return {
        "period": period,
        "orderCount": count,
        "revenue": from_cents(revenue),
        "averageOrderValue": round(from_cents(revenue) / count, 2) if count else 0.0,
        "byPaymentMethod": by_method,
        "topItems": top_items,
    }
