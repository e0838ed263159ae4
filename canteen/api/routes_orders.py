import logging
from collections import defaultdict

from fastapi import APIRouter, Depends, Request
from starlette.concurrency import run_in_threadpool
from sqlalchemy.orm import Session

from canteen.api.deps import get_current_user, get_db, get_order_manager
from canteen.api.schemas import CardPaymentPayload, WalletOrderPayload
from canteen.core.money import from_cents
from canteen.db.models import MenuItem, Order, PaymentMethod, User
from canteen.services.ledger import LedgerStore
from canteen.services.orders import OrderLifecycleManager

log = logging.getLogger(__name__)

router = APIRouter(tags=["orders"])


def order_out(o: Order) -> dict:
    return {
        "displayId": o.display_id,
        "status": o.status,
        "paymentMethod": o.payment_method,
        "totalPrice": from_cents(o.total_cents),
        "notes": o.notes or "",
        "createdAt": o.created_at.isoformat() if o.created_at else None,
        "items": [
            {"name": it.name, "price": from_cents(it.unit_price_cents), "quantity": it.quantity}
            for it in o.items
        ],
    }


@router.get("/menu")
def menu(db: Session = Depends(get_db)):
    rows = (
        db.query(MenuItem)
        .filter(MenuItem.available.is_(True))
        .order_by(MenuItem.category, MenuItem.name)
        .all()
    )
    by_category = defaultdict(list)
    for m in rows:
        by_category[m.category].append({
            "id": m.id,
            "name": m.name,
            "price": from_cents(m.price_cents),
            "description": m.description or "",
            "imageUrl": m.image_url or "",
        })
    return dict(by_category)


@router.get("/user-details")
def user_details(user: User = Depends(get_current_user), db: Session = Depends(get_db)):
    balance = LedgerStore(db).get_balance(user.id)
    return {"name": user.name, "studentId": user.student_id, "balance": from_cents(balance)}


@router.get("/orders")
def my_orders(user: User = Depends(get_current_user), db: Session = Depends(get_db)):
    rows = (
        db.query(Order)
        .filter(Order.user_id == user.id, Order.payment_method != PaymentMethod.CARD_PENDING.value)
        .order_by(Order.created_at.desc(), Order.display_id.desc())
        .all()
    )
    return [order_out(o) for o in rows]


@router.get("/order-status/{display_id}")
def order_status(display_id: int, user: User = Depends(get_current_user),
                 manager: OrderLifecycleManager = Depends(get_order_manager)):
    return {"displayId": display_id, "status": manager.order_status(user.id, display_id)}


@router.post("/process-wallet-order")
def process_wallet_order(payload: WalletOrderPayload, user: User = Depends(get_current_user),
                         manager: OrderLifecycleManager = Depends(get_order_manager)):
    items = [it.to_line_item() for it in payload.items]
    order = manager.place_wallet_order(user.id, items, payload.notes or "")
    return {"displayId": order.display_id, "totalPrice": from_cents(order.total_cents)}


@router.post("/start-paymob-payment")
def start_paymob_payment(payload: CardPaymentPayload, user: User = Depends(get_current_user),
                         manager: OrderLifecycleManager = Depends(get_order_manager)):
    items = [it.to_line_item() for it in payload.items]
    started = manager.start_card_payment(user, items, payload.notes or "")
    return {"displayId": started.display_id, "redirectUrl": started.redirect_url}


@router.post("/confirm-paymob-callback")
async def confirm_paymob_callback(request: Request,
                                  manager: OrderLifecycleManager = Depends(get_order_manager)):
    # The gateway retries anything but a 200, so this always acknowledges
    try:
        payload = await request.json()
    except ValueError:
        log.warning("payment callback with unreadable body")
        payload = None
    await run_in_threadpool(manager.confirm_payment_callback, payload)
    return {"received": True}
