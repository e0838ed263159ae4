from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session, selectinload

from canteen.api.deps import get_db, get_order_manager, require_dashboard
from canteen.api.routes_orders import order_out
from canteen.api.schemas import ChargeWalletPayload, FindUserPayload, RejectPayload, UpdateStatusPayload
from canteen.core.errors import NotFound
from canteen.core.money import from_cents, to_cents
from canteen.db.models import Order, OrderStatus, PaymentMethod, User
from canteen.services import analytics
from canteen.services.ledger import LedgerStore
from canteen.services.orders import OrderLifecycleManager

router = APIRouter(tags=["dashboard"], dependencies=[Depends(require_dashboard)])

ACTIVE_STATUSES = (OrderStatus.PREPARING.value, OrderStatus.READY.value)


@router.get("/all-orders")
def all_orders(db: Session = Depends(get_db)):
    rows = (
        db.query(Order)
        .options(selectinload(Order.items), selectinload(Order.user))
        .filter(Order.status.in_(ACTIVE_STATUSES), Order.payment_method != PaymentMethod.CARD_PENDING.value)
        .order_by(Order.created_at, Order.display_id)
        .all()
    )
    out = []
    for o in rows:
        item = order_out(o)
        item["user"] = {"id": o.user.id, "name": o.user.name, "studentId": o.user.student_id}
        out.append(item)
    return out


@router.post("/update-order-status")
def update_order_status(payload: UpdateStatusPayload, manager: OrderLifecycleManager = Depends(get_order_manager)):
    order = manager.advance_status(payload.display_id, payload.status)
    return {"success": True, "displayId": order.display_id, "status": order.status}


@router.post("/reject-order")
def reject_order(payload: RejectPayload, manager: OrderLifecycleManager = Depends(get_order_manager)):
    order = manager.reject_order(payload.display_id, payload.reason or "")
    return {"success": True, "displayId": order.display_id, "status": order.status}


@router.post("/find-user")
def find_user(payload: FindUserPayload, db: Session = Depends(get_db)):
    user = db.query(User).filter(User.student_id == payload.student_id).first()
    if not user:
        raise NotFound("User not found")
    balance = LedgerStore(db).get_balance(user.id)
    return {
        "user": {"id": user.id, "name": user.name, "studentId": user.student_id},
        "balance": from_cents(balance),
    }


@router.post("/charge-wallet")
def charge_wallet(payload: ChargeWalletPayload, db: Session = Depends(get_db)):
    ledger = LedgerStore(db)
    ledger.get_user(payload.user_id)
    ledger.credit(payload.user_id, to_cents(payload.amount))
    ledger.commit()
    return {"newBalance": from_cents(ledger.get_balance(payload.user_id))}


@router.get("/analytics")
def get_analytics(period: str = "today", db: Session = Depends(get_db)):
    return analytics.summarize(db, period)
