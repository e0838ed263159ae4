from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy.orm import Session

from canteen.api.deps import get_current_user, get_db
from canteen.api.schemas import SubscribePayload, UnsubscribePayload
from canteen.core.config import settings
from canteen.db.models import PushSubscription, User
from canteen.security.utils import now_utc

router = APIRouter(tags=["push"])


@router.get("/vapid-public-key")
def vapid_public_key():
    if not settings.VAPID_PUBLIC_KEY:
        raise HTTPException(status_code=503, detail="Push notifications are not configured")
    return {"publicKey": settings.VAPID_PUBLIC_KEY}


@router.post("/subscribe", status_code=status.HTTP_201_CREATED)
def subscribe(payload: SubscribePayload, user: User = Depends(get_current_user), db: Session = Depends(get_db)):
    # An endpoint belongs to one browser; re-subscribing moves it to the caller
    sub = db.query(PushSubscription).filter(PushSubscription.endpoint == payload.endpoint).first()
    if sub is None:
        sub = PushSubscription(endpoint=payload.endpoint, created_at=now_utc())
    sub.user_id = user.id
    sub.p256dh = payload.keys.p256dh
    sub.auth = payload.keys.auth
    db.add(sub); db.commit()
    return {"status": "subscribed"}


@router.post("/unsubscribe")
def unsubscribe(payload: UnsubscribePayload, user: User = Depends(get_current_user), db: Session = Depends(get_db)):
    removed = (
        db.query(PushSubscription)
        .filter(PushSubscription.user_id == user.id, PushSubscription.endpoint == payload.endpoint)
        .delete(synchronize_session=False)
    )
    db.commit()
    return {"status": "unsubscribed", "removed": removed}
