import secrets

from fastapi import Depends
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlalchemy.orm import Session

from canteen.core.config import settings
from canteen.core.errors import AuthError
from canteen.db.models import User
from canteen.db.session import SessionLocal
from canteen.security.utils import decode_token
from canteen.services.ledger import LedgerStore
from canteen.services.notify import NotificationDispatcher, Sender, send_web_push
from canteen.services.orders import OrderLifecycleManager
from canteen.services.paymob import PaymobGateway

security = HTTPBearer(auto_error=False)

def get_db():
    db = SessionLocal()
    try: yield db
    finally: db.close()

def get_current_user(creds: HTTPAuthorizationCredentials = Depends(security), db: Session = Depends(get_db)) -> User:
    if not creds: raise AuthError('No token provided')
    try:
        payload = decode_token(creds.credentials)
    except Exception:
        raise AuthError('Invalid token')
    if payload.get('type') != 'access':
        raise AuthError('Invalid access token')
    try:
        user = db.get(User, int(payload.get('sub')))
    except (TypeError, ValueError):
        user = None
    if not user: raise AuthError('User not found')
    return user

def require_dashboard(creds: HTTPAuthorizationCredentials = Depends(security)) -> bool:
    expected = settings.DASHBOARD_PASSWORD
    if not creds or not expected or not secrets.compare_digest(creds.credentials.encode(), expected.encode()):
        raise AuthError('Unauthorized')
    return True

def get_gateway() -> PaymobGateway:
    return PaymobGateway(settings)

def get_push_sender() -> Sender:
    return send_web_push

def get_dispatcher(db: Session = Depends(get_db), sender: Sender = Depends(get_push_sender)) -> NotificationDispatcher:
    return NotificationDispatcher(LedgerStore(db), sender)

def get_order_manager(
    db: Session = Depends(get_db),
    gateway: PaymobGateway = Depends(get_gateway),
    dispatcher: NotificationDispatcher = Depends(get_dispatcher),
) -> OrderLifecycleManager:
    return OrderLifecycleManager(LedgerStore(db), gateway, dispatcher)
