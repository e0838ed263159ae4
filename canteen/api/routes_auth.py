from typing import Any

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from canteen.api.deps import get_db
from canteen.api.schemas import SignupPayload, LoginPayload
from canteen.core.errors import ValidationError
from canteen.db.models import User, Wallet
from canteen.security.utils import (
    hash_password,
    verify_password,
    create_access_token,
    now_utc,
)

router = APIRouter(tags=["auth"])


def _session(user: User) -> dict:
    token, exp = create_access_token(user.id)
    return {"access_token": token, "token_type": "bearer", "expires_at": int(exp.timestamp())}


@router.post("/signup")
def signup(payload: SignupPayload, db: Session = Depends(get_db)) -> Any:
    # Prevent duplicate student id
    if db.query(User).filter(User.student_id == payload.student_id).first():
        raise ValidationError("This student ID is already registered")

    user = User(
        name=payload.name.strip(),
        student_id=payload.student_id,
        password_hash=hash_password(payload.password),
        created_at=now_utc(),
    )
    user.wallet = Wallet(balance_cents=0, updated_at=now_utc())
    db.add(user)
    db.commit()
    db.refresh(user)
    return {
        "session": _session(user),
        "user": {"id": user.id, "name": user.name, "studentId": user.student_id},
    }


@router.post("/login")
def login(payload: LoginPayload, db: Session = Depends(get_db)) -> Any:
    user = db.query(User).filter(User.student_id == payload.student_id).first()
    if not user or not verify_password(payload.password, user.password_hash):
        raise ValidationError("Student ID or password is incorrect")
    return {"session": _session(user)}
