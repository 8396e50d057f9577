"""
Auth endpoints — register, login, me.

Admin accounts are provisioned directly in the database; there is no
endpoint that grants is_admin.
"""

from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, status
from pydantic import BaseModel
from sqlalchemy.orm import Session

from .. import models
from ..auth import create_access_token, get_current_user, hash_password, verify_password
from ..database import get_db
from ..errors import ValidationError

router = APIRouter(prefix="/auth", tags=["auth"])

MIN_PASSWORD_LENGTH = 8


class Credentials(BaseModel):
    email: str
    password: str


class RegisterRequest(Credentials):
    full_name: Optional[str] = None


def _normalize_email(email: str) -> str:
    email = email.strip().lower()
    if "@" not in email:
        raise ValidationError("A valid email address is required", field="email")
    return email


def _user_to_dict(user: models.User) -> dict:
    # password_hash stays server-side
    return {
        "id": user.id,
        "email": user.email,
        "full_name": user.full_name,
        "is_admin": bool(user.is_admin),
        "created_at": user.created_at.isoformat() if user.created_at else None,
    }


def _session_response(user: models.User) -> dict:
    return {
        "access_token": create_access_token(user),
        "token_type": "bearer",
        "user_id": user.id,
        "user": _user_to_dict(user),
    }


@router.post("/register")
def register(request: RegisterRequest, db: Session = Depends(get_db)):
    email = _normalize_email(request.email)
    if len(request.password) < MIN_PASSWORD_LENGTH:
        raise ValidationError(
            f"Password must be at least {MIN_PASSWORD_LENGTH} characters", field="password",
        )
    if db.query(models.User).filter(models.User.email == email).first():
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail="Account with this email already exists",
        )

    user = models.User(
        email=email,
        password_hash=hash_password(request.password),
        full_name=request.full_name,
        is_admin=False,
    )
    db.add(user)
    db.commit()
    db.refresh(user)
    return _session_response(user)


@router.post("/login")
def login(request: Credentials, db: Session = Depends(get_db)):
    user = db.query(models.User).filter(
        models.User.email == request.email.strip().lower(),
    ).first()
    if not user or not verify_password(request.password, user.password_hash):
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid email or password",
        )
    return _session_response(user)


@router.get("/me")
def me(current_user: models.User = Depends(get_current_user)):
    return _user_to_dict(current_user)
