"""
Acting-user layer for the takeoff API.

Identity is only needed to attribute uploads/measurements and to gate
updates and deletes, so there is a single short-lived access token and no
refresh flow. Engines never see tokens; routers resolve the user and pass
user.id down.

Libraries: python-jose[cryptography] for JWT, passlib[bcrypt] for passwords.
"""

from datetime import datetime, timedelta

from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from jose import JWTError, jwt
from passlib.context import CryptContext
from sqlalchemy.orm import Session

from . import models
from .config import settings
from .database import get_db
from .errors import ForbiddenError

TOKEN_TYPE = "access"

pwd_context = CryptContext(schemes=["bcrypt"], deprecated="auto")
bearer_scheme = HTTPBearer(auto_error=False)


def hash_password(password: str) -> str:
    return pwd_context.hash(password)


def verify_password(plain_password: str, hashed_password: str) -> bool:
    return pwd_context.verify(plain_password, hashed_password)


def _unauthorized(detail: str) -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail=detail,
        headers={"WWW-Authenticate": "Bearer"},
    )


def _signing_key() -> str:
    if not settings.JWT_SECRET:
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="JWT_SECRET not configured — set it in environment variables",
        )
    return settings.JWT_SECRET


def create_access_token(user: models.User) -> str:
    """Signed token naming the user; admin rights are re-read from the DB on each request."""
    claims = {
        "sub": str(user.id),
        "type": TOKEN_TYPE,
        "exp": datetime.utcnow() + timedelta(minutes=settings.JWT_ACCESS_EXPIRE_MINUTES),
    }
    return jwt.encode(claims, _signing_key(), algorithm=settings.JWT_ALGORITHM)


def decode_token(token: str) -> dict:
    try:
        return jwt.decode(token, _signing_key(), algorithms=[settings.JWT_ALGORITHM])
    except JWTError:
        raise _unauthorized("Invalid or expired token")


def get_current_user(
    credentials: HTTPAuthorizationCredentials = Depends(bearer_scheme),
    db: Session = Depends(get_db),
) -> models.User:
    """FastAPI dependency — the user behind the bearer token, or 401."""
    if credentials is None:
        raise _unauthorized("Authentication required")

    claims = decode_token(credentials.credentials)
    subject = claims.get("sub")
    if claims.get("type") != TOKEN_TYPE or not subject or not subject.isdigit():
        raise _unauthorized("Invalid token payload")

    user = db.query(models.User).filter(models.User.id == int(subject)).first()
    if not user:
        raise _unauthorized("User not found")
    return user


def ensure_owner(project: models.Project, user: models.User, allow_admin: bool = False) -> None:
    """
    Creating maps, measurements and estimates needs the project owner.
    Updates and deletes pass allow_admin=True so admins can clean up.
    """
    if project.owner_id == user.id or (allow_admin and user.is_admin):
        return
    raise ForbiddenError("Only the project owner can change this project's takeoff data")
