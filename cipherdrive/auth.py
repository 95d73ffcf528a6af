# Filename: cipherdrive/auth.py
from passlib.context import CryptContext
from datetime import datetime, timedelta, timezone
from jose import jwt, JWTError
from fastapi import Depends, HTTPException, status, Request, Response
from typing import Optional
from sqlmodel import Session, select
import logging

from .config import settings, Settings
from .models import User, UserRole
from .db import get_session

logger = logging.getLogger(__name__)

pwd_context = CryptContext(schemes=["bcrypt"], deprecated="auto")

ALGORITHM = settings.jwt_algorithm
SECRET_KEY = settings.secret_key
ACCESS_TOKEN_EXPIRE_MINUTES = settings.access_token_expire_minutes
AUTH_COOKIE = "access_token"
REMEMBER_ME_SECONDS = 60 * 60 * 24 * 30


def verify_password(plain_password: str, hashed_password: str) -> bool:
    return pwd_context.verify(plain_password, hashed_password)


def get_password_hash(password: str) -> str:
    return pwd_context.hash(password)


def create_access_token(subject: str, expires_delta: Optional[timedelta] = None) -> str:
    now = datetime.now(timezone.utc)
    expire = now + (expires_delta if expires_delta else timedelta(minutes=ACCESS_TOKEN_EXPIRE_MINUTES))
    to_encode = {"sub": str(subject), "exp": int(expire.timestamp()), "iat": int(now.timestamp())}
    encoded_jwt = jwt.encode(to_encode, SECRET_KEY, algorithm=ALGORITHM)
    return encoded_jwt


def get_user_by_username(session: Session, username: str) -> Optional[User]:
    statement = select(User).where(User.username == username)
    return session.exec(statement).first()


def authenticate_user(session: Session, username: str, password: str) -> Optional[User]:
    user = get_user_by_username(session, username)
    if user is None or not verify_password(password, user.hashed_password):
        return None
    return user


def set_auth_cookie(response: Response, token: str, remember: bool = False) -> None:
    # secure should be True behind HTTPS
    max_age = REMEMBER_ME_SECONDS if remember else None
    response.set_cookie(AUTH_COOKIE, token, httponly=True, secure=False, samesite="lax", max_age=max_age)


def clear_auth_cookie(response: Response) -> None:
    response.delete_cookie(AUTH_COOKIE)


def _extract_token(request: Request) -> Optional[str]:
    """Bearer token from the Authorization header, else the `access_token` cookie.

    Either source may carry a raw token or a "Bearer <token>" value.
    """
    raw = request.headers.get("authorization") or request.cookies.get(AUTH_COOKIE)
    if not raw:
        return None
    scheme, _, value = raw.partition(" ")
    if value and scheme.lower() == "bearer":
        return value.strip()
    return raw.strip()


def decode_access_token(token: str) -> Optional[str]:
    """Username carried by a valid token, or None."""
    try:
        payload = jwt.decode(token, SECRET_KEY, algorithms=[ALGORITHM])
    except JWTError:
        return None
    return payload.get("sub") or None


def get_current_user(request: Request, session: Session = Depends(get_session)) -> User:
    token = _extract_token(request)
    username = decode_access_token(token) if token else None
    user = get_user_by_username(session, username) if username else None
    if user is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Could not validate credentials",
            headers={"WWW-Authenticate": "Bearer"},
        )
    return user


def require_admin(current_user: User = Depends(get_current_user)) -> User:
    if not current_user.is_admin:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Administrator access required")
    return current_user


def bootstrap_admin(session: Session, cfg: Settings = settings) -> Optional[User]:
    """Create the configured admin account if it does not exist yet."""
    if not cfg.admin_username or not cfg.admin_password:
        return None
    if get_user_by_username(session, cfg.admin_username):
        return None
    admin = User(
        username=cfg.admin_username,
        email=cfg.admin_email,
        hashed_password=get_password_hash(cfg.admin_password),
        role=UserRole.ADMIN,
    )
    session.add(admin)
    session.commit()
    session.refresh(admin)
    logger.info("Created admin user %s", admin.username)
    return admin
