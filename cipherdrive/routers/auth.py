# Filename: cipherdrive/routers/auth.py
from fastapi import APIRouter, Depends, HTTPException, status, Response
from fastapi.security import OAuth2PasswordRequestForm
from sqlmodel import Session
import logging

from ..db import get_session
from ..models import User
from ..schemas import Token, UserCreate, UserOut, CookieLogin
from ..auth import (
    authenticate_user,
    clear_auth_cookie,
    create_access_token,
    get_password_hash,
    get_user_by_username,
    set_auth_cookie,
)

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/auth", tags=["auth"])

BAD_CREDENTIALS = "Incorrect username or password"


@router.post("/register", response_model=UserOut, status_code=status.HTTP_201_CREATED)
def register(user_in: UserCreate, session: Session = Depends(get_session)):
    if get_user_by_username(session, user_in.username):
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Username already exists")
    user = User(username=user_in.username, email=user_in.email, hashed_password=get_password_hash(user_in.password))
    session.add(user)
    session.commit()
    session.refresh(user)
    logger.info("Registered user %s", user.username)
    return user


@router.post("/token", response_model=Token)
def login_token(form_data: OAuth2PasswordRequestForm = Depends(), session: Session = Depends(get_session)):
    user = authenticate_user(session, form_data.username, form_data.password)
    if user is None:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail=BAD_CREDENTIALS, headers={"WWW-Authenticate": "Bearer"})
    return Token(access_token=create_access_token(user.username))


@router.post("/login-cookie")
def login_cookie(credentials: CookieLogin, response: Response, session: Session = Depends(get_session)):
    """Browser login: the token travels in an HttpOnly cookie instead of the response body."""
    user = authenticate_user(session, credentials.username, credentials.password)
    if user is None:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail=BAD_CREDENTIALS)
    set_auth_cookie(response, create_access_token(user.username), remember=credentials.remember)
    return {"status": "ok"}


@router.post("/logout-cookie")
def logout_cookie(response: Response):
    clear_auth_cookie(response)
    return {"status": "ok"}
