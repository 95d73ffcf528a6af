# Filename: cipherdrive/routers/users.py
from fastapi import APIRouter, Depends, Response, status
import logging

from ..auth import clear_auth_cookie, get_current_user
from ..db import get_storage
from ..models import User
from ..schemas import UserOut
from ..storage_engine import StorageEngine

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/users", tags=["users"])


@router.get("/account", response_model=UserOut)
def get_account(current_user: User = Depends(get_current_user)):
    return current_user


@router.delete("/account", status_code=status.HTTP_204_NO_CONTENT)
def delete_account(current_user: User = Depends(get_current_user), storage: StorageEngine = Depends(get_storage)):
    logger.debug("Deleting account of user: %s", current_user.username)
    storage.delete_account(current_user)
    response = Response(status_code=status.HTTP_204_NO_CONTENT)
    clear_auth_cookie(response)
    return response
