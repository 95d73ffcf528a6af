# Filename: cipherdrive/routers/root.py
from fastapi import APIRouter

from ..config import settings

router = APIRouter(tags=["root"])


@router.get("/")
def health():
    return {"name": settings.app_name, "version": settings.app_version, "environment": settings.environment, "status": "ok"}
