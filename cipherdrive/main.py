# Filename: cipherdrive/main.py
from fastapi import FastAPI, Request, status
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from sqlmodel import Session
import logging

from .routers import auth as auth_router, files as files_router, admin as admin_router, root as root_router, users as users_router
from .auth import bootstrap_admin
from .config import settings
from .db import engine, init_db, create_storage
from .exceptions import (
    AccessDeniedError,
    InvalidContentError,
    NotFoundError,
    QuotaExceededError,
    StorageError,
)

logger = logging.getLogger(__name__)

app = FastAPI(title=settings.app_name, version=settings.app_version, debug=settings.debug)

origins = ["*"] if settings.cors_allow_origins == "*" else [o.strip() for o in settings.cors_allow_origins.split(",")]
allow_methods = ["*"] if settings.cors_allow_methods == "*" else [m.strip() for m in settings.cors_allow_methods.split(",")]
allow_headers = ["*"] if settings.cors_allow_headers == "*" else [h.strip() for h in settings.cors_allow_headers.split(",")]

app.add_middleware(
    CORSMiddleware,
    allow_origins=origins,
    allow_credentials=settings.cors_allow_credentials,
    allow_methods=allow_methods,
    allow_headers=allow_headers,
)

app.include_router(auth_router.router)
app.include_router(files_router.router)
app.include_router(users_router.router)
app.include_router(admin_router.router)
app.include_router(root_router.router)


def error_status(exc: StorageError) -> int:
    if isinstance(exc, InvalidContentError):
        return status.HTTP_413_REQUEST_ENTITY_TOO_LARGE if exc.too_large else status.HTTP_400_BAD_REQUEST
    if isinstance(exc, QuotaExceededError):
        return status.HTTP_403_FORBIDDEN
    if isinstance(exc, NotFoundError):
        return status.HTTP_404_NOT_FOUND
    if isinstance(exc, AccessDeniedError):
        return status.HTTP_403_FORBIDDEN
    return status.HTTP_500_INTERNAL_SERVER_ERROR


@app.exception_handler(StorageError)
async def storage_error_handler(request: Request, exc: StorageError):
    if exc.client_error:
        return JSONResponse(status_code=error_status(exc), content={"detail": str(exc)})
    logger.error("Storage failure on %s %s", request.method, request.url.path, exc_info=exc)
    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content={"detail": "Internal storage error"},
    )


@app.on_event("startup")
def on_startup():
    logging.basicConfig(level=settings.log_level, format="%(asctime)s [%(threadName)s] %(levelname)-5s %(name)s - %(message)s")
    init_db()
    with Session(engine) as session:
        bootstrap_admin(session)
    app.state.storage = create_storage()
