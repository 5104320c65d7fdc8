"""
FastAPI dependencies wiring AuthService into request handling.
"""
from datetime import datetime, timedelta, timezone
from functools import lru_cache
from typing import Optional

from fastapi import Cookie, Depends, Header, Request, Response
from sqlalchemy.orm import Session

from .config import Settings, settings as app_settings
from .db import get_db
from .models import User
from .notifier import build_notifier
from .service import AuthService, bearer_token
from .store import UserStore
from .utils.event_logger import AuthEventLogger


def get_settings() -> Settings:
    return app_settings


@lru_cache
def _default_notifier():
    return build_notifier(app_settings)


def get_notifier():
    return _default_notifier()


def get_auth_service(
    request: Request,
    db: Session = Depends(get_db),
    notifier=Depends(get_notifier),
    settings: Settings = Depends(get_settings),
) -> AuthService:
    store = UserStore(db, reset_expires_in=timedelta(minutes=settings.PASSWORD_RESET_EXPIRES_MINUTES))
    return AuthService(store, notifier, settings, audit=AuthEventLogger.for_request(db, request))


def protect(
    authorization: Optional[str] = Header(default=None, alias="Authorization"),
    jwt_cookie: Optional[str] = Cookie(default=None, alias="jwt"),
    service: AuthService = Depends(get_auth_service),
) -> User:
    # The header wins over the cookie when both are present
    return service.protect(bearer_token(authorization) or jwt_cookie)


def restrict_to(*roles: str):
    """Dependency factory gating a route to the given roles; runs after `protect`."""
    def dependency(user: User = Depends(protect)) -> User:
        return AuthService.restrict_to(user, *roles)
    return dependency


def set_token_cookie(response: Response, token: str, settings: Settings) -> None:
    response.set_cookie(
        key="jwt",
        value=token,
        expires=datetime.now(timezone.utc) + timedelta(days=settings.JWT_COOKIE_EXPIRES_IN),
        httponly=True,
        secure=settings.is_production,
    )
