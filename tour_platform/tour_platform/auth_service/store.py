"""
User persistence on top of a SQLAlchemy session.

The store owns password hashing and the password-change timestamp, so every
path that sets a password goes through `set_password` followed by a
validated `save`. There is no partial-update path for passwords.
"""
from contextlib import asynccontextmanager
from datetime import datetime, timedelta
from typing import AsyncIterator, Optional
import logging

import anyio
from pydantic.networks import validate_email
from starlette.concurrency import run_in_threadpool
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session, undefer

from .auth import hash_password, verify_password, create_reset_token
from .errors import ValidationError
from .models import User, ROLES

logger = logging.getLogger(__name__)

MIN_PASSWORD_LENGTH = 8


def normalize_email(email: Optional[str]) -> str:
    return (email or "").strip().lower()


def is_valid_email(email: str) -> bool:
    try:
        _, normalized = validate_email(email)
    except ValueError:
        return False
    # Rejects the "Name <addr>" form validate_email also accepts
    return normalized.lower() == email


class UserStore:
    def __init__(self, db: Session, reset_expires_in: timedelta = timedelta(minutes=10)):
        self.db = db
        self.reset_expires_in = reset_expires_in

    def _query(self, with_password: bool = False):
        query = self.db.query(User).filter(User.active.is_(True))
        if with_password:
            query = query.options(undefer(User.password))
        return query

    # ---------------- Lookups ----------------

    def find_by_id(self, user_id: int, with_password: bool = False) -> Optional[User]:
        return self._query(with_password).filter(User.id == user_id).first()

    def find_by_email(self, email: str, with_password: bool = False) -> Optional[User]:
        return self._query(with_password).filter(User.email == normalize_email(email)).first()

    def find_by_reset_token(self, hashed_token: str, now: Optional[datetime] = None) -> Optional[User]:
        now = now or datetime.utcnow()
        return (
            self._query()
            .filter(User.password_reset_token == hashed_token, User.password_reset_expires > now)
            .first()
        )

    @staticmethod
    def correct_password(candidate: str, user: User) -> bool:
        return verify_password(candidate, user.password)

    # ---------------- Writes ----------------

    def create(self, data: dict) -> User:
        """Validate signup input, hash the password and persist a new user."""
        self._check_password(data.get("password"), data.get("password_confirm"))
        user = User(
            name=(data.get("name") or "").strip(),
            email=normalize_email(data.get("email")),
            photo=data.get("photo") or "default.jpg",
            # Any role may be chosen at signup; the value is only checked against ROLES
            role=data.get("role") or "user",
            password=hash_password(data["password"]),
        )
        self._validate(user)

        if self.db.query(User.id).filter(User.email == user.email).first():
            raise ValidationError(f"Duplicate email: {user.email}. Please use another value!")

        self.db.add(user)
        try:
            self.db.commit()
        except IntegrityError as exc:
            self.db.rollback()
            raise ValidationError(f"Duplicate email: {user.email}. Please use another value!") from exc
        self.db.refresh(user)
        logger.info("Created user id=%s role=%s", user.id, user.role)
        return user

    def set_password(self, user: User, password: Optional[str], password_confirm: Optional[str]) -> None:
        """Hash and assign a new password; the caller persists with `save`."""
        self._check_password(password, password_confirm)
        user.password = hash_password(password)
        # One second back so a token signed right after the save stays valid.
        # Tokens issued up to ~1-2s before the change fall in this grace window
        # and keep passing protect, since `iat` only has one-second resolution.
        user.password_changed_at = datetime.utcnow() - timedelta(seconds=1)

    def save(self, user: User, validate: bool = True) -> User:
        if validate:
            self._validate(user)
        self.db.add(user)
        self.db.commit()
        self.db.refresh(user)
        return user

    # ---------------- Password reset ----------------

    def start_password_reset(self, user: User) -> str:
        raw_token, hashed_token = create_reset_token()
        user.password_reset_token = hashed_token
        user.password_reset_expires = datetime.utcnow() + self.reset_expires_in
        # Only the reset fields changed, skip full validation
        self.save(user, validate=False)
        return raw_token

    def clear_password_reset(self, user: User) -> None:
        user.password_reset_token = None
        user.password_reset_expires = None

    def abort_password_reset(self, user: User) -> None:
        self.clear_password_reset(user)
        self.save(user, validate=False)
        logger.info("Rolled back pending password reset for user id=%s", user.id)

    @asynccontextmanager
    async def pending_reset(self, user: User) -> AsyncIterator[str]:
        """
        Open a password reset for `user` and yield the raw token.

        If the body raises, the reset fields are cleared and persisted again
        before the exception propagates, so no reset is left pending. Both
        writes run in the threadpool to keep the session off the event loop.
        """
        raw_token = await run_in_threadpool(self.start_password_reset, user)
        try:
            yield raw_token
        except BaseException:
            # Shielded so a cancelled request still clears the reset fields
            with anyio.CancelScope(shield=True):
                await run_in_threadpool(self.abort_password_reset, user)
            raise

    # ---------------- Validation ----------------

    @staticmethod
    def _check_password(password: Optional[str], password_confirm: Optional[str]) -> None:
        if not password:
            raise ValidationError("Please provide a password")
        if len(password) < MIN_PASSWORD_LENGTH:
            raise ValidationError(f"Password must have at least {MIN_PASSWORD_LENGTH} characters")
        if password != password_confirm:
            raise ValidationError("Passwords are not the same!")

    @staticmethod
    def _validate(user: User) -> None:
        if not user.name:
            raise ValidationError("Please tell us your name!")
        if not user.email or not is_valid_email(user.email):
            raise ValidationError("Please provide a valid email")
        if user.role not in ROLES:
            raise ValidationError(f"Role must be one of: {', '.join(ROLES)}")
        if (user.password_reset_token is None) != (user.password_reset_expires is None):
            raise ValidationError("Password reset token and expiry must be set together")
