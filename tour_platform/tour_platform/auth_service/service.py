"""
AuthService: credential checks, session tokens, role gating and the
password reset lifecycle.

Reset flow:

    NoResetPending --forgot_password--> ResetPending
    ResetPending --reset_password--> PasswordReset (fields cleared)
    ResetPending --notifier failure--> NoResetPending (fields cleared)
    ResetPending --expiry elapses--> token lookup fails
"""
from datetime import timedelta
from typing import Optional, Tuple
import logging

import jwt
from starlette.concurrency import run_in_threadpool

from .auth import create_access_token, decode_access_token, hash_reset_token
from .config import Settings
from .errors import BadRequest, Forbidden, InternalError, NotFound, Unauthorized
from .models import User
from .store import UserStore

logger = logging.getLogger(__name__)

RESET_EMAIL_SUBJECT = "Your password reset token (valid for {minutes} minutes)"
RESET_EMAIL_BODY = (
    "Forgot your password? Submit a PATCH request with your new password and "
    "password_confirm to: {url}\n"
    "If you didn't forget your password, please ignore this email!"
)


def bearer_token(authorization: Optional[str]) -> Optional[str]:
    """Token from an `Authorization: Bearer <token>` header, or None."""
    if not authorization or not authorization.lower().startswith("bearer "):
        return None
    token = authorization.split(" ", 1)[1].strip()
    return token or None


class AuthService:
    def __init__(self, store: UserStore, notifier, settings: Settings, audit=None):
        self.store = store
        self.notifier = notifier
        self.settings = settings
        self.audit = audit

    def _record(self, event_type: str, user: User, metadata: dict = None) -> None:
        if self.audit is not None:
            self.audit.log(event_type, user, metadata)

    # ---------------- Tokens ----------------

    def issue_token(self, user_id: int) -> str:
        return create_access_token(
            user_id,
            self.settings.JWT_SECRET,
            timedelta(days=self.settings.JWT_EXPIRES_IN_DAYS),
            algorithm=self.settings.JWT_ALGORITHM,
        )

    def protect(self, token: Optional[str]) -> User:
        """Resolve the user behind a session token or raise Unauthorized."""
        if not token:
            raise Unauthorized("You are not logged in! Please log in to get access.")

        try:
            decoded = decode_access_token(token, self.settings.JWT_SECRET, self.settings.JWT_ALGORITHM)
        except jwt.ExpiredSignatureError as exc:
            raise Unauthorized("Your token has expired! Please log in again.") from exc
        except jwt.InvalidTokenError as exc:
            raise Unauthorized("Invalid token. Please log in again!") from exc

        current_user = self.store.find_by_id(decoded["id"])
        if not current_user:
            raise Unauthorized("The user belonging to this token no longer exists.")

        if current_user.changed_password_after(decoded["iat"]):
            raise Unauthorized("User recently changed password! Please log in again.")

        return current_user

    @staticmethod
    def restrict_to(user: User, *roles: str) -> User:
        if user.role not in roles:
            raise Forbidden("You do not have permission to perform this action")
        return user

    # ---------------- Credentials ----------------

    def signup(self, user_input: dict) -> Tuple[User, str]:
        new_user = self.store.create(user_input)
        self._record("signup", new_user)
        return new_user, self.issue_token(new_user.id)

    def login(self, email: Optional[str], password: Optional[str]) -> Tuple[User, str]:
        if not email or not password:
            raise BadRequest("Please provide email and password!")

        user = self.store.find_by_email(email, with_password=True)
        if not user or not self.store.correct_password(password, user):
            if user:
                self._record("login_failure", user)
            raise Unauthorized("Incorrect email or password")

        self._record("login_success", user)
        return user, self.issue_token(user.id)

    def update_password(
        self, current_user: User, password_current: str, password: str, password_confirm: str
    ) -> Tuple[User, str]:
        user = self.store.find_by_id(current_user.id, with_password=True)
        if not user or not self.store.correct_password(password_current, user):
            raise Unauthorized("Your current password is wrong.")

        # Full save so hashing and password_changed_at both apply
        self.store.set_password(user, password, password_confirm)
        self.store.save(user)
        self._record("password_updated", user)
        return user, self.issue_token(user.id)

    # ---------------- Password reset ----------------

    async def forgot_password(self, email: Optional[str], reset_url_base: str) -> None:
        # Session work runs in the threadpool; only the email send is awaited here
        user = await run_in_threadpool(self.store.find_by_email, email) if email else None
        if not user:
            raise NotFound("There is no user with that email address.")

        user_id, recipient = user.id, user.email
        minutes = self.settings.PASSWORD_RESET_EXPIRES_MINUTES
        try:
            async with self.store.pending_reset(user) as raw_token:
                await self.notifier.send(
                    to=recipient,
                    subject=RESET_EMAIL_SUBJECT.format(minutes=minutes),
                    body=RESET_EMAIL_BODY.format(url=f"{reset_url_base.rstrip('/')}/{raw_token}"),
                )
        except Exception as exc:
            logger.error("Password reset email to user id=%s failed: %s", user_id, exc)
            raise InternalError("There was an error sending the email. Try again later!") from exc

        await run_in_threadpool(self._record, "password_reset_requested", user)

    def reset_password(self, raw_token: str, password: str, password_confirm: str) -> Tuple[User, str]:
        user = self.store.find_by_reset_token(hash_reset_token(raw_token))
        if not user:
            raise BadRequest("Token is invalid or has expired")

        self.store.set_password(user, password, password_confirm)
        self.store.clear_password_reset(user)
        self.store.save(user)
        self._record("password_reset", user)
        return user, self.issue_token(user.id)
