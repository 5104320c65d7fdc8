"""
Event logger utility for authentication events.
"""
from datetime import datetime
from typing import Optional
from fastapi import Request
from sqlalchemy.orm import Session
from sqlalchemy.exc import SQLAlchemyError
import sys
import logging
import os

from ..models import AuthEvent, User

logger = logging.getLogger(__name__)


ALLOWED_EVENT_TYPES = {
    "signup",
    "login_success",
    "login_failure",
    "password_reset_requested",
    "password_reset",
    "password_updated",
}


def configure_logging(level: str = "INFO", log_dir: Optional[str] = None) -> None:
    """Send logs to stdout, and to `<log_dir>/auth_events.log` when the directory is usable."""
    handlers = [logging.StreamHandler(sys.stdout)]

    # Try to add file handler, but continue without it if directory creation fails
    if log_dir:
        try:
            os.makedirs(log_dir, exist_ok=True)
            handlers.append(logging.FileHandler(os.path.join(log_dir, "auth_events.log")))
        except OSError as e:
            print(f"WARNING: Could not set up file logging: {e}", file=sys.stderr)

    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format="%(asctime)s %(levelname)s:%(message)s",
        handlers=handlers,
        force=True,
    )


def client_address(request: Request) -> Optional[str]:
    ip_address = None
    if request.client:
        ip_address = request.client.host

    # Check for X-Forwarded-For header (proxy/load balancer scenarios)
    if not ip_address and request.headers.get("x-forwarded-for"):
        # X-Forwarded-For can contain multiple IPs, take the first one
        ip_address = request.headers.get("x-forwarded-for").split(",")[0].strip()
    return ip_address


class AuthEventLogger:
    """Records authentication events for one request."""

    def __init__(self, db: Session, ip_address: Optional[str] = None, user_agent: Optional[str] = None):
        self.db = db
        self.ip_address = ip_address
        self.user_agent = user_agent

    @classmethod
    def for_request(cls, db: Session, request: Request) -> "AuthEventLogger":
        return cls(db, client_address(request), request.headers.get("user-agent"))

    def log(self, event_type: str, user: User, metadata: dict = None) -> None:
        """
        Log an authentication event to the database.

        Args:
            event_type: One of ALLOWED_EVENT_TYPES
            user: User object from database
            metadata: Optional dictionary of additional context

        Raises:
            ValueError: If event_type is invalid
        """
        if event_type not in ALLOWED_EVENT_TYPES:
            raise ValueError(
                f"Invalid event_type '{event_type}'. Must be one of: {', '.join(sorted(ALLOWED_EVENT_TYPES))}"
            )

        try:
            auth_event = AuthEvent(
                user_id=user.id,
                email=user.email,
                event_type=event_type,
                ip_address=self.ip_address,
                user_agent=self.user_agent,
                timestamp=datetime.utcnow(),
                event_metadata=metadata or {}
            )
            self.db.add(auth_event)
            self.db.commit()

            logger.info(
                "AUTH %s user_id=%s email=%s ip=%s",
                event_type, user.id, user.email, self.ip_address
            )

        except SQLAlchemyError as e:
            # Logging failure should not break auth flow
            logger.warning(
                "Failed to log auth event - user_id=%s, event_type=%s, error=%s",
                user.id, event_type, e
            )
            self.db.rollback()
