from sqlalchemy import Column, Integer, String, Boolean, ForeignKey, DateTime, Text, Index, JSON, UniqueConstraint
from datetime import datetime
from .db import Base
from .auth import to_timestamp
from sqlalchemy.orm import relationship, deferred
import uuid

ROLES = ("user", "guide", "lead-guide", "admin")


class User(Base):
    __tablename__ = "users"
    id = Column(Integer, primary_key=True, index=True)
    name = Column(String, nullable=False)
    email = Column(String, unique=True, index=True, nullable=False)
    photo = Column(String, default="default.jpg", nullable=False)
    role = Column(String, default="user", nullable=False)
    # Only loaded when a query asks for it with undefer()
    password = deferred(Column(String, nullable=False))
    password_changed_at = Column(DateTime, nullable=True)
    password_reset_token = Column(String, nullable=True, index=True)
    password_reset_expires = Column(DateTime, nullable=True)
    active = Column(Boolean, default=True, nullable=False)

    reviews = relationship("Review", back_populates="user", cascade="all, delete-orphan")

    def changed_password_after(self, jwt_timestamp: int) -> bool:
        """True if the password was changed after a token issued at `jwt_timestamp` (epoch seconds)."""
        if self.password_changed_at is None:
            return False
        changed_timestamp = to_timestamp(self.password_changed_at)
        return jwt_timestamp < changed_timestamp


class Tour(Base):
    __tablename__ = "tours"
    id = Column(Integer, primary_key=True, index=True)
    name = Column(String, unique=True, nullable=False)

    reviews = relationship("Review", back_populates="tour", cascade="all, delete-orphan")


class Review(Base):
    __tablename__ = "reviews"
    id = Column(Integer, primary_key=True, index=True)
    review = Column(Text, nullable=False)
    rating = Column(Integer, nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
    tour_id = Column(Integer, ForeignKey("tours.id", ondelete="CASCADE"), nullable=False)
    user_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False)

    tour = relationship("Tour", back_populates="reviews")
    user = relationship("User", back_populates="reviews")

    __table_args__ = (
        UniqueConstraint("tour_id", "user_id", name="uq_reviews_tour_user"),
    )


class AuthEvent(Base):
    __tablename__ = "auth_events"

    id = Column(String, primary_key=True, default=lambda: str(uuid.uuid4()))
    user_id = Column(Integer, nullable=False)
    email = Column(String, nullable=False)
    event_type = Column(String, nullable=False)
    ip_address = Column(String, nullable=True)
    user_agent = Column(String, nullable=True)
    timestamp = Column(DateTime, default=datetime.utcnow, nullable=False)
    event_metadata = Column(JSON, nullable=True)

    __table_args__ = (
        Index('ix_auth_events_user_id', 'user_id'),
        Index('ix_auth_events_event_type', 'event_type'),
        Index('ix_auth_events_user_id_timestamp', 'user_id', 'timestamp'),
    )

    def to_dict(self) -> dict:
        """
        Serialize AuthEvent to a dictionary.

        Returns:
            Dictionary with all event fields, datetimes in ISO 8601 format
        """
        return {
            "id": str(self.id),
            "user_id": self.user_id,
            "email": self.email,
            "event_type": self.event_type,
            "ip_address": self.ip_address,
            "user_agent": self.user_agent,
            "timestamp": self.timestamp.isoformat() if self.timestamp else None,
            "metadata": self.event_metadata or {}
        }
