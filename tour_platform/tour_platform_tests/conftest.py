"""
Shared fixtures for the auth service tests.

The database URL is pinned before the app is imported so the suite never
touches a development database.
"""
import os
import re

os.environ.setdefault("DATABASE_URL", "sqlite:///./test_tour_platform.db")
os.environ.setdefault("LOG_DIR", "")

import pytest
from datetime import datetime, timedelta
from fastapi.testclient import TestClient

from tour_platform.tour_platform.auth_service.main import app
from tour_platform.tour_platform.auth_service.auth import hash_password, create_access_token
from tour_platform.tour_platform.auth_service.config import settings
from tour_platform.tour_platform.auth_service.db import Base, engine, SessionLocal
from tour_platform.tour_platform.auth_service.deps import get_notifier
from tour_platform.tour_platform.auth_service.models import User, Tour
from tour_platform.tour_platform.auth_service.notifier import NotificationError

RESET_LINK = re.compile(r"resetPassword/([0-9a-f]{64})")


class RecordingNotifier:
    def __init__(self):
        self.sent = []

    async def send(self, to, subject, body):
        self.sent.append({"to": to, "subject": subject, "body": body})

    def last_reset_token(self):
        return RESET_LINK.search(self.sent[-1]["body"]).group(1)


class FailingNotifier(RecordingNotifier):
    async def send(self, to, subject, body):
        # Keep the message so tests can try the token that never arrived
        await super().send(to, subject, body)
        raise NotificationError("SMTP relay unavailable")


@pytest.fixture(autouse=True)
def reset_database():
    # Drop all tables and recreate them before each test
    Base.metadata.drop_all(bind=engine)
    Base.metadata.create_all(bind=engine)
    yield
    app.dependency_overrides.clear()


@pytest.fixture
def notifier():
    recorder = RecordingNotifier()
    app.dependency_overrides[get_notifier] = lambda: recorder
    return recorder


@pytest.fixture
def failing_notifier():
    failing = FailingNotifier()
    app.dependency_overrides[get_notifier] = lambda: failing
    return failing


@pytest.fixture
def client(notifier):
    with TestClient(app) as c:
        yield c


@pytest.fixture
def db():
    session = SessionLocal()
    try:
        yield session
    finally:
        session.close()


def ensure_user(email="user@example.com", name="Test User", password="Secret123!", role="user"):
    db = SessionLocal()
    try:
        u = db.query(User).filter(User.email == email).first()
        if not u:
            u = User(name=name, email=email, password=hash_password(password), role=role)
            db.add(u)
            db.commit()
        # return stable scalar values to avoid DetachedInstance
        return {"id": u.id, "email": email, "password": password, "role": role}
    finally:
        db.close()


def ensure_tour(name="The Forest Hiker"):
    db = SessionLocal()
    try:
        tour = Tour(name=name)
        db.add(tour)
        db.commit()
        return tour.id
    finally:
        db.close()


def auth_header_for(user_id: int, issued_at: datetime = None, expires_in: timedelta = None):
    token = create_access_token(
        user_id,
        settings.JWT_SECRET,
        expires_in or timedelta(days=settings.JWT_EXPIRES_IN_DAYS),
        algorithm=settings.JWT_ALGORITHM,
        issued_at=issued_at,
    )
    return {"Authorization": f"Bearer {token}"}
