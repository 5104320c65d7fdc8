"""
AuthService and UserStore exercised without the HTTP layer.
"""
import asyncio
import threading
from datetime import datetime, timedelta

import jwt
import pytest

from tour_platform.tour_platform.auth_service.auth import (
    create_access_token,
    decode_access_token,
    hash_reset_token,
    to_timestamp,
)
from tour_platform.tour_platform.auth_service.config import Settings
from tour_platform.tour_platform.auth_service.errors import (
    BadRequest,
    InternalError,
    NotFound,
    Unauthorized,
    ValidationError,
)
from tour_platform.tour_platform.auth_service.models import AuthEvent, User
from tour_platform.tour_platform.auth_service.service import AuthService
from tour_platform.tour_platform.auth_service.store import UserStore
from tour_platform.tour_platform.auth_service.utils.event_logger import AuthEventLogger
from .conftest import RecordingNotifier, FailingNotifier

TEST_SETTINGS = Settings(JWT_SECRET="unit-test-secret", JWT_EXPIRES_IN_DAYS=1)


@pytest.fixture
def store(db):
    return UserStore(db)


def make_service(store, notifier=None, audit=None):
    return AuthService(store, notifier or RecordingNotifier(), TEST_SETTINGS, audit=audit)


def new_user(store, email="jonas@example.com", password="pass1234"):
    return store.create({
        "name": "Jonas",
        "email": email,
        "password": password,
        "password_confirm": password,
    })


def test_store_hashes_password(store, db):
    user = new_user(store)
    fetched = store.find_by_email("jonas@example.com", with_password=True)
    assert fetched.password != "pass1234"
    assert store.correct_password("pass1234", fetched)
    assert not store.correct_password("pass12345", fetched)
    assert user.password_changed_at is None


def test_store_rejects_invalid_email(store):
    with pytest.raises(ValidationError):
        new_user(store, email="not-an-email")
    with pytest.raises(ValidationError):
        new_user(store, email="a@exa..mple.com")
    with pytest.raises(ValidationError):
        new_user(store, email="Jonas <jonas@example.com>")


def test_issue_token_claims(store):
    service = make_service(store)
    token = service.issue_token(42)
    claims = decode_access_token(token, TEST_SETTINGS.JWT_SECRET)
    assert claims["id"] == 42
    assert claims["exp"] - claims["iat"] == 24 * 60 * 60


def test_token_signed_with_other_secret_is_rejected(store):
    user = new_user(store)
    service = make_service(store)
    forged = create_access_token(user.id, "some-other-secret", timedelta(days=1))
    with pytest.raises(Unauthorized):
        service.protect(forged)
    with pytest.raises(jwt.InvalidSignatureError):
        decode_access_token(forged, TEST_SETTINGS.JWT_SECRET)


def test_changed_password_after():
    changed = datetime(2024, 5, 1, 12, 0, 0)
    user = User(password_changed_at=changed)
    assert user.changed_password_after(to_timestamp(changed) - 60)
    assert not user.changed_password_after(to_timestamp(changed))
    assert not User().changed_password_after(0)


def test_protect_rejects_token_older_than_password_change(store):
    user = new_user(store)
    service = make_service(store)
    old_token = create_access_token(
        user.id, TEST_SETTINGS.JWT_SECRET, timedelta(days=1), issued_at=datetime.utcnow() - timedelta(minutes=1)
    )
    assert service.protect(old_token).id == user.id

    service.update_password(user, "pass1234", "newpass123", "newpass123")

    with pytest.raises(Unauthorized, match="recently changed password"):
        service.protect(old_token)


def test_login_same_error_for_unknown_and_wrong_password(store):
    new_user(store)
    service = make_service(store)

    with pytest.raises(Unauthorized) as wrong:
        service.login("jonas@example.com", "wrong-pass")
    with pytest.raises(Unauthorized) as unknown:
        service.login("nobody@example.com", "wrong-pass")
    assert wrong.value.message == unknown.value.message
    assert wrong.value.status_code == unknown.value.status_code == 401

    with pytest.raises(BadRequest):
        service.login("", "pass1234")


def test_forgot_then_reset_once(store):
    user = new_user(store)
    notifier = RecordingNotifier()
    service = make_service(store, notifier)

    asyncio.run(service.forgot_password("jonas@example.com", "https://natours.test/api/v1/users/resetPassword/"))
    raw_token = notifier.last_reset_token()
    assert "https://natours.test/api/v1/users/resetPassword/" + raw_token in notifier.sent[0]["body"]
    assert user.password_reset_token == hash_reset_token(raw_token)

    reset_user, token = service.reset_password(raw_token, "brandnew123", "brandnew123")
    assert reset_user.id == user.id
    assert service.protect(token).id == user.id
    assert reset_user.password_reset_token is None

    with pytest.raises(BadRequest, match="invalid or has expired"):
        service.reset_password(raw_token, "another1234", "another1234")


def test_forgot_password_unknown_email(store):
    service = make_service(store)
    with pytest.raises(NotFound):
        asyncio.run(service.forgot_password("nobody@example.com", "http://localhost"))
    with pytest.raises(NotFound):
        asyncio.run(service.forgot_password(None, "http://localhost"))


def test_forgot_password_rolls_back_on_notifier_failure(store, db):
    user = new_user(store)
    notifier = FailingNotifier()
    service = make_service(store, notifier)

    with pytest.raises(InternalError) as exc_info:
        asyncio.run(service.forgot_password("jonas@example.com", "http://localhost"))
    assert exc_info.value.status_code == 500
    assert exc_info.value.__cause__ is not None

    db.expire_all()
    assert user.password_reset_token is None
    assert user.password_reset_expires is None

    with pytest.raises(BadRequest):
        service.reset_password(notifier.last_reset_token(), "brandnew123", "brandnew123")


def test_pending_reset_guard_clears_fields(store, db):
    user = new_user(store)

    async def fail_inside_reset():
        async with store.pending_reset(user) as raw_token:
            assert store.find_by_reset_token(hash_reset_token(raw_token)).id == user.id
            raise RuntimeError("boom")

    with pytest.raises(RuntimeError):
        asyncio.run(fail_inside_reset())

    db.expire_all()
    assert user.password_reset_token is None
    assert user.password_reset_expires is None


def test_expired_reset_token_not_found(store):
    user = new_user(store)
    raw_token = store.start_password_reset(user)
    hashed = hash_reset_token(raw_token)

    assert store.find_by_reset_token(hashed) is not None
    later = datetime.utcnow() + timedelta(minutes=11)
    assert store.find_by_reset_token(hashed, now=later) is None


def test_audit_events_recorded(store, db):
    audit = AuthEventLogger(db, ip_address="10.0.0.1", user_agent="pytest")
    service = make_service(store, audit=audit)

    service.signup({
        "name": "Lisa",
        "email": "lisa@example.com",
        "password": "pass1234",
        "password_confirm": "pass1234",
    })
    service.login("lisa@example.com", "pass1234")

    events = db.query(AuthEvent).order_by(AuthEvent.timestamp).all()
    assert [e.event_type for e in events] == ["signup", "login_success"]
    assert events[0].to_dict()["ip_address"] == "10.0.0.1"


def test_audit_rejects_unknown_event(db, store):
    user = new_user(store)
    with pytest.raises(ValueError):
        AuthEventLogger(db).log("2fa_success", user)


class ThreadRecordingStore(UserStore):
    def __init__(self, db):
        super().__init__(db)
        self.threads = {}

    def find_by_email(self, email, with_password=False):
        self.threads["find_by_email"] = threading.get_ident()
        return super().find_by_email(email, with_password)

    def start_password_reset(self, user):
        self.threads["start_password_reset"] = threading.get_ident()
        return super().start_password_reset(user)

    def abort_password_reset(self, user):
        self.threads["abort_password_reset"] = threading.get_ident()
        return super().abort_password_reset(user)


def test_forgot_password_keeps_session_work_off_event_loop(db):
    store = ThreadRecordingStore(db)
    new_user(store)
    notifier = FailingNotifier()
    service = make_service(store, notifier)
    loop_threads = []

    async def run():
        loop_threads.append(threading.get_ident())
        await service.forgot_password("jonas@example.com", "http://localhost")

    with pytest.raises(InternalError):
        asyncio.run(run())

    assert set(store.threads) == {"find_by_email", "start_password_reset", "abort_password_reset"}
    assert loop_threads[0] not in store.threads.values()
    db.expire_all()
    assert store.find_by_email("jonas@example.com").password_reset_token is None


def test_token_issued_within_a_second_of_password_change_is_still_accepted(store):
    user = new_user(store)
    service = make_service(store)
    token = service.issue_token(user.id)

    store.set_password(user, "newpass123", "newpass123")
    store.save(user)

    # password_changed_at sits one second back, so same-second tokens stay valid
    assert service.protect(token).id == user.id


def test_main_serves_app_with_configured_host_and_port(monkeypatch):
    from tour_platform.tour_platform.auth_service import __main__ as entry

    calls = []
    monkeypatch.setattr(entry.uvicorn, "run", lambda app, **kwargs: calls.append((app, kwargs)))
    entry.main()

    app, kwargs = calls[0]
    assert app is entry.app
    assert kwargs["host"] == entry.settings.HOST
    assert kwargs["port"] == entry.settings.PORT
