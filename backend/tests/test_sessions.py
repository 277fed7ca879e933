from datetime import timedelta

from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from feedauth.config import Settings
from feedauth.core import clock
from feedauth.core.database import Base, enable_sqlite_foreign_keys
from feedauth.models.account import Account
from feedauth.models.session import AuthSession
from feedauth.services.session_service import SessionRegistry


def _make_session():
    engine = create_engine(
        "sqlite:///:memory:",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    enable_sqlite_foreign_keys(engine)
    SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)
    Base.metadata.create_all(bind=engine)
    return SessionLocal()


def _account(db, email="a@x.com"):
    account = Account(email=email, name="Alice", password_hash=None, failed_login_attempts=0)
    db.add(account)
    db.commit()
    db.refresh(account)
    return account


def _advance(monkeypatch, delta):
    real = clock.utcnow()
    monkeypatch.setattr(clock, "utcnow", lambda: real + delta)


def test_create_session_is_active_with_seven_day_expiry():
    db = _make_session()
    registry = SessionRegistry(Settings())
    try:
        account = _account(db)
        record = registry.create(db, account.id, "Laptop", "10.0.0.1", "pytest")

        assert record.is_active is True
        assert record.is_valid() is True
        assert len(record.session_token) == 64
        lifetime = record.expires_at - record.last_activity
        assert timedelta(days=6, hours=23) < lifetime <= timedelta(days=7)
        assert "session_token" not in record.to_dict()
    finally:
        db.close()


def test_session_tokens_are_unique():
    db = _make_session()
    registry = SessionRegistry(Settings())
    try:
        account = _account(db)
        first = registry.create(db, account.id)
        second = registry.create(db, account.id)
        assert first.session_token != second.session_token
    finally:
        db.close()


def test_find_active_orders_by_recent_activity_and_skips_invalid(monkeypatch):
    db = _make_session()
    registry = SessionRegistry(Settings())
    try:
        account = _account(db)
        older = registry.create(db, account.id, "Phone")
        newer = registry.create(db, account.id, "Laptop")
        ended = registry.create(db, account.id, "Tablet")
        registry.invalidate(db, ended.id)

        _advance(monkeypatch, timedelta(minutes=1))
        registry.touch(db, older.id)

        active = registry.find_active(db, account.id)
        assert [s.id for s in active] == [older.id, newer.id]
    finally:
        db.close()


def test_invalidate_is_idempotent():
    db = _make_session()
    registry = SessionRegistry(Settings())
    try:
        account = _account(db)
        record = registry.create(db, account.id)
        assert registry.invalidate(db, record.id) is True
        assert registry.invalidate(db, record.id) is False
        db.refresh(record)
        assert record.is_valid() is False
    finally:
        db.close()


def test_invalidate_others_keeps_current_session():
    db = _make_session()
    registry = SessionRegistry(Settings())
    try:
        account = _account(db)
        other_account = _account(db, "b@x.com")
        current = registry.create(db, account.id)
        registry.create(db, account.id)
        registry.create(db, account.id)
        foreign = registry.create(db, other_account.id)

        assert registry.invalidate_others(db, account.id, current.id) == 2
        assert [s.id for s in registry.find_active(db, account.id)] == [current.id]
        assert registry.is_valid(registry.get(db, foreign.id)) is True
    finally:
        db.close()


def test_invalidate_all_counts_active_sessions():
    db = _make_session()
    registry = SessionRegistry(Settings())
    try:
        account = _account(db)
        registry.create(db, account.id)
        registry.create(db, account.id)
        assert registry.invalidate_all(db, account.id) == 2
        assert registry.find_active(db, account.id) == []
    finally:
        db.close()


def test_session_expires_after_lifetime(monkeypatch):
    db = _make_session()
    registry = SessionRegistry(Settings())
    try:
        account = _account(db)
        record = registry.create(db, account.id)
        _advance(monkeypatch, timedelta(days=8))
        assert record.is_valid() is False
        assert registry.find_active(db, account.id) == []
    finally:
        db.close()


def test_sweep_removes_inactive_and_expired_rows(monkeypatch):
    db = _make_session()
    registry = SessionRegistry(Settings())
    try:
        account = _account(db)
        keep = registry.create(db, account.id)
        ended = registry.create(db, account.id)
        registry.invalidate(db, ended.id)

        assert registry.sweep_expired(db) == 1
        assert registry.sweep_expired(db) == 0
        assert [s.id for s in db.query(AuthSession).all()] == [keep.id]

        _advance(monkeypatch, timedelta(days=8))
        assert registry.sweep_expired(db) == 1
        assert db.query(AuthSession).count() == 0
    finally:
        db.close()


def test_summary_lists_current_devices():
    db = _make_session()
    registry = SessionRegistry(Settings())
    try:
        account = _account(db)
        registry.create(db, account.id, "Laptop", "10.0.0.1")
        summary = registry.summary(db, account.id)
        assert summary["total_sessions"] == 1
        assert summary["current_devices"][0]["device_info"] == "Laptop"
    finally:
        db.close()


def test_deleting_account_cascades_to_sessions():
    db = _make_session()
    registry = SessionRegistry(Settings())
    try:
        account = _account(db)
        registry.create(db, account.id)
        db.delete(account)
        db.commit()
        assert db.query(AuthSession).count() == 0
    finally:
        db.close()
