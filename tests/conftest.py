"""
tests/conftest.py — Shared Test Fixtures
=========================================
"""

from __future__ import annotations

import os

# ---------------------------------------------------------------------------
# Ensure a valid JWT_SECRET is always set for test runs.
# This must happen before any import of nssportal.api.deps which validates
# the secret at module-load time.
# ---------------------------------------------------------------------------
_TEST_JWT_SECRET = "test-secret-for-pytest-only-" + "x" * 40  # > 32 chars
os.environ.setdefault("JWT_SECRET", _TEST_JWT_SECRET)

from datetime import UTC, datetime  # noqa: E402

import pytest  # noqa: E402
from sqlalchemy import Engine, create_engine  # noqa: E402

# ---------------------------------------------------------------------------
# Make JSONB columns work in SQLite for testing.
# SQLite doesn't support JSONB natively, but SQLAlchemy's JSON type works.
# We register a custom type compiler so SQLite renders JSONB as TEXT.
# ---------------------------------------------------------------------------
from sqlalchemy.dialects.postgresql import JSONB as PG_JSONB  # noqa: E402
from sqlalchemy.orm import Session  # noqa: E402

from nssportal.config import PortalConfig  # noqa: E402
from nssportal.database.models import Base, Role, User  # noqa: E402
from nssportal.services.dispatcher import FanoutDispatcher  # noqa: E402
from nssportal.services.mailer import MailResult  # noqa: E402
from nssportal.services.notification_fanout import NotificationFanout  # noqa: E402

_jsonb_sqlite_registered = False


def _register_jsonb_sqlite_compat():
    """Register SQLite compilation for PG JSONB type (idempotent)."""
    global _jsonb_sqlite_registered
    if _jsonb_sqlite_registered:
        return
    from sqlalchemy.ext.compiler import compiles

    @compiles(PG_JSONB, "sqlite")
    def _compile_jsonb_as_text(type_, compiler, **kw):
        return "TEXT"

    _jsonb_sqlite_registered = True


_register_jsonb_sqlite_compat()

FIXED_NOW = datetime(2026, 3, 15, 10, 0, tzinfo=UTC)


# ---------------------------------------------------------------------------
# Fakes
# ---------------------------------------------------------------------------
class FakeMailer:
    """Records every send; addresses in *fail_for* get a failed result."""

    configured = True

    def __init__(self, fail_for: set[str] | None = None) -> None:
        self.fail_for = set(fail_for or ())
        self.sent: list[dict] = []

    async def send(self, to, subject, text_body, html_body) -> MailResult:
        self.sent.append({"to": to, "subject": subject, "text": text_body, "html": html_body})
        if to in self.fail_for:
            return MailResult(success=False, error="mailbox unavailable")
        return MailResult(success=True, message_id=f"<{len(self.sent)}@test>")


class RecordingLive:
    """In-memory LiveChannel that remembers what it was asked to push."""

    def __init__(self) -> None:
        self.direct: list[tuple[int, str, dict]] = []
        self.broadcasts: list[tuple[str, dict]] = []

    async def emit_to_recipient(self, recipient_id, event_name, payload) -> None:
        self.direct.append((recipient_id, event_name, payload))

    async def broadcast(self, event_name, payload) -> None:
        self.broadcasts.append((event_name, payload))


# ---------------------------------------------------------------------------
# Database
# ---------------------------------------------------------------------------
@pytest.fixture
def db_engine(tmp_path) -> Engine:
    """File-backed SQLite engine with all portal tables.

    A file (not ``:memory:``) so the worker threads used by ``run_db`` and
    the concurrent inbox writes each get their own connection.
    """
    engine = create_engine(
        f"sqlite:///{tmp_path / 'portal.db'}",
        echo=False,
        connect_args={"check_same_thread": False, "timeout": 30},
    )
    Base.metadata.create_all(engine)
    yield engine
    engine.dispose()


@pytest.fixture
def db_session(db_engine: Engine):
    with Session(db_engine) as session:
        yield session
        session.rollback()


@pytest.fixture
def make_user(db_engine: Engine):
    """Factory: insert a user and return its id."""
    counter = {"n": 0}

    def _make(
        name: str | None = None,
        *,
        role: str = Role.STUDENT.value,
        email: str | None = "auto",
        is_active: bool = True,
        **fields,
    ) -> int:
        counter["n"] += 1
        name = name or f"User {counter['n']}"
        if email == "auto":
            email = f"user{counter['n']}@campus.test"
        with Session(db_engine) as session:
            user = User(name=name, role=role, email=email, is_active=is_active, **fields)
            session.add(user)
            session.commit()
            return user.id

    return _make


# ---------------------------------------------------------------------------
# Fan-out wiring
# ---------------------------------------------------------------------------
@pytest.fixture
def cfg() -> PortalConfig:
    return PortalConfig(email_send_delay=0.0, frontend_url="https://portal.test")


@pytest.fixture
def clock():
    return lambda: FIXED_NOW


@pytest.fixture
def mailer() -> FakeMailer:
    return FakeMailer()


@pytest.fixture
def live() -> RecordingLive:
    return RecordingLive()


@pytest.fixture
def fanout(db_engine, mailer, live, cfg) -> NotificationFanout:
    return NotificationFanout.build(db_engine, mailer, live, cfg)


@pytest.fixture
def dispatcher(fanout) -> FanoutDispatcher:
    return FanoutDispatcher(fanout, keep_results=True)
