"""
tests/test_participation_workflow.py — Registration & Attendance Tests
=======================================================================
"""

from __future__ import annotations

import asyncio
from datetime import timedelta

import pytest
from sqlalchemy import select
from sqlalchemy.orm import Session

from nssportal.database.models import Event, Notification, Participation, Role, User
from nssportal.errors import (
    AlreadyRegisteredError,
    EventFullError,
    EventNotOpenError,
    InvalidStateError,
    NotFoundError,
    RegistrationClosedError,
    ValidationError,
)
from nssportal.services.participation_workflow import ParticipationWorkflow
from tests.conftest import FIXED_NOW


# Helper to run async tests without pytest-asyncio
def run_async(coro):
    """Run an async coroutine in a new event loop."""
    loop = asyncio.new_event_loop()
    try:
        return loop.run_until_complete(coro)
    finally:
        loop.close()


@pytest.fixture
def workflow(db_engine, dispatcher, cfg, clock) -> ParticipationWorkflow:
    return ParticipationWorkflow(db_engine, dispatcher, cfg, clock=clock)


@pytest.fixture
def admin(make_user) -> int:
    return make_user("Coordinator", role=Role.FACULTY.value)


@pytest.fixture
def make_event(db_engine, admin):
    def _make(**fields) -> int:
        start = FIXED_NOW + timedelta(days=7)
        values = {
            "title": "Campus Cleanup",
            "description": "Sweep the quad",
            "event_type": "cleanliness drive",
            "location": "Main quad",
            "start_date": start,
            "end_date": start + timedelta(hours=3, minutes=30),
            "registration_deadline": start - timedelta(days=1),
            "organizer_id": admin,
            "status": "published",
            "current_participants": 0,
        }
        values.update(fields)
        with Session(db_engine) as session:
            event = Event(**values)
            session.add(event)
            session.commit()
            return event.id
    return _make


def _run(workflow, coro):
    async def scenario():
        try:
            return await coro
        finally:
            await workflow.dispatcher.drain()
    return run_async(scenario())


def _event(engine, event_id) -> Event:
    with Session(engine, expire_on_commit=False) as session:
        event = session.get(Event, event_id)
        session.expunge(event)
        return event


def _hours(engine, user_id) -> float:
    with Session(engine) as session:
        return session.get(User, user_id).total_volunteer_hours


def _types(engine, user_id) -> list[str]:
    with Session(engine) as session:
        return list(session.scalars(
            select(Notification.type).where(Notification.user_id == user_id)
        ).all())


def _approved_participation(workflow, make_user, event_id, admin, **user_fields):
    student = make_user(**user_fields)
    p = _run(workflow, workflow.register_participation(event_id, student))
    _run(workflow, workflow.approve_participation(p["id"], admin))
    return student, p["id"]


# ===========================================================================
# Registration
# ===========================================================================
class TestRegister:
    def test_register_creates_pending_and_takes_seat(
        self, workflow, make_user, make_event, db_engine, mailer
    ):
        event_id = make_event(max_participants=10)
        student = make_user("Meera", email="meera@campus.test")

        p = _run(workflow, workflow.register_participation(event_id, student))

        assert p["status"] == "pending"
        assert _event(db_engine, event_id).current_participants == 1
        assert _types(db_engine, student) == ["registration-received"]
        assert mailer.sent[0]["to"] == "meera@campus.test"

    def test_missing_event(self, workflow, make_user):
        with pytest.raises(NotFoundError):
            _run(workflow, workflow.register_participation(404, make_user()))

    @pytest.mark.parametrize("status", ["draft", "completed", "cancelled"])
    def test_event_not_open(self, workflow, make_user, make_event, status):
        event_id = make_event(status=status)
        with pytest.raises(EventNotOpenError):
            _run(workflow, workflow.register_participation(event_id, make_user()))

    def test_ongoing_event_accepts(self, workflow, make_user, make_event):
        event_id = make_event(status="ongoing")
        p = _run(workflow, workflow.register_participation(event_id, make_user()))
        assert p["status"] == "pending"

    def test_deadline_passed(self, workflow, make_user, make_event, db_engine):
        event_id = make_event(registration_deadline=FIXED_NOW - timedelta(minutes=1))
        with pytest.raises(RegistrationClosedError):
            _run(workflow, workflow.register_participation(event_id, make_user()))
        assert _event(db_engine, event_id).current_participants == 0

    def test_event_full(self, workflow, make_user, make_event, db_engine):
        event_id = make_event(max_participants=1)
        _run(workflow, workflow.register_participation(event_id, make_user()))
        with pytest.raises(EventFullError):
            _run(workflow, workflow.register_participation(event_id, make_user()))
        assert _event(db_engine, event_id).current_participants == 1

    def test_already_registered(self, workflow, make_user, make_event, db_engine):
        event_id = make_event()
        student = make_user()
        _run(workflow, workflow.register_participation(event_id, student))
        with pytest.raises(AlreadyRegisteredError):
            _run(workflow, workflow.register_participation(event_id, student))
        assert _event(db_engine, event_id).current_participants == 1

    def test_errors_share_invalid_state_base(self):
        for cls in (EventNotOpenError, RegistrationClosedError, EventFullError,
                    AlreadyRegisteredError):
            assert issubclass(cls, InvalidStateError)


# ===========================================================================
# Review
# ===========================================================================
class TestReview:
    def test_approve(self, workflow, make_user, make_event, admin, db_engine):
        event_id = make_event()
        student = make_user()
        p = _run(workflow, workflow.register_participation(event_id, student))

        approved = _run(workflow, workflow.approve_participation(p["id"], admin))

        assert approved["status"] == "approved"
        assert approved["approved_by"] == admin
        assert approved["approved_at"] is not None
        assert "participation-approved" in _types(db_engine, student)

    def test_approve_twice_fails(self, workflow, make_user, make_event, admin):
        event_id = make_event()
        p = _run(workflow, workflow.register_participation(event_id, make_user()))
        _run(workflow, workflow.approve_participation(p["id"], admin))
        with pytest.raises(InvalidStateError):
            _run(workflow, workflow.approve_participation(p["id"], admin))

    def test_reject_frees_seat(self, workflow, make_user, make_event, admin, db_engine):
        event_id = make_event(max_participants=1)
        p = _run(workflow, workflow.register_participation(event_id, make_user()))

        rejected = _run(workflow, workflow.reject_participation(p["id"], admin))

        assert rejected["status"] == "rejected"
        assert _event(db_engine, event_id).current_participants == 0
        # The seat is available again
        _run(workflow, workflow.register_participation(event_id, make_user()))

    def test_reject_approved_fails(self, workflow, make_user, make_event, admin):
        event_id = make_event()
        _, pid = _approved_participation(workflow, make_user, event_id, admin)
        with pytest.raises(InvalidStateError):
            _run(workflow, workflow.reject_participation(pid, admin))

    def test_unknown_approver(self, workflow, make_user, make_event, db_engine):
        event_id = make_event(max_participants=1)
        p = _run(workflow, workflow.register_participation(event_id, make_user()))

        with pytest.raises(NotFoundError):
            _run(workflow, workflow.approve_participation(p["id"], 4242))
        with pytest.raises(NotFoundError):
            _run(workflow, workflow.reject_participation(p["id"], 4242))

        with Session(db_engine) as session:
            assert session.get(Participation, p["id"]).status == "pending"
        assert _event(db_engine, event_id).current_participants == 1


# ===========================================================================
# Attendance
# ===========================================================================
class TestAttendance:
    def test_mark_uses_event_duration(self, workflow, make_user, make_event, admin, db_engine):
        event_id = make_event()
        student, pid = _approved_participation(workflow, make_user, event_id, admin)

        outcome = _run(workflow, workflow.mark_attendance(pid, True))

        assert outcome.hours_delta == 3.0
        assert outcome.participation["status"] == "attended"
        assert outcome.participation["attendance"] is True
        assert outcome.participation["volunteer_hours"] == 3.0
        assert _hours(db_engine, student) == 3.0
        assert "attendance-marked" in _types(db_engine, student)

    def test_toggle_symmetry(self, workflow, make_user, make_event, admin, db_engine):
        event_id = make_event()
        student, pid = _approved_participation(
            workflow, make_user, event_id, admin, total_volunteer_hours=7.3
        )

        _run(workflow, workflow.mark_attendance(pid, True, hours=2.45))
        assert _hours(db_engine, student) == 9.75
        outcome = _run(workflow, workflow.mark_attendance(pid, False))

        assert _hours(db_engine, student) == 7.3
        assert outcome.hours_delta == -2.45
        assert outcome.participation["status"] == "approved"
        assert outcome.participation["volunteer_hours"] == 0.0

    def test_same_value_is_noop(self, workflow, make_user, make_event, admin, db_engine):
        event_id = make_event()
        student, pid = _approved_participation(workflow, make_user, event_id, admin)
        _run(workflow, workflow.mark_attendance(pid, True, hours=4))

        outcome = _run(workflow, workflow.mark_attendance(pid, True, hours=4))

        assert outcome.changed is False
        assert _hours(db_engine, student) == 4.0
        assert _types(db_engine, student).count("attendance-marked") == 1

    def test_unmark_when_not_marked_is_noop(self, workflow, make_user, make_event, admin, db_engine):
        event_id = make_event()
        student, pid = _approved_participation(workflow, make_user, event_id, admin)
        outcome = _run(workflow, workflow.mark_attendance(pid, False))
        assert outcome.changed is False
        assert _hours(db_engine, student) == 0.0

    def test_pending_participation_rejected(self, workflow, make_user, make_event):
        event_id = make_event()
        p = _run(workflow, workflow.register_participation(event_id, make_user()))
        with pytest.raises(InvalidStateError):
            _run(workflow, workflow.mark_attendance(p["id"], True))

    def test_negative_hours_rejected(self, workflow, make_user, make_event, admin, db_engine):
        event_id = make_event()
        student, pid = _approved_participation(workflow, make_user, event_id, admin)
        with pytest.raises(ValidationError):
            _run(workflow, workflow.mark_attendance(pid, True, hours=-1))
        with Session(db_engine) as session:
            assert session.get(Participation, pid).attendance is False
        assert _hours(db_engine, student) == 0.0

    @pytest.mark.parametrize("hours", [1e17, float("inf"), float("nan")])
    def test_unbounded_hours_rejected(
        self, workflow, make_user, make_event, admin, db_engine, hours
    ):
        event_id = make_event()
        student, pid = _approved_participation(
            workflow, make_user, event_id, admin, total_volunteer_hours=8.0
        )
        with pytest.raises(ValidationError):
            _run(workflow, workflow.mark_attendance(pid, True, hours=hours))
        assert _hours(db_engine, student) == 8.0

        # A valid mark and unmark still restores the starting total.
        _run(workflow, workflow.mark_attendance(pid, True, hours=24))
        assert _hours(db_engine, student) == 32.0
        _run(workflow, workflow.mark_attendance(pid, False))
        assert _hours(db_engine, student) == 8.0
