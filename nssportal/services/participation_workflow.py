"""
nssportal.services.participation_workflow — Event Registration & Attendance
============================================================================

``register → (approve | reject)``, then attendance marking on approved
participations.

Seat counting uses a conditional increment
(``current_participants < max_participants``) in the same transaction as
the participation insert, so a full event can't be over-booked by
concurrent registrations.

Volunteer hours credited when attendance is marked are removed again when
it is unmarked; a toggle on and off leaves the student's total exactly
where it was.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass

from sqlalchemy import Engine, select, update
from sqlalchemy.exc import IntegrityError

from nssportal.clock import Clock, as_utc, utcnow
from nssportal.config import PortalConfig
from nssportal.database.engine import get_session, run_db
from nssportal.database.models import (
    Event,
    EventStatus,
    Participation,
    ParticipationStatus,
    User,
)
from nssportal.engine.attendance import credit_hours, debit_hours, hours_for_attendance
from nssportal.errors import (
    AlreadyRegisteredError,
    EventFullError,
    EventNotOpenError,
    InvalidStateError,
    NotFoundError,
    RegistrationClosedError,
)
from nssportal.services import messages
from nssportal.services.dispatcher import FanoutDispatcher
from nssportal.services.notification_fanout import Recipient
from nssportal.services.recipients import recipient_for
from nssportal.services.state_guard import transition
from nssportal.services.views import event_dict, participation_dict

logger = logging.getLogger(__name__)

OPEN_EVENT_STATUSES = (EventStatus.PUBLISHED.value, EventStatus.ONGOING.value)
MARKABLE_STATUSES = (ParticipationStatus.APPROVED.value, ParticipationStatus.ATTENDED.value)


@dataclass
class AttendanceOutcome:
    participation: dict
    hours_delta: float
    total_volunteer_hours: float
    changed: bool = True


class ParticipationWorkflow:
    """Registration, review and attendance for event participations."""

    def __init__(
        self,
        engine: Engine,
        dispatcher: FanoutDispatcher,
        cfg: PortalConfig,
        *,
        clock: Clock = utcnow,
    ) -> None:
        self.engine = engine
        self.dispatcher = dispatcher
        self.cfg = cfg
        self.clock = clock

    # ------------------------------------------------------------------
    # register
    # ------------------------------------------------------------------
    async def register_participation(self, event_id: int, student_id: int) -> dict:
        """Create a pending participation and take a seat.

        Raises
        ------
        NotFoundError
            Unknown event or student.
        EventNotOpenError, RegistrationClosedError, EventFullError, AlreadyRegisteredError
            The registration preconditions, checked in that order.
        """
        participation, event, student = await run_db(self._register_tx, event_id, student_id)
        logger.info("User %d registered for event %d", student_id, event_id)
        self.dispatcher.dispatch(
            [student],
            messages.registration_received(
                self.cfg, event=event, participation_id=participation["id"]
            ),
        )
        return participation

    def _register_tx(self, event_id: int, student_id: int) -> tuple[dict, dict, Recipient]:
        now = self.clock()
        with get_session(self.engine) as session:
            event = session.get(Event, event_id)
            if event is None:
                raise NotFoundError(f"Event {event_id} not found")
            student = session.get(User, student_id)
            if student is None:
                raise NotFoundError(f"User {student_id} not found")

            if event.status not in OPEN_EVENT_STATUSES:
                raise EventNotOpenError("Event is not open for registration")
            if now > as_utc(event.registration_deadline):
                raise RegistrationClosedError("Registration deadline has passed")
            existing = session.scalar(
                select(Participation.id).where(
                    Participation.event_id == event_id,
                    Participation.student_id == student_id,
                )
            )
            if existing is not None:
                raise AlreadyRegisteredError("Already registered for this event")

            seat_free = []
            if event.max_participants is not None:
                seat_free.append(Event.current_participants < Event.max_participants)
            transition(
                session, Event, event_id,
                expected=OPEN_EVENT_STATUSES,
                message="Event is full",
                extra_where=seat_free,
                error=EventFullError,
                current_participants=Event.current_participants + 1,
            )

            participation = Participation(
                student_id=student_id,
                event_id=event_id,
                status=ParticipationStatus.PENDING.value,
                registered_at=now,
            )
            session.add(participation)
            try:
                session.flush()
            except IntegrityError as exc:
                raise AlreadyRegisteredError("Already registered for this event") from exc
            session.refresh(event)
            return participation_dict(participation), event_dict(event), recipient_for(student)

    # ------------------------------------------------------------------
    # approve / reject
    # ------------------------------------------------------------------
    async def approve_participation(self, participation_id: int, approver_id: int) -> dict:
        """Approve a pending participation and notify the student."""
        participation, event, student = await run_db(
            self._approve_tx, participation_id, approver_id
        )
        logger.info("Participation %d approved by user %d", participation_id, approver_id)
        self.dispatcher.dispatch(
            [student],
            messages.participation_approved(
                self.cfg, event=event, participation_id=participation_id
            ),
        )
        return participation

    def _approve_tx(
        self, participation_id: int, approver_id: int
    ) -> tuple[dict, dict, Recipient]:
        now = self.clock()
        with get_session(self.engine) as session:
            participation = session.get(Participation, participation_id)
            if participation is None:
                raise NotFoundError(f"Participation {participation_id} not found")
            if session.get(User, approver_id) is None:
                raise NotFoundError(f"Approver {approver_id} not found")
            transition(
                session, Participation, participation_id,
                expected=ParticipationStatus.PENDING,
                message="Participation is not pending",
                status=ParticipationStatus.APPROVED.value,
                approved_at=now,
                approved_by=approver_id,
            )
            session.refresh(participation)
            event = session.get(Event, participation.event_id)
            student = session.get(User, participation.student_id)
            return participation_dict(participation), event_dict(event), recipient_for(student)

    async def reject_participation(self, participation_id: int, approver_id: int) -> dict:
        """Reject a pending participation and give its seat back."""
        participation = await run_db(self._reject_tx, participation_id, approver_id)
        logger.info("Participation %d rejected by user %d", participation_id, approver_id)
        return participation

    def _reject_tx(self, participation_id: int, approver_id: int) -> dict:
        with get_session(self.engine) as session:
            participation = session.get(Participation, participation_id)
            if participation is None:
                raise NotFoundError(f"Participation {participation_id} not found")
            if session.get(User, approver_id) is None:
                raise NotFoundError(f"Approver {approver_id} not found")
            transition(
                session, Participation, participation_id,
                expected=ParticipationStatus.PENDING,
                message="Participation is not pending",
                status=ParticipationStatus.REJECTED.value,
                approved_by=approver_id,
            )
            session.execute(
                update(Event)
                .where(Event.id == participation.event_id, Event.current_participants > 0)
                .values(current_participants=Event.current_participants - 1)
                .execution_options(synchronize_session=False)
            )
            session.refresh(participation)
            return participation_dict(participation)

    # ------------------------------------------------------------------
    # attendance
    # ------------------------------------------------------------------
    async def mark_attendance(
        self,
        participation_id: int,
        attended: bool,
        *,
        hours: float | None = None,
    ) -> AttendanceOutcome:
        """Mark or unmark attendance and adjust volunteer hours.

        Marking credits *hours* (default: the event's duration in whole
        hours, at least one) and sends ``attendance-marked``.  Unmarking
        removes exactly what was credited.  Re-sending the current value
        changes nothing.

        Raises
        ------
        InvalidStateError
            The participation is neither approved nor attended.
        ValidationError
            Negative *hours*.
        """
        outcome, event, student = await run_db(
            self._attendance_tx, participation_id, bool(attended), hours
        )
        if not outcome.changed:
            return outcome
        logger.info(
            "Attendance for participation %d set to %s (%+.2f hours)",
            participation_id, attended, outcome.hours_delta,
        )
        if attended:
            self.dispatcher.dispatch(
                [student],
                messages.attendance_marked(
                    self.cfg,
                    event=event,
                    participation_id=participation_id,
                    hours=outcome.hours_delta,
                    total_hours=outcome.total_volunteer_hours,
                ),
            )
        return outcome

    def _attendance_tx(
        self, participation_id: int, attended: bool, hours: float | None
    ) -> tuple[AttendanceOutcome, dict, Recipient]:
        now = self.clock()
        with get_session(self.engine) as session:
            participation = session.get(Participation, participation_id)
            if participation is None:
                raise NotFoundError(f"Participation {participation_id} not found")
            if participation.status not in MARKABLE_STATUSES:
                raise InvalidStateError(
                    "Attendance can only be marked for approved participations"
                )
            event = session.get(Event, participation.event_id)
            student = session.scalar(
                select(User).where(User.id == participation.student_id).with_for_update()
            )

            if bool(participation.attendance) == attended:
                outcome = AttendanceOutcome(
                    participation=participation_dict(participation),
                    hours_delta=0.0,
                    total_volunteer_hours=student.total_volunteer_hours or 0.0,
                    changed=False,
                )
                return outcome, event_dict(event), recipient_for(student)

            if attended:
                credited = hours_for_attendance(
                    as_utc(event.start_date), as_utc(event.end_date), hours
                )
                transition(
                    session, Participation, participation_id,
                    expected=MARKABLE_STATUSES,
                    message="Attendance was changed concurrently",
                    extra_where=[Participation.attendance.is_(False)],
                    attendance=True,
                    attendance_date=now,
                    volunteer_hours=credited,
                    status=ParticipationStatus.ATTENDED.value,
                )
                student.total_volunteer_hours = credit_hours(
                    student.total_volunteer_hours or 0.0, credited
                )
                delta = credited
            else:
                credited = participation.volunteer_hours or 0.0
                transition(
                    session, Participation, participation_id,
                    expected=MARKABLE_STATUSES,
                    message="Attendance was changed concurrently",
                    extra_where=[
                        Participation.attendance.is_(True),
                        Participation.volunteer_hours == credited,
                    ],
                    attendance=False,
                    attendance_date=None,
                    volunteer_hours=0.0,
                    status=ParticipationStatus.APPROVED.value,
                )
                student.total_volunteer_hours = debit_hours(
                    student.total_volunteer_hours or 0.0, credited
                )
                delta = -credited

            session.flush()
            session.refresh(participation)
            outcome = AttendanceOutcome(
                participation=participation_dict(participation),
                hours_delta=delta,
                total_volunteer_hours=student.total_volunteer_hours,
            )
            return outcome, event_dict(event), recipient_for(student)
