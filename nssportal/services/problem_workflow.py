"""
nssportal.services.problem_workflow — Problem Lifecycle
========================================================

``submit → (approve | reject) → resolve``.

Each action runs one database transaction on a worker thread: the status
change, the derived event and the reporter's counters and badges commit
together or not at all.  The status change itself is a conditional update
(see :mod:`nssportal.services.state_guard`), so two reviewers approving the
same problem at once cannot both succeed and the reporter is credited once.

Notifications are handed to the :class:`FanoutDispatcher` after commit;
the caller gets its outcome without waiting for delivery.
"""

from __future__ import annotations

import logging
import math
from dataclasses import dataclass, field
from datetime import datetime

from sqlalchemy import Engine, func, select, update
from sqlalchemy.orm import Session

from nssportal.clock import Clock, start_of_month, utcnow
from nssportal.config import PortalConfig
from nssportal.database.engine import get_session, run_db
from nssportal.database.models import (
    Event,
    Problem,
    ProblemCategory,
    ProblemStatus,
    Severity,
    User,
    UserBadge,
    Visibility,
)
from nssportal.engine.badges import RewardCounters
from nssportal.engine.derivation import derive_event
from nssportal.engine.scoring import (
    ScoreDelta,
    score_approval,
    score_resolution,
    score_submission,
)
from nssportal.errors import NotFoundError, ValidationError
from nssportal.services import messages
from nssportal.services.dispatcher import FanoutDispatcher
from nssportal.services.notification_fanout import Recipient
from nssportal.services.recipients import active_students, recipient_for
from nssportal.services.state_guard import transition
from nssportal.services.views import event_dict, problem_dict

logger = logging.getLogger(__name__)

_CATEGORIES = frozenset(c.value for c in ProblemCategory)
_SEVERITIES = frozenset(s.value for s in Severity)

MAX_TITLE_LENGTH = 200
MAX_DESCRIPTION_LENGTH = 2000
MAX_ADDRESS_LENGTH = 500
MAX_FEEDBACK_LENGTH = 1000


# ---------------------------------------------------------------------------
# Inputs & outcomes
# ---------------------------------------------------------------------------
@dataclass(frozen=True, slots=True)
class ProblemLocation:
    address: str
    lat: float | None = None
    lng: float | None = None


@dataclass
class SubmitOutcome:
    problem: dict
    points_awarded: int = 0
    new_badges: list[str] = field(default_factory=list)


@dataclass
class ApprovalOutcome:
    problem: dict
    event: dict
    points_awarded: int
    new_badges: list[str]
    total_points: int
    problems_approved: int


@dataclass
class ResolveOutcome:
    problem: dict
    points_awarded: int
    total_points: int


# ---------------------------------------------------------------------------
# Reporter counters
# ---------------------------------------------------------------------------
def _lock_user(session: Session, user_id: int) -> User:
    """Load *user_id* with a row lock held until commit."""
    user = session.scalar(
        select(User)
        .where(User.id == user_id)
        .with_for_update()
        .execution_options(populate_existing=True)
    )
    if user is None:
        raise NotFoundError(f"User {user_id} not found")
    return user


def _check_coordinate(name: str, value: float | None, limit: float) -> None:
    if value is None:
        return
    if not math.isfinite(value) or not -limit <= value <= limit:
        raise ValidationError(f"{name} must be between -{limit} and {limit}")


def _counters(user: User) -> RewardCounters:
    return RewardCounters(
        problems_reported=user.problems_reported or 0,
        problems_approved=user.problems_approved or 0,
        reward_points=user.reward_points or 0,
        reporting_score=user.reporting_score or 0,
    )


def _held_badges(session: Session, user_id: int) -> set[str]:
    return set(
        session.scalars(select(UserBadge.badge).where(UserBadge.user_id == user_id)).all()
    )


def _monthly_submissions(session: Session, user_id: int, now: datetime) -> int:
    return session.scalar(
        select(func.count()).select_from(Problem).where(
            Problem.reported_by == user_id,
            Problem.created_at >= start_of_month(now),
        )
    ) or 0


def _apply_delta(session: Session, user: User, delta: ScoreDelta, now: datetime) -> None:
    """Add *delta* to the (locked) *user* and insert its new badges."""
    if delta.is_empty:
        return
    user.reward_points = (user.reward_points or 0) + delta.reward_points
    user.reporting_score = (user.reporting_score or 0) + delta.reporting_score
    user.problems_reported = (user.problems_reported or 0) + delta.problems_reported
    user.problems_approved = (user.problems_approved or 0) + delta.problems_approved
    for badge in delta.badges:
        session.add(UserBadge(user_id=user.id, badge=badge, earned_at=now))
    session.flush()


# ---------------------------------------------------------------------------
# Workflow
# ---------------------------------------------------------------------------
class ProblemWorkflow:
    """Problem transitions plus their rewards and notifications."""

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
    # submit
    # ------------------------------------------------------------------
    async def submit_problem(
        self,
        reporter_id: int,
        *,
        title: str,
        description: str,
        category: str,
        location: ProblemLocation,
        images: list[str] | None = None,
        severity: str | None = None,
    ) -> SubmitOutcome:
        """Record a new pending, private problem and credit the reporter.

        Raises
        ------
        ValidationError
            Missing or over-long title/description/address, a missing or
            unknown category, an unknown severity, or coordinates out of range.
        NotFoundError
            The reporter doesn't exist.
        """
        title = (title or "").strip()
        description = (description or "").strip()
        if not title or not description or not category:
            raise ValidationError("Title, description and category are required")
        if location is None or not (location.address or "").strip():
            raise ValidationError("Location address is required")
        if len(title) > MAX_TITLE_LENGTH:
            raise ValidationError(f"Title cannot exceed {MAX_TITLE_LENGTH} characters")
        if len(description) > MAX_DESCRIPTION_LENGTH:
            raise ValidationError(
                f"Description cannot exceed {MAX_DESCRIPTION_LENGTH} characters"
            )
        if len(location.address.strip()) > MAX_ADDRESS_LENGTH:
            raise ValidationError(f"Address cannot exceed {MAX_ADDRESS_LENGTH} characters")
        _check_coordinate("Latitude", location.lat, 90)
        _check_coordinate("Longitude", location.lng, 180)
        if category not in _CATEGORIES:
            raise ValidationError(f"Unknown category: {category}")
        severity = severity or Severity.MEDIUM.value
        if severity not in _SEVERITIES:
            raise ValidationError(f"Unknown severity: {severity}")

        outcome = await run_db(
            self._submit_tx, reporter_id, title, description, category,
            location, list(images or []), severity,
        )
        logger.info(
            "Problem %d submitted by user %d (+%d points)",
            outcome.problem["id"], reporter_id, outcome.points_awarded,
        )
        return outcome

    def _submit_tx(
        self,
        reporter_id: int,
        title: str,
        description: str,
        category: str,
        location: ProblemLocation,
        images: list[str],
        severity: str,
    ) -> SubmitOutcome:
        now = self.clock()
        with get_session(self.engine) as session:
            reporter = _lock_user(session, reporter_id)
            delta = score_submission(_counters(reporter), _held_badges(session, reporter_id))

            problem = Problem(
                title=title,
                description=description,
                category=category,
                location_address=location.address.strip(),
                latitude=location.lat,
                longitude=location.lng,
                images=images,
                severity=severity,
                status=ProblemStatus.PENDING.value,
                visibility=Visibility.PRIVATE.value,
                reported_by=reporter_id,
                view_count=0,
                created_at=now,
            )
            session.add(problem)
            session.flush()
            _apply_delta(session, reporter, delta, now)
            return SubmitOutcome(
                problem=problem_dict(problem),
                points_awarded=delta.reward_points,
                new_badges=list(delta.badges),
            )

    # ------------------------------------------------------------------
    # approve
    # ------------------------------------------------------------------
    async def approve_problem(
        self,
        problem_id: int,
        reviewer_id: int,
        *,
        event_date: datetime | None = None,
        event_details: str | None = None,
    ) -> ApprovalOutcome:
        """Approve a pending problem, create its event and reward the reporter.

        Sends ``problem-approved`` to the reporter and ``new-event`` to all
        active students once the transaction has committed.

        Raises
        ------
        NotFoundError
            Unknown problem or reviewer.
        InvalidStateError
            The problem is no longer pending.
        """
        outcome, reporter, students = await run_db(
            self._approve_tx, problem_id, reviewer_id, event_date, event_details
        )
        logger.info(
            "Problem %d approved by user %d → event %d (+%d points, badges=%s)",
            problem_id, reviewer_id, outcome.event["id"],
            outcome.points_awarded, outcome.new_badges or "none",
        )

        self.dispatcher.dispatch(
            [reporter],
            messages.problem_approved(
                self.cfg,
                problem=outcome.problem,
                event=outcome.event,
                points=outcome.points_awarded,
                total_points=outcome.total_points,
                badges=outcome.new_badges,
            ),
        )
        self.dispatcher.dispatch(
            students, messages.new_event(self.cfg, event=outcome.event, problem=outcome.problem)
        )
        return outcome

    def _approve_tx(
        self,
        problem_id: int,
        reviewer_id: int,
        event_date: datetime | None,
        event_details: str | None,
    ) -> tuple[ApprovalOutcome, Recipient, list[Recipient]]:
        now = self.clock()
        with get_session(self.engine) as session:
            problem = session.get(Problem, problem_id)
            if problem is None:
                raise NotFoundError(f"Problem {problem_id} not found")
            if session.get(User, reviewer_id) is None:
                raise NotFoundError(f"Reviewer {reviewer_id} not found")

            transition(
                session, Problem, problem_id,
                expected=ProblemStatus.PENDING,
                message="Problem has already been reviewed",
                status=ProblemStatus.APPROVED.value,
                visibility=Visibility.PUBLIC.value,
                reviewed_by=reviewer_id,
                reviewed_at=now,
            )
            session.refresh(problem)

            derived = derive_event(
                title=problem.title,
                description=problem.description,
                category=problem.category,
                location=problem.location_address,
                images=problem.images,
                now=now,
                event_date=event_date,
                event_details=event_details,
                lead_days=self.cfg.default_event_lead_days,
            )
            event = Event(
                title=derived.title,
                description=derived.description,
                event_type=derived.event_type,
                location=derived.location,
                start_date=derived.schedule.start,
                end_date=derived.schedule.end,
                registration_deadline=derived.schedule.registration_deadline,
                max_participants=None,
                current_participants=0,
                organizer_id=reviewer_id,
                status=derived.status,
                images=derived.images,
                is_problem_resolution=True,
                related_problem_id=problem_id,
                created_at=now,
            )
            session.add(event)
            session.flush()

            reporter = _lock_user(session, problem.reported_by)
            delta = score_approval(
                problem.severity,
                _counters(reporter),
                _held_badges(session, reporter.id),
                _monthly_submissions(session, reporter.id, now),
            )
            session.execute(
                update(Problem)
                .where(Problem.id == problem_id, Problem.points_awarded.is_(None))
                .values(event_id=event.id, points_awarded=delta.reward_points)
                .execution_options(synchronize_session=False)
            )
            _apply_delta(session, reporter, delta, now)
            session.refresh(problem)

            outcome = ApprovalOutcome(
                problem=problem_dict(problem),
                event=event_dict(event),
                points_awarded=delta.reward_points,
                new_badges=list(delta.badges),
                total_points=reporter.reward_points,
                problems_approved=reporter.problems_approved,
            )
            return outcome, recipient_for(reporter), active_students(session)

    # ------------------------------------------------------------------
    # reject
    # ------------------------------------------------------------------
    async def reject_problem(
        self, problem_id: int, reviewer_id: int, *, feedback: str | None = None
    ) -> dict:
        """Reject a pending problem; scores are untouched.

        Returns the updated problem view.
        """
        if feedback is not None and len(feedback) > MAX_FEEDBACK_LENGTH:
            raise ValidationError(f"Feedback cannot exceed {MAX_FEEDBACK_LENGTH} characters")
        problem, reporter = await run_db(self._reject_tx, problem_id, reviewer_id, feedback)
        logger.info("Problem %d rejected by user %d", problem_id, reviewer_id)
        self.dispatcher.dispatch(
            [reporter], messages.problem_rejected(self.cfg, problem=problem, feedback=feedback)
        )
        return problem

    def _reject_tx(
        self, problem_id: int, reviewer_id: int, feedback: str | None
    ) -> tuple[dict, Recipient]:
        now = self.clock()
        with get_session(self.engine) as session:
            problem = session.get(Problem, problem_id)
            if problem is None:
                raise NotFoundError(f"Problem {problem_id} not found")
            if session.get(User, reviewer_id) is None:
                raise NotFoundError(f"Reviewer {reviewer_id} not found")
            transition(
                session, Problem, problem_id,
                expected=ProblemStatus.PENDING,
                message="Problem has already been reviewed",
                status=ProblemStatus.REJECTED.value,
                visibility=Visibility.PRIVATE.value,
                reviewed_by=reviewer_id,
                reviewed_at=now,
                admin_feedback=feedback,
            )
            session.refresh(problem)
            reporter = session.get(User, problem.reported_by)
            return problem_dict(problem), recipient_for(reporter)

    # ------------------------------------------------------------------
    # resolve
    # ------------------------------------------------------------------
    async def resolve_problem(self, problem_id: int) -> ResolveOutcome:
        """Mark an approved problem resolved and pay the resolution bonus.

        Badges are not re-evaluated.

        Raises
        ------
        InvalidStateError
            The problem is not approved.
        """
        outcome = await run_db(self._resolve_tx, problem_id)
        logger.info("Problem %d resolved (+%d points)", problem_id, outcome.points_awarded)
        return outcome

    def _resolve_tx(self, problem_id: int) -> ResolveOutcome:
        now = self.clock()
        with get_session(self.engine) as session:
            problem = session.get(Problem, problem_id)
            if problem is None:
                raise NotFoundError(f"Problem {problem_id} not found")
            transition(
                session, Problem, problem_id,
                expected=ProblemStatus.APPROVED,
                message="Only approved problems can be resolved",
                status=ProblemStatus.RESOLVED.value,
                visibility=Visibility.PRIVATE.value,
                resolved_at=now,
            )
            session.refresh(problem)
            reporter = _lock_user(session, problem.reported_by)
            delta = score_resolution()
            _apply_delta(session, reporter, delta, now)
            return ResolveOutcome(
                problem=problem_dict(problem),
                points_awarded=delta.reward_points,
                total_points=reporter.reward_points,
            )
