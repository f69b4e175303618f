"""
nssportal.services.problem_queries — Problem Read Path & Leaderboard
=====================================================================

Visibility rule for a single problem: admins and faculty see everything,
reporters see their own reports, everyone else sees only approved public
problems.  Listing applies the same rule as a SQL filter.
"""

from __future__ import annotations

import logging

from sqlalchemy import Engine, or_, select, update
from sqlalchemy.orm import Session

from nssportal.database.engine import get_session
from nssportal.database.models import (
    ELEVATED_ROLES,
    Problem,
    ProblemStatus,
    Role,
    User,
    Visibility,
)
from nssportal.errors import AuthorizationError, NotFoundError
from nssportal.services.views import problem_dict, user_summary

logger = logging.getLogger(__name__)

DEFAULT_LIMIT = 50
LEADERBOARD_SIZE = 10


def can_view(problem: Problem | dict, viewer_id: int, viewer_role: str) -> bool:
    """Whether *viewer_id* (with *viewer_role*) may read *problem*."""
    if isinstance(problem, dict):
        reporter, status, visibility = (
            problem["reported_by"], problem["status"], problem["visibility"]
        )
    else:
        reporter, status, visibility = problem.reported_by, problem.status, problem.visibility
    if viewer_role in ELEVATED_ROLES:
        return True
    if reporter == viewer_id:
        return True
    return visibility == Visibility.PUBLIC and status == ProblemStatus.APPROVED


def get_problem(engine: Engine, problem_id: int, viewer_id: int, viewer_role: str) -> dict:
    """Fetch one problem for a viewer and count the view.

    Raises
    ------
    NotFoundError
        Unknown problem.
    AuthorizationError
        The viewer may not see it.
    """
    with get_session(engine) as session:
        problem = session.get(Problem, problem_id)
        if problem is None:
            raise NotFoundError(f"Problem {problem_id} not found")
        if not can_view(problem, viewer_id, viewer_role):
            raise AuthorizationError("Not authorized to view this problem")
        session.execute(
            update(Problem)
            .where(Problem.id == problem_id)
            .values(view_count=Problem.view_count + 1)
            .execution_options(synchronize_session=False)
        )
        session.refresh(problem)
        return problem_dict(problem)


def list_visible_problems(
    engine: Engine,
    viewer_id: int,
    viewer_role: str,
    *,
    category: str | None = None,
    severity: str | None = None,
    status: str | None = None,
    limit: int = DEFAULT_LIMIT,
    offset: int = 0,
) -> list[dict]:
    """Newest-first problems the viewer may see, optionally filtered."""
    stmt = select(Problem)
    if viewer_role not in ELEVATED_ROLES:
        stmt = stmt.where(
            or_(
                Problem.reported_by == viewer_id,
                (Problem.visibility == Visibility.PUBLIC.value)
                & (Problem.status == ProblemStatus.APPROVED.value),
            )
        )
    if category:
        stmt = stmt.where(Problem.category == category)
    if severity:
        stmt = stmt.where(Problem.severity == severity)
    if status:
        stmt = stmt.where(Problem.status == status)
    stmt = stmt.order_by(Problem.created_at.desc(), Problem.id.desc()).limit(limit).offset(offset)

    with Session(engine) as session:
        return [problem_dict(p) for p in session.scalars(stmt).all()]


def list_my_problems(engine: Engine, reporter_id: int) -> list[dict]:
    with Session(engine) as session:
        rows = session.scalars(
            select(Problem)
            .where(Problem.reported_by == reporter_id)
            .order_by(Problem.created_at.desc(), Problem.id.desc())
        ).all()
        return [problem_dict(p) for p in rows]


def get_leaderboard(engine: Engine, limit: int = LEADERBOARD_SIZE) -> list[dict]:
    """Top active students by reporting score, ties broken by reward points."""
    with Session(engine) as session:
        users = session.scalars(
            select(User)
            .where(User.role == Role.STUDENT.value, User.is_active.is_(True))
            .order_by(User.reporting_score.desc(), User.reward_points.desc(), User.id)
            .limit(limit)
        ).all()
        board = []
        for rank, user in enumerate(users, start=1):
            entry = user_summary(user)
            entry.pop("email", None)
            entry["rank"] = rank
            board.append(entry)
        return board
