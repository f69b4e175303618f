"""
nssportal.api.routes.problems — Problem reporting & review endpoints
=====================================================================
"""

from __future__ import annotations

from datetime import datetime
from typing import Annotated

from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel, Field

from nssportal.api.deps import CurrentUser, Portal, get_current_user, get_portal, require_staff
from nssportal.database.engine import run_db
from nssportal.services import problem_queries
from nssportal.services.problem_workflow import ProblemLocation

router = APIRouter(tags=["problems"])


# ---------------------------------------------------------------------------
# Pydantic schemas
# ---------------------------------------------------------------------------
class LocationIn(BaseModel):
    address: str
    lat: float | None = None
    lng: float | None = None


class ProblemCreate(BaseModel):
    title: str
    description: str
    category: str
    location: LocationIn
    images: list[str] = Field(default_factory=list)
    severity: str | None = None


class ProblemApprove(BaseModel):
    event_date: datetime | None = None
    event_details: str | None = None


class ProblemReject(BaseModel):
    feedback: str | None = None


# ---------------------------------------------------------------------------
# Reporting
# ---------------------------------------------------------------------------
@router.post("/problems", status_code=201)
async def submit_problem(
    body: ProblemCreate,
    user: Annotated[CurrentUser, Depends(get_current_user)],
    portal: Annotated[Portal, Depends(get_portal)],
):
    outcome = await portal.problems.submit_problem(
        user.id,
        title=body.title,
        description=body.description,
        category=body.category,
        location=ProblemLocation(body.location.address, body.location.lat, body.location.lng),
        images=body.images,
        severity=body.severity,
    )
    return {
        "problem": outcome.problem,
        "points_awarded": outcome.points_awarded,
        "new_badges": outcome.new_badges,
    }


@router.get("/problems")
async def list_problems(
    user: Annotated[CurrentUser, Depends(get_current_user)],
    portal: Annotated[Portal, Depends(get_portal)],
    category: str | None = None,
    severity: str | None = None,
    status: str | None = None,
    limit: int = Query(50, ge=1, le=200),
    offset: int = Query(0, ge=0),
):
    return await run_db(
        problem_queries.list_visible_problems,
        portal.engine, user.id, user.role,
        category=category, severity=severity, status=status,
        limit=limit, offset=offset,
    )


@router.get("/problems/mine")
async def my_problems(
    user: Annotated[CurrentUser, Depends(get_current_user)],
    portal: Annotated[Portal, Depends(get_portal)],
):
    return await run_db(problem_queries.list_my_problems, portal.engine, user.id)


@router.get("/problems/{problem_id}")
async def get_problem(
    problem_id: int,
    user: Annotated[CurrentUser, Depends(get_current_user)],
    portal: Annotated[Portal, Depends(get_portal)],
):
    return await run_db(problem_queries.get_problem, portal.engine, problem_id, user.id, user.role)


@router.get("/leaderboard")
async def leaderboard(
    portal: Annotated[Portal, Depends(get_portal)],
    limit: int = Query(10, ge=1, le=100),
):
    return await run_db(problem_queries.get_leaderboard, portal.engine, limit)


# ---------------------------------------------------------------------------
# Review (admin / faculty)
# ---------------------------------------------------------------------------
@router.post("/problems/{problem_id}/approve")
async def approve_problem(
    problem_id: int,
    body: ProblemApprove,
    staff: Annotated[CurrentUser, Depends(require_staff)],
    portal: Annotated[Portal, Depends(get_portal)],
):
    outcome = await portal.problems.approve_problem(
        problem_id, staff.id, event_date=body.event_date, event_details=body.event_details
    )
    return {
        "problem": outcome.problem,
        "event": outcome.event,
        "points_awarded": outcome.points_awarded,
        "new_badges": outcome.new_badges,
        "total_points": outcome.total_points,
    }


@router.post("/problems/{problem_id}/reject")
async def reject_problem(
    problem_id: int,
    body: ProblemReject,
    staff: Annotated[CurrentUser, Depends(require_staff)],
    portal: Annotated[Portal, Depends(get_portal)],
):
    problem = await portal.problems.reject_problem(problem_id, staff.id, feedback=body.feedback)
    return {"problem": problem}


@router.post("/problems/{problem_id}/resolve")
async def resolve_problem(
    problem_id: int,
    staff: Annotated[CurrentUser, Depends(require_staff)],
    portal: Annotated[Portal, Depends(get_portal)],
):
    outcome = await portal.problems.resolve_problem(problem_id)
    return {
        "problem": outcome.problem,
        "points_awarded": outcome.points_awarded,
        "total_points": outcome.total_points,
    }
