"""
nssportal.api.routes.participations — Event registration & attendance endpoints
================================================================================
"""

from __future__ import annotations

from typing import Annotated

from fastapi import APIRouter, Depends
from pydantic import BaseModel, Field

from nssportal.api.deps import CurrentUser, Portal, get_portal, require_staff, require_student

router = APIRouter(tags=["participations"])


# Per-event limits are enforced by the workflow; this only bounds the input.
MAX_ATTENDANCE_HOURS = 1000


class AttendanceUpdate(BaseModel):
    attended: bool
    hours: float | None = Field(
        default=None, ge=0, le=MAX_ATTENDANCE_HOURS, allow_inf_nan=False
    )


@router.post("/events/{event_id}/register", status_code=201)
async def register(
    event_id: int,
    user: Annotated[CurrentUser, Depends(require_student)],
    portal: Annotated[Portal, Depends(get_portal)],
):
    participation = await portal.participations.register_participation(event_id, user.id)
    return {"participation": participation}


@router.post("/participations/{participation_id}/approve")
async def approve(
    participation_id: int,
    staff: Annotated[CurrentUser, Depends(require_staff)],
    portal: Annotated[Portal, Depends(get_portal)],
):
    participation = await portal.participations.approve_participation(participation_id, staff.id)
    return {"participation": participation}


@router.post("/participations/{participation_id}/reject")
async def reject(
    participation_id: int,
    staff: Annotated[CurrentUser, Depends(require_staff)],
    portal: Annotated[Portal, Depends(get_portal)],
):
    participation = await portal.participations.reject_participation(participation_id, staff.id)
    return {"participation": participation}


@router.post("/participations/{participation_id}/attendance")
async def attendance(
    participation_id: int,
    body: AttendanceUpdate,
    staff: Annotated[CurrentUser, Depends(require_staff)],
    portal: Annotated[Portal, Depends(get_portal)],
):
    outcome = await portal.participations.mark_attendance(
        participation_id, body.attended, hours=body.hours
    )
    return {
        "participation": outcome.participation,
        "hours_delta": outcome.hours_delta,
        "total_volunteer_hours": outcome.total_volunteer_hours,
        "changed": outcome.changed,
    }
