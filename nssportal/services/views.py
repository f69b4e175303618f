"""
nssportal.services.views — Detached dict views of ORM rows
===========================================================

Workflows hand these plain dicts to message builders and API responses so
nothing downstream touches a closed session.  Datetimes stay as
``datetime`` objects; FastAPI and the inbox writer serialize them.
"""

from __future__ import annotations

from nssportal.clock import as_utc
from nssportal.database.models import Event, Participation, Problem, User


def _dt(value):
    return as_utc(value) if value is not None else None


def user_summary(u: User, badges: list[str] | None = None) -> dict:
    return {
        "id": u.id,
        "name": u.name,
        "email": u.email,
        "role": u.role,
        "problems_reported": u.problems_reported,
        "problems_approved": u.problems_approved,
        "reward_points": u.reward_points,
        "reporting_score": u.reporting_score,
        "total_volunteer_hours": u.total_volunteer_hours,
        "badges": sorted(badges) if badges is not None else sorted(b.badge for b in u.badges),
    }


def problem_dict(p: Problem) -> dict:
    return {
        "id": p.id,
        "title": p.title,
        "description": p.description,
        "category": p.category,
        "location": {
            "address": p.location_address,
            "lat": p.latitude,
            "lng": p.longitude,
        },
        "images": list(p.images or []),
        "severity": p.severity,
        "status": p.status,
        "visibility": p.visibility,
        "reported_by": p.reported_by,
        "reviewed_by": p.reviewed_by,
        "reviewed_at": _dt(p.reviewed_at),
        "event_id": p.event_id,
        "admin_feedback": p.admin_feedback,
        "points_awarded": p.points_awarded,
        "view_count": p.view_count,
        "created_at": _dt(p.created_at),
        "resolved_at": _dt(p.resolved_at),
    }


def event_dict(e: Event) -> dict:
    return {
        "id": e.id,
        "title": e.title,
        "description": e.description,
        "event_type": e.event_type,
        "location": e.location,
        "start_date": _dt(e.start_date),
        "end_date": _dt(e.end_date),
        "registration_deadline": _dt(e.registration_deadline),
        "max_participants": e.max_participants,
        "current_participants": e.current_participants,
        "organizer_id": e.organizer_id,
        "status": e.status,
        "is_problem_resolution": e.is_problem_resolution,
        "related_problem_id": e.related_problem_id,
    }


def participation_dict(p: Participation) -> dict:
    return {
        "id": p.id,
        "student_id": p.student_id,
        "event_id": p.event_id,
        "status": p.status,
        "registered_at": _dt(p.registered_at),
        "approved_at": _dt(p.approved_at),
        "approved_by": p.approved_by,
        "attendance": p.attendance,
        "attendance_date": _dt(p.attendance_date),
        "volunteer_hours": p.volunteer_hours,
    }
