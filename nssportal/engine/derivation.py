"""
nssportal.engine.derivation — Problem → Event Derivation Rules
===============================================================

Fixed rules that turn an approved problem into a service event: the
category → event-type lookup and the default schedule.

Pure calculation; the workflow persists the returned :class:`DerivedEvent`.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timedelta

from nssportal.clock import as_utc
from nssportal.database.models import EventStatus, EventType, ProblemCategory

# ---------------------------------------------------------------------------
# Category → event type
# ---------------------------------------------------------------------------
CATEGORY_EVENT_TYPE: dict[str, EventType] = {
    ProblemCategory.CLEANLINESS: EventType.CLEANLINESS_DRIVE,
    ProblemCategory.INFRASTRUCTURE: EventType.OTHER,
    ProblemCategory.HEALTH: EventType.HEALTH_CAMP,
    ProblemCategory.EDUCATION: EventType.AWARENESS_CAMPAIGN,
    ProblemCategory.ENVIRONMENT: EventType.TREE_PLANTATION,
    ProblemCategory.SAFETY: EventType.AWARENESS_CAMPAIGN,
    ProblemCategory.WATER: EventType.OTHER,
    ProblemCategory.ELECTRICITY: EventType.OTHER,
    ProblemCategory.ROADS: EventType.OTHER,
    ProblemCategory.OTHER: EventType.OTHER,
}

EVENT_DURATION = timedelta(hours=4)
REGISTRATION_CLOSES_BEFORE = timedelta(days=1)


def event_type_for(category: str) -> EventType:
    """Event type for a problem category; unmapped categories map to ``other``."""
    return CATEGORY_EVENT_TYPE.get(category, EventType.OTHER)


@dataclass(frozen=True, slots=True)
class EventSchedule:
    start: datetime
    end: datetime
    registration_deadline: datetime


def default_schedule(
    now: datetime,
    event_date: datetime | None = None,
    *,
    lead_days: int = 7,
) -> EventSchedule:
    """Start at *event_date* (or *lead_days* from *now*), run four hours,
    close registration one day before the start."""
    start = as_utc(event_date) if event_date is not None else as_utc(now) + timedelta(days=lead_days)
    return EventSchedule(
        start=start,
        end=start + EVENT_DURATION,
        registration_deadline=start - REGISTRATION_CLOSES_BEFORE,
    )


@dataclass(frozen=True)
class DerivedEvent:
    """Field values for the event created from an approved problem."""

    title: str
    description: str
    event_type: str
    location: str
    schedule: EventSchedule
    status: str = EventStatus.PUBLISHED.value
    images: list[str] = field(default_factory=list)


def derive_event(
    *,
    title: str,
    description: str,
    category: str,
    location: str,
    images: list[str] | None,
    now: datetime,
    event_date: datetime | None = None,
    event_details: str | None = None,
    lead_days: int = 7,
) -> DerivedEvent:
    """Build the event description for an approved problem."""
    body = description
    if event_details:
        body = f"{description}\n\n{event_details}"
    return DerivedEvent(
        title=f"Community Service: {title}",
        description=body,
        event_type=event_type_for(category).value,
        location=location,
        schedule=default_schedule(now, event_date, lead_days=lead_days),
        images=list(images or []),
    )
