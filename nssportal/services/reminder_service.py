"""
nssportal.services.reminder_service — Upcoming Event Reminders
===============================================================

A job, not a scheduler: the host calls :func:`send_event_reminders` on its
own timer.  Each open event starting within ``days_before`` days gets one
``event-reminder`` fan-out to its approved participants.
"""

from __future__ import annotations

import logging
from datetime import timedelta

from sqlalchemy import Engine, select
from sqlalchemy.orm import Session

from nssportal.clock import Clock, utcnow
from nssportal.config import PortalConfig
from nssportal.database.engine import run_db
from nssportal.database.models import Event, EventStatus, Participation, ParticipationStatus, User
from nssportal.services import messages
from nssportal.services.notification_fanout import (
    FanoutResult,
    NotificationFanout,
    Recipient,
)
from nssportal.services.views import event_dict

logger = logging.getLogger(__name__)


def upcoming_events_with_participants(
    engine: Engine, now, days_before: int
) -> list[tuple[dict, list[Recipient]]]:
    """Open events starting in ``(now, now + days_before]`` and their approved students."""
    horizon = now + timedelta(days=days_before)
    with Session(engine) as session:
        events = session.scalars(
            select(Event)
            .where(
                Event.status.in_([EventStatus.PUBLISHED.value, EventStatus.ONGOING.value]),
                Event.start_date > now,
                Event.start_date <= horizon,
            )
            .order_by(Event.start_date)
        ).all()

        batches = []
        for event in events:
            rows = session.execute(
                select(User.id, User.name, User.email)
                .join(Participation, Participation.student_id == User.id)
                .where(
                    Participation.event_id == event.id,
                    Participation.status == ParticipationStatus.APPROVED.value,
                )
                .order_by(User.id)
            ).all()
            recipients = [Recipient(id=r.id, name=r.name, email=r.email) for r in rows]
            batches.append((event_dict(event), recipients))
        return batches


async def send_event_reminders(
    engine: Engine,
    fanout: NotificationFanout,
    cfg: PortalConfig,
    *,
    clock: Clock = utcnow,
    days_before: int = 1,
) -> list[FanoutResult]:
    """Notify approved participants of events starting soon.

    Events without approved participants are skipped.  Returns one
    :class:`FanoutResult` per event notified.
    """
    if days_before <= 0:
        raise ValueError("days_before must be positive")
    now = clock()
    batches = await run_db(upcoming_events_with_participants, engine, now, days_before)

    results: list[FanoutResult] = []
    for event, recipients in batches:
        if not recipients:
            continue
        result = await fanout.notify(
            recipients, messages.event_reminder(cfg, event=event, days_before=days_before)
        )
        results.append(result)

    logger.info(
        "Sent reminders for %d event(s) starting within %d day(s)", len(results), days_before
    )
    return results
