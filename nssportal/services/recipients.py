"""
nssportal.services.recipients — Recipient lookups
==================================================

Turns user rows into detached :class:`Recipient` snapshots inside the
workflow transaction, so the fan-out never reads through a closed session.
"""

from __future__ import annotations

from sqlalchemy import select
from sqlalchemy.orm import Session

from nssportal.database.models import Role, User
from nssportal.services.notification_fanout import Recipient


def recipient_for(user: User) -> Recipient:
    return Recipient(id=user.id, name=user.name, email=user.email)


def active_students(session: Session) -> list[Recipient]:
    """Every active student: the audience of broadcast notifications."""
    rows = session.execute(
        select(User.id, User.name, User.email)
        .where(User.role == Role.STUDENT.value, User.is_active.is_(True))
        .order_by(User.id)
    ).all()
    return [Recipient(id=r.id, name=r.name, email=r.email) for r in rows]
