"""
nssportal.services.inbox_service — Durable Notification Inbox
==============================================================

Write side used by the fan-out's inbox channel, plus the owner-scoped read
side (listing, unread count, read-state updates) served by the API.
"""

from __future__ import annotations

import logging
from datetime import datetime
from typing import Any

from sqlalchemy import Engine, delete, func, select, update
from sqlalchemy.orm import Session

from nssportal.clock import Clock, utcnow
from nssportal.database.engine import get_session
from nssportal.database.models import Notification
from nssportal.errors import NotFoundError

logger = logging.getLogger(__name__)

DEFAULT_PAGE_SIZE = 50


def json_safe(value: Any) -> Any:
    """Datetimes → ISO strings so JSONB accepts the payload."""
    if isinstance(value, datetime):
        return value.isoformat()
    if isinstance(value, dict):
        return {k: json_safe(v) for k, v in value.items()}
    if isinstance(value, (list, tuple)):
        return [json_safe(v) for v in value]
    return value


def notification_dict(n: Notification) -> dict:
    return {
        "id": n.id,
        "type": n.type,
        "message": n.message,
        "data": n.data or {},
        "read": n.read,
        "read_at": n.read_at.isoformat() if n.read_at else None,
        "created_at": n.created_at.isoformat() if n.created_at else None,
    }


# ---------------------------------------------------------------------------
# Write side
# ---------------------------------------------------------------------------
def create_notification(
    engine: Engine,
    *,
    user_id: int,
    type_: str,
    message: str,
    data: dict[str, Any] | None = None,
) -> int:
    """Insert one unread inbox row and return its id."""
    with get_session(engine) as session:
        row = Notification(
            user_id=user_id,
            type=type_,
            message=message,
            data=json_safe(data or {}),
            read=False,
        )
        session.add(row)
        session.flush()
        return row.id


# ---------------------------------------------------------------------------
# Read side
# ---------------------------------------------------------------------------
def list_notifications(
    engine: Engine,
    user_id: int,
    *,
    unread_only: bool = False,
    limit: int = DEFAULT_PAGE_SIZE,
) -> dict:
    """Newest-first notifications for *user_id* plus the unread count."""
    with Session(engine) as session:
        stmt = select(Notification).where(Notification.user_id == user_id)
        if unread_only:
            stmt = stmt.where(Notification.read.is_(False))
        rows = session.scalars(
            stmt.order_by(Notification.created_at.desc(), Notification.id.desc()).limit(limit)
        ).all()
        unread = session.scalar(
            select(func.count()).select_from(Notification).where(
                Notification.user_id == user_id, Notification.read.is_(False)
            )
        ) or 0
        return {
            "notifications": [notification_dict(n) for n in rows],
            "unread_count": unread,
        }


def mark_read(
    engine: Engine, user_id: int, notification_id: int, *, clock: Clock = utcnow
) -> dict:
    """Mark one of the user's notifications read.

    Raises
    ------
    NotFoundError
        If the notification doesn't exist or belongs to someone else.
    """
    with get_session(engine) as session:
        row = session.scalar(
            select(Notification).where(
                Notification.id == notification_id, Notification.user_id == user_id
            )
        )
        if row is None:
            raise NotFoundError("Notification not found")
        if not row.read:
            row.read = True
            row.read_at = clock()
        session.flush()
        return notification_dict(row)


def mark_all_read(engine: Engine, user_id: int, *, clock: Clock = utcnow) -> int:
    """Mark every unread notification of the user read; returns the count."""
    with get_session(engine) as session:
        result = session.execute(
            update(Notification)
            .where(Notification.user_id == user_id, Notification.read.is_(False))
            .values(read=True, read_at=clock())
        )
        return result.rowcount


def delete_notification(engine: Engine, user_id: int, notification_id: int) -> None:
    with get_session(engine) as session:
        result = session.execute(
            delete(Notification).where(
                Notification.id == notification_id, Notification.user_id == user_id
            )
        )
        if result.rowcount == 0:
            raise NotFoundError("Notification not found")
