"""
nssportal.api.routes.notifications — Durable inbox endpoints
=============================================================

Every endpoint is scoped to the caller's own notifications.
"""

from __future__ import annotations

from typing import Annotated

from fastapi import APIRouter, Depends, Query

from nssportal.api.deps import CurrentUser, Portal, get_current_user, get_portal
from nssportal.database.engine import run_db
from nssportal.services import inbox_service

router = APIRouter(prefix="/notifications", tags=["notifications"])


@router.get("")
async def list_notifications(
    user: Annotated[CurrentUser, Depends(get_current_user)],
    portal: Annotated[Portal, Depends(get_portal)],
    unread_only: bool = False,
    limit: int = Query(inbox_service.DEFAULT_PAGE_SIZE, ge=1, le=200),
):
    return await run_db(
        inbox_service.list_notifications, portal.engine, user.id,
        unread_only=unread_only, limit=limit,
    )


@router.patch("/read-all")
async def mark_all_read(
    user: Annotated[CurrentUser, Depends(get_current_user)],
    portal: Annotated[Portal, Depends(get_portal)],
):
    count = await run_db(inbox_service.mark_all_read, portal.engine, user.id)
    return {"updated": count}


@router.patch("/{notification_id}/read")
async def mark_read(
    notification_id: int,
    user: Annotated[CurrentUser, Depends(get_current_user)],
    portal: Annotated[Portal, Depends(get_portal)],
):
    return await run_db(inbox_service.mark_read, portal.engine, user.id, notification_id)


@router.delete("/{notification_id}", status_code=204)
async def delete_notification(
    notification_id: int,
    user: Annotated[CurrentUser, Depends(get_current_user)],
    portal: Annotated[Portal, Depends(get_portal)],
):
    await run_db(inbox_service.delete_notification, portal.engine, user.id, notification_id)
