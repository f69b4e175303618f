"""
tests/test_inbox_service.py — Durable Inbox Read/Write Tests
=============================================================
"""

from __future__ import annotations

from datetime import UTC, datetime

import pytest

from nssportal.errors import NotFoundError
from nssportal.services import inbox_service
from tests.conftest import FIXED_NOW


@pytest.fixture
def owner(make_user) -> int:
    return make_user("Owner")


@pytest.fixture
def stranger(make_user) -> int:
    return make_user("Stranger")


def _add(engine, user_id, n=1, type_="new-event"):
    return [
        inbox_service.create_notification(
            engine, user_id=user_id, type_=type_, message=f"msg {i}", data={"i": i}
        )
        for i in range(n)
    ]


class TestCreate:
    def test_datetimes_in_data_become_iso(self, db_engine, owner):
        inbox_service.create_notification(
            db_engine, user_id=owner, type_="x", message="m",
            data={"when": datetime(2026, 1, 2, 3, 4, tzinfo=UTC), "nested": [{"n": 1}]},
        )
        listing = inbox_service.list_notifications(db_engine, owner)
        data = listing["notifications"][0]["data"]
        assert data["when"] == "2026-01-02T03:04:00+00:00"
        assert data["nested"] == [{"n": 1}]


class TestList:
    def test_lists_own_with_unread_count(self, db_engine, owner, stranger):
        _add(db_engine, owner, 3)
        _add(db_engine, stranger, 2)

        listing = inbox_service.list_notifications(db_engine, owner)

        assert len(listing["notifications"]) == 3
        assert listing["unread_count"] == 3
        assert all(n["read"] is False for n in listing["notifications"])

    def test_newest_first_and_limit(self, db_engine, owner):
        ids = _add(db_engine, owner, 5)
        listing = inbox_service.list_notifications(db_engine, owner, limit=2)
        assert [n["id"] for n in listing["notifications"]] == [ids[4], ids[3]]
        assert listing["unread_count"] == 5

    def test_unread_only(self, db_engine, owner):
        ids = _add(db_engine, owner, 3)
        inbox_service.mark_read(db_engine, owner, ids[0])
        listing = inbox_service.list_notifications(db_engine, owner, unread_only=True)
        assert {n["id"] for n in listing["notifications"]} == {ids[1], ids[2]}
        assert listing["unread_count"] == 2


class TestReadState:
    def test_mark_read(self, db_engine, owner):
        (nid,) = _add(db_engine, owner)
        row = inbox_service.mark_read(db_engine, owner, nid, clock=lambda: FIXED_NOW)
        assert row["read"] is True
        assert row["read_at"] is not None

    def test_mark_read_is_owner_scoped(self, db_engine, owner, stranger):
        (nid,) = _add(db_engine, owner)
        with pytest.raises(NotFoundError):
            inbox_service.mark_read(db_engine, stranger, nid)

    def test_mark_all_read(self, db_engine, owner, stranger):
        _add(db_engine, owner, 4)
        _add(db_engine, stranger, 1)

        assert inbox_service.mark_all_read(db_engine, owner) == 4
        assert inbox_service.mark_all_read(db_engine, owner) == 0
        assert inbox_service.list_notifications(db_engine, owner)["unread_count"] == 0
        assert inbox_service.list_notifications(db_engine, stranger)["unread_count"] == 1


class TestDelete:
    def test_delete_own(self, db_engine, owner):
        (nid,) = _add(db_engine, owner)
        inbox_service.delete_notification(db_engine, owner, nid)
        assert inbox_service.list_notifications(db_engine, owner)["notifications"] == []

    def test_delete_foreign_or_missing(self, db_engine, owner, stranger):
        (nid,) = _add(db_engine, owner)
        with pytest.raises(NotFoundError):
            inbox_service.delete_notification(db_engine, stranger, nid)
        with pytest.raises(NotFoundError):
            inbox_service.delete_notification(db_engine, owner, 9999)
