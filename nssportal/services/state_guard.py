"""
nssportal.services.state_guard — Conditional Status Transitions
================================================================

Every workflow transition is written as::

    UPDATE <table> SET status = :new, … WHERE id = :id AND status = :expected

inside the caller's transaction.  If another request already moved the
row, the update matches nothing and :func:`transition` raises
:class:`InvalidStateError`; the caller's ``get_session`` block then rolls
back every other write of the transaction (counters, derived event, …).
"""

from __future__ import annotations

import logging
from collections.abc import Iterable
from typing import Any

from sqlalchemy import update
from sqlalchemy.orm import Session

from nssportal.errors import InvalidStateError

logger = logging.getLogger(__name__)


def transition(
    session: Session,
    model_cls: type,
    pk: int,
    *,
    expected: str | Iterable[str],
    message: str,
    extra_where: Iterable[Any] = (),
    error: type[InvalidStateError] = InvalidStateError,
    **values: Any,
) -> None:
    """Apply *values* to row *pk* only while its status is *expected*.

    Parameters
    ----------
    expected : Status (or statuses) the row must currently hold.
    message : Error message if the precondition no longer holds.
    extra_where : Additional SQL conditions that must also match.
    error : InvalidStateError subclass to raise, e.g. EventFullError.
    values : Column assignments, e.g. ``status="approved"``.

    Raises
    ------
    InvalidStateError
        (or *error*) when zero rows matched.
    """
    allowed = [expected] if isinstance(expected, str) else list(expected)
    stmt = (
        update(model_cls)
        .where(model_cls.id == pk, model_cls.status.in_(allowed), *extra_where)
        .values(**values)
        .execution_options(synchronize_session=False)
    )
    result = session.execute(stmt)
    if result.rowcount != 1:
        logger.info(
            "Rejected %s transition for id=%d (expected status %s)",
            model_cls.__name__, pk, "/".join(allowed),
        )
        raise error(message)
