"""
nssportal.api.deps — FastAPI dependency injection
===================================================

Tokens are issued by the campus identity provider; this service only
verifies them.  The ``sub`` claim is the portal user id; the user's role is
read from the database, never trusted from the token.
"""

from __future__ import annotations

import os
from dataclasses import dataclass
from functools import lru_cache
from typing import Annotated

import jwt
from fastapi import Depends, Header, HTTPException, status
from jwt.exceptions import InvalidTokenError
from sqlalchemy import Engine
from sqlalchemy.orm import Session

from nssportal.config import PortalConfig, load_config
from nssportal.database.engine import create_db_engine
from nssportal.database.models import ELEVATED_ROLES, Role, User
from nssportal.services.dispatcher import FanoutDispatcher
from nssportal.services.live_channel import WebSocketHub
from nssportal.services.mailer import create_mailer
from nssportal.services.notification_fanout import NotificationFanout
from nssportal.services.participation_workflow import ParticipationWorkflow
from nssportal.services.problem_workflow import ProblemWorkflow

_WEAK_SECRETS = frozenset({
    "nssportal-dev-secret-change-me",
    "change-me",
    "secret",
    "dev",
    "",
})

_MIN_SECRET_LENGTH = 32

JWT_ALGORITHM = "HS256"


def _load_jwt_secret() -> str:
    """Load and validate JWT_SECRET from the environment.

    Raises RuntimeError at import time if the secret is missing, blank,
    too short (< 32 chars), or a known weak default.
    """
    secret = os.getenv("JWT_SECRET", "")
    if not secret:
        raise RuntimeError(
            "JWT_SECRET environment variable is not set. "
            "Generate one with: python -c \"import secrets; print(secrets.token_urlsafe(64))\""
        )
    if secret in _WEAK_SECRETS:
        raise RuntimeError(
            f"JWT_SECRET is set to a known weak default ('{secret}'). "
            "Please set a strong, unique secret."
        )
    if len(secret) < _MIN_SECRET_LENGTH:
        raise RuntimeError(
            f"JWT_SECRET is too short ({len(secret)} chars). "
            f"Minimum length is {_MIN_SECRET_LENGTH} characters."
        )
    return secret


JWT_SECRET: str = _load_jwt_secret()


# ---------------------------------------------------------------------------
# Portal wiring, built once per process
# ---------------------------------------------------------------------------
@dataclass
class Portal:
    """Long-lived collaborators shared by every request."""

    engine: Engine
    cfg: PortalConfig
    hub: WebSocketHub
    fanout: NotificationFanout
    dispatcher: FanoutDispatcher
    problems: ProblemWorkflow
    participations: ParticipationWorkflow

    @classmethod
    def build(cls, engine: Engine, cfg: PortalConfig, mailer=None) -> Portal:
        hub = WebSocketHub()
        fanout = NotificationFanout.build(
            engine, mailer if mailer is not None else create_mailer(cfg), hub, cfg
        )
        dispatcher = FanoutDispatcher(fanout)
        return cls(
            engine=engine,
            cfg=cfg,
            hub=hub,
            fanout=fanout,
            dispatcher=dispatcher,
            problems=ProblemWorkflow(engine, dispatcher, cfg),
            participations=ParticipationWorkflow(engine, dispatcher, cfg),
        )


@lru_cache(maxsize=1)
def get_engine() -> Engine:
    return create_db_engine()


@lru_cache(maxsize=1)
def get_config() -> PortalConfig:
    return load_config(os.getenv("NSSPORTAL_CONFIG", "config.yaml"))


@lru_cache(maxsize=1)
def get_portal() -> Portal:
    return Portal.build(get_engine(), get_config())


def decode_token(token: str) -> int:
    """Return the user id in *token*.  Raises 401 if invalid."""
    try:
        payload = jwt.decode(token, JWT_SECRET, algorithms=[JWT_ALGORITHM])
        return int(payload["sub"])
    except (InvalidTokenError, KeyError, TypeError, ValueError):
        raise HTTPException(status.HTTP_401_UNAUTHORIZED, "Invalid token")


@dataclass(frozen=True, slots=True)
class CurrentUser:
    id: int
    name: str
    role: str

    @property
    def is_staff(self) -> bool:
        return self.role in ELEVATED_ROLES


def get_current_user(
    portal: Annotated[Portal, Depends(get_portal)],
    authorization: Annotated[str | None, Header()] = None,
) -> CurrentUser:
    """Validate the bearer token and load the active user it names."""
    if not authorization or not authorization.startswith("Bearer "):
        raise HTTPException(status.HTTP_401_UNAUTHORIZED, "Missing token")
    user_id = decode_token(authorization.split(" ", 1)[1])
    with Session(portal.engine) as session:
        user = session.get(User, user_id)
        if user is None or not user.is_active:
            raise HTTPException(status.HTTP_401_UNAUTHORIZED, "Unknown or inactive user")
        return CurrentUser(id=user.id, name=user.name, role=user.role)


def require_staff(
    user: Annotated[CurrentUser, Depends(get_current_user)],
) -> CurrentUser:
    """Admins and faculty only.  Raises 403 otherwise."""
    if not user.is_staff:
        raise HTTPException(status.HTTP_403_FORBIDDEN, "Admin or faculty role required")
    return user


def require_student(
    user: Annotated[CurrentUser, Depends(get_current_user)],
) -> CurrentUser:
    """Students only.  Raises 403 otherwise."""
    if user.role != Role.STUDENT.value:
        raise HTTPException(status.HTTP_403_FORBIDDEN, "Student role required")
    return user
