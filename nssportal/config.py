"""
nssportal.config — YAML Configuration Loader
=============================================

Reads ``config.yaml`` for **soft** settings (portal identity, links used in
emails, fan-out tuning).  Secrets and infrastructure (``DATABASE_URL``,
``JWT_SECRET``, ``BREVO_API_KEY``) stay in the environment / ``.env``.

Usage::

    from nssportal.config import load_config

    cfg = load_config()          # reads ./config.yaml by default
    print(cfg.portal_name)       # "NSS Portal"
    print(cfg.email_batch_size)  # 50
"""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path

import yaml


# ---------------------------------------------------------------------------
# Typed settings object
# ---------------------------------------------------------------------------
@dataclass(frozen=True, slots=True)
class PortalConfig:
    """Immutable configuration loaded from ``config.yaml``."""

    # Identity
    portal_name: str = "NSS Portal"
    frontend_url: str = "http://localhost:3000"

    # Outgoing email
    sender_email: str = "noreply@nssportal.com"
    sender_name: str = "NSS Portal"

    # Fan-out tuning
    email_batch_size: int = 50
    email_send_delay: float = 0.2  # seconds between sends inside a batch

    # Derived events
    default_event_lead_days: int = 7


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------
def load_config(path: str | Path = "config.yaml") -> PortalConfig:
    """Read *path* and return a :class:`PortalConfig` instance.

    Every key is optional; missing keys keep their dataclass default.

    Raises
    ------
    FileNotFoundError
        If the YAML file doesn't exist.
    ValueError
        If ``email_batch_size`` is not a positive integer or
        ``email_send_delay`` is negative.
    """
    config_path = Path(path)
    if not config_path.exists():
        raise FileNotFoundError(
            f"Configuration file not found: {config_path.resolve()}\n"
            "Hint: copy config.yaml.example → config.yaml and edit it."
        )

    with open(config_path, encoding="utf-8") as fh:
        raw: dict = yaml.safe_load(fh) or {}

    defaults = PortalConfig()
    cfg = PortalConfig(
        portal_name=raw.get("portal_name", defaults.portal_name),
        frontend_url=str(raw.get("frontend_url", defaults.frontend_url)).rstrip("/"),
        sender_email=raw.get("sender_email", defaults.sender_email),
        sender_name=raw.get("sender_name", defaults.sender_name),
        email_batch_size=int(raw.get("email_batch_size", defaults.email_batch_size)),
        email_send_delay=float(raw.get("email_send_delay", defaults.email_send_delay)),
        default_event_lead_days=int(
            raw.get("default_event_lead_days", defaults.default_event_lead_days)
        ),
    )
    if cfg.email_batch_size <= 0:
        raise ValueError("email_batch_size must be a positive integer")
    if cfg.email_send_delay < 0:
        raise ValueError("email_send_delay cannot be negative")
    return cfg
