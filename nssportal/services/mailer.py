"""
nssportal.services.mailer — Transactional Email Transport
==========================================================

A :class:`Mailer` sends one message and **never raises**: every outcome,
including transport errors, comes back as a :class:`MailResult`.

Two implementations:

* :class:`BrevoMailer` — Brevo's transactional email API over ``httpx``.
* :class:`DisabledMailer` — used when no API key is configured.  It reports
  ``configured = False`` so the fan-out skips the email channel entirely.
"""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass
from typing import Protocol, runtime_checkable

import httpx

from nssportal.config import PortalConfig

logger = logging.getLogger(__name__)

BREVO_API = "https://api.brevo.com/v3"


@dataclass(frozen=True, slots=True)
class MailResult:
    success: bool
    error: str | None = None
    message_id: str | None = None


@runtime_checkable
class Mailer(Protocol):
    """Contract consumed by the email channel."""

    configured: bool

    async def send(
        self, to: str, subject: str, text_body: str, html_body: str
    ) -> MailResult:
        ...


class DisabledMailer:
    """Stand-in used when no email provider is configured."""

    configured = False

    async def send(
        self, to: str, subject: str, text_body: str, html_body: str
    ) -> MailResult:
        return MailResult(success=False, error="Email transport not configured")


class BrevoMailer:
    """Send mail through the Brevo ``/smtp/email`` endpoint.

    The ``httpx.AsyncClient`` is created once and reused for every send;
    call :meth:`aclose` on shutdown.
    """

    configured = True

    def __init__(
        self,
        api_key: str,
        *,
        sender_email: str,
        sender_name: str,
        client: httpx.AsyncClient | None = None,
        timeout: float = 10.0,
    ) -> None:
        self._sender = {"email": sender_email, "name": sender_name}
        self._owns_client = client is None
        self._client = client or httpx.AsyncClient(
            base_url=BREVO_API,
            timeout=timeout,
            transport=httpx.AsyncHTTPTransport(retries=1),
        )
        self._headers = {
            "api-key": api_key,
            "accept": "application/json",
            "content-type": "application/json",
        }

    async def send(
        self, to: str, subject: str, text_body: str, html_body: str
    ) -> MailResult:
        payload = {
            "sender": self._sender,
            "to": [{"email": to}],
            "subject": subject,
            "htmlContent": html_body,
        }
        if text_body:
            payload["textContent"] = text_body

        try:
            resp = await self._client.post(
                f"{BREVO_API}/smtp/email", json=payload, headers=self._headers
            )
        except httpx.HTTPError as exc:
            logger.warning("Email send error for %s: %s", to, exc)
            return MailResult(success=False, error=str(exc) or exc.__class__.__name__)

        if resp.status_code >= 400:
            detail = resp.text[:400]
            logger.warning(
                "Email to %s rejected by provider (%d): %s", to, resp.status_code, detail
            )
            return MailResult(success=False, error=f"HTTP {resp.status_code}: {detail}")

        try:
            message_id = resp.json().get("messageId")
        except ValueError:
            message_id = None
        logger.debug("Email sent to %s (message id %s)", to, message_id)
        return MailResult(success=True, message_id=message_id)

    async def aclose(self) -> None:
        if self._owns_client:
            await self._client.aclose()


def create_mailer(cfg: PortalConfig) -> BrevoMailer | DisabledMailer:
    """Build the mailer from ``BREVO_API_KEY``; disabled when unset."""
    api_key = os.getenv("BREVO_API_KEY", "").strip()
    if not api_key:
        logger.warning(
            "BREVO_API_KEY not set — email notifications are disabled."
        )
        return DisabledMailer()
    logger.info("Brevo email transport ready (sender %s)", cfg.sender_email)
    return BrevoMailer(
        api_key, sender_email=cfg.sender_email, sender_name=cfg.sender_name
    )
