"""
nssportal.services.notification_fanout — Multi-Channel Notification Fan-out
============================================================================

Delivers one logical notification to N recipients over three independent
channels:

1. **Email** — batched (50 per batch by default); sends inside a batch run
   concurrently with a small stagger, and the whole batch is joined before
   the next one starts.
2. **Live push** — one event to each recipient's private room plus one
   broadcast event.  Skipped when no live transport is configured.
3. **Durable inbox** — one :class:`Notification` row per recipient, always
   attempted, regardless of what channels 1 and 2 did.

Failures are isolated per recipient and per channel and recorded in the
returned :class:`FanoutResult`; :meth:`NotificationFanout.notify` never
raises because some deliveries failed.

The fan-out does not deduplicate: callers invoke it once per transition.
"""

from __future__ import annotations

import asyncio
import enum
import logging
from collections.abc import Callable, Sequence
from dataclasses import dataclass, field
from datetime import UTC, datetime
from typing import TYPE_CHECKING, Any, Protocol

from nssportal.database.engine import run_db
from nssportal.errors import DeliveryError
from nssportal.services.inbox_service import create_notification, json_safe

if TYPE_CHECKING:
    from sqlalchemy import Engine

    from nssportal.config import PortalConfig
    from nssportal.services.live_channel import LiveChannel
    from nssportal.services.mailer import Mailer

logger = logging.getLogger(__name__)

DEFAULT_BATCH_SIZE = 50
DEFAULT_SEND_DELAY = 0.2


# ---------------------------------------------------------------------------
# Value types
# ---------------------------------------------------------------------------
class Channel(enum.StrEnum):
    EMAIL = "email"
    LIVE = "live"
    INBOX = "inbox"


class DeliveryStatus(enum.StrEnum):
    SENT = "sent"
    FAILED = "failed"
    SKIPPED = "skipped"


@dataclass(frozen=True, slots=True)
class DeliveryOutcome:
    status: DeliveryStatus
    error: str | None = None


SENT = DeliveryOutcome(DeliveryStatus.SENT)


@dataclass(frozen=True, slots=True)
class Recipient:
    """Detached snapshot of the user fields the channels need."""

    id: int
    name: str
    email: str | None = None


@dataclass(frozen=True, slots=True)
class EmailContent:
    subject: str
    text_body: str
    html_body: str


@dataclass(frozen=True)
class NotificationPayload:
    """One logical notification.

    Parameters
    ----------
    type : Type tag stored on inbox rows and used as the live event name.
    message : Human-readable one-liner.
    data : Structured payload for inbox rows and live events.
    email : Builds the (personalised) email for one recipient.  ``None``
        means this notification has no email form.
    """

    type: str
    message: str
    data: dict[str, Any] = field(default_factory=dict)
    email: Callable[[Recipient], EmailContent] | None = None

    def live_body(self) -> dict[str, Any]:
        return {
            "type": self.type,
            "message": self.message,
            "data": json_safe(self.data),
            "timestamp": datetime.now(UTC).isoformat(),
        }


@dataclass
class FanoutResult:
    """Per-recipient, per-channel outcome of one :meth:`notify` call."""

    notification_type: str
    recipient_ids: list[int] = field(default_factory=list)
    outcomes: dict[int, dict[Channel, DeliveryOutcome]] = field(default_factory=dict)
    broadcast_sent: bool | None = None

    def record(self, recipient_id: int, channel: Channel, outcome: DeliveryOutcome) -> None:
        self.outcomes.setdefault(recipient_id, {})[channel] = outcome

    def record_all(
        self, recipients: Sequence[Recipient], channel: Channel, outcome: DeliveryOutcome
    ) -> None:
        for recipient in recipients:
            self.record(recipient.id, channel, outcome)

    def outcome(self, recipient_id: int, channel: Channel) -> DeliveryOutcome | None:
        return self.outcomes.get(recipient_id, {}).get(channel)

    def _with_status(self, channel: Channel, status: DeliveryStatus) -> list[int]:
        return [
            rid for rid in self.recipient_ids
            if (o := self.outcome(rid, channel)) is not None and o.status == status
        ]

    def succeeded(self, channel: Channel) -> list[int]:
        return self._with_status(channel, DeliveryStatus.SENT)

    def failed(self, channel: Channel) -> list[int]:
        return self._with_status(channel, DeliveryStatus.FAILED)

    def skipped(self, channel: Channel) -> list[int]:
        return self._with_status(channel, DeliveryStatus.SKIPPED)

    def summary(self) -> dict[str, dict[str, int]]:
        return {
            ch.value: {
                "sent": len(self.succeeded(ch)),
                "failed": len(self.failed(ch)),
                "skipped": len(self.skipped(ch)),
            }
            for ch in Channel
        }


# ---------------------------------------------------------------------------
# Channel strategies
# ---------------------------------------------------------------------------
class DeliveryChannel(Protocol):
    channel: Channel

    async def deliver(
        self,
        recipients: Sequence[Recipient],
        payload: NotificationPayload,
        result: FanoutResult,
    ) -> None:
        """Record an outcome for every recipient.  Must not raise."""
        ...


def _failure(exc: BaseException) -> DeliveryOutcome:
    if isinstance(exc, DeliveryError):
        return DeliveryOutcome(DeliveryStatus.FAILED, exc.reason)
    return DeliveryOutcome(DeliveryStatus.FAILED, str(exc) or exc.__class__.__name__)


class EmailChannel:
    """Batched, concurrent email sends through a :class:`Mailer`."""

    channel = Channel.EMAIL

    def __init__(
        self,
        mailer: Mailer,
        *,
        batch_size: int = DEFAULT_BATCH_SIZE,
        send_delay: float = DEFAULT_SEND_DELAY,
    ) -> None:
        if batch_size <= 0:
            raise ValueError("batch_size must be positive")
        self.mailer = mailer
        self.batch_size = batch_size
        self.send_delay = send_delay

    async def _send_one(
        self, index: int, recipient: Recipient, payload: NotificationPayload
    ) -> None:
        if not recipient.email:
            raise DeliveryError(self.channel, recipient.id, "No email address")
        if index and self.send_delay:
            await asyncio.sleep(index * self.send_delay)
        content = payload.email(recipient)
        outcome = await self.mailer.send(
            recipient.email, content.subject, content.text_body, content.html_body
        )
        if not outcome.success:
            raise DeliveryError(self.channel, recipient.id, outcome.error or "send failed")

    async def deliver(
        self,
        recipients: Sequence[Recipient],
        payload: NotificationPayload,
        result: FanoutResult,
    ) -> None:
        if payload.email is None:
            result.record_all(recipients, self.channel, DeliveryOutcome(DeliveryStatus.SKIPPED))
            return
        if not getattr(self.mailer, "configured", True):
            logger.warning(
                "Email transport not configured — skipping email for %d recipient(s) of %s",
                len(recipients), payload.type,
            )
            result.record_all(
                recipients, self.channel,
                DeliveryOutcome(DeliveryStatus.SKIPPED, "Email transport not configured"),
            )
            return

        for start in range(0, len(recipients), self.batch_size):
            batch = recipients[start:start + self.batch_size]
            outcomes = await asyncio.gather(
                *(self._send_one(i, r, payload) for i, r in enumerate(batch)),
                return_exceptions=True,
            )
            for recipient, outcome in zip(batch, outcomes):
                if isinstance(outcome, BaseException):
                    if not isinstance(outcome, DeliveryError):
                        logger.error(
                            "Unexpected email error for user %d",
                            recipient.id, exc_info=outcome,
                        )
                    else:
                        logger.warning("Email to user %d failed: %s", recipient.id, outcome.reason)
                    result.record(recipient.id, self.channel, _failure(outcome))
                else:
                    result.record(recipient.id, self.channel, SENT)


class LivePushChannel:
    """Direct room events plus one broadcast through a :class:`LiveChannel`."""

    channel = Channel.LIVE

    def __init__(self, live: LiveChannel | None) -> None:
        self.live = live

    async def deliver(
        self,
        recipients: Sequence[Recipient],
        payload: NotificationPayload,
        result: FanoutResult,
    ) -> None:
        if self.live is None:
            result.record_all(recipients, self.channel, DeliveryOutcome(DeliveryStatus.SKIPPED))
            return

        body = payload.live_body()
        for recipient in recipients:
            try:
                await self.live.emit_to_recipient(recipient.id, payload.type, body)
            except Exception as exc:
                logger.warning("Live push to user %d failed: %s", recipient.id, exc)
                result.record(recipient.id, self.channel, _failure(exc))
            else:
                result.record(recipient.id, self.channel, SENT)

        broadcast_body = dict(body)
        if len(recipients) == 1:
            broadcast_body["targetUserId"] = recipients[0].id
        try:
            await self.live.broadcast(f"{payload.type}-broadcast", broadcast_body)
            result.broadcast_sent = True
        except Exception:
            logger.exception("Live broadcast for %s failed", payload.type)
            result.broadcast_sent = False


class InboxChannel:
    """Persist one inbox row per recipient, all concurrently."""

    channel = Channel.INBOX

    def __init__(self, engine: Engine, writer=create_notification) -> None:
        self.engine = engine
        self.writer = writer

    async def deliver(
        self,
        recipients: Sequence[Recipient],
        payload: NotificationPayload,
        result: FanoutResult,
    ) -> None:
        outcomes = await asyncio.gather(
            *(
                run_db(
                    self.writer,
                    self.engine,
                    user_id=r.id,
                    type_=payload.type,
                    message=payload.message,
                    data=payload.data,
                )
                for r in recipients
            ),
            return_exceptions=True,
        )
        for recipient, outcome in zip(recipients, outcomes):
            if isinstance(outcome, BaseException):
                logger.error(
                    "Failed to store %s notification for user %d: %s",
                    payload.type, recipient.id, outcome,
                )
                result.record(recipient.id, self.channel, _failure(outcome))
            else:
                result.record(recipient.id, self.channel, SENT)


# ---------------------------------------------------------------------------
# Fan-out
# ---------------------------------------------------------------------------
class NotificationFanout:
    """Runs the three channels for one notification and aggregates outcomes."""

    def __init__(
        self,
        *,
        email: EmailChannel,
        live: LivePushChannel,
        inbox: InboxChannel,
    ) -> None:
        self.email = email
        self.live = live
        self.inbox = inbox

    @classmethod
    def build(
        cls,
        engine: Engine,
        mailer: Mailer,
        live: LiveChannel | None,
        cfg: PortalConfig,
    ) -> NotificationFanout:
        return cls(
            email=EmailChannel(
                mailer, batch_size=cfg.email_batch_size, send_delay=cfg.email_send_delay
            ),
            live=LivePushChannel(live),
            inbox=InboxChannel(engine),
        )

    @property
    def channels(self) -> tuple[DeliveryChannel, ...]:
        return (self.email, self.live, self.inbox)

    async def _run_channel(
        self,
        strategy: DeliveryChannel,
        recipients: Sequence[Recipient],
        payload: NotificationPayload,
        result: FanoutResult,
    ) -> None:
        try:
            await strategy.deliver(recipients, payload, result)
        except Exception as exc:
            # A whole channel blew up; whatever it didn't record counts as failed.
            logger.exception("%s channel failed for %s", strategy.channel, payload.type)
            for recipient in recipients:
                if result.outcome(recipient.id, strategy.channel) is None:
                    result.record(recipient.id, strategy.channel, _failure(exc))

    async def notify(
        self, recipients: Sequence[Recipient], payload: NotificationPayload
    ) -> FanoutResult:
        """Deliver *payload* to every recipient on every channel.

        Channels run concurrently.  The inbox channel is attempted for every
        recipient independently of the email and live outcomes.
        """
        recipients = list(recipients)
        result = FanoutResult(
            notification_type=payload.type,
            recipient_ids=[r.id for r in recipients],
        )
        if not recipients:
            logger.info("No recipients for %s notification", payload.type)
            return result

        await asyncio.gather(
            *(self._run_channel(ch, recipients, payload, result) for ch in self.channels)
        )

        for channel, counts in result.summary().items():
            logger.info(
                "%s fan-out [%s]: %d sent, %d failed, %d skipped",
                payload.type, channel, counts["sent"], counts["failed"], counts["skipped"],
            )
        return result
