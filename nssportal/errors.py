"""
nssportal.errors — Workflow Error Taxonomy
===========================================

Workflow-level errors abort a transition before anything is written and
surface to the caller.  :class:`DeliveryError` is the exception: it is
raised inside a notification channel for one recipient and is always
caught and recorded by the fan-out.
"""

from __future__ import annotations


class PortalError(Exception):
    """Base class for every error raised by the portal core."""


class ValidationError(PortalError):
    """Missing or malformed input.  Retrying the same request won't help."""


class InvalidStateError(PortalError):
    """The action is not valid for the entity's current state."""


class EventNotOpenError(InvalidStateError):
    """The event is not published or ongoing."""


class RegistrationClosedError(InvalidStateError):
    """The event's registration deadline has passed."""


class EventFullError(InvalidStateError):
    """The event has reached its participant capacity."""


class AlreadyRegisteredError(InvalidStateError):
    """The student already holds a participation for this event."""


class NotFoundError(PortalError):
    """The referenced entity does not exist."""


class AuthorizationError(PortalError):
    """The caller's role or identity does not allow this access."""


class DeliveryError(PortalError):
    """One recipient could not be reached on one channel."""

    def __init__(self, channel: str, recipient_id: int, reason: str) -> None:
        super().__init__(f"{channel} delivery to user {recipient_id} failed: {reason}")
        self.channel = channel
        self.recipient_id = recipient_id
        self.reason = reason
