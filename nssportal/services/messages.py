"""
nssportal.services.messages — Notification content builders
=============================================================

All notification wording and email layout lives here so the workflows only
supply data.  Every builder returns a :class:`NotificationPayload`; the
email part is rendered per recipient (greeting by name).

User-supplied text is HTML-escaped before it reaches an email body.
"""

from __future__ import annotations

from datetime import datetime
from html import escape

from nssportal.config import PortalConfig
from nssportal.services.notification_fanout import (
    EmailContent,
    NotificationPayload,
    Recipient,
)

PROBLEM_APPROVED = "problem-approved"
PROBLEM_REJECTED = "problem-rejected"
NEW_EVENT = "new-event"
REGISTRATION_RECEIVED = "registration-received"
PARTICIPATION_APPROVED = "participation-approved"
ATTENDANCE_MARKED = "attendance-marked"
EVENT_REMINDER = "event-reminder"


def _date(value: datetime | None) -> str:
    return value.strftime("%d %b %Y") if value else "TBA"


def _html(heading: str, color: str, paragraphs: list[str], link: str, label: str) -> str:
    body = "\n".join(paragraphs)
    return (
        '<div style="font-family: Arial, sans-serif; max-width: 600px; margin: 0 auto;">'
        f'<h2 style="color: {color};">{heading}</h2>'
        f"{body}"
        f'<p><a href="{escape(link, quote=True)}" style="display: inline-block; '
        f'background: {color}; color: white; padding: 12px 24px; '
        f'text-decoration: none; border-radius: 6px;">{label}</a></p>'
        "</div>"
    )


def _box(title: str, rows: dict[str, object], background: str = "#f3f4f6") -> str:
    items = "".join(
        f"<p><strong>{escape(k)}:</strong> {escape(str(v))}</p>" for k, v in rows.items()
    )
    return (
        f'<div style="background: {background}; padding: 20px; border-radius: 8px; '
        f'margin: 20px 0;"><h3 style="margin-top: 0;">{escape(title)}</h3>{items}</div>'
    )


def _text(greeting: str, lines: list[str]) -> str:
    return "\n".join([greeting, "", *lines])


# ---------------------------------------------------------------------------
# Problem workflow
# ---------------------------------------------------------------------------
def problem_approved(
    cfg: PortalConfig,
    *,
    problem: dict,
    event: dict,
    points: int,
    total_points: int,
    badges: list[str],
) -> NotificationPayload:
    """Directed notification to the reporter: approval + reward summary."""
    link = f"{cfg.frontend_url}/problems/{problem['id']}"

    def render(r: Recipient) -> EmailContent:
        details = {
            "Title": problem["title"],
            "Category": problem["category"],
            "Location": problem["location"]["address"],
        }
        rewards = {"Points earned": f"+{points}", "Total points": total_points}
        if badges:
            rewards["Badges"] = ", ".join(badges)
        html = _html(
            f"Congratulations {escape(r.name)}!",
            "#2563eb",
            [
                f"<p>Your problem report has been approved by the {escape(cfg.portal_name)} team.</p>",
                _box("Problem Details", details),
                _box("Rewards Earned", rewards, "#dbeafe"),
                _box(
                    "Event Created",
                    {"Event": event["title"], "Date": _date(event["start_date"])},
                    "#dcfce7",
                ),
                "<p>All students will be notified about the event.</p>",
            ],
            link,
            "View Problem Details",
        )
        text = _text(
            f"Congratulations {r.name}!",
            [
                f'Your problem report "{problem["title"]}" has been approved.',
                f"Points earned: +{points} (total {total_points}).",
                f'Event created: {event["title"]} on {_date(event["start_date"])}.',
                link,
            ],
        )
        return EmailContent("Your Problem Report Has Been Approved!", text, html)

    return NotificationPayload(
        type=PROBLEM_APPROVED,
        message=f'Your report "{problem["title"]}" was approved: +{points} points',
        data={
            "problemId": problem["id"],
            "eventId": event["id"],
            "pointsAwarded": points,
            "totalPoints": total_points,
            "badges": list(badges),
        },
        email=render,
    )


def problem_rejected(
    cfg: PortalConfig, *, problem: dict, feedback: str | None
) -> NotificationPayload:
    link = f"{cfg.frontend_url}/problems/report"

    def render(r: Recipient) -> EmailContent:
        paragraphs = [
            f"<p>Dear {escape(r.name)},</p>",
            "<p>Thank you for reporting the problem. After review, we are unable "
            "to proceed with this report at this time.</p>",
            _box("Problem Details", {"Title": problem["title"], "Category": problem["category"]}),
        ]
        if feedback:
            paragraphs.append(_box("Reviewer Feedback", {"Feedback": feedback}, "#fef2f2"))
        paragraphs.append(
            "<p>You can submit a new report with more details or contact the "
            "coordinator for clarification.</p>"
        )
        text_lines = [f'Your problem report "{problem["title"]}" was not approved.']
        if feedback:
            text_lines.append(f"Feedback: {feedback}")
        return EmailContent(
            f"Problem Report Update - {cfg.portal_name}",
            _text(f"Dear {r.name},", text_lines),
            _html("Problem Report Status Update", "#dc2626", paragraphs, link, "Report Another Problem"),
        )

    return NotificationPayload(
        type=PROBLEM_REJECTED,
        message=f'Your report "{problem["title"]}" was not approved',
        data={"problemId": problem["id"], "feedback": feedback},
        email=render,
    )


def new_event(
    cfg: PortalConfig, *, event: dict, problem: dict | None = None
) -> NotificationPayload:
    """Broadcast to every active student about a newly published event."""
    link = f"{cfg.frontend_url}/events/{event['id']}"

    def render(r: Recipient) -> EmailContent:
        paragraphs = [f"<p>Dear {escape(r.name)},</p>"]
        if problem is not None:
            paragraphs.append("<p>A community problem has been reported and needs your help!</p>")
            paragraphs.append(_box("Problem Details", {
                "Title": problem["title"],
                "Category": problem["category"],
                "Location": problem["location"]["address"],
                "Severity": str(problem["severity"]).upper(),
            }))
        paragraphs.append(_box("Event Details", {
            "Event": event["title"],
            "Type": event["event_type"],
            "Date": _date(event["start_date"]),
            "Location": event["location"],
            "Register by": _date(event["registration_deadline"]),
        }, "#dcfce7"))
        paragraphs.append("<p>Register now and be part of the solution!</p>")
        subject = (
            "New Community Problem - Help Needed!" if problem is not None
            else f"New {cfg.portal_name} Event: {event['title']}"
        )
        text = _text(f"Dear {r.name},", [
            f'A new event "{event["title"]}" is open for registration.',
            f'Date: {_date(event["start_date"])} at {event["location"]}.',
            f'Registration closes {_date(event["registration_deadline"])}.',
            link,
        ])
        return EmailContent(
            subject,
            text,
            _html("New Community Service Opportunity!", "#2563eb", paragraphs, link, "Register for Event"),
        )

    return NotificationPayload(
        type=NEW_EVENT,
        message=f"New event: {event['title']}",
        data={
            "eventId": event["id"],
            "eventTitle": event["title"],
            "eventType": event["event_type"],
            "location": event["location"],
            "startDate": event["start_date"],
        },
        email=render,
    )


# ---------------------------------------------------------------------------
# Participation workflow
# ---------------------------------------------------------------------------
def _event_rows(event: dict) -> dict[str, object]:
    return {
        "Type": event["event_type"],
        "Location": event["location"],
        "Start": _date(event["start_date"]),
        "End": _date(event["end_date"]),
    }


def registration_received(
    cfg: PortalConfig, *, event: dict, participation_id: int
) -> NotificationPayload:
    link = f"{cfg.frontend_url}/student/events"

    def render(r: Recipient) -> EmailContent:
        return EmailContent(
            f"Registration Received: {event['title']}",
            _text(f"Dear {r.name},", [
                f'Your registration for "{event["title"]}" is pending approval.',
                "You will be notified once it is approved.",
            ]),
            _html("Registration Received", "#0ea5e9", [
                f"<p>Dear {escape(r.name)},</p>",
                f"<p>Your registration for <strong>{escape(event['title'])}</strong> "
                "has been received and is pending approval.</p>",
                _box("Event Details", _event_rows(event)),
            ], link, "View My Events"),
        )

    return NotificationPayload(
        type=REGISTRATION_RECEIVED,
        message=f'Registration for "{event["title"]}" received',
        data={"participationId": participation_id, "eventId": event["id"], "eventTitle": event["title"]},
        email=render,
    )


def participation_approved(
    cfg: PortalConfig, *, event: dict, participation_id: int
) -> NotificationPayload:
    link = f"{cfg.frontend_url}/student/profile"

    def render(r: Recipient) -> EmailContent:
        return EmailContent(
            f"Registration Approved: {event['title']}",
            _text(f"Dear {r.name},", [
                f'Your registration for "{event["title"]}" has been approved!',
                "Please make sure to attend the event.",
            ]),
            _html("Registration Approved!", "#10b981", [
                f"<p>Dear {escape(r.name)},</p>",
                f"<p>Great news! Your registration for <strong>{escape(event['title'])}</strong> "
                "has been approved!</p>",
                _box("Event Details", _event_rows(event)),
                "<p>Please make sure to attend the event.</p>",
            ], link, "View My Profile"),
        )

    return NotificationPayload(
        type=PARTICIPATION_APPROVED,
        message=f'Your participation for "{event["title"]}" has been approved!',
        data={
            "participationId": participation_id,
            "eventId": event["id"],
            "eventTitle": event["title"],
            "status": "approved",
        },
        email=render,
    )


def attendance_marked(
    cfg: PortalConfig,
    *,
    event: dict,
    participation_id: int,
    hours: float,
    total_hours: float,
) -> NotificationPayload:
    link = f"{cfg.frontend_url}/student/profile"

    def render(r: Recipient) -> EmailContent:
        return EmailContent(
            f"Attendance Recorded: {event['title']}",
            _text(f"Dear {r.name},", [
                f'Your attendance at "{event["title"]}" has been recorded.',
                f"{hours:g} volunteer hours were added (total {total_hours:g}).",
            ]),
            _html("Attendance Recorded", "#10b981", [
                f"<p>Dear {escape(r.name)},</p>",
                f"<p>Your attendance at <strong>{escape(event['title'])}</strong> has been recorded.</p>",
                _box("Volunteer Hours", {"Added": f"{hours:g}", "Total": f"{total_hours:g}"}),
            ], link, "View My Profile"),
        )

    return NotificationPayload(
        type=ATTENDANCE_MARKED,
        message=f'Attendance recorded for "{event["title"]}": +{hours:g} hours',
        data={
            "participationId": participation_id,
            "eventId": event["id"],
            "eventTitle": event["title"],
            "volunteerHours": hours,
            "totalVolunteerHours": total_hours,
        },
        email=render,
    )


def event_reminder(cfg: PortalConfig, *, event: dict, days_before: int) -> NotificationPayload:
    link = f"{cfg.frontend_url}/events/{event['id']}"

    def render(r: Recipient) -> EmailContent:
        return EmailContent(
            f"Reminder: {event['title']} in {days_before} day(s)",
            _text(f"Dear {r.name},", [
                f'You are registered for "{event["title"]}", starting in {days_before} day(s).',
                f'Location: {event["location"]}.',
            ]),
            _html("Event Reminder", "#f59e0b", [
                f"<p>Dear {escape(r.name)},</p>",
                f"<p>This is a reminder that you are registered for <strong>{escape(event['title'])}</strong> "
                f"which starts in {days_before} day(s).</p>",
                _box("Event Details", _event_rows(event), "#fef3c7"),
            ], link, "View Event"),
        )

    return NotificationPayload(
        type=EVENT_REMINDER,
        message=f'Reminder: "{event["title"]}" starts in {days_before} day(s)',
        data={"eventId": event["id"], "eventTitle": event["title"], "startDate": event["start_date"]},
        email=render,
    )
