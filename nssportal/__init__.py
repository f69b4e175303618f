"""
nssportal — Campus Volunteering Portal Workflow Core
=====================================================
Students report campus problems, administrators triage them into service
events, students register and participate, and participation is rewarded
with points, badges and volunteer hours.  Every state change fans out
notifications over email, live WebSocket push and a durable inbox.

Package layout::

    nssportal/
    ├── config.py          # YAML → typed Python config
    ├── clock.py           # Injectable UTC clock + calendar helpers
    ├── errors.py          # Workflow error taxonomy
    ├── database/
    │   ├── engine.py      # SQLAlchemy engine + async helper
    │   └── models.py      # ORM models (users, problems, events, …)
    ├── engine/
    │   ├── scoring.py     # Point awards + ScoreDelta (pure)
    │   ├── badges.py      # Badge thresholds (pure)
    │   ├── derivation.py  # Problem → event derivation rules (pure)
    │   └── attendance.py  # Volunteer hour accrual (pure)
    ├── services/
    │   ├── problem_workflow.py        # submit / approve / reject / resolve
    │   ├── participation_workflow.py  # register / approve / attendance
    │   ├── notification_fanout.py     # email + live + inbox fan-out
    │   ├── mailer.py                  # Brevo transactional email
    │   ├── live_channel.py            # WebSocket hub
    │   ├── messages.py                # Notification content builders
    │   ├── dispatcher.py              # Background fan-out tasks
    │   ├── state_guard.py             # Conditional status transitions
    │   ├── inbox_service.py           # Inbox reads / read-state
    │   ├── problem_queries.py         # Visibility-filtered reads
    │   ├── views.py                   # Detached dict views of rows
    │   ├── recipients.py              # Recipient snapshots / audiences
    │   └── reminder_service.py        # Upcoming-event reminders
    └── api/
        ├── main.py        # FastAPI app
        ├── deps.py        # JWT auth + portal wiring
        └── routes/        # Problems, participations, notifications, ws
"""

__version__ = "0.1.0"
