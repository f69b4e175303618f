"""
nssportal.database.models — SQLAlchemy 2.0 Data Models
=======================================================

Tables:
- users           — Portal accounts with reward counters
- user_badges     — Earned badges (one row per user+badge, never deleted)
- problems        — Reported campus problems and their review state
- events          — Service events (organizer-created or problem-derived)
- participations  — Student registrations for events
- notifications   — Durable per-recipient inbox
"""

from __future__ import annotations

import enum
from datetime import datetime

from sqlalchemy import (
    Boolean,
    DateTime,
    Float,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    UniqueConstraint,
    func,
)
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column, relationship


# ---------------------------------------------------------------------------
# Base
# ---------------------------------------------------------------------------
class Base(DeclarativeBase):
    """Shared base for all portal ORM models."""


# ---------------------------------------------------------------------------
# Enums
# ---------------------------------------------------------------------------
class Role(enum.StrEnum):
    ADMIN = "admin"
    FACULTY = "faculty"
    STUDENT = "student"


ELEVATED_ROLES: frozenset[str] = frozenset({Role.ADMIN, Role.FACULTY})


class ProblemStatus(enum.StrEnum):
    """Lifecycle of a reported problem."""
    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"
    RESOLVED = "resolved"


class Visibility(enum.StrEnum):
    PRIVATE = "private"
    PUBLIC = "public"


class Severity(enum.StrEnum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"


class ProblemCategory(enum.StrEnum):
    CLEANLINESS = "cleanliness"
    INFRASTRUCTURE = "infrastructure"
    HEALTH = "health"
    EDUCATION = "education"
    ENVIRONMENT = "environment"
    SAFETY = "safety"
    WATER = "water"
    ELECTRICITY = "electricity"
    ROADS = "roads"
    OTHER = "other"


class EventType(enum.StrEnum):
    TREE_PLANTATION = "tree plantation"
    BLOOD_DONATION = "blood donation"
    CLEANLINESS_DRIVE = "cleanliness drive"
    AWARENESS_CAMPAIGN = "awareness campaign"
    HEALTH_CAMP = "health camp"
    OTHER = "other"


class EventStatus(enum.StrEnum):
    DRAFT = "draft"
    PUBLISHED = "published"
    ONGOING = "ongoing"
    COMPLETED = "completed"
    CANCELLED = "cancelled"


class ParticipationStatus(enum.StrEnum):
    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"
    ATTENDED = "attended"
    COMPLETED = "completed"


# ---------------------------------------------------------------------------
# Users
# ---------------------------------------------------------------------------
class User(Base):
    __tablename__ = "users"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    name: Mapped[str] = mapped_column(String(100), nullable=False)
    email: Mapped[str | None] = mapped_column(String(255), unique=True, default=None)
    role: Mapped[str] = mapped_column(String(20), nullable=False, default=Role.STUDENT.value)
    student_id: Mapped[str | None] = mapped_column(String(50), default=None)
    department: Mapped[str | None] = mapped_column(String(100), default=None)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True)

    # Reward counters, only ever increased by the workflows
    problems_reported: Mapped[int] = mapped_column(Integer, default=0)
    problems_approved: Mapped[int] = mapped_column(Integer, default=0)
    reward_points: Mapped[int] = mapped_column(Integer, default=0)
    reporting_score: Mapped[int] = mapped_column(Integer, default=0)
    total_volunteer_hours: Mapped[float] = mapped_column(Float, default=0.0)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now()
    )

    badges: Mapped[list[UserBadge]] = relationship(
        back_populates="user", cascade="all, delete-orphan"
    )

    __table_args__ = (
        Index("ix_users_reporting_score", "reporting_score"),
        Index("ix_users_role_active", "role", "is_active"),
    )

    def __repr__(self) -> str:
        return f"<User id={self.id} name={self.name!r} role={self.role}>"


class UserBadge(Base):
    __tablename__ = "user_badges"

    user_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("users.id", ondelete="CASCADE"), primary_key=True
    )
    badge: Mapped[str] = mapped_column(String(50), primary_key=True)
    earned_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now()
    )

    user: Mapped[User] = relationship(back_populates="badges")

    def __repr__(self) -> str:
        return f"<UserBadge user={self.user_id} badge={self.badge!r}>"


# ---------------------------------------------------------------------------
# Problems
# ---------------------------------------------------------------------------
class Problem(Base):
    __tablename__ = "problems"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    title: Mapped[str] = mapped_column(String(200), nullable=False)
    description: Mapped[str] = mapped_column(Text, nullable=False)
    category: Mapped[str] = mapped_column(String(30), nullable=False)
    location_address: Mapped[str] = mapped_column(String(500), nullable=False)
    latitude: Mapped[float | None] = mapped_column(Float, default=None)
    longitude: Mapped[float | None] = mapped_column(Float, default=None)
    images: Mapped[list | None] = mapped_column(JSONB, default=list)
    severity: Mapped[str] = mapped_column(String(10), nullable=False, default=Severity.MEDIUM.value)
    status: Mapped[str] = mapped_column(
        String(10), nullable=False, default=ProblemStatus.PENDING.value
    )
    visibility: Mapped[str] = mapped_column(
        String(10), nullable=False, default=Visibility.PRIVATE.value
    )

    reported_by: Mapped[int] = mapped_column(
        Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False
    )
    reviewed_by: Mapped[int | None] = mapped_column(
        Integer, ForeignKey("users.id", ondelete="SET NULL"), default=None
    )
    reviewed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), default=None)
    event_id: Mapped[int | None] = mapped_column(
        Integer, ForeignKey("events.id", ondelete="SET NULL"), default=None
    )
    admin_feedback: Mapped[str | None] = mapped_column(Text, default=None)
    points_awarded: Mapped[int | None] = mapped_column(Integer, default=None)
    view_count: Mapped[int] = mapped_column(Integer, default=0)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now()
    )
    resolved_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), default=None)

    __table_args__ = (
        Index("ix_problems_reporter_status", "reported_by", "status"),
        Index("ix_problems_status_visibility", "status", "visibility"),
        Index("ix_problems_created_at", "created_at"),
    )

    def __repr__(self) -> str:
        return f"<Problem id={self.id} title={self.title!r} status={self.status}>"


# ---------------------------------------------------------------------------
# Events
# ---------------------------------------------------------------------------
class Event(Base):
    __tablename__ = "events"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    title: Mapped[str] = mapped_column(String(300), nullable=False)
    description: Mapped[str] = mapped_column(Text, nullable=False)
    event_type: Mapped[str] = mapped_column(String(30), nullable=False)
    location: Mapped[str] = mapped_column(String(500), nullable=False)
    start_date: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    end_date: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    registration_deadline: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False
    )
    max_participants: Mapped[int | None] = mapped_column(Integer, default=None)
    current_participants: Mapped[int] = mapped_column(Integer, default=0)
    organizer_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False
    )
    status: Mapped[str] = mapped_column(String(12), nullable=False, default=EventStatus.DRAFT.value)
    images: Mapped[list | None] = mapped_column(JSONB, default=list)

    # Problem-derived events
    is_problem_resolution: Mapped[bool] = mapped_column(Boolean, default=False)
    related_problem_id: Mapped[int | None] = mapped_column(
        Integer, ForeignKey("problems.id", ondelete="SET NULL", use_alter=True),
        unique=True, default=None,
    )

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now()
    )

    __table_args__ = (
        Index("ix_events_status_start", "status", "start_date"),
    )

    def __repr__(self) -> str:
        return f"<Event id={self.id} title={self.title!r} status={self.status}>"


# ---------------------------------------------------------------------------
# Participations
# ---------------------------------------------------------------------------
class Participation(Base):
    __tablename__ = "participations"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    student_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False
    )
    event_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("events.id", ondelete="CASCADE"), nullable=False
    )
    status: Mapped[str] = mapped_column(
        String(10), nullable=False, default=ParticipationStatus.PENDING.value
    )
    registered_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now()
    )
    approved_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), default=None)
    approved_by: Mapped[int | None] = mapped_column(
        Integer, ForeignKey("users.id", ondelete="SET NULL"), default=None
    )
    attendance: Mapped[bool] = mapped_column(Boolean, default=False)
    attendance_date: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), default=None)
    volunteer_hours: Mapped[float] = mapped_column(Float, default=0.0)

    __table_args__ = (
        UniqueConstraint("student_id", "event_id", name="uq_participations_student_event"),
        Index("ix_participations_event_status", "event_id", "status"),
    )

    def __repr__(self) -> str:
        return (
            f"<Participation id={self.id} student={self.student_id} "
            f"event={self.event_id} status={self.status}>"
        )


# ---------------------------------------------------------------------------
# Notifications (durable inbox)
# ---------------------------------------------------------------------------
class Notification(Base):
    __tablename__ = "notifications"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    user_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False
    )
    type: Mapped[str] = mapped_column(String(50), nullable=False)
    message: Mapped[str] = mapped_column(Text, nullable=False)
    data: Mapped[dict | None] = mapped_column(JSONB, nullable=True)
    read: Mapped[bool] = mapped_column(Boolean, default=False)
    read_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), default=None)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now()
    )

    __table_args__ = (
        Index("ix_notifications_user_read", "user_id", "read"),
        Index("ix_notifications_user_created", "user_id", "created_at"),
    )

    def __repr__(self) -> str:
        return f"<Notification id={self.id} user={self.user_id} type={self.type!r}>"
