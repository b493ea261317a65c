"""ORM models for the LEAPS tables and read-only materialized views.

Tables are created by the alembic migrations in alembic/versions; the
materialized views are mapped as plain Table objects so analytics queries
can select from them like any other relation.
"""

from __future__ import annotations

import uuid
from datetime import datetime
from typing import Any

from sqlalchemy import (
    BigInteger,
    Column,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    MetaData,
    Numeric,
    String,
    Table,
    Text,
    UniqueConstraint,
    func,
    text,
)
from sqlalchemy.dialects.postgresql import JSON, JSONB
from sqlalchemy.orm import Mapped, mapped_column, relationship

from leaps.db.base import Base


def _uuid() -> str:
    return str(uuid.uuid4())


# ---------------------------------------------------------------------------
# Users
# ---------------------------------------------------------------------------


class User(Base):
    """Programme participant, reviewer or administrator."""

    __tablename__ = "users"

    id: Mapped[str] = mapped_column(String(64), primary_key=True, default=_uuid)
    handle: Mapped[str] = mapped_column(String(64), unique=True, nullable=False)
    name: Mapped[str] = mapped_column(String(256), nullable=False)
    email: Mapped[str] = mapped_column(String(320), unique=True, nullable=False)
    avatar_url: Mapped[str | None] = mapped_column(Text, nullable=True)
    role: Mapped[str] = mapped_column(String(16), nullable=False, server_default="PARTICIPANT")
    user_type: Mapped[str] = mapped_column(String(16), nullable=False, server_default="EDUCATOR")
    school: Mapped[str | None] = mapped_column(String(256), nullable=True)
    cohort: Mapped[str | None] = mapped_column(String(200), nullable=True)
    external_contact_id: Mapped[str | None] = mapped_column(String(128), nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, server_default=func.now()
    )

    submissions: Mapped[list[Submission]] = relationship(
        "Submission", back_populates="user", foreign_keys="Submission.user_id"
    )
    earned_badges: Mapped[list[EarnedBadge]] = relationship("EarnedBadge", back_populates="user")


# ---------------------------------------------------------------------------
# Activity catalog
# ---------------------------------------------------------------------------


class Activity(Base):
    """The five LEAPS stages, seeded on startup."""

    __tablename__ = "activities"

    code: Mapped[str] = mapped_column(String(16), primary_key=True)
    name: Mapped[str] = mapped_column(String(64), nullable=False)
    default_points: Mapped[int] = mapped_column(Integer, nullable=False)


# ---------------------------------------------------------------------------
# Submissions
# ---------------------------------------------------------------------------


class Submission(Base):
    """Evidence submitted for one stage. Only a reviewer moves it out of PENDING."""

    __tablename__ = "submissions"
    __table_args__ = (
        Index("idx_submissions_activity_status", "activity_code", "status"),
        Index("idx_submissions_user", "user_id"),
        Index("idx_submissions_created", "created_at"),
    )

    id: Mapped[str] = mapped_column(String(64), primary_key=True, default=_uuid)
    user_id: Mapped[str] = mapped_column(
        String(64), ForeignKey("users.id", ondelete="CASCADE"), nullable=False
    )
    activity_code: Mapped[str] = mapped_column(
        String(16), ForeignKey("activities.code"), nullable=False
    )
    status: Mapped[str] = mapped_column(String(16), nullable=False, server_default="PENDING")
    visibility: Mapped[str] = mapped_column(String(16), nullable=False, server_default="PRIVATE")
    # JSON (not JSONB) keeps the submitted text, key order included
    payload: Mapped[dict[str, Any]] = mapped_column(JSON, nullable=False)
    reviewer_id: Mapped[str | None] = mapped_column(
        String(64), ForeignKey("users.id", ondelete="SET NULL"), nullable=True
    )
    review_note: Mapped[str | None] = mapped_column(Text, nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, server_default=func.now()
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, server_default=func.now()
    )

    user: Mapped[User] = relationship("User", back_populates="submissions", foreign_keys=[user_id])
    reviewer: Mapped[User | None] = relationship("User", foreign_keys=[reviewer_id])
    activity: Mapped[Activity] = relationship("Activity", lazy="joined")
    attachments: Mapped[list[SubmissionAttachment]] = relationship(
        "SubmissionAttachment", back_populates="submission", cascade="all, delete-orphan"
    )


class SubmissionAttachment(Base):
    """Evidence file owned by a submission. UNIQUE(submission_id, hash)."""

    __tablename__ = "submission_attachments"
    __table_args__ = (
        UniqueConstraint("submission_id", "hash", name="submission_attachments_submission_hash_key"),
    )

    id: Mapped[str] = mapped_column(String(64), primary_key=True, default=_uuid)
    submission_id: Mapped[str] = mapped_column(
        String(64), ForeignKey("submissions.id", ondelete="CASCADE"), nullable=False
    )
    path: Mapped[str] = mapped_column(Text, nullable=False)
    hash: Mapped[str] = mapped_column(String(128), nullable=False)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, server_default=func.now()
    )

    submission: Mapped[Submission] = relationship("Submission", back_populates="attachments")


# ---------------------------------------------------------------------------
# Points ledger
# ---------------------------------------------------------------------------


class PointsLedger(Base):
    """Append-only point deltas. A user's balance is SUM(delta_points)."""

    __tablename__ = "points_ledger"
    __table_args__ = (
        Index(
            "points_ledger_user_external_event_key",
            "user_id",
            "external_event_id",
            unique=True,
            postgresql_where=text("external_event_id IS NOT NULL"),
        ),
        Index("idx_points_ledger_user", "user_id"),
        Index("idx_points_ledger_activity", "activity_code"),
        Index("idx_points_ledger_created", "created_at"),
    )

    id: Mapped[str] = mapped_column(String(64), primary_key=True, default=_uuid)
    user_id: Mapped[str] = mapped_column(
        String(64), ForeignKey("users.id", ondelete="CASCADE"), nullable=False
    )
    activity_code: Mapped[str] = mapped_column(
        String(16), ForeignKey("activities.code"), nullable=False
    )
    source: Mapped[str] = mapped_column(String(16), nullable=False)
    delta_points: Mapped[int] = mapped_column(Integer, nullable=False)
    external_source: Mapped[str | None] = mapped_column(String(64), nullable=True)
    external_event_id: Mapped[str | None] = mapped_column(String(256), nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, server_default=func.now()
    )


# ---------------------------------------------------------------------------
# Badges
# ---------------------------------------------------------------------------


class Badge(Base):
    """Static badge catalog with JSON award criteria."""

    __tablename__ = "badges"

    code: Mapped[str] = mapped_column(String(64), primary_key=True)
    name: Mapped[str] = mapped_column(String(128), nullable=False)
    description: Mapped[str] = mapped_column(Text, nullable=False)
    criteria: Mapped[dict[str, Any]] = mapped_column(JSONB, nullable=False, server_default="{}")
    icon_url: Mapped[str | None] = mapped_column(Text, nullable=True)


class EarnedBadge(Base):
    """Badges earned by users. UNIQUE(user_id, badge_code) prevents duplicates."""

    __tablename__ = "earned_badges"
    __table_args__ = (
        UniqueConstraint("user_id", "badge_code", name="earned_badges_user_badge_key"),
    )

    id: Mapped[int] = mapped_column(BigInteger, primary_key=True, autoincrement=True)
    user_id: Mapped[str] = mapped_column(
        String(64), ForeignKey("users.id", ondelete="CASCADE"), nullable=False
    )
    badge_code: Mapped[str] = mapped_column(
        String(64), ForeignKey("badges.code", ondelete="CASCADE"), nullable=False
    )
    earned_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, server_default=func.now()
    )

    user: Mapped[User] = relationship("User", back_populates="earned_badges")
    badge: Mapped[Badge] = relationship("Badge", lazy="joined")


# ---------------------------------------------------------------------------
# Materialized views (read-only)
# ---------------------------------------------------------------------------

# Kept out of Base.metadata so create_all() never tries to create them as tables.
views_metadata = MetaData()


def _leaderboard_view(name: str) -> Table:
    return Table(
        name,
        views_metadata,
        Column("user_id", String(64), primary_key=True),
        Column("handle", String(64)),
        Column("name", String(256)),
        Column("avatar_url", Text),
        Column("school", String(256)),
        Column("cohort", String(200)),
        Column("total_points", BigInteger),
        Column("public_submissions", BigInteger),
        Column("last_activity_at", DateTime(timezone=True)),
    )


leaderboard_totals = _leaderboard_view("leaderboard_totals")
leaderboard_30d = _leaderboard_view("leaderboard_30d")

activity_metrics = Table(
    "activity_metrics",
    views_metadata,
    Column("code", String(16), primary_key=True),
    Column("name", String(64)),
    Column("total_submissions", BigInteger),
    Column("pending_submissions", BigInteger),
    Column("approved_submissions", BigInteger),
    Column("rejected_submissions", BigInteger),
    Column("public_submissions", BigInteger),
    Column("total_points_awarded", BigInteger),
    Column("avg_points_per_submission", Numeric),
)

MATERIALIZED_VIEWS: tuple[str, ...] = ("leaderboard_totals", "leaderboard_30d", "activity_metrics")
