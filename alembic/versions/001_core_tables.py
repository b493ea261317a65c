"""Core LEAPS tables.

Creates users, activities, submissions, submission_attachments,
points_ledger, badges and earned_badges.

Revision ID: 001_core_tables
Revises: None
Create Date: 2026-09-02
"""

from collections.abc import Sequence

from alembic import op

revision: str = "001_core_tables"
down_revision: str | None = None
branch_labels: str | Sequence[str] | None = None
depends_on: str | Sequence[str] | None = None


def upgrade() -> None:
    # --- Users ---
    op.execute("""
        CREATE TABLE IF NOT EXISTS users (
            id VARCHAR(64) PRIMARY KEY,
            handle VARCHAR(64) UNIQUE NOT NULL,
            name VARCHAR(256) NOT NULL,
            email VARCHAR(320) UNIQUE NOT NULL,
            avatar_url TEXT,
            role VARCHAR(16) NOT NULL DEFAULT 'PARTICIPANT'
                CHECK (role IN ('PARTICIPANT', 'REVIEWER', 'ADMIN', 'SUPERADMIN')),
            user_type VARCHAR(16) NOT NULL DEFAULT 'EDUCATOR'
                CHECK (user_type IN ('EDUCATOR', 'STUDENT')),
            school VARCHAR(256),
            cohort VARCHAR(200),
            external_contact_id VARCHAR(128),
            created_at TIMESTAMPTZ NOT NULL DEFAULT NOW()
        )
    """)
    op.execute("CREATE INDEX IF NOT EXISTS idx_users_cohort ON users(cohort)")
    op.execute("CREATE INDEX IF NOT EXISTS idx_users_role ON users(role)")

    # --- Activities ---
    op.execute("""
        CREATE TABLE IF NOT EXISTS activities (
            code VARCHAR(16) PRIMARY KEY,
            name VARCHAR(64) NOT NULL,
            default_points INTEGER NOT NULL
        )
    """)

    # --- Submissions (payload is JSON, not JSONB, so it reads back as written) ---
    op.execute("""
        CREATE TABLE IF NOT EXISTS submissions (
            id VARCHAR(64) PRIMARY KEY,
            user_id VARCHAR(64) NOT NULL REFERENCES users(id) ON DELETE CASCADE,
            activity_code VARCHAR(16) NOT NULL REFERENCES activities(code),
            status VARCHAR(16) NOT NULL DEFAULT 'PENDING'
                CHECK (status IN ('PENDING', 'APPROVED', 'REJECTED')),
            visibility VARCHAR(16) NOT NULL DEFAULT 'PRIVATE'
                CHECK (visibility IN ('PUBLIC', 'PRIVATE')),
            payload JSON NOT NULL,
            reviewer_id VARCHAR(64) REFERENCES users(id) ON DELETE SET NULL,
            review_note TEXT,
            created_at TIMESTAMPTZ NOT NULL DEFAULT NOW(),
            updated_at TIMESTAMPTZ NOT NULL DEFAULT NOW()
        )
    """)
    op.execute("""
        CREATE INDEX IF NOT EXISTS idx_submissions_activity_status
        ON submissions(activity_code, status)
    """)
    op.execute("CREATE INDEX IF NOT EXISTS idx_submissions_user ON submissions(user_id)")
    op.execute("CREATE INDEX IF NOT EXISTS idx_submissions_created ON submissions(created_at)")

    # --- Submission attachments ---
    op.execute("""
        CREATE TABLE IF NOT EXISTS submission_attachments (
            id VARCHAR(64) PRIMARY KEY,
            submission_id VARCHAR(64) NOT NULL REFERENCES submissions(id) ON DELETE CASCADE,
            path TEXT NOT NULL,
            hash VARCHAR(128) NOT NULL,
            created_at TIMESTAMPTZ NOT NULL DEFAULT NOW(),
            CONSTRAINT submission_attachments_submission_hash_key UNIQUE (submission_id, hash)
        )
    """)

    # --- Points ledger (append-only) ---
    op.execute("""
        CREATE TABLE IF NOT EXISTS points_ledger (
            id VARCHAR(64) PRIMARY KEY,
            user_id VARCHAR(64) NOT NULL REFERENCES users(id) ON DELETE CASCADE,
            activity_code VARCHAR(16) NOT NULL REFERENCES activities(code),
            source VARCHAR(16) NOT NULL CHECK (source IN ('FORM', 'WEBHOOK', 'MANUAL')),
            delta_points INTEGER NOT NULL,
            external_source VARCHAR(64),
            external_event_id VARCHAR(256),
            created_at TIMESTAMPTZ NOT NULL DEFAULT NOW()
        )
    """)
    op.execute("""
        CREATE UNIQUE INDEX IF NOT EXISTS points_ledger_user_external_event_key
        ON points_ledger(user_id, external_event_id)
        WHERE external_event_id IS NOT NULL
    """)
    op.execute("CREATE INDEX IF NOT EXISTS idx_points_ledger_user ON points_ledger(user_id)")
    op.execute("CREATE INDEX IF NOT EXISTS idx_points_ledger_activity ON points_ledger(activity_code)")
    op.execute("CREATE INDEX IF NOT EXISTS idx_points_ledger_created ON points_ledger(created_at)")

    # --- Badges ---
    op.execute("""
        CREATE TABLE IF NOT EXISTS badges (
            code VARCHAR(64) PRIMARY KEY,
            name VARCHAR(128) NOT NULL,
            description TEXT NOT NULL,
            criteria JSONB NOT NULL DEFAULT '{}',
            icon_url TEXT
        )
    """)
    op.execute("""
        CREATE TABLE IF NOT EXISTS earned_badges (
            id BIGSERIAL PRIMARY KEY,
            user_id VARCHAR(64) NOT NULL REFERENCES users(id) ON DELETE CASCADE,
            badge_code VARCHAR(64) NOT NULL REFERENCES badges(code) ON DELETE CASCADE,
            earned_at TIMESTAMPTZ NOT NULL DEFAULT NOW(),
            CONSTRAINT earned_badges_user_badge_key UNIQUE (user_id, badge_code)
        )
    """)
    op.execute("CREATE INDEX IF NOT EXISTS idx_earned_badges_code ON earned_badges(badge_code)")


def downgrade() -> None:
    for table in [
        "earned_badges",
        "badges",
        "points_ledger",
        "submission_attachments",
        "submissions",
        "activities",
        "users",
    ]:
        op.execute(f"DROP TABLE IF EXISTS {table} CASCADE")
