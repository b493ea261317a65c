"""Analytics materialized views.

leaderboard_totals and leaderboard_30d hold per-educator point totals
(all time and trailing 30 days); activity_metrics holds per-stage
submission counts and points awarded. Each view has a unique index so it
can be refreshed CONCURRENTLY.

Ledger sums and public submission counts are aggregated separately and
joined afterwards; joining the raw tables first would multiply each
ledger row by the number of submissions.

Revision ID: 002_analytics_views
Revises: 001_core_tables
Create Date: 2026-09-02
"""

from collections.abc import Sequence

from alembic import op

revision: str = "002_analytics_views"
down_revision: str | None = "001_core_tables"
branch_labels: str | Sequence[str] | None = None
depends_on: str | Sequence[str] | None = None


def _leaderboard_sql(name: str, window: str) -> str:
    ledger_where = f"WHERE created_at >= NOW() - INTERVAL '{window}'" if window else ""
    public_window = f"AND created_at >= NOW() - INTERVAL '{window}'" if window else ""
    return f"""
        CREATE MATERIALIZED VIEW IF NOT EXISTS {name} AS
        WITH ledger_sums AS (
            SELECT user_id,
                   SUM(delta_points)::BIGINT AS total_points,
                   MAX(created_at) AS last_points_at
            FROM points_ledger
            {ledger_where}
            GROUP BY user_id
        ),
        public_counts AS (
            SELECT user_id,
                   COUNT(*)::BIGINT AS public_submissions,
                   MAX(updated_at) AS last_submission_at
            FROM submissions
            WHERE status = 'APPROVED' AND visibility = 'PUBLIC' {public_window}
            GROUP BY user_id
        )
        SELECT u.id AS user_id,
               u.handle,
               u.name,
               u.avatar_url,
               u.school,
               u.cohort,
               l.total_points,
               COALESCE(p.public_submissions, 0) AS public_submissions,
               GREATEST(l.last_points_at, p.last_submission_at) AS last_activity_at
        FROM users u
        JOIN ledger_sums l ON l.user_id = u.id
        LEFT JOIN public_counts p ON p.user_id = u.id
        WHERE u.role = 'PARTICIPANT'
          AND u.user_type = 'EDUCATOR'
          AND l.total_points > 0
    """


def upgrade() -> None:
    # --- Leaderboards ---
    op.execute(_leaderboard_sql("leaderboard_totals", ""))
    op.execute("CREATE UNIQUE INDEX IF NOT EXISTS leaderboard_totals_user_id_key ON leaderboard_totals(user_id)")
    op.execute("""
        CREATE INDEX IF NOT EXISTS idx_leaderboard_totals_rank
        ON leaderboard_totals(total_points DESC, last_activity_at DESC)
    """)
    op.execute("CREATE INDEX IF NOT EXISTS idx_leaderboard_totals_cohort ON leaderboard_totals(cohort)")

    op.execute(_leaderboard_sql("leaderboard_30d", "30 days"))
    op.execute("CREATE UNIQUE INDEX IF NOT EXISTS leaderboard_30d_user_id_key ON leaderboard_30d(user_id)")
    op.execute("""
        CREATE INDEX IF NOT EXISTS idx_leaderboard_30d_rank
        ON leaderboard_30d(total_points DESC, last_activity_at DESC)
    """)
    op.execute("CREATE INDEX IF NOT EXISTS idx_leaderboard_30d_cohort ON leaderboard_30d(cohort)")

    # --- Per-stage metrics ---
    op.execute("""
        CREATE MATERIALIZED VIEW IF NOT EXISTS activity_metrics AS
        WITH submission_counts AS (
            SELECT activity_code,
                   COUNT(*) AS total_submissions,
                   COUNT(*) FILTER (WHERE status = 'PENDING') AS pending_submissions,
                   COUNT(*) FILTER (WHERE status = 'APPROVED') AS approved_submissions,
                   COUNT(*) FILTER (WHERE status = 'REJECTED') AS rejected_submissions,
                   COUNT(*) FILTER (WHERE status = 'APPROVED' AND visibility = 'PUBLIC') AS public_submissions
            FROM submissions
            GROUP BY activity_code
        ),
        points_sums AS (
            SELECT activity_code, SUM(delta_points) AS total_points_awarded
            FROM points_ledger
            GROUP BY activity_code
        )
        SELECT a.code,
               a.name,
               COALESCE(s.total_submissions, 0) AS total_submissions,
               COALESCE(s.pending_submissions, 0) AS pending_submissions,
               COALESCE(s.approved_submissions, 0) AS approved_submissions,
               COALESCE(s.rejected_submissions, 0) AS rejected_submissions,
               COALESCE(s.public_submissions, 0) AS public_submissions,
               COALESCE(p.total_points_awarded, 0) AS total_points_awarded,
               COALESCE(
                   COALESCE(p.total_points_awarded, 0)::NUMERIC / NULLIF(s.approved_submissions, 0),
                   0
               ) AS avg_points_per_submission
        FROM activities a
        LEFT JOIN submission_counts s ON s.activity_code = a.code
        LEFT JOIN points_sums p ON p.activity_code = a.code
    """)
    op.execute("CREATE UNIQUE INDEX IF NOT EXISTS activity_metrics_code_key ON activity_metrics(code)")


def downgrade() -> None:
    for view in ["activity_metrics", "leaderboard_30d", "leaderboard_totals"]:
        op.execute(f"DROP MATERIALIZED VIEW IF EXISTS {view}")
