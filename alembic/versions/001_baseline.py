"""Baseline: users, issues and votes.

Revision ID: 001_baseline
Revises: None
Create Date: 2026-10-18
"""

from collections.abc import Sequence

from alembic import op

revision: str = "001_baseline"
down_revision: str | None = None
branch_labels: str | Sequence[str] | None = None
depends_on: str | Sequence[str] | None = None


def upgrade() -> None:
    # --- Users ---
    op.execute("""
        CREATE TABLE IF NOT EXISTS users (
            id SERIAL PRIMARY KEY,
            auth_subject VARCHAR(128) UNIQUE NOT NULL,
            name VARCHAR(100) NOT NULL,
            email VARCHAR(320),
            points INTEGER NOT NULL DEFAULT 0 CHECK (points >= 0),
            badges JSON NOT NULL DEFAULT '[]',
            created_at TIMESTAMPTZ NOT NULL DEFAULT NOW()
        )
    """)
    op.execute("CREATE INDEX IF NOT EXISTS idx_users_points ON users(points)")

    # --- Issues ---
    op.execute("""
        CREATE TABLE IF NOT EXISTS issues (
            id SERIAL PRIMARY KEY,
            title VARCHAR(100) NOT NULL,
            description TEXT NOT NULL,
            category VARCHAR(32) NOT NULL
                CHECK (category IN ('Road', 'Water', 'Sanitation', 'Electricity', 'Other')),
            location VARCHAR(100) NOT NULL,
            image_url TEXT,
            status VARCHAR(16) NOT NULL DEFAULT 'Pending'
                CHECK (status IN ('Pending', 'In Progress', 'Resolved')),
            created_by INTEGER NOT NULL REFERENCES users(id) ON DELETE CASCADE,
            latitude DOUBLE PRECISION,
            longitude DOUBLE PRECISION,
            created_at TIMESTAMPTZ NOT NULL DEFAULT NOW(),
            updated_at TIMESTAMPTZ NOT NULL DEFAULT NOW()
        )
    """)
    op.execute("CREATE INDEX IF NOT EXISTS idx_issues_created_by ON issues(created_by)")
    op.execute("CREATE INDEX IF NOT EXISTS idx_issues_created_at ON issues(created_at)")

    # --- Votes (one per user per issue) ---
    op.execute("""
        CREATE TABLE IF NOT EXISTS votes (
            id SERIAL PRIMARY KEY,
            issue_id INTEGER NOT NULL REFERENCES issues(id) ON DELETE CASCADE,
            user_id INTEGER NOT NULL REFERENCES users(id) ON DELETE CASCADE,
            created_at TIMESTAMPTZ NOT NULL DEFAULT NOW(),
            CONSTRAINT votes_issue_id_user_id_key UNIQUE (issue_id, user_id)
        )
    """)
    op.execute("CREATE INDEX IF NOT EXISTS idx_votes_user ON votes(user_id)")


def downgrade() -> None:
    op.execute("DROP TABLE IF EXISTS votes")
    op.execute("DROP TABLE IF EXISTS issues")
    op.execute("DROP TABLE IF EXISTS users")
