"""001 – Leave engine schema: staff, categories, requests, audit trail.

Revision ID: 001_leave_engine_schema
Revises:
Create Date: 2026-10-19 09:00:00.000000+00:00
"""

from alembic import op

# Revision identifiers
revision = "001_leave_engine_schema"
down_revision = None
branch_labels = None
depends_on = None


# ---------------------------------------------------------------------------
# UPGRADE
# ---------------------------------------------------------------------------


def upgrade() -> None:
    # ── Extensions ────────────────────────────────────────────────────────
    # btree_gist lets the exclusion constraint mix "=" on an integer with
    # "&&" on a daterange.
    op.execute("CREATE EXTENSION IF NOT EXISTS btree_gist")

    # ── 1. staff_members ──────────────────────────────────────────────────
    op.execute("""
        CREATE TABLE staff_members (
            id          SERIAL PRIMARY KEY,
            user_id     INTEGER UNIQUE,
            full_name   VARCHAR(200) NOT NULL,
            email       VARCHAR(255),
            is_active   BOOLEAN NOT NULL DEFAULT TRUE,
            created_at  TIMESTAMPTZ DEFAULT NOW(),
            updated_at  TIMESTAMPTZ DEFAULT NOW()
        )
    """)

    # ── 2. time_off_categories ────────────────────────────────────────────
    op.execute("""
        CREATE TABLE time_off_categories (
            id            SERIAL PRIMARY KEY,
            title         VARCHAR(100) NOT NULL UNIQUE,
            annual_quota  INTEGER NOT NULL DEFAULT 0,
            notes         TEXT,
            is_paid       BOOLEAN NOT NULL DEFAULT TRUE,
            is_active     BOOLEAN NOT NULL DEFAULT TRUE,
            author_id     INTEGER,
            created_at    TIMESTAMPTZ DEFAULT NOW(),
            updated_at    TIMESTAMPTZ DEFAULT NOW(),
            CONSTRAINT ck_time_off_category_quota CHECK (annual_quota >= 0)
        )
    """)

    # ── 3. time_off_requests ──────────────────────────────────────────────
    op.execute("""
        CREATE TABLE time_off_requests (
            id                   SERIAL PRIMARY KEY,
            staff_member_id      INTEGER NOT NULL REFERENCES staff_members(id),
            time_off_category_id INTEGER NOT NULL REFERENCES time_off_categories(id),
            request_date         DATE NOT NULL,
            start_date           DATE NOT NULL,
            end_date             DATE NOT NULL,
            total_days           INTEGER NOT NULL,
            reason               TEXT,
            approval_status      VARCHAR(20) NOT NULL DEFAULT 'pending',
            approver_id          INTEGER,
            approval_remarks     TEXT,
            decided_at           TIMESTAMPTZ,
            cancelled_by         INTEGER,
            cancelled_at         TIMESTAMPTZ,
            author_id            INTEGER,
            created_at           TIMESTAMPTZ DEFAULT NOW(),
            updated_at           TIMESTAMPTZ DEFAULT NOW(),
            CONSTRAINT ck_time_off_request_range CHECK (end_date >= start_date),
            CONSTRAINT ck_time_off_request_status CHECK (
                approval_status IN ('pending', 'approved', 'declined', 'cancelled')
            ),
            CONSTRAINT ex_time_off_requests_live_overlap EXCLUDE USING gist (
                staff_member_id WITH =,
                daterange(start_date, end_date, '[]') WITH &&
            ) WHERE (approval_status IN ('pending', 'approved'))
        )
    """)
    op.execute("""
        CREATE INDEX ix_time_off_requests_staff_status
            ON time_off_requests(staff_member_id, approval_status)
    """)
    op.execute("""
        CREATE INDEX ix_time_off_requests_category
            ON time_off_requests(time_off_category_id)
    """)
    op.execute("""
        CREATE INDEX ix_time_off_requests_start_date
            ON time_off_requests(start_date)
    """)

    # ── 4. audit_trail ────────────────────────────────────────────────────
    op.execute("""
        CREATE TABLE audit_trail (
            id           SERIAL PRIMARY KEY,
            actor_id     INTEGER,
            action       VARCHAR(50) NOT NULL,
            entity_type  VARCHAR(50) NOT NULL,
            entity_id    INTEGER NOT NULL,
            old_values   JSONB,
            new_values   JSONB,
            created_at   TIMESTAMPTZ NOT NULL DEFAULT NOW()
        )
    """)
    op.execute("CREATE INDEX ix_audit_trail_actor_id ON audit_trail(actor_id)")
    op.execute("CREATE INDEX ix_audit_trail_entity ON audit_trail(entity_type, entity_id)")
    op.execute("CREATE INDEX ix_audit_trail_created_at ON audit_trail(created_at)")


# ---------------------------------------------------------------------------
# DOWNGRADE
# ---------------------------------------------------------------------------


def downgrade() -> None:
    op.execute("DROP TABLE IF EXISTS audit_trail")
    op.execute("DROP TABLE IF EXISTS time_off_requests")
    op.execute("DROP TABLE IF EXISTS time_off_categories")
    op.execute("DROP TABLE IF EXISTS staff_members")
