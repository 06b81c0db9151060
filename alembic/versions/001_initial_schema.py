"""001 – Initial schema: users, sessions, reports, expenses, history, notifications.

Revision ID: 001_initial_schema
Revises:
Create Date: 2026-10-18 10:00:00.000000+05:30
"""

from alembic import op
import sqlalchemy as sa

# Revision identifiers
revision = "001_initial_schema"
down_revision = None
branch_labels = None
depends_on = None


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

ENUM_TYPES: list[tuple[str, list[str]]] = [
    ("user_role", ["USER", "ADMIN"]),
    ("report_status", ["PENDING", "SUBMITTED", "APPROVED", "REJECTED", "REIMBURSED"]),
    (
        "report_event_type",
        [
            "CREATED",
            "SUBMITTED",
            "APPROVED",
            "REJECTED",
            "REIMBURSED",
            "EXPENSES_ADDED",
            "EXPENSES_REMOVED",
            "COMMENT",
        ],
    ),
    ("expense_status", ["UNREPORTED", "REPORTED", "APPROVED", "REJECTED", "REIMBURSED"]),
    (
        "expense_category",
        [
            "TRAVEL",
            "MEALS",
            "ACCOMMODATION",
            "TRANSPORTATION",
            "OFFICE_SUPPLIES",
            "ENTERTAINMENT",
            "OTHER",
        ],
    ),
    (
        "expense_event_type",
        ["CREATED", "UPDATED", "ADDED_TO_REPORT", "REMOVED_FROM_REPORT"],
    ),
    (
        "notification_type",
        [
            "REPORT_SUBMITTED",
            "REPORT_APPROVED",
            "REPORT_REJECTED",
            "REPORT_REIMBURSED",
            "SYSTEM_ANNOUNCEMENT",
        ],
    ),
    ("entity_type", ["REPORT", "EXPENSE", "SYSTEM"]),
]


def _create_enum(name: str, values: list[str]) -> None:
    vals = ", ".join(f"'{v}'" for v in values)
    op.execute(f"CREATE TYPE {name} AS ENUM ({vals})")


def _drop_enum(name: str) -> None:
    op.execute(f"DROP TYPE IF EXISTS {name}")


# ---------------------------------------------------------------------------
# UPGRADE
# ---------------------------------------------------------------------------


def upgrade() -> None:
    # ── Extensions ────────────────────────────────────────────────────────
    op.execute('CREATE EXTENSION IF NOT EXISTS "uuid-ossp"')

    # ── Enum types ────────────────────────────────────────────────────────
    for name, values in ENUM_TYPES:
        _create_enum(name, values)

    # ── 1. users ──────────────────────────────────────────────────────────
    op.execute("""
        CREATE TABLE users (
            id           UUID PRIMARY KEY DEFAULT uuid_generate_v4(),
            email        VARCHAR(255) NOT NULL UNIQUE,
            first_name   VARCHAR(100) NOT NULL,
            last_name    VARCHAR(100) NOT NULL DEFAULT '',
            role         user_role NOT NULL DEFAULT 'USER',
            approver_id  UUID REFERENCES users(id) ON DELETE SET NULL,
            is_active    BOOLEAN DEFAULT TRUE,
            created_at   TIMESTAMPTZ DEFAULT NOW()
        )
    """)

    # ── 2. user_sessions ──────────────────────────────────────────────────
    op.execute("""
        CREATE TABLE user_sessions (
            id          UUID PRIMARY KEY DEFAULT uuid_generate_v4(),
            user_id     UUID NOT NULL REFERENCES users(id) ON DELETE CASCADE,
            token_hash  VARCHAR(512) NOT NULL,
            expires_at  TIMESTAMPTZ NOT NULL,
            is_revoked  BOOLEAN DEFAULT FALSE,
            created_at  TIMESTAMPTZ DEFAULT NOW()
        )
    """)
    op.execute("CREATE INDEX ix_user_sessions_token_hash ON user_sessions (token_hash)")

    # ── 3. reports ────────────────────────────────────────────────────────
    op.execute("""
        CREATE TABLE reports (
            id                   SERIAL PRIMARY KEY,
            title                VARCHAR(255) NOT NULL,
            description          TEXT,
            status               report_status NOT NULL DEFAULT 'PENDING',
            start_date           DATE,
            end_date             DATE,
            total_amount         NUMERIC(12, 2) NOT NULL DEFAULT 0,
            submitted_at         TIMESTAMPTZ,
            approved_at          TIMESTAMPTZ,
            rejected_at          TIMESTAMPTZ,
            reimbursed_at        TIMESTAMPTZ,
            reimbursement_notes  TEXT,
            user_id              UUID NOT NULL REFERENCES users(id) ON DELETE CASCADE,
            approver_id          UUID REFERENCES users(id) ON DELETE SET NULL,
            created_at           TIMESTAMPTZ DEFAULT NOW(),
            updated_at           TIMESTAMPTZ DEFAULT NOW()
        )
    """)
    op.execute("CREATE INDEX ix_reports_user_status ON reports (user_id, status)")

    # ── 4. expenses ───────────────────────────────────────────────────────
    op.execute("""
        CREATE TABLE expenses (
            id                   SERIAL PRIMARY KEY,
            amount               NUMERIC(12, 2) NOT NULL,
            currency             VARCHAR(10) DEFAULT 'INR',
            merchant             VARCHAR(255) NOT NULL,
            date                 DATE NOT NULL,
            description          TEXT NOT NULL,
            category             expense_category NOT NULL DEFAULT 'OTHER',
            notes                TEXT,
            receipt_urls         JSONB DEFAULT '[]'::jsonb,
            status               expense_status NOT NULL DEFAULT 'UNREPORTED',
            claim_reimbursement  BOOLEAN DEFAULT TRUE,
            user_id              UUID NOT NULL REFERENCES users(id) ON DELETE CASCADE,
            report_id            INTEGER REFERENCES reports(id) ON DELETE SET NULL,
            created_at           TIMESTAMPTZ DEFAULT NOW(),
            updated_at           TIMESTAMPTZ DEFAULT NOW(),
            CONSTRAINT ck_expenses_amount_positive CHECK (amount > 0)
        )
    """)
    op.execute("CREATE INDEX ix_expenses_user_id ON expenses (user_id)")
    op.execute("CREATE INDEX ix_expenses_report_id ON expenses (report_id)")

    # ── 5. report_history (append-only) ───────────────────────────────────
    op.execute("""
        CREATE TABLE report_history (
            id               SERIAL PRIMARY KEY,
            report_id        INTEGER NOT NULL REFERENCES reports(id) ON DELETE CASCADE,
            event_type       report_event_type NOT NULL,
            event_date       TIMESTAMPTZ NOT NULL DEFAULT NOW(),
            details          TEXT,
            performed_by_id  UUID REFERENCES users(id) ON DELETE SET NULL
        )
    """)
    op.execute("CREATE INDEX ix_report_history_report_id ON report_history (report_id)")
    op.execute("CREATE INDEX ix_report_history_event_date ON report_history (event_date)")

    # ── 6. expense_history (append-only) ──────────────────────────────────
    op.execute("""
        CREATE TABLE expense_history (
            id               SERIAL PRIMARY KEY,
            expense_id       INTEGER NOT NULL REFERENCES expenses(id) ON DELETE CASCADE,
            report_id        INTEGER REFERENCES reports(id) ON DELETE SET NULL,
            event_type       expense_event_type NOT NULL,
            event_date       TIMESTAMPTZ NOT NULL DEFAULT NOW(),
            details          TEXT,
            performed_by_id  UUID REFERENCES users(id) ON DELETE SET NULL
        )
    """)
    op.execute("CREATE INDEX ix_expense_history_expense_id ON expense_history (expense_id)")

    # ── 7. notifications ──────────────────────────────────────────────────
    op.execute("""
        CREATE TABLE notifications (
            id                   UUID PRIMARY KEY DEFAULT uuid_generate_v4(),
            user_id              UUID NOT NULL REFERENCES users(id) ON DELETE CASCADE,
            type                 notification_type NOT NULL,
            title                VARCHAR(200) NOT NULL,
            message              TEXT NOT NULL,
            read                 BOOLEAN NOT NULL DEFAULT FALSE,
            related_entity_type  entity_type,
            related_entity_id    VARCHAR(64),
            created_at           TIMESTAMPTZ DEFAULT NOW(),
            expires_at           TIMESTAMPTZ
        )
    """)
    op.execute("CREATE INDEX ix_notifications_user_read ON notifications (user_id, read)")


# ---------------------------------------------------------------------------
# DOWNGRADE
# ---------------------------------------------------------------------------


def downgrade() -> None:
    # Drop tables in reverse dependency order
    tables = [
        "notifications",
        "expense_history",
        "report_history",
        "expenses",
        "reports",
        "user_sessions",
        "users",
    ]
    for table in tables:
        op.execute(f"DROP TABLE IF EXISTS {table} CASCADE")

    for name, _ in reversed(ENUM_TYPES):
        _drop_enum(name)
