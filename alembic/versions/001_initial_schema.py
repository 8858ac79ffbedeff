"""001 – Initial schema: organisation, leave catalog, ledger, requests, audit.

Revision ID: 001_initial_schema
Revises:
Create Date: 2024-06-03 10:00:00.000000+05:30
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
    ("staff_role", ["faculty", "hod", "principal", "admin"]),
    ("leave_status", ["pending", "approved", "rejected", "cancelled"]),
    ("approval_decision", ["pending", "approved", "rejected"]),
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
    op.execute('CREATE EXTENSION IF NOT EXISTS "uuid-ossp"')

    for name, values in ENUM_TYPES:
        _create_enum(name, values)

    # ── 1. departments ────────────────────────────────────────────────────
    op.execute("""
        CREATE TABLE departments (
            id          UUID PRIMARY KEY DEFAULT uuid_generate_v4(),
            name        VARCHAR(150) NOT NULL UNIQUE,
            code        VARCHAR(20) UNIQUE,
            is_active   BOOLEAN DEFAULT TRUE,
            created_at  TIMESTAMPTZ DEFAULT NOW()
        )
    """)

    # ── 2. staff ──────────────────────────────────────────────────────────
    op.execute("""
        CREATE TABLE staff (
            id            UUID PRIMARY KEY DEFAULT uuid_generate_v4(),
            staff_code    VARCHAR(20)  NOT NULL UNIQUE,
            first_name    VARCHAR(100) NOT NULL,
            last_name     VARCHAR(100) NOT NULL,
            email         VARCHAR(255) NOT NULL UNIQUE,
            role          staff_role NOT NULL,
            department_id UUID REFERENCES departments(id),
            is_active     BOOLEAN DEFAULT TRUE,
            created_at    TIMESTAMPTZ DEFAULT NOW()
        )
    """)
    op.execute("CREATE INDEX idx_staff_department ON staff(department_id, role)")

    # ── 3. leave_types ────────────────────────────────────────────────────
    op.execute("""
        CREATE TABLE leave_types (
            id                   UUID PRIMARY KEY DEFAULT uuid_generate_v4(),
            code                 VARCHAR(10)  NOT NULL UNIQUE,
            name                 VARCHAR(100) NOT NULL,
            description          TEXT,
            max_days_per_year    NUMERIC(6,1) NOT NULL DEFAULT 0,
            default_allocation   NUMERIC(6,1) DEFAULT 0,
            allow_half_day       BOOLEAN DEFAULT TRUE,
            requires_approval    BOOLEAN DEFAULT TRUE,
            applicable_roles     JSONB NOT NULL DEFAULT '[]'::jsonb,
            max_consecutive_days INTEGER,
            min_working_days     NUMERIC(6,1),
            is_active            BOOLEAN DEFAULT TRUE,
            created_at           TIMESTAMPTZ DEFAULT NOW(),
            CONSTRAINT ck_leave_type_max_days CHECK (max_days_per_year >= 0)
        )
    """)

    # ── 4. leave_balances (the ledger) ────────────────────────────────────
    op.execute("""
        CREATE TABLE leave_balances (
            id            UUID PRIMARY KEY DEFAULT uuid_generate_v4(),
            staff_id      UUID NOT NULL REFERENCES staff(id),
            leave_type_id UUID NOT NULL REFERENCES leave_types(id),
            year          INTEGER NOT NULL,
            allocated     NUMERIC(6,1) NOT NULL DEFAULT 0,
            used          NUMERIC(6,1) NOT NULL DEFAULT 0,
            remaining     NUMERIC(6,1) NOT NULL DEFAULT 0,
            version       INTEGER NOT NULL DEFAULT 1,
            updated_at    TIMESTAMPTZ DEFAULT NOW(),
            CONSTRAINT uq_leave_balance UNIQUE (staff_id, leave_type_id, year),
            CONSTRAINT ck_leave_balance_allocated CHECK (allocated >= 0),
            CONSTRAINT ck_leave_balance_used CHECK (used >= 0)
        )
    """)

    # ── 5. leave_requests ─────────────────────────────────────────────────
    op.execute("""
        CREATE TABLE leave_requests (
            id                UUID PRIMARY KEY DEFAULT uuid_generate_v4(),
            applicant_id      UUID NOT NULL REFERENCES staff(id),
            leave_type_id     UUID NOT NULL REFERENCES leave_types(id),
            start_date        DATE NOT NULL,
            end_date          DATE NOT NULL,
            is_start_half_day BOOLEAN DEFAULT FALSE,
            is_end_half_day   BOOLEAN DEFAULT FALSE,
            total_days        INTEGER NOT NULL,
            working_days      NUMERIC(6,1) NOT NULL,
            reason            TEXT NOT NULL,
            status            leave_status DEFAULT 'pending',
            applied_at        TIMESTAMPTZ NOT NULL,
            processed_at      TIMESTAMPTZ,
            cancelled_at      TIMESTAMPTZ,
            cancel_reason     TEXT,
            version           INTEGER NOT NULL DEFAULT 1,
            updated_at        TIMESTAMPTZ DEFAULT NOW(),
            CONSTRAINT ck_leave_request_dates CHECK (start_date <= end_date)
        )
    """)
    op.execute("""
        CREATE INDEX ix_leave_requests_applicant_start
            ON leave_requests(applicant_id, start_date)
    """)
    op.execute("CREATE INDEX ix_leave_requests_status ON leave_requests(status)")

    # ── 6. leave_approvals ────────────────────────────────────────────────
    op.execute("""
        CREATE TABLE leave_approvals (
            id               UUID PRIMARY KEY DEFAULT uuid_generate_v4(),
            leave_request_id UUID NOT NULL REFERENCES leave_requests(id) ON DELETE CASCADE,
            position         INTEGER NOT NULL,
            approver_id      UUID NOT NULL REFERENCES staff(id),
            approver_role    staff_role NOT NULL,
            decision         approval_decision DEFAULT 'pending',
            comments         TEXT,
            decided_at       TIMESTAMPTZ,
            level            INTEGER NOT NULL,
            CONSTRAINT uq_leave_approval_position UNIQUE (leave_request_id, position)
        )
    """)
    op.execute("""
        CREATE INDEX ix_leave_approvals_approver
            ON leave_approvals(approver_id, decision)
    """)

    # ── 7. audit_trail ────────────────────────────────────────────────────
    op.execute("""
        CREATE TABLE audit_trail (
            id          UUID PRIMARY KEY DEFAULT uuid_generate_v4(),
            actor_id    UUID REFERENCES staff(id) ON DELETE SET NULL,
            action      VARCHAR(50) NOT NULL,
            entity_type VARCHAR(50) NOT NULL,
            entity_id   UUID NOT NULL,
            old_values  JSONB,
            new_values  JSONB,
            ip_address  INET,
            user_agent  TEXT,
            created_at  TIMESTAMPTZ NOT NULL DEFAULT NOW()
        )
    """)
    op.execute("CREATE INDEX ix_audit_trail_entity     ON audit_trail(entity_type, entity_id)")
    op.execute("CREATE INDEX ix_audit_trail_actor_id   ON audit_trail(actor_id)")
    op.execute("CREATE INDEX ix_audit_trail_created_at ON audit_trail(created_at)")
    op.execute("CREATE INDEX ix_audit_trail_action     ON audit_trail(action)")

    # ══════════════════════════════════════════════════════════════════════
    # SEED DATA
    # ══════════════════════════════════════════════════════════════════════

    op.execute("""
        INSERT INTO leave_types
            (code, name, max_days_per_year, default_allocation, allow_half_day,
             requires_approval, applicable_roles, max_consecutive_days, min_working_days)
        VALUES
        ('CL',  'Casual Leave',        12, 12, TRUE,  TRUE,  '[]',                    NULL, NULL),
        ('ML',  'Medical Leave',       10, 10, FALSE, TRUE,  '[]',                    NULL, 2),
        ('OD',  'On Duty',             15, 15, TRUE,  TRUE,  '[]',                    5,    NULL),
        ('VL',  'Vacation Leave',      30, 30, FALSE, TRUE,  '["faculty", "hod"]',    NULL, NULL),
        ('LWP', 'Leave Without Pay',  365,  0, TRUE,  TRUE,  '[]',                    NULL, NULL)
    """)


# ---------------------------------------------------------------------------
# DOWNGRADE
# ---------------------------------------------------------------------------


def downgrade() -> None:
    tables = [
        "audit_trail",
        "leave_approvals",
        "leave_requests",
        "leave_balances",
        "leave_types",
        "staff",
        "departments",
    ]
    for t in tables:
        op.execute(f"DROP TABLE IF EXISTS {t} CASCADE")

    for name, _ in reversed(ENUM_TYPES):
        _drop_enum(name)
