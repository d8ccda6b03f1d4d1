"""001 – Initial schema: directory, leave catalog, ledger, requests, audit trail.

Revision ID: 001_initial_schema
Revises:
Create Date: 2026-10-19 10:00:00.000000+00:00
"""

from alembic import op

# Revision identifiers
revision = "001_initial_schema"
down_revision = None
branch_labels = None
depends_on = None


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

ENUM_TYPES: list[tuple[str, list[str]]] = [
    ("user_role", ["USER", "MANAGER", "HR", "ADMIN"]),
    (
        "request_status",
        ["PENDING_MANAGER", "PENDING_HR", "APPROVED", "REJECTED", "CANCELLED"],
    ),
    ("leave_session", ["FULL_DAY", "MORNING", "AFTERNOON"]),
]

# Starting catalog: (name, default_allocated_days, description)
LEAVE_TYPES: list[tuple[str, str, str]] = [
    ("VACATION", "15", "Annual paid leave; unused days roll over"),
    ("SICK", "10", "Paid sick leave"),
    ("MANDATORY", "5", "Company-mandated days off"),
    ("UNPAID", "0", "Leave without pay; not tracked in the ledger"),
    ("MATERNITY", "105", "Maternity leave"),
    ("PATERNITY", "7", "Paternity leave"),
    ("EMERGENCY", "5", "Emergency leave; charged to the VACATION balance"),
    ("BEREAVEMENT", "3", "Bereavement leave"),
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

    # ── 1. departments ────────────────────────────────────────────────────
    op.execute("""
        CREATE TABLE departments (
            id          UUID PRIMARY KEY DEFAULT uuid_generate_v4(),
            name        VARCHAR(150) NOT NULL UNIQUE,
            created_at  TIMESTAMPTZ DEFAULT NOW(),
            updated_at  TIMESTAMPTZ DEFAULT NOW()
        )
    """)

    # ── 2. users ──────────────────────────────────────────────────────────
    op.execute("""
        CREATE TABLE users (
            id             UUID PRIMARY KEY DEFAULT uuid_generate_v4(),
            employee_code  VARCHAR(20)  NOT NULL UNIQUE,
            name           VARCHAR(200) NOT NULL,
            email          VARCHAR(255) UNIQUE,
            role           user_role NOT NULL DEFAULT 'USER',
            approver_id    UUID REFERENCES users(id),
            department_id  UUID REFERENCES departments(id),
            is_active      BOOLEAN DEFAULT TRUE,
            created_at     TIMESTAMPTZ DEFAULT NOW(),
            updated_at     TIMESTAMPTZ DEFAULT NOW()
        )
    """)
    op.execute("CREATE INDEX idx_users_approver   ON users(approver_id)")
    op.execute("CREATE INDEX idx_users_department ON users(department_id)")

    # ── 3. department_managers ────────────────────────────────────────────
    op.execute("""
        CREATE TABLE department_managers (
            department_id UUID NOT NULL REFERENCES departments(id) ON DELETE CASCADE,
            manager_id    UUID NOT NULL REFERENCES users(id) ON DELETE CASCADE,
            PRIMARY KEY (department_id, manager_id)
        )
    """)

    # ── 4. leave_types ────────────────────────────────────────────────────
    op.execute("""
        CREATE TABLE leave_types (
            id                     UUID PRIMARY KEY DEFAULT uuid_generate_v4(),
            name                   VARCHAR(50) NOT NULL UNIQUE,
            description            TEXT,
            default_allocated_days NUMERIC(5,1) NOT NULL DEFAULT 0,
            created_at             TIMESTAMPTZ DEFAULT NOW(),
            updated_at             TIMESTAMPTZ DEFAULT NOW()
        )
    """)

    # ── 5. leave_balances (the ledger) ────────────────────────────────────
    op.execute("""
        CREATE TABLE leave_balances (
            id             UUID PRIMARY KEY DEFAULT uuid_generate_v4(),
            user_id        UUID NOT NULL REFERENCES users(id),
            leave_type_id  UUID NOT NULL REFERENCES leave_types(id),
            year           INTEGER NOT NULL,
            allocated_days NUMERIC(5,1) NOT NULL DEFAULT 0,
            used_days      NUMERIC(5,1) NOT NULL DEFAULT 0,
            updated_at     TIMESTAMPTZ DEFAULT NOW(),
            CONSTRAINT uq_leave_balance UNIQUE (user_id, leave_type_id, year),
            CONSTRAINT ck_leave_balance_allocated CHECK (allocated_days >= 0)
        )
    """)
    op.execute("CREATE INDEX idx_leave_balances_year ON leave_balances(year)")

    # ── 6. leave_requests ─────────────────────────────────────────────────
    op.execute("""
        CREATE TABLE leave_requests (
            id                UUID PRIMARY KEY DEFAULT uuid_generate_v4(),
            user_id           UUID NOT NULL REFERENCES users(id),
            leave_type_id     UUID NOT NULL REFERENCES leave_types(id),
            start_date        DATE NOT NULL,
            end_date          DATE NOT NULL,
            session           leave_session NOT NULL DEFAULT 'FULL_DAY',
            total_days        NUMERIC(5,1) NOT NULL,
            reason            TEXT NOT NULL,
            status            request_status NOT NULL DEFAULT 'PENDING_MANAGER',
            manager_action_by UUID REFERENCES users(id),
            manager_action_at TIMESTAMPTZ,
            manager_comments  TEXT,
            hr_action_by      UUID REFERENCES users(id),
            hr_action_at      TIMESTAMPTZ,
            hr_comments       TEXT,
            created_at        TIMESTAMPTZ DEFAULT NOW(),
            updated_at        TIMESTAMPTZ DEFAULT NOW(),
            CHECK (end_date >= start_date)
        )
    """)
    op.execute(
        "CREATE INDEX ix_leave_requests_user_status ON leave_requests(user_id, status)"
    )

    # ── 7. overtime_requests ──────────────────────────────────────────────
    op.execute("""
        CREATE TABLE overtime_requests (
            id                UUID PRIMARY KEY DEFAULT uuid_generate_v4(),
            user_id           UUID NOT NULL REFERENCES users(id),
            start_time        TIMESTAMPTZ NOT NULL,
            end_time          TIMESTAMPTZ NOT NULL,
            total_hours       NUMERIC(6,2) NOT NULL,
            reason            TEXT NOT NULL,
            status            request_status NOT NULL DEFAULT 'PENDING_MANAGER',
            manager_action_by UUID REFERENCES users(id),
            manager_action_at TIMESTAMPTZ,
            manager_comments  TEXT,
            hr_action_by      UUID REFERENCES users(id),
            hr_action_at      TIMESTAMPTZ,
            hr_comments       TEXT,
            created_at        TIMESTAMPTZ DEFAULT NOW(),
            updated_at        TIMESTAMPTZ DEFAULT NOW(),
            CHECK (end_time > start_time)
        )
    """)
    op.execute(
        "CREATE INDEX ix_overtime_requests_user_status "
        "ON overtime_requests(user_id, status)"
    )

    # ── 8. audit_trail ────────────────────────────────────────────────────
    op.execute("""
        CREATE TABLE audit_trail (
            id          UUID PRIMARY KEY DEFAULT uuid_generate_v4(),
            actor_id    UUID REFERENCES users(id),
            action      VARCHAR(50) NOT NULL,
            entity_type VARCHAR(50) NOT NULL,
            entity_id   UUID,
            old_values  JSON,
            new_values  JSON,
            created_at  TIMESTAMPTZ NOT NULL DEFAULT NOW()
        )
    """)
    op.execute("CREATE INDEX ix_audit_trail_actor_id   ON audit_trail(actor_id)")
    op.execute("CREATE INDEX ix_audit_trail_entity     ON audit_trail(entity_type, entity_id)")
    op.execute("CREATE INDEX ix_audit_trail_created_at ON audit_trail(created_at)")

    # ── Seed: leave type catalog ──────────────────────────────────────────
    rows = ",\n        ".join(
        f"('{name}', {days}, '{description}')"
        for name, days, description in LEAVE_TYPES
    )
    op.execute(f"""
        INSERT INTO leave_types (name, default_allocated_days, description) VALUES
        {rows}
    """)


# ---------------------------------------------------------------------------
# DOWNGRADE
# ---------------------------------------------------------------------------


def downgrade() -> None:
    # Drop tables in reverse dependency order
    tables = [
        "audit_trail",
        "overtime_requests",
        "leave_requests",
        "leave_balances",
        "leave_types",
        "department_managers",
        "users",
        "departments",
    ]
    for t in tables:
        op.execute(f"DROP TABLE IF EXISTS {t} CASCADE")

    for name, _ in reversed(ENUM_TYPES):
        _drop_enum(name)

    op.execute('DROP EXTENSION IF EXISTS "uuid-ossp"')
