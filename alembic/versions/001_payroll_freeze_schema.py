"""001 – Attendance, leave, holiday, freeze and snapshot tables.

Creates the tables the monthly attendance reconciliation reads from
(attendance_records, leave_requests, holidays) and writes to
(attendance_freezes, payroll_attendance_snapshots, audit_trail).

Uses CREATE TABLE IF NOT EXISTS so the migration is safe to run even
if the source tables were already created by the time-tracking sync.

Revision ID: 001_payroll_freeze_schema
Revises:
Create Date: 2026-10-19 10:00:00.000000+05:30
"""

import re

from alembic import op
import sqlalchemy as sa

# Revision identifiers
revision = "001_payroll_freeze_schema"
down_revision = None
branch_labels = None
depends_on = None

_SAFE_IDENT_RE = re.compile(r'^[a-z_][a-z0-9_]*$')


def _validate_identifier(name: str) -> str:
    if not _SAFE_IDENT_RE.match(name):
        raise ValueError(f"Unsafe SQL identifier: {name!r}")
    return name


def _safe_drop_table(name: str) -> None:
    _validate_identifier(name)
    op.execute(sa.text(f'DROP TABLE IF EXISTS "{name}" CASCADE'))


def upgrade() -> None:
    op.execute('CREATE EXTENSION IF NOT EXISTS "uuid-ossp"')

    # ══════════════════════════════════════════════════════════════════
    # 1. attendance_records
    # ══════════════════════════════════════════════════════════════════
    op.execute("""
        CREATE TABLE IF NOT EXISTS attendance_records (
            id           UUID PRIMARY KEY DEFAULT uuid_generate_v4(),
            employee_id  VARCHAR(50) NOT NULL,
            date         DATE NOT NULL,
            status       VARCHAR(50),
            clock_in     TIMESTAMPTZ,
            clock_out    TIMESTAMPTZ,
            source       VARCHAR(50) DEFAULT 'sync',
            created_at   TIMESTAMPTZ DEFAULT NOW(),
            updated_at   TIMESTAMPTZ DEFAULT NOW(),
            CONSTRAINT uq_attendance_emp_date UNIQUE (employee_id, date)
        )
    """)
    op.execute(
        "CREATE INDEX IF NOT EXISTS ix_attendance_records_date ON attendance_records(date)"
    )

    # ══════════════════════════════════════════════════════════════════
    # 2. leave_requests
    # ══════════════════════════════════════════════════════════════════
    op.execute("""
        CREATE TABLE IF NOT EXISTS leave_requests (
            id                UUID PRIMARY KEY DEFAULT uuid_generate_v4(),
            employee_id       VARCHAR(50) NOT NULL,
            leave_type        VARCHAR(100) NOT NULL,
            start_date        DATE NOT NULL,
            end_date          DATE NOT NULL,
            reason            TEXT,
            hr_approval       VARCHAR(20) DEFAULT 'Pending',
            manager_approval  VARCHAR(20) DEFAULT 'Pending',
            created_at        TIMESTAMPTZ DEFAULT NOW()
        )
    """)
    op.execute(
        "CREATE INDEX IF NOT EXISTS ix_leave_requests_emp_dates "
        "ON leave_requests(employee_id, start_date, end_date)"
    )

    # ══════════════════════════════════════════════════════════════════
    # 3. holidays
    # ══════════════════════════════════════════════════════════════════
    op.execute("""
        CREATE TABLE IF NOT EXISTS holidays (
            id          UUID PRIMARY KEY DEFAULT uuid_generate_v4(),
            name        VARCHAR(150) NOT NULL,
            date        DATE NOT NULL,
            end_date    DATE,
            created_at  TIMESTAMPTZ DEFAULT NOW()
        )
    """)

    # ══════════════════════════════════════════════════════════════════
    # 4. attendance_freezes
    # ══════════════════════════════════════════════════════════════════
    op.execute("""
        CREATE TABLE IF NOT EXISTS attendance_freezes (
            id           UUID PRIMARY KEY DEFAULT uuid_generate_v4(),
            year         INTEGER NOT NULL,
            month        INTEGER NOT NULL,
            is_frozen    BOOLEAN NOT NULL DEFAULT FALSE,
            frozen_at    TIMESTAMPTZ,
            frozen_by    VARCHAR(100),
            unfrozen_at  TIMESTAMPTZ,
            created_at   TIMESTAMPTZ DEFAULT NOW(),
            updated_at   TIMESTAMPTZ DEFAULT NOW(),
            CONSTRAINT uq_attendance_freeze_year_month UNIQUE (year, month),
            CONSTRAINT ck_attendance_freeze_month CHECK (month BETWEEN 1 AND 12)
        )
    """)

    # ══════════════════════════════════════════════════════════════════
    # 5. payroll_attendance_snapshots
    # ══════════════════════════════════════════════════════════════════
    op.execute("""
        CREATE TABLE IF NOT EXISTS payroll_attendance_snapshots (
            id                  UUID PRIMARY KEY DEFAULT uuid_generate_v4(),
            employee_id         VARCHAR(50) NOT NULL,
            year                INTEGER NOT NULL,
            month               INTEGER NOT NULL,
            present_days        NUMERIC(5,1) DEFAULT 0,
            absent_days         NUMERIC(5,1) DEFAULT 0,
            leave_days          NUMERIC(5,1) DEFAULT 0,
            lop_days            NUMERIC(5,1) DEFAULT 0,
            total_working_days  INTEGER DEFAULT 0,
            created_at          TIMESTAMPTZ DEFAULT NOW(),
            updated_at          TIMESTAMPTZ DEFAULT NOW(),
            CONSTRAINT uq_payroll_snapshot_emp_year_month UNIQUE (employee_id, year, month)
        )
    """)
    op.execute(
        "CREATE INDEX IF NOT EXISTS ix_payroll_snapshot_period "
        "ON payroll_attendance_snapshots(year, month)"
    )

    # ══════════════════════════════════════════════════════════════════
    # 6. audit_trail
    # ══════════════════════════════════════════════════════════════════
    op.execute("""
        CREATE TABLE IF NOT EXISTS audit_trail (
            id           UUID PRIMARY KEY DEFAULT uuid_generate_v4(),
            actor_id     VARCHAR(100),
            action       VARCHAR(50) NOT NULL,
            entity_type  VARCHAR(50) NOT NULL,
            entity_id    UUID NOT NULL,
            old_values   JSONB,
            new_values   JSONB,
            created_at   TIMESTAMPTZ NOT NULL DEFAULT NOW()
        )
    """)
    op.execute(
        "CREATE INDEX IF NOT EXISTS ix_audit_trail_entity ON audit_trail(entity_type, entity_id)"
    )


def downgrade() -> None:
    _safe_drop_table("audit_trail")
    _safe_drop_table("payroll_attendance_snapshots")
    _safe_drop_table("attendance_freezes")
    _safe_drop_table("holidays")
    _safe_drop_table("leave_requests")
    _safe_drop_table("attendance_records")
