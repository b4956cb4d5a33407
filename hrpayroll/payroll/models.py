"""Payroll ORM models: AttendanceFreeze, PayrollAttendanceSnapshot.

SQLAlchemy 2.0 async-compatible models.
"""

from __future__ import annotations

import uuid
from datetime import datetime, timezone
from decimal import Decimal
from typing import Optional

import sqlalchemy as sa
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import Mapped, mapped_column

from hrpayroll.common.constants import FreezeState
from hrpayroll.database import Base


class AttendanceFreeze(Base):
    """Per-period freeze marker; the sole concurrency-control row for a month."""

    __tablename__ = "attendance_freezes"
    __table_args__ = (
        sa.UniqueConstraint("year", "month", name="uq_attendance_freeze_year_month"),
        sa.CheckConstraint("month BETWEEN 1 AND 12", name="ck_attendance_freeze_month"),
    )

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), primary_key=True, default=uuid.uuid4,
    )
    year: Mapped[int] = mapped_column(sa.Integer, nullable=False)
    month: Mapped[int] = mapped_column(sa.Integer, nullable=False)
    is_frozen: Mapped[bool] = mapped_column(sa.Boolean, default=False, nullable=False)
    frozen_at: Mapped[Optional[datetime]] = mapped_column(sa.DateTime(timezone=True))
    frozen_by: Mapped[Optional[str]] = mapped_column(sa.String(100))
    unfrozen_at: Mapped[Optional[datetime]] = mapped_column(sa.DateTime(timezone=True))
    created_at: Mapped[datetime] = mapped_column(
        sa.DateTime(timezone=True), default=lambda: datetime.now(timezone.utc),
    )
    updated_at: Mapped[datetime] = mapped_column(
        sa.DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        onupdate=lambda: datetime.now(timezone.utc),
    )

    @property
    def state(self) -> FreezeState:
        return FreezeState.frozen if self.is_frozen else FreezeState.open

    def __repr__(self) -> str:
        return f"<AttendanceFreeze {self.year}-{self.month:02d} {self.state.value}>"


class PayrollAttendanceSnapshot(Base):
    """Reconciled day counts for one employee-month, read by payroll."""

    __tablename__ = "payroll_attendance_snapshots"
    __table_args__ = (
        sa.UniqueConstraint(
            "employee_id", "year", "month", name="uq_payroll_snapshot_emp_year_month"
        ),
        sa.Index("ix_payroll_snapshot_period", "year", "month"),
    )

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), primary_key=True, default=uuid.uuid4,
    )
    employee_id: Mapped[str] = mapped_column(sa.String(50), nullable=False)
    year: Mapped[int] = mapped_column(sa.Integer, nullable=False)
    month: Mapped[int] = mapped_column(sa.Integer, nullable=False)
    present_days: Mapped[Decimal] = mapped_column(sa.Numeric(5, 1), default=0)
    absent_days: Mapped[Decimal] = mapped_column(sa.Numeric(5, 1), default=0)
    leave_days: Mapped[Decimal] = mapped_column(sa.Numeric(5, 1), default=0)
    lop_days: Mapped[Decimal] = mapped_column(sa.Numeric(5, 1), default=0)
    total_working_days: Mapped[int] = mapped_column(sa.Integer, default=0)
    created_at: Mapped[datetime] = mapped_column(
        sa.DateTime(timezone=True), default=lambda: datetime.now(timezone.utc),
    )
    updated_at: Mapped[datetime] = mapped_column(
        sa.DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        onupdate=lambda: datetime.now(timezone.utc),
    )

    def __repr__(self) -> str:
        return f"<PayrollAttendanceSnapshot {self.employee_id} {self.year}-{self.month:02d}>"
