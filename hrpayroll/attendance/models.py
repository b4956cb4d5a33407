"""Attendance ORM models: AttendanceRecord, Holiday."""

from __future__ import annotations

import uuid
from datetime import date, datetime, timezone
from typing import Optional

import sqlalchemy as sa
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import Mapped, mapped_column

from hrpayroll.database import Base


class AttendanceRecord(Base):
    """One day of attendance for one employee, written by the time-tracking sync."""

    __tablename__ = "attendance_records"
    __table_args__ = (
        sa.UniqueConstraint("employee_id", "date", name="uq_attendance_emp_date"),
        sa.Index("ix_attendance_records_date", "date"),
    )

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        primary_key=True,
        default=uuid.uuid4,
    )
    employee_id: Mapped[str] = mapped_column(sa.String(50), nullable=False)
    date: Mapped[date] = mapped_column(sa.Date, nullable=False)
    status: Mapped[Optional[str]] = mapped_column(sa.String(50))
    clock_in: Mapped[Optional[datetime]] = mapped_column(
        sa.DateTime(timezone=True)
    )
    clock_out: Mapped[Optional[datetime]] = mapped_column(
        sa.DateTime(timezone=True)
    )
    source: Mapped[str] = mapped_column(sa.String(50), default="sync")
    created_at: Mapped[datetime] = mapped_column(
        sa.DateTime(timezone=True), default=lambda: datetime.now(timezone.utc)
    )
    updated_at: Mapped[datetime] = mapped_column(
        sa.DateTime(timezone=True), default=lambda: datetime.now(timezone.utc)
    )

    def __repr__(self) -> str:
        return f"<AttendanceRecord {self.employee_id} {self.date} {self.status!r}>"


class Holiday(Base):
    """Organization-wide non-working day, optionally spanning several days."""

    __tablename__ = "holidays"

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        primary_key=True,
        default=uuid.uuid4,
    )
    name: Mapped[str] = mapped_column(sa.String(150), nullable=False)
    date: Mapped[date] = mapped_column(sa.Date, nullable=False)
    end_date: Mapped[Optional[date]] = mapped_column(sa.Date)
    created_at: Mapped[datetime] = mapped_column(
        sa.DateTime(timezone=True), default=lambda: datetime.now(timezone.utc)
    )

    def __repr__(self) -> str:
        return f"<Holiday {self.name!r} {self.date}>"
