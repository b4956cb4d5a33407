"""Attendance service layer — period loads used by payroll reconciliation.

Business logic:
  - Group raw attendance rows for a period by employee
  - Load holidays overlapping a period (multi-day holidays included)
  - Count employees with attendance in a period
"""

from __future__ import annotations

from datetime import date
from typing import Sequence

from sqlalchemy import func, or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from hrpayroll.attendance.models import AttendanceRecord, Holiday

# employee_id -> {date -> raw status}
PeriodAttendance = dict[str, dict[date, str]]


class AttendanceService:
    """Async read operations over attendance and the holiday list."""

    @staticmethod
    async def load_period_attendance(
        db: AsyncSession,
        start: date,
        end: date,
    ) -> PeriodAttendance:
        """Group attendance rows in ``[start, end)`` by employee, then date.

        Employees with no rows in the range are not in the result.
        """

        result = await db.execute(
            select(
                AttendanceRecord.employee_id,
                AttendanceRecord.date,
                AttendanceRecord.status,
            )
            .where(
                AttendanceRecord.date >= start,
                AttendanceRecord.date < end,
            )
            .order_by(AttendanceRecord.employee_id, AttendanceRecord.date)
        )

        by_employee: PeriodAttendance = {}
        for employee_id, day, status in result.all():
            by_employee.setdefault(employee_id, {})[day] = (status or "").strip()
        return by_employee

    @staticmethod
    async def get_holidays_in_range(
        db: AsyncSession,
        start: date,
        end: date,
    ) -> Sequence[Holiday]:
        """Holidays touching ``[start, end)``, including ones that began earlier."""

        result = await db.execute(
            select(Holiday)
            .where(
                Holiday.date < end,
                or_(
                    Holiday.date >= start,
                    Holiday.end_date >= start,
                ),
            )
            .order_by(Holiday.date)
        )
        return result.scalars().all()

    @staticmethod
    async def count_employees_in_range(
        db: AsyncSession,
        start: date,
        end: date,
    ) -> int:
        """Number of distinct employees with at least one row in ``[start, end)``."""

        result = await db.execute(
            select(func.count(func.distinct(AttendanceRecord.employee_id))).where(
                AttendanceRecord.date >= start,
                AttendanceRecord.date < end,
            )
        )
        return result.scalar_one()
