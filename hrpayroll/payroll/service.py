"""Payroll freeze service — attendance reconciliation, snapshots, freeze guard.

Business logic:
  - finalize: reconcile a month and freeze it, all in one transaction
  - unfreeze: reopen a frozen month so it can be finalized again
  - status / snapshots / preview: read-only views for UI and payroll

The freeze row for (year, month) is the single point of serialisation.
It is read with a row lock (or inserted open when missing) before any
snapshot is written, and flipped to frozen after every snapshot is flushed.
A concurrent first-time finalize loses on the unique constraint and rolls
back with AlreadyFrozenError.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Optional, Sequence

from sqlalchemy import func, select
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from hrpayroll.attendance.service import AttendanceService, PeriodAttendance
from hrpayroll.common.audit import create_audit_entry
from hrpayroll.common.exceptions import (
    AlreadyFrozenError,
    NoDataError,
    NotFrozenError,
    PeriodNotFrozenError,
    PersistenceError,
)
from hrpayroll.config import settings
from hrpayroll.leave.service import LeaveService
from hrpayroll.payroll.calendar import MonthCalendar, month_range, resolve_month, validate_period
from hrpayroll.payroll.classifier import classify_employee_month
from hrpayroll.payroll.models import AttendanceFreeze, PayrollAttendanceSnapshot
from hrpayroll.payroll.policy import ReconciliationPolicy
from hrpayroll.payroll.reconciler import expand_leaves
from hrpayroll.payroll.schemas import FinalizeResult, FreezeStatus, SnapshotResponse

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class SnapshotWrite:
    """A prepared upsert of one employee-month snapshot."""

    employee_id: str
    year: int
    month: int
    values: dict[str, Any]

    def apply(
        self,
        db: AsyncSession,
        existing: Optional[PayrollAttendanceSnapshot],
        now: datetime,
    ) -> PayrollAttendanceSnapshot:
        if existing is not None:
            for key, value in self.values.items():
                setattr(existing, key, value)
            existing.updated_at = now
            return existing

        snapshot = PayrollAttendanceSnapshot(
            employee_id=self.employee_id,
            year=self.year,
            month=self.month,
            created_at=now,
            updated_at=now,
            **self.values,
        )
        db.add(snapshot)
        return snapshot

    def as_response(self) -> SnapshotResponse:
        return SnapshotResponse(
            employee_id=self.employee_id,
            year=self.year,
            month=self.month,
            **self.values,
        )


async def is_month_frozen(db: AsyncSession, year: int, month: int) -> bool:
    """True when payroll may trust the snapshots of ``year``/``month``."""
    result = await db.execute(
        select(AttendanceFreeze.is_frozen).where(
            AttendanceFreeze.year == year,
            AttendanceFreeze.month == month,
        )
    )
    return bool(result.scalar_one_or_none())


class PayrollFreezeService:
    """Async reconciliation and freeze operations."""

    # ── Helpers ─────────────────────────────────────────────────────

    @staticmethod
    async def _get_freeze(
        db: AsyncSession,
        year: int,
        month: int,
        *,
        for_update: bool = False,
    ) -> Optional[AttendanceFreeze]:
        query = select(AttendanceFreeze).where(
            AttendanceFreeze.year == year,
            AttendanceFreeze.month == month,
        )
        if for_update:
            query = query.with_for_update()
        result = await db.execute(query)
        return result.scalars().first()

    @staticmethod
    async def _load_calendar(db: AsyncSession, year: int, month: int) -> MonthCalendar:
        start, end = month_range(year, month)
        holidays = await AttendanceService.get_holidays_in_range(db, start, end)
        return resolve_month(year, month, holidays)

    @staticmethod
    async def _prepare_writes(
        db: AsyncSession,
        calendar: MonthCalendar,
        attendance: PeriodAttendance,
        policy: ReconciliationPolicy,
    ) -> list[SnapshotWrite]:
        """Reconcile every employee in ``attendance`` into a snapshot write."""

        leaves = await LeaveService.get_eligible_leaves(
            db, calendar.period_start, calendar.period_end, attendance.keys(),
        )
        leave_days = expand_leaves(leaves, calendar, policy)

        writes: list[SnapshotWrite] = []
        for employee_id, days in attendance.items():
            counts = classify_employee_month(
                calendar, days, leave_days.get(employee_id), policy,
            )
            writes.append(
                SnapshotWrite(
                    employee_id=employee_id,
                    year=calendar.year,
                    month=calendar.month,
                    values=counts.snapshot_values(),
                )
            )
        return writes

    @staticmethod
    async def _build_status(
        db: AsyncSession,
        year: int,
        month: int,
        freeze: Optional[AttendanceFreeze],
    ) -> FreezeStatus:
        start, end = month_range(year, month)
        employee_count = await AttendanceService.count_employees_in_range(db, start, end)
        snapshot_count = (
            await db.execute(
                select(func.count()).select_from(PayrollAttendanceSnapshot).where(
                    PayrollAttendanceSnapshot.year == year,
                    PayrollAttendanceSnapshot.month == month,
                )
            )
        ).scalar_one()

        return FreezeStatus(
            year=year,
            month=month,
            is_frozen=bool(freeze and freeze.is_frozen),
            frozen_at=freeze.frozen_at if freeze else None,
            employee_count=employee_count,
            snapshot_count=snapshot_count,
        )

    # ── Finalize ────────────────────────────────────────────────────

    @staticmethod
    async def finalize(
        db: AsyncSession,
        year: Any,
        month: Any,
        *,
        actor_id: Optional[str] = None,
        policy: Optional[ReconciliationPolicy] = None,
    ) -> FinalizeResult:
        """Reconcile ``year``/``month`` and freeze it.

        Raises:
            ValidationException: year/month malformed.
            AlreadyFrozenError: the period is frozen (or was frozen concurrently).
            NoDataError: no attendance rows in the period.
            PersistenceError: the write phase failed; the session was rolled back.
        """

        year, month = validate_period(year, month)
        policy = policy or ReconciliationPolicy.from_settings(settings)

        # Freeze guard: read (and lock) before anything is written
        freeze = await PayrollFreezeService._get_freeze(db, year, month, for_update=True)
        if freeze is not None and freeze.is_frozen:
            raise AlreadyFrozenError(year, month)

        calendar = await PayrollFreezeService._load_calendar(db, year, month)
        attendance = await AttendanceService.load_period_attendance(
            db, calendar.period_start, calendar.period_end,
        )
        if not attendance:
            raise NoDataError(year, month)

        writes = await PayrollFreezeService._prepare_writes(db, calendar, attendance, policy)

        now = datetime.now(timezone.utc)
        creating_freeze = freeze is None
        stage = "claim"
        try:
            # Claim the period before writing snapshots; a concurrent first
            # finalize blocks here on the (year, month) unique constraint.
            if creating_freeze:
                freeze = AttendanceFreeze(
                    year=year, month=month, is_frozen=False, created_at=now, updated_at=now,
                )
                db.add(freeze)
                await db.flush()

            stage = "snapshots"
            existing_rows = await db.execute(
                select(PayrollAttendanceSnapshot).where(
                    PayrollAttendanceSnapshot.year == year,
                    PayrollAttendanceSnapshot.month == month,
                )
            )
            existing = {s.employee_id: s for s in existing_rows.scalars().all()}

            for write in writes:
                write.apply(db, existing.get(write.employee_id), now)
            await db.flush()

            stage = "freeze"
            freeze.is_frozen = True
            freeze.frozen_at = now
            freeze.frozen_by = actor_id
            freeze.updated_at = now
            await db.flush()

            await create_audit_entry(
                db,
                action="finalize",
                entity_type="attendance_freeze",
                entity_id=freeze.id,
                actor_id=actor_id,
                new_values={
                    "year": year,
                    "month": month,
                    "is_frozen": True,
                    "snapshots": len(writes),
                },
            )
        except IntegrityError as exc:
            await db.rollback()
            # Without a pre-existing freeze row, any unique violation means
            # another finalize of this period got there first.
            if creating_freeze:
                logger.info(
                    "Finalize %d-%02d lost the race to a concurrent finalize (%s stage)",
                    year, month, stage,
                )
                raise AlreadyFrozenError(year, month) from exc
            logger.error("Finalize %d-%02d failed", year, month, exc_info=True)
            raise PersistenceError() from exc
        except SQLAlchemyError as exc:
            await db.rollback()
            logger.error("Finalize %d-%02d failed", year, month, exc_info=True)
            raise PersistenceError() from exc

        logger.info(
            "Finalized %d-%02d: %d employees, %d snapshots",
            year, month, len(attendance), len(writes),
        )

        return FinalizeResult(
            year=year,
            month=month,
            employee_count=len(attendance),
            snapshot_count=len(writes),
            frozen_at=now,
            message=f"Finalized {year}-{month:02d} for {len(writes)} employees",
        )

    # ── Unfreeze ────────────────────────────────────────────────────

    @staticmethod
    async def unfreeze(
        db: AsyncSession,
        year: Any,
        month: Any,
        *,
        actor_id: Optional[str] = None,
    ) -> FreezeStatus:
        """Reopen a frozen period; existing snapshots are kept."""

        year, month = validate_period(year, month)

        freeze = await PayrollFreezeService._get_freeze(db, year, month, for_update=True)
        if freeze is None or not freeze.is_frozen:
            raise NotFrozenError(year, month)

        now = datetime.now(timezone.utc)
        old_frozen_at = freeze.frozen_at
        freeze.is_frozen = False
        freeze.unfrozen_at = now
        freeze.updated_at = now
        await db.flush()

        await create_audit_entry(
            db,
            action="unfreeze",
            entity_type="attendance_freeze",
            entity_id=freeze.id,
            actor_id=actor_id,
            old_values={
                "is_frozen": True,
                "frozen_at": old_frozen_at.isoformat() if old_frozen_at else None,
            },
            new_values={"is_frozen": False},
        )

        logger.info("Unfroze %d-%02d", year, month)
        return await PayrollFreezeService._build_status(db, year, month, freeze)

    # ── Status ──────────────────────────────────────────────────────

    @staticmethod
    async def status(db: AsyncSession, year: Any, month: Any) -> FreezeStatus:
        """Current freeze state and counts for a period. Never writes."""

        year, month = validate_period(year, month)
        freeze = await PayrollFreezeService._get_freeze(db, year, month)
        return await PayrollFreezeService._build_status(db, year, month, freeze)

    # ── Snapshots ───────────────────────────────────────────────────

    @staticmethod
    async def get_snapshots(
        db: AsyncSession,
        year: Any,
        month: Any,
        *,
        require_frozen: bool = False,
        employee_id: Optional[str] = None,
    ) -> list[SnapshotResponse]:
        """Snapshots of a period, for payroll consumers.

        With ``require_frozen`` an open period raises ``PeriodNotFrozenError``
        instead of returning numbers that may still change.
        """

        year, month = validate_period(year, month)
        if require_frozen and not await is_month_frozen(db, year, month):
            raise PeriodNotFrozenError(year, month)

        query = (
            select(PayrollAttendanceSnapshot)
            .where(
                PayrollAttendanceSnapshot.year == year,
                PayrollAttendanceSnapshot.month == month,
            )
            .order_by(PayrollAttendanceSnapshot.employee_id)
        )
        if employee_id is not None:
            query = query.where(PayrollAttendanceSnapshot.employee_id == employee_id)

        result = await db.execute(query)
        rows: Sequence[PayrollAttendanceSnapshot] = result.scalars().all()
        return [SnapshotResponse.model_validate(r) for r in rows]

    # ── Preview ─────────────────────────────────────────────────────

    @staticmethod
    async def preview(
        db: AsyncSession,
        year: Any,
        month: Any,
        *,
        policy: Optional[ReconciliationPolicy] = None,
    ) -> list[SnapshotResponse]:
        """Compute what finalize would write, without writing or freezing."""

        year, month = validate_period(year, month)
        policy = policy or ReconciliationPolicy.from_settings(settings)

        calendar = await PayrollFreezeService._load_calendar(db, year, month)
        attendance = await AttendanceService.load_period_attendance(
            db, calendar.period_start, calendar.period_end,
        )
        if not attendance:
            raise NoDataError(year, month)

        writes = await PayrollFreezeService._prepare_writes(db, calendar, attendance, policy)
        return [w.as_response() for w in writes]
