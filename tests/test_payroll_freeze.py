"""Payroll freeze service tests — finalize, unfreeze, status, snapshots, preview.

Exercises PayrollFreezeService directly against the in-memory SQLite DB.
Seed data is committed before finalize because a failed write phase rolls
back the whole session.
"""

from __future__ import annotations

import logging
from datetime import date
from decimal import Decimal

import pytest
from sqlalchemy import func, insert, select
from sqlalchemy.exc import SQLAlchemyError

from hrpayroll.common.audit import AuditTrail
from hrpayroll.common.constants import ApprovalStatus, FreezeState
from hrpayroll.common.exceptions import (
    AlreadyFrozenError,
    NoDataError,
    NotFrozenError,
    PeriodNotFrozenError,
    PersistenceError,
    ValidationException,
)
from hrpayroll.leave.service import LeaveService
from hrpayroll.payroll.models import AttendanceFreeze, PayrollAttendanceSnapshot
from hrpayroll.payroll.policy import ReconciliationPolicy
from hrpayroll.payroll.service import PayrollFreezeService, SnapshotWrite, is_month_frozen
from tests.conftest import month_days, seed_attendance, seed_holiday, seed_leave

JUNE_WEEKDAYS = [d for d in month_days(2025, 6) if d.weekday() < 5]


# ── Helpers ─────────────────────────────────────────────────────────


async def _seed_june(db, *employee_ids: str) -> None:
    """Every June weekday marked Present for each employee, then committed."""
    for employee_id in employee_ids or ("CF-0001",):
        await seed_attendance(db, employee_id, JUNE_WEEKDAYS)
    await db.commit()


async def _snapshot_map(db, year=2025, month=6) -> dict[str, PayrollAttendanceSnapshot]:
    result = await db.execute(
        select(PayrollAttendanceSnapshot).where(
            PayrollAttendanceSnapshot.year == year,
            PayrollAttendanceSnapshot.month == month,
        )
    )
    return {s.employee_id: s for s in result.scalars().all()}


def _counts(snapshot: PayrollAttendanceSnapshot) -> tuple:
    return (
        snapshot.present_days,
        snapshot.absent_days,
        snapshot.leave_days,
        snapshot.lop_days,
        snapshot.total_working_days,
    )


async def _freeze_count(db) -> int:
    result = await db.execute(select(func.count()).select_from(AttendanceFreeze))
    return result.scalar_one()


# ═════════════════════════════════════════════════════════════════════
# 1. FINALIZE
# ═════════════════════════════════════════════════════════════════════


async def test_finalize_writes_snapshots_and_freezes(db):
    """A clean month produces one snapshot per employee and a frozen marker."""
    await _seed_june(db, "CF-0001", "CF-0002")
    await seed_holiday(db, name="Founders Day", day=date(2025, 6, 10))
    await db.commit()

    result = await PayrollFreezeService.finalize(db, 2025, 6, actor_id="CF-ADMIN")

    assert result.employee_count == 2
    assert result.snapshot_count == 2
    assert result.message == "Finalized 2025-06 for 2 employees"

    snapshots = await _snapshot_map(db)
    assert set(snapshots) == {"CF-0001", "CF-0002"}
    snap = snapshots["CF-0001"]
    assert snap.total_working_days == 20
    assert snap.present_days == Decimal("30")
    assert snap.absent_days == 0
    assert snap.leave_days == 0
    assert snap.lop_days == 0

    freeze = await PayrollFreezeService._get_freeze(db, 2025, 6)
    assert freeze.is_frozen is True
    assert freeze.state is FreezeState.frozen
    assert freeze.frozen_by == "CF-ADMIN"
    assert await is_month_frozen(db, 2025, 6) is True


async def test_finalize_twice_raises_already_frozen(db):
    """A second finalize is rejected and leaves the snapshots untouched."""
    await _seed_june(db)
    await PayrollFreezeService.finalize(db, 2025, 6)
    await db.commit()
    before = (await _snapshot_map(db))["CF-0001"].updated_at

    # New attendance after the freeze must not leak into the snapshot
    await seed_attendance(db, "CF-0001", [date(2025, 6, 7)])
    await db.commit()

    with pytest.raises(AlreadyFrozenError) as exc_info:
        await PayrollFreezeService.finalize(db, 2025, 6)
    assert exc_info.value.status_code == 409
    assert exc_info.value.error_type == "already-frozen"
    assert "2025-06" in exc_info.value.detail

    snap = (await _snapshot_map(db))["CF-0001"]
    assert snap.updated_at == before
    assert snap.present_days == Decimal("30")


async def test_finalize_without_attendance_raises_no_data(db):
    with pytest.raises(NoDataError) as exc_info:
        await PayrollFreezeService.finalize(db, 2025, 6)

    assert exc_info.value.status_code == 404
    assert exc_info.value.error_type == "no-data"
    assert await _freeze_count(db) == 0


async def test_attendance_outside_period_is_no_data(db):
    await seed_attendance(db, "CF-0001", [date(2025, 5, 30), date(2025, 7, 1)])
    await db.commit()

    with pytest.raises(NoDataError):
        await PayrollFreezeService.finalize(db, 2025, 6)


@pytest.mark.parametrize("year, month", [(2025, 13), (2025, 0), (0, 6), ("abc", 6)])
async def test_finalize_rejects_invalid_period(db, year, month):
    with pytest.raises(ValidationException):
        await PayrollFreezeService.finalize(db, year, month)
    assert await _freeze_count(db) == 0


async def test_only_dual_approved_leave_counts(db):
    """A leave still pending manager approval leaves the day absent."""
    await seed_attendance(db, "CF-0001", [date(2025, 6, 2)])
    await seed_leave(
        db, employee_id="CF-0001", start_date=date(2025, 6, 3), end_date=date(2025, 6, 3),
    )
    await seed_leave(
        db,
        employee_id="CF-0001",
        start_date=date(2025, 6, 4),
        end_date=date(2025, 6, 4),
        manager_approval=ApprovalStatus.pending.value,
    )
    await seed_leave(
        db,
        employee_id="CF-0001",
        start_date=date(2025, 6, 5),
        end_date=date(2025, 6, 5),
        hr_approval=ApprovalStatus.rejected.value,
    )
    await db.commit()

    await PayrollFreezeService.finalize(db, 2025, 6)

    snap = (await _snapshot_map(db))["CF-0001"]
    assert snap.leave_days == 1
    assert snap.absent_days == 19
    assert snap.present_days == 10


async def test_eligible_leaves_query(db):
    """Overlapping, dual-approved rows only, restricted to the given employees."""
    spanning = await seed_leave(
        db, employee_id="CF-0001", start_date=date(2025, 5, 1), end_date=date(2025, 7, 31),
    )
    await seed_leave(
        db, employee_id="CF-0001", start_date=date(2025, 7, 1), end_date=date(2025, 7, 2),
    )
    await seed_leave(
        db,
        employee_id="CF-0001",
        start_date=date(2025, 6, 2),
        end_date=date(2025, 6, 2),
        manager_approval=ApprovalStatus.pending.value,
    )
    await seed_leave(
        db, employee_id="CF-0002", start_date=date(2025, 6, 2), end_date=date(2025, 6, 2),
    )

    leaves = await LeaveService.get_eligible_leaves(
        db, date(2025, 6, 1), date(2025, 7, 1), ["CF-0001"],
    )
    assert [lv.id for lv in leaves] == [spanning.id]
    assert all(lv.is_fully_approved for lv in leaves)

    assert await LeaveService.get_eligible_leaves(db, date(2025, 6, 1), date(2025, 7, 1), []) == []
    everyone = await LeaveService.get_eligible_leaves(db, date(2025, 6, 1), date(2025, 7, 1))
    assert {lv.employee_id for lv in everyone} == {"CF-0001", "CF-0002"}


async def test_leave_starting_in_previous_month_is_counted(db):
    """A leave from 26 May to 3 June covers Mon 2 and Tue 3 June."""
    await seed_attendance(db, "CF-0001", JUNE_WEEKDAYS[2:])
    await seed_leave(
        db,
        employee_id="CF-0001",
        leave_type="Absent (Unpaid)",
        start_date=date(2025, 5, 26),
        end_date=date(2025, 6, 3),
    )
    await db.commit()

    await PayrollFreezeService.finalize(db, 2025, 6)

    snap = (await _snapshot_map(db))["CF-0001"]
    assert snap.lop_days == 2
    assert snap.absent_days == 0
    assert snap.total_working_days == 21


async def test_month_spanning_holiday_is_counted(db):
    await seed_attendance(db, "CF-0001", JUNE_WEEKDAYS)
    await seed_holiday(db, name="Break", day=date(2025, 5, 29), end_date=date(2025, 6, 3))
    await db.commit()

    await PayrollFreezeService.finalize(db, 2025, 6)

    snap = (await _snapshot_map(db))["CF-0001"]
    assert snap.total_working_days == 19
    assert snap.present_days == 30


async def test_employee_with_only_leave_gets_no_snapshot(db):
    await _seed_june(db, "CF-0001")
    await seed_leave(
        db, employee_id="CF-0009", start_date=date(2025, 6, 2), end_date=date(2025, 6, 6),
    )
    await db.commit()

    result = await PayrollFreezeService.finalize(db, 2025, 6)

    assert result.snapshot_count == 1
    assert set(await _snapshot_map(db)) == {"CF-0001"}


async def test_finalize_uses_given_policy(db):
    await seed_attendance(db, "CF-0001", JUNE_WEEKDAYS, status="Absent")
    await db.commit()

    policy = ReconciliationPolicy.build(present_statuses=["Present"])
    await PayrollFreezeService.finalize(db, 2025, 6, policy=policy)

    snap = (await _snapshot_map(db))["CF-0001"]
    assert snap.absent_days == 21
    assert snap.present_days == 9


async def test_finalize_writes_audit_entry(db):
    await _seed_june(db)
    await PayrollFreezeService.finalize(db, 2025, 6, actor_id="CF-ADMIN")

    result = await db.execute(select(AuditTrail).where(AuditTrail.action == "finalize"))
    entry = result.scalars().one()
    assert entry.entity_type == "attendance_freeze"
    assert entry.actor_id == "CF-ADMIN"
    assert entry.new_values["snapshots"] == 1


async def test_finalize_logs_summary(db, caplog):
    await _seed_june(db)
    caplog.set_level(logging.INFO, logger="hrpayroll.payroll.service")

    await PayrollFreezeService.finalize(db, 2025, 6)

    assert "Finalized 2025-06: 1 employees, 1 snapshots" in caplog.text


# ── Transactional failure ───────────────────────────────────────────


async def test_write_failure_rolls_back_everything(db, monkeypatch):
    """A failure midway through the snapshot writes leaves nothing behind."""
    await _seed_june(db, "CF-0001", "CF-0002", "CF-0003")

    real_apply = SnapshotWrite.apply
    calls = {"n": 0}

    def failing_apply(self, session, existing, now):
        calls["n"] += 1
        if calls["n"] == 2:
            raise SQLAlchemyError("disk full")
        return real_apply(self, session, existing, now)

    monkeypatch.setattr(SnapshotWrite, "apply", failing_apply)

    with pytest.raises(PersistenceError) as exc_info:
        await PayrollFreezeService.finalize(db, 2025, 6)
    assert exc_info.value.status_code == 500

    assert await _snapshot_map(db) == {}
    assert await is_month_frozen(db, 2025, 6) is False
    assert await _freeze_count(db) == 0


async def test_concurrent_first_finalize_loses_on_unique_constraint(db, monkeypatch):
    """Another finalize inserting the freeze row first makes this one fail cleanly."""
    await _seed_june(db)

    real_prepare = PayrollFreezeService._prepare_writes

    async def racing_prepare(session, calendar, attendance, policy):
        writes = await real_prepare(session, calendar, attendance, policy)
        await session.execute(
            insert(AttendanceFreeze).values(year=2025, month=6, is_frozen=True)
        )
        return writes

    monkeypatch.setattr(PayrollFreezeService, "_prepare_writes", staticmethod(racing_prepare))

    with pytest.raises(AlreadyFrozenError):
        await PayrollFreezeService.finalize(db, 2025, 6)

    assert await _snapshot_map(db) == {}


def _hook_after_snapshot_read(db, monkeypatch, callback):
    """Run ``callback(real_execute)`` once, right after finalize reads existing snapshots."""
    real_execute = db.execute
    fired = {"done": False}

    async def hooked(statement, *args, **kwargs):
        result = await real_execute(statement, *args, **kwargs)
        if (
            not fired["done"]
            and getattr(statement, "is_select", False)
            and PayrollAttendanceSnapshot.__table__ in statement.get_final_froms()
        ):
            fired["done"] = True
            await callback(real_execute)
        return result

    monkeypatch.setattr(db, "execute", hooked)
    return fired


async def test_period_is_claimed_before_snapshot_writes(db, monkeypatch):
    """A first finalize holds an open freeze row before touching any snapshot."""
    await _seed_june(db)
    seen: list[bool] = []

    async def record_freeze_rows(real_execute):
        rows = await real_execute(select(AttendanceFreeze.is_frozen))
        seen.extend(rows.scalars().all())

    fired = _hook_after_snapshot_read(db, monkeypatch, record_freeze_rows)

    await PayrollFreezeService.finalize(db, 2025, 6)

    assert fired["done"] is True
    assert seen == [False]
    assert await is_month_frozen(db, 2025, 6) is True
    assert await _freeze_count(db) == 1


async def test_competing_snapshot_on_first_finalize_is_already_frozen(db, monkeypatch):
    """A snapshot written by another run after our read surfaces as a 409, not a 500."""
    await _seed_june(db)

    async def competing_snapshot(real_execute):
        await real_execute(
            insert(PayrollAttendanceSnapshot).values(
                employee_id="CF-0001", year=2025, month=6, total_working_days=21,
            )
        )

    _hook_after_snapshot_read(db, monkeypatch, competing_snapshot)

    with pytest.raises(AlreadyFrozenError) as exc_info:
        await PayrollFreezeService.finalize(db, 2025, 6)
    assert exc_info.value.status_code == 409

    assert await _snapshot_map(db) == {}
    assert await _freeze_count(db) == 0


# ═════════════════════════════════════════════════════════════════════
# 2. UNFREEZE
# ═════════════════════════════════════════════════════════════════════


async def test_unfreeze_then_finalize_recomputes(db):
    """Unfreeze keeps the snapshots; a re-finalize overwrites them in place."""
    await _seed_june(db)
    await PayrollFreezeService.finalize(db, 2025, 6)
    await db.commit()
    first = (await _snapshot_map(db))["CF-0001"]
    first_id, first_counts = first.id, _counts(first)

    status = await PayrollFreezeService.unfreeze(db, 2025, 6, actor_id="CF-ADMIN")
    await db.commit()
    assert status.is_frozen is False
    assert status.snapshot_count == 1
    assert await is_month_frozen(db, 2025, 6) is False

    freeze = await PayrollFreezeService._get_freeze(db, 2025, 6)
    assert freeze.unfrozen_at is not None

    await PayrollFreezeService.finalize(db, 2025, 6)
    await db.commit()

    snapshots = await _snapshot_map(db)
    assert len(snapshots) == 1
    assert snapshots["CF-0001"].id == first_id
    assert _counts(snapshots["CF-0001"]) == first_counts
    assert await is_month_frozen(db, 2025, 6) is True
    assert await _freeze_count(db) == 1


async def test_refinalize_picks_up_corrected_attendance(db):
    await seed_attendance(db, "CF-0001", JUNE_WEEKDAYS[:10])
    await db.commit()
    await PayrollFreezeService.finalize(db, 2025, 6)
    await db.commit()
    assert (await _snapshot_map(db))["CF-0001"].absent_days == 11

    await PayrollFreezeService.unfreeze(db, 2025, 6)
    await seed_attendance(db, "CF-0001", JUNE_WEEKDAYS[10:])
    await db.commit()
    await PayrollFreezeService.finalize(db, 2025, 6)
    await db.commit()

    assert (await _snapshot_map(db))["CF-0001"].absent_days == 0


async def test_unfreeze_open_period_raises(db):
    with pytest.raises(NotFrozenError) as exc_info:
        await PayrollFreezeService.unfreeze(db, 2025, 6)
    assert exc_info.value.status_code == 409
    assert exc_info.value.error_type == "not-frozen"


async def test_unfreeze_twice_raises(db):
    await _seed_june(db)
    await PayrollFreezeService.finalize(db, 2025, 6)
    await PayrollFreezeService.unfreeze(db, 2025, 6)

    with pytest.raises(NotFrozenError):
        await PayrollFreezeService.unfreeze(db, 2025, 6)


async def test_unfreeze_writes_audit_entry(db):
    await _seed_june(db)
    await PayrollFreezeService.finalize(db, 2025, 6)
    await PayrollFreezeService.unfreeze(db, 2025, 6, actor_id="CF-ADMIN")

    result = await db.execute(select(AuditTrail).where(AuditTrail.action == "unfreeze"))
    entry = result.scalars().one()
    assert entry.old_values["is_frozen"] is True
    assert entry.new_values == {"is_frozen": False}


# ═════════════════════════════════════════════════════════════════════
# 3. STATUS / SNAPSHOTS / PREVIEW
# ═════════════════════════════════════════════════════════════════════


async def test_status_of_untouched_period(db):
    await _seed_june(db, "CF-0001", "CF-0002")

    status = await PayrollFreezeService.status(db, 2025, 6)

    assert status.is_frozen is False
    assert status.frozen_at is None
    assert status.employee_count == 2
    assert status.snapshot_count == 0
    assert await _freeze_count(db) == 0


async def test_status_after_finalize(db):
    await _seed_june(db, "CF-0001", "CF-0002")
    await PayrollFreezeService.finalize(db, 2025, 6)

    status = await PayrollFreezeService.status(db, 2025, 6)

    assert status.is_frozen is True
    assert status.frozen_at is not None
    assert status.snapshot_count == 2


async def test_status_rejects_invalid_month(db):
    with pytest.raises(ValidationException):
        await PayrollFreezeService.status(db, 2025, 13)


async def test_get_snapshots_require_frozen(db):
    await _seed_june(db)

    with pytest.raises(PeriodNotFrozenError) as exc_info:
        await PayrollFreezeService.get_snapshots(db, 2025, 6, require_frozen=True)
    assert exc_info.value.error_type == "period-not-frozen"

    await PayrollFreezeService.finalize(db, 2025, 6)
    snapshots = await PayrollFreezeService.get_snapshots(db, 2025, 6, require_frozen=True)
    assert [s.employee_id for s in snapshots] == ["CF-0001"]


async def test_get_snapshots_filters_by_employee(db):
    await _seed_june(db, "CF-0002", "CF-0001")
    await PayrollFreezeService.finalize(db, 2025, 6)

    everyone = await PayrollFreezeService.get_snapshots(db, 2025, 6)
    assert [s.employee_id for s in everyone] == ["CF-0001", "CF-0002"]

    one = await PayrollFreezeService.get_snapshots(db, 2025, 6, employee_id="CF-0002")
    assert len(one) == 1
    assert one[0].total_working_days == 21


async def test_preview_does_not_persist(db):
    await _seed_june(db)

    rows = await PayrollFreezeService.preview(db, 2025, 6)

    assert len(rows) == 1
    assert rows[0].present_days == Decimal("30")
    assert rows[0].id is None
    assert await _snapshot_map(db) == {}
    assert await _freeze_count(db) == 0


async def test_preview_without_attendance_raises(db):
    with pytest.raises(NoDataError):
        await PayrollFreezeService.preview(db, 2025, 6)
