"""Day classification — merge calendar, attendance and leave into day buckets.

Each calendar day of an employee's month is run through ``RULES`` top-down
and lands in the bucket of the first rule that matches:

  1. half-day attendance, not a holiday     -> present 0.5
  2. recorded presence, not a holiday       -> present 1
  3. holiday                                -> present 1
  4. no record, weekend                     -> present 1
  5. no record, paid leave on a working day -> leave 1 (0.5 for half-day types)
  6. no record, unpaid leave on a working day -> lop 1
  7. working day with nothing else          -> absent

Absent days are reported as whatever part of the working days the other
buckets did not cover, so half-days leave a half-day of absence behind.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date
from decimal import Decimal
from typing import Callable, Mapping, Optional

from hrpayroll.common.constants import DayBucket, LeaveClass
from hrpayroll.payroll.calendar import MonthCalendar
from hrpayroll.payroll.policy import DEFAULT_POLICY, ReconciliationPolicy, normalize_label

ZERO = Decimal("0")
HALF = Decimal("0.5")
ONE = Decimal("1")

_PAID_LEAVE = (LeaveClass.paid_full, LeaveClass.paid_half)


@dataclass(frozen=True)
class DayContext:
    """Everything known about one employee-day."""

    day: date
    status: Optional[str]
    is_holiday: bool
    is_weekend: bool
    leave: Optional[LeaveClass]
    policy: ReconciliationPolicy

    @property
    def is_working_day(self) -> bool:
        return not (self.is_holiday or self.is_weekend)

    @property
    def is_half_day(self) -> bool:
        return self.status is not None and self.policy.is_half_day(self.status)

    @property
    def is_present(self) -> bool:
        return self.status is not None and self.policy.counts_as_presence(self.status)

    @property
    def has_record(self) -> bool:
        # A status the policy refuses to count is treated like a missing row.
        if self.status is None:
            return False
        return not normalize_label(self.status) or self.is_half_day or self.is_present


@dataclass(frozen=True)
class Rule:
    name: str
    matches: Callable[[DayContext], bool]
    bucket: DayBucket
    weight: Callable[[DayContext], Decimal]


RULES: tuple[Rule, ...] = (
    Rule(
        "half_day_attendance",
        lambda c: c.is_half_day and not c.is_holiday,
        DayBucket.present,
        lambda c: HALF,
    ),
    Rule(
        "recorded_attendance",
        lambda c: c.is_present and not c.is_holiday,
        DayBucket.present,
        lambda c: ONE,
    ),
    Rule(
        "holiday",
        lambda c: c.is_holiday,
        DayBucket.present,
        lambda c: ONE,
    ),
    Rule(
        "weekly_off",
        lambda c: not c.has_record and c.is_weekend,
        DayBucket.present,
        lambda c: ONE,
    ),
    Rule(
        "paid_leave",
        lambda c: not c.has_record and c.is_working_day and c.leave in _PAID_LEAVE,
        DayBucket.leave,
        lambda c: HALF if c.leave is LeaveClass.paid_half else ONE,
    ),
    Rule(
        "unpaid_leave",
        lambda c: not c.has_record and c.is_working_day and c.leave is LeaveClass.unpaid,
        DayBucket.lop,
        lambda c: ONE,
    ),
    Rule(
        "absent",
        lambda c: c.is_working_day,
        DayBucket.absent,
        lambda c: ONE,
    ),
)


def classify_day(ctx: DayContext) -> tuple[DayBucket, Decimal, Optional[str]]:
    """Return ``(bucket, weight, rule_name)`` for the first matching rule."""
    for rule in RULES:
        if rule.matches(ctx):
            return rule.bucket, rule.weight(ctx), rule.name
    return DayBucket.none, ZERO, None


@dataclass(frozen=True)
class DayCounts:
    present: Decimal
    present_on_working_days: Decimal
    leave: Decimal
    lop: Decimal
    absent: Decimal
    total_working_days: int
    day_buckets: Mapping[date, tuple[DayBucket, Decimal]] = field(default_factory=dict)

    def snapshot_values(self) -> dict[str, object]:
        return {
            "present_days": self.present,
            "absent_days": self.absent,
            "leave_days": self.leave,
            "lop_days": self.lop,
            "total_working_days": self.total_working_days,
        }


def classify_employee_month(
    calendar: MonthCalendar,
    attendance: Mapping[date, str],
    leave_days: Optional[Mapping[date, LeaveClass]] = None,
    policy: ReconciliationPolicy = DEFAULT_POLICY,
) -> DayCounts:
    """Classify every day of ``calendar`` for one employee."""

    leave_days = leave_days or {}
    totals = {DayBucket.present: ZERO, DayBucket.leave: ZERO, DayBucket.lop: ZERO}
    present_on_working = ZERO
    buckets: dict[date, tuple[DayBucket, Decimal]] = {}

    for day in calendar.dates:
        ctx = DayContext(
            day=day,
            status=attendance.get(day),
            is_holiday=calendar.is_holiday(day),
            is_weekend=calendar.is_weekend(day),
            leave=leave_days.get(day),
            policy=policy,
        )
        bucket, weight, _ = classify_day(ctx)
        buckets[day] = (bucket, weight)
        if bucket in totals:
            totals[bucket] += weight
            if bucket is DayBucket.present and ctx.is_working_day:
                present_on_working += weight

    working_days = calendar.working_days
    covered = present_on_working + totals[DayBucket.leave] + totals[DayBucket.lop]
    absent = max(ZERO, Decimal(working_days) - covered)

    return DayCounts(
        present=totals[DayBucket.present],
        present_on_working_days=present_on_working,
        leave=totals[DayBucket.leave],
        lop=totals[DayBucket.lop],
        absent=absent,
        total_working_days=working_days,
        day_buckets=buckets,
    )
