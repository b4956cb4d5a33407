"""Leave reconciliation — expand approved leaves into per-day classifications."""

from __future__ import annotations

import logging
from datetime import date, timedelta
from typing import Any, Iterable

from hrpayroll.common.constants import LeaveClass
from hrpayroll.payroll.calendar import MonthCalendar, is_weekend
from hrpayroll.payroll.policy import DEFAULT_POLICY, ReconciliationPolicy

logger = logging.getLogger(__name__)

# employee_id -> {date -> LeaveClass}
LeaveDays = dict[str, dict[date, LeaveClass]]


def expand_leaves(
    leaves: Iterable[Any],
    calendar: MonthCalendar,
    policy: ReconciliationPolicy = DEFAULT_POLICY,
) -> LeaveDays:
    """Expand each leave's inclusive date range inside the month.

    ``leaves`` must already be filtered to dual-approved rows and ordered
    the way overlap resolution expects (see ``LeaveService``). Weekends are
    skipped; holidays are left to the classifier. Each employee-day holds
    one classification, chosen by ``policy.leave_overlap``.
    """

    by_employee: LeaveDays = {}

    for leave in leaves:
        leave_class = policy.classify_leave_type(leave.leave_type)
        if leave_class is None:
            logger.debug(
                "Ignoring leave %s for %s: unknown type %r",
                getattr(leave, "id", None), leave.employee_id, leave.leave_type,
            )
            continue

        days = by_employee.setdefault(leave.employee_id, {})
        day = max(leave.start_date, calendar.period_start)
        last = min(leave.end_date, calendar.period_end - timedelta(days=1))

        while day <= last:
            if not is_weekend(day):
                current = days.get(day)
                if current is None:
                    days[day] = leave_class
                else:
                    chosen = policy.prefer(current, leave_class)
                    if chosen is not current:
                        logger.debug(
                            "Overlapping leave for %s on %s: %s replaces %s",
                            leave.employee_id, day, chosen.value, current.value,
                        )
                    days[day] = chosen
            day += timedelta(days=1)

    return {emp: days for emp, days in by_employee.items() if days}
