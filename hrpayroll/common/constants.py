"""Enums and constants for HR Payroll — reconciliation vocabulary and roles."""

from __future__ import annotations

import enum


# ── Auth / Roles ────────────────────────────────────────────────────

class UserRole(str, enum.Enum):
    employee = "employee"
    manager = "manager"
    hr_admin = "hr_admin"
    system_admin = "system_admin"


# ── Approvals ───────────────────────────────────────────────────────

class ApprovalStatus(str, enum.Enum):
    pending = "Pending"
    approved = "Approved"
    rejected = "Rejected"


# ── Reconciliation ──────────────────────────────────────────────────

class LeaveClass(str, enum.Enum):
    """How a single leave day is paid."""

    paid_full = "paid_full"
    paid_half = "paid_half"
    unpaid = "unpaid"


class DayBucket(str, enum.Enum):
    """The bucket a calendar day lands in for one employee."""

    present = "present"
    leave = "leave"
    lop = "lop"
    absent = "absent"
    none = "none"


class LeaveOverlapPolicy(str, enum.Enum):
    """Which leave wins when two approved leaves cover the same day."""

    first_found = "first_found"
    prefer_paid = "prefer_paid"
    prefer_unpaid = "prefer_unpaid"


class FreezeState(str, enum.Enum):
    open = "open"
    frozen = "frozen"


# Leave-type vocabulary as it appears in the leave ledger.
PAID_FULL_LEAVE_TYPES: tuple[str, ...] = (
    "Paid Leave",
    "Work From Home",
    "Sick Leave(FullDay)",
)
PAID_HALF_LEAVE_TYPES: tuple[str, ...] = ("Sick Leave(HalfDay)",)
UNPAID_LEAVE_TYPES: tuple[str, ...] = ("Absent (Unpaid)",)

# ── Misc constants ──────────────────────────────────────────────────

WEEKEND_WEEKDAYS = frozenset({5, 6})  # date.weekday(): Saturday, Sunday
MIN_YEAR = 1
MAX_YEAR = 9998  # period_end of December must stay representable
