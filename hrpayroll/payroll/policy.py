"""Reconciliation policy — the configurable parts of day classification.

Two behaviours of the attendance feed are ambiguous and are therefore
expressed as policy rather than hard-coded:

  - which recorded statuses count as presence (default: any non-blank one)
  - which leave wins when approved leaves overlap (default: first found)
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Iterable, Mapping, Optional

from hrpayroll.common.constants import (
    PAID_FULL_LEAVE_TYPES,
    PAID_HALF_LEAVE_TYPES,
    UNPAID_LEAVE_TYPES,
    LeaveClass,
    LeaveOverlapPolicy,
)


def normalize_label(value: Optional[str]) -> str:
    """Case- and whitespace-insensitive key: ``"Absent (Unpaid)"`` -> ``"absent(unpaid)"``."""
    return "".join((value or "").split()).casefold()


def _default_vocabulary() -> dict[str, LeaveClass]:
    vocabulary: dict[str, LeaveClass] = {}
    for names, leave_class in (
        (PAID_FULL_LEAVE_TYPES, LeaveClass.paid_full),
        (PAID_HALF_LEAVE_TYPES, LeaveClass.paid_half),
        (UNPAID_LEAVE_TYPES, LeaveClass.unpaid),
    ):
        for name in names:
            vocabulary[normalize_label(name)] = leave_class
    return vocabulary


# Lower rank wins under the given overlap policy.
_OVERLAP_RANK: dict[LeaveOverlapPolicy, dict[LeaveClass, int]] = {
    LeaveOverlapPolicy.prefer_paid: {
        LeaveClass.paid_full: 0,
        LeaveClass.paid_half: 1,
        LeaveClass.unpaid: 2,
    },
    LeaveOverlapPolicy.prefer_unpaid: {
        LeaveClass.unpaid: 0,
        LeaveClass.paid_full: 1,
        LeaveClass.paid_half: 2,
    },
}


@dataclass(frozen=True)
class ReconciliationPolicy:
    present_statuses: Optional[frozenset[str]] = None
    half_day_statuses: frozenset[str] = frozenset({normalize_label("Half-day")})
    leave_overlap: LeaveOverlapPolicy = LeaveOverlapPolicy.first_found
    leave_vocabulary: Mapping[str, LeaveClass] = field(default_factory=_default_vocabulary)

    @classmethod
    def build(
        cls,
        *,
        present_statuses: Optional[Iterable[str]] = None,
        half_day_statuses: Iterable[str] = ("Half-day",),
        leave_overlap: LeaveOverlapPolicy | str = LeaveOverlapPolicy.first_found,
        extra_leave_types: Optional[Mapping[str, LeaveClass]] = None,
    ) -> "ReconciliationPolicy":
        """Construct a policy from human-readable labels.

        An empty or ``None`` ``present_statuses`` means any non-blank status
        counts as presence.
        """
        present = (
            frozenset(normalize_label(s) for s in present_statuses)
            if present_statuses
            else None
        )
        vocabulary = _default_vocabulary()
        for name, leave_class in (extra_leave_types or {}).items():
            vocabulary[normalize_label(name)] = LeaveClass(leave_class)
        return cls(
            present_statuses=present,
            half_day_statuses=frozenset(normalize_label(s) for s in half_day_statuses),
            leave_overlap=LeaveOverlapPolicy(leave_overlap),
            leave_vocabulary=vocabulary,
        )

    @classmethod
    def from_settings(cls, settings) -> "ReconciliationPolicy":
        return cls.build(
            present_statuses=settings.present_statuses_list,
            half_day_statuses=settings.half_day_statuses_list,
            leave_overlap=settings.PAYROLL_LEAVE_OVERLAP_POLICY,
        )

    # ── Attendance statuses ─────────────────────────────────────────

    def is_half_day(self, status: str) -> bool:
        return normalize_label(status) in self.half_day_statuses

    def counts_as_presence(self, status: str) -> bool:
        key = normalize_label(status)
        if not key:
            return False
        if self.present_statuses is None:
            return True
        return key in self.present_statuses

    # ── Leave types ─────────────────────────────────────────────────

    def classify_leave_type(self, leave_type: Optional[str]) -> Optional[LeaveClass]:
        return self.leave_vocabulary.get(normalize_label(leave_type))

    def prefer(self, current: LeaveClass, candidate: LeaveClass) -> LeaveClass:
        """Pick between two leave classes already covering the same day."""
        ranks = _OVERLAP_RANK.get(self.leave_overlap)
        if ranks is None:
            return current
        return candidate if ranks[candidate] < ranks[current] else current


DEFAULT_POLICY = ReconciliationPolicy()
