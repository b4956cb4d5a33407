"""Leave service layer — eligible leave lookups for payroll reconciliation."""

from __future__ import annotations

from datetime import date
from typing import Iterable, Optional, Sequence

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from hrpayroll.common.constants import ApprovalStatus
from hrpayroll.leave.models import LeaveRequest


class LeaveService:
    """Async leave-ledger reads."""

    @staticmethod
    async def get_eligible_leaves(
        db: AsyncSession,
        start: date,
        end: date,
        employee_ids: Optional[Iterable[str]] = None,
    ) -> Sequence[LeaveRequest]:
        """Dual-approved leaves overlapping ``[start, end)``.

        Ordered by (employee, start_date, created_at, id) so that
        first-found overlap resolution is deterministic.
        """

        query = (
            select(LeaveRequest)
            .where(
                LeaveRequest.hr_approval == ApprovalStatus.approved.value,
                LeaveRequest.manager_approval == ApprovalStatus.approved.value,
                LeaveRequest.start_date < end,
                LeaveRequest.end_date >= start,
            )
            .order_by(
                LeaveRequest.employee_id,
                LeaveRequest.start_date,
                LeaveRequest.created_at,
                LeaveRequest.id,
            )
        )

        if employee_ids is not None:
            ids = list(employee_ids)
            if not ids:
                return []
            query = query.where(LeaveRequest.employee_id.in_(ids))

        result = await db.execute(query)
        return result.scalars().all()
