"""Leave ORM model: LeaveRequest (dual-approval leave ledger)."""

from __future__ import annotations

import uuid
from datetime import date, datetime, timezone
from typing import Optional

import sqlalchemy as sa
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import Mapped, mapped_column

from hrpayroll.common.constants import ApprovalStatus
from hrpayroll.database import Base


class LeaveRequest(Base):
    __tablename__ = "leave_requests"
    __table_args__ = (
        sa.Index("ix_leave_requests_emp_dates", "employee_id", "start_date", "end_date"),
    )

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        primary_key=True,
        default=uuid.uuid4,
    )
    employee_id: Mapped[str] = mapped_column(sa.String(50), nullable=False)
    leave_type: Mapped[str] = mapped_column(sa.String(100), nullable=False)
    start_date: Mapped[date] = mapped_column(sa.Date, nullable=False)
    end_date: Mapped[date] = mapped_column(sa.Date, nullable=False)
    reason: Mapped[Optional[str]] = mapped_column(sa.Text)
    hr_approval: Mapped[str] = mapped_column(
        sa.String(20), default=ApprovalStatus.pending.value
    )
    manager_approval: Mapped[str] = mapped_column(
        sa.String(20), default=ApprovalStatus.pending.value
    )
    created_at: Mapped[datetime] = mapped_column(
        sa.DateTime(timezone=True), default=lambda: datetime.now(timezone.utc)
    )

    @property
    def is_fully_approved(self) -> bool:
        return (
            self.hr_approval == ApprovalStatus.approved.value
            and self.manager_approval == ApprovalStatus.approved.value
        )

    def __repr__(self) -> str:
        return (
            f"<LeaveRequest {self.employee_id} {self.leave_type!r} "
            f"{self.start_date}..{self.end_date}>"
        )
