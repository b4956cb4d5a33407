"""Payroll Pydantic v2 schemas — freeze requests, status and snapshots.

Naming conventions:
  - *Request  → request bodies (write)
  - *Response / *Result / *Status → response bodies (read)
"""

import uuid
from datetime import datetime
from decimal import Decimal
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field

from hrpayroll.common.constants import MAX_YEAR, MIN_YEAR


class PeriodRequest(BaseModel):
    """Payload identifying a payroll month."""

    year: int = Field(..., ge=MIN_YEAR, le=MAX_YEAR)
    month: int = Field(..., ge=1, le=12)


class FinalizeResult(BaseModel):
    """Outcome of a successful finalize run."""

    year: int
    month: int
    employee_count: int
    snapshot_count: int
    frozen_at: datetime
    message: str


class FreezeStatus(BaseModel):
    """Read-only projection of a period's freeze state."""

    year: int
    month: int
    is_frozen: bool
    frozen_at: Optional[datetime] = None
    employee_count: int = 0
    snapshot_count: int = 0


class SnapshotResponse(BaseModel):
    """One employee-month of reconciled day counts."""

    model_config = ConfigDict(from_attributes=True)

    id: Optional[uuid.UUID] = None
    employee_id: str
    year: int
    month: int
    present_days: Decimal
    absent_days: Decimal
    leave_days: Decimal
    lop_days: Decimal
    total_working_days: int
    updated_at: Optional[datetime] = None
