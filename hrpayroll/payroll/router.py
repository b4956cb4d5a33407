"""Payroll router — finalize / unfreeze attendance, status, snapshots, preview.

All endpoints require authentication. Writes are restricted to HR admins
and rate-limited per client.
"""

from typing import Optional

from fastapi import APIRouter, Depends, Query, Request
from sqlalchemy.ext.asyncio import AsyncSession

from hrpayroll.auth.dependencies import require_role
from hrpayroll.auth.schemas import CurrentUser
from hrpayroll.common.constants import MAX_YEAR, MIN_YEAR, UserRole
from hrpayroll.common.rate_limit import limiter
from hrpayroll.database import get_db
from hrpayroll.payroll.schemas import (
    FinalizeResult,
    FreezeStatus,
    PeriodRequest,
    SnapshotResponse,
)
from hrpayroll.payroll.service import PayrollFreezeService

router = APIRouter(prefix="", tags=["payroll"])

WRITE_LIMIT = "10/minute"


# ── POST /finalize ──────────────────────────────────────────────────

@router.post("/finalize", response_model=FinalizeResult)
@limiter.limit(WRITE_LIMIT)
async def finalize(
    request: Request,
    body: PeriodRequest,
    user: CurrentUser = Depends(require_role(UserRole.hr_admin)),
    db: AsyncSession = Depends(get_db),
):
    """Reconcile attendance for a month and freeze it for payroll."""
    return await PayrollFreezeService.finalize(
        db, body.year, body.month, actor_id=user.subject,
    )


# ── POST /unfreeze ──────────────────────────────────────────────────

@router.post("/unfreeze", response_model=FreezeStatus)
@limiter.limit(WRITE_LIMIT)
async def unfreeze(
    request: Request,
    body: PeriodRequest,
    user: CurrentUser = Depends(require_role(UserRole.hr_admin)),
    db: AsyncSession = Depends(get_db),
):
    """Lift the freeze on a month so it can be finalized again."""
    return await PayrollFreezeService.unfreeze(
        db, body.year, body.month, actor_id=user.subject,
    )


# ── GET /status ─────────────────────────────────────────────────────

@router.get("/status", response_model=FreezeStatus)
async def freeze_status(
    year: int = Query(..., ge=MIN_YEAR, le=MAX_YEAR),
    month: int = Query(..., ge=1, le=12),
    user: CurrentUser = Depends(require_role(UserRole.manager)),
    db: AsyncSession = Depends(get_db),
):
    """Freeze state and counts for a month."""
    return await PayrollFreezeService.status(db, year, month)


# ── GET /snapshots ──────────────────────────────────────────────────

@router.get("/snapshots", response_model=list[SnapshotResponse])
async def list_snapshots(
    year: int = Query(..., ge=MIN_YEAR, le=MAX_YEAR),
    month: int = Query(..., ge=1, le=12),
    employee_id: Optional[str] = Query(None, max_length=50),
    require_frozen: bool = Query(False),
    user: CurrentUser = Depends(require_role(UserRole.hr_admin)),
    db: AsyncSession = Depends(get_db),
):
    """Reconciled day counts per employee for a month."""
    return await PayrollFreezeService.get_snapshots(
        db,
        year,
        month,
        require_frozen=require_frozen,
        employee_id=employee_id,
    )


# ── GET /preview ────────────────────────────────────────────────────

@router.get("/preview", response_model=list[SnapshotResponse])
async def preview(
    year: int = Query(..., ge=MIN_YEAR, le=MAX_YEAR),
    month: int = Query(..., ge=1, le=12),
    user: CurrentUser = Depends(require_role(UserRole.hr_admin)),
    db: AsyncSession = Depends(get_db),
):
    """Dry-run the reconciliation without writing snapshots or freezing."""
    return await PayrollFreezeService.preview(db, year, month)
