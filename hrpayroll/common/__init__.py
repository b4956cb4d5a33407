"""Common module — shared utilities for HR Payroll."""

from hrpayroll.common.audit import AuditTrail, create_audit_entry
from hrpayroll.common.constants import (
    PAID_FULL_LEAVE_TYPES,
    PAID_HALF_LEAVE_TYPES,
    UNPAID_LEAVE_TYPES,
    ApprovalStatus,
    DayBucket,
    FreezeState,
    LeaveClass,
    LeaveOverlapPolicy,
    UserRole,
)
from hrpayroll.common.exceptions import (
    AlreadyFrozenError,
    AppException,
    ConflictError,
    ForbiddenException,
    NoDataError,
    NotFoundException,
    NotFrozenError,
    PeriodNotFrozenError,
    PersistenceError,
    ValidationError,
    ValidationException,
    register_exception_handlers,
)

__all__ = [
    # Audit
    "AuditTrail",
    "create_audit_entry",
    # Constants / Enums
    "ApprovalStatus",
    "DayBucket",
    "FreezeState",
    "LeaveClass",
    "LeaveOverlapPolicy",
    "UserRole",
    "PAID_FULL_LEAVE_TYPES",
    "PAID_HALF_LEAVE_TYPES",
    "UNPAID_LEAVE_TYPES",
    # Exceptions
    "AlreadyFrozenError",
    "AppException",
    "ConflictError",
    "ForbiddenException",
    "NoDataError",
    "NotFoundException",
    "NotFrozenError",
    "PeriodNotFrozenError",
    "PersistenceError",
    "ValidationError",
    "ValidationException",
    "register_exception_handlers",
]
