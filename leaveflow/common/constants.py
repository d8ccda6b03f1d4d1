"""Enums and constants for LeaveFlow — matching PostgreSQL ENUM types."""

from __future__ import annotations

import enum


# ── Auth / Roles ────────────────────────────────────────────────────

class UserRole(str, enum.Enum):
    USER = "USER"
    MANAGER = "MANAGER"
    HR = "HR"
    ADMIN = "ADMIN"


# Roles allowed to act on a request in any state and to override others.
HR_ROLES: frozenset[UserRole] = frozenset({UserRole.HR, UserRole.ADMIN})


# ── Requests ────────────────────────────────────────────────────────

class RequestStatus(str, enum.Enum):
    PENDING_MANAGER = "PENDING_MANAGER"
    PENDING_HR = "PENDING_HR"
    APPROVED = "APPROVED"
    REJECTED = "REJECTED"
    CANCELLED = "CANCELLED"


PENDING_STATUSES: frozenset[RequestStatus] = frozenset(
    {RequestStatus.PENDING_MANAGER, RequestStatus.PENDING_HR}
)
CANCELLABLE_STATUSES: frozenset[RequestStatus] = PENDING_STATUSES | {
    RequestStatus.APPROVED
}


class RequestKind(str, enum.Enum):
    leave = "leave"
    overtime = "overtime"


class ApprovalAction(str, enum.Enum):
    approve = "approve"
    reject = "reject"


class LeaveSession(str, enum.Enum):
    FULL_DAY = "FULL_DAY"
    MORNING = "MORNING"
    AFTERNOON = "AFTERNOON"


# ── Leave type catalog keys ─────────────────────────────────────────

class LeaveTypeName(str, enum.Enum):
    """Catalog names the ledger treats specially."""

    VACATION = "VACATION"
    SICK = "SICK"
    EMERGENCY = "EMERGENCY"
    UNPAID = "UNPAID"


# The only leave type whose unused days roll into the next year.
ROLLOVER_LEAVE_TYPE = LeaveTypeName.VACATION.value

# EMERGENCY requests debit and credit this type's ledger row instead of their own.
REDIRECTED_LEAVE_TYPES: dict[str, str] = {
    LeaveTypeName.EMERGENCY.value: LeaveTypeName.VACATION.value,
}


# ── Misc constants ──────────────────────────────────────────────────

MIN_YEAR = 2000
MAX_YEAR = 2100
MAX_PAGE_SIZE = 100
DEFAULT_PAGE_SIZE = 50
