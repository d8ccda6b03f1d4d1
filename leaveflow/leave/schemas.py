"""Leave / overtime Pydantic v2 schemas — request / response validation.

Naming conventions:
  - *Create / *Update / *Request  → request bodies (write)
  - *Out                          → response bodies (read)
"""

from __future__ import annotations

import uuid
from datetime import date, datetime
from decimal import Decimal
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from leaveflow.common.constants import (
    MAX_YEAR,
    MIN_YEAR,
    LeaveSession,
    RequestKind,
    RequestStatus,
)


# ═════════════════════════════════════════════════════════════════════
# Catalog & ledger
# ═════════════════════════════════════════════════════════════════════


class LeaveTypeOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    name: str
    description: Optional[str] = None
    default_allocated_days: Decimal
    is_paid: bool = True


class LeaveBalanceOut(BaseModel):
    """One ledger row with the computed remaining days."""

    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    user_id: uuid.UUID
    leave_type_id: uuid.UUID
    year: int
    allocated_days: Decimal
    used_days: Decimal
    remaining_days: Decimal

    leave_type: Optional[LeaveTypeOut] = None


class BalanceAdjustRequest(BaseModel):
    """HR correction of a single ledger row."""

    allocated_days: Decimal = Field(..., ge=0, decimal_places=1)
    used_days: Decimal = Field(..., ge=0, decimal_places=1)


class BalanceAdjustItem(BalanceAdjustRequest):
    balance_id: uuid.UUID


class BulkBalanceAdjustRequest(BaseModel):
    """Several corrections applied all-or-nothing."""

    updates: list[BalanceAdjustItem] = Field(..., min_length=1)


class DepartmentRef(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    name: str


class EmployeeRef(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    name: str
    employee_code: str
    email: Optional[str] = None
    department: Optional[DepartmentRef] = None


class EmployeeBalanceOut(LeaveBalanceOut):
    """Ledger row with its employee, for the HR balance screen."""

    employee: EmployeeRef = Field(..., validation_alias="user")


class LeaveTypeTotalsOut(BaseModel):
    leave_type_id: uuid.UUID
    leave_type_name: str
    employees: int
    total_allocated: Decimal
    total_used: Decimal
    total_remaining: Decimal


class BalanceSummaryOut(BaseModel):
    year: int
    total_employees: int
    total_allocated: Decimal
    total_used: Decimal
    total_remaining: Decimal
    by_type: list[LeaveTypeTotalsOut]


class RenewalRequest(BaseModel):
    year: int = Field(..., ge=MIN_YEAR, le=MAX_YEAR, description="Year to open")


class RenewalOut(BaseModel):
    year: int
    renewed: int = Field(..., description="Number of users whose rows were written")
    rollover: Decimal = Field(..., description="Total VACATION days carried over")


# ═════════════════════════════════════════════════════════════════════
# Requests — write
# ═════════════════════════════════════════════════════════════════════


class LeaveRequestCreate(BaseModel):
    """Payload for submitting or editing a leave request."""

    leave_type_id: uuid.UUID
    start_date: date = Field(..., description="First day of leave (inclusive)")
    end_date: date = Field(..., description="Last day of leave (inclusive)")
    session: LeaveSession = LeaveSession.FULL_DAY
    reason: str = Field(..., min_length=1, max_length=1000)

    @model_validator(mode="after")
    def validate_dates(self) -> "LeaveRequestCreate":
        if self.start_date > self.end_date:
            raise ValueError("start_date must be on or before end_date.")
        return self


class OvertimeRequestCreate(BaseModel):
    start_time: datetime
    end_time: datetime
    reason: str = Field(..., min_length=1, max_length=1000)

    @model_validator(mode="after")
    def validate_times(self) -> "OvertimeRequestCreate":
        if (self.start_time.utcoffset() is None) != (self.end_time.utcoffset() is None):
            raise ValueError("start_time and end_time must both carry a UTC offset, or neither.")
        if self.start_time >= self.end_time:
            raise ValueError("start_time must be before end_time.")
        return self


class ApproveRequest(BaseModel):
    comments: Optional[str] = Field(None, max_length=1000)


class RejectRequest(BaseModel):
    comments: str = Field(..., max_length=1000)

    @field_validator("comments")
    @classmethod
    def comments_not_blank(cls, v: str) -> str:
        if not v.strip():
            raise ValueError("A comment is required to reject a request.")
        return v


# ═════════════════════════════════════════════════════════════════════
# Requests — read
# ═════════════════════════════════════════════════════════════════════


class RequestOut(BaseModel):
    """Leave or overtime request.  Fields of the other kind stay null."""

    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    kind: RequestKind
    user_id: uuid.UUID
    user_name: Optional[str] = None
    status: RequestStatus
    reason: str

    # Leave
    leave_type_id: Optional[uuid.UUID] = None
    leave_type_name: Optional[str] = None
    start_date: Optional[date] = None
    end_date: Optional[date] = None
    session: Optional[LeaveSession] = None
    total_days: Optional[Decimal] = None

    # Overtime
    start_time: Optional[datetime] = None
    end_time: Optional[datetime] = None
    total_hours: Optional[Decimal] = None

    # Approval trail
    manager_action_by: Optional[uuid.UUID] = None
    manager_action_at: Optional[datetime] = None
    manager_comments: Optional[str] = None
    hr_action_by: Optional[uuid.UUID] = None
    hr_action_at: Optional[datetime] = None
    hr_comments: Optional[str] = None

    created_at: datetime
    updated_at: datetime


class ActionResult(BaseModel):
    """Outcome of approve / reject / cancel."""

    id: uuid.UUID
    kind: RequestKind
    previous_status: RequestStatus
    status: RequestStatus
