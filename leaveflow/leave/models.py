"""Leave ORM models: LeaveType, LeaveBalance, LeaveRequest, OvertimeRequest."""

from __future__ import annotations

import uuid
from datetime import date, datetime
from decimal import Decimal
from typing import TYPE_CHECKING, Optional

import sqlalchemy as sa
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import Mapped, mapped_column, relationship

from leaveflow.common.audit import utcnow
from leaveflow.common.constants import (
    LeaveSession,
    LeaveTypeName,
    RequestKind,
    RequestStatus,
)
from leaveflow.database import Base

if TYPE_CHECKING:
    from leaveflow.directory.models import User


class LeaveType(Base):
    __tablename__ = "leave_types"

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        primary_key=True,
        default=uuid.uuid4,
    )
    name: Mapped[str] = mapped_column(sa.String(50), unique=True, nullable=False)
    description: Mapped[Optional[str]] = mapped_column(sa.Text)
    default_allocated_days: Mapped[Decimal] = mapped_column(
        sa.Numeric(5, 1), nullable=False, default=Decimal("0"),
    )
    created_at: Mapped[datetime] = mapped_column(
        sa.DateTime(timezone=True), default=utcnow,
    )
    updated_at: Mapped[datetime] = mapped_column(
        sa.DateTime(timezone=True), default=utcnow, onupdate=utcnow,
    )

    # Relationships
    balances: Mapped[list[LeaveBalance]] = relationship(back_populates="leave_type")
    requests: Mapped[list[LeaveRequest]] = relationship(back_populates="leave_type")

    @property
    def is_paid(self) -> bool:
        return self.name != LeaveTypeName.UNPAID.value

    def __repr__(self) -> str:
        return f"<LeaveType {self.name} ({self.default_allocated_days})>"


class LeaveBalance(Base):
    """One ledger row: allocated/used days for (user, leave type, year)."""

    __tablename__ = "leave_balances"
    __table_args__ = (
        sa.UniqueConstraint(
            "user_id", "leave_type_id", "year", name="uq_leave_balance"
        ),
        sa.CheckConstraint("allocated_days >= 0", name="ck_leave_balance_allocated"),
    )

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        primary_key=True,
        default=uuid.uuid4,
    )
    user_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), sa.ForeignKey("users.id"), nullable=False
    )
    leave_type_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), sa.ForeignKey("leave_types.id"), nullable=False
    )
    year: Mapped[int] = mapped_column(sa.Integer, nullable=False)
    allocated_days: Mapped[Decimal] = mapped_column(
        sa.Numeric(5, 1), nullable=False, default=Decimal("0")
    )
    used_days: Mapped[Decimal] = mapped_column(
        sa.Numeric(5, 1), nullable=False, default=Decimal("0")
    )
    updated_at: Mapped[datetime] = mapped_column(
        sa.DateTime(timezone=True), default=utcnow, onupdate=utcnow,
    )

    # Relationships
    user: Mapped[User] = relationship(
        back_populates="leave_balances"
    )
    leave_type: Mapped[LeaveType] = relationship(back_populates="balances")

    @property
    def remaining_days(self) -> Decimal:
        return Decimal(self.allocated_days) - Decimal(self.used_days)

    def __repr__(self) -> str:
        return (
            f"<LeaveBalance user={self.user_id} type={self.leave_type_id} "
            f"{self.year}: {self.used_days}/{self.allocated_days}>"
        )


# ═════════════════════════════════════════════════════════════════════
# Requests
# ═════════════════════════════════════════════════════════════════════


class ApprovalTrailMixin:
    """Status plus the per-stage audit columns shared by leave and overtime."""

    reason: Mapped[str] = mapped_column(sa.Text, nullable=False)
    status: Mapped[RequestStatus] = mapped_column(
        sa.Enum(RequestStatus, name="request_status"),
        nullable=False,
        default=RequestStatus.PENDING_MANAGER,
    )
    manager_action_by: Mapped[Optional[uuid.UUID]] = mapped_column(
        UUID(as_uuid=True), sa.ForeignKey("users.id")
    )
    manager_action_at: Mapped[Optional[datetime]] = mapped_column(
        sa.DateTime(timezone=True)
    )
    manager_comments: Mapped[Optional[str]] = mapped_column(sa.Text)
    hr_action_by: Mapped[Optional[uuid.UUID]] = mapped_column(
        UUID(as_uuid=True), sa.ForeignKey("users.id")
    )
    hr_action_at: Mapped[Optional[datetime]] = mapped_column(
        sa.DateTime(timezone=True)
    )
    hr_comments: Mapped[Optional[str]] = mapped_column(sa.Text)
    created_at: Mapped[datetime] = mapped_column(
        sa.DateTime(timezone=True), default=utcnow,
    )
    updated_at: Mapped[datetime] = mapped_column(
        sa.DateTime(timezone=True), default=utcnow,
    )


class LeaveRequest(ApprovalTrailMixin, Base):
    __tablename__ = "leave_requests"
    __table_args__ = (
        sa.Index("ix_leave_requests_user_status", "user_id", "status"),
    )

    kind = RequestKind.leave

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        primary_key=True,
        default=uuid.uuid4,
    )
    user_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), sa.ForeignKey("users.id"), nullable=False
    )
    leave_type_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), sa.ForeignKey("leave_types.id"), nullable=False
    )
    start_date: Mapped[date] = mapped_column(sa.Date, nullable=False)
    end_date: Mapped[date] = mapped_column(sa.Date, nullable=False)
    session: Mapped[LeaveSession] = mapped_column(
        sa.Enum(LeaveSession, name="leave_session"),
        nullable=False,
        default=LeaveSession.FULL_DAY,
    )
    # Display copy of the day count; the ledger always recomputes it.
    total_days: Mapped[Decimal] = mapped_column(sa.Numeric(5, 1), nullable=False)

    # Relationships
    user: Mapped[User] = relationship(
        foreign_keys=[user_id]
    )
    leave_type: Mapped[LeaveType] = relationship(back_populates="requests")

    def __repr__(self) -> str:
        return (
            f"<LeaveRequest {self.id} {self.start_date}..{self.end_date} "
            f"{self.status.value}>"
        )


class OvertimeRequest(ApprovalTrailMixin, Base):
    __tablename__ = "overtime_requests"
    __table_args__ = (
        sa.Index("ix_overtime_requests_user_status", "user_id", "status"),
    )

    kind = RequestKind.overtime

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        primary_key=True,
        default=uuid.uuid4,
    )
    user_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), sa.ForeignKey("users.id"), nullable=False
    )
    start_time: Mapped[datetime] = mapped_column(
        sa.DateTime(timezone=True), nullable=False
    )
    end_time: Mapped[datetime] = mapped_column(
        sa.DateTime(timezone=True), nullable=False
    )
    total_hours: Mapped[Decimal] = mapped_column(sa.Numeric(6, 2), nullable=False)

    # Relationships
    user: Mapped[User] = relationship(
        foreign_keys=[user_id]
    )

    def __repr__(self) -> str:
        return (
            f"<OvertimeRequest {self.id} {self.start_time}..{self.end_time} "
            f"{self.status.value}>"
        )
