"""Directory ORM models: Department, DepartmentManager, User.

These rows are owned by the identity / org-chart collaborator. The leave core
only reads them: role and approver_id drive authorization, department
membership and DepartmentManager drive request visibility.
"""

from __future__ import annotations

import uuid
from datetime import datetime
from typing import TYPE_CHECKING, Optional

import sqlalchemy as sa
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import Mapped, mapped_column, relationship

from leaveflow.common.audit import utcnow
from leaveflow.common.constants import UserRole
from leaveflow.database import Base

if TYPE_CHECKING:
    from leaveflow.leave.models import LeaveBalance


# ═════════════════════════════════════════════════════════════════════
# Department
# ═════════════════════════════════════════════════════════════════════


class Department(Base):
    """Organisational department."""

    __tablename__ = "departments"

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        primary_key=True,
        default=uuid.uuid4,
    )
    name: Mapped[str] = mapped_column(sa.String(150), unique=True, nullable=False)
    created_at: Mapped[datetime] = mapped_column(
        sa.DateTime(timezone=True), default=utcnow,
    )
    updated_at: Mapped[datetime] = mapped_column(
        sa.DateTime(timezone=True), default=utcnow, onupdate=utcnow,
    )

    # ── Relationships ───────────────────────────────────────────────
    members: Mapped[list[User]] = relationship(
        back_populates="department", foreign_keys="User.department_id",
    )
    managers: Mapped[list[DepartmentManager]] = relationship(
        back_populates="department",
    )

    def __repr__(self) -> str:
        return f"<Department {self.name!r}>"


class DepartmentManager(Base):
    """Manager ↔ department association (a manager may run several)."""

    __tablename__ = "department_managers"

    department_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        sa.ForeignKey("departments.id", ondelete="CASCADE"),
        primary_key=True,
    )
    manager_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        sa.ForeignKey("users.id", ondelete="CASCADE"),
        primary_key=True,
    )

    department: Mapped[Department] = relationship(back_populates="managers")
    manager: Mapped[User] = relationship(back_populates="managed_departments")


# ═════════════════════════════════════════════════════════════════════
# User
# ═════════════════════════════════════════════════════════════════════


class User(Base):
    """Employee account as seen by the leave core."""

    __tablename__ = "users"

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        primary_key=True,
        default=uuid.uuid4,
    )
    employee_code: Mapped[str] = mapped_column(
        sa.String(20), unique=True, nullable=False,
    )
    name: Mapped[str] = mapped_column(sa.String(200), nullable=False)
    email: Mapped[Optional[str]] = mapped_column(sa.String(255), unique=True)
    role: Mapped[UserRole] = mapped_column(
        sa.Enum(UserRole, name="user_role"),
        nullable=False,
        default=UserRole.USER,
    )

    # ── Org hierarchy ───────────────────────────────────────────────
    # Single direct approver; NULL means only HR/ADMIN can act on this
    # user's requests.
    approver_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        UUID(as_uuid=True), sa.ForeignKey("users.id"),
    )
    department_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        UUID(as_uuid=True), sa.ForeignKey("departments.id"),
    )

    is_active: Mapped[bool] = mapped_column(sa.Boolean, default=True)
    created_at: Mapped[datetime] = mapped_column(
        sa.DateTime(timezone=True), default=utcnow,
    )
    updated_at: Mapped[datetime] = mapped_column(
        sa.DateTime(timezone=True), default=utcnow, onupdate=utcnow,
    )

    # ── Relationships ───────────────────────────────────────────────
    department: Mapped[Optional[Department]] = relationship(
        back_populates="members", foreign_keys=[department_id],
    )
    approver: Mapped[Optional[User]] = relationship(
        remote_side=[id], foreign_keys=[approver_id],
    )
    managed_departments: Mapped[list[DepartmentManager]] = relationship(
        back_populates="manager",
    )
    leave_balances: Mapped[list["LeaveBalance"]] = relationship(
        back_populates="user",
    )

    def __repr__(self) -> str:
        return f"<User {self.employee_code} {self.name} ({self.role.value})>"
