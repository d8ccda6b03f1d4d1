"""Balance transaction engine — the leave ledger.

Business logic:
  - EMERGENCY leave is charged to the VACATION row of the same user and year
  - UNPAID leave and overtime never touch the ledger
  - Debits are a single conditional UPDATE, so two approvals racing on one
    row can never push used_days past allocated_days
  - Credits (cancelling approved leave) decrement unconditionally
  - HR provisioning, single and bulk manual correction, the all-employee
    listing and the yearly summary
"""

from __future__ import annotations

import logging
import uuid
from datetime import date
from decimal import Decimal
from typing import Optional, Union

from sqlalchemy import func, select, update
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from leaveflow.common.audit import create_audit_entry, utcnow
from leaveflow.common.constants import REDIRECTED_LEAVE_TYPES
from leaveflow.common.exceptions import (
    ConfigurationException,
    InsufficientBalanceException,
    NotFoundException,
    ValidationException,
)
from leaveflow.directory.models import User
from leaveflow.leave.calculator import request_amount
from leaveflow.leave.models import (
    LeaveBalance,
    LeaveRequest,
    LeaveType,
    OvertimeRequest,
)

logger = logging.getLogger(__name__)

AnyRequest = Union[LeaveRequest, OvertimeRequest]

_LEDGER_COLUMNS = ["allocated_days", "used_days", "updated_at"]


class BalanceLedger:
    """Reads and mutations of ``leave_balances`` rows."""

    # ─────────────────────────────────────────────────────────────────
    # Lookups
    # ─────────────────────────────────────────────────────────────────

    @staticmethod
    async def resolve_target_type(
        db: AsyncSession, leave_type: LeaveType,
    ) -> LeaveType:
        """Return the leave type whose ledger row *leave_type* is charged to."""
        target_name = REDIRECTED_LEAVE_TYPES.get(leave_type.name)
        if target_name is None:
            return leave_type

        result = await db.execute(
            select(LeaveType).where(LeaveType.name == target_name)
        )
        target = result.scalars().first()
        if target is None:
            logger.error(
                "Leave type %s redirects to %s, which is not in the catalog",
                leave_type.name, target_name,
            )
            raise ConfigurationException(
                f"{leave_type.name} leave is charged to {target_name}, "
                f"but no {target_name} leave type is configured."
            )
        return target

    @staticmethod
    async def get_row(
        db: AsyncSession,
        user_id: uuid.UUID,
        leave_type_id: uuid.UUID,
        year: int,
    ) -> Optional[LeaveBalance]:
        result = await db.execute(
            select(LeaveBalance)
            .where(
                LeaveBalance.user_id == user_id,
                LeaveBalance.leave_type_id == leave_type_id,
                LeaveBalance.year == year,
            )
            .execution_options(populate_existing=True)
        )
        return result.scalars().first()

    @staticmethod
    def _insufficient(
        leave_type: LeaveType,
        target: LeaveType,
        user_id: uuid.UUID,
        available: Decimal,
        amount: Decimal,
    ) -> InsufficientBalanceException:
        logger.warning(
            "Rejected debit of %s %s days for user %s (available %s)",
            amount, target.name, user_id, available,
        )
        return InsufficientBalanceException(
            target.name,
            available=available,
            requested=amount,
            redirected_from=leave_type.name if leave_type.id != target.id else None,
        )

    # ─────────────────────────────────────────────────────────────────
    # Pre-checks
    # ─────────────────────────────────────────────────────────────────

    @staticmethod
    async def ensure_available(
        db: AsyncSession,
        *,
        user_id: uuid.UUID,
        leave_type: LeaveType,
        start_date: date,
        amount: Decimal,
        missing_row_is_empty: bool = False,
    ) -> Optional[LeaveBalance]:
        """Raise unless the ledger row can absorb a debit of *amount*.

        Nothing is written.  Returns the row, or None for UNPAID leave.  With
        ``missing_row_is_empty`` an absent row counts as a zero allocation
        (submission); otherwise it is a NotFound (approval).
        """
        if not leave_type.is_paid:
            return None
        target = await BalanceLedger.resolve_target_type(db, leave_type)
        year = start_date.year

        row = await BalanceLedger.get_row(db, user_id, target.id, year)
        if row is None:
            if missing_row_is_empty:
                raise BalanceLedger._insufficient(
                    leave_type, target, user_id, Decimal("0"), amount,
                )
            raise NotFoundException("LeaveBalance", f"{user_id}/{target.name}/{year}")
        if row.used_days + amount > row.allocated_days:
            raise BalanceLedger._insufficient(
                leave_type, target, user_id, row.remaining_days, amount,
            )
        return row

    # ─────────────────────────────────────────────────────────────────
    # Mutations
    # ─────────────────────────────────────────────────────────────────

    @staticmethod
    async def debit(db: AsyncSession, request: AnyRequest) -> Optional[LeaveBalance]:
        """Charge the request's day count to its ledger row.

        Must run inside the caller's transaction so the debit commits or
        rolls back with the status change.
        """
        amount = request_amount(request)
        if amount is None:
            return None
        row = await BalanceLedger.ensure_available(
            db,
            user_id=request.user_id,
            leave_type=request.leave_type,
            start_date=request.start_date,
            amount=amount,
        )
        if row is None:
            return None

        result = await db.execute(
            update(LeaveBalance)
            .where(
                LeaveBalance.id == row.id,
                LeaveBalance.used_days + amount <= LeaveBalance.allocated_days,
            )
            .values(used_days=LeaveBalance.used_days + amount, updated_at=utcnow())
            .execution_options(synchronize_session=False)
        )
        if result.rowcount != 1:
            # Another debit on the same row committed after our pre-check.
            await db.refresh(row, attribute_names=_LEDGER_COLUMNS)
            target = await db.get(LeaveType, row.leave_type_id)
            raise BalanceLedger._insufficient(
                request.leave_type, target, request.user_id,
                row.remaining_days, amount,
            )

        await db.refresh(row, attribute_names=_LEDGER_COLUMNS)
        logger.info(
            "Debited %s days from balance %s (now %s/%s)",
            amount, row.id, row.used_days, row.allocated_days,
        )
        return row

    @staticmethod
    async def credit(db: AsyncSession, request: AnyRequest) -> Optional[LeaveBalance]:
        """Give back the request's day count to the row its debit hit."""
        amount = request_amount(request)
        if amount is None or not request.leave_type.is_paid:
            return None
        target = await BalanceLedger.resolve_target_type(db, request.leave_type)
        year = request.start_date.year

        row = await BalanceLedger.get_row(db, request.user_id, target.id, year)
        if row is None:
            raise NotFoundException(
                "LeaveBalance", f"{request.user_id}/{target.name}/{year}",
            )

        await db.execute(
            update(LeaveBalance)
            .where(LeaveBalance.id == row.id)
            .values(used_days=LeaveBalance.used_days - amount, updated_at=utcnow())
            .execution_options(synchronize_session=False)
        )
        await db.refresh(row, attribute_names=_LEDGER_COLUMNS)
        logger.info(
            "Credited %s days to balance %s (now %s/%s)",
            amount, row.id, row.used_days, row.allocated_days,
        )
        return row

    # ─────────────────────────────────────────────────────────────────
    # Reads for the HTTP layer
    # ─────────────────────────────────────────────────────────────────

    @staticmethod
    async def get_leave_types(db: AsyncSession) -> list[LeaveType]:
        result = await db.execute(select(LeaveType).order_by(LeaveType.name))
        return list(result.scalars().all())

    @staticmethod
    async def get_balances(
        db: AsyncSession, user_id: uuid.UUID, year: int,
    ) -> list[LeaveBalance]:
        result = await db.execute(
            select(LeaveBalance)
            .join(LeaveType, LeaveBalance.leave_type_id == LeaveType.id)
            .where(LeaveBalance.user_id == user_id, LeaveBalance.year == year)
            .options(selectinload(LeaveBalance.leave_type))
            .order_by(LeaveType.name)
        )
        return list(result.scalars().all())

    @staticmethod
    async def list_all_balances(db: AsyncSession, year: int) -> list[LeaveBalance]:
        """Every employee's rows for *year*, with employee, department and type."""
        result = await db.execute(
            select(LeaveBalance)
            .join(User, LeaveBalance.user_id == User.id)
            .join(LeaveType, LeaveBalance.leave_type_id == LeaveType.id)
            .where(LeaveBalance.year == year)
            .options(
                selectinload(LeaveBalance.user).selectinload(User.department),
                selectinload(LeaveBalance.leave_type),
            )
            .order_by(User.name, LeaveType.name)
            .execution_options(populate_existing=True)
        )
        return list(result.scalars().all())

    @staticmethod
    async def balance_summary(db: AsyncSession, year: int) -> dict:
        """Overall and per-leave-type totals for *year*.

        Every catalog type is listed, with zeros when it has no rows.
        """
        result = await db.execute(
            select(
                LeaveType.id,
                LeaveType.name,
                func.count(LeaveBalance.id),
                func.coalesce(func.sum(LeaveBalance.allocated_days), 0),
                func.coalesce(func.sum(LeaveBalance.used_days), 0),
            )
            .outerjoin(
                LeaveBalance,
                (LeaveBalance.leave_type_id == LeaveType.id)
                & (LeaveBalance.year == year),
            )
            .group_by(LeaveType.id, LeaveType.name)
            .order_by(LeaveType.name)
        )
        by_type = []
        for type_id, name, employees, allocated, used in result.all():
            allocated = Decimal(str(allocated))
            used = Decimal(str(used))
            by_type.append({
                "leave_type_id": type_id,
                "leave_type_name": name,
                "employees": employees,
                "total_allocated": allocated,
                "total_used": used,
                "total_remaining": allocated - used,
            })

        total_employees = (await db.execute(
            select(func.count(func.distinct(LeaveBalance.user_id)))
            .where(LeaveBalance.year == year)
        )).scalar_one()
        total_allocated = sum((t["total_allocated"] for t in by_type), Decimal("0"))
        total_used = sum((t["total_used"] for t in by_type), Decimal("0"))
        return {
            "year": year,
            "total_employees": total_employees,
            "total_allocated": total_allocated,
            "total_used": total_used,
            "total_remaining": total_allocated - total_used,
            "by_type": by_type,
        }

    # ─────────────────────────────────────────────────────────────────
    # HR maintenance
    # ─────────────────────────────────────────────────────────────────

    @staticmethod
    async def provision_balances(
        db: AsyncSession,
        user_id: uuid.UUID,
        year: int,
        *,
        actor_id: Optional[uuid.UUID] = None,
    ) -> list[LeaveBalance]:
        """Open a row at the default allocation for every leave type the user
        has no row for in *year*.  Existing rows are left alone."""

        user = await db.get(User, user_id)
        if user is None:
            raise NotFoundException("User", str(user_id))

        leave_types = await BalanceLedger.get_leave_types(db)
        existing = {
            row.leave_type_id
            for row in await BalanceLedger.get_balances(db, user_id, year)
        }

        created: list[LeaveBalance] = []
        for leave_type in leave_types:
            if leave_type.id in existing:
                continue
            row = LeaveBalance(
                user_id=user_id,
                leave_type_id=leave_type.id,
                year=year,
                allocated_days=leave_type.default_allocated_days,
                used_days=Decimal("0"),
            )
            db.add(row)
            created.append(row)
        await db.flush()

        if created:
            await create_audit_entry(
                db,
                action="provision",
                entity_type="leave_balance",
                actor_id=actor_id,
                new_values={
                    "user_id": str(user_id),
                    "year": year,
                    "leave_types": len(created),
                },
            )
        logger.info(
            "Provisioned %d balance rows for user %s in %d",
            len(created), user_id, year,
        )
        return await BalanceLedger.get_balances(db, user_id, year)

    @staticmethod
    async def adjust_balance(
        db: AsyncSession,
        balance_id: uuid.UUID,
        *,
        allocated_days: Decimal,
        used_days: Decimal,
        actor_id: Optional[uuid.UUID] = None,
    ) -> LeaveBalance:
        """HR correction: overwrite allocated / used on one row.

        The only write path allowed to leave ``used_days > allocated_days``.
        """
        errors: dict[str, list[str]] = {}
        if allocated_days < 0:
            errors["allocated_days"] = ["Must be zero or greater."]
        if used_days < 0:
            errors["used_days"] = ["Must be zero or greater."]
        if errors:
            raise ValidationException(errors)

        row = await db.get(LeaveBalance, balance_id)
        if row is None:
            raise NotFoundException("LeaveBalance", str(balance_id))

        old_values = {
            "allocated_days": str(row.allocated_days),
            "used_days": str(row.used_days),
        }
        row.allocated_days = allocated_days
        row.used_days = used_days
        row.updated_at = utcnow()
        await db.flush()

        await create_audit_entry(
            db,
            action="adjust",
            entity_type="leave_balance",
            entity_id=row.id,
            actor_id=actor_id,
            old_values=old_values,
            new_values={
                "allocated_days": str(allocated_days),
                "used_days": str(used_days),
            },
        )
        await db.refresh(row, attribute_names=["leave_type"])
        return row

    @staticmethod
    async def bulk_adjust(
        db: AsyncSession,
        updates: list[dict],
        *,
        actor_id: Optional[uuid.UUID] = None,
    ) -> list[LeaveBalance]:
        """Apply several HR corrections as one unit.

        Each item carries ``balance_id``, ``allocated_days`` and ``used_days``.
        If any item is invalid or names an unknown row, none are written.
        """
        errors: dict[str, list[str]] = {}
        if not updates:
            errors["updates"] = ["At least one correction is required."]
        seen: set[uuid.UUID] = set()
        for index, item in enumerate(updates):
            if item["allocated_days"] < 0:
                errors[f"updates.{index}.allocated_days"] = ["Must be zero or greater."]
            if item["used_days"] < 0:
                errors[f"updates.{index}.used_days"] = ["Must be zero or greater."]
            if item["balance_id"] in seen:
                errors[f"updates.{index}.balance_id"] = ["Balance listed more than once."]
            seen.add(item["balance_id"])
        if errors:
            raise ValidationException(errors)

        rows: list[LeaveBalance] = []
        async with db.begin_nested():
            for item in updates:
                rows.append(await BalanceLedger.adjust_balance(
                    db,
                    item["balance_id"],
                    allocated_days=item["allocated_days"],
                    used_days=item["used_days"],
                    actor_id=actor_id,
                ))
        logger.info("Bulk-adjusted %d balance rows", len(rows))
        return rows
