"""Annual balance renewal with VACATION-only rollover."""

from __future__ import annotations

import logging
import uuid
from decimal import Decimal
from typing import Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from leaveflow.common.audit import create_audit_entry, utcnow
from leaveflow.common.constants import MAX_YEAR, MIN_YEAR, ROLLOVER_LEAVE_TYPE
from leaveflow.common.exceptions import ConfigurationException, ValidationException
from leaveflow.directory.models import User
from leaveflow.leave.models import LeaveBalance, LeaveType
from leaveflow.leave.schemas import RenewalOut

logger = logging.getLogger(__name__)


class RenewalEngine:

    @staticmethod
    async def renew(
        db: AsyncSession,
        new_year: int,
        *,
        actor_id: Optional[uuid.UUID] = None,
    ) -> RenewalOut:
        """Write every active user's ledger rows for *new_year*.

        For each (user, leave type) the new allocation is the type's default
        plus, for VACATION only, whatever was left unused in the previous
        year's row.  Rows that already exist are overwritten and their used
        days reset to zero, so running twice gives the same result as once.
        All rows are written in one SAVEPOINT.
        """
        if not MIN_YEAR <= new_year <= MAX_YEAR:
            raise ValidationException(
                {"year": [f"Year must be between {MIN_YEAR} and {MAX_YEAR}."]}
            )

        leave_types = (
            await db.execute(select(LeaveType).order_by(LeaveType.name))
        ).scalars().all()
        if not leave_types:
            logger.error("Renewal for %d aborted: leave type catalog is empty", new_year)
            raise ConfigurationException(
                "No leave types are configured; nothing to renew."
            )

        user_ids = (
            await db.execute(
                select(User.id).where(User.is_active.is_(True)).order_by(User.id)
            )
        ).scalars().all()

        previous = {
            (row.user_id, row.leave_type_id): row
            for row in (
                await db.execute(
                    select(LeaveBalance)
                    .where(LeaveBalance.year == new_year - 1)
                    .execution_options(populate_existing=True)
                )
            ).scalars().all()
        }
        existing = {
            (row.user_id, row.leave_type_id): row
            for row in (
                await db.execute(
                    select(LeaveBalance)
                    .where(LeaveBalance.year == new_year)
                    .execution_options(populate_existing=True)
                )
            ).scalars().all()
        }

        renewed = 0
        total_rollover = Decimal("0")
        now = utcnow()

        async with db.begin_nested():
            for user_id in user_ids:
                for leave_type in leave_types:
                    rollover = Decimal("0")
                    prev = previous.get((user_id, leave_type.id))
                    if prev is not None and leave_type.name == ROLLOVER_LEAVE_TYPE:
                        rollover = max(
                            Decimal("0"), prev.allocated_days - prev.used_days,
                        )
                    total_rollover += rollover
                    allocated = leave_type.default_allocated_days + rollover

                    row = existing.get((user_id, leave_type.id))
                    if row is None:
                        db.add(LeaveBalance(
                            user_id=user_id,
                            leave_type_id=leave_type.id,
                            year=new_year,
                            allocated_days=allocated,
                            used_days=Decimal("0"),
                        ))
                    else:
                        row.allocated_days = allocated
                        row.used_days = Decimal("0")
                        row.updated_at = now
                renewed += 1
            await db.flush()

        await create_audit_entry(
            db,
            action="renew",
            entity_type="leave_balance",
            actor_id=actor_id,
            new_values={
                "year": new_year,
                "renewed": renewed,
                "rollover": str(total_rollover),
            },
        )
        logger.info(
            "Renewed balances for %d users into %d (%s VACATION days rolled over)",
            renewed, new_year, total_rollover,
        )
        return RenewalOut(year=new_year, renewed=renewed, rollover=total_rollover)
