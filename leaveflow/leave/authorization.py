"""Authorization resolver: who may act on, cancel, or see a request.

Everything here is a pure function of the actor's role and the owner's
approver / department.  The ``*_clause`` helpers express the same rules as SQL
so queues and listings never drift from the per-request checks.
"""

from __future__ import annotations

import uuid
from typing import Iterable, Union

from sqlalchemy import and_, false, or_, select, true
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.sql.elements import ColumnElement

from leaveflow.common.constants import (
    CANCELLABLE_STATUSES,
    HR_ROLES,
    RequestStatus,
)
from leaveflow.directory.models import DepartmentManager, User
from leaveflow.leave.models import LeaveRequest, OvertimeRequest

AnyRequest = Union[LeaveRequest, OvertimeRequest]
RequestModel = Union[type[LeaveRequest], type[OvertimeRequest]]


class Authorizer:
    """Role and approver-chain checks shared by the state machine and listings."""

    @staticmethod
    def is_hr(actor: User) -> bool:
        return actor.role in HR_ROLES

    @staticmethod
    def can_act(actor: User, request: AnyRequest, owner: User) -> bool:
        """May *actor* approve or reject *request* in its current state?

        HR and ADMIN may act in any state.  Everyone else may act only on a
        ``PENDING_MANAGER`` request whose owner names them as approver.  An
        owner with no approver can therefore only be handled by HR.
        """
        if Authorizer.is_hr(actor):
            return True
        if request.status != RequestStatus.PENDING_MANAGER:
            return False
        return owner.approver_id is not None and owner.approver_id == actor.id

    @staticmethod
    def can_cancel(actor: User, request: AnyRequest) -> bool:
        if request.status not in CANCELLABLE_STATUSES:
            return False
        return request.user_id == actor.id or Authorizer.is_hr(actor)

    @staticmethod
    def can_view(
        actor: User,
        request: AnyRequest,
        owner: User,
        managed_department_ids: Iterable[uuid.UUID] = (),
    ) -> bool:
        if Authorizer.is_hr(actor) or request.user_id == actor.id:
            return True
        if owner.approver_id == actor.id:
            return True
        return (
            owner.department_id is not None
            and owner.department_id in set(managed_department_ids)
        )

    # ── SQL forms ───────────────────────────────────────────────────

    @staticmethod
    async def managed_department_ids(
        db: AsyncSession, actor_id: uuid.UUID,
    ) -> set[uuid.UUID]:
        result = await db.execute(
            select(DepartmentManager.department_id).where(
                DepartmentManager.manager_id == actor_id,
            )
        )
        return set(result.scalars().all())

    @staticmethod
    def visibility_clause(
        actor: User,
        model: RequestModel,
        managed_department_ids: Iterable[uuid.UUID] = (),
    ) -> ColumnElement[bool]:
        if Authorizer.is_hr(actor):
            return true()

        departments = list(managed_department_ids)
        scope = User.approver_id == actor.id
        if departments:
            scope = or_(scope, User.department_id.in_(departments))
        return or_(
            model.user_id == actor.id,
            model.user_id.in_(select(User.id).where(scope)),
        )

    @staticmethod
    def pending_clause(actor: User, model: RequestModel) -> ColumnElement[bool]:
        """Requests waiting on *actor* as the next expected approver."""
        direct_reports = select(User.id).where(User.approver_id == actor.id)
        manager_stage = and_(
            model.status == RequestStatus.PENDING_MANAGER,
            model.user_id.in_(direct_reports),
        )
        hr_stage = (
            model.status == RequestStatus.PENDING_HR
            if Authorizer.is_hr(actor)
            else false()
        )
        return or_(manager_stage, hr_stage)
