"""Request service layer — submission, editing, the approval state machine, listings.

Business logic:
  - Two-stage approval: PENDING_MANAGER → PENDING_HR → APPROVED, with
    rejection allowed at either stage (comment required)
  - HR approving a PENDING_MANAGER request only advances it to PENDING_HR
  - Final approval of paid leave debits the ledger; cancelling APPROVED paid
    leave credits it back
  - Every transition is a conditional UPDATE on the expected prior status,
    wrapped with its ledger effect in one SAVEPOINT
"""

from __future__ import annotations

import logging
import uuid
from datetime import date, datetime
from typing import Optional, Union

from sqlalchemy import or_, select, update
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from leaveflow.common.audit import create_audit_entry, utcnow
from leaveflow.common.constants import (
    ApprovalAction,
    LeaveSession,
    RequestKind,
    RequestStatus,
)
from leaveflow.common.exceptions import (
    ConflictError,
    ForbiddenException,
    NotFoundException,
    ValidationException,
)
from leaveflow.common.pagination import PaginationMeta, PaginationParams, paginate
from leaveflow.directory.models import User
from leaveflow.leave.authorization import Authorizer
from leaveflow.leave.calculator import leave_days, overtime_hours, request_amount
from leaveflow.leave.ledger import BalanceLedger
from leaveflow.leave.models import LeaveRequest, LeaveType, OvertimeRequest
from leaveflow.leave.schemas import ActionResult, RequestOut

logger = logging.getLogger(__name__)

AnyRequest = Union[LeaveRequest, OvertimeRequest]

_MODELS: dict[RequestKind, type] = {
    RequestKind.leave: LeaveRequest,
    RequestKind.overtime: OvertimeRequest,
}

# (current status, action) → next status.  Anything missing has no transition.
_TRANSITIONS: dict[tuple[RequestStatus, ApprovalAction], RequestStatus] = {
    (RequestStatus.PENDING_MANAGER, ApprovalAction.approve): RequestStatus.PENDING_HR,
    (RequestStatus.PENDING_MANAGER, ApprovalAction.reject): RequestStatus.REJECTED,
    (RequestStatus.PENDING_HR, ApprovalAction.approve): RequestStatus.APPROVED,
    (RequestStatus.PENDING_HR, ApprovalAction.reject): RequestStatus.REJECTED,
}

_TRAIL_COLUMNS = [
    "status",
    "manager_action_by",
    "manager_action_at",
    "manager_comments",
    "hr_action_by",
    "hr_action_at",
    "hr_comments",
    "updated_at",
]


# ═════════════════════════════════════════════════════════════════════
# LeaveService
# ═════════════════════════════════════════════════════════════════════


class LeaveService:
    """Async request operations: submit, edit, approve / reject / cancel, list."""

    # ─────────────────────────────────────────────────────────────────
    # Helpers
    # ─────────────────────────────────────────────────────────────────

    @staticmethod
    async def _get_user(db: AsyncSession, user_id: uuid.UUID) -> User:
        user = await db.get(User, user_id)
        if user is None:
            raise NotFoundException("User", str(user_id))
        return user

    @staticmethod
    async def _get_leave_type(db: AsyncSession, leave_type_id: uuid.UUID) -> LeaveType:
        leave_type = await db.get(LeaveType, leave_type_id)
        if leave_type is None:
            raise NotFoundException("LeaveType", str(leave_type_id))
        return leave_type

    @staticmethod
    async def _load_request(db: AsyncSession, request_id: uuid.UUID) -> AnyRequest:
        """Find a request by id in either table, with owner (and type) loaded."""

        result = await db.execute(
            select(LeaveRequest)
            .where(LeaveRequest.id == request_id)
            .options(
                selectinload(LeaveRequest.user),
                selectinload(LeaveRequest.leave_type),
            )
            .execution_options(populate_existing=True)
        )
        request = result.scalars().first()
        if request is not None:
            return request

        result = await db.execute(
            select(OvertimeRequest)
            .where(OvertimeRequest.id == request_id)
            .options(selectinload(OvertimeRequest.user))
            .execution_options(populate_existing=True)
        )
        request = result.scalars().first()
        if request is None:
            raise NotFoundException("Request", str(request_id))
        return request

    @staticmethod
    def _validate_reason(reason: Optional[str], errors: dict[str, list[str]]) -> None:
        if not reason or not reason.strip():
            errors["reason"] = ["A reason is required."]

    @staticmethod
    def _validate_times(
        start_time: datetime, end_time: datetime, errors: dict[str, list[str]],
    ) -> None:
        if (start_time.utcoffset() is None) != (end_time.utcoffset() is None):
            errors["end_time"] = [
                "start_time and end_time must both carry a UTC offset, or neither."
            ]
        elif end_time <= start_time:
            errors["end_time"] = ["end_time must be after start_time."]

    @staticmethod
    def _build_request_response(request: AnyRequest) -> RequestOut:
        out = RequestOut.model_validate(request)
        out.user_name = request.user.name if request.user is not None else None
        if isinstance(request, LeaveRequest) and request.leave_type is not None:
            out.leave_type_name = request.leave_type.name
        return out

    @staticmethod
    async def _apply_transition(
        db: AsyncSession,
        request: AnyRequest,
        *,
        actor: User,
        new_status: RequestStatus,
        action: str,
        comments: Optional[str] = None,
        ledger_effect: Optional[str] = None,
    ) -> ActionResult:
        """Move *request* out of its current status together with its ledger
        effect ("debit" / "credit" / None) in one SAVEPOINT.

        The status UPDATE is conditional on the status we loaded; if another
        caller moved the request first nothing is written and ConflictError
        is raised.
        """
        previous = request.status
        now = utcnow()
        values: dict = {"status": new_status, "updated_at": now}
        if action != "cancel":
            stage = "manager" if previous == RequestStatus.PENDING_MANAGER else "hr"
            values[f"{stage}_action_by"] = actor.id
            values[f"{stage}_action_at"] = now
            values[f"{stage}_comments"] = comments

        model = type(request)
        async with db.begin_nested():
            result = await db.execute(
                update(model)
                .where(model.id == request.id, model.status == previous)
                .values(**values)
                .execution_options(synchronize_session=False)
            )
            if result.rowcount != 1:
                raise ConflictError(
                    f"Request {request.id} is no longer {previous.value}."
                )
            if ledger_effect == "debit":
                await BalanceLedger.debit(db, request)
            elif ledger_effect == "credit":
                await BalanceLedger.credit(db, request)

        await db.refresh(request, attribute_names=_TRAIL_COLUMNS)

        await create_audit_entry(
            db,
            action=action,
            entity_type=f"{request.kind.value}_request",
            entity_id=request.id,
            actor_id=actor.id,
            old_values={"status": previous.value},
            new_values={"status": new_status.value, "comments": comments},
        )
        logger.info(
            "%s request %s: %s -> %s by %s",
            request.kind.value.capitalize(), request.id,
            previous.value, new_status.value, actor.id,
        )
        return ActionResult(
            id=request.id,
            kind=request.kind,
            previous_status=previous,
            status=new_status,
        )

    # ─────────────────────────────────────────────────────────────────
    # Submit
    # ─────────────────────────────────────────────────────────────────

    @staticmethod
    async def submit_leave_request(
        db: AsyncSession,
        user_id: uuid.UUID,
        leave_type_id: uuid.UUID,
        start_date: date,
        end_date: date,
        session: LeaveSession,
        reason: str,
    ) -> RequestOut:
        """Create a PENDING_MANAGER leave request.

        Paid leave is pre-checked against the ledger row for the start date's
        year (EMERGENCY against VACATION); nothing is debited until HR
        approval.
        """
        errors: dict[str, list[str]] = {}
        if end_date < start_date:
            errors["end_date"] = ["end_date must be on or after start_date."]
        LeaveService._validate_reason(reason, errors)
        if errors:
            raise ValidationException(errors)

        user = await LeaveService._get_user(db, user_id)
        leave_type = await LeaveService._get_leave_type(db, leave_type_id)
        total_days = leave_days(start_date, end_date, session)

        await BalanceLedger.ensure_available(
            db,
            user_id=user.id,
            leave_type=leave_type,
            start_date=start_date,
            amount=total_days,
            missing_row_is_empty=True,
        )

        request = LeaveRequest(
            user_id=user.id,
            leave_type_id=leave_type.id,
            start_date=start_date,
            end_date=end_date,
            session=session,
            total_days=total_days,
            reason=reason.strip(),
            status=RequestStatus.PENDING_MANAGER,
        )
        db.add(request)
        await db.flush()
        request.user = user
        request.leave_type = leave_type

        await create_audit_entry(
            db,
            action="submit",
            entity_type="leave_request",
            entity_id=request.id,
            actor_id=user.id,
            new_values={
                "leave_type": leave_type.name,
                "start_date": start_date.isoformat(),
                "end_date": end_date.isoformat(),
                "session": session.value,
                "total_days": str(total_days),
            },
        )
        logger.info(
            "Leave request %s submitted by %s: %s x %s days",
            request.id, user.id, leave_type.name, total_days,
        )
        return LeaveService._build_request_response(request)

    @staticmethod
    async def submit_overtime_request(
        db: AsyncSession,
        user_id: uuid.UUID,
        start_time: datetime,
        end_time: datetime,
        reason: str,
    ) -> RequestOut:
        """Create a PENDING_MANAGER overtime request. No ledger effect."""

        errors: dict[str, list[str]] = {}
        LeaveService._validate_times(start_time, end_time, errors)
        LeaveService._validate_reason(reason, errors)
        if errors:
            raise ValidationException(errors)

        user = await LeaveService._get_user(db, user_id)
        total_hours = overtime_hours(start_time, end_time)

        request = OvertimeRequest(
            user_id=user.id,
            start_time=start_time,
            end_time=end_time,
            total_hours=total_hours,
            reason=reason.strip(),
            status=RequestStatus.PENDING_MANAGER,
        )
        db.add(request)
        await db.flush()
        request.user = user

        await create_audit_entry(
            db,
            action="submit",
            entity_type="overtime_request",
            entity_id=request.id,
            actor_id=user.id,
            new_values={
                "start_time": start_time.isoformat(),
                "end_time": end_time.isoformat(),
                "total_hours": str(total_hours),
            },
        )
        logger.info(
            "Overtime request %s submitted by %s: %s hours",
            request.id, user.id, total_hours,
        )
        return LeaveService._build_request_response(request)

    # ─────────────────────────────────────────────────────────────────
    # Edit (owner, PENDING_MANAGER only)
    # ─────────────────────────────────────────────────────────────────

    @staticmethod
    async def _load_editable(
        db: AsyncSession, request_id: uuid.UUID, user_id: uuid.UUID, model: type,
    ) -> AnyRequest:
        request = await LeaveService._load_request(db, request_id)
        if not isinstance(request, model):
            raise NotFoundException(model.__name__, str(request_id))
        if request.user_id != user_id:
            raise ForbiddenException("You can only edit your own requests.")
        if request.status != RequestStatus.PENDING_MANAGER:
            raise ValidationException(
                {"status": [
                    f"Only requests awaiting manager review can be edited; "
                    f"this one is {request.status.value}."
                ]}
            )
        return request

    @staticmethod
    async def _write_edit(
        db: AsyncSession, request: AnyRequest, values: dict,
    ) -> None:
        model = type(request)
        result = await db.execute(
            update(model)
            .where(
                model.id == request.id,
                model.status == RequestStatus.PENDING_MANAGER,
            )
            .values(**values, updated_at=utcnow())
            .execution_options(synchronize_session=False)
        )
        if result.rowcount != 1:
            raise ConflictError(
                f"Request {request.id} left {RequestStatus.PENDING_MANAGER.value} "
                f"while it was being edited."
            )

    @staticmethod
    async def update_leave_request(
        db: AsyncSession,
        request_id: uuid.UUID,
        user_id: uuid.UUID,
        leave_type_id: uuid.UUID,
        start_date: date,
        end_date: date,
        session: LeaveSession,
        reason: str,
    ) -> RequestOut:
        """Rewrite an own leave request that no approver has touched yet.

        Re-runs the same validation and balance pre-check as submission.
        """
        errors: dict[str, list[str]] = {}
        if end_date < start_date:
            errors["end_date"] = ["end_date must be on or after start_date."]
        LeaveService._validate_reason(reason, errors)
        if errors:
            raise ValidationException(errors)

        request = await LeaveService._load_editable(
            db, request_id, user_id, LeaveRequest,
        )
        leave_type = await LeaveService._get_leave_type(db, leave_type_id)
        total_days = leave_days(start_date, end_date, session)

        await BalanceLedger.ensure_available(
            db,
            user_id=request.user_id,
            leave_type=leave_type,
            start_date=start_date,
            amount=total_days,
            missing_row_is_empty=True,
        )

        old_values = {
            "leave_type_id": str(request.leave_type_id),
            "start_date": request.start_date.isoformat(),
            "end_date": request.end_date.isoformat(),
            "session": request.session.value,
            "total_days": str(request.total_days),
        }
        await LeaveService._write_edit(db, request, {
            "leave_type_id": leave_type.id,
            "start_date": start_date,
            "end_date": end_date,
            "session": session,
            "total_days": total_days,
            "reason": reason.strip(),
        })

        request = await LeaveService._load_request(db, request_id)
        await create_audit_entry(
            db,
            action="update",
            entity_type="leave_request",
            entity_id=request.id,
            actor_id=user_id,
            old_values=old_values,
            new_values={
                "leave_type_id": str(leave_type.id),
                "start_date": start_date.isoformat(),
                "end_date": end_date.isoformat(),
                "session": session.value,
                "total_days": str(total_days),
            },
        )
        return LeaveService._build_request_response(request)

    @staticmethod
    async def update_overtime_request(
        db: AsyncSession,
        request_id: uuid.UUID,
        user_id: uuid.UUID,
        start_time: datetime,
        end_time: datetime,
        reason: str,
    ) -> RequestOut:
        errors: dict[str, list[str]] = {}
        LeaveService._validate_times(start_time, end_time, errors)
        LeaveService._validate_reason(reason, errors)
        if errors:
            raise ValidationException(errors)

        request = await LeaveService._load_editable(
            db, request_id, user_id, OvertimeRequest,
        )
        old_values = {
            "start_time": request.start_time.isoformat(),
            "end_time": request.end_time.isoformat(),
            "total_hours": str(request.total_hours),
        }
        total_hours = overtime_hours(start_time, end_time)
        await LeaveService._write_edit(db, request, {
            "start_time": start_time,
            "end_time": end_time,
            "total_hours": total_hours,
            "reason": reason.strip(),
        })

        request = await LeaveService._load_request(db, request_id)
        await create_audit_entry(
            db,
            action="update",
            entity_type="overtime_request",
            entity_id=request.id,
            actor_id=user_id,
            old_values=old_values,
            new_values={
                "start_time": start_time.isoformat(),
                "end_time": end_time.isoformat(),
                "total_hours": str(total_hours),
            },
        )
        return LeaveService._build_request_response(request)

    # ─────────────────────────────────────────────────────────────────
    # Approve / Reject
    # ─────────────────────────────────────────────────────────────────

    @staticmethod
    async def act_on_request(
        db: AsyncSession,
        request_id: uuid.UUID,
        actor_id: uuid.UUID,
        action: ApprovalAction,
        comments: Optional[str] = None,
    ) -> ActionResult:
        """Approve or reject a pending request.

        Final (HR-stage) approval of paid leave debits the ledger.  If the
        debit is refused the request stays in PENDING_HR and nothing changes.
        """
        try:
            action = ApprovalAction(action)
        except ValueError:
            raise ValidationException(
                {"action": [f"Unknown action {action!r}; expected approve or reject."]}
            )
        request = await LeaveService._load_request(db, request_id)
        actor = await LeaveService._get_user(db, actor_id)

        new_status = _TRANSITIONS.get((request.status, action))
        if new_status is None or not Authorizer.can_act(actor, request, request.user):
            raise ForbiddenException(
                f"You cannot {action.value} this request while it is "
                f"{request.status.value}."
            )

        if action == ApprovalAction.reject and (not comments or not comments.strip()):
            raise ValidationException(
                {"comments": ["A comment is required to reject a request."]}
            )

        ledger_effect = None
        if new_status == RequestStatus.APPROVED and request.kind == RequestKind.leave:
            ledger_effect = "debit"
            # Refuse before touching anything; the debit re-checks atomically.
            await BalanceLedger.ensure_available(
                db,
                user_id=request.user_id,
                leave_type=request.leave_type,
                start_date=request.start_date,
                amount=request_amount(request),
            )

        return await LeaveService._apply_transition(
            db,
            request,
            actor=actor,
            new_status=new_status,
            action=action.value,
            comments=comments.strip() if comments else None,
            ledger_effect=ledger_effect,
        )

    # ─────────────────────────────────────────────────────────────────
    # Cancel
    # ─────────────────────────────────────────────────────────────────

    @staticmethod
    async def cancel_request(
        db: AsyncSession,
        request_id: uuid.UUID,
        actor_id: uuid.UUID,
    ) -> ActionResult:
        """Cancel a pending or approved request (requester, or HR override).

        Cancelling APPROVED paid leave credits the ledger row the approval
        debited.
        """
        request = await LeaveService._load_request(db, request_id)
        actor = await LeaveService._get_user(db, actor_id)

        if not Authorizer.can_cancel(actor, request):
            raise ForbiddenException(
                f"You cannot cancel this request while it is {request.status.value}."
            )

        ledger_effect = None
        if request.status == RequestStatus.APPROVED and request.kind == RequestKind.leave:
            ledger_effect = "credit"

        return await LeaveService._apply_transition(
            db,
            request,
            actor=actor,
            new_status=RequestStatus.CANCELLED,
            action="cancel",
            ledger_effect=ledger_effect,
        )

    # ─────────────────────────────────────────────────────────────────
    # Read
    # ─────────────────────────────────────────────────────────────────

    @staticmethod
    async def get_request(
        db: AsyncSession, request_id: uuid.UUID, viewer: User,
    ) -> RequestOut:
        request = await LeaveService._load_request(db, request_id)
        managed = await Authorizer.managed_department_ids(db, viewer.id)
        if not Authorizer.can_view(viewer, request, request.user, managed):
            # Indistinguishable from a missing request.
            raise NotFoundException("Request", str(request_id))
        return LeaveService._build_request_response(request)

    @staticmethod
    def _select(model: type):
        query = select(model).options(selectinload(model.user))
        if model is LeaveRequest:
            query = query.options(selectinload(LeaveRequest.leave_type))
        return query

    @staticmethod
    async def _list_both(db: AsyncSession, clause_for) -> list[RequestOut]:
        """Run one filtered query per request table, merge newest first."""
        requests: list[AnyRequest] = []
        for model in (LeaveRequest, OvertimeRequest):
            result = await db.execute(
                LeaveService._select(model).where(clause_for(model))
            )
            requests.extend(result.scalars().all())
        requests.sort(key=lambda r: r.created_at, reverse=True)
        return [LeaveService._build_request_response(r) for r in requests]

    @staticmethod
    async def list_my_requests(db: AsyncSession, user: User) -> list[RequestOut]:
        return await LeaveService._list_both(
            db, lambda model: model.user_id == user.id,
        )

    @staticmethod
    async def list_pending(db: AsyncSession, actor: User) -> list[RequestOut]:
        """Requests waiting on *actor* as the next approver."""
        return await LeaveService._list_both(
            db, lambda model: Authorizer.pending_clause(actor, model),
        )

    @staticmethod
    async def list_history(db: AsyncSession, actor: User) -> list[RequestOut]:
        """Requests *actor* approved or rejected at either stage."""
        return await LeaveService._list_both(
            db,
            lambda model: or_(
                model.manager_action_by == actor.id,
                model.hr_action_by == actor.id,
            ),
        )

    @staticmethod
    async def list_team(
        db: AsyncSession,
        actor: User,
        params: PaginationParams,
        *,
        kind: RequestKind = RequestKind.leave,
        status: Optional[RequestStatus] = None,
    ) -> tuple[list[RequestOut], PaginationMeta]:
        """All requests of one kind that *actor* may see, newest first."""

        model = _MODELS[kind]
        managed = await Authorizer.managed_department_ids(db, actor.id)
        query = LeaveService._select(model).where(
            Authorizer.visibility_clause(actor, model, managed)
        )
        if status is not None:
            query = query.where(model.status == status)
        query = query.order_by(model.created_at.desc())

        rows, meta = await paginate(db, query, params)
        return [LeaveService._build_request_response(r) for r in rows], meta
