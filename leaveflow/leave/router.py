"""Leave / overtime / request routers.

All endpoints require authentication.  Ledger maintenance endpoints are HR /
ADMIN only; approve / reject / cancel are open to any authenticated user and
the state machine decides whether the caller may perform them.
"""


import uuid
from typing import Optional

from fastapi import APIRouter, Depends, Query, Request
from sqlalchemy.ext.asyncio import AsyncSession

from leaveflow.auth.dependencies import get_current_user, require_role
from leaveflow.common.audit import utcnow
from leaveflow.common.constants import (
    MAX_YEAR,
    MIN_YEAR,
    ApprovalAction,
    RequestKind,
    RequestStatus,
    UserRole,
)
from leaveflow.common.pagination import PaginatedResponse, PaginationParams
from leaveflow.common.rate_limit import limiter
from leaveflow.config import settings
from leaveflow.database import get_db
from leaveflow.directory.models import User
from leaveflow.leave.ledger import BalanceLedger
from leaveflow.leave.renewal import RenewalEngine
from leaveflow.leave.schemas import (
    ActionResult,
    ApproveRequest,
    BalanceAdjustRequest,
    BalanceSummaryOut,
    BulkBalanceAdjustRequest,
    EmployeeBalanceOut,
    LeaveBalanceOut,
    LeaveRequestCreate,
    LeaveTypeOut,
    OvertimeRequestCreate,
    RejectRequest,
    RenewalOut,
    RenewalRequest,
    RequestOut,
)
from leaveflow.leave.service import LeaveService

leave_router = APIRouter(prefix="", tags=["leave"])
overtime_router = APIRouter(prefix="", tags=["overtime"])
requests_router = APIRouter(prefix="", tags=["requests"])


# ═════════════════════════════════════════════════════════════════════
# /leave
# ═════════════════════════════════════════════════════════════════════


@leave_router.get("/types", response_model=list[LeaveTypeOut])
async def list_leave_types(
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    return await BalanceLedger.get_leave_types(db)


@leave_router.get("/balances", response_model=list[LeaveBalanceOut])
async def my_balances(
    year: Optional[int] = Query(None, ge=MIN_YEAR, le=MAX_YEAR),
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    """The caller's ledger rows for a year."""
    return await BalanceLedger.get_balances(db, user.id, year or utcnow().year)


@leave_router.get("/balances/summary", response_model=BalanceSummaryOut)
async def balance_summary(
    year: Optional[int] = Query(None, ge=MIN_YEAR, le=MAX_YEAR),
    user: User = Depends(require_role(UserRole.HR)),
    db: AsyncSession = Depends(get_db),
):
    """Allocated / used / remaining totals, overall and per leave type."""
    return await BalanceLedger.balance_summary(db, year or utcnow().year)


@leave_router.get("/balances/all", response_model=list[EmployeeBalanceOut])
async def all_balances(
    year: Optional[int] = Query(None, ge=MIN_YEAR, le=MAX_YEAR),
    user: User = Depends(require_role(UserRole.HR)),
    db: AsyncSession = Depends(get_db),
):
    """Every employee's ledger rows for a year, by employee then leave type."""
    return await BalanceLedger.list_all_balances(db, year or utcnow().year)


@leave_router.put("/balances", response_model=list[LeaveBalanceOut])
async def bulk_adjust_balances(
    body: BulkBalanceAdjustRequest,
    user: User = Depends(require_role(UserRole.HR)),
    db: AsyncSession = Depends(get_db),
):
    """Several manual corrections in one transaction. Audited per row."""
    return await BalanceLedger.bulk_adjust(
        db, [item.model_dump() for item in body.updates], actor_id=user.id,
    )


@leave_router.post("/balances/provision/{user_id}", response_model=list[LeaveBalanceOut])
async def provision_balances(
    user_id: uuid.UUID,
    year: Optional[int] = Query(None, ge=MIN_YEAR, le=MAX_YEAR),
    user: User = Depends(require_role(UserRole.HR)),
    db: AsyncSession = Depends(get_db),
):
    """Open default-allocation rows for every leave type the user lacks."""
    return await BalanceLedger.provision_balances(
        db, user_id, year or utcnow().year, actor_id=user.id,
    )


@leave_router.put("/balances/{balance_id}", response_model=LeaveBalanceOut)
async def adjust_balance(
    balance_id: uuid.UUID,
    body: BalanceAdjustRequest,
    user: User = Depends(require_role(UserRole.HR)),
    db: AsyncSession = Depends(get_db),
):
    """Manual correction of one ledger row. Audited."""
    return await BalanceLedger.adjust_balance(
        db,
        balance_id,
        allocated_days=body.allocated_days,
        used_days=body.used_days,
        actor_id=user.id,
    )


@leave_router.post("/balances/renew", response_model=RenewalOut)
@limiter.limit(settings.RENEWAL_RATE_LIMIT)
async def renew_balances(
    request: Request,
    body: RenewalRequest,
    user: User = Depends(require_role(UserRole.HR)),
    db: AsyncSession = Depends(get_db),
):
    """Open next year's ledger with VACATION rollover."""
    return await RenewalEngine.renew(db, body.year, actor_id=user.id)


@leave_router.post("/requests", response_model=RequestOut, status_code=201)
async def submit_leave(
    body: LeaveRequestCreate,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    return await LeaveService.submit_leave_request(
        db,
        user.id,
        body.leave_type_id,
        body.start_date,
        body.end_date,
        body.session,
        body.reason,
    )


@leave_router.put("/requests/{request_id}", response_model=RequestOut)
async def update_leave(
    request_id: uuid.UUID,
    body: LeaveRequestCreate,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    """Edit an own leave request that is still awaiting the manager."""
    return await LeaveService.update_leave_request(
        db,
        request_id,
        user.id,
        body.leave_type_id,
        body.start_date,
        body.end_date,
        body.session,
        body.reason,
    )


# ═════════════════════════════════════════════════════════════════════
# /overtime
# ═════════════════════════════════════════════════════════════════════


@overtime_router.post("/requests", response_model=RequestOut, status_code=201)
async def submit_overtime(
    body: OvertimeRequestCreate,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    return await LeaveService.submit_overtime_request(
        db, user.id, body.start_time, body.end_time, body.reason,
    )


@overtime_router.put("/requests/{request_id}", response_model=RequestOut)
async def update_overtime(
    request_id: uuid.UUID,
    body: OvertimeRequestCreate,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    return await LeaveService.update_overtime_request(
        db, request_id, user.id, body.start_time, body.end_time, body.reason,
    )


# ═════════════════════════════════════════════════════════════════════
# /requests — listings and the state machine
# ═════════════════════════════════════════════════════════════════════


@requests_router.get("/mine", response_model=list[RequestOut])
async def my_requests(
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    return await LeaveService.list_my_requests(db, user)


@requests_router.get("/pending", response_model=list[RequestOut])
async def pending_requests(
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    """Requests waiting on the caller's decision."""
    return await LeaveService.list_pending(db, user)


@requests_router.get("/team", response_model=PaginatedResponse[RequestOut])
async def team_requests(
    kind: RequestKind = Query(RequestKind.leave),
    status: Optional[RequestStatus] = Query(None),
    pagination: PaginationParams = Depends(),
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    """Every request of one kind the caller may see."""
    rows, meta = await LeaveService.list_team(
        db, user, pagination, kind=kind, status=status,
    )
    return PaginatedResponse(data=rows, meta=meta)


@requests_router.get("/history", response_model=list[RequestOut])
async def approval_history(
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    """Requests the caller approved or rejected."""
    return await LeaveService.list_history(db, user)


@requests_router.get("/{request_id}", response_model=RequestOut)
async def get_request(
    request_id: uuid.UUID,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    return await LeaveService.get_request(db, request_id, user)


@requests_router.post("/{request_id}/approve", response_model=ActionResult)
async def approve_request(
    request_id: uuid.UUID,
    body: Optional[ApproveRequest] = None,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    return await LeaveService.act_on_request(
        db,
        request_id,
        user.id,
        ApprovalAction.approve,
        body.comments if body else None,
    )


@requests_router.post("/{request_id}/reject", response_model=ActionResult)
async def reject_request(
    request_id: uuid.UUID,
    body: RejectRequest,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    return await LeaveService.act_on_request(
        db, request_id, user.id, ApprovalAction.reject, body.comments,
    )


@requests_router.post("/{request_id}/cancel", response_model=ActionResult)
async def cancel_request(
    request_id: uuid.UUID,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    return await LeaveService.cancel_request(db, request_id, user.id)
