"""Common module — shared utilities for LeaveFlow."""

from leaveflow.common.audit import AuditTrail, create_audit_entry, utcnow
from leaveflow.common.constants import (
    CANCELLABLE_STATUSES,
    DEFAULT_PAGE_SIZE,
    HR_ROLES,
    MAX_PAGE_SIZE,
    PENDING_STATUSES,
    ApprovalAction,
    LeaveSession,
    LeaveTypeName,
    RequestKind,
    RequestStatus,
    UserRole,
)
from leaveflow.common.exceptions import (
    AppException,
    ConfigurationException,
    ConflictError,
    ForbiddenException,
    InsufficientBalanceException,
    NotFoundException,
    ValidationException,
    register_exception_handlers,
)
from leaveflow.common.pagination import (
    PaginatedResponse,
    PaginationMeta,
    PaginationParams,
    paginate,
)

__all__ = [
    # Audit
    "AuditTrail",
    "create_audit_entry",
    "utcnow",
    # Constants / Enums
    "ApprovalAction",
    "LeaveSession",
    "LeaveTypeName",
    "RequestKind",
    "RequestStatus",
    "UserRole",
    "CANCELLABLE_STATUSES",
    "HR_ROLES",
    "PENDING_STATUSES",
    "DEFAULT_PAGE_SIZE",
    "MAX_PAGE_SIZE",
    # Exceptions
    "AppException",
    "ConfigurationException",
    "ConflictError",
    "ForbiddenException",
    "InsufficientBalanceException",
    "NotFoundException",
    "ValidationException",
    "register_exception_handlers",
    # Pagination
    "PaginatedResponse",
    "PaginationMeta",
    "PaginationParams",
    "paginate",
]
