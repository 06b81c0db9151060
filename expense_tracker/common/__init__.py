"""Common module — shared utilities for the expense tracker."""

from expense_tracker.common.constants import (
    DEFAULT_PAGE_SIZE,
    EXPENSE_STATUS_FOR_REPORT,
    MAX_PAGE_SIZE,
    EntityType,
    ExpenseCategory,
    ExpenseEventType,
    ExpenseStatus,
    NotificationType,
    ReportEventType,
    ReportStatus,
    UserRole,
)
from expense_tracker.common.exceptions import (
    AppException,
    ForbiddenException,
    InvalidStateException,
    NotFoundException,
    PersistenceException,
    UnauthorizedException,
    register_exception_handlers,
)
from expense_tracker.common.formatting import (
    StatusDisplay,
    expense_status_display,
    format_currency,
    report_status_display,
)
from expense_tracker.common.pagination import (
    PaginationMeta,
    PaginationParams,
    paginate,
)

__all__ = [
    # Constants / Enums
    "EntityType",
    "ExpenseCategory",
    "ExpenseEventType",
    "ExpenseStatus",
    "NotificationType",
    "ReportEventType",
    "ReportStatus",
    "UserRole",
    "EXPENSE_STATUS_FOR_REPORT",
    "DEFAULT_PAGE_SIZE",
    "MAX_PAGE_SIZE",
    # Exceptions
    "AppException",
    "ForbiddenException",
    "InvalidStateException",
    "NotFoundException",
    "PersistenceException",
    "UnauthorizedException",
    "register_exception_handlers",
    # Formatting
    "StatusDisplay",
    "expense_status_display",
    "format_currency",
    "report_status_display",
    # Pagination
    "PaginationMeta",
    "PaginationParams",
    "paginate",
]
