"""Enums and constants for the expense tracker — matching PostgreSQL ENUM types."""

from __future__ import annotations

import enum
from datetime import date


# ── Auth / Roles ────────────────────────────────────────────────────

class UserRole(str, enum.Enum):
    USER = "USER"
    ADMIN = "ADMIN"


# ── Reports ─────────────────────────────────────────────────────────

class ReportStatus(str, enum.Enum):
    PENDING = "PENDING"
    SUBMITTED = "SUBMITTED"
    APPROVED = "APPROVED"
    REJECTED = "REJECTED"
    REIMBURSED = "REIMBURSED"


class ReportEventType(str, enum.Enum):
    CREATED = "CREATED"
    SUBMITTED = "SUBMITTED"
    APPROVED = "APPROVED"
    REJECTED = "REJECTED"
    REIMBURSED = "REIMBURSED"
    EXPENSES_ADDED = "EXPENSES_ADDED"
    EXPENSES_REMOVED = "EXPENSES_REMOVED"
    COMMENT = "COMMENT"


# ── Expenses ────────────────────────────────────────────────────────

class ExpenseStatus(str, enum.Enum):
    UNREPORTED = "UNREPORTED"
    REPORTED = "REPORTED"
    APPROVED = "APPROVED"
    REJECTED = "REJECTED"
    REIMBURSED = "REIMBURSED"


class ExpenseCategory(str, enum.Enum):
    TRAVEL = "TRAVEL"
    MEALS = "MEALS"
    ACCOMMODATION = "ACCOMMODATION"
    TRANSPORTATION = "TRANSPORTATION"
    OFFICE_SUPPLIES = "OFFICE_SUPPLIES"
    ENTERTAINMENT = "ENTERTAINMENT"
    OTHER = "OTHER"


class ExpenseEventType(str, enum.Enum):
    CREATED = "CREATED"
    UPDATED = "UPDATED"
    ADDED_TO_REPORT = "ADDED_TO_REPORT"
    REMOVED_FROM_REPORT = "REMOVED_FROM_REPORT"


# Expense status while attached to a report in the given status
EXPENSE_STATUS_FOR_REPORT: dict[ReportStatus, ExpenseStatus] = {
    ReportStatus.PENDING: ExpenseStatus.REPORTED,
    ReportStatus.SUBMITTED: ExpenseStatus.REPORTED,
    ReportStatus.APPROVED: ExpenseStatus.APPROVED,
    ReportStatus.REJECTED: ExpenseStatus.REJECTED,
    ReportStatus.REIMBURSED: ExpenseStatus.REIMBURSED,
}


# ── Notifications ───────────────────────────────────────────────────

class NotificationType(str, enum.Enum):
    REPORT_SUBMITTED = "REPORT_SUBMITTED"
    REPORT_APPROVED = "REPORT_APPROVED"
    REPORT_REJECTED = "REPORT_REJECTED"
    REPORT_REIMBURSED = "REPORT_REIMBURSED"
    SYSTEM_ANNOUNCEMENT = "SYSTEM_ANNOUNCEMENT"


class EntityType(str, enum.Enum):
    REPORT = "REPORT"
    EXPENSE = "EXPENSE"
    SYSTEM = "SYSTEM"


# ── Dashboard ───────────────────────────────────────────────────────

class Timeframe(str, enum.Enum):
    TODAY = "today"
    THIS_WEEK = "this_week"
    THIS_MONTH = "this_month"
    THIS_QUARTER = "this_quarter"
    THIS_YEAR = "this_year"
    ALL_TIME = "all_time"
    CUSTOM = "custom"


# ── Misc constants ──────────────────────────────────────────────────

DISPLAY_DATE_FORMAT = "%d/%m/%Y"      # 19/02/2026
EMAIL_DATE_FORMAT = "%B %d, %Y %I:%M %p"
MAX_PAGE_SIZE = 100
DEFAULT_PAGE_SIZE = 10
STALE_SUBMISSION_DAYS = 7
ALL_TIME_START = date(2000, 1, 1)
