"""Pure display helpers shared by report, expense and email formatting."""

from __future__ import annotations

from datetime import date, datetime
from decimal import ROUND_HALF_UP, Decimal
from typing import Literal, Optional, Union

from pydantic import BaseModel

from expense_tracker.common.constants import (
    DISPLAY_DATE_FORMAT,
    EMAIL_DATE_FORMAT,
    ExpenseStatus,
    ReportStatus,
)

StatusColor = Literal["green", "orange", "blue", "red"]
Amount = Union[Decimal, int, float, str]

_CENT = Decimal("0.01")


class StatusDisplay(BaseModel):
    """Label + color (+ contextual date) shown next to a status."""

    label: str
    color: StatusColor
    additional_info: Optional[str] = None


# ── Numbers ─────────────────────────────────────────────────────────

def to_amount(value: Optional[Amount]) -> Decimal:
    """Coerce a stored amount to a 2-place Decimal (None → 0.00)."""
    if value is None:
        return Decimal("0.00")
    if not isinstance(value, Decimal):
        value = Decimal(str(value))
    return value.quantize(_CENT, rounding=ROUND_HALF_UP)


def _group_indian(digits: str) -> str:
    """Group an integer digit string the en-IN way: 12,34,567."""
    if len(digits) <= 3:
        return digits
    head, tail = digits[:-3], digits[-3:]
    groups = []
    while len(head) > 2:
        groups.insert(0, head[-2:])
        head = head[:-2]
    if head:
        groups.insert(0, head)
    return ",".join(groups) + "," + tail


def format_currency(amount: Optional[Amount], prefix: str = "Rs.") -> str:
    """``Decimal("123456.5")`` → ``"Rs.1,23,456.50"``."""
    value = to_amount(amount)
    sign = "-" if value < 0 else ""
    whole, frac = f"{abs(value):.2f}".split(".")
    return f"{sign}{prefix}{_group_indian(whole)}.{frac}"


# ── Dates ───────────────────────────────────────────────────────────

def format_display_date(value: Optional[Union[date, datetime]]) -> Optional[str]:
    if value is None:
        return None
    return value.strftime(DISPLAY_DATE_FORMAT)


def format_email_date(value: Optional[Union[date, datetime]]) -> str:
    if value is None:
        return "N/A"
    return value.strftime(EMAIL_DATE_FORMAT)


def format_date_range(start: Optional[date], end: Optional[date]) -> str:
    if start is None or end is None:
        return ""
    return f"{format_display_date(start)} - {format_display_date(end)}"


# ── Status projections ──────────────────────────────────────────────

def _on(value: Optional[Union[date, datetime]]) -> Optional[str]:
    formatted = format_display_date(value)
    return f"On {formatted}" if formatted else None


def report_status_display(
    status: ReportStatus,
    submitted_at: Optional[datetime] = None,
    approved_at: Optional[datetime] = None,
    rejected_at: Optional[datetime] = None,
    reimbursed_at: Optional[datetime] = None,
) -> StatusDisplay:
    """Map a report status (and the timestamp relevant to it) to its display."""
    if status == ReportStatus.PENDING:
        return StatusDisplay(label="PENDING SUBMISSION", color="orange")
    if status == ReportStatus.SUBMITTED:
        return StatusDisplay(label="SUBMITTED", color="blue", additional_info=_on(submitted_at))
    if status == ReportStatus.APPROVED:
        return StatusDisplay(label="APPROVED", color="green", additional_info=_on(approved_at))
    if status == ReportStatus.REJECTED:
        return StatusDisplay(label="REJECTED", color="red", additional_info=_on(rejected_at))
    if status == ReportStatus.REIMBURSED:
        return StatusDisplay(label="REIMBURSED", color="green", additional_info=_on(reimbursed_at))
    return StatusDisplay(label=str(status), color="blue")


_EXPENSE_DISPLAY: dict[ExpenseStatus, tuple[str, StatusColor]] = {
    ExpenseStatus.UNREPORTED: ("Unreported", "blue"),
    ExpenseStatus.REPORTED: ("Reported", "orange"),
    ExpenseStatus.APPROVED: ("Approved", "green"),
    ExpenseStatus.REJECTED: ("Rejected", "red"),
    ExpenseStatus.REIMBURSED: ("Reimbursed", "green"),
}


def expense_status_display(status: ExpenseStatus) -> StatusDisplay:
    label, color = _EXPENSE_DISPLAY.get(status, ("Unreported", "blue"))
    return StatusDisplay(label=label, color=color)
