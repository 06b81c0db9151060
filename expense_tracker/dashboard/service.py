"""Dashboard service — read-only aggregation queries for the admin metrics.

All methods are static async, following the project convention. Amounts are
summed from expense rows at DB level (never from the cached report total);
timeframes are computed in UTC.
"""

from __future__ import annotations

import math
from datetime import date, datetime, time, timedelta, timezone
from decimal import Decimal
from typing import Optional

from sqlalchemy import distinct, func, select
from sqlalchemy.ext.asyncio import AsyncSession

from expense_tracker.auth.models import User
from expense_tracker.common.constants import (
    ALL_TIME_START,
    STALE_SUBMISSION_DAYS,
    ExpenseCategory,
    ReportStatus,
    Timeframe,
)
from expense_tracker.common.exceptions import InvalidStateException
from expense_tracker.common.formatting import to_amount
from expense_tracker.dashboard.schemas import (
    ApprovalQueueMetrics,
    CategoryAmount,
    CategoryBreakdown,
    CustomRangeTotal,
    DashboardMetrics,
    DateRange,
    FilteredTotal,
    FinancialOverview,
    RecentActivityItem,
    ReimbursedAmounts,
)
from expense_tracker.expenses.models import Expense
from expense_tracker.reports.models import Report

RECENT_ACTIVITY_LIMIT = 5


def _now() -> datetime:
    """Current instant in UTC."""
    return datetime.now(timezone.utc)


def _start_of(day: date) -> datetime:
    return datetime.combine(day, time.min, tzinfo=timezone.utc)


def _end_of(day: date) -> datetime:
    return datetime.combine(day, time.max, tzinfo=timezone.utc)


def resolve_range(
    timeframe: Timeframe,
    now: datetime,
    start_date: Optional[date] = None,
    end_date: Optional[date] = None,
) -> DateRange:
    """Map *timeframe* to a window ending at *now*; ``custom`` spans whole days."""
    today = now.date()
    if timeframe == Timeframe.CUSTOM:
        if start_date is None or end_date is None:
            missing = {
                name: ["Required for a custom timeframe."]
                for name, value in (("start_date", start_date), ("end_date", end_date))
                if value is None
            }
            raise InvalidStateException(
                "A custom timeframe needs both start_date and end_date.", errors=missing,
            )
        if end_date < start_date:
            raise InvalidStateException(
                "end_date must not be before start_date.",
                errors={"end_date": ["Must not be before start_date."]},
            )
        return DateRange(start=_start_of(start_date), end=_end_of(end_date))

    if timeframe == Timeframe.TODAY:
        start = today
    elif timeframe == Timeframe.THIS_WEEK:
        # Weeks start on Sunday
        start = today - timedelta(days=(today.weekday() + 1) % 7)
    elif timeframe == Timeframe.THIS_MONTH:
        start = today.replace(day=1)
    elif timeframe == Timeframe.THIS_QUARTER:
        start = today.replace(month=(today.month - 1) // 3 * 3 + 1, day=1)
    elif timeframe == Timeframe.THIS_YEAR:
        start = today.replace(month=1, day=1)
    else:
        start = ALL_TIME_START
    return DateRange(start=_start_of(start), end=now)


def _reimbursed_in(window: DateRange) -> tuple:
    """WHERE clauses selecting reports reimbursed inside *window*."""
    return (
        Report.status == ReportStatus.REIMBURSED,
        Report.reimbursed_at >= window.start,
        Report.reimbursed_at <= window.end,
    )


async def _reimbursed_total(
    db: AsyncSession,
    window: DateRange,
    category: Optional[ExpenseCategory] = None,
) -> Decimal:
    stmt = (
        select(func.coalesce(func.sum(Expense.amount), 0))
        .select_from(Expense)
        .join(Report, Expense.report_id == Report.id)
        .where(*_reimbursed_in(window))
    )
    if category is not None:
        stmt = stmt.where(Expense.category == category)
    return to_amount((await db.execute(stmt)).scalar())


async def _multi_scalar(db: AsyncSession, *stmts) -> list:
    """Execute multiple scalar queries and return their results in order."""
    results = []
    for stmt in stmts:
        result = await db.execute(stmt)
        results.append(result.scalar())
    return results


def _processing_days(submitted_at: datetime, processed_at: datetime) -> int:
    """Whole days between submission and decision, rounded up."""
    seconds = abs((processed_at - submitted_at).total_seconds())
    return math.ceil(seconds / 86400)


class DashboardService:
    """Async admin dashboard aggregation queries."""

    # ═════════════════════════════════════════════════════════════════
    # GET /metrics
    # ═════════════════════════════════════════════════════════════════

    @staticmethod
    async def get_metrics(db: AsyncSession) -> DashboardMetrics:
        now = _now()
        year_start = _start_of(now.date().replace(month=1, day=1))
        stale_cutoff = now - timedelta(days=STALE_SUBMISSION_DAYS)

        pending_amount_q = (
            select(func.coalesce(func.sum(Expense.amount), 0))
            .select_from(Expense)
            .join(Report, Expense.report_id == Report.id)
            .where(Report.status == ReportStatus.APPROVED)
        )
        ytd_approved_q = select(func.count(Report.id)).where(
            Report.status == ReportStatus.APPROVED,
            Report.approved_at >= year_start,
        )
        ytd_rejected_q = select(func.count(Report.id)).where(
            Report.status == ReportStatus.REJECTED,
            Report.rejected_at >= year_start,
        )
        awaiting_approval_q = select(func.count(Report.id)).where(
            Report.status == ReportStatus.SUBMITTED,
        )
        awaiting_reimbursement_q = select(func.count(Report.id)).where(
            Report.status == ReportStatus.APPROVED,
        )
        stale_q = select(func.count(Report.id)).where(
            Report.status == ReportStatus.SUBMITTED,
            Report.submitted_at <= stale_cutoff,
        )

        results = await _multi_scalar(
            db, pending_amount_q, ytd_approved_q, ytd_rejected_q,
            awaiting_approval_q, awaiting_reimbursement_q, stale_q,
        )

        reimbursed: dict[str, Decimal] = {}
        for timeframe in Timeframe:
            if timeframe != Timeframe.CUSTOM:
                window = resolve_range(timeframe, now)
                reimbursed[timeframe.value] = await _reimbursed_total(db, window)

        return DashboardMetrics(
            financial_overview=FinancialOverview(
                pending_reimbursement_amount=to_amount(results[0]),
                ytd_approved_count=results[1] or 0,
                ytd_rejected_count=results[2] or 0,
                avg_processing_days=await DashboardService._avg_processing_days(db),
            ),
            approval_queue=ApprovalQueueMetrics(
                awaiting_approval_count=results[3] or 0,
                awaiting_reimbursement_count=results[4] or 0,
                pending_over_seven_days_count=results[5] or 0,
            ),
            reimbursed_amounts=ReimbursedAmounts(**reimbursed),
            recent_activity=await DashboardService._recent_activity(db),
        )

    @staticmethod
    async def _avg_processing_days(db: AsyncSession) -> float:
        stmt = select(Report.submitted_at, Report.approved_at, Report.rejected_at).where(
            Report.status.in_(
                [ReportStatus.APPROVED, ReportStatus.REJECTED, ReportStatus.REIMBURSED],
            ),
            Report.submitted_at.is_not(None),
            (Report.approved_at.is_not(None)) | (Report.rejected_at.is_not(None)),
        )
        rows = (await db.execute(stmt)).all()
        if not rows:
            return 0.0
        total = sum(
            _processing_days(row.submitted_at, row.approved_at or row.rejected_at)
            for row in rows
        )
        return round(total / len(rows), 1)

    @staticmethod
    async def _recent_activity(db: AsyncSession) -> list[RecentActivityItem]:
        """Latest decided reports (approved, rejected or reimbursed)."""
        stmt = (
            select(
                Report.id,
                Report.title,
                Report.status,
                Report.updated_at,
                User.first_name,
                User.last_name,
                User.email,
            )
            .join(User, Report.user_id == User.id)
            .where(
                ((Report.status == ReportStatus.APPROVED) & Report.approved_at.is_not(None))
                | ((Report.status == ReportStatus.REJECTED) & Report.rejected_at.is_not(None))
                | (
                    (Report.status == ReportStatus.REIMBURSED)
                    & Report.reimbursed_at.is_not(None)
                ),
            )
            .order_by(Report.updated_at.desc(), Report.id.desc())
            .limit(RECENT_ACTIVITY_LIMIT)
        )
        rows = (await db.execute(stmt)).all()
        return [
            RecentActivityItem(
                report_id=row.id,
                title=row.title,
                status=row.status,
                updated_at=row.updated_at,
                user_name=f"{row.first_name} {row.last_name}".strip(),
                user_email=row.email,
            )
            for row in rows
        ]

    # ═════════════════════════════════════════════════════════════════
    # GET /metrics/category-breakdown
    # ═════════════════════════════════════════════════════════════════

    @staticmethod
    async def get_category_breakdown(
        db: AsyncSession,
        timeframe: Timeframe,
        start_date: Optional[date] = None,
        end_date: Optional[date] = None,
    ) -> CategoryBreakdown:
        """Reimbursed amount per expense category, highest first."""
        window = resolve_range(timeframe, _now(), start_date, end_date)
        amount = func.sum(Expense.amount).label("amount")
        stmt = (
            select(Expense.category, amount)
            .select_from(Expense)
            .join(Report, Expense.report_id == Report.id)
            .where(*_reimbursed_in(window))
            .group_by(Expense.category)
            .order_by(amount.desc(), Expense.category)
        )
        rows = (await db.execute(stmt)).all()
        return CategoryBreakdown(
            timeframe=timeframe,
            date_range=window,
            categories=[
                CategoryAmount(category=row.category, amount=to_amount(row.amount))
                for row in rows
            ],
        )

    # ═════════════════════════════════════════════════════════════════
    # GET /metrics/filtered-total
    # ═════════════════════════════════════════════════════════════════

    @staticmethod
    async def get_filtered_total(
        db: AsyncSession,
        timeframe: Timeframe,
        category: Optional[ExpenseCategory] = None,
        start_date: Optional[date] = None,
        end_date: Optional[date] = None,
    ) -> FilteredTotal:
        window = resolve_range(timeframe, _now(), start_date, end_date)
        return FilteredTotal(
            timeframe=timeframe,
            category=category,
            date_range=window,
            total_reimbursed=await _reimbursed_total(db, window, category),
        )

    # ═════════════════════════════════════════════════════════════════
    # POST /metrics/custom-range
    # ═════════════════════════════════════════════════════════════════

    @staticmethod
    async def get_custom_range(
        db: AsyncSession,
        start_date: date,
        end_date: date,
    ) -> CustomRangeTotal:
        """Reimbursed total and number of reimbursed reports between two dates."""
        window = resolve_range(Timeframe.CUSTOM, _now(), start_date, end_date)
        stmt = (
            select(
                func.count(distinct(Report.id)),
                func.coalesce(func.sum(Expense.amount), 0),
            )
            .select_from(Report)
            .outerjoin(Expense, Expense.report_id == Report.id)
            .where(
                Report.status == ReportStatus.REIMBURSED,
                Report.reimbursed_at >= window.start,
                Report.reimbursed_at <= window.end,
            )
        )
        count, total = (await db.execute(stmt)).one()
        return CustomRangeTotal(
            date_range=window,
            total_reimbursed=to_amount(total),
            report_count=count or 0,
        )
