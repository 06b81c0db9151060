"""Reports service layer — creation, scoped reads and the UI projection."""

from __future__ import annotations

import uuid
from datetime import date
from decimal import Decimal
from typing import Optional, Sequence

from sqlalchemy import distinct, func, or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from expense_tracker.auth.schemas import Actor
from expense_tracker.common.constants import ReportEventType, ReportStatus
from expense_tracker.common.exceptions import NotFoundException
from expense_tracker.common.formatting import (
    format_currency,
    format_date_range,
    report_status_display,
    to_amount,
)
from expense_tracker.common.pagination import PaginationMeta, PaginationParams, paginate
from expense_tracker.expenses.models import Expense
from expense_tracker.expenses.schemas import ExpenseOut
from expense_tracker.history.service import HistoryRecorder
from expense_tracker.reports.association import (
    REIMBURSABLE_AMOUNT,
    load_report,
    recompute_total,
    reimbursable_subtotal,
)
from expense_tracker.reports.models import Report
from expense_tracker.reports.schemas import (
    ReportDetailOut,
    ReportOut,
    ReportSummary,
    ReportUserBrief,
    StatusSummary,
)


# ── Projection ──────────────────────────────────────────────────────

def _user_brief(user) -> Optional[ReportUserBrief]:
    if user is None:
        return None
    return ReportUserBrief(id=user.id, email=user.email, display_name=user.display_name)


def report_out(report: Report, *, with_expenses: bool = False) -> ReportOut:
    """Build the API view of a report. Totals come from the expenses, not the cache."""
    expenses = list(report.expenses)
    total = recompute_total(expenses)
    reimbursable = reimbursable_subtotal(expenses)
    non_reimbursable = total - reimbursable

    fields = dict(
        id=report.id,
        title=report.title,
        description=report.description,
        status=report.status,
        status_display=report_status_display(
            report.status,
            submitted_at=report.submitted_at,
            approved_at=report.approved_at,
            rejected_at=report.rejected_at,
            reimbursed_at=report.reimbursed_at,
        ),
        start_date=report.start_date,
        end_date=report.end_date,
        date_range=format_date_range(report.start_date, report.end_date),
        total_amount=total,
        reimbursable_amount=reimbursable,
        non_reimbursable_amount=non_reimbursable,
        formatted_total=format_currency(total),
        formatted_reimbursable=format_currency(reimbursable),
        formatted_non_reimbursable=format_currency(non_reimbursable),
        expense_count=len(expenses),
        submitted_at=report.submitted_at,
        approved_at=report.approved_at,
        rejected_at=report.rejected_at,
        reimbursed_at=report.reimbursed_at,
        reimbursement_notes=report.reimbursement_notes,
        user=_user_brief(report.user),
        approver=_user_brief(report.approver),
        created_at=report.created_at,
        updated_at=report.updated_at,
    )
    if with_expenses:
        return ReportDetailOut(
            **fields,
            expenses=[ExpenseOut.model_validate(e) for e in expenses],
        )
    return ReportOut(**fields)


def _status_summary(count: int, amount, reimbursable) -> StatusSummary:
    amount = to_amount(amount)
    reimbursable = to_amount(reimbursable)
    return StatusSummary(
        count=count,
        total_amount=amount,
        formatted_total=format_currency(amount),
        reimbursable_amount=reimbursable,
        non_reimbursable_amount=amount - reimbursable,
        formatted_reimbursable=format_currency(reimbursable),
    )


class ReportService:
    """Business logic for report creation and reads."""

    # ── Create ────────────────────────────────────────────────────────

    @staticmethod
    async def create_report(
        db: AsyncSession,
        actor: Actor,
        *,
        title: str,
        description: Optional[str] = None,
        start_date: Optional[date] = None,
        end_date: Optional[date] = None,
    ) -> Report:
        """Create a PENDING report owned by *actor*."""
        report = Report(
            title=title.strip(),
            description=description,
            start_date=start_date,
            end_date=end_date,
            status=ReportStatus.PENDING,
            total_amount=Decimal("0.00"),
            user_id=actor.id,
        )
        db.add(report)
        await db.flush()

        await HistoryRecorder.record_report_event(
            db,
            report_id=report.id,
            event_type=ReportEventType.CREATED,
            details="Report created",
            performed_by_id=actor.id,
        )
        return await load_report(db, report.id)

    # ── Read ──────────────────────────────────────────────────────────

    @staticmethod
    async def get_report(
        db: AsyncSession,
        report_id: int,
        actor: Actor,
        *,
        admin_scope: bool = False,
    ) -> Report:
        """Return a report visible to *actor*; reports owned by others look missing."""
        report = await load_report(db, report_id)
        if report is None:
            raise NotFoundException("Report", report_id)
        if not (admin_scope and actor.is_admin) and report.user_id != actor.id:
            raise NotFoundException("Report", report_id)
        return report

    @staticmethod
    async def list_reports(
        db: AsyncSession,
        pagination: PaginationParams,
        *,
        user_id: Optional[uuid.UUID] = None,
        status: Optional[ReportStatus] = None,
        search: Optional[str] = None,
    ) -> tuple[Sequence[Report], PaginationMeta]:
        """Paginated reports, newest first. ``user_id=None`` means every owner."""
        query = select(Report).order_by(Report.created_at.desc(), Report.id.desc())

        if user_id is not None:
            query = query.where(Report.user_id == user_id)
        if status is not None:
            query = query.where(Report.status == status)
        if search:
            pattern = f"%{search.strip()}%"
            query = query.where(
                or_(Report.title.ilike(pattern), Report.description.ilike(pattern))
            )

        return await paginate(db, query, pagination, model=Report)

    @staticmethod
    async def summary(db: AsyncSession, actor: Actor) -> ReportSummary:
        """Count and amounts of the caller's reports per status.

        Amounts are summed from the attached expenses, never from the cached
        ``total_amount``, so the figures match what the report views show.
        """
        rows = (
            await db.execute(
                select(
                    Report.status,
                    func.count(distinct(Report.id)),
                    func.coalesce(func.sum(Expense.amount), 0),
                    func.coalesce(func.sum(REIMBURSABLE_AMOUNT), 0),
                )
                .select_from(Report)
                .outerjoin(Expense, Expense.report_id == Report.id)
                .where(Report.user_id == actor.id)
                .group_by(Report.status)
            )
        ).all()

        by_status = {s: StatusSummary() for s in ReportStatus}
        for status, count, amount, reimbursable in rows:
            by_status[status] = _status_summary(count, amount, reimbursable)

        totals = _status_summary(
            sum(s.count for s in by_status.values()),
            sum((s.total_amount for s in by_status.values()), Decimal("0")),
            sum((s.reimbursable_amount for s in by_status.values()), Decimal("0")),
        )
        return ReportSummary(
            total_reports=totals.count,
            total_amount=totals.total_amount,
            formatted_total=totals.formatted_total,
            reimbursable_amount=totals.reimbursable_amount,
            non_reimbursable_amount=totals.non_reimbursable_amount,
            formatted_reimbursable=totals.formatted_reimbursable,
            by_status=by_status,
        )
