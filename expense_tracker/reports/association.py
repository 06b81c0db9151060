"""Expense ↔ report association — membership changes, status mirroring, totals.

The report's ``total_amount`` is a cache of the attached expense amounts.
Every membership change goes through here so the cache is recomputed and
persisted in the same transaction as the change itself.
"""

from __future__ import annotations

from decimal import Decimal
from typing import Iterable, Optional, Sequence

from sqlalchemy import case, select, update
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import joinedload, selectinload

from expense_tracker.auth.schemas import Actor
from expense_tracker.common.constants import (
    EXPENSE_STATUS_FOR_REPORT,
    ExpenseEventType,
    ExpenseStatus,
    ReportEventType,
    ReportStatus,
)
from expense_tracker.common.exceptions import (
    ForbiddenException,
    InvalidStateException,
    NotFoundException,
)
from expense_tracker.common.formatting import format_currency, to_amount
from expense_tracker.expenses.models import Expense
from expense_tracker.history.service import HistoryRecorder
from expense_tracker.reports.models import Report


# ── Pure calculations ───────────────────────────────────────────────

def recompute_total(expenses: Iterable[Expense]) -> Decimal:
    """Sum of all expense amounts."""
    return to_amount(sum((to_amount(e.amount) for e in expenses), Decimal("0")))


def reimbursable_subtotal(expenses: Iterable[Expense]) -> Decimal:
    """Sum of the expenses claimed for reimbursement (``None`` counts as claimed)."""
    return to_amount(
        sum(
            (to_amount(e.amount) for e in expenses if e.claim_reimbursement is not False),
            Decimal("0"),
        )
    )


def non_reimbursable_amount(expenses: Sequence[Expense]) -> Decimal:
    return recompute_total(expenses) - reimbursable_subtotal(expenses)


# SQL counterpart of reimbursable_subtotal for aggregate queries; wrap in SUM().
REIMBURSABLE_AMOUNT = case(
    (Expense.claim_reimbursement.is_(False), 0),
    else_=Expense.amount,
)


# ── Loading ─────────────────────────────────────────────────────────

async def load_report(db: AsyncSession, report_id: int) -> Optional[Report]:
    """Fetch a report with owner, approver and expenses, overwriting stale state."""
    result = await db.execute(
        select(Report)
        .where(Report.id == report_id)
        .options(
            selectinload(Report.expenses),
            joinedload(Report.user),
            joinedload(Report.approver),
        )
        .execution_options(populate_existing=True)
    )
    return result.scalars().unique().first()


class ExpenseAssociation:
    """Keep Expense.report_id, Expense.status and Report.total_amount consistent."""

    @staticmethod
    async def get_editable_report(
        db: AsyncSession,
        report_id: int,
        actor: Actor,
    ) -> Report:
        """Return the report if *actor* owns it and it still accepts changes."""
        report = await load_report(db, report_id)
        if report is None:
            raise NotFoundException("Report", report_id)
        if report.user_id != actor.id:
            raise ForbiddenException("Only the report owner can change its expenses.")
        if report.status != ReportStatus.PENDING:
            raise InvalidStateException(
                f"Expenses can only be changed on a pending report (current status: {report.status.value}).",
            )
        return report

    @staticmethod
    async def sync_total(db: AsyncSession, report_id: int) -> Decimal:
        """Recompute ``total_amount`` from the attached expenses and persist it."""
        await db.flush()
        rows = (
            await db.execute(select(Expense.amount).where(Expense.report_id == report_id))
        ).scalars().all()
        total = to_amount(sum((to_amount(a) for a in rows), Decimal("0")))
        await db.execute(
            update(Report)
            .where(Report.id == report_id)
            .values(total_amount=total)
            .execution_options(synchronize_session=False)
        )
        return total

    @staticmethod
    async def mirror_status(
        db: AsyncSession,
        report_id: int,
        report_status: ReportStatus,
    ) -> None:
        """Set every attached expense to the status matching *report_status*."""
        await db.execute(
            update(Expense)
            .where(Expense.report_id == report_id)
            .values(status=EXPENSE_STATUS_FOR_REPORT[report_status])
            .execution_options(synchronize_session=False)
        )

    @staticmethod
    async def detach_all(db: AsyncSession, report_id: int) -> int:
        """Unlink every expense from a report (used before deleting it)."""
        result = await db.execute(
            update(Expense)
            .where(Expense.report_id == report_id)
            .values(report_id=None, status=ExpenseStatus.UNREPORTED)
            .execution_options(synchronize_session=False)
        )
        return result.rowcount or 0

    # ── Membership ────────────────────────────────────────────────────

    @staticmethod
    async def add_expenses(
        db: AsyncSession,
        report_id: int,
        expense_ids: Sequence[int],
        actor: Actor,
    ) -> Report:
        """Attach expenses to a pending report. All-or-nothing."""
        if not expense_ids:
            raise InvalidStateException("No expenses were provided.")

        report = await ExpenseAssociation.get_editable_report(db, report_id, actor)

        wanted = list(dict.fromkeys(expense_ids))
        found = {
            e.id: e
            for e in (
                await db.execute(select(Expense).where(Expense.id.in_(wanted)))
            ).scalars().all()
        }

        problems: list[str] = []
        for expense_id in wanted:
            expense = found.get(expense_id)
            if expense is None or expense.user_id != actor.id:
                problems.append(f"Expense {expense_id} does not exist.")
            elif expense.report_id not in (None, report_id):
                problems.append(
                    f"Expense {expense_id} is already attached to report #{expense.report_id}.",
                )
        if problems:
            raise InvalidStateException(
                "Some expenses cannot be added to this report.",
                errors={"expense_ids": problems},
            )

        added = [found[i] for i in wanted if found[i].report_id is None]
        for expense in added:
            expense.report_id = report_id
            expense.status = EXPENSE_STATUS_FOR_REPORT[report.status]
        await db.flush()

        for expense in added:
            await HistoryRecorder.record_expense_event(
                db,
                expense_id=expense.id,
                event_type=ExpenseEventType.ADDED_TO_REPORT,
                details=f"Added to report #{report_id}",
                performed_by_id=actor.id,
                report_id=report_id,
            )

        if added:
            await HistoryRecorder.record_report_event(
                db,
                report_id=report_id,
                event_type=ReportEventType.EXPENSES_ADDED,
                details=(
                    f"Added {len(added)} expense(s) totalling "
                    f"{format_currency(recompute_total(added))}"
                ),
                performed_by_id=actor.id,
            )

        await ExpenseAssociation.sync_total(db, report_id)
        return await load_report(db, report_id)

    @staticmethod
    async def remove_expenses(
        db: AsyncSession,
        report_id: int,
        expense_ids: Sequence[int],
        actor: Actor,
    ) -> Report:
        """Detach expenses from a pending report; ids not on it are ignored."""
        await ExpenseAssociation.get_editable_report(db, report_id, actor)

        removed = (
            await db.execute(
                select(Expense).where(
                    Expense.id.in_(list(expense_ids)),
                    Expense.report_id == report_id,
                )
            )
        ).scalars().all()

        for expense in removed:
            expense.report_id = None
            expense.status = ExpenseStatus.UNREPORTED
        await db.flush()

        for expense in removed:
            await HistoryRecorder.record_expense_event(
                db,
                expense_id=expense.id,
                event_type=ExpenseEventType.REMOVED_FROM_REPORT,
                details=f"Removed from report #{report_id}",
                performed_by_id=actor.id,
                report_id=report_id,
            )

        if removed:
            await HistoryRecorder.record_report_event(
                db,
                report_id=report_id,
                event_type=ReportEventType.EXPENSES_REMOVED,
                details=(
                    f"Removed {len(removed)} expense(s) totalling "
                    f"{format_currency(recompute_total(removed))}"
                ),
                performed_by_id=actor.id,
            )

        await ExpenseAssociation.sync_total(db, report_id)
        return await load_report(db, report_id)
