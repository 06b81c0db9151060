"""Expenses service layer — CRUD for expenses, keeping report totals in sync."""

from __future__ import annotations

import logging
import uuid
from typing import Any, Optional, Sequence

from sqlalchemy import func, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from expense_tracker.auth.schemas import Actor
from expense_tracker.common.constants import (
    EXPENSE_STATUS_FOR_REPORT,
    ExpenseCategory,
    ExpenseEventType,
    ExpenseStatus,
    ReportEventType,
    ReportStatus,
)
from expense_tracker.common.exceptions import (
    AppException,
    InvalidStateException,
    NotFoundException,
)
from expense_tracker.common.formatting import format_currency, to_amount
from expense_tracker.common.pagination import PaginationMeta, PaginationParams, paginate
from expense_tracker.expenses.models import Expense
from expense_tracker.expenses.schemas import (
    BulkDeleteItem,
    BulkDeleteResult,
    CategoryStat,
    ExpenseCreate,
    ExpenseStats,
    StatusStat,
)
from expense_tracker.history.service import HistoryRecorder
from expense_tracker.reports.association import ExpenseAssociation
from expense_tracker.reports.models import Report

logger = logging.getLogger(__name__)


class ExpenseService:
    """Business logic for expense operations."""

    # ── Create ────────────────────────────────────────────────────────

    @staticmethod
    async def create_expense(
        db: AsyncSession,
        actor: Actor,
        data: ExpenseCreate,
    ) -> Expense:
        """Create an expense, optionally attached straight to an owned pending report."""
        report: Optional[Report] = None
        if data.report_id is not None:
            report = await ExpenseAssociation.get_editable_report(db, data.report_id, actor)

        expense = Expense(
            amount=data.amount,
            currency=data.currency,
            merchant=data.merchant.strip(),
            date=data.date,
            description=data.description,
            category=data.category,
            notes=data.notes,
            receipt_urls=list(data.receipt_urls),
            claim_reimbursement=data.claim_reimbursement,
            user_id=actor.id,
            report_id=report.id if report else None,
            status=(
                EXPENSE_STATUS_FOR_REPORT[report.status] if report else ExpenseStatus.UNREPORTED
            ),
        )
        db.add(expense)
        await db.flush()

        await HistoryRecorder.record_expense_event(
            db,
            expense_id=expense.id,
            event_type=ExpenseEventType.CREATED,
            details="Expense created",
            performed_by_id=actor.id,
        )

        if report is not None:
            await HistoryRecorder.record_expense_event(
                db,
                expense_id=expense.id,
                event_type=ExpenseEventType.ADDED_TO_REPORT,
                details=f"Added to report #{report.id}",
                performed_by_id=actor.id,
                report_id=report.id,
            )
            await HistoryRecorder.record_report_event(
                db,
                report_id=report.id,
                event_type=ReportEventType.EXPENSES_ADDED,
                details=f"Added 1 expense(s) totalling {format_currency(expense.amount)}",
                performed_by_id=actor.id,
            )
            await ExpenseAssociation.sync_total(db, report.id)

        return expense

    # ── Read ──────────────────────────────────────────────────────────

    @staticmethod
    async def get_expense(
        db: AsyncSession,
        expense_id: int,
        actor: Actor,
        *,
        admin_scope: bool = False,
    ) -> Expense:
        """Return an expense visible to *actor*; other users' expenses look missing."""
        expense = await db.get(Expense, expense_id)
        if expense is None:
            raise NotFoundException("Expense", expense_id)
        if not (admin_scope and actor.is_admin) and expense.user_id != actor.id:
            raise NotFoundException("Expense", expense_id)
        return expense

    @staticmethod
    async def list_expenses(
        db: AsyncSession,
        pagination: PaginationParams,
        *,
        user_id: uuid.UUID,
        status: Optional[ExpenseStatus] = None,
        report_id: Optional[int] = None,
        category: Optional[ExpenseCategory] = None,
        unreported_only: bool = False,
    ) -> tuple[Sequence[Expense], PaginationMeta]:
        """The user's expenses, most recent spend first."""
        query = (
            select(Expense)
            .where(Expense.user_id == user_id)
            .order_by(Expense.date.desc(), Expense.id.desc())
        )
        if status is not None:
            query = query.where(Expense.status == status)
        if report_id is not None:
            query = query.where(Expense.report_id == report_id)
        if category is not None:
            query = query.where(Expense.category == category)
        if unreported_only:
            query = query.where(Expense.report_id.is_(None))

        return await paginate(db, query, pagination, model=Expense)

    # ── Update ────────────────────────────────────────────────────────

    @staticmethod
    async def _report_status(db: AsyncSession, report_id: Optional[int]) -> Optional[ReportStatus]:
        if report_id is None:
            return None
        result = await db.execute(select(Report.status).where(Report.id == report_id))
        return result.scalar_one_or_none()

    @staticmethod
    async def update_expense(
        db: AsyncSession,
        expense_id: int,
        actor: Actor,
        changes: dict[str, Any],
    ) -> Expense:
        """Edit an expense while it is unreported or on a pending report."""
        expense = await ExpenseService.get_expense(db, expense_id, actor)

        report_status = await ExpenseService._report_status(db, expense.report_id)
        if report_status not in (None, ReportStatus.PENDING):
            raise InvalidStateException(
                f"Expenses on a {report_status.value.lower()} report cannot be edited.",
            )

        changed: list[str] = []
        for field, value in changes.items():
            if value is None and field != "notes":
                continue
            if hasattr(expense, field) and getattr(expense, field) != value:
                setattr(expense, field, value)
                changed.append(field)

        if not changed:
            return expense

        await db.flush()
        await HistoryRecorder.record_expense_event(
            db,
            expense_id=expense.id,
            event_type=ExpenseEventType.UPDATED,
            details=f"Updated {', '.join(sorted(changed))}",
            performed_by_id=actor.id,
            report_id=expense.report_id,
        )

        if expense.report_id is not None and "amount" in changed:
            await ExpenseAssociation.sync_total(db, expense.report_id)
        return expense

    # ── Delete ────────────────────────────────────────────────────────

    @staticmethod
    async def delete_expense(
        db: AsyncSession,
        expense_id: int,
        actor: Actor,
    ) -> None:
        """Owner while unreported or on a pending report; admin always."""
        expense = await ExpenseService.get_expense(db, expense_id, actor, admin_scope=True)
        report_id = expense.report_id

        if not actor.is_admin:
            report_status = await ExpenseService._report_status(db, report_id)
            if report_status not in (None, ReportStatus.PENDING):
                raise InvalidStateException(
                    f"Expenses on a {report_status.value.lower()} report cannot be deleted.",
                )

        amount = expense.amount
        await db.delete(expense)
        await db.flush()

        if report_id is not None:
            await HistoryRecorder.record_report_event(
                db,
                report_id=report_id,
                event_type=ReportEventType.EXPENSES_REMOVED,
                details=f"Expense #{expense_id} ({format_currency(amount)}) deleted",
                performed_by_id=actor.id,
            )
            await ExpenseAssociation.sync_total(db, report_id)

    @staticmethod
    async def bulk_delete(
        db: AsyncSession,
        expense_ids: Sequence[int],
        actor: Actor,
    ) -> BulkDeleteResult:
        """Delete each expense in its own transaction; one refusal never blocks the rest."""
        result = BulkDeleteResult()
        for expense_id in dict.fromkeys(expense_ids):
            try:
                await ExpenseService.delete_expense(db, expense_id, actor)
                await db.commit()
            except (AppException, SQLAlchemyError) as exc:
                await db.rollback()
                if isinstance(exc, AppException):
                    message = exc.detail
                else:
                    message = "A database error occurred."
                result.results.append(BulkDeleteItem(id=expense_id, success=False, error=message))
                logger.warning("Bulk delete failed for expense #%s: %s", expense_id, exc)
                continue
            result.results.append(BulkDeleteItem(id=expense_id, success=True))

        result.requested = len(result.results)
        result.succeeded = sum(1 for item in result.results if item.success)
        result.failed = result.requested - result.succeeded
        logger.info(
            "Bulk delete: %d requested, %d succeeded, %d failed",
            result.requested, result.succeeded, result.failed,
        )
        return result

    # ── Stats ─────────────────────────────────────────────────────────

    @staticmethod
    async def stats(db: AsyncSession, actor: Actor) -> ExpenseStats:
        """COUNT/SUM of the caller's expenses, overall, per category and per status."""
        owned = Expense.user_id == actor.id
        amount = func.coalesce(func.sum(Expense.amount), 0)

        total = (
            await db.execute(select(func.count(Expense.id), amount).where(owned))
        ).one()
        by_category = await db.execute(
            select(Expense.category, func.count(Expense.id), amount)
            .where(owned)
            .group_by(Expense.category)
            .order_by(Expense.category)
        )
        by_status = await db.execute(
            select(Expense.status, func.count(Expense.id), amount)
            .where(owned)
            .group_by(Expense.status)
            .order_by(Expense.status)
        )

        return ExpenseStats(
            total_count=total[0] or 0,
            total_amount=to_amount(total[1]),
            by_category=[
                CategoryStat(category=category, count=count, amount=to_amount(value))
                for category, count, value in by_category.all()
            ],
            by_status=[
                StatusStat(status=status, count=count, amount=to_amount(value))
                for status, count, value in by_status.all()
            ],
        )
