"""History recorder — append-only report/expense audit rows and their reads.

Writes never validate business rules: they flush a row inside the caller's
transaction and either succeed or raise the underlying persistence error.
Authorization for reads is enforced by the routers, not here.
"""

from __future__ import annotations

import uuid
from typing import Optional, Sequence

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from expense_tracker.auth.schemas import Actor
from expense_tracker.common.constants import ExpenseEventType, ReportEventType
from expense_tracker.common.exceptions import NotFoundException
from expense_tracker.history.models import ExpenseHistory, ReportHistory
from expense_tracker.history.schemas import (
    ExpenseHistoryOut,
    PerformerBrief,
    ReportHistoryOut,
)
from expense_tracker.reports.models import Report


def _performer(row) -> Optional[PerformerBrief]:
    user = row.performed_by
    if user is None:
        return None
    return PerformerBrief(id=user.id, name=user.display_name)


def report_history_out(row: ReportHistory) -> ReportHistoryOut:
    return ReportHistoryOut(
        id=row.id,
        report_id=row.report_id,
        event_type=row.event_type,
        event_date=row.event_date,
        details=row.details,
        performed_by=_performer(row),
    )


def expense_history_out(row: ExpenseHistory) -> ExpenseHistoryOut:
    return ExpenseHistoryOut(
        id=row.id,
        expense_id=row.expense_id,
        report_id=row.report_id,
        event_type=row.event_type,
        event_date=row.event_date,
        details=row.details,
        performed_by=_performer(row),
    )


class HistoryRecorder:
    """Append and read lifecycle history."""

    # ── Write ─────────────────────────────────────────────────────────

    @staticmethod
    async def record_report_event(
        db: AsyncSession,
        *,
        report_id: int,
        event_type: ReportEventType,
        details: Optional[str] = None,
        performed_by_id: Optional[uuid.UUID] = None,
    ) -> ReportHistory:
        """Create and flush a report history row (``performed_by_id=None`` for system actions)."""
        entry = ReportHistory(
            report_id=report_id,
            event_type=event_type,
            details=details,
            performed_by_id=performed_by_id,
        )
        db.add(entry)
        await db.flush()
        return entry

    @staticmethod
    async def record_expense_event(
        db: AsyncSession,
        *,
        expense_id: int,
        event_type: ExpenseEventType,
        details: Optional[str] = None,
        performed_by_id: Optional[uuid.UUID] = None,
        report_id: Optional[int] = None,
    ) -> ExpenseHistory:
        entry = ExpenseHistory(
            expense_id=expense_id,
            report_id=report_id,
            event_type=event_type,
            details=details,
            performed_by_id=performed_by_id,
        )
        db.add(entry)
        await db.flush()
        return entry

    # ── Read ──────────────────────────────────────────────────────────

    @staticmethod
    async def list_report_history(
        db: AsyncSession,
        report_id: int,
    ) -> Sequence[ReportHistory]:
        """Return a report's history, newest first."""
        result = await db.execute(
            select(ReportHistory)
            .where(ReportHistory.report_id == report_id)
            .order_by(ReportHistory.event_date.desc(), ReportHistory.id.desc())
        )
        return result.scalars().all()

    @staticmethod
    async def list_expense_history(
        db: AsyncSession,
        expense_id: int,
    ) -> Sequence[ExpenseHistory]:
        result = await db.execute(
            select(ExpenseHistory)
            .where(ExpenseHistory.expense_id == expense_id)
            .order_by(ExpenseHistory.event_date.desc(), ExpenseHistory.id.desc())
        )
        return result.scalars().all()

    # ── Comments ──────────────────────────────────────────────────────

    @staticmethod
    async def add_comment(
        db: AsyncSession,
        report_id: int,
        actor: Actor,
        text: str,
    ) -> ReportHistory:
        """Annotate a report's history. Owner or admin only."""
        report = await db.get(Report, report_id)
        if report is None or (report.user_id != actor.id and not actor.is_admin):
            raise NotFoundException("Report", report_id)

        return await HistoryRecorder.record_report_event(
            db,
            report_id=report_id,
            event_type=ReportEventType.COMMENT,
            details=text.strip(),
            performed_by_id=actor.id,
        )
