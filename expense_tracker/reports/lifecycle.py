"""Report lifecycle engine — the PENDING → SUBMITTED → APPROVED/REJECTED → REIMBURSED machine.

Every transition runs inside the caller's transaction:

1. load the report and check role, ownership and current status,
2. conditional ``UPDATE reports ... WHERE id = :id AND status = :expected``
   (zero matched rows means someone else moved the report first),
3. mirror the new status onto attached expenses,
4. append a ``ReportHistory`` row.

Nothing here commits or sends notifications. Each successful transition
returns a ``ReportEvent`` that the router hands to the dispatcher after
committing. Bulk operations are the exception: they commit (or roll back)
once per report so that one bad report never undoes the others.
"""

from __future__ import annotations

import logging
import uuid
from datetime import datetime, timezone
from decimal import Decimal
from typing import Optional, Sequence

from pydantic import BaseModel, ConfigDict, Field
from sqlalchemy import select, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from expense_tracker.auth.schemas import Actor
from expense_tracker.common.constants import ReportEventType, ReportStatus
from expense_tracker.common.exceptions import (
    AppException,
    ForbiddenException,
    InvalidStateException,
    NotFoundException,
)
from expense_tracker.common.formatting import format_currency, to_amount
from expense_tracker.history.service import HistoryRecorder
from expense_tracker.reports.association import (
    ExpenseAssociation,
    load_report,
    recompute_total,
    reimbursable_subtotal,
)
from expense_tracker.reports.models import Report

logger = logging.getLogger(__name__)


# Legal (from, to) pairs. Anything else, including every reverse move, is illegal.
TRANSITIONS: frozenset[tuple[ReportStatus, ReportStatus]] = frozenset({
    (ReportStatus.PENDING, ReportStatus.SUBMITTED),
    (ReportStatus.SUBMITTED, ReportStatus.APPROVED),
    (ReportStatus.SUBMITTED, ReportStatus.REJECTED),
    (ReportStatus.APPROVED, ReportStatus.REIMBURSED),
})


def can_transition(current: ReportStatus, target: ReportStatus) -> bool:
    return (current, target) in TRANSITIONS


# ── Events ──────────────────────────────────────────────────────────

class ReportEvent(BaseModel):
    """Plain snapshot of a completed transition, safe to use after commit/rollback."""

    model_config = ConfigDict(frozen=True)

    event_type: ReportEventType
    report_id: int
    report_title: str
    owner_id: uuid.UUID
    owner_email: Optional[str]
    owner_name: str
    actor_id: uuid.UUID
    actor_name: Optional[str]
    total_amount: Decimal
    reimbursable_amount: Decimal
    occurred_at: datetime
    submitted_at: Optional[datetime] = None
    # Designated approver of the owner; the recipient of SUBMITTED events
    owner_approver_id: Optional[uuid.UUID] = None
    reason: Optional[str] = None
    payment_reference: Optional[str] = None


def _event_from(
    report: Report,
    event_type: ReportEventType,
    actor: Actor,
    *,
    reason: Optional[str] = None,
    payment_reference: Optional[str] = None,
) -> ReportEvent:
    owner = report.user
    return ReportEvent(
        event_type=event_type,
        report_id=report.id,
        report_title=report.title,
        owner_id=report.user_id,
        owner_email=owner.email if owner else None,
        owner_name=owner.display_name if owner else "",
        owner_approver_id=owner.approver_id if owner else None,
        actor_id=actor.id,
        actor_name=actor.name,
        total_amount=to_amount(report.total_amount),
        reimbursable_amount=reimbursable_subtotal(report.expenses),
        occurred_at=report.updated_at or datetime.now(timezone.utc),
        submitted_at=report.submitted_at,
        reason=reason,
        payment_reference=payment_reference,
    )


class BulkOutcome(BaseModel):
    """Per-request tally of a bulk lifecycle operation."""

    requested: list[int]
    succeeded: list[int] = Field(default_factory=list)
    skipped: list[int] = Field(default_factory=list)
    failed: list[int] = Field(default_factory=list)
    events: list[ReportEvent] = Field(default_factory=list)


def _require_admin(actor: Actor) -> None:
    if not actor.is_admin:
        raise ForbiddenException("Only administrators can perform this action.")


def _clean_ids(ids: Sequence[int]) -> list[int]:
    return list(dict.fromkeys(ids))


# ── Engine ──────────────────────────────────────────────────────────

class ReportLifecycle:
    """Guards and effects of every report state change."""

    @staticmethod
    async def _transition(
        db: AsyncSession,
        report: Report,
        target: ReportStatus,
        actor: Actor,
        *,
        event_type: ReportEventType,
        details: str,
        **values,
    ) -> Report:
        """Move *report* to *target* if nobody else moved it first."""
        expected = report.status
        if not can_transition(expected, target):
            raise InvalidStateException(
                f"Cannot move a report from {expected.value} to {target.value}.",
            )

        result = await db.execute(
            update(Report)
            .where(Report.id == report.id, Report.status == expected)
            .values(status=target, updated_at=datetime.now(timezone.utc), **values)
            .execution_options(synchronize_session=False)
        )
        if result.rowcount != 1:
            raise InvalidStateException(
                f"Report #{report.id} is no longer {expected.value}.",
            )

        await ExpenseAssociation.mirror_status(db, report.id, target)
        await HistoryRecorder.record_report_event(
            db,
            report_id=report.id,
            event_type=event_type,
            details=details,
            performed_by_id=actor.id,
        )
        return await load_report(db, report.id)

    # ── Owner transitions ─────────────────────────────────────────────

    @staticmethod
    async def submit(
        db: AsyncSession,
        report_id: int,
        actor: Actor,
    ) -> tuple[Report, ReportEvent]:
        """PENDING → SUBMITTED. Owner only; the report must hold at least one expense."""
        report = await load_report(db, report_id)
        if report is None or report.user_id != actor.id:
            raise NotFoundException("Report", report_id)
        if report.status != ReportStatus.PENDING:
            raise InvalidStateException(
                f"Only pending reports can be submitted (current status: {report.status.value}).",
            )
        if not report.expenses:
            raise InvalidStateException(
                "Cannot submit an empty report. Add at least one expense first.",
            )

        total = recompute_total(report.expenses)
        now = datetime.now(timezone.utc)
        report = await ReportLifecycle._transition(
            db,
            report,
            ReportStatus.SUBMITTED,
            actor,
            event_type=ReportEventType.SUBMITTED,
            details=f"Report submitted for approval with total amount {format_currency(total)}",
            submitted_at=now,
            total_amount=total,
        )
        return report, _event_from(report, ReportEventType.SUBMITTED, actor)

    # ── Admin transitions ─────────────────────────────────────────────

    @staticmethod
    async def _load_for_admin(
        db: AsyncSession,
        report_id: int,
        actor: Actor,
        expected: ReportStatus,
        verb: str,
    ) -> Report:
        _require_admin(actor)
        report = await load_report(db, report_id)
        if report is None:
            raise NotFoundException("Report", report_id)
        if report.status != expected:
            raise InvalidStateException(
                f"Only {expected.value.lower()} reports can be {verb} "
                f"(current status: {report.status.value}).",
            )
        return report

    @staticmethod
    async def approve(
        db: AsyncSession,
        report_id: int,
        actor: Actor,
        *,
        details: str = "Report approved by admin",
    ) -> tuple[Report, ReportEvent]:
        """SUBMITTED → APPROVED."""
        report = await ReportLifecycle._load_for_admin(
            db, report_id, actor, ReportStatus.SUBMITTED, "approved",
        )
        report = await ReportLifecycle._transition(
            db,
            report,
            ReportStatus.APPROVED,
            actor,
            event_type=ReportEventType.APPROVED,
            details=details,
            approved_at=datetime.now(timezone.utc),
            approver_id=actor.id,
            total_amount=recompute_total(report.expenses),
        )
        return report, _event_from(report, ReportEventType.APPROVED, actor)

    @staticmethod
    async def reject(
        db: AsyncSession,
        report_id: int,
        actor: Actor,
        reason: Optional[str],
        *,
        details: Optional[str] = None,
    ) -> tuple[Report, ReportEvent]:
        """SUBMITTED → REJECTED. A non-empty reason is mandatory."""
        reason = (reason or "").strip()
        if not reason:
            raise InvalidStateException(
                "A rejection reason is required.",
                errors={"reason": ["A rejection reason is required."]},
            )

        report = await ReportLifecycle._load_for_admin(
            db, report_id, actor, ReportStatus.SUBMITTED, "rejected",
        )
        report = await ReportLifecycle._transition(
            db,
            report,
            ReportStatus.REJECTED,
            actor,
            event_type=ReportEventType.REJECTED,
            details=details or f"Report rejected: {reason}",
            rejected_at=datetime.now(timezone.utc),
            approver_id=actor.id,
            reimbursement_notes=reason,
        )
        return report, _event_from(report, ReportEventType.REJECTED, actor, reason=reason)

    @staticmethod
    async def reimburse(
        db: AsyncSession,
        report_id: int,
        actor: Actor,
        payment_reference: Optional[str] = None,
        *,
        details: Optional[str] = None,
    ) -> tuple[Report, ReportEvent]:
        """APPROVED → REIMBURSED, optionally recording the payment reference."""
        payment_reference = (payment_reference or "").strip() or None
        report = await ReportLifecycle._load_for_admin(
            db, report_id, actor, ReportStatus.APPROVED, "reimbursed",
        )

        if details is None:
            details = (
                f"Report reimbursed with payment reference: {payment_reference}"
                if payment_reference
                else "Report marked as reimbursed"
            )
        values = {"reimbursed_at": datetime.now(timezone.utc)}
        if payment_reference:
            values["reimbursement_notes"] = payment_reference

        report = await ReportLifecycle._transition(
            db,
            report,
            ReportStatus.REIMBURSED,
            actor,
            event_type=ReportEventType.REIMBURSED,
            details=details,
            **values,
        )
        return report, _event_from(
            report, ReportEventType.REIMBURSED, actor, payment_reference=payment_reference,
        )

    # ── Deletion ──────────────────────────────────────────────────────

    @staticmethod
    async def delete(
        db: AsyncSession,
        report_id: int,
        actor: Actor,
    ) -> None:
        """Owner while PENDING, admin in any status. Expenses are detached, not deleted."""
        report = await load_report(db, report_id)
        if report is None or (report.user_id != actor.id and not actor.is_admin):
            raise NotFoundException("Report", report_id)
        if not actor.is_admin and report.status != ReportStatus.PENDING:
            raise InvalidStateException(
                f"Only pending reports can be deleted (current status: {report.status.value}).",
            )

        detached = await ExpenseAssociation.detach_all(db, report_id)
        await db.delete(report)
        await db.flush()
        logger.info(
            "Report #%s deleted by %s (%d expense(s) detached)",
            report_id, actor.id, detached,
        )

    # ── Bulk ──────────────────────────────────────────────────────────

    @staticmethod
    async def _eligible_ids(
        db: AsyncSession,
        ids: list[int],
        status: ReportStatus,
        owner_id: Optional[uuid.UUID] = None,
        with_expenses: bool = False,
    ) -> list[int]:
        stmt = select(Report.id).where(Report.id.in_(ids), Report.status == status)
        if owner_id is not None:
            stmt = stmt.where(Report.user_id == owner_id)
        if with_expenses:
            stmt = stmt.where(Report.expenses.any())
        found = set((await db.execute(stmt)).scalars().all())
        return [i for i in ids if i in found]

    @staticmethod
    async def _run_bulk(
        db: AsyncSession,
        ids: Sequence[int],
        source: ReportStatus,
        operation,
        *,
        owner_id: Optional[uuid.UUID] = None,
        with_expenses: bool = False,
        label: str,
    ) -> BulkOutcome:
        """Apply *operation* to every id currently in *source*, one transaction each."""
        outcome = BulkOutcome(requested=_clean_ids(ids))
        eligible = await ReportLifecycle._eligible_ids(
            db, outcome.requested, source, owner_id, with_expenses,
        )
        outcome.skipped = [i for i in outcome.requested if i not in eligible]

        for report_id in eligible:
            try:
                result = await operation(report_id)
                await db.commit()
            except (AppException, SQLAlchemyError) as exc:
                await db.rollback()
                outcome.failed.append(report_id)
                logger.warning("Bulk %s failed for report #%s: %s", label, report_id, exc)
                continue
            outcome.succeeded.append(report_id)
            if result is not None:
                outcome.events.append(result)

        logger.info(
            "Bulk %s: %d requested, %d succeeded, %d skipped, %d failed",
            label,
            len(outcome.requested),
            len(outcome.succeeded),
            len(outcome.skipped),
            len(outcome.failed),
        )
        return outcome

    @staticmethod
    async def bulk_approve(
        db: AsyncSession,
        ids: Sequence[int],
        actor: Actor,
    ) -> BulkOutcome:
        _require_admin(actor)

        async def _approve(report_id: int) -> ReportEvent:
            _, event = await ReportLifecycle.approve(
                db, report_id, actor, details="Report approved in bulk action",
            )
            return event

        return await ReportLifecycle._run_bulk(
            db, ids, ReportStatus.SUBMITTED, _approve, label="approve",
        )

    @staticmethod
    async def bulk_reject(
        db: AsyncSession,
        ids: Sequence[int],
        actor: Actor,
        reason: Optional[str],
    ) -> BulkOutcome:
        _require_admin(actor)
        reason = (reason or "").strip()
        if not reason:
            raise InvalidStateException(
                "A rejection reason is required.",
                errors={"reason": ["A rejection reason is required."]},
            )

        async def _reject(report_id: int) -> ReportEvent:
            _, event = await ReportLifecycle.reject(
                db,
                report_id,
                actor,
                reason,
                details=f"Report rejected in bulk action: {reason}",
            )
            return event

        return await ReportLifecycle._run_bulk(
            db, ids, ReportStatus.SUBMITTED, _reject, label="reject",
        )

    @staticmethod
    async def bulk_reimburse(
        db: AsyncSession,
        ids: Sequence[int],
        actor: Actor,
        payment_reference: Optional[str] = None,
    ) -> BulkOutcome:
        _require_admin(actor)

        async def _reimburse(report_id: int) -> ReportEvent:
            _, event = await ReportLifecycle.reimburse(
                db,
                report_id,
                actor,
                payment_reference,
                details="Report reimbursed in bulk action",
            )
            return event

        return await ReportLifecycle._run_bulk(
            db, ids, ReportStatus.APPROVED, _reimburse, label="reimburse",
        )

    @staticmethod
    async def bulk_submit(
        db: AsyncSession,
        ids: Sequence[int],
        actor: Actor,
    ) -> BulkOutcome:
        """Submit the caller's own pending reports; empty ones are skipped."""

        async def _submit(report_id: int) -> ReportEvent:
            _, event = await ReportLifecycle.submit(db, report_id, actor)
            return event

        return await ReportLifecycle._run_bulk(
            db,
            ids,
            ReportStatus.PENDING,
            _submit,
            owner_id=actor.id,
            with_expenses=True,
            label="submit",
        )

    @staticmethod
    async def bulk_delete(
        db: AsyncSession,
        ids: Sequence[int],
        actor: Actor,
    ) -> BulkOutcome:
        """Delete the caller's own pending reports."""

        async def _delete(report_id: int) -> None:
            await ReportLifecycle.delete(db, report_id, actor)
            return None

        return await ReportLifecycle._run_bulk(
            db, ids, ReportStatus.PENDING, _delete, owner_id=actor.id, label="delete",
        )
