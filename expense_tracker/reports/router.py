"""Reports router — owner endpoints and the admin review queue.

All endpoints require authentication; ``admin_router`` additionally
requires the ADMIN role.
"""

from typing import Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from expense_tracker.auth.dependencies import get_current_user, require_admin
from expense_tracker.auth.schemas import Actor
from expense_tracker.common.constants import ReportStatus
from expense_tracker.common.pagination import PaginationParams
from expense_tracker.database import get_db
from expense_tracker.history.schemas import CommentCreate
from expense_tracker.history.service import HistoryRecorder, report_history_out
from expense_tracker.notifications.dispatcher import ReportEventDispatcher
from expense_tracker.notifications.email import EmailSender, get_email_sender
from expense_tracker.reports.association import ExpenseAssociation
from expense_tracker.reports.lifecycle import BulkOutcome, ReportLifecycle
from expense_tracker.reports.schemas import (
    BulkIdsRequest,
    BulkReimburseRequest,
    BulkRejectRequest,
    BulkResult,
    ExpenseIdsRequest,
    ReimburseRequest,
    RejectRequest,
    ReportCreate,
    ReportListResponse,
    ReportResponse,
)
from expense_tracker.reports.service import ReportService, report_out

router = APIRouter(prefix="", tags=["reports"])
admin_router = APIRouter(prefix="", tags=["admin-reports"])


def _bulk_result(outcome: BulkOutcome) -> dict:
    return {
        "data": BulkResult(
            requested=len(outcome.requested),
            succeeded=len(outcome.succeeded),
            skipped=len(outcome.skipped),
            failed=len(outcome.failed),
            succeeded_ids=outcome.succeeded,
            skipped_ids=outcome.skipped,
            failed_ids=outcome.failed,
        )
    }


async def _history(db: AsyncSession, report_id: int) -> dict:
    rows = await HistoryRecorder.list_report_history(db, report_id)
    return {"data": [report_history_out(r) for r in rows]}


# ═════════════════════════════════════════════════════════════════════
# Owner endpoints
# ═════════════════════════════════════════════════════════════════════


# ── POST / ───────────────────────────────────────────────────────────

@router.post("", response_model=ReportResponse, status_code=201)
async def create_report(
    body: ReportCreate,
    actor: Actor = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    """Create a new pending report."""
    report = await ReportService.create_report(
        db,
        actor,
        title=body.title,
        description=body.description,
        start_date=body.start_date,
        end_date=body.end_date,
    )
    await db.commit()
    return ReportResponse(data=report_out(report, with_expenses=True))


# ── GET / ────────────────────────────────────────────────────────────

@router.get("", response_model=ReportListResponse)
async def list_my_reports(
    status: Optional[ReportStatus] = Query(None),
    search: Optional[str] = Query(None, max_length=100),
    pagination: PaginationParams = Depends(),
    actor: Actor = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    """List the caller's reports, newest first."""
    reports, meta = await ReportService.list_reports(
        db, pagination, user_id=actor.id, status=status, search=search,
    )
    return ReportListResponse(data=[report_out(r) for r in reports], meta=meta)


# ── GET /summary ─────────────────────────────────────────────────────
# NOTE: static paths are registered before /{report_id}.

@router.get("/summary")
async def report_summary(
    actor: Actor = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    """Counts and amounts of the caller's reports per status."""
    return {"data": await ReportService.summary(db, actor)}


# ── POST /bulk-submit ────────────────────────────────────────────────

@router.post("/bulk-submit")
async def bulk_submit(
    body: BulkIdsRequest,
    actor: Actor = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
    email_sender: EmailSender = Depends(get_email_sender),
):
    """Submit several of the caller's pending reports."""
    outcome = await ReportLifecycle.bulk_submit(db, body.report_ids, actor)
    await ReportEventDispatcher.dispatch_all(db, outcome.events, email_sender)
    return _bulk_result(outcome)


# ── POST /bulk-delete ────────────────────────────────────────────────

@router.post("/bulk-delete")
async def bulk_delete(
    body: BulkIdsRequest,
    actor: Actor = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    """Delete several of the caller's pending reports."""
    outcome = await ReportLifecycle.bulk_delete(db, body.report_ids, actor)
    return _bulk_result(outcome)


# ── GET /{report_id} ─────────────────────────────────────────────────

@router.get("/{report_id}", response_model=ReportResponse)
async def get_my_report(
    report_id: int,
    actor: Actor = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    report = await ReportService.get_report(db, report_id, actor)
    return ReportResponse(data=report_out(report, with_expenses=True))


# ── DELETE /{report_id} ──────────────────────────────────────────────

@router.delete("/{report_id}")
async def delete_my_report(
    report_id: int,
    actor: Actor = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    """Delete a pending report; its expenses become unreported."""
    await ReportLifecycle.delete(db, report_id, actor)
    await db.commit()
    return {"data": {"id": report_id, "deleted": True}}


# ── POST /{report_id}/submit ─────────────────────────────────────────

@router.post("/{report_id}/submit", response_model=ReportResponse)
async def submit_report(
    report_id: int,
    actor: Actor = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
    email_sender: EmailSender = Depends(get_email_sender),
):
    """Submit a pending report for approval."""
    report, event = await ReportLifecycle.submit(db, report_id, actor)
    await db.commit()
    response = ReportResponse(data=report_out(report, with_expenses=True))
    await ReportEventDispatcher.dispatch(db, event, email_sender)
    return response


# ── POST|DELETE /{report_id}/expenses ────────────────────────────────

@router.post("/{report_id}/expenses", response_model=ReportResponse)
async def add_expenses(
    report_id: int,
    body: ExpenseIdsRequest,
    actor: Actor = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    """Attach expenses to a pending report (all or nothing)."""
    report = await ExpenseAssociation.add_expenses(db, report_id, body.expense_ids, actor)
    await db.commit()
    return ReportResponse(data=report_out(report, with_expenses=True))


@router.delete("/{report_id}/expenses", response_model=ReportResponse)
async def remove_expenses(
    report_id: int,
    body: ExpenseIdsRequest,
    actor: Actor = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    """Detach expenses from a pending report."""
    report = await ExpenseAssociation.remove_expenses(db, report_id, body.expense_ids, actor)
    await db.commit()
    return ReportResponse(data=report_out(report, with_expenses=True))


# ── GET /{report_id}/history ─────────────────────────────────────────

@router.get("/{report_id}/history")
async def my_report_history(
    report_id: int,
    actor: Actor = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    await ReportService.get_report(db, report_id, actor)
    return await _history(db, report_id)


# ── POST /{report_id}/comments ───────────────────────────────────────

@router.post("/{report_id}/comments", status_code=201)
async def add_comment(
    report_id: int,
    body: CommentCreate,
    actor: Actor = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    """Add a comment to the report's history."""
    entry = await HistoryRecorder.add_comment(db, report_id, actor, body.text)
    await db.commit()
    return {"data": report_history_out(entry)}


# ═════════════════════════════════════════════════════════════════════
# Admin endpoints
# ═════════════════════════════════════════════════════════════════════


# ── GET / ────────────────────────────────────────────────────────────

@admin_router.get("", response_model=ReportListResponse)
async def list_all_reports(
    status: Optional[ReportStatus] = Query(None),
    search: Optional[str] = Query(None, max_length=100),
    pagination: PaginationParams = Depends(),
    actor: Actor = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
):
    """List every user's reports (review queue)."""
    reports, meta = await ReportService.list_reports(
        db, pagination, status=status, search=search,
    )
    return ReportListResponse(data=[report_out(r) for r in reports], meta=meta)


# ── POST /bulk-* ─────────────────────────────────────────────────────

@admin_router.post("/bulk-approve")
async def bulk_approve(
    body: BulkIdsRequest,
    actor: Actor = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
    email_sender: EmailSender = Depends(get_email_sender),
):
    """Approve every submitted report in the list; others are skipped."""
    outcome = await ReportLifecycle.bulk_approve(db, body.report_ids, actor)
    await ReportEventDispatcher.dispatch_all(db, outcome.events, email_sender)
    return _bulk_result(outcome)


@admin_router.post("/bulk-reject")
async def bulk_reject(
    body: BulkRejectRequest,
    actor: Actor = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
    email_sender: EmailSender = Depends(get_email_sender),
):
    """Reject every submitted report in the list with one shared reason."""
    outcome = await ReportLifecycle.bulk_reject(db, body.report_ids, actor, body.reason)
    await ReportEventDispatcher.dispatch_all(db, outcome.events, email_sender)
    return _bulk_result(outcome)


@admin_router.post("/bulk-reimburse")
async def bulk_reimburse(
    body: BulkReimburseRequest,
    actor: Actor = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
    email_sender: EmailSender = Depends(get_email_sender),
):
    """Mark every approved report in the list as reimbursed."""
    outcome = await ReportLifecycle.bulk_reimburse(
        db, body.report_ids, actor, body.payment_reference,
    )
    await ReportEventDispatcher.dispatch_all(db, outcome.events, email_sender)
    return _bulk_result(outcome)


# ── GET|DELETE /{report_id} ──────────────────────────────────────────

@admin_router.get("/{report_id}", response_model=ReportResponse)
async def get_any_report(
    report_id: int,
    actor: Actor = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
):
    report = await ReportService.get_report(db, report_id, actor, admin_scope=True)
    return ReportResponse(data=report_out(report, with_expenses=True))


@admin_router.delete("/{report_id}")
async def delete_any_report(
    report_id: int,
    actor: Actor = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
):
    """Delete a report in any status; its expenses become unreported."""
    await ReportLifecycle.delete(db, report_id, actor)
    await db.commit()
    return {"data": {"id": report_id, "deleted": True}}


# ── POST /{report_id}/approve|reject|reimburse ───────────────────────

@admin_router.post("/{report_id}/approve", response_model=ReportResponse)
async def approve_report(
    report_id: int,
    actor: Actor = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
    email_sender: EmailSender = Depends(get_email_sender),
):
    report, event = await ReportLifecycle.approve(db, report_id, actor)
    await db.commit()
    response = ReportResponse(data=report_out(report, with_expenses=True))
    await ReportEventDispatcher.dispatch(db, event, email_sender)
    return response


@admin_router.post("/{report_id}/reject", response_model=ReportResponse)
async def reject_report(
    report_id: int,
    body: RejectRequest,
    actor: Actor = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
    email_sender: EmailSender = Depends(get_email_sender),
):
    report, event = await ReportLifecycle.reject(db, report_id, actor, body.reason)
    await db.commit()
    response = ReportResponse(data=report_out(report, with_expenses=True))
    await ReportEventDispatcher.dispatch(db, event, email_sender)
    return response


@admin_router.post("/{report_id}/reimburse", response_model=ReportResponse)
async def reimburse_report(
    report_id: int,
    body: ReimburseRequest = ReimburseRequest(),
    actor: Actor = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
    email_sender: EmailSender = Depends(get_email_sender),
):
    report, event = await ReportLifecycle.reimburse(
        db, report_id, actor, body.payment_reference,
    )
    await db.commit()
    response = ReportResponse(data=report_out(report, with_expenses=True))
    await ReportEventDispatcher.dispatch(db, event, email_sender)
    return response


# ── GET /{report_id}/history ─────────────────────────────────────────

@admin_router.get("/{report_id}/history")
async def any_report_history(
    report_id: int,
    actor: Actor = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
):
    await ReportService.get_report(db, report_id, actor, admin_scope=True)
    return await _history(db, report_id)
