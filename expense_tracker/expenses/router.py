"""Expenses router — the caller's expense items, plus admin overrides.

All endpoints require authentication.
"""

from typing import Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from expense_tracker.auth.dependencies import get_current_user, require_admin
from expense_tracker.auth.schemas import Actor
from expense_tracker.common.constants import ExpenseCategory, ExpenseStatus
from expense_tracker.common.pagination import PaginationParams
from expense_tracker.database import get_db
from expense_tracker.expenses.schemas import (
    BulkDeleteRequest,
    ExpenseCreate,
    ExpenseListResponse,
    ExpenseOut,
    ExpenseResponse,
    ExpenseStatsResponse,
    ExpenseUpdate,
)
from expense_tracker.expenses.service import ExpenseService
from expense_tracker.history.service import HistoryRecorder, expense_history_out

router = APIRouter(prefix="", tags=["expenses"])
admin_router = APIRouter(prefix="", tags=["admin-expenses"])


async def _history(db: AsyncSession, expense_id: int) -> dict:
    rows = await HistoryRecorder.list_expense_history(db, expense_id)
    return {"data": [expense_history_out(r) for r in rows]}


# ── POST / ───────────────────────────────────────────────────────────

@router.post("", response_model=ExpenseResponse, status_code=201)
async def create_expense(
    body: ExpenseCreate,
    actor: Actor = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    """Record a new expense, optionally on one of the caller's pending reports."""
    expense = await ExpenseService.create_expense(db, actor, body)
    await db.commit()
    return ExpenseResponse(data=ExpenseOut.model_validate(expense))


# ── GET / ────────────────────────────────────────────────────────────

@router.get("", response_model=ExpenseListResponse)
async def list_my_expenses(
    status: Optional[ExpenseStatus] = Query(None),
    report_id: Optional[int] = Query(None),
    category: Optional[ExpenseCategory] = Query(None),
    unreported: bool = Query(False, description="Only expenses not on any report"),
    pagination: PaginationParams = Depends(),
    actor: Actor = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    expenses, meta = await ExpenseService.list_expenses(
        db,
        pagination,
        user_id=actor.id,
        status=status,
        report_id=report_id,
        category=category,
        unreported_only=unreported,
    )
    return ExpenseListResponse(
        data=[ExpenseOut.model_validate(e) for e in expenses],
        meta=meta,
    )


# ── GET /stats ───────────────────────────────────────────────────────

@router.get("/stats", response_model=ExpenseStatsResponse)
async def my_expense_stats(
    actor: Actor = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    """Totals of the caller's expenses, grouped by category and by status."""
    return ExpenseStatsResponse(data=await ExpenseService.stats(db, actor))


# ── POST /bulk-delete ────────────────────────────────────────────────

@router.post("/bulk-delete")
async def bulk_delete_expenses(
    body: BulkDeleteRequest,
    actor: Actor = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    """Delete several expenses; ids that cannot be deleted are reported, not raised."""
    result = await ExpenseService.bulk_delete(db, body.expense_ids, actor)
    return {"data": result}


# ── GET /{expense_id} ────────────────────────────────────────────────

@router.get("/{expense_id}", response_model=ExpenseResponse)
async def get_my_expense(
    expense_id: int,
    actor: Actor = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    expense = await ExpenseService.get_expense(db, expense_id, actor)
    return ExpenseResponse(data=ExpenseOut.model_validate(expense))


# ── PATCH /{expense_id} ──────────────────────────────────────────────

@router.patch("/{expense_id}", response_model=ExpenseResponse)
async def update_expense(
    expense_id: int,
    body: ExpenseUpdate,
    actor: Actor = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    """Update an expense (only while unreported or on a pending report)."""
    expense = await ExpenseService.update_expense(
        db, expense_id, actor, body.model_dump(exclude_unset=True),
    )
    await db.commit()
    return ExpenseResponse(data=ExpenseOut.model_validate(expense))


# ── DELETE /{expense_id} ─────────────────────────────────────────────

@router.delete("/{expense_id}")
async def delete_my_expense(
    expense_id: int,
    actor: Actor = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    await ExpenseService.delete_expense(db, expense_id, actor)
    await db.commit()
    return {"data": {"id": expense_id, "deleted": True}}


# ── GET /{expense_id}/history ────────────────────────────────────────

@router.get("/{expense_id}/history")
async def my_expense_history(
    expense_id: int,
    actor: Actor = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    await ExpenseService.get_expense(db, expense_id, actor)
    return await _history(db, expense_id)


# ═════════════════════════════════════════════════════════════════════
# Admin endpoints
# ═════════════════════════════════════════════════════════════════════


@admin_router.delete("/{expense_id}")
async def delete_any_expense(
    expense_id: int,
    actor: Actor = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
):
    """Delete an expense regardless of its report's status."""
    await ExpenseService.delete_expense(db, expense_id, actor)
    await db.commit()
    return {"data": {"id": expense_id, "deleted": True}}


@admin_router.get("/{expense_id}/history")
async def any_expense_history(
    expense_id: int,
    actor: Actor = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
):
    await ExpenseService.get_expense(db, expense_id, actor, admin_scope=True)
    return await _history(db, expense_id)
