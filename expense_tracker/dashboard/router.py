"""Dashboard router — read-only admin metrics over reports and expenses.

Every endpoint requires the ADMIN role.
"""

from __future__ import annotations

from datetime import date
from typing import Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from expense_tracker.auth.dependencies import require_admin
from expense_tracker.auth.schemas import Actor
from expense_tracker.common.constants import ExpenseCategory, Timeframe
from expense_tracker.dashboard.schemas import (
    CategoryBreakdownResponse,
    CustomRangeRequest,
    CustomRangeResponse,
    DashboardMetricsResponse,
    FilteredTotalResponse,
)
from expense_tracker.dashboard.service import DashboardService
from expense_tracker.database import get_db

router = APIRouter()


# ── GET /metrics ────────────────────────────────────────────────────

@router.get("/metrics", response_model=DashboardMetricsResponse)
async def dashboard_metrics(
    actor: Actor = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
):
    """Financial overview, approval queue, reimbursed totals and recent decisions."""
    return DashboardMetricsResponse(data=await DashboardService.get_metrics(db))


# ── GET /metrics/category-breakdown ─────────────────────────────────

@router.get("/metrics/category-breakdown", response_model=CategoryBreakdownResponse)
async def category_breakdown(
    timeframe: Timeframe = Query(Timeframe.THIS_MONTH),
    start_date: Optional[date] = Query(None, description="Required when timeframe=custom"),
    end_date: Optional[date] = Query(None, description="Required when timeframe=custom"),
    actor: Actor = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
):
    breakdown = await DashboardService.get_category_breakdown(
        db, timeframe, start_date=start_date, end_date=end_date,
    )
    return CategoryBreakdownResponse(data=breakdown)


# ── GET /metrics/filtered-total ─────────────────────────────────────

@router.get("/metrics/filtered-total", response_model=FilteredTotalResponse)
async def filtered_total(
    timeframe: Timeframe = Query(Timeframe.THIS_MONTH),
    category: Optional[ExpenseCategory] = Query(None),
    start_date: Optional[date] = Query(None, description="Required when timeframe=custom"),
    end_date: Optional[date] = Query(None, description="Required when timeframe=custom"),
    actor: Actor = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
):
    """Reimbursed total for a timeframe, optionally limited to one category."""
    total = await DashboardService.get_filtered_total(
        db, timeframe, category=category, start_date=start_date, end_date=end_date,
    )
    return FilteredTotalResponse(data=total)


# ── POST /metrics/custom-range ──────────────────────────────────────

@router.post("/metrics/custom-range", response_model=CustomRangeResponse)
async def custom_range(
    body: CustomRangeRequest,
    actor: Actor = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
):
    result = await DashboardService.get_custom_range(db, body.start_date, body.end_date)
    return CustomRangeResponse(data=result)
