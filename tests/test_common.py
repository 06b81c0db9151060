"""Tests for common utilities — pagination, error handlers, rate limiting, logging.

Exercises the shared helpers in expense_tracker/common and logging_config.
"""

from __future__ import annotations

import logging

import pytest
from fastapi import FastAPI
from httpx import ASGITransport, AsyncClient
from sqlalchemy import select
from sqlalchemy.exc import OperationalError
from sqlalchemy.ext.asyncio import AsyncSession

from expense_tracker.common.exceptions import (
    InvalidStateException,
    register_exception_handlers,
)
from expense_tracker.common.pagination import PaginationParams, build_meta, paginate
from expense_tracker.logging_config import setup_logging
from expense_tracker.reports.models import Report
from expense_tracker.reports.service import ReportService


# ── Helpers ─────────────────────────────────────────────────────────


async def _seed_reports(db: AsyncSession, actor, count: int) -> None:
    for i in range(count):
        await ReportService.create_report(db, actor, title=f"Report {i}")
    await db.commit()


# ═════════════════════════════════════════════════════════════════════
# PAGINATION
# ═════════════════════════════════════════════════════════════════════


class TestPagination:
    """Tests for pagination helper."""

    def test_build_meta(self):
        meta = build_meta(total=25, page=2, page_size=10)
        assert meta.total_pages == 3
        assert meta.has_next is True
        assert meta.has_prev is True

    async def test_unfiltered_query_counts_every_row(self, db: AsyncSession, user_actor):
        """A bare select(Model) still counts the table, not a single row."""
        await _seed_reports(db, user_actor, 4)

        rows, meta = await paginate(
            db, select(Report), PaginationParams(page=1, page_size=3, sort=None), model=Report,
        )

        assert len(rows) == 3
        assert meta.total == 4
        assert meta.has_next is True

    async def test_paginate_with_sort(self, db: AsyncSession, user_actor):
        """paginate() with sort parameter applies ORDER BY."""
        await _seed_reports(db, user_actor, 5)

        params = PaginationParams(page=1, page_size=2, sort="-title")
        rows, _ = await paginate(db, select(Report), params, model=Report)

        assert [r.title for r in rows] == ["Report 4", "Report 3"]

    async def test_unknown_sort_field_is_ignored(self, db: AsyncSession, user_actor):
        await _seed_reports(db, user_actor, 2)

        params = PaginationParams(page=1, page_size=10, sort="-title; DROP TABLE reports")
        rows, meta = await paginate(db, select(Report), params, model=Report)

        assert meta.total == 2
        assert len(rows) == 2

    @pytest.mark.parametrize("sort", ["metadata", "registry", "-user", "expenses", "__table__"])
    async def test_non_column_sort_is_ignored(self, db: AsyncSession, user_actor, sort):
        """Relationships and class attributes are not sortable columns."""
        await _seed_reports(db, user_actor, 3)

        params = PaginationParams(page=1, page_size=10, sort=sort)
        rows, meta = await paginate(db, select(Report), params, model=Report)

        assert meta.total == 3
        assert len(rows) == 3

    async def test_list_endpoint_with_bad_sort_still_answers(self, client, auth_headers):
        for sort in ("metadata", "-user"):
            resp = await client.get(
                "/api/v1/reports", params={"sort": sort}, headers=auth_headers,
            )
            assert resp.status_code == 200, resp.text
            assert resp.json()["meta"]["total"] == 0

    async def test_paginate_page_2(self, db: AsyncSession, user_actor):
        """paginate() page 2 returns remaining items."""
        await _seed_reports(db, user_actor, 5)

        params = PaginationParams(page=2, page_size=3, sort=None)
        rows, meta = await paginate(db, select(Report), params, model=Report)

        assert len(rows) == 2  # 5 total, page 2 at size 3 = 2
        assert meta.has_prev is True
        assert meta.has_next is False

    async def test_paginate_empty_result(self, db: AsyncSession):
        query = select(Report).where(Report.title == "ZZZ_NONEXISTENT")
        rows, meta = await paginate(db, query, PaginationParams(page=1, page_size=10, sort=None))
        assert len(rows) == 0
        assert meta.total == 0
        assert meta.total_pages == 0


# ═════════════════════════════════════════════════════════════════════
# ERROR HANDLERS
# ═════════════════════════════════════════════════════════════════════


class TestErrorHandlers:
    """The {"error": ...} envelope for application and database failures."""

    @pytest.fixture
    async def bare_client(self):
        app = FastAPI()
        register_exception_handlers(app)

        @app.get("/invalid")
        async def _invalid():
            raise InvalidStateException(
                "Nope.", errors={"reason": ["A rejection reason is required."]},
            )

        @app.get("/db-down")
        async def _db_down():
            raise OperationalError("SELECT 1", {}, Exception("connection refused"))

        async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as ac:
            yield ac

    async def test_invalid_state_body(self, bare_client):
        resp = await bare_client.get("/invalid")
        assert resp.status_code == 400
        assert resp.json() == {
            "error": "Nope.",
            "errors": {"reason": ["A rejection reason is required."]},
        }

    async def test_database_errors_become_500(self, bare_client, caplog):
        with caplog.at_level(logging.ERROR):
            resp = await bare_client.get("/db-down")
        assert resp.status_code == 500
        assert resp.json() == {"error": "A database error occurred."}
        assert "Database error on GET /db-down" in caplog.text


# ═════════════════════════════════════════════════════════════════════
# RATE LIMITING
# ═════════════════════════════════════════════════════════════════════


class TestRateLimiting:
    """Verify the per-IP limit on admin announcements."""

    async def test_announcements_limited_at_10_per_minute(self, client, admin_headers):
        for i in range(10):
            resp = await client.post(
                "/api/v1/admin/notifications",
                json={"title": f"Notice {i}", "message": "m"},
                headers=admin_headers,
            )
            assert resp.status_code == 201, f"Request {i+1} should succeed"

        resp = await client.post(
            "/api/v1/admin/notifications",
            json={"title": "Overflow", "message": "m"},
            headers=admin_headers,
        )
        assert resp.status_code == 429


# ═════════════════════════════════════════════════════════════════════
# LOGGING
# ═════════════════════════════════════════════════════════════════════


class TestSetupLogging:

    @pytest.fixture(autouse=True)
    def _restore_root(self):
        root = logging.getLogger()
        handlers, level = root.handlers[:], root.level
        yield
        for handler in root.handlers:
            if handler not in handlers:
                handler.close()
        root.handlers[:] = handlers
        root.setLevel(level)

    def test_console_only(self):
        setup_logging(debug=False)

        root = logging.getLogger()
        assert root.level == logging.INFO
        assert len(root.handlers) == 1
        assert logging.getLogger("sqlalchemy.engine").level == logging.WARNING

    def test_rotating_file(self, tmp_path):
        log_file = tmp_path / "logs" / "expense_tracker.log"

        setup_logging(debug=True, log_file=str(log_file))
        logging.getLogger("expense_tracker.test").debug("hello")

        root = logging.getLogger()
        assert root.level == logging.DEBUG
        assert len(root.handlers) == 2
        for handler in root.handlers:
            handler.flush()
        assert "expense_tracker.test - DEBUG - hello" in log_file.read_text()
