"""Notifications — inbox service, report event dispatch, email rendering and delivery."""

from __future__ import annotations

import json
import logging
import uuid
from datetime import datetime, timedelta, timezone
from decimal import Decimal
from unittest.mock import AsyncMock

import httpx
import pytest
from pydantic import ValidationError
from sqlalchemy import select

from expense_tracker.common.constants import (
    NotificationType,
    ReportEventType,
    UserRole,
)
from expense_tracker.common.exceptions import ForbiddenException, NotFoundException
from expense_tracker.common.pagination import PaginationParams
from expense_tracker.notifications.dispatcher import ReportEventDispatcher, build_email
from expense_tracker.notifications.email import (
    EmailDeliveryError,
    EmailMessage,
    LoggingEmailSender,
    SendGridEmailSender,
    get_email_sender,
    render_email,
)
from expense_tracker.notifications.models import Notification
from expense_tracker.notifications.schemas import (
    ExpenseRef,
    ReportRef,
    SystemRef,
    related_from_columns,
    related_to_columns,
)
from expense_tracker.notifications.service import NotificationService
from expense_tracker.reports.lifecycle import ReportEvent
from tests.conftest import insert_user


PAGE = PaginationParams(page=1, page_size=10, sort=None)


def _event(event_type: ReportEventType, owner: dict, **overrides) -> ReportEvent:
    fields = dict(
        event_type=event_type,
        report_id=42,
        report_title="Q1 travel",
        owner_id=owner["id"],
        owner_email=owner["email"],
        owner_name=f"{owner['first_name']} {owner['last_name']}",
        actor_id=uuid.uuid4(),
        actor_name="Admin",
        total_amount=Decimal("350.00"),
        reimbursable_amount=Decimal("100.00"),
        occurred_at=datetime(2026, 3, 2, 10, 30, tzinfo=timezone.utc),
        submitted_at=datetime(2026, 3, 1, 9, 0, tzinfo=timezone.utc),
        owner_approver_id=owner.get("approver_id"),
    )
    fields.update(overrides)
    return ReportEvent(**fields)


async def _inbox(session_factory, user_id) -> list[Notification]:
    async with session_factory() as session:
        rows = await session.execute(
            select(Notification).where(Notification.user_id == user_id)
        )
        return list(rows.scalars().all())


# ═════════════════════════════════════════════════════════════════════
# 1. RELATED ENTITY
# ═════════════════════════════════════════════════════════════════════


@pytest.mark.parametrize(
    "related,columns",
    [
        (ReportRef(report_id=7), ("REPORT", "7")),
        (ExpenseRef(expense_id=3), ("EXPENSE", "3")),
        (SystemRef(), ("SYSTEM", None)),
        (None, (None, None)),
    ],
)
def test_related_entity_columns(related, columns):
    entity_type, entity_id = related_to_columns(related)
    assert (entity_type.value if entity_type else None, entity_id) == columns
    assert related_from_columns(entity_type, entity_id) == related


def test_malformed_related_columns_map_to_none():
    from expense_tracker.common.constants import EntityType

    assert related_from_columns(EntityType.REPORT, "abc") is None
    assert related_from_columns(EntityType.EXPENSE, None) is None


# ═════════════════════════════════════════════════════════════════════
# 2. INBOX SERVICE
# ═════════════════════════════════════════════════════════════════════


async def test_list_excludes_expired_and_counts_unread(db, test_user):
    uid = test_user["id"]
    now = datetime.now(timezone.utc)
    await NotificationService.create_notification(
        db, user_id=uid, type=NotificationType.REPORT_APPROVED,
        title="Report Approved", message="ok", related=ReportRef(report_id=1),
    )
    await NotificationService.create_notification(
        db, user_id=uid, type=NotificationType.SYSTEM_ANNOUNCEMENT,
        title="Old", message="gone", expires_at=now - timedelta(days=1),
    )
    await NotificationService.create_notification(
        db, user_id=uid, type=NotificationType.SYSTEM_ANNOUNCEMENT,
        title="Upcoming", message="still here", expires_at=now + timedelta(days=1),
    )
    await db.commit()

    result = await NotificationService.list_notifications(db, uid, PAGE)

    assert {n.title for n in result.data} == {"Report Approved", "Upcoming"}
    assert result.meta.total == 2
    assert result.meta.unread == 2
    approved = next(n for n in result.data if n.title == "Report Approved")
    assert approved.related == ReportRef(report_id=1)


async def test_filters_by_read_and_type(db, test_user):
    uid = test_user["id"]
    first = await NotificationService.create_notification(
        db, user_id=uid, type=NotificationType.REPORT_APPROVED, title="A", message="a",
    )
    await NotificationService.create_notification(
        db, user_id=uid, type=NotificationType.REPORT_REJECTED, title="B", message="b",
    )
    await NotificationService.mark_read(db, first.id, uid)
    await db.commit()

    unread = await NotificationService.list_notifications(db, uid, PAGE, read=False)
    rejected = await NotificationService.list_notifications(
        db, uid, PAGE, notification_type=NotificationType.REPORT_REJECTED,
    )

    assert [n.title for n in unread.data] == ["B"]
    assert [n.title for n in rejected.data] == ["B"]
    assert unread.meta.unread == 1


async def test_mark_all_read(db, test_user):
    uid = test_user["id"]
    for i in range(3):
        await NotificationService.create_notification(
            db, user_id=uid, type=NotificationType.REPORT_APPROVED, title=f"N{i}", message="m",
        )
    await db.commit()

    assert await NotificationService.mark_all_read(db, uid) == 3
    await db.commit()
    assert await NotificationService.get_unread_count(db, uid) == 0


async def test_cannot_touch_someone_elses_notification(db, test_user):
    other = await insert_user(db)
    notification = await NotificationService.create_notification(
        db, user_id=other["id"], type=NotificationType.REPORT_APPROVED, title="x", message="y",
    )
    await db.commit()

    with pytest.raises(ForbiddenException):
        await NotificationService.mark_read(db, notification.id, test_user["id"])
    with pytest.raises(ForbiddenException):
        await NotificationService.delete_notification(db, notification.id, test_user["id"])
    with pytest.raises(NotFoundException):
        await NotificationService.mark_read(db, uuid.uuid4(), test_user["id"])


async def test_delete_notification(db, session_factory, test_user):
    uid = test_user["id"]
    notification = await NotificationService.create_notification(
        db, user_id=uid, type=NotificationType.REPORT_APPROVED, title="x", message="y",
    )
    await db.commit()

    await NotificationService.delete_notification(db, notification.id, uid)
    await db.commit()

    assert await _inbox(session_factory, uid) == []


async def test_broadcast_to_role(db, session_factory, test_user, admin_user, approver_user):
    count = await NotificationService.broadcast_announcement(
        db, title="Policy update", message="New per-diem rates", target_role=UserRole.ADMIN,
    )
    await db.commit()

    assert count == 2
    assert await _inbox(session_factory, test_user["id"]) == []
    admin_inbox = await _inbox(session_factory, admin_user["id"])
    assert len(admin_inbox) == 1
    assert admin_inbox[0].type == NotificationType.SYSTEM_ANNOUNCEMENT
    assert related_from_columns(
        admin_inbox[0].related_entity_type, admin_inbox[0].related_entity_id,
    ) == SystemRef()


async def test_broadcast_with_no_recipients(db):
    with pytest.raises(NotFoundException):
        await NotificationService.broadcast_announcement(db, title="t", message="m")


# ═════════════════════════════════════════════════════════════════════
# 3. DISPATCHER
# ═════════════════════════════════════════════════════════════════════


async def test_submitted_event_notifies_approver_without_email(
    db, session_factory, test_user, approver_user, email_sender,
):
    event = _event(ReportEventType.SUBMITTED, test_user)

    await ReportEventDispatcher.dispatch(db, event, email_sender)

    inbox = await _inbox(session_factory, approver_user["id"])
    assert len(inbox) == 1
    assert inbox[0].type == NotificationType.REPORT_SUBMITTED
    assert inbox[0].title == "New Report Submitted"
    assert inbox[0].message == "Test User has submitted a new expense report: Q1 travel"
    assert inbox[0].related_entity_id == "42"
    assert await _inbox(session_factory, test_user["id"]) == []
    email_sender.send.assert_not_awaited()


async def test_submitted_event_without_approver_is_a_no_op(db, session_factory, email_sender):
    loner = await insert_user(db)
    event = _event(ReportEventType.SUBMITTED, loner)

    await ReportEventDispatcher.dispatch(db, event, email_sender)

    async with session_factory() as session:
        total = (await session.execute(select(Notification))).scalars().all()
    assert total == []


@pytest.mark.parametrize(
    "event_type,notification_type,subject",
    [
        (ReportEventType.APPROVED, NotificationType.REPORT_APPROVED, "Expense Report Approved"),
        (ReportEventType.REJECTED, NotificationType.REPORT_REJECTED, "Expense Report Rejected"),
        (ReportEventType.REIMBURSED, NotificationType.REPORT_REIMBURSED, "Expense Report Reimbursed"),
    ],
)
async def test_owner_events_notify_and_email_owner(
    db, session_factory, test_user, email_sender, event_type, notification_type, subject,
):
    event = _event(event_type, test_user, reason="No receipts", payment_reference="UTR-9")

    await ReportEventDispatcher.dispatch(db, event, email_sender)

    inbox = await _inbox(session_factory, test_user["id"])
    assert [n.type for n in inbox] == [notification_type]
    email_sender.send.assert_awaited_once()
    message: EmailMessage = email_sender.send.await_args.args[0]
    assert message.to == "test.user@example.com"
    assert message.subject == f"{subject}: Q1 travel"


async def test_email_failure_is_swallowed(db, session_factory, test_user, email_sender):
    email_sender.send.side_effect = EmailDeliveryError("SendGrid returned 503")
    event = _event(ReportEventType.APPROVED, test_user)

    await ReportEventDispatcher.dispatch(db, event, email_sender)

    assert len(await _inbox(session_factory, test_user["id"])) == 1


async def test_notification_failure_still_sends_email(db, test_user, email_sender, monkeypatch):
    monkeypatch.setattr(
        NotificationService,
        "create_notification",
        AsyncMock(side_effect=RuntimeError("db down")),
    )
    event = _event(ReportEventType.REJECTED, test_user, reason="Duplicate")

    await ReportEventDispatcher.dispatch(db, event, email_sender)

    email_sender.send.assert_awaited_once()


async def test_dispatch_all_handles_each_event(db, session_factory, test_user, email_sender):
    events = [
        _event(ReportEventType.APPROVED, test_user, report_id=1),
        _event(ReportEventType.APPROVED, test_user, report_id=2),
    ]

    await ReportEventDispatcher.dispatch_all(db, events, email_sender)

    assert len(await _inbox(session_factory, test_user["id"])) == 2
    assert email_sender.send.await_count == 2


async def test_dispatch_all_continues_after_an_email_failure(
    db, session_factory, test_user, email_sender, caplog,
):
    email_sender.send.side_effect = [EmailDeliveryError("SendGrid returned 503"), None, None]
    events = [
        _event(ReportEventType.APPROVED, test_user, report_id=1),
        _event(ReportEventType.REJECTED, test_user, report_id=2, reason="Duplicate"),
        _event(ReportEventType.REIMBURSED, test_user, report_id=3),
    ]

    with caplog.at_level(logging.ERROR):
        await ReportEventDispatcher.dispatch_all(db, events, email_sender)

    assert email_sender.send.await_count == 3
    assert [call.args[0].to for call in email_sender.send.await_args_list] == [test_user["email"]] * 3
    inbox = await _inbox(session_factory, test_user["id"])
    assert {n.type for n in inbox} == {
        NotificationType.REPORT_APPROVED,
        NotificationType.REPORT_REJECTED,
        NotificationType.REPORT_REIMBURSED,
    }
    assert "Failed to send APPROVED email for report #1" in caplog.text


# ═════════════════════════════════════════════════════════════════════
# 4. EMAIL RENDERING
# ═════════════════════════════════════════════════════════════════════


def test_rejected_email_shows_reason(test_user):
    message = build_email(_event(ReportEventType.REJECTED, test_user, reason="Missing hotel bill"))

    assert "Missing hotel bill" in message.html
    assert "Rs.350.00" in message.html
    assert "#F44336" in message.html
    assert "/user/reports/42" in message.html


def test_reimbursed_email_shows_reference_and_reimbursable(test_user):
    message = build_email(
        _event(ReportEventType.REIMBURSED, test_user, payment_reference="UTR-2026-77"),
    )

    assert "UTR-2026-77" in message.html
    assert "Rs.100.00" in message.html
    assert "March 01, 2026" in message.html


def test_no_email_for_submission_or_missing_address(test_user):
    assert build_email(_event(ReportEventType.SUBMITTED, test_user)) is None
    assert build_email(_event(ReportEventType.APPROVED, test_user, owner_email=None)) is None


def test_render_escapes_user_content():
    html = render_email(
        "report_approved.html",
        user_name="<script>x</script>",
        report_title="Trip",
        report_id=1,
        report_amount="Rs.1.00",
        submission_date="N/A",
        event_date="N/A",
        view_url="http://test/user/reports/1",
    )
    assert "<script>x</script>" not in html
    assert "&lt;script&gt;" in html


# ═════════════════════════════════════════════════════════════════════
# 5. SENDGRID TRANSPORT
# ═════════════════════════════════════════════════════════════════════


MESSAGE = EmailMessage(to="owner@example.com", subject="Expense Report Approved: Trip", html="<p>hi</p>")


async def test_events_and_messages_are_immutable(test_user):
    event = _event(ReportEventType.APPROVED, test_user)

    with pytest.raises(ValidationError):
        event.report_id = 7
    with pytest.raises(ValidationError):
        MESSAGE.to = "someone@example.com"
    assert event.model_copy(update={"reason": "x"}).reason == "x"


async def test_sendgrid_posts_v3_payload():
    seen: list[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        return httpx.Response(202)

    async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as client:
        sender = SendGridEmailSender("SG.key", "noreply@example.com", client=client)
        await sender.send(MESSAGE)

    assert len(seen) == 1
    request = seen[0]
    assert request.headers["Authorization"] == "Bearer SG.key"
    body = json.loads(request.content)
    assert body["personalizations"] == [{"to": [{"email": "owner@example.com"}]}]
    assert body["from"] == {"email": "noreply@example.com"}
    assert body["subject"] == "Expense Report Approved: Trip"
    assert body["content"][0] == {"type": "text/html", "value": "<p>hi</p>"}


async def test_sendgrid_error_status_raises():
    transport = httpx.MockTransport(lambda request: httpx.Response(401, text="bad key"))

    async with httpx.AsyncClient(transport=transport) as client:
        sender = SendGridEmailSender("SG.bad", "noreply@example.com", client=client)
        with pytest.raises(EmailDeliveryError, match="401"):
            await sender.send(MESSAGE)


async def test_sendgrid_network_error_raises():
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("connection refused", request=request)

    async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as client:
        sender = SendGridEmailSender("SG.key", "noreply@example.com", client=client)
        with pytest.raises(EmailDeliveryError):
            await sender.send(MESSAGE)


def test_without_api_key_emails_are_only_logged():
    assert isinstance(get_email_sender(), LoggingEmailSender)


# ═════════════════════════════════════════════════════════════════════
# 6. HTTP ENDPOINTS
# ═════════════════════════════════════════════════════════════════════


async def test_inbox_endpoints(client, db, test_user, auth_headers):
    uid = test_user["id"]
    notification = await NotificationService.create_notification(
        db, user_id=uid, type=NotificationType.REPORT_APPROVED,
        title="Report Approved", message="ok", related=ReportRef(report_id=5),
    )
    await db.commit()

    resp = await client.get("/api/v1/notifications", headers=auth_headers)
    assert resp.status_code == 200
    body = resp.json()
    assert body["meta"]["unread"] == 1
    assert body["data"][0]["related"] == {"kind": "report", "report_id": 5}

    resp = await client.get("/api/v1/notifications/unread-count", headers=auth_headers)
    assert resp.json()["data"]["count"] == 1

    resp = await client.put(
        f"/api/v1/notifications/{notification.id}/read", headers=auth_headers,
    )
    assert resp.status_code == 200
    assert resp.json()["data"]["read"] is True

    resp = await client.delete(
        f"/api/v1/notifications/{notification.id}", headers=auth_headers,
    )
    assert resp.json()["data"]["deleted"] is True


async def test_announcement_requires_admin(client, auth_headers):
    resp = await client.post(
        "/api/v1/admin/notifications",
        json={"title": "Hi", "message": "All hands"},
        headers=auth_headers,
    )
    assert resp.status_code == 403
    assert "error" in resp.json()


async def test_announcement_broadcast(client, admin_headers, test_user):
    resp = await client.post(
        "/api/v1/admin/notifications",
        json={"title": "Hi", "message": "All hands"},
        headers=admin_headers,
    )
    assert resp.status_code == 201
    # admin + test_user + test_user's approver
    assert resp.json()["data"]["recipients"] == 3
