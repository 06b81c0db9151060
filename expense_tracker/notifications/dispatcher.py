"""Phase-2 side effects of report transitions: in-app notification, then email.

``dispatch`` runs after the transition has been committed. It never raises:
a failed notification or email is logged and the request still succeeds.
"""

from __future__ import annotations

import logging
import uuid
from typing import Iterable, Optional

from sqlalchemy.ext.asyncio import AsyncSession

from expense_tracker.common.constants import NotificationType, ReportEventType
from expense_tracker.common.formatting import format_currency, format_email_date
from expense_tracker.notifications.email import (
    EmailMessage,
    EmailSender,
    render_email,
    report_view_url,
)
from expense_tracker.notifications.schemas import ReportRef
from expense_tracker.notifications.service import NotificationService
from expense_tracker.reports.lifecycle import ReportEvent

logger = logging.getLogger(__name__)


# event type → (notification type, title, message template, email template, subject prefix)
_OWNER_NOTICES: dict[ReportEventType, tuple[NotificationType, str, str, str, str]] = {
    ReportEventType.APPROVED: (
        NotificationType.REPORT_APPROVED,
        "Report Approved",
        'Your expense report "{title}" has been approved',
        "report_approved.html",
        "Expense Report Approved",
    ),
    ReportEventType.REJECTED: (
        NotificationType.REPORT_REJECTED,
        "Report Rejected",
        'Your expense report "{title}" has been rejected',
        "report_rejected.html",
        "Expense Report Rejected",
    ),
    ReportEventType.REIMBURSED: (
        NotificationType.REPORT_REIMBURSED,
        "Report Reimbursed",
        'Your expense report "{title}" has been reimbursed',
        "report_reimbursed.html",
        "Expense Report Reimbursed",
    ),
}


def build_email(event: ReportEvent) -> Optional[EmailMessage]:
    """Render the owner email for *event*, or ``None`` if it has none."""
    notice = _OWNER_NOTICES.get(event.event_type)
    if notice is None or not event.owner_email:
        return None
    _, _, _, template, subject = notice
    html = render_email(
        template,
        user_name=event.owner_name or event.owner_email,
        report_title=event.report_title,
        report_id=event.report_id,
        report_amount=format_currency(event.total_amount),
        reimbursable_amount=format_currency(event.reimbursable_amount),
        submission_date=format_email_date(event.submitted_at),
        event_date=format_email_date(event.occurred_at),
        rejection_reason=event.reason,
        payment_reference=event.payment_reference,
        view_url=report_view_url(event.report_id),
    )
    return EmailMessage(to=event.owner_email, subject=f"{subject}: {event.report_title}", html=html)


class ReportEventDispatcher:
    """Best-effort delivery of report events."""

    @staticmethod
    async def _notify(db: AsyncSession, event: ReportEvent) -> None:
        recipient: Optional[uuid.UUID]
        if event.event_type == ReportEventType.SUBMITTED:
            recipient = event.owner_approver_id
            if recipient is None:
                logger.info(
                    "Report #%s submitted but owner %s has no approver; no notification sent",
                    event.report_id, event.owner_id,
                )
                return
            notification_type = NotificationType.REPORT_SUBMITTED
            title = "New Report Submitted"
            message = (
                f"{event.owner_name} has submitted a new expense report: {event.report_title}"
            )
        else:
            notice = _OWNER_NOTICES.get(event.event_type)
            if notice is None:
                return
            notification_type, title, template, _, _ = notice
            recipient = event.owner_id
            message = template.format(title=event.report_title)

        await NotificationService.create_notification(
            db,
            user_id=recipient,
            type=notification_type,
            title=title,
            message=message,
            related=ReportRef(report_id=event.report_id),
        )
        await db.commit()

    @staticmethod
    async def dispatch(
        db: AsyncSession,
        event: ReportEvent,
        email_sender: EmailSender,
    ) -> None:
        """Create the in-app notification and send the email. Never raises."""
        try:
            await ReportEventDispatcher._notify(db, event)
        except Exception:
            await db.rollback()
            logger.exception(
                "Failed to create %s notification for report #%s",
                event.event_type.value, event.report_id,
            )

        try:
            message = build_email(event)
            if message is not None:
                await email_sender.send(message)
        except Exception:
            logger.exception(
                "Failed to send %s email for report #%s",
                event.event_type.value, event.report_id,
            )

    @staticmethod
    async def dispatch_all(
        db: AsyncSession,
        events: Iterable[ReportEvent],
        email_sender: EmailSender,
    ) -> None:
        for event in events:
            await ReportEventDispatcher.dispatch(db, event, email_sender)
