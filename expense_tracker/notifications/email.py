"""Outbound email — Jinja2-rendered report templates sent through SendGrid.

When ``SENDGRID_API_KEY`` is empty the logging sender is used instead, so
local development and tests never reach the network.
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Any, Optional, Protocol

import httpx
from jinja2 import Environment, FileSystemLoader, select_autoescape
from pydantic import BaseModel, ConfigDict

from expense_tracker.config import settings

logger = logging.getLogger(__name__)

TEMPLATES_DIR = Path(__file__).parent / "templates"

# Central Jinja2 environment for every email template
templates = Environment(
    loader=FileSystemLoader(str(TEMPLATES_DIR)),
    autoescape=select_autoescape(["html"]),
    trim_blocks=True,
    lstrip_blocks=True,
)


class EmailDeliveryError(Exception):
    """The transport refused or failed to accept a message."""


class EmailMessage(BaseModel):
    model_config = ConfigDict(frozen=True)

    to: str
    subject: str
    html: str


def render_email(template_name: str, **context: Any) -> str:
    context.setdefault("app_name", settings.APP_NAME)
    return templates.get_template(template_name).render(**context)


def report_view_url(report_id: int) -> str:
    return f"{settings.APP_URL.rstrip('/')}/user/reports/{report_id}"


# ── Senders ─────────────────────────────────────────────────────────

class EmailSender(Protocol):
    async def send(self, message: EmailMessage) -> None: ...


class LoggingEmailSender:
    """Development sender: logs the message instead of delivering it."""

    async def send(self, message: EmailMessage) -> None:
        logger.info("Email (not sent) to=%s subject=%r", message.to, message.subject)


class SendGridEmailSender:
    """Deliver through the SendGrid v3 ``mail/send`` endpoint. No retries."""

    def __init__(
        self,
        api_key: str,
        sender: str,
        *,
        api_url: str = "https://api.sendgrid.com/v3/mail/send",
        timeout: float = 10.0,
        client: Optional[httpx.AsyncClient] = None,
    ) -> None:
        self.api_key = api_key
        self.sender = sender
        self.api_url = api_url
        self.timeout = timeout
        self._client = client

    def _payload(self, message: EmailMessage) -> dict[str, Any]:
        return {
            "personalizations": [{"to": [{"email": message.to}]}],
            "from": {"email": self.sender},
            "subject": message.subject,
            "content": [{"type": "text/html", "value": message.html}],
        }

    async def _post(self, client: httpx.AsyncClient, message: EmailMessage) -> httpx.Response:
        return await client.post(
            self.api_url,
            json=self._payload(message),
            headers={"Authorization": f"Bearer {self.api_key}"},
        )

    async def send(self, message: EmailMessage) -> None:
        try:
            if self._client is not None:
                response = await self._post(self._client, message)
            else:
                async with httpx.AsyncClient(timeout=self.timeout) as client:
                    response = await self._post(client, message)
        except httpx.HTTPError as exc:
            raise EmailDeliveryError(f"SendGrid request failed: {exc}") from exc

        if response.status_code >= 400:
            raise EmailDeliveryError(
                f"SendGrid returned {response.status_code}: {response.text[:200]}",
            )
        logger.info("Email sent to %s (%s)", message.to, message.subject)


def get_email_sender() -> EmailSender:
    """FastAPI dependency — overridden in tests."""
    if not settings.SENDGRID_API_KEY:
        return LoggingEmailSender()
    return SendGridEmailSender(
        settings.SENDGRID_API_KEY,
        settings.SENDGRID_SENDER_EMAIL,
        api_url=settings.SENDGRID_API_URL,
        timeout=settings.EMAIL_TIMEOUT_SECONDS,
    )
