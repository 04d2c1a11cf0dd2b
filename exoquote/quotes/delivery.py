"""Quote e-mail: share link, HTML summary and SMTP hand-off."""

from __future__ import annotations

import asyncio
import smtplib
from dataclasses import dataclass
from decimal import Decimal
from email.message import EmailMessage
from html import escape
from typing import TYPE_CHECKING, Protocol
from urllib.parse import urlencode, urljoin

import structlog

from exoquote.config import Settings
from exoquote.errors import MailDeliveryError

if TYPE_CHECKING:
    from exoquote.models.contracts import Quote

logger = structlog.get_logger()

SMTP_TIMEOUT = 30


class Mailer(Protocol):
    async def send(self, to: str, subject: str, html: str) -> None: ...


@dataclass(frozen=True)
class RenderedEmail:
    subject: str
    html: str


def public_link(quote: Quote, base_url: str) -> str:
    """Read-only link to the quote page carrying the id and share token."""
    query = urlencode({"id": quote.id, "token": quote.share_token})
    return f"{urljoin(base_url.rstrip('/') + '/', 'quote.html')}?{query}"


def render_quote_email(
    quote: Quote,
    link: str,
    *,
    tax_rate: Decimal,
    message: str | None = None,
    to_name: str | None = None,
) -> RenderedEmail:
    greeting_name = to_name or quote.customer_name
    lines = "".join(
        f"<li>{item.qty} × {escape(item.name)} at ${item.price} each</li>" for item in quote.items
    )
    parts = [
        '<div style="font-family:system-ui,Segoe UI,Roboto,Helvetica,Arial,sans-serif">',
        f"<h2>Quote #{quote.id}</h2>",
        f"<p>Hi {escape(greeting_name)},</p>" if greeting_name else "",
        f"<p>{escape(message)}</p>" if message else "",
        "<p>Please view your quote here:</p>",
        f'<p><a href="{escape(link)}">{escape(link)}</a></p>',
        "<hr/>",
        "<p><strong>Summary</strong></p>",
        f"<ul>{lines}</ul>",
        f"<p>Subtotal: ${quote.subtotal}</p>",
        f"<p>Tax: ${quote.tax}</p>" if tax_rate else "",
        f"<p><strong>Total: ${quote.total}</strong></p>",
        "</div>",
    ]
    return RenderedEmail(subject=f"Your Quote #{quote.id}", html="\n".join(p for p in parts if p))


class SmtpMailer:
    """Blocking smtplib session run in a worker thread."""

    def __init__(
        self,
        host: str,
        port: int,
        sender: str,
        username: str = "",
        password: str = "",
    ) -> None:
        self.host = host
        self.port = port
        self.sender = sender
        self._username = username
        self._password = password

    def _send_sync(self, message: EmailMessage) -> None:
        with smtplib.SMTP(self.host, self.port, timeout=SMTP_TIMEOUT) as server:
            server.ehlo()
            if server.has_extn("starttls"):
                server.starttls()
                server.ehlo()
            if self._username:
                server.login(self._username, self._password)
            server.send_message(message)

    async def send(self, to: str, subject: str, html: str) -> None:
        message = EmailMessage()
        message["From"] = self.sender
        message["To"] = to
        message["Subject"] = subject
        message.set_content("This quote is best viewed in an HTML-capable mail client.")
        message.add_alternative(html, subtype="html")
        try:
            await asyncio.to_thread(self._send_sync, message)
        except (smtplib.SMTPException, OSError) as exc:
            logger.exception("smtp_send_failed", host=self.host, port=self.port)
            raise MailDeliveryError("Failed to send quote") from exc
        logger.info("smtp_sent", host=self.host, subject=subject)


def build_mailer(settings: Settings) -> SmtpMailer | None:
    """None when SMTP_HOST is unset; sending then reports "SMTP not configured"."""
    if not settings.smtp_host:
        return None
    return SmtpMailer(
        settings.smtp_host,
        settings.smtp_port,
        settings.mail_from,
        username=settings.smtp_user,
        password=settings.smtp_password,
    )
