"""
Ticket email dispatch through Resend.

The dispatcher only ever receives a TicketNotice: display data plus the
rendered QR image. It never sees the ticket identifier or the encrypted
payload, so nothing it renders or logs can be replayed at the door except
the image itself.
"""

import asyncio
import base64
import html
from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal
from typing import Optional

import resend

from ticketgate.core.config import get_settings
from ticketgate.core.logging import get_logger

logger = get_logger(__name__)

CODE_FILENAME = "ticket-qr.png"


@dataclass(frozen=True)
class TicketNotice:
    attendee_name: str
    attendee_email: str
    tier_label: str
    price: Decimal
    currency: str
    event_name: str
    event_date: datetime
    event_location: Optional[str]
    # The emailed code carries its issuance time; the door rejects it after this
    code_valid_until: datetime
    code_png: bytes = field(repr=False)


@dataclass(frozen=True)
class TicketEmail:
    to: str
    subject: str
    html: str
    text: str
    attachments: list


def _format_event_date(value: datetime) -> str:
    return value.strftime("%A, %B %d, %Y at %H:%M UTC")


def render_ticket_email(notice: TicketNotice) -> TicketEmail:
    portal_url = get_settings().TICKET_PORTAL_URL
    when = _format_event_date(notice.event_date)
    valid_until = _format_event_date(notice.code_valid_until)
    where = notice.event_location or "To be announced"
    data_url = "data:image/png;base64," + base64.b64encode(notice.code_png).decode("ascii")

    name = html.escape(notice.attendee_name)
    event_name = html.escape(notice.event_name)

    body_html = f"""
    <html>
      <body style="font-family: Arial, sans-serif; color: #333;">
        <h1>Your ticket for {event_name}</h1>
        <p>Hi {name},</p>
        <p>Thanks for your purchase. Your ticket is confirmed.</p>
        <table>
          <tr><td><strong>Date &amp; time</strong></td><td>{html.escape(when)}</td></tr>
          <tr><td><strong>Location</strong></td><td>{html.escape(where)}</td></tr>
          <tr><td><strong>Ticket type</strong></td><td>{html.escape(notice.tier_label)}</td></tr>
          <tr><td><strong>Price</strong></td><td>{notice.price} {html.escape(notice.currency)}</td></tr>
        </table>
        <p><img src="{data_url}" alt="Ticket QR code" style="max-width: 240px;" /></p>
        <p>This code (also attached as {CODE_FILENAME}) scans at the entrance
        only until {html.escape(valid_until)}.</p>
        <p><strong>On the day of the event</strong>, open your ticket at
        <a href="{html.escape(portal_url)}">{html.escape(portal_url)}</a> and show the
        fresh code it displays. Each ticket admits one person, once.</p>
      </body>
    </html>
    """

    body_text = "\n".join([
        f"Your ticket for {notice.event_name}",
        "",
        f"Hi {notice.attendee_name},",
        "",
        "Thanks for your purchase. Your ticket is confirmed.",
        "",
        f"Date & time: {when}",
        f"Location: {where}",
        f"Ticket type: {notice.tier_label}",
        f"Price: {notice.price} {notice.currency}",
        "",
        f"The attached QR code ({CODE_FILENAME}) scans at the entrance only until {valid_until}.",
        f"On the day of the event, open your ticket at {portal_url} and show the fresh code it displays.",
        "Each ticket admits one person, once.",
    ])

    return TicketEmail(
        to=notice.attendee_email,
        subject=f"Your ticket for {notice.event_name}",
        html=body_html,
        text=body_text,
        attachments=[{
            "filename": CODE_FILENAME,
            "content": base64.b64encode(notice.code_png).decode("ascii"),
        }],
    )


async def send_ticket_email(notice: TicketNotice) -> bool:
    """
    Send the ticket email. Returns False on transport failure; a purchase is
    never undone because the email could not be delivered.
    """
    settings = get_settings()
    email = render_ticket_email(notice)

    if not settings.RESEND_API_KEY:
        logger.warning("ticket_email_simulated", to_email=email.to, subject=email.subject)
        return True

    resend.api_key = settings.RESEND_API_KEY
    params = {
        "from": settings.EMAIL_FROM,
        "to": [email.to],
        "subject": email.subject,
        "html": email.html,
        "text": email.text,
        "attachments": email.attachments,
    }

    try:
        response = await asyncio.to_thread(resend.Emails.send, params)
    except Exception as e:
        logger.error("ticket_email_failed", to_email=email.to, error=str(e))
        return False

    logger.info("ticket_email_sent", to_email=email.to, message_id=(response or {}).get("id"))
    return True
