"""
Ticket lifecycle: issuance, validation at the door, and state transitions.

STATE MACHINE
=============

    active --mark_used-----> used
    active --cancel_ticket--> cancelled
    active --expire_ticket--> expired

used, cancelled and expired are terminal. Every transition is one conditional
UPDATE ... WHERE status = 'active' (compare-and-swap on the status column):
two gates scanning the same ticket at the same moment produce exactly one
row change, and the loser is told the ticket is no longer active. used_at is
stamped once and never rewritten.

ISSUANCE
========

reserve (conditional increment) -> insert ticket -> commit, all in one
transaction. A capacity failure is returned verbatim and leaves nothing
behind. Any exception after the reservation rolls back the seat with the
ticket.

VALIDATION
==========

Validation is read-only with respect to the ticket: a gate previews, then
calls mark_used to admit. Each validate_ticket call writes exactly one
ValidationAttempt, whichever branch it ends in, including persistence
failures (best effort in a fresh transaction, then the error propagates).
"""

import enum
import secrets
from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from typing import Optional

from pydantic import BaseModel
from sqlalchemy import select, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from ticketgate.core.clock import ensure_utc, to_epoch_ms, utcnow
from ticketgate.core.logging import get_logger
from ticketgate.core import metrics
from ticketgate.models.enums import TicketStatus, TicketTier, ValidationChannel, ValidationStatus
from ticketgate.models.event import Event
from ticketgate.models.ticket import Ticket
from ticketgate.services import audit_service, inventory_service
from ticketgate.services.inventory_service import ReserveStatus
from ticketgate.services.notification_service import TicketNotice
from ticketgate.services.payload_codec import (
    DecodeError, DecodeResult, PayloadCodec, TicketPayload, get_payload_codec,
)

logger = get_logger(__name__)

TICKET_ID_PREFIX = "TKT-"


class Attendee(BaseModel):
    name: str
    email: str
    phone: Optional[str] = None


@dataclass
class IssueResult:
    status: ReserveStatus
    ticket: Optional[Ticket] = None

    @property
    def ok(self) -> bool:
        return self.status is ReserveStatus.RESERVED


@dataclass
class ValidationResult:
    status: ValidationStatus
    message: str
    ticket: Optional[Ticket] = None
    decode_error: Optional[DecodeError] = None

    @property
    def is_valid(self) -> bool:
        return self.status is ValidationStatus.VALID


class TransitionStatus(str, enum.Enum):
    DONE = "done"
    NOT_FOUND = "not_found"
    NOT_ACTIVE = "not_active"


@dataclass
class TransitionResult:
    status: TransitionStatus
    ticket: Optional[Ticket] = None

    @property
    def ok(self) -> bool:
        return self.status is TransitionStatus.DONE


def generate_ticket_id() -> str:
    """Opaque, unguessable, not derived from anything sequential."""
    return TICKET_ID_PREFIX + secrets.token_hex(12).upper()


def build_payload(ticket: Ticket, issued_at: Optional[datetime] = None) -> TicketPayload:
    return TicketPayload(
        ticket_id=ticket.ticket_id,
        event_id=ticket.event_id,
        user_id=ticket.user_id,
        order_id=ticket.order_id,
        attendee_name=ticket.attendee_name,
        attendee_email=ticket.attendee_email,
        timestamp=to_epoch_ms(issued_at or utcnow()),
    )


def encode_ticket_code(ticket: Ticket, codec: Optional[PayloadCodec] = None) -> str:
    """
    Fresh code for showing the ticket again. The stored payload is left
    untouched; only the embedded timestamp differs, restarting the
    freshness window.
    """
    codec = codec or get_payload_codec()
    return codec.encode(build_payload(ticket))


# ---------------------------------------------------------------------------
# Issuance
# ---------------------------------------------------------------------------

async def issue_ticket(
    db: AsyncSession,
    *,
    event_id: int,
    user_id: int,
    order_id: int,
    tier: TicketTier,
    attendee: Attendee,
    price: Optional[Decimal] = None,
    currency: Optional[str] = None,
    expires_at: Optional[datetime] = None,
    codec: Optional[PayloadCodec] = None,
) -> IssueResult:
    codec = codec or get_payload_codec()

    with metrics.ticket_issuance_latency.time():
        try:
            reservation = await inventory_service.reserve(db, event_id, tier)
            if not reservation.ok:
                await db.rollback()
                metrics.record_issuance(reservation.status.value)
                logger.info(
                    "ticket_issue_rejected",
                    event_id=event_id,
                    tier=tier.value,
                    reason=reservation.status.value,
                )
                return IssueResult(reservation.status)

            allocation = reservation.allocation
            ticket = Ticket(
                ticket_id=generate_ticket_id(),
                event_id=event_id,
                user_id=user_id,
                order_id=order_id,
                tier=tier,
                status=TicketStatus.ACTIVE,
                price=price if price is not None else allocation.price,
                currency=(currency or allocation.currency).upper(),
                attendee_name=attendee.name,
                attendee_email=attendee.email,
                attendee_phone=attendee.phone,
                expires_at=expires_at,
            )
            ticket.payload = codec.encode(build_payload(ticket))
            db.add(ticket)
            await db.flush()
            await db.commit()
        except Exception:
            await db.rollback()
            raise

    await db.refresh(ticket)
    metrics.record_issuance(ReserveStatus.RESERVED.value)
    logger.info(
        "ticket_issued",
        ticket_id=ticket.ticket_id,
        event_id=event_id,
        user_id=user_id,
        order_id=order_id,
        tier=tier.value,
    )
    return IssueResult(ReserveStatus.RESERVED, ticket)


# ---------------------------------------------------------------------------
# Validation
# ---------------------------------------------------------------------------

DECODE_MESSAGES = {
    DecodeError.MALFORMED_INPUT: "Invalid ticket code: the code could not be read",
    DecodeError.DECRYPTION_FAILURE: "Invalid ticket code: the code failed verification",
    DecodeError.STALE_TIMESTAMP: "Invalid ticket code: the code is too old, ask the attendee to reopen their ticket",
    DecodeError.MISSING_FIELD: "Invalid ticket code: the code is missing ticket data",
}


def _describe_state(ticket: Ticket) -> ValidationResult:
    """Map a ticket's own state to a door verdict."""
    status = TicketStatus(ticket.status)
    if not status.is_terminal:
        return ValidationResult(ValidationStatus.VALID, "Ticket is valid", ticket)
    if status is TicketStatus.USED:
        used_at = ensure_utc(ticket.used_at)
        when = used_at.isoformat() if used_at else "an unknown time"
        return ValidationResult(
            ValidationStatus.ALREADY_USED,
            f"Ticket already used at {when} by {ticket.used_by or 'unknown'}",
            ticket,
        )
    if status is TicketStatus.CANCELLED:
        return ValidationResult(ValidationStatus.CANCELLED, "Ticket has been cancelled", ticket)
    if status is TicketStatus.EXPIRED:
        return ValidationResult(ValidationStatus.EXPIRED, "Ticket has expired", ticket)
    raise AssertionError(f"unhandled ticket status {status!r}")


def _payload_matches(payload: TicketPayload, ticket: Ticket) -> bool:
    return (
        payload.ticket_id == ticket.ticket_id
        and payload.event_id == ticket.event_id
        and payload.user_id == ticket.user_id
        and payload.order_id == ticket.order_id
    )


async def _evaluate(
    db: AsyncSession,
    decoded: DecodeResult,
    now: datetime,
) -> ValidationResult:
    if not decoded.ok:
        return ValidationResult(
            ValidationStatus.INVALID, DECODE_MESSAGES[decoded.error], decode_error=decoded.error,
        )

    payload = decoded.payload
    ticket = await get_ticket(db, payload.ticket_id)
    if ticket is None:
        return ValidationResult(ValidationStatus.NOT_FOUND, "Ticket not found")

    if not _payload_matches(payload, ticket):
        logger.warning("ticket_payload_mismatch", ticket_id=ticket.ticket_id)
        return ValidationResult(
            ValidationStatus.INVALID, "Invalid ticket code: the code does not match the ticket record", ticket,
        )

    verdict = _describe_state(ticket)
    if not verdict.is_valid:
        return verdict

    expires_at = ensure_utc(ticket.expires_at)
    if expires_at is not None and expires_at <= now:
        return ValidationResult(ValidationStatus.EXPIRED, "Ticket has expired", ticket)

    event = await get_event(db, ticket.event_id)
    if event is not None and event.has_ended(now):
        return ValidationResult(ValidationStatus.EXPIRED, "Event has already ended", ticket)

    return verdict


async def validate_ticket(
    db: AsyncSession,
    encoded: str,
    validator_id: Optional[str],
    channel: ValidationChannel = ValidationChannel.SCAN,
    codec: Optional[PayloadCodec] = None,
    now: Optional[datetime] = None,
) -> ValidationResult:
    codec = codec or get_payload_codec()
    now = now or utcnow()
    decoded = codec.decode_and_verify(encoded, now)
    claimed_ref = decoded.payload.ticket_id if decoded.payload is not None else None

    try:
        result = await _evaluate(db, decoded, now)
        await audit_service.record_validation(
            db,
            channel=channel,
            outcome=result.status,
            validator_id=validator_id,
            ticket=result.ticket,
            ticket_ref=claimed_ref,
            notes=result.decode_error.value if result.decode_error else result.message,
        )
        await db.commit()
    except Exception as exc:
        await db.rollback()
        logger.error("ticket_validation_failed", ticket_ref=claimed_ref, error=str(exc))
        await _record_failed_validation(db, channel, validator_id, claimed_ref, exc)
        raise

    metrics.record_validation(result.status.value, result.decode_error.value if result.decode_error else None)
    logger.info(
        "ticket_validated",
        ticket_ref=claimed_ref,
        status=result.status.value,
        validator_id=validator_id,
        channel=channel.value,
    )
    return result


async def _record_failed_validation(db, channel, validator_id, ticket_ref, exc) -> None:
    try:
        await audit_service.record_validation(
            db,
            channel=channel,
            outcome=ValidationStatus.INVALID,
            validator_id=validator_id,
            ticket_ref=ticket_ref,
            notes=f"system error: {type(exc).__name__}",
        )
        await db.commit()
    except SQLAlchemyError as audit_exc:
        await db.rollback()
        logger.error("validation_audit_write_failed", ticket_ref=ticket_ref, error=str(audit_exc))


# ---------------------------------------------------------------------------
# Transitions
# ---------------------------------------------------------------------------

async def _transition(
    db: AsyncSession,
    ticket_id: str,
    target: TicketStatus,
    **values,
) -> TransitionResult:
    update_result = await db.execute(
        update(Ticket)
        .where(Ticket.ticket_id == ticket_id, Ticket.status == TicketStatus.ACTIVE)
        .values(status=target, **values)
        .execution_options(synchronize_session=False)
    )
    await db.commit()

    ticket = await get_ticket(db, ticket_id)
    if update_result.rowcount == 1:
        status = TransitionStatus.DONE
    elif ticket is None:
        status = TransitionStatus.NOT_FOUND
    else:
        status = TransitionStatus.NOT_ACTIVE

    metrics.record_transition(target.value, status.value)
    logger.info(
        "ticket_transition",
        ticket_id=ticket_id,
        target=target.value,
        result=status.value,
        current=ticket.status.value if ticket is not None else None,
    )
    return TransitionResult(status, ticket)


async def mark_used(db: AsyncSession, ticket_id: str, used_by: str) -> TransitionResult:
    """The only way into `used`. Never re-stamps used_at."""
    return await _transition(db, ticket_id, TicketStatus.USED, used_at=utcnow(), used_by=used_by)


async def cancel_ticket(db: AsyncSession, ticket_id: str) -> TransitionResult:
    return await _transition(db, ticket_id, TicketStatus.CANCELLED)


async def expire_ticket(db: AsyncSession, ticket_id: str) -> TransitionResult:
    return await _transition(db, ticket_id, TicketStatus.EXPIRED)


# ---------------------------------------------------------------------------
# Reads
# ---------------------------------------------------------------------------

async def get_ticket(db: AsyncSession, ticket_id: str) -> Optional[Ticket]:
    result = await db.execute(
        select(Ticket)
        .where(Ticket.ticket_id == ticket_id)
        .execution_options(populate_existing=True)
    )
    return result.scalar_one_or_none()


async def get_event(db: AsyncSession, event_id: int) -> Optional[Event]:
    result = await db.execute(select(Event).where(Event.id == event_id))
    return result.scalar_one_or_none()


async def list_for_event(db: AsyncSession, event_id: int) -> list[Ticket]:
    result = await db.execute(
        select(Ticket).where(Ticket.event_id == event_id).order_by(Ticket.id.asc())
    )
    return list(result.scalars().all())


async def list_for_user(db: AsyncSession, user_id: int) -> list[Ticket]:
    result = await db.execute(
        select(Ticket).where(Ticket.user_id == user_id).order_by(Ticket.created_at.desc(), Ticket.id.desc())
    )
    return list(result.scalars().all())


def build_ticket_notice(
    ticket: Ticket,
    event: Event,
    code_png: bytes,
    codec: Optional[PayloadCodec] = None,
) -> TicketNotice:
    """
    What the email dispatcher is allowed to see. code_png must render the
    stored payload; its freshness window is read from that payload.
    """
    codec = codec or get_payload_codec()
    decoded = codec.decode(ticket.payload)
    if not decoded.ok:
        raise ValueError(f"stored payload of {ticket.ticket_id} does not decode: {decoded.error.value}")

    return TicketNotice(
        attendee_name=ticket.attendee_name,
        attendee_email=ticket.attendee_email,
        tier_label=TicketTier(ticket.tier).label,
        price=ticket.price,
        currency=ticket.currency,
        event_name=event.name,
        event_date=ensure_utc(event.date),
        event_location=event.location,
        code_valid_until=decoded.payload.issued_at + codec.max_age,
        code_png=code_png,
    )
