"""
Validation audit log.

Append and read only. No update or delete exists here and the model refuses
both at flush time.
"""

from typing import Optional

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from ticketgate.models.enums import ValidationChannel, ValidationStatus
from ticketgate.models.ticket import Ticket
from ticketgate.models.validation import ValidationAttempt
from ticketgate.core.logging import get_logger

logger = get_logger(__name__)


async def record_validation(
    db: AsyncSession,
    *,
    channel: ValidationChannel,
    outcome: ValidationStatus,
    validator_id: Optional[str] = None,
    ticket: Optional[Ticket] = None,
    ticket_ref: Optional[str] = None,
    notes: Optional[str] = None,
) -> ValidationAttempt:
    """Add one attempt to the session and flush it. The caller commits."""
    attempt = ValidationAttempt(
        ticket_pk=ticket.id if ticket is not None else None,
        ticket_ref=ticket.ticket_id if ticket is not None else ticket_ref,
        channel=channel,
        validator_id=validator_id,
        outcome=outcome,
        notes=notes,
    )
    db.add(attempt)
    await db.flush()

    logger.info(
        "validation_recorded",
        ticket_ref=attempt.ticket_ref,
        channel=channel.value,
        validator_id=validator_id,
        outcome=outcome.value,
    )
    return attempt


async def list_validations(db: AsyncSession, ticket_pk: int) -> list[ValidationAttempt]:
    result = await db.execute(
        select(ValidationAttempt)
        .where(ValidationAttempt.ticket_pk == ticket_pk)
        .order_by(ValidationAttempt.id.asc())
    )
    return list(result.scalars().all())


async def count_validations(db: AsyncSession) -> int:
    result = await db.execute(select(func.count()).select_from(ValidationAttempt))
    return result.scalar_one()
