"""
Tests for the validation audit log: append-only, one row per attempt.
"""

import pytest

from ticketgate.models.enums import ValidationChannel, ValidationStatus
from ticketgate.models.validation import AuditLogImmutableError
from ticketgate.services import audit_service
from tests.conftest import issue


@pytest.mark.asyncio
async def test_record_for_ticket(db_session, test_event, early_bird):
    ticket = (await issue(db_session, test_event)).ticket

    attempt = await audit_service.record_validation(
        db_session,
        channel=ValidationChannel.SCAN,
        outcome=ValidationStatus.VALID,
        validator_id="gate-1",
        ticket=ticket,
        ticket_ref="ignored-when-ticket-given",
        notes="Ticket is valid",
    )
    await db_session.commit()

    assert attempt.ticket_pk == ticket.id
    assert attempt.ticket_ref == ticket.ticket_id
    history = await audit_service.list_validations(db_session, ticket.id)
    assert [h.outcome for h in history] == [ValidationStatus.VALID]


@pytest.mark.asyncio
async def test_record_without_ticket(db_session):
    attempt = await audit_service.record_validation(
        db_session,
        channel=ValidationChannel.MANUAL,
        outcome=ValidationStatus.NOT_FOUND,
        validator_id="gate-4",
        ticket_ref="TKT-UNKNOWN",
    )
    await db_session.commit()

    assert attempt.ticket_pk is None
    assert attempt.ticket_ref == "TKT-UNKNOWN"
    assert await audit_service.count_validations(db_session) == 1


@pytest.mark.asyncio
async def test_attempts_cannot_be_modified(db_session):
    attempt = await audit_service.record_validation(
        db_session, channel=ValidationChannel.SCAN, outcome=ValidationStatus.INVALID, validator_id="gate-1",
    )
    await db_session.commit()

    attempt.outcome = ValidationStatus.VALID
    with pytest.raises(AuditLogImmutableError):
        await db_session.flush()
    await db_session.rollback()


@pytest.mark.asyncio
async def test_attempts_cannot_be_deleted(db_session):
    attempt = await audit_service.record_validation(
        db_session, channel=ValidationChannel.SCAN, outcome=ValidationStatus.INVALID, validator_id="gate-1",
    )
    await db_session.commit()

    await db_session.delete(attempt)
    with pytest.raises(AuditLogImmutableError):
        await db_session.flush()
    await db_session.rollback()

    assert await audit_service.count_validations(db_session) == 1
