"""
Ticket endpoints: tier listing, purchase, the attendee's own tickets and
codes, and the door operations (validate, use, cancel).
"""

from typing import Optional

import structlog
from fastapi import APIRouter, BackgroundTasks, Depends, HTTPException, Query, Response, status
from sqlalchemy.ext.asyncio import AsyncSession

from ticketgate.db.session import get_db
from ticketgate.schemas.allocation import TierAvailability
from ticketgate.schemas.ticket import (
    TicketPurchase, TicketResponse, TicketValidate, ValidationResponse, TicketUse, TicketCodeResponse,
)
from ticketgate.services import code_renderer, inventory_service, ticket_service
from ticketgate.services.cache_service import get_cached_tiers, set_cached_tiers, invalidate_tier_cache
from ticketgate.services.inventory_service import ReserveStatus
from ticketgate.services.notification_service import send_ticket_email
from ticketgate.services.ticket_service import Attendee, TransitionResult, TransitionStatus
from ticketgate.core.config import get_settings
from ticketgate.core.security import get_current_user_id, require_staff
from ticketgate.core.logging import get_logger

logger = get_logger(__name__)
settings = get_settings()
router = APIRouter(tags=["Tickets"])

ISSUE_FAILURES = {
    ReserveStatus.EXHAUSTED: (status.HTTP_409_CONFLICT, "Sold out"),
    ReserveStatus.TIER_INACTIVE: (status.HTTP_409_CONFLICT, "This ticket type is not on sale"),
    ReserveStatus.TIER_NOT_FOUND: (status.HTTP_404_NOT_FOUND, "This ticket type does not exist for the event"),
}


def _transition_response(result: TransitionResult) -> TicketResponse:
    if result.status is TransitionStatus.DONE:
        return TicketResponse.model_validate(result.ticket)
    if result.status is TransitionStatus.NOT_FOUND:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Ticket not found")
    if result.status is TransitionStatus.NOT_ACTIVE:
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail=f"Ticket is {result.ticket.status.value}, not active",
        )
    raise AssertionError(f"unhandled transition status {result.status!r}")


@router.get("/events/{event_id}/tiers", response_model=list[TierAvailability])
async def list_tiers(event_id: int, db: AsyncSession = Depends(get_db)):
    """
    Tiers on sale for an event with remaining counts.
    Cached briefly; the cache is dropped whenever a ticket is issued.
    """
    cached = await get_cached_tiers(event_id)
    if cached is not None:
        return [TierAvailability(**item) for item in cached]

    allocations = await inventory_service.list_allocations(db, event_id)
    tiers = [TierAvailability.model_validate(a) for a in allocations]
    await set_cached_tiers(event_id, [t.model_dump(mode="json") for t in tiers])
    return tiers


@router.post("/tickets/purchase", response_model=TicketResponse, status_code=status.HTTP_201_CREATED)
async def purchase_ticket(
    purchase: TicketPurchase,
    background_tasks: BackgroundTasks,
    user_id: int = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_db),
):
    """
    Issue a ticket against a paid order. The seat is taken and the ticket
    created atomically; the email goes out after the response.
    """
    result = await ticket_service.issue_ticket(
        db,
        event_id=purchase.event_id,
        user_id=user_id,
        order_id=purchase.order_id,
        tier=purchase.tier,
        attendee=Attendee(
            name=purchase.attendee_name,
            email=purchase.attendee_email,
            phone=purchase.attendee_phone,
        ),
    )
    if not result.ok:
        code, detail = ISSUE_FAILURES[result.status]
        raise HTTPException(status_code=code, detail=detail)

    await invalidate_tier_cache(purchase.event_id)

    ticket = result.ticket
    if settings.SEND_TICKET_EMAILS:
        event = await ticket_service.get_event(db, ticket.event_id)
        notice = ticket_service.build_ticket_notice(ticket, event, code_renderer.render_png(ticket.payload))
        background_tasks.add_task(send_ticket_email, notice)

    return ticket


@router.get("/tickets/mine", response_model=list[TicketResponse])
async def list_my_tickets(
    user_id: int = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_db),
):
    return await ticket_service.list_for_user(db, user_id)


@router.get("/tickets/{ticket_id}/code", responses={200: {"content": {"image/png": {}}}})
async def get_ticket_code(
    ticket_id: str,
    fmt: str = Query("png", alias="format", pattern="^(png|data_url)$"),
    user_id: int = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_db),
):
    """
    The ticket's QR code, freshly encoded. Only the ticket's owner may
    fetch it; anyone else gets the same 404 as for a missing ticket.
    """
    ticket = await ticket_service.get_ticket(db, ticket_id)
    if ticket is None or ticket.user_id != user_id:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Ticket not found")

    encoded = ticket_service.encode_ticket_code(ticket)
    if fmt == "data_url":
        return TicketCodeResponse(data_url=code_renderer.render_data_url(encoded))
    return Response(
        content=code_renderer.render_png(encoded),
        media_type="image/png",
        headers={"Cache-Control": "no-store"},
    )


@router.post("/tickets/validate", response_model=ValidationResponse)
async def validate_ticket_endpoint(
    body: TicketValidate,
    staff_id: str = Depends(require_staff),
    db: AsyncSession = Depends(get_db),
):
    """
    Check a scanned code without admitting. Always 200: the verdict is in
    the body so the scanner can show the reason. The audit records the
    staff member from the token.
    """
    if body.device_id:
        structlog.contextvars.bind_contextvars(device_id=body.device_id)
    result = await ticket_service.validate_ticket(db, body.code, staff_id, channel=body.channel)
    return ValidationResponse(
        is_valid=result.is_valid,
        status=result.status,
        message=result.message,
        ticket=TicketResponse.model_validate(result.ticket) if result.ticket is not None else None,
    )


@router.post("/tickets/{ticket_id}/use", response_model=TicketResponse)
async def use_ticket(
    ticket_id: str,
    body: Optional[TicketUse] = None,
    staff_id: str = Depends(require_staff),
    db: AsyncSession = Depends(get_db),
):
    """Admit the attendee. Succeeds once per ticket; used_by is the staff member."""
    if body is not None and body.device_id:
        structlog.contextvars.bind_contextvars(device_id=body.device_id)
    result = await ticket_service.mark_used(db, ticket_id, staff_id)
    return _transition_response(result)


@router.post("/tickets/{ticket_id}/cancel", response_model=TicketResponse, dependencies=[Depends(require_staff)])
async def cancel_ticket_endpoint(
    ticket_id: str,
    db: AsyncSession = Depends(get_db),
):
    result = await ticket_service.cancel_ticket(db, ticket_id)
    return _transition_response(result)
