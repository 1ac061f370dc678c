"""
Staff endpoints: event ticket lists, allocation management, audit trail.
"""

from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy.ext.asyncio import AsyncSession

from ticketgate.db.session import get_db
from ticketgate.models.enums import TicketTier
from ticketgate.schemas.allocation import AllocationCreate, AllocationUpdate, AllocationResponse
from ticketgate.schemas.ticket import TicketResponse
from ticketgate.schemas.validation import ValidationAttemptResponse
from ticketgate.services import audit_service, inventory_service, ticket_service
from ticketgate.services.cache_service import invalidate_tier_cache
from ticketgate.services.inventory_service import AllocationExists, AllocationNotFound, CapacityBelowSold
from ticketgate.core.security import require_staff

router = APIRouter(prefix="/admin", tags=["Admin"], dependencies=[Depends(require_staff)])


@router.get("/events/{event_id}/tickets", response_model=list[TicketResponse])
async def list_event_tickets(event_id: int, db: AsyncSession = Depends(get_db)):
    return await ticket_service.list_for_event(db, event_id)


@router.post(
    "/events/{event_id}/allocations",
    response_model=AllocationResponse,
    status_code=status.HTTP_201_CREATED,
)
async def create_allocation_endpoint(
    event_id: int,
    body: AllocationCreate,
    db: AsyncSession = Depends(get_db),
):
    if await ticket_service.get_event(db, event_id) is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=f"Event {event_id} not found")
    try:
        allocation = await inventory_service.create_allocation(
            db,
            event_id,
            body.tier,
            max_tickets=body.max_tickets,
            price=body.price,
            currency=body.currency,
            is_active=body.is_active,
        )
    except AllocationExists as e:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(e))
    await invalidate_tier_cache(event_id)
    return allocation


@router.patch("/events/{event_id}/allocations/{tier}", response_model=AllocationResponse)
async def update_allocation_endpoint(
    event_id: int,
    tier: TicketTier,
    body: AllocationUpdate,
    db: AsyncSession = Depends(get_db),
):
    try:
        allocation = await inventory_service.update_allocation(
            db,
            event_id,
            tier,
            max_tickets=body.max_tickets,
            price=body.price,
            is_active=body.is_active,
        )
    except AllocationNotFound as e:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(e))
    except CapacityBelowSold as e:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(e))
    await invalidate_tier_cache(event_id)
    return allocation


@router.get("/tickets/{ticket_id}/validations", response_model=list[ValidationAttemptResponse])
async def list_ticket_validations(ticket_id: str, db: AsyncSession = Depends(get_db)):
    ticket = await ticket_service.get_ticket(db, ticket_id)
    if ticket is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Ticket not found")
    return await audit_service.list_validations(db, ticket.id)
