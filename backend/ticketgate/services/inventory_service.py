"""
Inventory ledger: per-(event, tier) ticket caps and sold counters.

CONCURRENCY STRATEGY: Conditional Increment
===========================================

Problem:
  Two purchasers race for the last VIP seat. Both read sold=9, max=10,
  both write sold=10, both get a ticket. Result: oversell.

Solution:
  The check and the increment are one statement:

    UPDATE tier_allocations
       SET sold_tickets = sold_tickets + 1
     WHERE event_id = :event AND tier = :tier
       AND is_active AND sold_tickets < max_tickets

  The row lock taken by the UPDATE serializes racers on the same (event, tier).
  The second one re-evaluates the WHERE clause after the first commits, sees
  sold = max and affects zero rows. Zero rows is then diagnosed with a plain
  read (missing tier / inactive tier / sold out).

  reserve() never commits. ticket_service.issue_ticket inserts the ticket in the
  same transaction and commits both, so a crash in between rolls back the seat
  with the ticket. The CHECK (sold_tickets <= max_tickets) is the final
  safety net.

  Unlike an optimistic version column there is no retry loop: the statement
  itself is the compare-and-swap.
"""

import enum
from dataclasses import dataclass
from decimal import Decimal
from typing import Optional

from sqlalchemy import select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from ticketgate.models.allocation import TierAllocation
from ticketgate.models.enums import TicketTier
from ticketgate.core.logging import get_logger

logger = get_logger(__name__)


class ReserveStatus(str, enum.Enum):
    RESERVED = "reserved"
    EXHAUSTED = "exhausted"
    TIER_NOT_FOUND = "tier_not_found"
    TIER_INACTIVE = "tier_inactive"


@dataclass
class ReservationResult:
    status: ReserveStatus
    allocation: Optional[TierAllocation] = None

    @property
    def ok(self) -> bool:
        return self.status is ReserveStatus.RESERVED


class InventoryError(Exception):
    pass


class AllocationExists(InventoryError):
    pass


class AllocationNotFound(InventoryError):
    pass


class CapacityBelowSold(InventoryError):
    pass


async def get_allocation(db: AsyncSession, event_id: int, tier: TicketTier) -> Optional[TierAllocation]:
    result = await db.execute(
        select(TierAllocation)
        .where(TierAllocation.event_id == event_id, TierAllocation.tier == tier)
        .execution_options(populate_existing=True)
    )
    return result.scalar_one_or_none()


async def reserve(db: AsyncSession, event_id: int, tier: TicketTier) -> ReservationResult:
    """
    Take one seat from (event, tier). Leaves the transaction open on success;
    the caller commits it together with the ticket row.
    """
    update_result = await db.execute(
        update(TierAllocation)
        .where(
            TierAllocation.event_id == event_id,
            TierAllocation.tier == tier,
            TierAllocation.is_active.is_(True),
            TierAllocation.sold_tickets < TierAllocation.max_tickets,
        )
        .values(sold_tickets=TierAllocation.sold_tickets + 1)
        .execution_options(synchronize_session=False)
    )

    allocation = await get_allocation(db, event_id, tier)

    if update_result.rowcount == 1:
        logger.debug(
            "seat_reserved",
            event_id=event_id,
            tier=tier.value,
            sold=allocation.sold_tickets,
            max=allocation.max_tickets,
        )
        return ReservationResult(ReserveStatus.RESERVED, allocation)

    if allocation is None:
        status = ReserveStatus.TIER_NOT_FOUND
    elif not allocation.is_active:
        status = ReserveStatus.TIER_INACTIVE
    else:
        status = ReserveStatus.EXHAUSTED

    logger.info("seat_reservation_rejected", event_id=event_id, tier=tier.value, reason=status.value)
    return ReservationResult(status, allocation)


async def list_allocations(db: AsyncSession, event_id: int) -> list[TierAllocation]:
    """Active tiers for an event, cheapest first."""
    result = await db.execute(
        select(TierAllocation)
        .where(TierAllocation.event_id == event_id, TierAllocation.is_active.is_(True))
        .order_by(TierAllocation.price.asc(), TierAllocation.id.asc())
    )
    return list(result.scalars().all())


async def create_allocation(
    db: AsyncSession,
    event_id: int,
    tier: TicketTier,
    max_tickets: int,
    price: Decimal,
    currency: str = "USD",
    is_active: bool = True,
) -> TierAllocation:
    allocation = TierAllocation(
        event_id=event_id,
        tier=tier,
        max_tickets=max_tickets,
        sold_tickets=0,
        price=price,
        currency=currency.upper(),
        is_active=is_active,
    )
    db.add(allocation)
    try:
        await db.flush()
    except IntegrityError:
        await db.rollback()
        raise AllocationExists(f"{tier.value} is already allocated for event {event_id}")
    await db.commit()
    await db.refresh(allocation)

    logger.info(
        "allocation_created",
        event_id=event_id,
        tier=tier.value,
        max=max_tickets,
        price=str(price),
    )
    return allocation


async def update_allocation(
    db: AsyncSession,
    event_id: int,
    tier: TicketTier,
    max_tickets: Optional[int] = None,
    price: Optional[Decimal] = None,
    is_active: Optional[bool] = None,
) -> TierAllocation:
    allocation = await get_allocation(db, event_id, tier)
    if allocation is None:
        raise AllocationNotFound(f"no {tier.value} allocation for event {event_id}")

    values = {}
    if max_tickets is not None:
        values["max_tickets"] = max_tickets
    if price is not None:
        values["price"] = price
    if is_active is not None:
        values["is_active"] = is_active

    if values:
        stmt = update(TierAllocation).where(TierAllocation.id == allocation.id)
        if max_tickets is not None:
            # Shrinking below what is already sold would strand issued tickets
            stmt = stmt.where(TierAllocation.sold_tickets <= max_tickets)
        result = await db.execute(stmt.values(**values).execution_options(synchronize_session=False))
        if result.rowcount == 0:
            await db.rollback()
            raise CapacityBelowSold(
                f"{tier.value} for event {event_id} already sold more than {max_tickets}"
            )
        await db.commit()
        allocation = await get_allocation(db, event_id, tier)

    logger.info("allocation_updated", event_id=event_id, tier=tier.value, **{k: str(v) for k, v in values.items()})
    return allocation
