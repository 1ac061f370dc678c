"""
Pydantic schemas for tier allocations.
"""

from decimal import Decimal
from typing import Optional
from pydantic import BaseModel, Field

from ticketgate.models.enums import TicketTier


class TierAvailability(BaseModel):
    tier: TicketTier
    price: Decimal
    currency: str
    remaining: int

    model_config = {"from_attributes": True}


class AllocationCreate(BaseModel):
    tier: TicketTier
    max_tickets: int = Field(..., ge=0, le=1_000_000)
    price: Decimal = Field(..., ge=0, max_digits=10, decimal_places=2)
    currency: str = Field("USD", min_length=3, max_length=3)
    is_active: bool = True


class AllocationUpdate(BaseModel):
    max_tickets: Optional[int] = Field(None, ge=0, le=1_000_000)
    price: Optional[Decimal] = Field(None, ge=0, max_digits=10, decimal_places=2)
    is_active: Optional[bool] = None


class AllocationResponse(BaseModel):
    event_id: int
    tier: TicketTier
    max_tickets: int
    sold_tickets: int
    remaining: int
    price: Decimal
    currency: str
    is_active: bool

    model_config = {"from_attributes": True}
