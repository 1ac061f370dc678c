"""
Pydantic schemas for ticket purchase, listing and door operations.

Responses never carry the encrypted payload; the code is fetched as an
image from /tickets/{ticket_id}/code.
"""

from datetime import datetime
from decimal import Decimal
from typing import Optional
from pydantic import BaseModel, EmailStr, Field

from ticketgate.models.enums import TicketStatus, TicketTier, ValidationChannel, ValidationStatus


class TicketPurchase(BaseModel):
    event_id: int
    tier: TicketTier
    order_id: int = Field(..., gt=0)
    attendee_name: str = Field(..., min_length=1, max_length=255)
    attendee_email: EmailStr
    attendee_phone: Optional[str] = Field(None, max_length=50)


class TicketResponse(BaseModel):
    ticket_id: str
    event_id: int
    user_id: int
    order_id: int
    tier: TicketTier
    status: TicketStatus
    price: Decimal
    currency: str
    attendee_name: str
    attendee_email: str
    attendee_phone: Optional[str]
    used_at: Optional[datetime]
    used_by: Optional[str]
    expires_at: Optional[datetime]
    created_at: datetime

    model_config = {"from_attributes": True}


class TicketValidate(BaseModel):
    code: str = Field(..., min_length=1, max_length=4096)
    # Scanner or gate label, for logs; who validated comes from the token
    device_id: Optional[str] = Field(None, max_length=255)
    channel: ValidationChannel = ValidationChannel.SCAN


class ValidationResponse(BaseModel):
    is_valid: bool
    status: ValidationStatus
    message: str
    ticket: Optional[TicketResponse] = None


class TicketUse(BaseModel):
    device_id: Optional[str] = Field(None, max_length=255)


class TicketCodeResponse(BaseModel):
    data_url: str
