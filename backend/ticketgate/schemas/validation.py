"""
Pydantic schemas for the validation audit trail.
"""

from datetime import datetime
from typing import Optional
from pydantic import BaseModel

from ticketgate.models.enums import ValidationChannel, ValidationStatus


class ValidationAttemptResponse(BaseModel):
    ticket_ref: Optional[str]
    channel: ValidationChannel
    validator_id: Optional[str]
    outcome: ValidationStatus
    notes: Optional[str]
    created_at: datetime

    model_config = {"from_attributes": True}
