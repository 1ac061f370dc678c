from ticketgate.schemas.ticket import (
    TicketPurchase, TicketResponse, TicketValidate, ValidationResponse, TicketUse, TicketCodeResponse,
)
from ticketgate.schemas.allocation import (
    TierAvailability, AllocationCreate, AllocationUpdate, AllocationResponse,
)
from ticketgate.schemas.validation import ValidationAttemptResponse

__all__ = [
    "TicketPurchase", "TicketResponse", "TicketValidate", "ValidationResponse", "TicketUse",
    "TicketCodeResponse",
    "TierAvailability", "AllocationCreate", "AllocationUpdate", "AllocationResponse",
    "ValidationAttemptResponse",
]
