from ticketgate.models.event import Event
from ticketgate.models.allocation import TierAllocation
from ticketgate.models.ticket import Ticket
from ticketgate.models.validation import ValidationAttempt

__all__ = ["Event", "TierAllocation", "Ticket", "ValidationAttempt"]
