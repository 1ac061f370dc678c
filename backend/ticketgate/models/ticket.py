"""
Ticket model: one row per sold admission.

Key design decisions:
- ticket_id is the opaque public identifier; the integer id never leaves the service
- payload (the encrypted code issued with the ticket) is write-once
- status only changes through the conditional updates in ticket_service
"""

from sqlalchemy import Column, Integer, String, Numeric, DateTime, Text, ForeignKey, Index
from sqlalchemy.orm import relationship, validates

from ticketgate.db.base import Base, TimestampMixin
from ticketgate.models.enums import TicketStatus, TicketTier, string_enum


class PayloadImmutableError(ValueError):
    pass


class Ticket(Base, TimestampMixin):
    __tablename__ = "tickets"

    id = Column(Integer, primary_key=True, index=True)
    ticket_id = Column(String(64), nullable=False, unique=True, index=True)
    event_id = Column(Integer, ForeignKey("events.id", ondelete="CASCADE"), nullable=False, index=True)
    user_id = Column(Integer, nullable=False, index=True)
    order_id = Column(Integer, nullable=False, index=True)
    tier = Column(string_enum(TicketTier, "ticket_tier"), nullable=False)
    status = Column(
        string_enum(TicketStatus, "ticket_status"),
        nullable=False,
        default=TicketStatus.ACTIVE,
    )
    price = Column(Numeric(10, 2), nullable=False)
    currency = Column(String(3), nullable=False, default="USD")
    attendee_name = Column(String(255), nullable=False)
    attendee_email = Column(String(255), nullable=False)
    attendee_phone = Column(String(50), nullable=True)
    payload = Column(Text, nullable=False)
    used_at = Column(DateTime(timezone=True), nullable=True)
    used_by = Column(String(255), nullable=True)
    expires_at = Column(DateTime(timezone=True), nullable=True)

    event = relationship("Event")

    __table_args__ = (
        Index("ix_tickets_event_status", "event_id", "status"),
    )

    @validates("payload")
    def _payload_is_write_once(self, key, value):
        if self.payload is not None and value != self.payload:
            raise PayloadImmutableError(f"payload of ticket {self.ticket_id} is already issued")
        return value

    def __repr__(self) -> str:
        return f"<Ticket(ticket_id={self.ticket_id}, event={self.event_id}, status={self.status})>"
