"""
Tier allocation: the capacity ledger row for one (event, tier).

Key design decisions:
- Unique (event_id, tier) so there is exactly one counter to contend on
- sold_tickets is only ever moved by a conditional UPDATE in inventory_service
- CHECK constraints keep sold within [0, max] even if application code is wrong
"""

from sqlalchemy import (
    Column, Integer, String, Numeric, Boolean, ForeignKey, UniqueConstraint, CheckConstraint,
)
from sqlalchemy.orm import relationship

from ticketgate.db.base import Base, TimestampMixin
from ticketgate.models.enums import TicketTier, string_enum


class TierAllocation(Base, TimestampMixin):
    __tablename__ = "tier_allocations"

    id = Column(Integer, primary_key=True, index=True)
    event_id = Column(Integer, ForeignKey("events.id", ondelete="CASCADE"), nullable=False, index=True)
    tier = Column(string_enum(TicketTier, "ticket_tier"), nullable=False)
    max_tickets = Column(Integer, nullable=False)
    sold_tickets = Column(Integer, nullable=False, default=0)
    price = Column(Numeric(10, 2), nullable=False)
    currency = Column(String(3), nullable=False, default="USD")
    is_active = Column(Boolean, nullable=False, default=True)

    event = relationship("Event", back_populates="allocations")

    __table_args__ = (
        UniqueConstraint("event_id", "tier", name="uq_allocation_event_tier"),
        CheckConstraint("max_tickets >= 0", name="check_allocation_max_non_negative"),
        CheckConstraint("sold_tickets >= 0", name="check_allocation_sold_non_negative"),
        CheckConstraint("sold_tickets <= max_tickets", name="check_allocation_sold_lte_max"),
    )

    @property
    def remaining(self) -> int:
        return max(self.max_tickets - self.sold_tickets, 0)

    def __repr__(self) -> str:
        return (
            f"<TierAllocation(event={self.event_id}, tier={self.tier}, "
            f"sold={self.sold_tickets}/{self.max_tickets})>"
        )
