"""
Event projection.

Events are owned by the catalog service; this table carries only what the
ticket core reads: display data for the ticket email and the dates that
decide whether a ticket can still be admitted.
"""

from sqlalchemy import Column, Integer, String, DateTime, Index
from sqlalchemy.orm import relationship

from ticketgate.core.clock import ensure_utc
from ticketgate.db.base import Base, TimestampMixin


class Event(Base, TimestampMixin):
    __tablename__ = "events"

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String(255), nullable=False)
    description = Column(String(1000), nullable=True)
    date = Column(DateTime(timezone=True), nullable=False)
    # Optional; when absent the event is over once its start time passes
    end_date = Column(DateTime(timezone=True), nullable=True)
    location = Column(String(255), nullable=True)

    allocations = relationship("TierAllocation", back_populates="event", lazy="selectin")

    __table_args__ = (
        Index("ix_events_date", "date"),
    )

    def has_ended(self, now) -> bool:
        return ensure_utc(self.end_date or self.date) < now

    def __repr__(self) -> str:
        return f"<Event(id={self.id}, name={self.name}, date={self.date})>"
