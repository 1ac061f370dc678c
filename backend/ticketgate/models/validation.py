"""
Validation attempt: append-only audit of every scan.

Rows are written for rejected scans too, including codes that never resolved
to a ticket (ticket_pk is then NULL and ticket_ref holds whatever identifier
the code claimed, if it could be read at all).
"""

from sqlalchemy import Column, Integer, String, Text, DateTime, ForeignKey, Index, event, func

from ticketgate.db.base import Base
from ticketgate.models.enums import ValidationChannel, ValidationStatus, string_enum


class AuditLogImmutableError(RuntimeError):
    pass


class ValidationAttempt(Base):
    __tablename__ = "ticket_validations"

    id = Column(Integer, primary_key=True, index=True)
    ticket_pk = Column(Integer, ForeignKey("tickets.id", ondelete="RESTRICT"), nullable=True, index=True)
    ticket_ref = Column(String(64), nullable=True)
    channel = Column(string_enum(ValidationChannel, "validation_channel"), nullable=False)
    validator_id = Column(String(255), nullable=True)
    outcome = Column(string_enum(ValidationStatus, "validation_status"), nullable=False)
    notes = Column(Text, nullable=True)
    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())

    __table_args__ = (
        Index("ix_ticket_validations_created_at", "created_at"),
    )

    def __repr__(self) -> str:
        return f"<ValidationAttempt(ticket={self.ticket_ref}, outcome={self.outcome})>"


@event.listens_for(ValidationAttempt, "before_update")
def _refuse_update(mapper, connection, target):
    raise AuditLogImmutableError("validation attempts cannot be modified")


@event.listens_for(ValidationAttempt, "before_delete")
def _refuse_delete(mapper, connection, target):
    raise AuditLogImmutableError("validation attempts cannot be deleted")
