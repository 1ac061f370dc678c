"""Ticketing schema: events, tier allocations, tickets, validation audit.

Revision ID: 001
Revises: None
Create Date: 2026-10-19
"""
from typing import Sequence, Union
from alembic import op
import sqlalchemy as sa

revision: str = "001"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None

TIERS = "('early_bird', 'second_phase', 'last_phase', 'vip')"


def upgrade() -> None:
    # Events table (projection of the catalog's events)
    op.create_table(
        "events",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("name", sa.String(255), nullable=False),
        sa.Column("description", sa.String(1000), nullable=True),
        sa.Column("date", sa.DateTime(timezone=True), nullable=False),
        sa.Column("end_date", sa.DateTime(timezone=True), nullable=True),
        sa.Column("location", sa.String(255), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
    )
    op.create_index("ix_events_id", "events", ["id"])
    op.create_index("ix_events_date", "events", ["date"])

    # Tier allocations: the capacity ledger
    op.create_table(
        "tier_allocations",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("event_id", sa.Integer(), sa.ForeignKey("events.id", ondelete="CASCADE"), nullable=False),
        sa.Column("tier", sa.String(20), nullable=False),
        sa.Column("max_tickets", sa.Integer(), nullable=False),
        sa.Column("sold_tickets", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.Column("price", sa.Numeric(10, 2), nullable=False),
        sa.Column("currency", sa.String(3), nullable=False, server_default=sa.text("'USD'")),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.text("true")),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.UniqueConstraint("event_id", "tier", name="uq_allocation_event_tier"),
        sa.CheckConstraint(f"tier IN {TIERS}", name="ticket_tier"),
        sa.CheckConstraint("max_tickets >= 0", name="check_allocation_max_non_negative"),
        sa.CheckConstraint("sold_tickets >= 0", name="check_allocation_sold_non_negative"),
        # The oversell backstop: no code path can push sold past max
        sa.CheckConstraint("sold_tickets <= max_tickets", name="check_allocation_sold_lte_max"),
    )
    op.create_index("ix_tier_allocations_id", "tier_allocations", ["id"])
    op.create_index("ix_tier_allocations_event_id", "tier_allocations", ["event_id"])

    # Tickets
    op.create_table(
        "tickets",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("ticket_id", sa.String(64), nullable=False),
        sa.Column("event_id", sa.Integer(), sa.ForeignKey("events.id", ondelete="CASCADE"), nullable=False),
        sa.Column("user_id", sa.Integer(), nullable=False),
        sa.Column("order_id", sa.Integer(), nullable=False),
        sa.Column("tier", sa.String(20), nullable=False),
        sa.Column("status", sa.String(20), nullable=False, server_default=sa.text("'active'")),
        sa.Column("price", sa.Numeric(10, 2), nullable=False),
        sa.Column("currency", sa.String(3), nullable=False, server_default=sa.text("'USD'")),
        sa.Column("attendee_name", sa.String(255), nullable=False),
        sa.Column("attendee_email", sa.String(255), nullable=False),
        sa.Column("attendee_phone", sa.String(50), nullable=True),
        sa.Column("payload", sa.Text(), nullable=False),
        sa.Column("used_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("used_by", sa.String(255), nullable=True),
        sa.Column("expires_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.CheckConstraint(f"tier IN {TIERS}", name="ticket_tier"),
        sa.CheckConstraint("status IN ('active', 'used', 'cancelled', 'expired')", name="ticket_status"),
    )
    op.create_index("ix_tickets_id", "tickets", ["id"])
    op.create_index("ix_tickets_ticket_id", "tickets", ["ticket_id"], unique=True)
    op.create_index("ix_tickets_event_id", "tickets", ["event_id"])
    op.create_index("ix_tickets_user_id", "tickets", ["user_id"])
    op.create_index("ix_tickets_order_id", "tickets", ["order_id"])
    # Door dashboards: "how many of tonight's tickets are still active"
    op.create_index("ix_tickets_event_status", "tickets", ["event_id", "status"])

    # Validation audit (append-only)
    op.create_table(
        "ticket_validations",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("ticket_pk", sa.Integer(), sa.ForeignKey("tickets.id", ondelete="RESTRICT"), nullable=True),
        sa.Column("ticket_ref", sa.String(64), nullable=True),
        sa.Column("channel", sa.String(20), nullable=False),
        sa.Column("validator_id", sa.String(255), nullable=True),
        sa.Column("outcome", sa.String(20), nullable=False),
        sa.Column("notes", sa.Text(), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.CheckConstraint("channel IN ('scan', 'manual', 'api')", name="validation_channel"),
        sa.CheckConstraint(
            "outcome IN ('valid', 'invalid', 'not_found', 'already_used', 'cancelled', 'expired')",
            name="validation_status",
        ),
    )
    op.create_index("ix_ticket_validations_id", "ticket_validations", ["id"])
    op.create_index("ix_ticket_validations_ticket_pk", "ticket_validations", ["ticket_pk"])
    op.create_index("ix_ticket_validations_created_at", "ticket_validations", ["created_at"])


def downgrade() -> None:
    op.drop_table("ticket_validations")
    op.drop_table("tickets")
    op.drop_table("tier_allocations")
    op.drop_table("events")
