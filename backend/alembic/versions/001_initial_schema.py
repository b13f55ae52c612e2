"""Initial schema: catalog, purchase intents, tickets and purchased add-ons.

Revision ID: 001
Revises: None
Create Date: 2026-10-16
"""
from typing import Sequence, Union
from alembic import op
import sqlalchemy as sa

revision: str = "001"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def _timestamps() -> list[sa.Column]:
    return [
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
    ]


def upgrade() -> None:
    # Events (owned by the catalog service, read here)
    op.create_table(
        "events",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("title", sa.String(255), nullable=False),
        sa.Column("start_date", sa.DateTime(timezone=True), nullable=False),
        sa.Column("organizer_id", sa.Integer(), nullable=False),
        *_timestamps(),
    )
    op.create_index("ix_events_id", "events", ["id"])
    op.create_index("ix_events_created_at", "events", ["created_at"])

    # Ticket types: available_quantity is the contended counter
    op.create_table(
        "ticket_types",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("event_id", sa.Integer(), sa.ForeignKey("events.id"), nullable=False),
        sa.Column("name", sa.String(255), nullable=False),
        sa.Column("price", sa.Numeric(10, 2), nullable=False),
        sa.Column("total_quantity", sa.Integer(), nullable=False),
        sa.Column("available_quantity", sa.Integer(), nullable=False),
        sa.Column("is_on_sale", sa.Boolean(), nullable=False, server_default=sa.text("true")),
        sa.Column("sales_end_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("is_person_scoped", sa.Boolean(), nullable=False, server_default=sa.text("false")),
        *_timestamps(),
        sa.CheckConstraint("available_quantity >= 0", name="check_available_quantity_non_negative"),
        sa.CheckConstraint("total_quantity > 0", name="check_total_quantity_positive"),
        sa.CheckConstraint("available_quantity <= total_quantity", name="check_available_lte_total"),
        sa.CheckConstraint("price >= 0", name="check_ticket_price_non_negative"),
    )
    op.create_index("ix_ticket_types_id", "ticket_types", ["id"])
    op.create_index("ix_ticket_types_event_id", "ticket_types", ["event_id"])
    op.create_index("ix_ticket_types_created_at", "ticket_types", ["created_at"])

    # Add-on catalog and per-event links
    op.create_table(
        "add_ons",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("name", sa.String(255), nullable=False),
        sa.Column("description", sa.String(1000), nullable=True),
        sa.Column("price", sa.Numeric(10, 2), nullable=False),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.text("true")),
        *_timestamps(),
        sa.CheckConstraint("price >= 0", name="check_add_on_price_non_negative"),
    )
    op.create_index("ix_add_ons_id", "add_ons", ["id"])
    op.create_index("ix_add_ons_created_at", "add_ons", ["created_at"])

    op.create_table(
        "event_add_ons",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("event_id", sa.Integer(), sa.ForeignKey("events.id"), nullable=False),
        sa.Column("add_on_id", sa.Integer(), sa.ForeignKey("add_ons.id"), nullable=False),
        sa.Column("is_required", sa.Boolean(), nullable=False, server_default=sa.text("false")),
        sa.Column("max_quantity", sa.Integer(), nullable=False, server_default=sa.text("1")),
        sa.UniqueConstraint("event_id", "add_on_id", name="uq_event_add_on"),
        sa.CheckConstraint("max_quantity > 0", name="check_add_on_max_quantity_positive"),
    )
    op.create_index("ix_event_add_ons_event_id", "event_add_ons", ["event_id"])

    # Purchase intents: one per gateway checkout session
    op.create_table(
        "purchase_intents",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("session_id", sa.String(255), nullable=False),
        sa.Column("client_reference", sa.String(64), nullable=False),
        sa.Column("buyer_id", sa.Integer(), nullable=False),
        sa.Column("event_id", sa.Integer(), sa.ForeignKey("events.id"), nullable=False),
        sa.Column("selection", sa.JSON(), nullable=False),
        sa.Column("amount", sa.Numeric(10, 2), nullable=False),
        sa.Column("currency", sa.String(3), nullable=False),
        sa.Column("status_checks", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.Column("consumed_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("disposition", sa.String(20), nullable=True),
        sa.Column("order_id", sa.String(32), nullable=True),
        *_timestamps(),
        sa.UniqueConstraint("session_id", name="uq_purchase_intents_session_id"),
        sa.UniqueConstraint("client_reference", name="uq_purchase_intents_client_reference"),
        sa.CheckConstraint(
            "disposition IS NULL OR disposition IN ('issued', 'failed', 'expired', 'cancelled')",
            name="check_intent_disposition",
        ),
        sa.CheckConstraint(
            "(consumed_at IS NULL) = (disposition IS NULL)",
            name="check_intent_consumed_has_disposition",
        ),
    )
    op.create_index("ix_purchase_intents_buyer_id", "purchase_intents", ["buyer_id"])
    op.create_index("ix_purchase_intents_created_at", "purchase_intents", ["created_at"])
    # The sweep scans open intents oldest first
    op.create_index(
        "ix_purchase_intents_open_created", "purchase_intents", ["consumed_at", "created_at"]
    )

    # Issued tickets
    op.create_table(
        "tickets",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("event_id", sa.Integer(), sa.ForeignKey("events.id"), nullable=False),
        sa.Column("ticket_type_id", sa.Integer(), sa.ForeignKey("ticket_types.id"), nullable=False),
        sa.Column("order_id", sa.String(32), nullable=False),
        sa.Column("buyer_id", sa.Integer(), nullable=False),
        sa.Column("payment_session_id", sa.String(255), nullable=False),
        sa.Column("quantity", sa.Integer(), nullable=False),
        sa.Column("total_price", sa.Numeric(10, 2), nullable=False),
        sa.Column("event_date", sa.Date(), nullable=True),
        sa.Column("attendee_details", sa.JSON(), nullable=False),
        sa.Column("is_gift", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("gift_recipients", sa.JSON(), nullable=True),
        sa.Column("issued_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.UniqueConstraint("payment_session_id", "ticket_type_id", name="uq_ticket_session_type"),
        sa.CheckConstraint("quantity > 0", name="check_ticket_quantity_positive"),
    )
    op.create_index("ix_tickets_id", "tickets", ["id"])
    op.create_index("ix_tickets_event_id", "tickets", ["event_id"])
    op.create_index("ix_tickets_order_id", "tickets", ["order_id"])
    op.create_index("ix_tickets_buyer_id", "tickets", ["buyer_id"])

    op.create_table(
        "purchased_add_ons",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("order_id", sa.String(32), nullable=False),
        sa.Column("payment_session_id", sa.String(255), nullable=False),
        sa.Column("add_on_id", sa.Integer(), sa.ForeignKey("add_ons.id"), nullable=True),
        sa.Column("name", sa.String(255), nullable=False),
        sa.Column("description", sa.String(1000), nullable=True),
        sa.Column("quantity", sa.Integer(), nullable=False),
        sa.Column("unit_price", sa.Numeric(10, 2), nullable=False),
        sa.Column("total_price", sa.Numeric(10, 2), nullable=False),
        sa.Column("note", sa.String(1000), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.CheckConstraint("quantity > 0", name="check_purchased_add_on_quantity_positive"),
    )
    op.create_index("ix_purchased_add_ons_order_id", "purchased_add_ons", ["order_id"])


def downgrade() -> None:
    op.drop_table("purchased_add_ons")
    op.drop_table("tickets")
    op.drop_table("purchase_intents")
    op.drop_table("event_add_ons")
    op.drop_table("add_ons")
    op.drop_table("ticket_types")
    op.drop_table("events")
