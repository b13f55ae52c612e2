"""
Issued tickets and purchased add-ons.

Key design decisions:
- Rows are written only by the purchase finalizer, in the same transaction
  that consumes the intent, and never updated afterwards.
- `order_id` groups the rows of one purchase so they display and refund together.
- Unique (payment_session_id, ticket_type_id) is a storage-level backstop
  against duplicate issuance for one checkout session.
"""

from sqlalchemy import (
    JSON,
    CheckConstraint,
    Boolean,
    Column,
    Date,
    DateTime,
    ForeignKey,
    Integer,
    Numeric,
    String,
    UniqueConstraint,
)

from boxoffice.db.base import Base, utcnow


class Ticket(Base):
    __tablename__ = "tickets"

    id = Column(Integer, primary_key=True, index=True)
    event_id = Column(Integer, ForeignKey("events.id"), nullable=False, index=True)
    ticket_type_id = Column(Integer, ForeignKey("ticket_types.id"), nullable=False)
    order_id = Column(String(32), nullable=False, index=True)
    buyer_id = Column(Integer, nullable=False, index=True)
    payment_session_id = Column(String(255), nullable=False)
    quantity = Column(Integer, nullable=False)
    total_price = Column(Numeric(10, 2), nullable=False)
    event_date = Column(Date, nullable=True)  # set for multi-day events
    attendee_details = Column(JSON, nullable=False, default=list)
    is_gift = Column(Boolean, nullable=False, default=False)
    gift_recipients = Column(JSON, nullable=True)
    issued_at = Column(DateTime(timezone=True), nullable=False, default=utcnow)

    __table_args__ = (
        UniqueConstraint("payment_session_id", "ticket_type_id", name="uq_ticket_session_type"),
        CheckConstraint("quantity > 0", name="check_ticket_quantity_positive"),
    )

    def __repr__(self) -> str:
        return f"<Ticket(id={self.id}, order={self.order_id}, type={self.ticket_type_id}, qty={self.quantity})>"


class PurchasedAddOn(Base):
    __tablename__ = "purchased_add_ons"

    id = Column(Integer, primary_key=True)
    order_id = Column(String(32), nullable=False, index=True)
    payment_session_id = Column(String(255), nullable=False)
    add_on_id = Column(Integer, ForeignKey("add_ons.id"), nullable=True)  # NULL for custom add-ons
    name = Column(String(255), nullable=False)
    description = Column(String(1000), nullable=True)
    quantity = Column(Integer, nullable=False)
    unit_price = Column(Numeric(10, 2), nullable=False)
    total_price = Column(Numeric(10, 2), nullable=False)
    note = Column(String(1000), nullable=True)
    created_at = Column(DateTime(timezone=True), nullable=False, default=utcnow)

    __table_args__ = (
        CheckConstraint("quantity > 0", name="check_purchased_add_on_quantity_positive"),
    )
