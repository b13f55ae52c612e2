"""
Catalog models: events and their ticket types.

Key design decisions:
- `available_quantity` is the only hot, contended value in the system. It is
  written exclusively by the inventory ledger through conditional UPDATEs.
- CHECK constraints keep 0 <= available <= total even if a code path ever
  tried to bypass the ledger.
- Events are maintained by the catalog service; this core only reads them.
"""

from sqlalchemy import (
    Boolean,
    CheckConstraint,
    Column,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    Numeric,
    String,
)

from boxoffice.db.base import Base, TimestampMixin


class Event(Base, TimestampMixin):
    __tablename__ = "events"

    id = Column(Integer, primary_key=True, index=True)
    title = Column(String(255), nullable=False)
    start_date = Column(DateTime(timezone=True), nullable=False)
    organizer_id = Column(Integer, nullable=False)

    def __repr__(self) -> str:
        return f"<Event(id={self.id}, title={self.title})>"


class TicketType(Base, TimestampMixin):
    __tablename__ = "ticket_types"

    id = Column(Integer, primary_key=True, index=True)
    event_id = Column(Integer, ForeignKey("events.id"), nullable=False)
    name = Column(String(255), nullable=False)
    price = Column(Numeric(10, 2), nullable=False)
    total_quantity = Column(Integer, nullable=False)
    available_quantity = Column(Integer, nullable=False)
    is_on_sale = Column(Boolean, nullable=False, default=True)
    sales_end_at = Column(DateTime(timezone=True), nullable=True)
    # Conference-style tickets need one attendee record per unit
    is_person_scoped = Column(Boolean, nullable=False, default=False)

    __table_args__ = (
        CheckConstraint("available_quantity >= 0", name="check_available_quantity_non_negative"),
        CheckConstraint("total_quantity > 0", name="check_total_quantity_positive"),
        CheckConstraint(
            "available_quantity <= total_quantity", name="check_available_lte_total"
        ),
        CheckConstraint("price >= 0", name="check_ticket_price_non_negative"),
        Index("ix_ticket_types_event_id", "event_id"),
    )

    def __repr__(self) -> str:
        return (
            f"<TicketType(id={self.id}, name={self.name}, "
            f"available={self.available_quantity}/{self.total_quantity})>"
        )
