"""
Catalog add-ons and their per-event configuration.

An add-on is defined once and linked to events through EventAddOnLink, which
carries the event-specific rules (required, maximum quantity). Custom add-ons
written by the buyer at checkout have no row here: they only exist inside the
purchase intent's selection and, once paid, as PurchasedAddOn rows.
"""

from sqlalchemy import (
    Boolean,
    CheckConstraint,
    Column,
    ForeignKey,
    Integer,
    Numeric,
    String,
    UniqueConstraint,
)
from sqlalchemy.orm import relationship

from boxoffice.db.base import Base, TimestampMixin


class AddOn(Base, TimestampMixin):
    __tablename__ = "add_ons"

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String(255), nullable=False)
    description = Column(String(1000), nullable=True)
    price = Column(Numeric(10, 2), nullable=False)
    is_active = Column(Boolean, nullable=False, default=True)

    __table_args__ = (
        CheckConstraint("price >= 0", name="check_add_on_price_non_negative"),
    )

    def __repr__(self) -> str:
        return f"<AddOn(id={self.id}, name={self.name})>"


class EventAddOnLink(Base):
    __tablename__ = "event_add_ons"

    id = Column(Integer, primary_key=True)
    event_id = Column(Integer, ForeignKey("events.id"), nullable=False, index=True)
    add_on_id = Column(Integer, ForeignKey("add_ons.id"), nullable=False)
    is_required = Column(Boolean, nullable=False, default=False)
    max_quantity = Column(Integer, nullable=False, default=1)

    add_on = relationship("AddOn", lazy="joined")

    __table_args__ = (
        UniqueConstraint("event_id", "add_on_id", name="uq_event_add_on"),
        CheckConstraint("max_quantity > 0", name="check_add_on_max_quantity_positive"),
    )
