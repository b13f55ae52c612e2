"""
Purchase intent: the server-side record of a checkout in flight.

Key design decisions:
- Keyed by the gateway's checkout session id (unique), so the buyer's return
  can always be matched to what they selected, even if the browser lost it.
- `consumed_at` / `disposition` is the single atomic flag that makes
  finalization at-most-once. It only ever goes from NULL to a value.
- The selection is stored resolved (prices captured at checkout time).
"""

import enum

from sqlalchemy import (
    JSON,
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


class Disposition(str, enum.Enum):
    ISSUED = "issued"
    FAILED = "failed"
    EXPIRED = "expired"
    CANCELLED = "cancelled"


class PurchaseIntent(Base, TimestampMixin):
    __tablename__ = "purchase_intents"

    id = Column(Integer, primary_key=True)
    session_id = Column(String(255), nullable=False, unique=True)
    client_reference = Column(String(64), nullable=False, unique=True)
    buyer_id = Column(Integer, nullable=False, index=True)
    event_id = Column(Integer, ForeignKey("events.id"), nullable=False)
    selection = Column(JSON, nullable=False)
    amount = Column(Numeric(10, 2), nullable=False)
    currency = Column(String(3), nullable=False)
    status_checks = Column(Integer, nullable=False, default=0)
    consumed_at = Column(DateTime(timezone=True), nullable=True)
    disposition = Column(String(20), nullable=True)  # issued, failed, expired, cancelled
    order_id = Column(String(32), nullable=True)

    __table_args__ = (
        CheckConstraint(
            "disposition IS NULL OR disposition IN ('issued', 'failed', 'expired', 'cancelled')",
            name="check_intent_disposition",
        ),
        CheckConstraint(
            "(consumed_at IS NULL) = (disposition IS NULL)",
            name="check_intent_consumed_has_disposition",
        ),
        # Sweep: open intents, oldest first
        Index("ix_purchase_intents_open_created", "consumed_at", "created_at"),
    )

    @property
    def is_consumed(self) -> bool:
        return self.consumed_at is not None

    def __repr__(self) -> str:
        return (
            f"<PurchaseIntent(session={self.session_id}, buyer={self.buyer_id}, "
            f"disposition={self.disposition})>"
        )
