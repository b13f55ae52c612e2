"""
Selection validation: turns a raw buyer selection into a resolved selection.

This module is a pure transform over (request, catalog snapshot, clock). It
never touches the database; the caller loads the catalog and persists the
result. Checks run in a fixed order so the first violation reported is
deterministic:

  a. ticket types belong to the event, are on sale, and (advisory) in stock
  b. add-ons are available for the event and within their maximum quantity
  c. required add-ons are present, synthesized at quantity 1 when missing
  d. person-scoped ticket types carry one attendee record per unit

Prices are captured here, so the amount charged is fixed at checkout time.
"""

from dataclasses import dataclass, field
from datetime import date, datetime, timezone
from decimal import Decimal
from typing import Optional

from boxoffice.core.errors import InsufficientInventory, SelectionValidationError
from boxoffice.db.base import as_utc
from boxoffice.models import EventAddOnLink, TicketType
from boxoffice.schemas.purchase import CustomAddOnSelection, PurchaseIntentCreate

CENT = Decimal("0.01")


@dataclass(frozen=True)
class CatalogSnapshot:
    event_id: int
    ticket_types: dict[int, TicketType]
    add_on_links: dict[int, EventAddOnLink]  # keyed by add_on_id


@dataclass
class ResolvedTicketLine:
    ticket_type_id: int
    name: str
    quantity: int
    unit_price: Decimal
    attendee_details: list[dict] = field(default_factory=list)
    event_date: Optional[date] = None
    is_gift: bool = False
    gift_recipients: list[dict] = field(default_factory=list)

    @property
    def total_price(self) -> Decimal:
        return (self.unit_price * self.quantity).quantize(CENT)


@dataclass
class ResolvedAddOn:
    add_on_id: Optional[int]
    name: str
    unit_price: Decimal
    quantity: int
    description: Optional[str] = None
    note: Optional[str] = None
    custom: bool = False
    required: bool = False

    @property
    def total_price(self) -> Decimal:
        return (self.unit_price * self.quantity).quantize(CENT)


@dataclass
class ResolvedSelection:
    event_id: int
    tickets: list[ResolvedTicketLine]
    add_ons: list[ResolvedAddOn]

    @property
    def amount(self) -> Decimal:
        total = sum((line.total_price for line in self.tickets), Decimal("0"))
        total += sum((item.total_price for item in self.add_ons), Decimal("0"))
        return total.quantize(CENT)

    def to_dict(self) -> dict:
        """JSON-safe form stored on the purchase intent."""
        return {
            "event_id": self.event_id,
            "tickets": [
                {
                    "ticket_type_id": line.ticket_type_id,
                    "name": line.name,
                    "quantity": line.quantity,
                    "unit_price": str(line.unit_price),
                    "attendee_details": line.attendee_details,
                    "event_date": line.event_date.isoformat() if line.event_date else None,
                    "is_gift": line.is_gift,
                    "gift_recipients": line.gift_recipients,
                }
                for line in self.tickets
            ],
            "add_ons": [
                {
                    "add_on_id": item.add_on_id,
                    "name": item.name,
                    "description": item.description,
                    "unit_price": str(item.unit_price),
                    "quantity": item.quantity,
                    "note": item.note,
                    "custom": item.custom,
                    "required": item.required,
                }
                for item in self.add_ons
            ],
        }

    @classmethod
    def from_dict(cls, data: dict) -> "ResolvedSelection":
        return cls(
            event_id=data["event_id"],
            tickets=[
                ResolvedTicketLine(
                    ticket_type_id=line["ticket_type_id"],
                    name=line["name"],
                    quantity=line["quantity"],
                    unit_price=Decimal(line["unit_price"]),
                    attendee_details=line.get("attendee_details", []),
                    event_date=date.fromisoformat(line["event_date"]) if line.get("event_date") else None,
                    is_gift=line.get("is_gift", False),
                    gift_recipients=line.get("gift_recipients", []),
                )
                for line in data["tickets"]
            ],
            add_ons=[
                ResolvedAddOn(
                    add_on_id=item["add_on_id"],
                    name=item["name"],
                    description=item.get("description"),
                    unit_price=Decimal(item["unit_price"]),
                    quantity=item["quantity"],
                    note=item.get("note"),
                    custom=item.get("custom", False),
                    required=item.get("required", False),
                )
                for item in data["add_ons"]
            ],
        )


def _is_on_sale(ticket_type: TicketType, now: datetime) -> bool:
    if not ticket_type.is_on_sale:
        return False
    if ticket_type.sales_end_at is not None and as_utc(ticket_type.sales_end_at) <= now:
        return False
    return True


def _resolve_tickets(request: PurchaseIntentCreate, catalog: CatalogSnapshot, now: datetime):
    lines: list[ResolvedTicketLine] = []
    seen: set[int] = set()

    for idx, selection in enumerate(request.ticket_selections):
        field_name = f"ticket_selections[{idx}].ticket_type_id"
        ticket_type = catalog.ticket_types.get(selection.ticket_type_id)

        if ticket_type is None or ticket_type.event_id != catalog.event_id:
            raise SelectionValidationError(field_name, "ticket type does not belong to this event")
        if not _is_on_sale(ticket_type, now):
            raise SelectionValidationError(field_name, "ticket type is not on sale")
        if ticket_type.id in seen:
            raise SelectionValidationError(field_name, "ticket type selected more than once")
        seen.add(ticket_type.id)

        if len(selection.gift_recipients) > selection.quantity:
            raise SelectionValidationError(
                f"ticket_selections[{idx}].gift_recipients", "more gift recipients than tickets"
            )

        if selection.quantity > ticket_type.available_quantity:
            raise InsufficientInventory(ticket_type.id, selection.quantity)

        lines.append(
            ResolvedTicketLine(
                ticket_type_id=ticket_type.id,
                name=ticket_type.name,
                quantity=selection.quantity,
                unit_price=Decimal(ticket_type.price).quantize(CENT),
                attendee_details=[a.model_dump() for a in selection.attendee_details],
                event_date=selection.event_date,
                is_gift=selection.is_gift,
                gift_recipients=[r.model_dump() for r in selection.gift_recipients],
            )
        )
    return lines


def _resolve_add_ons(request: PurchaseIntentCreate, catalog: CatalogSnapshot):
    items: list[ResolvedAddOn] = []
    seen: set[int] = set()

    for idx, selection in enumerate(request.add_on_selections):
        prefix = f"add_on_selections[{idx}]"

        if isinstance(selection, CustomAddOnSelection):
            if not selection.name.strip():
                raise SelectionValidationError(f"{prefix}.name", "custom add-on needs a name")
            if selection.price < 0:
                raise SelectionValidationError(f"{prefix}.price", "price must not be negative")
            items.append(
                ResolvedAddOn(
                    add_on_id=None,
                    name=selection.name.strip(),
                    description=selection.description,
                    unit_price=selection.price.quantize(CENT),
                    quantity=selection.quantity,
                    note=selection.note,
                    custom=True,
                )
            )
            continue

        link = catalog.add_on_links.get(selection.add_on_id)
        if link is None or not link.add_on.is_active:
            raise SelectionValidationError(
                f"{prefix}.add_on_id", "add-on is not available for this event"
            )
        if selection.add_on_id in seen:
            raise SelectionValidationError(f"{prefix}.add_on_id", "add-on selected more than once")
        seen.add(selection.add_on_id)

        if selection.quantity > link.max_quantity:
            raise SelectionValidationError(
                f"{prefix}.quantity", f"quantity exceeds maximum of {link.max_quantity}"
            )

        items.append(
            ResolvedAddOn(
                add_on_id=link.add_on_id,
                name=link.add_on.name,
                description=link.add_on.description,
                unit_price=Decimal(link.add_on.price).quantize(CENT),
                quantity=selection.quantity,
                note=selection.note,
                required=link.is_required,
            )
        )

    # Required means always included
    for add_on_id, link in sorted(catalog.add_on_links.items()):
        if link.is_required and link.add_on.is_active and add_on_id not in seen:
            items.append(
                ResolvedAddOn(
                    add_on_id=add_on_id,
                    name=link.add_on.name,
                    description=link.add_on.description,
                    unit_price=Decimal(link.add_on.price).quantize(CENT),
                    quantity=1,
                    required=True,
                )
            )
    return items


def _assign_attendees(
    request: PurchaseIntentCreate,
    catalog: CatalogSnapshot,
    lines: list[ResolvedTicketLine],
) -> None:
    pool = [a.model_dump() for a in request.attendee_details]

    for idx, line in enumerate(lines):
        ticket_type = catalog.ticket_types[line.ticket_type_id]
        if not ticket_type.is_person_scoped:
            continue

        if not line.attendee_details and pool:
            line.attendee_details, pool = pool[: line.quantity], pool[line.quantity:]

        if len(line.attendee_details) != line.quantity:
            raise SelectionValidationError(
                f"ticket_selections[{idx}].attendee_details",
                f"expected {line.quantity} attendee records, got {len(line.attendee_details)}",
            )

    if pool:
        raise SelectionValidationError(
            "attendee_details", f"{len(pool)} attendee records not matched to any ticket"
        )


def validate_selection(
    request: PurchaseIntentCreate,
    catalog: CatalogSnapshot,
    now: Optional[datetime] = None,
) -> ResolvedSelection:
    """
    Validate and resolve a selection against the event's catalog.

    Raises SelectionValidationError(field, reason) on malformed input and
    InsufficientInventory when a line asks for more than is currently on sale.
    """
    now = now or datetime.now(timezone.utc)

    if request.event_id != catalog.event_id:
        raise SelectionValidationError("event_id", "selection is for a different event")

    tickets = _resolve_tickets(request, catalog, now)
    add_ons = _resolve_add_ons(request, catalog)
    _assign_attendees(request, catalog, tickets)

    return ResolvedSelection(event_id=catalog.event_id, tickets=tickets, add_ons=add_ons)
