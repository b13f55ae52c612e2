from boxoffice.models.event import Event, TicketType
from boxoffice.models.add_on import AddOn, EventAddOnLink
from boxoffice.models.intent import Disposition, PurchaseIntent
from boxoffice.models.ticket import PurchasedAddOn, Ticket

__all__ = [
    "Event", "TicketType",
    "AddOn", "EventAddOnLink",
    "Disposition", "PurchaseIntent",
    "PurchasedAddOn", "Ticket",
]
