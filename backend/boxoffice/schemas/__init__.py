from boxoffice.schemas.purchase import (
    AddOnSelection,
    AttendeeDetails,
    CatalogAddOnSelection,
    CustomAddOnSelection,
    PurchaseIntentCreate,
    PurchaseIntentResponse,
    PurchaseStatusResponse,
    TicketResponse,
    TicketSelection,
)

__all__ = [
    "AddOnSelection", "AttendeeDetails", "CatalogAddOnSelection", "CustomAddOnSelection",
    "PurchaseIntentCreate", "PurchaseIntentResponse", "PurchaseStatusResponse",
    "TicketResponse", "TicketSelection",
]
