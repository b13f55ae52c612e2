"""
Pydantic schemas for purchase request/response validation.

Add-on selections are a tagged union on `kind` so catalog and buyer-written
add-ons can be mixed in one list and still be resolved without guessing.
"""

from datetime import date, datetime
from decimal import Decimal
from typing import Annotated, Literal, Optional, Union

from pydantic import BaseModel, EmailStr, Field, model_validator


class AttendeeDetails(BaseModel):
    full_name: str = Field(..., min_length=1, max_length=255)
    email: EmailStr
    phone: Optional[str] = Field(None, max_length=50)
    special_requirements: Optional[str] = Field(None, max_length=1000)


class GiftRecipient(BaseModel):
    name: str = Field(..., min_length=1, max_length=255)
    email: EmailStr
    message: Optional[str] = Field(None, max_length=1000)


class TicketSelection(BaseModel):
    ticket_type_id: int
    quantity: int = Field(..., gt=0, le=1000)
    event_date: Optional[date] = None  # the day attended, for multi-day events
    attendee_details: list[AttendeeDetails] = Field(default_factory=list)
    is_gift: bool = False
    gift_recipients: list[GiftRecipient] = Field(default_factory=list)

    @model_validator(mode="after")
    def check_gift_recipients(self) -> "TicketSelection":
        if self.is_gift and not self.gift_recipients:
            raise ValueError("gift tickets need at least one recipient")
        if self.gift_recipients and not self.is_gift:
            raise ValueError("gift_recipients given for a ticket that is not a gift")
        return self


class CatalogAddOnSelection(BaseModel):
    kind: Literal["catalog"] = "catalog"
    add_on_id: int
    quantity: int = Field(1, gt=0)
    note: Optional[str] = Field(None, max_length=1000)


class CustomAddOnSelection(BaseModel):
    kind: Literal["custom"]
    name: str = Field(..., max_length=255)
    description: Optional[str] = Field(None, max_length=1000)
    price: Decimal = Field(..., max_digits=10, decimal_places=2)
    quantity: int = Field(1, gt=0)
    note: Optional[str] = Field(None, max_length=1000)


AddOnSelection = Annotated[
    Union[CatalogAddOnSelection, CustomAddOnSelection],
    Field(discriminator="kind"),
]


class PurchaseIntentCreate(BaseModel):
    event_id: int
    ticket_selections: list[TicketSelection] = Field(..., min_length=1)
    add_on_selections: list[AddOnSelection] = Field(default_factory=list)
    attendee_details: list[AttendeeDetails] = Field(default_factory=list)


class PurchaseIntentResponse(BaseModel):
    session_id: str
    redirect_url: str
    amount: Decimal
    currency: str


class TicketResponse(BaseModel):
    id: int
    event_id: int
    ticket_type_id: int
    order_id: str
    quantity: int
    total_price: Decimal
    event_date: Optional[date] = None
    attendee_details: list[dict]
    is_gift: bool = False
    gift_recipients: Optional[list[dict]] = None
    issued_at: datetime

    model_config = {"from_attributes": True}


class PurchaseStatusResponse(BaseModel):
    """
    Exactly one of `issued`, `pending`, `failed` or `unknown_session` is set.
    Serialized with `exclude_none` so clients can switch on the key.
    """

    issued: Optional[list[TicketResponse]] = None
    order_id: Optional[str] = None
    already_issued: Optional[bool] = None
    pending: Optional[bool] = None
    retry_after_seconds: Optional[float] = None
    attempts_remaining: Optional[int] = None
    failed: Optional[str] = None
    unknown_session: Optional[bool] = None
