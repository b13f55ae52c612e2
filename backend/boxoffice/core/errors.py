"""
Purchase error taxonomy.

Each error carries a stable machine-readable code and the HTTP status the API
answers with. Terminal payment failures and idempotent replays are results,
not errors, and live in the reconciler.
"""

from fastapi import status


class PurchaseError(Exception):
    code = "purchase_error"
    status_code = status.HTTP_400_BAD_REQUEST

    def __init__(self, message: str):
        self.message = message
        super().__init__(message)


class SelectionValidationError(PurchaseError):
    """The buyer's selection is malformed. Nothing was reserved."""

    code = "validation_error"
    status_code = status.HTTP_422_UNPROCESSABLE_ENTITY

    def __init__(self, field: str, reason: str):
        self.field = field
        self.reason = reason
        super().__init__(f"{field}: {reason}")


class InsufficientInventory(PurchaseError):
    """Stock raced away. No partial reservation is left behind."""

    code = "insufficient_inventory"
    status_code = status.HTTP_409_CONFLICT

    def __init__(self, ticket_type_id: int, requested: int):
        self.ticket_type_id = ticket_type_id
        self.requested = requested
        super().__init__(
            f"Not enough tickets available for ticket type {ticket_type_id} "
            f"(requested {requested})"
        )


class InventoryLedgerError(PurchaseError):
    code = "inventory_ledger_error"
    status_code = status.HTTP_500_INTERNAL_SERVER_ERROR


class GatewayUnavailable(PurchaseError):
    """Transient gateway failure. Retry with backoff, no state changed."""

    code = "gateway_unavailable"
    status_code = status.HTTP_503_SERVICE_UNAVAILABLE


class DuplicateSession(PurchaseError):
    code = "duplicate_session"
    status_code = status.HTTP_409_CONFLICT

    def __init__(self, session_id: str):
        self.session_id = session_id
        super().__init__(f"Purchase intent already exists for session {session_id}")

