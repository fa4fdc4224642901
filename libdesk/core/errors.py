"""Business-rule errors raised by the circulation services.

Every error carries a stable ``code`` and a ``detail`` mapping so the HTTP
layer can render it as a structured body without inspecting messages.
None of these are retried automatically.
"""

from typing import Any, Dict, Optional


class CirculationError(Exception):
    code = "circulation_error"
    status_code = 400

    def __init__(self, message: str = "", **detail: Any):
        super().__init__(message or self.code)
        self.message = message or self.code
        self.detail: Dict[str, Any] = detail

    def to_dict(self) -> Dict[str, Any]:
        return {"error": self.code, "message": self.message, "detail": self.detail}


class ValidationError(CirculationError):
    code = "validation_error"
    status_code = 400


class NotFound(CirculationError):
    code = "not_found"
    status_code = 404


class NotAuthorized(CirculationError):
    code = "not_authorized"
    status_code = 403


class EligibilityDenied(CirculationError):
    code = "eligibility_denied"
    status_code = 409

    def __init__(self, reason: str, message: Optional[str] = None, **detail: Any):
        super().__init__(message or f"Student may not borrow: {reason}", reason=reason, **detail)
        self.reason = reason


# Inventory

class InventoryError(CirculationError):
    code = "inventory_error"
    status_code = 409


class BookUnavailable(InventoryError):
    code = "book_unavailable"


class NoCopiesAvailable(InventoryError):
    code = "no_copies_available"


class AtMaximumCapacity(InventoryError):
    code = "at_maximum_capacity"


# Transaction state

class StateError(CirculationError):
    code = "state_error"
    status_code = 409


class AlreadyReturned(StateError):
    code = "already_returned"


class NoFineToPay(StateError):
    code = "no_fine_to_pay"


class FineAlreadyPaid(StateError):
    code = "fine_already_paid"


class NoFineToWaive(StateError):
    code = "no_fine_to_waive"
