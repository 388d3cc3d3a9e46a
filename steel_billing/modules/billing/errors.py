"""
modules/billing/errors.py

Domain errors raised by the billing engine and service. Every message is
user-facing: controllers/dialogs show str(exc) as-is and never retry.
"""
from __future__ import annotations

from enum import Enum

__all__ = [
    "DomainError",
    "ErrorKind",
    "BillingError",
    "InvoiceNotFound",
    "LineItemNotFound",
    "MaintenanceModeActive",
]


# Domain-level error the controller can surface directly (e.g., toast/snackbar)
class DomainError(Exception):
    pass


class ErrorKind(str, Enum):
    INVALID_AMOUNT = "InvalidAmount"
    EXCEEDS_BALANCE = "ExceedsBalance"
    EXCEEDS_RETURNABLE = "ExceedsReturnable"
    MISSING_REASON = "MissingReason"
    INELIGIBLE = "Ineligible"
    NOT_RETURNABLE = "NotReturnable"
    PARSE_ERROR = "ParseError"


class BillingError(DomainError):
    """A rejected payment/return/edit. `kind` tells callers which rule fired."""

    def __init__(self, kind: ErrorKind, message: str):
        super().__init__(message)
        self.kind = kind
        self.message = message

    def __repr__(self) -> str:
        return f"BillingError({self.kind.value}, {self.message!r})"


class InvoiceNotFound(DomainError):
    def __init__(self, invoice_id):
        super().__init__(f"Invoice not found: {invoice_id}")
        self.invoice_id = invoice_id


class LineItemNotFound(DomainError):
    def __init__(self, item_id, invoice_id=None):
        where = f" on invoice {invoice_id}" if invoice_id is not None else ""
        super().__init__(f"Invoice item not found: {item_id}{where}")
        self.item_id = item_id
        self.invoice_id = invoice_id


class MaintenanceModeActive(DomainError):
    def __init__(self, holder: str | None = None):
        who = f" ({holder})" if holder else ""
        super().__init__(
            f"Balance maintenance is running{who}. Payments, returns and item edits "
            "are paused until it finishes."
        )
        self.holder = holder
