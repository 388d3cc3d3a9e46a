"""
modules/billing/engine.py

Invoice Financial Engine: the validation half of recording a payment or a
return. Stateless; callers fetch current rows, call in here, then persist
exactly what comes back (both derived fields together).
"""
from __future__ import annotations

import math
from dataclasses import dataclass
from typing import Optional

from ...constants import MONEY_EPSILON, SETTLEMENT_TYPES
from ...utils.helpers import fmt_money, round2, safe_number
from ...utils.validators import non_empty, try_parse_float
from .calculations import payment_status, remaining_balance, returnable_quantity
from .eligibility import check_return_eligibility, settlement_options
from .errors import BillingError, ErrorKind
from .quantities import QuantityLike, parse_return_quantity

__all__ = [
    "LineItem",
    "PaymentOutcome",
    "ReturnPlan",
    "validate_payment",
    "apply_payment",
    "plan_return",
]

# absorbs float noise in quantity sums (0.1 + 0.2 style)
_QTY_EPSILON = 1e-9
# float slack on the payment boundary so remaining + 0.01 itself is accepted
_AMOUNT_EPSILON = 1e-9


@dataclass
class LineItem:
    item_id: int | None
    product_name: str
    quantity: float
    unit_price: float
    total_price: float
    unit_type: str = "piece"
    is_misc_item: bool = False
    product_id: int | None = None

    @classmethod
    def from_row(cls, row) -> "LineItem":
        keys = row.keys()
        return cls(
            item_id=int(row["id"]) if row["id"] is not None else None,
            product_name=row["product_name"] or "",
            quantity=safe_number(row["quantity"]),
            unit_price=safe_number(row["unit_price"]),
            total_price=safe_number(row["total_price"]),
            unit_type=(row["unit_type"] if "unit_type" in keys else None) or "piece",
            is_misc_item=bool(row["is_misc_item"]) if "is_misc_item" in keys else False,
            product_id=row["product_id"] if "product_id" in keys else None,
        )


@dataclass(frozen=True)
class PaymentOutcome:
    amount: float
    payments_total: float
    remaining_balance: float
    payment_status: str


@dataclass(frozen=True)
class ReturnPlan:
    line_item_id: int | None
    return_quantity: float
    unit_price: float
    total_price: float
    settlement_type: str
    reason: str
    eligibility_state: str


# -----------------------------
# Payments
# -----------------------------

def validate_payment(amount, remaining) -> float:
    """
    Returns the amount as a float, or raises BillingError.

    The 0.01 slack lets the operator clear a balance that was rounded for
    display; amount == remaining + 0.01 is accepted.
    """
    ok, value = try_parse_float(amount)
    if not ok or value <= 0:
        raise BillingError(ErrorKind.INVALID_AMOUNT, "Please enter a valid payment amount greater than 0.")
    rem = safe_number(remaining)
    if value > rem + MONEY_EPSILON + _AMOUNT_EPSILON:
        raise BillingError(
            ErrorKind.EXCEEDS_BALANCE,
            f"Payment amount ({fmt_money(value)}) cannot exceed remaining balance ({fmt_money(rem)}).",
        )
    return value


def apply_payment(grand_total, payments_total, returns_total, amount) -> PaymentOutcome:
    """Validate `amount` against the current balance and project the new header fields."""
    current_remaining = remaining_balance(grand_total, payments_total, returns_total)
    value = validate_payment(amount, current_remaining)
    new_paid = round2(safe_number(payments_total) + value)
    new_remaining = remaining_balance(grand_total, new_paid, returns_total)
    return PaymentOutcome(
        amount=round2(value),
        payments_total=new_paid,
        remaining_balance=new_remaining,
        payment_status=payment_status(new_remaining, new_paid),
    )


# -----------------------------
# Returns
# -----------------------------

def plan_return(
    *,
    line: LineItem,
    returned_so_far: float,
    return_quantity: QuantityLike,
    reason: Optional[str],
    settlement_type: str,
    grand_total: float,
    remaining: float,
    returns_total: float = 0.0,
) -> ReturnPlan:
    """
    Validate one return line and price it at the original unit price.

    Checks run in this order: misc item, quantity parse, positive quantity,
    reason, invoice eligibility / settlement type, returnable quantity.
    """
    if line.is_misc_item:
        raise BillingError(ErrorKind.NOT_RETURNABLE, "Miscellaneous items cannot be returned.")

    qty = parse_return_quantity(return_quantity)
    if math.isnan(qty) or math.isinf(qty) or qty <= 0:
        raise BillingError(ErrorKind.INVALID_AMOUNT, "Return quantity must be a positive number.")

    if not non_empty(reason):
        raise BillingError(ErrorKind.MISSING_REASON, "Return reason is required.")

    eligibility = check_return_eligibility(grand_total, remaining, returns_total)
    if not eligibility.eligible:
        raise BillingError(ErrorKind.INELIGIBLE, eligibility.reason)

    settlement = (settlement_type or "").strip().lower()
    if settlement not in SETTLEMENT_TYPES:
        raise BillingError(
            ErrorKind.INELIGIBLE,
            f"Unknown settlement type '{settlement_type}'. Use one of: {', '.join(SETTLEMENT_TYPES)}.",
        )
    if not settlement_options(eligibility).get(settlement):
        raise BillingError(
            ErrorKind.INELIGIBLE,
            "Cash refunds are only available for fully paid invoices. "
            "An unpaid invoice is settled by reducing the amount owed.",
        )

    available = returnable_quantity(line.quantity, returned_so_far, is_misc_item=line.is_misc_item)
    if qty > available + _QTY_EPSILON:
        raise BillingError(
            ErrorKind.EXCEEDS_RETURNABLE,
            f"Return quantity ({qty:g}) exceeds returnable quantity ({available:g}) "
            f"for {line.product_name or 'item'}.",
        )

    unit_price = safe_number(line.unit_price)
    return ReturnPlan(
        line_item_id=line.item_id,
        return_quantity=qty,
        unit_price=unit_price,
        total_price=round2(qty * unit_price),
        settlement_type=settlement,
        reason=str(reason).strip(),
        eligibility_state=eligibility.state,
    )
