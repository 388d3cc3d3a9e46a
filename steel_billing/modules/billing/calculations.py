"""
modules/billing/calculations.py

Pure invoice arithmetic: line pricing, totals, balances, return adjustment.

Do not import repos or open DB connections here.
Only compute numbers; formatting belongs in the UI.

Rounding policy: every accumulated amount is passed through round2()
(half away from zero) at each step, matching what is stored on the invoice
row. Any non-numeric / NaN / infinite input counts as 0.
"""
from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Iterable, Mapping

from ...constants import MONEY_EPSILON
from ...utils.helpers import round2, safe_number
from .errors import BillingError, ErrorKind

__all__ = [
    "InvoiceTotals",
    "ReturnAdjustment",
    "clamp_non_negative",
    "line_total",
    "t_iron_line",
    "compute_totals",
    "remaining_balance",
    "payment_status",
    "returnable_quantity",
    "return_adjustment",
]


@dataclass(frozen=True)
class InvoiceTotals:
    subtotal: float
    discount_amount: float
    grand_total: float


@dataclass(frozen=True)
class ReturnAdjustment:
    returns_total: float
    adjusted_grand_total: float
    adjusted_remaining_balance: float


# -----------------------------
# Core utilities
# -----------------------------

def clamp_non_negative(x: float) -> float:
    """Return x if x > 0, else 0.0."""
    x = safe_number(x)
    return x if x > 0.0 else 0.0


def _field(line: Any, name: str, default: Any = None) -> Any:
    if isinstance(line, Mapping):
        return line.get(name, default)
    try:
        return line[name]
    except (TypeError, KeyError, IndexError):
        return getattr(line, name, default)


# -----------------------------
# Line pricing
# -----------------------------

def line_total(quantity, unit_price) -> float:
    """quantity (whole units) x unit_price, rounded to 2 decimals."""
    return round2(safe_number(quantity) * safe_number(unit_price))


def t_iron_line(pieces, length_per_piece, price_per_unit_length) -> dict:
    """
    T-Iron is priced by length: pieces x length_per_piece x price per foot.

    Returns {'total_feet', 'total_price'}; total_feet is also the line's
    quantity. Rejects non-positive pieces/length.
    """
    p = safe_number(pieces)
    length = safe_number(length_per_piece)
    if p <= 0:
        raise BillingError(ErrorKind.INVALID_AMOUNT, "Number of pieces must be greater than 0.")
    if length <= 0:
        raise BillingError(ErrorKind.INVALID_AMOUNT, "Length per piece must be greater than 0.")
    total_feet = p * length
    return {
        "total_feet": total_feet,
        "total_price": round2(total_feet * safe_number(price_per_unit_length)),
    }


# -----------------------------
# Totals
# -----------------------------

def compute_totals(lines: Iterable[Any], discount_percent=0.0) -> InvoiceTotals:
    """
    subtotal        = round2(sum(line.total_price))
    discount_amount = round2(subtotal * discount_percent / 100)
    grand_total     = round2(subtotal - discount_amount)

    `lines` may be dicts, sqlite3.Row objects or dataclasses exposing
    `total_price`. discount_percent is clamped into [0, 100].
    """
    subtotal = 0.0
    for ln in lines:
        subtotal = round2(subtotal + safe_number(_field(ln, "total_price", 0.0)))

    pct = safe_number(discount_percent)
    pct = min(max(pct, 0.0), 100.0)

    discount_amount = round2(subtotal * pct / 100.0)
    grand_total = round2(subtotal - discount_amount)
    return InvoiceTotals(subtotal=subtotal, discount_amount=discount_amount, grand_total=grand_total)


def remaining_balance(grand_total, payments_total, returns_total=0.0) -> float:
    """max(0, round2(grand_total - payments_total - returns_total))."""
    raw = round2(safe_number(grand_total) - safe_number(payments_total) - safe_number(returns_total))
    return clamp_non_negative(raw)


def payment_status(remaining, payments_total) -> str:
    """
    Badge for the invoice list:
      - 'paid'    if remaining <= 0.01
      - 'partial' if something was paid
      - 'pending' otherwise
    """
    if safe_number(remaining) <= MONEY_EPSILON:
        return "paid"
    if safe_number(payments_total) > 0:
        return "partial"
    return "pending"


# -----------------------------
# Returns
# -----------------------------

def returnable_quantity(quantity, returned_so_far, *, is_misc_item: bool = False) -> float:
    """
    Original quantity minus everything already returned for the line,
    clamped at 0. Misc lines are never returnable.
    """
    if is_misc_item:
        return 0.0
    return clamp_non_negative(safe_number(quantity) - safe_number(returned_so_far))


def return_adjustment(grand_total, payments_total, returns_total) -> ReturnAdjustment:
    """
    Read-side view of an invoice after returns. The stored grand_total is
    never rewritten by a return; the reduction is derived here.
    """
    rt = round2(returns_total)
    adjusted_grand = round2(safe_number(grand_total) - rt)
    adjusted_remaining = clamp_non_negative(round2(adjusted_grand - safe_number(payments_total)))
    return ReturnAdjustment(
        returns_total=rt,
        adjusted_grand_total=adjusted_grand,
        adjusted_remaining_balance=adjusted_remaining,
    )
