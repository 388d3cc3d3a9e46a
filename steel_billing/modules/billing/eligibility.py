"""
modules/billing/eligibility.py

Return eligibility by payment state.

Business rule (kept exactly, with the 0.01 tolerance):
  - fully paid   (remaining_balance <= 0.01)                 -> returns allowed
  - fully unpaid (|remaining_balance - grand_total| <= 0.01) -> returns allowed
  - partially paid                                           -> returns refused

grand_total here is the return-adjusted total (grand_total - returns_total),
so an unpaid invoice stays returnable after its first return. With no prior
returns the two are the same number.
"""
from __future__ import annotations

from dataclasses import dataclass

from ...constants import MONEY_EPSILON
from ...utils.helpers import round2, safe_number

__all__ = [
    "FULLY_PAID",
    "UNPAID",
    "PARTIALLY_PAID",
    "ReturnEligibility",
    "check_return_eligibility",
    "settlement_options",
]

FULLY_PAID = "fully_paid"
UNPAID = "unpaid"
PARTIALLY_PAID = "partially_paid"


@dataclass(frozen=True)
class ReturnEligibility:
    state: str
    eligible: bool
    reason: str


def check_return_eligibility(grand_total, remaining_balance, returns_total=0.0) -> ReturnEligibility:
    grand = round2(safe_number(grand_total) - safe_number(returns_total))
    remaining = safe_number(remaining_balance)

    if remaining <= MONEY_EPSILON:
        return ReturnEligibility(FULLY_PAID, True, "Invoice is fully paid - full refund eligible.")
    if abs(remaining - grand) <= MONEY_EPSILON:
        return ReturnEligibility(
            UNPAID, True, "Invoice is unpaid - the amount owed will be reduced by the return."
        )
    return ReturnEligibility(
        PARTIALLY_PAID,
        False,
        "Returns are not permitted for partially paid invoices. "
        "Please complete payment first.",
    )


def settlement_options(eligibility: ReturnEligibility) -> dict:
    """
    Which settlements to offer for a return on this invoice.

    Fully paid invoices may refund cash or credit the ledger. Unpaid invoices
    only take "ledger", and nothing is paid out: the customer simply owes
    less. plan_return rejects any choice this reports as False.
    """
    if not eligibility.eligible:
        return {"ledger": False, "cash": False, "default": None}
    if eligibility.state == FULLY_PAID:
        return {"ledger": True, "cash": True, "default": "ledger"}
    return {"ledger": True, "cash": False, "default": "ledger"}
