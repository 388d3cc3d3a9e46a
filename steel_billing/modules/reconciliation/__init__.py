"""
Balance reconciliation: the offline pass that repairs invoices.remaining_balance.

    python -m steel_billing.modules.reconciliation --dry-run
"""
from .reconcile import (
    BalanceCorrection,
    ReconciliationPass,
    ReconciliationSummary,
    classify_issue,
    plan_balance_correction,
)

__all__ = [
    "BalanceCorrection",
    "ReconciliationPass",
    "ReconciliationSummary",
    "classify_issue",
    "plan_balance_correction",
]
