"""
Invoice billing: the pure Invoice Financial Engine plus the service that
persists its results.

    from steel_billing.modules.billing import InvoiceBillingService, BillingError, ErrorKind
"""
from .calculations import (
    InvoiceTotals,
    ReturnAdjustment,
    compute_totals,
    line_total,
    payment_status,
    remaining_balance,
    return_adjustment,
    returnable_quantity,
    t_iron_line,
)
from .eligibility import (
    FULLY_PAID,
    PARTIALLY_PAID,
    UNPAID,
    ReturnEligibility,
    check_return_eligibility,
    settlement_options,
)
from .engine import LineItem, PaymentOutcome, ReturnPlan, apply_payment, plan_return, validate_payment
from .errors import (
    BillingError,
    DomainError,
    ErrorKind,
    InvoiceNotFound,
    LineItemNotFound,
    MaintenanceModeActive,
)
from .quantities import CompoundQuantity, format_quantity, parse_quantity, parse_return_quantity
from .service import (
    CreditApplication,
    InvoiceBillingService,
    InvoiceSummary,
    ReturnLineRequest,
    ReturnResult,
)

__all__ = [
    # engine
    "InvoiceTotals",
    "ReturnAdjustment",
    "compute_totals",
    "line_total",
    "payment_status",
    "remaining_balance",
    "return_adjustment",
    "returnable_quantity",
    "t_iron_line",
    "LineItem",
    "PaymentOutcome",
    "ReturnPlan",
    "apply_payment",
    "plan_return",
    "validate_payment",
    # eligibility
    "FULLY_PAID",
    "PARTIALLY_PAID",
    "UNPAID",
    "ReturnEligibility",
    "check_return_eligibility",
    "settlement_options",
    # quantities
    "CompoundQuantity",
    "format_quantity",
    "parse_quantity",
    "parse_return_quantity",
    # errors
    "BillingError",
    "DomainError",
    "ErrorKind",
    "InvoiceNotFound",
    "LineItemNotFound",
    "MaintenanceModeActive",
    # service
    "CreditApplication",
    "InvoiceBillingService",
    "InvoiceSummary",
    "ReturnLineRequest",
    "ReturnResult",
]
