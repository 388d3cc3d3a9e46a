# database/repositories/__init__.py
"""
Repository layer public API.

Usage:
    from steel_billing.database.repositories import (
        # Invoices
        InvoicesRepo, InvoiceHeader, InvoicePaymentsRepo,
        # Returns
        ReturnsRepo,
        # Customers / settlements
        CustomersRepo, Customer, CustomerLedgerRepo,
        # Maintenance
        BalanceAuditRepo, MaintenanceRepo,
    )

Repositories share the caller's connection and never commit (the maintenance
flag excepted); callers wrap each operation in `with conn:`.
"""

# ---------------- Customers ----------------
from .customers_repo import CustomersRepo, Customer, customer_status

# ------- Customer ledger / cash refunds ------
from .customer_ledger_repo import CustomerLedgerRepo

# ---------------- Invoices -----------------
from .invoices_repo import InvoicesRepo, InvoiceHeader
from .invoice_payments_repo import InvoicePaymentsRepo

# ----------------- Returns -----------------
from .returns_repo import ReturnsRepo

# --------------- Maintenance ---------------
from .balance_audit_repo import BalanceAuditRepo
from .maintenance_repo import MaintenanceRepo

__all__ = [
    # customers_repo
    "CustomersRepo",
    "Customer",
    "customer_status",
    # customer_ledger_repo
    "CustomerLedgerRepo",
    # invoices
    "InvoicesRepo",
    "InvoiceHeader",
    "InvoicePaymentsRepo",
    # returns
    "ReturnsRepo",
    # maintenance
    "BalanceAuditRepo",
    "MaintenanceRepo",
]
