"""Billing back office for a steel-products store: invoices, payments, returns."""

__version__ = "1.0.0"
