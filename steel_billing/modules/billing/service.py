"""
modules/billing/service.py

InvoiceBillingService: the persistence-side caller of the billing engine.

Every mutating operation follows the same shape:
  1) refuse if the maintenance flag is held,
  2) read the invoice/items/returns fresh from the DB,
  3) compute with the pure engine (calculations / engine / eligibility),
  4) write the row(s) and both derived fields inside one `with conn:` block.

Nothing here caches balances between calls.
"""
from __future__ import annotations

import logging
import sqlite3
from dataclasses import dataclass, field
from typing import Any, Iterable, Optional

from ...constants import SETTLEMENT_CASH, SETTLEMENT_LEDGER
from ...database.repositories import (
    CustomerLedgerRepo,
    InvoicePaymentsRepo,
    InvoicesRepo,
    MaintenanceRepo,
    ReturnsRepo,
)
from ...utils.helpers import round2, safe_number, today_str
from ...utils.validators import try_parse_float
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
from .eligibility import UNPAID, ReturnEligibility, check_return_eligibility, settlement_options
from .engine import LineItem, PaymentOutcome, ReturnPlan, apply_payment, plan_return
from .errors import (
    BillingError,
    ErrorKind,
    InvoiceNotFound,
    LineItemNotFound,
    MaintenanceModeActive,
)
from .quantities import format_quantity, parse_quantity

_log = logging.getLogger(__name__)

__all__ = [
    "ReturnLineRequest",
    "ReturnResult",
    "CreditApplication",
    "InvoiceSummary",
    "InvoiceBillingService",
]


@dataclass(frozen=True)
class ReturnLineRequest:
    item_id: int
    quantity: Any  # number or compound text such as "12-990"


@dataclass(frozen=True)
class ReturnResult:
    return_id: int
    invoice_id: int
    settlement_type: str
    return_total: float
    # credited or refunded to the customer; 0 when the invoice was unpaid
    settlement_amount: float
    plans: tuple[ReturnPlan, ...]
    adjustment: ReturnAdjustment
    remaining_balance: float
    payment_status: str


@dataclass(frozen=True)
class CreditApplication:
    invoice_id: int
    amount: float
    credit_remaining: float
    remaining_balance: float
    payment_status: str


@dataclass
class InvoiceSummary:
    invoice_id: int
    bill_number: str
    customer_id: int
    date: str
    discount_percent: float
    totals: InvoiceTotals
    payments_total: float
    remaining_balance: float
    payment_status: str
    adjustment: ReturnAdjustment
    eligibility: ReturnEligibility
    settlement: dict
    items: list[dict] = field(default_factory=list)


class InvoiceBillingService:
    """
    Invoices, line items, payments and returns on one sqlite connection.

    `ledger` / `refunds` are the settlement collaborators; both default to a
    CustomerLedgerRepo on the same connection so settlements commit or roll
    back together with the return. Only returns on fully paid invoices pay
    anything out. The credit-application methods spend ledger credit, so a
    replacement `ledger` needs get_credit_balance / apply_credit_to_invoice.
    """

    def __init__(self, conn: sqlite3.Connection, ledger=None, refunds=None):
        conn.row_factory = sqlite3.Row
        self.conn = conn
        self.invoices = InvoicesRepo(conn)
        self.payments = InvoicePaymentsRepo(conn)
        self.returns = ReturnsRepo(conn)
        self.maintenance = MaintenanceRepo(conn)
        default_ledger = CustomerLedgerRepo(conn)
        self.ledger = ledger if ledger is not None else default_ledger
        self.refunds = refunds if refunds is not None else default_ledger

    # ---------------------------------------------------------------------
    # internals
    # ---------------------------------------------------------------------
    def _ensure_writable(self) -> None:
        holder = self.maintenance.holder()
        if holder is not None:
            raise MaintenanceModeActive(holder)

    def _require_invoice(self, invoice_id: int) -> sqlite3.Row:
        row = self.invoices.get_invoice(invoice_id)
        if row is None:
            raise InvoiceNotFound(invoice_id)
        return row

    def _require_item(self, invoice_id: int, item_id: int) -> sqlite3.Row:
        row = self.invoices.get_item(item_id)
        if row is None or int(row["invoice_id"]) != int(invoice_id):
            raise LineItemNotFound(item_id, invoice_id)
        return row

    @staticmethod
    def _is_locked_for_edit(inv: sqlite3.Row) -> bool:
        # fully paid: something was paid and nothing is owed
        return safe_number(inv["payment_amount"]) > 0 and payment_status(
            inv["remaining_balance"], inv["payment_amount"]
        ) == "paid"

    def _ensure_editable(self, inv: sqlite3.Row) -> None:
        if self._is_locked_for_edit(inv):
            raise BillingError(
                ErrorKind.INELIGIBLE,
                "Cannot edit items of a fully paid invoice.",
            )

    def _recalculate(self, invoice_id: int, discount_percent=None) -> InvoiceTotals:
        """Recompute totals from the stored items and persist them with the balance pair."""
        inv = self._require_invoice(invoice_id)
        pct = inv["discount_percent"] if discount_percent is None else discount_percent
        pct = min(max(safe_number(pct), 0.0), 100.0)
        totals = compute_totals(self.invoices.list_items(invoice_id), pct)
        paid = safe_number(inv["payment_amount"])
        rem = remaining_balance(totals.grand_total, paid, self.returns.returns_total(invoice_id))
        self.invoices.save_totals(
            invoice_id,
            subtotal=totals.subtotal,
            discount_percent=pct,
            discount_amount=totals.discount_amount,
            grand_total=totals.grand_total,
            remaining_balance=rem,
            payment_status=payment_status(rem, paid),
        )
        return totals

    @staticmethod
    def _parse_price(value, label: str = "Unit price") -> float:
        ok, price = try_parse_float(value)
        if not ok or price < 0:
            raise BillingError(ErrorKind.INVALID_AMOUNT, f"{label} must be a non-negative number.")
        return price

    @staticmethod
    def _parse_line_quantity(value, unit_type: str) -> float:
        qty = parse_quantity(value, unit_type)
        if qty <= 0:
            raise BillingError(ErrorKind.INVALID_AMOUNT, "Quantity must be greater than 0.")
        return qty

    # ---------------------------------------------------------------------
    # invoices
    # ---------------------------------------------------------------------
    def create_invoice(
        self,
        customer_id: int,
        *,
        date: Optional[str] = None,
        discount_percent: float = 0.0,
        bill_number: Optional[str] = None,
        notes: Optional[str] = None,
    ) -> int:
        self._ensure_writable()
        pct = min(max(safe_number(discount_percent), 0.0), 100.0)
        with self.conn:
            invoice_id = self.invoices.insert_invoice(
                bill_number=bill_number or self.invoices.next_bill_number(),
                customer_id=customer_id,
                date=date or today_str(),
                discount_percent=pct,
                notes=notes,
            )
        _log.info("Created invoice %s for customer %s", invoice_id, customer_id)
        return invoice_id

    def set_discount(self, invoice_id: int, discount_percent) -> InvoiceTotals:
        self._ensure_writable()
        with self.conn:
            self._ensure_editable(self._require_invoice(invoice_id))
            return self._recalculate(invoice_id, discount_percent)

    # ---------------------------------------------------------------------
    # line items
    # ---------------------------------------------------------------------
    def add_line_item(
        self,
        invoice_id: int,
        *,
        product_name: str,
        quantity,
        unit_price,
        unit_type: str = "piece",
        is_misc_item: bool = False,
        product_id: Optional[int] = None,
    ) -> int:
        """
        Add a priced line. `quantity` may be a number (whole units) or text
        for the unit type, e.g. "12-990" for kg-grams.
        """
        self._ensure_writable()
        if not (product_name or "").strip():
            raise BillingError(ErrorKind.INVALID_AMOUNT, "Product name is required.")
        qty = self._parse_line_quantity(quantity, unit_type)
        price = self._parse_price(unit_price)

        with self.conn:
            self._ensure_editable(self._require_invoice(invoice_id))
            item_id = self.invoices.insert_item(
                invoice_id,
                {
                    "product_id": product_id,
                    "product_name": product_name.strip(),
                    "quantity": qty,
                    "unit": format_quantity(qty, unit_type),
                    "unit_type": unit_type,
                    "unit_price": price,
                    "total_price": line_total(qty, price),
                    "is_misc_item": 1 if is_misc_item else 0,
                },
            )
            self._recalculate(invoice_id)
        _log.debug("Invoice %s: added item %s (%s x %s)", invoice_id, item_id, qty, price)
        return item_id

    def add_t_iron_item(
        self,
        invoice_id: int,
        *,
        product_name: str,
        pieces,
        length_per_piece,
        price_per_unit_length,
        length_unit: str = "ft",
        product_id: Optional[int] = None,
    ) -> int:
        """T-Iron line: quantity is total feet, priced per foot."""
        self._ensure_writable()
        price = self._parse_price(price_per_unit_length, "Price per foot")
        calc = t_iron_line(pieces, length_per_piece, price)
        p = safe_number(pieces)
        length = safe_number(length_per_piece)

        with self.conn:
            self._ensure_editable(self._require_invoice(invoice_id))
            item_id = self.invoices.insert_item(
                invoice_id,
                {
                    "product_id": product_id,
                    "product_name": (product_name or "T-Iron").strip(),
                    "quantity": calc["total_feet"],
                    "unit": f"{p:g}pcs × {length:g}{length_unit} × Rs.{price:g}",
                    "unit_type": "foot",
                    "unit_price": price,
                    "total_price": calc["total_price"],
                    "is_misc_item": 0,
                    "t_iron_pieces": p,
                    "t_iron_length_per_piece": length,
                    "t_iron_total_feet": calc["total_feet"],
                    "t_iron_unit": length_unit,
                },
            )
            self._recalculate(invoice_id)
        return item_id

    def update_line_item(
        self,
        invoice_id: int,
        item_id: int,
        *,
        quantity=None,
        unit_price=None,
    ) -> InvoiceTotals:
        """Change quantity and/or unit price; totals and balance follow."""
        self._ensure_writable()
        with self.conn:
            self._ensure_editable(self._require_invoice(invoice_id))
            row = self._require_item(invoice_id, item_id)
            unit_type = row["unit_type"] or "piece"

            qty = safe_number(row["quantity"])
            if quantity is not None:
                qty = self._parse_line_quantity(quantity, unit_type)
                already = self.returns.returned_quantities(invoice_id).get(int(item_id), 0.0)
                if qty + 1e-9 < already:
                    raise BillingError(
                        ErrorKind.INVALID_AMOUNT,
                        f"Quantity cannot be less than the {already:g} already returned.",
                    )
            price = safe_number(row["unit_price"]) if unit_price is None else self._parse_price(unit_price)

            fields = {"quantity": qty, "unit_price": price}
            if row["t_iron_pieces"] is not None:
                # T-Iron keeps its per-foot pricing; a quantity edit changes total feet
                fields["t_iron_total_feet"] = qty
                fields["total_price"] = round2(qty * price)
            else:
                fields["unit"] = format_quantity(qty, unit_type)
                fields["total_price"] = line_total(qty, price)
            self.invoices.update_item(item_id, fields)
            return self._recalculate(invoice_id)

    def remove_line_item(self, invoice_id: int, item_id: int) -> InvoiceTotals:
        self._ensure_writable()
        with self.conn:
            self._ensure_editable(self._require_invoice(invoice_id))
            self._require_item(invoice_id, item_id)
            if self.returns.returned_quantities(invoice_id).get(int(item_id), 0.0) > 0:
                raise BillingError(
                    ErrorKind.INELIGIBLE, "Items with recorded returns cannot be removed."
                )
            self.invoices.delete_item(item_id)
            totals = self._recalculate(invoice_id)
        _log.debug("Invoice %s: removed item %s", invoice_id, item_id)
        return totals

    # ---------------------------------------------------------------------
    # payments
    # ---------------------------------------------------------------------
    def record_payment(
        self,
        invoice_id: int,
        amount,
        *,
        method: str = "Cash",
        channel: Optional[str] = None,
        date: Optional[str] = None,
        reference: Optional[str] = None,
        notes: Optional[str] = None,
    ) -> PaymentOutcome:
        self._ensure_writable()
        with self.conn:
            inv = self._require_invoice(invoice_id)
            outcome = apply_payment(
                inv["grand_total"],
                inv["payment_amount"],
                self.returns.returns_total(invoice_id),
                amount,
            )
            self.payments.append_payment(
                invoice_id=invoice_id,
                amount=outcome.amount,
                method=method,
                channel=channel,
                date=date,
                reference=reference,
                notes=notes,
            )
            self.invoices.update_balance(
                invoice_id,
                remaining_balance=outcome.remaining_balance,
                payment_status=outcome.payment_status,
                payment_amount=outcome.payments_total,
            )
        _log.info(
            "Invoice %s: payment %.2f recorded, remaining %.2f (%s)",
            invoice_id, outcome.amount, outcome.remaining_balance, outcome.payment_status,
        )
        return outcome

    # ---------------------------------------------------------------------
    # customer credit
    # ---------------------------------------------------------------------
    def _apply_credit(self, inv: sqlite3.Row, date: Optional[str]) -> CreditApplication:
        """Spend credit on one invoice; caller holds the transaction."""
        invoice_id = int(inv["id"])
        customer_id = int(inv["customer_id"])
        credit = max(round2(self.ledger.get_credit_balance(customer_id)), 0.0)
        returns = self.returns.returns_total(invoice_id)
        owed = remaining_balance(inv["grand_total"], inv["payment_amount"], returns)

        amount = round2(min(credit, owed))
        if amount <= 0:
            return CreditApplication(
                invoice_id=invoice_id,
                amount=0.0,
                credit_remaining=credit,
                remaining_balance=owed,
                payment_status=payment_status(owed, inv["payment_amount"]),
            )

        outcome = apply_payment(inv["grand_total"], inv["payment_amount"], returns, amount)
        self.payments.append_payment(
            invoice_id=invoice_id,
            amount=outcome.amount,
            method="Customer Credit",
            date=date,
            notes="Applied from customer credit",
        )
        self.invoices.update_balance(
            invoice_id,
            remaining_balance=outcome.remaining_balance,
            payment_status=outcome.payment_status,
            payment_amount=outcome.payments_total,
        )
        self.ledger.apply_credit_to_invoice(
            customer_id, invoice_id, outcome.amount, date=date,
            notes=f"Applied to invoice {inv['bill_number']}",
        )
        return CreditApplication(
            invoice_id=invoice_id,
            amount=outcome.amount,
            credit_remaining=round2(credit - outcome.amount),
            remaining_balance=outcome.remaining_balance,
            payment_status=outcome.payment_status,
        )

    def apply_customer_credit(self, invoice_id: int, *, date: Optional[str] = None) -> CreditApplication:
        """
        Pay down one invoice from the customer's ledger credit, up to what
        the invoice still owes. amount == 0 means nothing was written.
        """
        self._ensure_writable()
        with self.conn:
            result = self._apply_credit(self._require_invoice(invoice_id), date)
        if result.amount:
            _log.info(
                "Invoice %s: %.2f applied from customer credit, remaining %.2f",
                invoice_id, result.amount, result.remaining_balance,
            )
        return result

    def allocate_customer_credit(
        self, customer_id: int, *, date: Optional[str] = None
    ) -> list[CreditApplication]:
        """
        Spread the customer's credit over their open invoices, oldest first,
        until it runs out. Returns one entry per invoice that received credit.
        """
        self._ensure_writable()
        applied: list[CreditApplication] = []
        with self.conn:
            for inv in self.invoices.list_open_for_customer(customer_id):
                result = self._apply_credit(inv, date)
                if result.amount:
                    applied.append(result)
                if result.credit_remaining <= 0:
                    break
        _log.info(
            "Customer %s: credit applied to %d invoice(s), %.2f in total",
            customer_id, len(applied), sum(a.amount for a in applied),
        )
        return applied

    # ---------------------------------------------------------------------
    # returns
    # ---------------------------------------------------------------------
    def create_return(
        self,
        invoice_id: int,
        lines: Iterable[ReturnLineRequest | dict],
        *,
        reason: str,
        settlement_type: str = SETTLEMENT_LEDGER,
        date: Optional[str] = None,
        notes: Optional[str] = None,
        created_by: Optional[str] = None,
    ) -> ReturnResult:
        """
        Validate every line with the engine, then persist the return header,
        its items, the new balance pair and the settlement in one transaction.
        Quantities requested twice for the same item in one batch count
        against the same returnable quantity.
        """
        self._ensure_writable()
        requests = [
            ln if isinstance(ln, ReturnLineRequest)
            else ReturnLineRequest(int(ln["item_id"]), ln["quantity"])
            for ln in lines
        ]
        if not requests:
            raise BillingError(ErrorKind.INVALID_AMOUNT, "Select at least one item to return.")

        with self.conn:
            inv = self._require_invoice(invoice_id)
            grand = safe_number(inv["grand_total"])
            paid = safe_number(inv["payment_amount"])
            prior_returns = self.returns.returns_total(invoice_id)
            current_remaining = remaining_balance(grand, paid, prior_returns)
            returned = self.returns.returned_quantities(invoice_id)

            plans: list[ReturnPlan] = []
            items: list[dict] = []
            for req in requests:
                row = self._require_item(invoice_id, req.item_id)
                line = LineItem.from_row(row)
                plan = plan_return(
                    line=line,
                    returned_so_far=returned.get(int(req.item_id), 0.0),
                    return_quantity=req.quantity,
                    reason=reason,
                    settlement_type=settlement_type,
                    grand_total=grand,
                    remaining=current_remaining,
                    returns_total=prior_returns,
                )
                returned[int(req.item_id)] = returned.get(int(req.item_id), 0.0) + plan.return_quantity
                plans.append(plan)
                items.append(
                    {
                        "original_invoice_item_id": int(req.item_id),
                        "product_id": line.product_id,
                        "product_name": line.product_name,
                        "return_quantity": plan.return_quantity,
                        "unit_price": plan.unit_price,
                        "total_price": plan.total_price,
                        "unit": format_quantity(plan.return_quantity, line.unit_type),
                        "reason": plan.reason,
                    }
                )

            settlement = plans[0].settlement_type
            amount = round2(sum(p.total_price for p in plans))
            # an unpaid invoice is settled by the lower balance alone
            payout = 0.0 if plans[0].eligibility_state == UNPAID else amount
            customer_id = int(inv["customer_id"])
            return_id = self.returns.append_return(
                invoice_id=invoice_id,
                customer_id=customer_id,
                reason=plans[0].reason,
                settlement_type=settlement,
                items=items,
                date=date,
                notes=notes,
                created_by=created_by,
                settlement_amount=payout,
            )

            returns_total = round2(prior_returns + amount)
            new_remaining = remaining_balance(grand, paid, returns_total)
            new_status = payment_status(new_remaining, paid)
            self.invoices.update_balance(
                invoice_id, remaining_balance=new_remaining, payment_status=new_status
            )

            if payout > 0:
                if settlement == SETTLEMENT_CASH:
                    self.refunds.record_cash_refund(
                        customer_id, payout, return_id=return_id, date=date,
                        notes=f"Refund for return #{return_id} on invoice {inv['bill_number']}",
                    )
                else:
                    self.ledger.apply_credit(
                        customer_id, payout, reference_type="return", reference_id=return_id,
                        date=date, notes=f"Return #{return_id} on invoice {inv['bill_number']}",
                    )

        _log.info(
            "Invoice %s: return %s recorded (%.2f, %s %.2f), remaining %.2f",
            invoice_id, return_id, amount, settlement, payout, new_remaining,
        )
        return ReturnResult(
            return_id=return_id,
            invoice_id=invoice_id,
            settlement_type=settlement,
            return_total=amount,
            settlement_amount=payout,
            plans=tuple(plans),
            adjustment=return_adjustment(grand, paid, returns_total),
            remaining_balance=new_remaining,
            payment_status=new_status,
        )

    # ---------------------------------------------------------------------
    # read model
    # ---------------------------------------------------------------------
    def invoice_summary(self, invoice_id: int) -> InvoiceSummary:
        """Everything the invoice detail / return dialog shows, computed fresh."""
        inv = self._require_invoice(invoice_id)
        item_rows = self.invoices.list_items(invoice_id)
        returned = self.returns.returned_quantities(invoice_id)
        returns_total = self.returns.returns_total(invoice_id)
        pct = safe_number(inv["discount_percent"])
        totals = compute_totals(item_rows, pct)
        paid = safe_number(inv["payment_amount"])
        rem = remaining_balance(totals.grand_total, paid, returns_total)
        eligibility = check_return_eligibility(totals.grand_total, rem, returns_total)

        items = []
        for row in item_rows:
            line = LineItem.from_row(row)
            done = returned.get(int(line.item_id), 0.0)
            items.append(
                {
                    "item_id": line.item_id,
                    "product_name": line.product_name,
                    "quantity": line.quantity,
                    "unit": row["unit"] or format_quantity(line.quantity, line.unit_type),
                    "unit_type": line.unit_type,
                    "unit_price": line.unit_price,
                    "total_price": line.total_price,
                    "is_misc_item": line.is_misc_item,
                    "returned_quantity": done,
                    "returnable_quantity": returnable_quantity(
                        line.quantity, done, is_misc_item=line.is_misc_item
                    ),
                }
            )

        return InvoiceSummary(
            invoice_id=int(inv["id"]),
            bill_number=inv["bill_number"],
            customer_id=int(inv["customer_id"]),
            date=inv["date"],
            discount_percent=pct,
            totals=totals,
            payments_total=paid,
            remaining_balance=rem,
            payment_status=payment_status(rem, paid),
            adjustment=return_adjustment(totals.grand_total, paid, returns_total),
            eligibility=eligibility,
            settlement=settlement_options(eligibility),
            items=items,
        )
