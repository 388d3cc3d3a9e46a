from PySide6.QtWidgets import (
    QDialog, QVBoxLayout, QHBoxLayout, QFormLayout, QLineEdit, QLabel,
    QTableWidget, QTableWidgetItem, QAbstractItemView, QComboBox,
    QDialogButtonBox,
)
from PySide6.QtCore import Qt

from ...constants import SETTLEMENT_CASH, SETTLEMENT_LEDGER
from ...utils.helpers import fmt_money
from ...utils.ui_helpers import error
from .engine import LineItem, plan_return
from .errors import BillingError, DomainError
from .service import InvoiceBillingService, ReturnLineRequest


class InvoiceReturnForm(QDialog):
    """
    Item return against one invoice.

    The table shows each line's returnable quantity; typing a quantity in
    "Qty Return" previews its value through the billing engine (same rules
    the service enforces). OK submits through the service; a rejected return
    keeps the dialog open and shows the engine's message.

    Quantities accept plain numbers or kg-grams text ("12-990").
    """

    COL_ID, COL_PRODUCT, COL_QTY, COL_RETURNED, COL_RETURNABLE, COL_PRICE, COL_RETURN, COL_VALUE = range(8)

    def __init__(self, parent=None, service: InvoiceBillingService | None = None, invoice_id: int | None = None):
        super().__init__(parent)
        self.setWindowTitle("Invoice Return")
        self.setModal(True)
        self.service = service
        self.invoice_id = invoice_id
        self._summary = None
        self._result = None
        self._preview_total = 0.0

        lay = QVBoxLayout(self)

        # --- header ---
        head = QFormLayout()
        self.lbl_bill = QLabel("-")
        self.lbl_total = QLabel("0.00")
        self.lbl_paid = QLabel("0.00")
        self.lbl_remaining = QLabel("0.00")
        self.lbl_eligibility = QLabel("")
        self.lbl_eligibility.setWordWrap(True)
        head.addRow("Invoice:", self.lbl_bill)
        head.addRow("Grand Total:", self.lbl_total)
        head.addRow("Paid:", self.lbl_paid)
        head.addRow("Remaining:", self.lbl_remaining)
        head.addRow("", self.lbl_eligibility)
        lay.addLayout(head)

        # --- items ---
        self.tbl_items = QTableWidget(0, 8)
        self.tbl_items.setHorizontalHeaderLabels(
            ["ItemID", "Product", "Qty", "Returned", "Returnable", "Unit Price", "Qty Return", "Line Value"]
        )
        self.tbl_items.setSelectionBehavior(QAbstractItemView.SelectRows)
        self.tbl_items.setSelectionMode(QAbstractItemView.SingleSelection)
        lay.addWidget(self.tbl_items, 1)

        # --- reason + settlement ---
        opt = QHBoxLayout()
        self.edt_reason = QLineEdit()
        self.edt_reason.setPlaceholderText("Reason for return…")
        self.cmb_settlement = QComboBox()
        self.cmb_settlement.addItem("Ledger credit", SETTLEMENT_LEDGER)
        self.cmb_settlement.addItem("Cash refund", SETTLEMENT_CASH)
        self.lbl_returned_value = QLabel("0.00")
        opt.addWidget(QLabel("Reason:"))
        opt.addWidget(self.edt_reason, 2)
        opt.addWidget(QLabel("Settlement:"))
        opt.addWidget(self.cmb_settlement)
        opt.addSpacing(16)
        opt.addWidget(QLabel("Returned Value:"))
        opt.addWidget(self.lbl_returned_value)
        lay.addLayout(opt)

        self.lbl_note = QLabel("")
        self.lbl_note.setStyleSheet("color:#a22;")
        lay.addWidget(self.lbl_note)

        # --- dialog buttons ---
        self.buttons = QDialogButtonBox(QDialogButtonBox.Ok | QDialogButtonBox.Cancel)
        self.buttons.accepted.connect(self.accept)
        self.buttons.rejected.connect(self.reject)
        lay.addWidget(self.buttons)

        # wiring
        self.tbl_items.cellChanged.connect(self._recalc)

        self.resize(900, 560)

        if self.service is not None and self.invoice_id is not None:
            self._load()

    # ---- load ----
    def _load(self):
        s = self.service.invoice_summary(self.invoice_id)
        self._summary = s
        self.setWindowTitle(f"Invoice Return - {s.bill_number}")
        self.lbl_bill.setText(s.bill_number)
        self.lbl_total.setText(fmt_money(s.adjustment.adjusted_grand_total))
        self.lbl_paid.setText(fmt_money(s.payments_total))
        self.lbl_remaining.setText(fmt_money(s.remaining_balance))
        self.lbl_eligibility.setText(s.eligibility.reason)

        # settlement choices follow the invoice's payment state
        opts = s.settlement
        for i in range(self.cmb_settlement.count()):
            allowed = bool(opts.get(self.cmb_settlement.itemData(i)))
            self.cmb_settlement.model().item(i).setEnabled(allowed)
        if opts.get("default"):
            self.cmb_settlement.setCurrentIndex(self.cmb_settlement.findData(opts["default"]))

        self.tbl_items.blockSignals(True)
        self.tbl_items.setRowCount(len(s.items))
        for r, it in enumerate(s.items):
            cells = [
                str(it["item_id"]),
                it["product_name"] + ("  (misc)" if it["is_misc_item"] else ""),
                it["unit"],
                f'{it["returned_quantity"]:g}',
                f'{it["returnable_quantity"]:g}',
                fmt_money(it["unit_price"]),
            ]
            for c, text in enumerate(cells):
                cell = QTableWidgetItem(text)
                cell.setFlags(cell.flags() & ~Qt.ItemIsEditable)
                self.tbl_items.setItem(r, c, cell)
            qret = QTableWidgetItem("")
            qret.setTextAlignment(Qt.AlignRight | Qt.AlignVCenter)
            if it["is_misc_item"] or not s.eligibility.eligible:
                qret.setFlags(qret.flags() & ~Qt.ItemIsEditable)
            self.tbl_items.setItem(r, self.COL_RETURN, qret)
            value = QTableWidgetItem("0.00")
            value.setFlags(value.flags() & ~Qt.ItemIsEditable)
            self.tbl_items.setItem(r, self.COL_VALUE, value)
        self.tbl_items.blockSignals(False)

        self.buttons.button(QDialogButtonBox.Ok).setEnabled(s.eligibility.eligible)
        self._recalc()

    # ---- preview ----
    def _entered_rows(self):
        """(row index, item dict, raw text) for every row with a quantity typed in."""
        if self._summary is None:
            return []
        out = []
        for r, it in enumerate(self._summary.items):
            cell = self.tbl_items.item(r, self.COL_RETURN)
            text = (cell.text() if cell else "").strip()
            if text:
                out.append((r, it, text))
        return out

    def _preview_line(self, it: dict, text: str):
        s = self._summary
        line = LineItem(
            item_id=it["item_id"],
            product_name=it["product_name"],
            quantity=it["quantity"],
            unit_price=it["unit_price"],
            total_price=it["total_price"],
            unit_type=it["unit_type"],
            is_misc_item=it["is_misc_item"],
        )
        return plan_return(
            line=line,
            returned_so_far=it["returned_quantity"],
            return_quantity=text,
            # reason is checked on submit, not while typing
            reason=self.edt_reason.text() or "preview",
            settlement_type=self.cmb_settlement.currentData(),
            grand_total=s.totals.grand_total,
            remaining=s.remaining_balance,
            returns_total=s.adjustment.returns_total,
        )

    def _recalc(self, *args):
        total = 0.0
        problems = []
        self.tbl_items.blockSignals(True)
        for r in range(self.tbl_items.rowCount()):
            cell = self.tbl_items.item(r, self.COL_RETURN)
            if cell is not None:
                cell.setBackground(Qt.white)
            value = self.tbl_items.item(r, self.COL_VALUE)
            if value is not None:
                value.setText(fmt_money(0.0))
        for r, it, text in self._entered_rows():
            try:
                plan = self._preview_line(it, text)
            except BillingError as e:
                self.tbl_items.item(r, self.COL_RETURN).setBackground(Qt.red)
                problems.append(f"{it['product_name']}: {e}")
                continue
            total += plan.total_price
            self.tbl_items.item(r, self.COL_VALUE).setText(fmt_money(plan.total_price))
        self.tbl_items.blockSignals(False)

        self._preview_total = total
        self.lbl_returned_value.setText(fmt_money(total))
        self.lbl_note.setText("\n".join(problems))

    def preview_total(self) -> float:
        return self._preview_total

    # ---- submit ----
    def get_lines(self) -> list[ReturnLineRequest]:
        return [ReturnLineRequest(int(it["item_id"]), text) for _, it, text in self._entered_rows()]

    def accept(self):
        if self.service is None or self._summary is None:
            return
        lines = self.get_lines()
        if not lines:
            error(self, "Invoice Return", "Enter a return quantity for at least one item.")
            return
        try:
            self._result = self.service.create_return(
                self.invoice_id,
                lines,
                reason=self.edt_reason.text(),
                settlement_type=self.cmb_settlement.currentData(),
            )
        except DomainError as e:
            error(self, "Invoice Return", str(e))
            return
        super().accept()

    def result_payload(self):
        """ReturnResult of the submitted return, or None if nothing was saved."""
        return self._result
