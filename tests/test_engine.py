# tests/test_engine.py

from __future__ import annotations

import pytest

from steel_billing.modules.billing.engine import (
    LineItem,
    apply_payment,
    plan_return,
    validate_payment,
)
from steel_billing.modules.billing.errors import BillingError, ErrorKind


def _line(**kw) -> LineItem:
    base = dict(item_id=1, product_name="Steel Rod", quantity=10, unit_price=100, total_price=1000)
    base.update(kw)
    return LineItem(**base)


def _plan(**kw):
    args = dict(
        line=_line(),
        returned_so_far=0.0,
        return_quantity=3,
        reason="Damaged",
        settlement_type="ledger",
        grand_total=1000.0,
        remaining=1000.0,
    )
    args.update(kw)
    return plan_return(**args)


def _kind(exc_info) -> ErrorKind:
    return exc_info.value.kind


# ----------------- payments -----------------

def test_payment_exactly_one_cent_over_is_accepted():
    assert validate_payment(100.01, 100) == 100.01
    assert validate_payment("600.01", 600) == 600.01


def test_payment_more_than_one_cent_over_is_rejected():
    with pytest.raises(BillingError) as ei:
        validate_payment(100.02, 100)
    assert _kind(ei) is ErrorKind.EXCEEDS_BALANCE
    assert "cannot exceed remaining balance" in str(ei.value)


@pytest.mark.parametrize("amount", [0, -5, "abc", "", None, float("nan"), float("inf")])
def test_payment_must_be_positive_finite(amount):
    with pytest.raises(BillingError) as ei:
        validate_payment(amount, 100)
    assert _kind(ei) is ErrorKind.INVALID_AMOUNT


def test_apply_payment_projects_both_fields():
    out = apply_payment(1000, 0, 0, 400)
    assert (out.payments_total, out.remaining_balance, out.payment_status) == (400.0, 600.0, "partial")

    out = apply_payment(1000, 400, 0, 600)
    assert (out.payments_total, out.remaining_balance, out.payment_status) == (1000.0, 0.0, "paid")


def test_apply_payment_counts_returns():
    out = apply_payment(1000, 0, 300, 700)
    assert out.remaining_balance == 0.0
    with pytest.raises(BillingError) as ei:
        apply_payment(1000, 0, 300, 800)
    assert _kind(ei) is ErrorKind.EXCEEDS_BALANCE


def test_boundary_payment_leaves_zero_not_negative():
    out = apply_payment(1000, 400, 0, 600.01)
    assert out.remaining_balance == 0.0
    assert out.payment_status == "paid"


# ----------------- returns -----------------

def test_plan_return_prices_at_original_unit_price():
    plan = _plan(settlement_type=" LEDGER ")
    assert plan.return_quantity == 3.0
    assert plan.unit_price == 100.0
    assert plan.total_price == 300.0
    assert plan.settlement_type == "ledger"
    assert plan.line_item_id == 1


def test_plan_return_accepts_compound_quantity():
    line = _line(item_id=2, product_name="Sariya", quantity=12.99, unit_price=250,
                 total_price=3247.5, unit_type="kg-grams")
    plan = _plan(line=line, return_quantity="2-500", grand_total=3247.5, remaining=3247.5)
    assert plan.return_quantity == pytest.approx(2.5)
    assert plan.total_price == 625.0


def test_misc_item_is_rejected_first():
    with pytest.raises(BillingError) as ei:
        _plan(line=_line(is_misc_item=True), reason="", return_quantity="garbage")
    assert _kind(ei) is ErrorKind.NOT_RETURNABLE


def test_compound_overflow_is_parse_error():
    with pytest.raises(BillingError) as ei:
        _plan(return_quantity="1-1000")
    assert _kind(ei) is ErrorKind.PARSE_ERROR


@pytest.mark.parametrize("qty", [0, "0", -1, "-2.5"])
def test_return_quantity_must_be_positive(qty):
    with pytest.raises(BillingError) as ei:
        _plan(return_quantity=qty)
    assert _kind(ei) is ErrorKind.INVALID_AMOUNT


@pytest.mark.parametrize("reason", ["", "   ", None])
def test_reason_is_required(reason):
    with pytest.raises(BillingError) as ei:
        _plan(reason=reason)
    assert _kind(ei) is ErrorKind.MISSING_REASON


def test_partially_paid_invoice_rejects_returns():
    with pytest.raises(BillingError) as ei:
        _plan(remaining=600.0)
    assert _kind(ei) is ErrorKind.INELIGIBLE


@pytest.mark.parametrize("remaining", [0.0, 1000.0])
def test_paid_and_unpaid_invoices_accept_returns(remaining):
    assert _plan(remaining=remaining).total_price == 300.0


def test_cash_refund_needs_a_fully_paid_invoice():
    with pytest.raises(BillingError) as ei:
        _plan(settlement_type="cash", remaining=1000.0)
    assert _kind(ei) is ErrorKind.INELIGIBLE
    assert _plan(settlement_type="cash", remaining=0.0).total_price == 300.0


def test_unknown_settlement_type_is_ineligible():
    with pytest.raises(BillingError) as ei:
        _plan(settlement_type="store-credit")
    assert _kind(ei) is ErrorKind.INELIGIBLE


def test_return_over_returnable_is_rejected():
    with pytest.raises(BillingError) as ei:
        _plan(return_quantity=11)
    assert _kind(ei) is ErrorKind.EXCEEDS_RETURNABLE

    with pytest.raises(BillingError) as ei:
        _plan(returned_so_far=7, return_quantity=3.5)
    assert _kind(ei) is ErrorKind.EXCEEDS_RETURNABLE


def test_return_up_to_returnable_is_accepted():
    assert _plan(returned_so_far=7, return_quantity=3).return_quantity == 3.0
    assert _plan(returned_so_far=0.1 + 0.2, return_quantity=9.7).return_quantity == pytest.approx(9.7)


def test_line_item_from_row():
    row = {"id": 5, "product_name": "Angle", "quantity": "4", "unit_price": 25.5,
           "total_price": 102, "unit_type": None, "is_misc_item": 1, "product_id": 9}

    class Row(dict):
        def keys(self):
            return list(super().keys())

    li = LineItem.from_row(Row(row))
    assert (li.item_id, li.quantity, li.unit_type, li.is_misc_item, li.product_id) == (5, 4.0, "piece", True, 9)
