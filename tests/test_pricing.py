from __future__ import annotations

from decimal import Decimal

import pytest

from costsheets.models import CostSheetItem
from costsheets.pricing import (
    NEW_ROW_DEFAULTS,
    PricingInputs,
    coerce_amount,
    coerce_quantity,
    compute_pricing,
    money,
    pricing_inputs_from,
)
from costsheets.workflow import recalculate_row


@pytest.mark.parametrize(
    "qty, cost, misc_qty, misc_cost, markup",
    [
        (0, 0, 1, 0, 0),
        (1, "12.50", 1, 0, 15),
        (3, "99.99", "2.5", "10", "7.5"),
        (10, "0.01", 4, "3.33", 100),
    ],
)
def test_quoted_price_is_total_cost_plus_markup(qty, cost, misc_qty, misc_cost, markup):
    inputs = PricingInputs.build(
        qty=qty, supplier_cost=cost, misc_qty=misc_qty, misc_cost=misc_cost,
        has_misc_supplier=True, markup_percentage=markup,
    )
    result = compute_pricing(inputs)

    expected_total = Decimal(str(cost)) * Decimal(qty) + Decimal(str(misc_cost)) * Decimal(str(misc_qty))
    assert result.total_cost == expected_total
    assert result.quoted_price == result.total_cost * (1 + Decimal(str(markup)) / 100)


def test_recomputation_is_idempotent():
    row = {"qty": "4", "supplier_cost": "17.35", "misc_supplier_id": 9, "misc_cost": "2", "misc_qty": "3",
           "rea_margin_percentage": "12.5"}
    first = compute_pricing(pricing_inputs_from(row))
    second = compute_pricing(pricing_inputs_from(row))
    assert first == second


def test_item_pricing_is_stable_after_reapplying(ctx):
    item = CostSheetItem(qty=3, supplier_cost=Decimal("33.33"), misc_supplier_id=1,
                         misc_cost=Decimal("1.11"), misc_qty=Decimal("3"),
                         rea_margin_percentage=Decimal("17.5"))
    item.apply_pricing()
    derived = (item.total_cost, item.rea_margin, item.actual_quoted)
    item.apply_pricing()
    assert (item.total_cost, item.rea_margin, item.actual_quoted) == derived
    assert item.total_cost == Decimal("103.32")


def test_misc_cost_ignored_without_misc_supplier():
    base = {"qty": 2, "supplier_cost": 50, "misc_supplier_id": None, "rea_margin_percentage": 5}
    totals = {
        compute_pricing(pricing_inputs_from({**base, "misc_cost": misc_cost, "misc_qty": misc_qty})).total_cost
        for misc_cost, misc_qty in [(0, 1), (100, 1), (33.3, 7), ("abc", None)]
    }
    assert totals == {Decimal("100")}


def test_empty_string_misc_supplier_counts_as_absent():
    inputs = pricing_inputs_from({"qty": 1, "supplier_cost": 10, "misc_supplier_id": "", "misc_cost": 99})
    assert inputs.has_misc_supplier is False
    assert compute_pricing(inputs).total_cost == Decimal("10")


def test_gross_margin_identity():
    result = compute_pricing(PricingInputs.build(qty=1, supplier_cost=80, markup_percentage=25))
    assert result.gross_margin_pct == Decimal("20")


def test_worked_example():
    result = compute_pricing(PricingInputs.build(qty=2, supplier_cost=100, markup_percentage=10))
    assert result.total_cost == Decimal("200")
    assert result.markup_amount == Decimal("20")
    assert result.quoted_price == Decimal("220")
    assert float(result.gross_margin_pct) == pytest.approx(9.0909, rel=1e-4)


def test_zero_markup_means_zero_gross_margin():
    result = compute_pricing(PricingInputs.build(qty=5, supplier_cost=10))
    assert result.markup_amount == 0
    assert result.quoted_price == result.total_cost == Decimal("50")
    assert result.gross_margin_pct == 0


@pytest.mark.parametrize(
    "raw, expected",
    [
        (None, Decimal("0")),
        ("", Decimal("0")),
        ("   ", Decimal("0")),
        ("abc", Decimal("0")),
        ("-5", Decimal("0")),
        (-1.5, Decimal("0")),
        ("NaN", Decimal("0")),
        ("Infinity", Decimal("0")),
        (True, Decimal("0")),
        ("12,5", Decimal("12.5")),
        (" 7.25 ", Decimal("7.25")),
        (3, Decimal("3")),
    ],
)
def test_coerce_amount_is_best_effort(raw, expected):
    assert coerce_amount(raw) == expected


@pytest.mark.parametrize("raw", ["1e30", "123456789012345678901234567890", "10000000000", Decimal("1E+40")])
def test_amounts_beyond_column_capacity_become_zero(raw):
    assert coerce_amount(raw) == 0
    assert coerce_quantity(raw) == 0


def test_largest_amounts_still_price_without_error():
    top = "9999999999.99"
    result = compute_pricing(PricingInputs.build(qty=top, supplier_cost=top, misc_qty=top, misc_cost=top,
                                                 has_misc_supplier=True, markup_percentage=top))
    assert money(result.quoted_price) > 0
    assert money(result.markup_amount) > 0


def test_recalculate_row_with_huge_input_prices_to_zero(ctx):
    row = recalculate_row({"qty": 1, "supplier_cost": "1e30", "rea_margin_percentage": "10"})
    assert row["total_cost"] == "0.00"
    assert row["actual_quoted"] == "0.00"


def test_coerce_quantity_truncates():
    assert coerce_quantity("2.9") == Decimal("2")
    assert coerce_quantity("-3") == Decimal("0")
    assert coerce_quantity(None) == Decimal("0")


def test_inputs_built_directly_are_still_coerced():
    result = compute_pricing(PricingInputs(qty="x", supplier_cost="10", markup_percentage="-4"))
    assert result.total_cost == 0
    assert result.quoted_price == 0


def test_new_row_defaults_price_to_zero():
    assert NEW_ROW_DEFAULTS["qty"] == 1
    assert NEW_ROW_DEFAULTS["misc_qty"] == 1
    result = compute_pricing(pricing_inputs_from(NEW_ROW_DEFAULTS))
    assert result.total_cost == 0
    assert result.quoted_price == 0


def test_money_rounds_half_up():
    assert money(Decimal("1.005")) == Decimal("1.01")
    assert money(Decimal("2.344")) == Decimal("2.34")
