"""
costsheets/pricing.py

Pricing engine for cost sheet line items.

Derives total cost, markup amount, quoted price and gross margin percentage from
a line item's raw inputs. Pure functions only: no I/O, no hidden state, and the
same inputs always give the same result, so recomputing on every field edit is safe.

Coercion policy is best-effort: absent, negative, non-numeric or out-of-range
inputs become 0.
Nothing here raises on bad input.
"""

from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal, InvalidOperation, ROUND_DOWN, ROUND_HALF_UP, localcontext
from typing import Any, Mapping

ZERO = Decimal("0")
ONE = Decimal("1")
HUNDRED = Decimal("100")
CENTS = Decimal("0.01")

# Largest value a Numeric(12, 2) column holds; anything above is treated as junk.
MAX_AMOUNT = Decimal("9999999999.99")

# Values an unsaved row starts with in the editing session.
NEW_ROW_DEFAULTS = {
    "qty": 1,
    "supplier_cost": 0,
    "misc_qty": 1,
    "misc_cost": 0,
    "rea_margin_percentage": 0,
}


def coerce_amount(value: Any) -> Decimal:
    """Convert user input to a non-negative finite Decimal (accepts comma or dot)."""
    if value is None or isinstance(value, bool):
        return ZERO
    if isinstance(value, Decimal):
        number = value
    else:
        raw = str(value).strip().replace(",", ".")
        if raw == "":
            return ZERO
        try:
            number = Decimal(raw)
        except (InvalidOperation, ValueError):
            return ZERO
    if not number.is_finite() or number < ZERO or number > MAX_AMOUNT:
        return ZERO
    return number


def coerce_quantity(value: Any) -> Decimal:
    """Primary quantity is a whole number of units."""
    return coerce_amount(value).to_integral_value(rounding=ROUND_DOWN)


def money(value: Decimal) -> Decimal:
    """Quantize to cents for storage/display, widening precision for large values."""
    with localcontext() as ctx:
        ctx.prec = max(ctx.prec, value.adjusted() + 3)
        return value.quantize(CENTS, rounding=ROUND_HALF_UP)


@dataclass(frozen=True)
class PricingInputs:
    qty: Decimal = ONE
    supplier_cost: Decimal = ZERO
    misc_qty: Decimal = ONE
    misc_cost: Decimal = ZERO
    has_misc_supplier: bool = False
    markup_percentage: Decimal = ZERO

    @classmethod
    def build(
        cls,
        qty: Any = None,
        supplier_cost: Any = None,
        misc_qty: Any = None,
        misc_cost: Any = None,
        has_misc_supplier: bool = False,
        markup_percentage: Any = None,
    ) -> "PricingInputs":
        """Coerce raw values (strings, floats, None) into clean inputs."""
        return cls(
            qty=coerce_quantity(qty),
            supplier_cost=coerce_amount(supplier_cost),
            misc_qty=coerce_amount(misc_qty),
            misc_cost=coerce_amount(misc_cost),
            has_misc_supplier=bool(has_misc_supplier),
            markup_percentage=coerce_amount(markup_percentage),
        )


@dataclass(frozen=True)
class PricingResult:
    supplier_total: Decimal
    misc_total: Decimal
    total_cost: Decimal
    markup_amount: Decimal
    quoted_price: Decimal
    gross_margin_pct: Decimal


def compute_pricing(inputs: PricingInputs) -> PricingResult:
    """
    Derive all monetary fields of a line item.

        total_cost       = supplier_cost * qty + (misc supplier ? misc_cost * misc_qty : 0)
        markup_amount    = total_cost * markup% / 100
        quoted_price     = total_cost + markup_amount
        gross_margin_pct = markup% / (1 + markup%/100)   (0 when markup is 0)

    The secondary (misc) cost only counts when a misc supplier is selected, even if
    a misc amount is stored on the row.
    """
    # Inputs built directly (not via build()) may still carry junk.
    qty = coerce_quantity(inputs.qty)
    supplier_cost = coerce_amount(inputs.supplier_cost)
    misc_qty = coerce_amount(inputs.misc_qty)
    misc_cost = coerce_amount(inputs.misc_cost)
    markup = coerce_amount(inputs.markup_percentage)

    supplier_total = supplier_cost * qty
    misc_total = misc_cost * misc_qty if inputs.has_misc_supplier else ZERO
    total_cost = supplier_total + misc_total

    markup_amount = total_cost * markup / HUNDRED
    quoted_price = total_cost + markup_amount

    if markup > ZERO:
        gross_margin_pct = markup / (ONE + markup / HUNDRED)
    else:
        gross_margin_pct = ZERO

    return PricingResult(
        supplier_total=supplier_total,
        misc_total=misc_total,
        total_cost=total_cost,
        markup_amount=markup_amount,
        quoted_price=quoted_price,
        gross_margin_pct=gross_margin_pct,
    )


def pricing_inputs_from(source: Any) -> PricingInputs:
    """
    Build inputs from a row mapping (request payload) or an object with the
    cost_sheet_items attribute names (a CostSheetItem).
    """
    if isinstance(source, Mapping):
        get = source.get
    else:
        def get(name, default=None):
            return getattr(source, name, default)

    return PricingInputs.build(
        qty=get("qty"),
        supplier_cost=get("supplier_cost"),
        misc_qty=get("misc_qty"),
        misc_cost=get("misc_cost"),
        has_misc_supplier=get("misc_supplier_id") is not None and get("misc_supplier_id") != "",
        markup_percentage=get("rea_margin_percentage"),
    )
