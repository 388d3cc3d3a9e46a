"""
modules/billing/quantities.py

Quantity parsing for the store's units of measure.

Weight is sold in the compound "kg-grams" notation: "12-990" means 12 kg and
990 g, i.e. 12.990 kg. It is modelled as CompoundQuantity{whole, subunit,
subunit_scale} with an explicit parse/format pair so a subunit >= 1000 can
never slip through as "12-1000" == 13.0 kg.

Stored invoice quantities are always whole units (kg, pieces, feet...), so
the grams->kg division by 1000 happens exactly once, here.
"""
from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Union

from ...constants import SUBUNIT_SCALE
from ...utils.validators import try_parse_float
from .errors import BillingError, ErrorKind

__all__ = [
    "UNIT_KG_GRAMS",
    "UNIT_KG",
    "UNIT_TYPES",
    "CompoundQuantity",
    "parse_quantity",
    "parse_return_quantity",
    "format_quantity",
    "unit_symbol",
]

UNIT_KG_GRAMS = "kg-grams"
UNIT_KG = "kg"

# type -> display symbol
UNIT_TYPES: dict[str, str] = {
    "kg-grams": "kg",
    "kg": "kg",
    "piece": "pcs",
    "bag": "bags",
    "foot": "ft",
    "meter": "m",
    "ton": "ton",
}

_DASH_RX = re.compile(r"^\s*(\d+)\s*-\s*(\d+)\s*$")
_DISPLAY_RX = re.compile(r"^\s*(\d+)\s*kg(?:\s*(\d+)\s*g)?\s*$", re.IGNORECASE)
_WHOLE_RX = re.compile(r"^\s*(\d+)\s*$")

QuantityLike = Union[int, float, str, "CompoundQuantity"]


def _parse_error(text, detail: str) -> BillingError:
    return BillingError(ErrorKind.PARSE_ERROR, f"Invalid quantity '{text}': {detail}")


@dataclass(frozen=True)
class CompoundQuantity:
    whole: int
    subunit: int = 0
    subunit_scale: int = SUBUNIT_SCALE

    def __post_init__(self):
        if self.whole < 0:
            raise _parse_error(self.format(), "whole part must be non-negative")
        if not 0 <= self.subunit < self.subunit_scale:
            raise _parse_error(
                self.format(), f"subunit must be between 0 and {self.subunit_scale - 1}"
            )

    @property
    def total_subunits(self) -> int:
        return self.whole * self.subunit_scale + self.subunit

    @property
    def value(self) -> float:
        """Quantity in whole units (12-990 -> 12.99)."""
        return self.total_subunits / self.subunit_scale

    @classmethod
    def parse(cls, text: str, subunit_scale: int = SUBUNIT_SCALE) -> "CompoundQuantity":
        """
        Accepts "12", "12-990" and the display form "12kg 990g".
        Raises BillingError(ParseError) for anything else, including a
        subunit component >= subunit_scale.
        """
        s = "" if text is None else str(text)
        m = _DASH_RX.match(s) or _DISPLAY_RX.match(s)
        if m:
            whole = int(m.group(1))
            sub = int(m.group(2) or 0)
            if sub >= subunit_scale:
                raise _parse_error(text, f"grams must be between 0 and {subunit_scale - 1}")
            return cls(whole, sub, subunit_scale)
        m = _WHOLE_RX.match(s)
        if m:
            return cls(int(m.group(1)), 0, subunit_scale)
        raise _parse_error(text, 'expected "kg" or "kg-grams" (e.g. 12-990)')

    @classmethod
    def from_value(cls, value: float, subunit_scale: int = SUBUNIT_SCALE) -> "CompoundQuantity":
        """Build from a whole-unit float; subunits are rounded, overflow carries."""
        total = int(round(float(value) * subunit_scale))
        if total < 0:
            raise _parse_error(value, "quantity must be non-negative")
        return cls(total // subunit_scale, total % subunit_scale, subunit_scale)

    def format(self) -> str:
        """Entry form: '12-990', or '12' when there is no subunit part."""
        if self.subunit:
            return f"{self.whole}-{self.subunit}"
        return str(self.whole)

    def display(self, symbol: str = "kg", sub_symbol: str = "g") -> str:
        if self.subunit:
            return f"{self.whole}{symbol} {self.subunit}{sub_symbol}"
        return f"{self.whole}{symbol}"

    def __str__(self) -> str:
        return self.format()


def _parse_kg_decimal(text: str) -> float:
    # '500.10' -> 500 kg + round(0.10 * 1000) g
    ok, val = try_parse_float(text)
    if not ok or val < 0:
        raise _parse_error(text, "value must be a valid non-negative decimal number")
    return CompoundQuantity.from_value(val).value


def parse_quantity(value: QuantityLike, unit_type: str = UNIT_KG_GRAMS) -> float:
    """
    Parse an entered quantity for `unit_type` into whole units.

    Numbers pass through unchanged (they are already whole units). Text is
    parsed per unit type: kg-grams uses the compound notation, kg accepts a
    decimal, everything else is a plain non-negative number.
    """
    if isinstance(value, CompoundQuantity):
        return value.value
    if isinstance(value, (int, float)) and not isinstance(value, bool):
        return float(value)
    text = "" if value is None else str(value).strip()
    if not text:
        raise _parse_error(value, "quantity cannot be empty")

    if unit_type == UNIT_KG_GRAMS:
        return CompoundQuantity.parse(text).value
    if unit_type == UNIT_KG:
        return _parse_kg_decimal(text)

    ok, val = try_parse_float(text)
    if not ok or val < 0:
        raise _parse_error(value, "quantity must be a valid non-negative number")
    return val


def parse_return_quantity(value: QuantityLike) -> float:
    """
    Parse a return quantity regardless of the line's unit type.

    Plain numbers ("3", "2.5") are taken as-is; text with a dash or the
    'kg ... g' form is read as a compound kg-grams quantity. Sign is not
    checked here; the caller rejects non-positive results.
    """
    if isinstance(value, CompoundQuantity):
        return value.value
    if isinstance(value, (int, float)) and not isinstance(value, bool):
        return float(value)
    text = "" if value is None else str(value).strip()
    if not text:
        raise _parse_error(value, "quantity cannot be empty")
    ok, val = try_parse_float(text)
    if ok:
        return val  # type: ignore[return-value]
    return CompoundQuantity.parse(text).value


def unit_symbol(unit_type: str) -> str:
    return UNIT_TYPES.get(unit_type, unit_type or "")


def format_quantity(quantity: float, unit_type: str = UNIT_KG_GRAMS) -> str:
    """Display text for a stored whole-unit quantity ('12kg 990g', '5 pcs')."""
    if unit_type in (UNIT_KG_GRAMS, UNIT_KG):
        return CompoundQuantity.from_value(quantity).display()
    return f"{quantity:g} {unit_symbol(unit_type)}".strip()
