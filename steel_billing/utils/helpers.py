# utils/helpers.py
import math
from datetime import date
import logging
from decimal import Decimal, ROUND_HALF_UP, InvalidOperation
from typing import Union, Optional

NumberLike = Union[float, int, str]

_log = logging.getLogger(__name__)

_CENT = Decimal("0.01")


def today_str() -> str:
    """Return today's date as ISO string (YYYY-MM-DD)."""
    return date.today().isoformat()


def safe_number(v) -> float:
    """
    Coerce anything to a finite float.

    None, unparsable text, NaN and +/-inf all become 0.0. Persisted rows are
    sometimes malformed and a single bad cell must not poison a total.
    """
    if v is None:
        return 0.0
    try:
        x = float(v)
    except (TypeError, ValueError):
        _log.debug("safe_number: treating %r as 0", v)
        return 0.0
    if math.isnan(x) or math.isinf(x):
        return 0.0
    return x


def round2(v) -> float:
    """
    Round to 2 decimals, half away from zero (10.005 -> 10.01, -10.005 -> -10.01).

    Goes through Decimal(str(x)) so binary float artifacts such as
    1.005 == 1.00499999... do not round the wrong way.
    """
    x = safe_number(v)
    try:
        d = Decimal(str(x)).quantize(_CENT, rounding=ROUND_HALF_UP)
    except InvalidOperation:
        return 0.0
    out = float(d)
    # normalise -0.0
    return out if out != 0 else 0.0


def fmt_money(
    v: NumberLike,
    places: int = 2,
    *,
    strict: bool = False,
    sentinel: Optional[str] = None,
) -> str:
    """
    Format a number as money with thousands separators and a fixed number of decimals.

    Behavior on parse failure:
      - By default (strict=False, sentinel=None), returns str(v).
      - If `sentinel` is provided (e.g., "N/A"), returns that sentinel instead.
      - If `strict=True`, raises ValueError on parse failures.
    """
    try:
        x = float(v)
    except Exception as e:
        _log.debug("fmt_money: failed to parse %r as float: %s", v, e)
        if strict:
            raise ValueError(f"Could not parse {v!r} as a number.") from e
        return str(sentinel) if sentinel is not None else str(v)
    return f"{x:,.{places}f}"
