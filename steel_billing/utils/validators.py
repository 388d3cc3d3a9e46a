# utils/validators.py
import math


def non_empty(text: str) -> bool:
    """
    True if `text` is not None/empty after stripping whitespace.
    """
    return bool(text and str(text).strip())


def try_parse_float(x):
    """
    Best-effort parse to a finite float.

    Returns:
        (ok: bool, value: float|None)

    ok == False means parsing failed (or the value was NaN/inf) and value is None.
    """
    try:
        val = float(x)
    except (TypeError, ValueError):
        return False, None
    if math.isnan(val) or math.isinf(val):
        return False, None
    return True, val
