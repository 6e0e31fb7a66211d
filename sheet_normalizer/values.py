"""
Cell value normalization.

Responsibilities:
- coerce heterogeneous cell values to text
- parse numbers written in either US (1,234.56) or BR (1.234,56) convention
- render target-column numbers as fixed-decimal comma text
- salvage numeric-shaped text the parser rejected (decimal padding)

Every function here is total: bad input degrades to plain trimmed text,
it never raises.
"""

from __future__ import annotations

import math
import re
from datetime import date, datetime, time
from decimal import ROUND_HALF_UP, Context, Decimal
from enum import Enum
from typing import Any, Optional, Tuple

from .rules import DEFAULT_RULES, NormalizationRules

# Plain ASCII decimal literal, as accepted after separator cleanup.
_NUMERIC_LITERAL = re.compile(r"[+-]?(?:[0-9]+(?:\.[0-9]*)?|\.[0-9]+)(?:[eE][+-]?[0-9]+)?")
# Stricter shape used by the padding fallback: no exponent, no bare dot.
_DECIMAL_SHAPE = re.compile(r"[+-]?[0-9]+(?:\.[0-9]+)?")
_WHITESPACE = re.compile(r"\s+")


class Outcome(str, Enum):
    PARSED = "parsed"
    PADDED = "padded"
    KEPT = "kept_as_text"


def to_text(value: Any, date_format: str = DEFAULT_RULES.date_format) -> str:
    """Render a raw cell value as text (untrimmed)."""
    if value is None:
        return ""
    if isinstance(value, str):
        return value
    if isinstance(value, bool):
        return "TRUE" if value else "FALSE"
    if isinstance(value, float) and math.isfinite(value) and value == int(value):
        return str(int(value))
    if isinstance(value, datetime):
        return value.strftime(date_format)
    if isinstance(value, (date, time)):
        return value.isoformat()
    try:
        return str(value)
    except Exception:
        return ""


def parse_number(text: Any) -> Optional[float]:
    """
    Parse a number whose decimal separator may be '.' or ','.

    When both separators appear, whichever occurs last is the decimal point
    and every occurrence of the other one is dropped. A lone comma is a
    decimal comma. Returns None when the text is not a finite number.

    "2.024" is read as 2.024, never as two thousand twenty-four.
    """
    if text is None:
        return None

    try:
        s = str(text).strip()
        if not s:
            return None

        has_dot = "." in s
        has_comma = "," in s

        if has_dot and has_comma:
            if s.rfind(",") > s.rfind("."):
                cleaned = s.replace(".", "").replace(",", ".", 1)  # BR
            else:
                cleaned = s.replace(",", "")  # US
        elif has_comma:
            cleaned = s.replace(".", "").replace(",", ".", 1)
        else:
            cleaned = s.replace(",", "")

        cleaned = _WHITESPACE.sub("", cleaned)
        if not _NUMERIC_LITERAL.fullmatch(cleaned):
            return None

        number = float(cleaned)
    except Exception:
        return None

    return number if math.isfinite(number) else None


def format_fixed(number: float, places: int = DEFAULT_RULES.decimal_places) -> str:
    """
    Render a finite number with exactly `places` fractional digits and a
    decimal comma. Ties round away from zero on the exact binary value.
    """
    if number == 0:
        number = 0.0  # drop the sign of -0.0
    exact = Decimal(number)
    # integer digits plus the requested fraction, whatever the magnitude
    context = Context(prec=max(exact.adjusted(), 0) + places + 2, rounding=ROUND_HALF_UP)
    fixed = exact.quantize(Decimal(1).scaleb(-places), context=context)
    return format(fixed, "f").replace(".", ",")


def pad_decimal(text: Any, places: int = DEFAULT_RULES.decimal_places) -> str:
    """
    Pad or truncate the fraction of numeric-shaped text to `places` digits.

    Text that does not look like `[sign]digits[.digits]` once its first comma
    is read as a dot is returned trimmed and otherwise untouched.
    """
    s = str(text).strip()
    if not s:
        return s

    normalized = s.replace(",", ".", 1)
    if not _DECIMAL_SHAPE.fullmatch(normalized):
        return s

    int_part, _, frac_part = normalized.partition(".")
    if places == 0:
        return int_part

    frac = frac_part.ljust(places, "0")[:places]
    return f"{int_part},{frac}"


def normalize_cell_value(
    value: Any,
    column: int,
    rules: NormalizationRules = DEFAULT_RULES,
) -> Tuple[str, Optional[Outcome]]:
    """
    Normalize one cell value and report which path produced the text.

    The outcome is None for columns outside `rules.target_columns`.
    """
    text = to_text(value, rules.date_format).strip()
    if not rules.is_target(column):
        return text, None

    number = parse_number(text)
    if number is not None:
        return format_fixed(number, rules.decimal_places), Outcome.PARSED

    padded = pad_decimal(text, rules.decimal_places)
    if padded != text:
        return padded, Outcome.PADDED
    return text, Outcome.KEPT


def normalize_value(
    value: Any,
    column: int,
    rules: NormalizationRules = DEFAULT_RULES,
) -> str:
    return normalize_cell_value(value, column, rules)[0]
