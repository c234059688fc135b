# bankfeed/services/normalize.py
#
# Value normalizers shared by every statement reader.
# Turns raw cell text into fixed-point amounts and calendar dates.

import math
import re
from datetime import date, datetime
from decimal import Decimal, InvalidOperation, ROUND_HALF_UP
from typing import Any, Optional, Tuple

CENT = Decimal("0.01")
ZERO = Decimal("0.00")

# Currency markers seen in Indian bank exports
_CURRENCY_RE = re.compile(r"(₹|\$|€|£|¥|\bINR\b|\bRs\.?)", re.IGNORECASE)

# Trailing Dr/Cr indicator, e.g. "1,200.00 Dr" or "500.00CR"
_DRCR_SUFFIX_RE = re.compile(r"\s*\(?\b(DR|CR)\b\.?\)?\s*$", re.IGNORECASE)
_DRCR_GLUED_RE = re.compile(r"(?<=\d)(DR|CR)\.?\s*$", re.IGNORECASE)

_EMPTY_MARKERS = {"", "-", "--", "nan", "none", "null", "n/a", "na"}


def to_money(value: Any) -> Decimal:
    """Quantize a number to 2 decimal places, rounding half up."""
    if value is None:
        return ZERO
    if not isinstance(value, Decimal):
        value = Decimal(str(value))
    return value.quantize(CENT, rounding=ROUND_HALF_UP)


def is_blank(value: Any) -> bool:
    if value is None:
        return True
    if isinstance(value, float) and math.isnan(value):
        return True
    return str(value).strip().lower() in _EMPTY_MARKERS


def split_amount(value: Any) -> Tuple[Decimal, Optional[str]]:
    """
    Parse a raw amount cell.

    Handles thousands separators (including lakh grouping like 1,23,456.78),
    currency symbols, parentheses-as-negative and trailing Dr/Cr suffixes.

    Returns:
        (signed amount rounded to 2 dp, "DR" | "CR" | None)

    Raises:
        ValueError if the cell is not empty and not a number.
    """
    if is_blank(value):
        return ZERO, None

    if isinstance(value, (int, float, Decimal)) and not isinstance(value, bool):
        return to_money(value), None

    s = str(value).strip()
    s = s.replace("−", "-")  # U+2212 -> '-'

    indicator = None
    m = _DRCR_SUFFIX_RE.search(s) or _DRCR_GLUED_RE.search(s)
    if m:
        indicator = m.group(1).upper()
        s = s[: m.start()]

    s = _CURRENCY_RE.sub("", s)
    s = s.replace(",", "").replace(" ", "").replace(" ", "")

    negative = False
    if s.startswith("(") and s.endswith(")"):
        negative = True
        s = s[1:-1]
    if s.endswith("-"):
        # Some exports print negatives as "500.00-"
        negative = True
        s = s[:-1]

    if s.lower() in _EMPTY_MARKERS:
        return ZERO, indicator

    try:
        amount = Decimal(s)
    except InvalidOperation:
        raise ValueError(f"Could not parse amount: {value!r}")

    if not amount.is_finite():
        raise ValueError(f"Could not parse amount: {value!r}")

    if negative:
        amount = -amount
    return to_money(amount), indicator


def parse_amount(value: Any) -> Decimal:
    """Unsigned magnitude of a deposit/withdrawal cell."""
    amount, _ = split_amount(value)
    return abs(amount)


def parse_balance(value: Any) -> Optional[Decimal]:
    """Statement running balance, preserving the sign (overdrafts, 'Dr' balances)."""
    if is_blank(value):
        return None
    try:
        amount, indicator = split_amount(value)
    except ValueError:
        return None
    if indicator == "DR" and amount > 0:
        amount = -amount
    return amount


# ---- Dates ----

_DATE_FORMATS = [
    "%d/%m/%Y",
    "%d-%m-%Y",
    "%d.%m.%Y",
    "%Y-%m-%d",
    "%Y/%m/%d",
    "%d/%m/%y",
    "%d-%m-%y",
    "%d.%m.%y",
    "%d %b %Y",
    "%d-%b-%Y",
    "%d/%b/%Y",
    "%d %B %Y",
    "%d-%B-%Y",
    "%d %b %y",
    "%d-%b-%y",
    "%b %d, %Y",
    "%b %d %Y",
    "%B %d, %Y",
    "%B %d %Y",
]

_TIME_TAIL_RE = re.compile(r"\s+\d{1,2}:\d{2}(:\d{2})?(\s*[AP]M)?$", re.IGNORECASE)


def parse_statement_date(value: Any) -> Optional[date]:
    """
    Parse an Indian-style statement date.

    Accepts DD/MM/YYYY, DD-MM-YY, DD MMM YYYY, DD-MMM-YYYY, YYYY-MM-DD,
    MMM DD, YYYY and the same with a trailing time component. Excel cells
    that already hold a datetime are passed through.
    """
    if value is None:
        return None
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    if is_blank(value):
        return None

    s = " ".join(str(value).split())
    s = _TIME_TAIL_RE.sub("", s)
    # "2025-08-01T00:00:00" from some Excel exports
    if "T" in s and re.match(r"^\d{4}-\d{2}-\d{2}T", s):
        s = s.split("T", 1)[0]

    for fmt in _DATE_FORMATS:
        try:
            return datetime.strptime(s, fmt).date()
        except ValueError:
            continue
    return None
