# bankfeed/services/mt940.py
#
# SWIFT MT940 / MT950 statement reader.
#
# Tags used:
#   :25:   account identification
#   :60F:  opening balance (gives the year context)
#   :61:   statement line  YYMMDD[MMDD](R?[CD])amount,decTTTTreference
#   :86:   narrative for the preceding :61: (absent in MT950)

import re
from dataclasses import dataclass, field
from datetime import date
from decimal import Decimal, InvalidOperation
from typing import List, Optional

from bankfeed.services.auto_categorize import suggest_category
from bankfeed.services.normalize import ZERO, to_money

_ENVELOPE_RE = re.compile(r"\{1:F01")
_TAG20_RE = re.compile(r"^:20:", re.MULTILINE)
_ACCOUNT_RE = re.compile(r":25:([^\r\n]+)")
_OPENING_RE = re.compile(r":60F:([CD])(\d{6})([A-Z]{3})([\d,]+)")
_LINE61_RE = re.compile(r"^(\d{6})(\d{4})?(R?[CD])([\d,]+)([A-Z]{4})(.*)?$")


def looks_like_mt940(text: str) -> bool:
    return bool(_ENVELOPE_RE.search(text) or _TAG20_RE.search(text))


def _century(yy: int) -> int:
    return 2000 + yy if yy < 50 else 1900 + yy


@dataclass
class MT940Statement:
    account_number: Optional[str] = None
    opening_year: Optional[int] = None
    transactions: List[dict] = field(default_factory=list)
    warnings: List[str] = field(default_factory=list)


def _parse_statement_line(body: str) -> dict:
    """Decode one :61: body. Raises ValueError when the layout is wrong."""
    m = _LINE61_RE.match(body.strip())
    if not m:
        raise ValueError("unrecognized layout")

    entry, value_mmdd, mark, amount_str, _type_code, ref = m.groups()

    year = _century(int(entry[:2]))
    entry_month = int(entry[2:4])
    txn_date = date(year, entry_month, int(entry[4:6]))

    value_date = txn_date
    if value_mmdd:
        value_month = int(value_mmdd[:2])
        # Value date booked in December for a January entry belongs to last year
        value_year = year - 1 if value_month == 12 and entry_month == 1 else year
        value_date = date(value_year, value_month, int(value_mmdd[2:]))

    try:
        amount = to_money(Decimal(amount_str.replace(",", ".")))
    except InvalidOperation:
        raise ValueError(f"bad amount {amount_str!r}")

    # RC reverses a credit (money out); RD reverses a debit (money in)
    incoming = mark in ("C", "RD")

    reference = (ref or "").strip()
    if "//" in reference:
        reference = reference.split("//", 1)[0]
    if reference.upper() == "NOREF":
        reference = ""

    return {
        "transaction_date": txn_date,
        "value_date": value_date,
        "description": "",
        "reference_number": reference or None,
        "deposit_amount": amount if incoming else ZERO,
        "withdrawal_amount": ZERO if incoming else amount,
        "balance": None,
        "category": None,
    }


def parse_mt940(text: str) -> MT940Statement:
    stmt = MT940Statement()

    m = _ACCOUNT_RE.search(text)
    if m:
        stmt.account_number = m.group(1).strip()

    m = _OPENING_RE.search(text)
    if m:
        stmt.opening_year = _century(int(m.group(2)[:2]))

    current: Optional[dict] = None

    def flush():
        if current is None:
            return
        if not current["category"]:
            # MT950 has no narrative; fall back to the reference
            current["category"] = suggest_category(current["reference_number"] or "")
        if current["deposit_amount"] == ZERO and current["withdrawal_amount"] == ZERO:
            stmt.warnings.append(f"Skipped zero-amount entry dated {current['transaction_date'].isoformat()}")
            return
        stmt.transactions.append(current)

    for lineno, line in enumerate(text.splitlines(), start=1):
        if line.startswith(":61:"):
            flush()
            current = None
            try:
                current = _parse_statement_line(line[4:])
            except ValueError as exc:
                stmt.warnings.append(f"Line {lineno}: invalid :61: entry ({exc}): {line.strip()}")
            continue

        if line.startswith(":86:") and current is not None:
            narrative = line[4:].strip()
            current["description"] = narrative
            current["category"] = suggest_category(narrative)
            continue

        # :86: narratives may wrap onto continuation lines
        if current is not None and current["description"] and line and not line.startswith((":", "-", "{", "}")):
            current["description"] = f"{current['description']} {line.strip()}"
            current["category"] = suggest_category(current["description"])

    flush()
    return stmt
