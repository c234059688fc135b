# filename: bankfeed/services/auto_categorize.py
"""
Keyword-based category suggestion for freshly parsed statement rows.

Design goals:
- Safe: never raises exceptions to callers
- Optional: controlled by env var AUTO_CATEGORIZE (on by default)
- Advisory: the suggestion is stored as a hint; it never categorizes a
  transaction or touches invoices/bills

Public API:
    suggest_category(description) -> str | None
"""

from __future__ import annotations

from typing import Any, Optional, Sequence, Tuple

from bankfeed.config import settings

# Ordered: first matching rule wins.
KEYWORD_RULES: Sequence[Tuple[str, Sequence[str]]] = (
    (
        "Bank Charges",
        (
            "SMS CHARGE",
            "ATM CHG",
            "MIN BAL",
            "SERVICE CHARGE",
            "DEBIT CARD FEE",
            "CHEQUE RETURN",
            "BANK FEE",
            "BANK CHARGES",
        ),
    ),
    ("Interest Income", ("INT PD", "INTEREST PAID", "INT CREDIT", "INT CR")),
    ("Tax Payment", ("GST PAYMENT", "GST CHALLAN", "GST-", "TDS", "TAX DEDUCTED")),
    ("Salary", ("SALARY", "PAYROLL", "SAL CR", "SAL/")),
    ("Refund", ("REFUND", "REVERSAL", "CASHBACK")),
    ("Transfer", ("NEFT", "RTGS", "IMPS", "UPI/", "UPI-", "FUND TRANSFER")),
)


def _clean_text(s: Any, max_len: int = 400) -> str:
    t = " ".join(str(s or "").split())
    return t[:max_len]


def suggest_category(description: str) -> Optional[str]:
    """
    Suggest a display category from description keywords.

    Returns None (leave for manual review) when the feature is disabled,
    the description is empty, or no rule matches.
    """
    if not settings.auto_categorize:
        return None

    text = _clean_text(description).upper()
    if not text:
        return None

    for label, keywords in KEYWORD_RULES:
        if any(k in text for k in keywords):
            return label

    return None
