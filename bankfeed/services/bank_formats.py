# bankfeed/services/bank_formats.py
#
# Bank-specific column adapters and header-based format auto-detection.
#
# Each BankFormat lists the candidate header names a bank uses for every
# canonical field, plus a signature that recognizes the bank from a header
# row. Detection walks BANK_FORMATS in priority order and falls back to the
# GENERIC adapter, which also fuzzy-matches misspelled headers.

import re
from dataclasses import asdict, dataclass
from typing import Callable, Dict, List, Optional, Sequence

from rapidfuzz import fuzz, process

AUTO = "AUTO"
GENERIC = "GENERIC"
MT940 = "MT940"

# Minimum rapidfuzz ratio for a misspelled header to count as a match
FUZZY_CUTOFF = 85


def normalize_key(key: str) -> str:
    """Lowercase and strip everything but letters and digits."""
    return re.sub(r"[^a-z0-9]", "", (key or "").lower())


@dataclass
class ColumnMapping:
    """Which source header feeds each canonical transaction field."""

    date_column: Optional[str] = None
    value_date_column: Optional[str] = None
    description_column: Optional[str] = None
    reference_column: Optional[str] = None
    deposit_column: Optional[str] = None
    withdrawal_column: Optional[str] = None
    balance_column: Optional[str] = None
    amount_column: Optional[str] = None
    dr_cr_column: Optional[str] = None

    def to_dict(self) -> Dict[str, Optional[str]]:
        return asdict(self)


@dataclass(frozen=True)
class BankFormat:
    key: str
    label: str
    signature: Callable[[List[str]], bool]
    date_columns: Sequence[str] = ()
    value_date_columns: Sequence[str] = ()
    description_columns: Sequence[str] = ()
    reference_columns: Sequence[str] = ()
    deposit_columns: Sequence[str] = ()
    withdrawal_columns: Sequence[str] = ()
    balance_columns: Sequence[str] = ()
    amount_columns: Sequence[str] = ()
    dr_cr_columns: Sequence[str] = ()
    fuzzy: bool = False


def _any(headers: List[str], *fragments: str) -> bool:
    return any(frag in h for h in headers for frag in fragments)


# ---- Signatures (headers are already normalize_key()'d) ----

def _is_icici(h: List[str]) -> bool:
    return _any(h, "withdrawals", "transactionremarks", "transactionamountinr", "txnposteddate")


def _is_kotak(h: List[str]) -> bool:
    return _any(h, "drcr") and _any(h, "narration", "slno")


def _is_hdfc(h: List[str]) -> bool:
    return _any(h, "narration") and _any(h, "chq", "refno")


def _is_sbi(h: List[str]) -> bool:
    return _any(h, "txndate") and _any(h, "valuedate")


def _is_axis(h: List[str]) -> bool:
    return _any(h, "particulars") and _any(h, "chqno")


ICICI = BankFormat(
    key="ICICI",
    label="ICICI Bank",
    signature=_is_icici,
    date_columns=("Transaction Date", "Txn Date", "Txn Posted Date", "Date", "Value Date"),
    value_date_columns=("Value Date", "Value Dt"),
    description_columns=("Description", "Transaction Remarks", "Remarks"),
    reference_columns=(
        "Chq / Ref No.",
        "Chq/Ref No",
        "Cheque Number",
        "Cheque No.",
        "ChequeNo.",
        "Cheque no / Ref No",
        "Reference No",
        "Ref No./Cheque No.",
    ),
    deposit_columns=(
        "Deposit Amt.",
        "Deposit Amt (INR)",
        "Deposit Amount (INR)",
        "Deposits",
        "Credits",
        "Credit",
    ),
    withdrawal_columns=(
        "Withdrawal Amt.",
        "Withdrawal Amt (INR)",
        "Withdrawal Amount (INR)",
        "Withdrawals",
        "Debits",
        "Debit",
    ),
    balance_columns=(
        "Balance",
        "Balance (INR)",
        "Available Balance",
        "Available Balance(INR)",
        "Closing Balance",
    ),
    amount_columns=("Transaction Amount(INR)", "Transaction Amount"),
    dr_cr_columns=("Cr/Dr", "Dr/Cr", "CR/DR"),
)

KOTAK = BankFormat(
    key="KOTAK",
    label="Kotak Mahindra Bank",
    signature=_is_kotak,
    date_columns=("Transaction Date", "Date"),
    description_columns=("Description", "Narration"),
    reference_columns=("Chq / Ref No.", "Chq/Ref No.", "Chq/Ref No"),
    deposit_columns=("Credit", "Deposit"),
    withdrawal_columns=("Debit", "Withdrawal"),
    balance_columns=("Balance",),
    # Kotak uses Amount + Dr/Cr instead of separate debit/credit columns
    amount_columns=("Amount",),
    dr_cr_columns=("Dr / Cr", "Dr/Cr", "Cr/Dr"),
)

HDFC = BankFormat(
    key="HDFC",
    label="HDFC Bank",
    signature=_is_hdfc,
    date_columns=("Date", "Transaction Date"),
    value_date_columns=("Value Dt", "Value Date"),
    description_columns=("Narration", "Description", "Particulars"),
    reference_columns=("Chq./Ref.No.", "Chq/Ref No.", "Ref No"),
    deposit_columns=("Deposit Amt.", "Deposit Amount", "Credit"),
    withdrawal_columns=("Withdrawal Amt.", "Withdrawal Amount", "Debit"),
    balance_columns=("Closing Balance", "Balance"),
)

SBI = BankFormat(
    key="SBI",
    label="State Bank of India",
    signature=_is_sbi,
    date_columns=("Txn Date", "Transaction Date", "Date"),
    value_date_columns=("Value Date",),
    description_columns=("Description", "Particulars", "Narration"),
    reference_columns=("Ref No./Cheque No.", "Ref No", "Reference"),
    deposit_columns=("Credit", "Deposit", "Cr"),
    withdrawal_columns=("Debit", "Withdrawal", "Dr"),
    balance_columns=("Balance", "Running Balance"),
)

AXIS = BankFormat(
    key="AXIS",
    label="Axis Bank",
    signature=_is_axis,
    date_columns=("Tran Date", "Transaction Date", "Date"),
    description_columns=("PARTICULARS", "Description", "Narration"),
    reference_columns=("CHQNO", "Chq No", "Reference"),
    deposit_columns=("CR", "Credit", "Deposit"),
    withdrawal_columns=("DR", "Debit", "Withdrawal"),
    balance_columns=("BAL", "Balance", "Running Balance"),
)

GENERIC_FORMAT = BankFormat(
    key=GENERIC,
    label="Generic (heuristic)",
    signature=lambda headers: True,
    date_columns=("Transaction Date", "Txn Date", "Tran Date", "Posted Date", "Posting Date", "Date"),
    value_date_columns=("Value Date", "Value Dt"),
    description_columns=(
        "Description",
        "Narration",
        "Particulars",
        "Remarks",
        "Details",
        "Transaction Remarks",
    ),
    reference_columns=(
        "Reference",
        "Ref No",
        "Ref No.",
        "Reference Number",
        "Chq / Ref No.",
        "Chq./Ref.No.",
        "CHQNO",
        "UTR",
        "Cheque No",
    ),
    deposit_columns=("Deposit", "Deposit Amt.", "Credit", "Cr", "Deposit Amount", "Deposits", "Credits"),
    withdrawal_columns=(
        "Withdrawal",
        "Withdrawal Amt.",
        "Debit",
        "Dr",
        "Withdrawal Amount",
        "Withdrawals",
        "Debits",
    ),
    balance_columns=("Balance", "Closing Balance", "Available Balance", "Running Balance", "BAL"),
    amount_columns=("Amount", "Transaction Amount", "Txn Amount", "Transaction Amount(INR)"),
    dr_cr_columns=("Dr / Cr", "Dr/Cr", "Cr/Dr", "CR/DR", "Type", "Txn Type"),
    fuzzy=True,
)

# Detection priority: ICICI is checked first because its headers also
# contain the generic tokens other banks key on.
BANK_FORMATS: List[BankFormat] = [ICICI, KOTAK, HDFC, SBI, AXIS]

_BY_KEY: Dict[str, BankFormat] = {fmt.key: fmt for fmt in BANK_FORMATS + [GENERIC_FORMAT]}

# Labels for the format picker (MT940 is handled by its own reader)
FORMAT_LABELS: Dict[str, str] = {
    **{fmt.key: fmt.label for fmt in BANK_FORMATS},
    MT940: "SWIFT MT940/MT950",
}


def known_format_keys() -> List[str]:
    return [AUTO, GENERIC] + list(FORMAT_LABELS)


def bank_format_options() -> List[Dict[str, str]]:
    """Choices for the statement upload form, AUTO first."""
    options = [{"key": AUTO, "label": "Auto-Detect"}]
    options.extend({"key": key, "label": label} for key, label in FORMAT_LABELS.items())
    return options


def get_format(key: str) -> BankFormat:
    return _BY_KEY.get((key or "").upper(), GENERIC_FORMAT)


def detect_bank_format(headers: List[str]) -> BankFormat:
    """Return the first bank whose signature matches, else the generic adapter."""
    normalized = [normalize_key(h) for h in headers]
    for fmt in BANK_FORMATS:
        if fmt.signature(normalized):
            return fmt
    return GENERIC_FORMAT


def find_column(
    headers: List[str],
    candidates: Sequence[str],
    used: Optional[set] = None,
    fuzzy: bool = False,
) -> Optional[str]:
    """
    Find the header matching one of `candidates`.

    Tries, in order: exact (case-insensitive), normalized-equal,
    normalized-contains and (for the generic adapter) fuzzy ratio.
    Headers already claimed by another field are skipped.
    """
    used = used or set()
    available = [h for h in headers if h not in used and str(h).strip()]
    if not candidates or not available:
        return None

    for cand in candidates:
        for h in available:
            if h.strip().lower() == cand.strip().lower():
                return h

    for cand in candidates:
        nc = normalize_key(cand)
        for h in available:
            if normalize_key(h) == nc:
                return h

    for cand in candidates:
        nc = normalize_key(cand)
        # Two-letter tokens ("Dr", "Cr") would match inside unrelated words
        if len(nc) < 3:
            continue
        for h in available:
            if nc in normalize_key(h):
                return h

    if fuzzy:
        keys = {h: normalize_key(h) for h in available}
        for cand in candidates:
            nc = normalize_key(cand)
            if len(nc) < 4:
                continue
            hit = process.extractOne(nc, keys, scorer=fuzz.ratio, score_cutoff=FUZZY_CUTOFF)
            if hit:
                return hit[2]

    return None


def build_column_mapping(headers: List[str], fmt: BankFormat) -> ColumnMapping:
    """Resolve every canonical field for `fmt` against the actual headers."""
    used: set = set()
    mapping = ColumnMapping()

    fields = [
        ("date_column", fmt.date_columns),
        ("value_date_column", fmt.value_date_columns),
        ("description_column", fmt.description_columns),
        ("reference_column", fmt.reference_columns),
        ("withdrawal_column", fmt.withdrawal_columns),
        ("deposit_column", fmt.deposit_columns),
        ("balance_column", fmt.balance_columns),
        ("amount_column", fmt.amount_columns),
        ("dr_cr_column", fmt.dr_cr_columns),
    ]
    for attr, candidates in fields:
        col = find_column(headers, candidates, used=used, fuzzy=fmt.fuzzy)
        if col is not None:
            used.add(col)
        setattr(mapping, attr, col)

    return mapping
