# bankfeed/services/statement_parser.py
#
# Statement Parser
# Turns an uploaded bank statement (bytes + filename + declared format) into
# normalized transaction records. Knows nothing about persistence.
#
# Detection is two-level:
#   1. content readers: an ordered list of (signature, reader) pairs picks how
#      to read the bytes (MT940, PDF, Excel, HTML, CSV as the default)
#   2. bank adapters: the header row picks the bank column mapping
#      (see bank_formats.BANK_FORMATS), with a generic fuzzy fallback

import logging
import os
from dataclasses import dataclass, field
from decimal import Decimal
from typing import Any, Callable, Dict, List, Optional, Tuple

import pandas as pd

from bankfeed.errors import ValidationFailed
from bankfeed.services import statement_readers
from bankfeed.services.auto_categorize import suggest_category
from bankfeed.services.bank_formats import (
    AUTO,
    GENERIC,
    KOTAK,
    MT940,
    ColumnMapping,
    build_column_mapping,
    detect_bank_format,
    get_format,
    known_format_keys,
)
from bankfeed.services.mt940 import looks_like_mt940, parse_mt940
from bankfeed.services.normalize import (
    ZERO,
    is_blank,
    parse_amount,
    parse_balance,
    parse_statement_date,
    split_amount,
)

logger = logging.getLogger(__name__)

# Detailed row warnings kept per file; the rest are summarized
MAX_ROW_WARNINGS = 5

_EMPTY_REFERENCES = {"-", "--", "NA", "N/A"}


@dataclass
class ParseResult:
    transactions: List[dict] = field(default_factory=list)
    detected_format: str = AUTO
    mapping: Dict[str, Optional[str]] = field(default_factory=dict)
    headers: List[str] = field(default_factory=list)
    total_rows: int = 0
    warnings: List[str] = field(default_factory=list)
    account_number: Optional[str] = None
    source_type: str = "CSV"

    def to_dict(self) -> Dict[str, Any]:
        return {
            "transactions": self.transactions,
            "detected_format": self.detected_format,
            "mapping": self.mapping,
            "headers": self.headers,
            "total_rows": self.total_rows,
            "warnings": self.warnings,
            "account_number": self.account_number,
            "source_type": self.source_type,
        }


# ---- Row normalization ----

def _cell(row: Dict[str, Any], column: Optional[str]) -> Any:
    if not column:
        return None
    value = row.get(column)
    return None if is_blank(value) else value


def _net(deposit: Decimal, withdrawal: Decimal) -> Tuple[Decimal, Decimal]:
    """Collapse both sides into exactly one non-zero side."""
    net = abs(deposit) - abs(withdrawal)
    if net > 0:
        return net, ZERO
    return ZERO, -net


def _from_signed(amount: Decimal, suffix: Optional[str]) -> Tuple[Decimal, Decimal]:
    if suffix == "CR":
        return abs(amount), ZERO
    if suffix == "DR":
        return ZERO, abs(amount)
    if amount < 0:
        return ZERO, -amount
    return amount, ZERO


def _split_sides(row: Dict[str, Any], mapping: ColumnMapping) -> Tuple[Decimal, Decimal]:
    # Amount + Dr/Cr indicator column (Kotak, ICICI detailed statement)
    if mapping.amount_column and mapping.dr_cr_column:
        amount, suffix = split_amount(_cell(row, mapping.amount_column))
        indicator = str(_cell(row, mapping.dr_cr_column) or "").upper().strip()

        if "CR" in indicator or indicator in ("C", "CREDIT"):
            return abs(amount), ZERO
        if "DR" in indicator or indicator in ("D", "DEBIT"):
            return ZERO, abs(amount)

        deposit = parse_amount(_cell(row, mapping.deposit_column))
        withdrawal = parse_amount(_cell(row, mapping.withdrawal_column))
        if deposit or withdrawal:
            return _net(deposit, withdrawal)
        return _from_signed(amount, suffix)

    deposit = parse_amount(_cell(row, mapping.deposit_column))
    withdrawal = parse_amount(_cell(row, mapping.withdrawal_column))
    if deposit or withdrawal:
        return _net(deposit, withdrawal)

    # Single signed amount column
    if mapping.amount_column:
        return _from_signed(*split_amount(_cell(row, mapping.amount_column)))

    return ZERO, ZERO


def normalize_row(row: Dict[str, Any], mapping: ColumnMapping) -> dict:
    """
    Convert one mapped source row to a transaction record.

    Raises ValueError with a human-readable reason when the row has to be
    dropped (bad date, zero amount, unparseable amount).
    """
    raw_date = _cell(row, mapping.date_column)
    txn_date = parse_statement_date(raw_date)
    if txn_date is None:
        raise ValueError(f"unparseable date {raw_date!r}" if raw_date is not None else "missing date")

    value_date = parse_statement_date(_cell(row, mapping.value_date_column)) or txn_date

    description = " ".join(str(_cell(row, mapping.description_column) or "").split())

    reference = str(_cell(row, mapping.reference_column) or "").strip()
    if reference.upper() in _EMPTY_REFERENCES:
        reference = ""

    deposit, withdrawal = _split_sides(row, mapping)
    if deposit == ZERO and withdrawal == ZERO:
        raise ValueError("zero amount")

    return {
        "transaction_date": txn_date,
        "value_date": value_date,
        "description": description,
        "reference_number": reference or None,
        "deposit_amount": deposit,
        "withdrawal_amount": withdrawal,
        "balance": parse_balance(_cell(row, mapping.balance_column)),
        "category": suggest_category(description),
    }


# ---- Content-level readers ----

def _extension(filename: str) -> str:
    return os.path.splitext(filename or "")[1].lower().lstrip(".")


def _is_mt940(file_bytes: bytes, ext: str, declared: str) -> bool:
    if declared == MT940:
        return True
    if ext not in ("txt", "sta", "mt940", ""):
        return False
    head = file_bytes[:8192].decode("utf-8", errors="ignore")
    return looks_like_mt940(head)


def _is_pdf(file_bytes: bytes, ext: str, declared: str) -> bool:
    return ext == "pdf" or file_bytes.startswith(b"%PDF")


def _is_excel(file_bytes: bytes, ext: str, declared: str) -> bool:
    # xlsx is a zip archive; legacy xls is an OLE2 compound document
    return ext in ("xlsx", "xls") or file_bytes.startswith((b"PK\x03\x04", b"\xd0\xcf\x11\xe0"))


def _is_html(file_bytes: bytes, ext: str, declared: str) -> bool:
    if ext in ("html", "htm"):
        return True
    head = file_bytes[:2048].lower()
    return b"<html" in head or b"<table" in head


def _always(file_bytes: bytes, ext: str, declared: str) -> bool:
    return True


def _read_mt940(file_bytes: bytes, declared: str) -> ParseResult:
    stmt = parse_mt940(statement_readers.decode_text(file_bytes))
    result = ParseResult(
        transactions=stmt.transactions,
        detected_format=MT940,
        total_rows=len(stmt.transactions) + len(stmt.warnings),
        warnings=list(stmt.warnings),
        account_number=stmt.account_number,
        source_type=MT940,
    )
    if not stmt.transactions:
        result.warnings.append("No :61: statement lines found in the MT940 file.")
    return result


def _table_reader(source_type: str, read: Callable[[bytes], pd.DataFrame], default_bank: Optional[str] = None):
    def handler(file_bytes: bytes, declared: str) -> ParseResult:
        frame = read(file_bytes)
        return _parse_table(frame, declared, source_type, default_bank)

    return handler


# Tried in order; the first matching signature wins
CONTENT_READERS: List[Tuple[str, Callable[[bytes, str, str], bool], Callable[[bytes, str], ParseResult]]] = [
    (MT940, _is_mt940, _read_mt940),
    ("PDF", _is_pdf, _table_reader("PDF", statement_readers.read_pdf, default_bank=KOTAK.key)),
    ("EXCEL", _is_excel, _table_reader("EXCEL", statement_readers.read_excel)),
    ("HTML", _is_html, _table_reader("HTML", statement_readers.read_html)),
    ("CSV", _always, _table_reader("CSV", statement_readers.read_csv)),
]


def _parse_table(frame: pd.DataFrame, declared: str, source_type: str, default_bank: Optional[str]) -> ParseResult:
    headers = [str(c) for c in frame.columns]
    result = ParseResult(headers=headers, total_rows=len(frame), source_type=source_type, detected_format=declared)

    if frame.empty:
        result.warnings.append(f"No transaction data found in the {source_type} file. Please check the file format.")
        return result

    if declared == AUTO:
        fmt = detect_bank_format(headers)
        # PDF text extraction only understands the Kotak layout
        if fmt.key == GENERIC and default_bank:
            fmt = get_format(default_bank)
    else:
        fmt = get_format(declared)

    mapping = build_column_mapping(headers, fmt)
    result.detected_format = fmt.key
    result.mapping = mapping.to_dict()

    if not mapping.date_column:
        result.warnings.append(
            "Could not identify a date column. Please check the file format or select the correct bank format."
        )
        return result

    skipped = 0
    for idx, row in enumerate(frame.to_dict(orient="records"), start=1):
        try:
            result.transactions.append(normalize_row(row, mapping))
        except ValueError as exc:
            skipped += 1
            logger.debug("Skipping row %d: %s", idx, exc)
            if skipped <= MAX_ROW_WARNINGS:
                result.warnings.append(f"Row {idx}: {exc}")

    if skipped > MAX_ROW_WARNINGS:
        result.warnings.append(f"...and {skipped - MAX_ROW_WARNINGS} more skipped rows")

    return result


def parse_statement(file_bytes: bytes, filename: str, declared_format: str = AUTO) -> ParseResult:
    """
    Parse a statement file into normalized transactions.

    Malformed rows are dropped and reported in `warnings`. A file that
    cannot be read at all raises ParseFailure.
    """
    declared = (declared_format or AUTO).strip().upper()
    if declared not in known_format_keys():
        raise ValidationFailed(
            f"Unknown bank format '{declared_format}'. Expected one of: {', '.join(known_format_keys())}"
        )

    ext = _extension(filename)
    for name, signature, handler in CONTENT_READERS:
        if signature(file_bytes, ext, declared):
            logger.info("Parsing %s as %s (declared format %s)", filename or "<upload>", name, declared)
            result = handler(file_bytes, declared)
            break

    logger.info(
        "Parsed %s: format=%s rows=%d transactions=%d warnings=%d",
        filename or "<upload>",
        result.detected_format,
        result.total_rows,
        len(result.transactions),
        len(result.warnings),
    )
    return result
