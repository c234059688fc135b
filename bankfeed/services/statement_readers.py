# bankfeed/services/statement_readers.py
#
# File-level readers: turn raw statement bytes into a table of string cells.
#
# Every reader returns a pandas DataFrame whose columns are the detected
# header row (deduplicated) and whose cells are stripped strings. Column
# mapping and value parsing happen later in statement_parser.

import csv
import io
import logging
import re
from datetime import date, datetime
from typing import List, Optional, Sequence

import pandas as pd
import pdfplumber
from bs4 import BeautifulSoup

from bankfeed.errors import ParseFailure
from bankfeed.services.normalize import is_blank

logger = logging.getLogger(__name__)

# Statements often carry a few lines of account metadata above the header row
HEADER_SCAN_ROWS = 20

HEADER_KEYWORDS = [
    "date",
    "transaction date",
    "txn date",
    "value date",
    "posted date",
    "tran date",
    "description",
    "narration",
    "particulars",
    "remark",
    "amount",
    "transaction amount",
    "balance",
    "available balance",
    "debit",
    "credit",
    "withdrawal",
    "deposit",
    "sl.",
    "sr.",
    "sl no",
    "s no",
    "tran id",
    "cr/dr",
    "dr/cr",
    "cheque",
    "chq",
    "ref no",
    "reference",
]

SUMMARY_MARKERS = ("page total", "opening bal", "closing bal", "grand total")


# ---- Text decoding ----

def decode_text(file_bytes: bytes) -> str:
    """
    Decode a text statement.

    UTF-8 (with or without BOM) first; UTF-16 when the bytes contain NULs;
    Windows-1252 as the last resort for older exports.
    """
    encodings = ["utf-16", "utf-8-sig", "cp1252"] if b"\x00" in file_bytes else ["utf-8-sig", "cp1252"]
    for enc in encodings:
        try:
            text = file_bytes.decode(enc)
        except UnicodeDecodeError:
            continue
        return text.lstrip("﻿")
    raise ParseFailure("Could not decode the file as text (tried UTF-8, UTF-16, Windows-1252)")


# ---- Header detection ----

def locate_header_row(rows: Sequence[Sequence[str]], min_cells: int = 0, limit: Optional[int] = HEADER_SCAN_ROWS) -> int:
    """
    Index of the row that best looks like a statement header, or -1.

    A row scores one point per keyword found in any of its cells; at least
    two keywords must match.
    """
    best_idx, best_score = -1, 0
    scan = rows if limit is None else rows[:limit]
    for idx, row in enumerate(scan):
        if len(row) < min_cells:
            continue
        cells = [str(c).lower().strip() for c in row]
        score = sum(1 for kw in HEADER_KEYWORDS if any(kw in c for c in cells))
        if score > best_score:
            best_idx, best_score = idx, score
    return best_idx if best_score >= 2 else -1


def dedupe_headers(headers: List[str]) -> List[str]:
    """Suffix repeated headers: Kotak exports two "Dr / Cr" columns."""
    seen: dict = {}
    out = []
    for h in headers:
        count = seen.get(h, 0)
        out.append(f"{h}_{count + 1}" if count else h)
        seen[h] = count + 1
    return out


def rows_to_frame(
    rows: List[List[str]],
    header_idx: int,
    exact_width: bool = False,
    skip_summaries: bool = False,
) -> pd.DataFrame:
    headers = dedupe_headers([" ".join(str(h).split()) for h in rows[header_idx]])
    width = len(headers)

    body = []
    for raw in rows[header_idx + 1:]:
        if exact_width and len(raw) != width:
            continue
        cells = [str(c).strip() for c in raw]
        if not any(cells):
            continue
        if skip_summaries:
            text = " ".join(cells).lower()
            if any(marker in text for marker in SUMMARY_MARKERS):
                continue
        cells = (cells + [""] * width)[:width]
        body.append(cells)

    return pd.DataFrame(body, columns=headers, dtype=str)


# ---- CSV ----

CSV_DELIMITERS = (",", ";", "\t", "|")


def guess_delimiter(content: str) -> str:
    """The candidate delimiter seen most often in the first lines; comma on a tie."""
    head = content.splitlines()[:HEADER_SCAN_ROWS]
    counts = {d: sum(line.count(d) for line in head) for d in CSV_DELIMITERS}
    best = max(CSV_DELIMITERS, key=lambda d: counts[d])
    return best if counts[best] else ","


def _trim_row(cells: List[str]) -> List[str]:
    cells = [str(c).strip() for c in cells]
    while cells and not cells[-1]:
        cells.pop()
    return cells


def read_csv(file_bytes: bytes) -> pd.DataFrame:
    content = decode_text(file_bytes)
    if not content.strip():
        return pd.DataFrame()

    delimiter = guess_delimiter(content)
    # Metadata lines above the header are narrower than the table; read wide and trim
    width = max(line.count(delimiter) for line in content.splitlines()) + 1

    try:
        raw = pd.read_csv(
            io.StringIO(content),
            sep=delimiter,
            header=None,
            names=list(range(width)),
            dtype=str,
            keep_default_na=False,
            engine="python",
        )
    except (pd.errors.ParserError, csv.Error) as exc:
        raise ParseFailure(f"CSV parse error: {exc}") from exc

    rows = [_trim_row(r) for r in raw.fillna("").values.tolist()]
    rows = [r for r in rows if r]
    if not rows:
        return pd.DataFrame()

    header_idx = locate_header_row(rows)
    return rows_to_frame(rows, max(header_idx, 0))


# ---- Excel ----

def _excel_cell(value) -> str:
    if value is None or (not isinstance(value, str) and pd.isna(value)) or is_blank(value):
        return ""
    if isinstance(value, datetime):
        return value.date().isoformat()
    if isinstance(value, date):
        return value.isoformat()
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    return str(value).strip()


def read_excel(file_bytes: bytes) -> pd.DataFrame:
    """First worksheet of an .xlsx (openpyxl) or legacy .xls (xlrd) workbook."""
    try:
        raw = pd.read_excel(io.BytesIO(file_bytes), sheet_name=0, header=None, dtype=object)
    except Exception as exc:
        raise ParseFailure(f"Excel parse error: {exc}") from exc

    rows = [[_excel_cell(v) for v in r] for r in raw.itertuples(index=False, name=None)]
    rows = [r for r in rows if any(r)]
    if not rows:
        return pd.DataFrame()

    header_idx = locate_header_row(rows)
    return rows_to_frame(rows, max(header_idx, 0))


# ---- HTML (e.g. ICICI "Detailed Statement") ----

def read_html(file_bytes: bytes) -> pd.DataFrame:
    soup = BeautifulSoup(decode_text(file_bytes), "html.parser")

    rows: List[List[str]] = []
    for tr in soup.find_all("tr"):
        cells = [" ".join(td.get_text(" ", strip=True).split()) for td in tr.find_all(["td", "th"], recursive=False)]
        if cells:
            rows.append(cells)

    if not rows:
        return pd.DataFrame()

    # Real header rows have at least five columns; layout tables do not
    header_idx = locate_header_row(rows, min_cells=5, limit=None)
    if header_idx < 0:
        return pd.DataFrame()

    return rows_to_frame(rows, header_idx, exact_width=True, skip_summaries=True)


# ---- PDF (text extraction, Kotak layout) ----

PDF_HEADERS = ["Date", "Description", "Chq/Ref. No.", "Withdrawal (Dr.)", "Deposit (Cr.)", "Balance"]

# [serial]  DD Mon YYYY  rest-of-line
_PDF_TXN_RE = re.compile(r"^(?:\d+\s+)?(\d{1,2}\s+[A-Za-z]{3}\s+\d{4})\s+(.+)$")
_PDF_AMOUNT_RE = re.compile(r"^-?[\d,]+\.\d{2}$")
_PDF_REF_RE = re.compile(r"^[A-Z0-9\-/]+$", re.IGNORECASE)

_PDF_SKIP_FRAGMENTS = (
    "Account Statement",
    "Opening Balance",
    "Closing Balance",
    "Total Debits",
    "Total Credits",
    "Chq/Ref. No.",
    "Withdrawal (Dr.)",
)

_OUTGOING_HINTS = ("sent", "debit", "withdrawal", "payment to", "transfer to")
_INCOMING_HINTS = ("recd", "received", "credited", "credit", "deposit")


def _pdf_lines(file_bytes: bytes) -> List[str]:
    try:
        with pdfplumber.open(io.BytesIO(file_bytes)) as pdf:
            lines = []
            for page in pdf.pages:
                text = page.extract_text() or ""
                lines.extend(ln.strip() for ln in text.splitlines() if ln.strip())
            return lines
    except Exception as exc:
        raise ParseFailure(f"PDF parse error: {exc}") from exc


def _pdf_direction(text: str) -> str:
    """Guess which column a lone amount sits in from the narration."""
    t = text.lower()
    if any(h in t for h in _OUTGOING_HINTS) or ("upi/" in t and "recd" not in t):
        return "withdrawal"
    if any(h in t for h in _INCOMING_HINTS):
        return "deposit"
    if "upi/" in t or "payment" in t:
        return "withdrawal"
    return "deposit"


def parse_pdf_line(line: str) -> Optional[dict]:
    if any(frag in line for frag in _PDF_SKIP_FRAGMENTS) or re.match(r"^Page\s+\d+", line):
        return None

    m = _PDF_TXN_RE.match(line)
    if not m:
        return None

    date_str, rest = m.group(1), m.group(2)
    tokens = rest.split()
    amount_idx = [i for i, tok in enumerate(tokens) if _PDF_AMOUNT_RE.match(tok)]

    # A lone amount is an opening/closing balance line
    if len(amount_idx) < 2:
        return None

    balance = tokens[amount_idx[-1]]
    withdrawal = deposit = ""
    if len(amount_idx) == 2:
        if _pdf_direction(rest) == "withdrawal":
            withdrawal = tokens[amount_idx[0]]
        else:
            deposit = tokens[amount_idx[0]]
    else:
        withdrawal = tokens[amount_idx[-3]]
        deposit = tokens[amount_idx[-2]]

    before = tokens[: amount_idx[0]]
    reference = ""
    if before and len(before[-1]) <= 20 and _PDF_REF_RE.match(before[-1]):
        reference = before[-1]
        before = before[:-1]

    return {
        "Date": date_str,
        "Description": " ".join(before),
        "Chq/Ref. No.": reference,
        "Withdrawal (Dr.)": withdrawal,
        "Deposit (Cr.)": deposit,
        "Balance": balance,
    }


def read_pdf(file_bytes: bytes) -> pd.DataFrame:
    records = [rec for rec in (parse_pdf_line(ln) for ln in _pdf_lines(file_bytes)) if rec]
    logger.debug("PDF text extraction produced %d candidate rows", len(records))
    return pd.DataFrame(records, columns=PDF_HEADERS, dtype=str)
