import io
from datetime import date, datetime
from decimal import Decimal

import pytest
from openpyxl import Workbook

from bankfeed.errors import ParseFailure, ValidationFailed
from bankfeed.services.bank_formats import KOTAK, build_column_mapping
from bankfeed.services.statement_parser import MAX_ROW_WARNINGS, normalize_row, parse_statement
from bankfeed.services.statement_readers import PDF_HEADERS, guess_delimiter, parse_pdf_line, read_csv

ICICI_CSV = (
    "ICICI Bank Statement\n"
    "Account Number,XXXX1234\n"
    "S No.,Value Date,Transaction Date,Cheque Number,Transaction Remarks,"
    "Withdrawal Amount (INR ),Deposit Amount (INR ),Balance (INR )\n"
    '1,02/08/2025,01/08/2025,-,NEFT-ACME CORP-INV101,,"50,000.00","1,50,000.00"\n'
    '2,02/08/2025,02/08/2025,123456,SMS CHARGES,15.00,,"1,49,985.00"\n'
).encode("utf-8")


def test_icici_csv_with_metadata_rows():
    result = parse_statement(ICICI_CSV, "icici.csv")

    assert result.detected_format == "ICICI"
    assert result.source_type == "CSV"
    assert result.total_rows == 2
    assert result.warnings == []
    assert result.mapping["date_column"] == "Transaction Date"

    first, second = result.transactions
    assert first["transaction_date"] == date(2025, 8, 1)
    assert first["value_date"] == date(2025, 8, 2)
    assert first["deposit_amount"] == Decimal("50000.00")
    assert first["withdrawal_amount"] == Decimal("0.00")
    assert first["balance"] == Decimal("150000.00")
    assert first["reference_number"] is None
    assert first["category"] == "Transfer"

    assert second["withdrawal_amount"] == Decimal("15.00")
    assert second["reference_number"] == "123456"
    assert second["category"] == "Bank Charges"


def test_kotak_amount_with_dr_cr_indicator():
    content = (
        "Sl. No.,Transaction Date,Value Date,Description,Chq / Ref No.,Amount,Dr / Cr,Balance,Dr / Cr\n"
        '1,05-08-2025,05-08-2025,UPI/ACME/12345,UPI12345,"1,200.00",DR,"8,800.00",CR\n'
        '2,06-08-2025,06-08-2025,NEFT RECD FROM XYZ,NEFT999,500.00,CR,"9,300.00",CR\n'
    ).encode("utf-8")

    result = parse_statement(content, "kotak.csv")

    assert result.detected_format == "KOTAK"
    assert "Dr / Cr_2" in result.headers
    debit, credit = result.transactions
    assert debit["withdrawal_amount"] == Decimal("1200.00")
    assert debit["deposit_amount"] == Decimal("0.00")
    assert credit["deposit_amount"] == Decimal("500.00")
    assert credit["reference_number"] == "NEFT999"


def test_hdfc_two_digit_years_and_declared_format():
    content = (
        "Date,Narration,Chq./Ref.No.,Value Dt,Withdrawal Amt.,Deposit Amt.,Closing Balance\n"
        '01/08/25,ATM CASH WDL,0000123,01/08/25,"2,000.00",,"48,000.00"\n'
    ).encode("utf-8")

    result = parse_statement(content, "hdfc.csv", "hdfc")

    assert result.detected_format == "HDFC"
    (txn,) = result.transactions
    assert txn["transaction_date"] == date(2025, 8, 1)
    assert txn["withdrawal_amount"] == Decimal("2000.00")
    assert txn["reference_number"] == "0000123"


def test_generic_fallback_with_signed_amount_column():
    content = (
        "Date;Description;Amount\n"
        "03/08/2025;Coffee shop;-250.00\n"
        "04/08/2025;Client settlement;1,000.00 Cr\n"
    ).encode("utf-8")

    result = parse_statement(content, "bank.csv")

    assert result.detected_format == "GENERIC"
    out, incoming = result.transactions
    assert out["withdrawal_amount"] == Decimal("250.00")
    assert incoming["deposit_amount"] == Decimal("1000.00")


def test_generic_fallback_fuzzy_header():
    content = (
        "Date,Narations,Debit,Credit,Balance\n"
        "03/08/2025,Stationery,120.00,,880.00\n"
    ).encode("utf-8")

    result = parse_statement(content, "bank.csv")

    assert result.mapping["description_column"] == "Narations"
    assert result.transactions[0]["description"] == "Stationery"


def test_bad_rows_become_warnings():
    content = (
        "Date,Description,Debit,Credit,Balance\n"
        "01/08/2025,Coffee,50.00,,950.00\n"
        "bad-date,Something,10.00,,940.00\n"
        "02/08/2025,Zero row,,,940.00\n"
    ).encode("utf-8")

    result = parse_statement(content, "bank.csv")

    assert len(result.transactions) == 1
    assert result.total_rows == 3
    assert result.warnings == ["Row 2: unparseable date 'bad-date'", "Row 3: zero amount"]


def test_row_warnings_are_capped():
    lines = ["Date,Description,Debit,Credit"]
    lines += [f"not-a-date,Row {i},1.00," for i in range(MAX_ROW_WARNINGS + 3)]
    content = "\n".join(lines).encode("utf-8")

    result = parse_statement(content, "bank.csv")

    assert result.transactions == []
    assert len(result.warnings) == MAX_ROW_WARNINGS + 1
    assert result.warnings[-1] == "...and 3 more skipped rows"


def test_missing_date_column_is_reported():
    content = b"Description,Debit,Credit\nCoffee,50.00,\n"

    result = parse_statement(content, "bank.csv")

    assert result.transactions == []
    assert any("date column" in w for w in result.warnings)


def test_unknown_declared_format_is_rejected():
    with pytest.raises(ValidationFailed):
        parse_statement(ICICI_CSV, "icici.csv", "BANK_OF_NOWHERE")


def test_undecodable_text_raises_parse_failure():
    with pytest.raises(ParseFailure):
        parse_statement(b"Date,Amount\n\x81\x8d\x8f\x90\x9d\n", "bank.csv")


def test_corrupt_workbook_raises_parse_failure():
    with pytest.raises(ParseFailure):
        parse_statement(b"PK\x03\x04 definitely not a zip archive", "statement.xlsx")


def test_utf16_csv():
    content = "Date\tDescription\tDebit\tCredit\n01/08/2025\tTea\t20.00\t\n".encode("utf-16")

    result = parse_statement(content, "bank.csv")

    assert result.transactions[0]["withdrawal_amount"] == Decimal("20.00")


def test_guess_delimiter():
    assert guess_delimiter("a;b;c\n1;2;3") == ";"
    assert guess_delimiter("a|b|c\n1|2|3") == "|"
    assert guess_delimiter("single column") == ","


# ---- Excel / HTML ----


def test_xlsx_statement():
    wb = Workbook()
    ws = wb.active
    ws.append(["HDFC BANK"])
    ws.append(["Date", "Narration", "Chq./Ref.No.", "Value Dt", "Withdrawal Amt.", "Deposit Amt.", "Closing Balance"])
    ws.append([datetime(2025, 8, 1), "SALARY AUG", "REF1", datetime(2025, 8, 1), None, 75000.5, 125000.5])
    ws.append(["05/08/2025", "RENT", "REF2", "05/08/2025", 20000, None, 105000.5])
    buf = io.BytesIO()
    wb.save(buf)

    result = parse_statement(buf.getvalue(), "statement.xlsx")

    assert result.source_type == "EXCEL"
    assert result.detected_format == "HDFC"
    salary, rent = result.transactions
    assert salary["transaction_date"] == date(2025, 8, 1)
    assert salary["deposit_amount"] == Decimal("75000.50")
    assert salary["category"] == "Salary"
    assert rent["withdrawal_amount"] == Decimal("20000.00")
    assert rent["balance"] == Decimal("105000.50")


def test_html_statement_skips_layout_and_total_rows():
    content = """
    <html><body>
    <table><tr><td>Detailed Statement</td></tr></table>
    <table>
      <tr><td>S No.</td><td>Value Date</td><td>Transaction Date</td><td>Cheque Number</td>
          <td>Transaction Remarks</td><td>Withdrawal Amount (INR )</td><td>Deposit Amount (INR )</td>
          <td>Balance (INR )</td></tr>
      <tr><td>1</td><td>01/08/2025</td><td>01/08/2025</td><td>-</td><td>NEFT-ACME</td>
          <td></td><td>5,000.00</td><td>15,000.00</td></tr>
      <tr><td>2</td><td>03/08/2025</td><td>03/08/2025</td><td>778899</td><td>BANK CHARGES</td>
          <td>25.00</td><td></td><td>14,975.00</td></tr>
      <tr><td></td><td></td><td></td><td></td><td>Page Total</td>
          <td>25.00</td><td>5,000.00</td><td></td></tr>
    </table>
    </body></html>
    """.encode("utf-8")

    result = parse_statement(content, "statement.html")

    assert result.source_type == "HTML"
    assert result.detected_format == "ICICI"
    assert len(result.transactions) == 2
    assert result.transactions[1]["withdrawal_amount"] == Decimal("25.00")
    assert result.transactions[1]["category"] == "Bank Charges"


# ---- MT940 ----

MT940_TEXT = """{1:F01BANKINBBAXXX0000000000}{2:I940BANKINBBXXXXN}{4:
:20:STMT2025080001
:25:123456789012
:28C:00001/001
:60F:C250731INR100000,00
:61:2508010801C50000,00NTRFINV101//BANKREF1
:86:NEFT CR ACME CORP
INVOICE 101
:61:2508020802D1500,50NCHGNOREF
:86:SMS CHARGES AUG
:61:2501011231D100,00NTRFREF9
:61:BADLINE
:62F:C250802INR148399,50
-}
"""


def test_mt940_statement():
    result = parse_statement(MT940_TEXT.encode("utf-8"), "statement.txt")

    assert result.detected_format == "MT940"
    assert result.account_number == "123456789012"
    assert len(result.transactions) == 3
    assert len(result.warnings) == 1
    assert result.warnings[0].startswith("Line ")

    credit, charge, year_end = result.transactions
    assert credit["transaction_date"] == date(2025, 8, 1)
    assert credit["deposit_amount"] == Decimal("50000.00")
    assert credit["reference_number"] == "INV101"
    assert credit["description"] == "NEFT CR ACME CORP INVOICE 101"
    assert credit["category"] == "Transfer"

    assert charge["withdrawal_amount"] == Decimal("1500.50")
    assert charge["reference_number"] is None
    assert charge["category"] == "Bank Charges"

    # Value date in December for a January entry belongs to the previous year
    assert year_end["transaction_date"] == date(2025, 1, 1)
    assert year_end["value_date"] == date(2024, 12, 31)


def test_mt940_declared_format_overrides_extension():
    text = ":20:REF\n:25:ACC1\n:61:2508050805C10,00NTRFX1\n:86:INT CREDIT\n"

    result = parse_statement(text.encode("utf-8"), "export.dat", "MT940")

    assert result.detected_format == "MT940"
    assert result.transactions[0]["deposit_amount"] == Decimal("10.00")
    assert result.transactions[0]["category"] == "Interest Income"


# ---- PDF text lines ----


def test_pdf_line_with_single_amount_uses_narration_direction():
    upi = parse_pdf_line("1 01 Aug 2025 UPI/ACME/123 UPIREF123 1,200.00 8,800.00")
    assert upi["Date"] == "01 Aug 2025"
    assert upi["Description"] == "UPI/ACME/123"
    assert upi["Chq/Ref. No."] == "UPIREF123"
    assert upi["Withdrawal (Dr.)"] == "1,200.00"
    assert upi["Deposit (Cr.)"] == ""

    neft = parse_pdf_line("05 Aug 2025 NEFT RECD FROM XYZ N1234 5,000.00 13,800.00")
    assert neft["Description"] == "NEFT RECD FROM XYZ"
    assert neft["Deposit (Cr.)"] == "5,000.00"


def test_pdf_line_with_both_columns():
    row = parse_pdf_line("02 Aug 2025 Cash deposit at branch. 0.00 150.00 8,950.00")
    assert row["Withdrawal (Dr.)"] == "0.00"
    assert row["Deposit (Cr.)"] == "150.00"
    assert row["Balance"] == "8,950.00"


def test_pdf_non_transaction_lines_are_ignored():
    assert parse_pdf_line("Opening Balance 10,000.00") is None
    assert parse_pdf_line("01 Aug 2025 B/F 10,000.00") is None
    assert parse_pdf_line("Page 2 of 3") is None


def test_pdf_rows_normalize_with_kotak_mapping():
    mapping = build_column_mapping(PDF_HEADERS, KOTAK)
    row = parse_pdf_line("01 Aug 2025 UPI/ACME/123 UPIREF123 1,200.00 8,800.00")

    txn = normalize_row(row, mapping)

    assert txn["transaction_date"] == date(2025, 8, 1)
    assert txn["withdrawal_amount"] == Decimal("1200.00")
    assert txn["balance"] == Decimal("8800.00")
    assert txn["reference_number"] == "UPIREF123"


def test_read_csv_keeps_quoted_delimiters_and_drops_trailing_blanks():
    content = (
        "Statement for account 0042\n"
        "Date,Narration,Debit,Credit,Balance,\n"
        '01/08/2025,"RENT, AUGUST","1,000.00",,"9,000.00",\n'
        "\n"
        "02/08/2025,SALARY,,500.00,9500.00\n"
    ).encode("utf-8")

    frame = read_csv(content)

    assert list(frame.columns) == ["Date", "Narration", "Debit", "Credit", "Balance"]
    assert frame.shape == (2, 5)
    assert frame.iloc[0]["Narration"] == "RENT, AUGUST"
    assert frame.iloc[0]["Debit"] == "1,000.00"
    assert frame.iloc[1]["Credit"] == "500.00"
    assert frame.iloc[1]["Debit"] == ""
