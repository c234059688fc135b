"""
This script imports every bank statement file found in a folder into one
bank account, using the same parse -> dedup -> insert path as the upload API.

Re-running it over the same folder is safe: rows already present in the
account are detected as duplicates and skipped.

Usage:
    python scripts/import_statements.py statements/2025-08 --account-id 1
    python scripts/import_statements.py statements/ --account-id 2 --format HDFC
"""

from __future__ import annotations

import argparse
import logging
import sys
from pathlib import Path

from bankfeed.config import settings
from bankfeed.db import Base, SessionLocal, engine
from bankfeed.errors import BankFeedError
from bankfeed.logging_setup import configure_logging
from bankfeed.services.bank_formats import AUTO, known_format_keys
from bankfeed.services.bank_import import import_statement

logger = logging.getLogger("import_statements")


def statement_files(folder: Path) -> list[Path]:
    allowed = set(settings.allowed_extensions)
    return sorted(p for p in folder.iterdir() if p.is_file() and p.suffix.lower().lstrip(".") in allowed)


def import_folder(folder: Path, account_id: int, bank_format: str = AUTO) -> int:
    """Import all statements in `folder`. Returns the number of rows inserted."""
    folder = Path(folder)
    files = statement_files(folder)
    if not files:
        raise FileNotFoundError(f"No statement files found in: {folder.resolve()}")

    Base.metadata.create_all(bind=engine)

    session = SessionLocal()
    total_imported = 0

    try:
        for f in files:
            try:
                result = import_statement(session, account_id, f.read_bytes(), f.name, bank_format)
            except BankFeedError as exc:
                print(f"[skip] {f.name}: {exc.message}")
                continue

            total_imported += result["imported_count"]
            print(
                f"[ok]   {f.name}: {result['detected_format']} "
                f"imported={result['imported_count']} skipped={result['skipped_count']} "
                f"total={result['total_count']} batch={result['import_batch_id']}"
            )
            for err in result["errors"]:
                print(f"         ! {err}")

        print(f"\nDONE. Total imported: {total_imported}")
    finally:
        session.close()

    return total_imported


def main(argv: list[str] | None = None) -> int:
    parser = argparse.ArgumentParser(description="Import a folder of bank statements into one account.")
    parser.add_argument("folder", type=Path)
    parser.add_argument("--account-id", type=int, required=True)
    parser.add_argument("--format", dest="bank_format", default=AUTO, choices=known_format_keys())
    args = parser.parse_args(argv)

    configure_logging()
    try:
        import_folder(args.folder, args.account_id, args.bank_format)
    except FileNotFoundError as exc:
        logger.error("%s", exc)
        return 1
    return 0


if __name__ == "__main__":
    sys.exit(main())
