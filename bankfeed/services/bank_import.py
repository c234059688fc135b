# bankfeed/services/bank_import.py
#
# Import/Preview Service
# Orchestrates parse -> dedup -> insert for one statement file, plus the
# batch-scoped undo. Every function returns a plain dict.

import logging
from typing import Any, Dict, List

from sqlalchemy.orm import Session

from bankfeed.config import settings
from bankfeed.errors import NotFound
from bankfeed.models import BankAccount, BankTransaction
from bankfeed.services.account_locks import locked_account
from bankfeed.services.balance import recompute_balance
from bankfeed.services.bank_formats import AUTO
from bankfeed.services.categorization import reverse
from bankfeed.services.duplicates import is_duplicate
from bankfeed.services.import_helpers import build_transaction_from_dict, new_import_batch_id
from bankfeed.services.statement_parser import parse_statement

logger = logging.getLogger(__name__)


def _preview_record(tx: dict) -> dict:
    return {
        **tx,
        "transaction_date": tx["transaction_date"].isoformat(),
        "value_date": tx["value_date"].isoformat() if tx.get("value_date") else None,
    }


def preview_statement(file_bytes: bytes, filename: str, bank_format: str = AUTO) -> Dict[str, Any]:
    """Parse only. Nothing is written."""
    result = parse_statement(file_bytes, filename, bank_format)
    return {
        "parsed_count": len(result.transactions),
        "total_rows": result.total_rows,
        "detected_format": result.detected_format,
        "source_type": result.source_type,
        "account_number": result.account_number,
        "mapping": result.mapping,
        "headers": result.headers,
        "transactions": [_preview_record(tx) for tx in result.transactions],
        "errors": result.warnings,
    }


def import_statement(
    db: Session,
    account_id: int,
    file_bytes: bytes,
    filename: str,
    bank_format: str = AUTO,
) -> Dict[str, Any]:
    """
    Import a statement into `account_id`.

    Rows are handled in file order: duplicate check, insert, flush, so a
    row repeated later in the same file is caught as a duplicate. The
    account balance is recomputed once at the end.
    """
    if db.get(BankAccount, account_id) is None:
        raise NotFound(f"Bank account {account_id} not found")

    result = parse_statement(file_bytes, filename, bank_format)
    batch_id = new_import_batch_id()
    errors: List[str] = list(result.warnings)
    imported = skipped = failed = 0

    with locked_account(db, account_id):
        for idx, tx in enumerate(result.transactions, start=1):
            try:
                txn = build_transaction_from_dict(tx, account_id, batch_id)
            except (ValueError, TypeError, ArithmeticError) as exc:
                failed += 1
                logger.warning("Import row %d failed: %s", idx, exc)
                if failed <= settings.import_max_errors:
                    errors.append(f"Row {idx}: {exc}")
                continue

            if is_duplicate(db, account_id, tx):
                skipped += 1
                logger.debug("Row %d is a duplicate, skipped", idx)
                continue

            db.add(txn)
            db.flush()
            imported += 1

        if failed > settings.import_max_errors:
            errors.append(f"...and {failed - settings.import_max_errors} more row errors")

        recompute_balance(db, account_id)

    logger.info(
        "Imported %s into account %s: batch=%s imported=%d skipped=%d failed=%d format=%s",
        filename or "<upload>", account_id, batch_id, imported, skipped, failed, result.detected_format,
    )
    return {
        "imported_count": imported,
        "skipped_count": skipped,
        "total_count": len(result.transactions),
        "detected_format": result.detected_format,
        "import_batch_id": batch_id,
        "mapping": result.mapping,
        "errors": errors,
    }


def delete_batch(db: Session, batch_id: str) -> Dict[str, Any]:
    """
    Undo an import: delete the non-reconciled rows of a batch.

    Categorized rows are reversed first so their invoices/bills are restored.
    Reconciled rows stay and are counted in `skipped_reconciled`.
    """
    rows = db.query(BankTransaction).filter(BankTransaction.import_batch_id == batch_id).all()
    if not rows:
        raise NotFound(f"No transactions found for import batch {batch_id}")

    deleted = skipped = 0
    for account_id in sorted({t.bank_account_id for t in rows}):
        with locked_account(db, account_id):
            batch_rows = (
                db.query(BankTransaction)
                .filter(
                    BankTransaction.import_batch_id == batch_id,
                    BankTransaction.bank_account_id == account_id,
                )
                .all()
            )
            for txn in batch_rows:
                if txn.is_reconciled:
                    skipped += 1
                    continue
                reverse(db, txn)
                db.delete(txn)
                deleted += 1
            recompute_balance(db, account_id)

    logger.info("Deleted batch %s: deleted=%d kept_reconciled=%d", batch_id, deleted, skipped)
    return {
        "deleted_count": deleted,
        "skipped_reconciled": skipped,
        "total_in_batch": len(rows),
        "batch_id": batch_id,
    }
