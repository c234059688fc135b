from datetime import date
from decimal import Decimal

from bankfeed.services.duplicates import DESCRIPTION_PREFIX, find_reference_match, is_duplicate


def _candidate(**overrides):
    row = {
        "transaction_date": date(2025, 8, 1),
        "deposit_amount": Decimal("500.00"),
        "withdrawal_amount": Decimal("0.00"),
        "reference_number": "UTR123",
        "description": "NEFT FROM ACME CORP",
    }
    row.update(overrides)
    return row


def test_reference_tier_ignores_surrounding_whitespace(db, make_account, make_transaction):
    account_id = make_account()
    make_transaction(account_id, deposit="500.00", reference="UTR123", description="something else")

    assert find_reference_match(db, account_id, _candidate(reference_number="  UTR123 ")) is not None
    assert is_duplicate(db, account_id, _candidate(reference_number="UTR123"))


def test_description_tier_when_reference_differs_or_is_missing(db, make_account, make_transaction):
    account_id = make_account()
    make_transaction(account_id, deposit="500.00", reference=None, description="NEFT FROM ACME CORP")

    assert find_reference_match(db, account_id, _candidate()) is None
    assert is_duplicate(db, account_id, _candidate(reference_number=None))
    assert is_duplicate(db, account_id, _candidate(reference_number="OTHER-REF"))


def test_description_tier_compares_prefix_only(db, make_account, make_transaction):
    account_id = make_account()
    prefix = "X" * DESCRIPTION_PREFIX
    make_transaction(account_id, deposit="500.00", description=prefix + " first tail")

    assert is_duplicate(db, account_id, _candidate(reference_number=None, description=prefix + " second tail"))
    assert not is_duplicate(db, account_id, _candidate(reference_number=None, description="Y" + prefix))


def test_amount_date_and_account_must_match(db, make_account, make_transaction):
    account_id = make_account()
    other_id = make_account(name="Savings")
    make_transaction(account_id, deposit="500.00", reference="UTR123", description="NEFT FROM ACME CORP")

    assert not is_duplicate(db, account_id, _candidate(deposit_amount=Decimal("500.01")))
    assert not is_duplicate(db, account_id, _candidate(transaction_date=date(2025, 8, 2)))
    assert not is_duplicate(
        db, account_id, _candidate(deposit_amount=Decimal("0.00"), withdrawal_amount=Decimal("500.00"))
    )
    assert not is_duplicate(db, other_id, _candidate())
