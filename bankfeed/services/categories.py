# bankfeed/services/categories.py
#
# Closed category table for bank transaction categorization.
#
# Each category has a direction (money in / money out) and the kind of
# counterparty link it requires. Categorization switches on `link`, never on
# ad hoc category-name membership.

from dataclasses import dataclass
from enum import Enum
from typing import Dict, List


class Direction(str, Enum):
    DEPOSIT = "Deposit"
    WITHDRAWAL = "Withdrawal"


class LinkType(str, Enum):
    CUSTOMER = "customer_link"
    VENDOR = "vendor_link"
    SUB_ACCOUNT = "sub_account"
    BANK_ACCOUNT = "bank_account"
    SIMPLE = "simple"


@dataclass(frozen=True)
class CategoryDefinition:
    key: str
    label: str
    link: LinkType
    direction: Direction

    def to_dict(self) -> Dict[str, str]:
        return {
            "key": self.key,
            "label": self.label,
            "type": self.link.value,
            "direction": self.direction.value,
        }


CUSTOMER_PAYMENT = "customer_payment"
VENDOR_PAYMENT = "vendor_payment"

_D, _W = Direction.DEPOSIT, Direction.WITHDRAWAL

CATEGORIES: List[CategoryDefinition] = [
    # Money in
    CategoryDefinition(CUSTOMER_PAYMENT, "Customer Payment", LinkType.CUSTOMER, _D),
    CategoryDefinition("retainer_payment", "Retainer Payment", LinkType.CUSTOMER, _D),
    CategoryDefinition("transfer_from", "Transfer From Another Account", LinkType.BANK_ACCOUNT, _D),
    CategoryDefinition("interest_income", "Interest Income", LinkType.SUB_ACCOUNT, _D),
    CategoryDefinition("other_income", "Other Income", LinkType.SUB_ACCOUNT, _D),
    CategoryDefinition("expense_refund", "Expense Refund", LinkType.SUB_ACCOUNT, _D),
    CategoryDefinition("deposit_other", "Deposit From Other Accounts", LinkType.BANK_ACCOUNT, _D),
    # Money out
    CategoryDefinition(VENDOR_PAYMENT, "Vendor Payment", LinkType.VENDOR, _W),
    CategoryDefinition("expense", "Expense", LinkType.SUB_ACCOUNT, _W),
    CategoryDefinition("payroll", "Payroll", LinkType.SIMPLE, _W),
    CategoryDefinition("owners_contribution", "Owner's Drawings", LinkType.SUB_ACCOUNT, _W),
    CategoryDefinition("vendor_credit_refund", "Vendor Credit Refund", LinkType.VENDOR, _W),
    CategoryDefinition("transfer_to", "Transfer To Another Account", LinkType.BANK_ACCOUNT, _W),
]

CATEGORY_BY_KEY: Dict[str, CategoryDefinition] = {c.key: c for c in CATEGORIES}


def categorization_options() -> Dict[str, List[Dict[str, str]]]:
    return {
        "deposit": [c.to_dict() for c in CATEGORIES if c.direction is Direction.DEPOSIT],
        "withdrawal": [c.to_dict() for c in CATEGORIES if c.direction is Direction.WITHDRAWAL],
    }
