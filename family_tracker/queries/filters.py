"""
Transaction list filtering and sorting.

All filtering happens over the synchronizer's in-memory snapshot.
"""

from enum import Enum
from typing import Iterable, Optional

from pydantic import BaseModel

from family_tracker.models.records import Category, Transaction, TransactionType


# Member filter value selecting transactions with no member
HOME_MEMBER_FILTER = "home"


class SortOrder(str, Enum):
    DATE_DESC = "date-desc"
    DATE_ASC = "date-asc"
    AMOUNT_DESC = "amount-desc"
    AMOUNT_ASC = "amount-asc"


class TransactionFilter(BaseModel):
    """Current state of the transaction list controls. None means "all"."""
    search: str = ""
    category_id: Optional[str] = None
    type: Optional[TransactionType] = None
    member_id: Optional[str] = None
    sort: SortOrder = SortOrder.DATE_DESC

    def matches(self, transaction: Transaction) -> bool:
        term = self.search.strip().lower()
        if term and term not in transaction.description.lower():
            return False
        if self.category_id and transaction.category_id != self.category_id:
            return False
        if self.type and transaction.type != self.type:
            return False
        if self.member_id == HOME_MEMBER_FILTER:
            return transaction.member_id is None
        if self.member_id and transaction.member_id != self.member_id:
            return False
        return True


def sort_transactions(
    transactions: Iterable[Transaction],
    order: SortOrder = SortOrder.DATE_DESC,
) -> list[Transaction]:
    if order in (SortOrder.AMOUNT_DESC, SortOrder.AMOUNT_ASC):
        return sorted(
            transactions,
            key=lambda t: t.amount,
            reverse=order == SortOrder.AMOUNT_DESC,
        )
    return sorted(
        transactions,
        key=lambda t: t.date,
        reverse=order == SortOrder.DATE_DESC,
    )


def apply_filter(
    transactions: Iterable[Transaction],
    criteria: TransactionFilter,
) -> list[Transaction]:
    """Transactions matching every active control, in the chosen order."""
    return sort_transactions(
        (t for t in transactions if criteria.matches(t)),
        criteria.sort,
    )


def categories_for_type(
    categories: Iterable[Category],
    transaction_type: TransactionType,
) -> list[Category]:
    """Categories the entry form offers for a transaction type."""
    return [c for c in categories if c.type == transaction_type]
