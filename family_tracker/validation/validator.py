"""
Form Validation

DESIGN DECISION: Every form is validated before anything is written.
Validation turns raw form values into typed records or raises a
ValidationError carrying every issue found, so the form can show them
all at once.

Two kinds of checks:
- FIELD CHECKS: required values, number and date formats, lengths
- REFERENCE CHECKS: categories and members that exist, category type
  matching the transaction type, deletes blocked by references

IMPORTANT: Validation NEVER silently fixes issues.
It reports them and the write is not attempted.
"""

import datetime as dt
from decimal import Decimal, InvalidOperation
from typing import Any, Iterable, Optional

from pydantic import BaseModel, Field

from family_tracker.models.records import (
    HOME_BALANCE,
    ICONS,
    Category,
    FamilyMember,
    Transaction,
    TransactionType,
)


class ValidationIssue(BaseModel):
    """A single validation issue found."""

    field: str = Field(
        ...,
        description="Field with the issue"
    )
    issue_type: str = Field(
        ...,
        description="Type of issue (e.g., 'missing', 'invalid_format', 'in_use')"
    )
    message: str = Field(
        ...,
        description="Human-readable description of the issue"
    )
    severity: str = Field(
        default="error",
        pattern="^(error|warning)$",
        description="Issue severity"
    )


class ValidationError(Exception):
    """One or more form values were rejected."""

    def __init__(self, issues: list[ValidationIssue]):
        self.issues = issues
        super().__init__("; ".join(issue.message for issue in issues))


def _missing(field: str, label: str) -> ValidationIssue:
    return ValidationIssue(
        field=field,
        issue_type="missing",
        message=f"{label} is required",
    )


def is_reserved_member_name(name: str) -> bool:
    return (name or "").strip().lower() == HOME_BALANCE.lower()


def count_references(
    transactions: Iterable[Transaction],
    *,
    category_id: Optional[str] = None,
    member_id: Optional[str] = None,
) -> int:
    """Number of transactions using the category or attributed to the member."""
    if category_id is not None:
        return sum(1 for t in transactions if t.category_id == category_id)
    if member_id is not None:
        return sum(1 for t in transactions if t.member_id == member_id)
    return 0


class LedgerValidator:
    """
    Validates transaction, category and member forms.

    Reference checks use the caller's current snapshot; the validator
    holds no state of its own.
    """

    # ------------------------------------------------------------------
    # Field parsing
    # ------------------------------------------------------------------

    def _parse_amount(self, value: Any, issues: list[ValidationIssue]) -> Optional[Decimal]:
        if value is None or (isinstance(value, str) and not value.strip()):
            issues.append(_missing("amount", "Amount"))
            return None
        try:
            amount = Decimal(str(value).strip()).quantize(Decimal("0.01"))
        except (InvalidOperation, ValueError):
            issues.append(ValidationIssue(
                field="amount",
                issue_type="invalid_format",
                message=f"Amount must be a number, got {value!r}",
            ))
            return None
        if not amount.is_finite() or amount < 0:
            issues.append(ValidationIssue(
                field="amount",
                issue_type="invalid_value",
                message="Amount cannot be negative",
            ))
            return None
        return amount

    def _parse_date(self, value: Any, issues: list[ValidationIssue]) -> Optional[dt.date]:
        if value is None or (isinstance(value, str) and not value.strip()):
            issues.append(_missing("date", "Date"))
            return None
        if isinstance(value, dt.datetime):
            return value.date()
        if isinstance(value, dt.date):
            return value
        try:
            return dt.date.fromisoformat(str(value).strip()[:10])
        except ValueError:
            issues.append(ValidationIssue(
                field="date",
                issue_type="invalid_format",
                message=f"Date must be YYYY-MM-DD, got {value!r}",
            ))
            return None

    # ------------------------------------------------------------------
    # Forms
    # ------------------------------------------------------------------

    def validate_transaction(
        self,
        *,
        type: Any,
        amount: Any,
        category_id: Optional[str],
        date: Any,
        description: str = "",
        member_id: Optional[str] = None,
        categories: Iterable[Category] = (),
        members: Iterable[FamilyMember] = (),
    ) -> Transaction:
        """
        Validate the transaction form.

        Raises:
            ValidationError: With every issue found
        """
        issues: list[ValidationIssue] = []

        try:
            transaction_type = TransactionType(type)
        except ValueError:
            transaction_type = None
            issues.append(ValidationIssue(
                field="type",
                issue_type="invalid_value",
                message="Type must be income or expense",
            ))

        parsed_amount = self._parse_amount(amount, issues)
        parsed_date = self._parse_date(date, issues)

        category = None
        if not category_id:
            issues.append(_missing("category_id", "Category"))
        else:
            category = next((c for c in categories if c.id == category_id), None)
            if category is None:
                issues.append(ValidationIssue(
                    field="category_id",
                    issue_type="not_found",
                    message="Selected category no longer exists",
                ))
            elif transaction_type and category.type != transaction_type:
                issues.append(ValidationIssue(
                    field="category_id",
                    issue_type="type_mismatch",
                    message=(
                        f"Category '{category.name}' is for {category.type.value} "
                        f"entries, not {transaction_type.value}"
                    ),
                ))

        member_id = member_id or None
        if member_id and not any(m.id == member_id for m in members):
            issues.append(ValidationIssue(
                field="member_id",
                issue_type="not_found",
                message="Selected family member no longer exists",
            ))

        if description and len(description) > 500:
            issues.append(ValidationIssue(
                field="description",
                issue_type="too_long",
                message="Description must be at most 500 characters",
            ))

        if issues:
            raise ValidationError(issues)

        return Transaction(
            type=transaction_type,
            amount=parsed_amount,
            category_id=category_id,
            date=parsed_date,
            description=(description or "").strip(),
            member_id=member_id,
        )

    def validate_category(
        self,
        *,
        name: str,
        type: Any = TransactionType.EXPENSE,
        color: str = "#64748b",
        icon: str = "OTHER",
    ) -> Category:
        issues: list[ValidationIssue] = []
        name = (name or "").strip()
        if not name:
            issues.append(_missing("name", "Category name"))
        elif len(name) > 60:
            issues.append(ValidationIssue(
                field="name",
                issue_type="too_long",
                message="Category name must be at most 60 characters",
            ))

        try:
            category_type = TransactionType(type)
        except ValueError:
            category_type = None
            issues.append(ValidationIssue(
                field="type",
                issue_type="invalid_value",
                message="Type must be income or expense",
            ))

        if (icon or "").upper() not in ICONS:
            issues.append(ValidationIssue(
                field="icon",
                issue_type="invalid_value",
                message=f"Unknown icon {icon!r}",
            ))

        if issues:
            raise ValidationError(issues)

        return Category(name=name, type=category_type, color=color, icon=icon.upper())

    def validate_member(self, *, name: str) -> FamilyMember:
        """Reject empty names and the reserved Home Balance name."""
        name = (name or "").strip()
        if not name:
            raise ValidationError([_missing("name", "Member name")])
        if is_reserved_member_name(name):
            raise ValidationError([ValidationIssue(
                field="name",
                issue_type="reserved",
                message=f"'{HOME_BALANCE}' is reserved for unassigned transactions",
            )])
        if len(name) > 60:
            raise ValidationError([ValidationIssue(
                field="name",
                issue_type="too_long",
                message="Member name must be at most 60 characters",
            )])
        return FamilyMember(name=name)

    # ------------------------------------------------------------------
    # Delete guards
    # ------------------------------------------------------------------

    def check_category_delete(
        self,
        category_id: str,
        transactions: Iterable[Transaction],
    ) -> None:
        """
        Raises:
            ValidationError: If any transaction uses the category
        """
        in_use = count_references(transactions, category_id=category_id)
        if in_use:
            raise ValidationError([ValidationIssue(
                field="category_id",
                issue_type="in_use",
                message=(
                    f"Cannot delete category: it is used by {in_use} "
                    f"transaction{'s' if in_use != 1 else ''}"
                ),
            )])

    def check_member_delete(
        self,
        member_id: str,
        transactions: Iterable[Transaction],
    ) -> None:
        """
        Raises:
            ValidationError: If any transaction is attributed to the member
        """
        in_use = count_references(transactions, member_id=member_id)
        if in_use:
            raise ValidationError([ValidationIssue(
                field="member_id",
                issue_type="in_use",
                message=(
                    f"Cannot delete member: {in_use} "
                    f"transaction{'s are' if in_use != 1 else ' is'} attributed to them"
                ),
            )])

