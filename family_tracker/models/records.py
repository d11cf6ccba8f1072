"""
Core Ledger Models

These models define the strict schemas for every record the household
ledger stores. They are designed to:
1. Enforce type safety at runtime
2. Provide clear validation error messages
3. Round-trip through the document store and JSON backups unchanged
4. Keep the store's camelCase field names out of Python code

DESIGN DECISION: Records are pydantic v2 models with camelCase aliases.
Python code uses snake_case attributes; documents and backups use the
camelCase names existing data was written with.
"""

import datetime as dt
from decimal import Decimal
from enum import Enum
from typing import Any, Optional

from pydantic import (
    BaseModel,
    ConfigDict,
    Field,
    field_serializer,
    field_validator,
    model_validator,
)
from pydantic.alias_generators import to_camel


# =============================================================================
# ENUMS AND CONSTANTS
# =============================================================================

class TransactionType(str, Enum):
    """Direction of money flow. Also partitions categories."""
    INCOME = "income"
    EXPENSE = "expense"


# Pseudo-member for transactions that are not attributed to anyone
HOME_BALANCE = "Home Balance"

UNCATEGORIZED = "Uncategorized"

# Fixed icon set. Categories store one of these keys.
ICONS = (
    "SALARY",
    "GIFTS",
    "FOOD",
    "GROCERIES",
    "TRANSPORT",
    "SHOPPING",
    "BILLS",
    "HEALTH",
    "EDUCATION",
    "ENTERTAINMENT",
    "HOME",
    "OTHER",
)

# Categories written before categories carried a type were classified by name
LEGACY_INCOME_CATEGORY_NAMES = frozenset({"salary", "gifts"})


def icon_for_name(name: str) -> str:
    """Icon key matching a category name, or OTHER."""
    key = (name or "").strip().upper()
    return key if key in ICONS else "OTHER"


# =============================================================================
# BASE RECORD
# =============================================================================

class StoredRecord(BaseModel):
    """
    Base class for every document-backed record.

    `id` is the document id and is never written into the document body.
    `created_at` is assigned by the store on create.
    """
    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        str_strip_whitespace=True,
    )

    id: Optional[str] = Field(
        default=None,
        description="Document id (assigned by the store)"
    )
    created_at: Optional[dt.datetime] = Field(
        default=None,
        description="Server-assigned creation timestamp"
    )

    def to_document(self) -> dict[str, Any]:
        """Body to write to the store (no id, no server-managed fields)."""
        return self.model_dump(
            mode="json",
            by_alias=True,
            exclude={"id", "created_at"},
        )

    @classmethod
    def from_document(cls, doc_id: str, data: dict[str, Any]):
        """Build a record from a store document."""
        return cls.model_validate({**data, "id": doc_id})


# =============================================================================
# LEDGER RECORDS
# =============================================================================

class Category(StoredRecord):
    """
    A spending or income category.

    The type decides which transactions may use it in the entry form.
    """

    name: str = Field(
        ...,
        min_length=1,
        max_length=60,
        description="Display name"
    )
    color: str = Field(
        default="#64748b",
        max_length=32,
        description="Display colour token"
    )
    icon: str = Field(
        default="OTHER",
        description="Key into the fixed icon set"
    )
    type: TransactionType = Field(
        default=TransactionType.EXPENSE,
        description="Whether income or expense transactions use this category"
    )

    @model_validator(mode="before")
    @classmethod
    def fill_legacy_fields(cls, data: Any) -> Any:
        """Older documents have no type and may hold a non-string icon."""
        if not isinstance(data, dict):
            return data
        data = dict(data)
        name = str(data.get("name") or "")
        if not data.get("type"):
            data["type"] = (
                TransactionType.INCOME.value
                if name.strip().lower() in LEGACY_INCOME_CATEGORY_NAMES
                else TransactionType.EXPENSE.value
            )
        icon = data.get("icon")
        if not isinstance(icon, str) or icon.upper() not in ICONS:
            data["icon"] = icon_for_name(name)
        else:
            data["icon"] = icon.upper()
        return data


class FamilyMember(StoredRecord):
    """A person transactions can be attributed to."""

    name: str = Field(
        ...,
        min_length=1,
        max_length=60,
        description="Member name"
    )


class Transaction(StoredRecord):
    """A single income or expense entry."""

    type: TransactionType = Field(
        ...,
        description="Income or expense"
    )
    amount: Decimal = Field(
        ...,
        ge=0,
        description="Non-negative amount"
    )
    category_id: str = Field(
        ...,
        min_length=1,
        description="Referenced category id"
    )
    date: dt.date = Field(
        ...,
        description="Calendar date of the transaction"
    )
    description: str = Field(
        default="",
        max_length=500,
        description="Free-text description"
    )
    member_id: Optional[str] = Field(
        default=None,
        description="Referenced family member; None means Home Balance"
    )

    @field_validator("member_id", mode="before")
    @classmethod
    def blank_member_is_home(cls, v: Any) -> Any:
        if isinstance(v, str) and not v.strip():
            return None
        return v

    @field_validator("date", mode="before")
    @classmethod
    def accept_datetime_strings(cls, v: Any) -> Any:
        """Accept full ISO timestamps by keeping only the calendar date."""
        if isinstance(v, dt.datetime):
            return v.date()
        if isinstance(v, str) and "T" in v:
            return v.split("T", 1)[0]
        return v

    @field_serializer("amount")
    def serialize_amount(self, amount: Decimal) -> float:
        # Stored and exported as a JSON number, like existing data
        return float(amount)

    @property
    def signed_amount(self) -> Decimal:
        return self.amount if self.type == TransactionType.INCOME else -self.amount


class LedgerSnapshot(BaseModel):
    """
    One consistent view of a user's three collections.

    Built from the synchronizers' latest snapshots and handed to the
    dashboard, the backup exporter and the assistant.
    """

    transactions: list[Transaction] = Field(default_factory=list)
    categories: list[Category] = Field(default_factory=list)
    members: list[FamilyMember] = Field(default_factory=list)

    def category_names(self) -> dict[str, str]:
        return {c.id: c.name for c in self.categories if c.id}

    def member_names(self) -> dict[str, str]:
        return {m.id: m.name for m in self.members if m.id}


# =============================================================================
# DEFAULTS
# =============================================================================

DEFAULT_CATEGORIES: tuple[Category, ...] = (
    Category(name="Salary", color="#22c55e", icon="SALARY", type=TransactionType.INCOME),
    Category(name="Gifts", color="#14b8a6", icon="GIFTS", type=TransactionType.INCOME),
    Category(name="Food", color="#f97316", icon="FOOD", type=TransactionType.EXPENSE),
    Category(name="Groceries", color="#eab308", icon="GROCERIES", type=TransactionType.EXPENSE),
    Category(name="Transport", color="#3b82f6", icon="TRANSPORT", type=TransactionType.EXPENSE),
    Category(name="Shopping", color="#ec4899", icon="SHOPPING", type=TransactionType.EXPENSE),
    Category(name="Bills", color="#ef4444", icon="BILLS", type=TransactionType.EXPENSE),
    Category(name="Health", color="#10b981", icon="HEALTH", type=TransactionType.EXPENSE),
    Category(name="Education", color="#6366f1", icon="EDUCATION", type=TransactionType.EXPENSE),
    Category(name="Entertainment", color="#a855f7", icon="ENTERTAINMENT", type=TransactionType.EXPENSE),
    Category(name="Other", color="#64748b", icon="OTHER", type=TransactionType.EXPENSE),
)
