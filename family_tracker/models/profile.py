"""
Identity and Access Models

A signed-in identity comes from the authentication provider. Whether that
identity may use the app is decided by its profile document in the global
`users` collection, which only the administrator can change.

CRITICAL: accessExpiresAt is only meaningful while status is APPROVED.
None means the grant never expires.
"""

from datetime import datetime, timedelta, timezone
from enum import Enum
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field, field_serializer, field_validator
from pydantic.alias_generators import to_camel


class UserStatus(str, Enum):
    """Stored approval status of a profile."""
    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"


class AccessState(str, Enum):
    """
    Derived access state of the current session.

    Only ADMIN and APPROVED may see the ledger.
    """
    LOADING = "loading"
    NO_AUTH = "no-auth"
    ADMIN = "admin"
    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"
    EXPIRED = "expired"

    @property
    def has_access(self) -> bool:
        return self in (AccessState.ADMIN, AccessState.APPROVED)


class Identity(BaseModel):
    """An authenticated principal as reported by the identity provider."""
    model_config = ConfigDict(frozen=True)

    uid: str = Field(..., min_length=1)
    email: Optional[str] = None
    id_token: Optional[str] = Field(default=None, repr=False)
    refresh_token: Optional[str] = Field(default=None, repr=False)


_EPOCH = datetime(1970, 1, 1, tzinfo=timezone.utc)
_MILLISECOND = timedelta(milliseconds=1)


def to_epoch_millis(value: datetime) -> int:
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    # Integer arithmetic; float timestamps lose the last millisecond
    return (value - _EPOCH) // _MILLISECOND


def from_timestamp_value(value: Any) -> Any:
    """Epoch milliseconds (as written by the web client) or a datetime."""
    if value is None or isinstance(value, datetime):
        return value
    if isinstance(value, bool):
        return value
    if isinstance(value, (int, float)):
        return _EPOCH + timedelta(milliseconds=value)
    if isinstance(value, dict) and "seconds" in value:
        return datetime.fromtimestamp(value["seconds"], tz=timezone.utc)
    return value


class UserProfile(BaseModel):
    """
    Profile document at users/{uid}.

    Created as PENDING at sign-up. The administrator moves it between
    statuses and sets the optional expiry.
    """
    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        str_strip_whitespace=True,
    )

    id: str = Field(..., min_length=1, description="Equals the identity uid")
    email: Optional[str] = None
    username: Optional[str] = None
    status: UserStatus = UserStatus.PENDING
    access_expires_at: Optional[datetime] = Field(
        default=None,
        description="End of an approved grant; None means unlimited"
    )
    created_at: Optional[datetime] = None

    @field_validator("access_expires_at", "created_at", mode="before")
    @classmethod
    def parse_timestamp(cls, v: Any) -> Any:
        return from_timestamp_value(v)

    @field_validator("access_expires_at", "created_at")
    @classmethod
    def assume_utc(cls, v: Optional[datetime]) -> Optional[datetime]:
        if v is not None and v.tzinfo is None:
            return v.replace(tzinfo=timezone.utc)
        return v

    @field_serializer("access_expires_at")
    def serialize_expiry(self, v: Optional[datetime]) -> Optional[int]:
        return to_epoch_millis(v) if v is not None else None

    def to_document(self) -> dict[str, Any]:
        return self.model_dump(
            mode="json",
            by_alias=True,
            exclude={"id", "created_at"},
        )

    @classmethod
    def from_document(cls, doc_id: str, data: dict[str, Any]) -> "UserProfile":
        return cls.model_validate({**data, "id": doc_id})
