"""User profile model persisted alongside the identity provider account."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Mapping

from .catalog import ModelValidationError, _validate_date_time, _validate_non_empty_string, utc_now_rfc3339

ROLE_STUDENT = "student"
ROLE_ADMIN = "admin"
USER_ROLES = frozenset((ROLE_STUDENT, ROLE_ADMIN))

SUBSCRIPTION_NONE = "none"
SUBSCRIPTION_ACTIVE = "active"
SUBSCRIPTION_STATUSES = frozenset((SUBSCRIPTION_NONE, SUBSCRIPTION_ACTIVE))


@dataclass(frozen=True)
class UserProfile:
    """Denormalized profile row keyed by the identity provider subject."""

    user_id: str
    email: str
    name: str
    role: str = ROLE_STUDENT
    subscription_status: str = SUBSCRIPTION_NONE
    created_at: str = ""
    updated_at: str = ""

    def __post_init__(self) -> None:
        _validate_non_empty_string(self.user_id, "userId")
        email = _validate_non_empty_string(self.email, "email")
        if "@" not in email:
            raise ModelValidationError("email: expected an email address")
        _validate_non_empty_string(self.name, "name")
        if self.role not in USER_ROLES:
            raise ModelValidationError(f"role: unsupported value '{self.role}'")
        if self.subscription_status not in SUBSCRIPTION_STATUSES:
            raise ModelValidationError(
                f"subscriptionStatus: unsupported value '{self.subscription_status}'"
            )
        _validate_date_time(self.created_at, "createdAt")
        _validate_date_time(self.updated_at, "updatedAt")

    @classmethod
    def register(cls, *, user_id: str, email: str, name: str, now: str | None = None) -> "UserProfile":
        """Profile for a freshly signed-up user."""
        stamp = now or utc_now_rfc3339()
        return cls(
            user_id=user_id,
            email=email,
            name=name,
            role=ROLE_STUDENT,
            subscription_status=SUBSCRIPTION_NONE,
            created_at=stamp,
            updated_at=stamp,
        )

    @property
    def is_admin(self) -> bool:
        return self.role == ROLE_ADMIN

    def to_api_dict(self) -> dict[str, Any]:
        return {
            "userId": self.user_id,
            "email": self.email,
            "name": self.name,
            "role": self.role,
            "subscriptionStatus": self.subscription_status,
            "createdAt": self.created_at,
            "updatedAt": self.updated_at,
        }

    def to_dynamodb_item(self) -> dict[str, Any]:
        return self.to_api_dict()

    @classmethod
    def from_dynamodb_item(cls, item: Mapping[str, Any]) -> "UserProfile":
        return cls(
            user_id=item.get("userId"),
            email=item.get("email"),
            name=item.get("name"),
            role=item.get("role", ROLE_STUDENT),
            subscription_status=item.get("subscriptionStatus", SUBSCRIPTION_NONE),
            created_at=item.get("createdAt"),
            updated_at=item.get("updatedAt"),
        )
