"""Domain model for course enrollments."""

from __future__ import annotations

import re
import uuid
from dataclasses import dataclass
from typing import Any, Mapping

from storefront.models.catalog import utc_now_rfc3339

_RFC3339_UTC_RE = re.compile(r"^\d{4}-\d{2}-\d{2}T\d{2}:\d{2}:\d{2}Z$")


def new_enrollment_id() -> str:
    return f"enr-{uuid.uuid4()}"


@dataclass(frozen=True)
class EnrollmentRecord:
    """Stored row linking a user to a purchased course."""

    enrollment_id: str
    user_id: str
    course_id: str
    payment_reference: str
    created_at: str

    def __post_init__(self) -> None:
        self._validate_non_empty("enrollment_id", self.enrollment_id)
        self._validate_non_empty("user_id", self.user_id)
        self._validate_non_empty("course_id", self.course_id)
        self._validate_non_empty("payment_reference", self.payment_reference)
        if not isinstance(self.created_at, str) or not _RFC3339_UTC_RE.match(self.created_at):
            raise ValueError("created_at must be RFC3339 UTC with trailing Z")

    @staticmethod
    def _validate_non_empty(field_name: str, value: str) -> None:
        if not isinstance(value, str):
            raise ValueError(f"{field_name} must be a string")
        if not value.strip():
            raise ValueError(f"{field_name} must not be empty")

    @classmethod
    def create(
        cls,
        *,
        user_id: str,
        course_id: str,
        payment_reference: str,
        enrollment_id: str | None = None,
        created_at: str | None = None,
    ) -> "EnrollmentRecord":
        """Construct a new enrollment for a confirmed payment."""
        return cls(
            enrollment_id=enrollment_id or new_enrollment_id(),
            user_id=user_id,
            course_id=course_id,
            payment_reference=payment_reference,
            created_at=created_at or utc_now_rfc3339(),
        )

    def to_item(self) -> dict[str, Any]:
        """Serialize to a DynamoDB-style item dictionary."""
        return {
            "enrollmentId": self.enrollment_id,
            "userId": self.user_id,
            "courseId": self.course_id,
            "paymentReference": self.payment_reference,
            "createdAt": self.created_at,
        }

    @classmethod
    def from_item(cls, item: Mapping[str, Any]) -> "EnrollmentRecord":
        """Deserialize from a DynamoDB item dictionary."""
        return cls(
            enrollment_id=item.get("enrollmentId"),
            user_id=item.get("userId"),
            course_id=item.get("courseId"),
            payment_reference=item.get("paymentReference"),
            created_at=item.get("createdAt"),
        )
