"""Course catalog domain model with DynamoDB mapping helpers."""

from __future__ import annotations

import re
import uuid
from dataclasses import dataclass, field, replace
from datetime import datetime, timezone
from decimal import Decimal, InvalidOperation
from typing import Any, Mapping

COURSE_LEVELS = frozenset(("beginner", "intermediate", "advanced"))
UPDATABLE_FIELDS = frozenset(("title", "description", "price", "instructor", "level", "content"))
_COURSE_ID_PATTERN = re.compile(r"^[A-Za-z0-9._-]+$")

ATTR_COURSE_ID = "courseId"
ATTR_CREATED_AT = "createdAt"
ATTR_UPDATED_AT = "updatedAt"


class ModelValidationError(ValueError):
    """Raised when model payloads or records fail validation."""


def utc_now_rfc3339() -> str:
    """Return the current UTC timestamp in RFC3339 form with trailing Z."""
    return datetime.now(timezone.utc).strftime("%Y-%m-%dT%H:%M:%SZ")


def new_course_id() -> str:
    return f"course-{uuid.uuid4()}"


def _validate_non_empty_string(value: Any, field_name: str) -> str:
    """Require non-empty strings for contract string fields."""
    if not isinstance(value, str):
        raise ModelValidationError(f"{field_name}: expected string")
    if not value.strip():
        raise ModelValidationError(f"{field_name}: must not be empty")
    return value


def _validate_date_time(value: Any, field_name: str) -> str:
    """Require RFC3339 UTC timestamps with a trailing Z."""
    text = _validate_non_empty_string(value, field_name)
    try:
        datetime.strptime(text, "%Y-%m-%dT%H:%M:%SZ")
    except ValueError as exc:
        raise ModelValidationError(
            f"{field_name}: expected RFC3339 UTC timestamp (YYYY-MM-DDTHH:MM:SSZ)"
        ) from exc
    return text


def _validate_price(value: Any) -> Decimal:
    """Coerce prices to Decimal because boto3 DynamoDB does not accept float."""
    if isinstance(value, bool) or not isinstance(value, (int, float, Decimal, str)):
        raise ModelValidationError("price: expected number")
    try:
        price = Decimal(str(value))
    except InvalidOperation as exc:
        raise ModelValidationError("price: expected number") from exc
    if not price.is_finite():
        raise ModelValidationError("price: expected number")
    if price < 0:
        raise ModelValidationError("price: must be >= 0")
    return price


def _validate_content(value: Any) -> tuple[str, ...]:
    if value is None:
        return ()
    if not isinstance(value, (list, tuple)):
        raise ModelValidationError("content: expected list of strings")
    refs = []
    for index, ref in enumerate(value):
        refs.append(_validate_non_empty_string(ref, f"content[{index}]"))
    return tuple(refs)


def _json_number(value: Decimal) -> int | float:
    """Render Decimal prices as plain JSON numbers."""
    if value == value.to_integral_value():
        return int(value)
    return float(value)


@dataclass(frozen=True)
class Course:
    """Catalog course record."""

    id: str
    title: str
    description: str
    price: Decimal
    instructor: str
    level: str
    content: tuple[str, ...] = field(default_factory=tuple)
    created_at: str = ""
    updated_at: str = ""

    def __post_init__(self) -> None:
        course_id = _validate_non_empty_string(self.id, "courseId")
        if _COURSE_ID_PATTERN.match(course_id) is None:
            raise ModelValidationError(
                "courseId: must contain only letters, numbers, '.', '_' or '-'"
            )
        _validate_non_empty_string(self.title, "title")
        if not isinstance(self.description, str):
            raise ModelValidationError("description: expected string")
        _validate_non_empty_string(self.instructor, "instructor")
        level = _validate_non_empty_string(self.level, "level")
        if level not in COURSE_LEVELS:
            raise ModelValidationError(f"level: unsupported value '{level}'")
        object.__setattr__(self, "price", _validate_price(self.price))
        object.__setattr__(self, "content", _validate_content(self.content))
        _validate_date_time(self.created_at, "createdAt")
        _validate_date_time(self.updated_at, "updatedAt")

    @classmethod
    def create(
        cls,
        payload: Mapping[str, Any],
        *,
        course_id: str | None = None,
        now: str | None = None,
    ) -> "Course":
        """Build a new course from an admin create payload."""
        stamp = now or utc_now_rfc3339()
        supplied_id = payload.get("courseId")
        return cls(
            id=course_id or (supplied_id if supplied_id is not None else new_course_id()),
            title=payload.get("title"),
            description=payload.get("description", ""),
            price=payload.get("price"),
            instructor=payload.get("instructor"),
            level=payload.get("level"),
            content=payload.get("content"),
            created_at=stamp,
            updated_at=stamp,
        )

    def with_updates(self, fields: Mapping[str, Any], *, now: str | None = None) -> "Course":
        """Return a copy with permitted fields replaced."""
        unknown = sorted(set(fields.keys()) - UPDATABLE_FIELDS)
        if unknown:
            raise ModelValidationError(f"Course: field(s) cannot be updated: {unknown}")
        changes: dict[str, Any] = {key: value for key, value in fields.items()}
        return replace(self, **changes, updated_at=now or utc_now_rfc3339())

    def to_api_dict(self) -> dict[str, Any]:
        """Serialize model in API field names."""
        return {
            "courseId": self.id,
            "title": self.title,
            "description": self.description,
            "price": _json_number(self.price),
            "instructor": self.instructor,
            "level": self.level,
            "content": list(self.content),
            "createdAt": self.created_at,
            "updatedAt": self.updated_at,
        }

    def to_dynamodb_item(self) -> dict[str, Any]:
        """Serialize into DynamoDB attributes for course storage."""
        return {
            ATTR_COURSE_ID: self.id,
            "title": self.title,
            "description": self.description,
            "price": self.price,
            "instructor": self.instructor,
            "level": self.level,
            "content": list(self.content),
            ATTR_CREATED_AT: self.created_at,
            ATTR_UPDATED_AT: self.updated_at,
        }

    @classmethod
    def from_dynamodb_item(cls, item: Mapping[str, Any]) -> "Course":
        return cls(
            id=item.get(ATTR_COURSE_ID),
            title=item.get("title"),
            description=item.get("description", ""),
            price=item.get("price"),
            instructor=item.get("instructor"),
            level=item.get("level"),
            content=item.get("content"),
            created_at=item.get(ATTR_CREATED_AT),
            updated_at=item.get(ATTR_UPDATED_AT),
        )

    def unit_amount(self) -> int:
        """Price in minor currency units (cents) for the payment processor."""
        return int((self.price * 100).quantize(Decimal("1")))
