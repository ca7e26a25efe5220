"""Persistence boundaries for the course catalog."""

from __future__ import annotations

import logging
from typing import Any, Mapping, Protocol, runtime_checkable

from botocore.exceptions import ClientError

from storefront.models.catalog import ATTR_COURSE_ID, Course

logger = logging.getLogger(__name__)


@runtime_checkable
class CourseStore(Protocol):
    """Storage interface for catalog courses."""

    def get(self, course_id: str) -> Course | None:
        """Lookup a course by id."""

    def list_all(self) -> list[Course]:
        """Return every course in the catalog."""

    def create(self, course: Course) -> None:
        """Persist a new course; raises CourseAlreadyExistsError when the id is taken."""

    def update(self, course_id: str, fields: Mapping[str, Any]) -> Course | None:
        """Apply field updates and return the new course, or None when missing."""

    def delete(self, course_id: str) -> bool:
        """Remove a course and report whether a row existed."""


class CourseAlreadyExistsError(Exception):
    """Raised when a new course reuses the id of an existing one."""

    def __init__(self, course_id: str) -> None:
        super().__init__(f"course '{course_id}' already exists")
        self.course_id = course_id


def is_conditional_check_failure(exc: ClientError) -> bool:
    return exc.response.get("Error", {}).get("Code") == "ConditionalCheckFailedException"


class DynamoDbCourseStore:
    """DynamoDB adapter that stores courses in a table keyed by courseId."""

    def __init__(self, table: Any) -> None:
        self._table = table

    def get(self, course_id: str) -> Course | None:
        response = self._table.get_item(Key={ATTR_COURSE_ID: course_id})
        item = response.get("Item")
        if item is None:
            return None
        return Course.from_dynamodb_item(item)

    def list_all(self) -> list[Course]:
        response = self._table.scan()
        rows = list(response.get("Items", []))
        while "LastEvaluatedKey" in response:
            response = self._table.scan(ExclusiveStartKey=response["LastEvaluatedKey"])
            rows.extend(response.get("Items", []))

        courses = [Course.from_dynamodb_item(row) for row in rows if isinstance(row, dict)]
        courses.sort(key=lambda course: (course.title.lower(), course.id))
        return courses

    def create(self, course: Course) -> None:
        try:
            self._table.put_item(
                Item=course.to_dynamodb_item(),
                ConditionExpression="attribute_not_exists(courseId)",
            )
        except ClientError as exc:
            if is_conditional_check_failure(exc):
                raise CourseAlreadyExistsError(course.id) from exc
            raise

    def update(self, course_id: str, fields: Mapping[str, Any]) -> Course | None:
        current = self.get(course_id)
        if current is None:
            return None

        updated = current.with_updates(fields)
        try:
            self._table.put_item(
                Item=updated.to_dynamodb_item(),
                ConditionExpression="attribute_exists(courseId)",
            )
        except ClientError as exc:
            if is_conditional_check_failure(exc):
                logger.info("Course %s was deleted before update could be written", course_id)
                return None
            raise
        return updated

    def delete(self, course_id: str) -> bool:
        response = self._table.delete_item(
            Key={ATTR_COURSE_ID: course_id},
            ReturnValues="ALL_OLD",
        )
        return bool(response.get("Attributes"))
