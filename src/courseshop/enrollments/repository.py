"""Persistence boundaries for enrollment storage."""

from __future__ import annotations

from typing import Any, Protocol, runtime_checkable

from botocore.exceptions import ClientError

from courseshop.catalog.repository import is_conditional_check_failure

from .model import EnrollmentRecord

COURSE_INDEX_NAME = "courseId-index"


@runtime_checkable
class EnrollmentStore(Protocol):
    """Storage interface for enrollment records."""

    def create_once(self, record: EnrollmentRecord) -> tuple[EnrollmentRecord, bool]:
        """Insert unless the user is already enrolled; return stored row and whether it was created."""

    def get(self, user_id: str, course_id: str) -> EnrollmentRecord | None:
        """Lookup one enrollment by its composite key."""

    def list_for_user(self, user_id: str) -> list[EnrollmentRecord]:
        """Return all enrollments of a user."""

    def list_for_course(self, course_id: str) -> list[EnrollmentRecord]:
        """Return all enrollments of a course."""


class DynamoDbEnrollmentStore:
    """DynamoDB adapter keyed by (userId, courseId) with a courseId GSI."""

    def __init__(self, table: Any) -> None:
        self._table = table

    def create_once(self, record: EnrollmentRecord) -> tuple[EnrollmentRecord, bool]:
        try:
            self._table.put_item(
                Item=record.to_item(),
                ConditionExpression="attribute_not_exists(userId) AND attribute_not_exists(courseId)",
            )
        except ClientError as exc:
            if not is_conditional_check_failure(exc):
                raise
            existing = self.get(record.user_id, record.course_id)
            if existing is None:
                raise RuntimeError(
                    f"enrollment for {record.user_id}/{record.course_id} vanished after conflict"
                ) from exc
            return existing, False
        return record, True

    def get(self, user_id: str, course_id: str) -> EnrollmentRecord | None:
        response = self._table.get_item(Key={"userId": user_id, "courseId": course_id})
        item = response.get("Item")
        if item is None:
            return None
        return EnrollmentRecord.from_item(item)

    def list_for_user(self, user_id: str) -> list[EnrollmentRecord]:
        from boto3.dynamodb.conditions import Key

        return self._query_all(KeyConditionExpression=Key("userId").eq(user_id))

    def list_for_course(self, course_id: str) -> list[EnrollmentRecord]:
        from boto3.dynamodb.conditions import Key

        return self._query_all(
            IndexName=COURSE_INDEX_NAME,
            KeyConditionExpression=Key("courseId").eq(course_id),
        )

    def _query_all(self, **kwargs: Any) -> list[EnrollmentRecord]:
        response = self._table.query(**kwargs)
        rows = list(response.get("Items", []))
        while "LastEvaluatedKey" in response:
            response = self._table.query(ExclusiveStartKey=response["LastEvaluatedKey"], **kwargs)
            rows.extend(response.get("Items", []))
        records = [EnrollmentRecord.from_item(row) for row in rows if isinstance(row, dict)]
        records.sort(key=lambda record: (record.created_at, record.enrollment_id))
        return records
