"""Lazily constructed AWS resources shared by the Lambda handlers."""

from __future__ import annotations

from typing import Any

from backend.apigw import required_env
from courseshop.catalog.repository import DynamoDbCourseStore
from courseshop.enrollments.repository import DynamoDbEnrollmentStore
from courseshop.profiles.repository import DynamoDbUserProfileStore


def dynamodb_table(table_name: str) -> Any:
    import boto3

    return boto3.resource("dynamodb").Table(table_name)


def course_store() -> DynamoDbCourseStore:
    return DynamoDbCourseStore(dynamodb_table(required_env("COURSES_TABLE")))


def profile_store() -> DynamoDbUserProfileStore:
    return DynamoDbUserProfileStore(dynamodb_table(required_env("USERS_TABLE")))


def enrollment_store() -> DynamoDbEnrollmentStore:
    return DynamoDbEnrollmentStore(dynamodb_table(required_env("ENROLLMENTS_TABLE")))
