"""Persistence boundaries for user profile rows."""

from __future__ import annotations

import logging
from typing import Any, Protocol, runtime_checkable

from botocore.exceptions import ClientError

from courseshop.catalog.repository import is_conditional_check_failure
from storefront.models.catalog import utc_now_rfc3339
from storefront.models.users import SUBSCRIPTION_STATUSES, UserProfile

logger = logging.getLogger(__name__)


@runtime_checkable
class UserProfileStore(Protocol):
    """Storage interface for user profiles."""

    def save(self, profile: UserProfile) -> None:
        """Persist a profile row."""

    def get(self, user_id: str) -> UserProfile | None:
        """Lookup a profile by user id."""

    def set_subscription_status(self, user_id: str, status: str) -> bool:
        """Flip the subscription status of an existing profile; False when no row exists."""


class DynamoDbUserProfileStore:
    """DynamoDB adapter that stores profiles in a table keyed by userId."""

    def __init__(self, table: Any) -> None:
        self._table = table

    def save(self, profile: UserProfile) -> None:
        self._table.put_item(Item=profile.to_dynamodb_item())

    def get(self, user_id: str) -> UserProfile | None:
        response = self._table.get_item(Key={"userId": user_id})
        item = response.get("Item")
        if item is None:
            return None
        return UserProfile.from_dynamodb_item(item)

    def set_subscription_status(self, user_id: str, status: str, *, updated_at: str | None = None) -> bool:
        if status not in SUBSCRIPTION_STATUSES:
            raise ValueError(f"unsupported subscription status '{status}'")
        # Never upsert: a row holding only the status would not load as a profile.
        try:
            self._table.update_item(
                Key={"userId": user_id},
                UpdateExpression="SET subscriptionStatus = :status, updatedAt = :updatedAt",
                ConditionExpression="attribute_exists(userId)",
                ExpressionAttributeValues={
                    ":status": status,
                    ":updatedAt": updated_at or utc_now_rfc3339(),
                },
            )
        except ClientError as exc:
            if is_conditional_check_failure(exc):
                logger.warning("No profile row for user %s; subscription status not recorded", user_id)
                return False
            raise
        return True
