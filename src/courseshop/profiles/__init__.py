"""User profile persistence."""

from .repository import DynamoDbUserProfileStore, UserProfileStore

__all__ = ["DynamoDbUserProfileStore", "UserProfileStore"]
