"""Domain models used by API handlers."""

from .catalog import COURSE_LEVELS, Course, ModelValidationError, utc_now_rfc3339
from .users import ROLE_ADMIN, ROLE_STUDENT, SUBSCRIPTION_ACTIVE, SUBSCRIPTION_NONE, UserProfile

__all__ = [
    "COURSE_LEVELS",
    "Course",
    "ModelValidationError",
    "ROLE_ADMIN",
    "ROLE_STUDENT",
    "SUBSCRIPTION_ACTIVE",
    "SUBSCRIPTION_NONE",
    "UserProfile",
    "utc_now_rfc3339",
]
