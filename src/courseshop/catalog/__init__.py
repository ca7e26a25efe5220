"""Course catalog persistence."""

from .repository import CourseAlreadyExistsError, CourseStore, DynamoDbCourseStore, is_conditional_check_failure

__all__ = ["CourseAlreadyExistsError", "CourseStore", "DynamoDbCourseStore", "is_conditional_check_failure"]
