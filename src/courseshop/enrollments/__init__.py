"""Enrollment persistence and payment confirmation."""

from .confirmation import (
    ConfirmationResult,
    EnrollmentConfirmationError,
    PaymentMismatchError,
    PaymentNotSucceededError,
    PaymentStatus,
    PaymentVerifier,
    confirm_enrollment,
)
from .model import EnrollmentRecord
from .repository import DynamoDbEnrollmentStore, EnrollmentStore

__all__ = [
    "ConfirmationResult",
    "DynamoDbEnrollmentStore",
    "EnrollmentConfirmationError",
    "EnrollmentRecord",
    "EnrollmentStore",
    "PaymentMismatchError",
    "PaymentNotSucceededError",
    "PaymentStatus",
    "PaymentVerifier",
    "confirm_enrollment",
]
