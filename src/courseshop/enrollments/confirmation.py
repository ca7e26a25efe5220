"""Payment confirmation: verify a processor payment, then enroll the buyer."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Callable, Mapping, Protocol

from courseshop.profiles.repository import UserProfileStore
from storefront.models.users import SUBSCRIPTION_ACTIVE

from .model import EnrollmentRecord, new_enrollment_id
from .repository import EnrollmentStore

logger = logging.getLogger(__name__)

PAYMENT_SUCCEEDED = "succeeded"

EnrollmentIdFactory = Callable[[], str]


class EnrollmentConfirmationError(ValueError):
    """Raised when a payment cannot be turned into an enrollment."""


class PaymentNotSucceededError(EnrollmentConfirmationError):
    """Raised when the processor reports a non-terminal or failed payment."""

    def __init__(self, reference: str, status: str) -> None:
        super().__init__(f"payment {reference} has status '{status}', expected '{PAYMENT_SUCCEEDED}'")
        self.reference = reference
        self.status = status


class PaymentMismatchError(EnrollmentConfirmationError):
    """Raised when payment metadata names a different buyer or course."""


@dataclass(frozen=True)
class PaymentStatus:
    """Processor-reported state of one payment."""

    reference: str
    status: str
    metadata: Mapping[str, str] = field(default_factory=dict)

    @property
    def succeeded(self) -> bool:
        return self.status == PAYMENT_SUCCEEDED


class PaymentVerifier(Protocol):
    """Subset of the payment processor used for confirmation."""

    def retrieve_payment(self, reference: str) -> PaymentStatus: ...


@dataclass(frozen=True)
class ConfirmationResult:
    """Outcome of a confirmation; created is False on a replayed confirmation."""

    enrollment: EnrollmentRecord
    created: bool

    def to_api_dict(self) -> dict[str, Any]:
        return {**self.enrollment.to_item(), "created": self.created}


def _require(value: str, field_name: str) -> str:
    if not isinstance(value, str) or not value.strip():
        raise EnrollmentConfirmationError(f"{field_name} is required")
    return value.strip()


def _check_metadata(payment: PaymentStatus, *, user_id: str, course_id: str) -> None:
    expected = {"userId": user_id, "courseId": course_id}
    for key, value in expected.items():
        recorded = payment.metadata.get(key)
        if not recorded:
            raise PaymentMismatchError(f"payment {payment.reference} carries no {key} metadata")
        if recorded != value:
            raise PaymentMismatchError(f"payment {payment.reference} was not made for this {key}")


def confirm_enrollment(
    *,
    payment_reference: str,
    user_id: str,
    course_id: str,
    processor: PaymentVerifier,
    enrollments: EnrollmentStore,
    profiles: UserProfileStore,
    enrollment_id_factory: EnrollmentIdFactory = new_enrollment_id,
) -> ConfirmationResult:
    """
    Verify a payment with the processor and record the enrollment.

    The enrollment write is conditional on (user, course), so replaying a
    confirmation returns the stored row instead of inserting a second one.
    The subscription flag is written after the enrollment, in a separate
    call; a replay re-applies it.
    """
    reference = _require(payment_reference, "paymentReference")
    uid = _require(user_id, "userId")
    cid = _require(course_id, "courseId")

    payment = processor.retrieve_payment(reference)
    if not payment.succeeded:
        logger.info("Rejected confirmation for payment %s with status %s", reference, payment.status)
        raise PaymentNotSucceededError(reference, payment.status)
    _check_metadata(payment, user_id=uid, course_id=cid)

    record = EnrollmentRecord.create(
        user_id=uid,
        course_id=cid,
        payment_reference=reference,
        enrollment_id=enrollment_id_factory(),
    )
    stored, created = enrollments.create_once(record)
    if created:
        logger.info("Enrollment %s created for user %s course %s", stored.enrollment_id, uid, cid)
    elif stored.payment_reference != reference:
        logger.warning(
            "User %s already enrolled in %s via payment %s; payment %s not recorded",
            uid,
            cid,
            stored.payment_reference,
            reference,
        )
    else:
        logger.info("Replayed confirmation for payment %s", reference)

    profiles.set_subscription_status(uid, SUBSCRIPTION_ACTIVE)
    return ConfirmationResult(enrollment=stored, created=created)
