"""Payment bridge: Stripe checkout/intents and the payment webhook."""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass
from typing import Any, Dict, Mapping, Protocol

from backend import stores
from backend.apigw import RequestBodyError, error_response, headers, json_response, raw_body
from courseshop.enrollments.confirmation import (
    EnrollmentConfirmationError,
    PaymentMismatchError,
    PaymentStatus,
    confirm_enrollment,
)
from courseshop.enrollments.repository import EnrollmentStore
from courseshop.profiles.repository import UserProfileStore
from storefront.models.catalog import Course

logger = logging.getLogger(__name__)

DEFAULT_CURRENCY = "usd"
DEFAULT_FRONTEND_BASE_URL = "http://localhost:4200"
EVENT_CHECKOUT_COMPLETED = "checkout.session.completed"
EVENT_PAYMENT_SUCCEEDED = "payment_intent.succeeded"


class PaymentProcessorError(RuntimeError):
    """Raised when the payment processor rejects or fails a call."""


class WebhookSignatureError(ValueError):
    """Raised when a webhook payload fails signature verification."""


@dataclass(frozen=True)
class PaymentConfig:
    """Stripe keys and storefront URLs."""

    secret_key: str
    webhook_secret: str | None = None
    currency: str = DEFAULT_CURRENCY
    frontend_base_url: str = DEFAULT_FRONTEND_BASE_URL

    @classmethod
    def from_env(cls, env: Mapping[str, str] | None = None) -> "PaymentConfig":
        source = os.environ if env is None else env
        secret_key = source.get("STRIPE_SECRET_KEY", "").strip()
        if not secret_key:
            raise RuntimeError("server misconfiguration: STRIPE_SECRET_KEY missing")
        return cls(
            secret_key=secret_key,
            webhook_secret=source.get("STRIPE_WEBHOOK_SECRET", "").strip() or None,
            currency=source.get("COURSE_CURRENCY", "").strip().lower() or DEFAULT_CURRENCY,
            frontend_base_url=(
                source.get("FRONTEND_BASE_URL", "").strip().rstrip("/") or DEFAULT_FRONTEND_BASE_URL
            ),
        )


class PaymentProcessor(Protocol):
    """Narrow interface over the payment processor SDK."""

    def create_checkout_session(self, course: Course, user_id: str) -> Dict[str, Any]: ...

    def create_payment_intent(self, course: Course, user_id: str) -> Dict[str, Any]: ...

    def retrieve_payment(self, reference: str) -> PaymentStatus: ...

    def construct_event(self, payload: str, signature: str) -> Any: ...


def _field(obj: Any, name: str, default: Any = None) -> Any:
    """Read a key from a Stripe object or a plain mapping."""
    if isinstance(obj, Mapping):
        return obj.get(name, default)
    return getattr(obj, name, default)


def _plain_metadata(obj: Any) -> dict[str, str]:
    metadata = _field(obj, "metadata")
    if metadata is None:
        return {}
    if hasattr(metadata, "to_dict"):
        metadata = metadata.to_dict()
    if not isinstance(metadata, Mapping):
        return {}
    return {str(key): str(value) for key, value in metadata.items()}


class StripePaymentProcessor:
    """PaymentProcessor backed by the stripe SDK."""

    def __init__(self, config: PaymentConfig) -> None:
        self._config = config

    def _metadata(self, course: Course, user_id: str) -> dict[str, str]:
        return {"userId": user_id, "courseId": course.id}

    def create_checkout_session(self, course: Course, user_id: str) -> Dict[str, Any]:
        import stripe

        metadata = self._metadata(course, user_id)
        base_url = self._config.frontend_base_url
        try:
            session = stripe.checkout.Session.create(
                api_key=self._config.secret_key,
                mode="payment",
                line_items=[
                    {
                        "quantity": 1,
                        "price_data": {
                            "currency": self._config.currency,
                            "unit_amount": course.unit_amount(),
                            "product_data": {
                                "name": course.title,
                                "metadata": {"courseId": course.id},
                            },
                        },
                    }
                ],
                client_reference_id=user_id,
                metadata=metadata,
                payment_intent_data={"metadata": metadata},
                success_url=f"{base_url}/payment-success?session_id={{CHECKOUT_SESSION_ID}}",
                cancel_url=f"{base_url}/courses/{course.id}",
            )
        except stripe.StripeError as exc:
            raise PaymentProcessorError(f"checkout session creation failed: {exc}") from exc
        return {"sessionId": _field(session, "id"), "url": _field(session, "url")}

    def create_payment_intent(self, course: Course, user_id: str) -> Dict[str, Any]:
        import stripe

        try:
            intent = stripe.PaymentIntent.create(
                api_key=self._config.secret_key,
                amount=course.unit_amount(),
                currency=self._config.currency,
                automatic_payment_methods={"enabled": True},
                metadata=self._metadata(course, user_id),
            )
        except stripe.StripeError as exc:
            raise PaymentProcessorError(f"payment intent creation failed: {exc}") from exc
        return {
            "paymentIntentId": _field(intent, "id"),
            "clientSecret": _field(intent, "client_secret"),
        }

    def retrieve_payment(self, reference: str) -> PaymentStatus:
        import stripe

        try:
            intent = stripe.PaymentIntent.retrieve(reference, api_key=self._config.secret_key)
        except stripe.StripeError as exc:
            raise PaymentProcessorError(f"payment lookup failed: {exc}") from exc
        return PaymentStatus(
            reference=str(_field(intent, "id", reference)),
            status=str(_field(intent, "status", "")),
            metadata=_plain_metadata(intent),
        )

    def construct_event(self, payload: str, signature: str) -> Any:
        import stripe

        if not self._config.webhook_secret:
            raise RuntimeError("server misconfiguration: STRIPE_WEBHOOK_SECRET missing")
        try:
            return stripe.Webhook.construct_event(payload, signature, self._config.webhook_secret)
        except stripe.SignatureVerificationError as exc:
            raise WebhookSignatureError("webhook signature verification failed") from exc
        except ValueError as exc:
            raise WebhookSignatureError("webhook payload is not valid JSON") from exc


def create_default_processor() -> PaymentProcessor:
    return StripePaymentProcessor(PaymentConfig.from_env())


def _webhook_payment_target(event: Any) -> tuple[str, Mapping[str, str]] | None:
    """Extract (payment reference, metadata) from events that signal a completed payment."""
    event_type = _field(event, "type", "")
    data = _field(event, "data") or {}
    obj = _field(data, "object") or {}

    if event_type == EVENT_CHECKOUT_COMPLETED:
        if _field(obj, "payment_status") != "paid":
            return None
        reference = _field(obj, "payment_intent")
        if not isinstance(reference, str):
            reference = _field(reference, "id") if reference is not None else None
        return (str(reference or ""), _plain_metadata(obj))

    if event_type == EVENT_PAYMENT_SUCCEEDED:
        return (str(_field(obj, "id", "")), _plain_metadata(obj))

    return None


def handle_webhook_event(
    event: Any,
    *,
    processor: PaymentProcessor,
    enrollments: EnrollmentStore,
    profiles: UserProfileStore,
) -> Dict[str, Any]:
    """Route one verified processor event; returns the acknowledgement payload."""
    event_type = _field(event, "type", "")
    target = _webhook_payment_target(event)
    if target is None:
        logger.info("Ignoring webhook event %s", event_type)
        return {"received": True, "handled": False, "type": event_type}

    reference, metadata = target
    user_id = metadata.get("userId", "")
    course_id = metadata.get("courseId", "")
    if not reference or not user_id or not course_id:
        raise EnrollmentConfirmationError(
            f"{event_type} event is missing payment reference or userId/courseId metadata"
        )

    logger.info("Webhook %s confirming payment %s", event_type, reference)
    result = confirm_enrollment(
        payment_reference=reference,
        user_id=user_id,
        course_id=course_id,
        processor=processor,
        enrollments=enrollments,
        profiles=profiles,
    )
    return {"received": True, "handled": True, "type": event_type, "enrollment": result.to_api_dict()}


def webhook_handler(
    event: Mapping[str, Any],
    _context: Any,
    *,
    processor: PaymentProcessor | None = None,
    enrollments: EnrollmentStore | None = None,
    profiles: UserProfileStore | None = None,
) -> Dict[str, Any]:
    """Lambda entrypoint for POST /payments/webhook."""
    signature = headers(event).get("stripe-signature", "").strip()
    if not signature:
        return error_response(400, "Stripe-Signature header is required")

    try:
        payload = raw_body(event)
        client = processor or create_default_processor()
        verified = client.construct_event(payload, signature)
        result = handle_webhook_event(
            verified,
            processor=client,
            enrollments=enrollments or stores.enrollment_store(),
            profiles=profiles or stores.profile_store(),
        )
    except RequestBodyError as exc:
        logger.warning("Rejected webhook body: %s", exc)
        return error_response(400, str(exc))
    except WebhookSignatureError as exc:
        logger.warning("Rejected webhook: %s", exc)
        return error_response(400, str(exc))
    except PaymentMismatchError as exc:
        return error_response(403, str(exc))
    except EnrollmentConfirmationError as exc:
        return error_response(400, str(exc))
    except PaymentProcessorError as exc:
        logger.error("Webhook payment lookup failed: %s", exc)
        return error_response(502, str(exc))
    except RuntimeError as exc:
        return error_response(500, str(exc))
    except Exception:  # noqa: BLE001
        logger.exception("Webhook processing failed")
        return error_response(500, "internal server error")

    return json_response(200, result)
