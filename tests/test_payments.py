"""Unit tests for the Stripe payment bridge and webhook handler."""

from __future__ import annotations

import base64
import json
import unittest
from types import SimpleNamespace
from unittest.mock import patch

import stripe

from backend.payments import (
    PaymentConfig,
    PaymentProcessorError,
    StripePaymentProcessor,
    WebhookSignatureError,
    handle_webhook_event,
    webhook_handler,
)
from courseshop.enrollments.confirmation import PaymentStatus
from courseshop.enrollments.model import EnrollmentRecord
from storefront.models.catalog import Course

STAMP = "2026-09-01T10:15:00Z"


def _course(price: object = 49.99) -> Course:
    return Course.create(
        {
            "title": "Python for Data Work",
            "description": "",
            "price": price,
            "instructor": "R. Alvarez",
            "level": "beginner",
        },
        course_id="course-1",
        now=STAMP,
    )


class _MemoryEnrollmentStore:
    def __init__(self) -> None:
        self.rows: dict[tuple[str, str], EnrollmentRecord] = {}

    def create_once(self, record: EnrollmentRecord) -> tuple[EnrollmentRecord, bool]:
        key = (record.user_id, record.course_id)
        if key in self.rows:
            return self.rows[key], False
        self.rows[key] = record
        return record, True


class _MemoryProfileStore:
    def __init__(self) -> None:
        self.statuses: dict[str, str] = {}

    def set_subscription_status(self, user_id: str, status: str) -> bool:
        self.statuses[user_id] = status
        return True


class _FakeProcessor:
    def __init__(self, event: dict | None = None, payments: dict[str, PaymentStatus] | None = None) -> None:
        self.event = event
        self.payments = payments or {}
        self.signatures: list[str] = []

    def construct_event(self, payload: str, signature: str) -> dict:
        self.signatures.append(signature)
        if signature != "t=1,v1=good":
            raise WebhookSignatureError("webhook signature verification failed")
        return self.event if self.event is not None else json.loads(payload)

    def retrieve_payment(self, reference: str) -> PaymentStatus:
        return self.payments[reference]


def _succeeded(reference: str = "pi_1") -> PaymentStatus:
    return PaymentStatus(
        reference=reference,
        status="succeeded",
        metadata={"userId": "user-1", "courseId": "course-1"},
    )


def _intent_event(reference: str = "pi_1") -> dict:
    return {
        "type": "payment_intent.succeeded",
        "data": {"object": {"id": reference, "metadata": {"userId": "user-1", "courseId": "course-1"}}},
    }


class PaymentConfigTests(unittest.TestCase):
    def test_from_env_requires_secret_key(self) -> None:
        with self.assertRaisesRegex(RuntimeError, "STRIPE_SECRET_KEY"):
            PaymentConfig.from_env({})

    def test_from_env_applies_defaults(self) -> None:
        config = PaymentConfig.from_env({"STRIPE_SECRET_KEY": "sk_test_1", "FRONTEND_BASE_URL": "https://shop.example/"})

        self.assertEqual(config.currency, "usd")
        self.assertIsNone(config.webhook_secret)
        self.assertEqual(config.frontend_base_url, "https://shop.example")


class StripePaymentProcessorTests(unittest.TestCase):
    def setUp(self) -> None:
        self.processor = StripePaymentProcessor(
            PaymentConfig(
                secret_key="sk_test_1",
                webhook_secret="whsec_1",
                currency="eur",
                frontend_base_url="https://shop.example",
            )
        )

    def test_checkout_session_carries_price_and_metadata(self) -> None:
        with patch(
            "stripe.checkout.Session.create",
            return_value=SimpleNamespace(id="cs_1", url="https://checkout.stripe.com/cs_1"),
        ) as create:
            result = self.processor.create_checkout_session(_course(), "user-1")

        self.assertEqual(result, {"sessionId": "cs_1", "url": "https://checkout.stripe.com/cs_1"})
        kwargs = create.call_args.kwargs
        self.assertEqual(kwargs["api_key"], "sk_test_1")
        self.assertEqual(kwargs["mode"], "payment")
        price_data = kwargs["line_items"][0]["price_data"]
        self.assertEqual(price_data["unit_amount"], 4999)
        self.assertEqual(price_data["currency"], "eur")
        self.assertEqual(kwargs["metadata"], {"userId": "user-1", "courseId": "course-1"})
        self.assertEqual(kwargs["payment_intent_data"], {"metadata": {"userId": "user-1", "courseId": "course-1"}})
        self.assertEqual(
            kwargs["success_url"],
            "https://shop.example/payment-success?session_id={CHECKOUT_SESSION_ID}",
        )
        self.assertEqual(kwargs["cancel_url"], "https://shop.example/courses/course-1")

    def test_payment_intent_returns_client_secret(self) -> None:
        with patch(
            "stripe.PaymentIntent.create",
            return_value={"id": "pi_1", "client_secret": "pi_1_secret"},
        ) as create:
            result = self.processor.create_payment_intent(_course(10), "user-1")

        self.assertEqual(result, {"paymentIntentId": "pi_1", "clientSecret": "pi_1_secret"})
        self.assertEqual(create.call_args.kwargs["amount"], 1000)
        self.assertEqual(create.call_args.kwargs["metadata"]["courseId"], "course-1")

    def test_processor_errors_are_wrapped(self) -> None:
        with patch("stripe.PaymentIntent.create", side_effect=stripe.StripeError("card network down")):
            with self.assertRaisesRegex(PaymentProcessorError, "card network down"):
                self.processor.create_payment_intent(_course(), "user-1")

    def test_retrieve_payment_reads_status_and_metadata(self) -> None:
        with patch(
            "stripe.PaymentIntent.retrieve",
            return_value={"id": "pi_1", "status": "succeeded", "metadata": {"userId": "user-1", "courseId": "c"}},
        ) as retrieve:
            status = self.processor.retrieve_payment("pi_1")

        retrieve.assert_called_once_with("pi_1", api_key="sk_test_1")
        self.assertTrue(status.succeeded)
        self.assertEqual(status.metadata, {"userId": "user-1", "courseId": "c"})

    def test_construct_event_maps_signature_failures(self) -> None:
        with patch(
            "stripe.Webhook.construct_event",
            side_effect=stripe.SignatureVerificationError("bad signature", "t=1,v1=bad"),
        ):
            with self.assertRaises(WebhookSignatureError):
                self.processor.construct_event("{}", "t=1,v1=bad")

    def test_construct_event_requires_webhook_secret(self) -> None:
        processor = StripePaymentProcessor(PaymentConfig(secret_key="sk_test_1"))
        with self.assertRaisesRegex(RuntimeError, "STRIPE_WEBHOOK_SECRET"):
            processor.construct_event("{}", "t=1,v1=good")


class WebhookTests(unittest.TestCase):
    def setUp(self) -> None:
        self.enrollments = _MemoryEnrollmentStore()
        self.profiles = _MemoryProfileStore()

    def _invoke(self, processor: _FakeProcessor, *, signature: str | None = "t=1,v1=good", body: str = "{}") -> dict:
        event: dict = {"httpMethod": "POST", "path": "/payments/webhook", "body": body}
        if signature is not None:
            event["headers"] = {"Stripe-Signature": signature}
        return webhook_handler(
            event,
            None,
            processor=processor,
            enrollments=self.enrollments,
            profiles=self.profiles,
        )

    def test_missing_signature_header_is_rejected(self) -> None:
        processor = _FakeProcessor(_intent_event(), {"pi_1": _succeeded()})
        response = self._invoke(processor, signature=None)

        self.assertEqual(response["statusCode"], 400)
        self.assertEqual(processor.signatures, [])
        self.assertEqual(self.enrollments.rows, {})

    def test_bad_signature_is_rejected_without_enrollment(self) -> None:
        response = self._invoke(_FakeProcessor(_intent_event(), {"pi_1": _succeeded()}), signature="t=1,v1=bad")

        self.assertEqual(response["statusCode"], 400)
        self.assertEqual(self.enrollments.rows, {})

    def test_payment_intent_succeeded_enrolls_once(self) -> None:
        processor = _FakeProcessor(_intent_event(), {"pi_1": _succeeded()})

        first = self._invoke(processor)
        second = self._invoke(processor)

        self.assertEqual(first["statusCode"], 200)
        self.assertEqual(second["statusCode"], 200)
        first_body = json.loads(first["body"])
        second_body = json.loads(second["body"])
        self.assertTrue(first_body["handled"])
        self.assertTrue(first_body["enrollment"]["created"])
        self.assertFalse(second_body["enrollment"]["created"])
        self.assertEqual(len(self.enrollments.rows), 1)
        self.assertEqual(self.profiles.statuses, {"user-1": "active"})

    def test_checkout_completed_uses_payment_intent_reference(self) -> None:
        event = {
            "type": "checkout.session.completed",
            "data": {
                "object": {
                    "id": "cs_1",
                    "payment_status": "paid",
                    "payment_intent": "pi_9",
                    "metadata": {"userId": "user-1", "courseId": "course-1"},
                }
            },
        }
        response = self._invoke(_FakeProcessor(event, {"pi_9": _succeeded("pi_9")}))

        self.assertEqual(response["statusCode"], 200)
        self.assertEqual(self.enrollments.rows[("user-1", "course-1")].payment_reference, "pi_9")

    def test_unpaid_checkout_and_other_events_are_acknowledged_but_ignored(self) -> None:
        unpaid = {
            "type": "checkout.session.completed",
            "data": {"object": {"payment_status": "unpaid", "payment_intent": "pi_1", "metadata": {}}},
        }
        refund = {"type": "charge.refunded", "data": {"object": {}}}

        for event in (unpaid, refund):
            response = self._invoke(_FakeProcessor(event))
            self.assertEqual(response["statusCode"], 200)
            self.assertFalse(json.loads(response["body"])["handled"])
        self.assertEqual(self.enrollments.rows, {})

    def test_processor_status_overrides_event_claims(self) -> None:
        processor = _FakeProcessor(
            _intent_event(),
            {"pi_1": PaymentStatus(reference="pi_1", status="processing", metadata={})},
        )
        response = self._invoke(processor)

        self.assertEqual(response["statusCode"], 400)
        self.assertEqual(self.enrollments.rows, {})

    def test_event_without_metadata_is_rejected(self) -> None:
        event = {"type": "payment_intent.succeeded", "data": {"object": {"id": "pi_1"}}}
        response = self._invoke(_FakeProcessor(event, {"pi_1": _succeeded()}))

        self.assertEqual(response["statusCode"], 400)
        self.assertIn("metadata", json.loads(response["body"])["error"])

    def test_base64_encoded_body_is_decoded_before_verification(self) -> None:
        processor = _FakeProcessor(payments={"pi_1": _succeeded()})
        body = base64.b64encode(json.dumps(_intent_event()).encode("utf-8")).decode("ascii")
        event = {
            "httpMethod": "POST",
            "path": "/payments/webhook",
            "headers": {"Stripe-Signature": "t=1,v1=good"},
            "isBase64Encoded": True,
            "body": body,
        }

        response = webhook_handler(
            event, None, processor=processor, enrollments=self.enrollments, profiles=self.profiles
        )

        self.assertEqual(response["statusCode"], 200)
        self.assertIn(("user-1", "course-1"), self.enrollments.rows)

    def test_undecodable_base64_body_is_rejected_as_bad_request(self) -> None:
        processor = _FakeProcessor(_intent_event(), {"pi_1": _succeeded()})
        for body in ("not*base64!", base64.b64encode(b"\xff\xfe\xfd").decode("ascii")):
            event = {
                "httpMethod": "POST",
                "path": "/payments/webhook",
                "headers": {"Stripe-Signature": "t=1,v1=good"},
                "isBase64Encoded": True,
                "body": body,
            }
            response = webhook_handler(
                event, None, processor=processor, enrollments=self.enrollments, profiles=self.profiles
            )

            self.assertEqual(response["statusCode"], 400)
            self.assertIn("base64", json.loads(response["body"])["error"])
        self.assertEqual(processor.signatures, [])
        self.assertEqual(self.enrollments.rows, {})

    def test_handle_webhook_event_accepts_stripe_style_objects(self) -> None:
        event = SimpleNamespace(
            type="payment_intent.succeeded",
            data=SimpleNamespace(
                object=SimpleNamespace(id="pi_1", metadata={"userId": "user-1", "courseId": "course-1"})
            ),
        )
        result = handle_webhook_event(
            event,
            processor=_FakeProcessor(payments={"pi_1": _succeeded()}),
            enrollments=self.enrollments,
            profiles=self.profiles,
        )

        self.assertTrue(result["handled"])
        self.assertEqual(result["enrollment"]["paymentReference"], "pi_1")


if __name__ == "__main__":
    unittest.main()
