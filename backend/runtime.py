"""API Gateway Lambda runtime handler for storefront routes."""

from __future__ import annotations

import logging
import os
import re
from typing import Any, Callable, Dict, Mapping

from backend import payments, stores, uploads
from backend.apigw import (
    error_response,
    json_response,
    normalized_path,
    parse_json_body,
    request_method,
    request_path,
    require_admin,
    require_non_empty_string,
    require_user,
)
from backend.identity import IdentityConfig, IdentityError, IdentityGateway, create_default_cognito_client
from courseshop.catalog.repository import CourseAlreadyExistsError
from courseshop.enrollments.confirmation import (
    EnrollmentConfirmationError,
    PaymentMismatchError,
    PaymentNotSucceededError,
    confirm_enrollment,
)
from storefront.models.catalog import Course, ModelValidationError

logger = logging.getLogger(__name__)

_LOGGER_NAMES = ("backend", "courseshop", "storefront")
_COURSE_PATH = re.compile(r"/courses/([^/]+)")
_ADMIN_COURSE_PATH = re.compile(r"/admin/courses/([^/]+)")
_ADMIN_COURSE_ENROLLMENTS_PATH = re.compile(r"/admin/courses/([^/]+)/enrollments")


def _configure_logging() -> None:
    level = os.getenv("LOG_LEVEL", "INFO").strip().upper() or "INFO"
    for name in _LOGGER_NAMES:
        logging.getLogger(name).setLevel(level if isinstance(logging.getLevelName(level), int) else "INFO")


def _internal_error(message: str) -> Dict[str, Any]:
    logger.exception(message)
    return error_response(500, "internal server error")


def _identity_gateway() -> IdentityGateway:
    config = IdentityConfig.from_env()
    return IdentityGateway(
        client=create_default_cognito_client(),
        config=config,
        profiles=stores.profile_store(),
    )


def _payment_processor() -> payments.PaymentProcessor:
    return payments.create_default_processor()


def _handle_identity(
    event: Mapping[str, Any],
    action: Callable[[IdentityGateway, Mapping[str, Any]], Dict[str, Any]],
    *,
    success_status: int = 200,
) -> Dict[str, Any]:
    payload, parse_error = parse_json_body(event)
    if parse_error is not None or payload is None:
        return error_response(400, parse_error or "request body must be valid JSON")

    try:
        result = action(_identity_gateway(), payload)
    except IdentityError as exc:
        return error_response(exc.status_code, str(exc))
    except ModelValidationError as exc:
        return error_response(400, str(exc))
    except RuntimeError as exc:
        return error_response(500, str(exc))
    except Exception:  # noqa: BLE001
        return _internal_error("identity request failed")
    return json_response(success_status, result)


def _handle_current_user(event: Mapping[str, Any]) -> Dict[str, Any]:
    user_id, auth_error = require_user(event)
    if auth_error is not None or user_id is None:
        return auth_error or error_response(401, "authenticated principal is required")

    try:
        profile = stores.profile_store().get(user_id)
    except ModelValidationError as exc:
        logger.warning("Profile row for %s is incomplete: %s", user_id, exc)
        return error_response(404, "profile not found")
    except RuntimeError as exc:
        return error_response(500, str(exc))
    except Exception:  # noqa: BLE001
        return _internal_error("profile lookup failed")
    if profile is None:
        return error_response(404, "profile not found")
    return json_response(200, profile.to_api_dict())


def _handle_list_courses() -> Dict[str, Any]:
    try:
        courses = stores.course_store().list_all()
    except RuntimeError as exc:
        return error_response(500, str(exc))
    except Exception:  # noqa: BLE001
        return _internal_error("course listing failed")
    return json_response(200, [course.to_api_dict() for course in courses])


def _handle_get_course(course_id: str) -> Dict[str, Any]:
    try:
        course = stores.course_store().get(course_id)
    except RuntimeError as exc:
        return error_response(500, str(exc))
    except Exception:  # noqa: BLE001
        return _internal_error("course lookup failed")
    if course is None:
        return error_response(404, "course not found")
    return json_response(200, course.to_api_dict())


def _handle_create_course(event: Mapping[str, Any]) -> Dict[str, Any]:
    admin_id, auth_error = require_admin(event)
    if auth_error is not None:
        return auth_error

    payload, parse_error = parse_json_body(event)
    if parse_error is not None or payload is None:
        return error_response(400, parse_error or "request body must be valid JSON")

    try:
        course = Course.create(payload)
        stores.course_store().create(course)
    except CourseAlreadyExistsError as exc:
        return error_response(409, str(exc))
    except ModelValidationError as exc:
        return error_response(400, str(exc))
    except RuntimeError as exc:
        return error_response(500, str(exc))
    except Exception:  # noqa: BLE001
        return _internal_error("course creation failed")

    logger.info("Course %s created by %s", course.id, admin_id)
    return json_response(201, course.to_api_dict())


def _handle_update_course(event: Mapping[str, Any], course_id: str) -> Dict[str, Any]:
    admin_id, auth_error = require_admin(event)
    if auth_error is not None:
        return auth_error

    payload, parse_error = parse_json_body(event)
    if parse_error is not None or payload is None:
        return error_response(400, parse_error or "request body must be valid JSON")

    fields = {key: value for key, value in payload.items() if key != "courseId"}
    try:
        course = stores.course_store().update(course_id, fields)
    except ModelValidationError as exc:
        return error_response(400, str(exc))
    except RuntimeError as exc:
        return error_response(500, str(exc))
    except Exception:  # noqa: BLE001
        return _internal_error("course update failed")

    if course is None:
        return error_response(404, "course not found")
    logger.info("Course %s updated by %s", course_id, admin_id)
    return json_response(200, course.to_api_dict())


def _handle_delete_course(event: Mapping[str, Any], course_id: str) -> Dict[str, Any]:
    admin_id, auth_error = require_admin(event)
    if auth_error is not None:
        return auth_error

    try:
        deleted = stores.course_store().delete(course_id)
    except RuntimeError as exc:
        return error_response(500, str(exc))
    except Exception:  # noqa: BLE001
        return _internal_error("course deletion failed")

    if not deleted:
        return error_response(404, "course not found")
    # Enrollments referencing the course are left in place.
    logger.info("Course %s deleted by %s", course_id, admin_id)
    return json_response(200, {"courseId": course_id, "deleted": True})


def _handle_course_enrollments(event: Mapping[str, Any], course_id: str) -> Dict[str, Any]:
    _admin_id, auth_error = require_admin(event)
    if auth_error is not None:
        return auth_error

    try:
        records = stores.enrollment_store().list_for_course(course_id)
    except RuntimeError as exc:
        return error_response(500, str(exc))
    except Exception:  # noqa: BLE001
        return _internal_error("enrollment listing failed")
    return json_response(200, [record.to_item() for record in records])


def _handle_my_enrollments(event: Mapping[str, Any]) -> Dict[str, Any]:
    user_id, auth_error = require_user(event)
    if auth_error is not None or user_id is None:
        return auth_error or error_response(401, "authenticated principal is required")

    try:
        records = stores.enrollment_store().list_for_user(user_id)
    except RuntimeError as exc:
        return error_response(500, str(exc))
    except Exception:  # noqa: BLE001
        return _internal_error("enrollment listing failed")
    return json_response(200, [record.to_item() for record in records])


def _handle_start_payment(event: Mapping[str, Any], *, checkout: bool) -> Dict[str, Any]:
    user_id, auth_error = require_user(event)
    if auth_error is not None or user_id is None:
        return auth_error or error_response(401, "authenticated principal is required")

    payload, parse_error = parse_json_body(event)
    if parse_error is not None or payload is None:
        return error_response(400, parse_error or "request body must be valid JSON")

    try:
        course_id = require_non_empty_string(payload, "courseId")
        course = stores.course_store().get(course_id)
        if course is None:
            return error_response(404, "course not found")
        if course.unit_amount() <= 0:
            return error_response(400, "course has no price to charge")

        processor = _payment_processor()
        if checkout:
            result = processor.create_checkout_session(course, user_id)
        else:
            result = processor.create_payment_intent(course, user_id)
    except ValueError as exc:
        return error_response(400, str(exc))
    except payments.PaymentProcessorError as exc:
        logger.error("Payment start failed for course %s: %s", course_id, exc)
        return error_response(502, str(exc))
    except RuntimeError as exc:
        return error_response(500, str(exc))
    except Exception:  # noqa: BLE001
        return _internal_error("payment start failed")

    return json_response(200, result)


def _handle_confirm_payment(event: Mapping[str, Any]) -> Dict[str, Any]:
    user_id, auth_error = require_user(event)
    if auth_error is not None or user_id is None:
        return auth_error or error_response(401, "authenticated principal is required")

    payload, parse_error = parse_json_body(event)
    if parse_error is not None or payload is None:
        return error_response(400, parse_error or "request body must be valid JSON")

    try:
        reference = require_non_empty_string(payload, "paymentIntentId")
        course_id = require_non_empty_string(payload, "courseId")
        result = confirm_enrollment(
            payment_reference=reference,
            user_id=user_id,
            course_id=course_id,
            processor=_payment_processor(),
            enrollments=stores.enrollment_store(),
            profiles=stores.profile_store(),
        )
    except PaymentNotSucceededError as exc:
        return error_response(400, str(exc))
    except PaymentMismatchError as exc:
        return error_response(403, str(exc))
    except (EnrollmentConfirmationError, ValueError) as exc:
        return error_response(400, str(exc))
    except payments.PaymentProcessorError as exc:
        return error_response(502, str(exc))
    except RuntimeError as exc:
        return error_response(500, str(exc))
    except Exception:  # noqa: BLE001
        return _internal_error("payment confirmation failed")

    return json_response(201 if result.created else 200, result.to_api_dict())


def lambda_handler(event: Mapping[str, Any], context: Any) -> Dict[str, Any]:
    """API Gateway Lambda entrypoint for storefront routes."""
    _configure_logging()
    method = request_method(event)
    path = normalized_path(event, request_path(event))

    if method == "OPTIONS":
        return json_response(200, {})

    if method == "GET" and path == "/health":
        return json_response(200, {"status": "ok"})

    if method == "POST" and path == "/auth/signup":
        return _handle_identity(event, lambda gateway, body: gateway.sign_up(body), success_status=201)

    if method == "POST" and path == "/auth/confirm":
        return _handle_identity(event, lambda gateway, body: gateway.confirm_sign_up(body))

    if method == "POST" and path == "/auth/signin":
        return _handle_identity(event, lambda gateway, body: gateway.sign_in(body))

    if method == "GET" and path == "/users/me":
        return _handle_current_user(event)

    if method == "GET" and path == "/courses":
        return _handle_list_courses()

    if method == "GET":
        match = _COURSE_PATH.fullmatch(path)
        if match:
            return _handle_get_course(match.group(1))

    if method == "POST" and path == "/admin/courses":
        return _handle_create_course(event)

    if method == "GET":
        match = _ADMIN_COURSE_ENROLLMENTS_PATH.fullmatch(path)
        if match:
            return _handle_course_enrollments(event, match.group(1))

    match = _ADMIN_COURSE_PATH.fullmatch(path)
    if match and method == "PUT":
        return _handle_update_course(event, match.group(1))
    if match and method == "DELETE":
        return _handle_delete_course(event, match.group(1))

    if method == "POST" and path == "/admin/upload":
        return uploads.lambda_handler(event, context)

    if method == "POST" and path == "/payments/checkout":
        return _handle_start_payment(event, checkout=True)

    if method == "POST" and path == "/payments/intent":
        return _handle_start_payment(event, checkout=False)

    if method == "POST" and path == "/payments/confirm":
        return _handle_confirm_payment(event)

    if method == "POST" and path == "/payments/webhook":
        return payments.webhook_handler(event, context)

    if method == "GET" and path == "/enrollments":
        return _handle_my_enrollments(event)

    return error_response(404, "not found")
