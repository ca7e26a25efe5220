"""Storefront API client with bearer-token injection and route guards."""

from __future__ import annotations

import base64
import json
from dataclasses import dataclass
from typing import Any, Callable, Mapping
from urllib.error import HTTPError, URLError
from urllib.parse import quote
from urllib.request import Request, urlopen

_DEFAULT_TIMEOUT_SECONDS = 15
_DEFAULT_USER_AGENT = "courseshop-storefront/0.1"


class StorefrontApiError(RuntimeError):
    """Raised when the storefront API answers with an error or malformed payload."""

    def __init__(self, message: str, *, status_code: int | None = None) -> None:
        super().__init__(message)
        self.status_code = status_code


class RouteGuardError(StorefrontApiError):
    """Raised when a guarded call is attempted without the required session."""


def decode_jwt_claims(token: str) -> dict[str, Any]:
    """Read JWT payload claims without verifying the signature."""
    parts = token.split(".")
    if len(parts) != 3:
        return {}
    segment = parts[1] + "=" * (-len(parts[1]) % 4)
    try:
        claims = json.loads(base64.urlsafe_b64decode(segment.encode("ascii")).decode("utf-8"))
    except (ValueError, UnicodeDecodeError):
        return {}
    return claims if isinstance(claims, dict) else {}


@dataclass
class AuthSession:
    """Tokens of the signed-in user, if any."""

    id_token: str = ""
    access_token: str = ""
    refresh_token: str = ""
    admin_group: str = "admin"

    @property
    def is_authenticated(self) -> bool:
        return bool(self.id_token)

    @property
    def claims(self) -> dict[str, Any]:
        return decode_jwt_claims(self.id_token) if self.id_token else {}

    @property
    def is_admin(self) -> bool:
        groups = self.claims.get("cognito:groups")
        if isinstance(groups, str):
            groups = [groups]
        return isinstance(groups, list) and self.admin_group in groups

    def clear(self) -> None:
        self.id_token = ""
        self.access_token = ""
        self.refresh_token = ""


def auth_guard(session: AuthSession) -> bool:
    """Allow navigation to signed-in pages."""
    return session.is_authenticated


def admin_guard(session: AuthSession) -> bool:
    """Allow navigation to admin pages."""
    return session.is_authenticated and session.is_admin


class StorefrontClient:
    """Thin wrapper over the storefront HTTP API."""

    def __init__(
        self,
        base_url: str,
        *,
        session: AuthSession | None = None,
        user_agent: str = _DEFAULT_USER_AGENT,
        timeout: int = _DEFAULT_TIMEOUT_SECONDS,
    ) -> None:
        self.base_url = base_url.strip().rstrip("/")
        self.session = session or AuthSession()
        self._user_agent = user_agent
        self._timeout = timeout

    def _headers(self, has_body: bool) -> dict[str, str]:
        headers = {"Accept": "application/json", "User-Agent": self._user_agent}
        if has_body:
            headers["Content-Type"] = "application/json"
        if self.session.is_authenticated:
            headers["Authorization"] = f"Bearer {self.session.id_token}"
        return headers

    def _request_json(self, method: str, path: str, payload: Mapping[str, Any] | None = None) -> Any:
        url = f"{self.base_url}{path}"
        data = json.dumps(payload).encode("utf-8") if payload is not None else None
        req = Request(url=url, data=data, headers=self._headers(data is not None), method=method)
        try:
            with urlopen(req, timeout=self._timeout) as resp:
                raw = resp.read().decode("utf-8")
        except HTTPError as exc:
            detail = exc.read().decode("utf-8", errors="ignore")
            message = detail
            try:
                parsed = json.loads(detail)
                if isinstance(parsed, dict) and isinstance(parsed.get("error"), str):
                    message = parsed["error"]
            except json.JSONDecodeError:
                pass
            raise StorefrontApiError(
                f"{method} {path} failed ({exc.code}): {message}", status_code=exc.code
            ) from exc
        except URLError as exc:
            raise StorefrontApiError(f"{method} {path} failed: {exc.reason}") from exc

        try:
            return json.loads(raw) if raw else None
        except json.JSONDecodeError as exc:
            raise StorefrontApiError(f"{method} {path} returned invalid JSON") from exc

    def _guarded(self, guard: Callable[[AuthSession], bool], label: str) -> None:
        if not guard(self.session):
            status = 401 if not self.session.is_authenticated else 403
            role = "admin" if guard is admin_guard else "user"
            raise RouteGuardError(f"{label} requires a signed-in {role}", status_code=status)

    def health(self) -> dict[str, Any]:
        return self._request_json("GET", "/health")

    # auth

    def sign_up(self, *, email: str, password: str, name: str) -> dict[str, Any]:
        return self._request_json("POST", "/auth/signup", {"email": email, "password": password, "name": name})

    def confirm_sign_up(self, *, email: str, code: str) -> dict[str, Any]:
        return self._request_json("POST", "/auth/confirm", {"email": email, "code": code})

    def sign_in(self, *, email: str, password: str) -> dict[str, Any]:
        result = self._request_json("POST", "/auth/signin", {"email": email, "password": password})
        if not isinstance(result, dict):
            raise StorefrontApiError("sign-in returned an unexpected payload")
        if result.get("idToken"):
            self.session.id_token = str(result["idToken"])
            self.session.access_token = str(result.get("accessToken", ""))
            self.session.refresh_token = str(result.get("refreshToken", ""))
        return result

    def sign_out(self) -> None:
        self.session.clear()

    def current_user(self) -> dict[str, Any]:
        self._guarded(auth_guard, "profile")
        return self._request_json("GET", "/users/me")

    # catalog

    def list_courses(self) -> list[dict[str, Any]]:
        rows = self._request_json("GET", "/courses")
        if not isinstance(rows, list):
            raise StorefrontApiError("course listing returned an unexpected payload")
        return rows

    def get_course(self, course_id: str) -> dict[str, Any]:
        return self._request_json("GET", f"/courses/{quote(course_id, safe='')}")

    def create_course(self, course: Mapping[str, Any]) -> dict[str, Any]:
        self._guarded(admin_guard, "course creation")
        return self._request_json("POST", "/admin/courses", course)

    def update_course(self, course_id: str, fields: Mapping[str, Any]) -> dict[str, Any]:
        self._guarded(admin_guard, "course update")
        return self._request_json("PUT", f"/admin/courses/{quote(course_id, safe='')}", fields)

    def delete_course(self, course_id: str) -> dict[str, Any]:
        self._guarded(admin_guard, "course deletion")
        return self._request_json("DELETE", f"/admin/courses/{quote(course_id, safe='')}")

    def request_upload_url(
        self,
        *,
        course_id: str,
        filename: str,
        content_type: str,
        content_length_bytes: int | None = None,
    ) -> dict[str, Any]:
        self._guarded(admin_guard, "content upload")
        payload: dict[str, Any] = {"courseId": course_id, "filename": filename, "contentType": content_type}
        if content_length_bytes is not None:
            payload["contentLengthBytes"] = content_length_bytes
        return self._request_json("POST", "/admin/upload", payload)

    # payments

    def start_checkout(self, course_id: str) -> dict[str, Any]:
        self._guarded(auth_guard, "checkout")
        return self._request_json("POST", "/payments/checkout", {"courseId": course_id})

    def create_payment_intent(self, course_id: str) -> dict[str, Any]:
        self._guarded(auth_guard, "payment")
        return self._request_json("POST", "/payments/intent", {"courseId": course_id})

    def confirm_payment(self, *, payment_intent_id: str, course_id: str) -> dict[str, Any]:
        self._guarded(auth_guard, "payment confirmation")
        return self._request_json(
            "POST",
            "/payments/confirm",
            {"paymentIntentId": payment_intent_id, "courseId": course_id},
        )

    def my_enrollments(self) -> list[dict[str, Any]]:
        self._guarded(auth_guard, "enrollments")
        rows = self._request_json("GET", "/enrollments")
        if not isinstance(rows, list):
            raise StorefrontApiError("enrollment listing returned an unexpected payload")
        return rows
