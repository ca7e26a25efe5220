"""API Gateway proxy event parsing and JSON response helpers."""

from __future__ import annotations

import base64
import binascii
import json
import os
from typing import Any, Dict, Mapping

_DEFAULT_CORS_METHODS = "GET,POST,PUT,DELETE,OPTIONS"
_DEFAULT_CORS_HEADERS = "Content-Type,Authorization,X-Amz-Date,X-Api-Key,X-Amz-Security-Token,Stripe-Signature"


class RequestBodyError(ValueError):
    """Raised when a request body cannot be decoded to text."""


def json_response(status_code: int, payload: Any) -> Dict[str, Any]:
    """Build API Gateway Lambda proxy response."""
    origin = os.getenv("CORS_ALLOW_ORIGIN", "*").strip() or "*"
    methods = os.getenv("CORS_ALLOW_METHODS", _DEFAULT_CORS_METHODS).strip() or _DEFAULT_CORS_METHODS
    allow_headers = os.getenv("CORS_ALLOW_HEADERS", _DEFAULT_CORS_HEADERS).strip() or _DEFAULT_CORS_HEADERS
    return {
        "statusCode": status_code,
        "headers": {
            "Content-Type": "application/json",
            "Access-Control-Allow-Origin": origin,
            "Access-Control-Allow-Methods": methods,
            "Access-Control-Allow-Headers": allow_headers,
        },
        "body": json.dumps(payload),
    }


def error_response(status_code: int, message: str) -> Dict[str, Any]:
    return json_response(status_code, {"error": message})


def request_method(event: Mapping[str, Any]) -> str:
    if isinstance(event.get("requestContext"), dict):
        context = event["requestContext"]
        if isinstance(context.get("http"), dict):
            method = context["http"].get("method")
            if isinstance(method, str) and method:
                return method.upper()

    method = event.get("httpMethod", "")
    if isinstance(method, str):
        return method.upper()
    return ""


def request_path(event: Mapping[str, Any]) -> str:
    raw_path = event.get("rawPath")
    if isinstance(raw_path, str) and raw_path:
        return raw_path

    path = event.get("path")
    if isinstance(path, str) and path:
        return path

    return "/"


def normalized_path(event: Mapping[str, Any], path: str) -> str:
    """Strip API Gateway stage prefixes (for example '/dev') from request paths."""
    context = event.get("requestContext")
    if not isinstance(context, dict):
        return path

    stage = context.get("stage")
    if not isinstance(stage, str) or not stage.strip() or stage.strip() == "$default":
        return path

    stage_prefix = f"/{stage.strip()}"
    if path == stage_prefix:
        return "/"
    if path.startswith(f"{stage_prefix}/"):
        return path[len(stage_prefix) :]
    return path


def headers(event: Mapping[str, Any]) -> dict[str, str]:
    raw = event.get("headers")
    if not isinstance(raw, dict):
        return {}

    normalized: dict[str, str] = {}
    for key, value in raw.items():
        if isinstance(key, str) and isinstance(value, str):
            normalized[key.lower()] = value
    return normalized


def raw_body(event: Mapping[str, Any]) -> str:
    """Return the request body text, decoding base64 bodies from API Gateway."""
    body = event.get("body")
    if body is None:
        return ""
    if isinstance(body, (dict, list)):
        return json.dumps(body)
    if not isinstance(body, str):
        return ""
    if event.get("isBase64Encoded") is True:
        try:
            return base64.b64decode(body, validate=True).decode("utf-8")
        except (binascii.Error, UnicodeDecodeError) as exc:
            raise RequestBodyError("request body is not valid base64-encoded UTF-8") from exc
    return body


def parse_json_body(event: Mapping[str, Any]) -> tuple[dict[str, Any] | None, str | None]:
    body = event.get("body")

    if isinstance(body, dict):
        return body, None

    if not isinstance(body, str):
        return None, "request body must be a JSON object"

    try:
        decoded = json.loads(raw_body(event))
    except RequestBodyError as exc:
        return None, str(exc)
    except ValueError:
        return None, "request body must be valid JSON"

    if not isinstance(decoded, dict):
        return None, "request body must be a JSON object"

    return decoded, None


def require_non_empty_string(payload: Mapping[str, Any], field: str) -> str:
    value = payload.get(field)
    if not isinstance(value, str) or not value.strip():
        raise ValueError(f"{field} is required")
    return value.strip()


def required_env(name: str) -> str:
    value = os.getenv(name, "").strip()
    if not value:
        raise RuntimeError(f"server misconfiguration: {name} missing")
    return value


def authorizer_claims(event: Mapping[str, Any]) -> dict[str, Any]:
    """Claims injected by a Cognito authorizer (REST) or JWT authorizer (HTTP API)."""
    context = event.get("requestContext")
    if not isinstance(context, dict):
        return {}

    authorizer = context.get("authorizer")
    if not isinstance(authorizer, dict):
        return {}

    claims = authorizer.get("claims")
    if isinstance(claims, dict):
        return claims

    jwt = authorizer.get("jwt")
    if isinstance(jwt, dict):
        jwt_claims = jwt.get("claims")
        if isinstance(jwt_claims, dict):
            return jwt_claims
    return {}


def authenticated_user_id(event: Mapping[str, Any]) -> str | None:
    sub = authorizer_claims(event).get("sub")
    if isinstance(sub, str) and sub.strip():
        return sub.strip()
    return None


def claim_groups(claims: Mapping[str, Any]) -> frozenset[str]:
    """Parse `cognito:groups`, which arrives as a list or a bracketed string."""
    raw = claims.get("cognito:groups")
    if isinstance(raw, (list, tuple)):
        return frozenset(str(group).strip() for group in raw if str(group).strip())
    if isinstance(raw, str):
        text = raw.strip().strip("[]")
        return frozenset(part.strip() for part in text.replace(",", " ").split() if part.strip())
    return frozenset()


def admin_group() -> str:
    return os.getenv("ADMIN_GROUP", "admin").strip() or "admin"


def require_user(event: Mapping[str, Any]) -> tuple[str | None, Dict[str, Any] | None]:
    user_id = authenticated_user_id(event)
    if user_id is None:
        return None, error_response(401, "authenticated principal is required")
    return user_id, None


def require_admin(event: Mapping[str, Any]) -> tuple[str | None, Dict[str, Any] | None]:
    """Admin routes need a signed-in principal that belongs to ADMIN_GROUP."""
    user_id, auth_error = require_user(event)
    if auth_error is not None:
        return None, auth_error
    if admin_group() not in claim_groups(authorizer_claims(event)):
        return None, error_response(403, "admin privileges are required")
    return user_id, None
