"""Upload broker: pre-signed S3 PUT URLs for course content."""

from __future__ import annotations

import logging
import os
import re
import uuid
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Callable, Dict, Mapping, Protocol

from backend.apigw import error_response, json_response, parse_json_body, require_admin

logger = logging.getLogger(__name__)

CONTENT_TYPE_EXTENSIONS: Mapping[str, tuple[str, ...]] = {
    "video/mp4": (".mp4",),
    "video/webm": (".webm",),
    "application/pdf": (".pdf",),
    "image/png": (".png",),
    "image/jpeg": (".jpg", ".jpeg"),
    "text/plain": (".txt",),
}
ALLOWED_CONTENT_TYPES = frozenset(CONTENT_TYPE_EXTENSIONS)
UPLOAD_URL_EXPIRY_SECONDS = 900
MAX_UPLOAD_URL_EXPIRY_SECONDS = 7 * 24 * 60 * 60
_COURSE_ID_PATTERN = re.compile(r"^[A-Za-z0-9._-]+$")


class UploadValidationError(ValueError):
    """Raised when upload requests violate API constraints."""


class S3PresignClient(Protocol):
    """Protocol for the boto3 S3 client method used by this module."""

    def generate_presigned_url(
        self,
        ClientMethod: str,  # noqa: N803 - boto3 naming
        Params: Dict[str, Any],  # noqa: N803 - boto3 naming
        ExpiresIn: int,  # noqa: N803 - boto3 naming
        HttpMethod: str | None = ...,  # noqa: N803 - boto3 naming
    ) -> str: ...


@dataclass(frozen=True)
class UploadRequest:
    """Validated upload request payload."""

    course_id: str
    filename: str
    content_type: str
    content_length_bytes: int | None = None


def _require_non_empty_string(payload: Mapping[str, Any], field: str) -> str:
    value = payload.get(field)
    if not isinstance(value, str) or not value.strip():
        raise UploadValidationError(f"'{field}' must be a non-empty string")
    return value.strip()


def parse_upload_request(payload: Mapping[str, Any]) -> UploadRequest:
    """Validate incoming upload payload."""
    course_id = _require_non_empty_string(payload, "courseId")
    filename = _require_non_empty_string(payload, "filename")
    content_type = _require_non_empty_string(payload, "contentType").lower()
    content_length = payload.get("contentLengthBytes")

    if not _COURSE_ID_PATTERN.match(course_id):
        raise UploadValidationError(
            "'courseId' must contain only letters, numbers, '.', '_' or '-'"
        )

    if content_type not in ALLOWED_CONTENT_TYPES:
        raise UploadValidationError(
            "'contentType' must be one of: " + ", ".join(sorted(ALLOWED_CONTENT_TYPES))
        )

    basename = Path(filename).name
    if basename != filename or basename in {"", ".", ".."}:
        raise UploadValidationError("'filename' must be a bare file name")

    extensions = CONTENT_TYPE_EXTENSIONS[content_type]
    if not basename.lower().endswith(extensions):
        raise UploadValidationError(
            f"'filename' must end with {' or '.join(repr(ext) for ext in extensions)} for {content_type} uploads"
        )

    if content_length is not None:
        if isinstance(content_length, bool) or not isinstance(content_length, int) or content_length <= 0:
            raise UploadValidationError("'contentLengthBytes' must be a positive integer")

    return UploadRequest(
        course_id=course_id,
        filename=basename,
        content_type=content_type,
        content_length_bytes=content_length,
    )


def build_s3_key(upload: UploadRequest, asset_id: str) -> str:
    """Build stable S3 key for uploaded course content."""
    return f"courses/{upload.course_id}/{asset_id}/{upload.filename}"


def upload_url_expiry_seconds() -> int:
    """Read UPLOAD_URL_EXPIRY_SECONDS, clamped to what S3 SigV4 accepts."""
    raw = os.getenv("UPLOAD_URL_EXPIRY_SECONDS", "").strip()
    if not raw:
        return UPLOAD_URL_EXPIRY_SECONDS
    try:
        value = int(raw)
    except ValueError:
        return UPLOAD_URL_EXPIRY_SECONDS
    return max(1, min(value, MAX_UPLOAD_URL_EXPIRY_SECONDS))


def create_upload(
    payload: Mapping[str, Any],
    *,
    uploads_bucket: str,
    s3_client: S3PresignClient,
    expires_in_seconds: int = UPLOAD_URL_EXPIRY_SECONDS,
    asset_id_factory: Callable[[], str] | None = None,
) -> Dict[str, Any]:
    """Validate request and produce upload metadata + presigned S3 URL."""
    if not uploads_bucket:
        raise ValueError("uploads_bucket is required")

    upload = parse_upload_request(payload)
    generate_asset_id = asset_id_factory or (lambda: f"asset-{uuid.uuid4()}")
    asset_id = generate_asset_id()
    key = build_s3_key(upload, asset_id)

    params: Dict[str, Any] = {
        "Bucket": uploads_bucket,
        "Key": key,
        "ContentType": upload.content_type,
    }
    if upload.content_length_bytes is not None:
        # Signed into the URL; the PUT must send exactly this many bytes.
        params["ContentLength"] = upload.content_length_bytes

    upload_url = s3_client.generate_presigned_url(
        "put_object",
        Params=params,
        ExpiresIn=expires_in_seconds,
        HttpMethod="PUT",
    )
    logger.info("Issued upload URL for %s (expires in %ss)", key, expires_in_seconds)

    response: Dict[str, Any] = {
        "assetId": asset_id,
        "key": key,
        "uploadUrl": upload_url,
        "expiresInSeconds": expires_in_seconds,
        "contentType": upload.content_type,
    }
    if upload.content_length_bytes is not None:
        response["contentLengthBytes"] = upload.content_length_bytes
    return response


def create_default_s3_client() -> S3PresignClient:
    """Create boto3 S3 client lazily to keep test dependencies small."""
    import boto3

    return boto3.client("s3")


def lambda_handler(
    event: Mapping[str, Any],
    _context: Any,
    *,
    s3_client: S3PresignClient | None = None,
) -> Dict[str, Any]:
    """Lambda entrypoint for POST /admin/upload."""
    _admin_id, auth_error = require_admin(event)
    if auth_error is not None:
        return auth_error

    uploads_bucket = os.getenv("UPLOADS_BUCKET", "").strip()
    if not uploads_bucket:
        return error_response(500, "server misconfiguration: UPLOADS_BUCKET missing")

    payload, parse_error = parse_json_body(event)
    if parse_error is not None or payload is None:
        return error_response(400, parse_error or "request body must be valid JSON")

    try:
        response = create_upload(
            payload,
            uploads_bucket=uploads_bucket,
            s3_client=s3_client or create_default_s3_client(),
            expires_in_seconds=upload_url_expiry_seconds(),
        )
    except UploadValidationError as exc:
        return error_response(400, str(exc))
    except Exception:  # noqa: BLE001
        logger.exception("Upload URL creation failed")
        return error_response(500, "internal server error")
    return json_response(200, response)
