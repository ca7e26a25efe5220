#!/usr/bin/env python3
"""Unit tests for the course content upload broker."""

from __future__ import annotations

import base64
import json
import os
import sys
import unittest
from pathlib import Path
from unittest.mock import patch

ROOT = Path(__file__).resolve().parent.parent
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from backend.uploads import (
    UploadValidationError,
    create_upload,
    lambda_handler,
    parse_upload_request,
    upload_url_expiry_seconds,
)

ADMIN_CONTEXT = {"authorizer": {"claims": {"sub": "admin-1", "cognito:groups": ["admin"]}}}
STUDENT_CONTEXT = {"authorizer": {"claims": {"sub": "student-1"}}}


class FakeS3Client:
    """Minimal fake for boto3 S3 presign calls."""

    def __init__(self, upload_url: str = "https://s3.example.com/presigned") -> None:
        self.upload_url = upload_url
        self.calls = []

    def generate_presigned_url(self, ClientMethod, Params, ExpiresIn, HttpMethod=None):  # noqa: N803
        self.calls.append(
            {
                "ClientMethod": ClientMethod,
                "Params": Params,
                "ExpiresIn": ExpiresIn,
                "HttpMethod": HttpMethod,
            }
        )
        return self.upload_url


class UploadFlowTests(unittest.TestCase):
    def test_parse_upload_request_rejects_unsupported_content_type(self) -> None:
        payload = {
            "courseId": "course-python-101",
            "filename": "notes.md",
            "contentType": "text/markdown",
        }

        with self.assertRaisesRegex(UploadValidationError, "contentType"):
            parse_upload_request(payload)

    def test_parse_upload_request_error_lists_supported_content_types(self) -> None:
        payload = {
            "courseId": "course-python-101",
            "filename": "notes.md",
            "contentType": "text/markdown",
        }
        with self.assertRaisesRegex(UploadValidationError, "video/mp4"):
            parse_upload_request(payload)
        with self.assertRaisesRegex(UploadValidationError, "application/pdf"):
            parse_upload_request(payload)

    def test_parse_upload_request_rejects_path_like_filename(self) -> None:
        payload = {
            "courseId": "course-python-101",
            "filename": "nested/lesson-1.mp4",
            "contentType": "video/mp4",
        }

        with self.assertRaisesRegex(UploadValidationError, "filename"):
            parse_upload_request(payload)

    def test_parse_upload_request_rejects_extension_mismatch(self) -> None:
        payload = {
            "courseId": "course-python-101",
            "filename": "lesson-1.mov",
            "contentType": "video/mp4",
        }

        with self.assertRaisesRegex(UploadValidationError, "\\.mp4"):
            parse_upload_request(payload)

    def test_parse_upload_request_accepts_either_jpeg_extension(self) -> None:
        for filename in ("cover.jpg", "cover.JPEG"):
            parsed = parse_upload_request(
                {"courseId": "course-python-101", "filename": filename, "contentType": "image/jpeg"}
            )
            self.assertEqual(parsed.filename, filename)

    def test_parse_upload_request_normalizes_content_type_case(self) -> None:
        parsed = parse_upload_request(
            {"courseId": "course-python-101", "filename": "syllabus.pdf", "contentType": "Application/PDF"}
        )
        self.assertEqual(parsed.content_type, "application/pdf")

    def test_parse_upload_request_rejects_non_positive_size(self) -> None:
        for size in (0, -5, True, "1024"):
            payload = {
                "courseId": "course-python-101",
                "filename": "lesson-1.mp4",
                "contentType": "video/mp4",
                "contentLengthBytes": size,
            }
            with self.assertRaisesRegex(UploadValidationError, "contentLengthBytes"):
                parse_upload_request(payload)

    def test_parse_upload_request_rejects_unsafe_course_id(self) -> None:
        payload = {
            "courseId": "../course",
            "filename": "lesson-1.mp4",
            "contentType": "video/mp4",
        }
        with self.assertRaisesRegex(UploadValidationError, "courseId"):
            parse_upload_request(payload)

    def test_create_upload_happy_path_wires_presign_and_returns_asset_id_and_key(self) -> None:
        s3_client = FakeS3Client()
        payload = {
            "courseId": "course-python-101",
            "filename": "lesson-1.mp4",
            "contentType": "video/mp4",
            "contentLengthBytes": 1024,
        }

        response = create_upload(
            payload,
            uploads_bucket="courseshop-content-bucket",
            s3_client=s3_client,
            asset_id_factory=lambda: "asset-1234",
        )

        self.assertEqual(response["assetId"], "asset-1234")
        self.assertEqual(response["key"], "courses/course-python-101/asset-1234/lesson-1.mp4")
        self.assertEqual(response["uploadUrl"], "https://s3.example.com/presigned")
        self.assertEqual(response["contentType"], "video/mp4")
        self.assertEqual(response["expiresInSeconds"], 900)
        self.assertEqual(response["contentLengthBytes"], 1024)

        self.assertEqual(
            s3_client.calls,
            [
                {
                    "ClientMethod": "put_object",
                    "Params": {
                        "Bucket": "courseshop-content-bucket",
                        "Key": "courses/course-python-101/asset-1234/lesson-1.mp4",
                        "ContentType": "video/mp4",
                        "ContentLength": 1024,
                    },
                    "ExpiresIn": 900,
                    "HttpMethod": "PUT",
                }
            ],
        )

    def test_create_upload_uses_fresh_asset_ids_for_same_filename(self) -> None:
        payload = {"courseId": "course-python-101", "filename": "lesson-1.mp4", "contentType": "video/mp4"}
        s3_client = FakeS3Client()
        first = create_upload(payload, uploads_bucket="bucket", s3_client=s3_client)
        second = create_upload(payload, uploads_bucket="bucket", s3_client=s3_client)

        self.assertNotEqual(first["key"], second["key"])
        self.assertTrue(first["assetId"].startswith("asset-"))
        self.assertNotIn("contentLengthBytes", first)
        self.assertNotIn("ContentLength", s3_client.calls[0]["Params"])

    def test_upload_url_expiry_reads_env_and_clamps(self) -> None:
        with patch.dict("os.environ", {"UPLOAD_URL_EXPIRY_SECONDS": "300"}, clear=True):
            self.assertEqual(upload_url_expiry_seconds(), 300)
        with patch.dict("os.environ", {"UPLOAD_URL_EXPIRY_SECONDS": "99999999"}, clear=True):
            self.assertEqual(upload_url_expiry_seconds(), 7 * 24 * 60 * 60)
        with patch.dict("os.environ", {"UPLOAD_URL_EXPIRY_SECONDS": "soon"}, clear=True):
            self.assertEqual(upload_url_expiry_seconds(), 900)
        with patch.dict("os.environ", {}, clear=True):
            self.assertEqual(upload_url_expiry_seconds(), 900)

    def test_lambda_handler_happy_path_returns_200_and_payload(self) -> None:
        previous_bucket = os.environ.get("UPLOADS_BUCKET")
        os.environ["UPLOADS_BUCKET"] = "courseshop-content-bucket"
        self.addCleanup(self._restore_bucket_env, previous_bucket)

        s3_client = FakeS3Client()
        event = {
            "requestContext": ADMIN_CONTEXT,
            "body": json.dumps(
                {
                    "courseId": "course-python-101",
                    "filename": "lesson-1.mp4",
                    "contentType": "video/mp4",
                }
            ),
        }

        with patch.dict("os.environ", {"UPLOAD_URL_EXPIRY_SECONDS": "600"}):
            response = lambda_handler(event, None, s3_client=s3_client)
        body = json.loads(response["body"])

        self.assertEqual(response["statusCode"], 200)
        self.assertTrue(body["assetId"].startswith("asset-"))
        self.assertTrue(body["key"].startswith("courses/course-python-101/"))
        self.assertEqual(body["contentType"], "video/mp4")
        self.assertEqual(body["expiresInSeconds"], 600)
        self.assertEqual(s3_client.calls[0]["ExpiresIn"], 600)

    def test_lambda_handler_returns_400_for_validation_errors(self) -> None:
        previous_bucket = os.environ.get("UPLOADS_BUCKET")
        os.environ["UPLOADS_BUCKET"] = "courseshop-content-bucket"
        self.addCleanup(self._restore_bucket_env, previous_bucket)

        event = {
            "requestContext": ADMIN_CONTEXT,
            "body": json.dumps({"courseId": "", "filename": "lesson-1.mp4", "contentType": "video/mp4"}),
        }
        response = lambda_handler(event, None, s3_client=FakeS3Client())
        body = json.loads(response["body"])

        self.assertEqual(response["statusCode"], 400)
        self.assertIn("error", body)

    def test_lambda_handler_returns_400_for_malformed_json(self) -> None:
        previous_bucket = os.environ.get("UPLOADS_BUCKET")
        os.environ["UPLOADS_BUCKET"] = "courseshop-content-bucket"
        self.addCleanup(self._restore_bucket_env, previous_bucket)

        event = {"requestContext": ADMIN_CONTEXT, "body": "{not json"}
        response = lambda_handler(event, None, s3_client=FakeS3Client())

        self.assertEqual(response["statusCode"], 400)

    def test_lambda_handler_accepts_base64_encoded_body(self) -> None:
        previous_bucket = os.environ.get("UPLOADS_BUCKET")
        os.environ["UPLOADS_BUCKET"] = "courseshop-content-bucket"
        self.addCleanup(self._restore_bucket_env, previous_bucket)

        body = json.dumps({"courseId": "course-python-101", "filename": "a.pdf", "contentType": "application/pdf"})
        event = {
            "requestContext": ADMIN_CONTEXT,
            "isBase64Encoded": True,
            "body": base64.b64encode(body.encode("utf-8")).decode("ascii"),
        }
        response = lambda_handler(event, None, s3_client=FakeS3Client())

        self.assertEqual(response["statusCode"], 200)
        self.assertTrue(json.loads(response["body"])["key"].endswith("/a.pdf"))

    def test_lambda_handler_returns_generic_500_when_presign_fails(self) -> None:
        previous_bucket = os.environ.get("UPLOADS_BUCKET")
        os.environ["UPLOADS_BUCKET"] = "courseshop-content-bucket"
        self.addCleanup(self._restore_bucket_env, previous_bucket)

        class FailingS3Client(FakeS3Client):
            def generate_presigned_url(self, ClientMethod, Params, ExpiresIn, HttpMethod=None):  # noqa: N803
                raise RuntimeError("no credentials")

        event = {
            "requestContext": ADMIN_CONTEXT,
            "body": json.dumps({"courseId": "course-python-101", "filename": "a.pdf", "contentType": "application/pdf"}),
        }
        with self.assertLogs("backend.uploads", level="ERROR"):
            response = lambda_handler(event, None, s3_client=FailingS3Client())

        self.assertEqual(response["statusCode"], 500)
        self.assertEqual(json.loads(response["body"]), {"error": "internal server error"})

    def test_lambda_handler_requires_admin_group(self) -> None:
        s3_client = FakeS3Client()
        body = json.dumps({"courseId": "course-python-101", "filename": "a.pdf", "contentType": "application/pdf"})

        anonymous = lambda_handler({"body": body}, None, s3_client=s3_client)
        student = lambda_handler({"requestContext": STUDENT_CONTEXT, "body": body}, None, s3_client=s3_client)

        self.assertEqual(anonymous["statusCode"], 401)
        self.assertEqual(student["statusCode"], 403)
        self.assertEqual(s3_client.calls, [])

    def test_lambda_handler_reports_missing_bucket(self) -> None:
        event = {
            "requestContext": ADMIN_CONTEXT,
            "body": json.dumps({"courseId": "c1", "filename": "a.pdf", "contentType": "application/pdf"}),
        }
        with patch.dict("os.environ", {}, clear=True):
            response = lambda_handler(event, None, s3_client=FakeS3Client())

        self.assertEqual(response["statusCode"], 500)
        self.assertIn("UPLOADS_BUCKET", json.loads(response["body"])["error"])

    @staticmethod
    def _restore_bucket_env(previous_bucket: str | None) -> None:
        if previous_bucket is None:
            os.environ.pop("UPLOADS_BUCKET", None)
            return
        os.environ["UPLOADS_BUCKET"] = previous_bucket


if __name__ == "__main__":
    unittest.main()
