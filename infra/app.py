#!/usr/bin/env python3
"""CDK app entrypoint for CourseShop infrastructure."""

from __future__ import annotations

import os
from pathlib import Path

import aws_cdk as cdk

from stacks.api_stack import ApiStack
from stacks.auth_stack import AuthStack
from stacks.data_stack import DataStack
from stacks.frontend_stack import FrontendStack

app = cdk.App()

env = cdk.Environment(
    account=os.getenv("CDK_DEFAULT_ACCOUNT"),
    region=os.getenv("CDK_DEFAULT_REGION"),
)

stage_name = app.node.try_get_context("stageName") or "dev"
admin_group_name = app.node.try_get_context("adminGroupName") or "admin"
course_currency = app.node.try_get_context("courseCurrency") or "usd"
upload_url_expiry_seconds = int(app.node.try_get_context("uploadUrlExpirySeconds") or "900")
log_level = app.node.try_get_context("logLevel") or "INFO"
stripe_secret_key = os.getenv("STRIPE_SECRET_KEY", "")
stripe_webhook_secret = os.getenv("STRIPE_WEBHOOK_SECRET", "")
frontend_base_url = (
    os.getenv("FRONTEND_BASE_URL", "").strip().rstrip("/")
    or app.node.try_get_context("frontendBaseUrl")
    or "http://localhost:4200"
)
project_root = Path(__file__).resolve().parents[1]
frontend_asset_path = app.node.try_get_context("frontendAssetPath") or str(
    project_root / "frontend" / "dist" / "courseshop" / "browser"
)
frontend_allowed_origins_raw = os.getenv("FRONTEND_ALLOWED_ORIGINS", frontend_base_url)
frontend_allowed_origins = [
    origin.strip()
    for origin in frontend_allowed_origins_raw.split(",")
    if origin and origin.strip()
]
if not frontend_allowed_origins:
    frontend_allowed_origins = ["http://localhost:4200"]

data_stack = DataStack(
    app,
    "CourseShopDataStack",
    env=env,
    frontend_allowed_origins=frontend_allowed_origins,
)

auth_stack = AuthStack(
    app,
    "CourseShopAuthStack",
    env=env,
    stage_name=stage_name,
    admin_group_name=admin_group_name,
)

api_stack = ApiStack(
    app,
    "CourseShopApiStack",
    env=env,
    data_stack=data_stack,
    auth_stack=auth_stack,
    stage_name=stage_name,
    admin_group_name=admin_group_name,
    stripe_secret_key=stripe_secret_key,
    stripe_webhook_secret=stripe_webhook_secret,
    course_currency=course_currency,
    frontend_base_url=frontend_base_url,
    upload_url_expiry_seconds=upload_url_expiry_seconds,
    log_level=log_level,
)
api_stack.add_dependency(data_stack)
api_stack.add_dependency(auth_stack)

if Path(frontend_asset_path).is_dir():
    frontend_stack = FrontendStack(
        app,
        "CourseShopFrontendStack",
        env=env,
        stage_name=stage_name,
        frontend_asset_path=frontend_asset_path,
        runtime_config={
            "apiBaseUrl": api_stack.rest_api.url,
            "userPoolId": auth_stack.user_pool.user_pool_id,
            "userPoolClientId": auth_stack.user_pool_client.user_pool_client_id,
            "adminGroup": admin_group_name,
        },
    )
    frontend_stack.add_dependency(api_stack)

app.synth()
