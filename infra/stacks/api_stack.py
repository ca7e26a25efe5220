"""API infrastructure stack for Lambda + API Gateway wiring."""

from __future__ import annotations

from pathlib import Path

from aws_cdk import BundlingOptions, CfnOutput, Duration, Stack
from aws_cdk import aws_apigateway as apigateway
from aws_cdk import aws_iam as iam
from aws_cdk import aws_lambda as lambda_
from constructs import Construct

from stacks.auth_stack import AuthStack
from stacks.data_stack import DataStack

_CORS_HEADERS = "Content-Type,Authorization,X-Amz-Date,X-Api-Key,X-Amz-Security-Token,Stripe-Signature"
_CORS_METHODS = "GET,POST,PUT,DELETE,OPTIONS"


class ApiStack(Stack):
    """Owns API Gateway and Lambda resources for the storefront API surface."""

    def __init__(
        self,
        scope: Construct,
        construct_id: str,
        *,
        data_stack: DataStack,
        auth_stack: AuthStack,
        stage_name: str,
        admin_group_name: str,
        stripe_secret_key: str,
        stripe_webhook_secret: str,
        course_currency: str,
        frontend_base_url: str,
        upload_url_expiry_seconds: int,
        log_level: str,
        **kwargs,
    ) -> None:
        super().__init__(scope, construct_id, **kwargs)

        project_root = Path(__file__).resolve().parents[2]
        lambda_code = lambda_.Code.from_asset(
            str(project_root),
            exclude=[
                ".git",
                ".github",
                "infra",
                "node_modules",
                "frontend",
                "cdk.out",
                "__pycache__",
                "tests",
                "scripts",
                "fixtures",
            ],
        )

        # Stripe SDK is not part of the Lambda Python runtime.
        dependencies_layer = lambda_.LayerVersion(
            self,
            "StorefrontDependenciesLayer",
            code=lambda_.Code.from_asset(
                str(project_root / "infra" / "lambda_layer"),
                bundling=BundlingOptions(
                    image=lambda_.Runtime.PYTHON_3_12.bundling_image,
                    command=[
                        "bash",
                        "-c",
                        "pip install -r requirements.txt -t /asset-output/python",
                    ],
                ),
            ),
            compatible_runtimes=[lambda_.Runtime.PYTHON_3_12],
            description="Third-party packages for storefront Lambdas",
        )

        env = {
            "COURSES_TABLE": data_stack.courses_table.table_name,
            "USERS_TABLE": data_stack.users_table.table_name,
            "ENROLLMENTS_TABLE": data_stack.enrollments_table.table_name,
            "UPLOADS_BUCKET": data_stack.uploads_bucket.bucket_name,
            "UPLOAD_URL_EXPIRY_SECONDS": str(upload_url_expiry_seconds),
            "COGNITO_USER_POOL_ID": auth_stack.user_pool.user_pool_id,
            "COGNITO_CLIENT_ID": auth_stack.user_pool_client.user_pool_client_id,
            "ADMIN_GROUP": admin_group_name,
            "STRIPE_SECRET_KEY": stripe_secret_key,
            "STRIPE_WEBHOOK_SECRET": stripe_webhook_secret,
            "COURSE_CURRENCY": course_currency,
            "FRONTEND_BASE_URL": frontend_base_url,
            "CORS_ALLOW_ORIGIN": frontend_base_url,
            "LOG_LEVEL": log_level,
        }

        app_api_handler = lambda_.Function(
            self,
            "AppApiHandler",
            runtime=lambda_.Runtime.PYTHON_3_12,
            code=lambda_code,
            handler="backend.runtime.lambda_handler",
            timeout=Duration.seconds(29),
            memory_size=256,
            environment=env,
            layers=[dependencies_layer],
        )

        uploads_handler = lambda_.Function(
            self,
            "UploadsHandler",
            runtime=lambda_.Runtime.PYTHON_3_12,
            code=lambda_code,
            handler="backend.uploads.lambda_handler",
            timeout=Duration.seconds(15),
            memory_size=256,
            environment=env,
            layers=[dependencies_layer],
        )

        webhook_handler = lambda_.Function(
            self,
            "PaymentsWebhookHandler",
            runtime=lambda_.Runtime.PYTHON_3_12,
            code=lambda_code,
            handler="backend.payments.webhook_handler",
            timeout=Duration.seconds(29),
            memory_size=256,
            environment=env,
            layers=[dependencies_layer],
        )

        data_stack.uploads_bucket.grant_put(uploads_handler)
        data_stack.uploads_bucket.grant_put(app_api_handler)

        data_stack.courses_table.grant_read_write_data(app_api_handler)
        data_stack.users_table.grant_read_write_data(app_api_handler)
        data_stack.enrollments_table.grant_read_write_data(app_api_handler)
        data_stack.users_table.grant_read_write_data(webhook_handler)
        data_stack.enrollments_table.grant_read_write_data(webhook_handler)

        app_api_handler.add_to_role_policy(
            iam.PolicyStatement(
                actions=[
                    "cognito-idp:SignUp",
                    "cognito-idp:ConfirmSignUp",
                    "cognito-idp:InitiateAuth",
                ],
                resources=[auth_stack.user_pool.user_pool_arn],
            )
        )

        self.rest_api = apigateway.RestApi(
            self,
            "StorefrontApi",
            rest_api_name=f"courseshop-{stage_name}-api",
            deploy_options=apigateway.StageOptions(stage_name=stage_name),
            default_cors_preflight_options=apigateway.CorsOptions(
                allow_origins=[frontend_base_url],
                allow_methods=_CORS_METHODS.split(","),
                allow_headers=_CORS_HEADERS.split(","),
            ),
        )
        for response_id, response_type in (
            ("Default4xxCors", apigateway.ResponseType.DEFAULT_4_XX),
            ("Default5xxCors", apigateway.ResponseType.DEFAULT_5_XX),
        ):
            self.rest_api.add_gateway_response(
                response_id,
                type=response_type,
                response_headers={
                    "Access-Control-Allow-Origin": f"'{frontend_base_url}'",
                    "Access-Control-Allow-Headers": f"'{_CORS_HEADERS}'",
                    "Access-Control-Allow-Methods": f"'{_CORS_METHODS}'",
                },
            )

        authorizer = apigateway.CognitoUserPoolsAuthorizer(
            self,
            "StorefrontAuthorizer",
            cognito_user_pools=[auth_stack.user_pool],
        )
        protected = {
            "authorizer": authorizer,
            "authorization_type": apigateway.AuthorizationType.COGNITO,
        }

        app_integration = apigateway.LambdaIntegration(app_api_handler)
        uploads_integration = apigateway.LambdaIntegration(uploads_handler)
        webhook_integration = apigateway.LambdaIntegration(webhook_handler)

        health = self.rest_api.root.add_resource("health")
        health.add_method("GET", app_integration)

        auth = self.rest_api.root.add_resource("auth")
        for action in ("signup", "confirm", "signin"):
            auth.add_resource(action).add_method("POST", app_integration)

        users = self.rest_api.root.add_resource("users")
        users.add_resource("me").add_method("GET", app_integration, **protected)

        courses = self.rest_api.root.add_resource("courses")
        courses.add_method("GET", app_integration)
        courses.add_resource("{courseId}").add_method("GET", app_integration)

        admin = self.rest_api.root.add_resource("admin")
        admin_courses = admin.add_resource("courses")
        admin_courses.add_method("POST", app_integration, **protected)
        admin_course = admin_courses.add_resource("{courseId}")
        admin_course.add_method("PUT", app_integration, **protected)
        admin_course.add_method("DELETE", app_integration, **protected)
        admin_course.add_resource("enrollments").add_method("GET", app_integration, **protected)
        admin.add_resource("upload").add_method("POST", uploads_integration, **protected)

        payments = self.rest_api.root.add_resource("payments")
        payments.add_resource("checkout").add_method("POST", app_integration, **protected)
        payments.add_resource("intent").add_method("POST", app_integration, **protected)
        payments.add_resource("confirm").add_method("POST", app_integration, **protected)
        payments.add_resource("webhook").add_method("POST", webhook_integration)

        enrollments = self.rest_api.root.add_resource("enrollments")
        enrollments.add_method("GET", app_integration, **protected)

        api_base_url = self.rest_api.url.rstrip("/")
        CfnOutput(
            self,
            "ApiBaseUrl",
            value=api_base_url,
            description="Base URL for smoke tests and frontend API wiring",
        )
        CfnOutput(
            self,
            "PaymentsWebhookUrl",
            value=f"{api_base_url}/payments/webhook",
            description="Endpoint to register with Stripe for payment events",
        )
