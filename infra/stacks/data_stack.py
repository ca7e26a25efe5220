"""Data infrastructure stack for storefront storage resources."""

from __future__ import annotations

from aws_cdk import CfnOutput, RemovalPolicy, Stack
from aws_cdk import aws_dynamodb as dynamodb
from aws_cdk import aws_s3 as s3
from constructs import Construct


class DataStack(Stack):
    """Owns S3 and DynamoDB resources used by the API stack."""

    def __init__(
        self,
        scope: Construct,
        construct_id: str,
        *,
        frontend_allowed_origins: list[str],
        **kwargs,
    ) -> None:
        super().__init__(scope, construct_id, **kwargs)

        self.uploads_bucket = s3.Bucket(
            self,
            "CourseContentBucket",
            encryption=s3.BucketEncryption.S3_MANAGED,
            block_public_access=s3.BlockPublicAccess.BLOCK_ALL,
            enforce_ssl=True,
            auto_delete_objects=True,
            removal_policy=RemovalPolicy.DESTROY,
            cors=[
                s3.CorsRule(
                    allowed_methods=[s3.HttpMethods.PUT],
                    allowed_origins=frontend_allowed_origins,
                    allowed_headers=["*"],
                    max_age=3000,
                )
            ],
        )

        table_kwargs = {
            "billing_mode": dynamodb.BillingMode.PAY_PER_REQUEST,
            "removal_policy": RemovalPolicy.DESTROY,
        }

        self.courses_table = dynamodb.Table(
            self,
            "CoursesTable",
            partition_key=dynamodb.Attribute(name="courseId", type=dynamodb.AttributeType.STRING),
            **table_kwargs,
        )

        self.users_table = dynamodb.Table(
            self,
            "UsersTable",
            partition_key=dynamodb.Attribute(name="userId", type=dynamodb.AttributeType.STRING),
            **table_kwargs,
        )

        self.enrollments_table = dynamodb.Table(
            self,
            "EnrollmentsTable",
            partition_key=dynamodb.Attribute(name="userId", type=dynamodb.AttributeType.STRING),
            sort_key=dynamodb.Attribute(name="courseId", type=dynamodb.AttributeType.STRING),
            **table_kwargs,
        )
        self.enrollments_table.add_global_secondary_index(
            index_name="courseId-index",
            partition_key=dynamodb.Attribute(name="courseId", type=dynamodb.AttributeType.STRING),
            sort_key=dynamodb.Attribute(name="createdAt", type=dynamodb.AttributeType.STRING),
        )

        CfnOutput(
            self,
            "CourseContentBucketName",
            value=self.uploads_bucket.bucket_name,
            description="Course content uploads bucket name",
        )
        CfnOutput(
            self,
            "CoursesTableName",
            value=self.courses_table.table_name,
            description="Course catalog table name",
        )
        CfnOutput(
            self,
            "UsersTableName",
            value=self.users_table.table_name,
            description="User profile table name",
        )
        CfnOutput(
            self,
            "EnrollmentsTableName",
            value=self.enrollments_table.table_name,
            description="Enrollments table name",
        )
