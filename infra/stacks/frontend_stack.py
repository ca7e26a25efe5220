"""Frontend infrastructure stack for the storefront single-page app."""

from __future__ import annotations

from pathlib import Path

from aws_cdk import CfnOutput, Duration, RemovalPolicy, Stack
from aws_cdk import aws_cloudfront as cloudfront
from aws_cdk import aws_cloudfront_origins as origins
from aws_cdk import aws_s3 as s3
from aws_cdk import aws_s3_deployment as s3_deployment
from constructs import Construct


class FrontendStack(Stack):
    """Deploys the built storefront bundle to S3 behind CloudFront."""

    def __init__(
        self,
        scope: Construct,
        construct_id: str,
        *,
        stage_name: str,
        frontend_asset_path: str,
        runtime_config: dict[str, str] | None = None,
        **kwargs,
    ) -> None:
        super().__init__(scope, construct_id, **kwargs)

        asset_path = Path(frontend_asset_path).resolve()
        if not asset_path.is_dir():
            raise ValueError(
                f"Storefront bundle does not exist: {asset_path}. "
                "Build the frontend before CDK synth/deploy."
            )

        site_bucket = s3.Bucket(
            self,
            "StorefrontSiteBucket",
            encryption=s3.BucketEncryption.S3_MANAGED,
            block_public_access=s3.BlockPublicAccess.BLOCK_ALL,
            enforce_ssl=True,
            auto_delete_objects=True,
            removal_policy=RemovalPolicy.DESTROY,
        )

        # Client-side routes (/courses/{id}, /admin, /payment-success) all resolve to the app shell.
        distribution = cloudfront.Distribution(
            self,
            "StorefrontDistribution",
            default_root_object="index.html",
            default_behavior=cloudfront.BehaviorOptions(
                origin=origins.S3BucketOrigin(site_bucket),
                viewer_protocol_policy=cloudfront.ViewerProtocolPolicy.REDIRECT_TO_HTTPS,
            ),
            error_responses=[
                cloudfront.ErrorResponse(
                    http_status=status,
                    response_http_status=200,
                    response_page_path="/index.html",
                    ttl=Duration.minutes(5),
                )
                for status in (403, 404)
            ],
        )

        sources = [s3_deployment.Source.asset(str(asset_path))]
        if runtime_config:
            sources.append(s3_deployment.Source.json_data("assets/runtime-config.json", runtime_config))

        s3_deployment.BucketDeployment(
            self,
            "DeployStorefrontAssets",
            destination_bucket=site_bucket,
            sources=sources,
            distribution=distribution,
            distribution_paths=["/*"],
            prune=True,
        )

        CfnOutput(
            self,
            "StorefrontCloudFrontDomainName",
            value=distribution.distribution_domain_name,
            description=f"CloudFront domain name for {stage_name} storefront",
        )
        CfnOutput(
            self,
            "StorefrontUrl",
            value=f"https://{distribution.distribution_domain_name}",
            description=f"Public URL for {stage_name} storefront",
        )
