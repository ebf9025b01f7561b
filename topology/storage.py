"""
AWS object storage: S3 bucket with versioning, encryption and no public access.

The bucket is never publicly readable: Block Public Access is always applied,
objects are encrypted at rest with AES256 by default and versioning keeps
overwritten or deleted objects recoverable. ``bucket_arn`` is an
``Output[str]`` for policies and other components.
"""

from collections.abc import Mapping
from dataclasses import dataclass, field

import pulumi
import pulumi_aws as aws

from topology._helpers import default_tags, merge_tags

ID: str = "topology:aws:SecureBucket"

# Used by tests and callers to assert on secure defaults.
S3_BLOCK_PUBLIC_ACCESS: dict[str, bool] = {
    "block_public_acls": True,
    "block_public_policy": True,
    "ignore_public_acls": True,
    "restrict_public_buckets": True,
}

SSE_ALGORITHM: str = "AES256"


@dataclass(frozen=True)
class BucketConfig:
    """
    Attributes:
        bucket_name: Globally unique bucket name.
        environment: Deployment environment label (dev, staging, prod).
        tags: Tag overrides on top of the default tags.
    """

    bucket_name: str
    environment: str
    tags: Mapping[str, str] = field(default_factory=dict)


class SecureBucket(pulumi.ComponentResource):
    """
    S3 bucket with versioning, default encryption and Block Public Access.

    Resources: Bucket, BucketVersioningV2,
    BucketServerSideEncryptionConfigurationV2, BucketPublicAccessBlock.
    """

    def __init__(
        self,
        name: str,
        config: BucketConfig,
        opts: pulumi.ResourceOptions | None = None,
    ):
        """
        Create the bucket and its security settings.

        Args:
            name: Pulumi resource name for the bucket and related resources.
            config: Bucket name, environment and tag overrides.
            opts: Options for the component itself.

        Outputs (set on self, registered for the component):
            bucket_name: Bucket name.
            bucket_arn: Bucket ARN.
        """
        super().__init__(ID, name, None, opts)

        tags = merge_tags(default_tags(config.environment), config.tags)
        child_opts = pulumi.ResourceOptions(parent=self)

        self.bucket = aws.s3.Bucket(
            resource_name=name,
            bucket=config.bucket_name,
            tags=tags,
            opts=child_opts,
        )

        aws.s3.BucketVersioningV2(
            resource_name=f"{name}-versioning",
            bucket=self.bucket.id,
            versioning_configuration=aws.s3.BucketVersioningV2VersioningConfigurationArgs(
                status="Enabled",
            ),
            opts=child_opts,
        )

        default_encryption = {"sse_algorithm": SSE_ALGORITHM}
        aws.s3.BucketServerSideEncryptionConfigurationV2(
            resource_name=f"{name}-encryption",
            bucket=self.bucket.id,
            rules=[
                aws.s3.BucketServerSideEncryptionConfigurationV2RuleArgs(
                    apply_server_side_encryption_by_default=default_encryption,
                )
            ],
            opts=child_opts,
        )

        aws.s3.BucketPublicAccessBlock(
            resource_name=f"{name}-block-public",
            bucket=self.bucket.id,
            opts=child_opts,
            **S3_BLOCK_PUBLIC_ACCESS,
        )

        self.bucket_name: pulumi.Output[str] = self.bucket.bucket
        self.bucket_arn: pulumi.Output[str] = self.bucket.arn
        self.register_outputs(
            {
                "bucket_name": self.bucket_name,
                "bucket_arn": self.bucket_arn,
            }
        )
