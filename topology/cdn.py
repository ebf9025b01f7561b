"""
AWS CloudFront distribution in front of a custom HTTPS origin.

The origin is any host reachable over HTTPS (e.g. an ApiGateway's
``execute_api_host`` with the stage as origin path). The distribution
redirects viewers to HTTPS by default. With a ``certificate_arn`` it serves
the configured aliases over SNI with TLS 1.2; without one it falls back to
the default CloudFront certificate. Outputs (``domain_name``,
``distribution_id``, ``distribution_arn``) are ``Output[str]``.

Defaults (TTLs, price class, protocol policies) are filled by
with_cdn_defaults() on a copy of the config.
"""

from collections.abc import Mapping, Sequence
from dataclasses import dataclass, field
from typing import Any

import pulumi
import pulumi_aws as aws

from topology._helpers import default_tags, fill_defaults, merge_tags

ID: str = "topology:aws:CdnDistribution"

ORIGIN_ID: str = "primary"

CDN_DEFAULTS: dict[str, Any] = {
    "default_ttl": 86400,
    "max_ttl": 31536000,
    "price_class": "PriceClass_100",
    "viewer_protocol_policy": "redirect-to-https",
    "origin_protocol_policy": "https-only",
}

MINIMUM_PROTOCOL_VERSION: str = "TLSv1.2_2021"


@dataclass(frozen=True)
class CdnConfig:
    """
    CloudFront distribution settings.

    Attributes:
        origin_domain: Origin host (str or Output[str]), no scheme.
        environment: Deployment environment label.
        origin_path: Path prefix added to origin requests (e.g. "/prod").
        aliases: Alternate domain names; need ``certificate_arn``.
        certificate_arn: ACM certificate (us-east-1) for the aliases.
        min_ttl, default_ttl, max_ttl: Cache TTLs in seconds; zero
            default/max TTLs are replaced by CDN_DEFAULTS.
        price_class: CloudFront price class.
        viewer_protocol_policy: Viewer protocol policy.
        origin_protocol_policy: Protocol CloudFront uses towards the origin.
        web_acl_id: WAF web ACL to associate, if any.
        enabled: Whether the distribution accepts requests.
        ipv6_enabled: Whether IPv6 is enabled.
        tags: Tag overrides on top of the default tags.
    """

    origin_domain: Any
    environment: str
    origin_path: Any = ""
    aliases: Sequence[str] = ()
    certificate_arn: str = ""
    min_ttl: int = 0
    default_ttl: int = 0
    max_ttl: int = 0
    price_class: str = ""
    viewer_protocol_policy: str = ""
    origin_protocol_policy: str = ""
    web_acl_id: str = ""
    enabled: bool = True
    ipv6_enabled: bool = True
    tags: Mapping[str, str] = field(default_factory=dict)


def with_cdn_defaults(
    config: CdnConfig,
) -> CdnConfig:
    """Return a copy of ``config`` with unset TTLs and policies defaulted."""
    return fill_defaults(config, CDN_DEFAULTS)


def viewer_certificate(
    certificate_arn: str,
) -> dict[str, Any]:
    """
    Viewer certificate arguments.

    ACM certificate over SNI with TLS 1.2 when an ARN is given, the default
    CloudFront certificate otherwise.
    """
    if certificate_arn:
        return {
            "acm_certificate_arn": certificate_arn,
            "minimum_protocol_version": MINIMUM_PROTOCOL_VERSION,
            "ssl_support_method": "sni-only",
        }
    return {"cloudfront_default_certificate": True}


class CdnDistribution(pulumi.ComponentResource):
    """
    CloudFront distribution with one custom origin.

    Resources: Distribution.
    """

    def __init__(
        self,
        name: str,
        config: CdnConfig,
        opts: pulumi.ResourceOptions | None = None,
    ):
        """
        Create the CloudFront distribution.

        Args:
            name: Pulumi resource name for the distribution.
            config: Distribution settings; defaults are applied to a copy.
            opts: Options for the component itself.

        Outputs (set on self, registered for the component):
            domain_name: Distribution FQDN.
            distribution_id: Distribution id.
            distribution_arn: Distribution ARN.
            url: HTTPS URL of the distribution.
        """
        super().__init__(ID, name, None, opts)

        config = with_cdn_defaults(config)
        tags = merge_tags(default_tags(config.environment), config.tags)

        origin = aws.cloudfront.DistributionOriginArgs(
            domain_name=config.origin_domain,
            origin_id=ORIGIN_ID,
            origin_path=config.origin_path,
            custom_origin_config=aws.cloudfront.DistributionOriginCustomOriginConfigArgs(
                origin_protocol_policy=config.origin_protocol_policy,
                http_port=80,
                https_port=443,
                origin_ssl_protocols=["TLSv1.2"],
            ),
        )

        # ForwardedValues is required by the API when not using a cache policy.
        forwarded_values = aws.cloudfront.DistributionDefaultCacheBehaviorForwardedValuesArgs(
            query_string=True,
            cookies=aws.cloudfront.DistributionDefaultCacheBehaviorForwardedValuesCookiesArgs(
                forward="none",
            ),
        )
        default_cache_behavior = aws.cloudfront.DistributionDefaultCacheBehaviorArgs(
            target_origin_id=ORIGIN_ID,
            viewer_protocol_policy=config.viewer_protocol_policy,
            allowed_methods=["GET", "HEAD", "OPTIONS"],
            cached_methods=["GET", "HEAD"],
            forwarded_values=forwarded_values,
            min_ttl=config.min_ttl,
            default_ttl=config.default_ttl,
            max_ttl=config.max_ttl,
            compress=True,
        )

        restrictions = aws.cloudfront.DistributionRestrictionsArgs(
            geo_restriction=aws.cloudfront.DistributionRestrictionsGeoRestrictionArgs(
                restriction_type="none",
            ),
        )

        self.distribution = aws.cloudfront.Distribution(
            resource_name=name,
            enabled=config.enabled,
            is_ipv6_enabled=config.ipv6_enabled,
            price_class=config.price_class,
            aliases=list(config.aliases),
            web_acl_id=config.web_acl_id or None,
            origins=[origin],
            default_cache_behavior=default_cache_behavior,
            restrictions=restrictions,
            viewer_certificate=viewer_certificate(config.certificate_arn),
            tags=tags,
            opts=pulumi.ResourceOptions(parent=self),
        )

        self.domain_name: pulumi.Output[str] = self.distribution.domain_name
        self.distribution_id: pulumi.Output[str] = self.distribution.id
        self.distribution_arn: pulumi.Output[str] = self.distribution.arn
        self.url: pulumi.Output[str] = pulumi.Output.concat(
            "https://", self.distribution.domain_name
        )
        self.register_outputs(
            {
                "domain_name": self.domain_name,
                "distribution_id": self.distribution_id,
                "distribution_arn": self.distribution_arn,
                "url": self.url,
            }
        )
