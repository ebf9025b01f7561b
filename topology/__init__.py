"""
Typed infrastructure compositions on Pulumi.

Each unit of infrastructure is a ComponentResource built from a frozen config
dataclass. Use from the Pulumi entrypoint (e.g. __main__.py) with config and
output chaining:

- **ApiGateway**: REST API composed from an ApiGatewayConfig; endpoints share
  one path tree; optional authorizer, CORS, API key + usage plan and custom
  domain. Exposes base_url, execute_api_host, custom_domain_url, api_key_id.
- **LambdaFunction**: function with role, log group, alarms and alias;
  exposes handler_ref for ApiGateway endpoints.
- **SecureBucket**: versioned, encrypted, non-public S3 bucket.
- **CdnDistribution**: CloudFront in front of a custom HTTPS origin (e.g. the
  API's execute_api_host).

The planner (topology.plan) is pure and can be used without a Pulumi stack.
"""

from topology.api_gateway import ApiGateway
from topology.cdn import CdnConfig, CdnDistribution
from topology.errors import CompositionError, ConfigurationError, TopologyError
from topology.function import AlertConfig, FunctionConfig, LambdaFunction
from topology.model import (
    ApiGatewayConfig,
    AuthMode,
    CustomDomainConfig,
    Endpoint,
    HandlerRef,
    Quota,
    Throttle,
    UsagePlanConfig,
)
from topology.plan import ApiOutputs, ApiPlan, aggregate, compose_api
from topology.storage import BucketConfig, SecureBucket

__all__ = [
    "AlertConfig",
    "ApiGateway",
    "ApiGatewayConfig",
    "ApiOutputs",
    "ApiPlan",
    "AuthMode",
    "BucketConfig",
    "CdnConfig",
    "CdnDistribution",
    "CompositionError",
    "ConfigurationError",
    "CustomDomainConfig",
    "Endpoint",
    "FunctionConfig",
    "HandlerRef",
    "LambdaFunction",
    "Quota",
    "SecureBucket",
    "Throttle",
    "TopologyError",
    "UsagePlanConfig",
    "aggregate",
    "compose_api",
]
