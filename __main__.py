"""
Topology - serverless API stack entrypoint.

Wires four ComponentResources using Pulumi config and output chaining:

- **LambdaFunction**: the request handler (and, when an authorizer
  entrypoint is configured, a token authorizer from the same code package).
- **ApiGateway**: REST API whose endpoints come from config; every endpoint
  is served by the handler through its ``handler_ref``.
- **SecureBucket**: private, versioned, encrypted asset bucket.
- **CdnDistribution**: CloudFront in front of the API; the API's
  ``execute_api_host`` is the origin and the stage is the origin path.

Stack exports: api_base_url, api_custom_domain_url, api_key_id,
handler_function_name, asset_bucket_name, cdn_url.
"""

import pulumi

from config import StackConfig
from topology import (
    ApiGateway,
    ApiGatewayConfig,
    BucketConfig,
    CdnConfig,
    CdnDistribution,
    FunctionConfig,
    LambdaFunction,
    SecureBucket,
)
from topology.model import endpoint_from_mapping


def _component_name(project_name: str, environment: str, prefix: str) -> str:
    return f"{prefix}-{project_name}-{environment}"


def main():
    """
    Build the function, API, bucket and CDN components and export stack outputs.

    Reads config (environment, stage, handler package, endpoints, optional
    usage plan / custom domain / authorizer), builds the handler first, wires
    its handler_ref into every endpoint, and chains the API host into the
    CDN origin.
    """
    config = StackConfig.from_pulumi_config(pulumi.Config())
    region = pulumi.Config("aws").require("region")

    def name(prefix: str) -> str:
        return _component_name(config.project_name, config.environment, prefix)

    def function_config(entrypoint: str) -> FunctionConfig:
        return FunctionConfig(
            runtime=config.handler_runtime,
            handler=entrypoint,
            code=pulumi.FileArchive(config.handler_code_path),
            environment=config.environment,
            memory_size=config.memory_size,
            timeout=config.timeout,
            tags=config.tags,
        )

    handler = LambdaFunction(
        name=name("handler"),
        config=function_config(config.handler_entrypoint),
    )

    authorizer = None
    if config.authorizer_entrypoint:
        authorizer = LambdaFunction(
            name=name("authorizer"),
            config=function_config(config.authorizer_entrypoint),
        )

    api = ApiGateway(
        name=name("api"),
        config=ApiGatewayConfig(
            name=f"{config.project_name}-{config.environment}",
            description=f"{config.project_name} API ({config.environment})",
            environment=config.environment,
            stage_name=config.stage_name,
            endpoints=tuple(
                endpoint_from_mapping(raw, handler.handler_ref) for raw in config.endpoints
            ),
            enable_cors=config.enable_cors,
            authorizer=authorizer.handler_ref if authorizer else None,
            api_key_required=config.api_key_required,
            usage_plan=config.usage_plan,
            custom_domain=config.custom_domain,
            tags=config.tags,
        ),
        region=region,
    )

    assets = SecureBucket(
        name=name("assets"),
        config=BucketConfig(
            bucket_name=config.bucket_name,
            environment=config.environment,
            tags=config.tags,
        ),
    )

    cdn = CdnDistribution(
        name=name("cdn"),
        config=CdnConfig(
            origin_domain=api.execute_api_host,
            origin_path=f"/{config.stage_name}",
            environment=config.environment,
            tags=config.tags,
        ),
    )

    for output_name, value in [
        ("api_base_url", api.base_url),
        ("api_custom_domain_url", api.custom_domain_url),
        ("api_key_id", api.api_key_id),
        ("handler_function_name", handler.function_name),
        ("asset_bucket_name", assets.bucket_name),
        ("cdn_url", cdn.url),
    ]:
        pulumi.export(output_name, value)


if __name__ == "__main__":
    main()
