"""
AWS API Gateway front-end: REST API, path tree, methods, features, stage.

This component composes an ApiPlan (topology.plan) from an ApiGatewayConfig
and declares one pulumi_aws resource per plan node, walking the graph in
topological order. Every graph edge becomes an explicit ``depends_on`` so the
Pulumi engine never has to infer ordering from property references alone:
in particular the deployment depends on every method and integration, and
the usage plan and base-path mapping depend on the stage.

Outputs (``base_url``, ``custom_domain_url``, ``api_key_id``) are
``Output[str]``; ``execute_api_host`` can be used as a CDN origin domain.
"""

from collections.abc import Mapping
from typing import Any

import pulumi
import pulumi_aws as aws

from topology._helpers import execute_api_host
from topology.errors import CompositionError
from topology.graph import Concat, Node, Ref
from topology.model import ApiGatewayConfig
from topology.plan import ApiOutputs, ApiPlan, aggregate, compose_api

ID: str = "topology:aws:ApiGateway"

# Plan node kind -> provider resource class. Node props are the resource args.
RESOURCE_TYPES: dict[str, type[pulumi.CustomResource]] = {
    "rest_api": aws.apigateway.RestApi,
    "authorizer": aws.apigateway.Authorizer,
    "resource": aws.apigateway.Resource,
    "method": aws.apigateway.Method,
    "integration": aws.apigateway.Integration,
    "permission": aws.lambda_.Permission,
    "deployment": aws.apigateway.Deployment,
    "stage": aws.apigateway.Stage,
    "api_key": aws.apigateway.ApiKey,
    "usage_plan": aws.apigateway.UsagePlan,
    "usage_plan_key": aws.apigateway.UsagePlanKey,
    "domain_name": aws.apigateway.DomainName,
    "base_path_mapping": aws.apigateway.BasePathMapping,
}


def _resolve(value: Any, created: Mapping[str, pulumi.CustomResource]) -> Any:
    """Replace Ref/Concat markers (at any depth) with outputs of created resources."""
    if isinstance(value, Ref):
        return getattr(created[value.node], value.attribute)
    if isinstance(value, Concat):
        return pulumi.Output.concat(*(_resolve(part, created) for part in value.parts))
    if isinstance(value, dict):
        return {key: _resolve(item, created) for key, item in value.items()}
    if isinstance(value, list):
        return [_resolve(item, created) for item in value]
    return value


class ApiGateway(pulumi.ComponentResource):
    """
    REST API with a shared path tree and optional authorizer, usage plan,
    CORS preflight and custom domain.

    Resources: RestApi, Resource per distinct path prefix, Method +
    Integration + lambda Permission per endpoint, optional OPTIONS/MOCK pair,
    Deployment, Stage, and optionally Authorizer, ApiKey, UsagePlan,
    UsagePlanKey, DomainName, BasePathMapping.
    """

    def __init__(
        self,
        name: str,
        config: ApiGatewayConfig,
        region: str,
        opts: pulumi.ResourceOptions | None = None,
    ):
        """
        Compose the plan and declare its resources.

        Args:
            name: Pulumi resource name; prefixes every child resource name.
            config: API configuration; validated before anything is declared.
            region: Region the API is deployed to, for the base URL.
            opts: Options for the component itself.

        Raises:
            ConfigurationError: The configuration is malformed.
            CompositionError: A child resource could not be declared.

        Outputs (set on self, registered for the component):
            base_url: Invocation URL of the stage.
            execute_api_host: Host of base_url (e.g. for a CDN origin).
            custom_domain_url: HTTPS URL of the custom domain, or None.
            api_key_id: Id of the generated API key, or None.
        """
        # Validated before the component itself is registered.
        plan = compose_api(name, config)
        super().__init__(ID, name, None, opts)

        self.plan: ApiPlan = plan
        pulumi.log.debug(
            f"{name}: composed {len(self.plan.graph)} nodes for {len(config.endpoints)} endpoints "
            f"(fingerprint {self.plan.fingerprint[:12]})",
            resource=self,
        )

        self.resources: dict[str, pulumi.CustomResource] = {}
        for node in self.plan.graph.topological_order():
            self.resources[node.name] = self._declare(node)

        self.rest_api: aws.apigateway.RestApi = self.resources[self.plan.api.name]
        self.deployment: aws.apigateway.Deployment = self.resources[self.plan.deployment.name]
        self.stage: aws.apigateway.Stage = self.resources[self.plan.stage.name]
        self.api_key = self._optional(self.plan.api_key)
        self.usage_plan = self._optional(self.plan.usage_plan)
        self.custom_domain = self._optional(self.plan.domain)

        resolved_ids = {self.plan.api.name: self.rest_api.id}
        if self.api_key is not None:
            resolved_ids[self.plan.api_key.name] = self.api_key.id
        outputs: pulumi.Output[ApiOutputs] = pulumi.Output.all(**resolved_ids).apply(
            lambda ids: aggregate(self.plan, region, ids)
        )

        self.base_url: pulumi.Output[str] = outputs.apply(lambda o: o.base_url)
        self.execute_api_host: pulumi.Output[str] = self.rest_api.id.apply(
            lambda api_id: execute_api_host(api_id, region)
        )
        self.custom_domain_url: pulumi.Output[str | None] = outputs.apply(
            lambda o: o.custom_domain_url
        )
        self.api_key_id: pulumi.Output[str | None] = outputs.apply(lambda o: o.api_key_id)
        self.register_outputs(
            {
                "base_url": self.base_url,
                "execute_api_host": self.execute_api_host,
                "custom_domain_url": self.custom_domain_url,
                "api_key_id": self.api_key_id,
            }
        )

    def _optional(self, node: Node | None) -> pulumi.CustomResource | None:
        return self.resources[node.name] if node is not None else None

    def _declare(self, node: Node) -> pulumi.CustomResource:
        """Declare the provider resource for one node, after all its dependencies."""
        resource_type = RESOURCE_TYPES[node.kind]
        args = _resolve(node.props, self.resources)
        depends_on = [self.resources[dep.name] for dep in self.plan.graph.dependencies(node)]
        opts = pulumi.ResourceOptions(parent=self, depends_on=depends_on)
        try:
            resource = resource_type(node.name, opts=opts, **args)
        except Exception as exc:
            raise CompositionError(self.plan.name, node.kind, node.name, str(exc)) from exc
        pulumi.log.debug(f"declared {node.kind} {node.name}", resource=self)
        return resource
