"""
API front-end planner: turns an ApiGatewayConfig into a ResourceGraph.

The planner is pure: it declares nodes and edges but creates nothing, so the
whole composition can be inspected and tested without a Pulumi stack. The
ApiGateway component (topology.api_gateway) realizes the plan.

Composition runs in a fixed order:

1. validate the configuration (ConfigurationError, nothing declared yet);
2. declare the REST API root with the merged tags;
3. declare the authorizer, if one is configured;
4. for every endpoint, build or reuse the path tree down to its leaf and
   wire method, integration, invoke permission and optional CORS pair;
5. declare the deployment with an edge to every method and integration,
   then the stage;
6. declare API key + usage plan and custom domain, both bound to the stage.
"""

from dataclasses import dataclass, field

from topology._helpers import (
    cumulative_paths,
    default_tags,
    domain_url,
    execute_api_url,
    fingerprint,
    merge_tags,
    split_path,
)
from topology.errors import CompositionError
from topology.graph import Concat, GraphError, Node, Ref, ResourceGraph
from topology.model import ApiGatewayConfig, AuthMode, Endpoint, validate_api_config

AUTHORIZER_TTL_SECONDS: int = 300
AUTHORIZER_IDENTITY_SOURCE: str = "method.request.header.Authorization"
CORS_MOCK_TEMPLATE: str = '{"statusCode": 200}'
LAMBDA_INVOKE_ACTION: str = "lambda:InvokeFunction"
API_GATEWAY_PRINCIPAL: str = "apigateway.amazonaws.com"


class PathTree:
    """
    Shared hierarchical resource tree, memoized by cumulative path.

    The tree root is the REST API node itself; path nodes hang off it. Two
    endpoints sharing a prefix resolve to the same intermediate nodes, each
    created exactly once regardless of call order.
    """

    def __init__(self, graph: ResourceGraph, root: Node, name: str):
        self.graph = graph
        self.root = root
        self.name = name
        self._nodes: dict[str, Node] = {}

    def __len__(self) -> int:
        return len(self._nodes)

    def __contains__(self, path: object) -> bool:
        return path in self._nodes

    @property
    def paths(self) -> list[str]:
        return list(self._nodes)

    def build_or_reuse(self, full_path: str) -> Node:
        """
        Return the leaf node for ``full_path``, creating missing ancestors.

        Empty segments are skipped; the root path returns the API root.
        """
        node = self.root
        for segment, path in zip(split_path(full_path), cumulative_paths(full_path)):
            existing = self._nodes.get(path)
            if existing is None:
                if node is self.root:
                    parent_id = Ref(self.root.name, "root_resource_id")
                else:
                    parent_id = Ref(node.name)
                existing = self.graph.add(
                    "resource",
                    f"{self.name}-resource-{path}",
                    {
                        "rest_api": Ref(self.root.name),
                        "parent_id": parent_id,
                        "path_part": segment,
                    },
                    parent=node,
                    meta={"path": path},
                )
                self._nodes[path] = existing
            node = existing
        return node


@dataclass
class WiredEndpoint:
    """Nodes declared for one endpoint."""

    endpoint: Endpoint
    leaf: Node
    method: Node
    integration: Node
    permission: Node
    cors: tuple[Node, Node] | None = None


def _source_arn(api: Node, verb: str, path: str) -> Concat:
    # ANY shows up as "*" in execute-api ARNs.
    arn_verb = "*" if verb == "ANY" else verb
    return Concat((Ref(api.name, "execution_arn"), f"/*/{arn_verb}{path}"))


def wire_endpoint(
    graph: ResourceGraph,
    api: Node,
    leaf: Node,
    endpoint: Endpoint,
    name: str,
    authorizer: Node | None = None,
    with_cors: bool = False,
) -> WiredEndpoint:
    """
    Attach method, integration, invoke permission and optional CORS pair to a leaf.

    The authorizer is bound only when the endpoint asks for CUSTOM
    authorization; other endpoints ignore it.
    """
    verb, path = endpoint.verb, endpoint.normalized_path
    resource_id = Ref(api.name, "root_resource_id") if leaf is api else Ref(leaf.name)
    # Suffix before path: "/x" integration never collides with a "/x-integration" method.
    prefix = f"{name}-{verb}"

    method_props = {
        "rest_api": Ref(api.name),
        "resource_id": resource_id,
        "http_method": verb,
        "authorization": endpoint.auth_mode.value,
        "api_key_required": endpoint.api_key_required,
    }
    method_deps = []
    if authorizer is not None and endpoint.auth_mode is AuthMode.CUSTOM:
        method_props["authorizer_id"] = Ref(authorizer.name)
        method_deps.append(authorizer)
    if endpoint.request_parameters:
        method_props["request_parameters"] = dict(endpoint.request_parameters)
    if endpoint.request_models:
        method_props["request_models"] = dict(endpoint.request_models)
    method = graph.add(
        "method", f"{prefix}-{path}", method_props, parent=leaf, depends_on=method_deps
    )

    integration = graph.add(
        "integration",
        f"{prefix}-integration-{path}",
        {
            "rest_api": Ref(api.name),
            "resource_id": resource_id,
            "http_method": Ref(method.name, "http_method"),
            "type": "AWS_PROXY",
            "integration_http_method": "POST",
            "uri": endpoint.handler.invoke_arn,
        },
        parent=leaf,
        depends_on=[method],
    )

    permission = graph.add(
        "permission",
        f"{prefix}-permission-{path}",
        {
            "action": LAMBDA_INVOKE_ACTION,
            "function": endpoint.handler.function_name,
            "principal": API_GATEWAY_PRINCIPAL,
            "source_arn": _source_arn(api, verb, path),
        },
        depends_on=[api],
    )

    cors = None
    if with_cors:
        options = graph.add(
            "method",
            f"{prefix}-options-{path}",
            {
                "rest_api": Ref(api.name),
                "resource_id": resource_id,
                "http_method": "OPTIONS",
                "authorization": AuthMode.NONE.value,
                "api_key_required": False,
            },
            parent=leaf,
        )
        mock = graph.add(
            "integration",
            f"{prefix}-options-integration-{path}",
            {
                "rest_api": Ref(api.name),
                "resource_id": resource_id,
                "http_method": "OPTIONS",
                "type": "MOCK",
                "request_templates": {"application/json": CORS_MOCK_TEMPLATE},
            },
            parent=leaf,
            depends_on=[options],
        )
        cors = (options, mock)

    return WiredEndpoint(endpoint, leaf, method, integration, permission, cors)


def deployment_fingerprint(
    config: ApiGatewayConfig,
) -> str:
    """
    Change fingerprint over everything that shapes the deployed endpoints.

    Order-independent: reordering endpoints, parameters or models keeps the
    value; changing a path, method, authorization or handler changes it.
    """
    records = [
        {
            "path": endpoint.normalized_path,
            "method": endpoint.verb,
            "authorization": endpoint.auth_mode.value,
            "api_key_required": endpoint.api_key_required,
            "handler": endpoint.handler.name,
            "request_parameters": dict(endpoint.request_parameters),
            "request_models": dict(endpoint.request_models),
        }
        for endpoint in config.endpoints
    ]
    records.append(
        {
            "cors": config.enable_cors,
            "cors_per_leaf": config.cors_per_leaf,
            "authorizer": config.authorizer.name if config.authorizer else None,
        }
    )
    return fingerprint(records)


@dataclass
class ApiPlan:
    """Result of compose_api(): the graph and handles on its notable nodes."""

    name: str
    graph: ResourceGraph
    tree: PathTree
    api: Node
    deployment: Node
    stage: Node
    fingerprint: str
    tags: dict[str, str]
    endpoints: list[WiredEndpoint] = field(default_factory=list)
    authorizer: Node | None = None
    api_key: Node | None = None
    usage_plan: Node | None = None
    domain: Node | None = None

    @property
    def stage_name(self) -> str:
        return self.stage.props["stage_name"]


def _compose_authorizer(
    graph: ResourceGraph,
    api: Node,
    name: str,
    config: ApiGatewayConfig,
) -> Node:
    authorizer = graph.add(
        "authorizer",
        f"{name}-authorizer",
        {
            "rest_api": Ref(api.name),
            "name": f"{name}-authorizer",
            "type": "TOKEN",
            "authorizer_uri": config.authorizer.invoke_arn,
            "identity_source": AUTHORIZER_IDENTITY_SOURCE,
            "authorizer_result_ttl_in_seconds": AUTHORIZER_TTL_SECONDS,
        },
        depends_on=[api],
    )
    graph.add(
        "permission",
        f"{name}-authorizer-permission",
        {
            "action": LAMBDA_INVOKE_ACTION,
            "function": config.authorizer.function_name,
            "principal": API_GATEWAY_PRINCIPAL,
            "source_arn": Concat((Ref(api.name, "execution_arn"), "/authorizers/*")),
        },
        depends_on=[api],
    )
    return authorizer


def _compose_usage_plan(plan: ApiPlan, config: ApiGatewayConfig) -> None:
    graph, name = plan.graph, plan.name
    plan.api_key = graph.add(
        "api_key", f"{name}-key", {"name": f"{name}-key", "tags": dict(plan.tags)}
    )

    usage_props = {
        "name": f"{name}-usage-plan",
        "api_stages": [
            {"api_id": Ref(plan.api.name), "stage": Ref(plan.stage.name, "stage_name")}
        ],
        "tags": dict(plan.tags),
    }
    quota, throttle = config.usage_plan.quota, config.usage_plan.throttle
    if quota is not None:
        usage_props["quota_settings"] = {"limit": quota.limit, "period": quota.period}
    if throttle is not None:
        usage_props["throttle_settings"] = {
            "burst_limit": throttle.burst_limit,
            "rate_limit": float(throttle.rate_limit),
        }
    # The usage plan references the stage by name, so it must follow it.
    plan.usage_plan = graph.add(
        "usage_plan", f"{name}-usage-plan", usage_props, depends_on=[plan.api, plan.stage]
    )

    graph.add(
        "usage_plan_key",
        f"{name}-usage-plan-key",
        {
            "key_id": Ref(plan.api_key.name),
            "key_type": "API_KEY",
            "usage_plan_id": Ref(plan.usage_plan.name),
        },
        depends_on=[plan.api_key, plan.usage_plan],
    )


def _compose_custom_domain(plan: ApiPlan, config: ApiGatewayConfig) -> None:
    graph, name, domain = plan.graph, plan.name, config.custom_domain
    plan.domain = graph.add(
        "domain_name",
        f"{name}-domain",
        {
            "domain_name": domain.domain_name,
            "certificate_arn": domain.certificate_arn,
            "security_policy": "TLS_1_2",
            "tags": dict(plan.tags),
        },
    )
    # zone_id is informational; DNS records are left to the caller.
    if domain.zone_id:
        plan.domain.meta["zone_id"] = domain.zone_id
    graph.add(
        "base_path_mapping",
        f"{name}-domain-mapping",
        {
            "rest_api": Ref(plan.api.name),
            "stage_name": Ref(plan.stage.name, "stage_name"),
            "domain_name": Ref(plan.domain.name, "domain_name"),
        },
        depends_on=[plan.api, plan.stage, plan.domain],
    )


def compose_api(
    name: str,
    config: ApiGatewayConfig,
) -> ApiPlan:
    """
    Validate ``config`` and declare the full API front-end graph.

    Args:
        name: Logical composition name; prefixes every node name.
        config: API configuration.

    Returns:
        ApiPlan with the graph and handles on its notable nodes.

    Raises:
        ConfigurationError: The configuration is malformed (nothing declared).
        CompositionError: Declaring a node failed; names the step and, for
            endpoints, the method and path.
    """
    validate_api_config(config)

    graph = ResourceGraph()
    tags = merge_tags(default_tags(config.environment), config.tags)
    api = graph.add(
        "rest_api",
        name,
        {
            "name": config.name,
            "description": config.description,
            "endpoint_configuration": {"types": "EDGE"},
            "tags": dict(tags),
        },
    )
    tree = PathTree(graph, api, name)

    authorizer = None
    if config.authorizer is not None:
        try:
            authorizer = _compose_authorizer(graph, api, name, config)
        except GraphError as exc:
            raise CompositionError(name, "authorizer", f"{name}-authorizer", str(exc)) from exc

    wired: list[WiredEndpoint] = []
    cors_leaves: set[str] = set()
    for endpoint in config.endpoints:
        verb, path = endpoint.verb, endpoint.normalized_path
        try:
            leaf = tree.build_or_reuse(endpoint.path)
            shared_preflight = config.cors_per_leaf and leaf.name in cors_leaves
            with_cors = config.enable_cors and not shared_preflight
            wired.append(wire_endpoint(graph, api, leaf, endpoint, name, authorizer, with_cors))
        except GraphError as exc:
            raise CompositionError(name, "endpoint", f"{verb} {path}", str(exc)) from exc
        if with_cors:
            cors_leaves.add(leaf.name)

    # Declared only now: the deployment must depend on every method and integration.
    trigger = deployment_fingerprint(config)
    deployment = graph.add(
        "deployment",
        f"{name}-deployment",
        {"rest_api": Ref(api.name), "triggers": {"redeployment": trigger}},
        depends_on=[api, *graph.of_kind("method"), *graph.of_kind("integration")],
    )
    stage = graph.add(
        "stage",
        f"{name}-stage",
        {
            "rest_api": Ref(api.name),
            "deployment": Ref(deployment.name),
            "stage_name": config.stage_name,
            "tags": dict(tags),
        },
        depends_on=[deployment],
    )

    plan = ApiPlan(
        name=name,
        graph=graph,
        tree=tree,
        api=api,
        deployment=deployment,
        stage=stage,
        fingerprint=trigger,
        tags=tags,
        endpoints=wired,
        authorizer=authorizer,
    )
    if config.api_key_required and config.usage_plan is not None:
        _compose_usage_plan(plan, config)
    if config.custom_domain is not None:
        _compose_custom_domain(plan, config)
    return plan


@dataclass(frozen=True)
class ApiOutputs:
    """Externally consumable values of a composed API."""

    base_url: str
    custom_domain_url: str | None = None
    api_key_id: str | None = None


def aggregate(
    plan: ApiPlan,
    region: str,
    resolved_ids: dict[str, str],
) -> ApiOutputs:
    """
    Project the finished plan onto its outputs. No network calls.

    Args:
        plan: Result of compose_api().
        region: Region the API is deployed to.
        resolved_ids: Node name to provider-assigned id; must contain the
            REST API and, when composed, the API key.
    """
    base_url = execute_api_url(resolved_ids[plan.api.name], region, plan.stage_name)
    custom_domain_url = domain_url(plan.domain.props["domain_name"]) if plan.domain else None
    api_key_id = resolved_ids[plan.api_key.name] if plan.api_key else None
    return ApiOutputs(base_url, custom_domain_url, api_key_id)
