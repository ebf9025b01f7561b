"""Tests for the API planner: path tree, wiring, features, deployment, outputs"""

import itertools
from dataclasses import replace

import pytest

from topology.errors import CompositionError, ConfigurationError
from topology.graph import Concat, GraphError, Ref, ResourceGraph
from topology.model import (
    ApiGatewayConfig,
    CustomDomainConfig,
    Endpoint,
    HandlerRef,
    Quota,
    Throttle,
    UsagePlanConfig,
)
from topology.plan import PathTree, aggregate, compose_api, deployment_fingerprint

USERS = HandlerRef(name="users", function_name="users-fn", invoke_arn="arn:users")
AUTH = HandlerRef(name="auth", function_name="auth-fn", invoke_arn="arn:auth")
USAGE = UsagePlanConfig(
    quota=Quota(limit=1000, period="DAY"),
    throttle=Throttle(burst_limit=10, rate_limit=5),
)
DOMAIN = CustomDomainConfig(domain_name="api.example.com", certificate_arn="arn:cert")


def _config(*endpoints, **overrides):
    kwargs = {"name": "api", "environment": "dev", "stage_name": "dev", "endpoints": endpoints}
    kwargs.update(overrides)
    return ApiGatewayConfig(**kwargs)


def _endpoint(path, method="GET", **kwargs):
    return Endpoint(path=path, method=method, handler=USERS, **kwargs)


def _methods(plan, verb=None):
    methods = plan.graph.of_kind("method")
    return [node for node in methods if verb is None or node.props["http_method"] == verb]


class TestPathTree:
    def _tree(self):
        graph = ResourceGraph()
        return PathTree(graph, graph.add("rest_api", "api"), "api")

    def test_shared_prefix_created_once(self):
        tree = self._tree()
        leaf = tree.build_or_reuse("/users/{id}")
        deeper = tree.build_or_reuse("/users/{id}/profile")
        assert deeper.parent is leaf
        assert sorted(tree.paths) == ["/users", "/users/{id}", "/users/{id}/profile"]
        assert len(tree.graph.of_kind("resource")) == 3

    def test_order_independent(self):
        paths = ["/users", "/users/{id}", "/users/{id}/profile", "/orders/{id}", "/orders"]
        expected = None
        for permutation in itertools.permutations(paths):
            tree = self._tree()
            for path in permutation:
                tree.build_or_reuse(path)
            created = sorted(node.meta["path"] for node in tree.graph.of_kind("resource"))
            assert len(created) == len(set(created))
            expected = expected or created
            assert created == expected

    def test_empty_segments_resolve_to_same_leaf(self):
        tree = self._tree()
        leaf = tree.build_or_reuse("/a/b/")
        assert tree.build_or_reuse("/a/b") is leaf
        assert tree.build_or_reuse("//a//b") is leaf
        assert len(tree) == 2

    def test_root_path_is_tree_root(self):
        tree = self._tree()
        assert tree.build_or_reuse("/") is tree.root
        assert tree.build_or_reuse("") is tree.root
        assert len(tree) == 0

    def test_parent_ids(self):
        tree = self._tree()
        child = tree.build_or_reuse("/users/{id}")
        top = child.parent
        assert top.props["parent_id"] == Ref("api", "root_resource_id")
        assert child.props["parent_id"] == Ref(top.name)
        assert child.props["path_part"] == "{id}"


class TestEndpointWiring:
    def test_nodes_per_endpoint(self):
        plan = compose_api("api", _config(_endpoint("/users"), _endpoint("/users", "POST")))
        assert len(_methods(plan)) == 2
        assert len(plan.graph.of_kind("integration")) == 2
        assert len(plan.graph.of_kind("permission")) == 2
        wired = plan.endpoints[0]
        assert wired.integration.props["type"] == "AWS_PROXY"
        assert wired.integration.props["integration_http_method"] == "POST"
        assert wired.integration.props["uri"] == "arn:users"
        assert wired.method.parent is wired.leaf

    def test_permission_scoped_to_method_and_path(self):
        config = _config(_endpoint("/users/{id}/", "DELETE"), _endpoint("/any", "ANY"))
        plan = compose_api("api", config)
        delete, anything = (wired.permission for wired in plan.endpoints)
        assert delete.props["function"] == "users-fn"
        assert delete.props["principal"] == "apigateway.amazonaws.com"
        expected = Concat((Ref("api", "execution_arn"), "/*/DELETE/users/{id}"))
        assert delete.props["source_arn"] == expected
        assert anything.props["source_arn"].parts[1] == "/*/*/any"

    def test_root_endpoint_attaches_to_root_resource(self):
        plan = compose_api("api", _config(_endpoint("/")))
        method = plan.endpoints[0].method
        assert method.props["resource_id"] == Ref("api", "root_resource_id")
        assert plan.graph.of_kind("resource") == []

    def test_authorizer_bound_only_to_custom(self):
        plan = compose_api(
            "api",
            _config(
                _endpoint("/private", authorization="CUSTOM"),
                _endpoint("/public"),
                authorizer=AUTH,
            ),
        )
        private, public = (wired.method for wired in plan.endpoints)
        assert private.props["authorizer_id"] == Ref(plan.authorizer.name)
        assert "authorizer_id" not in public.props
        assert plan.authorizer in plan.graph.dependencies(private)

    def test_request_parameters_and_models(self):
        endpoint = _endpoint(
            "/users/{id}",
            request_parameters={"method.request.path.id": True},
            request_models={"application/json": "User"},
        )
        method = compose_api("api", _config(endpoint)).endpoints[0].method
        assert method.props["request_parameters"] == {"method.request.path.id": True}
        assert method.props["request_models"] == {"application/json": "User"}

    def test_cors_pair_per_endpoint(self):
        plan = compose_api(
            "api",
            _config(
                _endpoint("/users"),
                _endpoint("/users", "POST"),
                _endpoint("/orders"),
                enable_cors=True,
            ),
        )
        options = _methods(plan, "OPTIONS")
        assert len(options) == 3
        for node in options:
            assert node.props["authorization"] == "NONE"
            assert node.props["api_key_required"] is False
        integrations = plan.graph.of_kind("integration")
        mocks = [node for node in integrations if node.props["type"] == "MOCK"]
        assert len(mocks) == 3
        assert mocks[0].props["request_templates"] == {"application/json": '{"statusCode": 200}'}

    def test_cors_per_leaf(self):
        plan = compose_api(
            "api",
            _config(
                _endpoint("/users"),
                _endpoint("/users", "POST"),
                enable_cors=True,
                cors_per_leaf=True,
            ),
        )
        assert len(_methods(plan, "OPTIONS")) == 1
        assert plan.endpoints[1].cors is None

    def test_no_cors_by_default(self):
        plan = compose_api("api", _config(_endpoint("/users")))
        assert _methods(plan, "OPTIONS") == []


class TestConfigurationErrors:
    def test_duplicates_rejected_before_any_node(self, monkeypatch):
        created = []
        monkeypatch.setattr(ResourceGraph, "add", lambda self, *a, **k: created.append(a))
        with pytest.raises(ConfigurationError):
            compose_api("api", _config(_endpoint("/users"), _endpoint("/users/")))
        assert created == []

    def test_neighbouring_paths_do_not_collide(self):
        config = _config(_endpoint("/x-integration"), _endpoint("/x"), enable_cors=True)
        plan = compose_api("api", config)
        assert len(plan.endpoints) == 2
        assert len(_methods(plan)) == 4

    def test_creation_failure_names_method_and_path(self, monkeypatch):
        original = ResourceGraph.add

        def failing_add(self, kind, name, *args, **kwargs):
            if kind == "integration":
                raise GraphError("boom")
            return original(self, kind, name, *args, **kwargs)

        monkeypatch.setattr(ResourceGraph, "add", failing_add)
        with pytest.raises(CompositionError, match="endpoint 'POST /users'") as info:
            compose_api("api", _config(_endpoint("/users", "POST")))
        assert info.value.composition == "api"
        assert isinstance(info.value.__cause__, Exception)


class TestFeatures:
    def test_authorizer_created_without_custom_endpoints(self):
        plan = compose_api("api", _config(_endpoint("/users"), authorizer=AUTH))
        authorizer = plan.authorizer
        assert authorizer.props["type"] == "TOKEN"
        assert authorizer.props["authorizer_result_ttl_in_seconds"] == 300
        assert authorizer.props["identity_source"] == "method.request.header.Authorization"
        assert authorizer.props["authorizer_uri"] == "arn:auth"
        assert plan.graph.get("api-authorizer-permission").props["function"] == "auth-fn"

    def test_api_key_and_usage_plan_as_pair(self):
        config = _config(_endpoint("/users"), api_key_required=True, usage_plan=USAGE)
        plan = compose_api("api", config)
        assert plan.api_key is not None
        assert plan.usage_plan.props["quota_settings"] == {"limit": 1000, "period": "DAY"}
        assert plan.usage_plan.props["throttle_settings"] == {"burst_limit": 10, "rate_limit": 5.0}
        assert plan.stage in plan.graph.dependencies(plan.usage_plan)
        key = plan.graph.get("api-usage-plan-key")
        assert key.props["key_type"] == "API_KEY"
        assert set(plan.graph.dependencies(key)) == {plan.api_key, plan.usage_plan}

    @pytest.mark.parametrize(
        "overrides",
        [
            {"api_key_required": True},
            {"usage_plan": UsagePlanConfig(quota=Quota(limit=1, period="DAY"))},
        ],
    )
    def test_either_alone_is_rejected(self, overrides):
        with pytest.raises(ConfigurationError):
            compose_api("api", _config(_endpoint("/users"), **overrides))

    def test_endpoint_key_needs_usage_plan(self, monkeypatch):
        created = []
        monkeypatch.setattr(ResourceGraph, "add", lambda self, *a, **k: created.append(a))
        keyed = _endpoint("/users", "POST", api_key_required=True)
        with pytest.raises(ConfigurationError, match="requires an API key"):
            compose_api("api", _config(keyed))
        assert created == []

    def test_no_key_without_features(self):
        plan = compose_api("api", _config(_endpoint("/users")))
        assert plan.api_key is None
        assert plan.graph.of_kind("api_key") == []
        assert plan.graph.of_kind("usage_plan") == []

    def test_custom_domain_mapped_to_stage(self):
        domain = replace(DOMAIN, zone_id="Z123")
        plan = compose_api("api", _config(_endpoint("/users"), custom_domain=domain))
        assert plan.domain.props["security_policy"] == "TLS_1_2"
        assert plan.domain.meta == {"zone_id": "Z123"}
        mapping = plan.graph.get("api-domain-mapping")
        assert mapping.props["stage_name"] == Ref(plan.stage.name, "stage_name")
        assert plan.stage in plan.graph.dependencies(mapping)
        assert plan.graph.of_kind("record") == []

    def test_tags_merged_on_every_tagged_node(self):
        tags = {"Environment": "z", "Team": "core"}
        plan = compose_api("api", _config(_endpoint("/users"), tags=tags))
        expected = {"Environment": "z", "ManagedBy": "Pulumi", "Team": "core"}
        assert plan.api.props["tags"] == expected
        assert plan.stage.props["tags"] == expected


class TestDeployment:
    def test_depends_on_every_method_and_integration(self):
        plan = compose_api(
            "api",
            _config(
                _endpoint("/users"),
                _endpoint("/users/{id}", "PUT"),
                enable_cors=True,
                authorizer=AUTH,
            ),
        )
        deps = set(node.name for node in plan.graph.dependencies(plan.deployment))
        for node in plan.graph.of_kind("method") + plan.graph.of_kind("integration"):
            assert node.name in deps

    def test_declared_after_wiring(self):
        plan = compose_api("api", _config(_endpoint("/users"), _endpoint("/orders", "POST")))
        order = [node.name for node in plan.graph.topological_order()]
        wired_nodes = plan.graph.of_kind("method") + plan.graph.of_kind("integration")
        wired = [node.name for node in wired_nodes]
        assert max(order.index(name) for name in wired) < order.index(plan.deployment.name)
        assert order.index(plan.deployment.name) < order.index(plan.stage.name)

    def test_stage_binds_one_deployment(self):
        plan = compose_api("api", _config(_endpoint("/users")))
        assert plan.graph.dependencies(plan.stage) == [plan.deployment]
        assert plan.stage.props["deployment"] == Ref(plan.deployment.name)
        assert plan.stage_name == "dev"

    def test_trigger_is_fingerprint(self):
        plan = compose_api("api", _config(_endpoint("/users")))
        assert plan.deployment.props["triggers"] == {"redeployment": plan.fingerprint}


class TestFingerprint:
    def test_stable_across_runs_and_order(self):
        a, b = _endpoint("/users"), _endpoint("/orders", "POST")
        assert deployment_fingerprint(_config(a, b)) == deployment_fingerprint(_config(b, a))
        first = compose_api("api", _config(a, b))
        second = compose_api("api", _config(a, b))
        assert first.fingerprint == second.fingerprint

    def test_path_spelling_does_not_matter(self):
        assert deployment_fingerprint(_config(_endpoint("/users/"))) == deployment_fingerprint(
            _config(_endpoint("/users"))
        )

    @pytest.mark.parametrize(
        "change",
        [
            {"path": "/people"},
            {"method": "POST"},
            {"authorization": "AWS_IAM"},
            {"api_key_required": True},
        ],
    )
    def test_changes_with_endpoint(self, change):
        base = _endpoint("/users")
        changed = replace(base, **change)
        assert deployment_fingerprint(_config(base)) != deployment_fingerprint(_config(changed))

    def test_changes_with_cors(self):
        endpoint = _endpoint("/users")
        assert deployment_fingerprint(_config(endpoint)) != deployment_fingerprint(
            _config(endpoint, enable_cors=True)
        )


class TestAggregate:
    def test_base_url_only(self):
        plan = compose_api("api", _config(_endpoint("/users")))
        outputs = aggregate(plan, "us-east-1", {"api": "abc123"})
        assert outputs.base_url == "https://abc123.execute-api.us-east-1.amazonaws.com/dev"
        assert outputs.custom_domain_url is None
        assert outputs.api_key_id is None

    def test_all_outputs(self):
        plan = compose_api(
            "api",
            _config(
                _endpoint("/users"),
                api_key_required=True,
                usage_plan=UsagePlanConfig(quota=Quota(limit=1, period="WEEK")),
                custom_domain=DOMAIN,
            ),
        )
        outputs = aggregate(plan, "eu-west-1", {"api": "abc123", plan.api_key.name: "key-1"})
        assert outputs.custom_domain_url == "https://api.example.com"
        assert outputs.api_key_id == "key-1"


class TestEndToEnd:
    def test_users_get_and_post_with_usage_plan(self):
        plan = compose_api(
            "api",
            _config(
                _endpoint("/users", "GET", authorization="NONE"),
                _endpoint("/users", "POST", authorization="NONE", api_key_required=True),
                api_key_required=True,
                usage_plan=USAGE,
            ),
        )
        resources = plan.graph.of_kind("resource")
        assert [node.props["path_part"] for node in resources] == ["users"]
        assert len(plan.graph.of_kind("method")) == 2
        assert len(plan.graph.of_kind("integration")) == 2
        assert len(plan.graph.of_kind("permission")) == 2
        assert len(plan.graph.of_kind("api_key")) == 1
        assert len(plan.graph.of_kind("usage_plan")) == 1
        assert plan.usage_plan.props["api_stages"] == [
            {"api_id": Ref("api"), "stage": Ref(plan.stage.name, "stage_name")}
        ]
        assert {wired.leaf.name for wired in plan.endpoints} == {resources[0].name}
        outputs = aggregate(plan, "us-east-1", {"api": "id1", plan.api_key.name: "key"})
        assert outputs.base_url == "https://id1.execute-api.us-east-1.amazonaws.com/dev"
