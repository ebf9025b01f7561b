"""
Typed configuration for API front-end compositions.

All config types are frozen dataclasses: once composition starts nothing in
the configuration changes. Handler references are opaque: the planner only
passes ``function_name`` and ``invoke_arn`` through to the declared
resources, so they may be plain strings or ``pulumi.Output[str]``.

validate_api_config() rejects configuration-shape errors (duplicate
path/method pairs, malformed paths, an API key without a usage plan, ...)
with a ConfigurationError before any node is declared.
"""

import re
from collections.abc import Mapping
from dataclasses import dataclass, field
from enum import Enum
from typing import Any

from topology._helpers import normalize_path, split_path
from topology.errors import ConfigurationError

HTTP_METHODS: tuple[str, ...] = ("GET", "POST", "PUT", "DELETE", "PATCH", "HEAD", "OPTIONS", "ANY")

QUOTA_PERIODS: tuple[str, ...] = ("DAY", "WEEK", "MONTH")

_LITERAL_SEGMENT = re.compile(r"^[A-Za-z0-9._~:@-]+$")
# "{id}" or greedy "{proxy+}".
_PARAM_SEGMENT = re.compile(r"^\{[A-Za-z_][A-Za-z0-9_.-]*(\+)?\}$")


class AuthMode(str, Enum):
    """Method authorization mode, valued as the provider expects it."""

    NONE = "NONE"
    IAM = "AWS_IAM"
    CUSTOM = "CUSTOM"

    @classmethod
    def parse(cls, value: "AuthMode | str") -> "AuthMode":
        """Accept an AuthMode, its value, or its name ("IAM" for AWS_IAM)."""
        if isinstance(value, cls):
            return value
        text = str(value).strip().upper()
        for mode in cls:
            if text in (mode.value, mode.name):
                return mode
        raise ValueError(f"unknown authorization mode {value!r}")


@dataclass(frozen=True)
class HandlerRef:
    """
    Opaque reference to an already-provisioned invocable handler.

    Attributes:
        name: Logical name; enters the deployment fingerprint.
        function_name: Function name (str or Output[str]) for invoke permissions.
        invoke_arn: Invocation ARN (str or Output[str]) for integrations.
    """

    name: str
    function_name: Any
    invoke_arn: Any


@dataclass(frozen=True)
class Endpoint:
    """
    One (path, method) pair served by a handler.

    Attributes:
        path: URL path, e.g. "/users/{id}". Empty segments are ignored.
        method: HTTP verb (case-insensitive), one of HTTP_METHODS.
        handler: Handler invoked through an AWS_PROXY integration.
        authorization: NONE, AWS_IAM or CUSTOM (str values accepted).
        api_key_required: Whether callers must send an API key.
        request_parameters: Request parameter name to "required" flag.
        request_models: Content type to model name.
    """

    path: str
    method: str
    handler: HandlerRef
    authorization: AuthMode | str = AuthMode.NONE
    api_key_required: bool = False
    request_parameters: Mapping[str, bool] = field(default_factory=dict)
    request_models: Mapping[str, str] = field(default_factory=dict)

    @property
    def verb(self) -> str:
        return self.method.strip().upper()

    @property
    def normalized_path(self) -> str:
        return normalize_path(self.path)

    @property
    def auth_mode(self) -> AuthMode:
        return AuthMode.parse(self.authorization)

    @property
    def key(self) -> tuple[str, str]:
        """Identity of the endpoint within a composition."""
        return (self.normalized_path, self.verb)


@dataclass(frozen=True)
class Quota:
    limit: int
    period: str


@dataclass(frozen=True)
class Throttle:
    burst_limit: int
    rate_limit: float


@dataclass(frozen=True)
class UsagePlanConfig:
    """Usage limits bound to the stage; either part may be omitted."""

    quota: Quota | None = None
    throttle: Throttle | None = None


@dataclass(frozen=True)
class CustomDomainConfig:
    """
    Custom domain served through a base-path mapping.

    ``zone_id`` is informational: no DNS record is declared for it.
    """

    domain_name: str
    certificate_arn: str
    zone_id: str | None = None


@dataclass(frozen=True)
class ApiGatewayConfig:
    """
    Root input of one API front-end composition.

    Attributes:
        name: API name shown by the provider.
        environment: Deployment environment label (required); default tag.
        stage_name: Stage the deployment is bound to (e.g. "dev", "prod").
        endpoints: Endpoints to wire; (path, method) pairs must be unique.
        description: Free-form API description.
        enable_cors: Add an OPTIONS preflight method + MOCK integration.
        cors_per_leaf: Add the preflight pair once per path instead of once
            per endpoint.
        authorizer: Token authorizer handler; bound to CUSTOM endpoints.
        api_key_required: Create an API key; requires usage_plan.
        usage_plan: Quota/throttle limits; requires api_key_required.
        custom_domain: Custom domain + base-path mapping to the stage.
        tags: Tag overrides, applied on top of the default tags.
    """

    name: str
    environment: str
    stage_name: str
    endpoints: tuple[Endpoint, ...] = ()
    description: str = ""
    enable_cors: bool = False
    cors_per_leaf: bool = False
    authorizer: HandlerRef | None = None
    api_key_required: bool = False
    usage_plan: UsagePlanConfig | None = None
    custom_domain: CustomDomainConfig | None = None
    tags: Mapping[str, str] = field(default_factory=dict)


def check_path(
    path: str,
) -> str | None:
    """Return why a path is malformed, or None when it is acceptable."""
    if not isinstance(path, str):
        return f"path must be a string, got {type(path).__name__}"
    segments = split_path(path)
    for index, segment in enumerate(segments):
        param = _PARAM_SEGMENT.match(segment)
        if param:
            if param.group(1) and index != len(segments) - 1:
                return f"greedy segment {segment!r} must be last in {path!r}"
            continue
        if not _LITERAL_SEGMENT.match(segment):
            return f"invalid segment {segment!r} in {path!r}"
    return None


def _check_endpoint(
    endpoint: Endpoint,
    has_authorizer: bool,
    has_usage_plan: bool,
) -> str | None:
    reason = check_path(endpoint.path)
    if reason:
        return reason
    if not isinstance(endpoint.method, str):
        kind = type(endpoint.method).__name__
        return f"method must be a string, got {kind} for {endpoint.path!r}"
    if endpoint.verb not in HTTP_METHODS:
        return f"unsupported method {endpoint.method!r} for {endpoint.path!r}"
    label = f"{endpoint.verb} {endpoint.normalized_path}"
    try:
        mode = endpoint.auth_mode
    except ValueError as exc:
        return f"{exc} for {label}"
    if mode is AuthMode.CUSTOM and not has_authorizer:
        return f"{label} uses CUSTOM authorization but no authorizer is configured"
    if endpoint.api_key_required and not has_usage_plan:
        return f"{label} requires an API key but no usage_plan is configured"
    if endpoint.handler is None:
        return f"{label} has no handler"
    return None


def _check_usage_plan(plan: UsagePlanConfig) -> str | None:
    if plan.quota is not None:
        if plan.quota.period not in QUOTA_PERIODS:
            periods = ", ".join(QUOTA_PERIODS)
            return f"quota period must be one of {periods}, got {plan.quota.period!r}"
        if plan.quota.limit < 0:
            return f"quota limit must be non-negative, got {plan.quota.limit}"
    if plan.throttle is not None:
        if plan.throttle.burst_limit < 0 or plan.throttle.rate_limit < 0:
            return "throttle burst and rate limits must be non-negative"
    return None


def validate_api_config(
    config: ApiGatewayConfig,
) -> None:
    """
    Reject configuration-shape errors before anything is declared.

    Raises:
        ConfigurationError: On the first problem found, naming the
            composition and the offending endpoint or sub-config.
    """
    name = config.name or "<unnamed>"
    if not config.name:
        raise ConfigurationError(name, "name is required")
    if not config.environment:
        raise ConfigurationError(name, "environment is required")
    if not config.stage_name:
        raise ConfigurationError(name, "stage_name is required")

    seen: set[tuple[str, str]] = set()
    for endpoint in config.endpoints:
        reason = _check_endpoint(
            endpoint,
            has_authorizer=config.authorizer is not None,
            has_usage_plan=config.usage_plan is not None,
        )
        if reason:
            raise ConfigurationError(name, reason)
        if endpoint.key in seen:
            path, verb = endpoint.key
            raise ConfigurationError(name, f"duplicate endpoint {verb} {path}")
        seen.add(endpoint.key)

    # API key and usage plan only exist as a pair.
    if config.api_key_required and config.usage_plan is None:
        raise ConfigurationError(name, "api_key_required needs a usage_plan")
    if config.usage_plan is not None and not config.api_key_required:
        raise ConfigurationError(name, "usage_plan needs api_key_required")
    if config.usage_plan is not None:
        reason = _check_usage_plan(config.usage_plan)
        if reason:
            raise ConfigurationError(name, reason)

    domain = config.custom_domain
    if domain is not None and not (domain.domain_name and domain.certificate_arn):
        raise ConfigurationError(name, "custom_domain needs domain_name and certificate_arn")


def endpoint_from_mapping(
    raw: Mapping[str, Any],
    handler: HandlerRef,
) -> Endpoint:
    """
    Build an Endpoint from a plain mapping (e.g. Pulumi structured config).

    Recognized keys: path, method, authorization, api_key_required,
    request_parameters, request_models. Validation happens later in
    validate_api_config().
    """
    return Endpoint(
        path=raw.get("path", ""),
        method=raw.get("method", ""),
        handler=handler,
        authorization=raw.get("authorization", AuthMode.NONE.value),
        api_key_required=bool(raw.get("api_key_required", False)),
        request_parameters=dict(raw.get("request_parameters") or {}),
        request_models=dict(raw.get("request_models") or {}),
    )
