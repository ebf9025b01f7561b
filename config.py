"""
Stack configuration loaded from pulumi.Config().

Provides a typed, immutable view of stack settings. All settings are read from
Pulumi config (e.g. Pulumi.<stack>.yaml or pulumi config set). Keys parsed
with a ``_require_*`` parser are required; ``_get_*`` parsers fall back to a
default. Structured values (endpoints, usage plan, custom domain, tags) are
read with require_object/get_object. Used by __main__.main() to name
resources and to build the function, API, bucket and CDN configs.
"""

from collections.abc import Mapping
from dataclasses import dataclass, field
from typing import Any, Callable

import pulumi

from topology.model import CustomDomainConfig, Quota, Throttle, UsagePlanConfig


def _as_bool(raw: Any) -> bool:
    if isinstance(raw, bool):
        return raw
    return str(raw).strip().lower() in ("1", "true", "yes")


def _require_bool(config: pulumi.Config, key: str) -> bool:
    return _as_bool(config.require(key))


def _require_str(config: pulumi.Config, key: str) -> str:
    return config.require(key)


def _require_endpoints(config: pulumi.Config, key: str) -> tuple[Mapping[str, Any], ...]:
    raw = config.require_object(key)
    if not isinstance(raw, list) or not raw:
        raise ValueError(f"config '{key}' must be a non-empty list of endpoints")
    return tuple(dict(item) for item in raw)


def _get_bool(config: pulumi.Config, key: str) -> bool:
    raw = config.get(key)
    return _as_bool(raw) if raw is not None else False


def _get_int(config: pulumi.Config, key: str) -> int:
    # 0 means "use the builder default".
    raw = config.get(key)
    return int(raw) if raw is not None else 0


def _get_str(config: pulumi.Config, key: str) -> str | None:
    return config.get(key) or None


def _get_tags(config: pulumi.Config, key: str) -> dict[str, str]:
    raw = config.get_object(key) or {}
    return {str(name): str(value) for name, value in raw.items()}


def _get_usage_plan(config: pulumi.Config, key: str) -> UsagePlanConfig | None:
    raw = config.get_object(key)
    if not raw:
        return None
    quota = raw.get("quota")
    throttle = raw.get("throttle")
    return UsagePlanConfig(
        quota=(
            Quota(limit=int(quota["limit"]), period=str(quota["period"]).upper())
            if quota
            else None
        ),
        throttle=(
            Throttle(
                burst_limit=int(throttle["burst_limit"]),
                rate_limit=float(throttle["rate_limit"]),
            )
            if throttle
            else None
        ),
    )


def _get_custom_domain(config: pulumi.Config, key: str) -> CustomDomainConfig | None:
    raw = config.get_object(key)
    if not raw:
        return None
    return CustomDomainConfig(
        domain_name=raw.get("domain_name", ""),
        certificate_arn=raw.get("certificate_arn", ""),
        zone_id=raw.get("zone_id"),
    )


# (key, parser); parser receives (config, key) and returns value.
_CONFIG_SPEC: list[tuple[str, Callable[[pulumi.Config, str], Any]]] = [
    ("project_name", _require_str),
    ("environment", _require_str),
    ("stage_name", _require_str),
    ("handler_code_path", _require_str),
    ("handler_runtime", _require_str),
    ("handler_entrypoint", _require_str),
    ("bucket_name", _require_str),
    ("enable_cors", _require_bool),
    ("endpoints", _require_endpoints),
    ("api_key_required", _get_bool),
    ("usage_plan", _get_usage_plan),
    ("custom_domain", _get_custom_domain),
    ("authorizer_entrypoint", _get_str),
    ("memory_size", _get_int),
    ("timeout", _get_int),
    ("tags", _get_tags),
]


@dataclass(frozen=True)
class StackConfig:
    """
    Stack configuration from Pulumi config.

    Attributes:
        project_name: Project name used in resource naming (required).
        environment: Environment label used in naming and tags (required).
        stage_name: API stage name, e.g. "dev" or "prod" (required).
        handler_code_path: Directory packaged as the handler code (required).
        handler_runtime: Lambda runtime, e.g. "python3.12" (required).
        handler_entrypoint: Handler entrypoint, e.g. "app.handler" (required).
        bucket_name: Asset bucket name; must be globally unique (required).
        enable_cors: Whether endpoints get an OPTIONS preflight (required).
        endpoints: Endpoint mappings (path, method, authorization,
            api_key_required, request_parameters, request_models) (required).
        api_key_required: Whether to create an API key; needs usage_plan.
        usage_plan: Quota/throttle limits; needs api_key_required.
        custom_domain: Custom domain name, certificate ARN, optional zone id.
        authorizer_entrypoint: Entrypoint of a token authorizer in the same
            code package; enables CUSTOM authorization.
        memory_size: Handler memory in MB (0 = builder default).
        timeout: Handler timeout in seconds (0 = builder default).
        tags: Tag overrides applied to every component.
    """

    project_name: str
    environment: str
    stage_name: str
    handler_code_path: str
    handler_runtime: str
    handler_entrypoint: str
    bucket_name: str
    enable_cors: bool
    endpoints: tuple[Mapping[str, Any], ...]
    api_key_required: bool = False
    usage_plan: UsagePlanConfig | None = None
    custom_domain: CustomDomainConfig | None = None
    authorizer_entrypoint: str | None = None
    memory_size: int = 0
    timeout: int = 0
    tags: Mapping[str, str] = field(default_factory=dict)

    @classmethod
    def from_pulumi_config(cls, config: pulumi.Config) -> "StackConfig":
        """
        Build StackConfig from pulumi.Config(). Keys with a _require_* parser
        in _CONFIG_SPEC are required.
        """
        kwargs = {key: parser(config, key) for key, parser in _CONFIG_SPEC}
        return cls(**kwargs)
