"""
Pure helpers for tags, paths, URLs and fingerprints. Testable without Pulumi runtime.

Used by the API planner (split_path, cumulative_paths, fingerprint),
the output aggregator (execute_api_url, domain_url, execute_api_host) and every builder
(default_tags, merge_tags, fill_defaults). No Pulumi types; all functions
accept and return plain Python types so they can be unit-tested without a
Pulumi stack.
"""

import dataclasses
import hashlib
import json
from collections.abc import Iterable, Mapping
from typing import Any, TypeVar

MANAGED_BY: str = "Pulumi"

PATH_SEPARATOR: str = "/"

T = TypeVar("T")


def default_tags(
    environment: str,
) -> dict[str, str]:
    """Return the tags every composition starts from."""
    return {"Environment": environment, "ManagedBy": MANAGED_BY}


def merge_tags(
    defaults: Mapping[str, str],
    overrides: Mapping[str, str] | None = None,
) -> dict[str, str]:
    """
    Merge tag overrides on top of defaults.

    Overrides win on key collision, including over ``Environment`` and
    ``ManagedBy``. Neither input is modified.
    """
    merged = dict(defaults)
    merged.update(overrides or {})
    return merged


def split_path(
    path: str,
) -> list[str]:
    """
    Split a URL path into its ordered, non-empty segments.

    Empty segments from leading, trailing or doubled separators are skipped,
    so ``/users/``, ``/users`` and ``//users`` all give ``["users"]``. The
    root path (``"/"`` or ``""``) gives an empty list.
    """
    return [segment for segment in path.split(PATH_SEPARATOR) if segment]


def normalize_path(
    path: str,
) -> str:
    """Return the canonical form of a path: one leading separator, no empty segments."""
    return PATH_SEPARATOR + PATH_SEPARATOR.join(split_path(path))


def cumulative_paths(
    path: str,
) -> list[str]:
    """
    Return the cumulative path of every segment, root first.

    ``/users/{id}/profile`` gives ``["/users", "/users/{id}",
    "/users/{id}/profile"]``.
    """
    segments = split_path(path)
    return [normalize_path(PATH_SEPARATOR.join(segments[: k + 1])) for k in range(len(segments))]


def fingerprint(
    records: Iterable[Mapping[str, Any]],
) -> str:
    """
    Return an order-independent SHA-256 hex digest over a set of records.

    Each record is serialized as canonical JSON (sorted keys, no whitespace)
    and the serialized records are sorted before hashing, so neither record
    order nor key order affects the result.
    """
    serialized = sorted(
        json.dumps(record, sort_keys=True, separators=(",", ":")) for record in records
    )
    digest = hashlib.sha256()
    for line in serialized:
        digest.update(line.encode("utf-8"))
        digest.update(b"\n")
    return digest.hexdigest()


def execute_api_url(
    api_id: str,
    region: str,
    stage_name: str,
) -> str:
    """
    Build the base invocation URL of a deployed stage.

    Args:
        api_id: REST API identifier assigned by the provider.
        region: Region the API is deployed to (e.g. "us-east-1").
        stage_name: Stage the URL points at (e.g. "dev").

    Returns:
        URL like "https://abc123.execute-api.us-east-1.amazonaws.com/dev".
    """
    return f"https://{api_id}.execute-api.{region}.amazonaws.com/{stage_name}"


def execute_api_host(
    api_id: str,
    region: str,
) -> str:
    """Host part of execute_api_url, e.g. for a CDN origin domain."""
    return f"{api_id}.execute-api.{region}.amazonaws.com"


def domain_url(
    domain_name: str,
) -> str:
    """HTTPS URL for a custom domain; a trailing dot from a FQDN is dropped."""
    return f"https://{domain_name.rstrip('.')}"


def fill_defaults(
    config: T,
    defaults: Mapping[str, Any],
) -> T:
    """
    Return a copy of a dataclass config with zero/empty fields filled in.

    The input is never modified; a new instance is returned via
    dataclasses.replace.

    Args:
        config: Dataclass instance (frozen or not).
        defaults: Field name to default value.

    Returns:
        Instance with defaults applied to unset fields; ``config`` itself
        when nothing was unset.
    """
    # Falsy means unset (0, "", None, empty collection).
    changes = {key: value for key, value in defaults.items() if not getattr(config, key)}
    return dataclasses.replace(config, **changes) if changes else config
