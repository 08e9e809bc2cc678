"""Tag scheme used to address resources without a state file.

Every resource this tool creates carries a management marker and the
cluster identity. Discovery filters on both; anything lacking the marker is
never modified or deleted. Azure tag keys cannot contain "/", so keys use a
"nic-" prefix.
"""

from __future__ import annotations

from collections.abc import Mapping

TAG_MANAGED_BY = "nic-managed-by"
TAG_CLUSTER_NAME = "nic-cluster-name"
TAG_RESOURCE_TYPE = "nic-resource-type"
TAG_VERSION = "nic-version"
TAG_NODE_POOL = "nic-node-pool"
TAG_ROLE = "nic-role"

MANAGED_BY_VALUE = "nic"
NIC_VERSION = "0.1.0"

# Resource type tag values
RESOURCE_TYPE_RESOURCE_GROUP = "resource-group"
RESOURCE_TYPE_NETWORK = "network"
RESOURCE_TYPE_NAT_GATEWAY = "nat-gateway"
RESOURCE_TYPE_PUBLIC_IP = "public-ip"
RESOURCE_TYPE_ROUTE_TABLE = "route-table"
RESOURCE_TYPE_IDENTITY = "identity"
RESOURCE_TYPE_CLUSTER = "cluster"
RESOURCE_TYPE_NODE_POOL = "node-pool"
RESOURCE_TYPE_STORAGE = "storage"

RESERVED_PREFIX = "nic-"


def base_tags(project_name: str, resource_type: str) -> dict[str, str]:
    """Mandatory tags for a resource of the given type."""
    return {
        TAG_MANAGED_BY: MANAGED_BY_VALUE,
        TAG_CLUSTER_NAME: project_name,
        TAG_RESOURCE_TYPE: resource_type,
        TAG_VERSION: NIC_VERSION,
    }


def merge_tags(system: Mapping[str, str], user: Mapping[str, str] | None) -> dict[str, str]:
    """Merge user tags under system tags.

    User tags never override a system tag or claim a reserved key.
    """
    merged = {k: v for k, v in (user or {}).items() if not k.startswith(RESERVED_PREFIX)}
    merged.update(system)
    return merged


def build_tags(
    project_name: str,
    resource_type: str,
    user: Mapping[str, str] | None = None,
    **extra: str,
) -> dict[str, str]:
    """Full tag set for a new resource: system tags, extras, then user tags underneath."""
    system = base_tags(project_name, resource_type)
    system.update(extra)
    return merge_tags(system, user)


def node_pool_tags(
    project_name: str, pool_name: str, user: Mapping[str, str] | None = None
) -> dict[str, str]:
    return build_tags(
        project_name, RESOURCE_TYPE_NODE_POOL, user, **{TAG_NODE_POOL: pool_name}
    )


def is_managed(tags: Mapping[str, str] | None, project_name: str) -> bool:
    """True only when the resource carries the marker and this cluster's identity."""
    if not tags:
        return False
    return (
        tags.get(TAG_MANAGED_BY) == MANAGED_BY_VALUE
        and tags.get(TAG_CLUSTER_NAME) == project_name
    )


def has_resource_type(tags: Mapping[str, str] | None, resource_type: str) -> bool:
    return bool(tags) and tags.get(TAG_RESOURCE_TYPE) == resource_type


def tags_differ(actual: Mapping[str, str] | None, desired: Mapping[str, str]) -> bool:
    """True when any desired tag is missing or has another value on the resource."""
    actual = actual or {}
    return any(actual.get(k) != v for k, v in desired.items())
