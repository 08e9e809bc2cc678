"""Managed cluster (AKS) reconciler.

Immutable: location, node subnet, disk encryption set, private cluster
flag, network plugin. Mutable, one update call each: Kubernetes version
(incremental upgrades only), authorized IP ranges, Azure Policy add-on,
workload identity, tags.
"""

from __future__ import annotations

import logging
import re

from .clients import AzureClients
from .errors import ClusterNotFoundError, ImmutableFieldViolation, NicError, UpstreamAPIError
from .models import AzureConfig
from .poller import wait_until
from .reconciler import FieldDiff, ResourceScope, managed, same_id, single_match
from .state import ClusterState, IdentityState, NodePoolState
from .status import RunContext, StatusLevel
from .tags import RESOURCE_TYPE_CLUSTER, build_tags
from .teardown import Teardown
from .upstream import call_upstream

logger = logging.getLogger(__name__)

KIND = "cluster"
PROVISIONING_SUCCEEDED = "Succeeded"
PROVISIONING_FAILED = "Failed"

VERSION_PATTERN = re.compile(r"^(\d+)\.(\d+)(?:\.(\d+))?$")


class InvalidUpgradeError(ImmutableFieldViolation):
    """Raised when a Kubernetes version change is not a supported in-place upgrade."""

    def __init__(self, identity: str, actual: str, desired: str, reason: str) -> None:
        super().__init__(KIND, identity, "kubernetes_version", actual, desired)
        self.reason = reason
        self.args = (
            f"{KIND} '{identity}': cannot change kubernetes_version from {actual} to "
            f"{desired}: {reason}",
        )


def cluster_name(project_name: str) -> str:
    return f"{project_name}-aks"


def parse_version(version: str) -> tuple[int, int]:
    """Parse "1.29" or "1.29.4" into (major, minor).

    Raises:
        ValueError: If the version is not in major.minor[.patch] form.
    """
    match = VERSION_PATTERN.match(version.strip())
    if not match:
        raise ValueError(
            f"version must be in format 'major.minor' (e.g., '1.30'), got: {version}"
        )
    return int(match.group(1)), int(match.group(2))


def versions_match(actual: str, desired: str) -> bool:
    """A desired major.minor matches any patch release of it."""
    if desired.count(".") >= 2:
        return actual == desired
    return parse_version(actual) == parse_version(desired)


def validate_upgrade(identity: str, current: str, desired: str) -> None:
    """Reject downgrades, major changes and skipped minor versions.

    Raises:
        InvalidUpgradeError: If the change is not a single-step minor upgrade.
    """
    if versions_match(current, desired):
        return
    current_major, current_minor = parse_version(current)
    desired_major, desired_minor = parse_version(desired)

    if current_major != desired_major:
        raise InvalidUpgradeError(
            identity,
            current,
            desired,
            "major version upgrades require cluster recreation",
        )
    if desired_minor < current_minor:
        raise InvalidUpgradeError(identity, current, desired, "downgrades are not supported")
    if desired_minor > current_minor + 1:
        raise InvalidUpgradeError(
            identity,
            current,
            desired,
            f"minor versions cannot be skipped; upgrade to {current_major}.{current_minor + 1} "
            "first",
        )


def desired_cluster(
    scope: ResourceScope,
    azure: AzureConfig,
    subnet_id: str,
    identities: dict[str, IdentityState],
) -> ClusterState:
    cluster_identity = identities.get("cluster")
    kubelet_identity = identities.get("kubelet")
    return ClusterState(
        name=cluster_name(scope.project_name),
        location=scope.location,
        kubernetes_version=azure.kubernetes_version,
        vnet_subnet_id=subnet_id,
        disk_encryption_set_id=azure.disk_encryption_set_id,
        private_cluster_enabled=azure.private_cluster_enabled,
        network_plugin=azure.network_plugin,
        authorized_ip_ranges=tuple(sorted(azure.authorized_ip_ranges)),
        azure_policy_enabled=azure.azure_policy_enabled,
        workload_identity_enabled=azure.workload_identity_enabled,
        tags=build_tags(scope.project_name, RESOURCE_TYPE_CLUSTER, scope.user_tags),
        cluster_identity_id=cluster_identity.resource_id if cluster_identity else "",
        kubelet_identity_id=kubelet_identity.resource_id if kubelet_identity else "",
        kubelet_client_id=kubelet_identity.client_id if kubelet_identity else "",
        kubelet_object_id=kubelet_identity.principal_id if kubelet_identity else "",
    )


async def list_managed_clusters(clients: AzureClients, scope: ResourceScope) -> list[ClusterState]:
    clusters = await call_upstream(
        KIND, "list_clusters", clients.cluster.list_clusters, scope.resource_group
    )
    return managed(clusters, scope, RESOURCE_TYPE_CLUSTER)


async def discover_cluster(clients: AzureClients, scope: ResourceScope) -> ClusterState | None:
    """Find this platform's managed cluster.

    Raises:
        AmbiguousStateError: If more than one tagged cluster exists.
    """
    return single_match(KIND, scope.project_name, await list_managed_clusters(clients, scope))


async def wait_for_cluster(
    clients: AzureClients, scope: ResourceScope, name: str, ctx: RunContext
) -> ClusterState:
    """Poll until the control plane reports a successful provisioning state."""
    rg = scope.resource_group

    def control_plane_ready() -> bool:
        try:
            cluster = clients.cluster.get_cluster(rg, name)
        except Exception as e:
            raise UpstreamAPIError(KIND, "get_cluster", e) from e
        if cluster is None:
            return False
        if cluster.provisioning_state == PROVISIONING_FAILED:
            raise NicError(f"{KIND} '{name}' provisioning failed")
        return cluster.provisioning_state == PROVISIONING_SUCCEEDED

    ctx.status(StatusLevel.PROGRESS, f"Waiting for control plane of {name}", KIND, "wait")
    elapsed = await wait_until(
        control_plane_ready,
        interval=ctx.runtime.poll_interval_seconds,
        timeout=ctx.runtime.cluster_ready_timeout_seconds,
        ctx=ctx,
        description=f"{KIND} '{name}' control plane",
    )
    logger.info("Control plane ready", extra={"cluster": name, "elapsed": elapsed})
    cluster = await call_upstream(KIND, "get_cluster", clients.cluster.get_cluster, rg, name)
    if cluster is None:
        raise NicError(f"{KIND} '{name}' not visible after provisioning")
    return cluster


def diff_cluster(actual: ClusterState, desired: ClusterState) -> FieldDiff:
    """Compare an existing cluster with the desired one.

    Raises:
        ImmutableFieldViolation: If an immutable field or the version step is invalid.
    """
    diff = FieldDiff(KIND, actual.name)
    diff.immutable("location", actual.location, desired.location)
    if not same_id(actual.vnet_subnet_id, desired.vnet_subnet_id):
        diff.immutable("vnet_subnet_id", actual.vnet_subnet_id, desired.vnet_subnet_id)
    if not same_id(actual.disk_encryption_set_id, desired.disk_encryption_set_id):
        diff.immutable(
            "disk_encryption_set_id", actual.disk_encryption_set_id, desired.disk_encryption_set_id
        )
    diff.immutable(
        "private_cluster_enabled", actual.private_cluster_enabled, desired.private_cluster_enabled
    )
    diff.immutable("network_plugin", actual.network_plugin, desired.network_plugin)
    validate_upgrade(actual.name, actual.kubernetes_version, desired.kubernetes_version)
    if not versions_match(actual.kubernetes_version, desired.kubernetes_version):
        diff.changed.append("kubernetes_version")
    diff.mutable(
        "authorized_ip_ranges",
        tuple(sorted(actual.authorized_ip_ranges)),
        tuple(sorted(desired.authorized_ip_ranges)),
    )
    diff.mutable("azure_policy_enabled", actual.azure_policy_enabled, desired.azure_policy_enabled)
    diff.mutable(
        "workload_identity_enabled",
        actual.workload_identity_enabled,
        desired.workload_identity_enabled,
    )
    diff.tags(actual.tags, desired.tags)
    return diff


async def reconcile_cluster(
    clients: AzureClients,
    scope: ResourceScope,
    desired: ClusterState,
    actual: ClusterState | None,
    system_pool: NodePoolState,
    ctx: RunContext,
) -> ClusterState:
    """Drive the managed cluster towards desired.

    Args:
        system_pool: Pool created together with the cluster when it is absent.

    Raises:
        ImmutableFieldViolation: If an immutable field or the version step is invalid.
    """
    rg = scope.resource_group

    if actual is None:
        ctx.status(StatusLevel.PROGRESS, f"Creating cluster {desired.name}", KIND, "create")
        await call_upstream(
            KIND, "create_cluster", clients.cluster.create_cluster, rg, desired, system_pool
        )
        logger.info("Cluster creation started", extra={"cluster": desired.name})
        return await wait_for_cluster(clients, scope, desired.name, ctx)

    diff = diff_cluster(actual, desired)

    if not diff:
        return actual

    if actual.provisioning_state not in (PROVISIONING_SUCCEEDED, PROVISIONING_FAILED):
        # A previous run left an operation in flight; updates would conflict
        await wait_for_cluster(clients, scope, actual.name, ctx)

    name = actual.name
    if "kubernetes_version" in diff:
        ctx.status(
            StatusLevel.PROGRESS,
            f"Upgrading {name} to {desired.kubernetes_version}",
            KIND,
            "update",
            from_version=actual.kubernetes_version,
            to_version=desired.kubernetes_version,
        )
        await call_upstream(
            KIND,
            "update_kubernetes_version",
            clients.cluster.update_kubernetes_version,
            rg,
            name,
            desired.kubernetes_version,
        )
    if "authorized_ip_ranges" in diff:
        await call_upstream(
            KIND,
            "update_authorized_ip_ranges",
            clients.cluster.update_authorized_ip_ranges,
            rg,
            name,
            list(desired.authorized_ip_ranges),
        )
    if "azure_policy_enabled" in diff:
        await call_upstream(
            KIND,
            "update_azure_policy",
            clients.cluster.update_azure_policy,
            rg,
            name,
            desired.azure_policy_enabled,
        )
    if "workload_identity_enabled" in diff:
        await call_upstream(
            KIND,
            "update_workload_identity",
            clients.cluster.update_workload_identity,
            rg,
            name,
            desired.workload_identity_enabled,
        )
    if "tags" in diff:
        await call_upstream(
            KIND,
            "update_cluster_tags",
            clients.cluster.update_cluster_tags,
            rg,
            name,
            {**actual.tags, **desired.tags},
        )

    logger.info("Updated cluster", extra={"cluster": name, "fields": diff.changed})
    ctx.status(StatusLevel.INFO, f"Updated cluster {name}", KIND, "update", fields=diff.changed)
    refreshed = await call_upstream(KIND, "get_cluster", clients.cluster.get_cluster, rg, name)
    return refreshed or actual


async def get_kubeconfig(clients: AzureClients, scope: ResourceScope) -> bytes:
    cluster = await discover_cluster(clients, scope)
    if cluster is None:
        raise ClusterNotFoundError(
            f"No cluster tagged for '{scope.project_name}' in resource group "
            f"'{scope.resource_group}'"
        )
    return await call_upstream(
        KIND,
        "get_user_kubeconfig",
        clients.cluster.get_user_kubeconfig,
        scope.resource_group,
        cluster.name,
    )


async def destroy_cluster(clients: AzureClients, scope: ResourceScope, teardown: Teardown) -> int:
    """Delete every cluster tagged for this platform. Returns the number found."""
    clusters = await teardown.discover(
        KIND, scope.project_name, lambda: list_managed_clusters(clients, scope), []
    )
    for cluster in clusters:
        await teardown.delete(
            KIND, cluster.name, clients.cluster.delete_cluster, scope.resource_group, cluster.name
        )
    return len(clusters)
