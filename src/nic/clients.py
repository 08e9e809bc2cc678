"""Capability interfaces for each resource kind's API surface.

Reconcilers depend only on these protocols. The Azure SDK backed
implementations live in azure_clients; tests substitute in-memory doubles
that record every call. All methods are blocking and are invoked through
upstream.call_upstream.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Protocol

from .state import (
    AuxiliaryState,
    ClusterState,
    IdentityState,
    NetworkState,
    NodePoolState,
    ResourceGroupState,
    StorageState,
    SubnetState,
)


class ResourceGroupClient(Protocol):
    def get_resource_group(self, name: str) -> ResourceGroupState | None: ...

    def create_resource_group(
        self, name: str, location: str, tags: dict[str, str]
    ) -> ResourceGroupState: ...

    def delete_resource_group(self, name: str) -> None: ...


class NetworkClient(Protocol):
    def list_networks(self, resource_group: str) -> list[NetworkState]: ...

    def list_nat_gateways(self, resource_group: str) -> list[AuxiliaryState]: ...

    def list_public_ips(self, resource_group: str) -> list[AuxiliaryState]: ...

    def list_route_tables(self, resource_group: str) -> list[AuxiliaryState]: ...

    def create_public_ip(
        self, resource_group: str, name: str, location: str, tags: dict[str, str]
    ) -> AuxiliaryState: ...

    def create_nat_gateway(
        self,
        resource_group: str,
        name: str,
        location: str,
        public_ip_id: str,
        tags: dict[str, str],
    ) -> AuxiliaryState: ...

    def create_route_table(
        self, resource_group: str, name: str, location: str, tags: dict[str, str]
    ) -> AuxiliaryState: ...

    def create_network(
        self,
        resource_group: str,
        name: str,
        location: str,
        address_space: list[str],
        tags: dict[str, str],
    ) -> None: ...

    def create_subnet(self, resource_group: str, network: str, subnet: SubnetState) -> None: ...

    def update_network_tags(self, resource_group: str, name: str, tags: dict[str, str]) -> None: ...

    def dissociate_nat_gateway(self, resource_group: str, network: str, subnet: str) -> None: ...

    def delete_nat_gateway(self, resource_group: str, name: str) -> None: ...

    def delete_public_ip(self, resource_group: str, name: str) -> None: ...

    def delete_subnet(self, resource_group: str, network: str, subnet: str) -> None: ...

    def delete_route_table(self, resource_group: str, name: str) -> None: ...

    def delete_network(self, resource_group: str, name: str) -> None: ...


class IdentityClient(Protocol):
    def list_identities(self, resource_group: str) -> list[IdentityState]: ...

    def create_identity(
        self, resource_group: str, name: str, location: str, tags: dict[str, str]
    ) -> IdentityState: ...

    def update_identity_tags(
        self, resource_group: str, name: str, tags: dict[str, str]
    ) -> None: ...

    def delete_identity(self, resource_group: str, name: str) -> None: ...

    def has_identity_operator(
        self, resource_group: str, identity_name: str, principal_id: str
    ) -> bool: ...

    def assign_identity_operator(
        self, resource_group: str, identity_name: str, principal_id: str
    ) -> None:
        """Let principal_id assign identity_name to compute resources."""
        ...


class ClusterClient(Protocol):
    def list_clusters(self, resource_group: str) -> list[ClusterState]: ...

    def get_cluster(self, resource_group: str, name: str) -> ClusterState | None: ...

    def create_cluster(
        self, resource_group: str, cluster: ClusterState, system_pool: NodePoolState
    ) -> None:
        """Start cluster creation without waiting for it to finish."""
        ...

    def update_kubernetes_version(self, resource_group: str, name: str, version: str) -> None: ...

    def update_authorized_ip_ranges(
        self, resource_group: str, name: str, ranges: list[str]
    ) -> None: ...

    def update_azure_policy(self, resource_group: str, name: str, enabled: bool) -> None: ...

    def update_workload_identity(self, resource_group: str, name: str, enabled: bool) -> None: ...

    def update_cluster_tags(self, resource_group: str, name: str, tags: dict[str, str]) -> None: ...

    def delete_cluster(self, resource_group: str, name: str) -> None: ...

    def get_user_kubeconfig(self, resource_group: str, name: str) -> bytes: ...


class NodePoolClient(Protocol):
    def list_node_pools(self, resource_group: str, cluster: str) -> list[NodePoolState]: ...

    def get_node_pool(
        self, resource_group: str, cluster: str, name: str
    ) -> NodePoolState | None: ...

    def create_node_pool(self, resource_group: str, cluster: str, pool: NodePoolState) -> None: ...

    def update_node_pool_scaling(
        self, resource_group: str, cluster: str, name: str, min_count: int, max_count: int
    ) -> None: ...

    def update_node_pool_labels(
        self, resource_group: str, cluster: str, name: str, labels: dict[str, str]
    ) -> None: ...

    def update_node_pool_taints(
        self, resource_group: str, cluster: str, name: str, taints: list[str]
    ) -> None: ...

    def update_node_pool_tags(
        self, resource_group: str, cluster: str, name: str, tags: dict[str, str]
    ) -> None: ...

    def delete_node_pool(self, resource_group: str, cluster: str, name: str) -> None: ...


class StorageClient(Protocol):
    def list_storage_accounts(self, resource_group: str) -> list[StorageState]: ...

    def create_storage_account(self, resource_group: str, account: StorageState) -> None: ...

    def update_storage_tags(
        self, resource_group: str, account: str, tags: dict[str, str]
    ) -> None: ...

    def update_network_rules(
        self, resource_group: str, account: str, subnet_ids: list[str]
    ) -> None: ...

    def create_file_share(
        self, resource_group: str, account: str, share: str, quota_gib: int
    ) -> None: ...

    def update_file_share_quota(
        self, resource_group: str, account: str, share: str, quota_gib: int
    ) -> None: ...

    def delete_file_share(self, resource_group: str, account: str, share: str) -> None: ...

    def delete_storage_account(self, resource_group: str, account: str) -> None: ...


@dataclass
class AzureClients:
    """One client per resource kind, sharing a credential and subscription."""

    resource_groups: ResourceGroupClient
    network: NetworkClient
    identity: IdentityClient
    cluster: ClusterClient
    node_pools: NodePoolClient
    storage: StorageClient
