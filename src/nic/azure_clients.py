"""Azure SDK backed implementations of the per-kind client interfaces.

Each adapter translates SDK models into the engine's snapshots and back.
Reads that hit a missing resource return None instead of raising. Long
running operations block on their poller, except cluster creation whose
progress is observed through the readiness poller.
"""

from __future__ import annotations

import logging
import uuid
from typing import Any

from azure.core.credentials import TokenCredential
from azure.core.exceptions import ResourceNotFoundError
from azure.identity import DefaultAzureCredential
from azure.mgmt.authorization import AuthorizationManagementClient
from azure.mgmt.authorization.models import RoleAssignmentCreateParameters
from azure.mgmt.containerservice import ContainerServiceClient
from azure.mgmt.containerservice.models import (
    AgentPool,
    ContainerServiceNetworkProfile,
    ManagedCluster,
    ManagedClusterAddonProfile,
    ManagedClusterAgentPoolProfile,
    ManagedClusterAPIServerAccessProfile,
    ManagedClusterIdentity,
    ManagedClusterOIDCIssuerProfile,
    ManagedClusterSecurityProfile,
    ManagedClusterSecurityProfileWorkloadIdentity,
    ManagedServiceIdentityUserAssignedIdentitiesValue,
    UserAssignedIdentity,
)
from azure.mgmt.containerservice.models import TagsObject as ClusterTagsObject
from azure.mgmt.msi import ManagedServiceIdentityClient
from azure.mgmt.msi.models import Identity, IdentityUpdate
from azure.mgmt.network import NetworkManagementClient
from azure.mgmt.network.models import (
    AddressSpace,
    NatGateway,
    NatGatewaySku,
    PublicIPAddress,
    PublicIPAddressSku,
    RouteTable,
    ServiceEndpointPropertiesFormat,
    Subnet,
    SubResource,
    TagsObject,
    VirtualNetwork,
)
from azure.mgmt.resource import ResourceManagementClient
from azure.mgmt.resource.resources.models import ResourceGroup
from azure.mgmt.storage import StorageManagementClient
from azure.mgmt.storage.models import (
    Encryption,
    FileShare,
    NetworkRuleSet,
    Sku,
    StorageAccountCreateParameters,
    StorageAccountUpdateParameters,
    VirtualNetworkRule,
)

from .clients import AzureClients
from .state import (
    AuxiliaryState,
    ClusterState,
    FileShareState,
    IdentityState,
    NetworkState,
    NodePoolState,
    ResourceGroupState,
    StorageState,
    SubnetState,
)

logger = logging.getLogger(__name__)

AZURE_POLICY_ADDON = "azurepolicy"
KUBELET_IDENTITY_KEY = "kubeletidentity"
# Built-in "Managed Identity Operator" role, needed by the control plane on the kubelet identity
MANAGED_IDENTITY_OPERATOR_ROLE_ID = "f1a07417-d97a-45cb-824c-7a7467783830"
# AKS adds these to spot pools on its own; they are not part of desired state
AKS_SYSTEM_LABEL_PREFIX = "kubernetes.azure.com/"


def _tags(resource: Any) -> dict[str, str]:
    return dict(getattr(resource, "tags", None) or {})


# =============================================================================
# Resource groups
# =============================================================================


class AzureResourceGroupClient:
    def __init__(self, client: ResourceManagementClient) -> None:
        self._client = client

    def get_resource_group(self, name: str) -> ResourceGroupState | None:
        try:
            group = self._client.resource_groups.get(name)
        except ResourceNotFoundError:
            return None
        return ResourceGroupState(name=group.name, location=group.location, tags=_tags(group))

    def create_resource_group(
        self, name: str, location: str, tags: dict[str, str]
    ) -> ResourceGroupState:
        group = self._client.resource_groups.create_or_update(
            name, ResourceGroup(location=location, tags=tags)
        )
        return ResourceGroupState(name=group.name, location=group.location, tags=_tags(group))

    def delete_resource_group(self, name: str) -> None:
        self._client.resource_groups.begin_delete(name).result()


# =============================================================================
# Network
# =============================================================================


def _aux(resource: Any) -> AuxiliaryState:
    return AuxiliaryState(
        name=resource.name,
        resource_id=resource.id,
        location=resource.location or "",
        tags=_tags(resource),
    )


def _subnet_state(subnet: Subnet) -> SubnetState:
    return SubnetState(
        name=subnet.name,
        address_prefix=subnet.address_prefix or "",
        resource_id=subnet.id or "",
        nat_gateway_id=subnet.nat_gateway.id if subnet.nat_gateway else None,
        route_table_id=subnet.route_table.id if subnet.route_table else None,
        service_endpoints=tuple(e.service for e in subnet.service_endpoints or ()),
    )


class AzureNetworkClient:
    def __init__(self, client: NetworkManagementClient) -> None:
        self._client = client

    def list_networks(self, resource_group: str) -> list[NetworkState]:
        return [
            NetworkState(
                name=vnet.name,
                location=vnet.location,
                address_space=tuple(vnet.address_space.address_prefixes or ()),
                subnets=tuple(_subnet_state(s) for s in vnet.subnets or ()),
                tags=_tags(vnet),
                resource_id=vnet.id,
            )
            for vnet in self._client.virtual_networks.list(resource_group)
        ]

    def list_nat_gateways(self, resource_group: str) -> list[AuxiliaryState]:
        return [_aux(r) for r in self._client.nat_gateways.list(resource_group)]

    def list_public_ips(self, resource_group: str) -> list[AuxiliaryState]:
        return [_aux(r) for r in self._client.public_ip_addresses.list(resource_group)]

    def list_route_tables(self, resource_group: str) -> list[AuxiliaryState]:
        return [_aux(r) for r in self._client.route_tables.list(resource_group)]

    def create_public_ip(
        self, resource_group: str, name: str, location: str, tags: dict[str, str]
    ) -> AuxiliaryState:
        params = PublicIPAddress(
            location=location,
            tags=tags,
            sku=PublicIPAddressSku(name="Standard"),
            public_ip_allocation_method="Static",
        )
        poller = self._client.public_ip_addresses.begin_create_or_update(
            resource_group, name, params
        )
        return _aux(poller.result())

    def create_nat_gateway(
        self,
        resource_group: str,
        name: str,
        location: str,
        public_ip_id: str,
        tags: dict[str, str],
    ) -> AuxiliaryState:
        params = NatGateway(
            location=location,
            tags=tags,
            sku=NatGatewaySku(name="Standard"),
            public_ip_addresses=[SubResource(id=public_ip_id)],
        )
        poller = self._client.nat_gateways.begin_create_or_update(resource_group, name, params)
        return _aux(poller.result())

    def create_route_table(
        self, resource_group: str, name: str, location: str, tags: dict[str, str]
    ) -> AuxiliaryState:
        poller = self._client.route_tables.begin_create_or_update(
            resource_group, name, RouteTable(location=location, tags=tags)
        )
        return _aux(poller.result())

    def create_network(
        self,
        resource_group: str,
        name: str,
        location: str,
        address_space: list[str],
        tags: dict[str, str],
    ) -> None:
        params = VirtualNetwork(
            location=location,
            tags=tags,
            address_space=AddressSpace(address_prefixes=address_space),
        )
        self._client.virtual_networks.begin_create_or_update(
            resource_group, name, params
        ).result()

    def create_subnet(self, resource_group: str, network: str, subnet: SubnetState) -> None:
        params = Subnet(
            address_prefix=subnet.address_prefix,
            nat_gateway=SubResource(id=subnet.nat_gateway_id) if subnet.nat_gateway_id else None,
            route_table=RouteTable(id=subnet.route_table_id) if subnet.route_table_id else None,
            service_endpoints=[
                ServiceEndpointPropertiesFormat(service=s) for s in subnet.service_endpoints
            ],
        )
        self._client.subnets.begin_create_or_update(
            resource_group, network, subnet.name, params
        ).result()

    def update_network_tags(self, resource_group: str, name: str, tags: dict[str, str]) -> None:
        self._client.virtual_networks.update_tags(resource_group, name, TagsObject(tags=tags))

    def dissociate_nat_gateway(self, resource_group: str, network: str, subnet: str) -> None:
        current = self._client.subnets.get(resource_group, network, subnet)
        if current.nat_gateway is None:
            return
        current.nat_gateway = None
        self._client.subnets.begin_create_or_update(
            resource_group, network, subnet, current
        ).result()

    def delete_nat_gateway(self, resource_group: str, name: str) -> None:
        self._client.nat_gateways.begin_delete(resource_group, name).result()

    def delete_public_ip(self, resource_group: str, name: str) -> None:
        self._client.public_ip_addresses.begin_delete(resource_group, name).result()

    def delete_subnet(self, resource_group: str, network: str, subnet: str) -> None:
        self._client.subnets.begin_delete(resource_group, network, subnet).result()

    def delete_route_table(self, resource_group: str, name: str) -> None:
        self._client.route_tables.begin_delete(resource_group, name).result()

    def delete_network(self, resource_group: str, name: str) -> None:
        self._client.virtual_networks.begin_delete(resource_group, name).result()


# =============================================================================
# Managed identities
# =============================================================================


def _identity_state(identity: Any) -> IdentityState:
    return IdentityState(
        name=identity.name,
        location=identity.location,
        tags=_tags(identity),
        resource_id=identity.id,
        client_id=identity.client_id or "",
        principal_id=identity.principal_id or "",
    )


class AzureIdentityClient:
    def __init__(
        self,
        client: ManagedServiceIdentityClient,
        authorization: AuthorizationManagementClient,
        subscription_id: str,
    ) -> None:
        self._client = client
        self._authorization = authorization
        self._subscription_id = subscription_id

    def list_identities(self, resource_group: str) -> list[IdentityState]:
        return [
            _identity_state(i)
            for i in self._client.user_assigned_identities.list_by_resource_group(resource_group)
        ]

    def create_identity(
        self, resource_group: str, name: str, location: str, tags: dict[str, str]
    ) -> IdentityState:
        identity = self._client.user_assigned_identities.create_or_update(
            resource_group, name, Identity(location=location, tags=tags)
        )
        return _identity_state(identity)

    def update_identity_tags(self, resource_group: str, name: str, tags: dict[str, str]) -> None:
        self._client.user_assigned_identities.update(
            resource_group, name, IdentityUpdate(tags=tags)
        )

    def delete_identity(self, resource_group: str, name: str) -> None:
        self._client.user_assigned_identities.delete(resource_group, name)

    def _identity_scope(self, resource_group: str, name: str) -> str:
        return (
            f"/subscriptions/{self._subscription_id}/resourceGroups/{resource_group}"
            f"/providers/Microsoft.ManagedIdentity/userAssignedIdentities/{name}"
        )

    def _operator_role_definition(self) -> str:
        return (
            f"/subscriptions/{self._subscription_id}/providers/Microsoft.Authorization"
            f"/roleDefinitions/{MANAGED_IDENTITY_OPERATOR_ROLE_ID}"
        )

    def has_identity_operator(
        self, resource_group: str, identity_name: str, principal_id: str
    ) -> bool:
        assignments = self._authorization.role_assignments.list_for_scope(
            self._identity_scope(resource_group, identity_name),
            filter=f"principalId eq '{principal_id}'",
        )
        return any(
            (a.role_definition_id or "").lower().endswith(MANAGED_IDENTITY_OPERATOR_ROLE_ID)
            for a in assignments
        )

    def assign_identity_operator(
        self, resource_group: str, identity_name: str, principal_id: str
    ) -> None:
        self._authorization.role_assignments.create(
            self._identity_scope(resource_group, identity_name),
            str(uuid.uuid4()),
            RoleAssignmentCreateParameters(
                role_definition_id=self._operator_role_definition(),
                principal_id=principal_id,
                principal_type="ServicePrincipal",
            ),
        )


# =============================================================================
# Managed cluster and agent pools
# =============================================================================


def _cluster_state(cluster: ManagedCluster) -> ClusterState:
    access = cluster.api_server_access_profile
    addons = cluster.addon_profiles or {}
    policy = addons.get(AZURE_POLICY_ADDON)
    security = cluster.security_profile
    workload_identity = security.workload_identity if security else None
    system_profiles = [
        p for p in cluster.agent_pool_profiles or () if (p.mode or "").lower() == "system"
    ]
    kubelet = (cluster.identity_profile or {}).get(KUBELET_IDENTITY_KEY)
    user_identities = list(
        (cluster.identity.user_assigned_identities or {}) if cluster.identity else {}
    )
    return ClusterState(
        name=cluster.name,
        location=cluster.location,
        kubernetes_version=cluster.kubernetes_version or "",
        vnet_subnet_id=(system_profiles[0].vnet_subnet_id or "") if system_profiles else "",
        disk_encryption_set_id=cluster.disk_encryption_set_id,
        private_cluster_enabled=bool(access and access.enable_private_cluster),
        network_plugin=(
            cluster.network_profile.network_plugin if cluster.network_profile else ""
        )
        or "",
        authorized_ip_ranges=tuple(sorted(access.authorized_ip_ranges or ())) if access else (),
        azure_policy_enabled=bool(policy and policy.enabled),
        workload_identity_enabled=bool(workload_identity and workload_identity.enabled),
        tags=_tags(cluster),
        resource_id=cluster.id,
        provisioning_state=cluster.provisioning_state or "",
        cluster_identity_id=user_identities[0] if user_identities else "",
        kubelet_identity_id=kubelet.resource_id if kubelet else "",
        fqdn=cluster.fqdn or cluster.private_fqdn or "",
    )


def _user_labels(labels: dict[str, str] | None) -> dict[str, str]:
    return {
        k: v for k, v in (labels or {}).items() if not k.startswith(AKS_SYSTEM_LABEL_PREFIX)
    }


def _user_taints(taints: list[str] | None) -> tuple[str, ...]:
    return tuple(t for t in taints or () if not t.startswith(AKS_SYSTEM_LABEL_PREFIX))


def _pool_state(pool: Any) -> NodePoolState:
    return NodePoolState(
        name=pool.name,
        vm_size=pool.vm_size,
        min_count=pool.min_count if pool.min_count is not None else pool.count or 0,
        max_count=pool.max_count if pool.max_count is not None else pool.count or 0,
        spot=(pool.scale_set_priority or "").lower() == "spot",
        mode=pool.mode or "User",
        labels=_user_labels(pool.node_labels),
        taints=_user_taints(pool.node_taints),
        tags=_tags(pool),
        vnet_subnet_id=pool.vnet_subnet_id or "",
        provisioning_state=pool.provisioning_state or "",
    )


class AzureClusterClient:
    def __init__(self, client: ContainerServiceClient) -> None:
        self._client = client

    def list_clusters(self, resource_group: str) -> list[ClusterState]:
        return [
            _cluster_state(c)
            for c in self._client.managed_clusters.list_by_resource_group(resource_group)
        ]

    def get_cluster(self, resource_group: str, name: str) -> ClusterState | None:
        try:
            return _cluster_state(self._client.managed_clusters.get(resource_group, name))
        except ResourceNotFoundError:
            return None

    def create_cluster(
        self, resource_group: str, cluster: ClusterState, system_pool: NodePoolState
    ) -> None:
        params = ManagedCluster(
            location=cluster.location,
            tags=cluster.tags,
            dns_prefix=cluster.name,
            kubernetes_version=cluster.kubernetes_version,
            identity=ManagedClusterIdentity(
                type="UserAssigned",
                user_assigned_identities={
                    cluster.cluster_identity_id: ManagedServiceIdentityUserAssignedIdentitiesValue()
                },
            ),
            identity_profile={
                KUBELET_IDENTITY_KEY: UserAssignedIdentity(
                    resource_id=cluster.kubelet_identity_id,
                    client_id=cluster.kubelet_client_id or None,
                    object_id=cluster.kubelet_object_id or None,
                )
            },
            agent_pool_profiles=[
                ManagedClusterAgentPoolProfile(
                    name=system_pool.name,
                    mode="System",
                    type="VirtualMachineScaleSets",
                    vm_size=system_pool.vm_size,
                    count=max(system_pool.min_count, 1),
                    min_count=system_pool.min_count,
                    max_count=system_pool.max_count,
                    enable_auto_scaling=True,
                    vnet_subnet_id=system_pool.vnet_subnet_id or None,
                    node_labels=system_pool.labels,
                    node_taints=list(system_pool.taints),
                    tags=system_pool.tags,
                )
            ],
            network_profile=ContainerServiceNetworkProfile(
                network_plugin=cluster.network_plugin,
                outbound_type="userAssignedNATGateway",
            ),
            api_server_access_profile=ManagedClusterAPIServerAccessProfile(
                authorized_ip_ranges=list(cluster.authorized_ip_ranges) or None,
                enable_private_cluster=cluster.private_cluster_enabled,
            ),
            disk_encryption_set_id=cluster.disk_encryption_set_id,
            addon_profiles={
                AZURE_POLICY_ADDON: ManagedClusterAddonProfile(
                    enabled=cluster.azure_policy_enabled
                )
            },
            oidc_issuer_profile=ManagedClusterOIDCIssuerProfile(
                enabled=cluster.workload_identity_enabled
            ),
            security_profile=ManagedClusterSecurityProfile(
                workload_identity=ManagedClusterSecurityProfileWorkloadIdentity(
                    enabled=cluster.workload_identity_enabled
                )
            ),
        )
        # Control plane readiness is observed by the caller
        self._client.managed_clusters.begin_create_or_update(resource_group, cluster.name, params)

    def _modify(self, resource_group: str, name: str, change: Any) -> None:
        cluster = self._client.managed_clusters.get(resource_group, name)
        change(cluster)
        self._client.managed_clusters.begin_create_or_update(
            resource_group, name, cluster
        ).result()

    def update_kubernetes_version(self, resource_group: str, name: str, version: str) -> None:
        def change(cluster: ManagedCluster) -> None:
            cluster.kubernetes_version = version

        self._modify(resource_group, name, change)

    def update_authorized_ip_ranges(
        self, resource_group: str, name: str, ranges: list[str]
    ) -> None:
        def change(cluster: ManagedCluster) -> None:
            if cluster.api_server_access_profile is None:
                cluster.api_server_access_profile = ManagedClusterAPIServerAccessProfile()
            cluster.api_server_access_profile.authorized_ip_ranges = ranges

        self._modify(resource_group, name, change)

    def update_azure_policy(self, resource_group: str, name: str, enabled: bool) -> None:
        def change(cluster: ManagedCluster) -> None:
            addons = cluster.addon_profiles or {}
            addons[AZURE_POLICY_ADDON] = ManagedClusterAddonProfile(enabled=enabled)
            cluster.addon_profiles = addons

        self._modify(resource_group, name, change)

    def update_workload_identity(self, resource_group: str, name: str, enabled: bool) -> None:
        def change(cluster: ManagedCluster) -> None:
            if cluster.security_profile is None:
                cluster.security_profile = ManagedClusterSecurityProfile()
            cluster.security_profile.workload_identity = (
                ManagedClusterSecurityProfileWorkloadIdentity(enabled=enabled)
            )
            if enabled:
                # Workload identity requires the OIDC issuer
                cluster.oidc_issuer_profile = ManagedClusterOIDCIssuerProfile(enabled=True)

        self._modify(resource_group, name, change)

    def update_cluster_tags(self, resource_group: str, name: str, tags: dict[str, str]) -> None:
        self._client.managed_clusters.begin_update_tags(
            resource_group, name, ClusterTagsObject(tags=tags)
        ).result()

    def delete_cluster(self, resource_group: str, name: str) -> None:
        self._client.managed_clusters.begin_delete(resource_group, name).result()

    def get_user_kubeconfig(self, resource_group: str, name: str) -> bytes:
        credentials = self._client.managed_clusters.list_cluster_user_credentials(
            resource_group, name
        )
        return bytes(credentials.kubeconfigs[0].value)


class AzureNodePoolClient:
    def __init__(self, client: ContainerServiceClient) -> None:
        self._client = client

    def list_node_pools(self, resource_group: str, cluster: str) -> list[NodePoolState]:
        return [_pool_state(p) for p in self._client.agent_pools.list(resource_group, cluster)]

    def get_node_pool(self, resource_group: str, cluster: str, name: str) -> NodePoolState | None:
        try:
            return _pool_state(self._client.agent_pools.get(resource_group, cluster, name))
        except ResourceNotFoundError:
            return None

    def create_node_pool(self, resource_group: str, cluster: str, pool: NodePoolState) -> None:
        params = AgentPool(
            mode=pool.mode,
            type_properties_type="VirtualMachineScaleSets",
            vm_size=pool.vm_size,
            count=max(pool.min_count, 1),
            min_count=pool.min_count,
            max_count=pool.max_count,
            enable_auto_scaling=True,
            vnet_subnet_id=pool.vnet_subnet_id or None,
            node_labels=pool.labels,
            node_taints=list(pool.taints),
            tags=pool.tags,
        )
        if pool.spot:
            params.scale_set_priority = "Spot"
            params.scale_set_eviction_policy = "Delete"
            params.spot_max_price = -1
        self._client.agent_pools.begin_create_or_update(
            resource_group, cluster, pool.name, params
        ).result()

    def _modify(self, resource_group: str, cluster: str, name: str, change: Any) -> None:
        pool = self._client.agent_pools.get(resource_group, cluster, name)
        change(pool)
        self._client.agent_pools.begin_create_or_update(
            resource_group, cluster, name, pool
        ).result()

    def update_node_pool_scaling(
        self, resource_group: str, cluster: str, name: str, min_count: int, max_count: int
    ) -> None:
        def change(pool: AgentPool) -> None:
            pool.enable_auto_scaling = True
            pool.min_count = min_count
            pool.max_count = max_count

        self._modify(resource_group, cluster, name, change)

    def update_node_pool_labels(
        self, resource_group: str, cluster: str, name: str, labels: dict[str, str]
    ) -> None:
        def change(pool: AgentPool) -> None:
            system = {
                k: v
                for k, v in (pool.node_labels or {}).items()
                if k.startswith(AKS_SYSTEM_LABEL_PREFIX)
            }
            pool.node_labels = {**labels, **system}

        self._modify(resource_group, cluster, name, change)

    def update_node_pool_taints(
        self, resource_group: str, cluster: str, name: str, taints: list[str]
    ) -> None:
        def change(pool: AgentPool) -> None:
            system = [t for t in pool.node_taints or () if t.startswith(AKS_SYSTEM_LABEL_PREFIX)]
            pool.node_taints = [*taints, *system]

        self._modify(resource_group, cluster, name, change)

    def update_node_pool_tags(
        self, resource_group: str, cluster: str, name: str, tags: dict[str, str]
    ) -> None:
        def change(pool: AgentPool) -> None:
            pool.tags = tags

        self._modify(resource_group, cluster, name, change)

    def delete_node_pool(self, resource_group: str, cluster: str, name: str) -> None:
        self._client.agent_pools.begin_delete(resource_group, cluster, name).result()


# =============================================================================
# Storage
# =============================================================================


def _storage_state(account: Any, shares: list[FileShareState]) -> StorageState:
    encryption = account.encryption
    rules = account.network_rule_set.virtual_network_rules if account.network_rule_set else None
    return StorageState(
        account_name=account.name,
        location=account.location,
        sku=account.sku.name if account.sku else "",
        kind=account.kind or "",
        infrastructure_encryption=bool(
            encryption and encryption.require_infrastructure_encryption
        ),
        subnet_rules=tuple(sorted(r.virtual_network_resource_id for r in rules or ())),
        tags=_tags(account),
        resource_id=account.id,
        shares=tuple(shares),
    )


def _network_rule_set(subnet_ids: list[str] | tuple[str, ...]) -> NetworkRuleSet:
    return NetworkRuleSet(
        default_action="Deny" if subnet_ids else "Allow",
        virtual_network_rules=[
            VirtualNetworkRule(virtual_network_resource_id=s) for s in subnet_ids
        ],
    )


class AzureStorageClient:
    def __init__(self, client: StorageManagementClient) -> None:
        self._client = client

    def list_storage_accounts(self, resource_group: str) -> list[StorageState]:
        accounts = []
        for account in self._client.storage_accounts.list_by_resource_group(resource_group):
            shares = [
                FileShareState(name=s.name, quota_gib=s.share_quota or 0)
                for s in self._client.file_shares.list(resource_group, account.name)
            ]
            accounts.append(_storage_state(account, shares))
        return accounts

    def create_storage_account(self, resource_group: str, account: StorageState) -> None:
        params = StorageAccountCreateParameters(
            sku=Sku(name=account.sku),
            kind=account.kind,
            location=account.location,
            tags=account.tags,
            encryption=Encryption(
                key_source="Microsoft.Storage",
                require_infrastructure_encryption=account.infrastructure_encryption,
            ),
            network_rule_set=_network_rule_set(account.subnet_rules),
            minimum_tls_version="TLS1_2",
        )
        self._client.storage_accounts.begin_create(
            resource_group, account.account_name, params
        ).result()

    def update_storage_tags(self, resource_group: str, account: str, tags: dict[str, str]) -> None:
        self._client.storage_accounts.update(
            resource_group, account, StorageAccountUpdateParameters(tags=tags)
        )

    def update_network_rules(
        self, resource_group: str, account: str, subnet_ids: list[str]
    ) -> None:
        self._client.storage_accounts.update(
            resource_group,
            account,
            StorageAccountUpdateParameters(network_rule_set=_network_rule_set(subnet_ids)),
        )

    def create_file_share(
        self, resource_group: str, account: str, share: str, quota_gib: int
    ) -> None:
        self._client.file_shares.create(
            resource_group, account, share, FileShare(share_quota=quota_gib)
        )

    def update_file_share_quota(
        self, resource_group: str, account: str, share: str, quota_gib: int
    ) -> None:
        self._client.file_shares.update(
            resource_group, account, share, FileShare(share_quota=quota_gib)
        )

    def delete_file_share(self, resource_group: str, account: str, share: str) -> None:
        self._client.file_shares.delete(resource_group, account, share)

    def delete_storage_account(self, resource_group: str, account: str) -> None:
        self._client.storage_accounts.delete(resource_group, account)


def build_azure_clients(
    subscription_id: str, credential: TokenCredential | None = None
) -> AzureClients:
    """Build SDK backed clients for one subscription.

    Args:
        subscription_id: Target subscription.
        credential: Token credential; DefaultAzureCredential when omitted.
    """
    credential = credential or DefaultAzureCredential()
    container_service = ContainerServiceClient(credential, subscription_id)
    logger.info("Using Azure subscription", extra={"subscription_id": subscription_id})
    return AzureClients(
        resource_groups=AzureResourceGroupClient(
            ResourceManagementClient(credential, subscription_id)
        ),
        network=AzureNetworkClient(NetworkManagementClient(credential, subscription_id)),
        identity=AzureIdentityClient(
            ManagedServiceIdentityClient(credential, subscription_id),
            AuthorizationManagementClient(credential, subscription_id),
            subscription_id,
        ),
        cluster=AzureClusterClient(container_service),
        node_pools=AzureNodePoolClient(container_service),
        storage=AzureStorageClient(StorageManagementClient(credential, subscription_id)),
    )
