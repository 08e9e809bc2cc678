"""Immutable snapshots of discovered Azure resources.

Snapshots are produced fresh by discovery on every run and never mutated;
a changed resource yields a new snapshot. The same types describe the
desired shape of a resource, built from configuration with empty
identifiers.
"""

from __future__ import annotations

from dataclasses import dataclass, field


@dataclass(frozen=True)
class ResourceGroupState:
    name: str
    location: str
    tags: dict[str, str] = field(default_factory=dict)


@dataclass(frozen=True)
class SubnetState:
    name: str
    address_prefix: str
    resource_id: str = ""
    nat_gateway_id: str | None = None
    route_table_id: str | None = None
    service_endpoints: tuple[str, ...] = ()


@dataclass(frozen=True)
class AuxiliaryState:
    """A network sub-resource tracked by name and id (NAT gateway, public IP, route table)."""

    name: str
    resource_id: str
    location: str = ""
    tags: dict[str, str] = field(default_factory=dict)


@dataclass(frozen=True)
class NetworkState:
    name: str
    location: str
    address_space: tuple[str, ...]
    subnets: tuple[SubnetState, ...] = ()
    tags: dict[str, str] = field(default_factory=dict)
    resource_id: str = ""
    nat_gateways: tuple[AuxiliaryState, ...] = ()
    public_ips: tuple[AuxiliaryState, ...] = ()
    route_tables: tuple[AuxiliaryState, ...] = ()

    def subnet(self, name: str) -> SubnetState | None:
        for subnet in self.subnets:
            if subnet.name == name:
                return subnet
        return None


@dataclass(frozen=True)
class IdentityState:
    name: str
    location: str
    tags: dict[str, str] = field(default_factory=dict)
    resource_id: str = ""
    client_id: str = ""
    principal_id: str = ""


@dataclass(frozen=True)
class ClusterState:
    name: str
    location: str
    kubernetes_version: str
    vnet_subnet_id: str = ""
    disk_encryption_set_id: str | None = None
    private_cluster_enabled: bool = False
    network_plugin: str = "azure"
    authorized_ip_ranges: tuple[str, ...] = ()
    azure_policy_enabled: bool = False
    workload_identity_enabled: bool = False
    tags: dict[str, str] = field(default_factory=dict)
    resource_id: str = ""
    provisioning_state: str = ""
    cluster_identity_id: str = ""
    kubelet_identity_id: str = ""
    kubelet_client_id: str = ""
    kubelet_object_id: str = ""
    fqdn: str = ""


@dataclass(frozen=True)
class NodePoolState:
    name: str
    vm_size: str
    min_count: int
    max_count: int
    spot: bool = False
    mode: str = "User"
    labels: dict[str, str] = field(default_factory=dict)
    taints: tuple[str, ...] = ()
    tags: dict[str, str] = field(default_factory=dict)
    vnet_subnet_id: str = ""
    provisioning_state: str = ""


@dataclass(frozen=True)
class FileShareState:
    name: str
    quota_gib: int


@dataclass(frozen=True)
class StorageState:
    account_name: str
    location: str
    sku: str
    kind: str
    infrastructure_encryption: bool = False
    subnet_rules: tuple[str, ...] = ()
    tags: dict[str, str] = field(default_factory=dict)
    resource_id: str = ""
    shares: tuple[FileShareState, ...] = ()

    def share(self, name: str) -> FileShareState | None:
        for share in self.shares:
            if share.name == name:
                return share
        return None
