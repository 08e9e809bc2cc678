"""Virtual network reconciler.

The network consists of a virtual network with its subnets plus the egress
path: a NAT gateway fronted by a static public IP, and a route table. The
address space and existing subnet prefixes cannot change in place; tags
can, and subnets missing from the network are added.
"""

from __future__ import annotations

import logging

from .clients import AzureClients
from .errors import NicError
from .models import AzureConfig
from .reconciler import FieldDiff, ResourceScope, managed, single_match
from .state import AuxiliaryState, NetworkState, SubnetState
from .status import RunContext, StatusLevel
from .tags import (
    RESOURCE_TYPE_NAT_GATEWAY,
    RESOURCE_TYPE_NETWORK,
    RESOURCE_TYPE_PUBLIC_IP,
    RESOURCE_TYPE_ROUTE_TABLE,
    build_tags,
)
from .teardown import Teardown
from .upstream import call_upstream

logger = logging.getLogger(__name__)

KIND = "network"
STORAGE_SERVICE_ENDPOINT = "Microsoft.Storage"
NODES_SUBNET = "nodes"


def network_name(project_name: str) -> str:
    return f"{project_name}-vnet"


def nat_gateway_name(project_name: str) -> str:
    return f"{project_name}-nat"


def public_ip_name(project_name: str) -> str:
    return f"{project_name}-nat-ip"


def route_table_name(project_name: str) -> str:
    return f"{project_name}-rt"


def node_subnet_name(azure: AzureConfig) -> str:
    """Subnet hosting cluster nodes: "nodes" when declared, else the first one."""
    subnets = azure.effective_subnets()
    if NODES_SUBNET in subnets:
        return NODES_SUBNET
    return next(iter(subnets))


def desired_network(scope: ResourceScope, azure: AzureConfig) -> NetworkState:
    return NetworkState(
        name=network_name(scope.project_name),
        location=scope.location,
        address_space=(azure.vnet_cidr,),
        subnets=tuple(
            SubnetState(
                name=name,
                address_prefix=prefix,
                service_endpoints=(STORAGE_SERVICE_ENDPOINT,),
            )
            for name, prefix in azure.effective_subnets().items()
        ),
        tags=build_tags(scope.project_name, RESOURCE_TYPE_NETWORK, scope.user_tags),
    )


async def _list_parts(
    clients: AzureClients, scope: ResourceScope
) -> tuple[list[NetworkState], list[AuxiliaryState], list[AuxiliaryState], list[AuxiliaryState]]:
    rg = scope.resource_group
    networks = managed(
        await call_upstream(KIND, "list_networks", clients.network.list_networks, rg),
        scope,
        RESOURCE_TYPE_NETWORK,
    )
    nat_gateways = managed(
        await call_upstream(KIND, "list_nat_gateways", clients.network.list_nat_gateways, rg),
        scope,
        RESOURCE_TYPE_NAT_GATEWAY,
    )
    public_ips = managed(
        await call_upstream(KIND, "list_public_ips", clients.network.list_public_ips, rg),
        scope,
        RESOURCE_TYPE_PUBLIC_IP,
    )
    route_tables = managed(
        await call_upstream(KIND, "list_route_tables", clients.network.list_route_tables, rg),
        scope,
        RESOURCE_TYPE_ROUTE_TABLE,
    )
    return networks, nat_gateways, public_ips, route_tables


async def discover_network(clients: AzureClients, scope: ResourceScope) -> NetworkState | None:
    """Find this platform's virtual network together with its egress resources."""
    networks, nat_gateways, public_ips, route_tables = await _list_parts(clients, scope)
    network = single_match(KIND, scope.project_name, networks)
    if network is None:
        return None
    return NetworkState(
        name=network.name,
        location=network.location,
        address_space=network.address_space,
        subnets=network.subnets,
        tags=network.tags,
        resource_id=network.resource_id,
        nat_gateways=tuple(nat_gateways),
        public_ips=tuple(public_ips),
        route_tables=tuple(route_tables),
    )


async def _ensure_egress(
    clients: AzureClients, scope: ResourceScope, actual: NetworkState | None
) -> tuple[str, str]:
    """Create the public IP, NAT gateway and route table when missing; return their ids."""
    rg = scope.resource_group
    project = scope.project_name
    user_tags = scope.user_tags

    if actual and actual.nat_gateways:
        nat_id = actual.nat_gateways[0].resource_id
    else:
        if actual and actual.public_ips:
            public_ip = actual.public_ips[0]
        else:
            public_ip = await call_upstream(
                KIND,
                "create_public_ip",
                clients.network.create_public_ip,
                rg,
                public_ip_name(project),
                scope.location,
                build_tags(project, RESOURCE_TYPE_PUBLIC_IP, user_tags),
            )
        nat = await call_upstream(
            KIND,
            "create_nat_gateway",
            clients.network.create_nat_gateway,
            rg,
            nat_gateway_name(project),
            scope.location,
            public_ip.resource_id,
            build_tags(project, RESOURCE_TYPE_NAT_GATEWAY, user_tags),
        )
        nat_id = nat.resource_id

    if actual and actual.route_tables:
        route_table_id = actual.route_tables[0].resource_id
    else:
        route_table = await call_upstream(
            KIND,
            "create_route_table",
            clients.network.create_route_table,
            rg,
            route_table_name(project),
            scope.location,
            build_tags(project, RESOURCE_TYPE_ROUTE_TABLE, user_tags),
        )
        route_table_id = route_table.resource_id

    return nat_id, route_table_id


def diff_network(
    actual: NetworkState, desired: NetworkState
) -> tuple[FieldDiff, list[SubnetState]]:
    """Compare the network and return the diff with the subnets still to create.

    Raises:
        ImmutableFieldViolation: If the address space or an existing subnet prefix differs.
    """
    diff = FieldDiff(KIND, actual.name)
    diff.immutable("location", actual.location, desired.location)
    diff.immutable("address_space", sorted(actual.address_space), sorted(desired.address_space))
    missing = []
    for subnet in desired.subnets:
        existing = actual.subnet(subnet.name)
        if existing is None:
            missing.append(subnet)
        else:
            diff.immutable(
                f"subnets.{subnet.name}.address_prefix",
                existing.address_prefix,
                subnet.address_prefix,
            )
    diff.tags(actual.tags, desired.tags)
    if missing:
        diff.mutable("subnets", [s.name for s in actual.subnets], [s.name for s in desired.subnets])
    return diff, missing


async def reconcile_network(
    clients: AzureClients,
    scope: ResourceScope,
    desired: NetworkState,
    actual: NetworkState | None,
    ctx: RunContext,
) -> NetworkState:
    """Drive the virtual network towards desired.

    Raises:
        ImmutableFieldViolation: If the address space or an existing subnet prefix differs.
    """
    rg = scope.resource_group

    if actual is None:
        ctx.status(StatusLevel.PROGRESS, f"Creating network {desired.name}", KIND, "create")
        nat_id, route_table_id = await _ensure_egress(clients, scope, None)
        await call_upstream(
            KIND,
            "create_network",
            clients.network.create_network,
            rg,
            desired.name,
            desired.location,
            list(desired.address_space),
            desired.tags,
        )
        for subnet in desired.subnets:
            await _create_subnet(clients, rg, desired.name, subnet, nat_id, route_table_id)
        created = await discover_network(clients, scope)
        if created is None:
            raise NicError(f"{KIND} '{desired.name}' not visible after creation")
        logger.info("Created network", extra={"network": desired.name})
        return created

    diff, missing = diff_network(actual, desired)

    if "tags" in diff:
        await call_upstream(
            KIND,
            "update_network_tags",
            clients.network.update_network_tags,
            rg,
            actual.name,
            {**actual.tags, **desired.tags},
        )

    if missing:
        nat_id, route_table_id = await _ensure_egress(clients, scope, actual)
        for subnet in missing:
            await _create_subnet(clients, rg, actual.name, subnet, nat_id, route_table_id)

    if not diff:
        return actual

    logger.info("Updated network", extra={"network": actual.name, "fields": diff.changed})
    ctx.status(
        StatusLevel.INFO, f"Updated network {actual.name}", KIND, "update", fields=diff.changed
    )
    refreshed = await discover_network(clients, scope)
    return refreshed or actual


async def _create_subnet(
    clients: AzureClients,
    resource_group: str,
    network: str,
    subnet: SubnetState,
    nat_id: str,
    route_table_id: str,
) -> None:
    spec = SubnetState(
        name=subnet.name,
        address_prefix=subnet.address_prefix,
        nat_gateway_id=nat_id,
        route_table_id=route_table_id,
        service_endpoints=subnet.service_endpoints,
    )
    await call_upstream(
        KIND, "create_subnet", clients.network.create_subnet, resource_group, network, spec
    )


async def destroy_network(
    clients: AzureClients, scope: ResourceScope, teardown: Teardown
) -> int:
    """Delete network resources in dependency order.

    NAT gateways are detached and deleted first, then public IPs, subnets,
    route tables and finally the virtual networks.

    Returns:
        Number of resources found.
    """
    rg = scope.resource_group
    parts = await teardown.discover(
        KIND, scope.project_name, lambda: _list_parts(clients, scope), ([], [], [], [])
    )
    networks, nat_gateways, public_ips, route_tables = parts
    found = len(networks) + len(nat_gateways) + len(public_ips) + len(route_tables)
    found += sum(len(n.subnets) for n in networks)

    nat_ids = {n.resource_id.lower() for n in nat_gateways}
    for network in networks:
        for subnet in network.subnets:
            if subnet.nat_gateway_id and subnet.nat_gateway_id.lower() in nat_ids:
                await teardown.delete(
                    KIND,
                    f"{network.name}/{subnet.name} nat association",
                    clients.network.dissociate_nat_gateway,
                    rg,
                    network.name,
                    subnet.name,
                )

    for nat in nat_gateways:
        await teardown.delete(
            "nat-gateway", nat.name, clients.network.delete_nat_gateway, rg, nat.name
        )
    for public_ip in public_ips:
        await teardown.delete(
            "public-ip", public_ip.name, clients.network.delete_public_ip, rg, public_ip.name
        )
    for network in networks:
        for subnet in network.subnets:
            await teardown.delete(
                "subnet",
                f"{network.name}/{subnet.name}",
                clients.network.delete_subnet,
                rg,
                network.name,
                subnet.name,
            )
    for route_table in route_tables:
        await teardown.delete(
            "route-table",
            route_table.name,
            clients.network.delete_route_table,
            rg,
            route_table.name,
        )
    for network in networks:
        await teardown.delete(KIND, network.name, clients.network.delete_network, rg, network.name)

    return found
