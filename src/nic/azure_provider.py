"""Azure provider: AKS platform on a dedicated virtual network.

Forward order: resource group, network, identities, cluster (with its
system pool), node pools, shared storage. Destroy runs the reverse; see
nic.destroy.
"""

from __future__ import annotations

import ipaddress
import logging
import os
import re
from collections.abc import Callable
from functools import partial
from typing import Any

from .azure_clients import build_azure_clients
from .clients import AzureClients
from .cluster import (
    cluster_name,
    desired_cluster,
    diff_cluster,
    discover_cluster,
    get_kubeconfig,
    parse_version,
    reconcile_cluster,
)
from .destroy import destroy_platform
from .errors import ConfigValidationError, NicError
from .identity import (
    desired_identities,
    diff_identity,
    discover_identities,
    reconcile_identities,
)
from .models import AzureConfig, PlatformConfig
from .network import (
    desired_network,
    diff_network,
    discover_network,
    node_subnet_name,
    reconcile_network,
)
from .nodepools import (
    MODE_SYSTEM,
    desired_node_pools,
    diff_node_pool,
    discover_node_pools,
    reconcile_node_pools,
)
from .plan import Plan
from .provider import Provider
from .reconciler import ResourceScope
from .resource_group import ensure_resource_group, get_resource_group, resource_group_name
from .state import NodePoolState
from .status import RunContext, StatusLevel
from .storage import desired_storage, diff_storage, discover_storage, reconcile_storage
from .tags import is_managed

logger = logging.getLogger(__name__)

PROVIDER_NAME = "azure"
SUBSCRIPTION_ENV = "AZURE_SUBSCRIPTION_ID"
NODE_GROUP_NAME_PATTERN = re.compile(r"^[a-z][a-z0-9]{0,11}$")

ClientsFactory = Callable[[PlatformConfig], AzureClients]


def subscription_id(config: PlatformConfig) -> str:
    configured = config.azure.subscription_id if config.azure else None
    return configured or os.environ.get(SUBSCRIPTION_ENV, "")


def default_clients_factory(config: PlatformConfig) -> AzureClients:
    return build_azure_clients(subscription_id(config))


def scope_for(config: PlatformConfig) -> ResourceScope:
    azure = config.azure or AzureConfig()
    return ResourceScope(
        project_name=config.project_name,
        resource_group=resource_group_name(config.project_name, azure.resource_group_name),
        location=azure.region,
        user_tags=dict(azure.tags),
    )


def _validate_network(azure: AzureConfig, errors: list[str]) -> None:
    try:
        vnet = ipaddress.ip_network(azure.vnet_cidr, strict=False)
    except ValueError:
        errors.append(f"azure.vnet_cidr: invalid CIDR '{azure.vnet_cidr}'")
        return
    if vnet.version != 4:
        errors.append(f"azure.vnet_cidr: must be an IPv4 network, got '{azure.vnet_cidr}'")
        return
    for name, prefix in azure.subnets.items():
        try:
            subnet = ipaddress.ip_network(prefix, strict=False)
        except ValueError:
            errors.append(f"azure.subnets.{name}: invalid CIDR '{prefix}'")
            continue
        if subnet.version != 4 or not subnet.subnet_of(vnet):
            errors.append(f"azure.subnets.{name}: {prefix} is outside {azure.vnet_cidr}")


def _validate_node_groups(azure: AzureConfig, errors: list[str]) -> None:
    if not azure.node_groups:
        errors.append("azure.node_groups: at least one node group is required")
        return
    system_pools = []
    for name, group in azure.node_groups.items():
        where = f"azure.node_groups.{name}"
        if not NODE_GROUP_NAME_PATTERN.match(name):
            errors.append(
                f"{where}: name must be lowercase alphanumeric, start with a letter and be "
                "at most 12 characters"
            )
        if not group.vm_size:
            errors.append(f"{where}: vm_size (instance) is required")
        if group.min_count > group.max_count:
            errors.append(
                f"{where}: min_count ({group.min_count}) cannot exceed max_count "
                f"({group.max_count})"
            )
        for i, taint in enumerate(group.taints):
            if not taint.key:
                errors.append(f"{where}.taints[{i}]: key is required")
        if group.system:
            system_pools.append(name)
    if len(system_pools) > 1:
        errors.append(f"azure.node_groups: only one system pool allowed, got {system_pools}")
    system = azure.system_pool_name()
    if system and azure.node_groups[system].spot:
        errors.append(f"azure.node_groups.{system}: the system pool cannot use spot instances")


class AzureProvider(Provider):
    """Provision and reconcile an AKS platform.

    Args:
        clients_factory: Builds the API clients for a configuration; the
            default uses the Azure SDK with DefaultAzureCredential.
    """

    name = PROVIDER_NAME

    def __init__(self, clients_factory: ClientsFactory | None = None) -> None:
        self._clients_factory = clients_factory or default_clients_factory

    def validate(self, config: PlatformConfig) -> None:
        errors: list[str] = []
        azure = config.azure
        if azure is None:
            raise ConfigValidationError(["azure: section is required"], provider=self.name)

        if not azure.region:
            errors.append("azure.region: is required")
        if not azure.kubernetes_version:
            errors.append("azure.kubernetes_version: is required")
        else:
            try:
                parse_version(azure.kubernetes_version)
            except ValueError as e:
                errors.append(f"azure.kubernetes_version: {e}")
        _validate_network(azure, errors)
        _validate_node_groups(azure, errors)
        if not subscription_id(config):
            errors.append(f"azure.subscription_id: not set and {SUBSCRIPTION_ENV} is empty")

        if errors:
            raise ConfigValidationError(errors, provider=self.name)
        logger.debug("Configuration valid", extra={"project": config.project_name})

    def _clients(self, config: PlatformConfig) -> AzureClients:
        return self._clients_factory(config)

    async def reconcile(self, config: PlatformConfig, ctx: RunContext) -> None:
        azure = config.azure
        if azure is None:
            raise ConfigValidationError(["azure: section is required"], provider=self.name)
        clients = self._clients(config)
        scope = scope_for(config)

        def step(resource: str, message: str) -> None:
            ctx.status(StatusLevel.PROGRESS, message, resource, "reconcile")

        def done(resource: str, message: str, **metadata: Any) -> None:
            ctx.status(StatusLevel.SUCCESS, message, resource, "reconcile", **metadata)

        step("resource-group", f"Ensuring resource group {scope.resource_group}")
        await ensure_resource_group(clients, scope, ctx)
        done("resource-group", f"Resource group {scope.resource_group} ready")

        step("network", "Reconciling network")
        network = await reconcile_network(
            clients,
            scope,
            desired_network(scope, azure),
            await discover_network(clients, scope),
            ctx,
        )
        subnet = network.subnet(node_subnet_name(azure))
        if subnet is None or not subnet.resource_id:
            raise NicError(f"network '{network.name}': node subnet has no resource id")
        done("network", f"Network {network.name} ready", network_id=network.resource_id)

        step("identity", "Reconciling identities")
        identities = await reconcile_identities(
            clients,
            scope,
            desired_identities(scope),
            await discover_identities(clients, scope),
            ctx,
        )
        done("identity", "Identities ready")

        step("cluster", "Reconciling managed cluster")
        pools = desired_node_pools(scope, azure, subnet.resource_id)
        system_pool = pools[azure.system_pool_name()]
        cluster = await reconcile_cluster(
            clients,
            scope,
            desired_cluster(scope, azure, subnet.resource_id, identities),
            await discover_cluster(clients, scope),
            system_pool,
            ctx,
        )
        done("cluster", f"Cluster {cluster.name} ready", version=cluster.kubernetes_version)

        step("node-pool", "Reconciling node pools")
        await reconcile_node_pools(
            clients,
            scope,
            cluster.name,
            pools,
            await discover_node_pools(clients, scope, cluster.name),
            ctx,
        )
        done("node-pool", "Node pools ready", pools=sorted(pools))

        if azure.storage.enabled:
            step("storage", "Reconciling shared storage")
            storage = await reconcile_storage(
                clients,
                scope,
                desired_storage(scope, azure.storage, [subnet.resource_id]),
                await discover_storage(clients, scope),
                ctx,
            )
            done("storage", f"Storage {storage.account_name} ready")
        else:
            logger.info("Shared storage disabled", extra={"project": config.project_name})

        logger.info("Platform reconciled", extra={"project": config.project_name})

    async def plan(self, config: PlatformConfig, ctx: RunContext) -> Plan:
        """Discover current state and compare it with the configuration.

        Resources inside a missing resource group are planned for creation
        without listing them.
        """
        azure = config.azure
        if azure is None:
            raise ConfigValidationError(["azure: section is required"], provider=self.name)
        clients = self._clients(config)
        scope = scope_for(config)
        plan = Plan()

        ctx.status(StatusLevel.INFO, "Discovering existing infrastructure", "dry-run", "discover")
        group = await get_resource_group(clients, scope)
        present = group is not None
        if present:
            detail = "" if is_managed(group.tags, scope.project_name) else "unmanaged, used as is"
            plan.unchanged("resource-group", scope.resource_group, detail=detail)
        else:
            plan.create("resource-group", scope.resource_group)

        want_network = desired_network(scope, azure)
        network = await discover_network(clients, scope) if present else None
        subnet_id = ""
        if network is None:
            plan.create("network", want_network.name, detail=f"address space {azure.vnet_cidr}")
        else:
            plan.compare(
                "network", network.name, lambda: diff_network(network, want_network)[0]
            )
            subnet = network.subnet(node_subnet_name(azure))
            subnet_id = subnet.resource_id if subnet else ""

        identities = await discover_identities(clients, scope) if present else {}
        for role, want in desired_identities(scope).items():
            have = identities.get(role)
            if have is None:
                plan.create("identity", want.name, detail=f"role {role}")
            else:
                plan.compare("identity", have.name, partial(diff_identity, have, want))

        cluster = await discover_cluster(clients, scope) if present else None
        want_cluster = desired_cluster(
            scope, azure, subnet_id or (cluster.vnet_subnet_id if cluster else ""), identities
        )
        pools = desired_node_pools(scope, azure, subnet_id)
        system_pool = azure.system_pool_name()
        actual_pools: dict[str, NodePoolState] = {}
        if cluster is None:
            plan.create(
                "cluster", want_cluster.name, detail=f"kubernetes {azure.kubernetes_version}"
            )
        else:
            plan.compare("cluster", cluster.name, partial(diff_cluster, cluster, want_cluster))
            actual_pools = await discover_node_pools(clients, scope, cluster.name)

        for name, want_pool in pools.items():
            have_pool = actual_pools.get(name)
            if have_pool is None:
                detail = "with the cluster" if cluster is None and name == system_pool else ""
                plan.create("node-pool", name, detail=detail)
            else:
                plan.compare("node-pool", name, partial(diff_node_pool, have_pool, want_pool))
        for name, have_pool in actual_pools.items():
            if name not in pools and have_pool.mode != MODE_SYSTEM:
                plan.delete("node-pool", name, detail="not in configuration")

        if azure.storage.enabled:
            want_storage = desired_storage(
                scope, azure.storage, [subnet_id] if subnet_id else []
            )
            storage = await discover_storage(clients, scope) if present else None
            if storage is None:
                plan.create("storage", want_storage.account_name)
            else:
                plan.compare(
                    "storage", storage.account_name, partial(diff_storage, storage, want_storage)
                )

        plan.report(ctx)
        return plan

    async def destroy(self, config: PlatformConfig, ctx: RunContext, force: bool = False) -> None:
        await destroy_platform(self._clients(config), scope_for(config), ctx, force=force)

    async def get_kubeconfig(self, config: PlatformConfig, ctx: RunContext) -> bytes:
        return await get_kubeconfig(self._clients(config), scope_for(config))

    def summary(self, config: PlatformConfig) -> dict[str, Any]:
        azure = config.azure or AzureConfig()
        scope = scope_for(config)
        return {
            "provider": self.name,
            "region": azure.region,
            "resource_group": scope.resource_group,
            "cluster_name": cluster_name(config.project_name),
            "kubernetes_version": azure.kubernetes_version,
            "node_pools": ", ".join(azure.node_groups),
        }
