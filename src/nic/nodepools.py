"""Node pool set reconciler.

Pools are keyed by name. Pools only in the desired set are created, pools
only in the actual set are deleted, and pools in both are diffed field by
field. Independent pools reconcile concurrently once the cluster exists;
one pool failing does not cancel its siblings.
"""

from __future__ import annotations

import asyncio
import logging

from .clients import AzureClients
from .errors import NicError, NodePoolReconcileError, ResourceFailure
from .models import AzureConfig
from .reconciler import FieldDiff, ResourceScope, managed
from .state import NodePoolState
from .status import RunContext, StatusLevel
from .tags import RESOURCE_TYPE_NODE_POOL, node_pool_tags
from .teardown import Teardown
from .upstream import call_upstream

logger = logging.getLogger(__name__)

KIND = "node-pool"
MODE_SYSTEM = "System"
MODE_USER = "User"


def desired_node_pool(
    scope: ResourceScope, azure: AzureConfig, name: str, subnet_id: str
) -> NodePoolState:
    group = azure.node_groups[name]
    is_system = name == azure.system_pool_name()
    return NodePoolState(
        name=name,
        vm_size=group.vm_size,
        min_count=group.min_count,
        max_count=group.max_count,
        spot=group.spot,
        mode=MODE_SYSTEM if is_system else MODE_USER,
        labels=dict(group.labels),
        taints=tuple(sorted(t.render() for t in group.taints)),
        tags=node_pool_tags(scope.project_name, name, scope.user_tags),
        vnet_subnet_id=subnet_id,
    )


def desired_node_pools(
    scope: ResourceScope, azure: AzureConfig, subnet_id: str
) -> dict[str, NodePoolState]:
    return {
        name: desired_node_pool(scope, azure, name, subnet_id) for name in azure.node_groups
    }


async def _list_managed(
    clients: AzureClients, scope: ResourceScope, cluster: str
) -> list[NodePoolState]:
    pools = await call_upstream(
        KIND,
        "list_node_pools",
        clients.node_pools.list_node_pools,
        scope.resource_group,
        cluster,
    )
    return managed(pools, scope, RESOURCE_TYPE_NODE_POOL)


async def _read_back(
    clients: AzureClients, scope: ResourceScope, cluster: str, name: str
) -> NodePoolState | None:
    return await call_upstream(
        KIND,
        "get_node_pool",
        clients.node_pools.get_node_pool,
        scope.resource_group,
        cluster,
        name,
    )


async def discover_node_pools(
    clients: AzureClients, scope: ResourceScope, cluster: str
) -> dict[str, NodePoolState]:
    """Return this platform's pools on the cluster keyed by pool name."""
    return {pool.name: pool for pool in await _list_managed(clients, scope, cluster)}


def diff_node_pool(actual: NodePoolState, desired: NodePoolState) -> FieldDiff:
    diff = FieldDiff(KIND, actual.name)
    diff.immutable("vm_size", actual.vm_size.lower(), desired.vm_size.lower())
    diff.immutable("spot", actual.spot, desired.spot)
    diff.immutable("mode", actual.mode, desired.mode)
    diff.mutable(
        "scaling",
        (actual.min_count, actual.max_count),
        (desired.min_count, desired.max_count),
    )
    diff.mutable("labels", actual.labels, desired.labels)
    diff.mutable("taints", tuple(sorted(actual.taints)), tuple(sorted(desired.taints)))
    diff.tags(actual.tags, desired.tags)
    return diff


async def _reconcile_pool(
    clients: AzureClients,
    scope: ResourceScope,
    cluster: str,
    desired: NodePoolState,
    actual: NodePoolState | None,
    ctx: RunContext,
) -> NodePoolState:
    rg = scope.resource_group
    pools = clients.node_pools

    if actual is None:
        ctx.status(StatusLevel.PROGRESS, f"Creating node pool {desired.name}", KIND, "create")
        await call_upstream(KIND, "create_node_pool", pools.create_node_pool, rg, cluster, desired)
        created = await _read_back(clients, scope, cluster, desired.name)
        if created is None:
            raise NicError(f"{KIND} '{desired.name}' not visible after creation")
        logger.info("Created node pool", extra={"cluster": cluster, "pool": desired.name})
        return created

    diff = diff_node_pool(actual, desired)
    if not diff:
        return actual

    name = actual.name
    if "scaling" in diff:
        await call_upstream(
            KIND,
            "update_node_pool_scaling",
            pools.update_node_pool_scaling,
            rg,
            cluster,
            name,
            desired.min_count,
            desired.max_count,
        )
    if "labels" in diff:
        await call_upstream(
            KIND,
            "update_node_pool_labels",
            pools.update_node_pool_labels,
            rg,
            cluster,
            name,
            desired.labels,
        )
    if "taints" in diff:
        await call_upstream(
            KIND,
            "update_node_pool_taints",
            pools.update_node_pool_taints,
            rg,
            cluster,
            name,
            list(desired.taints),
        )
    if "tags" in diff:
        await call_upstream(
            KIND,
            "update_node_pool_tags",
            pools.update_node_pool_tags,
            rg,
            cluster,
            name,
            {**actual.tags, **desired.tags},
        )

    logger.info(
        "Updated node pool", extra={"cluster": cluster, "pool": name, "fields": diff.changed}
    )
    ctx.status(StatusLevel.INFO, f"Updated node pool {name}", KIND, "update", fields=diff.changed)
    refreshed = await _read_back(clients, scope, cluster, name)
    return refreshed or actual


async def _delete_pool(
    clients: AzureClients, scope: ResourceScope, cluster: str, pool: NodePoolState, ctx: RunContext
) -> None:
    ctx.status(StatusLevel.PROGRESS, f"Deleting orphaned node pool {pool.name}", KIND, "delete")
    await call_upstream(
        KIND,
        "delete_node_pool",
        clients.node_pools.delete_node_pool,
        scope.resource_group,
        cluster,
        pool.name,
    )
    logger.info("Deleted orphaned node pool", extra={"cluster": cluster, "pool": pool.name})


def _collect(
    names: list[str], results: list[object], failures: list[ResourceFailure]
) -> dict[str, NodePoolState]:
    succeeded = {}
    for name, result in zip(names, results):
        if isinstance(result, asyncio.CancelledError):
            raise result
        if isinstance(result, NicError):
            failures.append(ResourceFailure(KIND, name, result))
        elif isinstance(result, BaseException):
            raise result
        elif result is not None:
            succeeded[name] = result
    return succeeded


async def reconcile_node_pools(
    clients: AzureClients,
    scope: ResourceScope,
    cluster: str,
    desired: dict[str, NodePoolState],
    actual: dict[str, NodePoolState],
    ctx: RunContext,
) -> dict[str, NodePoolState]:
    """Converge the cluster's pool set.

    Creates and updates run first, concurrently. Orphaned user pools are
    deleted afterwards so capacity is never reduced before replacement pools
    exist. The system pool is never deleted here.

    Returns:
        The pools now matching the desired set, keyed by name.

    Raises:
        NodePoolReconcileError: If any pool failed; carries every failure.
    """
    failures: list[ResourceFailure] = []

    names = list(desired)
    results = await asyncio.gather(
        *(
            _reconcile_pool(clients, scope, cluster, desired[n], actual.get(n), ctx)
            for n in names
        ),
        return_exceptions=True,
    )
    reconciled = _collect(names, results, failures)

    orphans = [p for n, p in actual.items() if n not in desired and p.mode != MODE_SYSTEM]
    if orphans:
        results = await asyncio.gather(
            *(_delete_pool(clients, scope, cluster, p, ctx) for p in orphans),
            return_exceptions=True,
        )
        _collect([p.name for p in orphans], results, failures)

    if failures:
        raise NodePoolReconcileError(failures)
    return reconciled


async def destroy_node_pools(
    clients: AzureClients, scope: ResourceScope, cluster: str, teardown: Teardown
) -> int:
    """Delete this platform's user pools; the system pool goes with the cluster.

    Returns:
        Number of user pools found.
    """
    pools = await teardown.discover(
        KIND, cluster, lambda: _list_managed(clients, scope, cluster), []
    )
    user_pools = [p for p in pools if p.mode != MODE_SYSTEM]
    for pool in user_pools:
        await teardown.delete(
            KIND,
            f"{cluster}/{pool.name}",
            clients.node_pools.delete_node_pool,
            scope.resource_group,
            cluster,
            pool.name,
        )
    return len(user_pools)
