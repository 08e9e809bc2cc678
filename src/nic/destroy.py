"""Destroy orchestration.

Deletes resource kinds in reverse creation order, then runs an orphan
sweep: bounded passes of tag-filtered discovery across every kind that
delete whatever is still found. Asynchronous cloud deletions can leave
transient dependents that block a resource deleted early in the primary
sequence; a later pass picks those up.
"""

from __future__ import annotations

import asyncio
import logging
import time

from .clients import AzureClients
from .cluster import destroy_cluster, list_managed_clusters
from .errors import PollCancelledError
from .identity import destroy_identities
from .network import destroy_network
from .nodepools import destroy_node_pools
from .reconciler import ResourceScope
from .resource_group import destroy_resource_group
from .status import RunContext, StatusLevel
from .storage import destroy_storage
from .teardown import Teardown

logger = logging.getLogger(__name__)


async def _destroy_all_node_pools(
    clients: AzureClients, scope: ResourceScope, teardown: Teardown
) -> int:
    clusters = await teardown.discover(
        "cluster", scope.project_name, lambda: list_managed_clusters(clients, scope), []
    )
    found = 0
    for cluster in clusters:
        found += await destroy_node_pools(clients, scope, cluster.name, teardown)
    return found


async def destroy_pass(clients: AzureClients, scope: ResourceScope, teardown: Teardown) -> int:
    """One ordered pass over every kind. Returns the number of resources found."""
    found = 0
    found += await destroy_storage(clients, scope, teardown)
    found += await _destroy_all_node_pools(clients, scope, teardown)
    found += await destroy_cluster(clients, scope, teardown)
    found += await destroy_identities(clients, scope, teardown)
    found += await destroy_network(clients, scope, teardown)
    return found


async def orphan_sweep(
    clients: AzureClients, scope: ResourceScope, teardown: Teardown, ctx: RunContext
) -> int:
    """Repeat destroy passes until nothing is found or the pass budget is spent.

    Sweep failures are always collected rather than aborting, whatever the
    mode of the primary sequence.

    Returns:
        Number of passes run.

    Raises:
        PollCancelledError: If the run is cancelled between passes.
    """
    passes = ctx.runtime.orphan_sweep_passes
    interval = ctx.runtime.orphan_sweep_interval_seconds

    started = time.monotonic()
    run = 0
    for run in range(1, passes + 1):
        if interval > 0:
            try:
                await asyncio.wait_for(ctx.cancel_event.wait(), timeout=interval)
            except TimeoutError:
                pass
        if ctx.cancelled:
            logger.warning("Orphan sweep cancelled", extra={"pass": run})
            raise PollCancelledError(
                time.monotonic() - started, passes * interval, "orphan sweep"
            )

        with teardown.forced():
            found = await destroy_pass(clients, scope, teardown)
        logger.info("Orphan sweep pass", extra={"pass": run, "found": found})
        if found == 0:
            break

    return run


async def destroy_platform(
    clients: AzureClients, scope: ResourceScope, ctx: RunContext, force: bool = False
) -> None:
    """Tear down every resource tagged for the platform.

    Args:
        force: Attempt every step and report all failures together.

    Raises:
        DestroyError: On the first failure (strict) or with every remaining failure (force).
    """
    teardown = Teardown(ctx, force=force)
    ctx.status(
        StatusLevel.PROGRESS,
        f"Destroying platform {scope.project_name}",
        "platform",
        "destroy",
        force=force,
    )

    await destroy_pass(clients, scope, teardown)
    await orphan_sweep(clients, scope, teardown, ctx)
    teardown.raise_for_failures()

    await destroy_resource_group(clients, scope, teardown)
    teardown.raise_for_failures()

    logger.info("Destroyed platform", extra={"project": scope.project_name})
    ctx.status(
        StatusLevel.SUCCESS, f"Destroyed platform {scope.project_name}", "platform", "destroy"
    )
