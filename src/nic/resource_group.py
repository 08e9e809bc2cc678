"""Resource group that contains every resource of a platform."""

from __future__ import annotations

import logging

from .clients import AzureClients
from .reconciler import ResourceScope
from .state import ResourceGroupState
from .status import RunContext, StatusLevel
from .tags import RESOURCE_TYPE_RESOURCE_GROUP, build_tags, is_managed
from .teardown import Teardown
from .upstream import call_upstream

logger = logging.getLogger(__name__)

KIND = "resource-group"


def resource_group_name(project_name: str, configured: str | None = None) -> str:
    return configured or f"{project_name}-rg"


async def get_resource_group(
    clients: AzureClients, scope: ResourceScope
) -> ResourceGroupState | None:
    return await call_upstream(
        KIND,
        "get_resource_group",
        clients.resource_groups.get_resource_group,
        scope.resource_group,
    )


async def ensure_resource_group(
    clients: AzureClients, scope: ResourceScope, ctx: RunContext
) -> ResourceGroupState:
    """Create the resource group when missing.

    A pre-existing group without the management marker is used as is and
    never modified.
    """
    name = scope.resource_group
    group = await get_resource_group(clients, scope)
    if group is not None:
        if not is_managed(group.tags, scope.project_name):
            logger.info("Using unmanaged resource group", extra={"resource_group": name})
        return group

    ctx.status(StatusLevel.PROGRESS, f"Creating resource group {name}", KIND, "create")
    group = await call_upstream(
        KIND,
        "create_resource_group",
        clients.resource_groups.create_resource_group,
        name,
        scope.location,
        build_tags(scope.project_name, RESOURCE_TYPE_RESOURCE_GROUP, scope.user_tags),
    )
    logger.info("Created resource group", extra={"resource_group": name})
    return group


async def destroy_resource_group(
    clients: AzureClients, scope: ResourceScope, teardown: Teardown
) -> bool:
    """Delete the resource group if this platform created it. Returns True when deleted."""
    name = scope.resource_group
    group = await teardown.discover(
        KIND,
        name,
        lambda: call_upstream(
            KIND, "get_resource_group", clients.resource_groups.get_resource_group, name
        ),
        None,
    )
    if group is None:
        return False
    if not is_managed(group.tags, scope.project_name):
        logger.info("Keeping unmanaged resource group", extra={"resource_group": name})
        return False
    return await teardown.delete(KIND, name, clients.resource_groups.delete_resource_group, name)
