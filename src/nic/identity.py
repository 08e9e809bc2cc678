"""Identity role reconciler.

Two user-assigned managed identities back the cluster: one for the control
plane and one for the kubelet. The control plane identity is granted the
Managed Identity Operator role on the kubelet identity so AKS can attach it
to nodes. Location is immutable; tags are mutable.
"""

from __future__ import annotations

import logging

from .clients import AzureClients
from .reconciler import FieldDiff, ResourceScope, managed, single_match
from .state import IdentityState
from .status import RunContext, StatusLevel
from .tags import RESOURCE_TYPE_IDENTITY, TAG_ROLE, build_tags
from .teardown import Teardown
from .upstream import call_upstream

logger = logging.getLogger(__name__)

KIND = "identity"
ROLE_CLUSTER = "cluster"
ROLE_KUBELET = "kubelet"
ROLES = (ROLE_CLUSTER, ROLE_KUBELET)


def identity_name(project_name: str, role: str) -> str:
    return f"{project_name}-{role}-identity"


def desired_identities(scope: ResourceScope) -> dict[str, IdentityState]:
    return {
        role: IdentityState(
            name=identity_name(scope.project_name, role),
            location=scope.location,
            tags=build_tags(
                scope.project_name, RESOURCE_TYPE_IDENTITY, scope.user_tags, **{TAG_ROLE: role}
            ),
        )
        for role in ROLES
    }


async def _list_managed(clients: AzureClients, scope: ResourceScope) -> list[IdentityState]:
    identities = await call_upstream(
        KIND, "list_identities", clients.identity.list_identities, scope.resource_group
    )
    return managed(identities, scope, RESOURCE_TYPE_IDENTITY)


async def discover_identities(
    clients: AzureClients, scope: ResourceScope
) -> dict[str, IdentityState]:
    """Find this platform's identities keyed by role; absent roles are omitted.

    Raises:
        AmbiguousStateError: If a role has more than one tagged identity.
    """
    identities = await _list_managed(clients, scope)
    found = {}
    for role in ROLES:
        matches = [i for i in identities if i.tags.get(TAG_ROLE) == role]
        match = single_match(f"{KIND}[{role}]", scope.project_name, matches)
        if match is not None:
            found[role] = match
    return found


def diff_identity(have: IdentityState, want: IdentityState) -> FieldDiff:
    diff = FieldDiff(KIND, have.name)
    diff.immutable("location", have.location, want.location)
    diff.tags(have.tags, want.tags)
    return diff


async def reconcile_identities(
    clients: AzureClients,
    scope: ResourceScope,
    desired: dict[str, IdentityState],
    actual: dict[str, IdentityState],
    ctx: RunContext,
) -> dict[str, IdentityState]:
    """Ensure each role's identity exists with the desired tags."""
    rg = scope.resource_group

    # Validate every role before mutating any of them
    diffs = {}
    for role, want in desired.items():
        have = actual.get(role)
        if have is None:
            continue
        diffs[role] = diff_identity(have, want)

    result: dict[str, IdentityState] = {}
    for role, want in desired.items():
        have = actual.get(role)
        if have is None:
            ctx.status(StatusLevel.PROGRESS, f"Creating identity {want.name}", KIND, "create")
            result[role] = await call_upstream(
                KIND,
                "create_identity",
                clients.identity.create_identity,
                rg,
                want.name,
                want.location,
                want.tags,
            )
            logger.info("Created identity", extra={"identity": want.name, "role": role})
            continue

        if "tags" in diffs[role]:
            await call_upstream(
                KIND,
                "update_identity_tags",
                clients.identity.update_identity_tags,
                rg,
                have.name,
                {**have.tags, **want.tags},
            )
            logger.info("Updated identity tags", extra={"identity": have.name})
        result[role] = have

    cluster_identity = result.get(ROLE_CLUSTER)
    kubelet_identity = result.get(ROLE_KUBELET)
    if cluster_identity and kubelet_identity:
        await _ensure_identity_operator(clients, scope, cluster_identity, kubelet_identity)

    return result


async def _ensure_identity_operator(
    clients: AzureClients,
    scope: ResourceScope,
    cluster_identity: IdentityState,
    kubelet_identity: IdentityState,
) -> None:
    rg = scope.resource_group
    assigned = await call_upstream(
        KIND,
        "has_identity_operator",
        clients.identity.has_identity_operator,
        rg,
        kubelet_identity.name,
        cluster_identity.principal_id,
    )
    if assigned:
        return
    await call_upstream(
        KIND,
        "assign_identity_operator",
        clients.identity.assign_identity_operator,
        rg,
        kubelet_identity.name,
        cluster_identity.principal_id,
    )
    logger.info(
        "Granted control plane identity access to kubelet identity",
        extra={"cluster_identity": cluster_identity.name, "kubelet": kubelet_identity.name},
    )


async def destroy_identities(
    clients: AzureClients, scope: ResourceScope, teardown: Teardown
) -> int:
    """Delete every identity tagged for this platform. Returns the number found."""
    identities = await teardown.discover(
        KIND, scope.project_name, lambda: _list_managed(clients, scope), []
    )
    for identity in identities:
        await teardown.delete(
            KIND,
            identity.name,
            clients.identity.delete_identity,
            scope.resource_group,
            identity.name,
        )
    return len(identities)
