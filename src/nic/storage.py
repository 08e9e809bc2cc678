"""Shared storage reconciler.

A storage account holds one Azure Files share that cluster workloads mount
as shared filesystem. Access is restricted to the node subnet through
virtual network rules, the mount points of this resource. SKU, kind,
location and infrastructure encryption are fixed at creation.
"""

from __future__ import annotations

import hashlib
import logging
import re

from .clients import AzureClients
from .errors import NicError
from .models import StorageConfig
from .reconciler import FieldDiff, ResourceScope, managed, single_match
from .state import FileShareState, StorageState
from .status import RunContext, StatusLevel
from .tags import RESOURCE_TYPE_STORAGE, build_tags
from .teardown import Teardown
from .upstream import call_upstream

logger = logging.getLogger(__name__)

KIND = "storage"
SHARE_NAME = "nebari"
ACCOUNT_PREFIX = "nic"


def storage_account_name(project_name: str) -> str:
    """Globally unique, deterministic account name (3-24 lowercase alphanumerics)."""
    alnum = re.sub(r"[^a-z0-9]", "", project_name.lower())[:15]
    digest = hashlib.sha256(project_name.encode()).hexdigest()[:6]
    return f"{ACCOUNT_PREFIX}{alnum}{digest}"


def desired_storage(
    scope: ResourceScope, storage: StorageConfig, subnet_ids: list[str]
) -> StorageState:
    return StorageState(
        account_name=storage_account_name(scope.project_name),
        location=scope.location,
        sku=storage.sku,
        kind=storage.kind,
        infrastructure_encryption=storage.infrastructure_encryption,
        subnet_rules=tuple(sorted(subnet_ids)),
        tags=build_tags(scope.project_name, RESOURCE_TYPE_STORAGE, scope.user_tags),
        shares=(FileShareState(name=SHARE_NAME, quota_gib=storage.quota_gib),),
    )


async def _list_managed(clients: AzureClients, scope: ResourceScope) -> list[StorageState]:
    accounts = await call_upstream(
        KIND,
        "list_storage_accounts",
        clients.storage.list_storage_accounts,
        scope.resource_group,
    )
    return managed(accounts, scope, RESOURCE_TYPE_STORAGE)


async def discover_storage(clients: AzureClients, scope: ResourceScope) -> StorageState | None:
    return single_match(
        KIND,
        scope.project_name,
        await _list_managed(clients, scope),
        name_of=lambda a: a.account_name,
    )


def diff_storage(actual: StorageState, desired: StorageState) -> FieldDiff:
    """Compare the account, its network rules, tags and shares.

    Raises:
        ImmutableFieldViolation: If location, SKU, kind or encryption differ.
    """
    diff = FieldDiff(KIND, actual.account_name)
    diff.immutable("location", actual.location, desired.location)
    diff.immutable("sku", actual.sku, desired.sku)
    diff.immutable("kind", actual.kind, desired.kind)
    diff.immutable(
        "infrastructure_encryption",
        actual.infrastructure_encryption,
        desired.infrastructure_encryption,
    )
    diff.mutable(
        "subnet_rules",
        tuple(sorted(r.lower() for r in actual.subnet_rules)),
        tuple(sorted(r.lower() for r in desired.subnet_rules)),
    )
    diff.tags(actual.tags, desired.tags)
    for share in desired.shares:
        existing = actual.share(share.name)
        if existing is None:
            diff.changed.append(f"shares.{share.name}")
        else:
            diff.mutable(f"shares.{share.name}.quota_gib", existing.quota_gib, share.quota_gib)
    return diff


async def reconcile_storage(
    clients: AzureClients,
    scope: ResourceScope,
    desired: StorageState,
    actual: StorageState | None,
    ctx: RunContext,
) -> StorageState:
    """Drive the storage account and its share towards desired.

    Raises:
        ImmutableFieldViolation: If location, SKU, kind or encryption differ.
    """
    rg = scope.resource_group
    storage = clients.storage

    if actual is None:
        ctx.status(
            StatusLevel.PROGRESS, f"Creating storage account {desired.account_name}", KIND, "create"
        )
        await call_upstream(
            KIND, "create_storage_account", storage.create_storage_account, rg, desired
        )
        for share in desired.shares:
            await call_upstream(
                KIND,
                "create_file_share",
                storage.create_file_share,
                rg,
                desired.account_name,
                share.name,
                share.quota_gib,
            )
        created = await discover_storage(clients, scope)
        if created is None:
            raise NicError(f"{KIND} '{desired.account_name}' not visible after creation")
        logger.info("Created storage account", extra={"account": desired.account_name})
        return created

    name = actual.account_name
    diff = diff_storage(actual, desired)

    if "subnet_rules" in diff:
        await call_upstream(
            KIND,
            "update_network_rules",
            storage.update_network_rules,
            rg,
            name,
            list(desired.subnet_rules),
        )

    if "tags" in diff:
        await call_upstream(
            KIND,
            "update_storage_tags",
            storage.update_storage_tags,
            rg,
            name,
            {**actual.tags, **desired.tags},
        )

    for share in desired.shares:
        existing = actual.share(share.name)
        if existing is None:
            await call_upstream(
                KIND,
                "create_file_share",
                storage.create_file_share,
                rg,
                name,
                share.name,
                share.quota_gib,
            )
        elif f"shares.{share.name}.quota_gib" in diff:
            await call_upstream(
                KIND,
                "update_file_share_quota",
                storage.update_file_share_quota,
                rg,
                name,
                share.name,
                share.quota_gib,
            )

    if not diff:
        return actual

    logger.info("Updated storage account", extra={"account": name, "fields": diff.changed})
    ctx.status(StatusLevel.INFO, f"Updated storage {name}", KIND, "update", fields=diff.changed)
    refreshed = await discover_storage(clients, scope)
    return refreshed or actual


async def destroy_storage(clients: AzureClients, scope: ResourceScope, teardown: Teardown) -> int:
    """Delete shares, then mount point rules, then the account.

    Returns:
        Number of storage accounts found.
    """
    rg = scope.resource_group
    accounts = await teardown.discover(
        KIND, scope.project_name, lambda: _list_managed(clients, scope), []
    )
    for account in accounts:
        name = account.account_name
        for share in account.shares:
            await teardown.delete(
                "file-share",
                f"{name}/{share.name}",
                clients.storage.delete_file_share,
                rg,
                name,
                share.name,
            )
        if account.subnet_rules:
            await teardown.delete(
                "mount-target", name, clients.storage.update_network_rules, rg, name, []
            )
        await teardown.delete(KIND, name, clients.storage.delete_storage_account, rg, name)
    return len(accounts)
