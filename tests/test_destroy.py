"""Tests for destroy orchestration, failure modes and the orphan sweep."""

import asyncio

import pytest
from azure_mock import FakeAzureCloud

from nic.azure_provider import AzureProvider
from nic.destroy import destroy_pass, destroy_platform, orphan_sweep
from nic.errors import DestroyError, PollCancelledError
from nic.models import PlatformConfig
from nic.reconciler import ResourceScope
from nic.state import IdentityState
from nic.status import RunContext, StatusLevel
from nic.tags import RESOURCE_TYPE_IDENTITY, RESOURCE_TYPE_RESOURCE_GROUP, build_tags
from nic.teardown import Teardown


async def _provision(
    cloud: FakeAzureCloud, config: PlatformConfig, ctx: RunContext, storage: bool = True
) -> None:
    if storage:
        config.azure.storage.enabled = True
    provider = AzureProvider(clients_factory=lambda _: cloud.clients())
    await provider.reconcile(config, ctx)
    cloud.reset_calls()


class TestDestroyPlatform:
    """Tests for destroy_platform."""

    @pytest.mark.asyncio
    async def test_reverse_order(
        self,
        cloud: FakeAzureCloud,
        platform_config: PlatformConfig,
        scope: ResourceScope,
        ctx: RunContext,
    ) -> None:
        """Test that kinds are deleted storage, pools, cluster, identities, network, group."""
        await _provision(cloud, platform_config, ctx)

        await destroy_platform(cloud.clients(), scope, ctx)

        methods = [c.method for c in cloud.mutating_calls]
        first = {
            kind: next(i for i, m in enumerate(methods) if m == kind)
            for kind in (
                "delete_storage_account",
                "delete_node_pool",
                "delete_cluster",
                "delete_identity",
                "delete_network",
                "delete_resource_group",
            )
        }
        assert list(first.values()) == sorted(first.values())
        assert cloud.resource_count() == 0
        assert cloud.resource_groups == {}
        assert ctx.sink.by_level(StatusLevel.SUCCESS)[-1].message == "Destroyed platform demo"

    @pytest.mark.asyncio
    async def test_strict_stops_at_first_failure(
        self,
        cloud: FakeAzureCloud,
        platform_config: PlatformConfig,
        scope: ResourceScope,
        ctx: RunContext,
    ) -> None:
        """Test that strict mode aborts on the first failing delete."""
        await _provision(cloud, platform_config, ctx)
        cloud.fail("delete_cluster")

        with pytest.raises(DestroyError) as exc_info:
            await destroy_platform(cloud.clients(), scope, ctx)

        assert [f.kind for f in exc_info.value.failures] == ["cluster"]
        assert not cloud.called("delete_identity")
        assert not cloud.called("delete_network")
        assert cloud.identities

    @pytest.mark.asyncio
    async def test_force_continues_and_aggregates(
        self,
        cloud: FakeAzureCloud,
        platform_config: PlatformConfig,
        scope: ResourceScope,
        ctx: RunContext,
    ) -> None:
        """Test that force mode attempts every step and reports every failure."""
        await _provision(cloud, platform_config, ctx)
        cloud.fail("delete_cluster")
        cloud.fail("delete_identity", match="demo-kubelet-identity")

        with pytest.raises(DestroyError) as exc_info:
            await destroy_platform(cloud.clients(), scope, ctx, force=True)

        failed = {(f.kind, f.identity) for f in exc_info.value.failures}
        assert failed == {("cluster", "demo-aks"), ("identity", "demo-kubelet-identity")}
        assert cloud.networks == {}
        assert ("demo-rg", "demo-cluster-identity") not in cloud.identities
        # The resource group survives while resources in it remain
        assert not cloud.called("delete_resource_group")

    @pytest.mark.asyncio
    async def test_transient_failure_cleared_by_sweep(
        self,
        cloud: FakeAzureCloud,
        platform_config: PlatformConfig,
        scope: ResourceScope,
        ctx: RunContext,
    ) -> None:
        """Test that a delete failing once in force mode succeeds on a sweep pass."""
        await _provision(cloud, platform_config, ctx)
        cloud.fail("delete_network", times=1)

        await destroy_platform(cloud.clients(), scope, ctx, force=True)

        assert len(cloud.called("delete_network")) == 2
        assert cloud.networks == {}
        assert cloud.resource_groups == {}

    @pytest.mark.asyncio
    async def test_unmanaged_resource_group_kept(
        self, cloud: FakeAzureCloud, scope: ResourceScope, ctx: RunContext
    ) -> None:
        """Test that a resource group the tool did not create is never deleted."""
        cloud.add_resource_group("demo-rg", "westeurope", {"owner": "finance"})

        await destroy_platform(cloud.clients(), scope, ctx)

        assert "demo-rg" in cloud.resource_groups
        assert cloud.mutating_calls == []

    @pytest.mark.asyncio
    async def test_empty_platform(
        self, cloud: FakeAzureCloud, scope: ResourceScope, ctx: RunContext
    ) -> None:
        """Test that destroying nothing succeeds without mutating calls."""
        await destroy_platform(cloud.clients(), scope, ctx)

        assert cloud.mutating_calls == []


class TestOrphanSweep:
    """Tests for orphan_sweep."""

    @pytest.mark.asyncio
    async def test_sweep_finds_late_resource(
        self, cloud: FakeAzureCloud, scope: ResourceScope, ctx: RunContext
    ) -> None:
        """Test that a resource appearing after the primary pass is swept."""
        cloud.add_resource_group(
            "demo-rg", "westeurope", build_tags("demo", RESOURCE_TYPE_RESOURCE_GROUP)
        )
        teardown = Teardown(ctx)
        assert await destroy_pass(cloud.clients(), scope, teardown) == 0

        cloud.add_identity(
            "demo-rg",
            IdentityState(
                name="late",
                location="westeurope",
                tags=build_tags("demo", RESOURCE_TYPE_IDENTITY),
            ),
        )
        passes = await orphan_sweep(cloud.clients(), scope, teardown, ctx)

        assert passes == 2
        assert cloud.identities == {}

    @pytest.mark.asyncio
    async def test_pass_budget(
        self, cloud: FakeAzureCloud, scope: ResourceScope, ctx: RunContext
    ) -> None:
        """Test that a resource that never deletes stops the sweep at the budget."""
        cloud.add_identity(
            "demo-rg",
            IdentityState(
                name="stuck", location="westeurope", tags=build_tags("demo", RESOURCE_TYPE_IDENTITY)
            ),
        )
        cloud.fail("delete_identity")
        teardown = Teardown(ctx)

        passes = await orphan_sweep(cloud.clients(), scope, teardown, ctx)

        assert passes == ctx.runtime.orphan_sweep_passes
        assert [f.identity for f in teardown.failures] == ["stuck"]
        assert teardown.force is False

    @pytest.mark.asyncio
    async def test_cancelled_between_passes(
        self, cloud: FakeAzureCloud, scope: ResourceScope, ctx: RunContext
    ) -> None:
        """Test that cancellation during the wait between passes stops the sweep."""
        from dataclasses import replace

        slow = RunContext(
            sink=ctx.sink, runtime=replace(ctx.runtime, orphan_sweep_interval_seconds=30)
        )

        async def cancel_soon() -> None:
            await asyncio.sleep(0.05)
            slow.cancel()

        canceller = asyncio.create_task(cancel_soon())
        with pytest.raises(PollCancelledError):
            await orphan_sweep(cloud.clients(), scope, Teardown(slow), slow)
        await canceller

        assert cloud.calls == []
