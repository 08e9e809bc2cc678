"""Tests for the Azure provider end to end against the in-memory subscription."""

import pytest
from azure_mock import FakeAzureCloud

from nic.azure_provider import AzureProvider, scope_for, subscription_id
from nic.errors import ConfigValidationError, ImmutableFieldViolation
from nic.models import PlatformConfig
from nic.plan import PlanAction
from nic.status import RunContext, StatusLevel
from nic.tags import TAG_MANAGED_BY, is_managed


@pytest.fixture
def provider(cloud: FakeAzureCloud) -> AzureProvider:
    return AzureProvider(clients_factory=lambda _: cloud.clients())


def _config(data: dict, **azure_overrides) -> PlatformConfig:
    data["azure"].update(azure_overrides)
    return PlatformConfig.model_validate(data)


class TestValidate:
    """Tests for configuration validation."""

    def test_valid(self, provider: AzureProvider, platform_config: PlatformConfig) -> None:
        """Test that the sample configuration passes."""
        provider.validate(platform_config)

    def test_collects_every_error(self, provider: AzureProvider, config_data: dict) -> None:
        """Test that all problems are reported at once."""
        config = _config(
            config_data,
            region="",
            kubernetes_version="latest",
            vnet_cidr="10.10.0.0/16",
            subnets={"nodes": "192.168.0.0/24"},
        )
        config.azure.node_groups["general"].min_count = 5

        with pytest.raises(ConfigValidationError) as exc_info:
            provider.validate(config)

        errors = "\n".join(exc_info.value.errors)
        assert exc_info.value.provider == "azure"
        assert "azure.region" in errors
        assert "azure.kubernetes_version" in errors
        assert "outside 10.10.0.0/16" in errors
        assert "min_count (5) cannot exceed max_count (3)" in errors

    def test_missing_section(self, provider: AzureProvider) -> None:
        """Test that a configuration without the azure block is rejected."""
        config = PlatformConfig(project_name="demo", provider="azure")

        with pytest.raises(ConfigValidationError, match="azure: section is required"):
            provider.validate(config)

    def test_bad_pool_name_and_spot_system(
        self, provider: AzureProvider, config_data: dict
    ) -> None:
        """Test pool naming rules and the no-spot system pool rule."""
        config_data["azure"]["node_groups"] = {
            "General_Pool": {"instance": "Standard_D4s_v5", "spot": True},
        }
        config = PlatformConfig.model_validate(config_data)

        with pytest.raises(ConfigValidationError) as exc_info:
            provider.validate(config)

        errors = "\n".join(exc_info.value.errors)
        assert "lowercase alphanumeric" in errors
        assert "cannot use spot instances" in errors

    def test_subscription_from_environment(
        self, config_data: dict, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        """Test that AZURE_SUBSCRIPTION_ID fills a missing subscription id."""
        del config_data["azure"]["subscription_id"]
        config = PlatformConfig.model_validate(config_data)
        monkeypatch.setenv("AZURE_SUBSCRIPTION_ID", "sub-from-env")

        assert subscription_id(config) == "sub-from-env"

    def test_subscription_missing(
        self, provider: AzureProvider, config_data: dict, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        """Test that no subscription id anywhere is a validation error."""
        del config_data["azure"]["subscription_id"]
        monkeypatch.delenv("AZURE_SUBSCRIPTION_ID", raising=False)

        with pytest.raises(ConfigValidationError, match="subscription_id"):
            provider.validate(PlatformConfig.model_validate(config_data))


class TestReconcile:
    """Tests for full platform reconciliation."""

    @pytest.mark.asyncio
    async def test_fresh_platform(
        self,
        provider: AzureProvider,
        cloud: FakeAzureCloud,
        platform_config: PlatformConfig,
        ctx: RunContext,
    ) -> None:
        """Test that a fresh subscription ends with every kind tagged and created."""
        await provider.reconcile(platform_config, ctx)

        assert is_managed(cloud.resource_groups["demo-rg"].tags, "demo")
        assert ("demo-rg", "demo-vnet") in cloud.networks
        assert ("demo-rg", "demo-nat") in cloud.nat_gateways
        assert len(cloud.identities) == 2
        assert ("demo-rg", "demo-aks") in cloud.clusters
        assert set(cloud.node_pools[("demo-rg", "demo-aks")]) == {"general", "gpu"}
        assert cloud.storage_accounts == {}
        for state in (*cloud.networks.values(), *cloud.identities.values()):
            assert state.tags[TAG_MANAGED_BY] == "nic"

    @pytest.mark.asyncio
    async def test_forward_order(
        self,
        provider: AzureProvider,
        cloud: FakeAzureCloud,
        platform_config: PlatformConfig,
        ctx: RunContext,
    ) -> None:
        """Test that kinds are created in dependency order."""
        await provider.reconcile(platform_config, ctx)

        methods = [c.method for c in cloud.mutating_calls]
        order = [
            methods.index(m)
            for m in (
                "create_resource_group",
                "create_network",
                "create_identity",
                "create_cluster",
                "create_node_pool",
            )
        ]
        assert order == sorted(order)

    @pytest.mark.asyncio
    async def test_second_run_makes_no_changes(
        self,
        provider: AzureProvider,
        cloud: FakeAzureCloud,
        platform_config: PlatformConfig,
        ctx: RunContext,
    ) -> None:
        """Test that reconciling an unchanged configuration twice mutates nothing."""
        platform_config.azure.storage.enabled = True
        await provider.reconcile(platform_config, ctx)
        cloud.reset_calls()

        await provider.reconcile(platform_config, ctx)

        assert cloud.mutating_calls == []

    @pytest.mark.asyncio
    async def test_storage_enabled(
        self,
        provider: AzureProvider,
        cloud: FakeAzureCloud,
        platform_config: PlatformConfig,
        ctx: RunContext,
    ) -> None:
        """Test that shared storage is provisioned and mounted from the node subnet."""
        platform_config.azure.storage.enabled = True

        await provider.reconcile(platform_config, ctx)

        (account,) = cloud.storage_accounts.values()
        subnet = cloud.networks[("demo-rg", "demo-vnet")].subnet("nodes")
        assert account.subnet_rules == (subnet.resource_id,)

    @pytest.mark.asyncio
    async def test_status_events(
        self,
        provider: AzureProvider,
        platform_config: PlatformConfig,
        ctx: RunContext,
    ) -> None:
        """Test that every step reports success."""
        await provider.reconcile(platform_config, ctx)

        resources = [u.resource for u in ctx.sink.by_level(StatusLevel.SUCCESS)]
        assert resources == ["resource-group", "network", "identity", "cluster", "node-pool"]

    @pytest.mark.asyncio
    async def test_immutable_change_stops_before_cluster(
        self,
        provider: AzureProvider,
        cloud: FakeAzureCloud,
        config_data: dict,
        ctx: RunContext,
    ) -> None:
        """Test that a changed address space fails without touching later kinds."""
        await provider.reconcile(PlatformConfig.model_validate(config_data), ctx)
        cloud.reset_calls()
        changed = _config(config_data, vnet_cidr="10.20.0.0/16")

        with pytest.raises(ImmutableFieldViolation):
            await provider.reconcile(changed, ctx)

        assert cloud.mutating_calls == []
        assert not cloud.called("list_clusters")

    @pytest.mark.asyncio
    async def test_existing_unmanaged_group_used(
        self,
        provider: AzureProvider,
        cloud: FakeAzureCloud,
        platform_config: PlatformConfig,
        ctx: RunContext,
    ) -> None:
        """Test that a pre-existing group is used and left untagged."""
        cloud.add_resource_group("demo-rg", "westeurope", {"owner": "finance"})

        await provider.reconcile(platform_config, ctx)

        assert cloud.resource_groups["demo-rg"].tags == {"owner": "finance"}
        assert not cloud.called("create_resource_group")


class TestPlan:
    """Tests for dry-run planning against the in-memory subscription."""

    @pytest.mark.asyncio
    async def test_fresh_platform(
        self,
        provider: AzureProvider,
        cloud: FakeAzureCloud,
        platform_config: PlatformConfig,
        ctx: RunContext,
    ) -> None:
        """Test that an empty subscription plans every resource for creation."""
        plan = await provider.plan(platform_config, ctx)

        assert [(c.kind, c.action) for c in plan.changes] == [
            ("resource-group", PlanAction.CREATE),
            ("network", PlanAction.CREATE),
            ("identity", PlanAction.CREATE),
            ("identity", PlanAction.CREATE),
            ("cluster", PlanAction.CREATE),
            ("node-pool", PlanAction.CREATE),
            ("node-pool", PlanAction.CREATE),
        ]
        assert cloud.mutating_calls == []
        assert cloud.resource_groups == {}
        assert ctx.sink.updates[-1].message.endswith("No changes were made")

    @pytest.mark.asyncio
    async def test_reconciled_platform_unchanged(
        self,
        provider: AzureProvider,
        cloud: FakeAzureCloud,
        platform_config: PlatformConfig,
        ctx: RunContext,
    ) -> None:
        """Test that planning right after a reconcile finds nothing to do."""
        platform_config.azure.storage.enabled = True
        await provider.reconcile(platform_config, ctx)
        cloud.reset_calls()

        plan = await provider.plan(platform_config, ctx)

        assert plan.pending == []
        assert plan.blocked == []
        assert {c.kind for c in plan.changes} >= {"cluster", "node-pool", "storage"}
        assert cloud.mutating_calls == []

    @pytest.mark.asyncio
    async def test_changes_reported(
        self,
        provider: AzureProvider,
        cloud: FakeAzureCloud,
        platform_config: PlatformConfig,
        ctx: RunContext,
    ) -> None:
        """Test that a scaled pool is an update and a dropped pool a delete."""
        await provider.reconcile(platform_config, ctx)
        cloud.reset_calls()
        platform_config.azure.node_groups["general"].max_count = 5
        del platform_config.azure.node_groups["gpu"]

        plan = await provider.plan(platform_config, ctx)

        assert [c.describe() for c in plan.pending] == [
            "update node-pool general (scaling)",
            "delete node-pool gpu: not in configuration",
        ]
        assert cloud.mutating_calls == []
        assert set(cloud.node_pools[("demo-rg", "demo-aks")]) == {"general", "gpu"}

    @pytest.mark.asyncio
    async def test_immutable_change_blocked(
        self,
        provider: AzureProvider,
        cloud: FakeAzureCloud,
        config_data: dict,
        ctx: RunContext,
    ) -> None:
        """Test that a changed address space is reported as blocked, not raised."""
        await provider.reconcile(PlatformConfig.model_validate(config_data), ctx)
        cloud.reset_calls()

        plan = await provider.plan(_config(config_data, vnet_cidr="10.20.0.0/16"), ctx)

        (blocked,) = plan.blocked
        assert (blocked.kind, blocked.fields) == ("network", ("address_space",))
        assert cloud.called("list_clusters")
        assert cloud.mutating_calls == []
        assert ctx.sink.by_level(StatusLevel.WARNING)[0].message.startswith(
            "DRY RUN: blocked network demo-vnet"
        )


class TestLifecycle:
    """Tests for destroy, kubeconfig and summary."""

    @pytest.mark.asyncio
    async def test_destroy_removes_everything(
        self,
        provider: AzureProvider,
        cloud: FakeAzureCloud,
        platform_config: PlatformConfig,
        ctx: RunContext,
    ) -> None:
        """Test that destroy after deploy leaves an empty subscription."""
        platform_config.azure.storage.enabled = True
        await provider.reconcile(platform_config, ctx)

        await provider.destroy(platform_config, ctx)

        assert cloud.resource_count() == 0
        assert cloud.resource_groups == {}

    @pytest.mark.asyncio
    async def test_kubeconfig(
        self,
        provider: AzureProvider,
        platform_config: PlatformConfig,
        ctx: RunContext,
    ) -> None:
        """Test that the kubeconfig of the platform cluster is returned."""
        await provider.reconcile(platform_config, ctx)

        assert b"current-context: demo-aks" in await provider.get_kubeconfig(platform_config, ctx)

    def test_summary(self, provider: AzureProvider, platform_config: PlatformConfig) -> None:
        """Test the human-readable summary."""
        assert provider.summary(platform_config) == {
            "provider": "azure",
            "region": "westeurope",
            "resource_group": "demo-rg",
            "cluster_name": "demo-aks",
            "kubernetes_version": "1.30",
            "node_pools": "general, gpu",
        }

    def test_scope_uses_configured_group(self, config_data: dict) -> None:
        """Test that an explicit resource group name overrides the default."""
        config = _config(config_data, resource_group_name="shared-rg", tags={"env": "prod"})

        scope = scope_for(config)

        assert scope.resource_group == "shared-rg"
        assert scope.user_tags == {"env": "prod"}
