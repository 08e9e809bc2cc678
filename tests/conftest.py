"""Pytest configuration and fixtures."""

import itertools
import sys
import threading
from pathlib import Path

import pytest

# Add src to path for imports
src_path = Path(__file__).parent.parent / "src"
sys.path.insert(0, str(src_path))

# Add tests to path for azure_mock imports
tests_path = Path(__file__).parent
sys.path.insert(0, str(tests_path))

from azure_mock import FakeAzureCloud  # noqa: E402

from nic.config import RuntimeConfig  # noqa: E402
from nic.dns import DNSProvider, DNSRecord  # noqa: E402
from nic.engine import Registries  # noqa: E402
from nic.errors import ConfigValidationError  # noqa: E402
from nic.models import PlatformConfig  # noqa: E402
from nic.plan import Plan  # noqa: E402
from nic.provider import Provider  # noqa: E402
from nic.reconciler import ResourceScope  # noqa: E402
from nic.registry import Registry  # noqa: E402
from nic.status import RecordingStatusSink, RunContext  # noqa: E402

PROJECT = "demo"
RESOURCE_GROUP = "demo-rg"
REGION = "westeurope"


def platform_config_data() -> dict:
    """Minimal valid Azure platform configuration as parsed YAML."""
    return {
        "project_name": PROJECT,
        "provider": "azure",
        "azure": {
            "region": REGION,
            "subscription_id": "00000000-0000-0000-0000-000000000000",
            "kubernetes_version": "1.30",
            "vnet_cidr": "10.10.0.0/16",
            "node_groups": {
                "general": {"instance": "Standard_D4s_v5", "min_count": 1, "max_count": 3},
                "gpu": {
                    "instance": "Standard_NC6s_v3",
                    "min_count": 0,
                    "max_count": 2,
                    "labels": {"workload": "gpu"},
                    "taints": [{"key": "nvidia.com/gpu", "value": "true"}],
                },
            },
        },
    }


class FakeRecordClient:
    """DNS record API double keeping records in memory and logging calls."""

    def __init__(self, zones: dict[str, str] | None = None) -> None:
        self.zones = zones or {"example.com": "zone-1"}
        self.records: dict[str, DNSRecord] = {}
        self.calls: list[tuple[str, tuple]] = []
        self._ids = itertools.count(1)
        self._lock = threading.Lock()

    def seed(self, name: str, record_type: str, content: str) -> DNSRecord:
        record = DNSRecord(f"rec-{next(self._ids)}", name, record_type, content)
        self.records[record.record_id] = record
        return record

    def _log(self, method: str, *args) -> None:
        with self._lock:
            self.calls.append((method, args))

    @property
    def mutating_calls(self) -> list[tuple[str, tuple]]:
        mutating = ("create_record", "update_record", "delete_record")
        return [c for c in self.calls if c[0] in mutating]

    def resolve_zone_id(self, zone_name: str) -> str:
        self._log("resolve_zone_id", zone_name)
        return self.zones[zone_name]

    def list_records(self, zone_id: str, name: str, record_type: str) -> list[DNSRecord]:
        self._log("list_records", zone_id, name, record_type)
        return [
            r for r in self.records.values() if r.name == name and r.record_type == record_type
        ]

    def create_record(
        self, zone_id: str, name: str, record_type: str, content: str, ttl: int
    ) -> DNSRecord:
        self._log("create_record", zone_id, name, record_type, content, ttl)
        record = DNSRecord(f"rec-{next(self._ids)}", name, record_type, content, ttl)
        self.records[record.record_id] = record
        return record

    def update_record(
        self, zone_id: str, record_id: str, name: str, record_type: str, content: str, ttl: int
    ) -> DNSRecord:
        self._log("update_record", zone_id, record_id, name, record_type, content, ttl)
        record = DNSRecord(record_id, name, record_type, content, ttl)
        self.records[record_id] = record
        return record

    def delete_record(self, zone_id: str, record_id: str) -> None:
        self._log("delete_record", zone_id, record_id)
        self.records.pop(record_id, None)


@pytest.fixture
def runtime() -> RuntimeConfig:
    """Runtime settings with short waits and no delay between sweep passes."""
    return RuntimeConfig(
        poll_interval_seconds=0.1,
        cluster_ready_timeout_seconds=2.0,
        orphan_sweep_passes=3,
        orphan_sweep_interval_seconds=0,
        load_balancer_timeout_seconds=1.0,
    )


@pytest.fixture
def sink() -> RecordingStatusSink:
    return RecordingStatusSink()


@pytest.fixture
def ctx(runtime: RuntimeConfig, sink: RecordingStatusSink) -> RunContext:
    return RunContext(sink=sink, runtime=runtime)


@pytest.fixture
def cloud() -> FakeAzureCloud:
    return FakeAzureCloud()


@pytest.fixture
def scope() -> ResourceScope:
    return ResourceScope(
        project_name=PROJECT,
        resource_group=RESOURCE_GROUP,
        location=REGION,
        user_tags={"team": "platform"},
    )


@pytest.fixture
def config_data() -> dict:
    return platform_config_data()


@pytest.fixture
def platform_config(config_data: dict) -> PlatformConfig:
    return PlatformConfig.model_validate(config_data)


@pytest.fixture
def record_client() -> FakeRecordClient:
    return FakeRecordClient()


class FakeProvider(Provider):
    """Provider double recording the calls the engine makes."""

    name = "fake"

    def __init__(self, invalid: list[str] | None = None, destroy_error: Exception | None = None):
        self.invalid = invalid or []
        self.destroy_error = destroy_error
        self.calls: list[str] = []
        self.kubeconfig = b"apiVersion: v1\nkind: Config\n"

    def validate(self, config: PlatformConfig) -> None:
        self.calls.append("validate")
        if self.invalid:
            raise ConfigValidationError(self.invalid, provider=self.name)

    async def reconcile(self, config: PlatformConfig, ctx: RunContext) -> None:
        self.calls.append("reconcile")

    async def plan(self, config: PlatformConfig, ctx: RunContext) -> Plan:
        self.calls.append("plan")
        return Plan()

    async def destroy(self, config: PlatformConfig, ctx: RunContext, force: bool = False) -> None:
        self.calls.append(f"destroy force={force}")
        if self.destroy_error:
            raise self.destroy_error

    async def get_kubeconfig(self, config: PlatformConfig, ctx: RunContext) -> bytes:
        self.calls.append("get_kubeconfig")
        return self.kubeconfig

    def summary(self, config: PlatformConfig) -> dict:
        return {"provider": self.name, "cluster_name": f"{config.project_name}-cluster"}


class FakeDNSProvider(DNSProvider):
    """DNS backend double recording provisioned endpoints."""

    name = "fake-dns"

    def __init__(self) -> None:
        self.calls: list[tuple[str, str]] = []

    def validate(self, config: PlatformConfig) -> None:
        self.calls.append(("validate", config.domain or ""))

    async def provision_records(
        self, config: PlatformConfig, endpoint: str, ctx: RunContext
    ) -> None:
        self.calls.append(("provision", endpoint))

    async def destroy_records(self, config: PlatformConfig, ctx: RunContext) -> None:
        self.calls.append(("destroy", config.domain or ""))


@pytest.fixture
def fake_provider() -> FakeProvider:
    return FakeProvider()


@pytest.fixture
def fake_dns() -> FakeDNSProvider:
    return FakeDNSProvider()


@pytest.fixture
def registries(fake_provider: FakeProvider, fake_dns: FakeDNSProvider) -> Registries:
    providers: Registry[Provider] = Registry("provider")
    providers.register(fake_provider.name, fake_provider)
    dns: Registry[DNSProvider] = Registry("dns provider")
    dns.register(fake_dns.name, fake_dns)
    return Registries(providers=providers, dns=dns)
