"""Tests for the Cloudflare DNS backend."""

import logging

import pytest
import requests
from conftest import FakeRecordClient

from nic.cloudflare import API_BASE_URL, CloudflareClient, CloudflareDNSProvider
from nic.errors import ConfigValidationError, UpstreamAPIError
from nic.models import PlatformConfig
from nic.status import RunContext

ZONES_URL = f"{API_BASE_URL}/zones"
RECORDS_URL = f"{API_BASE_URL}/zones/zone-1/dns_records"


def _envelope(result, success: bool = True, errors: list | None = None) -> dict:
    return {"success": success, "errors": errors or [], "messages": [], "result": result}


def _record(record_id: str, name: str, content: str, record_type: str = "A") -> dict:
    return {
        "id": record_id,
        "name": name,
        "type": record_type,
        "content": content,
        "ttl": 300,
        "proxied": False,
    }


@pytest.fixture
def client() -> CloudflareClient:
    return CloudflareClient("test-token")


@pytest.fixture
def dns_config(config_data: dict) -> PlatformConfig:
    config_data["domain"] = "nebari.example.com"
    config_data["dns"] = {"provider": "cloudflare", "zone_name": "example.com"}
    return PlatformConfig.model_validate(config_data)


class TestCloudflareClient:
    """Tests for the REST client."""

    def test_resolve_zone_id(self, client: CloudflareClient, requests_mock) -> None:
        """Test zone lookup by name with bearer authentication."""
        requests_mock.get(ZONES_URL, json=_envelope([{"id": "zone-1", "name": "example.com"}]))

        assert client.resolve_zone_id("example.com") == "zone-1"

        request = requests_mock.last_request
        assert request.headers["Authorization"] == "Bearer test-token"
        assert "name=example.com" in request.url

    def test_zone_not_found(self, client: CloudflareClient, requests_mock) -> None:
        """Test that an empty zone list is an upstream error."""
        requests_mock.get(ZONES_URL, json=_envelope([]))

        with pytest.raises(UpstreamAPIError, match="zone not found"):
            client.resolve_zone_id("example.com")

    def test_list_records(self, client: CloudflareClient, requests_mock) -> None:
        """Test that records are filtered by name and type and parsed."""
        requests_mock.get(
            RECORDS_URL,
            json=_envelope([_record("r1", "nebari.example.com", "203.0.113.42")]),
        )

        (record,) = client.list_records("zone-1", "nebari.example.com", "A")

        assert record.record_id == "r1"
        assert record.content == "203.0.113.42"
        assert "type=A" in requests_mock.last_request.url

    def test_create_and_update_bodies(self, client: CloudflareClient, requests_mock) -> None:
        """Test the JSON bodies of create and update."""
        requests_mock.post(RECORDS_URL, json=_envelope(_record("r1", "a.example.com", "1.1.1.1")))
        requests_mock.put(
            f"{RECORDS_URL}/r1", json=_envelope(_record("r1", "a.example.com", "2.2.2.2"))
        )

        client.create_record("zone-1", "a.example.com", "A", "1.1.1.1", 300)
        created = requests_mock.last_request.json()
        updated = client.update_record("zone-1", "r1", "a.example.com", "A", "2.2.2.2", 300)

        assert created == {
            "type": "A",
            "name": "a.example.com",
            "content": "1.1.1.1",
            "ttl": 300,
            "proxied": False,
        }
        assert requests_mock.last_request.method == "PUT"
        assert updated.content == "2.2.2.2"

    def test_delete(self, client: CloudflareClient, requests_mock) -> None:
        """Test that delete targets the record URL."""
        requests_mock.delete(f"{RECORDS_URL}/r1", json=_envelope({"id": "r1"}))

        client.delete_record("zone-1", "r1")

        assert requests_mock.called_once

    def test_unsuccessful_envelope(self, client: CloudflareClient, requests_mock) -> None:
        """Test that success false raises with the API messages."""
        requests_mock.get(
            ZONES_URL,
            json=_envelope(None, success=False, errors=[{"code": 9109, "message": "bad token"}]),
        )

        with pytest.raises(UpstreamAPIError, match="9109: bad token"):
            client.resolve_zone_id("example.com")

    def test_http_error(self, client: CloudflareClient, requests_mock) -> None:
        """Test that HTTP errors are wrapped."""
        requests_mock.get(ZONES_URL, status_code=403, json=_envelope(None, success=False))

        with pytest.raises(UpstreamAPIError) as exc_info:
            client.resolve_zone_id("example.com")

        assert isinstance(exc_info.value.original, requests.HTTPError)

    def test_transport_error(self, client: CloudflareClient, requests_mock) -> None:
        """Test that connection failures are wrapped."""
        requests_mock.get(ZONES_URL, exc=requests.ConnectionError("refused"))

        with pytest.raises(UpstreamAPIError, match="ConnectionError"):
            client.resolve_zone_id("example.com")


class TestCloudflareDNSProvider:
    """Tests for the DNS provider."""

    def test_validate_requires_token(
        self, dns_config: PlatformConfig, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        """Test that the default client needs CLOUDFLARE_API_TOKEN."""
        monkeypatch.delenv("CLOUDFLARE_API_TOKEN", raising=False)

        with pytest.raises(ConfigValidationError, match="CLOUDFLARE_API_TOKEN"):
            CloudflareDNSProvider().validate(dns_config)

    def test_validate_domain_outside_zone(self, dns_config: PlatformConfig) -> None:
        """Test that a domain outside the zone fails validation."""
        dns_config.domain = "nebari.notexample.com"
        provider = CloudflareDNSProvider(client_factory=FakeRecordClient)

        with pytest.raises(ConfigValidationError, match="not within zone"):
            provider.validate(dns_config)

    @pytest.mark.asyncio
    async def test_provision_records(
        self, dns_config: PlatformConfig, record_client: FakeRecordClient, ctx: RunContext
    ) -> None:
        """Test that root and wildcard A records are created for an IP endpoint."""
        provider = CloudflareDNSProvider(client_factory=lambda: record_client)

        await provider.provision_records(dns_config, "203.0.113.42", ctx)

        records = {(r.name, r.record_type, r.content) for r in record_client.records.values()}
        assert records == {
            ("nebari.example.com", "A", "203.0.113.42"),
            ("*.nebari.example.com", "A", "203.0.113.42"),
        }
        assert record_client.calls[0] == ("resolve_zone_id", ("example.com",))

    @pytest.mark.asyncio
    async def test_provision_records_logged(
        self,
        dns_config: PlatformConfig,
        record_client: FakeRecordClient,
        ctx: RunContext,
        caplog: pytest.LogCaptureFixture,
    ) -> None:
        """Test that provisioning logs one ensured record per name at INFO."""
        caplog.set_level(logging.INFO)
        provider = CloudflareDNSProvider(client_factory=lambda: record_client)

        await provider.provision_records(dns_config, "203.0.113.42", ctx)

        ensured = [r for r in caplog.records if r.getMessage() == "DNS record ensured"]
        assert [r.record for r in ensured] == ["nebari.example.com", "*.nebari.example.com"]
        assert {r.action for r in ensured} == {"created"}

    @pytest.mark.asyncio
    async def test_provision_hostname_endpoint(
        self, dns_config: PlatformConfig, record_client: FakeRecordClient, ctx: RunContext
    ) -> None:
        """Test that a hostname endpoint produces CNAME records."""
        provider = CloudflareDNSProvider(client_factory=lambda: record_client)

        await provider.provision_records(dns_config, "lb.example.net", ctx)

        assert {r.record_type for r in record_client.records.values()} == {"CNAME"}

    @pytest.mark.asyncio
    async def test_destroy_records(
        self, dns_config: PlatformConfig, record_client: FakeRecordClient, ctx: RunContext
    ) -> None:
        """Test that destroy removes the deployment's records only."""
        record_client.seed("nebari.example.com", "A", "203.0.113.42")
        record_client.seed("*.nebari.example.com", "A", "203.0.113.42")
        record_client.seed("mail.example.com", "A", "198.51.100.5")
        provider = CloudflareDNSProvider(client_factory=lambda: record_client)

        await provider.destroy_records(dns_config, ctx)

        assert [r.name for r in record_client.records.values()] == ["mail.example.com"]
