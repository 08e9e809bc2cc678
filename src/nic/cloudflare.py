"""Cloudflare DNS backend over the v4 REST API."""

from __future__ import annotations

import logging
import os
from collections.abc import Callable
from typing import Any

import requests

from .dns import (
    DEFAULT_TTL,
    DNSProvider,
    DNSRecord,
    RecordClient,
    delete_records,
    ensure_record,
    record_names,
    record_type_for,
    validate_domain,
)
from .errors import ConfigValidationError, UpstreamAPIError
from .models import PlatformConfig
from .status import RunContext, StatusLevel
from .upstream import call_upstream

logger = logging.getLogger(__name__)

PROVIDER_NAME = "cloudflare"
API_BASE_URL = "https://api.cloudflare.com/client/v4"
TOKEN_ENV = "CLOUDFLARE_API_TOKEN"
REQUEST_TIMEOUT_SECONDS = 30
KIND = "dns-zone"


class CloudflareClient:
    """Blocking Cloudflare client limited to zones and DNS records.

    Args:
        token: API token with Zone:Read and DNS:Edit permissions.
        base_url: API root, overridable for tests.
        session: Optional preconfigured session.
    """

    def __init__(
        self,
        token: str,
        base_url: str = API_BASE_URL,
        session: requests.Session | None = None,
    ) -> None:
        self.base_url = base_url.rstrip("/")
        self.session = session or requests.Session()
        self.session.headers.update(
            {
                "Authorization": f"Bearer {token}",
                "Content-Type": "application/json",
                "Accept": "application/json",
            }
        )

    def _request(self, method: str, path: str, **kwargs: Any) -> Any:
        """Send a request and return the ``result`` member of the envelope.

        Raises:
            UpstreamAPIError: On transport errors, HTTP errors or ``success: false``.
        """
        operation = f"{method} {path}"
        try:
            response = self.session.request(
                method, f"{self.base_url}{path}", timeout=REQUEST_TIMEOUT_SECONDS, **kwargs
            )
            response.raise_for_status()
            payload = response.json()
        except (requests.RequestException, ValueError) as e:
            raise UpstreamAPIError("cloudflare", operation, e) from e

        if not payload.get("success", False):
            messages = "; ".join(
                f"{err.get('code')}: {err.get('message')}" for err in payload.get("errors") or ()
            )
            raise UpstreamAPIError(
                "cloudflare", operation, RuntimeError(messages or "request unsuccessful")
            )
        return payload.get("result")

    def resolve_zone_id(self, zone_name: str) -> str:
        zones = self._request("GET", "/zones", params={"name": zone_name})
        if not zones:
            raise UpstreamAPIError(
                "cloudflare", "resolve zone", LookupError(f"zone not found: {zone_name}")
            )
        return zones[0]["id"]

    def list_records(self, zone_id: str, name: str, record_type: str) -> list[DNSRecord]:
        result = self._request(
            "GET",
            f"/zones/{zone_id}/dns_records",
            params={"name": name, "type": record_type},
        )
        return [_record(r) for r in result or ()]

    def create_record(
        self, zone_id: str, name: str, record_type: str, content: str, ttl: int = DEFAULT_TTL
    ) -> DNSRecord:
        result = self._request(
            "POST",
            f"/zones/{zone_id}/dns_records",
            json=_record_body(name, record_type, content, ttl),
        )
        return _record(result)

    def update_record(
        self,
        zone_id: str,
        record_id: str,
        name: str,
        record_type: str,
        content: str,
        ttl: int = DEFAULT_TTL,
    ) -> DNSRecord:
        result = self._request(
            "PUT",
            f"/zones/{zone_id}/dns_records/{record_id}",
            json=_record_body(name, record_type, content, ttl),
        )
        return _record(result)

    def delete_record(self, zone_id: str, record_id: str) -> None:
        self._request("DELETE", f"/zones/{zone_id}/dns_records/{record_id}")


def _record_body(name: str, record_type: str, content: str, ttl: int) -> dict[str, Any]:
    return {"type": record_type, "name": name, "content": content, "ttl": ttl, "proxied": False}


def _record(data: dict[str, Any]) -> DNSRecord:
    return DNSRecord(
        record_id=data["id"],
        name=data["name"],
        record_type=data["type"],
        content=data["content"],
        ttl=data.get("ttl", DEFAULT_TTL),
        proxied=bool(data.get("proxied", False)),
    )


def _api_token() -> str:
    token = os.environ.get(TOKEN_ENV, "")
    if not token:
        raise ConfigValidationError(
            [f"{TOKEN_ENV} environment variable is required"], provider=PROVIDER_NAME
        )
    return token


def default_client_factory() -> RecordClient:
    return CloudflareClient(_api_token())


class CloudflareDNSProvider(DNSProvider):
    """Root and wildcard records in a Cloudflare zone.

    Args:
        client_factory: Builds the record client; defaults to the REST client
            authenticated from CLOUDFLARE_API_TOKEN.
    """

    name = PROVIDER_NAME

    def __init__(self, client_factory: Callable[[], RecordClient] | None = None) -> None:
        self._client_factory = client_factory or default_client_factory

    def _zone_name(self, config: PlatformConfig) -> str:
        if config.dns is None or not config.dns.zone_name:
            raise ConfigValidationError(
                ["dns.zone_name: is required for the cloudflare provider"], provider=self.name
            )
        return config.dns.zone_name

    def validate(self, config: PlatformConfig) -> None:
        validate_domain(config.domain or "", self._zone_name(config))
        if self._client_factory is default_client_factory:
            _api_token()

    async def _zone_id(self, client: RecordClient, zone_name: str, ctx: RunContext) -> str:
        ctx.status(
            StatusLevel.PROGRESS, f"Resolving Cloudflare zone ID for {zone_name}", KIND, "resolve"
        )
        return await call_upstream(KIND, "resolve_zone_id", client.resolve_zone_id, zone_name)

    async def provision_records(
        self, config: PlatformConfig, endpoint: str, ctx: RunContext
    ) -> None:
        zone_name = self._zone_name(config)
        domain = config.domain or ""
        validate_domain(domain, zone_name)

        client = self._client_factory()
        zone_id = await self._zone_id(client, zone_name, ctx)
        record_type = record_type_for(endpoint)
        for name in record_names(domain):
            ctx.status(
                StatusLevel.PROGRESS, f"Ensuring DNS record for {name}", "dns-record", "ensure"
            )
            action = await ensure_record(client, zone_id, name, record_type.value, endpoint, ctx)
            logger.info(
                "DNS record ensured",
                extra={"record": name, "type": record_type.value, "action": action.value},
            )
        ctx.status(
            StatusLevel.SUCCESS, f"DNS records provisioned for {domain}", "dns-records", "provision"
        )

    async def destroy_records(self, config: PlatformConfig, ctx: RunContext) -> None:
        zone_name = self._zone_name(config)
        domain = config.domain or ""
        validate_domain(domain, zone_name)

        client = self._client_factory()
        zone_id = await self._zone_id(client, zone_name, ctx)
        deleted = await delete_records(client, zone_id, domain, ctx)
        logger.info("DNS records destroyed", extra={"domain": domain, "deleted": deleted})
        ctx.status(
            StatusLevel.SUCCESS, f"DNS records destroyed for {domain}", "dns-records", "destroy"
        )
