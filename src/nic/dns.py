"""DNS record reconciliation.

Each deployment owns two records, the root domain and its wildcard, both
pointing at the load balancer endpoint. ensure_record converges one
name/type pair to exactly one record with the desired content.
"""

from __future__ import annotations

import ipaddress
import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass
from enum import Enum
from typing import Protocol

from .errors import ConfigValidationError
from .models import PlatformConfig
from .status import RunContext, StatusLevel
from .upstream import call_upstream

logger = logging.getLogger(__name__)

KIND = "dns-record"
DEFAULT_TTL = 300


class RecordType(str, Enum):
    A = "A"
    CNAME = "CNAME"


class EnsureAction(str, Enum):
    """What ensure_record did to converge a record."""

    CREATED = "created"
    UPDATED = "updated"
    UNCHANGED = "unchanged"


@dataclass(frozen=True)
class DNSRecord:
    record_id: str
    name: str
    record_type: str
    content: str
    ttl: int = DEFAULT_TTL
    proxied: bool = False


class RecordClient(Protocol):
    """Narrow record API of a DNS backend. All calls are blocking."""

    def resolve_zone_id(self, zone_name: str) -> str: ...

    def list_records(self, zone_id: str, name: str, record_type: str) -> list[DNSRecord]: ...

    def create_record(
        self, zone_id: str, name: str, record_type: str, content: str, ttl: int
    ) -> DNSRecord: ...

    def update_record(
        self, zone_id: str, record_id: str, name: str, record_type: str, content: str, ttl: int
    ) -> DNSRecord: ...

    def delete_record(self, zone_id: str, record_id: str) -> None: ...


def record_type_for(endpoint: str) -> RecordType:
    """A for an IP address endpoint, CNAME for anything else."""
    try:
        ipaddress.ip_address(endpoint)
    except ValueError:
        return RecordType.CNAME
    return RecordType.A


def validate_domain(domain: str, zone_name: str) -> None:
    """Require the domain to be the zone or a dot-separated subdomain of it.

    Raises:
        ConfigValidationError: If the domain lies outside the zone.
    """
    domain = domain.rstrip(".").lower()
    zone = zone_name.rstrip(".").lower()
    if not domain:
        raise ConfigValidationError(["domain: is required for DNS records"])
    if domain != zone and not domain.endswith("." + zone):
        raise ConfigValidationError([f"domain: '{domain}' is not within zone '{zone}'"])


def record_names(domain: str) -> list[str]:
    return [domain, f"*.{domain}"]


async def ensure_record(
    client: RecordClient,
    zone_id: str,
    name: str,
    record_type: str,
    content: str,
    ctx: RunContext,
    ttl: int = DEFAULT_TTL,
) -> EnsureAction:
    """Converge name/type to exactly one record holding content.

    Duplicates beyond the first match are deleted before the remaining
    record is compared. An already correct record costs no mutating call.
    """
    records = await call_upstream(
        KIND, "list_records", client.list_records, zone_id, name, record_type
    )

    if not records:
        ctx.status(StatusLevel.PROGRESS, f"Creating {record_type} record {name}", KIND, "create")
        await call_upstream(
            KIND, "create_record", client.create_record, zone_id, name, record_type, content, ttl
        )
        logger.info("Created DNS record", extra={"record": name, "type": record_type})
        return EnsureAction.CREATED

    keep, duplicates = records[0], records[1:]
    for duplicate in duplicates:
        ctx.status(
            StatusLevel.WARNING,
            f"Deleting duplicate {record_type} record {name}",
            KIND,
            "delete",
            record_id=duplicate.record_id,
        )
        await call_upstream(
            KIND, "delete_record", client.delete_record, zone_id, duplicate.record_id
        )

    if keep.content == content:
        logger.debug("DNS record up to date", extra={"record": name, "type": record_type})
        return EnsureAction.UNCHANGED

    ctx.status(
        StatusLevel.PROGRESS,
        f"Updating {record_type} record {name}",
        KIND,
        "update",
        old=keep.content,
        new=content,
    )
    await call_upstream(
        KIND,
        "update_record",
        client.update_record,
        zone_id,
        keep.record_id,
        name,
        record_type,
        content,
        ttl,
    )
    logger.info(
        "Updated DNS record",
        extra={"record": name, "type": record_type, "old": keep.content, "new": content},
    )
    return EnsureAction.UPDATED


async def delete_records(
    client: RecordClient, zone_id: str, domain: str, ctx: RunContext
) -> int:
    """Delete root and wildcard records of either type. Returns the number deleted."""
    deleted = 0
    for name in record_names(domain):
        for record_type in RecordType:
            records = await call_upstream(
                KIND, "list_records", client.list_records, zone_id, name, record_type.value
            )
            for record in records:
                ctx.status(
                    StatusLevel.PROGRESS,
                    f"Deleting {record.record_type} record {record.name}",
                    KIND,
                    "delete",
                    record_id=record.record_id,
                )
                await call_upstream(
                    KIND, "delete_record", client.delete_record, zone_id, record.record_id
                )
                deleted += 1
    return deleted


class DNSProvider(ABC):
    """Contract for a DNS backend bound in the DNS provider registry."""

    name: str = ""

    @abstractmethod
    def validate(self, config: PlatformConfig) -> None:
        """Check DNS settings and credentials before any API call."""

    @abstractmethod
    async def provision_records(
        self, config: PlatformConfig, endpoint: str, ctx: RunContext
    ) -> None:
        """Point the root and wildcard records at endpoint."""

    @abstractmethod
    async def destroy_records(self, config: PlatformConfig, ctx: RunContext) -> None:
        """Remove the deployment's records; absent records are not an error."""
