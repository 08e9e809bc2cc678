"""Deploy and destroy flows composed from a provider and a DNS backend."""

from __future__ import annotations

import logging
from collections.abc import Callable
from dataclasses import dataclass, field

from .azure_provider import AzureProvider
from .bootstrap import ROOT_APPLICATION_STEP, InstallResult, install_argocd
from .cloudflare import CloudflareDNSProvider
from .dns import DNSProvider, record_names, record_type_for
from .errors import NicError, PollCancelledError
from .existing_provider import ExistingClusterProvider
from .kube import (
    LB_POLL_INTERVAL_SECONDS,
    KubeClients,
    clients_from_kubeconfig,
    wait_for_load_balancer,
)
from .models import PlatformConfig
from .plan import Plan
from .provider import Provider
from .registry import Registry
from .status import RunContext, StatusLevel

logger = logging.getLogger(__name__)


@dataclass
class Registries:
    providers: Registry[Provider]
    dns: Registry[DNSProvider]


def build_registries() -> Registries:
    """Bind every backend available to this build. Nothing registers itself."""
    providers: Registry[Provider] = Registry("provider")
    providers.register(AzureProvider.name, AzureProvider())
    providers.register(ExistingClusterProvider.name, ExistingClusterProvider())

    dns: Registry[DNSProvider] = Registry("dns provider")
    dns.register(CloudflareDNSProvider.name, CloudflareDNSProvider())
    return Registries(providers=providers, dns=dns)


@dataclass
class DeployResult:
    summary: dict[str, object]
    install: InstallResult | None = None
    endpoint: str | None = None
    manual_records: list[str] = field(default_factory=list)
    # Set only for dry runs
    plan: Plan | None = None


def resolve(config: PlatformConfig, registries: Registries) -> tuple[Provider, DNSProvider | None]:
    """Look up the configured provider and DNS backend.

    Raises:
        NotRegisteredError: If either name has no bound implementation.
    """
    provider = registries.providers.get(config.provider)
    dns = registries.dns.get(config.dns.provider) if config.dns else None
    return provider, dns


def validate(config: PlatformConfig, registries: Registries) -> tuple[Provider, DNSProvider | None]:
    provider, dns = resolve(config, registries)
    provider.validate(config)
    if dns is not None:
        dns.validate(config)
    return provider, dns


async def deploy(
    config: PlatformConfig,
    ctx: RunContext,
    registries: Registries,
    kube_factory: Callable[[bytes], KubeClients] = clients_from_kubeconfig,
    dry_run: bool = False,
) -> DeployResult:
    """Reconcile infrastructure, bootstrap Argo CD and point DNS at the gateway.

    With dry_run, the provider only reports what it would change; nothing is
    created, updated or deleted and the cluster is never contacted.
    """
    provider, dns = validate(config, registries)
    summary = provider.summary(config)

    if dry_run:
        logger.info("Planning platform deployment", extra=summary)
        plan = await provider.plan(config, ctx)
        ctx.status(
            StatusLevel.INFO,
            "Would install Argo CD and foundational services (dry run)",
            "argocd",
            "dry-run",
        )
        if dns is not None and config.domain:
            ctx.status(
                StatusLevel.INFO,
                f"Would point {', '.join(record_names(config.domain))} at the gateway (dry run)",
                "dns",
                "dry-run",
            )
        return DeployResult(summary=summary, plan=plan)

    logger.info("Deploying platform", extra=summary)

    await provider.reconcile(config, ctx)
    kubeconfig = await provider.get_kubeconfig(config, ctx)
    kube = kube_factory(kubeconfig)

    install = await install_argocd(kubeconfig, config, ctx, kube=kube)
    result = DeployResult(summary=summary, install=install)

    if not config.domain:
        ctx.status(StatusLevel.SUCCESS, "Deployment complete", "platform", "deploy")
        return result

    # The gateway comes from the GitOps repository and appears once Argo CD syncs it
    synced = install.succeeded(ROOT_APPLICATION_STEP)
    if dns is not None:
        result.endpoint = await _wait_for_gateway(kube, ctx, synced)
        await dns.provision_records(config, result.endpoint, ctx)
    else:
        result.endpoint = await _endpoint_for_guidance(kube, ctx, synced)
        if result.endpoint:
            result.manual_records = manual_record_hint(config.domain, result.endpoint)
        else:
            result.manual_records = record_names(config.domain)
        logger.warning(
            "No DNS provider configured; create these DNS records manually",
            extra={"records": result.manual_records},
        )

    ctx.status(StatusLevel.SUCCESS, "Deployment complete", "platform", "deploy")
    return result


async def _wait_for_gateway(kube: KubeClients, ctx: RunContext, synced: bool) -> str:
    if synced:
        return await wait_for_load_balancer(
            kube,
            ctx,
            timeout=ctx.runtime.load_balancer_timeout_seconds,
            interval=min(LB_POLL_INTERVAL_SECONDS, ctx.runtime.poll_interval_seconds),
            await_service=True,
        )
    return await wait_for_load_balancer(kube, ctx)


async def _endpoint_for_guidance(kube: KubeClients, ctx: RunContext, synced: bool) -> str | None:
    """Best-effort endpoint lookup used only to print DNS instructions."""
    try:
        return await _wait_for_gateway(kube, ctx, synced)
    except PollCancelledError:
        raise
    except NicError as e:
        logger.warning("Could not retrieve load balancer endpoint", extra={"error": str(e)})
        return None


def manual_record_hint(domain: str, endpoint: str) -> list[str]:
    """Human readable lines describing the records to create by hand."""
    record_type = record_type_for(endpoint).value
    return [f"{name} {record_type} {endpoint}" for name in record_names(domain)]


async def destroy(
    config: PlatformConfig, ctx: RunContext, registries: Registries, force: bool = False
) -> None:
    """Remove DNS records first, then every provider resource."""
    provider, dns = validate(config, registries)
    if dns is not None:
        await dns.destroy_records(config, ctx)
    await provider.destroy(config, ctx, force=force)
    ctx.status(StatusLevel.SUCCESS, "Destroy complete", "platform", "destroy")


async def kubeconfig(config: PlatformConfig, ctx: RunContext, registries: Registries) -> bytes:
    provider = registries.providers.get(config.provider)
    provider.validate(config)
    return await provider.get_kubeconfig(config, ctx)
