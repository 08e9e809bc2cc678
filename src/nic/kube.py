"""Kubernetes API access and readiness waits.

Clients are built from kubeconfig bytes handed over by a provider. Each
wait wraps a single bounded API call in the readiness poller.
"""

from __future__ import annotations

import logging
from collections.abc import Sequence
from dataclasses import dataclass
from typing import Any

import urllib3
import yaml
from kubernetes import client, config
from kubernetes.client import AppsV1Api, CoreV1Api, CustomObjectsApi
from kubernetes.client.exceptions import ApiException

from .errors import NicError, UpstreamAPIError
from .poller import wait_until
from .status import RunContext, StatusLevel

logger = logging.getLogger(__name__)

NODE_READY_TIMEOUT_SECONDS = 300.0
WORKLOAD_READY_TIMEOUT_SECONDS = 300.0
READY_POLL_INTERVAL_SECONDS = 5.0

LB_NAMESPACE = "envoy-gateway-system"
LB_LABEL_SELECTOR = "gateway.envoyproxy.io/owning-gateway-name=nebari-gateway"
LB_TIMEOUT_SECONDS = 180.0
LB_POLL_INTERVAL_SECONDS = 5.0


class ServiceNotFoundError(NicError):
    """No service matches the load balancer selector."""

    def __init__(self, namespace: str, selector: str) -> None:
        self.namespace = namespace
        self.selector = selector
        super().__init__(f"no services found in namespace '{namespace}' matching '{selector}'")


@dataclass
class KubeClients:
    core: CoreV1Api
    apps: AppsV1Api
    custom: CustomObjectsApi | None = None


def clients_from_kubeconfig(kubeconfig: bytes) -> KubeClients:
    """Build API clients from an in-memory kubeconfig document."""
    document = yaml.safe_load(kubeconfig.decode("utf-8"))
    if not isinstance(document, dict):
        raise NicError("kubeconfig is not a mapping")
    api_client = config.new_client_from_config_dict(document)
    return KubeClients(
        core=client.CoreV1Api(api_client),
        apps=client.AppsV1Api(api_client),
        custom=client.CustomObjectsApi(api_client),
    )


# =============================================================================
# Checks
# =============================================================================


def node_is_ready(node: Any) -> bool:
    """A node is ready when a Ready condition reports status True."""
    conditions = (node.status.conditions if node.status else None) or []
    return any(c.type == "Ready" and c.status == "True" for c in conditions)


def any_node_ready(core: CoreV1Api) -> bool:
    try:
        nodes = core.list_node()
    except (ApiException, urllib3.exceptions.HTTPError) as e:
        # The API server may not answer yet right after provisioning
        logger.debug("Node list failed", extra={"error": str(e)})
        return False
    return any(node_is_ready(node) for node in nodes.items)


def _ready_replicas(status: Any) -> int:
    return (status.ready_replicas if status else None) or 0


def deployment_is_ready(deployment: Any) -> bool:
    desired = deployment.spec.replicas if deployment.spec else None
    return _ready_replicas(deployment.status) >= (desired if desired is not None else 1)


def workloads_ready(
    apps: AppsV1Api,
    namespace: str,
    deployments: Sequence[str],
    statefulsets: Sequence[str] = (),
) -> bool:
    """True only when every listed deployment and statefulset is fully ready."""
    try:
        for name in deployments:
            if not deployment_is_ready(apps.read_namespaced_deployment(name, namespace)):
                return False
        for name in statefulsets:
            if not deployment_is_ready(apps.read_namespaced_stateful_set(name, namespace)):
                return False
    except ApiException as e:
        if e.status == 404:
            return False
        raise UpstreamAPIError("kubernetes", "read workload", e) from e
    return True


def load_balancer_endpoint(
    core: CoreV1Api, namespace: str = LB_NAMESPACE, selector: str = LB_LABEL_SELECTOR
) -> str | None:
    """Endpoint of the first matching service; IP preferred over hostname.

    Returns None while the load balancer has no ingress entry.

    Raises:
        ServiceNotFoundError: If no service matches the selector.
    """
    try:
        services = core.list_namespaced_service(namespace, label_selector=selector)
    except ApiException as e:
        raise UpstreamAPIError("kubernetes", "list services", e) from e
    if not services.items:
        raise ServiceNotFoundError(namespace, selector)

    service = services.items[0]
    load_balancer = service.status.load_balancer if service.status else None
    ingress = (load_balancer.ingress if load_balancer else None) or []
    if not ingress:
        return None
    return ingress[0].ip or ingress[0].hostname or None


# =============================================================================
# Waits
# =============================================================================


async def wait_for_nodes(
    kube: KubeClients, ctx: RunContext, timeout: float = NODE_READY_TIMEOUT_SECONDS
) -> None:
    ctx.status(StatusLevel.PROGRESS, "Waiting for cluster nodes to be ready", "cluster", "wait")
    await wait_until(
        lambda: any_node_ready(kube.core),
        interval=READY_POLL_INTERVAL_SECONDS,
        timeout=timeout,
        ctx=ctx,
        description="a ready cluster node",
    )
    ctx.status(StatusLevel.SUCCESS, "Cluster is ready", "cluster", "wait")


async def wait_for_workloads(
    kube: KubeClients,
    namespace: str,
    deployments: Sequence[str],
    ctx: RunContext,
    statefulsets: Sequence[str] = (),
    timeout: float = WORKLOAD_READY_TIMEOUT_SECONDS,
) -> None:
    names = [*deployments, *statefulsets]
    ctx.status(
        StatusLevel.PROGRESS,
        f"Waiting for {', '.join(names)} in {namespace}",
        "workload",
        "wait",
    )
    await wait_until(
        lambda: workloads_ready(kube.apps, namespace, deployments, statefulsets),
        interval=READY_POLL_INTERVAL_SECONDS,
        timeout=timeout,
        ctx=ctx,
        description=f"workloads {names} in {namespace}",
    )


async def wait_for_load_balancer(
    kube: KubeClients,
    ctx: RunContext,
    namespace: str = LB_NAMESPACE,
    selector: str = LB_LABEL_SELECTOR,
    timeout: float = LB_TIMEOUT_SECONDS,
    interval: float = LB_POLL_INTERVAL_SECONDS,
    await_service: bool = False,
) -> str:
    """Wait for the gateway service to get an external endpoint and return it.

    Args:
        await_service: Keep polling while no service matches the selector, for
            gateways that Argo CD has yet to sync. Otherwise a missing service
            fails at once.

    Raises:
        ServiceNotFoundError: If no service matches and await_service is False.
        PollTimeoutError: If no endpoint is assigned within the timeout.
    """
    endpoint: list[str] = []

    def assigned() -> bool:
        try:
            value = load_balancer_endpoint(kube.core, namespace, selector)
        except ServiceNotFoundError:
            if not await_service:
                raise
            logger.debug("Gateway service not synced yet", extra={"namespace": namespace})
            return False
        if value:
            endpoint.append(value)
            return True
        return False

    ctx.status(StatusLevel.PROGRESS, "Waiting for load balancer endpoint", "load-balancer", "wait")
    await wait_until(
        assigned,
        interval=interval,
        timeout=timeout,
        ctx=ctx,
        description=f"load balancer endpoint in {namespace}",
    )
    logger.info("Load balancer endpoint assigned", extra={"endpoint": endpoint[-1]})
    return endpoint[-1]
