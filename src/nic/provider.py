"""Provider interface.

A provider turns a platform configuration into a running Kubernetes cluster
and back. Providers are bound to names explicitly at process start; see
nic.engine.build_registries.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Any

from .models import PlatformConfig
from .plan import Plan
from .status import RunContext


class Provider(ABC):
    """Contract every cluster backend implements.

    reconcile must be idempotent: a second call with unchanged configuration
    against an unchanged cloud performs zero mutating calls.
    """

    name: str = ""

    @abstractmethod
    def validate(self, config: PlatformConfig) -> None:
        """Check the configuration before any API call.

        Raises:
            ConfigValidationError: With every problem found.
        """

    @abstractmethod
    async def reconcile(self, config: PlatformConfig, ctx: RunContext) -> None:
        """Converge cloud resources to the configuration."""

    @abstractmethod
    async def plan(self, config: PlatformConfig, ctx: RunContext) -> Plan:
        """Report what reconcile would change, using read calls only."""

    @abstractmethod
    async def destroy(self, config: PlatformConfig, ctx: RunContext, force: bool = False) -> None:
        """Delete every resource tagged for the platform.

        Raises:
            DestroyError: With the failures; in strict mode after the first one.
        """

    @abstractmethod
    async def get_kubeconfig(self, config: PlatformConfig, ctx: RunContext) -> bytes:
        """Return a kubeconfig document for the platform's cluster."""

    @abstractmethod
    def summary(self, config: PlatformConfig) -> dict[str, Any]:
        """Key facts about the platform for display."""
