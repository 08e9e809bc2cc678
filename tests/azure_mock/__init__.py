"""In-memory Azure doubles for reconciler and provider tests.

Key Features:
- One fake subscription implementing every per-kind client interface
- Resources carry generated ids; clusters report a configurable provisioning state
- Every call is recorded; mutating calls are those not named list_, get_ or has_
- Error injection per method, optionally limited to one resource or N attempts
- Delete dependency rules (NAT gateway in use, public IP in use) as Azure enforces them

Usage:
    from azure_mock import FakeAzureCloud

    cloud = FakeAzureCloud()
    provider = AzureProvider(clients_factory=lambda config: cloud.clients())
    await provider.reconcile(config, ctx)

    cloud.reset_calls()
    await provider.reconcile(config, ctx)
    assert cloud.mutating_calls == []
"""

from .cloud import DEFAULT_SUBSCRIPTION_ID, FakeAzureCloud
from .recorder import Call, CallRecorder

__all__ = [
    "DEFAULT_SUBSCRIPTION_ID",
    "Call",
    "CallRecorder",
    "FakeAzureCloud",
]
