"""Oxide API Mock for Integration Testing.

This module provides an in-memory implementation of the Oxide control-plane
API with the same method surface as OxideClient, so engines and the
registry can be exercised without a rack.

Key Features:
- In-memory state for disks, images, instances and IP pools
- Call recording for asserting on remote traffic
- Error injection for testing failure scenarios
- Artificial latency for testing timeouts
- Out-of-band deletion via ``state.remove``

Usage:
    from oxide_mock import MockOxideClient

    client = MockOxideClient()
    engine = ReconciliationEngine(schema, bindings, client, 600)
    result = await engine.create(desired)

    assert client.call_count("disk_create") == 1
"""

from .api import DEFAULT_BLOCK_SIZE, MockOxideClient, MockOxideState

__all__ = [
    "DEFAULT_BLOCK_SIZE",
    "MockOxideClient",
    "MockOxideState",
]
