"""Cluster resource gateway.

Exports:
    ClusterGateway         -- Abstract read-only API server contract.
    GatewayError           -- Any failed API call.
    ResourceNotFoundError  -- The requested resource does not exist (404).

The kubernetes-asyncio implementation lives in ``workloadwatch.gateway.kubernetes``
and is imported lazily by the application bootstrap.
"""

from workloadwatch.gateway.base import ClusterGateway, GatewayError, ResourceNotFoundError

__all__ = [
    "ClusterGateway",
    "GatewayError",
    "ResourceNotFoundError",
]
