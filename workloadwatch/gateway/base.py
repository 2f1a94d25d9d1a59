"""Cluster resource gateway contract.

The reconciliation engine talks to the API server exclusively through this
interface: one watch, plain gets and namespace-scoped lists.  Bodies are
returned as camelCase dicts exactly as the API server serialises them.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from collections.abc import AsyncIterator
from typing import Any

from workloadwatch.models.events import PodWatchEvent
from workloadwatch.models.workloads import CustomResourceDescriptor


class GatewayError(Exception):
    """Raised when an API server call fails for any reason other than 404."""

    def __init__(self, operation: str, cause: object) -> None:
        super().__init__(f"{operation} failed: {cause}")
        self.operation = operation
        self.cause = cause


class ResourceNotFoundError(GatewayError):
    """Raised when the requested resource does not exist."""

    def __init__(self, kind: str, name: str, namespace: str) -> None:
        super().__init__(f"get {kind} {namespace}/{name}", "not found")
        self.kind = kind
        self.name = name
        self.namespace = namespace


class ClusterGateway(ABC):
    """Read-only access to pods, controllers and custom resource definitions."""

    @abstractmethod
    def watch_pods(self) -> AsyncIterator[PodWatchEvent]:
        """Stream pod events across all namespaces until the server ends the watch.

        Raises:
            GatewayError: if the watch cannot be established or breaks.
        """

    @abstractmethod
    async def get_resource(self, kind: str, name: str, namespace: str) -> dict[str, Any]:
        """Fetch a single built-in resource.

        Raises:
            ResourceNotFoundError: the resource does not exist.
            GatewayError: any other failure, including unsupported kinds.
        """

    @abstractmethod
    async def list_resources(self, kind: str, namespace: str) -> list[dict[str, Any]]:
        """List built-in resources of *kind* in *namespace*, in server order."""

    @abstractmethod
    async def list_custom_resource_definitions(self) -> list[dict[str, Any]]:
        """List every CustomResourceDefinition in the cluster."""

    @abstractmethod
    async def get_custom_resource(
        self,
        descriptor: CustomResourceDescriptor,
        name: str,
        namespace: str,
    ) -> dict[str, Any]:
        """Fetch a namespaced custom object described by *descriptor*.

        Raises:
            ResourceNotFoundError: the object does not exist.
            GatewayError: any other failure.
        """

    async def close(self) -> None:  # noqa: B027
        """Release connections held by the gateway."""
