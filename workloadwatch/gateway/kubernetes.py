"""kubernetes-asyncio implementation of the cluster resource gateway."""

from __future__ import annotations

import asyncio
from collections.abc import AsyncIterator
from typing import Any

import aiohttp
import structlog
from kubernetes_asyncio import client as k8s_client
from kubernetes_asyncio import watch as k8s_watch
from kubernetes_asyncio.client.exceptions import ApiException

from workloadwatch.gateway.base import ClusterGateway, GatewayError, ResourceNotFoundError
from workloadwatch.models.events import PodWatchEvent
from workloadwatch.models.workloads import CustomResourceDescriptor, OwnerKind

_log = structlog.get_logger(component="gateway")

# Server-side watch timeout.  The stream ends cleanly when it expires and the
# reconciliation loop reconnects.
_WATCH_TIMEOUT_SECONDS = 1800

# Failures below the HTTP layer: refused or reset connections, dropped
# streams, request timeouts.
_TRANSPORT_ERRORS = (aiohttp.ClientError, asyncio.TimeoutError)

# kind -> (api group attribute, read method, list method)
_RESOURCE_METHODS: dict[OwnerKind, tuple[str, str, str]] = {
    OwnerKind.POD: ("_core", "read_namespaced_pod", "list_namespaced_pod"),
    OwnerKind.DEPLOYMENT: ("_apps", "read_namespaced_deployment", "list_namespaced_deployment"),
    OwnerKind.DAEMON_SET: ("_apps", "read_namespaced_daemon_set", "list_namespaced_daemon_set"),
    OwnerKind.STATEFUL_SET: ("_apps", "read_namespaced_stateful_set", "list_namespaced_stateful_set"),
    OwnerKind.REPLICA_SET: ("_apps", "read_namespaced_replica_set", "list_namespaced_replica_set"),
    OwnerKind.JOB: ("_batch", "read_namespaced_job", "list_namespaced_job"),
    OwnerKind.CRON_JOB: ("_batch", "read_namespaced_cron_job", "list_namespaced_cron_job"),
}


class KubernetesGateway(ClusterGateway):
    """Gateway backed by a shared kubernetes-asyncio ApiClient.

    The client configuration (in-cluster or kubeconfig) must be loaded before
    construction; see ``workloadwatch.app``.

    Every failure leaves this class as a GatewayError, whether the API server
    answered with an error status or the connection itself broke.
    """

    def __init__(
        self,
        api_client: k8s_client.ApiClient | None = None,
        watch_timeout_seconds: int = _WATCH_TIMEOUT_SECONDS,
    ) -> None:
        self._api_client = api_client or k8s_client.ApiClient()
        self._core = k8s_client.CoreV1Api(self._api_client)
        self._apps = k8s_client.AppsV1Api(self._api_client)
        self._batch = k8s_client.BatchV1Api(self._api_client)
        self._extensions = k8s_client.ApiextensionsV1Api(self._api_client)
        self._custom = k8s_client.CustomObjectsApi(self._api_client)
        self._watch_timeout_seconds = watch_timeout_seconds

    async def watch_pods(self) -> AsyncIterator[PodWatchEvent]:
        """Stream pod events.

        The client raises on ERROR events instead of yielding them.  A 410
        Gone (the watch window expired) ends the stream cleanly so the caller
        reconnects at once; any other status is a GatewayError.
        """
        stream = k8s_watch.Watch()
        try:
            async for event in stream.stream(
                self._core.list_pod_for_all_namespaces,
                allow_watch_bookmarks=True,
                timeout_seconds=self._watch_timeout_seconds,
            ):
                yield PodWatchEvent.from_raw(str(event.get("type", "")), event.get("raw_object"))
        except ApiException as exc:
            if exc.status == 410:
                _log.info("pod_watch_expired", reason=exc.reason)
                return
            raise GatewayError("watch pods", _describe(exc)) from exc
        except _TRANSPORT_ERRORS as exc:
            raise GatewayError("watch pods", _describe(exc)) from exc
        finally:
            stream.stop()

    async def get_resource(self, kind: str, name: str, namespace: str) -> dict[str, Any]:
        read = self._method(kind, index=1)
        try:
            obj = await read(name, namespace)
        except ApiException as exc:
            if exc.status == 404:
                raise ResourceNotFoundError(kind, name, namespace) from exc
            raise GatewayError(f"get {kind} {namespace}/{name}", _describe(exc)) from exc
        except _TRANSPORT_ERRORS as exc:
            raise GatewayError(f"get {kind} {namespace}/{name}", _describe(exc)) from exc
        return self._to_dict(obj)

    async def list_resources(self, kind: str, namespace: str) -> list[dict[str, Any]]:
        list_fn = self._method(kind, index=2)
        try:
            result = await list_fn(namespace)
        except (ApiException, *_TRANSPORT_ERRORS) as exc:
            raise GatewayError(f"list {kind} in {namespace}", _describe(exc)) from exc
        return [self._to_dict(item) for item in (result.items or [])]

    async def list_custom_resource_definitions(self) -> list[dict[str, Any]]:
        try:
            result = await self._extensions.list_custom_resource_definition()
        except (ApiException, *_TRANSPORT_ERRORS) as exc:
            raise GatewayError("list customresourcedefinitions", _describe(exc)) from exc
        return [self._to_dict(item) for item in (result.items or [])]

    async def get_custom_resource(
        self,
        descriptor: CustomResourceDescriptor,
        name: str,
        namespace: str,
    ) -> dict[str, Any]:
        if not descriptor.plural:
            raise GatewayError(f"get {descriptor.kind} {namespace}/{name}", "plural name unknown")
        try:
            obj = await self._custom.get_namespaced_custom_object(
                descriptor.group,
                descriptor.version,
                namespace,
                descriptor.plural,
                name,
            )
        except ApiException as exc:
            if exc.status == 404:
                raise ResourceNotFoundError(descriptor.kind, name, namespace) from exc
            raise GatewayError(f"get {descriptor.kind} {namespace}/{name}", _describe(exc)) from exc
        except _TRANSPORT_ERRORS as exc:
            raise GatewayError(f"get {descriptor.kind} {namespace}/{name}", _describe(exc)) from exc
        return dict(obj)

    async def close(self) -> None:
        try:
            await self._api_client.close()
        except Exception as exc:
            _log.debug("api client close raised (non-fatal)", error=str(exc))

    async def stop(self) -> None:
        await self.close()

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _method(self, kind: str, index: int) -> Any:
        owner_kind = OwnerKind.parse(kind)
        if owner_kind is None:
            raise GatewayError(f"access {kind}", "unsupported resource kind")
        entry = _RESOURCE_METHODS[owner_kind]
        return getattr(getattr(self, entry[0]), entry[index])

    def _to_dict(self, obj: Any) -> dict[str, Any]:
        if isinstance(obj, dict):
            return obj
        return self._api_client.sanitize_for_serialization(obj)  # type: ignore[no-any-return]


def _describe(exc: BaseException) -> str:
    if isinstance(exc, ApiException):
        return f"{exc.status} {exc.reason}"
    return str(exc) or type(exc).__name__
