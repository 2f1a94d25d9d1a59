"""Shared fixtures for workloadwatch integration tests.

Provides an in-memory ClusterGateway with scripted watch streams plus
factories for realistic pod and controller bodies, so the reconciliation
pipeline can be exercised end to end without a real cluster.
"""

from __future__ import annotations

import asyncio
import copy
from typing import Any

import pytest

from workloadwatch.gateway.base import ClusterGateway, GatewayError, ResourceNotFoundError
from workloadwatch.models.events import PodWatchEvent
from workloadwatch.models.workloads import CustomResourceDescriptor
from workloadwatch.reconciler import DesiredStateWaiter, OwnerResolver, PodReconciler
from workloadwatch.registry import WorkloadRegistry
from workloadwatch.reports import ReportBuffer

# ---------------------------------------------------------------------------
# Resource factory helpers
# ---------------------------------------------------------------------------


def make_container(name: str = "web", image: str = "web:1.4.2") -> dict[str, Any]:
    return {
        "name": name,
        "image": image,
        "ports": [{"containerPort": 8080, "protocol": "TCP"}],
        "resources": {"limits": {"memory": "256Mi"}, "requests": {"cpu": "100m"}},
    }


def make_owner_ref(kind: str, name: str, api_version: str = "apps/v1") -> dict[str, Any]:
    return {"apiVersion": api_version, "kind": kind, "name": name, "controller": True}


def make_pod(
    name: str = "web-5d9c7b-x2kj",
    namespace: str = "default",
    containers: list[dict[str, Any]] | None = None,
    owner_refs: list[dict[str, Any]] | None = None,
    labels: dict[str, str] | None = None,
    phase: str = "Running",
    node_name: str = "node-1",
    pod_ip: str = "10.0.0.11",
    generate_name: str = "",
) -> dict[str, Any]:
    """Create a raw pod body with sensible defaults."""
    metadata: dict[str, Any] = {
        "name": name,
        "namespace": namespace,
        "labels": labels if labels is not None else {"app": "web"},
        "resourceVersion": "1001",
    }
    if generate_name:
        metadata["generateName"] = generate_name
    if owner_refs:
        metadata["ownerReferences"] = owner_refs
    return {
        "apiVersion": "v1",
        "kind": "Pod",
        "metadata": metadata,
        "spec": {
            "containers": containers if containers is not None else [make_container()],
            "nodeName": node_name,
            "restartPolicy": "Always",
        },
        "status": {"phase": phase, "podIP": pod_ip},
    }


def make_deployment(name: str = "web", namespace: str = "default", match_labels: dict[str, str] | None = None) -> dict[str, Any]:
    return {
        "apiVersion": "apps/v1",
        "kind": "Deployment",
        "metadata": {"name": name, "namespace": namespace},
        "spec": {
            "replicas": 2,
            "selector": {"matchLabels": match_labels if match_labels is not None else {"app": name}},
        },
    }


def make_replicaset(
    name: str = "web-5d9c7b",
    namespace: str = "default",
    deployment: str | None = "web",
    match_labels: dict[str, str] | None = None,
) -> dict[str, Any]:
    metadata: dict[str, Any] = {"name": name, "namespace": namespace}
    if deployment:
        metadata["ownerReferences"] = [make_owner_ref("Deployment", deployment)]
    return {
        "apiVersion": "apps/v1",
        "kind": "ReplicaSet",
        "metadata": metadata,
        "spec": {"selector": {"matchLabels": match_labels if match_labels is not None else {"app": "web"}}},
    }


def make_job(name: str = "backup-28301", namespace: str = "default", cron_job: str | None = None) -> dict[str, Any]:
    metadata: dict[str, Any] = {"name": name, "namespace": namespace}
    if cron_job:
        metadata["ownerReferences"] = [make_owner_ref("CronJob", cron_job, "batch/v1")]
    return {"apiVersion": "batch/v1", "kind": "Job", "metadata": metadata, "spec": {}}


def make_cron_job(name: str = "backup", namespace: str = "default", template_labels: dict[str, str] | None = None) -> dict[str, Any]:
    return {
        "apiVersion": "batch/v1",
        "kind": "CronJob",
        "metadata": {"name": name, "namespace": namespace},
        "spec": {
            "schedule": "0 * * * *",
            "jobTemplate": {
                "spec": {
                    "template": {"metadata": {"labels": template_labels or {"app": name}}},
                },
            },
        },
    }


def make_crd(kind: str = "Rollout", group: str = "argoproj.io", plural: str = "rollouts") -> dict[str, Any]:
    return {
        "apiVersion": "apiextensions.k8s.io/v1",
        "kind": "CustomResourceDefinition",
        "metadata": {"name": f"{plural}.{group}"},
        "spec": {
            "group": group,
            "names": {"kind": kind, "plural": plural},
            "versions": [{"name": "v1alpha1", "served": True, "storage": True}],
        },
        "status": {"acceptedNames": {"kind": kind, "plural": plural}},
    }


def watch_event(event_type: str, raw: dict[str, Any]) -> PodWatchEvent:
    return PodWatchEvent.from_raw(event_type, copy.deepcopy(raw))


# ---------------------------------------------------------------------------
# Fake gateway
# ---------------------------------------------------------------------------


class FakeGateway(ClusterGateway):
    """In-memory cluster.

    ``streams`` holds one script per ``watch_pods`` call.  A script is a list
    of events (an Exception item breaks the stream at that point) or a bare
    Exception raised on connect.  Once the scripts run out the watch blocks
    forever and ``exhausted`` is set.
    """

    def __init__(self) -> None:
        self.resources: dict[tuple[str, str, str], dict[str, Any]] = {}
        self.custom_objects: dict[tuple[str, str, str], dict[str, Any]] = {}
        self.crds: list[dict[str, Any]] = []
        self.failures: dict[tuple[str, str], Exception] = {}
        self.streams: list[list[Any] | Exception] = []
        self.calls: list[tuple[str, ...]] = []
        self.watch_calls = 0
        self.exhausted = asyncio.Event()

    def put(self, raw: dict[str, Any]) -> None:
        metadata = raw["metadata"]
        self.resources[(raw["kind"], metadata.get("namespace", ""), metadata["name"])] = copy.deepcopy(raw)

    def delete(self, kind: str, name: str, namespace: str = "default") -> None:
        self.resources.pop((kind, namespace, name), None)

    async def watch_pods(self):  # type: ignore[override]
        self.watch_calls += 1
        if not self.streams:
            self.exhausted.set()
            await asyncio.Event().wait()
            return
        script = self.streams.pop(0)
        if isinstance(script, Exception):
            raise script
        for item in script:
            if isinstance(item, Exception):
                raise item
            yield item

    async def get_resource(self, kind: str, name: str, namespace: str) -> dict[str, Any]:
        self.calls.append(("get", kind, name))
        failure = self.failures.get((kind, name))
        if failure is not None:
            raise failure
        body = self.resources.get((kind, namespace, name))
        if body is None:
            raise ResourceNotFoundError(kind, name, namespace)
        return copy.deepcopy(body)

    async def list_resources(self, kind: str, namespace: str) -> list[dict[str, Any]]:
        self.calls.append(("list", kind, namespace))
        failure = self.failures.get(("list", kind))
        if failure is not None:
            raise failure
        return [
            copy.deepcopy(body)
            for (body_kind, body_ns, _), body in self.resources.items()
            if body_kind == kind and body_ns == namespace
        ]

    async def list_custom_resource_definitions(self) -> list[dict[str, Any]]:
        self.calls.append(("list", "CustomResourceDefinition", ""))
        failure = self.failures.get(("list", "CustomResourceDefinition"))
        if failure is not None:
            raise failure
        return copy.deepcopy(self.crds)

    async def get_custom_resource(
        self,
        descriptor: CustomResourceDescriptor,
        name: str,
        namespace: str,
    ) -> dict[str, Any]:
        self.calls.append(("get", descriptor.kind, name))
        body = self.custom_objects.get((descriptor.kind, namespace, name))
        if body is None:
            raise ResourceNotFoundError(descriptor.kind, name, namespace)
        return copy.deepcopy(body)


def gateway_error(operation: str = "get", cause: str = "500 Internal Server Error") -> GatewayError:
    return GatewayError(operation, cause)


# ---------------------------------------------------------------------------
# Pipeline fixtures
# ---------------------------------------------------------------------------


@pytest.fixture()
def gateway() -> FakeGateway:
    """Cluster holding a Deployment 'web' and its ReplicaSet 'web-5d9c7b'."""
    gw = FakeGateway()
    gw.put(make_deployment())
    gw.put(make_replicaset())
    return gw


@pytest.fixture()
def registry() -> WorkloadRegistry:
    return WorkloadRegistry()


@pytest.fixture()
def reports() -> ReportBuffer:
    return ReportBuffer()


@pytest.fixture()
def reconciler(gateway: FakeGateway, registry: WorkloadRegistry, reports: ReportBuffer) -> PodReconciler:
    return PodReconciler(
        gateway=gateway,
        registry=registry,
        reports=reports,
        resolver=OwnerResolver(gateway),
        waiter=DesiredStateWaiter(gateway, timeout_seconds=2.0, poll_interval=0),
        reconnect_backoff=0,
    )
