"""Workload data structures.

A workload (reported downstream as a "MicroService") is the set of pods that
share an identical container specification.  Each workload is stored as a
WorkloadGroup: a WorkloadHead holding the first observed pod and its resolved
top-level owner, followed by one PodRecord per tracked pod instance.
"""

from __future__ import annotations

import copy
from dataclasses import dataclass, field
from enum import StrEnum
from typing import Any


class OwnerKind(StrEnum):
    """Built-in resource kinds the owner resolver knows how to fetch."""

    DEPLOYMENT = "Deployment"
    DAEMON_SET = "DaemonSet"
    STATEFUL_SET = "StatefulSet"
    REPLICA_SET = "ReplicaSet"
    JOB = "Job"
    CRON_JOB = "CronJob"
    POD = "Pod"

    @classmethod
    def parse(cls, kind: str) -> OwnerKind | None:
        """Return the matching member, or None for kinds outside the built-in set."""
        try:
            return cls(kind)
        except ValueError:
            return None


class PodPhase(StrEnum):
    PENDING = "Pending"
    RUNNING = "Running"
    SUCCEEDED = "Succeeded"
    FAILED = "Failed"
    UNKNOWN = "Unknown"


@dataclass(frozen=True)
class OwnerReference:
    """A backward link from a resource to the controller that created it."""

    kind: str
    name: str
    api_version: str = ""

    @classmethod
    def from_raw(cls, raw: dict[str, Any]) -> OwnerReference:
        return cls(
            kind=str(raw.get("kind", "")),
            name=str(raw.get("name", "")),
            api_version=str(raw.get("apiVersion", "")),
        )


def owner_references_of(raw: dict[str, Any]) -> list[OwnerReference]:
    """Extract ``metadata.ownerReferences`` from a raw resource body."""
    metadata = raw.get("metadata") or {}
    refs = metadata.get("ownerReferences") or []
    return [OwnerReference.from_raw(ref) for ref in refs if isinstance(ref, dict)]


@dataclass
class Pod:
    """A pod as observed on the watch stream or fetched from the API server.

    ``raw`` is the camelCase API body.  The named fields are extracted once at
    construction so the reconciliation path never digs through nested dicts.
    """

    name: str
    namespace: str
    raw: dict[str, Any]
    generate_name: str = ""
    labels: dict[str, str] = field(default_factory=dict)
    owner_references: list[OwnerReference] = field(default_factory=list)
    spec: dict[str, Any] = field(default_factory=dict)
    phase: str = ""
    pod_ip: str = ""
    resource_version: str = ""

    @classmethod
    def from_raw(cls, raw: dict[str, Any]) -> Pod:
        metadata = raw.get("metadata") or {}
        status = raw.get("status") or {}
        return cls(
            name=str(metadata.get("name") or ""),
            namespace=str(metadata.get("namespace") or ""),
            raw=raw,
            generate_name=str(metadata.get("generateName") or ""),
            labels=dict(metadata.get("labels") or {}),
            owner_references=owner_references_of(raw),
            spec=raw.get("spec") or {},
            phase=str(status.get("phase") or ""),
            pod_ip=str(status.get("podIP") or ""),
            resource_version=str(metadata.get("resourceVersion") or ""),
        )

    @property
    def display_name(self) -> str:
        """The pod name, or its generate-name prefix while the name is unset."""
        return self.name or self.generate_name

    @property
    def node_name(self) -> str:
        return str(self.spec.get("nodeName") or "")

    @property
    def containers(self) -> list[dict[str, Any]]:
        return list(self.spec.get("containers") or [])

    def copy(self) -> Pod:
        """Return an independent snapshot of this pod."""
        return Pod.from_raw(copy.deepcopy(self.raw))

    def to_dict(self) -> dict[str, Any]:
        return copy.deepcopy(self.raw)


def containers_equal(left: list[dict[str, Any]], right: list[dict[str, Any]]) -> bool:
    """Structural, order-sensitive equality of two container specification lists."""
    if len(left) != len(right):
        return False
    return all(a == b for a, b in zip(left, right, strict=True))


# ---------------------------------------------------------------------------
# Owner payload: a closed set of shapes
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class ResourceBody:
    """The fetched body of a built-in owner resource."""

    kind: OwnerKind
    body: dict[str, Any]

    @property
    def name(self) -> str:
        return str((self.body.get("metadata") or {}).get("name") or "")

    def to_dict(self) -> dict[str, Any]:
        data = copy.deepcopy(self.body)
        data["kind"] = self.kind.value
        return data


@dataclass(frozen=True)
class CustomResourceDescriptor:
    """An owner whose kind is served by a CustomResourceDefinition."""

    kind: str
    api_version: str
    plural: str = ""

    @property
    def group(self) -> str:
        return self.api_version.rpartition("/")[0]

    @property
    def version(self) -> str:
        return self.api_version.rpartition("/")[2]

    def to_dict(self) -> dict[str, Any]:
        return {"kind": self.kind, "apiVersion": self.api_version}


OwnerPayload = ResourceBody | CustomResourceDescriptor | None


@dataclass(frozen=True)
class OwnerSummary:
    """Name/kind-only view of an owner, carried on every PodRecord."""

    name: str = ""
    kind: str = ""

    def to_dict(self) -> dict[str, Any]:
        return {"name": self.name, "kind": self.kind}


@dataclass(frozen=True)
class OwnerDescriptor:
    """The resolved top-level owner of a workload."""

    name: str = ""
    kind: str = ""
    payload: OwnerPayload = None

    def summary(self) -> OwnerSummary:
        return OwnerSummary(name=self.name, kind=self.kind)

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {"name": self.name, "kind": self.kind}
        if self.payload is not None:
            data["ownerData"] = self.payload.to_dict()
        return data


# ---------------------------------------------------------------------------
# Registry entries
# ---------------------------------------------------------------------------


@dataclass
class PodRecord:
    """One tracked pod instance belonging to a workload."""

    pod_name: str
    running_pods: int
    node_name: str = ""
    pod_ip: str = ""
    namespace: str = ""
    owner: OwnerSummary = field(default_factory=OwnerSummary)

    @classmethod
    def from_pod(cls, pod: Pod, running_pods: int, owner: OwnerDescriptor) -> PodRecord:
        return cls(
            pod_name=pod.display_name,
            running_pods=running_pods,
            node_name=pod.node_name,
            pod_ip=pod.pod_ip,
            namespace=pod.namespace,
            owner=owner.summary(),
        )

    def refresh(self, pod: Pod, owner: OwnerDescriptor) -> None:
        """Update the placement fields from the latest observation of the pod."""
        if pod.name:
            self.pod_name = pod.name
        self.node_name = pod.node_name
        self.pod_ip = pod.pod_ip
        self.namespace = pod.namespace
        self.owner = owner.summary()

    def to_dict(self) -> dict[str, Any]:
        return {
            "podName": self.pod_name,
            "numberOfRunningPods": self.running_pods,
            "nodeName": self.node_name,
            "podIP": self.pod_ip,
            "namespace": self.namespace,
            "uptreeOwner": self.owner.to_dict(),
        }


@dataclass
class WorkloadHead:
    """Canonical representative of a workload group.

    ``revision`` increases on every in-place refresh of the head.  Background
    patches compare it against the value they captured to detect that fresher
    data has already been applied.
    """

    pod: Pod
    owner: OwnerDescriptor
    workload_id: int
    revision: int = 0

    def refresh(self, pod: Pod, owner: OwnerDescriptor) -> None:
        self.pod = pod.copy()
        self.owner = owner
        self.revision += 1

    def to_dict(self) -> dict[str, Any]:
        data = self.pod.to_dict()
        data["uptreeOwner"] = self.owner.to_dict()
        data["podSpecId"] = self.workload_id
        return data


@dataclass
class WorkloadGroup:
    """The head of a workload followed by its tracked pod instances."""

    head: WorkloadHead
    records: list[PodRecord] = field(default_factory=list)

    @property
    def workload_id(self) -> int:
        return self.head.workload_id

    @property
    def instance_count(self) -> int:
        return len(self.records)

    def find_record(self, pod_name: str) -> PodRecord | None:
        for record in self.records:
            if record.pod_name == pod_name:
                return record
        return None
