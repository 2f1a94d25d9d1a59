"""Core data structures for workloadwatch."""

from workloadwatch.models.config import WorkloadWatchConfig
from workloadwatch.models.events import DesiredStateReached, PodWatchEvent, WatchEventType
from workloadwatch.models.reports import ChangeKind, ChangeRecord, EntityKind
from workloadwatch.models.workloads import (
    CustomResourceDescriptor,
    OwnerDescriptor,
    OwnerKind,
    OwnerPayload,
    OwnerReference,
    OwnerSummary,
    Pod,
    PodPhase,
    PodRecord,
    ResourceBody,
    WorkloadGroup,
    WorkloadHead,
    containers_equal,
)

__all__ = [
    "ChangeKind",
    "ChangeRecord",
    "CustomResourceDescriptor",
    "DesiredStateReached",
    "EntityKind",
    "OwnerDescriptor",
    "OwnerKind",
    "OwnerPayload",
    "OwnerReference",
    "OwnerSummary",
    "Pod",
    "PodPhase",
    "PodRecord",
    "PodWatchEvent",
    "ResourceBody",
    "WatchEventType",
    "WorkloadGroup",
    "WorkloadHead",
    "WorkloadWatchConfig",
    "containers_equal",
]
