"""In-memory workload registry.

Maps a workload identifier to its WorkloadGroup.  Pods are deduplicated into
workloads by strict structural equality of their container lists: two pods
belong to the same workload only if their containers are identical, field for
field and in the same order.

The registry is not thread-safe and performs no locking.  It is owned by the
reconciliation loop, which applies every mutation from a single consumer.
"""

from __future__ import annotations

import itertools
from collections.abc import Iterator
from typing import Any

import structlog

from workloadwatch.models.workloads import (
    OwnerDescriptor,
    Pod,
    PodRecord,
    WorkloadGroup,
    WorkloadHead,
    containers_equal,
)

_log = structlog.get_logger(component="registry")


class WorkloadRegistry:
    """Workload id -> WorkloadGroup map with deduplication and cascading removal."""

    def __init__(self) -> None:
        self._groups: dict[int, WorkloadGroup] = {}
        self._ids = itertools.count(1)

    def __len__(self) -> int:
        return len(self._groups)

    def __contains__(self, workload_id: object) -> bool:
        return workload_id in self._groups

    def __iter__(self) -> Iterator[WorkloadGroup]:
        return iter(list(self._groups.values()))

    @property
    def pod_count(self) -> int:
        """Total number of tracked pod instances across all workloads."""
        return sum(group.instance_count for group in self._groups.values())

    def allocate_id(self) -> int:
        """Return a fresh workload identifier; identifiers are never reused."""
        return next(self._ids)

    def find_or_allocate(self, pod: Pod) -> tuple[int, int]:
        """Return ``(workload_id, existing_instance_count)`` for *pod*.

        The first group whose head has a structurally equal container list
        wins.  When no group matches, a fresh identifier is allocated and the
        count is 0.  Callers decide whether the workload is new by checking
        membership, since a persisted group can have zero tracked instances.
        """
        containers = pod.containers
        for workload_id, group in self._groups.items():
            if containers_equal(containers, group.head.pod.containers):
                return workload_id, group.instance_count
        return self.allocate_id(), 0

    def get(self, workload_id: int) -> WorkloadGroup | None:
        return self._groups.get(workload_id)

    def create(self, workload_id: int, pod: Pod, owner: OwnerDescriptor) -> WorkloadHead:
        """Start a new group with *pod* as its head."""
        if workload_id in self._groups:
            raise ValueError(f"workload {workload_id} already exists")
        head = WorkloadHead(pod=pod.copy(), owner=owner, workload_id=workload_id)
        self._groups[workload_id] = WorkloadGroup(head=head)
        _log.debug("workload_created", workload_id=workload_id, owner=owner.name, kind=owner.kind)
        return head

    def remove(self, workload_id: int) -> WorkloadGroup | None:
        """Drop a whole group, head included."""
        group = self._groups.pop(workload_id, None)
        if group is not None:
            _log.debug("workload_removed", workload_id=workload_id)
        return group

    def append_record(self, workload_id: int, record: PodRecord) -> None:
        self._groups[workload_id].records.append(record)

    def remove_record(self, workload_id: int, record: PodRecord) -> None:
        group = self._groups[workload_id]
        group.records = [r for r in group.records if r is not record]

    def refresh_head(self, workload_id: int, pod: Pod, owner: OwnerDescriptor) -> WorkloadHead:
        head = self._groups[workload_id].head
        head.refresh(pod, owner)
        return head

    def find_record(self, pod_name: str) -> tuple[int, WorkloadGroup, PodRecord] | None:
        """Locate the tail record named *pod_name* in any group."""
        if not pod_name:
            return None
        for workload_id, group in self._groups.items():
            record = group.find_record(pod_name)
            if record is not None:
                return workload_id, group, record
        return None

    def find_record_for_pod(self, pod: Pod) -> tuple[int, WorkloadGroup, PodRecord] | None:
        """Locate *pod*'s record by exact name, then by its generate-name prefix.

        The fallback covers pods that were recorded before the API server
        assigned their final name.
        """
        match = self.find_record(pod.name)
        if match is None and pod.generate_name:
            match = self.find_record(pod.generate_name)
        return match

    def snapshot(self) -> list[dict[str, Any]]:
        """Serialisable view of every group, for diagnostics."""
        return [
            {
                "workloadId": workload_id,
                "head": group.head.to_dict(),
                "pods": [record.to_dict() for record in group.records],
            }
            for workload_id, group in self._groups.items()
        ]
