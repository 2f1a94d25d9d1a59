"""Change records produced for downstream reporting."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import UTC, datetime
from enum import StrEnum
from typing import Any

from workloadwatch.models.workloads import PodRecord, WorkloadHead


class EntityKind(StrEnum):
    """Kind of entity a change record describes."""

    POD = "Pod"
    MICROSERVICE = "MicroService"


class ChangeKind(StrEnum):
    CREATED = "Created"
    UPDATED = "Updated"
    DELETED = "Deleted"


@dataclass(frozen=True)
class ChangeRecord:
    """A create/update/delete notification for a pod instance or a workload.

    The payload is a snapshot taken when the record was produced; later
    registry mutations do not leak into already-recorded changes.
    """

    entity_kind: EntityKind
    change_kind: ChangeKind
    payload: PodRecord | WorkloadHead
    recorded_at: datetime = field(default_factory=lambda: datetime.now(tz=UTC))

    def to_dict(self) -> dict[str, Any]:
        return {
            "entityKind": self.entity_kind.value,
            "changeKind": self.change_kind.value,
            "payload": self.payload.to_dict(),
        }
