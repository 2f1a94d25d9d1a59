"""Watch-stream event structures."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import StrEnum
from typing import Any

from workloadwatch.models.workloads import OwnerDescriptor, Pod


class WatchEventType(StrEnum):
    """Event types delivered on a pod watch stream."""

    ADDED = "ADDED"
    MODIFIED = "MODIFIED"
    DELETED = "DELETED"
    BOOKMARK = "BOOKMARK"
    ERROR = "ERROR"

    @classmethod
    def parse(cls, value: str) -> WatchEventType | None:
        """Map a raw watch type to a member; ``MODIFY`` is accepted as MODIFIED."""
        if value == "MODIFY":
            return cls.MODIFIED
        try:
            return cls(value)
        except ValueError:
            return None


@dataclass(frozen=True)
class PodWatchEvent:
    """A single event from the pod watch stream.

    ``pod`` is None when the event did not carry a pod body (ERROR events, or
    an unexpected object kind).
    """

    type: str
    pod: Pod | None
    raw: dict[str, Any] = field(default_factory=dict)

    @classmethod
    def from_raw(cls, event_type: str, raw_object: Any) -> PodWatchEvent:
        raw = raw_object if isinstance(raw_object, dict) else {}
        pod: Pod | None = None
        kind = raw.get("kind")
        if raw.get("metadata") and kind in (None, "", "Pod") and "spec" in raw:
            pod = Pod.from_raw(raw)
        return cls(type=event_type, pod=pod, raw=raw)


@dataclass(frozen=True)
class DesiredStateReached:
    """Synthetic event posted by a desired-state waiter when its pod settles.

    ``revision`` is the head revision captured when the waiter was spawned.
    """

    workload_id: int
    pod: Pod
    owner: OwnerDescriptor
    revision: int
