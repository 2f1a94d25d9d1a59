"""Report buffer.

Collects change records between shipments and carries the "new data
available" signal from the reconciliation loop to whatever ships reports.
The buffer is bounded: once full, the oldest records are discarded first.
"""

from __future__ import annotations

import asyncio
import copy
from collections import deque
from typing import Any

import structlog

from workloadwatch.models.reports import ChangeKind, ChangeRecord, EntityKind
from workloadwatch.models.workloads import PodRecord, WorkloadHead
from workloadwatch.observability.metrics import report_records_dropped_total

_log = structlog.get_logger(component="reports.buffer")

_DEFAULT_MAX_RECORDS = 10_000

# EntityKind -> top-level report section
_SECTIONS = {
    EntityKind.MICROSERVICE: "microServices",
    EntityKind.POD: "pods",
}
# ChangeKind -> key inside a section
_CHANGE_KEYS = {
    ChangeKind.CREATED: "create",
    ChangeKind.UPDATED: "update",
    ChangeKind.DELETED: "delete",
}


class ReportBuffer:
    """Ordered, in-process accumulation of ChangeRecords.

    ``first_report`` stays True until the first batch has been delivered, so
    the collector can tell an initial full sync from incremental updates.

    Args:
        max_records: Capacity.  Records beyond it push out the oldest ones
                     and are counted in ``report_records_dropped_total``.
    """

    def __init__(self, max_records: int = _DEFAULT_MAX_RECORDS) -> None:
        if max_records < 1:
            raise ValueError(f"max_records must be positive, got {max_records}")
        self._max_records = max_records
        self._records: deque[ChangeRecord] = deque(maxlen=max_records)
        self._new_data = asyncio.Event()
        self._dropped = 0
        self.first_report = True

    def __len__(self) -> int:
        return len(self._records)

    @property
    def records(self) -> list[ChangeRecord]:
        return list(self._records)

    @property
    def dropped(self) -> int:
        """Records discarded since creation because the buffer was full."""
        return self._dropped

    def add(
        self,
        entity_kind: EntityKind,
        change_kind: ChangeKind,
        payload: PodRecord | WorkloadHead,
    ) -> ChangeRecord:
        """Record a change, snapshotting *payload* at call time."""
        record = ChangeRecord(
            entity_kind=entity_kind,
            change_kind=change_kind,
            payload=copy.deepcopy(payload),
        )
        if len(self._records) == self._max_records:
            self._count_dropped(1)
        self._records.append(record)
        return record

    def notify_new_data(self) -> None:
        self._new_data.set()

    async def wait_for_new_data(self) -> None:
        """Block until new data is signalled, then clear the signal."""
        await self._new_data.wait()
        self._new_data.clear()

    def drain(self) -> list[ChangeRecord]:
        records = list(self._records)
        self._records.clear()
        return records

    def requeue(self, records: list[ChangeRecord]) -> None:
        """Put undelivered *records* back ahead of anything recorded since.

        When the combined backlog exceeds capacity the oldest records go.
        """
        combined = [*records, *self._records]
        overflow = len(combined) - self._max_records
        if overflow > 0:
            self._count_dropped(overflow)
            combined = combined[overflow:]
        self._records = deque(combined, maxlen=self._max_records)

    def _count_dropped(self, count: int) -> None:
        if self._dropped == 0:
            _log.warning("report_buffer_full", max_records=self._max_records)
        self._dropped += count
        report_records_dropped_total.inc(count)


def build_report(
    records: list[ChangeRecord],
    cluster_name: str,
    customer_guid: str,
    first_report: bool,
) -> dict[str, Any]:
    """Group *records* into the collector's report document."""
    report: dict[str, Any] = {
        "clusterName": cluster_name,
        "customerGUID": customer_guid,
        "firstReport": first_report,
    }
    for section in _SECTIONS.values():
        report[section] = {key: [] for key in _CHANGE_KEYS.values()}
    for record in records:
        section = _SECTIONS[record.entity_kind]
        report[section][_CHANGE_KEYS[record.change_kind]].append(record.payload.to_dict())
    return report
