"""Pod reconciliation loop.

Consumes the cluster-wide pod watch and keeps the WorkloadRegistry in step
with it:

    ADDED     -> resolve owner, deduplicate, create workload or append pod
    MODIFIED  -> refresh the pod record (and the head when the pod spec matches)
    DELETED   -> drop the pod record; drop the workload too once its last pod
                 is gone and the owner is confirmed deleted upstream
    BOOKMARK  -> ignored
    ERROR     -> raised by the client as a stream failure; the gateway turns
                 410 Gone into a clean end so the reconnect is immediate.
                 A Status object that still arrives here is only logged

Single-writer discipline: every registry mutation happens on the consumer
side of ``_inbox``.  The watch stream is pumped into the inbox by a helper
task, and desired-state waiters post their results to the same inbox as
DesiredStateReached events instead of touching the registry themselves.
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass

import structlog

from workloadwatch.gateway.base import ClusterGateway, GatewayError
from workloadwatch.models.events import DesiredStateReached, PodWatchEvent, WatchEventType
from workloadwatch.models.reports import ChangeKind, EntityKind
from workloadwatch.models.workloads import Pod, PodPhase, PodRecord
from workloadwatch.observability.metrics import (
    desired_state_waits_total,
    pod_events_total,
    pods_tracked,
    watch_reconnects_total,
    workloads_tracked,
)
from workloadwatch.reconciler.owners import OwnerResolver
from workloadwatch.reconciler.waiter import DesiredStateWaiter
from workloadwatch.registry.workload_registry import WorkloadRegistry
from workloadwatch.reports.buffer import ReportBuffer

_log = structlog.get_logger(component="reconciler.loop")

_RECONNECT_BACKOFF_S = 10.0


@dataclass(frozen=True)
class _StreamEnded:
    """Inbox marker: the current watch stream finished or failed."""

    error: Exception | None = None


_InboxItem = PodWatchEvent | DesiredStateReached | _StreamEnded


class PodReconciler:
    """Owns the WorkloadRegistry and drives it from the pod watch stream.

    Args:
        gateway:           Cluster API access (watch, get, list).
        registry:          The workload model; mutated only by this class.
        reports:           Receives change records and the new-data signal.
        resolver:          Owner resolver; defaults to one over *gateway*.
        waiter:            Desired-state waiter; defaults to one over *gateway*.
        reconnect_backoff: Fixed delay before re-opening a failed watch.
    """

    def __init__(
        self,
        gateway: ClusterGateway,
        registry: WorkloadRegistry,
        reports: ReportBuffer,
        resolver: OwnerResolver | None = None,
        waiter: DesiredStateWaiter | None = None,
        reconnect_backoff: float = _RECONNECT_BACKOFF_S,
    ) -> None:
        self._gateway = gateway
        self._registry = registry
        self._reports = reports
        self._resolver = resolver or OwnerResolver(gateway)
        self._waiter = waiter or DesiredStateWaiter(gateway)
        self._reconnect_backoff_s = reconnect_backoff
        self._inbox: asyncio.Queue[_InboxItem] = asyncio.Queue()
        # "<namespace>/<pod name>" -> in-flight desired-state task
        self._waiters: dict[str, asyncio.Task[None]] = {}
        self._running = False
        self._task: asyncio.Task[None] | None = None

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    async def start(self) -> None:
        """Launch the watch loop as a background task.  Idempotent."""
        if self._task is not None and not self._task.done():
            return
        self._running = True
        self._task = asyncio.create_task(self.run(), name="pod-reconciler")

    async def stop(self) -> None:
        """Cancel the watch loop and every in-flight waiter."""
        self._running = False
        tasks = list(self._waiters.values())
        if self._task is not None:
            tasks.append(self._task)
        for task in tasks:
            task.cancel()
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)
        self._waiters.clear()
        self._task = None

    async def run(self) -> None:
        """Watch pods forever, reconnecting after every stream end or failure."""
        self._running = True
        _log.info("pod watch starting")
        while self._running:
            try:
                await self.run_cycle()
            except GatewayError as exc:
                _log.warning("pod_watch_unavailable", error=str(exc), retry_in=self._reconnect_backoff_s)
                await self._after_cycle(backoff=True)
            except Exception as exc:
                _log.error("pod_watch_cycle_aborted", error=str(exc), exc_info=True)
                await self._after_cycle(backoff=True)
            else:
                _log.info("pod_watch_stream_ended")
                await self._after_cycle(backoff=False)

    async def run_cycle(self) -> None:
        """Consume one watch stream from connect until it ends.

        Raises whatever broke the stream or the handling of one of its
        events.  Events still queued from the abandoned stream are discarded;
        pending waiter results are kept.
        """
        pump = asyncio.create_task(self._pump(), name="pod-watch-pump")
        try:
            while True:
                item = await self._inbox.get()
                if isinstance(item, _StreamEnded):
                    if item.error is not None:
                        raise item.error
                    return
                await self.handle(item)
        finally:
            pump.cancel()
            await asyncio.gather(pump, return_exceptions=True)
            self._discard_stream_items()

    async def drain_inbox(self) -> int:
        """Apply every queued item without waiting for more.  Returns the count."""
        handled = 0
        while not self._inbox.empty():
            item = self._inbox.get_nowait()
            if isinstance(item, _StreamEnded):
                continue
            await self.handle(item)
            handled += 1
        return handled

    async def join_waiters(self) -> None:
        """Wait for every in-flight desired-state waiter to finish."""
        while self._waiters:
            await asyncio.gather(*list(self._waiters.values()), return_exceptions=True)

    async def handle(self, item: PodWatchEvent | DesiredStateReached) -> None:
        """Apply a single inbox item to the registry."""
        if isinstance(item, DesiredStateReached):
            self._on_desired_state(item)
        else:
            await self._on_watch_event(item)
        workloads_tracked.set(len(self._registry))
        pods_tracked.set(self._registry.pod_count)

    # ------------------------------------------------------------------
    # Stream plumbing
    # ------------------------------------------------------------------

    async def _pump(self) -> None:
        stream = self._gateway.watch_pods()
        try:
            _log.info("pod watch started")
            async for event in stream:
                self._inbox.put_nowait(event)
        except Exception as exc:
            self._inbox.put_nowait(_StreamEnded(error=exc))
        else:
            self._inbox.put_nowait(_StreamEnded())
        finally:
            aclose = getattr(stream, "aclose", None)
            if aclose is not None:
                await aclose()

    def _discard_stream_items(self) -> None:
        kept: list[_InboxItem] = []
        while not self._inbox.empty():
            item = self._inbox.get_nowait()
            if isinstance(item, DesiredStateReached):
                kept.append(item)
        for item in kept:
            self._inbox.put_nowait(item)

    async def _after_cycle(self, backoff: bool) -> None:
        watch_reconnects_total.inc()
        try:
            await self.drain_inbox()
        except Exception as exc:
            _log.error("pending_patch_failed", error=str(exc), exc_info=True)
        if backoff and self._running:
            await asyncio.sleep(self._reconnect_backoff_s)

    # ------------------------------------------------------------------
    # Event handlers
    # ------------------------------------------------------------------

    async def _on_watch_event(self, event: PodWatchEvent) -> None:
        event_type = WatchEventType.parse(event.type)
        pod_events_total.labels(event_type=event_type.value if event_type else "UNKNOWN").inc()

        if event_type is WatchEventType.BOOKMARK:
            return
        if event_type is WatchEventType.ERROR:
            _log.warning(
                "pod_watch_error_event",
                code=event.raw.get("code"),
                reason=event.raw.get("reason"),
                message=event.raw.get("message"),
            )
            return
        if event.pod is None:
            _log.warning("unexpected_watch_object", event_type=event.type, kind=event.raw.get("kind"))
            return

        if event_type is WatchEventType.ADDED:
            await self._on_added(event.pod)
        elif event_type is WatchEventType.MODIFIED:
            await self._on_modified(event.pod)
        elif event_type is WatchEventType.DELETED:
            await self._on_deleted(event.pod)
        else:
            _log.warning("unknown_watch_event_type", event_type=event.type, pod=event.pod.display_name)

    async def _on_added(self, pod: Pod) -> None:
        pod_name = pod.display_name
        _log.info("pod added", pod=pod_name, namespace=pod.namespace)
        owner = await self._resolver.resolve(pod)
        workload_id, existing = self._registry.find_or_allocate(pod)

        group = self._registry.get(workload_id)
        if group is None:
            head = self._registry.create(workload_id, pod, owner)
            self._reports.add(EntityKind.MICROSERVICE, ChangeKind.CREATED, head)
            running = 1
        else:
            if group.find_record(pod_name) is not None:
                _log.debug("duplicate_pod_added_ignored", pod=pod_name, workload_id=workload_id)
                return
            running = existing + 1

        record = PodRecord.from_pod(pod, running_pods=running, owner=owner)
        self._registry.append_record(workload_id, record)
        self._reports.add(EntityKind.POD, ChangeKind.CREATED, record)
        self._reports.notify_new_data()

        if pod.phase == PodPhase.PENDING.value:
            self._spawn_waiter(workload_id, pod)

    async def _on_modified(self, pod: Pod) -> None:
        _log.info("pod modified", pod=pod.name, namespace=pod.namespace)
        match = self._registry.find_record_for_pod(pod)
        if match is None:
            _log.debug("untracked_pod_modified", pod=pod.name, namespace=pod.namespace)
            return
        workload_id, group, record = match

        owner = await self._resolver.resolve(pod)
        head_refreshed = False
        if pod.spec == group.head.pod.spec:
            self._registry.refresh_head(workload_id, pod, owner)
            head_refreshed = True
        record.refresh(pod, owner)

        self._reports.add(EntityKind.POD, ChangeKind.UPDATED, record)
        if head_refreshed:
            self._reports.add(EntityKind.MICROSERVICE, ChangeKind.UPDATED, group.head)
        self._reports.notify_new_data()

    async def _on_deleted(self, pod: Pod) -> None:
        _log.info("pod deleted", pod=pod.name, namespace=pod.namespace)
        match = self._registry.find_record_for_pod(pod)
        if match is None:
            _log.info("untracked_pod_deleted", pod=pod.name, namespace=pod.namespace)
            return
        workload_id, group, record = match
        owner = group.head.owner

        # The owner check runs before any mutation; if it raises, the registry
        # is left untouched.
        owner_gone = False
        if group.instance_count == 1:
            owner_gone = not await self._resolver.owner_exists(owner, group.head.pod.namespace)

        self._registry.remove_record(workload_id, record)
        self._cancel_waiter(pod.namespace, record.pod_name)

        removed = PodRecord(
            pod_name=pod.name or record.pod_name,
            running_pods=record.running_pods - 1,
            node_name=pod.node_name,
            pod_ip=pod.pod_ip,
            namespace=pod.namespace,
            owner=owner.summary(),
        )
        self._reports.add(EntityKind.POD, ChangeKind.DELETED, removed)

        if group.instance_count == 0:
            if owner_gone:
                self._registry.remove(workload_id)
                self._reports.add(EntityKind.MICROSERVICE, ChangeKind.DELETED, group.head)
                _log.info("workload removed", workload_id=workload_id, owner=owner.name, kind=owner.kind)
            else:
                _log.info(
                    "workload_persists_without_pods",
                    workload_id=workload_id,
                    owner=owner.name,
                    kind=owner.kind,
                )

        self._reports.notify_new_data()

    def _on_desired_state(self, event: DesiredStateReached) -> None:
        group = self._registry.get(event.workload_id)
        if group is None:
            _log.debug("desired_state_patch_dropped", workload_id=event.workload_id, reason="workload_removed")
            return
        if group.head.revision != event.revision:
            _log.debug("desired_state_patch_dropped", workload_id=event.workload_id, reason="head_changed")
            return

        head = self._registry.refresh_head(event.workload_id, event.pod, event.owner)
        self._reports.add(EntityKind.MICROSERVICE, ChangeKind.UPDATED, head)
        self._reports.notify_new_data()

    # ------------------------------------------------------------------
    # Desired-state waiters
    # ------------------------------------------------------------------

    def _spawn_waiter(self, workload_id: int, pod: Pod) -> None:
        key = f"{pod.namespace}/{pod.display_name}"
        existing = self._waiters.get(key)
        if existing is not None and not existing.done():
            return
        revision = self._registry.get(workload_id).head.revision  # type: ignore[union-attr]
        task = asyncio.create_task(
            self._await_desired_state(workload_id, pod.copy(), revision),
            name=f"desired-state-{key}",
        )
        self._waiters[key] = task
        task.add_done_callback(lambda done, key=key: self._forget_waiter(key, done))

    def _forget_waiter(self, key: str, task: asyncio.Task[None]) -> None:
        if self._waiters.get(key) is task:
            del self._waiters[key]

    def _cancel_waiter(self, namespace: str, pod_name: str) -> None:
        task = self._waiters.get(f"{namespace}/{pod_name}")
        if task is not None and not task.done():
            task.cancel()

    async def _await_desired_state(self, workload_id: int, pod: Pod, revision: int) -> None:
        try:
            final, reached = await self._waiter.wait(pod)
            if not reached or final is None:
                return
            owner = await self._resolver.resolve(final)
        except asyncio.CancelledError:
            desired_state_waits_total.labels(outcome="cancelled").inc()
            raise
        except Exception as exc:
            _log.error("desired_state_waiter_failed", pod=pod.display_name, error=str(exc))
            return
        self._inbox.put_nowait(DesiredStateReached(workload_id=workload_id, pod=final, owner=owner, revision=revision))
