"""Desired-state waiter.

Polls a freshly scheduled pod until it leaves Pending.  Running and Succeeded
are the expected outcomes.  Failed and Unknown are accepted as terminal too,
so a crashing pod does not hold a waiter for the whole budget.
"""

from __future__ import annotations

import asyncio

import structlog

from workloadwatch.gateway.base import ClusterGateway, GatewayError
from workloadwatch.models.workloads import OwnerKind, Pod, PodPhase
from workloadwatch.observability.metrics import desired_state_waits_total

_log = structlog.get_logger(component="reconciler.waiter")

_SETTLED_PHASES = frozenset({PodPhase.RUNNING.value, PodPhase.SUCCEEDED.value})
_TERMINAL_PHASES = frozenset({PodPhase.FAILED.value, PodPhase.UNKNOWN.value})


class DesiredStateWaiter:
    """Waits, within a wall-clock budget, for a pod to reach a terminal phase.

    Args:
        gateway:         Source of fresh pod bodies.
        timeout_seconds: Budget measured from the start of ``wait``.
        poll_interval:   Delay between consecutive polls.
    """

    def __init__(
        self,
        gateway: ClusterGateway,
        timeout_seconds: float = 300.0,
        poll_interval: float = 1.0,
    ) -> None:
        self._gateway = gateway
        self._timeout_seconds = timeout_seconds
        self._poll_interval = poll_interval

    async def wait(self, pod: Pod) -> tuple[Pod | None, bool]:
        """Return ``(final_pod, True)`` once settled, or ``(None, False)``."""
        loop = asyncio.get_running_loop()
        deadline = loop.time() + self._timeout_seconds
        _log.info("waiting_for_desired_state", pod=pod.name, namespace=pod.namespace)

        while True:
            try:
                raw = await self._gateway.get_resource(OwnerKind.POD.value, pod.name, pod.namespace)
            except GatewayError as exc:
                _log.warning("desired_state_poll_failed", pod=pod.name, namespace=pod.namespace, error=str(exc))
                desired_state_waits_total.labels(outcome="error").inc()
                return None, False

            current = Pod.from_raw(raw)
            if current.phase in _SETTLED_PHASES:
                _log.info("pod_entered_desired_state", pod=pod.name, phase=current.phase)
                desired_state_waits_total.labels(outcome="running").inc()
                return current, True
            if current.phase in _TERMINAL_PHASES:
                _log.warning("pod_reached_terminal_phase", pod=pod.name, phase=current.phase)
                desired_state_waits_total.labels(outcome="terminal").inc()
                return current, True

            if loop.time() >= deadline:
                _log.warning(
                    "desired_state_wait_timed_out",
                    pod=pod.name,
                    namespace=pod.namespace,
                    phase=current.phase,
                    timeout_seconds=self._timeout_seconds,
                )
                desired_state_waits_total.labels(outcome="timeout").inc()
                return None, False

            await asyncio.sleep(self._poll_interval)
