"""HTTP report shipper.

Waits for the reconciliation loop to signal new data, lets further changes
accumulate for ``flush_interval`` seconds, then POSTs everything buffered as a
single JSON report.  Failed deliveries are re-queued and retried after
``retry_delay`` seconds.
"""

from __future__ import annotations

import asyncio

import httpx
import structlog

from workloadwatch.observability.metrics import reports_shipped_total
from workloadwatch.reports.buffer import ReportBuffer, build_report

_log = structlog.get_logger(component="reports.shipper")

_RETRY_DELAY_S = 5.0


class ReportShipper:
    """Delivers buffered change records to the collector endpoint.

    Args:
        buffer:         Source of change records and the new-data signal.
        url:            Full collector endpoint URL.
        cluster_name:   Cluster identity stamped on every report.
        customer_guid:  Tenant identity stamped on every report.
        flush_interval: Debounce delay between the signal and the POST.
        timeout:        HTTP request timeout in seconds.
        retry_delay:    Pause before re-sending a batch the collector refused.
        transport:      Optional httpx transport (tests inject a MockTransport).
    """

    def __init__(
        self,
        buffer: ReportBuffer,
        url: str,
        cluster_name: str,
        customer_guid: str = "",
        flush_interval: float = 5.0,
        timeout: float = 10.0,
        retry_delay: float = _RETRY_DELAY_S,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        if not url:
            raise ValueError("Report url must not be empty")
        self._buffer = buffer
        self._url = url
        self._cluster_name = cluster_name
        self._customer_guid = customer_guid
        self._flush_interval = flush_interval
        self._timeout = timeout
        self._retry_delay = retry_delay
        self._transport = transport
        self._task: asyncio.Task[None] | None = None

    async def start(self) -> None:
        if self._task is not None and not self._task.done():
            return
        self._task = asyncio.create_task(self._run(), name="report-shipper")

    async def stop(self) -> None:
        """Cancel the loop and make a last delivery attempt."""
        if self._task is not None:
            self._task.cancel()
            await asyncio.gather(self._task, return_exceptions=True)
            self._task = None
        await self.flush()

    async def _run(self) -> None:
        while True:
            await self._buffer.wait_for_new_data()
            if self._flush_interval > 0:
                await asyncio.sleep(self._flush_interval)
            if not await self.flush():
                _log.info("report_retry_scheduled", retry_in=self._retry_delay, pending=len(self._buffer))
                if self._retry_delay > 0:
                    await asyncio.sleep(self._retry_delay)
                self._buffer.notify_new_data()

    async def flush(self) -> bool:
        """POST everything buffered.  Returns True if nothing is left pending."""
        records = self._buffer.drain()
        if not records:
            return True

        payload = build_report(
            records,
            cluster_name=self._cluster_name,
            customer_guid=self._customer_guid,
            first_report=self._buffer.first_report,
        )
        delivered = await self._post(payload, len(records))
        reports_shipped_total.labels(success="true" if delivered else "false").inc()
        if not delivered:
            self._buffer.requeue(records)
            return False

        self._buffer.first_report = False
        _log.info("report_shipped", records=len(records), cluster=self._cluster_name)
        return True

    async def _post(self, payload: dict[str, object], record_count: int) -> bool:
        try:
            async with httpx.AsyncClient(timeout=self._timeout, transport=self._transport) as client:
                response = await client.post(self._url, json=payload)
                if response.is_success:
                    return True
                _log.warning(
                    "report_non_2xx_response",
                    status_code=response.status_code,
                    body=response.text[:200],
                    records=record_count,
                )
                return False
        except httpx.TimeoutException:
            _log.warning("report_request_timeout", url=self._url, records=record_count)
            return False
        except httpx.HTTPError as exc:
            _log.warning("report_http_error", error=str(exc), records=record_count)
            return False
