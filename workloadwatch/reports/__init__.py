"""Change reporting for workloadwatch.

Exports:
    ReportBuffer   -- Accumulates ChangeRecords and carries the new-data signal.
    ReportShipper  -- Debounced JSON POST of buffered records via httpx.
    build_report   -- Groups records into the collector's report document.
"""

from workloadwatch.reports.buffer import ReportBuffer, build_report
from workloadwatch.reports.shipper import ReportShipper

__all__ = ["ReportBuffer", "ReportShipper", "build_report"]
