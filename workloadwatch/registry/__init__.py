"""Workload registry for workloadwatch.

Submodules:
    workload_registry -- Deduplicating workload id -> WorkloadGroup map.
"""

from workloadwatch.registry.workload_registry import WorkloadRegistry

__all__ = ["WorkloadRegistry"]
