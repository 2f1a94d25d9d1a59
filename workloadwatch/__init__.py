"""workloadwatch: groups cluster pods into workloads and reports their changes."""

__version__ = "0.1.0"
