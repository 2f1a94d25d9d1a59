"""Logging and metrics for workloadwatch."""
