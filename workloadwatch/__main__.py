"""Entry point for `python -m workloadwatch`."""

from workloadwatch.app import run

run()
