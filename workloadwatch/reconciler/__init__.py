"""Pod reconciliation engine.

Submodules
----------
selectors -- metav1.LabelSelector evaluation against pod labels.
owners    -- OwnerResolver: walks owner references to the top-level controller.
waiter    -- DesiredStateWaiter: polls a pending pod until it settles.
loop      -- PodReconciler: watch loop, event state machine, reconnects.
"""

from workloadwatch.reconciler.loop import PodReconciler
from workloadwatch.reconciler.owners import OwnerResolver
from workloadwatch.reconciler.selectors import selector_matches
from workloadwatch.reconciler.waiter import DesiredStateWaiter

__all__ = [
    "DesiredStateWaiter",
    "OwnerResolver",
    "PodReconciler",
    "selector_matches",
]
