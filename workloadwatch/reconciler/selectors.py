"""Label selector evaluation against pod labels."""

from __future__ import annotations

from typing import Any


def selector_matches(selector: dict[str, Any] | None, labels: dict[str, str]) -> bool:
    """Return True if *labels* satisfy a metav1.LabelSelector body.

    An empty or missing selector matches nothing, so an unscoped controller
    is never picked as the owner of an arbitrary pod.
    """
    if not selector:
        return False
    match_labels: dict[str, str] = selector.get("matchLabels") or {}
    expressions: list[dict[str, Any]] = selector.get("matchExpressions") or []
    if not match_labels and not expressions:
        return False

    for key, value in match_labels.items():
        if labels.get(key) != value:
            return False
    return all(_expression_matches(expr, labels) for expr in expressions)


def _expression_matches(expr: dict[str, Any], labels: dict[str, str]) -> bool:
    key = str(expr.get("key", ""))
    operator = str(expr.get("operator", ""))
    values = set(expr.get("values") or [])

    if operator == "In":
        return key in labels and labels[key] in values
    if operator == "NotIn":
        return key not in labels or labels[key] not in values
    if operator == "Exists":
        return key in labels
    if operator == "DoesNotExist":
        return key not in labels
    # Unknown operators never match.
    return False
