"""Label and selector helpers."""

from __future__ import annotations

from runnerctl.resources import LabelSelector, LabelSelectorRequirement

LABEL_KEY_RUNNER_TEMPLATE_HASH = "runner-template-hash"
LABEL_KEY_RUNNER_DEPLOYMENT_NAME = "runner-deployment-name"
SYNC_TIME_ANNOTATION_KEY = "sync-time"


def filter_labels(labels: dict[str, str] | None, filter_key: str) -> dict[str, str]:
    """Return a copy of ``labels`` without ``filter_key``."""
    return {k: v for k, v in (labels or {}).items() if k != filter_key}


def clone_and_add_label(
    labels: dict[str, str] | None, label_key: str, label_value: str
) -> dict[str, str] | None:
    """Return a copy of ``labels`` with the label added; ``labels`` itself if the key is empty."""
    if not label_key:
        return labels
    cloned = dict(labels or {})
    cloned[label_key] = label_value
    return cloned


def clone_selector_and_add_label(
    selector: LabelSelector, label_key: str, label_value: str
) -> LabelSelector:
    """Return a copy of ``selector`` matching the label too; ``selector`` itself if the key is empty."""
    if not label_key:
        return selector
    match_labels = dict(selector.match_labels or {})
    match_labels[label_key] = label_value
    expressions = None
    if selector.match_expressions is not None:
        expressions = [
            LabelSelectorRequirement(
                key=req.key,
                operator=req.operator,
                values=list(req.values) if req.values is not None else None,
            )
            for req in selector.match_expressions
        ]
    return LabelSelector(match_labels=match_labels, match_expressions=expressions)