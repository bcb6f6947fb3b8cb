"""Runner replica set helpers: template hashing and construction of runners."""

from __future__ import annotations

import copy
from datetime import datetime, timedelta

from runnerctl.deployment import compute_hash
from runnerctl.labels import (
    LABEL_KEY_RUNNER_TEMPLATE_HASH,
    SYNC_TIME_ANNOTATION_KEY,
    clone_and_add_label,
)
from runnerctl.resources import Runner, RunnerReplicaSet, set_controller_reference

DEFAULT_NAME = "runnerreplicaset-controller"
DEFAULT_REPLICAS = 1


def _format_rfc3339(moment: datetime) -> str:
    text = moment.strftime("%Y-%m-%dT%H:%M:%S")
    offset = moment.utcoffset()
    if offset is None or offset == timedelta(0):
        return text + "Z"
    minutes = int(offset.total_seconds()) // 60
    sign = "+" if minutes >= 0 else "-"
    hours, mins = divmod(abs(minutes), 60)
    return f"{text}{sign}{hours:02d}:{mins:02d}"


def with_template_hash(rs: RunnerReplicaSet) -> RunnerReplicaSet:
    """Return a copy of ``rs`` carrying a template hash label.

    A replica set made by a runner deployment already has one. For a replica
    set created directly, the hash is computed from its spec without the
    replica count and effective time, and added to both the replica set and
    its template. Nothing is persisted.
    """
    out = copy.deepcopy(rs)
    if out.metadata.labels is None:
        out.metadata.labels = {}

    if out.metadata.labels.get(LABEL_KEY_RUNNER_TEMPLATE_HASH, ""):
        return out

    template = copy.deepcopy(out.spec)
    template.replicas = None
    template.effective_time = None
    template_hash = compute_hash(template)

    out.metadata.labels = clone_and_add_label(
        out.metadata.labels, LABEL_KEY_RUNNER_TEMPLATE_HASH, template_hash
    )
    out.spec.template.metadata.labels = clone_and_add_label(
        out.spec.template.metadata.labels, LABEL_KEY_RUNNER_TEMPLATE_HASH, template_hash
    )
    return out


def new_runner(rs: RunnerReplicaSet, now: datetime | None = None) -> Runner:
    """Build a runner from the replica set's template, controlled by the replica set.

    Raises ValueError when the controller reference cannot be set.
    """
    if now is None:
        now = datetime.now().astimezone()
    elif now.tzinfo is None:
        now = now.astimezone()

    metadata = copy.deepcopy(rs.spec.template.metadata)
    metadata.generate_name = rs.metadata.name + "-"
    metadata.namespace = rs.metadata.namespace
    if metadata.annotations is None:
        metadata.annotations = {}
    metadata.annotations[SYNC_TIME_ANNOTATION_KEY] = _format_rfc3339(now)

    runner = Runner(metadata=metadata, spec=copy.deepcopy(rs.spec.template.spec))
    set_controller_reference(rs, runner)
    return runner