"""Reconciliation of runner deployments into runner replica sets."""

from __future__ import annotations

import copy
import logging
from datetime import timedelta

from runnerctl.hashing import fnv_hash_string_objects
from runnerctl.labels import (
    LABEL_KEY_RUNNER_DEPLOYMENT_NAME,
    LABEL_KEY_RUNNER_TEMPLATE_HASH,
    clone_and_add_label,
    clone_selector_and_add_label,
)
from runnerctl.resources import (
    EVENT_TYPE_NORMAL,
    GROUP_VERSION,
    Client,
    EventRecorder,
    LabelSelector,
    NamespacedName,
    NotFoundError,
    ObjectMeta,
    Result,
    RunnerDeployment,
    RunnerDeploymentStatus,
    RunnerReplicaSet,
    RunnerReplicaSetSpec,
    get_controller_of,
    set_controller_reference,
)

DEFAULT_NAME = "runnerdeployment-controller"
REQUEUE_DELAY = timedelta(seconds=5)
_DEFAULT_REPLICAS = 1

_log = logging.getLogger(__name__)


def compute_hash(template: object) -> str:
    """Hash a template into a short string free of vowels."""
    return fnv_hash_string_objects(template)


def get_int_or_default(value: int | None, default: int) -> int:
    return default if value is None else value


def get_template_hash(rs: RunnerReplicaSet) -> str | None:
    """Return the template hash label of a replica set, or None if it is missing."""
    return rs.metadata.labels.get(LABEL_KEY_RUNNER_TEMPLATE_HASH) if rs.metadata.labels else None


def get_selector(rd: RunnerDeployment) -> LabelSelector:
    """Return the deployment's selector, or one matching its name by default."""
    if rd.spec.selector is not None:
        return rd.spec.selector
    return LabelSelector(match_labels={LABEL_KEY_RUNNER_DEPLOYMENT_NAME: rd.metadata.name})


def new_runner_replica_set(
    rd: RunnerDeployment, common_runner_labels: list[str] | tuple[str, ...] = ()
) -> RunnerReplicaSet:
    """Build the replica set a deployment wants, labelled with its template hash."""
    template = copy.deepcopy(rd.spec.template)
    template.spec.labels = list(template.spec.labels) + list(common_runner_labels)

    template_hash = compute_hash(template)

    labels = clone_and_add_label(
        template.metadata.labels, LABEL_KEY_RUNNER_TEMPLATE_HASH, template_hash
    )
    labels = clone_and_add_label(labels, LABEL_KEY_RUNNER_DEPLOYMENT_NAME, rd.metadata.name)
    template.metadata.labels = labels or {}

    selector = clone_selector_and_add_label(
        get_selector(rd), LABEL_KEY_RUNNER_TEMPLATE_HASH, template_hash
    )

    rs = RunnerReplicaSet(
        metadata=ObjectMeta(
            generate_name=rd.metadata.name + "-",
            namespace=rd.metadata.namespace,
            labels=dict(template.metadata.labels),
        ),
        spec=RunnerReplicaSetSpec(
            replicas=rd.spec.replicas,
            selector=selector,
            template=template,
            effective_time=rd.spec.effective_time,
        ),
    )
    set_controller_reference(rd, rs)
    return rs


def owner_index(obj: RunnerReplicaSet) -> list[str]:
    """Return the name of the controlling runner deployment, if there is one."""
    owner = get_controller_of(obj)
    if owner is None:
        return []
    if owner.api_version != GROUP_VERSION or owner.kind != RunnerDeployment.kind:
        return []
    return [owner.name]


class RunnerDeploymentReconciler:
    """Keeps runner replica sets in line with their runner deployments."""

    def __init__(
        self,
        client: Client,
        *,
        recorder: EventRecorder | None = None,
        common_runner_labels: list[str] | tuple[str, ...] = (),
        name: str = "",
        logger: logging.Logger | None = None,
    ) -> None:
        self.client = client
        self.name = name or DEFAULT_NAME
        self.recorder = recorder if recorder is not None else EventRecorder(self.name)
        self.common_runner_labels = list(common_runner_labels)
        self.log = logger or _log

    def new_runner_replica_set(self, rd: RunnerDeployment) -> RunnerReplicaSet:
        return new_runner_replica_set(rd, self.common_runner_labels)

    def reconcile(self, request: NamespacedName) -> Result:
        log = self.log
        try:
            rd = self.client.get(RunnerDeployment, request)
        except NotFoundError:
            return Result()

        if rd.metadata.deletion_timestamp is not None:
            return Result()

        replica_sets = self.client.list(
            RunnerReplicaSet,
            namespace=request.namespace,
            predicate=lambda obj: owner_index(obj) == [request.name],
        )
        replica_sets.sort(key=lambda rs: rs.metadata.creation_timestamp, reverse=True)

        newest = replica_sets[0] if replica_sets else None
        old_sets = replica_sets[1:]

        try:
            desired = self.new_runner_replica_set(rd)
        except ValueError as exc:
            self.recorder.event(rd, EVENT_TYPE_NORMAL, "RunnerAutoscalingFailure", str(exc))
            log.error("Could not create runnerreplicaset: %s", exc)
            raise

        if newest is None:
            self.client.create(desired)
            log.info("Created runnerreplicaset %s", desired.metadata.name)
            return Result()

        newest_hash = get_template_hash(newest)
        if newest_hash is None:
            log.info(
                "Failed to get template hash of newest runnerreplicaset resource. It must be in "
                "an invalid state. Please manually delete the runnerreplicaset so that it is recreated"
            )
            return Result()

        desired_hash = get_template_hash(desired)
        if desired_hash is None:
            log.info(
                "Failed to get template hash of desired runnerreplicaset resource. It must be in "
                "an invalid state. Please manually delete the runnerreplicaset so that it is recreated"
            )
            return Result()

        if newest_hash != desired_hash:
            self.client.create(desired)
            log.info("Created runnerreplicaset %s", desired.metadata.name)
            # Requeue so that old replica sets are cleaned up soon.
            return Result(requeue_after=REQUEUE_DELAY)

        if newest.spec.selector != desired.spec.selector:
            updated = copy.deepcopy(newest)
            updated.spec = copy.deepcopy(desired.spec)
            self.client.update(updated)
            return Result(requeue_after=REQUEUE_DELAY)

        current_desired = get_int_or_default(newest.spec.replicas, _DEFAULT_REPLICAS)
        new_desired = get_int_or_default(desired.spec.replicas, _DEFAULT_REPLICAS)

        if current_desired != new_desired or newest.spec.effective_time != rd.spec.effective_time:
            newest.spec.replicas = new_desired
            newest.spec.effective_time = rd.spec.effective_time
            self.client.update(newest)
            return Result()

        if old_sets:
            ready = newest.status.ready_replicas or 0
            if ready < current_desired:
                log.info(
                    "Waiting until the newest runnerreplicaset %s to be 100%% available "
                    "(ready=%d desired=%d old=%d)",
                    newest.namespaced_name,
                    ready,
                    current_desired,
                    len(old_sets),
                )
                return Result()

            log.info(
                "The newest runnerreplicaset is 100%% available. Deleting old runnerreplicasets"
            )

            for rs in old_sets:
                name = rs.metadata.name
                if rs.status.replicas is not None and rs.status.replicas > 0:
                    if rs.spec.replicas == 0:
                        log.debug("Waiting for runnerreplicaset %s to scale to zero", name)
                        continue
                    updated = copy.deepcopy(rs)
                    updated.spec.replicas = 0
                    self.client.update(updated)
                    log.info("Scaled runnerreplicaset %s to zero", name)
                    continue

                self.client.delete(rs)
                self.recorder.event(
                    rd,
                    EVENT_TYPE_NORMAL,
                    "RunnerReplicaSetDeleted",
                    f"Deleted runnerreplicaset '{name}'",
                )
                log.info("Deleted runnerreplicaset %s", name)

        all_sets = [newest, *old_sets]
        total_current = sum(rs.status.replicas or 0 for rs in all_sets)
        total_available = sum(rs.status.available_replicas or 0 for rs in all_sets)
        updated_replicas = newest.status.replicas or 0

        status = RunnerDeploymentStatus(
            available_replicas=total_available,
            ready_replicas=total_available,
            desired_replicas=new_desired,
            replicas=total_current,
            updated_replicas=updated_replicas,
        )

        if rd.status != status:
            updated_rd = copy.deepcopy(rd)
            updated_rd.status = status
            try:
                self.client.patch_status(updated_rd)
            except (NotFoundError, ValueError) as exc:
                log.info("Failed to patch runnerdeployment status. Retrying immediately: %s", exc)
                return Result(requeue=True)

        return Result()