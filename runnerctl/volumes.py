"""Bookkeeping of persistent volumes left behind by runner stateful sets."""

from __future__ import annotations

import copy
import logging
from collections.abc import Iterable
from datetime import timedelta

from runnerctl.logsetup import level_for_verbosity
from runnerctl.resources import (
    Client,
    NamespacedName,
    NotFoundError,
    PersistentVolume,
    PersistentVolumeClaim,
    Result,
    StatefulSet,
)

LABEL_KEY_CLEANUP = "pending-cleanup"
LABEL_KEY_RUNNER_STATEFULSET_NAME = "runner-statefulset-name"
VOLUME_RELEASED = "Released"
RETRY_DELAY = timedelta(seconds=10)

_log = logging.getLogger(__name__)
_V1 = level_for_verbosity(1)
_V2 = level_for_verbosity(2)


def sync_volumes(
    client: Client,
    namespace: str,
    volume_claim_templates: Iterable[PersistentVolumeClaim],
    statefulsets: Iterable[StatefulSet],
) -> Result | None:
    """Label each stateful set's claims with the stateful set's name."""
    statefulsets = list(statefulsets)
    for template in volume_claim_templates:
        for sts in statefulsets:
            pvc_name = f"{template.metadata.name}-{sts.metadata.name}-0"
            try:
                pvc = client.get(PersistentVolumeClaim, NamespacedName(namespace, pvc_name))
            except NotFoundError:
                continue

            if not pvc.metadata.labels.get(LABEL_KEY_RUNNER_STATEFULSET_NAME, ""):
                updated = copy.deepcopy(pvc)
                updated.metadata.labels[LABEL_KEY_RUNNER_STATEFULSET_NAME] = sts.metadata.name
                client.update(updated)
                _log.log(
                    _V1,
                    "Added runner-statefulset-name label to PVC ns=%s sts=%s pvc=%s",
                    namespace,
                    sts.metadata.name,
                    pvc_name,
                )
    return None


def sync_pvc(client: Client, namespace: str, pvc: PersistentVolumeClaim) -> Result | None:
    """Release a claim whose stateful set is gone, marking its volume for cleanup."""
    sts_name = pvc.metadata.labels.get(LABEL_KEY_RUNNER_STATEFULSET_NAME, "")
    if not sts_name:
        return None

    _log.log(_V2, "Reconciling runner PVC %s", pvc.metadata.name)

    try:
        client.get(StatefulSet, NamespacedName(namespace, sts_name))
    except NotFoundError:
        pass
    else:
        # The stateful set should be gone shortly; keep retrying until it is.
        _log.log(_V1, "Retrying sync until statefulset gets removed requeueAfter=%s", RETRY_DELAY)
        return Result(requeue_after=RETRY_DELAY)

    pv_name = pvc.volume_name
    if not pv_name:
        return None

    # The volume is marked before the claim is deleted, otherwise the claim
    # reference on the volume tends to come back.
    try:
        pv = client.get(PersistentVolume, NamespacedName(namespace, pv_name))
    except NotFoundError:
        return None

    pv_copy = copy.deepcopy(pv)
    if pv_copy.metadata.labels is None:
        pv_copy.metadata.labels = {}
    pv_copy.metadata.labels[LABEL_KEY_CLEANUP] = sts_name

    _log.log(_V2, "Scheduling to unset PV's claimRef pv=%s sts=%s", pv.metadata.name, sts_name)
    client.update(pv_copy)
    _log.info("Updated PV to unset claimRef sts=%s", sts_name)

    _log.log(_V2, "Deleting unused PVC sts=%s", sts_name)
    client.delete(pvc)
    _log.info("Deleted unused PVC sts=%s", sts_name)

    return None


def sync_pv(client: Client, pv: PersistentVolume) -> Result | None:
    """Unset the claim reference of a released volume marked for cleanup."""
    if pv.claim_ref is None:
        return None

    _log.log(_V2, "Reconciling PV %s", pv.metadata.name)

    if not pv.metadata.labels.get(LABEL_KEY_CLEANUP, ""):
        _log.log(
            _V2,
            "Retrying sync to see if this PV needs to be managed by ARC requeueAfter=%s",
            RETRY_DELAY,
        )
        return Result(requeue_after=RETRY_DELAY)

    _log.log(_V2, "checking pv phase phase=%s", pv.phase)

    if pv.phase != VOLUME_RELEASED:
        _log.log(_V1, "Retrying sync until pvc gets released requeueAfter=%s", RETRY_DELAY)
        return Result(requeue_after=RETRY_DELAY)

    pv_copy = copy.deepcopy(pv)
    pv_copy.metadata.labels.pop(LABEL_KEY_CLEANUP, None)
    pv_copy.claim_ref = None
    _log.log(_V2, "Unsetting PV's claimRef pv=%s", pv.metadata.name)
    client.update(pv_copy)
    _log.info("PV should be Available now")

    return None