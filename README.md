# runnerctl

`runnerctl` is a library that holds the core logic for managing a fleet of
self-hosted CI runners. It has in-memory resource models and a client that
stores them. It has reconcilers for runner deployments and a few helpers for
replica sets. It hashes templates deterministically and matches recurring
schedules. It has helpers that clean up volumes, and an HTTP adapter that logs
round trips. For tests, it has a fake runners API.

## Installation

```
pip install runnerctl
```

To run the test suite:

```
pip install "runnerctl[test]"
pytest
```

## Modules

- `runnerctl.resources` holds the resource dataclasses: `RunnerDeployment`,
  `RunnerReplicaSet`, `Runner`, `PersistentVolumeClaim`, `PersistentVolume`,
  `StatefulSet`, `ObjectMeta`, `LabelSelector` and others.
  - `LabelSelector.matches(labels)` supports match labels and the `In`,
    `NotIn`, `Exists` and `DoesNotExist` operators.
  - `Client` is an in-memory store. It supports `get`, `list`, `create`,
    `update`, `patch_status` and `delete`, and raises `NotFoundError` for
    missing objects. It stores and returns copies. It fills in names from
    `generate_name`, and sets the UID and the creation timestamp.
  - `EventRecorder` collects the events that the reconcilers emit.
  - `set_controller_reference` and `get_controller_of` manage owner
    references.
- `runnerctl.hashing` provides `Fnv32a`, `deep_format`, `deep_hash_object`,
  `safe_encode_string` and `fnv_hash_string_objects`. Together they give
  stable, vowel-free hashes of nested objects.
- `runnerctl.labels` provides `filter_labels`, `clone_and_add_label` and
  `clone_selector_and_add_label`.
- `runnerctl.schedule` provides `match_schedule`. It returns the active and
  the upcoming `Period` for a one-time `RecurrenceRule`, or for a `Daily`,
  `Weekly`, `Monthly` or `Yearly` one. `format_period` renders a period, and
  renders `None` as an empty string.
- `runnerctl.deployment` provides `RunnerDeploymentReconciler`. Its
  `reconcile(request)` creates, updates, scales down and deletes runner replica
  sets, and patches the deployment's status. The module also provides
  `compute_hash`, `new_runner_replica_set`, `get_selector`,
  `get_template_hash`, `get_int_or_default` and `owner_index`.
- `runnerctl.replicaset` provides two helpers:
  - `with_template_hash` adds a template hash label to a replica set that
    lacks one.
  - `new_runner` builds a runner from a replica set's template, with a
    `sync-time` annotation.
- `runnerctl.volumes` provides `sync_volumes`, `sync_pvc` and `sync_pv`.
  They label claims with the name of their stateful set, and release the
  volumes of stateful sets that have been removed.
- `runnerctl.logsetup` provides three things:
  - `new_logger(log_level)` accepts `debug`, `info`, `warn`, `error` or a
    numeric level such as `-2`.
  - `level_for_verbosity` maps a verbosity to a logging level.
  - `LoggingAdapter` is a `requests` adapter that logs each response, together
    with its remaining rate limit.
- `runnerctl.fakegithub` provides `RunnersList`, a fake self-hosted runners
  API. `serve()` starts it on a local port. The server it returns has a `url`,
  can be closed, and works as a context manager.
- `runnerctl.resourcereader` provides `ResourceReader`, a read-only lookup of
  stored objects by `NamespacedName`.

## Schedule example

```python
from datetime import datetime
from runnerctl.schedule import RecurrenceRule, match_schedule, format_period

now = datetime.fromisoformat("2021-05-08T00:00:00+09:00")
start = datetime.fromisoformat("2021-05-01T00:00:00+09:00")
end = datetime.fromisoformat("2021-05-03T00:00:00+09:00")

active, upcoming = match_schedule(now, start, end, RecurrenceRule(frequency="Weekly"))
print(format_period(active))    # 2021-05-08T00:00:00+09:00-2021-05-10T00:00:00+09:00
print(format_period(upcoming))  # 2021-05-15T00:00:00+09:00-2021-05-17T00:00:00+09:00
```

`match_schedule` raises `ValueError` for an unknown frequency. It also raises
`ValueError` when an override lasts longer than its recurrence interval.

## What this package does not do

- It has no command-line program and no long-running controller. The
  reconcilers run against the in-memory `Client`, not against a live cluster.
- It does not export rate-limit metrics.
- It has no tooling to download, sign or upload release assets.