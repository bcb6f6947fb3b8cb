from datetime import datetime, timezone

import pytest

from runnerctl.resources import (
    Client,
    EventRecorder,
    LabelSelector,
    LabelSelectorRequirement,
    NamespacedName,
    NotFoundError,
    ObjectMeta,
    PersistentVolume,
    RunnerDeployment,
    RunnerReplicaSet,
    RunnerReplicaSetStatus,
    get_controller_of,
    set_controller_reference,
)


def _rs(name, namespace="default", labels=None):
    return RunnerReplicaSet(metadata=ObjectMeta(name=name, namespace=namespace, labels=labels or {}))


def test_create_with_generate_name_and_get():
    client = Client()
    rs = RunnerReplicaSet(metadata=ObjectMeta(generate_name="example-", namespace="default"))
    created = client.create(rs)
    assert created.metadata.name.startswith("example-")
    assert len(created.metadata.name) == len("example-") + 5
    fetched = client.get(RunnerReplicaSet, NamespacedName("default", created.metadata.name))
    assert fetched == created
    assert fetched.metadata.uid == created.metadata.uid


def test_get_missing_raises():
    client = Client()
    with pytest.raises(NotFoundError):
        client.get(RunnerReplicaSet, NamespacedName("default", "nope"))


def test_get_returns_copy():
    client = Client([_rs("a", labels={"foo": "bar"})])
    first = client.get(RunnerReplicaSet, NamespacedName("default", "a"))
    first.metadata.labels["foo"] = "changed"
    again = client.get(RunnerReplicaSet, NamespacedName("default", "a"))
    assert again.metadata.labels == {"foo": "bar"}


def test_create_duplicate_and_nameless_raise():
    client = Client([_rs("a")])
    with pytest.raises(ValueError):
        client.create(_rs("a"))
    with pytest.raises(ValueError):
        client.create(RunnerReplicaSet())


def test_creation_timestamps_strictly_increase():
    fixed = datetime(2021, 5, 1, tzinfo=timezone.utc)
    client = Client(clock=lambda: fixed)
    a = client.create(_rs("a"))
    b = client.create(_rs("b"))
    assert a.metadata.creation_timestamp == fixed
    assert b.metadata.creation_timestamp > a.metadata.creation_timestamp


def test_list_filters():
    client = Client(
        [
            _rs("a", labels={"foo": "bar"}),
            _rs("b", labels={"foo": "baz"}),
            _rs("c", namespace="other", labels={"foo": "bar"}),
        ]
    )
    names = [o.metadata.name for o in client.list(RunnerReplicaSet, namespace="default")]
    assert names == ["a", "b"]
    selected = client.list(RunnerReplicaSet, selector=LabelSelector(match_labels={"foo": "bar"}))
    assert [o.metadata.name for o in selected] == ["a", "c"]
    picked = client.list(RunnerReplicaSet, predicate=lambda o: o.metadata.name == "b")
    assert [o.metadata.name for o in picked] == ["b"]
    assert client.list(RunnerDeployment) == []


def test_update_keeps_status_and_patch_status_changes_it():
    client = Client([_rs("a")])
    rs = client.get(RunnerReplicaSet, NamespacedName("default", "a"))
    rs.spec.replicas = 3
    rs.status = RunnerReplicaSetStatus(replicas=2)
    client.update(rs)
    stored = client.get(RunnerReplicaSet, NamespacedName("default", "a"))
    assert stored.spec.replicas == 3
    assert stored.status.replicas is None
    client.patch_status(rs)
    stored = client.get(RunnerReplicaSet, NamespacedName("default", "a"))
    assert stored.status.replicas == 2


def test_update_and_delete_missing_raise():
    client = Client()
    with pytest.raises(NotFoundError):
        client.update(_rs("x"))
    with pytest.raises(NotFoundError):
        client.delete(_rs("x"))


def test_delete_removes():
    client = Client([_rs("a")])
    client.delete(_rs("a"))
    with pytest.raises(NotFoundError):
        client.get(RunnerReplicaSet, NamespacedName("default", "a"))


def test_cluster_scoped_ignores_namespace():
    client = Client([PersistentVolume(metadata=ObjectMeta(name="pv1", namespace="ns"))])
    pv = client.get(PersistentVolume, NamespacedName("other", "pv1"))
    assert pv.metadata.name == "pv1"


def test_set_controller_reference():
    owner = RunnerDeployment(metadata=ObjectMeta(name="rd", namespace="default", uid="uid-1"))
    rs = _rs("a")
    set_controller_reference(owner, rs)
    ref = get_controller_of(rs)
    assert (ref.kind, ref.name, ref.uid) == ("RunnerDeployment", "rd", "uid-1")
    assert ref.api_version == RunnerDeployment.api_version
    set_controller_reference(owner, rs)
    assert len(rs.metadata.owner_references) == 1


def test_set_controller_reference_conflicts():
    owner = RunnerDeployment(metadata=ObjectMeta(name="rd", namespace="default"))
    other = RunnerDeployment(metadata=ObjectMeta(name="rd2", namespace="default"))
    rs = _rs("a")
    set_controller_reference(owner, rs)
    with pytest.raises(ValueError):
        set_controller_reference(other, rs)
    with pytest.raises(ValueError):
        set_controller_reference(owner, _rs("b", namespace="elsewhere"))


def test_get_controller_of_none():
    assert get_controller_of(_rs("a")) is None


def test_label_selector_matches():
    selector = LabelSelector(
        match_labels={"foo": "bar"},
        match_expressions=[
            LabelSelectorRequirement(key="env", operator="In", values=["dev", "prod"]),
            LabelSelectorRequirement(key="skip", operator="DoesNotExist"),
        ],
    )
    assert selector.matches({"foo": "bar", "env": "dev"})
    assert not selector.matches({"foo": "bar", "env": "qa"})
    assert not selector.matches({"foo": "bar", "env": "dev", "skip": "1"})
    assert not selector.matches({"env": "dev"})
    assert LabelSelector().matches({"any": "thing"})


def test_label_selector_not_in_and_exists():
    selector = LabelSelector(
        match_expressions=[
            LabelSelectorRequirement(key="tier", operator="NotIn", values=["db"]),
            LabelSelectorRequirement(key="app", operator="Exists"),
        ]
    )
    assert selector.matches({"app": "x"})
    assert not selector.matches({"app": "x", "tier": "db"})
    assert not selector.matches({"tier": "web"})


@pytest.mark.parametrize(
    "req",
    [
        LabelSelectorRequirement(key="a", operator="Bogus"),
        LabelSelectorRequirement(key="a", operator="In", values=[]),
        LabelSelectorRequirement(key="a", operator="Exists", values=["x"]),
    ],
)
def test_label_selector_invalid(req):
    with pytest.raises(ValueError):
        LabelSelector(match_expressions=[req]).matches({})


def test_event_recorder():
    recorder = EventRecorder("test")
    recorder.event(_rs("a"), "Normal", "RunnerReplicaSetDeleted", "Deleted runnerreplicaset 'a'")
    assert recorder.events == [
        ("default/a", "Normal", "RunnerReplicaSetDeleted", "Deleted runnerreplicaset 'a'")
    ]