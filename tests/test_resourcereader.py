import pytest

from runnerctl.resourcereader import ResourceReader
from runnerctl.resources import NamespacedName, NotFoundError, ObjectMeta, Runner, RunnerSpec


def _reader():
    return ResourceReader(
        {
            NamespacedName("default", "sec1"): Runner(
                metadata=ObjectMeta(namespace="default", name="sec1"),
                spec=RunnerSpec(env={"foo": "bar"}),
            )
        }
    )


def test_get_returns_stored_object():
    obj = _reader().get(NamespacedName("default", "sec1"))
    assert obj.spec.env["foo"] == "bar"
    assert obj.metadata.name == "sec1"


def test_get_returns_copy():
    reader = _reader()
    obj = reader.get(NamespacedName("default", "sec1"))
    obj.spec.env["foo"] = "changed"
    assert reader.get(NamespacedName("default", "sec1")).spec.env["foo"] == "bar"


def test_get_missing_raises_not_found():
    with pytest.raises(NotFoundError):
        _reader().get(NamespacedName("default", "other"))