"""Resource model and an in-memory client with API-server-like semantics."""

from __future__ import annotations

import copy
import random
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import Callable, ClassVar, Iterable, TypeVar

GROUP_VERSION = "actions.summerwind.dev/v1alpha1"
EVENT_TYPE_NORMAL = "Normal"

_NAME_ALPHABET = "bcdfghjklmnpqrstvwxz2456789"
_GENERATED_SUFFIX_LENGTH = 5
_OPERATORS = frozenset({"In", "NotIn", "Exists", "DoesNotExist"})


class NotFoundError(LookupError):
    """Raised when a requested object does not exist."""


@dataclass(frozen=True)
class NamespacedName:
    namespace: str = ""
    name: str = ""

    def __str__(self) -> str:
        return f"{self.namespace}/{self.name}"


@dataclass
class OwnerReference:
    api_version: str = ""
    kind: str = ""
    name: str = ""
    uid: str = ""
    controller: bool = False
    block_owner_deletion: bool = False


@dataclass
class ObjectMeta:
    name: str = ""
    namespace: str = ""
    generate_name: str = ""
    uid: str = ""
    labels: dict[str, str] = field(default_factory=dict)
    annotations: dict[str, str] = field(default_factory=dict)
    owner_references: list[OwnerReference] = field(default_factory=list)
    creation_timestamp: datetime | None = None
    deletion_timestamp: datetime | None = None


@dataclass
class LabelSelectorRequirement:
    key: str = ""
    operator: str = ""
    values: list[str] | None = None


def _check_requirement(req: LabelSelectorRequirement) -> None:
    if req.operator not in _OPERATORS:
        raise ValueError(f"{req.operator!r} is not a valid label selector operator")
    if req.operator in ("In", "NotIn") and not req.values:
        raise ValueError(f"values must be non-empty for operator {req.operator!r}")
    if req.operator in ("Exists", "DoesNotExist") and req.values:
        raise ValueError(f"values must be empty for operator {req.operator!r}")


@dataclass
class LabelSelector:
    match_labels: dict[str, str] | None = None
    match_expressions: list[LabelSelectorRequirement] | None = None

    def matches(self, labels: dict[str, str] | None) -> bool:
        """Tell whether the given labels satisfy this selector."""
        expressions = self.match_expressions or []
        for req in expressions:
            _check_requirement(req)
        labels = labels or {}
        if any(labels.get(k) != v for k, v in (self.match_labels or {}).items()):
            return False
        for req in expressions:
            present = req.key in labels
            if req.operator == "In" and not (present and labels[req.key] in req.values):
                return False
            if req.operator == "NotIn" and present and labels[req.key] in req.values:
                return False
            if req.operator == "Exists" and not present:
                return False
            if req.operator == "DoesNotExist" and present:
                return False
        return True


@dataclass
class _Resource:
    kind: ClassVar[str] = ""
    api_version: ClassVar[str] = ""
    namespaced: ClassVar[bool] = True

    metadata: ObjectMeta = field(default_factory=ObjectMeta)

    @property
    def namespaced_name(self) -> NamespacedName:
        namespace = self.metadata.namespace if self.namespaced else ""
        return NamespacedName(namespace, self.metadata.name)


@dataclass
class RunnerSpec:
    repository: str = ""
    organization: str = ""
    enterprise: str = ""
    group: str = ""
    labels: list[str] = field(default_factory=list)
    image: str = ""
    ephemeral: bool | None = None
    env: dict[str, str] = field(default_factory=dict)


@dataclass
class RunnerTemplate:
    metadata: ObjectMeta = field(default_factory=ObjectMeta)
    spec: RunnerSpec = field(default_factory=RunnerSpec)


@dataclass
class RunnerDeploymentSpec:
    replicas: int | None = None
    selector: LabelSelector | None = None
    template: RunnerTemplate = field(default_factory=RunnerTemplate)
    effective_time: datetime | None = None


@dataclass
class RunnerDeploymentStatus:
    available_replicas: int | None = None
    ready_replicas: int | None = None
    desired_replicas: int | None = None
    replicas: int | None = None
    updated_replicas: int | None = None


@dataclass
class RunnerDeployment(_Resource):
    kind: ClassVar[str] = "RunnerDeployment"
    api_version: ClassVar[str] = GROUP_VERSION

    spec: RunnerDeploymentSpec = field(default_factory=RunnerDeploymentSpec)
    status: RunnerDeploymentStatus = field(default_factory=RunnerDeploymentStatus)


@dataclass
class RunnerReplicaSetSpec:
    replicas: int | None = None
    selector: LabelSelector | None = None
    template: RunnerTemplate = field(default_factory=RunnerTemplate)
    effective_time: datetime | None = None


@dataclass
class RunnerReplicaSetStatus:
    replicas: int | None = None
    available_replicas: int | None = None
    ready_replicas: int | None = None


@dataclass
class RunnerReplicaSet(_Resource):
    kind: ClassVar[str] = "RunnerReplicaSet"
    api_version: ClassVar[str] = GROUP_VERSION

    spec: RunnerReplicaSetSpec = field(default_factory=RunnerReplicaSetSpec)
    status: RunnerReplicaSetStatus = field(default_factory=RunnerReplicaSetStatus)


@dataclass
class Runner(_Resource):
    kind: ClassVar[str] = "Runner"
    api_version: ClassVar[str] = GROUP_VERSION

    spec: RunnerSpec = field(default_factory=RunnerSpec)


@dataclass
class PersistentVolumeClaim(_Resource):
    kind: ClassVar[str] = "PersistentVolumeClaim"
    api_version: ClassVar[str] = "v1"

    volume_name: str = ""


@dataclass
class PersistentVolume(_Resource):
    kind: ClassVar[str] = "PersistentVolume"
    api_version: ClassVar[str] = "v1"
    namespaced: ClassVar[bool] = False

    claim_ref: NamespacedName | None = None
    phase: str = ""


@dataclass
class StatefulSet(_Resource):
    kind: ClassVar[str] = "StatefulSet"
    api_version: ClassVar[str] = "apps/v1"

    replicas: int | None = None
    selector: LabelSelector | None = None


@dataclass(frozen=True)
class Result:
    """Outcome of a reconciliation."""

    requeue: bool = False
    requeue_after: timedelta = timedelta(0)


R = TypeVar("R", bound=_Resource)


class Client:
    """In-memory object store.

    Objects are stored and returned as copies. ``update`` leaves the stored
    status untouched; use ``patch_status`` to change it.
    """

    def __init__(
        self,
        objects: Iterable[_Resource] = (),
        *,
        clock: Callable[[], datetime] | None = None,
        rng: random.Random | None = None,
    ) -> None:
        self._objects: dict[tuple[str, str, str], _Resource] = {}
        self._clock = clock or (lambda: datetime.now(timezone.utc))
        self._rng = rng or random.Random()
        self._last_created: datetime | None = None
        for obj in objects:
            self.create(obj)

    @staticmethod
    def _key(cls: type[_Resource], name: NamespacedName) -> tuple[str, str, str]:
        namespace = name.namespace if cls.namespaced else ""
        return (cls.kind, namespace, name.name)

    def _obj_key(self, obj: _Resource) -> tuple[str, str, str]:
        return self._key(type(obj), obj.namespaced_name)

    def _stored(self, obj: _Resource) -> _Resource:
        try:
            return self._objects[self._obj_key(obj)]
        except KeyError:
            raise NotFoundError(f"{obj.kind} {obj.namespaced_name} not found") from None

    def _timestamp(self) -> datetime:
        now = self._clock()
        if self._last_created is not None and now <= self._last_created:
            now = self._last_created + timedelta(microseconds=1)
        self._last_created = now
        return now

    def _generate_name(self, obj: _Resource) -> str:
        while True:
            suffix = "".join(self._rng.choices(_NAME_ALPHABET, k=_GENERATED_SUFFIX_LENGTH))
            candidate = obj.metadata.generate_name + suffix
            key = self._key(type(obj), NamespacedName(obj.metadata.namespace, candidate))
            if key not in self._objects:
                return candidate

    def get(self, cls: type[R], name: NamespacedName) -> R:
        try:
            return copy.deepcopy(self._objects[self._key(cls, name)])
        except KeyError:
            raise NotFoundError(f"{cls.kind} {name} not found") from None

    def list(
        self,
        cls: type[R],
        namespace: str | None = None,
        selector: LabelSelector | None = None,
        predicate: Callable[[R], bool] | None = None,
    ) -> list[R]:
        found = [
            obj
            for (kind, ns, _), obj in sorted(self._objects.items())
            if kind == cls.kind
            and (namespace is None or not cls.namespaced or ns == namespace)
            and (selector is None or selector.matches(obj.metadata.labels))
            and (predicate is None or predicate(obj))
        ]
        return copy.deepcopy(found)

    def create(self, obj: R) -> R:
        if not obj.metadata.name:
            if not obj.metadata.generate_name:
                raise ValueError("name or generate_name is required")
            obj.metadata.name = self._generate_name(obj)
        key = self._obj_key(obj)
        if key in self._objects:
            raise ValueError(f"{obj.kind} {obj.namespaced_name} already exists")
        if not obj.metadata.uid:
            obj.metadata.uid = str(uuid.uuid4())
        if obj.metadata.creation_timestamp is None:
            obj.metadata.creation_timestamp = self._timestamp()
        self._objects[key] = copy.deepcopy(obj)
        return obj

    def update(self, obj: R) -> R:
        stored = self._stored(obj)
        updated = copy.deepcopy(obj)
        if hasattr(stored, "status"):
            updated.status = copy.deepcopy(stored.status)
        self._objects[self._obj_key(obj)] = updated
        return obj

    def patch_status(self, obj: R) -> R:
        stored = self._stored(obj)
        if not hasattr(stored, "status"):
            raise ValueError(f"{obj.kind} has no status")
        stored.status = copy.deepcopy(obj.status)
        return obj

    def delete(self, obj: _Resource) -> None:
        self._stored(obj)
        del self._objects[self._obj_key(obj)]


class EventRecorder:
    """Collects events emitted by reconcilers."""

    def __init__(self, source: str = "") -> None:
        self.source = source
        self.events: list[tuple[str, str, str, str]] = []

    def event(self, obj: _Resource, event_type: str, reason: str, message: str) -> None:
        self.events.append((str(obj.namespaced_name), event_type, reason, message))


def _group(api_version: str) -> str:
    return api_version.split("/", 1)[0] if "/" in api_version else ""


def get_controller_of(obj: _Resource) -> OwnerReference | None:
    """Return the owner reference flagged as controller, if any."""
    return next((ref for ref in obj.metadata.owner_references if ref.controller), None)


def set_controller_reference(owner: _Resource, obj: _Resource) -> None:
    """Make ``owner`` the controller of ``obj``."""
    ref = OwnerReference(
        api_version=owner.api_version,
        kind=owner.kind,
        name=owner.metadata.name,
        uid=owner.metadata.uid,
        controller=True,
        block_owner_deletion=True,
    )

    def same(other: OwnerReference) -> bool:
        return (
            _group(other.api_version) == _group(ref.api_version)
            and other.kind == ref.kind
            and other.name == ref.name
        )

    existing = get_controller_of(obj)
    if existing is not None and not same(existing):
        raise ValueError(
            f"object {obj.namespaced_name} is already owned by another "
            f"{existing.kind} controller {existing.name}"
        )
    if owner.namespaced:
        if not obj.namespaced or not obj.metadata.namespace:
            raise ValueError("cluster-scoped resource must not have a namespace-scoped owner")
        if owner.metadata.namespace != obj.metadata.namespace:
            raise ValueError("cross-namespace owner references are disallowed")

    refs = [r for r in obj.metadata.owner_references if not same(r)]
    refs.append(ref)
    obj.metadata.owner_references = refs