"""A read-only lookup of resources held in memory."""

from __future__ import annotations

import copy
from collections.abc import Mapping
from typing import Any

from runnerctl.resources import NamespacedName, NotFoundError


class ResourceReader:
    """Returns copies of objects stored by namespaced name."""

    def __init__(self, objects: Mapping[NamespacedName, Any] | None = None) -> None:
        self.objects: dict[NamespacedName, Any] = dict(objects or {})

    def get(self, name: NamespacedName) -> Any:
        try:
            found = self.objects[name]
        except KeyError:
            raise NotFoundError(f"{name} not found") from None
        return copy.deepcopy(found)