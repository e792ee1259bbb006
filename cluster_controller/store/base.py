"""Interface of the declarative object store consumed by the reconciler."""

import threading
from abc import ABC, abstractmethod
from collections.abc import Iterator
from dataclasses import dataclass
from enum import Enum
from typing import Any

from cluster_controller.models.meta import ObjectKey
from cluster_controller.scheme import KindInfo


class WatchEventType(str, Enum):
    ADDED = "ADDED"
    MODIFIED = "MODIFIED"
    DELETED = "DELETED"


@dataclass
class WatchEvent:
    """A change observed on one object."""

    type: WatchEventType
    kind: KindInfo
    object: dict[str, Any]


class ObjectStore(ABC):
    """Get/list/create/patch/delete/watch over API objects in wire format.

    Reads raise NotFoundError for missing objects. Patches are JSON merge
    patches; a patch whose ``metadata.resourceVersion`` is stale raises
    ConflictError. Deleting an object that still has finalizers only marks it
    with a deletion timestamp.
    """

    @abstractmethod
    def get(self, kind: KindInfo, key: ObjectKey) -> dict[str, Any]:
        """Return the object, or raise NotFoundError."""
        ...

    @abstractmethod
    def list(
        self,
        kind: KindInfo,
        namespace: str | None = None,
        label_selector: dict[str, str] | None = None,
    ) -> list[dict[str, Any]]:
        """Return objects of a kind matching every label in the selector."""
        ...

    @abstractmethod
    def create(self, kind: KindInfo, obj: dict[str, Any]) -> dict[str, Any]:
        ...

    @abstractmethod
    def patch(
        self,
        kind: KindInfo,
        key: ObjectKey,
        merge_patch: dict[str, Any],
        subresource: str | None = None,
    ) -> dict[str, Any]:
        """Apply a JSON merge patch to the object or its status subresource."""
        ...

    @abstractmethod
    def delete(self, kind: KindInfo, key: ObjectKey) -> None:
        """Request deletion, or raise NotFoundError."""
        ...

    @abstractmethod
    def watch(self, kind: KindInfo, stop_event: threading.Event) -> Iterator[WatchEvent]:
        """Stream change events until stop_event is set."""
        ...


def matches_selector(obj: dict[str, Any], label_selector: dict[str, str] | None) -> bool:
    if not label_selector:
        return True
    labels = (obj.get("metadata") or {}).get("labels") or {}
    return all((k in labels) if v == "" else labels.get(k) == v for k, v in label_selector.items())


def format_selector(label_selector: dict[str, str] | None) -> str | None:
    """Render a selector as the API server's label-selector string."""
    if not label_selector:
        return None
    return ",".join(f"{k}={v}" if v else k for k, v in sorted(label_selector.items()))
