"""Thread-safe in-memory object store.

Mirrors the API server behaviors the reconciler depends on: resourceVersion
based optimistic concurrency, generation bumps on spec changes, a status
subresource, finalizer-gated deletion and watch streams.
"""

import copy
import queue
import threading
import uuid
from collections.abc import Iterator
from datetime import datetime, timezone
from typing import Any

from cluster_controller.exceptions import ConflictError, NotFoundError, ObjectStoreError
from cluster_controller.logging_config import get_logger
from cluster_controller.models.meta import ObjectKey
from cluster_controller.scheme import KindInfo
from cluster_controller.store.base import (
    ObjectStore,
    WatchEvent,
    WatchEventType,
    matches_selector,
)
from cluster_controller.store.merge import apply_merge_patch

logger = get_logger(__name__)


def _timestamp() -> str:
    return datetime.now(timezone.utc).strftime("%Y-%m-%dT%H:%M:%SZ")


class InMemoryObjectStore(ObjectStore):
    """Object store kept in process memory."""

    def __init__(self) -> None:
        self._lock = threading.RLock()
        self._objects: dict[tuple[str, str], dict[ObjectKey, dict[str, Any]]] = {}
        self._watchers: dict[tuple[str, str], list[queue.Queue]] = {}
        self._resource_version = 0

    def _bucket(self, kind: KindInfo) -> dict[ObjectKey, dict[str, Any]]:
        return self._objects.setdefault((kind.group, kind.kind), {})

    def _next_resource_version(self) -> str:
        self._resource_version += 1
        return str(self._resource_version)

    def _notify(self, kind: KindInfo, event_type: WatchEventType, obj: dict[str, Any]) -> None:
        for q in self._watchers.get((kind.group, kind.kind), []):
            q.put(WatchEvent(type=event_type, kind=kind, object=copy.deepcopy(obj)))

    def get(self, kind: KindInfo, key: ObjectKey) -> dict[str, Any]:
        with self._lock:
            obj = self._bucket(kind).get(key)
            if obj is None:
                raise NotFoundError(f"{kind.kind} {key} not found")
            return copy.deepcopy(obj)

    def list(
        self,
        kind: KindInfo,
        namespace: str | None = None,
        label_selector: dict[str, str] | None = None,
    ) -> list[dict[str, Any]]:
        with self._lock:
            return [
                copy.deepcopy(obj)
                for key, obj in sorted(self._bucket(kind).items())
                if (namespace is None or key.namespace == namespace)
                and matches_selector(obj, label_selector)
            ]

    def create(self, kind: KindInfo, obj: dict[str, Any]) -> dict[str, Any]:
        with self._lock:
            obj = copy.deepcopy(obj)
            obj.setdefault("apiVersion", kind.api_version)
            obj.setdefault("kind", kind.kind)
            metadata = obj.setdefault("metadata", {})
            if not metadata.get("name"):
                prefix = metadata.get("generateName")
                if not prefix:
                    raise ObjectStoreError(f"{kind.kind} must have a name or generateName")
                metadata["name"] = f"{prefix}{uuid.uuid4().hex[:5]}"
            metadata.setdefault("namespace", "")

            key = ObjectKey(metadata["namespace"], metadata["name"])
            bucket = self._bucket(kind)
            if key in bucket:
                raise ConflictError(f"{kind.kind} {key} already exists")

            metadata["uid"] = str(uuid.uuid4())
            metadata["generation"] = 1
            metadata["creationTimestamp"] = _timestamp()
            metadata["resourceVersion"] = self._next_resource_version()
            metadata.pop("deletionTimestamp", None)
            bucket[key] = obj
            self._notify(kind, WatchEventType.ADDED, obj)
            return copy.deepcopy(obj)

    def patch(
        self,
        kind: KindInfo,
        key: ObjectKey,
        merge_patch: dict[str, Any],
        subresource: str | None = None,
    ) -> dict[str, Any]:
        with self._lock:
            bucket = self._bucket(kind)
            existing = bucket.get(key)
            if existing is None:
                raise NotFoundError(f"{kind.kind} {key} not found")

            merge_patch = copy.deepcopy(merge_patch)
            expected = (merge_patch.get("metadata") or {}).pop("resourceVersion", None)
            current = existing["metadata"]["resourceVersion"]
            if expected is not None and expected != current:
                raise ConflictError(
                    f"Operation cannot be fulfilled on {kind.plural} {key}: "
                    "the object has been modified; please apply your changes to the latest version"
                )

            if subresource == "status":
                merge_patch = {"status": merge_patch.get("status", {})}
            elif subresource is not None:
                raise ObjectStoreError(f"Unsupported subresource '{subresource}'")
            else:
                merge_patch.pop("status", None)

            updated = apply_merge_patch(existing, merge_patch)
            # Identity and server-managed fields are immutable through patches.
            for field in ("name", "namespace", "uid", "creationTimestamp", "deletionTimestamp"):
                if field in existing["metadata"]:
                    updated["metadata"][field] = existing["metadata"][field]
                else:
                    updated["metadata"].pop(field, None)
            updated["metadata"]["generation"] = existing["metadata"]["generation"]
            updated["metadata"]["resourceVersion"] = current

            if updated == existing:
                return copy.deepcopy(existing)

            old_finalizers = set(existing["metadata"].get("finalizers") or [])
            new_finalizers = set(updated["metadata"].get("finalizers") or [])
            if "deletionTimestamp" in existing["metadata"] and new_finalizers - old_finalizers:
                raise ObjectStoreError(
                    f"{kind.kind} {key} is being deleted; no new finalizers can be added"
                )

            if updated.get("spec") != existing.get("spec"):
                updated["metadata"]["generation"] += 1
            updated["metadata"]["resourceVersion"] = self._next_resource_version()

            if "deletionTimestamp" in updated["metadata"] and not new_finalizers:
                del bucket[key]
                self._notify(kind, WatchEventType.DELETED, updated)
                logger.debug(f"{kind.kind} {key} removed after its last finalizer was cleared")
                return copy.deepcopy(updated)

            bucket[key] = updated
            self._notify(kind, WatchEventType.MODIFIED, updated)
            return copy.deepcopy(updated)

    def delete(self, kind: KindInfo, key: ObjectKey) -> None:
        with self._lock:
            bucket = self._bucket(kind)
            existing = bucket.get(key)
            if existing is None:
                raise NotFoundError(f"{kind.kind} {key} not found")

            if existing["metadata"].get("finalizers"):
                if "deletionTimestamp" not in existing["metadata"]:
                    existing["metadata"]["deletionTimestamp"] = _timestamp()
                    existing["metadata"]["resourceVersion"] = self._next_resource_version()
                    self._notify(kind, WatchEventType.MODIFIED, existing)
                return

            del bucket[key]
            self._notify(kind, WatchEventType.DELETED, existing)

    def watch(self, kind: KindInfo, stop_event: threading.Event) -> Iterator[WatchEvent]:
        events: queue.Queue = queue.Queue()
        with self._lock:
            for obj in self._bucket(kind).values():
                events.put(WatchEvent(type=WatchEventType.ADDED, kind=kind, object=copy.deepcopy(obj)))
            self._watchers.setdefault((kind.group, kind.kind), []).append(events)
        try:
            while not stop_event.is_set():
                try:
                    yield events.get(timeout=0.1)
                except queue.Empty:
                    continue
        finally:
            with self._lock:
                self._watchers[(kind.group, kind.kind)].remove(events)
