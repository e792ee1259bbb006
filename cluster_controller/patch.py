"""Two-way diff and patch helper for objects owned by the reconciler.

Spec (with metadata) and status are diffed and written independently so
that a change confined to one half still produces a correct write, and an
unchanged half produces none.
"""

from typing import Any

from cluster_controller.exceptions import NotFoundError
from cluster_controller.logging_config import get_logger
from cluster_controller.models.meta import ClusterObject
from cluster_controller.scheme import KindInfo
from cluster_controller.store.base import ObjectStore
from cluster_controller.store.merge import create_merge_patch

logger = get_logger(__name__)

# Fields written by the API server; never part of a computed patch.
_SERVER_MANAGED_METADATA = {
    "resourceVersion",
    "generation",
    "uid",
    "creationTimestamp",
    "deletionTimestamp",
    "managedFields",
}


def _split(obj: dict[str, Any]) -> tuple[dict[str, Any], dict[str, Any]]:
    main = {k: v for k, v in obj.items() if k != "status"}
    metadata = {
        k: v for k, v in (main.get("metadata") or {}).items() if k not in _SERVER_MANAGED_METADATA
    }
    main["metadata"] = metadata
    return main, {"status": obj.get("status") or {}}


class PatchHelper:
    """Snapshot an object and later persist only what changed.

    Usage:
        helper = PatchHelper(store, CLUSTER, cluster)
        ... mutate cluster ...
        helper.patch(cluster)
    """

    def __init__(self, store: ObjectStore, kind: KindInfo, obj: ClusterObject):
        self.store = store
        self.kind = kind
        self.key = obj.key
        self._before = obj.to_dict()
        self._resource_version = obj.metadata.resource_version

    def has_changes(self, obj: ClusterObject) -> bool:
        spec_patch, status_patch = self._diff(obj)
        return bool(spec_patch) or bool(status_patch)

    def _diff(self, obj: ClusterObject) -> tuple[dict[str, Any], dict[str, Any]]:
        before_main, before_status = _split(self._before)
        after_main, after_status = _split(obj.to_dict())
        return (
            create_merge_patch(before_main, after_main),
            create_merge_patch(before_status, after_status),
        )

    def patch(self, obj: ClusterObject) -> dict[str, Any] | None:
        """Write the spec/metadata diff, then the status diff.

        Returns:
            The last object returned by the store, or None if nothing was written

        Raises:
            ConflictError: If the object changed since the snapshot was taken
        """
        spec_patch, status_patch = self._diff(obj)
        result = None

        if spec_patch:
            spec_patch.setdefault("metadata", {})["resourceVersion"] = self._resource_version
            logger.debug(f"Patching {self.kind.kind} {self.key}: {sorted(spec_patch)}")
            result = self.store.patch(self.kind, self.key, spec_patch)

        if status_patch:
            logger.debug(f"Patching {self.kind.kind} {self.key} status")
            try:
                result = self.store.patch(self.kind, self.key, status_patch, subresource="status")
            except NotFoundError:
                # Removing the last finalizer lets the store drop the object.
                if not (obj.is_deleting() and not obj.metadata.finalizers):
                    raise
                logger.debug(f"{self.kind.kind} {self.key} is gone; skipping status patch")

        if result is not None:
            self._before = type(obj).model_validate(result).to_dict()
            self._resource_version = (result.get("metadata") or {}).get("resourceVersion")
        return result
