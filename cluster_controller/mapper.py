"""Translation of watch events on secondary objects into Cluster reconcile requests."""

from typing import Any

from pydantic import ValidationError as PydanticValidationError

from cluster_controller.logging_config import get_logger
from cluster_controller.models.cluster import CLUSTER_API_GROUP, MACHINE_CONTROL_PLANE_LABEL
from cluster_controller.models.machine import Machine
from cluster_controller.models.meta import ClusterObject, ObjectKey
from cluster_controller.scheme import (
    CLUSTER,
    MACHINE,
    MACHINE_DEPLOYMENT,
    MACHINE_POOL,
    MACHINE_SET,
)
from cluster_controller.store.base import WatchEvent

logger = get_logger(__name__)


def cluster_to_request(obj: dict[str, Any]) -> list[ObjectKey]:
    metadata = obj.get("metadata") or {}
    if not metadata.get("name"):
        return []
    return [ObjectKey(metadata.get("namespace", ""), metadata["name"])]


def owner_cluster_to_request(obj: dict[str, Any]) -> list[ObjectKey]:
    """Map an object to the Cluster named by its owner references."""
    try:
        owned = ClusterObject.model_validate(obj)
    except PydanticValidationError as e:
        logger.warning(f"Ignoring unparsable object in watch event: {e}")
        return []

    requests = []
    for ref in owned.metadata.owner_references:
        if ref.is_malformed():
            continue
        if ref.kind == "Cluster" and ref.group == CLUSTER_API_GROUP:
            requests.append(ObjectKey(owned.metadata.namespace, ref.name))
    return requests


def control_plane_machine_to_cluster(obj: dict[str, Any]) -> list[ObjectKey]:
    """Map a control-plane Machine that has become a Node to its Cluster.

    Machines without the control-plane label, or without a nodeRef yet,
    map to nothing.
    """
    try:
        machine = Machine.model_validate(obj)
    except PydanticValidationError as e:
        logger.warning(f"Ignoring unparsable Machine in watch event: {e}")
        return []

    if not machine.is_control_plane() or not machine.has_node_ref():
        return []
    if not machine.spec.cluster_name:
        return []
    return [ObjectKey(machine.metadata.namespace, machine.spec.cluster_name)]


def machine_to_cluster(obj: dict[str, Any]) -> list[ObjectKey]:
    """Control-plane machines map through their nodeRef, others through ownership."""
    labels = (obj.get("metadata") or {}).get("labels") or {}
    if MACHINE_CONTROL_PLANE_LABEL in labels:
        return control_plane_machine_to_cluster(obj)
    return owner_cluster_to_request(obj)


class RequestMapper:
    """Route a watch event to the reconcile requests it should trigger."""

    def __init__(self) -> None:
        self._handlers = {
            (CLUSTER.group, CLUSTER.kind): cluster_to_request,
            (MACHINE.group, MACHINE.kind): machine_to_cluster,
            (MACHINE_DEPLOYMENT.group, MACHINE_DEPLOYMENT.kind): owner_cluster_to_request,
            (MACHINE_SET.group, MACHINE_SET.kind): owner_cluster_to_request,
            (MACHINE_POOL.group, MACHINE_POOL.kind): owner_cluster_to_request,
        }

    def map(self, event: WatchEvent) -> list[ObjectKey]:
        handler = self._handlers.get((event.kind.group, event.kind.kind))
        if handler is None:
            logger.debug(f"No request mapping for {event.kind}")
            return []
        # Deduplicate while keeping order.
        return list(dict.fromkeys(handler(event.object)))
