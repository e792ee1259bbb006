"""Discovery, ownership filtering and progress reporting for a cluster's descendants.

Descendants are held as five flat collections, one per kind. Membership is
decided by owner references that name the cluster; nothing walks a graph.
"""

from collections.abc import Iterator
from dataclasses import dataclass, field
from enum import Enum

from pydantic import ValidationError as PydanticValidationError

from cluster_controller.exceptions import ObjectStoreError
from cluster_controller.logging_config import get_logger
from cluster_controller.models.cluster import CLUSTER_NAME_LABEL, Cluster
from cluster_controller.models.machine import (
    Machine,
    MachineDeployment,
    MachinePool,
    MachineSet,
    OwnedObject,
)
from cluster_controller.scheme import (
    MACHINE,
    MACHINE_DEPLOYMENT,
    MACHINE_POOL,
    MACHINE_SET,
    KindInfo,
)
from cluster_controller.store.base import ObjectStore

logger = get_logger(__name__)

# Worker machines beyond this many are summarized as "... (n more)".
WORKER_MACHINE_DISPLAY_LIMIT = 5


class DescendantKind(Enum):
    """The closed set of descendant collections, in reporting order."""

    CONTROL_PLANE_MACHINES = "Control plane Machines"
    MACHINE_DEPLOYMENTS = "MachineDeployments"
    MACHINE_SETS = "MachineSets"
    MACHINE_POOLS = "MachinePools"
    WORKER_MACHINES = "Worker Machines"

    @property
    def label(self) -> str:
        return self.value

    @property
    def kind_info(self) -> KindInfo:
        return _KIND_INFO[self]


_KIND_INFO = {
    DescendantKind.CONTROL_PLANE_MACHINES: MACHINE,
    DescendantKind.MACHINE_DEPLOYMENTS: MACHINE_DEPLOYMENT,
    DescendantKind.MACHINE_SETS: MACHINE_SET,
    DescendantKind.MACHINE_POOLS: MACHINE_POOL,
    DescendantKind.WORKER_MACHINES: MACHINE,
}


@dataclass
class ClusterDescendants:
    """Objects that belong to a cluster, partitioned by kind."""

    control_plane_machines: list[Machine] = field(default_factory=list)
    machine_deployments: list[MachineDeployment] = field(default_factory=list)
    machine_sets: list[MachineSet] = field(default_factory=list)
    machine_pools: list[MachinePool] = field(default_factory=list)
    worker_machines: list[Machine] = field(default_factory=list)

    def collection(self, kind: DescendantKind) -> list:
        if kind is DescendantKind.CONTROL_PLANE_MACHINES:
            return self.control_plane_machines
        if kind is DescendantKind.MACHINE_DEPLOYMENTS:
            return self.machine_deployments
        if kind is DescendantKind.MACHINE_SETS:
            return self.machine_sets
        if kind is DescendantKind.MACHINE_POOLS:
            return self.machine_pools
        if kind is DescendantKind.WORKER_MACHINES:
            return self.worker_machines
        raise ValueError(f"Unknown descendant kind: {kind}")

    def _reported_kinds(self, cluster: Cluster) -> list[DescendantKind]:
        # A dedicated control-plane controller owns its machines' lifecycle.
        if cluster.spec.control_plane_ref.is_defined():
            return [k for k in DescendantKind if k is not DescendantKind.CONTROL_PLANE_MACHINES]
        return list(DescendantKind)

    def objects_pending_delete_count(self, cluster: Cluster) -> int:
        """Number of descendants the cluster still waits on."""
        return sum(len(self.collection(kind)) for kind in self._reported_kinds(cluster))

    def objects_pending_delete_names(self, cluster: Cluster) -> list[str]:
        """Kind-grouped, sorted name listing of the descendants still present.

        Example:
            ["MachineDeployments: md1, md2", "Worker Machines: w1, w2, w3, w4, w5, ... (3 more)"]
        """
        listing = []
        for kind in self._reported_kinds(cluster):
            names = sorted(obj.name for obj in self.collection(kind))
            if not names:
                continue
            if kind is DescendantKind.WORKER_MACHINES and len(names) > WORKER_MACHINE_DISPLAY_LIMIT:
                hidden = len(names) - WORKER_MACHINE_DISPLAY_LIMIT
                names = names[:WORKER_MACHINE_DISPLAY_LIMIT] + [f"... ({hidden} more)"]
            listing.append(f"{kind.label}: {', '.join(names)}")
        return listing

    def filter_owned_descendants(self, cluster: Cluster) -> list[tuple[DescendantKind, OwnedObject]]:
        """Return the descendants directly owned by the cluster and not yet deleting.

        Control-plane machines are left out when the cluster has a control-plane
        reference. Owner references that cannot be parsed are skipped and logged.
        """
        owned = []
        for kind in self._reported_kinds(cluster):
            for obj in self.collection(kind):
                malformed = obj.malformed_owner_references()
                if malformed:
                    logger.warning(
                        f"Skipping malformed owner references on {kind.kind_info.kind} "
                        f"{obj.key}: {', '.join(malformed)}"
                    )
                if not obj.is_owned_by(cluster):
                    continue
                if obj.is_deleting():
                    continue
                owned.append((kind, obj))
        return owned

    def __iter__(self) -> Iterator[tuple[DescendantKind, OwnedObject]]:
        for kind in DescendantKind:
            for obj in self.collection(kind):
                yield kind, obj

    def __len__(self) -> int:
        return sum(len(self.collection(kind)) for kind in DescendantKind)


def _parse(model: type, kind: KindInfo, items: list[dict]) -> list:
    parsed = []
    for item in items:
        try:
            parsed.append(model.model_validate(item))
        except PydanticValidationError as e:
            name = (item.get("metadata") or {}).get("name", "<unknown>")
            logger.warning(f"Skipping {kind.kind} {name}, it cannot be parsed: {e}")
    return parsed


def list_descendants(store: ObjectStore, cluster: Cluster) -> ClusterDescendants:
    """List every object labelled with the cluster's name.

    Machines are split into control-plane and worker machines by the
    control-plane label.

    Objects that cannot be parsed are logged and left out.

    Raises:
        ObjectStoreError: If any of the lists fails
    """
    namespace = cluster.metadata.namespace
    selector = {CLUSTER_NAME_LABEL: cluster.name}

    def _list(model: type, kind: KindInfo) -> list:
        try:
            items = store.list(kind, namespace=namespace, label_selector=selector)
        except ObjectStoreError as e:
            logger.error(f"Failed to list {kind.plural} for cluster {cluster.key}: {e.message}")
            raise
        return _parse(model, kind, items)

    descendants = ClusterDescendants(
        machine_deployments=_list(MachineDeployment, MACHINE_DEPLOYMENT),
        machine_sets=_list(MachineSet, MACHINE_SET),
        machine_pools=_list(MachinePool, MACHINE_POOL),
    )
    for machine in _list(Machine, MACHINE):
        if machine.is_control_plane():
            descendants.control_plane_machines.append(machine)
        else:
            descendants.worker_machines.append(machine)

    logger.debug(f"Cluster {cluster.key} has {len(descendants)} descendants")
    return descendants
