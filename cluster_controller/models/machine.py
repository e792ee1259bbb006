"""Models for the worker groups and machines that descend from a Cluster."""

from typing import Any

from pydantic import Field

from cluster_controller.models.cluster import (
    CLUSTER_API_GROUP,
    MACHINE_CONTROL_PLANE_LABEL,
    Cluster,
)
from cluster_controller.models.meta import ClusterObject, KubeModel


class OwnedObject(ClusterObject):
    """An object that may carry an owner reference to a Cluster."""

    def is_owned_by(self, cluster: Cluster) -> bool:
        """Return True if an owner reference names exactly this cluster.

        Malformed references are ignored rather than treated as errors.
        """
        for ref in self.metadata.owner_references:
            if ref.is_malformed():
                continue
            if ref.kind == "Cluster" and ref.group == CLUSTER_API_GROUP and ref.name == cluster.name:
                return True
        return False

    def malformed_owner_references(self) -> list[str]:
        return [
            f"{ref.api_version or '<none>'}/{ref.kind or '<none>'}/{ref.name or '<none>'}"
            for ref in self.metadata.owner_references
            if ref.is_malformed()
        ]


class MachineNodeReference(KubeModel):
    name: str = ""

    def is_defined(self) -> bool:
        return bool(self.name)


class MachineSpec(KubeModel):
    cluster_name: str = ""
    provider_id: str | None = None


class MachineStatus(KubeModel):
    node_ref: MachineNodeReference | None = None


class Machine(OwnedObject):
    spec: MachineSpec = Field(default_factory=MachineSpec)
    status: MachineStatus = Field(default_factory=MachineStatus)

    def is_control_plane(self) -> bool:
        return MACHINE_CONTROL_PLANE_LABEL in self.metadata.labels

    def has_node_ref(self) -> bool:
        return self.status.node_ref is not None and self.status.node_ref.is_defined()


class WorkerGroupSpec(KubeModel):
    cluster_name: str = ""


class MachineDeployment(OwnedObject):
    spec: WorkerGroupSpec = Field(default_factory=WorkerGroupSpec)
    status: dict[str, Any] = Field(default_factory=dict)


class MachineSet(OwnedObject):
    spec: WorkerGroupSpec = Field(default_factory=WorkerGroupSpec)
    status: dict[str, Any] = Field(default_factory=dict)


class MachinePool(OwnedObject):
    spec: WorkerGroupSpec = Field(default_factory=WorkerGroupSpec)
    status: dict[str, Any] = Field(default_factory=dict)
