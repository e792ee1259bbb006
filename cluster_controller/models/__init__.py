"""Data models for Cluster API resources."""

from cluster_controller.models.cluster import (
    CLUSTER_API_GROUP,
    CLUSTER_API_VERSION,
    CLUSTER_FINALIZER,
    CLUSTER_NAME_LABEL,
    MACHINE_CONTROL_PLANE_LABEL,
    OK_TO_DELETE_ANNOTATION,
    PAUSED_ANNOTATION,
    Cluster,
    ClusterPhase,
    Condition,
    ConditionSeverity,
    ConditionStatus,
    LegacyCondition,
)
from cluster_controller.models.machine import (
    Machine,
    MachineDeployment,
    MachinePool,
    MachineSet,
    OwnedObject,
)
from cluster_controller.models.meta import (
    APIEndpoint,
    ContractVersionedObjectReference,
    ObjectKey,
    ObjectMeta,
    OwnerReference,
)

__all__ = [
    "CLUSTER_API_GROUP",
    "CLUSTER_API_VERSION",
    "CLUSTER_FINALIZER",
    "CLUSTER_NAME_LABEL",
    "MACHINE_CONTROL_PLANE_LABEL",
    "OK_TO_DELETE_ANNOTATION",
    "PAUSED_ANNOTATION",
    "APIEndpoint",
    "Cluster",
    "ClusterPhase",
    "Condition",
    "ConditionSeverity",
    "ConditionStatus",
    "ContractVersionedObjectReference",
    "LegacyCondition",
    "Machine",
    "MachineDeployment",
    "MachinePool",
    "MachineSet",
    "ObjectKey",
    "ObjectMeta",
    "OwnedObject",
    "OwnerReference",
]
