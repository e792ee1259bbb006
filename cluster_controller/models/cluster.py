"""Cluster resource model and the well-known names attached to it."""

from datetime import datetime
from enum import Enum
from typing import Any

from pydantic import Field

from cluster_controller.models.meta import (
    APIEndpoint,
    ClusterObject,
    ContractVersionedObjectReference,
    KubeModel,
    ObjectMeta,
)

CLUSTER_API_GROUP = "cluster.x-k8s.io"
CLUSTER_API_VERSION = f"{CLUSTER_API_GROUP}/v1beta2"

# Finalizer owned by this controller; its presence means cleanup is still pending.
CLUSTER_FINALIZER = "cluster.cluster.x-k8s.io"

CLUSTER_NAME_LABEL = "cluster.x-k8s.io/cluster-name"
MACHINE_CONTROL_PLANE_LABEL = "cluster.x-k8s.io/control-plane"

PAUSED_ANNOTATION = "cluster.x-k8s.io/paused"
# Set by the lifecycle hook machinery once BeforeClusterDelete hooks allow teardown.
OK_TO_DELETE_ANNOTATION = "runtime.cluster.x-k8s.io/ok-to-delete"


class ConditionStatus(str, Enum):
    """Status of a condition."""

    TRUE = "True"
    FALSE = "False"
    UNKNOWN = "Unknown"


class ConditionSeverity(str, Enum):
    """Severity of a False legacy condition."""

    NONE = ""
    INFO = "Info"
    WARNING = "Warning"
    ERROR = "Error"


class ClusterPhase(str, Enum):
    """Coarse lifecycle phase reported in status.phase."""

    PENDING = "Pending"
    PROVISIONING = "Provisioning"
    PROVISIONED = "Provisioned"
    DELETING = "Deleting"


class Condition(KubeModel):
    """Typed, reasoned status field."""

    type: str
    status: ConditionStatus
    reason: str = ""
    message: str = ""
    observed_generation: int | None = None
    last_transition_time: datetime | None = None


class LegacyCondition(KubeModel):
    """Deprecated v1beta1 condition, kept for clients that still read it."""

    type: str
    status: ConditionStatus
    severity: ConditionSeverity = ConditionSeverity.NONE
    reason: str = ""
    message: str = ""
    last_transition_time: datetime | None = None


class ClusterSpec(KubeModel):
    paused: bool | None = None
    infrastructure_ref: ContractVersionedObjectReference = Field(
        default_factory=ContractVersionedObjectReference
    )
    control_plane_ref: ContractVersionedObjectReference = Field(
        default_factory=ContractVersionedObjectReference
    )
    control_plane_endpoint: APIEndpoint = Field(default_factory=APIEndpoint)
    topology: dict[str, Any] | None = None


class ClusterInitialization(KubeModel):
    """One-time provisioning milestones; once True they are never reset."""

    infrastructure_provisioned: bool | None = None
    control_plane_initialized: bool | None = None


class ClusterDeletionStatus(KubeModel):
    """Progress of the delete path while descendants are still present."""

    objects_pending_delete_count: int = 0
    objects_pending_delete_names: list[str] = Field(default_factory=list)


class V1Beta1Status(KubeModel):
    conditions: list[LegacyCondition] = Field(default_factory=list)


class ClusterDeprecatedStatus(KubeModel):
    v1beta1: V1Beta1Status | None = None


class ClusterStatus(KubeModel):
    conditions: list[Condition] = Field(default_factory=list)
    initialization: ClusterInitialization | None = None
    phase: ClusterPhase | None = None
    deletion: ClusterDeletionStatus | None = None
    observed_generation: int | None = None
    deprecated: ClusterDeprecatedStatus | None = None


class Cluster(ClusterObject):
    """Top-level resource reconciled by this controller."""

    spec: ClusterSpec = Field(default_factory=ClusterSpec)
    status: ClusterStatus = Field(default_factory=ClusterStatus)

    @classmethod
    def new(cls, namespace: str, name: str, **spec: Any) -> "Cluster":
        """Build a Cluster with the canonical apiVersion/kind."""
        return cls(
            api_version=CLUSTER_API_VERSION,
            kind="Cluster",
            metadata=ObjectMeta(namespace=namespace, name=name),
            spec=ClusterSpec(**spec),
        )

    def is_paused(self) -> bool:
        return bool(self.spec.paused) or PAUSED_ANNOTATION in self.metadata.annotations

    def has_topology(self) -> bool:
        return bool(self.spec.topology)

    def initialization(self) -> ClusterInitialization:
        """Return status.initialization, creating it on first use."""
        if self.status.initialization is None:
            self.status.initialization = ClusterInitialization()
        return self.status.initialization

    def legacy_conditions(self) -> list[LegacyCondition]:
        """Return status.deprecated.v1beta1.conditions, creating the path on first use."""
        if self.status.deprecated is None:
            self.status.deprecated = ClusterDeprecatedStatus()
        if self.status.deprecated.v1beta1 is None:
            self.status.deprecated.v1beta1 = V1Beta1Status()
        return self.status.deprecated.v1beta1.conditions
