"""Object metadata shared by every Cluster API resource."""

from dataclasses import dataclass
from datetime import datetime
from typing import Any

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


class KubeModel(BaseModel):
    """Base model using the camelCase wire format of the Kubernetes API.

    Unknown fields are kept so that an object read from the store can be
    written back without dropping data owned by other controllers.
    """

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, extra="allow")

    def to_dict(self) -> dict[str, Any]:
        """Serialize to the wire format, omitting unset and default fields."""
        return self.model_dump(by_alias=True, exclude_defaults=True, mode="json")


@dataclass(frozen=True, order=True)
class ObjectKey:
    """Namespace/name identity of an object; also used as the reconcile request."""

    namespace: str
    name: str

    def __str__(self) -> str:
        return f"{self.namespace}/{self.name}" if self.namespace else self.name


class OwnerReference(KubeModel):
    """Pointer from a child to the object that created it."""

    api_version: str = ""
    kind: str = ""
    name: str = ""
    uid: str | None = None
    controller: bool | None = None
    block_owner_deletion: bool | None = None

    @property
    def group(self) -> str:
        """API group of the owner; empty for the core group."""
        if "/" not in self.api_version:
            return ""
        return self.api_version.split("/", 1)[0]

    def is_malformed(self) -> bool:
        """Return True if the reference cannot identify an owner."""
        return not self.kind or not self.name or self.api_version.count("/") > 1


class ObjectMeta(KubeModel):
    """Standard object metadata."""

    name: str = ""
    generate_name: str | None = None
    namespace: str = ""
    uid: str | None = None
    resource_version: str | None = None
    generation: int | None = None
    creation_timestamp: datetime | None = None
    deletion_timestamp: datetime | None = None
    labels: dict[str, str] = Field(default_factory=dict)
    annotations: dict[str, str] = Field(default_factory=dict)
    finalizers: list[str] = Field(default_factory=list)
    owner_references: list[OwnerReference] = Field(default_factory=list)


class ContractVersionedObjectReference(KubeModel):
    """Reference to a provider object, resolved by API group and kind."""

    api_group: str = ""
    kind: str = ""
    name: str = ""

    def is_defined(self) -> bool:
        return bool(self.api_group or self.kind or self.name)

    def __str__(self) -> str:
        group = f".{self.api_group}" if self.api_group else ""
        return f"{self.kind}{group} {self.name}"


class APIEndpoint(KubeModel):
    """Endpoint of a workload cluster's API server."""

    host: str = ""
    port: int = 0

    def is_valid(self) -> bool:
        return bool(self.host) and self.port > 0


class ClusterObject(KubeModel):
    """Common shape of every object the reconciler reads."""

    api_version: str | None = None
    kind: str | None = None
    metadata: ObjectMeta = Field(default_factory=ObjectMeta)

    @property
    def name(self) -> str:
        return self.metadata.name

    @property
    def key(self) -> ObjectKey:
        return ObjectKey(self.metadata.namespace, self.metadata.name)

    def is_deleting(self) -> bool:
        return self.metadata.deletion_timestamp is not None

    def has_finalizer(self, finalizer: str) -> bool:
        return finalizer in self.metadata.finalizers

    def add_finalizer(self, finalizer: str) -> bool:
        """Add a finalizer; return True if the object changed."""
        if finalizer in self.metadata.finalizers:
            return False
        self.metadata.finalizers.append(finalizer)
        return True

    def remove_finalizer(self, finalizer: str) -> bool:
        """Remove a finalizer; return True if the object changed."""
        if finalizer not in self.metadata.finalizers:
            return False
        self.metadata.finalizers = [f for f in self.metadata.finalizers if f != finalizer]
        return True
