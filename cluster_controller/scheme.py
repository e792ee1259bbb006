"""Explicit kind tables used to resolve resources in the object store.

The table is built once and passed to every component; nothing registers
itself globally.
"""

from pydantic import BaseModel, field_validator

from cluster_controller.exceptions import ConfigurationError
from cluster_controller.models.cluster import CLUSTER_API_GROUP
from cluster_controller.models.meta import ContractVersionedObjectReference


class KindInfo(BaseModel):
    """How a kind is addressed on the API server."""

    model_config = {"frozen": True}

    kind: str
    group: str
    version: str
    plural: str
    namespaced: bool = True

    @field_validator("kind", "version", "plural")
    @classmethod
    def validate_not_empty(cls, v: str) -> str:
        if not v:
            raise ValueError("kind, version and plural cannot be empty")
        return v

    @property
    def api_version(self) -> str:
        return f"{self.group}/{self.version}" if self.group else self.version

    def __str__(self) -> str:
        return f"{self.kind}.{self.group}" if self.group else self.kind


CLUSTER = KindInfo(kind="Cluster", group=CLUSTER_API_GROUP, version="v1beta2", plural="clusters")
MACHINE = KindInfo(kind="Machine", group=CLUSTER_API_GROUP, version="v1beta2", plural="machines")
MACHINE_DEPLOYMENT = KindInfo(
    kind="MachineDeployment", group=CLUSTER_API_GROUP, version="v1beta2", plural="machinedeployments"
)
MACHINE_SET = KindInfo(
    kind="MachineSet", group=CLUSTER_API_GROUP, version="v1beta2", plural="machinesets"
)
MACHINE_POOL = KindInfo(
    kind="MachinePool", group=CLUSTER_API_GROUP, version="v1beta2", plural="machinepools"
)
SECRET = KindInfo(kind="Secret", group="", version="v1", plural="secrets")

DOCKER_CLUSTER = KindInfo(
    kind="DockerCluster",
    group="infrastructure.cluster.x-k8s.io",
    version="v1beta2",
    plural="dockerclusters",
)
KUBEADM_CONTROL_PLANE = KindInfo(
    kind="KubeadmControlPlane",
    group="controlplane.cluster.x-k8s.io",
    version="v1beta2",
    plural="kubeadmcontrolplanes",
)

BUILTIN_KINDS = [
    CLUSTER,
    MACHINE,
    MACHINE_DEPLOYMENT,
    MACHINE_SET,
    MACHINE_POOL,
    SECRET,
    DOCKER_CLUSTER,
    KUBEADM_CONTROL_PLANE,
]


class Scheme:
    """Lookup table from (group, kind) to KindInfo."""

    def __init__(self, kinds: list[KindInfo]):
        self._kinds: dict[tuple[str, str], KindInfo] = {}
        for info in kinds:
            self.register(info)

    def register(self, info: KindInfo) -> None:
        self._kinds[(info.group, info.kind)] = info

    def lookup(self, group: str, kind: str) -> KindInfo:
        try:
            return self._kinds[(group, kind)]
        except KeyError:
            raise ConfigurationError(
                f"Unknown kind '{kind}' in API group '{group or 'core'}'",
                "Add the kind to provider_kinds in the controller configuration",
            ) from None

    def for_reference(self, ref: ContractVersionedObjectReference) -> KindInfo:
        """Resolve a cluster's infrastructure or control-plane reference."""
        return self.lookup(ref.api_group, ref.kind)

    def __contains__(self, info: KindInfo) -> bool:
        return (info.group, info.kind) in self._kinds

    def __iter__(self):
        return iter(self._kinds.values())


def default_scheme(extra_kinds: list[KindInfo] | None = None) -> Scheme:
    """Build the scheme with the built-in kinds plus any provider kinds."""
    return Scheme(BUILTIN_KINDS + list(extra_kinds or []))
