"""State gathered during a single reconcile cycle."""

from dataclasses import dataclass, field
from typing import Any

from cluster_controller.descendants import ClusterDescendants
from cluster_controller.models.cluster import Cluster
from cluster_controller.remote import ProbeResult


@dataclass
class Scope:
    """Everything one reconcile of one cluster has observed.

    A Scope is created per cycle and never shared between cycles or threads.
    ``None`` for a provider object means it was not read: either no reference
    is defined, the read failed, or the object does not exist (the latter is
    flagged separately so conditions can tell the cases apart).
    """

    cluster: Cluster
    infra_cluster: dict[str, Any] | None = None
    infra_cluster_is_not_found: bool = False
    control_plane: dict[str, Any] | None = None
    descendants: ClusterDescendants = field(default_factory=ClusterDescendants)
    get_descendants_succeeded: bool = False
    probe: ProbeResult | None = None
    deleting_reason: str = ""
    deleting_message: str = ""
