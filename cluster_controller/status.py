"""Aggregation of observed child state into Cluster conditions and status fields.

A condition whose input could not be collected this cycle is left as it
was: it is neither asserted nor cleared.
"""

from cluster_controller import conditions
from cluster_controller.contract import infrastructure_provisioned
from cluster_controller.descendants import ClusterDescendants
from cluster_controller.logging_config import get_logger
from cluster_controller.models.cluster import (
    Cluster,
    ClusterDeletionStatus,
    ClusterPhase,
    ConditionSeverity,
)
from cluster_controller.remote import ProbeResult
from cluster_controller.scope import Scope

logger = get_logger(__name__)


def set_remote_connection_probe_condition(cluster: Cluster, probe: ProbeResult | None) -> None:
    if probe is None:
        return
    if probe.reachable:
        conditions.mark(
            cluster,
            conditions.REMOTE_CONNECTION_PROBE,
            True,
            conditions.REMOTE_CONNECTION_PROBE_SUCCEEDED,
        )
        return
    conditions.mark(
        cluster,
        conditions.REMOTE_CONNECTION_PROBE,
        False,
        conditions.REMOTE_CONNECTION_PROBE_FAILED,
        probe.message,
    )


def set_infrastructure_ready_condition(
    cluster: Cluster, infra_cluster: dict | None, infra_cluster_is_not_found: bool
) -> None:
    """Mirror the infrastructure object's readiness.

    Nothing is written when no infrastructure reference is defined or when the
    object could not be read for a reason other than not-found.
    """
    ref = cluster.spec.infrastructure_ref
    if not ref.is_defined():
        return

    if infra_cluster is None:
        if not infra_cluster_is_not_found:
            return
        # A provisioned infrastructure that disappears was deleted, not never created.
        init = cluster.status.initialization
        if init is not None and init.infrastructure_provisioned:
            conditions.mark(
                cluster,
                conditions.INFRASTRUCTURE_READY,
                False,
                conditions.INFRASTRUCTURE_DELETED,
                f"{ref.kind} {ref.name} has been deleted",
            )
        else:
            conditions.mark(
                cluster,
                conditions.INFRASTRUCTURE_READY,
                False,
                conditions.INFRASTRUCTURE_DOES_NOT_EXIST,
                f"{ref.kind} {ref.name} does not exist",
            )
        return

    if infrastructure_provisioned(infra_cluster):
        conditions.mark(
            cluster, conditions.INFRASTRUCTURE_READY, True, conditions.INFRASTRUCTURE_READY_REASON
        )
    else:
        conditions.mark(
            cluster,
            conditions.INFRASTRUCTURE_READY,
            False,
            conditions.INFRASTRUCTURE_NOT_READY,
            f"{ref.kind} {ref.name} is not ready",
        )


def set_v1beta1_control_plane_initialized_condition(
    cluster: Cluster, descendants: ClusterDescendants, get_descendants_succeeded: bool
) -> None:
    """Derive the legacy ControlPlaneInitialized condition from control-plane machines.

    Only used for clusters without a control-plane reference; with one, the
    control-plane object is the source of truth. Once True the condition is
    never written again.
    """
    if cluster.spec.control_plane_ref.is_defined():
        return
    if conditions.v1beta1_is_true(cluster, conditions.CONTROL_PLANE_INITIALIZED_V1BETA1):
        return
    if not get_descendants_succeeded:
        return

    for machine in descendants.control_plane_machines:
        if machine.has_node_ref():
            logger.info(f"Control plane of cluster {cluster.key} initialized ({machine.name})")
            conditions.v1beta1_mark_true(cluster, conditions.CONTROL_PLANE_INITIALIZED_V1BETA1)
            return

    conditions.v1beta1_mark_false(
        cluster,
        conditions.CONTROL_PLANE_INITIALIZED_V1BETA1,
        conditions.WAITING_FOR_CONTROL_PLANE_PROVIDER_INITIALIZED_V1BETA1,
        ConditionSeverity.INFO,
        "Waiting for the first control plane machine to have its status.nodeRef set",
    )


def set_paused_condition(cluster: Cluster) -> None:
    if cluster.is_paused():
        conditions.mark(cluster, conditions.PAUSED, True, conditions.PAUSED_REASON)
    else:
        conditions.mark(cluster, conditions.PAUSED, False, conditions.NOT_PAUSED)


def set_deleting_condition(cluster: Cluster, reason: str, message: str) -> None:
    if not cluster.is_deleting():
        conditions.mark(cluster, conditions.DELETING, False, conditions.NOT_DELETING)
        return
    if not reason:
        return
    conditions.mark(cluster, conditions.DELETING, True, reason, message)


def set_deletion_status(
    cluster: Cluster, descendants: ClusterDescendants, get_descendants_succeeded: bool
) -> None:
    """Publish the number and names of descendants the delete path waits on."""
    if not cluster.is_deleting():
        cluster.status.deletion = None
        return
    if not get_descendants_succeeded:
        return
    cluster.status.deletion = ClusterDeletionStatus(
        objects_pending_delete_count=descendants.objects_pending_delete_count(cluster),
        objects_pending_delete_names=descendants.objects_pending_delete_names(cluster),
    )


def set_phase(cluster: Cluster) -> None:
    init = cluster.status.initialization
    if cluster.is_deleting():
        phase = ClusterPhase.DELETING
    elif (
        init is not None
        and init.infrastructure_provisioned
        and cluster.spec.control_plane_endpoint.is_valid()
    ):
        phase = ClusterPhase.PROVISIONED
    elif cluster.spec.infrastructure_ref.is_defined() or cluster.spec.control_plane_ref.is_defined():
        phase = ClusterPhase.PROVISIONING
    else:
        phase = ClusterPhase.PENDING

    if cluster.status.phase != phase:
        logger.info(f"Cluster {cluster.key} phase {cluster.status.phase} -> {phase.value}")
        cluster.status.phase = phase


def update_status(scope: Scope) -> None:
    """Recompute every aggregated condition and status field from the scope."""
    cluster = scope.cluster

    set_remote_connection_probe_condition(cluster, scope.probe)
    set_infrastructure_ready_condition(
        cluster, scope.infra_cluster, scope.infra_cluster_is_not_found
    )
    set_v1beta1_control_plane_initialized_condition(
        cluster, scope.descendants, scope.get_descendants_succeeded
    )
    set_paused_condition(cluster)
    set_deleting_condition(cluster, scope.deleting_reason, scope.deleting_message)
    set_deletion_status(cluster, scope.descendants, scope.get_descendants_succeeded)
    set_phase(cluster)
    cluster.status.observed_generation = cluster.metadata.generation
