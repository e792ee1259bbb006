"""Tests for aggregating child state into cluster conditions."""

from datetime import datetime, timezone

from cluster_controller import conditions
from cluster_controller.descendants import ClusterDescendants
from cluster_controller.models import Cluster, ClusterPhase, ConditionStatus, Machine, ObjectMeta
from cluster_controller.models.machine import MachineNodeReference, MachineStatus
from cluster_controller.models.meta import APIEndpoint, ContractVersionedObjectReference
from cluster_controller.remote import ProbeResult
from cluster_controller.scope import Scope
from cluster_controller.status import (
    set_deletion_status,
    set_infrastructure_ready_condition,
    set_phase,
    set_remote_connection_probe_condition,
    set_v1beta1_control_plane_initialized_condition,
    update_status,
)

INFRA_REF = ContractVersionedObjectReference(
    api_group="infrastructure.cluster.x-k8s.io", kind="DockerCluster", name="infra"
)


def _cluster(**spec):
    return Cluster.new("ns", "c", **spec)


def _cp_machine(name, node_ref=None):
    machine = Machine(metadata=ObjectMeta(name=name))
    if node_ref:
        machine.status = MachineStatus(node_ref=MachineNodeReference(name=node_ref))
    return machine


def test_remote_connection_probe_condition():
    """Test that the probe result is reflected with succeeded/failed reasons."""
    cluster = _cluster()

    set_remote_connection_probe_condition(cluster, ProbeResult(False, message="no secret"))
    condition = conditions.get_condition(cluster, conditions.REMOTE_CONNECTION_PROBE)
    assert condition.status == ConditionStatus.FALSE
    assert condition.reason == "RemoteConnectionProbeFailed"
    assert condition.message == "no secret"

    set_remote_connection_probe_condition(cluster, ProbeResult(True))
    condition = conditions.get_condition(cluster, conditions.REMOTE_CONNECTION_PROBE)
    assert condition.status == ConditionStatus.TRUE
    assert condition.reason == "RemoteConnectionProbeSucceeded"


def test_remote_connection_probe_condition_untouched_without_probe():
    """Test that no probe this cycle leaves the condition alone."""
    cluster = _cluster()
    set_remote_connection_probe_condition(cluster, None)

    assert not conditions.has_condition(cluster, conditions.REMOTE_CONNECTION_PROBE)


def test_infrastructure_ready_mirrors_infra_object():
    """Test that InfrastructureReady follows the infrastructure object's readiness."""
    cluster = _cluster(infrastructure_ref=INFRA_REF)

    set_infrastructure_ready_condition(cluster, {"status": {"ready": False}}, False)
    condition = conditions.get_condition(cluster, conditions.INFRASTRUCTURE_READY)
    assert condition.status == ConditionStatus.FALSE
    assert condition.reason == "InfrastructureNotReady"

    set_infrastructure_ready_condition(
        cluster, {"status": {"initialization": {"provisioned": True}}}, False
    )
    assert conditions.is_true(cluster, conditions.INFRASTRUCTURE_READY)


def test_infrastructure_ready_left_unset_on_read_error():
    """Test that a failed read neither asserts nor clears the condition."""
    cluster = _cluster(infrastructure_ref=INFRA_REF)
    set_infrastructure_ready_condition(cluster, None, False)
    assert not conditions.has_condition(cluster, conditions.INFRASTRUCTURE_READY)

    conditions.mark(cluster, conditions.INFRASTRUCTURE_READY, True, "InfrastructureReady")
    set_infrastructure_ready_condition(cluster, None, False)
    assert conditions.is_true(cluster, conditions.INFRASTRUCTURE_READY)


def test_infrastructure_ready_not_found():
    """Test the reasons for a missing infrastructure object."""
    cluster = _cluster(infrastructure_ref=INFRA_REF)
    set_infrastructure_ready_condition(cluster, None, True)
    assert (
        conditions.get_condition(cluster, conditions.INFRASTRUCTURE_READY).reason
        == "InfrastructureDoesNotExist"
    )

    cluster.initialization().infrastructure_provisioned = True
    set_infrastructure_ready_condition(cluster, None, True)
    assert (
        conditions.get_condition(cluster, conditions.INFRASTRUCTURE_READY).reason
        == "InfrastructureDeleted"
    )


def test_infrastructure_ready_without_ref():
    """Test that clusters without an infrastructure reference get no condition."""
    cluster = _cluster()
    set_infrastructure_ready_condition(cluster, None, True)

    assert not conditions.has_condition(cluster, conditions.INFRASTRUCTURE_READY)


def test_v1beta1_control_plane_initialized_from_machines():
    """Test the legacy condition derived from control plane machines."""
    cluster = _cluster()
    descendants = ClusterDescendants(control_plane_machines=[_cp_machine("cp-0")])

    set_v1beta1_control_plane_initialized_condition(cluster, descendants, True)
    condition = conditions.v1beta1_get(cluster, conditions.CONTROL_PLANE_INITIALIZED_V1BETA1)
    assert condition.status == ConditionStatus.FALSE
    assert condition.reason == "WaitingForControlPlaneProviderInitialized"
    assert condition.severity == "Info"

    descendants.control_plane_machines.append(_cp_machine("cp-1", node_ref="node-1"))
    set_v1beta1_control_plane_initialized_condition(cluster, descendants, True)
    assert conditions.v1beta1_is_true(cluster, conditions.CONTROL_PLANE_INITIALIZED_V1BETA1)


def test_v1beta1_control_plane_initialized_never_reverts():
    """Test that a True legacy condition survives losing every control plane machine."""
    cluster = _cluster()
    conditions.v1beta1_mark_true(cluster, conditions.CONTROL_PLANE_INITIALIZED_V1BETA1)

    set_v1beta1_control_plane_initialized_condition(cluster, ClusterDescendants(), True)

    assert conditions.v1beta1_is_true(cluster, conditions.CONTROL_PLANE_INITIALIZED_V1BETA1)


def test_v1beta1_control_plane_initialized_skipped_on_discovery_failure():
    """Test that nothing is asserted when machine discovery failed."""
    cluster = _cluster()

    set_v1beta1_control_plane_initialized_condition(cluster, ClusterDescendants(), False)

    assert not conditions.v1beta1_has(cluster, conditions.CONTROL_PLANE_INITIALIZED_V1BETA1)


def test_v1beta1_control_plane_initialized_skipped_with_control_plane_ref():
    """Test that machines are not consulted when a control plane object is referenced."""
    cluster = _cluster(control_plane_ref=ContractVersionedObjectReference(kind="Kcp", name="cp"))
    descendants = ClusterDescendants(control_plane_machines=[_cp_machine("cp-0", "node")])

    set_v1beta1_control_plane_initialized_condition(cluster, descendants, True)

    assert not conditions.v1beta1_has(cluster, conditions.CONTROL_PLANE_INITIALIZED_V1BETA1)


def test_set_phase_progression():
    """Test Pending, Provisioning, Provisioned and Deleting phases."""
    cluster = _cluster()
    set_phase(cluster)
    assert cluster.status.phase == ClusterPhase.PENDING

    cluster.spec.infrastructure_ref = INFRA_REF
    set_phase(cluster)
    assert cluster.status.phase == ClusterPhase.PROVISIONING

    cluster.initialization().infrastructure_provisioned = True
    cluster.spec.control_plane_endpoint = APIEndpoint(host="10.0.0.1", port=6443)
    set_phase(cluster)
    assert cluster.status.phase == ClusterPhase.PROVISIONED

    cluster.metadata.deletion_timestamp = datetime.now(timezone.utc)
    set_phase(cluster)
    assert cluster.status.phase == ClusterPhase.DELETING


def test_set_deletion_status_keeps_stale_values_on_discovery_failure():
    """Test that a failed listing does not overwrite the last reported progress."""
    cluster = _cluster()
    cluster.metadata.deletion_timestamp = datetime.now(timezone.utc)
    descendants = ClusterDescendants(worker_machines=[_cp_machine("w1"), _cp_machine("w2")])

    set_deletion_status(cluster, descendants, True)
    assert cluster.status.deletion.objects_pending_delete_count == 2
    assert cluster.status.deletion.objects_pending_delete_names == ["Worker Machines: w1, w2"]

    set_deletion_status(cluster, ClusterDescendants(), False)
    assert cluster.status.deletion.objects_pending_delete_count == 2


def test_update_status_for_a_new_cluster():
    """Test the full set of conditions written on a normal reconcile."""
    cluster = _cluster()
    cluster.metadata.generation = 2
    scope = Scope(
        cluster=cluster,
        get_descendants_succeeded=True,
        probe=ProbeResult(False, message="kubeconfig secret not found"),
    )

    update_status(scope)

    assert {c.type for c in cluster.status.conditions} == {
        "Deleting",
        "Paused",
        "RemoteConnectionProbe",
    }
    assert not conditions.is_true(cluster, conditions.DELETING)
    assert cluster.status.observed_generation == 2
    assert cluster.status.deletion is None
    assert cluster.status.phase == ClusterPhase.PENDING
