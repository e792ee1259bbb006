"""Tests for mapping watch events to Cluster reconcile requests."""

import pytest

from cluster_controller.mapper import (
    RequestMapper,
    control_plane_machine_to_cluster,
    owner_cluster_to_request,
)
from cluster_controller.models import ObjectKey
from cluster_controller.scheme import (
    CLUSTER,
    DOCKER_CLUSTER,
    MACHINE,
    MACHINE_DEPLOYMENT,
    MACHINE_POOL,
    MACHINE_SET,
)
from cluster_controller.store.base import WatchEvent, WatchEventType
from conftest import CLUSTER_NAME, NAMESPACE, cluster_dict, descendant_dict

CLUSTER_KEY = ObjectKey(NAMESPACE, CLUSTER_NAME)


@pytest.mark.parametrize(
    "control_plane, node_ref, expected",
    [
        (True, "test-node", [CLUSTER_KEY]),
        (True, None, []),
        (False, "test-node", []),
        (False, None, []),
    ],
    ids=[
        "controlplane machine, noderef is set",
        "controlplane machine, noderef is not set",
        "not controlplane machine, noderef is set",
        "not controlplane machine, noderef is not set",
    ],
)
def test_control_plane_machine_to_cluster(control_plane, node_ref, expected):
    """Test that only control plane machines that became nodes map to their cluster."""
    machine = descendant_dict("m", owned=False, control_plane=control_plane, node_ref=node_ref)

    assert control_plane_machine_to_cluster(machine) == expected


def test_control_plane_machine_without_cluster_name():
    """Test that a machine without spec.clusterName maps to nothing."""
    machine = descendant_dict("m", control_plane=True, node_ref="node")
    machine["spec"] = {}

    assert control_plane_machine_to_cluster(machine) == []


def test_owner_cluster_to_request_uses_owner_reference():
    """Test that ownership, not the cluster-name label, selects the cluster."""
    obj = descendant_dict("md", cluster_name="labelled")
    obj["metadata"]["ownerReferences"] = [
        {"apiVersion": "cluster.x-k8s.io/v1beta2", "kind": "Cluster", "name": "owner"},
        {"apiVersion": "cluster.x-k8s.io/v1beta2", "kind": "MachineSet", "name": "ignored"},
        {"apiVersion": "", "kind": "", "name": ""},
    ]

    assert owner_cluster_to_request(obj) == [ObjectKey(NAMESPACE, "owner")]


def test_owner_cluster_to_request_without_owner():
    """Test that an unowned object maps to nothing."""
    assert owner_cluster_to_request(descendant_dict("md", owned=False)) == []


@pytest.mark.parametrize("kind", [MACHINE_DEPLOYMENT, MACHINE_SET, MACHINE_POOL])
def test_mapper_routes_worker_groups_by_owner(kind):
    """Test that worker group events always map to the owning cluster."""
    event = WatchEvent(WatchEventType.MODIFIED, kind, descendant_dict("group"))

    assert RequestMapper().map(event) == [CLUSTER_KEY]


def test_mapper_routes_worker_machines_by_owner():
    """Test that worker machines map through ownership even without a nodeRef."""
    event = WatchEvent(WatchEventType.DELETED, MACHINE, descendant_dict("worker"))

    assert RequestMapper().map(event) == [CLUSTER_KEY]


def test_mapper_routes_control_plane_machines_by_node_ref():
    """Test that control plane machines only map once they have a nodeRef."""
    mapper = RequestMapper()
    pending = descendant_dict("cp", control_plane=True)
    ready = descendant_dict("cp", control_plane=True, node_ref="node-0")

    assert mapper.map(WatchEvent(WatchEventType.MODIFIED, MACHINE, pending)) == []
    assert mapper.map(WatchEvent(WatchEventType.MODIFIED, MACHINE, ready)) == [CLUSTER_KEY]


def test_mapper_routes_clusters_to_themselves():
    """Test that a Cluster event requests a reconcile of that cluster."""
    event = WatchEvent(WatchEventType.ADDED, CLUSTER, cluster_dict())

    assert RequestMapper().map(event) == [CLUSTER_KEY]


def test_mapper_ignores_unknown_kinds():
    """Test that events for kinds without a mapping are dropped."""
    event = WatchEvent(WatchEventType.ADDED, DOCKER_CLUSTER, cluster_dict())

    assert RequestMapper().map(event) == []


def test_mapper_deduplicates_requests():
    """Test that two owner references to the same cluster yield one request."""
    obj = descendant_dict("md")
    obj["metadata"]["ownerReferences"] *= 2

    assert RequestMapper().map(WatchEvent(WatchEventType.ADDED, MACHINE_SET, obj)) == [
        CLUSTER_KEY
    ]
