"""Pytest configuration and shared fixtures."""

import pytest
from hypothesis import Verbosity, settings

from cluster_controller.models.cluster import (
    CLUSTER_API_VERSION,
    CLUSTER_NAME_LABEL,
    MACHINE_CONTROL_PLANE_LABEL,
)
from cluster_controller.reconciler import ClusterReconciler
from cluster_controller.remote import ProbeResult
from cluster_controller.scheme import (
    CLUSTER,
    DOCKER_CLUSTER,
    KUBEADM_CONTROL_PLANE,
    MACHINE,
    MACHINE_DEPLOYMENT,
    MACHINE_POOL,
    MACHINE_SET,
    default_scheme,
)
from cluster_controller.store.memory import InMemoryObjectStore

# Configure Hypothesis for property-based testing
settings.register_profile("default", max_examples=100, verbosity=Verbosity.normal)
settings.register_profile("ci", max_examples=1000, verbosity=Verbosity.verbose)
settings.register_profile("dev", max_examples=10, verbosity=Verbosity.verbose)

# Load the default profile
settings.load_profile("default")

NAMESPACE = "test"
CLUSTER_NAME = "test-cluster"


class StaticProber:
    """Prober returning a fixed result and recording the clusters it saw."""

    def __init__(self, reachable: bool = False, requeue_after: float | None = 10.0):
        self.reachable = reachable
        self.requeue_after = requeue_after
        self.probed = []

    def probe(self, cluster):
        self.probed.append(cluster.key)
        if self.reachable:
            return ProbeResult(
                reachable=True,
                reason="RemoteConnectionProbeSucceeded",
                requeue_after=self.requeue_after,
            )
        return ProbeResult(
            reachable=False,
            reason="RemoteConnectionProbeFailed",
            message="kubeconfig secret not found",
            requeue_after=self.requeue_after,
        )


def cluster_dict(name=CLUSTER_NAME, namespace=NAMESPACE, spec=None, **metadata):
    """Wire-format Cluster."""
    return {
        "apiVersion": CLUSTER_API_VERSION,
        "kind": "Cluster",
        "metadata": {"name": name, "namespace": namespace, **metadata},
        "spec": spec or {},
    }


def owner_ref(cluster_name=CLUSTER_NAME):
    return {"apiVersion": CLUSTER_API_VERSION, "kind": "Cluster", "name": cluster_name}


def descendant_dict(
    name,
    cluster_name=CLUSTER_NAME,
    namespace=NAMESPACE,
    owned=True,
    control_plane=False,
    node_ref=None,
):
    """Wire-format descendant labelled with its cluster's name."""
    labels = {CLUSTER_NAME_LABEL: cluster_name}
    if control_plane:
        labels[MACHINE_CONTROL_PLANE_LABEL] = ""
    obj = {
        "metadata": {
            "name": name,
            "namespace": namespace,
            "labels": labels,
            "ownerReferences": [owner_ref(cluster_name)] if owned else [],
        },
        "spec": {"clusterName": cluster_name},
    }
    if node_ref:
        obj["status"] = {"nodeRef": {"name": node_ref}}
    return obj


@pytest.fixture
def store():
    return InMemoryObjectStore()


@pytest.fixture
def scheme():
    return default_scheme()


@pytest.fixture
def prober():
    return StaticProber()


@pytest.fixture
def reconciler(store, scheme, prober):
    return ClusterReconciler(store, scheme, prober, delete_requeue_after=5.0)


@pytest.fixture
def kinds():
    """Kinds used by the fixtures, keyed by a short name."""
    return {
        "cluster": CLUSTER,
        "machine": MACHINE,
        "md": MACHINE_DEPLOYMENT,
        "ms": MACHINE_SET,
        "mp": MACHINE_POOL,
        "infra": DOCKER_CLUSTER,
        "cp": KUBEADM_CONTROL_PLANE,
    }
