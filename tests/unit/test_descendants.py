"""Tests for descendant discovery, ownership filtering and deletion reporting."""

from datetime import datetime, timezone

import pytest

from cluster_controller.descendants import ClusterDescendants, DescendantKind, list_descendants
from cluster_controller.exceptions import ObjectStoreError
from cluster_controller.models import (
    CLUSTER_API_VERSION,
    Cluster,
    Machine,
    MachineDeployment,
    MachinePool,
    MachineSet,
    ObjectMeta,
    OwnerReference,
)
from cluster_controller.models.cluster import MACHINE_CONTROL_PLANE_LABEL
from cluster_controller.models.meta import ContractVersionedObjectReference
from conftest import cluster_dict, descendant_dict


def _owner(cluster):
    return OwnerReference(api_version=CLUSTER_API_VERSION, kind="Cluster", name=cluster.name)


def _build(model, name, owner=None, control_plane=False):
    metadata = ObjectMeta(name=name)
    if owner is not None:
        metadata.owner_references.append(_owner(owner))
    if control_plane:
        metadata.labels[MACHINE_CONTROL_PLANE_LABEL] = ""
    return model(metadata=metadata)


@pytest.fixture
def cluster():
    return Cluster.new("", "c")


@pytest.fixture
def mixed_descendants(cluster):
    """Half of every kind owned by the cluster, half not."""
    return ClusterDescendants(
        machine_deployments=[
            _build(MachineDeployment, "md1"),
            _build(MachineDeployment, "md2", owner=cluster),
            _build(MachineDeployment, "md3"),
            _build(MachineDeployment, "md4", owner=cluster),
        ],
        machine_sets=[
            _build(MachineSet, "ms1"),
            _build(MachineSet, "ms2", owner=cluster),
            _build(MachineSet, "ms3"),
            _build(MachineSet, "ms4", owner=cluster),
        ],
        control_plane_machines=[
            _build(Machine, "m3", owner=cluster, control_plane=True),
            _build(Machine, "m6", owner=cluster, control_plane=True),
        ],
        worker_machines=[
            _build(Machine, "m1"),
            _build(Machine, "m2", owner=cluster),
            _build(Machine, "m4"),
            _build(Machine, "m5", owner=cluster),
        ],
        machine_pools=[
            _build(MachinePool, "mp1"),
            _build(MachinePool, "mp2", owner=cluster),
            _build(MachinePool, "mp3"),
            _build(MachinePool, "mp4", owner=cluster),
        ],
    )


@pytest.fixture
def unsorted_descendants():
    """Descendants deliberately listed out of order."""
    return ClusterDescendants(
        machine_deployments=[_build(MachineDeployment, n) for n in ["md2", "md1"]],
        machine_sets=[_build(MachineSet, n) for n in ["ms2", "ms1"]],
        control_plane_machines=[_build(Machine, n) for n in ["cp1", "cp3", "cp2"]],
        worker_machines=[
            _build(Machine, n) for n in ["w2", "w1", "w5", "w6", "w3", "w4", "w8", "w7"]
        ],
        machine_pools=[_build(MachinePool, n) for n in ["mp2", "mp1"]],
    )


def _names(owned):
    return sorted(obj.name for _, obj in owned)


def test_filter_owned_descendants_without_control_plane_ref(cluster, mixed_descendants):
    """Test that every owned descendant is kept when no control plane is referenced."""
    owned = mixed_descendants.filter_owned_descendants(cluster)

    assert _names(owned) == sorted(
        ["mp2", "mp4", "md2", "md4", "ms2", "ms4", "m2", "m5", "m3", "m6"]
    )


def test_filter_owned_descendants_with_control_plane_ref(cluster, mixed_descendants):
    """Test that control plane machines are left to the control plane controller."""
    cluster.spec.control_plane_ref = ContractVersionedObjectReference(kind="SomeKind")

    owned = mixed_descendants.filter_owned_descendants(cluster)

    assert _names(owned) == sorted(["mp2", "mp4", "md2", "md4", "ms2", "ms4", "m2", "m5"])
    assert all(kind is not DescendantKind.CONTROL_PLANE_MACHINES for kind, _ in owned)


def test_filter_owned_descendants_skips_deleting_objects(cluster):
    """Test that objects already being deleted are not deleted again."""
    deleting = _build(MachineDeployment, "md1", owner=cluster)
    deleting.metadata.deletion_timestamp = datetime(2024, 1, 1, tzinfo=timezone.utc)
    descendants = ClusterDescendants(
        machine_deployments=[deleting, _build(MachineDeployment, "md2", owner=cluster)]
    )

    assert _names(descendants.filter_owned_descendants(cluster)) == ["md2"]


def test_filter_owned_descendants_requires_exact_cluster_identity(cluster):
    """Test that owner references to other clusters or other kinds do not count."""
    other_cluster = _build(MachineSet, "other-cluster")
    other_cluster.metadata.owner_references.append(
        OwnerReference(api_version=CLUSTER_API_VERSION, kind="Cluster", name="c2")
    )
    other_kind = _build(MachineSet, "other-kind")
    other_kind.metadata.owner_references.append(
        OwnerReference(api_version=CLUSTER_API_VERSION, kind="MachineDeployment", name="c")
    )
    other_group = _build(MachineSet, "other-group")
    other_group.metadata.owner_references.append(
        OwnerReference(api_version="example.com/v1", kind="Cluster", name="c")
    )
    descendants = ClusterDescendants(machine_sets=[other_cluster, other_kind, other_group])

    assert descendants.filter_owned_descendants(cluster) == []


def test_filter_owned_descendants_tolerates_malformed_owner_references(cluster, caplog):
    """Test that a malformed owner reference is skipped without failing the scan."""
    machine = _build(Machine, "m1", owner=cluster)
    machine.metadata.owner_references.insert(0, OwnerReference(api_version="a/b/c"))
    descendants = ClusterDescendants(worker_machines=[machine, _build(Machine, "m2")])

    owned = descendants.filter_owned_descendants(cluster)

    assert _names(owned) == ["m1"]
    assert "malformed owner references" in caplog.text


def test_objects_pending_delete_without_control_plane_ref(unsorted_descendants):
    """Test the pending count and sorted, truncated name listing."""
    cluster = Cluster()

    assert unsorted_descendants.objects_pending_delete_count(cluster) == 17
    assert unsorted_descendants.objects_pending_delete_names(cluster) == [
        "Control plane Machines: cp1, cp2, cp3",
        "MachineDeployments: md1, md2",
        "MachineSets: ms1, ms2",
        "MachinePools: mp1, mp2",
        "Worker Machines: w1, w2, w3, w4, w5, ... (3 more)",
    ]


def test_objects_pending_delete_with_control_plane_ref(unsorted_descendants):
    """Test that control plane machines are excluded when a control plane is referenced."""
    cluster = Cluster()
    cluster.spec.control_plane_ref = ContractVersionedObjectReference(kind="SomeKind")

    assert unsorted_descendants.objects_pending_delete_count(cluster) == 14
    assert unsorted_descendants.objects_pending_delete_names(cluster) == [
        "MachineDeployments: md1, md2",
        "MachineSets: ms1, ms2",
        "MachinePools: mp1, mp2",
        "Worker Machines: w1, w2, w3, w4, w5, ... (3 more)",
    ]


def test_objects_pending_delete_omits_empty_groups():
    """Test that kinds without objects do not appear and exactly five workers are not truncated."""
    descendants = ClusterDescendants(
        worker_machines=[_build(Machine, f"w{i}") for i in range(5, 0, -1)]
    )
    cluster = Cluster()

    assert descendants.objects_pending_delete_count(cluster) == 5
    assert descendants.objects_pending_delete_names(cluster) == [
        "Worker Machines: w1, w2, w3, w4, w5"
    ]


def test_objects_pending_delete_empty():
    """Test that an empty descendant set reports nothing."""
    descendants = ClusterDescendants()

    assert descendants.objects_pending_delete_count(Cluster()) == 0
    assert descendants.objects_pending_delete_names(Cluster()) == []
    assert len(descendants) == 0


def test_list_descendants_partitions_machines(store, kinds):
    """Test that listing splits machines by the control plane label and ignores other clusters."""
    raw = store.create(kinds["cluster"], cluster_dict())
    cluster = Cluster.model_validate(raw)
    store.create(kinds["machine"], descendant_dict("cp-0", control_plane=True))
    store.create(kinds["machine"], descendant_dict("worker-0"))
    store.create(kinds["machine"], descendant_dict("other-0", cluster_name="other"))
    store.create(kinds["md"], descendant_dict("md-0"))
    store.create(kinds["ms"], descendant_dict("ms-0"))
    store.create(kinds["mp"], descendant_dict("mp-0"))

    descendants = list_descendants(store, cluster)

    assert [m.name for m in descendants.control_plane_machines] == ["cp-0"]
    assert [m.name for m in descendants.worker_machines] == ["worker-0"]
    assert [m.name for m in descendants.machine_deployments] == ["md-0"]
    assert [m.name for m in descendants.machine_sets] == ["ms-0"]
    assert [m.name for m in descendants.machine_pools] == ["mp-0"]
    assert len(descendants) == 5


def test_list_descendants_propagates_store_errors(store, kinds, monkeypatch):
    """Test that a failed list surfaces as an ObjectStoreError."""
    cluster = Cluster.model_validate(store.create(kinds["cluster"], cluster_dict()))

    def failing_list(*args, **kwargs):
        raise ObjectStoreError("connection refused")

    monkeypatch.setattr(store, "list", failing_list)

    with pytest.raises(ObjectStoreError):
        list_descendants(store, cluster)


def test_list_descendants_skips_unparsable_objects(store, kinds, caplog):
    """Test that one object failing validation does not hide its siblings."""
    cluster = Cluster.model_validate(store.create(kinds["cluster"], cluster_dict()))
    broken = descendant_dict("md-bad")
    broken["metadata"]["ownerReferences"][0]["name"] = 42
    store.create(kinds["md"], broken)
    store.create(kinds["md"], descendant_dict("md-good"))

    descendants = list_descendants(store, cluster)

    assert [m.name for m in descendants.machine_deployments] == ["md-good"]
    assert "Skipping MachineDeployment md-bad" in caplog.text
