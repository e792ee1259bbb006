"""Reconciliation of Cluster objects.

One call to ``ClusterReconciler.reconcile`` drives one cluster a step closer
to its desired state. The normal path guarantees the finalizer before any
other side effect; the delete path tears the cluster's objects down and only
then releases the finalizer.
"""

from collections.abc import Callable
from dataclasses import dataclass

from pydantic import ValidationError as PydanticValidationError

from cluster_controller import conditions
from cluster_controller.contract import (
    control_plane_endpoint,
    control_plane_initialized,
    infrastructure_provisioned,
)
from cluster_controller.descendants import list_descendants
from cluster_controller.exceptions import (
    ClusterControllerError,
    ConfigurationError,
    NotFoundError,
    ObjectStoreError,
    ReconcileError,
    ValidationError,
)
from cluster_controller.logging_config import get_logger
from cluster_controller.models.cluster import (
    CLUSTER_FINALIZER,
    OK_TO_DELETE_ANNOTATION,
    Cluster,
    ConditionSeverity,
)
from cluster_controller.models.meta import ContractVersionedObjectReference, ObjectKey
from cluster_controller.patch import PatchHelper
from cluster_controller.remote import ConnectivityProber
from cluster_controller.scheme import CLUSTER, Scheme
from cluster_controller.scope import Scope
from cluster_controller.status import set_paused_condition, update_status
from cluster_controller.store.base import ObjectStore

logger = get_logger(__name__)


@dataclass
class Result:
    """What the caller should do with the key after a reconcile."""

    requeue_after: float | None = None

    def merge(self, other: "Result") -> "Result":
        """Keep the earliest requested requeue."""
        if other.requeue_after is None:
            return self
        if self.requeue_after is None or other.requeue_after < self.requeue_after:
            return Result(requeue_after=other.requeue_after)
        return self


Phase = Callable[[Scope], Result]


class ClusterReconciler:
    """Reconciles Cluster objects against the object store."""

    def __init__(
        self,
        store: ObjectStore,
        scheme: Scheme,
        prober: ConnectivityProber,
        delete_requeue_after: float = 5.0,
        require_delete_approval_for_topology: bool = True,
    ):
        """Initialize the reconciler.

        Args:
            store: Object store holding clusters and their descendants
            scheme: Kind table used to resolve provider references
            prober: Checks connectivity to the workload cluster
            delete_requeue_after: Seconds between checks while descendants are deleted
            require_delete_approval_for_topology: Gate teardown of clusters with a
                managed topology on the ok-to-delete annotation
        """
        self.store = store
        self.scheme = scheme
        self.prober = prober
        self.delete_requeue_after = delete_requeue_after
        self.require_delete_approval_for_topology = require_delete_approval_for_topology

    def reconcile(self, key: ObjectKey) -> Result:
        """Reconcile the cluster identified by key.

        Raises:
            ReconcileError: If any step failed; status has been persisted first
            ClusterControllerError: If the cluster could not be read or parsed
        """
        try:
            raw = self.store.get(CLUSTER, key)
        except NotFoundError:
            logger.debug(f"Cluster {key} not found, nothing to do")
            return Result()

        try:
            cluster = Cluster.model_validate(raw)
        except PydanticValidationError as e:
            raise ValidationError(f"Cannot parse Cluster {key}", str(e)) from e

        helper = PatchHelper(self.store, CLUSTER, cluster)

        if cluster.is_paused():
            logger.info(f"Reconciliation is paused for cluster {key}")
            set_paused_condition(cluster)
            helper.patch(cluster)
            return Result()

        if cluster.is_deleting():
            if not cluster.has_finalizer(CLUSTER_FINALIZER):
                logger.debug(f"Cluster {key} is deleting and has no finalizer, nothing to do")
                return Result()
            return self._reconcile_and_patch(helper, Scope(cluster=cluster), self.reconcile_delete)

        if cluster.add_finalizer(CLUSTER_FINALIZER):
            logger.info(f"Adding finalizer {CLUSTER_FINALIZER} to cluster {key}")
            helper.patch(cluster)

        return self._reconcile_and_patch(helper, Scope(cluster=cluster), self.reconcile_normal)

    def reconcile_normal(self, scope: Scope) -> Result:
        """Run the create/update phases; every phase runs even if an earlier one failed.

        Raises:
            ReconcileError: With the errors of every failed phase
        """
        return self._run_phases(
            scope,
            [
                self._reconcile_infrastructure,
                self._reconcile_control_plane,
                self._get_descendants,
                self._probe_remote_connection,
            ],
        )

    def _run_phases(self, scope: Scope, phases: list[Phase]) -> Result:
        result = Result()
        errors: list[Exception] = []
        for phase in phases:
            try:
                result = result.merge(phase(scope))
            except ClusterControllerError as e:
                errors.append(e)
        if errors:
            raise ReconcileError(errors)
        return result

    def _reconcile_and_patch(self, helper: PatchHelper, scope: Scope, reconcile: Phase) -> Result:
        """Run reconcile, then recompute status and persist, even if reconcile failed."""
        cluster = scope.cluster
        result = Result()
        errors: list[Exception] = []
        try:
            result = reconcile(scope)
        except ReconcileError as e:
            errors.extend(e.errors)
        except ClusterControllerError as e:
            errors.append(e)

        update_status(scope)
        try:
            helper.patch(cluster)
        except ObjectStoreError as e:
            logger.warning(f"Failed to patch cluster {cluster.key}: {e.message}")
            errors.append(e)

        if errors:
            raise ReconcileError(errors)
        return result

    def _get_ref_object(
        self, scope: Scope, ref: ContractVersionedObjectReference
    ) -> dict | None:
        """Fetch a referenced provider object; None if it does not exist."""
        kind = self.scheme.for_reference(ref)
        key = ObjectKey(scope.cluster.metadata.namespace, ref.name)
        try:
            return self.store.get(kind, key)
        except NotFoundError:
            return None

    def _reconcile_infrastructure(self, scope: Scope) -> Result:
        cluster = scope.cluster
        ref = cluster.spec.infrastructure_ref
        if not ref.is_defined():
            return Result()

        obj = self._get_ref_object(scope, ref)
        if obj is None:
            scope.infra_cluster_is_not_found = True
            init = cluster.status.initialization
            if init is not None and init.infrastructure_provisioned:
                logger.warning(f"Infrastructure {ref} of cluster {cluster.key} has been deleted")
            else:
                logger.info(f"Waiting for infrastructure {ref} of cluster {cluster.key} to exist")
            return Result()
        scope.infra_cluster = obj

        if infrastructure_provisioned(obj):
            if not cluster.initialization().infrastructure_provisioned:
                logger.info(f"Infrastructure {ref} of cluster {cluster.key} is provisioned")
                cluster.initialization().infrastructure_provisioned = True
        else:
            logger.info(f"Waiting for infrastructure {ref} of cluster {cluster.key}")

        endpoint = control_plane_endpoint(obj)
        if endpoint is not None and not cluster.spec.control_plane_endpoint.is_valid():
            cluster.spec.control_plane_endpoint = endpoint
        return Result()

    def _reconcile_control_plane(self, scope: Scope) -> Result:
        cluster = scope.cluster
        ref = cluster.spec.control_plane_ref
        if not ref.is_defined():
            return Result()

        obj = self._get_ref_object(scope, ref)
        if obj is None:
            logger.info(f"Waiting for control plane {ref} of cluster {cluster.key} to exist")
            return Result()
        scope.control_plane = obj

        if control_plane_initialized(obj):
            if not cluster.initialization().control_plane_initialized:
                logger.info(f"Control plane {ref} of cluster {cluster.key} is initialized")
                cluster.initialization().control_plane_initialized = True
            conditions.v1beta1_mark_true(cluster, conditions.CONTROL_PLANE_INITIALIZED_V1BETA1)
        elif not conditions.v1beta1_is_true(cluster, conditions.CONTROL_PLANE_INITIALIZED_V1BETA1):
            conditions.v1beta1_mark_false(
                cluster,
                conditions.CONTROL_PLANE_INITIALIZED_V1BETA1,
                conditions.WAITING_FOR_CONTROL_PLANE_PROVIDER_INITIALIZED_V1BETA1,
                ConditionSeverity.INFO,
                "Waiting for control plane provider to indicate the control plane has been initialized",
            )

        endpoint = control_plane_endpoint(obj)
        if endpoint is not None and not cluster.spec.control_plane_endpoint.is_valid():
            cluster.spec.control_plane_endpoint = endpoint
        return Result()

    def _get_descendants(self, scope: Scope) -> Result:
        scope.descendants = list_descendants(self.store, scope.cluster)
        scope.get_descendants_succeeded = True
        return Result()

    def _probe_remote_connection(self, scope: Scope) -> Result:
        scope.probe = self.prober.probe(scope.cluster)
        if not scope.probe.reachable:
            logger.info(
                f"Remote connection probe for cluster {scope.cluster.key} failed: "
                f"{scope.probe.message}"
            )
        return Result(requeue_after=scope.probe.requeue_after)

    def delete_approved(self, cluster: Cluster) -> bool:
        """Return True if teardown of the cluster's provider objects may proceed."""
        if not (self.require_delete_approval_for_topology and cluster.has_topology()):
            return True
        return OK_TO_DELETE_ANNOTATION in cluster.metadata.annotations

    def reconcile_delete(self, scope: Scope) -> Result:
        """Delete the cluster's descendants, then its provider objects, then release it."""
        cluster = scope.cluster
        self._get_descendants(scope)

        if not self.delete_approved(cluster):
            logger.info(f"Cluster {cluster.key} is waiting for the BeforeClusterDelete hook")
            scope.deleting_reason = conditions.WAITING_FOR_BEFORE_DELETE_HOOK
            scope.deleting_message = "Waiting for BeforeClusterDelete hook"
            return Result()

        errors: list[Exception] = []
        for kind, child in scope.descendants.filter_owned_descendants(cluster):
            logger.info(f"Deleting {kind.kind_info.kind} {child.key} of cluster {cluster.key}")
            try:
                self.store.delete(kind.kind_info, child.key)
            except NotFoundError:
                continue
            except ObjectStoreError as e:
                logger.error(f"Failed to delete {kind.kind_info.kind} {child.key}: {e.message}")
                errors.append(e)
        if errors:
            scope.deleting_reason = conditions.INTERNAL_ERROR
            scope.deleting_message = "Please check controller logs for errors"
            raise ReconcileError(errors)

        pending = scope.descendants.objects_pending_delete_count(cluster)
        if pending > 0:
            names = scope.descendants.objects_pending_delete_names(cluster)
            logger.info(f"Cluster {cluster.key} still has {pending} descendants, requeueing")
            scope.deleting_reason = conditions.WAITING_FOR_WORKERS_DELETION
            scope.deleting_message = "\n".join(f"* {line}" for line in names)
            return Result(requeue_after=self.delete_requeue_after)

        for ref in (cluster.spec.control_plane_ref, cluster.spec.infrastructure_ref):
            if not ref.is_defined():
                continue
            self._delete_ref_object(scope, ref)

        if cluster.remove_finalizer(CLUSTER_FINALIZER):
            logger.info(f"Removing finalizer {CLUSTER_FINALIZER} from cluster {cluster.key}")
        scope.deleting_reason = conditions.DELETION_COMPLETED
        scope.deleting_message = ""
        return Result()

    def _delete_ref_object(self, scope: Scope, ref: ContractVersionedObjectReference) -> None:
        cluster = scope.cluster
        key = ObjectKey(cluster.metadata.namespace, ref.name)
        logger.info(f"Deleting {ref} of cluster {cluster.key}")
        try:
            self.store.delete(self.scheme.for_reference(ref), key)
        except NotFoundError:
            logger.debug(f"{ref} of cluster {cluster.key} is already gone")
        except (ConfigurationError, ObjectStoreError):
            scope.deleting_reason = conditions.INTERNAL_ERROR
            scope.deleting_message = "Please check controller logs for errors"
            raise
