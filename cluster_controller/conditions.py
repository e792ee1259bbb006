"""Helpers for reading and writing Cluster conditions.

Setting a condition is idempotent: writing the same status, reason and message
again leaves the stored condition untouched, so a no-op reconcile produces no
status diff and therefore no write. ``lastTransitionTime`` only moves when the
status itself flips.
"""

from datetime import datetime, timezone

from cluster_controller.models.cluster import (
    Cluster,
    Condition,
    ConditionSeverity,
    ConditionStatus,
    LegacyCondition,
)

# Condition types
REMOTE_CONNECTION_PROBE = "RemoteConnectionProbe"
INFRASTRUCTURE_READY = "InfrastructureReady"
DELETING = "Deleting"
PAUSED = "Paused"

# RemoteConnectionProbe reasons
REMOTE_CONNECTION_PROBE_SUCCEEDED = "RemoteConnectionProbeSucceeded"
REMOTE_CONNECTION_PROBE_FAILED = "RemoteConnectionProbeFailed"

# InfrastructureReady reasons
INFRASTRUCTURE_READY_REASON = "InfrastructureReady"
INFRASTRUCTURE_NOT_READY = "InfrastructureNotReady"
INFRASTRUCTURE_DOES_NOT_EXIST = "InfrastructureDoesNotExist"
INFRASTRUCTURE_DELETED = "InfrastructureDeleted"

# Deleting reasons
NOT_DELETING = "NotDeleting"
WAITING_FOR_BEFORE_DELETE_HOOK = "WaitingForBeforeDeleteHook"
WAITING_FOR_WORKERS_DELETION = "WaitingForWorkersDeletion"
DELETION_COMPLETED = "DeletionCompleted"
INTERNAL_ERROR = "InternalError"

# Paused reasons
PAUSED_REASON = "Paused"
NOT_PAUSED = "NotPaused"

# Deprecated v1beta1 condition and reasons
CONTROL_PLANE_INITIALIZED_V1BETA1 = "ControlPlaneInitialized"
WAITING_FOR_CONTROL_PLANE_PROVIDER_INITIALIZED_V1BETA1 = "WaitingForControlPlaneProviderInitialized"


def now() -> datetime:
    """Current time truncated to the second precision of the API server."""
    return datetime.now(timezone.utc).replace(microsecond=0)


def get_condition(cluster: Cluster, condition_type: str) -> Condition | None:
    for condition in cluster.status.conditions:
        if condition.type == condition_type:
            return condition
    return None


def has_condition(cluster: Cluster, condition_type: str) -> bool:
    return get_condition(cluster, condition_type) is not None


def is_true(cluster: Cluster, condition_type: str) -> bool:
    condition = get_condition(cluster, condition_type)
    return condition is not None and condition.status == ConditionStatus.TRUE


def set_condition(cluster: Cluster, condition: Condition) -> bool:
    """Add or update a condition.

    Returns:
        True if the stored conditions changed
    """
    existing = get_condition(cluster, condition.type)
    if existing is None:
        if condition.last_transition_time is None:
            condition.last_transition_time = now()
        cluster.status.conditions.append(condition)
        cluster.status.conditions.sort(key=lambda c: c.type)
        return True

    if (
        existing.status == condition.status
        and existing.reason == condition.reason
        and existing.message == condition.message
        and existing.observed_generation == condition.observed_generation
    ):
        return False

    if existing.status != condition.status:
        existing.last_transition_time = condition.last_transition_time or now()
    existing.status = condition.status
    existing.reason = condition.reason
    existing.message = condition.message
    existing.observed_generation = condition.observed_generation
    return True


def mark(
    cluster: Cluster,
    condition_type: str,
    status: bool,
    reason: str,
    message: str = "",
) -> bool:
    """Shorthand for set_condition with a boolean status."""
    return set_condition(
        cluster,
        Condition(
            type=condition_type,
            status=ConditionStatus.TRUE if status else ConditionStatus.FALSE,
            reason=reason,
            message=message,
            observed_generation=cluster.metadata.generation,
        ),
    )


def v1beta1_get(cluster: Cluster, condition_type: str) -> LegacyCondition | None:
    if cluster.status.deprecated is None or cluster.status.deprecated.v1beta1 is None:
        return None
    for condition in cluster.status.deprecated.v1beta1.conditions:
        if condition.type == condition_type:
            return condition
    return None


def v1beta1_has(cluster: Cluster, condition_type: str) -> bool:
    return v1beta1_get(cluster, condition_type) is not None


def v1beta1_is_true(cluster: Cluster, condition_type: str) -> bool:
    condition = v1beta1_get(cluster, condition_type)
    return condition is not None and condition.status == ConditionStatus.TRUE


def _v1beta1_set(cluster: Cluster, condition: LegacyCondition) -> bool:
    conditions = cluster.legacy_conditions()
    existing = v1beta1_get(cluster, condition.type)
    if existing is None:
        condition.last_transition_time = now()
        conditions.append(condition)
        conditions.sort(key=lambda c: c.type)
        return True

    if (
        existing.status == condition.status
        and existing.severity == condition.severity
        and existing.reason == condition.reason
        and existing.message == condition.message
    ):
        return False

    if existing.status != condition.status:
        existing.last_transition_time = now()
    existing.status = condition.status
    existing.severity = condition.severity
    existing.reason = condition.reason
    existing.message = condition.message
    return True


def v1beta1_mark_true(cluster: Cluster, condition_type: str) -> bool:
    return _v1beta1_set(
        cluster, LegacyCondition(type=condition_type, status=ConditionStatus.TRUE)
    )


def v1beta1_mark_false(
    cluster: Cluster,
    condition_type: str,
    reason: str,
    severity: ConditionSeverity,
    message: str = "",
) -> bool:
    return _v1beta1_set(
        cluster,
        LegacyCondition(
            type=condition_type,
            status=ConditionStatus.FALSE,
            severity=severity,
            reason=reason,
            message=message,
        ),
    )
