"""Accessors for provider objects read without a typed model.

Infrastructure and control-plane providers publish their state at well-known
paths. Both the current ``status.initialization`` fields and the older
top-level booleans are honored.
"""

from typing import Any

from cluster_controller.models.meta import APIEndpoint


def _get_path(obj: dict[str, Any], *path: str) -> Any:
    current: Any = obj
    for part in path:
        if not isinstance(current, dict):
            return None
        current = current.get(part)
    return current


def infrastructure_provisioned(obj: dict[str, Any]) -> bool:
    """Return True once the infrastructure object reports it is provisioned."""
    value = _get_path(obj, "status", "initialization", "provisioned")
    if value is None:
        value = _get_path(obj, "status", "ready")
    return value is True


def control_plane_initialized(obj: dict[str, Any]) -> bool:
    """Return True once the control-plane object reports it is initialized."""
    value = _get_path(obj, "status", "initialization", "controlPlaneInitialized")
    if value is None:
        value = _get_path(obj, "status", "initialized")
    return value is True


def control_plane_endpoint(obj: dict[str, Any]) -> APIEndpoint | None:
    """Return the endpoint a provider published in spec.controlPlaneEndpoint, if valid."""
    raw = _get_path(obj, "spec", "controlPlaneEndpoint")
    if not isinstance(raw, dict):
        return None
    try:
        endpoint = APIEndpoint.model_validate(raw)
    except ValueError:
        return None
    return endpoint if endpoint.is_valid() else None


def is_deleting(obj: dict[str, Any]) -> bool:
    return _get_path(obj, "metadata", "deletionTimestamp") is not None
