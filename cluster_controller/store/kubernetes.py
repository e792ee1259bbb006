"""Object store backed by a Kubernetes API server.

Cluster API kinds and provider kinds are served through the custom objects
API; Secrets (read by the remote connection prober) through the core API.
"""

import threading
from collections.abc import Callable, Iterator
from typing import Any

from kubernetes import client, watch
from kubernetes.client.rest import ApiException

from cluster_controller.exceptions import (
    ConfigurationError,
    ConflictError,
    NotFoundError,
    ObjectStoreError,
)
from cluster_controller.logging_config import get_logger
from cluster_controller.models.meta import ObjectKey
from cluster_controller.scheme import KindInfo
from cluster_controller.store.base import (
    ObjectStore,
    WatchEvent,
    WatchEventType,
    format_selector,
)

logger = get_logger(__name__)

# Seconds to wait before re-establishing a watch that failed unexpectedly.
WATCH_RETRY_DELAY = 5


def _translate(e: ApiException, action: str, kind: KindInfo, key: ObjectKey | str) -> ObjectStoreError:
    message = f"Failed to {action} {kind.kind} {key}"
    if e.status == 404:
        return NotFoundError(f"{kind.kind} {key} not found")
    if e.status == 409:
        return ConflictError(f"{message}: conflict", e.reason)
    return ObjectStoreError(f"{message}: HTTP {e.status}", e.reason)


class KubernetesObjectStore(ObjectStore):
    """Object store talking to the API server through the kubernetes client."""

    def __init__(
        self,
        api_client: client.ApiClient | None = None,
        request_timeout: float = 30.0,
        watch_timeout_seconds: int = 300,
        watch_namespace: str | None = None,
    ):
        """Initialize the store.

        Args:
            api_client: Configured API client; defaults to the loaded kubeconfig
            request_timeout: Timeout in seconds for every non-watch request
            watch_timeout_seconds: Server-side timeout after which a watch is renewed
            watch_namespace: Restrict watches to one namespace (None watches all)
        """
        self.api_client = api_client or client.ApiClient()
        self.custom = client.CustomObjectsApi(self.api_client)
        self.core = client.CoreV1Api(self.api_client)
        self.request_timeout = request_timeout
        self.watch_timeout_seconds = watch_timeout_seconds
        self.watch_namespace = watch_namespace

    def _check_core_kind(self, kind: KindInfo) -> None:
        if kind.kind != "Secret":
            raise ConfigurationError(
                f"Core kind '{kind.kind}' is not supported by this store",
                "Only Secrets are read from the core API group",
            )

    def _to_dict(self, obj: Any) -> dict[str, Any]:
        return self.api_client.sanitize_for_serialization(obj)

    def get(self, kind: KindInfo, key: ObjectKey) -> dict[str, Any]:
        try:
            if not kind.group:
                self._check_core_kind(kind)
                return self._to_dict(
                    self.core.read_namespaced_secret(
                        key.name, key.namespace, _request_timeout=self.request_timeout
                    )
                )
            return self.custom.get_namespaced_custom_object(
                kind.group,
                kind.version,
                key.namespace,
                kind.plural,
                key.name,
                _request_timeout=self.request_timeout,
            )
        except ApiException as e:
            raise _translate(e, "get", kind, key) from e

    def list(
        self,
        kind: KindInfo,
        namespace: str | None = None,
        label_selector: dict[str, str] | None = None,
    ) -> list[dict[str, Any]]:
        selector = format_selector(label_selector)
        kwargs: dict[str, Any] = {"_request_timeout": self.request_timeout}
        if selector:
            kwargs["label_selector"] = selector
        try:
            if not kind.group:
                self._check_core_kind(kind)
                if namespace:
                    result = self.core.list_namespaced_secret(namespace, **kwargs)
                else:
                    result = self.core.list_secret_for_all_namespaces(**kwargs)
                return [self._to_dict(item) for item in result.items]
            if namespace:
                result = self.custom.list_namespaced_custom_object(
                    kind.group, kind.version, namespace, kind.plural, **kwargs
                )
            else:
                result = self.custom.list_cluster_custom_object(
                    kind.group, kind.version, kind.plural, **kwargs
                )
            return list(result.get("items", []))
        except ApiException as e:
            raise _translate(e, "list", kind, namespace or "<all namespaces>") from e

    def create(self, kind: KindInfo, obj: dict[str, Any]) -> dict[str, Any]:
        metadata = obj.get("metadata") or {}
        key = ObjectKey(metadata.get("namespace", ""), metadata.get("name", ""))
        try:
            if not kind.group:
                self._check_core_kind(kind)
                return self._to_dict(
                    self.core.create_namespaced_secret(
                        key.namespace, obj, _request_timeout=self.request_timeout
                    )
                )
            return self.custom.create_namespaced_custom_object(
                kind.group,
                kind.version,
                key.namespace,
                kind.plural,
                obj,
                _request_timeout=self.request_timeout,
            )
        except ApiException as e:
            raise _translate(e, "create", kind, key) from e

    def patch(
        self,
        kind: KindInfo,
        key: ObjectKey,
        merge_patch: dict[str, Any],
        subresource: str | None = None,
    ) -> dict[str, Any]:
        try:
            if not kind.group:
                self._check_core_kind(kind)
                return self._to_dict(
                    self.core.patch_namespaced_secret(
                        key.name, key.namespace, merge_patch, _request_timeout=self.request_timeout
                    )
                )
            if subresource == "status":
                patch_fn: Callable[..., dict[str, Any]] = (
                    self.custom.patch_namespaced_custom_object_status
                )
            elif subresource is None:
                patch_fn = self.custom.patch_namespaced_custom_object
            else:
                raise ObjectStoreError(f"Unsupported subresource '{subresource}'")
            return patch_fn(
                kind.group,
                kind.version,
                key.namespace,
                kind.plural,
                key.name,
                merge_patch,
                _request_timeout=self.request_timeout,
            )
        except ApiException as e:
            raise _translate(e, "patch", kind, key) from e

    def delete(self, kind: KindInfo, key: ObjectKey) -> None:
        try:
            if not kind.group:
                self._check_core_kind(kind)
                self.core.delete_namespaced_secret(
                    key.name, key.namespace, _request_timeout=self.request_timeout
                )
                return
            self.custom.delete_namespaced_custom_object(
                kind.group,
                kind.version,
                key.namespace,
                kind.plural,
                key.name,
                _request_timeout=self.request_timeout,
            )
        except ApiException as e:
            raise _translate(e, "delete", kind, key) from e

    def _watch_call(self, kind: KindInfo) -> tuple[Callable[..., Any], dict[str, Any]]:
        if not kind.group:
            self._check_core_kind(kind)
            if self.watch_namespace:
                return self.core.list_namespaced_secret, {"namespace": self.watch_namespace}
            return self.core.list_secret_for_all_namespaces, {}
        kwargs = {"group": kind.group, "version": kind.version, "plural": kind.plural}
        if self.watch_namespace:
            return self.custom.list_namespaced_custom_object, {
                **kwargs,
                "namespace": self.watch_namespace,
            }
        return self.custom.list_cluster_custom_object, kwargs

    def watch(self, kind: KindInfo, stop_event: threading.Event) -> Iterator[WatchEvent]:
        func, kwargs = self._watch_call(kind)
        logger.info(f"Starting watch for {kind}")

        while not stop_event.is_set():
            w = watch.Watch()
            try:
                for event in w.stream(func, timeout_seconds=self.watch_timeout_seconds, **kwargs):
                    if stop_event.is_set():
                        break
                    try:
                        event_type = WatchEventType(event["type"])
                    except ValueError:
                        # BOOKMARK and ERROR events carry no object change.
                        continue
                    obj = event["object"]
                    if not isinstance(obj, dict):
                        obj = self._to_dict(obj)
                    yield WatchEvent(type=event_type, kind=kind, object=obj)
            except ApiException as e:
                if e.status == 410:
                    logger.info(f"Watch for {kind} expired, restarting")
                    continue
                logger.error(f"Watch for {kind} failed: HTTP {e.status} {e.reason}")
                stop_event.wait(WATCH_RETRY_DELAY)
            except Exception as e:
                logger.error(f"Unexpected error watching {kind}: {e}", exc_info=True)
                stop_event.wait(WATCH_RETRY_DELAY)
            finally:
                w.stop()

        logger.info(f"Watch for {kind} stopped")
