"""Remote connectivity probing for workload clusters.

The prober reads the cluster's kubeconfig Secret and checks that the
workload API server answers a version request.
"""

import base64
from collections.abc import Callable
from dataclasses import dataclass
from typing import Any, Protocol

import yaml
from kubernetes import client, config
from kubernetes.client.rest import ApiException

from cluster_controller.conditions import (
    REMOTE_CONNECTION_PROBE_FAILED,
    REMOTE_CONNECTION_PROBE_SUCCEEDED,
)
from cluster_controller.exceptions import NotFoundError, ObjectStoreError
from cluster_controller.logging_config import get_logger
from cluster_controller.models.cluster import Cluster
from cluster_controller.models.meta import ObjectKey
from cluster_controller.scheme import SECRET
from cluster_controller.store.base import ObjectStore

logger = get_logger(__name__)

KUBECONFIG_SECRET_SUFFIX = "-kubeconfig"
KUBECONFIG_SECRET_KEY = "value"


@dataclass
class ProbeResult:
    """Outcome of one connectivity probe."""

    reachable: bool
    reason: str = ""
    message: str = ""
    requeue_after: float | None = None


class ConnectivityProber(Protocol):
    def probe(self, cluster: Cluster) -> ProbeResult: ...


def kubeconfig_secret_name(cluster_name: str) -> str:
    return f"{cluster_name}{KUBECONFIG_SECRET_SUFFIX}"


def _connect(kubeconfig: dict[str, Any], timeout: float) -> str:
    """Ask the workload API server for its version; return the git version."""
    api_client = config.new_client_from_config_dict(kubeconfig)
    try:
        version = client.VersionApi(api_client).get_code(_request_timeout=timeout)
        return version.git_version
    finally:
        api_client.close()


class KubeconfigSecretProber:
    """Probe a workload cluster through the kubeconfig stored in a Secret."""

    def __init__(
        self,
        store: ObjectStore,
        interval: float = 10.0,
        timeout: float = 5.0,
        connect: Callable[[dict[str, Any], float], str] = _connect,
    ):
        """Initialize the prober.

        Args:
            store: Store the kubeconfig Secret is read from
            interval: Seconds after which the probe should be repeated
            timeout: Timeout in seconds for the version request
            connect: Function that contacts the API server described by a kubeconfig
        """
        self.store = store
        self.interval = interval
        self.timeout = timeout
        self.connect = connect

    def _unreachable(self, message: str) -> ProbeResult:
        return ProbeResult(
            reachable=False,
            reason=REMOTE_CONNECTION_PROBE_FAILED,
            message=message,
            requeue_after=self.interval,
        )

    def _read_kubeconfig(self, cluster: Cluster) -> dict[str, Any]:
        key = ObjectKey(cluster.metadata.namespace, kubeconfig_secret_name(cluster.name))
        secret = self.store.get(SECRET, key)
        encoded = (secret.get("data") or {}).get(KUBECONFIG_SECRET_KEY)
        if not encoded:
            raise ValueError(f"Secret {key} has no '{KUBECONFIG_SECRET_KEY}' key")
        kubeconfig = yaml.safe_load(base64.b64decode(encoded))
        if not isinstance(kubeconfig, dict):
            raise ValueError(f"Secret {key} does not contain a kubeconfig")
        return kubeconfig

    def probe(self, cluster: Cluster) -> ProbeResult:
        try:
            kubeconfig = self._read_kubeconfig(cluster)
        except NotFoundError:
            return self._unreachable("kubeconfig secret not found")
        except ObjectStoreError as e:
            return self._unreachable(f"failed to read kubeconfig secret: {e.message}")
        except (ValueError, yaml.YAMLError) as e:
            return self._unreachable(f"invalid kubeconfig secret: {e}")

        try:
            version = self.connect(kubeconfig, self.timeout)
        except ApiException as e:
            logger.debug(f"Remote connection probe for {cluster.key} failed: HTTP {e.status}")
            return self._unreachable(f"API server returned HTTP {e.status}")
        except Exception as e:
            logger.debug(f"Remote connection probe for {cluster.key} failed: {e}")
            return self._unreachable(f"cannot reach API server: {e}")

        logger.debug(f"Remote connection probe for {cluster.key} succeeded ({version})")
        return ProbeResult(
            reachable=True,
            reason=REMOTE_CONNECTION_PROBE_SUCCEEDED,
            requeue_after=self.interval,
        )
