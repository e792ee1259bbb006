"""Controller runtime: a deduplicating work queue fed by watches and drained by workers."""

import threading
import time
from collections import deque

from cluster_controller.config import ControllerConfig
from cluster_controller.exceptions import ClusterControllerError, ReconcileError
from cluster_controller.logging_config import get_logger
from cluster_controller.mapper import RequestMapper
from cluster_controller.models.meta import ObjectKey
from cluster_controller.reconciler import ClusterReconciler
from cluster_controller.scheme import (
    CLUSTER,
    MACHINE,
    MACHINE_DEPLOYMENT,
    MACHINE_POOL,
    MACHINE_SET,
    KindInfo,
)
from cluster_controller.store.base import ObjectStore, WatchEvent

logger = get_logger(__name__)

WATCHED_KINDS = [CLUSTER, MACHINE, MACHINE_DEPLOYMENT, MACHINE_SET, MACHINE_POOL]


class WorkQueue:
    """Queue of reconcile requests.

    A key is queued at most once; a key added while a worker processes it is
    queued again when the worker calls ``done``, so one key is never handled
    by two workers at the same time. A key has at most one pending delayed
    add; a later ``add_after`` can only move its deadline earlier.
    """

    def __init__(self, base_delay: float = 0.005, max_delay: float = 1000.0):
        self.base_delay = base_delay
        self.max_delay = max_delay
        self._cond = threading.Condition()
        self._queue: deque[ObjectKey] = deque()
        self._dirty: set[ObjectKey] = set()
        self._processing: set[ObjectKey] = set()
        self._failures: dict[ObjectKey, int] = {}
        self._waiting: dict[ObjectKey, tuple[float, threading.Timer]] = {}
        self._shutting_down = False

    def add(self, key: ObjectKey) -> None:
        with self._cond:
            if self._shutting_down or key in self._dirty:
                return
            self._dirty.add(key)
            if key in self._processing:
                return
            self._queue.append(key)
            self._cond.notify()

    def add_after(self, key: ObjectKey, delay: float) -> None:
        """Add the key once delay seconds have passed."""
        if delay <= 0:
            self.add(key)
            return
        deadline = time.monotonic() + delay
        with self._cond:
            if self._shutting_down:
                return
            pending = self._waiting.get(key)
            if pending is not None:
                if pending[0] <= deadline:
                    return
                pending[1].cancel()
            timer = threading.Timer(delay, lambda: self._fire(key, timer))
            timer.daemon = True
            self._waiting[key] = (deadline, timer)
            timer.start()

    def _fire(self, key: ObjectKey, timer: threading.Timer) -> None:
        with self._cond:
            pending = self._waiting.get(key)
            if pending is None or pending[1] is not timer:
                return
            del self._waiting[key]
        self.add(key)

    def waiting(self) -> int:
        """Number of keys with a pending delayed add."""
        with self._cond:
            return len(self._waiting)

    def when(self, key: ObjectKey) -> float:
        """Return the backoff for the key's next retry and count the failure."""
        with self._cond:
            failures = self._failures.get(key, 0)
            self._failures[key] = failures + 1
        # Cap the exponent before computing to avoid float overflow.
        return min(self.base_delay * 2 ** min(failures, 64), self.max_delay)

    def add_rate_limited(self, key: ObjectKey) -> None:
        self.add_after(key, self.when(key))

    def forget(self, key: ObjectKey) -> None:
        """Reset the key's backoff after a successful reconcile."""
        with self._cond:
            self._failures.pop(key, None)

    def num_requeues(self, key: ObjectKey) -> int:
        with self._cond:
            return self._failures.get(key, 0)

    def get(self, timeout: float | None = None) -> ObjectKey | None:
        """Block until a key is available; None on shutdown or timeout."""
        with self._cond:
            if not self._cond.wait_for(lambda: self._queue or self._shutting_down, timeout):
                return None
            if not self._queue:
                return None
            key = self._queue.popleft()
            self._processing.add(key)
            self._dirty.discard(key)
            return key

    def done(self, key: ObjectKey) -> None:
        with self._cond:
            self._processing.discard(key)
            if key in self._dirty:
                self._queue.append(key)
                self._cond.notify()

    def shutdown(self) -> None:
        with self._cond:
            self._shutting_down = True
            timers = [timer for _, timer in self._waiting.values()]
            self._waiting.clear()
            self._cond.notify_all()
        for timer in timers:
            timer.cancel()

    @property
    def shutting_down(self) -> bool:
        with self._cond:
            return self._shutting_down

    def __len__(self) -> int:
        with self._cond:
            return len(self._queue)


class ClusterController:
    """Runs the reconciler for every Cluster event observed in the store."""

    def __init__(
        self,
        store: ObjectStore,
        reconciler: ClusterReconciler,
        config: ControllerConfig,
        mapper: RequestMapper | None = None,
        queue: WorkQueue | None = None,
    ):
        """Initialize the controller.

        Args:
            store: Object store to watch
            reconciler: Reconciler invoked for each queued cluster key
            config: Controller settings (worker count, namespace, backoff)
            mapper: Maps watch events to cluster keys
            queue: Work queue; one is created from the backoff settings if omitted
        """
        self.store = store
        self.reconciler = reconciler
        self.config = config
        self.mapper = mapper or RequestMapper()
        self.queue = queue or WorkQueue(config.rate_limit_base_delay, config.rate_limit_max_delay)
        self._stop = threading.Event()
        self._threads: list[threading.Thread] = []

    def enqueue(self, event: WatchEvent) -> None:
        for key in self.mapper.map(event):
            if self.config.namespace and key.namespace != self.config.namespace:
                continue
            logger.debug(f"{event.type.value} {event.kind.kind} -> reconcile {key}")
            self.queue.add(key)

    def process_next(self, timeout: float | None = None) -> bool:
        """Reconcile one queued key.

        Returns:
            False if the queue was shut down or nothing arrived within timeout
        """
        key = self.queue.get(timeout)
        if key is None:
            return False

        try:
            result = self.reconciler.reconcile(key)
        except ReconcileError as e:
            if e.is_conflict():
                logger.info(f"Conflict reconciling cluster {key}, retrying")
            else:
                logger.error(f"Error reconciling cluster {key}: {e.message}")
            self.queue.add_rate_limited(key)
        except ClusterControllerError as e:
            logger.error(f"Error reconciling cluster {key}: {e.message}")
            self.queue.add_rate_limited(key)
        except Exception as e:
            logger.error(f"Unexpected error reconciling cluster {key}: {e}", exc_info=True)
            self.queue.add_rate_limited(key)
        else:
            self.queue.forget(key)
            if result.requeue_after:
                self.queue.add_after(key, result.requeue_after)
        finally:
            self.queue.done(key)
        return True

    def _worker(self) -> None:
        while not self._stop.is_set():
            if not self.process_next(timeout=0.5) and self.queue.shutting_down:
                return

    def _watch(self, kind: KindInfo) -> None:
        while not self._stop.is_set():
            try:
                for event in self.store.watch(kind, self._stop):
                    self.enqueue(event)
            except ClusterControllerError as e:
                logger.error(f"Watch for {kind} failed: {e.message}")
                self._stop.wait(1.0)

    def start(self) -> None:
        """Start the watch threads and the worker pool."""
        logger.info(
            f"Starting cluster controller with {self.config.max_concurrent_reconciles} workers"
        )
        for kind in WATCHED_KINDS:
            thread = threading.Thread(target=self._watch, args=(kind,), name=f"watch-{kind.plural}")
            thread.daemon = True
            thread.start()
            self._threads.append(thread)
        for i in range(self.config.max_concurrent_reconciles):
            thread = threading.Thread(target=self._worker, name=f"worker-{i}")
            thread.daemon = True
            thread.start()
            self._threads.append(thread)

    def stop(self, timeout: float = 5.0) -> None:
        logger.info("Stopping cluster controller")
        self._stop.set()
        self.queue.shutdown()
        for thread in self._threads:
            thread.join(timeout)
        self._threads.clear()

    def run(self, stop_event: threading.Event) -> None:
        """Run until stop_event is set."""
        self.start()
        try:
            stop_event.wait()
        finally:
            self.stop()
