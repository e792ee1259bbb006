"""Main CLI entry point for the cluster controller."""

import signal
import threading
from pathlib import Path

import typer
from rich.console import Console
from rich.table import Table

from cluster_controller.config import ControllerConfig, load_config
from cluster_controller.exceptions import ClusterControllerError, NotFoundError
from cluster_controller.logging_config import get_logger, setup_logging
from cluster_controller.models.cluster import Cluster, ConditionStatus
from cluster_controller.models.meta import ObjectKey
from cluster_controller.scheme import CLUSTER
from cluster_controller.store.base import ObjectStore

app = typer.Typer(
    name="cluster-controller",
    help="Lifecycle controller for Cluster API clusters",
    add_completion=False,
)

console = Console()
logger = get_logger(__name__)


# Global callback to set up logging
@app.callback()
def main_callback(
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Enable verbose logging"),
    log_file: str | None = typer.Option(None, "--log-file", help="Path to log file"),
):
    """Global options for all commands."""
    log_path = Path(log_file) if log_file else None
    setup_logging(verbose=verbose, log_file=log_path)
    logger.debug("Logging initialized")


def _print_error(e: ClusterControllerError) -> None:
    console.print(f"[red]Error:[/red] {e.message}")
    if e.details:
        console.print(f"\n{e.details}")


def build_store(kubeconfig: str | None, cfg: ControllerConfig) -> ObjectStore:
    """Connect to the management cluster described by kubeconfig (or in-cluster config)."""
    from kubernetes import config
    from kubernetes.config.config_exception import ConfigException

    from cluster_controller.store.kubernetes import KubernetesObjectStore

    try:
        if kubeconfig:
            config.load_kube_config(config_file=kubeconfig)
        else:
            try:
                config.load_incluster_config()
            except ConfigException:
                config.load_kube_config()
    except (ConfigException, OSError) as e:
        raise ClusterControllerError(
            f"Failed to load kubeconfig: {e}",
            "Pass --kubeconfig, set KUBECONFIG, or run inside the management cluster",
        ) from e

    return KubernetesObjectStore(
        request_timeout=cfg.request_timeout,
        watch_timeout_seconds=cfg.watch_timeout_seconds,
        watch_namespace=cfg.namespace,
    )


@app.command()
def version() -> None:
    """Show version information."""
    from cluster_controller import __version__

    typer.echo(f"cluster-controller version {__version__}")


@app.command()
def run(
    config_file: str | None = typer.Option(
        None, "--config", "-c", help="Path to the controller configuration file"
    ),
    kubeconfig: str | None = typer.Option(
        None, "--kubeconfig", help="Kubeconfig of the management cluster"
    ),
    namespace: str | None = typer.Option(
        None, "--namespace", "-n", help="Only reconcile clusters in this namespace"
    ),
    workers: int | None = typer.Option(
        None, "--workers", "-w", min=1, help="Number of concurrent reconciles"
    ),
) -> None:
    """
    Run the controller until interrupted.

    Clusters, Machines, MachineDeployments, MachineSets and MachinePools are
    watched; every change re-queues the owning Cluster for reconciliation.
    """
    from cluster_controller.controller import ClusterController
    from cluster_controller.reconciler import ClusterReconciler
    from cluster_controller.remote import KubeconfigSecretProber
    from cluster_controller.scheme import default_scheme

    try:
        cfg = load_config(config_file)
        overrides = {}
        if namespace is not None:
            overrides["namespace"] = namespace
        if workers is not None:
            overrides["max_concurrent_reconciles"] = workers
        if overrides:
            cfg = ControllerConfig.model_validate({**cfg.model_dump(), **overrides})

        store = build_store(kubeconfig, cfg)
        scheme = default_scheme(cfg.provider_kinds)
        prober = KubeconfigSecretProber(
            store,
            interval=cfg.remote_connection_probe_interval,
            timeout=cfg.remote_connection_probe_timeout,
        )
        reconciler = ClusterReconciler(
            store,
            scheme,
            prober,
            delete_requeue_after=cfg.delete_requeue_after,
            require_delete_approval_for_topology=cfg.require_delete_approval_for_topology,
        )
        controller = ClusterController(store, reconciler, cfg)
    except ClusterControllerError as e:
        logger.error(f"Failed to start controller: {e.message}")
        _print_error(e)
        raise typer.Exit(code=1)

    stop_event = threading.Event()

    def _handle_signal(signum, frame):
        logger.info(f"Received signal {signum}, shutting down")
        stop_event.set()

    signal.signal(signal.SIGINT, _handle_signal)
    signal.signal(signal.SIGTERM, _handle_signal)

    scope = f"namespace {cfg.namespace}" if cfg.namespace else "all namespaces"
    console.print(f"[bold cyan]Reconciling clusters in {scope}[/bold cyan]")
    controller.run(stop_event)
    console.print("[green]✓ Controller stopped[/green]")


def _status_style(status: ConditionStatus) -> str:
    if status == ConditionStatus.TRUE:
        return "[green]True[/green]"
    if status == ConditionStatus.FALSE:
        return "[red]False[/red]"
    return "[yellow]Unknown[/yellow]"


@app.command()
def status(
    namespace: str = typer.Argument(..., help="Namespace of the cluster"),
    name: str = typer.Argument(..., help="Name of the cluster"),
    kubeconfig: str | None = typer.Option(
        None, "--kubeconfig", help="Kubeconfig of the management cluster"
    ),
) -> None:
    """
    Show the conditions and deletion progress of a cluster.

    Examples:
        cluster-controller status default my-cluster
    """
    key = ObjectKey(namespace, name)
    try:
        store = build_store(kubeconfig, ControllerConfig(namespace=namespace))
        cluster = Cluster.model_validate(store.get(CLUSTER, key))
    except NotFoundError:
        console.print(f"[red]Error:[/red] Cluster {key} not found")
        raise typer.Exit(code=1)
    except ClusterControllerError as e:
        _print_error(e)
        raise typer.Exit(code=1)

    phase = cluster.status.phase.value if cluster.status.phase else "Unknown"
    console.print(f"[bold cyan]Cluster:[/bold cyan] {key}")
    console.print(f"[bold cyan]Phase:[/bold cyan] {phase}")

    table = Table(title="Conditions")
    table.add_column("Type", style="cyan")
    table.add_column("Status")
    table.add_column("Reason", style="magenta")
    table.add_column("Message")
    for condition in cluster.status.conditions:
        table.add_row(
            condition.type, _status_style(condition.status), condition.reason, condition.message
        )
    for condition in cluster.legacy_conditions():
        table.add_row(
            f"{condition.type} (v1beta1)",
            _status_style(condition.status),
            condition.reason,
            condition.message,
        )
    console.print(table)

    deletion = cluster.status.deletion
    if deletion is not None:
        console.print("\n[bold]Deletion:[/bold]")
        console.print(f"  Objects pending delete: {deletion.objects_pending_delete_count}")
        for line in deletion.objects_pending_delete_names:
            console.print(f"  {line}")


if __name__ == "__main__":
    app()
