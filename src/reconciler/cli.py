from __future__ import annotations

import logging
from pathlib import Path
from typing import List, Optional

import typer
import yaml

from src.common.errors import BackendCallError, ConfigurationError
from src.common.options import ReconcilerOptions
from src.model.cluster import KafkaCluster, load_cluster

from .backend import BACKENDS
from .client import KubernetesClusterClient
from .reconciler import ExternalAccessReconciler

app = typer.Typer(help="Compile and reconcile Kafka external-access resources.")


def _configure_logging(verbose: bool) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format="%(levelname)s: %(message)s",
    )


def _load(cluster_path: Path) -> KafkaCluster:
    resolved = cluster_path.expanduser().resolve()
    if not resolved.exists():
        raise typer.BadParameter(f"KafkaCluster manifest not found: {resolved}")
    try:
        return load_cluster(resolved.read_text(encoding="utf-8"))
    except ConfigurationError as exc:
        raise typer.BadParameter(str(exc)) from exc


@app.command()
def render(
    cluster_path: Path = typer.Option(
        ...,
        "--cluster",
        "-c",
        help="Path to the KafkaCluster manifest (YAML).",
    ),
    out: Optional[Path] = typer.Option(
        None,
        "--out",
        "-o",
        help="Write the rendered objects here instead of stdout.",
    ),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Enable debug logging."),
) -> None:
    """Print the objects of every active topology as multi-document YAML."""

    _configure_logging(verbose)
    cluster = _load(cluster_path)
    options = ReconcilerOptions.from_env()
    owner = cluster.owner_reference()
    documents: List[dict] = []
    error_count = 0
    for backend in BACKENDS:
        for topology in backend.compile(cluster, options):
            if not topology.active:
                continue
            error_count += len(topology.errors)
            documents.extend(obj.to_manifest(owner) for obj in topology.objects)
    rendered = yaml.safe_dump_all(documents, sort_keys=False)
    if out is not None:
        out.parent.mkdir(parents=True, exist_ok=True)
        out.write_text(rendered, encoding="utf-8")
        typer.echo(f"Rendered {len(documents)} object(s) to {out.resolve()}")
    else:
        typer.echo(rendered)
    if error_count:
        typer.echo(f"{error_count} configuration error(s); see log output.", err=True)
        raise typer.Exit(code=1)


@app.command()
def reconcile(
    cluster_path: Path = typer.Option(
        ...,
        "--cluster",
        "-c",
        help="Path to the KafkaCluster manifest (YAML).",
    ),
    kubeconfig: Optional[str] = typer.Option(
        None,
        "--kubeconfig",
        help="Kubeconfig file (defaults to in-cluster config, then ~/.kube/config).",
    ),
    context: Optional[str] = typer.Option(None, "--context", help="Kubeconfig context to use."),
    dry_run: bool = typer.Option(
        False,
        "--dry-run",
        help="Send every write with server-side dry-run.",
    ),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Enable debug logging."),
) -> None:
    """Run one reconcile pass against a live cluster."""

    _configure_logging(verbose)
    cluster = _load(cluster_path)
    options = ReconcilerOptions.from_env(dry_run=dry_run)
    client = KubernetesClusterClient.from_kubeconfig(kubeconfig, context, options)
    reconciler = ExternalAccessReconciler(client, options)
    try:
        result = reconciler.reconcile(cluster)
    except BackendCallError as exc:
        typer.echo(f"Reconcile pass aborted: {exc}", err=True)
        raise typer.Exit(code=2) from exc
    typer.echo(
        f"Applied {len(result.applied)} object(s), deleted {len(result.deleted)}, "
        f"kept {len(result.protected)} externally managed."
    )
    if not result.ok:
        for error in result.errors:
            typer.echo(f"error: {error}", err=True)
        raise typer.Exit(code=1)


if __name__ == "__main__":  # pragma: no cover
    app()
