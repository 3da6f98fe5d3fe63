from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Optional

import typer

from src.common.errors import BackendCallError, ConfigurationError
from src.model.cluster import load_cluster

from .client import CruiseControlHealer, HealerOptions

app = typer.Typer(help="Pause or resume Cruise Control self-healing for a Kafka cluster.")


def _healer(cluster_path: Path, url: Optional[str], retries: int) -> CruiseControlHealer:
    resolved = cluster_path.expanduser().resolve()
    if not resolved.exists():
        raise typer.BadParameter(f"KafkaCluster manifest not found: {resolved}")
    try:
        cluster = load_cluster(resolved.read_text(encoding="utf-8"))
    except ConfigurationError as exc:
        raise typer.BadParameter(str(exc)) from exc
    if url:
        return CruiseControlHealer(
            HealerOptions(server_url=url, retries=retries),
            cluster.spec.cruise_control_config.config,
        )
    return CruiseControlHealer.for_cluster(cluster, retries=retries)


def _run(action, verbose: bool) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format="%(levelname)s: %(message)s",
    )
    try:
        response = action()
    except BackendCallError as exc:
        typer.echo(str(exc), err=True)
        raise typer.Exit(code=1) from exc
    typer.echo(json.dumps(response, indent=2, sort_keys=True))


@app.command()
def pause(
    cluster_path: Path = typer.Option(..., "--cluster", "-c", help="KafkaCluster manifest (YAML)."),
    url: Optional[str] = typer.Option(None, "--url", help="Override the Cruise Control base URL."),
    retries: int = typer.Option(2, "--retries", help="Retries for the admin request."),
    verbose: bool = typer.Option(False, "--verbose", "-v"),
) -> None:
    healer = _healer(cluster_path, url, retries)
    _run(healer.pause_self_healing, verbose)


@app.command()
def resume(
    cluster_path: Path = typer.Option(..., "--cluster", "-c", help="KafkaCluster manifest (YAML)."),
    url: Optional[str] = typer.Option(None, "--url", help="Override the Cruise Control base URL."),
    retries: int = typer.Option(2, "--retries", help="Retries for the admin request."),
    verbose: bool = typer.Option(False, "--verbose", "-v"),
) -> None:
    healer = _healer(cluster_path, url, retries)
    _run(healer.resume_self_healing, verbose)


if __name__ == "__main__":  # pragma: no cover
    app()
