"""Backend variants: how each ingress backend compiles and which live objects it owns."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Callable, Dict, List, Tuple

from src.common.labels import labels_for_contour, labels_for_envoy_prune
from src.common.options import ReconcilerOptions
from src.contour.compiler import HTTPPROXY_API_VERSION, HTTPPROXY_KIND, compile_contour
from src.envoy.compiler import compile_envoy
from src.model.cluster import KafkaCluster
from src.model.objects import TopologySet


@dataclass(frozen=True)
class Backend:
    kind: str
    compile: Callable[[KafkaCluster, ReconcilerOptions], List[TopologySet]]
    prune_kinds: Tuple[Tuple[str, str], ...]
    prune_labels: Callable[[KafkaCluster], Dict[str, str]]
    # Listener-scoped backends prune each listener separately using its listener label.
    listener_scoped: bool
    # Prune leftovers whenever the backend is active, not only under global cleanup.
    prune_when_active: bool


ENVOY_BACKEND = Backend(
    kind="envoy",
    compile=compile_envoy,
    prune_kinds=(("v1", "ConfigMap"), ("apps/v1", "Deployment"), ("v1", "Service")),
    prune_labels=lambda cluster: labels_for_envoy_prune(cluster.name),
    listener_scoped=False,
    prune_when_active=True,
)

CONTOUR_BACKEND = Backend(
    kind="contour",
    compile=lambda cluster, _options: compile_contour(cluster),
    prune_kinds=(("v1", "Service"), (HTTPPROXY_API_VERSION, HTTPPROXY_KIND)),
    prune_labels=lambda cluster: labels_for_contour(cluster.name),
    listener_scoped=True,
    prune_when_active=False,
)

BACKENDS: Tuple[Backend, ...] = (ENVOY_BACKEND, CONTOUR_BACKEND)


__all__ = ["BACKENDS", "CONTOUR_BACKEND", "ENVOY_BACKEND", "Backend"]
