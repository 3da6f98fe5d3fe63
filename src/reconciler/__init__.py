"""Reconciliation and pruning of external-access objects."""

from .backend import BACKENDS, CONTOUR_BACKEND, ENVOY_BACKEND, Backend
from .client import ClusterClient, KubernetesClusterClient
from .reconciler import ExternalAccessReconciler, ReconcileResult

__all__ = [
    "BACKENDS",
    "CONTOUR_BACKEND",
    "ENVOY_BACKEND",
    "Backend",
    "ClusterClient",
    "ExternalAccessReconciler",
    "KubernetesClusterClient",
    "ReconcileResult",
]
