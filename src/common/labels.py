"""Label and annotation helpers shared across components."""

from __future__ import annotations

from typing import Dict, Mapping, Optional


APP_LABEL_KEY = "app"
KAFKA_CR_LABEL_KEY = "kafka_cr"
BROKER_ID_LABEL_KEY = "brokerId"
EXTERNAL_LISTENER_LABEL_KEY = "eListenerName"
COMPONENT_LABEL_KEY = "app.kubernetes.io/component"

KAFKA_APP = "kafka"
ENVOY_COMPONENT = "envoyingress"
CONTOUR_COMPONENT = "contouringress"

# Objects synced from another cluster by the cluster registry carry this annotation.
CLUSTER_REGISTRY_OWNERSHIP_ANNOTATION = "cluster-registry.k8s.cisco.com/resource-owner-cluster-id"

ENVOY_CONFIG_HASH_ANNOTATION = "envoy.yaml.hash"


def merge_labels(*label_sets: Optional[Mapping[str, str]]) -> Dict[str, str]:
    """Merge label maps left to right; later maps win on key conflicts."""

    merged: Dict[str, str] = {}
    for labels in label_sets:
        if labels:
            merged.update(labels)
    return merged


def labels_for_kafka(cluster_name: str) -> Dict[str, str]:
    return {APP_LABEL_KEY: KAFKA_APP, KAFKA_CR_LABEL_KEY: cluster_name}


def labels_for_broker(cluster_name: str, broker_id: int) -> Dict[str, str]:
    return merge_labels(labels_for_kafka(cluster_name), {BROKER_ID_LABEL_KEY: str(broker_id)})


def labels_for_envoy(cluster_name: str, scope_name: str) -> Dict[str, str]:
    """Selector labels of one Envoy scope (``scope_name`` is the per-scope app name)."""

    return {
        APP_LABEL_KEY: scope_name,
        KAFKA_CR_LABEL_KEY: cluster_name,
        COMPONENT_LABEL_KEY: ENVOY_COMPONENT,
    }


def labels_for_envoy_prune(cluster_name: str) -> Dict[str, str]:
    return {KAFKA_CR_LABEL_KEY: cluster_name, COMPONENT_LABEL_KEY: ENVOY_COMPONENT}


def labels_for_contour(cluster_name: str, listener_name: Optional[str] = None) -> Dict[str, str]:
    labels = {
        APP_LABEL_KEY: CONTOUR_COMPONENT,
        KAFKA_CR_LABEL_KEY: cluster_name,
        COMPONENT_LABEL_KEY: CONTOUR_COMPONENT,
    }
    if listener_name is not None:
        labels[EXTERNAL_LISTENER_LABEL_KEY] = listener_name
    return labels


def is_externally_managed(annotations: Optional[Mapping[str, str]]) -> bool:
    if not annotations:
        return False
    return bool(annotations.get(CLUSTER_REGISTRY_OWNERSHIP_ANNOTATION))


def label_selector(labels: Mapping[str, str]) -> str:
    """Render a label map as an equality-based selector string."""

    return ",".join(f"{key}={value}" for key, value in sorted(labels.items()))


__all__ = [
    "APP_LABEL_KEY",
    "BROKER_ID_LABEL_KEY",
    "CLUSTER_REGISTRY_OWNERSHIP_ANNOTATION",
    "COMPONENT_LABEL_KEY",
    "CONTOUR_COMPONENT",
    "ENVOY_COMPONENT",
    "ENVOY_CONFIG_HASH_ANNOTATION",
    "EXTERNAL_LISTENER_LABEL_KEY",
    "KAFKA_CR_LABEL_KEY",
    "is_externally_managed",
    "label_selector",
    "labels_for_broker",
    "labels_for_contour",
    "labels_for_envoy",
    "labels_for_envoy_prune",
    "labels_for_kafka",
    "merge_labels",
]
