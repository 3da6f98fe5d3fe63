"""In-memory stand-in for a Kubernetes cluster plus KafkaCluster fixtures."""

from __future__ import annotations

import copy
from typing import Any, Dict, List, Mapping, Optional, Set, Tuple

from src.common.errors import BackendCallError
from src.model.cluster import KafkaCluster, load_cluster
from src.model.objects import DesiredObject, LiveObject, ObjectKey


class InMemoryClusterClient:
    def __init__(self) -> None:
        self.objects: Dict[ObjectKey, Dict[str, Any]] = {}
        self.fail_apply: Set[str] = set()
        self.fail_delete: Set[str] = set()
        self.apply_calls: List[ObjectKey] = []
        self.delete_calls: List[ObjectKey] = []

    def seed(
        self,
        api_version: str,
        kind: str,
        name: str,
        namespace: str,
        labels: Mapping[str, str],
        annotations: Optional[Mapping[str, str]] = None,
        deletion_timestamp: Optional[str] = None,
    ) -> None:
        metadata: Dict[str, Any] = {
            "name": name,
            "namespace": namespace,
            "labels": dict(labels),
            "annotations": dict(annotations or {}),
        }
        if deletion_timestamp:
            metadata["deletionTimestamp"] = deletion_timestamp
        self.objects[(kind, namespace, name)] = {
            "apiVersion": api_version,
            "kind": kind,
            "metadata": metadata,
        }

    def apply(self, obj: DesiredObject, owner_reference: Mapping[str, Any]) -> None:
        self.apply_calls.append(obj.key)
        if obj.name in self.fail_apply:
            raise BackendCallError("apply failed", status=500, kind=obj.kind, name=obj.name)
        self.objects[obj.key] = obj.to_manifest(owner_reference)

    def delete(self, obj) -> None:
        self.delete_calls.append(obj.key)
        if obj.name in self.fail_delete:
            raise BackendCallError("delete failed", status=500, kind=obj.kind, name=obj.name)
        self.objects.pop(obj.key, None)

    def list(
        self, api_version: str, kind: str, namespace: str, labels: Mapping[str, str]
    ) -> List[LiveObject]:
        found = []
        for (obj_kind, obj_namespace, _name), manifest in sorted(self.objects.items()):
            if obj_kind != kind or obj_namespace != namespace:
                continue
            live_labels = manifest["metadata"].get("labels") or {}
            if all(live_labels.get(key) == value for key, value in labels.items()):
                found.append(LiveObject.from_manifest(copy.deepcopy(manifest)))
        return found

    def names(self, kind: str) -> List[str]:
        return sorted(name for (obj_kind, _ns, name) in self.objects if obj_kind == kind)

    def manifest(self, kind: str, name: str, namespace: str = "kafka") -> Dict[str, Any]:
        return self.objects[(kind, namespace, name)]


def broker(broker_id: int, group: str = "", mapping: Optional[List[str]] = None) -> Dict[str, Any]:
    data: Dict[str, Any] = {"id": broker_id}
    if group:
        data["brokerConfigGroup"] = group
    if mapping is not None:
        data["brokerConfig"] = {"brokerIngressMapping": list(mapping)}
    return data


def contour_override(host: str, template: str = "", secret: str = "kafka-tls") -> Dict[str, Any]:
    contour: Dict[str, Any] = {"tlsSecretName": secret}
    if template:
        contour["brokerFQDNTemplate"] = template
    return {"hostnameOverride": host, "contourIngressConfig": contour}


def contour_cluster(
    brokers: List[Dict[str, Any]],
    overrides: Mapping[str, Any],
    default: str = "",
    remove_unused: bool = True,
) -> KafkaCluster:
    return load_cluster(
        {
            "metadata": {"name": "kafka", "namespace": "kafka", "uid": "uid-kafka"},
            "spec": {
                "ingressController": "contour",
                "removeUnusedIngressResources": remove_unused,
                "brokers": brokers,
                "listenersConfig": {
                    "externalListeners": [
                        {
                            "name": "external",
                            "type": "ssl",
                            "containerPort": 9094,
                            "externalStartingPort": -1,
                            "accessMethod": "ClusterIP",
                            "anyCastPort": 8443,
                            "config": {
                                "defaultIngressConfig": default,
                                "ingressConfig": dict(overrides),
                            },
                        }
                    ]
                },
            },
        }
    )


def envoy_cluster(
    per_group: bool = False,
    bring_your_own_lb: bool = False,
    starting_port: int = 19090,
    brokers: Optional[List[Dict[str, Any]]] = None,
    extra_listeners: Optional[List[Dict[str, Any]]] = None,
) -> KafkaCluster:
    if brokers is None:
        brokers = [broker(0, "default"), broker(1, "default"), broker(2, "fast")]
    listeners = [
        {
            "name": "external",
            "containerPort": 9094,
            "externalStartingPort": starting_port,
            "accessMethod": "LoadBalancer",
        }
    ]
    listeners.extend(extra_listeners or [])
    return load_cluster(
        {
            "metadata": {"name": "kafka", "namespace": "kafka", "uid": "uid-kafka"},
            "spec": {
                "ingressController": "envoy",
                "brokers": brokers,
                "brokerConfigGroups": {
                    "default": {"nodeSelector": {"pool": "default"}},
                    "fast": {"envoyConfig": {"replicas": 3}, "nodeSelector": {"pool": "fast"}},
                },
                "envoyConfig": {
                    "enableEnvoyPerBrokerGroup": per_group,
                    "bringYourOwnLB": bring_your_own_lb,
                },
                "listenersConfig": {"externalListeners": listeners},
            },
        }
    )


def keys_of(objects) -> Set[Tuple[str, str]]:
    return {(obj.kind, obj.name) for obj in objects}
