from __future__ import annotations

from typing import Any, Dict, List, Sequence

from src.common.labels import ENVOY_CONFIG_HASH_ANNOTATION, labels_for_envoy
from src.common.naming import (
    envoy_config_name,
    envoy_deployment_name,
    envoy_loadbalancer_name,
    envoy_port_name,
    envoy_scope_name,
)
from src.common.options import ReconcilerOptions
from src.model.cluster import EnvoyConfig, KafkaCluster
from src.model.objects import DesiredObject
from src.resolver.envoy import BrokerPort

ENVOY_CONFIG_KEY = "envoy.yaml"
ENVOY_CONFIG_MOUNT_PATH = "/etc/envoy"


def _scope_labels(cluster: KafkaCluster, scope_id: str) -> Dict[str, str]:
    return labels_for_envoy(cluster.name, envoy_scope_name(scope_id, cluster.name))


def config_map(cluster: KafkaCluster, scope_id: str, rendered_config: str) -> DesiredObject:
    return DesiredObject(
        api_version="v1",
        kind="ConfigMap",
        name=envoy_config_name(scope_id, cluster.name),
        namespace=cluster.namespace,
        labels=_scope_labels(cluster, scope_id),
        body={"data": {ENVOY_CONFIG_KEY: rendered_config}},
    )


def _container_ports(ports: Sequence[BrokerPort], admin_port: int) -> List[Dict[str, Any]]:
    exposed = [
        {"name": envoy_port_name(port.external_port), "containerPort": port.external_port, "protocol": "TCP"}
        for port in ports
    ]
    exposed.append({"name": "envoy-admin", "containerPort": admin_port, "protocol": "TCP"})
    return exposed


def _pod_spec(
    cluster: KafkaCluster,
    scope_id: str,
    envoy_config: EnvoyConfig,
    ports: Sequence[BrokerPort],
    options: ReconcilerOptions,
) -> Dict[str, Any]:
    volume_name = envoy_config_name(scope_id, cluster.name)
    pod_spec: Dict[str, Any] = {
        "serviceAccountName": envoy_config.service_account_name,
        "containers": [
            {
                "name": "envoy",
                "image": envoy_config.image or options.envoy_image,
                "args": ["-c", f"{ENVOY_CONFIG_MOUNT_PATH}/{ENVOY_CONFIG_KEY}"],
                "ports": _container_ports(ports, options.envoy_admin_port),
                "volumeMounts": [
                    {"name": volume_name, "mountPath": ENVOY_CONFIG_MOUNT_PATH, "readOnly": True}
                ],
                "resources": dict(envoy_config.resources),
            }
        ],
        "volumes": [
            {
                "name": volume_name,
                "configMap": {"name": volume_name, "defaultMode": 0o644},
            }
        ],
    }
    if envoy_config.image_pull_secrets:
        pod_spec["imagePullSecrets"] = list(envoy_config.image_pull_secrets)
    if envoy_config.tolerations:
        pod_spec["tolerations"] = list(envoy_config.tolerations)
    if envoy_config.node_selector:
        pod_spec["nodeSelector"] = dict(envoy_config.node_selector)
    if envoy_config.node_affinity:
        pod_spec["affinity"] = {"nodeAffinity": dict(envoy_config.node_affinity)}
    return pod_spec


def deployment(
    cluster: KafkaCluster,
    scope_id: str,
    envoy_config: EnvoyConfig,
    ports: Sequence[BrokerPort],
    rendered_hash: str,
    options: ReconcilerOptions,
) -> DesiredObject:
    labels = _scope_labels(cluster, scope_id)
    return DesiredObject(
        api_version="apps/v1",
        kind="Deployment",
        name=envoy_deployment_name(scope_id, cluster.name),
        namespace=cluster.namespace,
        labels=labels,
        body={
            "spec": {
                "replicas": envoy_config.replicas,
                "selector": {"matchLabels": dict(labels)},
                "template": {
                    "metadata": {
                        "labels": dict(labels),
                        "annotations": {ENVOY_CONFIG_HASH_ANNOTATION: rendered_hash},
                    },
                    "spec": _pod_spec(cluster, scope_id, envoy_config, ports, options),
                },
            }
        },
    )


def load_balancer(
    cluster: KafkaCluster, scope_id: str, envoy_config: EnvoyConfig, ports: Sequence[BrokerPort]
) -> DesiredObject:
    labels = _scope_labels(cluster, scope_id)
    spec: Dict[str, Any] = {
        "type": "LoadBalancer",
        "selector": dict(labels),
        "ports": [
            {
                "name": envoy_port_name(port.external_port),
                "port": port.external_port,
                "targetPort": port.external_port,
                "protocol": "TCP",
            }
            for port in ports
        ],
    }
    if envoy_config.load_balancer_source_ranges:
        spec["loadBalancerSourceRanges"] = list(envoy_config.load_balancer_source_ranges)
    if envoy_config.load_balancer_ip:
        spec["loadBalancerIP"] = envoy_config.load_balancer_ip
    return DesiredObject(
        api_version="v1",
        kind="Service",
        name=envoy_loadbalancer_name(scope_id, cluster.name),
        namespace=cluster.namespace,
        labels=labels,
        annotations=dict(envoy_config.annotations),
        body={"spec": spec},
    )


def scope_object_keys(cluster: KafkaCluster, scope_id: str):
    """Keys of every object a scope produces, computable without compiling it."""

    return frozenset(
        {
            ("ConfigMap", cluster.namespace, envoy_config_name(scope_id, cluster.name)),
            ("Deployment", cluster.namespace, envoy_deployment_name(scope_id, cluster.name)),
            ("Service", cluster.namespace, envoy_loadbalancer_name(scope_id, cluster.name)),
        }
    )


__all__ = ["config_map", "deployment", "load_balancer", "scope_object_keys"]
