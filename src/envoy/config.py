"""Static Envoy bootstrap generation for one scope."""

from __future__ import annotations

import hashlib
from typing import Any, Dict, List, Sequence

import yaml

from src.common.errors import CompilationError
from src.common.naming import broker_pod_address, envoy_upstream_name
from src.model.cluster import KafkaCluster
from src.resolver.envoy import BrokerPort

TCP_PROXY_FILTER = "envoy.filters.network.tcp_proxy"
TCP_PROXY_TYPE = "type.googleapis.com/envoy.extensions.filters.network.tcp_proxy.v3.TcpProxy"
ADMIN_ACCESS_LOG_PATH = "/tmp/admin_access.log"
CONNECT_TIMEOUT = "1s"


def _socket_address(address: str, port: int) -> Dict[str, Any]:
    return {"socket_address": {"address": address, "port_value": port}}


def _listener(port: BrokerPort) -> Dict[str, Any]:
    upstream = envoy_upstream_name(port.broker_id, port.listener_name)
    return {
        "name": f"listener-{upstream}",
        "address": _socket_address("0.0.0.0", port.external_port),
        "filter_chains": [
            {
                "filters": [
                    {
                        "name": TCP_PROXY_FILTER,
                        "typed_config": {
                            "@type": TCP_PROXY_TYPE,
                            "stat_prefix": f"broker_tcp-{port.broker_id}-{port.listener_name}",
                            "cluster": upstream,
                        },
                    }
                ]
            }
        ],
    }


def _cluster(cluster: KafkaCluster, port: BrokerPort) -> Dict[str, Any]:
    upstream = envoy_upstream_name(port.broker_id, port.listener_name)
    address = broker_pod_address(
        cluster.name,
        port.broker_id,
        cluster.namespace,
        cluster.spec.kubernetes_cluster_domain,
    )
    return {
        "name": upstream,
        "connect_timeout": CONNECT_TIMEOUT,
        "type": "STRICT_DNS",
        "lb_policy": "ROUND_ROBIN",
        "load_assignment": {
            "cluster_name": upstream,
            "endpoints": [
                {"lb_endpoints": [{"endpoint": {"address": _socket_address(address, port.container_port)}}]}
            ],
        },
    }


def build_envoy_config(
    cluster: KafkaCluster, ports: Sequence[BrokerPort], admin_port: int
) -> Dict[str, Any]:
    listeners: List[Dict[str, Any]] = []
    clusters: List[Dict[str, Any]] = []
    for port in ports:
        listeners.append(_listener(port))
        clusters.append(_cluster(cluster, port))
    return {
        "admin": {
            "access_log_path": ADMIN_ACCESS_LOG_PATH,
            "address": _socket_address("0.0.0.0", admin_port),
        },
        "static_resources": {"listeners": listeners, "clusters": clusters},
    }


def render_envoy_config(document: Dict[str, Any]) -> str:
    """Serialise the bootstrap with sorted keys so identical input gives identical bytes."""

    try:
        return yaml.safe_dump(document, sort_keys=True, default_flow_style=False)
    except yaml.YAMLError as exc:
        raise CompilationError(f"could not serialise envoy config: {exc}") from exc


def config_hash(rendered: str) -> str:
    return hashlib.sha256(rendered.encode("utf-8")).hexdigest()


__all__ = ["build_envoy_config", "config_hash", "render_envoy_config"]
