"""Routing-CRD backend: anycast and per-broker Services bound by Contour HTTPProxies."""

from __future__ import annotations

import logging
from typing import Any, Dict, List, Optional, Sequence, Set

from src.common.errors import ConfigurationError, InvariantViolation
from src.common.labels import (
    BROKER_ID_LABEL_KEY,
    labels_for_broker,
    labels_for_contour,
    labels_for_kafka,
    merge_labels,
)
from src.common.naming import (
    ANYCAST_PORT_NAME,
    anycast_service_name,
    broker_fqdn,
    per_broker_port_name,
    per_broker_service_name,
)
from src.model.cluster import (
    ACCESS_METHOD_CLUSTER_IP,
    CONTOUR_INGRESS_CONTROLLER,
    Broker,
    ExternalListenerConfig,
    IngressConfig,
    KafkaCluster,
)
from src.model.objects import DesiredObject, ObjectKey, TopologySet
from src.resolver.ingress import (
    brokers_for_ingress_config,
    is_ingress_config_in_use,
    resolve_ingress_configs,
)

logger = logging.getLogger(__name__)

BACKEND_NAME = "contour"
HTTPPROXY_API_VERSION = "projectcontour.io/v1"
HTTPPROXY_KIND = "HTTPProxy"


def contour_active_for(cluster: KafkaCluster, listener: ExternalListenerConfig) -> bool:
    return (
        cluster.spec.get_ingress_controller() == CONTOUR_INGRESS_CONTROLLER
        and listener.access_method == ACCESS_METHOD_CLUSTER_IP
    )


def _service_spec(
    listener: ExternalListenerConfig,
    selector: Dict[str, str],
    port_name: str,
    external_traffic_policy: Optional[str],
) -> Dict[str, Any]:
    spec: Dict[str, Any] = {
        "type": listener.access_method,
        "selector": selector,
        "ports": [
            {
                "name": port_name,
                "port": listener.any_cast_port,
                "targetPort": listener.container_port,
                "protocol": "TCP",
            }
        ],
    }
    if external_traffic_policy and listener.access_method != ACCESS_METHOD_CLUSTER_IP:
        spec["externalTrafficPolicy"] = external_traffic_policy
    return spec


def anycast_service(
    cluster: KafkaCluster,
    listener: ExternalListenerConfig,
    name: str,
    ingress_config: IngressConfig,
    *,
    implicit: bool,
) -> DesiredObject:
    return DesiredObject(
        api_version="v1",
        kind="Service",
        name=anycast_service_name(listener.name, name, cluster.name, implicit=implicit),
        namespace=cluster.namespace,
        labels=merge_labels(labels_for_kafka(cluster.name), labels_for_contour(cluster.name, listener.name)),
        annotations=merge_labels(listener.service_annotations, ingress_config.service_annotations),
        body={
            "spec": _service_spec(
                listener,
                labels_for_kafka(cluster.name),
                ANYCAST_PORT_NAME,
                ingress_config.external_traffic_policy or listener.external_traffic_policy,
            )
        },
    )


def broker_service(
    cluster: KafkaCluster, listener: ExternalListenerConfig, broker_id: int
) -> DesiredObject:
    return DesiredObject(
        api_version="v1",
        kind="Service",
        name=per_broker_service_name(cluster.name, broker_id, listener.name),
        namespace=cluster.namespace,
        labels=merge_labels(
            labels_for_broker(cluster.name, broker_id),
            labels_for_contour(cluster.name, listener.name),
        ),
        annotations=dict(listener.service_annotations),
        body={
            "spec": _service_spec(
                listener,
                labels_for_broker(cluster.name, broker_id),
                per_broker_port_name(broker_id),
                listener.external_traffic_policy,
            )
        },
    )


def http_proxy(
    cluster: KafkaCluster,
    listener: ExternalListenerConfig,
    fqdn: str,
    ingress_config: IngressConfig,
    service: DesiredObject,
    broker_id: Optional[int] = None,
) -> DesiredObject:
    """Bind ``fqdn`` to ``service`` in TCP proxy mode.

    The override's TLS secret is referenced when present; otherwise the TLS
    stream is passed through to the brokers untouched.
    """

    contour_config = ingress_config.contour_ingress_config
    if contour_config is not None and contour_config.tls_secret_name:
        tls: Dict[str, Any] = {"secretName": contour_config.tls_secret_name}
    else:
        tls = {"passthrough": True}
    labels = merge_labels(labels_for_kafka(cluster.name), labels_for_contour(cluster.name, listener.name))
    if broker_id is not None:
        labels[BROKER_ID_LABEL_KEY] = str(broker_id)
    return DesiredObject(
        api_version=HTTPPROXY_API_VERSION,
        kind=HTTPPROXY_KIND,
        name=fqdn,
        namespace=cluster.namespace,
        labels=labels,
        annotations=dict(listener.service_annotations),
        body={
            "spec": {
                "virtualhost": {"fqdn": fqdn, "tls": tls},
                "tcpproxy": {
                    "services": [
                        {"name": service.name, "port": service.body["spec"]["ports"][0]["port"]}
                    ]
                },
            }
        },
    )


def _check_listener(listener: ExternalListenerConfig) -> None:
    if listener.access_method == ACCESS_METHOD_CLUSTER_IP and listener.any_cast_port is None:
        raise InvariantViolation(
            "anyCastPort must be set for ClusterIP access through contour",
            listener=listener.name,
        )


def _override_objects(
    cluster: KafkaCluster,
    listener: ExternalListenerConfig,
    name: str,
    ingress_config: IngressConfig,
    brokers: Sequence[Broker],
    implicit: bool,
) -> List[DesiredObject]:
    hostname = ingress_config.hostname_override
    if not hostname:
        raise InvariantViolation(
            "hostnameOverride must be set, an empty host would route every request",
            listener=listener.name,
            ingress_config=name,
        )
    shared = anycast_service(cluster, listener, name, ingress_config, implicit=implicit)
    objects = [shared, http_proxy(cluster, listener, hostname, ingress_config, shared)]

    contour_config = ingress_config.contour_ingress_config
    template = contour_config.broker_fqdn_template if contour_config is not None else ""
    if not template:
        logger.debug(
            "ingress config %s of listener %s has no broker FQDN template; no per-broker proxies",
            name,
            listener.name,
        )
        return objects
    for broker in brokers:
        try:
            fqdn = broker_fqdn(template, broker.id)
        except ConfigurationError as exc:
            exc.context.update(listener=listener.name, ingress_config=name)
            raise
        service = broker_service(cluster, listener, broker.id)
        objects.append(http_proxy(cluster, listener, fqdn, ingress_config, service, broker.id))
    return objects


def _failed_override_keys(
    cluster: KafkaCluster,
    listener: ExternalListenerConfig,
    name: str,
    ingress_config: IngressConfig,
    brokers: Sequence[Broker],
    implicit: bool,
) -> Set[ObjectKey]:
    """Keys of the live objects a skipped override keeps until it compiles again."""

    namespace = cluster.namespace
    keys = {
        (
            "Service",
            namespace,
            anycast_service_name(listener.name, name, cluster.name, implicit=implicit),
        )
    }
    if ingress_config.hostname_override:
        keys.add((HTTPPROXY_KIND, namespace, ingress_config.hostname_override))
    contour_config = ingress_config.contour_ingress_config
    template = contour_config.broker_fqdn_template if contour_config is not None else ""
    if not template:
        return keys
    for broker in brokers:
        try:
            keys.add((HTTPPROXY_KIND, namespace, broker_fqdn(template, broker.id)))
        except ConfigurationError:
            break
    return keys


def compile_listener(
    cluster: KafkaCluster, listener: ExternalListenerConfig, active: bool = True
) -> TopologySet:
    topology = TopologySet(
        backend=BACKEND_NAME,
        topology=f"listener:{listener.name}",
        active=active,
        listener=listener.name,
    )
    if not active:
        return topology

    spec = cluster.spec
    try:
        _check_listener(listener)
        configs, default_name = resolve_ingress_configs(spec, listener)
    except ConfigurationError as exc:
        logger.error(
            "cannot resolve ingress configs of listener %s in cluster %s/%s: %s",
            listener.name,
            cluster.namespace,
            cluster.name,
            exc,
        )
        topology.errors.append(exc)
        topology.prune_blocked = True
        return topology

    implicit = not listener.has_named_overrides
    participating: Dict[int, Broker] = {}
    retained = set()
    for name in sorted(configs):
        if not is_ingress_config_in_use(name, default_name, spec, implicit=implicit):
            logger.debug("ingress config %s of listener %s is unused", name, listener.name)
            continue
        brokers = brokers_for_ingress_config(name, default_name, spec, implicit=implicit)
        for broker in brokers:
            participating[broker.id] = broker
        try:
            objects = _override_objects(cluster, listener, name, configs[name], brokers, implicit)
        except ConfigurationError as exc:
            logger.error(
                "skipping ingress config %s of listener %s in cluster %s/%s: %s",
                name,
                listener.name,
                cluster.namespace,
                cluster.name,
                exc,
            )
            topology.errors.append(exc)
            retained.update(
                _failed_override_keys(cluster, listener, name, configs[name], brokers, implicit)
            )
            continue
        for obj in objects:
            topology.add(obj)

    for broker_id in sorted(participating):
        topology.add(broker_service(cluster, listener, broker_id))
    topology.retained = frozenset(retained)
    return topology


def compile_contour(cluster: KafkaCluster) -> List[TopologySet]:
    """One topology set per external listener, active where contour serves it.

    An HTTPProxy is named after its FQDN, so a hostname routes to one listener
    only. The first listener in the cluster keeps it; later listeners drop their
    proxy for that hostname and record a ``ConfigurationError``.
    """

    topologies: List[TopologySet] = []
    claimed: Dict[str, str] = {}
    for listener in cluster.spec.listeners_config.external_listeners:
        topology = compile_listener(cluster, listener, contour_active_for(cluster, listener))
        kept: List[DesiredObject] = []
        for obj in topology.objects:
            owner = claimed.setdefault(obj.name, listener.name) if obj.kind == HTTPPROXY_KIND else None
            if owner is None or owner == listener.name:
                kept.append(obj)
                continue
            exc = ConfigurationError(
                "hostname is already routed by another listener",
                listener=listener.name,
                fqdn=obj.name,
                conflicting_listener=owner,
            )
            logger.error("dropping HTTPProxy in cluster %s/%s: %s", cluster.namespace, cluster.name, exc)
            topology.errors.append(exc)
        topology.objects = kept
        topologies.append(topology)
    return topologies


__all__ = [
    "BACKEND_NAME",
    "HTTPPROXY_API_VERSION",
    "HTTPPROXY_KIND",
    "anycast_service",
    "broker_service",
    "compile_contour",
    "compile_listener",
    "contour_active_for",
    "http_proxy",
]
