"""Scope membership, per-scope Envoy settings and external port derivation."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Dict, List, Optional, Sequence, Tuple

from src.common.errors import ConfigurationError
from src.common.naming import ENVOY_GLOBAL_SCOPE, NOT_APPLICABLE_PORT, external_port
from src.model.cluster import (
    ACCESS_METHOD_LOAD_BALANCER,
    Broker,
    BrokerConfig,
    EnvoyConfig,
    ExternalListenerConfig,
    KafkaClusterSpec,
)

from .ingress import get_broker_config

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class EnvoyScope:
    scope_id: str
    config: EnvoyConfig
    brokers: Tuple[Broker, ...]


@dataclass(frozen=True)
class BrokerPort:
    broker_id: int
    listener_name: str
    external_port: int
    container_port: int


def resolve_envoy_scope_config(
    scope_id: str, group_config: Optional[BrokerConfig], spec: KafkaClusterSpec
) -> EnvoyConfig:
    """Apply group-level replicas, node selector and node affinity over the cluster default.

    Each field is overridden only when the group sets it explicitly, and only in
    per-group mode. Nothing else is merged.
    """

    base = spec.envoy_config
    if (
        not base.enable_envoy_per_broker_group
        or scope_id == ENVOY_GLOBAL_SCOPE
        or group_config is None
    ):
        return base

    update: Dict[str, object] = {}
    if group_config.envoy_config is not None and (group_config.envoy_config.replicas or 0) > 0:
        update["replicas"] = group_config.envoy_config.replicas
    if group_config.node_selector is not None:
        update["node_selector"] = group_config.node_selector
    if group_config.node_affinity is not None:
        update["node_affinity"] = group_config.node_affinity
    if not update:
        return base
    return base.model_copy(update=update)


def envoy_scopes(spec: KafkaClusterSpec, per_group: bool) -> List[EnvoyScope]:
    """Split brokers into Envoy scopes.

    The global topology has one scope with every broker. The per-group topology
    has one scope per config group with at least one member; brokers without a
    group stay in the global scope so every broker is exposed exactly once.
    """

    brokers = sorted(spec.brokers, key=lambda broker: broker.id)
    if not per_group:
        return [
            EnvoyScope(
                scope_id=ENVOY_GLOBAL_SCOPE,
                config=resolve_envoy_scope_config(ENVOY_GLOBAL_SCOPE, None, spec),
                brokers=tuple(brokers),
            )
        ]

    members: Dict[str, List[Broker]] = {}
    for broker in brokers:
        members.setdefault(broker.broker_config_group or ENVOY_GLOBAL_SCOPE, []).append(broker)

    scopes: List[EnvoyScope] = []
    for scope_id in sorted(members):
        group_config = spec.broker_config_groups.get(scope_id)
        if scope_id != ENVOY_GLOBAL_SCOPE and group_config is None:
            logger.warning("envoy scope %r has no matching broker config group", scope_id)
        scopes.append(
            EnvoyScope(
                scope_id=scope_id,
                config=resolve_envoy_scope_config(scope_id, group_config, spec),
                brokers=tuple(members[scope_id]),
            )
        )
    return scopes


def effective_external_listeners(
    broker: Broker, spec: KafkaClusterSpec
) -> List[ExternalListenerConfig]:
    """Cluster listeners with same-named broker-level listeners taking their place."""

    listeners = list(spec.listeners_config.external_listeners)
    broker_listeners = get_broker_config(broker, spec).listeners_config
    if broker_listeners is None or not broker_listeners.external_listeners:
        return listeners
    overrides = {listener.name: listener for listener in broker_listeners.external_listeners}
    return [overrides.get(listener.name, listener) for listener in listeners]


def is_envoy_served(listener: ExternalListenerConfig) -> bool:
    return (
        listener.access_method == ACCESS_METHOD_LOAD_BALANCER
        and listener.external_starting_port != NOT_APPLICABLE_PORT
    )


def broker_ports(brokers: Sequence[Broker], spec: KafkaClusterSpec) -> List[BrokerPort]:
    """External ports served by Envoy for ``brokers``, broker id ascending.

    Raises ``ConfigurationError`` when two listeners derive the same port.
    """

    ports: List[BrokerPort] = []
    owners: Dict[int, Tuple[str, int]] = {}
    for broker in sorted(brokers, key=lambda item: item.id):
        for listener in effective_external_listeners(broker, spec):
            if not is_envoy_served(listener):
                continue
            port = external_port(listener.external_starting_port, broker.id)
            if port is None:
                continue
            previous = owners.get(port)
            if previous is not None:
                raise ConfigurationError(
                    "external port collides across listeners",
                    port=port,
                    listener=listener.name,
                    broker_id=broker.id,
                    conflicting_listener=previous[0],
                    conflicting_broker_id=previous[1],
                )
            owners[port] = (listener.name, broker.id)
            ports.append(
                BrokerPort(
                    broker_id=broker.id,
                    listener_name=listener.name,
                    external_port=port,
                    container_port=listener.container_port,
                )
            )
    return ports


__all__ = [
    "BrokerPort",
    "EnvoyScope",
    "broker_ports",
    "effective_external_listeners",
    "envoy_scopes",
    "is_envoy_served",
    "resolve_envoy_scope_config",
]
