"""Static-proxy backend: one Envoy ConfigMap/Deployment/LoadBalancer per scope."""

from __future__ import annotations

import logging
from typing import List, Optional

from src.common.errors import CompilationError, ConfigurationError
from src.common.options import ReconcilerOptions
from src.model.cluster import ENVOY_INGRESS_CONTROLLER, KafkaCluster
from src.model.objects import DesiredObject, TopologySet
from src.resolver.envoy import EnvoyScope, broker_ports, envoy_scopes

from .config import build_envoy_config, config_hash, render_envoy_config
from .resources import config_map, deployment, load_balancer, scope_object_keys

logger = logging.getLogger(__name__)

BACKEND_NAME = "envoy"
GLOBAL_TOPOLOGY = "global"
PER_GROUP_TOPOLOGY = "per-group"


def compile_scope(
    cluster: KafkaCluster, scope: EnvoyScope, options: Optional[ReconcilerOptions] = None
) -> List[DesiredObject]:
    """Compile the artifacts of one scope.

    Returns an empty list when no broker of the scope is served through Envoy.
    """

    options = options or ReconcilerOptions()
    ports = broker_ports(scope.brokers, cluster.spec)
    if not ports:
        logger.debug(
            "envoy scope %s of cluster %s has no externally exposed ports",
            scope.scope_id,
            cluster.name,
        )
        return []
    rendered = render_envoy_config(build_envoy_config(cluster, ports, options.envoy_admin_port))
    objects = [
        config_map(cluster, scope.scope_id, rendered),
        deployment(cluster, scope.scope_id, scope.config, ports, config_hash(rendered), options),
    ]
    if not cluster.spec.envoy_config.bring_your_own_lb:
        objects.append(load_balancer(cluster, scope.scope_id, scope.config, ports))
    return objects


def envoy_enabled(cluster: KafkaCluster) -> bool:
    spec = cluster.spec
    return (
        spec.get_ingress_controller() == ENVOY_INGRESS_CONTROLLER
        and bool(spec.listeners_config.external_listeners)
    )


def compile_topology(
    cluster: KafkaCluster, per_group: bool, active: bool, options: Optional[ReconcilerOptions] = None
) -> TopologySet:
    topology = TopologySet(
        backend=BACKEND_NAME,
        topology=PER_GROUP_TOPOLOGY if per_group else GLOBAL_TOPOLOGY,
        active=active,
    )
    retained = set()
    for scope in envoy_scopes(cluster.spec, per_group):
        try:
            objects = compile_scope(cluster, scope, options)
        except (ConfigurationError, CompilationError) as exc:
            log = logger.error if active else logger.debug
            log(
                "skipping envoy scope %s (%s topology) of cluster %s/%s: %s",
                scope.scope_id,
                topology.topology,
                cluster.namespace,
                cluster.name,
                exc,
            )
            topology.errors.append(exc)
            retained.update(scope_object_keys(cluster, scope.scope_id))
            continue
        for obj in objects:
            topology.add(obj)
    topology.retained = frozenset(retained)
    return topology


def compile_envoy(
    cluster: KafkaCluster, options: Optional[ReconcilerOptions] = None
) -> List[TopologySet]:
    """Compile both Envoy topologies; at most one of them is tagged active."""

    enabled = envoy_enabled(cluster)
    per_group = cluster.spec.envoy_config.enable_envoy_per_broker_group
    return [
        compile_topology(cluster, False, enabled and not per_group, options),
        compile_topology(cluster, True, enabled and per_group, options),
    ]


__all__ = ["BACKEND_NAME", "compile_envoy", "compile_scope", "compile_topology", "envoy_enabled"]
