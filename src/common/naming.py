"""Deterministic names, ports and DNS names for external-access objects.

Other components look objects up by recomputing these names, so every function
here must return identical output for identical input.
"""

from __future__ import annotations

from typing import Optional

from .errors import ConfigurationError


PER_BROKER_SERVICE_TEMPLATE = "{cluster}-{broker_id}-{listener}"
ANYCAST_SERVICE_TEMPLATE = "contour-svc-{listener}-{cluster}"
ANYCAST_SERVICE_WITH_SCOPE_TEMPLATE = "contour-svc-{listener}-{override}-{cluster}"
HEADLESS_SERVICE_TEMPLATE = "{cluster}-headless"
BROKER_POD_ADDRESS_TEMPLATE = "{cluster}-{broker_id}.{headless}.{namespace}.svc.{domain}"

ENVOY_GLOBAL_SCOPE = "envoy-global"
ENVOY_APP_NAME = "envoy"
ENVOY_CONFIG_NAME = "envoy-config"
ENVOY_LOADBALANCER_NAME = "envoy-loadbalancer"

ANYCAST_PORT_NAME = "tcp-all-broker"
NOT_APPLICABLE_PORT = -1
FQDN_PLACEHOLDER = "%d"


def per_broker_service_name(cluster_name: str, broker_id: int, listener_name: str) -> str:
    return PER_BROKER_SERVICE_TEMPLATE.format(
        cluster=cluster_name, broker_id=broker_id, listener=listener_name
    )


def anycast_service_name(
    listener_name: str, override_name: str, cluster_name: str, *, implicit: bool = False
) -> str:
    """Name of the shared Service of one (listener, override) pair.

    The implicit override synthesised for listeners without named overrides uses
    the short form; named overrides embed their name so they never collide.
    """

    if implicit:
        return ANYCAST_SERVICE_TEMPLATE.format(listener=listener_name, cluster=cluster_name)
    return ANYCAST_SERVICE_WITH_SCOPE_TEMPLATE.format(
        listener=listener_name, override=override_name, cluster=cluster_name
    )


def per_broker_port_name(broker_id: int) -> str:
    return f"broker-{broker_id}"


def external_port(starting_port: int, broker_id: int) -> Optional[int]:
    """External port of a broker in starting-port mode, ``None`` for anycast-only listeners."""

    if starting_port == NOT_APPLICABLE_PORT:
        return None
    return starting_port + broker_id


def broker_fqdn(template: str, broker_id: int) -> str:
    if not template or template.count(FQDN_PLACEHOLDER) != 1:
        raise ConfigurationError(
            "broker FQDN template must contain exactly one '%d' placeholder",
            template=template,
            broker_id=broker_id,
        )
    return template.replace(FQDN_PLACEHOLDER, str(broker_id))


def headless_service_name(cluster_name: str) -> str:
    return HEADLESS_SERVICE_TEMPLATE.format(cluster=cluster_name)


def broker_pod_address(cluster_name: str, broker_id: int, namespace: str, domain: str) -> str:
    return BROKER_POD_ADDRESS_TEMPLATE.format(
        cluster=cluster_name,
        broker_id=broker_id,
        headless=headless_service_name(cluster_name),
        namespace=namespace,
        domain=domain,
    )


def _scoped(base: str, scope_id: str, cluster_name: str) -> str:
    if scope_id == ENVOY_GLOBAL_SCOPE:
        return f"{base}-{cluster_name}"
    return f"{base}-{scope_id}-{cluster_name}"


def envoy_scope_name(scope_id: str, cluster_name: str) -> str:
    return _scoped(ENVOY_APP_NAME, scope_id, cluster_name)


def envoy_deployment_name(scope_id: str, cluster_name: str) -> str:
    return _scoped(ENVOY_APP_NAME, scope_id, cluster_name)


def envoy_config_name(scope_id: str, cluster_name: str) -> str:
    return _scoped(ENVOY_CONFIG_NAME, scope_id, cluster_name)


def envoy_loadbalancer_name(scope_id: str, cluster_name: str) -> str:
    return _scoped(ENVOY_LOADBALANCER_NAME, scope_id, cluster_name)


def envoy_port_name(port: int) -> str:
    return f"tcp-{port}"


def envoy_upstream_name(broker_id: int, listener_name: str) -> str:
    return f"broker-{broker_id}-{listener_name}"


__all__ = [
    "ANYCAST_PORT_NAME",
    "ENVOY_GLOBAL_SCOPE",
    "NOT_APPLICABLE_PORT",
    "anycast_service_name",
    "broker_fqdn",
    "broker_pod_address",
    "envoy_config_name",
    "envoy_deployment_name",
    "envoy_loadbalancer_name",
    "envoy_port_name",
    "envoy_scope_name",
    "envoy_upstream_name",
    "external_port",
    "headless_service_name",
    "per_broker_port_name",
    "per_broker_service_name",
]
