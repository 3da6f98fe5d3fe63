"""Configuration resolution for listeners, overrides and Envoy scopes."""

from .envoy import EnvoyScope, broker_ports, envoy_scopes, resolve_envoy_scope_config
from .ingress import (
    brokers_for_ingress_config,
    get_broker_config,
    is_ingress_config_in_use,
    resolve_ingress_configs,
)

__all__ = [
    "EnvoyScope",
    "broker_ports",
    "brokers_for_ingress_config",
    "envoy_scopes",
    "get_broker_config",
    "is_ingress_config_in_use",
    "resolve_envoy_scope_config",
    "resolve_ingress_configs",
]
