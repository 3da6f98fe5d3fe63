"""Resolution of named ingress overrides and of merged broker configuration."""

from __future__ import annotations

import logging
from typing import Any, Dict, List, Set, Tuple

from src.common.errors import ConfigurationError
from src.model.cluster import (
    Broker,
    BrokerConfig,
    ExternalListenerConfig,
    IngressConfig,
    KafkaClusterSpec,
)

logger = logging.getLogger(__name__)


def _is_unset(value: Any) -> bool:
    return value is None or value == "" or value == {}


def _merge_broker_config(inline: BrokerConfig, group: BrokerConfig) -> BrokerConfig:
    merged: Dict[str, Any] = {}
    for field_name in BrokerConfig.model_fields:
        own = getattr(inline, field_name)
        inherited = getattr(group, field_name)
        if isinstance(own, list):
            merged[field_name] = list(own) + [item for item in inherited or [] if item not in own]
        elif _is_unset(own):
            merged[field_name] = inherited
        else:
            merged[field_name] = own
    return BrokerConfig(**merged)


def get_broker_config(broker: Broker, spec: KafkaClusterSpec) -> BrokerConfig:
    """Compose the effective config of a broker.

    Inline settings win over the referenced config group; list settings (such as
    the ingress mapping) are appended from the group. A group missing from the
    spec contributes nothing.
    """

    inline = broker.broker_config or BrokerConfig()
    if not broker.broker_config_group:
        return inline
    group = spec.broker_config_groups.get(broker.broker_config_group)
    if group is None:
        logger.warning(
            "broker %d references unknown config group %r; using inline config only",
            broker.id,
            broker.broker_config_group,
        )
        return inline
    return _merge_broker_config(inline, group)


def _implicit_ingress_config(listener: ExternalListenerConfig) -> IngressConfig:
    return IngressConfig(
        hostname_override=listener.hostname_override,
        service_annotations=dict(listener.service_annotations),
        external_traffic_policy=listener.external_traffic_policy,
    )


def known_ingress_config_names(spec: KafkaClusterSpec) -> Set[str]:
    names: Set[str] = set()
    for listener in spec.listeners_config.external_listeners:
        if listener.has_named_overrides:
            names.update(listener.config.ingress_config)
        else:
            names.add(listener.name)
    return names


def _check_broker_mappings(spec: KafkaClusterSpec, listener: ExternalListenerConfig) -> None:
    known = known_ingress_config_names(spec)
    for broker in spec.brokers:
        for mapped in get_broker_config(broker, spec).broker_ingress_mapping:
            if mapped not in known:
                raise ConfigurationError(
                    "broker ingress mapping references an unknown ingress config",
                    listener=listener.name,
                    broker_id=broker.id,
                    ingress_config=mapped,
                )


def resolve_ingress_configs(
    spec: KafkaClusterSpec, listener: ExternalListenerConfig
) -> Tuple[Dict[str, IngressConfig], str]:
    """Return the override map of a listener and its default override name.

    Listeners without named overrides resolve to a single implicit override named
    after the listener, so callers never handle an empty result.
    """

    if not listener.has_named_overrides:
        return {listener.name: _implicit_ingress_config(listener)}, ""

    configs = dict(listener.config.ingress_config)
    default_name = listener.config.default_ingress_config
    if default_name and default_name not in configs:
        raise ConfigurationError(
            "default ingress config does not name a configured override",
            listener=listener.name,
            default=default_name,
        )
    _check_broker_mappings(spec, listener)
    return configs, default_name


def _broker_selects(
    name: str, default_name: str, mapping: List[str], implicit: bool
) -> bool:
    if implicit:
        return True
    if mapping:
        return name in mapping
    return bool(default_name) and name == default_name


def is_ingress_config_in_use(
    name: str, default_name: str, spec: KafkaClusterSpec, *, implicit: bool = False
) -> bool:
    """True when at least one broker selects the override explicitly or through the default."""

    if implicit:
        return True
    return bool(brokers_for_ingress_config(name, default_name, spec))


def brokers_for_ingress_config(
    name: str, default_name: str, spec: KafkaClusterSpec, *, implicit: bool = False
) -> List[Broker]:
    selected = [
        broker
        for broker in spec.brokers
        if _broker_selects(
            name, default_name, get_broker_config(broker, spec).broker_ingress_mapping, implicit
        )
    ]
    return sorted(selected, key=lambda broker: broker.id)


__all__ = [
    "brokers_for_ingress_config",
    "get_broker_config",
    "is_ingress_config_in_use",
    "known_ingress_config_names",
    "resolve_ingress_configs",
]
