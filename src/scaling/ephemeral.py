"""Planning of ephemeral broker changes driven by the cluster extension ConfigMap."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, List, Optional

import yaml
from pydantic import ValidationError

from src.model.cluster import Broker, KafkaCluster

logger = logging.getLogger(__name__)

EXTENSION_CONFIG_MAP_NAME = "kafkacluster-extension"
EXTENSION_DATA_KEY = "kafkaClusterExtention"


@dataclass
class ScalingPlan:
    add: List[Broker] = field(default_factory=list)
    remove: List[int] = field(default_factory=list)

    @property
    def empty(self) -> bool:
        return not self.add and not self.remove


def _parse_extension(extension_yaml: Optional[str]) -> Optional[List[Broker]]:
    try:
        data: Any = yaml.safe_load(extension_yaml or "") or {}
    except yaml.YAMLError as exc:
        logger.error("extension config map data is not valid YAML: %s", exc)
        return None
    if not isinstance(data, dict):
        logger.error("extension config map data must be a mapping")
        return None
    try:
        return [Broker.model_validate(item) for item in data.get("brokers") or []]
    except ValidationError as exc:
        logger.error("extension config map lists an invalid broker: %s", exc)
        return None


def plan_ephemeral_brokers(cluster: KafkaCluster, extension_yaml: Optional[str]) -> ScalingPlan:
    """Brokers to add to and ephemeral broker ids to drop from the cluster spec.

    Only brokers with an id of 1000 or more are ever removed. A malformed
    extension document yields an empty plan.
    """

    external = _parse_extension(extension_yaml)
    if external is None:
        return ScalingPlan()
    current_ids = {broker.id for broker in cluster.spec.brokers}
    external_ids = {broker.id for broker in external}

    plan = ScalingPlan()
    for broker in sorted(external, key=lambda item: item.id):
        if broker.id not in current_ids:
            logger.info("adding new broker %d", broker.id)
            plan.add.append(broker)
    for broker in sorted(cluster.spec.brokers, key=lambda item: item.id):
        if broker.is_ephemeral and broker.id not in external_ids:
            logger.info("removing ephemeral broker %d", broker.id)
            plan.remove.append(broker.id)
    return plan


def apply_plan(cluster: KafkaCluster, plan: ScalingPlan) -> KafkaCluster:
    """Return a copy of ``cluster`` with the plan applied to its broker list."""

    if plan.empty:
        return cluster
    removed = set(plan.remove)
    brokers = [broker for broker in cluster.spec.brokers if broker.id not in removed]
    brokers.extend(plan.add)
    spec = cluster.spec.model_copy(update={"brokers": brokers})
    return cluster.model_copy(update={"spec": spec})


__all__ = [
    "EXTENSION_CONFIG_MAP_NAME",
    "EXTENSION_DATA_KEY",
    "ScalingPlan",
    "apply_plan",
    "plan_ephemeral_brokers",
]
