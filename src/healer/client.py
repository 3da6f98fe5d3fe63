"""Cruise Control self-healing toggle."""

from __future__ import annotations

import enum
import logging
import random
import time
from dataclasses import dataclass
from typing import Any, Dict, Iterable, List, Optional

import httpx

from src.common.errors import BackendCallError
from src.model.cluster import KafkaCluster

logger = logging.getLogger(__name__)

CRUISE_CONTROL_SERVICE_TEMPLATE = "{cluster}-cruisecontrol-svc"
CRUISE_CONTROL_PORT = 8090
CRUISE_CONTROL_BASE_PATH = "kafkacruisecontrol"
USER_AGENT = "kafka-external-access"


class AnomalyType(str, enum.Enum):
    BROKER_FAILURE = "BROKER_FAILURE"
    DISK_FAILURE = "DISK_FAILURE"
    GOAL_VIOLATION = "GOAL_VIOLATION"
    MAINTENANCE_EVENT = "MAINTENANCE_EVENT"
    METRIC_ANOMALY = "METRIC_ANOMALY"
    TOPIC_ANOMALY = "TOPIC_ANOMALY"


SELF_HEALING_PROPERTY = "self.healing.enabled"
ANOMALY_PROPERTIES = {
    "self.healing.broker.failure.enabled": AnomalyType.BROKER_FAILURE,
    "self.healing.disk.failure.enabled": AnomalyType.DISK_FAILURE,
    "self.healing.goal.violation.enabled": AnomalyType.GOAL_VIOLATION,
    "self.healing.maintenance.event.enabled": AnomalyType.MAINTENANCE_EVENT,
    "self.healing.metric.anomaly.enabled": AnomalyType.METRIC_ANOMALY,
    "self.healing.topic.anomaly.enabled": AnomalyType.TOPIC_ANOMALY,
}


def parse_properties(text: str) -> Dict[str, str]:
    """Parse Java properties style ``key=value`` lines; comments and blanks are skipped."""

    properties: Dict[str, str] = {}
    for raw_line in (text or "").strip().splitlines():
        line = raw_line.strip()
        if not line or line.startswith(("#", "!")):
            continue
        separator = line.find("=")
        if separator < 0:
            continue
        properties[line[:separator].strip()] = line[separator + 1 :].strip()
    return properties


def _as_bool(value: Optional[str], default: bool) -> bool:
    if value is None:
        return default
    lowered = value.strip().lower()
    if lowered in {"true", "yes", "1"}:
        return True
    if lowered in {"false", "no", "0"}:
        return False
    return default


def anomaly_types_from_config(config: str) -> List[AnomalyType]:
    """Anomaly types whose self-healing is switched on in a Cruise Control config."""

    properties = parse_properties(config)
    enabled_by_default = _as_bool(properties.get(SELF_HEALING_PROPERTY), False)
    return [
        anomaly
        for prop, anomaly in ANOMALY_PROPERTIES.items()
        if _as_bool(properties.get(prop), enabled_by_default)
    ]


def cruise_control_url(cluster: KafkaCluster) -> str:
    service = CRUISE_CONTROL_SERVICE_TEMPLATE.format(cluster=cluster.name)
    return (
        f"http://{service}.{cluster.namespace}.svc.{cluster.spec.kubernetes_cluster_domain}"
        f":{CRUISE_CONTROL_PORT}/{CRUISE_CONTROL_BASE_PATH}"
    )


@dataclass
class HealerOptions:
    server_url: str
    timeout_seconds: float = 30.0
    retries: int = 2
    seed: Optional[int] = None


class CruiseControlHealer:
    """Enables or disables Cruise Control self-healing per anomaly type."""

    def __init__(self, options: HealerOptions, cruise_control_config: str = "") -> None:
        if not options.server_url.startswith("http"):
            raise ValueError("Cruise Control URL must start with http or https")
        self.server_url = options.server_url.rstrip("/")
        self.timeout = options.timeout_seconds
        self.retries = max(0, int(options.retries))
        self.cruise_control_config = cruise_control_config
        self._rng = random.Random(options.seed) if options.seed is not None else random.Random()

    @classmethod
    def for_cluster(
        cls, cluster: KafkaCluster, *, timeout_seconds: float = 30.0, retries: int = 2
    ) -> "CruiseControlHealer":
        options = HealerOptions(
            server_url=cruise_control_url(cluster),
            timeout_seconds=timeout_seconds,
            retries=retries,
        )
        return cls(options, cluster.spec.cruise_control_config.config)

    def set_enabled_anomaly_types(self, enabled: Iterable[AnomalyType]) -> Dict[str, Any]:
        """Enable self-healing for ``enabled`` and disable it for every other type."""

        enabled_set = {AnomalyType(anomaly) for anomaly in enabled}
        enable = [anomaly.value for anomaly in AnomalyType if anomaly in enabled_set]
        disable = [anomaly.value for anomaly in AnomalyType if anomaly not in enabled_set]
        params = {"json": "true"}
        if enable:
            params["enable_self_healing_for"] = ",".join(enable)
        if disable:
            params["disable_self_healing_for"] = ",".join(disable)
        return self._admin(params)

    def pause_self_healing(self) -> Dict[str, Any]:
        logger.info("Disabling self healing for %s", [anomaly.value for anomaly in AnomalyType])
        return self.set_enabled_anomaly_types([])

    def resume_self_healing(self) -> Dict[str, Any]:
        enabled = anomaly_types_from_config(self.cruise_control_config)
        logger.info("Enabling self healing for %s", [anomaly.value for anomaly in enabled])
        return self.set_enabled_anomaly_types(enabled)

    def _admin(self, params: Dict[str, str]) -> Dict[str, Any]:
        url = f"{self.server_url}/admin"
        attempt = 0
        while True:
            try:
                with httpx.Client(timeout=self.timeout, headers={"User-Agent": USER_AGENT}) as client:
                    response = client.post(url, params=params)
                    response.raise_for_status()
                return response.json() if response.content else {}
            except (httpx.HTTPError, ValueError) as exc:
                if attempt >= self.retries:
                    status = exc.response.status_code if isinstance(exc, httpx.HTTPStatusError) else None
                    raise BackendCallError(
                        f"Cruise Control admin request failed: {exc}", status=status, url=url
                    ) from exc
                time.sleep(self._backoff_seconds(attempt))
                attempt += 1

    def _backoff_seconds(self, attempt: int) -> float:
        base = 0.5 * (2 ** attempt)
        jitter = self._rng.uniform(0, base)
        return base + jitter


__all__ = [
    "AnomalyType",
    "CruiseControlHealer",
    "HealerOptions",
    "anomaly_types_from_config",
    "cruise_control_url",
    "parse_properties",
]
