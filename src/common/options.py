from __future__ import annotations

import os
from dataclasses import dataclass
from typing import Optional

DEFAULT_ENVOY_IMAGE = "envoyproxy/envoy:v1.27.2"
DEFAULT_ENVOY_ADMIN_PORT = 9901
DEFAULT_FIELD_MANAGER = "kafka-external-access"
OWNER_API_VERSION = "kafka.banzaicloud.io/v1beta1"
OWNER_KIND = "KafkaCluster"


@dataclass(frozen=True)
class ReconcilerOptions:
    envoy_image: str = DEFAULT_ENVOY_IMAGE
    envoy_admin_port: int = DEFAULT_ENVOY_ADMIN_PORT
    field_manager: str = DEFAULT_FIELD_MANAGER
    dry_run: bool = False

    @classmethod
    def from_env(
        cls,
        envoy_image: Optional[str] = None,
        envoy_admin_port: Optional[int] = None,
        field_manager: Optional[str] = None,
        dry_run: bool = False,
    ) -> "ReconcilerOptions":
        admin_port = envoy_admin_port
        if admin_port is None:
            raw_port = os.getenv("KAFKA_INGRESS_ENVOY_ADMIN_PORT")
            try:
                admin_port = int(raw_port) if raw_port else DEFAULT_ENVOY_ADMIN_PORT
            except ValueError as exc:
                raise ValueError(
                    f"KAFKA_INGRESS_ENVOY_ADMIN_PORT must be an integer, got {raw_port!r}"
                ) from exc
        return cls(
            envoy_image=envoy_image or os.getenv("KAFKA_INGRESS_ENVOY_IMAGE", DEFAULT_ENVOY_IMAGE),
            envoy_admin_port=admin_port,
            field_manager=field_manager
            or os.getenv("KAFKA_INGRESS_FIELD_MANAGER", DEFAULT_FIELD_MANAGER),
            dry_run=dry_run,
        )


__all__ = ["OWNER_API_VERSION", "OWNER_KIND", "ReconcilerOptions"]
