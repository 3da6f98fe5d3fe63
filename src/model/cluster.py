"""Typed view of the ``KafkaCluster`` custom resource.

Only the fields consumed by external-access reconciliation are modelled; every
other field of the resource is ignored. Field names follow Python conventions
while the CRD's camelCase names are accepted as aliases.
"""

from __future__ import annotations

from typing import Any, Dict, List, Mapping, Optional, Union

import yaml
from pydantic import BaseModel, ConfigDict, Field, ValidationError

from src.common.errors import ConfigurationError
from src.common.options import OWNER_API_VERSION, OWNER_KIND

ENVOY_INGRESS_CONTROLLER = "envoy"
CONTOUR_INGRESS_CONTROLLER = "contour"

ACCESS_METHOD_LOAD_BALANCER = "LoadBalancer"
ACCESS_METHOD_NODE_PORT = "NodePort"
ACCESS_METHOD_CLUSTER_IP = "ClusterIP"

EPHEMERAL_BROKER_ID_THRESHOLD = 1000


class _SpecModel(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="ignore", frozen=True)


class ContourIngressConfig(_SpecModel):
    tls_secret_name: str = Field(default="", alias="tlsSecretName")
    broker_fqdn_template: str = Field(default="", alias="brokerFQDNTemplate")


class IngressConfig(_SpecModel):
    """A named override bundle selectable per broker."""

    hostname_override: str = Field(default="", alias="hostnameOverride")
    service_annotations: Dict[str, str] = Field(default_factory=dict, alias="serviceAnnotations")
    external_traffic_policy: Optional[str] = Field(default=None, alias="externalTrafficPolicy")
    contour_ingress_config: Optional[ContourIngressConfig] = Field(
        default=None, alias="contourIngressConfig"
    )


class ListenerIngressOverrides(_SpecModel):
    default_ingress_config: str = Field(default="", alias="defaultIngressConfig")
    ingress_config: Dict[str, IngressConfig] = Field(default_factory=dict, alias="ingressConfig")


class InternalListenerConfig(_SpecModel):
    name: str
    type: str = "plaintext"
    container_port: int = Field(alias="containerPort")
    used_for_inner_broker_communication: bool = Field(
        default=False, alias="usedForInnerBrokerCommunication"
    )


class ExternalListenerConfig(_SpecModel):
    name: str
    type: str = "plaintext"
    container_port: int = Field(alias="containerPort")
    external_starting_port: int = Field(default=0, alias="externalStartingPort")
    access_method: str = Field(default=ACCESS_METHOD_LOAD_BALANCER, alias="accessMethod")
    any_cast_port: Optional[int] = Field(default=None, alias="anyCastPort")
    hostname_override: str = Field(default="", alias="hostnameOverride")
    service_annotations: Dict[str, str] = Field(default_factory=dict, alias="serviceAnnotations")
    external_traffic_policy: Optional[str] = Field(default=None, alias="externalTrafficPolicy")
    config: Optional[ListenerIngressOverrides] = None

    @property
    def has_named_overrides(self) -> bool:
        return self.config is not None and bool(self.config.ingress_config)


class ListenersConfig(_SpecModel):
    internal_listeners: List[InternalListenerConfig] = Field(
        default_factory=list, alias="internalListeners"
    )
    external_listeners: List[ExternalListenerConfig] = Field(
        default_factory=list, alias="externalListeners"
    )


class BrokerEnvoyConfig(_SpecModel):
    replicas: Optional[int] = None


class BrokerConfig(_SpecModel):
    image: Optional[str] = None
    broker_ingress_mapping: List[str] = Field(default_factory=list, alias="brokerIngressMapping")
    node_selector: Optional[Dict[str, str]] = Field(default=None, alias="nodeSelector")
    node_affinity: Optional[Dict[str, Any]] = Field(default=None, alias="nodeAffinity")
    envoy_config: Optional[BrokerEnvoyConfig] = Field(default=None, alias="envoyConfig")
    listeners_config: Optional[ListenersConfig] = Field(default=None, alias="listenersConfig")


class Broker(_SpecModel):
    id: int
    broker_config_group: str = Field(default="", alias="brokerConfigGroup")
    broker_config: Optional[BrokerConfig] = Field(default=None, alias="brokerConfig")

    @property
    def is_ephemeral(self) -> bool:
        return self.id >= EPHEMERAL_BROKER_ID_THRESHOLD


class EnvoyConfig(_SpecModel):
    image: Optional[str] = None
    replicas: int = 1
    resources: Dict[str, Any] = Field(default_factory=dict)
    service_account_name: str = Field(default="default", alias="serviceAccountName")
    image_pull_secrets: List[Dict[str, str]] = Field(default_factory=list, alias="imagePullSecrets")
    tolerations: List[Dict[str, Any]] = Field(default_factory=list)
    node_selector: Optional[Dict[str, str]] = Field(default=None, alias="nodeSelector")
    node_affinity: Optional[Dict[str, Any]] = Field(default=None, alias="nodeAffinity")
    annotations: Dict[str, str] = Field(default_factory=dict)
    load_balancer_source_ranges: List[str] = Field(
        default_factory=list, alias="loadBalancerSourceRanges"
    )
    load_balancer_ip: Optional[str] = Field(default=None, alias="loadBalancerIP")
    enable_envoy_per_broker_group: bool = Field(default=False, alias="enableEnvoyPerBrokerGroup")
    bring_your_own_lb: bool = Field(default=False, alias="bringYourOwnLB")


class CruiseControlConfig(_SpecModel):
    config: str = ""


class KafkaClusterSpec(_SpecModel):
    brokers: List[Broker] = Field(default_factory=list)
    broker_config_groups: Dict[str, BrokerConfig] = Field(
        default_factory=dict, alias="brokerConfigGroups"
    )
    listeners_config: ListenersConfig = Field(
        default_factory=ListenersConfig, alias="listenersConfig"
    )
    ingress_controller: str = Field(default=ENVOY_INGRESS_CONTROLLER, alias="ingressController")
    envoy_config: EnvoyConfig = Field(default_factory=EnvoyConfig, alias="envoyConfig")
    remove_unused_ingress_resources: bool = Field(
        default=False, alias="removeUnusedIngressResources"
    )
    kubernetes_cluster_domain: str = Field(default="cluster.local", alias="kubernetesClusterDomain")
    cruise_control_config: CruiseControlConfig = Field(
        default_factory=CruiseControlConfig, alias="cruiseControlConfig"
    )

    def get_ingress_controller(self) -> str:
        return (self.ingress_controller or ENVOY_INGRESS_CONTROLLER).strip().lower()

    def broker_ids(self) -> List[int]:
        return sorted(broker.id for broker in self.brokers)


class ObjectMeta(_SpecModel):
    name: str
    namespace: str = "default"
    uid: str = ""


class KafkaCluster(_SpecModel):
    api_version: str = Field(default=OWNER_API_VERSION, alias="apiVersion")
    kind: str = OWNER_KIND
    metadata: ObjectMeta
    spec: KafkaClusterSpec = Field(default_factory=KafkaClusterSpec)

    @property
    def name(self) -> str:
        return self.metadata.name

    @property
    def namespace(self) -> str:
        return self.metadata.namespace

    def owner_reference(self) -> Dict[str, Any]:
        return {
            "apiVersion": self.api_version,
            "kind": self.kind,
            "name": self.metadata.name,
            "uid": self.metadata.uid,
            "controller": True,
            "blockOwnerDeletion": True,
        }


def load_cluster(source: Union[str, Mapping[str, Any]]) -> KafkaCluster:
    """Build a ``KafkaCluster`` from YAML text or an already parsed mapping."""

    data: Any = source
    if isinstance(source, str):
        try:
            data = yaml.safe_load(source)
        except yaml.YAMLError as exc:
            raise ConfigurationError(f"invalid KafkaCluster YAML: {exc}") from exc
    if not isinstance(data, Mapping):
        raise ConfigurationError("KafkaCluster document must be a mapping")
    try:
        return KafkaCluster.model_validate(dict(data))
    except ValidationError as exc:
        raise ConfigurationError(f"invalid KafkaCluster resource: {exc}") from exc


__all__ = [
    "ACCESS_METHOD_CLUSTER_IP",
    "ACCESS_METHOD_LOAD_BALANCER",
    "ACCESS_METHOD_NODE_PORT",
    "CONTOUR_INGRESS_CONTROLLER",
    "ENVOY_INGRESS_CONTROLLER",
    "Broker",
    "BrokerConfig",
    "BrokerEnvoyConfig",
    "ContourIngressConfig",
    "CruiseControlConfig",
    "EnvoyConfig",
    "ExternalListenerConfig",
    "IngressConfig",
    "InternalListenerConfig",
    "KafkaCluster",
    "KafkaClusterSpec",
    "ListenerIngressOverrides",
    "ListenersConfig",
    "ObjectMeta",
    "load_cluster",
]
