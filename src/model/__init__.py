"""Cluster spec models and the desired/live object shapes."""

from .cluster import KafkaCluster, KafkaClusterSpec, load_cluster
from .objects import DesiredObject, LiveObject, TopologySet

__all__ = [
    "DesiredObject",
    "KafkaCluster",
    "KafkaClusterSpec",
    "LiveObject",
    "TopologySet",
    "load_cluster",
]
