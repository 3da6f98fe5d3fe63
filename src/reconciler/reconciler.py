"""Apply the active topology of every backend and prune what is no longer desired."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import FrozenSet, List, Mapping, Optional, Sequence

from src.common.errors import BackendCallError, ExternalAccessError
from src.common.labels import EXTERNAL_LISTENER_LABEL_KEY, is_externally_managed
from src.common.options import ReconcilerOptions
from src.model.cluster import KafkaCluster
from src.model.objects import ObjectKey, TopologySet

from .backend import BACKENDS, Backend
from .client import ClusterClient

logger = logging.getLogger(__name__)


@dataclass
class ReconcileResult:
    applied: List[ObjectKey] = field(default_factory=list)
    deleted: List[ObjectKey] = field(default_factory=list)
    protected: List[ObjectKey] = field(default_factory=list)
    errors: List[ExternalAccessError] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return not self.errors


@dataclass(frozen=True)
class PruneUnit:
    """Sets whose live objects are pruned together against one desired key set."""

    backend: Backend
    sets: Sequence[TopologySet]
    listener: Optional[str] = None
    # Leftover unit of a listener-scoped backend: listeners still declared on the cluster.
    known_listeners: FrozenSet[str] = frozenset()

    @property
    def active_sets(self) -> List[TopologySet]:
        return [topology for topology in self.sets if topology.active]

    def desired_keys(self) -> FrozenSet[ObjectKey]:
        keys: FrozenSet[ObjectKey] = frozenset()
        for topology in self.active_sets:
            keys |= topology.keys()
        return keys


class ExternalAccessReconciler:
    def __init__(
        self,
        client: ClusterClient,
        options: Optional[ReconcilerOptions] = None,
        backends: Sequence[Backend] = BACKENDS,
    ) -> None:
        self.client = client
        self.options = options or ReconcilerOptions()
        self.backends = tuple(backends)

    def compile(self, cluster: KafkaCluster) -> List[PruneUnit]:
        """Compile every backend's topology sets and group them into prune units."""

        units: List[PruneUnit] = []
        for backend in self.backends:
            sets = backend.compile(cluster, self.options)
            if backend.listener_scoped:
                units.extend(PruneUnit(backend, [topology], topology.listener) for topology in sets)
                units.append(
                    PruneUnit(
                        backend,
                        [],
                        known_listeners=frozenset(
                            listener.name for listener in cluster.spec.listeners_config.external_listeners
                        ),
                    )
                )
            else:
                units.append(PruneUnit(backend, sets))
        return units

    def reconcile(self, cluster: KafkaCluster) -> ReconcileResult:
        """Run one pass for ``cluster``.

        Configuration and compilation errors are collected in the result and only
        skip the affected listener, override or scope. A ``BackendCallError`` aborts
        the pass and is raised to the caller, which retries the whole pass later.
        """

        result = ReconcileResult()
        owner = cluster.owner_reference()
        logger.debug("reconciling external access of %s/%s", cluster.namespace, cluster.name)
        for unit in self.compile(cluster):
            for topology in unit.active_sets:
                result.errors.extend(topology.errors)
                for obj in topology.objects:
                    try:
                        self.client.apply(obj, owner)
                    except BackendCallError:
                        logger.error(
                            "applying %s %s/%s for cluster %s (backend %s, %s) failed",
                            obj.kind,
                            obj.namespace,
                            obj.name,
                            cluster.name,
                            unit.backend.kind,
                            topology.topology,
                        )
                        raise
                    result.applied.append(obj.key)
            if self._should_prune(cluster, unit):
                self._prune(cluster, unit, result)
        logger.debug(
            "reconciled external access of %s/%s: %d applied, %d deleted",
            cluster.namespace,
            cluster.name,
            len(result.applied),
            len(result.deleted),
        )
        return result

    @staticmethod
    def _should_prune(cluster: KafkaCluster, unit: PruneUnit) -> bool:
        if any(topology.prune_blocked for topology in unit.active_sets):
            return False
        if unit.active_sets and unit.backend.prune_when_active:
            return True
        return cluster.spec.remove_unused_ingress_resources

    @staticmethod
    def _owned_by_unit(unit: PruneUnit, labels: Mapping[str, str]) -> bool:
        listener = labels.get(EXTERNAL_LISTENER_LABEL_KEY)
        if unit.listener is not None:
            return listener == unit.listener
        return listener not in unit.known_listeners

    def _prune(self, cluster: KafkaCluster, unit: PruneUnit, result: ReconcileResult) -> None:
        desired = unit.desired_keys()
        labels = unit.backend.prune_labels(cluster)
        removed = 0
        for api_version, kind in unit.backend.prune_kinds:
            for live in self.client.list(api_version, kind, cluster.namespace, labels):
                if live.kind != kind or live.key in desired:
                    continue
                if unit.backend.listener_scoped and not self._owned_by_unit(unit, live.labels):
                    continue
                if is_externally_managed(live.annotations):
                    logger.debug("keeping externally managed %s %s", kind, live.name)
                    result.protected.append(live.key)
                    continue
                if live.terminating:
                    logger.debug("%s %s is already terminating", kind, live.name)
                    continue
                try:
                    self.client.delete(live)
                except BackendCallError:
                    logger.error(
                        "removing unused %s %s/%s of cluster %s failed",
                        kind,
                        live.namespace,
                        live.name,
                        cluster.name,
                    )
                    raise
                logger.debug(
                    "deleted %s ingress %s %s for listener %s",
                    unit.backend.kind,
                    kind,
                    live.name,
                    unit.listener or "*",
                )
                result.deleted.append(live.key)
                removed += 1
        if removed:
            logger.info(
                "removed %d unused %s ingress resource(s) of cluster %s/%s",
                removed,
                unit.backend.kind,
                cluster.namespace,
                cluster.name,
            )


__all__ = ["ExternalAccessReconciler", "PruneUnit", "ReconcileResult"]
