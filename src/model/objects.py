from __future__ import annotations

import copy
from dataclasses import dataclass, field
from typing import Any, Dict, FrozenSet, List, Mapping, Optional, Tuple

ObjectKey = Tuple[str, str, str]


@dataclass(frozen=True)
class DesiredObject:
    """One object the engine wants to exist, recomputed on every pass."""

    api_version: str
    kind: str
    name: str
    namespace: str
    labels: Dict[str, str]
    body: Dict[str, Any]
    annotations: Dict[str, str] = field(default_factory=dict)

    @property
    def key(self) -> ObjectKey:
        return (self.kind, self.namespace, self.name)

    def metadata(self, owner_reference: Optional[Mapping[str, Any]] = None) -> Dict[str, Any]:
        metadata: Dict[str, Any] = {
            "name": self.name,
            "namespace": self.namespace,
            "labels": dict(self.labels),
        }
        if self.annotations:
            metadata["annotations"] = dict(self.annotations)
        if owner_reference is not None:
            metadata["ownerReferences"] = [dict(owner_reference)]
        return metadata

    def to_manifest(self, owner_reference: Optional[Mapping[str, Any]] = None) -> Dict[str, Any]:
        manifest: Dict[str, Any] = {
            "apiVersion": self.api_version,
            "kind": self.kind,
            "metadata": self.metadata(owner_reference),
        }
        manifest.update(copy.deepcopy(self.body))
        return manifest


@dataclass(frozen=True)
class LiveObject:
    api_version: str
    kind: str
    name: str
    namespace: str
    labels: Dict[str, str] = field(default_factory=dict)
    annotations: Dict[str, str] = field(default_factory=dict)
    deletion_timestamp: Optional[str] = None

    @property
    def key(self) -> ObjectKey:
        return (self.kind, self.namespace, self.name)

    @property
    def terminating(self) -> bool:
        return bool(self.deletion_timestamp)

    @classmethod
    def from_manifest(cls, manifest: Mapping[str, Any]) -> "LiveObject":
        metadata = manifest.get("metadata") or {}
        return cls(
            api_version=str(manifest.get("apiVersion", "")),
            kind=str(manifest.get("kind", "")),
            name=str(metadata.get("name", "")),
            namespace=str(metadata.get("namespace", "")),
            labels=dict(metadata.get("labels") or {}),
            annotations=dict(metadata.get("annotations") or {}),
            deletion_timestamp=metadata.get("deletionTimestamp"),
        )


@dataclass
class TopologySet:
    """Objects of one backend topology, tagged active or inactive for this pass.

    ``retained`` holds keys of objects that could not be compiled this pass; pruning
    leaves their live counterparts untouched so the previous generation stays up.
    """

    backend: str
    topology: str
    active: bool
    objects: List[DesiredObject] = field(default_factory=list)
    retained: FrozenSet[ObjectKey] = frozenset()
    errors: List[Exception] = field(default_factory=list)
    listener: Optional[str] = None
    # Set when the whole set failed to resolve; its live objects must not be pruned.
    prune_blocked: bool = False

    def keys(self) -> FrozenSet[ObjectKey]:
        return frozenset(obj.key for obj in self.objects) | self.retained

    def add(self, obj: DesiredObject) -> None:
        if obj.key in {existing.key for existing in self.objects}:
            return
        self.objects.append(obj)


__all__ = ["DesiredObject", "LiveObject", "ObjectKey", "TopologySet"]
