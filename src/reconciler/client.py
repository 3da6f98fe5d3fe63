"""Cluster access used by the reconciler: apply, delete and list."""

from __future__ import annotations

import logging
from typing import Any, Dict, List, Mapping, Optional, Protocol, Union

import jsonpatch
from kubernetes import config as kube_config
from kubernetes.client import ApiClient
from kubernetes.client.exceptions import ApiException
from kubernetes.config.config_exception import ConfigException
from kubernetes.dynamic import DynamicClient
from kubernetes.dynamic.exceptions import NotFoundError, ResourceNotFoundError

from src.common.errors import BackendCallError
from src.common.labels import label_selector
from src.common.options import ReconcilerOptions
from src.model.objects import DesiredObject, LiveObject

logger = logging.getLogger(__name__)

MERGE_PATCH = "application/merge-patch+json"


def _pointer_parent(document: Any, path: str) -> Any:
    parent = document
    for token in path.split("/")[1:-1]:
        token = token.replace("~1", "/").replace("~0", "~")
        try:
            parent = parent[int(token)] if isinstance(parent, list) else parent[token]
        except (KeyError, IndexError, TypeError, ValueError):
            return None
    return parent


def _changing_ops(current: Any, desired: Any) -> List[Dict[str, Any]]:
    # A removed mapping key is a field defaulted by the API server; a removed list
    # element means the desired list shrank.
    return [
        op
        for op in jsonpatch.make_patch(current, desired)
        if op["op"] != "remove" or isinstance(_pointer_parent(desired, op["path"]), list)
    ]


def needs_update(current: Mapping[str, Any], desired: Mapping[str, Any]) -> bool:
    """True when ``desired`` sets a field that differs from the live object."""

    current_meta = current.get("metadata") or {}
    desired_meta = desired.get("metadata") or {}
    for key in ("labels", "annotations", "ownerReferences"):
        if key in desired_meta and _changing_ops(current_meta.get(key) or {}, desired_meta[key]):
            return True
    for key, value in desired.items():
        if key in ("apiVersion", "kind", "metadata"):
            continue
        if _changing_ops(current.get(key), value):
            return True
    return False


class ClusterClient(Protocol):
    def apply(self, obj: DesiredObject, owner_reference: Mapping[str, Any]) -> None:
        """Create or update ``obj`` with ``owner_reference`` set; idempotent."""

    def delete(self, obj: Union[DesiredObject, LiveObject]) -> None:
        """Delete ``obj``; an already missing object counts as success."""

    def list(
        self, api_version: str, kind: str, namespace: str, labels: Mapping[str, str]
    ) -> List[LiveObject]:
        """Objects of ``kind`` in ``namespace`` carrying every label in ``labels``."""


class KubernetesClusterClient:
    """``ClusterClient`` backed by the Kubernetes dynamic client."""

    def __init__(
        self,
        dynamic_client: DynamicClient,
        *,
        field_manager: str,
        dry_run: bool = False,
    ) -> None:
        self.dynamic = dynamic_client
        self.field_manager = field_manager
        self.dry_run = dry_run

    @classmethod
    def from_kubeconfig(
        cls,
        kubeconfig: Optional[str] = None,
        context: Optional[str] = None,
        options: Optional[ReconcilerOptions] = None,
    ) -> "KubernetesClusterClient":
        options = options or ReconcilerOptions.from_env()
        if kubeconfig or context:
            kube_config.load_kube_config(config_file=kubeconfig, context=context)
        else:
            try:
                kube_config.load_incluster_config()
            except ConfigException:
                kube_config.load_kube_config()
        return cls(
            DynamicClient(ApiClient()),
            field_manager=options.field_manager,
            dry_run=options.dry_run,
        )

    def _resource(self, api_version: str, kind: str):
        return self.dynamic.resources.get(api_version=api_version, kind=kind)

    def _write_params(self) -> Dict[str, Any]:
        params: Dict[str, Any] = {"field_manager": self.field_manager}
        if self.dry_run:
            params["dry_run"] = "All"
        return params

    def apply(self, obj: DesiredObject, owner_reference: Mapping[str, Any]) -> None:
        manifest = obj.to_manifest(owner_reference)
        try:
            resource = self._resource(obj.api_version, obj.kind)
            try:
                current = resource.get(name=obj.name, namespace=obj.namespace).to_dict()
            except NotFoundError:
                resource.create(body=manifest, namespace=obj.namespace, **self._write_params())
                logger.info("created %s %s/%s", obj.kind, obj.namespace, obj.name)
                return
            if not needs_update(current, manifest):
                logger.debug("%s %s/%s is up to date", obj.kind, obj.namespace, obj.name)
                return
            resource.patch(
                body=manifest,
                name=obj.name,
                namespace=obj.namespace,
                content_type=MERGE_PATCH,
                **self._write_params(),
            )
            logger.debug("updated %s %s/%s", obj.kind, obj.namespace, obj.name)
        except ResourceNotFoundError as exc:
            raise BackendCallError(
                f"resource type not served by the cluster: {exc}",
                kind=obj.kind,
                name=obj.name,
            ) from exc
        except ApiException as exc:
            raise BackendCallError(
                f"apply failed: {exc.reason}",
                status=exc.status,
                kind=obj.kind,
                namespace=obj.namespace,
                name=obj.name,
            ) from exc

    def delete(self, obj: Union[DesiredObject, LiveObject]) -> None:
        params: Dict[str, Any] = {}
        if self.dry_run:
            params["dry_run"] = "All"
        try:
            self._resource(obj.api_version, obj.kind).delete(
                name=obj.name, namespace=obj.namespace, **params
            )
        except (NotFoundError, ResourceNotFoundError):
            logger.debug("%s %s/%s already gone", obj.kind, obj.namespace, obj.name)
        except ApiException as exc:
            raise BackendCallError(
                f"delete failed: {exc.reason}",
                status=exc.status,
                kind=obj.kind,
                namespace=obj.namespace,
                name=obj.name,
            ) from exc

    def list(
        self, api_version: str, kind: str, namespace: str, labels: Mapping[str, str]
    ) -> List[LiveObject]:
        try:
            result = self._resource(api_version, kind).get(
                namespace=namespace, label_selector=label_selector(labels)
            )
        except ResourceNotFoundError:
            logger.debug("%s/%s is not served by the cluster; nothing to list", api_version, kind)
            return []
        except ApiException as exc:
            raise BackendCallError(
                f"list failed: {exc.reason}",
                status=exc.status,
                kind=kind,
                namespace=namespace,
            ) from exc
        objects: List[LiveObject] = []
        for item in result.to_dict().get("items") or []:
            item.setdefault("apiVersion", api_version)
            item.setdefault("kind", kind)
            objects.append(LiveObject.from_manifest(item))
        return objects


__all__ = ["ClusterClient", "KubernetesClusterClient", "needs_update"]
