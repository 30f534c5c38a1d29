"""
Kubernetes client for rollout status reads.
"""
import logging
from typing import Any, Callable, Dict, List, Optional

from kubernetes import client, config

from .kube_types import ResourceKind, ResourceRef, ResourceSnapshot

logger = logging.getLogger(__name__)


class KubeClient:
    """Read-only Kubernetes client turning API objects into snapshots."""

    def __init__(
        self,
        in_cluster: bool = True,
        context: Optional[str] = None,
        request_timeout: Optional[float] = None,
        core_api: Optional[client.CoreV1Api] = None,
        apps_api: Optional[client.AppsV1Api] = None,
    ):
        """
        Initialize Kubernetes client.

        Args:
            in_cluster: Whether running inside cluster (default: True)
            context: Kubernetes context name (optional)
            request_timeout: Per-request timeout in seconds (optional)
            core_api: Preconfigured CoreV1Api, skips config loading when
                given together with apps_api
            apps_api: Preconfigured AppsV1Api
        """
        self.in_cluster = in_cluster
        self.request_timeout = request_timeout

        if core_api is None or apps_api is None:
            try:
                if in_cluster:
                    config.load_incluster_config()
                else:
                    if context:
                        config.load_kube_config(context=context)
                    else:
                        config.load_kube_config()
            except Exception as e:
                logger.error(f"❌ Failed to initialize Kubernetes client: {e}")
                raise
            core_api = core_api or client.CoreV1Api()
            apps_api = apps_api or client.AppsV1Api()
            logger.info(f"✅ Kubernetes client initialized (context: {context or 'default'})")

        self.v1 = core_api
        self.apps_v1 = apps_api

        self._list_calls: Dict[ResourceKind, Callable[..., Any]] = {
            ResourceKind.DEPLOYMENT: self.apps_v1.list_namespaced_deployment,
            ResourceKind.STATEFUL_SET: self.apps_v1.list_namespaced_stateful_set,
            ResourceKind.DAEMON_SET: self.apps_v1.list_namespaced_daemon_set,
            ResourceKind.REPLICA_SET: self.apps_v1.list_namespaced_replica_set,
            ResourceKind.POD: self.v1.list_namespaced_pod,
        }
        self._read_calls: Dict[ResourceKind, Callable[..., Any]] = {
            ResourceKind.DEPLOYMENT: self.apps_v1.read_namespaced_deployment_status,
            ResourceKind.STATEFUL_SET: self.apps_v1.read_namespaced_stateful_set_status,
            ResourceKind.DAEMON_SET: self.apps_v1.read_namespaced_daemon_set_status,
            ResourceKind.REPLICA_SET: self.apps_v1.read_namespaced_replica_set_status,
            ResourceKind.POD: self.v1.read_namespaced_pod_status,
        }

    def _kwargs(self) -> Dict[str, Any]:
        if self.request_timeout is None:
            return {}
        return {"_request_timeout": self.request_timeout}

    def list_snapshots(self, kind: ResourceKind, namespace: str,
                       label_selector: Optional[str] = None) -> List[ResourceSnapshot]:
        """
        List every resource of a kind in a namespace.

        Args:
            kind: Resource kind
            namespace: Target namespace
            label_selector: Optional label selector for filtering

        Returns:
            List of snapshots, empty when nothing matches

        Raises:
            ApiException: when the API call fails
        """
        kwargs = self._kwargs()
        if label_selector:
            kwargs["label_selector"] = label_selector

        if kind is ResourceKind.NAMESPACE:
            # Namespaces are cluster scoped, so the scope is the namespace itself.
            items = self.v1.list_namespace(field_selector=f"metadata.name={namespace}", **kwargs).items
        else:
            items = self._list_calls[kind](namespace=namespace, **kwargs).items

        snapshots = [to_snapshot(kind, item, namespace) for item in items]
        logger.debug(f"Retrieved {len(snapshots)} {kind.value} objects from namespace {namespace}")
        return snapshots

    def read_snapshot(self, kind: ResourceKind, name: str, namespace: str) -> ResourceSnapshot:
        """
        Read one named resource.

        Raises:
            ApiException: when the API call fails, status 404 if it is gone
        """
        if kind is ResourceKind.NAMESPACE:
            obj = self.v1.read_namespace(name=name, **self._kwargs())
        else:
            obj = self._read_calls[kind](name=name, namespace=namespace, **self._kwargs())
        return to_snapshot(kind, obj, namespace)


def _generation_lags(obj) -> bool:
    generation = getattr(obj.metadata, "generation", None)
    observed = getattr(obj.status, "observed_generation", None) if obj.status else None
    return generation is not None and observed is not None and observed < generation


def to_snapshot(kind: ResourceKind, obj, namespace: str) -> ResourceSnapshot:
    """Convert a kubernetes API object into a ResourceSnapshot."""
    ref = ResourceRef(kind=kind, name=obj.metadata.name, scope=obj.metadata.namespace or namespace)
    status = obj.status
    desired: Optional[int] = None
    ready: Optional[int] = None
    raw: Dict[str, Any] = {}

    if kind in (ResourceKind.DEPLOYMENT, ResourceKind.STATEFUL_SET, ResourceKind.REPLICA_SET):
        desired = obj.spec.replicas if obj.spec else None
        ready = (status.ready_replicas if status else None) or 0
        if status:
            raw = {
                "updated_replicas": getattr(status, "updated_replicas", None),
                "available_replicas": getattr(status, "available_replicas", None),
                "observed_generation": getattr(status, "observed_generation", None),
            }
        if _generation_lags(obj):
            desired = None

    elif kind is ResourceKind.DAEMON_SET:
        desired = status.desired_number_scheduled if status else None
        ready = (status.number_ready if status else None) or 0
        if status:
            raw = {
                "updated_number_scheduled": status.updated_number_scheduled,
                "number_available": status.number_available,
                "observed_generation": status.observed_generation,
            }
        if _generation_lags(obj):
            desired = None

    elif kind is ResourceKind.POD:
        containers = obj.spec.containers if obj.spec else None
        desired = len(containers) if containers is not None else None
        phase = status.phase if status else None
        if phase == "Succeeded":
            ready = desired
        else:
            ready = sum(1 for cs in ((status.container_statuses if status else None) or []) if cs.ready)
        raw = {"phase": phase or "Unknown", "node": obj.spec.node_name if obj.spec else None}

    elif kind is ResourceKind.NAMESPACE:
        phase = status.phase if status else None
        desired = 1
        ready = 1 if phase == "Active" else 0
        raw = {"phase": phase or "Unknown"}

    if obj.metadata.deletion_timestamp is not None:
        raw["terminating"] = True

    return ResourceSnapshot(ref=ref, exists=True, desired_count=desired, ready_count=ready, status=raw)
