"""
Resource query adapters for the waiter.
"""
import logging
from typing import List, Optional

from kubernetes.client.rest import ApiException
from urllib3.exceptions import HTTPError

from .errors import AdapterError
from .kube_client import KubeClient
from .kube_types import ResourceKind, ResourceSnapshot

logger = logging.getLogger(__name__)


class ResourceQueryAdapter:
    """Reads the current state of resources in a namespace."""

    def query(self, scope: str, kind: ResourceKind, name: Optional[str] = None,
              label_selector: Optional[str] = None) -> List[ResourceSnapshot]:
        """
        Observe resources once.

        Absence is an empty list, not an error. Implementations issue a
        single read and never retry.

        Raises:
            AdapterError: when the cluster cannot be queried
        """
        raise NotImplementedError


class KubeQueryAdapter(ResourceQueryAdapter):
    """Adapter backed by the Kubernetes API."""

    def __init__(self, kube_client: KubeClient):
        self.kube_client = kube_client

    def query(self, scope: str, kind: ResourceKind, name: Optional[str] = None,
              label_selector: Optional[str] = None) -> List[ResourceSnapshot]:
        try:
            if name:
                return [self.kube_client.read_snapshot(kind, name, scope)]
            return self.kube_client.list_snapshots(kind, scope, label_selector=label_selector)
        except ApiException as e:
            if e.status == 404:
                # Deleted between enumeration and read, or never created.
                return []
            logger.warning(f"⚠️ Query for {kind.value} in {scope} failed: {e.status} {e.reason}")
            raise AdapterError(f"Kubernetes API error {e.status} querying {kind.value} in {scope}: {e.reason}") from e
        except HTTPError as e:
            logger.warning(f"⚠️ Query for {kind.value} in {scope} failed: {e}")
            raise AdapterError(f"Kubernetes API unreachable querying {kind.value} in {scope}: {e}") from e
