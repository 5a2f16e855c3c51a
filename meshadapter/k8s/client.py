"""Kubernetes client construction and the manifest/service helpers built on it.

- create_cluster_client: sanitized kubeconfig (or in-cluster credentials) ->
  tuned ApiClient + Configuration
- KubeClient: higher-level wrapper used by the conformance runner to apply
  or delete manifests and resolve service endpoints

The Python client has no client-side rate limiting, so the qps/burst tuning is
enforced by a token bucket consulted before every API call, and burst also
sizes the urllib3 connection pool.
"""

import logging
import threading
import time
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional, Union

from kubernetes import client, config
from kubernetes.client.exceptions import ApiException
from kubernetes.config.config_exception import ConfigException
from kubernetes.dynamic import DynamicClient
from kubernetes.dynamic.exceptions import ConflictError, DynamicApiError, NotFoundError, ResourceNotFoundError
from ruamel.yaml import YAML
from ruamel.yaml.error import YAMLError

from meshadapter.core.config import get_float, get_int
from meshadapter.core.errors import ClientConstructionError, EndpointError, ManifestApplyError
from meshadapter.k8s.constants import DEFAULT_BURST, DEFAULT_QPS, MERGE_PATCH_CONTENT_TYPE
from meshadapter.k8s.kubeconfig import KubeconfigDocument

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ConnectionSettings:
    """Request rate tuning for the cluster client.

    Attributes:
        qps: Sustained requests per second
        burst: Requests allowed above the sustained rate in a burst
    """

    qps: float = DEFAULT_QPS
    burst: int = DEFAULT_BURST

    @classmethod
    def from_config(cls) -> "ConnectionSettings":
        """Build settings from config.json (kubernetes.qps / kubernetes.burst)."""
        return cls(
            qps=get_float(["kubernetes", "qps"], DEFAULT_QPS),
            burst=get_int(["kubernetes", "burst"], DEFAULT_BURST),
        )


class RequestThrottle:
    """Token bucket: ``burst`` tokens, refilled at ``qps`` tokens per second."""

    def __init__(
        self,
        settings: ConnectionSettings,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], None] = time.sleep,
    ):
        self.qps = settings.qps
        self.capacity = max(1, settings.burst)
        self._tokens = float(self.capacity)
        self._clock = clock
        self._sleep = sleep
        self._updated = clock()
        self._lock = threading.Lock()

    def acquire(self) -> None:
        """Take one token, sleeping until one is available."""
        if self.qps <= 0:
            return
        while True:
            with self._lock:
                now = self._clock()
                self._tokens = min(self.capacity, self._tokens + (now - self._updated) * self.qps)
                self._updated = now
                if self._tokens >= 1:
                    self._tokens -= 1
                    return
                wait = (1 - self._tokens) / self.qps
            self._sleep(wait)


@dataclass
class ClusterClient:
    """An ApiClient together with the configuration it was built from.

    Attributes:
        api_client: kubernetes.client.ApiClient bound to ``configuration``
        configuration: Low-level connection configuration (host, TLS, auth)
        settings: Rate tuning applied to this client
    """

    api_client: client.ApiClient
    configuration: client.Configuration
    settings: ConnectionSettings = field(default_factory=ConnectionSettings)


def create_cluster_client(
    document: Optional[KubeconfigDocument] = None,
    settings: Optional[ConnectionSettings] = None,
) -> ClusterClient:
    """Build a tuned cluster client.

    Uses the sanitized kubeconfig when one is given, and the ambient
    in-cluster service-account credentials otherwise.

    Args:
        document: Sanitized kubeconfig, or None/empty for in-cluster credentials
        settings: Rate tuning (default: from config.json, else qps=50, burst=100)

    Returns:
        ClusterClient holding the ApiClient and its Configuration

    Raises:
        ClientConstructionError: If the configuration or client cannot be built
    """
    if settings is None:
        settings = ConnectionSettings.from_config()

    configuration = client.Configuration()
    try:
        if document is not None and not document.is_empty():
            config.load_kube_config_from_dict(
                document.to_dict(),
                context=document.current_context or None,
                client_configuration=configuration,
                persist_config=False,
            )
            logger.info(f"Loaded cluster configuration for context '{document.current_context}'")
        else:
            config.load_incluster_config(client_configuration=configuration)
            logger.info("Loaded in-cluster configuration")
    except (ConfigException, ValueError, TypeError, OSError) as e:
        raise ClientConstructionError(e) from e

    configuration.connection_pool_maxsize = max(1, settings.burst)

    try:
        api_client = client.ApiClient(configuration)
    except Exception as e:
        raise ClientConstructionError(e) from e

    return ClusterClient(api_client=api_client, configuration=configuration, settings=settings)


@dataclass(frozen=True)
class Endpoint:
    """Network address of a service."""

    address: str
    port: int

    def __str__(self) -> str:
        return f"{self.address}:{self.port}"


def parse_manifest(manifest: Union[bytes, str]) -> List[Dict[str, Any]]:
    """Split a multi-document manifest into resource objects.

    Empty documents are skipped; ``kind: List`` documents are expanded.

    Raises:
        ManifestApplyError: If the manifest is not valid YAML or holds a
            document without apiVersion, kind or metadata.name
    """
    if isinstance(manifest, bytes):
        manifest = manifest.decode("utf-8")

    yaml = YAML(typ="safe", pure=True)
    try:
        documents = list(yaml.load_all(manifest))
    except YAMLError as e:
        raise ManifestApplyError(f"invalid manifest: {e}") from e

    objects: List[Dict[str, Any]] = []
    for index, document in enumerate(documents):
        if document is None:
            continue
        if not isinstance(document, dict):
            raise ManifestApplyError(f"document {index} is not a mapping")
        if document.get("kind") == "List":
            objects.extend(item for item in document.get("items") or [] if isinstance(item, dict))
            continue
        objects.append(document)

    for obj in objects:
        name = (obj.get("metadata") or {}).get("name")
        if not obj.get("apiVersion") or not obj.get("kind") or not name:
            raise ManifestApplyError(f"object is missing apiVersion, kind or metadata.name: {obj}")
    return objects


class KubeClient:
    """Manifest and service helpers bound to one ClusterClient.

    Example:
        >>> kube = KubeClient(create_cluster_client(document))
        >>> kube.apply_manifest(manifest_text, namespace="meshery")
        >>> kube.get_service_endpoint("smi-conformance", "meshery")
        Endpoint(address='10.96.12.4', port=8080)
    """

    def __init__(self, cluster_client: ClusterClient, throttle: Optional[RequestThrottle] = None):
        self.cluster_client = cluster_client
        self.api_client = cluster_client.api_client
        self.configuration = cluster_client.configuration
        self.core_v1 = client.CoreV1Api(self.api_client)
        self._throttle = throttle or RequestThrottle(cluster_client.settings)
        self._dynamic: Optional[DynamicClient] = None

    @property
    def dynamic(self) -> DynamicClient:
        """Dynamic client, created on first use (construction runs API discovery)."""
        if self._dynamic is None:
            self._throttle.acquire()
            self._dynamic = DynamicClient(self.api_client)
        return self._dynamic

    def apply_manifest(self, manifest: Union[bytes, str], namespace: str, delete: bool = False) -> None:
        """Create/update, or delete, every object in a manifest.

        Namespaced objects are placed in ``namespace``. When applying, the
        namespace is created if missing and existing objects are merge-patched.
        When deleting, objects are removed in reverse order and objects that
        are already gone are ignored.

        Args:
            manifest: Manifest content (one or more YAML documents)
            namespace: Target namespace
            delete: Delete the objects instead of applying them

        Raises:
            ManifestApplyError: If any object fails
        """
        objects = parse_manifest(manifest)
        if delete:
            for obj in reversed(objects):
                self._delete_object(obj, namespace)
            return

        self._ensure_namespace(namespace)
        for obj in objects:
            self._apply_object(obj, namespace)

    def get_service_endpoint(self, name: str, namespace: str) -> Endpoint:
        """Resolve the address and port a service is reachable on.

        LoadBalancer services use their ingress IP or hostname, NodePort
        services a node address and the node port, everything else the
        cluster IP.

        Raises:
            EndpointError: If the service cannot be read or exposes no port
        """
        self._throttle.acquire()
        try:
            service = self.core_v1.read_namespaced_service(name=name, namespace=namespace)
        except ApiException as e:
            raise EndpointError(f"service {namespace}/{name}: {e.reason}") from e

        spec = service.spec
        if spec is None or not spec.ports:
            raise EndpointError(f"service {namespace}/{name} exposes no ports")
        port = spec.ports[0]

        if spec.type == "LoadBalancer":
            ingress = (service.status.load_balancer.ingress or []) if service.status and service.status.load_balancer else []
            for entry in ingress:
                address = entry.ip or entry.hostname
                if address:
                    return Endpoint(address=address, port=port.port)

        if spec.type in ("NodePort", "LoadBalancer") and port.node_port:
            address = self._node_address()
            if address:
                return Endpoint(address=address, port=port.node_port)

        if spec.cluster_ip and spec.cluster_ip != "None":
            return Endpoint(address=spec.cluster_ip, port=port.port)

        raise EndpointError(f"service {namespace}/{name} has no reachable address")

    def _node_address(self) -> Optional[str]:
        self._throttle.acquire()
        try:
            nodes = self.core_v1.list_node().items
        except ApiException as e:
            raise EndpointError(f"listing nodes: {e.reason}") from e
        for preferred in ("ExternalIP", "InternalIP"):
            for node in nodes:
                for address in (node.status.addresses or []) if node.status else []:
                    if address.type == preferred and address.address:
                        return address.address
        return None

    def _ensure_namespace(self, namespace: str) -> None:
        self._throttle.acquire()
        try:
            self.core_v1.read_namespace(name=namespace)
            return
        except ApiException as e:
            if e.status != 404:
                raise ManifestApplyError(f"reading namespace {namespace}: {e.reason}") from e

        logger.info(f"Creating namespace {namespace}")
        body = client.V1Namespace(metadata=client.V1ObjectMeta(name=namespace))
        self._throttle.acquire()
        try:
            self.core_v1.create_namespace(body=body)
        except ApiException as e:
            if e.status != 409:
                raise ManifestApplyError(f"creating namespace {namespace}: {e.reason}") from e

    def _resource(self, obj: Dict[str, Any]) -> Any:
        try:
            return self.dynamic.resources.get(api_version=obj["apiVersion"], kind=obj["kind"])
        except ResourceNotFoundError as e:
            raise ManifestApplyError(f"unknown resource {obj['apiVersion']}/{obj['kind']}") from e

    def _apply_object(self, obj: Dict[str, Any], namespace: str) -> None:
        resource = self._resource(obj)
        name = obj["metadata"]["name"]
        target_ns = namespace if resource.namespaced else None
        if target_ns:
            obj = {**obj, "metadata": {**obj["metadata"], "namespace": target_ns}}

        self._throttle.acquire()
        try:
            resource.create(body=obj, namespace=target_ns)
            logger.debug(f"Created {obj['kind']}/{name}")
            return
        except ConflictError:
            pass
        except DynamicApiError as e:
            raise ManifestApplyError(f"creating {obj['kind']}/{name}: {e.summary()}") from e

        self._throttle.acquire()
        try:
            resource.patch(body=obj, name=name, namespace=target_ns, content_type=MERGE_PATCH_CONTENT_TYPE)
            logger.debug(f"Updated {obj['kind']}/{name}")
        except DynamicApiError as e:
            raise ManifestApplyError(f"updating {obj['kind']}/{name}: {e.summary()}") from e

    def _delete_object(self, obj: Dict[str, Any], namespace: str) -> None:
        resource = self._resource(obj)
        name = obj["metadata"]["name"]
        target_ns = namespace if resource.namespaced else None

        self._throttle.acquire()
        try:
            resource.delete(name=name, namespace=target_ns)
            logger.debug(f"Deleted {obj['kind']}/{name}")
        except NotFoundError:
            logger.debug(f"{obj['kind']}/{name} already absent")
        except DynamicApiError as e:
            raise ManifestApplyError(f"deleting {obj['kind']}/{name}: {e.summary()}") from e
