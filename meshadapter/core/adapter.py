"""Adapter instance: the entry point consumers use to get a ready adapter.

An Adapter owns the sanitized kubeconfig, the cluster client, the
higher-level KubeClient wrapper, and the caller's notification channel.
create_instance must be called before any conformance operation.

The adapter holds no lock: concurrent create_instance or conformance calls
against the same instance must be serialized by the caller.
"""

import copy
import logging
import time
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional, Union

from meshadapter import __version__
from meshadapter.conformance.runner import SMITestOptions, run_conformance_test
from meshadapter.conformance.session import SessionFactory, open_session
from meshadapter.core.config import get_config_value
from meshadapter.core.errors import AdapterError, ConformanceError, InstanceCreationError
from meshadapter.core.events import ERROR, INFO, Event, NotificationChannel
from meshadapter.core.schema.report import Phase, Response
from meshadapter.k8s.client import ClusterClient, ConnectionSettings, KubeClient, create_cluster_client
from meshadapter.k8s.kubeconfig import KubeconfigDocument, validate_kubeconfig
from meshadapter.k8s.utils import read_remote_file

logger = logging.getLogger(__name__)

DEFAULT_ADAPTER_NAME = "meshadapter"


@dataclass(frozen=True)
class KubeconfigSnapshot:
    """Export-only copy of a sanitized kubeconfig's top-level fields.

    Written by Adapter.create_instance; nothing in the conformance flow reads it.
    """

    kind: str = ""
    api_version: str = ""
    current_context: str = ""
    preferences: Dict[str, Any] = field(default_factory=dict)
    clusters: List[Dict[str, Any]] = field(default_factory=list)
    users: List[Dict[str, Any]] = field(default_factory=list)
    contexts: List[Dict[str, Any]] = field(default_factory=list)

    @classmethod
    def from_document(cls, document: KubeconfigDocument) -> "KubeconfigSnapshot":
        rendered = document.to_dict()
        return cls(
            kind=rendered["kind"],
            api_version=rendered["apiVersion"],
            current_context=rendered["current-context"],
            preferences=rendered["preferences"],
            clusters=rendered["clusters"],
            users=rendered["users"],
            contexts=rendered["contexts"],
        )

    def to_dict(self) -> Dict[str, Any]:
        """Kubeconfig-shaped dict for export."""
        return {
            "kind": self.kind,
            "apiVersion": self.api_version,
            "current-context": self.current_context,
            "preferences": copy.deepcopy(self.preferences),
            "clusters": copy.deepcopy(self.clusters),
            "users": copy.deepcopy(self.users),
            "contexts": copy.deepcopy(self.contexts),
        }


class Adapter:
    """Service-mesh adapter handle.

    Example:
        >>> adapter = Adapter(name="istio", version="1.20.0")
        >>> channel = NotificationChannel()
        >>> adapter.create_instance(Path("kubeconfig").read_bytes(), "kind-kind", channel)
        >>> report = adapter.run_smi_test(SMITestOptions(operation_id="op-1"))

    Attributes:
        clientcmd_config: Sanitized kubeconfig (current context set by the caller)
        cluster_client: ApiClient and Configuration
        kube_client: Manifest/service wrapper bound to ``cluster_client``
        kubeconfig_snapshot: Export-only snapshot of the kubeconfig
        channel: Caller-owned notification channel
    """

    def __init__(
        self,
        name: Optional[str] = None,
        version: Optional[str] = None,
        settings: Optional[ConnectionSettings] = None,
        client_factory: Callable[..., ClusterClient] = create_cluster_client,
        session_factory: SessionFactory = open_session,
        fetch: Callable[[str], str] = read_remote_file,
        sleep: Callable[[float], None] = time.sleep,
    ):
        """Initialize an adapter without cluster state.

        Args:
            name: Mesh/adapter name (default: adapter.name from config.json)
            version: Mesh/adapter version (default: adapter.version from config.json)
            settings: Client rate tuning (default: kubernetes.qps/burst from config.json)
            client_factory: Builds the ClusterClient from a kubeconfig document
            session_factory: Opens conformance tool sessions
            fetch: Reads manifest locations
            sleep: Used for the post-install settle wait
        """
        self.name = name or get_config_value(["adapter", "name"], default=DEFAULT_ADAPTER_NAME)
        self.version = version or get_config_value(["adapter", "version"], default=__version__)
        self.settings = settings
        self._client_factory = client_factory
        self._session_factory = session_factory
        self._fetch = fetch
        self._sleep = sleep

        self.clientcmd_config: Optional[KubeconfigDocument] = None
        self.cluster_client: Optional[ClusterClient] = None
        self.kube_client: Optional[KubeClient] = None
        self.kubeconfig_snapshot: Optional[KubeconfigSnapshot] = None
        self.channel: Optional[NotificationChannel] = None

    def get_name(self) -> str:
        return self.name

    def get_version(self) -> str:
        return self.version

    def create_instance(
        self,
        kubeconfig: bytes,
        context_name: str,
        channel: Optional[NotificationChannel] = None,
        base_dir: Optional[Union[str, Path]] = None,
    ) -> None:
        """Bootstrap cluster connectivity.

        Steps, stopping at the first failure:

        1. Validate and sanitize the kubeconfig
        2. Build the tuned cluster client (in-cluster credentials when
           ``kubeconfig`` is empty)
        3. Snapshot the kubeconfig's top-level fields
        4. Build the KubeClient wrapper on the same client
        5. Set the current context to ``context_name`` and attach ``channel``

        State is replaced only when every step succeeds; a failed call leaves
        the previous state in place.

        Args:
            kubeconfig: Raw kubeconfig bytes (empty for in-cluster credentials)
            context_name: Context name to record as current
            channel: Channel receiving status notifications
            base_dir: Directory relative certificate paths in ``kubeconfig``
                are resolved against, normally the kubeconfig file's directory
                (default: current working directory)

        Raises:
            InstanceCreationError: Wrapping the failing step's error
        """
        logger.info(f"Creating {self.name} adapter instance for context '{context_name}'")
        try:
            document = validate_kubeconfig(kubeconfig, base_dir=base_dir) if kubeconfig else None
            cluster_client = self._client_factory(document, self.settings)
            snapshot = KubeconfigSnapshot.from_document(document) if document else KubeconfigSnapshot()
            kube_client = KubeClient(cluster_client)
        except Exception as e:
            logger.error(f"Adapter instance creation failed: {e}")
            raise InstanceCreationError(e) from e

        if document is None:
            document = KubeconfigDocument()
        document.current_context = context_name

        self.clientcmd_config = document
        self.cluster_client = cluster_client
        self.kubeconfig_snapshot = snapshot
        self.kube_client = kube_client
        self.channel = channel

    def run_smi_test(self, options: SMITestOptions, mesh_name: Optional[str] = None) -> Response:
        """Run the SMI conformance tool against this adapter's cluster.

        Args:
            options: Run options
            mesh_name: Name reported to the tool (default: :meth:`get_name`)

        Returns:
            Response with status "completed"

        Raises:
            ConformanceError: ``error.report`` holds the partial report, its
                status naming the phase that failed
        """
        return run_conformance_test(
            self.kube_client,
            options,
            mesh_name or self.get_name(),
            self.get_version(),
            fetch=self._fetch,
            session_factory=self._session_factory,
            sleep=self._sleep,
            channel=self.channel,
        )

    def validate_smi_conformance(self, options: SMITestOptions) -> Response:
        """Run the conformance test and report the outcome on the channel.

        The tool is given the lowercased adapter name. On success an info
        event carries the JSON report; on failure an error event names the
        phase and the error is re-raised.
        """
        event = Event(operation_id=options.operation_id, summary=Phase.DEPLOYING.value, details="None")
        try:
            result = self.run_smi_test(options, mesh_name=self.get_name().lower())
        except ConformanceError as e:
            status = e.report.status if e.report is not None else Phase.DEPLOYING.value
            event.summary = f"Error while {status} running smi-conformance test"
            event.details = str(e)
            self.stream_err(event, e)
            raise

        event.summary = f"Smi conformance test {result.status} successfully"
        event.details = result.to_json()
        self.stream_info(event)
        return result

    def stream_info(self, event: Event) -> None:
        """Log an info event and publish it to the channel, if any."""
        event.event_type = INFO
        logger.info(f"[{event.operation_id}] {event.summary}")
        self._publish(event)

    def stream_err(self, event: Event, err: AdapterError) -> None:
        """Log an error event and publish it to the channel, if any."""
        event.event_type = ERROR
        event.error_code = err.code
        logger.error(f"[{event.operation_id}] {event.summary}: {err}")
        self._publish(event)

    def _publish(self, event: Event) -> None:
        if self.channel is not None:
            self.channel.publish(event)
