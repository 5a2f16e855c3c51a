"""Conformance test orchestration.

This module drives the remote SMI conformance tool through its lifecycle:

    deploying -> installing -> connecting -> running -> deleting -> completed

Each phase blocks on the cluster or the network and runs strictly after the
previous one. The first failing phase stops the run: its error is raised with
the partially populated Response attached as ``error.report`` and the
report's status naming that phase, so callers can tell "nothing happened"
from "partially applied, needs cleanup". Nothing is retried here.
"""

import logging
import time
from contextlib import closing
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, Optional, Tuple, Type

from meshadapter.conformance.aggregator import aggregate_results
from meshadapter.conformance.session import SessionFactory, open_session
from meshadapter.core.config import get_config_value, get_float
from meshadapter.core.errors import (
    ConformanceInitError,
    ConnectError,
    DeleteError,
    InstallError,
    PhaseError,
    RunError,
)
from meshadapter.core.events import Event, NotificationChannel
from meshadapter.core.schema.report import Phase, Response
from meshadapter.k8s.utils import read_remote_file

logger = logging.getLogger(__name__)

DEFAULT_NAMESPACE = "meshery"
DEFAULT_MANIFEST = (
    "https://raw.githubusercontent.com/layer5io/learn-layer5/master/smi-conformance/manifest.yml"
)
DEFAULT_SERVICE_NAME = "smi-conformance"
DEFAULT_SETTLE_SECONDS = 20.0


@dataclass
class SMITestOptions:
    """Options for one conformance run.

    Attributes:
        operation_id: Run identifier, copied into the report id
        namespace: Namespace the conformance tool is installed in (default: "meshery")
        manifest: Location (URL or path) of the conformance tool manifest
        labels: Kubernetes labels forwarded to the tool
        annotations: Kubernetes annotations forwarded to the tool
        service_name: Service the tool is reachable through
        settle_seconds: Fixed wait after install for resources to become ready
    """

    operation_id: str = ""
    namespace: str = DEFAULT_NAMESPACE
    manifest: str = DEFAULT_MANIFEST
    labels: Dict[str, str] = field(default_factory=dict)
    annotations: Dict[str, str] = field(default_factory=dict)
    service_name: str = DEFAULT_SERVICE_NAME
    settle_seconds: float = DEFAULT_SETTLE_SECONDS

    @classmethod
    def from_config(cls, operation_id: str = "", **overrides: Any) -> "SMITestOptions":
        """Build options from config.json, with keyword overrides taking priority.

        Example:
            >>> opts = SMITestOptions.from_config("op-1", labels={"team": "mesh"})
        """
        values: Dict[str, Any] = {
            "operation_id": operation_id,
            "namespace": get_config_value(["conformance", "namespace"], default=DEFAULT_NAMESPACE),
            "manifest": get_config_value(["conformance", "manifest"], default=DEFAULT_MANIFEST),
            "service_name": get_config_value(["conformance", "service_name"], default=DEFAULT_SERVICE_NAME),
            "settle_seconds": get_float(["conformance", "settle_seconds"], DEFAULT_SETTLE_SECONDS),
        }
        values.update({key: value for key, value in overrides.items() if value is not None})
        return cls(**values)


class ConformanceTest:
    """A single conformance run against one cluster.

    Collaborators are injectable so the phases can be exercised without a
    cluster or a network:

    Args:
        kube_client: Object with ``apply_manifest(manifest, namespace, delete=False)``
            and ``get_service_endpoint(name, namespace)`` (normally a KubeClient)
        options: Run options
        mesh_name: Name of the mesh under test
        mesh_version: Version of the mesh under test
        fetch: Manifest reader (default: read_remote_file)
        session_factory: Opens a ConformanceSession for an address
        sleep: Used for the post-install settle wait
        channel: Optional channel receiving one event per phase transition
    """

    def __init__(
        self,
        kube_client: Any,
        options: SMITestOptions,
        mesh_name: str,
        mesh_version: str,
        fetch: Callable[[str], str] = read_remote_file,
        session_factory: SessionFactory = open_session,
        sleep: Callable[[float], None] = time.sleep,
        channel: Optional[NotificationChannel] = None,
    ):
        self.kube_client = kube_client
        self.options = options
        self.mesh_name = mesh_name
        self.mesh_version = mesh_version
        self.fetch = fetch
        self.session_factory = session_factory
        self.sleep = sleep
        self.channel = channel
        self.address: Optional[str] = None

    def execute(self) -> Response:
        """Run every phase in order.

        Returns:
            Response with status "completed"

        Raises:
            ConformanceInitError: No cluster client (report status "deploying")
            InstallError, ConnectError, RunError, DeleteError: The failing
                phase; ``error.report.status`` names it
        """
        response = Response(
            id=self.options.operation_id,
            mesh_name=self.mesh_name,
            mesh_version=self.mesh_version,
        )

        if self.kube_client is None:
            raise ConformanceInitError("adapter has no kubernetes client, create an instance first", report=response)

        phases: Tuple[Tuple[Phase, Callable[[Response], None], Type[PhaseError]], ...] = (
            (Phase.INSTALLING, self.install, InstallError),
            (Phase.CONNECTING, self.connect, ConnectError),
            (Phase.RUNNING, self.run, RunError),
            (Phase.DELETING, self.delete, DeleteError),
        )

        logger.info(f"Starting conformance run {response.id or '<no id>'} for {self.mesh_name} {self.mesh_version}")
        for phase, step, error_cls in phases:
            self._transition(response, phase)
            try:
                step(response)
            except Exception as e:
                logger.error(f"Conformance run {response.id} failed while {phase.value}: {e}")
                raise error_cls(e, report=response) from e

        self._transition(response, Phase.COMPLETED)
        logger.info(f"Conformance run {response.id} completed: {response.cases_passed} cases passed "
                    f"({response.passing_percentage}%)")
        return response

    def install(self, response: Response) -> None:
        """Fetch the tool manifest, apply it, then wait for resources to settle."""
        manifest = self.fetch(self.options.manifest)
        self.kube_client.apply_manifest(manifest, namespace=self.options.namespace)
        if self.options.settle_seconds > 0:
            logger.info(f"Waiting {self.options.settle_seconds:g}s for conformance tool resources")
            self.sleep(self.options.settle_seconds)

    def connect(self, response: Response) -> None:
        """Resolve the address of the tool's service."""
        endpoint = self.kube_client.get_service_endpoint(self.options.service_name, self.options.namespace)
        self.address = str(endpoint)
        logger.info(f"Conformance tool reachable at {self.address}")

    def run(self, response: Response) -> None:
        """Run the suite over one session; the session is closed on every path."""
        with closing(self.session_factory(self.address)) as session:
            raw = session.run_test(
                self.mesh_name,
                self.mesh_version,
                dict(self.options.labels),
                dict(self.options.annotations),
            )
        aggregate_results(raw, response)

    def delete(self, response: Response) -> None:
        """Re-fetch the tool manifest and delete what it describes."""
        manifest = self.fetch(self.options.manifest)
        self.kube_client.apply_manifest(manifest, namespace=self.options.namespace, delete=True)

    def _transition(self, response: Response, phase: Phase) -> None:
        response.status = phase.value
        logger.debug(f"Conformance run {response.id}: {phase.value}")
        if self.channel is not None:
            self.channel.publish(Event(
                operation_id=response.id,
                summary=f"Smi conformance test {phase.value}",
            ))


def run_conformance_test(
    kube_client: Any,
    options: SMITestOptions,
    mesh_name: str,
    mesh_version: str,
    fetch: Callable[[str], str] = read_remote_file,
    session_factory: SessionFactory = open_session,
    sleep: Callable[[float], None] = time.sleep,
    channel: Optional[NotificationChannel] = None,
) -> Response:
    """Run the SMI conformance tool against a cluster.

    Convenience wrapper around :class:`ConformanceTest`; see it for the
    arguments and :meth:`ConformanceTest.execute` for results and errors.

    Example:
        >>> try:
        ...     report = run_conformance_test(kube, SMITestOptions("op-1"), "istio", "1.20.0")
        ... except PhaseError as e:
        ...     report = e.report  # status names the failing phase
    """
    test = ConformanceTest(
        kube_client,
        options,
        mesh_name,
        mesh_version,
        fetch=fetch,
        session_factory=session_factory,
        sleep=sleep,
        channel=channel,
    )
    return test.execute()
