"""End-to-end integration tests for the conformance workflow.

The cluster API and the conformance tool are stubbed at their transport
boundaries; kubeconfig sanitization, client construction, manifest parsing,
endpoint resolution, the HTTP session and result aggregation all run for real.
"""

import base64
import json
from unittest.mock import MagicMock, patch

import httpx
import pytest
from kubernetes import client
from kubernetes.client.exceptions import ApiException

from meshadapter import Adapter, SMITestOptions
from meshadapter.conformance.session import RUN_TEST_PATH
from meshadapter.core.errors import ConnectError
from meshadapter.core.events import ERROR, INFO, NotificationChannel

REAL_CLIENT = httpx.Client
CERT_PEM = b"-----BEGIN CERTIFICATE-----\nZmFrZQ==\n-----END CERTIFICATE-----\n"

TOOL_RESULT = {
    "casespassed": "8",
    "passpercent": "100",
    "details": [
        {"smispec": "traffic-access", "specversion": "v1alpha2", "capability": "FULL", "status": "passing"},
        {"smispec": "traffic-split", "specversion": "v1alpha3", "capability": "FULL", "status": "passing"},
        {"smispec": "traffic-specs", "specversion": "v1alpha4", "capability": "FULL", "status": "passing"},
    ],
}


@pytest.fixture
def kubeconfig_bytes(tmp_path):
    """Kubeconfig with one path-based user, one stale user and one unrelated context."""
    (tmp_path / "admin.crt").write_bytes(CERT_PEM)
    return json.dumps({
        "apiVersion": "v1",
        "kind": "Config",
        "current-context": "kind",
        "clusters": [
            {"name": "kind-cluster", "cluster": {"server": "https://127.0.0.1:6443"}},
            {"name": "prod", "cluster": {"server": "https://prod.example.com"}},
        ],
        "users": [
            {"name": "admin", "user": {"client-certificate": str(tmp_path / "admin.crt")}},
            {"name": "stale", "user": {"client-certificate": str(tmp_path / "stale.crt")}},
        ],
        "contexts": [
            {"name": "kind", "context": {"cluster": "kind-cluster", "user": "admin"}},
            {"name": "prod", "context": {"cluster": "prod", "user": "stale"}},
        ],
    }).encode("utf-8")


@pytest.fixture
def manifest_path(tmp_path, manifest_text):
    path = tmp_path / "manifest.yml"
    path.write_text(manifest_text)
    return path


class FakeResource:
    def __init__(self):
        self.namespaced = True
        self.create = MagicMock()
        self.patch = MagicMock()
        self.delete = MagicMock()


def stub_cluster(adapter, service):
    """Replace the adapter's cluster API with in-memory fakes."""
    resources = {kind: FakeResource() for kind in ("ServiceAccount", "Deployment", "Service")}
    dynamic = MagicMock()
    dynamic.resources.get.side_effect = lambda api_version, kind: resources[kind]

    kube = adapter.kube_client
    kube._dynamic = dynamic
    kube.core_v1 = MagicMock()
    kube.core_v1.read_namespace.side_effect = ApiException(status=404, reason="Not Found")
    kube.core_v1.read_namespaced_service.return_value = service
    return resources


def cluster_ip_service():
    return client.V1Service(
        spec=client.V1ServiceSpec(type="ClusterIP", cluster_ip="10.96.0.15", ports=[client.V1ServicePort(port=8080)]),
    )


def mock_tool(handler):
    def make_client(**kwargs):
        return REAL_CLIENT(transport=httpx.MockTransport(handler), **kwargs)
    return patch("meshadapter.conformance.session.httpx.Client", side_effect=make_client)


def bootstrap(kubeconfig_bytes, channel):
    adapter = Adapter(name="istio", version="1.20.0", sleep=MagicMock())
    with patch("meshadapter.k8s.client.config.load_kube_config_from_dict") as mock_load:
        adapter.create_instance(kubeconfig_bytes, "kind", channel)
    return adapter, mock_load.call_args.args[0]


class TestConformanceWorkflow:
    """Full bootstrap -> install -> connect -> run -> delete runs."""

    def test_happy_path(self, kubeconfig_bytes, manifest_path):
        channel = NotificationChannel()
        adapter, loaded = bootstrap(kubeconfig_bytes, channel)

        # only the current context survives, with the certificate inlined
        assert [user["name"] for user in loaded["users"]] == ["admin"]
        assert base64.b64decode(loaded["users"][0]["user"]["client-certificate-data"]) == CERT_PEM
        assert [c["name"] for c in loaded["clusters"]] == ["kind-cluster"]

        resources = stub_cluster(adapter, cluster_ip_service())
        requests = []

        def tool(request):
            requests.append(request)
            return httpx.Response(200, json=TOOL_RESULT)

        options = SMITestOptions(operation_id="op-42", manifest=str(manifest_path), labels={"team": "mesh"})
        with mock_tool(tool):
            report = adapter.validate_smi_conformance(options)

        assert report.status == "completed"
        assert report.id == "op-42"
        assert report.cases_passed == "8"
        assert report.passing_percentage == "100"
        assert [(d.smi_specification, d.smi_version) for d in report.more_details] == [
            ("traffic-access", "v1alpha2"),
            ("traffic-split", "v1alpha3"),
            ("traffic-specs", "v1alpha4"),
        ]

        # namespace created, objects applied then deleted
        assert adapter.kube_client.core_v1.create_namespace.call_args.kwargs["body"].metadata.name == "meshery"
        for resource in resources.values():
            resource.create.assert_called_once()
            resource.delete.assert_called_once()

        assert str(requests[0].url) == f"http://10.96.0.15:8080{RUN_TEST_PATH}"
        assert json.loads(requests[0].content)["labels"] == {"team": "mesh"}

        events = channel.drain()
        assert events[-1].event_type == INFO
        assert events[-1].summary == "Smi conformance test completed successfully"
        assert json.loads(events[-1].details)["status"] == "completed"

    def test_missing_service_stops_before_run(self, kubeconfig_bytes, manifest_path):
        channel = NotificationChannel()
        adapter, _ = bootstrap(kubeconfig_bytes, channel)
        resources = stub_cluster(adapter, None)
        adapter.kube_client.core_v1.read_namespaced_service.side_effect = ApiException(status=404, reason="Not Found")
        tool = MagicMock()

        with mock_tool(tool):
            with pytest.raises(ConnectError) as excinfo:
                adapter.validate_smi_conformance(
                    SMITestOptions(operation_id="op-43", manifest=str(manifest_path))
                )

        tool.assert_not_called()
        assert excinfo.value.report.status == "connecting"
        assert excinfo.value.report.more_details == []
        # installed, never cleaned up: the caller decides what to do next
        for resource in resources.values():
            resource.create.assert_called_once()
            resource.delete.assert_not_called()

        final = channel.drain()[-1]
        assert final.event_type == ERROR
        assert final.summary == "Error while connecting running smi-conformance test"
