"""Tests for the meshadapter command-line interface."""

import base64
import json
from unittest.mock import MagicMock, patch

from meshadapter.cli.main import main
from meshadapter.core.errors import InstanceCreationError, RunError
from meshadapter.core.schema.report import Detail, Response

CERT_DATA = base64.b64encode(b"cert").decode("ascii")


def write_kubeconfig(path):
    path.write_text(json.dumps({
        "apiVersion": "v1",
        "kind": "Config",
        "current-context": "kind",
        "clusters": [{"name": "kind-cluster", "cluster": {"server": "https://127.0.0.1:6443"}}],
        "users": [{"name": "admin", "user": {"client-certificate-data": CERT_DATA}}],
        "contexts": [{"name": "kind", "context": {"cluster": "kind-cluster", "user": "admin"}}],
    }))
    return path


def test_no_command_prints_help(capsys):
    assert main([]) == 1
    assert "usage" in capsys.readouterr().out


class TestValidateCommand:
    """Tests for `meshadapter validate-kubeconfig`."""

    def test_usable_kubeconfig(self, tmp_path, capsys):
        path = write_kubeconfig(tmp_path / "kubeconfig")

        assert main(["validate-kubeconfig", str(path)]) == 0

        out = capsys.readouterr().out
        assert "Current context: kind" in out
        assert "Users: admin" in out

    def test_missing_file(self, tmp_path, capsys):
        assert main(["validate-kubeconfig", str(tmp_path / "absent")]) == 1
        assert "cannot read" in capsys.readouterr().err

    def test_unusable_kubeconfig(self, tmp_path, capsys):
        path = tmp_path / "kubeconfig"
        path.write_text("users:\n- name: admin\n  user:\n    client-certificate: missing.crt\n")

        assert main(["validate-kubeconfig", str(path)]) == 1
        assert "No valid auth-info" in capsys.readouterr().err


class TestConformanceCommand:
    """Tests for `meshadapter conformance`."""

    @patch("meshadapter.cli.main.Adapter")
    def test_success(self, mock_adapter_class, tmp_path, capsys):
        path = write_kubeconfig(tmp_path / "kubeconfig")
        adapter = MagicMock()
        adapter.get_name.return_value = "istio"
        adapter.get_version.return_value = "1.20.0"
        adapter.validate_smi_conformance.return_value = Response(
            id="op-1",
            status="completed",
            cases_passed="2",
            passing_percentage="100",
            more_details=[Detail(status="passing"), Detail(status="passing")],
        )
        mock_adapter_class.return_value = adapter

        code = main([
            "conformance", "--kubeconfig", str(path), "--context", "kind",
            "--mesh-name", "istio", "--operation-id", "op-1",
            "--namespace", "smi", "--label", "team=mesh", "--settle-seconds", "0",
        ])

        assert code == 0
        mock_adapter_class.assert_called_once_with(name="istio", version=None)
        raw, context, _channel = adapter.create_instance.call_args.args
        assert raw == path.read_bytes()
        assert context == "kind"
        options = adapter.validate_smi_conformance.call_args.args[0]
        assert options.operation_id == "op-1"
        assert options.namespace == "smi"
        assert options.labels == {"team": "mesh"}
        assert options.settle_seconds == 0
        out = capsys.readouterr().out
        assert "Cases passed: 2 (100%)" in out
        assert "passing: 2" in out

    @patch("meshadapter.cli.main.Adapter")
    def test_phase_failure_prints_report(self, mock_adapter_class, capsys):
        adapter = MagicMock()
        adapter.validate_smi_conformance.side_effect = RunError(
            "connection refused", report=Response(id="op-2", status="running")
        )
        mock_adapter_class.return_value = adapter

        assert main(["conformance", "--operation-id", "op-2"]) == 1

        captured = capsys.readouterr()
        assert "Error running smi conformance test" in captured.err
        report = json.loads(captured.out[captured.out.index("{"):])
        assert report["status"] == "running"
        assert adapter.create_instance.call_args.args[0] == b""

    @patch("meshadapter.cli.main.Adapter")
    def test_bootstrap_failure(self, mock_adapter_class, capsys):
        mock_adapter_class.return_value.create_instance.side_effect = InstanceCreationError("no credentials")
        assert main(["conformance"]) == 1
        assert "no credentials" in capsys.readouterr().err

    def test_malformed_label(self, capsys):
        assert main(["conformance", "--label", "novalue"]) == 1
        assert "key=value" in capsys.readouterr().err


class TestRelativeCertificatePaths:
    """Both commands resolve certificate paths against the kubeconfig's directory."""

    def _kubeconfig_with_relative_cert(self, tmp_path):
        kube_dir = tmp_path / "kube"
        kube_dir.mkdir()
        (kube_dir / "client.crt").write_bytes(b"cert")
        path = kube_dir / "config"
        path.write_text(json.dumps({
            "apiVersion": "v1",
            "kind": "Config",
            "current-context": "kind",
            "clusters": [{"name": "kind-cluster", "cluster": {"server": "https://127.0.0.1:6443"}}],
            "users": [{"name": "u", "user": {"client-certificate": "client.crt"}}],
            "contexts": [{"name": "kind", "context": {"cluster": "kind-cluster", "user": "u"}}],
        }))
        return path

    @patch("meshadapter.cli.main.Adapter.validate_smi_conformance")
    @patch("meshadapter.k8s.client.client.ApiClient")
    @patch("meshadapter.k8s.client.config.load_kube_config_from_dict")
    def test_validate_and_conformance_agree(self, mock_load, mock_api_client, mock_validate, tmp_path, capsys):
        path = self._kubeconfig_with_relative_cert(tmp_path)
        mock_validate.return_value = Response(id="op-1", status="completed")

        assert main(["validate-kubeconfig", str(path)]) == 0
        assert "Users: u" in capsys.readouterr().out

        assert main(["conformance", "--kubeconfig", str(path), "--context", "kind", "--operation-id", "op-1"]) == 0

        loaded = mock_load.call_args.args[0]
        user = loaded["users"][0]["user"]
        assert base64.b64decode(user["client-certificate-data"]) == b"cert"
        mock_validate.assert_called_once()
