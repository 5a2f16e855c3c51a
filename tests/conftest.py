"""Shared fixtures for meshadapter tests."""

import pytest

CONFIG_ENV_VARS = (
    "MESHADAPTER_CONFIG",
    "ADAPTER_NAME",
    "ADAPTER_VERSION",
    "KUBERNETES_QPS",
    "KUBERNETES_BURST",
    "CONFORMANCE_NAMESPACE",
    "CONFORMANCE_MANIFEST",
    "CONFORMANCE_SERVICE_NAME",
    "CONFORMANCE_SETTLE_SECONDS",
    "CONFORMANCE_REQUEST_TIMEOUT",
    "MANIFEST_FETCH_TIMEOUT",
    "NOTIFICATIONS_MAX_EVENTS",
)


@pytest.fixture(autouse=True)
def isolated_config(tmp_path, monkeypatch):
    """Run each test without a config.json or config env vars in scope."""
    monkeypatch.chdir(tmp_path)
    for name in CONFIG_ENV_VARS:
        monkeypatch.delenv(name, raising=False)
    return tmp_path


MANIFEST = """\
apiVersion: v1
kind: ServiceAccount
metadata:
  name: smi-conformance
---
apiVersion: apps/v1
kind: Deployment
metadata:
  name: smi-conformance
spec:
  replicas: 1
---
apiVersion: v1
kind: Service
metadata:
  name: smi-conformance
spec:
  ports:
  - port: 8080
"""


@pytest.fixture
def manifest_text():
    """Three-object conformance tool manifest."""
    return MANIFEST
