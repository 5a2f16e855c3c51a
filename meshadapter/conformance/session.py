"""Client sessions for the remote SMI conformance tool.

The runner only depends on the ConformanceSession protocol: open a session
for an address, send one RunTest request, close. HTTPConformanceSession is the
default implementation and speaks JSON over HTTP to the tool's RunTest route.

Request body::

    {"meshname": "istio", "meshversion": "1.20.0",
     "labels": {...}, "annotations": {...}}

Response body::

    {"casespassed": "8", "passpercent": "100",
     "details": [{"smispec": "traffic-access", "specversion": "v1alpha2",
                  "time": "1.2s", "assertions": "...", "result": "...",
                  "reason": "", "capability": "FULL", "status": "passing"}]}
"""

import logging
from typing import Any, Callable, Dict, Optional, Protocol

import httpx

from meshadapter.core.config import get_float
from meshadapter.core.errors import ProtocolError

logger = logging.getLogger(__name__)

RUN_TEST_PATH = "/conformance.ConformanceTesting/RunTest"
DEFAULT_REQUEST_TIMEOUT = 300.0


class ConformanceSession(Protocol):
    """One connection to the conformance tool."""

    def run_test(
        self,
        mesh_name: str,
        mesh_version: str,
        labels: Dict[str, str],
        annotations: Dict[str, str],
    ) -> Dict[str, Any]:
        """Run the conformance suite and return the tool's raw response."""
        ...

    def close(self) -> None:
        """Release the connection."""
        ...


SessionFactory = Callable[[str], ConformanceSession]


class HTTPConformanceSession:
    """JSON-over-HTTP session with the conformance tool.

    Example:
        >>> with HTTPConformanceSession("10.96.12.4:8080") as session:
        ...     raw = session.run_test("istio", "1.20.0", {}, {})
    """

    def __init__(self, address: str, timeout: Optional[float] = None, scheme: str = "http"):
        """Open a session.

        Args:
            address: "host:port" of the tool's service
            timeout: Request timeout in seconds (default: conformance.request_timeout
                from config.json, or 300)
            scheme: URL scheme (default: "http")
        """
        if timeout is None:
            timeout = get_float(["conformance", "request_timeout"], DEFAULT_REQUEST_TIMEOUT)
        self.address = address
        self._client = httpx.Client(base_url=f"{scheme}://{address}", timeout=timeout)

    def run_test(
        self,
        mesh_name: str,
        mesh_version: str,
        labels: Dict[str, str],
        annotations: Dict[str, str],
    ) -> Dict[str, Any]:
        payload = {
            "meshname": mesh_name,
            "meshversion": mesh_version,
            "labels": dict(labels),
            "annotations": dict(annotations),
        }
        logger.info(f"Requesting conformance run for {mesh_name} {mesh_version} at {self.address}")
        response = self._client.post(RUN_TEST_PATH, json=payload)
        response.raise_for_status()
        try:
            data = response.json()
        except ValueError as e:
            raise ProtocolError(f"response is not JSON: {e}") from e
        if not isinstance(data, dict):
            raise ProtocolError(f"expected a JSON object, got {type(data).__name__}")
        return data

    def close(self) -> None:
        self._client.close()

    def __enter__(self) -> "HTTPConformanceSession":
        return self

    def __exit__(self, *exc_info: Any) -> None:
        self.close()


def open_session(address: str) -> ConformanceSession:
    """Default SessionFactory."""
    return HTTPConformanceSession(address)
