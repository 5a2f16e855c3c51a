"""Report model for conformance runs.

A Response is the externally visible result of one conformance run. It is
created when the run starts, updated as phases complete, and returned (or
attached to the raised phase error) with the last phase attempted in
``status``.

JSON Transport Format
---------------------

Field names follow the conformance report consumed by Meshery; empty fields
are omitted::

    {
      "id": "op-42",
      "date": "2024-05-01T10:00:00+00:00",
      "mesh_name": "istio",
      "mesh_version": "1.20.0",
      "cases_passed": "8",
      "passing_percentage": "100",
      "status": "completed",
      "more_details": [
        {"smi_specification": "traffic-access", "smi_version": "v1alpha2", ...}
      ]
    }
"""

import json
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, List


class Phase(str, Enum):
    """Orchestration phases, in execution order."""

    DEPLOYING = "deploying"
    INSTALLING = "installing"
    CONNECTING = "connecting"
    RUNNING = "running"
    DELETING = "deleting"
    COMPLETED = "completed"


@dataclass(frozen=True)
class Detail:
    """Outcome of one conformance assertion.

    Attributes:
        smi_specification: Specification identifier (e.g., "traffic-split")
        smi_version: Specification version (e.g., "v1alpha3")
        time: Elapsed time reported by the tool
        assertions: Assertion description
        result: Assertion result text
        reason: Failure reason, empty when the assertion passed
        capability: Capability name ("FULL", "HALF", "NONE")
        status: Assertion status ("passing", "failing", ...)
    """

    smi_specification: str = ""
    smi_version: str = ""
    time: str = ""
    assertions: str = ""
    result: str = ""
    reason: str = ""
    capability: str = ""
    status: str = ""

    def to_dict(self) -> Dict[str, str]:
        """Convert to a dict, omitting empty fields."""
        return {key: value for key, value in vars(self).items() if value}


def _now_rfc3339() -> str:
    return datetime.now(timezone.utc).replace(microsecond=0).isoformat()


@dataclass
class Response:
    """Normalized conformance report.

    Attributes:
        id: Run identifier (the caller's operation id)
        date: RFC 3339 timestamp of when the run started
        mesh_name: Name of the mesh under test
        mesh_version: Version of the mesh under test
        cases_passed: Aggregate pass count, verbatim from the tool
        passing_percentage: Aggregate pass percentage, verbatim from the tool
        status: Lifecycle status, one of the Phase values
        more_details: Per-assertion records in tool execution order
    """

    id: str = ""
    date: str = field(default_factory=_now_rfc3339)
    mesh_name: str = ""
    mesh_version: str = ""
    cases_passed: str = "0"
    passing_percentage: str = "0"
    status: str = Phase.DEPLOYING.value
    more_details: List[Detail] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        """Convert report to JSON-serializable format, omitting empty fields.

        Returns:
            Dict representation suitable for JSON serialization or event details
        """
        result: Dict[str, Any] = {}
        for key in ("id", "date", "mesh_name", "mesh_version", "cases_passed", "passing_percentage", "status"):
            value = getattr(self, key)
            if value:
                result[key] = value
        if self.more_details:
            result["more_details"] = [detail.to_dict() for detail in self.more_details]
        return result

    def to_json(self) -> str:
        return json.dumps(self.to_dict())
