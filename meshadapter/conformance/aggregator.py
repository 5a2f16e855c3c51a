"""Result aggregation for conformance runs.

Maps the conformance tool's raw RunTest response onto the normalized Response
report. This is a pure shape transformation: aggregate counts are copied
verbatim and every raw detail becomes exactly one Detail, in received order.
The order reflects execution order on the tool, so nothing is filtered,
deduplicated or sorted.
"""

from typing import Any, Dict, List, Mapping

from meshadapter.core.errors import ProtocolError
from meshadapter.core.schema.report import Detail, Response

# Detail attribute -> key in the raw response
DETAIL_FIELDS = {
    "smi_specification": "smispec",
    "smi_version": "specversion",
    "time": "time",
    "assertions": "assertions",
    "result": "result",
    "reason": "reason",
    "capability": "capability",
    "status": "status",
}


def _text(value: Any) -> str:
    if value is None:
        return ""
    if isinstance(value, bool):
        return "true" if value else "false"
    return str(value)


def to_detail(raw: Mapping[str, Any]) -> Detail:
    """Convert one raw assertion record; absent fields become ""."""
    return Detail(**{attr: _text(raw.get(key)) for attr, key in DETAIL_FIELDS.items()})


def aggregate_results(raw: Mapping[str, Any], response: Response) -> Response:
    """Copy the tool's results into ``response``.

    Args:
        raw: Raw RunTest response (casespassed, passpercent, details)
        response: Report to update in place

    Returns:
        The same ``response``, for chaining

    Raises:
        ProtocolError: If ``raw`` is not a mapping, lacks the aggregate
            counts, or its details are not a list of mappings. ``response``
            is left untouched in that case.
    """
    if not isinstance(raw, Mapping):
        raise ProtocolError(f"expected a mapping, got {type(raw).__name__}")

    missing = [key for key in ("casespassed", "passpercent") if raw.get(key) is None]
    if missing:
        raise ProtocolError(f"missing field(s): {', '.join(missing)}")

    raw_details = raw.get("details")
    if raw_details is None:
        raw_details = []
    if not isinstance(raw_details, list):
        raise ProtocolError(f"'details' must be a list, got {type(raw_details).__name__}")

    details: List[Detail] = []
    for index, item in enumerate(raw_details):
        if not isinstance(item, Mapping):
            raise ProtocolError(f"details[{index}] must be a mapping")
        details.append(to_detail(item))

    response.cases_passed = _text(raw["casespassed"])
    response.passing_percentage = _text(raw["passpercent"])
    response.more_details = details
    return response


def summarize(response: Response) -> Dict[str, int]:
    """Count details per status, e.g. {"passing": 7, "failing": 1}."""
    counts: Dict[str, int] = {}
    for detail in response.more_details:
        key = detail.status or "unknown"
        counts[key] = counts.get(key, 0) + 1
    return counts
