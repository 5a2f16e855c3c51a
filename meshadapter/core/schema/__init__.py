"""
Schema definitions for conformance reports.

These dataclasses are shared by the orchestrator, the result aggregator,
and the notification events that carry serialized reports.
"""

from meshadapter.core.schema.report import Detail, Phase, Response

__all__ = [
    "Detail",
    "Phase",
    "Response",
]
