"""SMI conformance testing.

This package contains the conformance orchestration:
- Phase-by-phase runner (install, connect, run, delete)
- Session protocol for the remote conformance tool
- Aggregation of the tool's results into a Response report
"""

from meshadapter.conformance.aggregator import aggregate_results
from meshadapter.conformance.runner import ConformanceTest, SMITestOptions, run_conformance_test
from meshadapter.conformance.session import ConformanceSession, HTTPConformanceSession

__all__ = [
    "aggregate_results",
    "ConformanceSession",
    "ConformanceTest",
    "HTTPConformanceSession",
    "SMITestOptions",
    "run_conformance_test",
]
