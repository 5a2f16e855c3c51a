"""
meshadapter: lifecycle and conformance-testing core for service-mesh adapters.

Bootstraps cluster connectivity from an untrusted kubeconfig and drives a remote
SMI conformance tool through install, connect, run and delete phases, returning
a normalized report even when a phase fails midway.
"""

__version__ = "0.1.0"

from meshadapter.core.adapter import Adapter
from meshadapter.conformance.runner import SMITestOptions, run_conformance_test
from meshadapter.core.schema.report import Detail, Phase, Response

__all__ = [
    "__version__",
    "Adapter",
    "Detail",
    "Phase",
    "Response",
    "SMITestOptions",
    "run_conformance_test",
]
