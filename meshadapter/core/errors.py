"""Adapter exceptions for error handling.

Every failure kind is a class in a closed hierarchy rooted at AdapterError.
Each class carries a stable ``code`` and a human-readable ``template`` that is
rendered with the wrapped cause. None of these errors is retried internally:
bootstrap failures mean the kubeconfig or API server is unusable, and the
conformance phases mutate the cluster, so retry policy belongs to the caller.

Hierarchy::

    AdapterError
    ├── KubeconfigError
    │   ├── ParseError
    │   ├── NoUsableCredentialsError
    │   ├── FlattenError
    │   └── MinifyError
    ├── ClientConstructionError
    ├── InstanceCreationError
    ├── ManifestFetchError
    ├── ManifestApplyError
    ├── EndpointError
    ├── ProtocolError
    └── ConformanceError
        ├── ConformanceInitError
        └── PhaseError
            ├── InstallError
            ├── ConnectError
            ├── RunError
            └── DeleteError
"""

from typing import Any, Optional


class AdapterError(Exception):
    """Base class for all adapter failures.

    Attributes:
        code: Stable machine-readable identifier of the failure kind
        template: Message template, formatted with ``cause``
        cause: The underlying exception or detail string (optional)
    """

    code = "adapter_error"
    template = "{cause}"

    def __init__(self, cause: Optional[Any] = None, message: Optional[str] = None) -> None:
        """Initialize AdapterError.

        Args:
            cause: Underlying exception or detail text (optional)
            message: Explicit message overriding the class template (optional)
        """
        self.cause = cause
        if message is None:
            message = self.template.format(cause=cause if cause is not None else "unknown cause")
        super().__init__(message)


class KubeconfigError(AdapterError):
    """Raised when a kubeconfig cannot be turned into a usable document."""

    code = "kubeconfig_invalid"
    template = "Error validating kubeconfig: {cause}"


class ParseError(KubeconfigError):
    """Raised when the kubeconfig bytes are not a well-formed kubeconfig document."""

    code = "kubeconfig_parse"
    template = "Error parsing kubeconfig: {cause}"


class NoUsableCredentialsError(KubeconfigError):
    """Raised when every auth-info entry was discarded by the credential filter.

    The presented kubeconfig cannot authenticate at all, so this is fatal.
    """

    code = "kubeconfig_no_auth_infos"
    template = "No valid auth-info remains in kubeconfig: {cause}"

    def __init__(self, cause: Optional[Any] = None, discarded: Optional[list] = None) -> None:
        """Initialize NoUsableCredentialsError.

        Args:
            cause: Detail text (optional)
            discarded: Names of the auth-info entries that were removed (optional)
        """
        super().__init__(cause if cause is not None else "all auth-infos are invalid or inaccessible")
        self.discarded = list(discarded or [])


class FlattenError(KubeconfigError):
    """Raised when a file referenced by the kubeconfig cannot be inlined."""

    code = "kubeconfig_flatten"
    template = "Error flattening kubeconfig: {cause}"


class MinifyError(KubeconfigError):
    """Raised when the kubeconfig cannot be reduced to its current context."""

    code = "kubeconfig_minify"
    template = "Error minifying kubeconfig: {cause}"


class ClientConstructionError(AdapterError):
    """Raised when the cluster configuration or API client cannot be built."""

    code = "client_construction"
    template = "Error creating kubernetes clientset: {cause}"


class InstanceCreationError(AdapterError):
    """Raised by bootstrap, wrapping whichever step failed."""

    code = "instance_creation"
    template = "Error creating adapter instance: {cause}"


class ManifestFetchError(AdapterError):
    """Raised when a manifest location cannot be read."""

    code = "manifest_fetch"
    template = "Error reading manifest: {cause}"


class ManifestApplyError(AdapterError):
    """Raised when applying or deleting manifest objects fails."""

    code = "manifest_apply"
    template = "Error applying manifest: {cause}"


class EndpointError(AdapterError):
    """Raised when a service endpoint cannot be resolved."""

    code = "service_endpoint"
    template = "Error resolving service endpoint: {cause}"


class ProtocolError(AdapterError):
    """Raised when the conformance tool's response is malformed."""

    code = "conformance_protocol"
    template = "Malformed conformance tool response: {cause}"


class ConformanceError(AdapterError):
    """Base class for conformance run failures.

    Attributes:
        report: The partially populated Response at the point of failure.
            Always set when raised by the orchestrator.
    """

    code = "conformance_error"
    template = "Conformance test failed: {cause}"

    def __init__(
        self, cause: Optional[Any] = None, report: Optional[Any] = None, message: Optional[str] = None
    ) -> None:
        super().__init__(cause, message=message)
        self.report = report


class ConformanceInitError(ConformanceError):
    """Raised when the orchestrator has no cluster client to work with."""

    code = "smi_init"
    template = "Error initializing smi-conformance test: {cause}"


class PhaseError(ConformanceError):
    """Failure of one orchestration phase.

    Attributes:
        phase: Value of the phase that was in progress ("installing", ...)
    """

    code = "phase_error"
    phase = ""


class InstallError(PhaseError):
    """Raised when fetching, applying, or settling the conformance manifest fails."""

    code = "smi_install"
    phase = "installing"
    template = "Error installing smi conformance tool: {cause}"


class ConnectError(PhaseError):
    """Raised when the conformance tool's endpoint cannot be resolved."""

    code = "smi_connect"
    phase = "connecting"
    template = "Error connecting to smi conformance tool: {cause}"


class RunError(PhaseError):
    """Raised when the conformance test session fails."""

    code = "smi_run"
    phase = "running"
    template = "Error running smi conformance test: {cause}"


class DeleteError(PhaseError):
    """Raised when removing the conformance tool fails."""

    code = "smi_delete"
    phase = "deleting"
    template = "Error deleting smi conformance tool: {cause}"
