"""K8s constants used across the client and conformance modules.

This module contains constants that are shared across multiple modules
to avoid circular import issues.
"""

# Client tuning: above client-go's defaults (5/10) so bulk applies are not throttled
DEFAULT_QPS = 50.0
DEFAULT_BURST = 100

MERGE_PATCH_CONTENT_TYPE = "application/merge-patch+json"

# Seconds allowed for fetching a remote manifest
DEFAULT_FETCH_TIMEOUT = 30.0
