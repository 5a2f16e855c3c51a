"""
Core adapter components.

This package contains the adapter instance, the error taxonomy, configuration
loading, the notification channel, and the report schema shared by the
Kubernetes and conformance layers.
"""

__all__ = []
