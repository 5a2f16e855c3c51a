"""Shared utility functions for the K8s layer.

This module provides helpers used by the conformance runner to load
manifests from wherever they are published.
"""

import logging
from pathlib import Path
from typing import Optional
from urllib.parse import urlparse

import httpx

from meshadapter.core.config import get_float
from meshadapter.core.errors import ManifestFetchError
from meshadapter.k8s.constants import DEFAULT_FETCH_TIMEOUT

logger = logging.getLogger(__name__)


def read_remote_file(location: str, timeout: Optional[float] = None) -> str:
    """Return the text content of a manifest location.

    ``http://`` and ``https://`` locations are downloaded; ``file://`` URLs
    and plain paths are read from disk.

    Args:
        location: URL or filesystem path
        timeout: Request timeout in seconds (default: manifest.fetch_timeout
            from config.json, or 30)

    Returns:
        The manifest text

    Raises:
        ManifestFetchError: If the location is empty, unreachable, or the
            server answers with a non-2xx status

    Example:
        >>> text = read_remote_file("https://example.com/smi-conformance/manifest.yml")
    """
    if not location:
        raise ManifestFetchError("no manifest location given")

    parsed = urlparse(location)
    if parsed.scheme in ("http", "https"):
        if timeout is None:
            timeout = get_float(["manifest", "fetch_timeout"], DEFAULT_FETCH_TIMEOUT)
        logger.debug(f"Fetching manifest from {location}")
        try:
            with httpx.Client(timeout=timeout, follow_redirects=True) as http:
                response = http.get(location)
                response.raise_for_status()
        except httpx.HTTPError as e:
            raise ManifestFetchError(f"{location}: {e}") from e
        return response.text

    path = Path(parsed.path) if parsed.scheme == "file" else Path(location)
    try:
        return path.read_text(encoding="utf-8")
    except (OSError, UnicodeDecodeError) as e:
        raise ManifestFetchError(f"{location}: {e}") from e
