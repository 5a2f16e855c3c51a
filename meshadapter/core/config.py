"""Adapter settings from config.json, with environment overrides.

Settings are looked up by key path. A value present in config.json wins;
otherwise the upper-snake environment variable named after the path is used
(``["conformance", "namespace"]`` -> ``CONFORMANCE_NAMESPACE``); otherwise the
caller's default. The file is located through ``MESHADAPTER_CONFIG`` or,
failing that, ``config.json`` in the working directory.

Recognized keys (all optional)::

    {
      "adapter": {"name": "istio", "version": "1.20.0"},
      "kubernetes": {"qps": 50, "burst": 100},
      "conformance": {
        "namespace": "meshery",
        "manifest": "https://.../manifest.yml",
        "service_name": "smi-conformance",
        "settle_seconds": 20,
        "request_timeout": 300
      },
      "manifest": {"fetch_timeout": 30},
      "notifications": {"max_events": 100}
    }
"""

import json
import logging
import os
from pathlib import Path
from typing import Any, Dict, List, Optional

logger = logging.getLogger(__name__)

DEFAULT_CONFIG_PATH = "config.json"
CONFIG_PATH_ENV = "MESHADAPTER_CONFIG"


def load_config(config_path: Optional[str] = None) -> Dict[str, Any]:
    """Read the settings file.

    A missing, unreadable or non-object file is treated as empty so that
    every setting falls back to its environment variable or default.

    Args:
        config_path: Settings file (default: $MESHADAPTER_CONFIG, else "config.json")

    Returns:
        Parsed settings, or {} when there are none
    """
    path = Path(config_path or os.environ.get(CONFIG_PATH_ENV) or DEFAULT_CONFIG_PATH)
    if not path.is_file():
        return {}

    try:
        data = json.loads(path.read_text(encoding="utf-8"))
    except (OSError, ValueError) as e:
        logger.warning(f"Ignoring unreadable settings file {path}: {e}")
        return {}

    return data if isinstance(data, dict) else {}


def _lookup(config: Dict[str, Any], keys: List[str]) -> Any:
    node: Any = config
    for key in keys:
        if not isinstance(node, dict):
            return None
        node = node.get(key)
    return node


def get_config_value(
    keys: List[str], default: Any = None, config: Optional[Dict[str, Any]] = None
) -> Any:
    """Resolve one setting.

    Example:
        >>> get_config_value(["kubernetes", "qps"], default=50, config={"kubernetes": {"qps": 20}})
        20

    Args:
        keys: Key path, e.g. ["conformance", "namespace"]
        default: Returned when neither the file nor the environment sets it
        config: Pre-loaded settings (default: load_config())
    """
    value = _lookup(load_config() if config is None else config, keys)
    if value is not None:
        return value

    env_value = os.environ.get("_".join(key.upper() for key in keys))
    return default if env_value is None else env_value


def get_float(keys: List[str], default: float, config: Optional[Dict[str, Any]] = None) -> float:
    """Numeric setting; environment strings are coerced, junk falls back to ``default``."""
    value = get_config_value(keys, default=default, config=config)
    try:
        return float(value)
    except (TypeError, ValueError):
        return default


def get_int(keys: List[str], default: int, config: Optional[Dict[str, Any]] = None) -> int:
    """Integer counterpart of :func:`get_float`."""
    value = get_config_value(keys, default=default, config=config)
    try:
        return int(value)
    except (TypeError, ValueError):
        return default
