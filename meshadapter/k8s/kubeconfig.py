"""Kubeconfig parsing and sanitization.

This module turns untrusted kubeconfig bytes into a KubeconfigDocument that is
safe to hand to the Kubernetes client:

- load_kubeconfig: parse YAML into named cluster/user/context maps
- filter_auth_infos: drop users whose client certificate cannot be resolved
- minify_kubeconfig: keep only what the current context references
- flatten_kubeconfig: inline referenced certificate files as base64 data
- validate_kubeconfig: all of the above, in order

Every function returns a new document; inputs are never mutated.
"""

import base64
import copy
import logging
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple, Union

from ruamel.yaml import YAML
from ruamel.yaml.error import YAMLError

from meshadapter.core.errors import (
    FlattenError,
    MinifyError,
    NoUsableCredentialsError,
    ParseError,
)

logger = logging.getLogger(__name__)

# (top-level list key, per-entry payload key)
_SECTIONS: Tuple[Tuple[str, str], ...] = (
    ("clusters", "cluster"),
    ("users", "user"),
    ("contexts", "context"),
)

# Path fields inlined by flatten_kubeconfig, per section
_CLUSTER_FILE_FIELDS = (("certificate-authority", "certificate-authority-data"),)
_USER_FILE_FIELDS = (
    ("client-certificate", "client-certificate-data"),
    ("client-key", "client-key-data"),
)


@dataclass
class KubeconfigDocument:
    """Structured kubeconfig with entries keyed by name.

    Attributes:
        kind: Document kind, normally "Config"
        api_version: Document API version, normally "v1"
        current_context: Name of the selected context ("" if unset)
        preferences: Free-form preferences block
        clusters: Cluster name -> cluster payload (server, certificate-authority, ...)
        auth_infos: User name -> credential payload (client-certificate, token, ...)
        contexts: Context name -> context payload (cluster, user, namespace)
        extensions: Raw extensions list
    """

    kind: str = "Config"
    api_version: str = "v1"
    current_context: str = ""
    preferences: Dict[str, Any] = field(default_factory=dict)
    clusters: Dict[str, Dict[str, Any]] = field(default_factory=dict)
    auth_infos: Dict[str, Dict[str, Any]] = field(default_factory=dict)
    contexts: Dict[str, Dict[str, Any]] = field(default_factory=dict)
    extensions: List[Any] = field(default_factory=list)

    def copy(self) -> "KubeconfigDocument":
        return copy.deepcopy(self)

    def is_empty(self) -> bool:
        return not (self.clusters or self.auth_infos or self.contexts)

    def to_dict(self) -> Dict[str, Any]:
        """Render the standard kubeconfig list form.

        Returns:
            Dict accepted by ``kubernetes.config.load_kube_config_from_dict``
        """
        result: Dict[str, Any] = {
            "apiVersion": self.api_version,
            "kind": self.kind,
            "current-context": self.current_context,
            "preferences": copy.deepcopy(self.preferences),
            "clusters": [{"name": n, "cluster": copy.deepcopy(c)} for n, c in self.clusters.items()],
            "users": [{"name": n, "user": copy.deepcopy(u)} for n, u in self.auth_infos.items()],
            "contexts": [{"name": n, "context": copy.deepcopy(c)} for n, c in self.contexts.items()],
        }
        if self.extensions:
            result["extensions"] = copy.deepcopy(self.extensions)
        return result


def _named_entries(data: Dict[str, Any], section: str, payload_key: str) -> Dict[str, Dict[str, Any]]:
    raw_entries = data.get(section)
    if raw_entries is None:
        return {}
    if not isinstance(raw_entries, list):
        raise ParseError(f"'{section}' must be a list, got {type(raw_entries).__name__}")

    entries: Dict[str, Dict[str, Any]] = {}
    for index, item in enumerate(raw_entries):
        if not isinstance(item, dict):
            raise ParseError(f"{section}[{index}] must be a mapping")
        name = item.get("name")
        if not isinstance(name, str) or not name:
            raise ParseError(f"{section}[{index}] has no name")
        payload = item.get(payload_key)
        if payload is None:
            payload = {}
        if not isinstance(payload, dict):
            raise ParseError(f"{section}[{index}].{payload_key} must be a mapping")
        entries[name] = dict(payload)
    return entries


def load_kubeconfig(kubeconfig: Union[bytes, str]) -> KubeconfigDocument:
    """Parse raw kubeconfig bytes into a KubeconfigDocument.

    Empty input yields an empty document.

    Args:
        kubeconfig: Raw kubeconfig (YAML or JSON) as bytes or text

    Returns:
        Parsed document

    Raises:
        ParseError: If the input is not a well-formed kubeconfig document
    """
    if isinstance(kubeconfig, bytes):
        try:
            text = kubeconfig.decode("utf-8")
        except UnicodeDecodeError as e:
            raise ParseError(e) from e
    else:
        text = kubeconfig

    yaml = YAML(typ="safe", pure=True)
    try:
        data = yaml.load(text)
    except YAMLError as e:
        raise ParseError(e) from e

    if data is None:
        return KubeconfigDocument()
    if not isinstance(data, dict):
        raise ParseError(f"kubeconfig must be a mapping, got {type(data).__name__}")

    preferences = data.get("preferences") or {}
    if not isinstance(preferences, dict):
        raise ParseError("'preferences' must be a mapping")
    extensions = data.get("extensions") or []
    if not isinstance(extensions, list):
        raise ParseError("'extensions' must be a list")

    clusters, auth_infos, contexts = (
        _named_entries(data, section, payload_key) for section, payload_key in _SECTIONS
    )

    return KubeconfigDocument(
        kind=str(data.get("kind") or "Config"),
        api_version=str(data.get("apiVersion") or "v1"),
        current_context=str(data.get("current-context") or ""),
        preferences=dict(preferences),
        clusters=clusters,
        auth_infos=auth_infos,
        contexts=contexts,
        extensions=list(extensions),
    )


def _resolve_path(path: str, base_dir: Optional[Union[str, Path]]) -> str:
    if path and base_dir is not None and not os.path.isabs(path):
        return os.path.join(str(base_dir), path)
    return path


def _has_usable_certificate(auth_info: Dict[str, Any], base_dir: Optional[Union[str, Path]]) -> bool:
    if auth_info.get("client-certificate-data"):
        return True
    path = _resolve_path(str(auth_info.get("client-certificate") or ""), base_dir)
    try:
        os.stat(path)
    except (OSError, ValueError):
        return False
    return True


def filter_auth_infos(
    auth_infos: Dict[str, Dict[str, Any]], base_dir: Optional[Union[str, Path]] = None
) -> Dict[str, Dict[str, Any]]:
    """Drop auth-infos whose client certificate cannot be resolved.

    An entry with inline ``client-certificate-data`` is always kept. Otherwise
    its ``client-certificate`` path must be stat-able; a missing file, a
    permission error, or an absent path discards the entry.

    Args:
        auth_infos: User name -> credential payload (not modified)
        base_dir: Directory relative certificate paths are resolved against
            (default: current working directory)

    Returns:
        New mapping holding the retained entries

    Raises:
        NoUsableCredentialsError: If no entry survives the filter
    """
    retained: Dict[str, Dict[str, Any]] = {}
    discarded: List[str] = []

    for name, auth_info in auth_infos.items():
        if _has_usable_certificate(auth_info, base_dir):
            retained[name] = copy.deepcopy(auth_info)
        else:
            discarded.append(name)
            logger.warning(f"Discarding auth-info '{name}': client certificate is missing or inaccessible")

    if not retained:
        raise NoUsableCredentialsError(discarded=discarded)

    return retained


def minify_kubeconfig(document: KubeconfigDocument) -> KubeconfigDocument:
    """Remove every entry not reachable from the current context.

    Args:
        document: Document to minify (not modified)

    Returns:
        New document holding only the current context, its cluster and its user

    Raises:
        MinifyError: If the current context, or the cluster or user it
            references, does not exist
    """
    current = document.current_context
    if not current:
        raise MinifyError("current-context must exist in order to minify")
    if current not in document.contexts:
        raise MinifyError(f"cannot locate context {current}")

    context = document.contexts[current]
    minified = document.copy()
    minified.contexts = {current: copy.deepcopy(context)}

    cluster_name = context.get("cluster") or ""
    minified.clusters = {}
    if cluster_name:
        if cluster_name not in document.clusters:
            raise MinifyError(f"cannot locate cluster {cluster_name}")
        minified.clusters[cluster_name] = copy.deepcopy(document.clusters[cluster_name])

    user_name = context.get("user") or ""
    minified.auth_infos = {}
    if user_name:
        if user_name not in document.auth_infos:
            raise MinifyError(f"cannot locate user {user_name}")
        minified.auth_infos[user_name] = copy.deepcopy(document.auth_infos[user_name])

    return minified


def _inline_files(
    entry: Dict[str, Any],
    fields: Tuple[Tuple[str, str], ...],
    base_dir: Optional[Union[str, Path]],
) -> None:
    for path_key, data_key in fields:
        path = entry.pop(path_key, None)
        if not path:
            continue
        if entry.get(data_key):
            raise FlattenError(f"cannot have values for both {path_key} and {data_key}")
        resolved = _resolve_path(str(path), base_dir)
        try:
            content = Path(resolved).read_bytes()
        except OSError as e:
            raise FlattenError(f"cannot read {path_key} {resolved}: {e}") from e
        entry[data_key] = base64.b64encode(content).decode("ascii")


def flatten_kubeconfig(
    document: KubeconfigDocument, base_dir: Optional[Union[str, Path]] = None
) -> KubeconfigDocument:
    """Inline certificate files referenced by path as base64 ``*-data`` fields.

    Every cluster and user is flattened, whether or not the current context
    references it. A path next to existing inline data is rejected.

    Args:
        document: Document to flatten (not modified)
        base_dir: Directory relative paths are resolved against
            (default: current working directory)

    Returns:
        New document with no file references left

    Raises:
        FlattenError: If a referenced file cannot be read, or an entry has
            both a path and inline data for the same field
    """
    flattened = document.copy()
    for cluster in flattened.clusters.values():
        _inline_files(cluster, _CLUSTER_FILE_FIELDS, base_dir)
    for auth_info in flattened.auth_infos.values():
        _inline_files(auth_info, _USER_FILE_FIELDS, base_dir)
    return flattened


def validate_kubeconfig(
    kubeconfig: Union[bytes, str], base_dir: Optional[Union[str, Path]] = None
) -> KubeconfigDocument:
    """Parse and sanitize an untrusted kubeconfig.

    Steps: parse, filter auth-infos, flatten file references, minify to the
    current context. Flattening runs first, so a broken file reference fails
    validation even when the current context does not use it.

    Args:
        kubeconfig: Raw kubeconfig bytes or text
        base_dir: Directory relative certificate paths are resolved against

    Returns:
        Sanitized, self-contained document

    Raises:
        ParseError: Malformed input
        NoUsableCredentialsError: Every auth-info was discarded
        MinifyError: Current context or its references are missing
        FlattenError: A referenced file cannot be read

    Example:
        >>> document = validate_kubeconfig(Path("~/.kube/config").expanduser().read_bytes())
        >>> list(document.auth_infos)
        ['kind-kind']
    """
    document = load_kubeconfig(kubeconfig)
    document.auth_infos = filter_auth_infos(document.auth_infos, base_dir=base_dir)
    document = flatten_kubeconfig(document, base_dir=base_dir)
    document = minify_kubeconfig(document)
    logger.info(
        f"Validated kubeconfig: context '{document.current_context}', "
        f"user(s) {sorted(document.auth_infos)}"
    )
    return document
