"""meshadapter CLI - Command-line interface for kubeconfig checks and SMI conformance runs.

This module provides the main CLI entrypoint for meshadapter, allowing users
to validate kubeconfigs and run the conformance tool from the command line.
"""

import argparse
import json
import logging
import sys
import uuid
from pathlib import Path
from typing import Dict, List, Optional

from meshadapter.conformance.aggregator import summarize
from meshadapter.conformance.runner import SMITestOptions
from meshadapter.core.adapter import Adapter
from meshadapter.core.errors import AdapterError, ConformanceError
from meshadapter.core.events import NotificationChannel
from meshadapter.k8s.kubeconfig import validate_kubeconfig

logger = logging.getLogger(__name__)


def _parse_pairs(values: Optional[List[str]], flag: str) -> Dict[str, str]:
    pairs: Dict[str, str] = {}
    for value in values or []:
        key, sep, val = value.partition("=")
        if not sep or not key:
            raise argparse.ArgumentTypeError(f"{flag} expects key=value, got '{value}'")
        pairs[key] = val
    return pairs


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="meshadapter",
        description="meshadapter - kubeconfig validation and SMI conformance runs",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  # Check that a kubeconfig has a usable credential
  meshadapter validate-kubeconfig ~/.kube/config

  # Run the SMI conformance tool against a cluster
  meshadapter conformance --kubeconfig ~/.kube/config --context kind-kind --mesh-name istio

  # Custom namespace and manifest, with labels forwarded to the tool
  meshadapter conformance --kubeconfig kc.yaml --context prod \\
      --namespace smi --manifest ./manifest.yml --label team=mesh -v

Note:
  Defaults for namespace, manifest and timeouts are read from config.json
  when present, e.g. {'conformance': {'namespace': 'meshery'}}.
"""
    )

    subparsers = parser.add_subparsers(dest="command", help="Command to run")

    # Validate command
    validate_parser = subparsers.add_parser(
        "validate-kubeconfig",
        help="Sanitize a kubeconfig and report what remains usable"
    )
    validate_parser.add_argument(
        "kubeconfig",
        help="Path to the kubeconfig file"
    )
    validate_parser.add_argument(
        "-v", "--verbose",
        action="store_true",
        help="Verbose output"
    )

    # Conformance command
    conformance_parser = subparsers.add_parser(
        "conformance",
        help="Install, run and remove the SMI conformance tool"
    )
    conformance_parser.add_argument(
        "--kubeconfig",
        help="Path to the kubeconfig file (default: in-cluster credentials)"
    )
    conformance_parser.add_argument(
        "--context",
        default="",
        help="Context name to record on the adapter"
    )
    conformance_parser.add_argument(
        "--mesh-name",
        help="Name of the mesh under test (default: adapter.name from config.json)"
    )
    conformance_parser.add_argument(
        "--mesh-version",
        help="Version of the mesh under test (default: adapter.version from config.json)"
    )
    conformance_parser.add_argument(
        "--operation-id",
        help="Run identifier (default: random UUID)"
    )
    conformance_parser.add_argument(
        "--namespace",
        help="Namespace to install the tool in (default: from config.json or meshery)"
    )
    conformance_parser.add_argument(
        "--manifest",
        help="URL or path of the tool manifest (default: from config.json or upstream)"
    )
    conformance_parser.add_argument(
        "--settle-seconds",
        type=float,
        default=None,
        help="Wait after install for resources to become ready (default: 20)"
    )
    conformance_parser.add_argument(
        "--label",
        action="append",
        metavar="KEY=VALUE",
        help="Label forwarded to the tool (repeatable)"
    )
    conformance_parser.add_argument(
        "--annotation",
        action="append",
        metavar="KEY=VALUE",
        help="Annotation forwarded to the tool (repeatable)"
    )
    conformance_parser.add_argument(
        "-v", "--verbose",
        action="store_true",
        help="Verbose output"
    )
    return parser


def main(argv: Optional[List[str]] = None) -> int:
    """Main CLI entrypoint for meshadapter."""
    parser = build_parser()
    args = parser.parse_args(argv)

    # Setup logging
    if getattr(args, "verbose", False):
        logging.basicConfig(level=logging.INFO, format='%(levelname)s: %(message)s')
    else:
        logging.basicConfig(level=logging.WARNING, format='%(levelname)s: %(message)s')

    # Handle commands
    if args.command == "validate-kubeconfig":
        return cmd_validate(args)
    elif args.command == "conformance":
        return cmd_conformance(args)
    else:
        parser.print_help()
        return 1


def cmd_validate(args) -> int:
    """Handle validate-kubeconfig command."""
    path = Path(args.kubeconfig).expanduser()
    try:
        raw = path.read_bytes()
    except OSError as e:
        print(f"Error: cannot read {path}: {e}", file=sys.stderr)
        return 1

    try:
        document = validate_kubeconfig(raw, base_dir=path.parent)
    except AdapterError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1

    print("✓ Kubeconfig is usable")
    print(f"   Current context: {document.current_context}")
    print(f"   Users: {', '.join(sorted(document.auth_infos))}")
    print(f"   Clusters: {', '.join(sorted(document.clusters))}")
    return 0


def cmd_conformance(args) -> int:
    """Handle conformance command."""
    try:
        labels = _parse_pairs(args.label, "--label")
        annotations = _parse_pairs(args.annotation, "--annotation")
    except argparse.ArgumentTypeError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1

    kubeconfig = b""
    base_dir = None
    if args.kubeconfig:
        path = Path(args.kubeconfig).expanduser()
        base_dir = path.parent
        try:
            kubeconfig = path.read_bytes()
        except OSError as e:
            print(f"Error: cannot read {args.kubeconfig}: {e}", file=sys.stderr)
            return 1

    adapter = Adapter(name=args.mesh_name, version=args.mesh_version)
    channel = NotificationChannel()
    options = SMITestOptions.from_config(
        args.operation_id or str(uuid.uuid4()),
        namespace=args.namespace,
        manifest=args.manifest,
        settle_seconds=args.settle_seconds,
        labels=labels,
        annotations=annotations,
    )

    try:
        adapter.create_instance(kubeconfig, args.context, channel, base_dir=base_dir)
        print(f"Running SMI conformance for {adapter.get_name()} {adapter.get_version()} "
              f"in namespace {options.namespace}...")
        report = adapter.validate_smi_conformance(options)
    except ConformanceError as e:
        print(f"\n❌ {e}", file=sys.stderr)
        if e.report is not None:
            print(json.dumps(e.report.to_dict(), indent=2))
        return 1
    except AdapterError as e:
        print(f"Error: {e}", file=sys.stderr)
        logger.debug("Adapter error", exc_info=True)
        return 1

    counts = summarize(report)
    print(f"\n✅ Conformance run {report.status}")
    print(f"   Cases passed: {report.cases_passed} ({report.passing_percentage}%)")
    for status, count in sorted(counts.items()):
        print(f"   {status}: {count}")
    print(json.dumps(report.to_dict(), indent=2))
    return 0


if __name__ == "__main__":
    sys.exit(main())
