"""
Pipeline Worker — CLI

Host a pipeline worker process, or check its bootstrap file.

Usage:
    # Run a worker; the factory builds the task graph
    python -m worker.cli run --factory mypackage.wiring:factory

    # Validate <config-dir>/sdc.properties
    python -m worker.cli check-bootstrap --config-dir etc

    # Show which operations embedded mode supports
    python -m worker.cli capabilities
"""

from __future__ import annotations

import argparse
import importlib
import json
import sys

from support.config import ConfigError, get_config_value, load_config
from support.logging import configure_logging
from worker.bootstrap import load_identity
from worker.capabilities import EMBEDDED_CAPABILITIES
from worker.collaborators import WorkerFactory
from worker.errors import WorkerError
from worker.lifecycle import EmbeddedWorker


def load_factory(path: str) -> WorkerFactory:
    """
    Resolve "module:attribute" to a WorkerFactory.

    The attribute may be a factory object, or a callable returning one.
    """
    module_name, sep, attr = path.partition(":")
    if not sep or not module_name or not attr:
        raise ValueError(f"Factory must be given as 'module:attribute', got '{path}'")

    target = importlib.import_module(module_name)
    for part in attr.split("."):
        target = getattr(target, part)

    if not hasattr(target, "create") and callable(target):
        target = target()
    if not hasattr(target, "create"):
        raise TypeError(f"'{path}' does not provide a create() method")
    return target


def cmd_run(args) -> int:
    try:
        config = load_config(base_path=args.config)
    except ConfigError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 2
    configure_logging(level=get_config_value("logging.level", config, "INFO"))

    worker = None
    try:
        worker = EmbeddedWorker(load_factory(args.factory), config=config)
        worker.init()
        if not args.no_start:
            worker.start_pipeline()
        try:
            print(f"  worker endpoint: {worker.get_server_uri()}", file=sys.stderr)
        except WorkerError:
            pass
        worker.await_completion()
    except Exception as e:
        print(f"\n  ✗ FAILED: {type(e).__name__}: {e}", file=sys.stderr)
        return 1
    finally:
        if worker is not None:
            worker.destroy()

    if worker.watcher is not None and worker.watcher.error is not None:
        return 1
    handler = worker.components.runtime_info.shutdown_handler
    if handler is not None and handler.status.requested:
        return handler.status.exit_code
    return 0


def cmd_check_bootstrap(args) -> int:
    try:
        bootstrap = load_identity(args.config_dir)
    except WorkerError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1

    print(json.dumps({
        "process_id": bootstrap.process_id,
        "owner": bootstrap.pipeline.owner,
        "name": bootstrap.pipeline.name,
        "revision": bootstrap.pipeline.revision,
        "source": str(bootstrap.source),
    }, indent=2))
    return 0


def cmd_capabilities(args) -> int:
    for spec in EMBEDDED_CAPABILITIES.values():
        marker = "✓" if spec.supported else "✗"
        hint = f"  (use {spec.entry_point})" if spec.entry_point else ""
        print(f"  {marker} {spec.capability.value}{hint}")
    return 0


def main(argv: list[str] | None = None) -> int:
    parser = argparse.ArgumentParser(
        description="Pipeline Worker — embedded pipeline host",
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    subs = parser.add_subparsers(dest="command", help="Command")

    run_p = subs.add_parser("run", help="Host a pipeline worker until it finishes")
    run_p.add_argument("--factory", "-f", required=True,
                       help="WorkerFactory as module:attribute")
    run_p.add_argument("--config", "-c", default="worker.yaml",
                       help="Worker config YAML (default: worker.yaml)")
    run_p.add_argument("--no-start", action="store_true",
                       help="Initialize the task graph without starting the pipeline")

    check_p = subs.add_parser("check-bootstrap", help="Validate sdc.properties")
    check_p.add_argument("--config-dir", "-d", default="etc")

    subs.add_parser("capabilities", help="List supported and rejected operations")

    args = parser.parse_args(argv)
    if not args.command:
        parser.print_help()
        return 1

    if args.command == "run":
        return cmd_run(args)
    elif args.command == "check-bootstrap":
        return cmd_check_bootstrap(args)
    elif args.command == "capabilities":
        return cmd_capabilities(args)
    return 1


if __name__ == "__main__":
    sys.exit(main())
