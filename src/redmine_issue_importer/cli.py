"""
Command-line interface for the Redmine issue importer.
"""

from __future__ import annotations

import argparse
import importlib
import logging
import signal
import sys
import threading
from typing import TYPE_CHECKING, Any

from . import redmine_utils
from .exceptions import MigrationError
from .mapping import ImportOption, parse_mapping_patterns
from .memory import InMemoryTarget
from .models import TargetProject
from .orchestrator import IssueImporter
from .utils import setup_logging

if TYPE_CHECKING:
    from collections.abc import Sequence

    from .models import ImportResult
    from .protocols import TargetSystem


def parse_arguments(argv: Sequence[str] | None = None) -> argparse.Namespace:
    """Parse command line arguments."""
    parser = argparse.ArgumentParser(description="Import issues, versions and categories from a Redmine project")

    # Positional arguments
    _ = parser.add_argument("redmine_url", help="Redmine base URL (e.g. https://redmine.example.com)")
    _ = parser.add_argument("redmine_project", help='Redmine project identifier (or "Display Name:identifier")')
    _ = parser.add_argument("target_project", help="Name of the project receiving the issues")

    # Mapping overrides
    _ = parser.add_argument(
        "--status",
        "-s",
        action="append",
        help='Status mapping (format: "Redmine status:state"). Can be specified multiple times.',
    )
    _ = parser.add_argument(
        "--tracker",
        "-t",
        action="append",
        help='Tracker mapping (format: "Redmine tracker:Field::Value"). Can be specified multiple times.',
    )
    _ = parser.add_argument(
        "--priority",
        "-p",
        action="append",
        help='Priority mapping (format: "Redmine priority:Field::Value"). Can be specified multiple times.',
    )
    _ = parser.add_argument("--assignees-field", default="Assignees", help="Issue field receiving assignees")
    _ = parser.add_argument("--category-field", default="Category", help="Issue field receiving categories")

    _ = parser.add_argument(
        "--preserve-numbers", action="store_true", help="Keep Redmine issue ids as issue numbers"
    )
    _ = parser.add_argument(
        "--commit", action="store_true", help="Persist the imported data (default is a dry run)"
    )
    _ = parser.add_argument(
        "--target", help='Target system factory (format: "package.module:callable"), required with --commit'
    )
    _ = parser.add_argument(
        "--redmine-pass-key", help="Path for Redmine API key in pass utility (default: redmine/api_key)"
    )

    _ = parser.add_argument("--verbose", "-v", action="store_true", help="Enable verbose logging")

    return parser.parse_args(argv)


def load_target(factory_path: str | None) -> TargetSystem:
    """Instantiate the target system named by "module:callable", or an in-memory one."""
    if not factory_path:
        return InMemoryTarget()
    if ":" not in factory_path:
        msg = f"Invalid target factory: {factory_path}"
        raise ValueError(msg)
    module_name, factory_name = factory_path.split(":", 1)
    factory: Any = getattr(importlib.import_module(module_name), factory_name)
    return factory()


def _print_import_report(result: ImportResult, *, dry_run: bool) -> None:
    """Print the import result for operator review."""
    print("=" * 60)
    print(f"Redmine import {'(dry run) ' if dry_run else ''}report")
    print("=" * 60)
    if result.cancelled:
        print("Status: CANCELLED")
    else:
        print(f"Status: {'IMPORTED' if result.issues_imported else 'NOTHING IMPORTED'}")
    print(f"Issues: {len(result.issues)}, new milestones: {result.milestones_created}")

    sections = [
        ("Unresolved logins", result.unresolved_logins),
        ("Unresolved milestones", result.unresolved_milestones),
        ("Unmapped trackers", result.unmapped_trackers),
        ("Unmapped priorities", result.unmapped_priorities),
    ]
    for title, values in sections:
        if values:
            print(f"\n{title}:")
            for value in sorted(values):
                print(f"  - {value}")

    if result.notes:
        print("\nNotes:")
        for note in result.notes:
            print(f"  - {note}")


def main(argv: Sequence[str] | None = None) -> None:
    """Main entry point."""
    args = parse_arguments(argv)
    setup_logging(verbose=args.verbose)
    logger = logging.getLogger(__name__)

    if args.commit and not args.target:
        logger.error("--commit requires --target, the in-memory target cannot persist anything")
        sys.exit(2)

    cancel = threading.Event()
    _ = signal.signal(signal.SIGINT, lambda _signum, _frame: cancel.set())

    try:
        option = ImportOption(
            assignees_field=args.assignees_field,
            category_field=args.category_field,
            preserve_numbers=args.preserve_numbers,
            dry_run=not args.commit,
        )
        api_key = redmine_utils.get_api_key(args.redmine_pass_key)
        server = redmine_utils.get_server(args.redmine_url, api_key)
        target = load_target(args.target)

        importer = IssueImporter(
            server, target, TargetProject(name=args.target_project), args.redmine_project, cancel=cancel
        )
        _ = importer.build_import_option(
            option,
            status_overrides=parse_mapping_patterns(args.status),
            tracker_overrides=parse_mapping_patterns(args.tracker),
            priority_overrides=parse_mapping_patterns(args.priority),
        )
        result = importer.run()
        _print_import_report(result, dry_run=option.dry_run)

    except (MigrationError, ValueError, ImportError):
        logger.exception("Import failed")
        sys.exit(1)

    sys.exit(130 if result.cancelled else 0)
