"""doctype command line: ``check``, ``fix``, ``init`` and ``prune``."""

import argparse
import logging
import sys
from typing import Optional, Sequence

from dotenv import load_dotenv
from pydantic import ValidationError

from doctype.commands import load_context, run_check, run_fix, run_init, run_prune
from doctype.config import DEFAULT_CONFIG_FILE, Settings, get_settings
from doctype.exceptions import ConfigurationError
from doctype.logging_config import setup_logging
from doctype.map_store import DEFAULT_MAP_FILE
from doctype.models import DriftReport, FixResult

logger = logging.getLogger("doctype.cli")

EXIT_OK = 0
EXIT_FAILURE = 1


def build_parser() -> argparse.ArgumentParser:
    common = argparse.ArgumentParser(add_help=False)
    common.add_argument("--verbose", "-v", action="store_true", help="Enable debug logging")
    common.add_argument(
        "--config",
        default=None,
        help=f"Path to the project config (default: ./{DEFAULT_CONFIG_FILE})",
    )
    common.add_argument("--map", default=None, help="Override the anchor map path")

    parser = argparse.ArgumentParser(
        prog="doctype",
        description="Keep markdown documentation in sync with code signatures",
    )
    sub = parser.add_subparsers(dest="command", required=True)

    sub.add_parser("check", parents=[common], help="Report documentation drift")

    fix = sub.add_parser("fix", parents=[common], help="Regenerate drifted documentation")
    fix.add_argument("--dry-run", action="store_true", help="Show what would change without writing")
    fix.add_argument("--no-ai", action="store_true", help="Use placeholder content instead of the writer model")
    fix.add_argument("--auto-commit", action="store_true", help="Commit updated docs and map with git")
    fix.add_argument("--push", action="store_true", help="Push after auto-commit")
    fix.add_argument("--concurrency", type=int, default=None, help="Parallel workers (default: DOCTYPE_CONCURRENCY or 5)")

    init = sub.add_parser("init", parents=[common], help="Create config and map from existing anchors")
    init.add_argument("--project-name", default="", help="Project name (default: current directory name)")
    init.add_argument("--project-root", default=".", help="Root that code refs are relative to")
    init.add_argument("--docs-folder", default="docs", help="Folder scanned for markdown anchors")
    init.add_argument("--map-file", default=DEFAULT_MAP_FILE, help="Map file name")
    init.add_argument("--force", action="store_true", help="Overwrite an existing config and map")

    prune = sub.add_parser("prune", parents=[common], help="Remove map entries for deleted symbols or anchors")
    prune.add_argument("--dry-run", action="store_true", help="List entries without removing them")

    return parser


# ---------------------------------------------------------------------------
# Output
# ---------------------------------------------------------------------------

def _print_report(report: DriftReport) -> None:
    for drift in report.drifts:
        entry = drift.entry
        print(f"[Drift] {entry.code_ref} -> {entry.doc_file_path}")
        print(f"        {drift.old_hash[:12]} -> {drift.current_hash[:12]}")
    for missing in report.missing:
        print(f"[Missing] {missing.entry.code_ref} ({missing.reason.value})")
    for error in report.errors:
        print(f"[Error] {error}")


def _print_fix_result(result: FixResult, dry_run: bool) -> None:
    for fix in result.fixes:
        if fix.success:
            tag = "[Dry run]" if dry_run else "[Fixed]"
            note = " (placeholder)" if fix.placeholder else ""
            print(f"{tag} {fix.symbol_name} in {fix.doc_file_path}{note}")
        else:
            print(f"[Failed] {fix.symbol_name} in {fix.doc_file_path}: {fix.error}")
    print()
    print(f"Total: {result.total_fixes}  Succeeded: {result.successful_fixes}  Failed: {result.failed_fixes}")
    if result.commit is not None:
        if result.commit.success:
            print(f"[Git] Committed: {result.commit.output}")
        else:
            print(f"[Git] Auto-commit failed: {result.commit.error}")


# ---------------------------------------------------------------------------
# Commands
# ---------------------------------------------------------------------------

def _cmd_check(args: argparse.Namespace, settings: Settings) -> int:
    ctx = load_context(args.config, args.map)
    report = run_check(ctx)
    _print_report(report)
    if report.has_drift:
        print(f"\n{len(report.drifts)} symbol(s) drifted. Run 'doctype fix' to update the documentation.")
        return EXIT_FAILURE
    print("\nDocumentation is in sync.")
    return EXIT_OK


def _cmd_fix(args: argparse.Namespace, settings: Settings) -> int:
    if args.concurrency is not None and args.concurrency < 1:
        print("[Error] --concurrency must be at least 1")
        return EXIT_FAILURE

    ctx = load_context(args.config, args.map)
    run = run_fix(
        ctx,
        settings,
        dry_run=args.dry_run,
        no_ai=args.no_ai,
        auto_commit=args.auto_commit,
        push=args.push,
        concurrency=args.concurrency,
    )
    for missing in run.report.missing:
        print(f"[Missing] {missing.entry.code_ref} ({missing.reason.value})")
    if not run.report.drifts:
        print("No drift detected.")
        return EXIT_OK

    _print_fix_result(run.result, args.dry_run)
    return EXIT_OK if run.result.success else EXIT_FAILURE


def _cmd_init(args: argparse.Namespace, settings: Settings) -> int:
    result = run_init(
        project_name=args.project_name,
        project_root=args.project_root,
        docs_folder=args.docs_folder,
        map_file=args.map_file,
        config_path=args.config,
        force=args.force,
    )
    for error in result.errors:
        print(f"[Warning] {error}")
    print(f"[Init] Wrote {result.config_path}")
    print(f"[Init] Wrote {result.map_path} ({len(result.registered)} tracked symbol(s))")
    return EXIT_OK


def _cmd_prune(args: argparse.Namespace, settings: Settings) -> int:
    ctx = load_context(args.config, args.map)
    result = run_prune(ctx, dry_run=args.dry_run)
    verb = "Would remove" if args.dry_run else "Removed"
    for item in result.pruned:
        print(f"[Prune] {verb} {item.entry.code_ref} ({item.reason})")
    for error in result.errors:
        print(f"[Error] {error}")
    count = len(result.pruned)
    print(f"\n{verb} {count} entr{'y' if count == 1 else 'ies'}.")
    return EXIT_FAILURE if result.errors else EXIT_OK


_COMMANDS = {
    "check": _cmd_check,
    "fix": _cmd_fix,
    "init": _cmd_init,
    "prune": _cmd_prune,
}


def main(argv: Optional[Sequence[str]] = None) -> int:
    args = build_parser().parse_args(argv)
    load_dotenv()

    try:
        settings = get_settings()
    except ValidationError as e:
        print(f"[Error] Invalid environment settings: {e}")
        return EXIT_FAILURE

    setup_logging("DEBUG" if args.verbose else settings.log_level, settings.log_format)

    try:
        return _COMMANDS[args.command](args, settings)
    except ConfigurationError as e:
        logger.debug("Configuration error", extra={"error_code": e.error_code.value, "details": e.details})
        print(f"[Error] {e.message}")
        return EXIT_FAILURE


if __name__ == "__main__":
    sys.exit(main())
