"""CLI interface for twinfinder."""

import argparse
import csv
import json
import logging
import sys
from pathlib import Path
from typing import Any, Dict, List, Optional, Sequence

from colorama import Fore, Style, init

try:
    from shtab import DIRECTORY, FILE
except ImportError:
    # shtab not installed - tab completion won't work but that's okay
    DIRECTORY = FILE = None  # type: ignore

from . import __version__
from .config import OUTPUT_FORMATS, Settings
from .engine import ScanEngine
from .errors import (
    ConfigError,
    InvalidPathError,
    ScanCancelled,
    ScanInProgressError,
)
from .manager import DuplicateManager
from .models import DuplicateGroup, FileRecord, GroupKind, ProgressEvent, ScanResult
from .report import export_audit_log, render_audit_log

# Initialize colorama for cross-platform color support
init(autoreset=True)

GROUP_TITLES = {
    GroupKind.EXACT: "Exact Duplicates (Same Content):",
    GroupKind.VISUAL: "Visual Duplicates (Similar Images):",
}

GROUP_COLORS = {
    GroupKind.EXACT: Fore.BLUE,
    GroupKind.VISUAL: Fore.GREEN,
}


def _numbered_groups(result: ScanResult) -> List[tuple]:
    """(group number, group) pairs, exact groups first, numbered continuously."""
    return list(enumerate(result.groups, 1))


def _file_entry(record: FileRecord, is_keeper: bool) -> Dict[str, Any]:
    return {
        "path": record.path,
        "size": DuplicateManager.format_file_size(record.size),
        "size_bytes": record.size,
        "content_hash": record.content_hash,
        "perceptual_hash": record.perceptual_hash,
        "is_keeper": is_keeper,
    }


def _group_entry(group_id: int, group: DuplicateGroup) -> Dict[str, Any]:
    return {
        "group_id": group_id,
        "kind": group.kind.value,
        "hash": group.key,
        "files": [
            _file_entry(record, idx == 0) for idx, record in enumerate(group.files)
        ],
    }


def format_output_text(result: ScanResult) -> None:
    """Format and print duplicate groups in text format."""
    if not result.has_duplicates:
        print("No duplicate files found.")
        return

    print(
        f"{Fore.CYAN}{Style.BRIGHT}Found {len(result.groups)} group(s) "
        f"of duplicate files:{Style.RESET_ALL}\n"
    )

    current_kind = None
    for idx, group in _numbered_groups(result):
        if group.kind is not current_kind:
            current_kind = group.kind
            print(
                f"{GROUP_COLORS[group.kind]}{Style.BRIGHT}"
                f"{GROUP_TITLES[group.kind]}{Style.RESET_ALL}"
            )

        kind_name = group.kind.value.capitalize()
        size = DuplicateManager.format_file_size(group.keeper.size)
        print(
            f"{Fore.CYAN}{Style.BRIGHT}{kind_name} Group {idx}{Style.RESET_ALL} "
            f"({len(group)} files, {size}) "
            f"{Style.DIM}(Hash: {group.key[:16]}...){Style.RESET_ALL}"
        )

        print(
            f"  {Fore.LIGHTGREEN_EX}{Style.BRIGHT}[Keep]{Style.RESET_ALL} "
            f"{group.keeper.path}"
        )
        redundant = group.redundant
        for pos, record in enumerate(redundant):
            # Use └─ for last item, ├─ for others
            tree_char = "└─" if pos == len(redundant) - 1 else "├─"
            size_info = ""
            if group.kind is GroupKind.VISUAL:
                size_info = (
                    f" {Style.DIM}"
                    f"({DuplicateManager.format_file_size(record.size)})"
                    f"{Style.RESET_ALL}"
                )
            print(f"    {tree_char} {record.path}{size_info}")
        print()

    print(
        f"{len(result.all_files)} file(s) scanned, "
        f"{result.redundant_count} redundant file(s)"
    )


def format_output_json(result: ScanResult) -> None:
    """Format and print the scan result in JSON format."""
    numbered = _numbered_groups(result)
    output = {
        "root": result.root,
        "exact": [
            _group_entry(idx, g) for idx, g in numbered if g.kind is GroupKind.EXACT
        ],
        "visual": [
            _group_entry(idx, g) for idx, g in numbered if g.kind is GroupKind.VISUAL
        ],
        "files": [
            {
                "path": record.path,
                "size_bytes": record.size,
                "content_hash": record.content_hash,
                "perceptual_hash": record.perceptual_hash,
            }
            for record in result.all_files
        ],
        "errors": list(result.errors),
    }
    print(json.dumps(output, indent=2))


def format_output_csv(result: ScanResult) -> None:
    """Format and print duplicate groups in CSV format, one row per file."""
    writer = csv.writer(sys.stdout, lineterminator="\n")
    writer.writerow(
        [
            "group_id",
            "kind",
            "hash",
            "file_path",
            "file_size",
            "file_size_bytes",
            "content_hash",
            "perceptual_hash",
            "is_keeper",
        ]
    )
    for idx, group in _numbered_groups(result):
        for pos, record in enumerate(group.files):
            writer.writerow(
                [
                    idx,
                    group.kind.value,
                    group.key,
                    record.path,
                    DuplicateManager.format_file_size(record.size),
                    record.size,
                    record.content_hash or "",
                    record.perceptual_hash or "",
                    "true" if pos == 0 else "false",
                ]
            )


def print_progress(event: ProgressEvent) -> None:
    """Render one progress event, overwriting the current line."""
    if event.stage.is_terminal:
        return
    end = "\n" if event.final else ""
    suffix = f"{Fore.GREEN}done" if event.final else ""
    print(
        f"\r{Fore.CYAN}{event.message}{suffix}{Style.RESET_ALL}",
        end=end,
        flush=True,
    )


def get_parser() -> argparse.ArgumentParser:
    """
    Get the argument parser for twinfinder.

    This function is used by tab completion tools (e.g., shtab) to generate
    completion scripts.

    Returns:
        ArgumentParser configured with all twinfinder options
    """
    parser = argparse.ArgumentParser(
        prog="twinfinder",
        description="Find exact and visually similar duplicate files in a directory.",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  %(prog)s ~/Pictures
  %(prog)s ~/Pictures --output json
  %(prog)s ~/Downloads --export-log
  %(prog)s ~/Pictures --delete-duplicates
  %(prog)s --open ~/Pictures/photo.jpg
        """,
    )

    root_arg = parser.add_argument(
        "root",
        nargs="?",
        type=Path,
        help="Directory to search for duplicate files",
    )
    # Enable directory completion for tab completion (shtab)
    if DIRECTORY is not None:
        root_arg.complete = DIRECTORY  # type: ignore

    parser.add_argument(
        "-o",
        "--output",
        choices=list(OUTPUT_FORMATS),
        default=None,
        help="Output format (default: text, or output.format from the config)",
    )

    parser.add_argument(
        "-w",
        "--workers",
        type=int,
        default=None,
        metavar="N",
        help="Number of worker threads for parallel hashing "
        "(default: 8, use 1 for sequential)",
    )

    parser.add_argument(
        "--no-progress",
        action="store_true",
        help="Disable progress output (progress shown by default)",
    )

    log_arg = parser.add_argument(
        "--log-file",
        type=Path,
        metavar="PATH",
        help="Write the audit log of all scanned files to PATH",
    )
    if FILE is not None:
        log_arg.complete = FILE  # type: ignore

    parser.add_argument(
        "--export-log",
        action="store_true",
        help="Write the audit log to a timestamped file in the log directory",
    )

    parser.add_argument(
        "--delete-duplicates",
        action="store_true",
        help="Delete every duplicate except the first file of each group",
    )

    parser.add_argument(
        "-y",
        "--yes",
        action="store_true",
        help="Do not ask for confirmation before deleting",
    )

    open_arg = parser.add_argument(
        "--open",
        type=Path,
        metavar="PATH",
        help="Open the folder containing PATH in the file manager and exit",
    )
    if FILE is not None:
        open_arg.complete = FILE  # type: ignore

    parser.add_argument(
        "--config",
        type=Path,
        metavar="PATH",
        help="Configuration file (default: ~/.config/twinfinder/twinfinder.toml)",
    )

    parser.add_argument(
        "-v",
        "--verbose",
        action="store_true",
        help="Log per-file details",
    )

    parser.add_argument(
        "--version",
        action="version",
        version=f"%(prog)s {__version__}",
    )

    return parser


def parse_args(argv: Optional[Sequence[str]] = None) -> argparse.Namespace:
    """Parse command line arguments."""
    parser = get_parser()
    return parser.parse_args(argv)


def main(argv: Optional[Sequence[str]] = None) -> int:
    """Main entry point for CLI."""
    args = parse_args(argv)

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.WARNING,
        format="%(levelname)s: %(message)s",
    )

    # Handle --open option
    if args.open is not None:
        if DuplicateManager.open_containing_folder(args.open):
            return 0
        print(f"Could not open file location: {args.open}", file=sys.stderr)
        return 1

    # Require root unless --open
    if args.root is None:
        print("Error: the following arguments are required: root", file=sys.stderr)
        return 1

    try:
        settings = Settings.load(args.config)
    except ConfigError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1

    workers = args.workers if args.workers is not None else settings.workers
    if workers < 1:
        print("Error: --workers must be at least 1", file=sys.stderr)
        return 1
    output = args.output or settings.output_format

    return run_scan(args, settings, workers, output)


def run_scan(
    args: argparse.Namespace, settings: Settings, workers: int, output: str
) -> int:
    """Scan args.root, print the result and handle log export and deletion."""
    show_progress = not args.no_progress and output == "text"
    engine = ScanEngine(max_workers=workers)

    try:
        handle = engine.start_scan(args.root)
    except InvalidPathError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1

    try:
        for event in handle.events():
            if show_progress:
                print_progress(event)
        result = handle.result()
    except KeyboardInterrupt:
        handle.cancel()
        handle.wait()
        print("\nOperation cancelled by user.", file=sys.stderr)
        return 130
    except ScanCancelled:
        print("\nScan cancelled.", file=sys.stderr)
        return 130
    except Exception as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1

    if show_progress and result.errors:
        print(
            f"{Fore.YELLOW}Encountered {len(result.errors)} error(s) "
            f"during processing{Style.RESET_ALL}"
        )

    # Format and output results
    if output == "json":
        format_output_json(result)
    elif output == "csv":
        format_output_csv(result)
    else:
        format_output_text(result)

    selection = DuplicateManager.default_selection(result)

    if args.log_file is not None or args.export_log:
        log_text = render_audit_log(result, selection)
        try:
            if args.log_file is not None:
                log_path = export_audit_log(log_text, args.log_file)
            else:
                log_path = export_audit_log(
                    log_text, settings.log_directory, as_directory=True
                )
        except OSError as e:
            print(f"Error exporting log: {e}", file=sys.stderr)
            return 1
        print(f"Log exported successfully to: {log_path}", file=sys.stderr)

    if args.delete_duplicates:
        return run_delete(engine, selection, args.yes)

    # Exit with non-zero if duplicates found (for scripting)
    return 0 if not result.has_duplicates else 2


def run_delete(engine: ScanEngine, selection: List[str], assume_yes: bool) -> int:
    """Delete the selected files after confirmation."""
    if not selection:
        print("No duplicates to delete.")
        return 0

    if not assume_yes:
        try:
            choice = input(
                f"Are you sure you want to permanently delete {len(selection)} "
                "selected files? This action cannot be undone! [y/N]: "
            )
        except (KeyboardInterrupt, EOFError):
            print("\nDeletion cancelled by user.", file=sys.stderr)
            return 130
        if choice.strip().lower() not in ("y", "yes"):
            print("Deletion cancelled.")
            return 0

    try:
        report = engine.delete_selected(selection)
    except ScanInProgressError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1

    color = Fore.YELLOW if report.failed else Fore.GREEN
    print(f"{color}{report.summary()}{Style.RESET_ALL}")
    return 0 if not report.failed else 1


if __name__ == "__main__":
    sys.exit(main())
