"""Plain-text audit log of every scanned file."""

from datetime import datetime
from pathlib import Path
from typing import Iterable, List, Optional, Tuple, Union

from .manager import DuplicateManager
from .models import ScanResult

LOG_HEADER = """\
ALL FILES LOG
=============
Generated: {generated}

Format: [STATUS] FILENAME | HASH | DHASH | FULL_PATH
STATUS: [CHECKED] = Selected for deletion, [UNCHECKED] = Not selected, \
[UNIQUE] = No duplicates
HASH: SHA-256 file content hash
DHASH: Image perceptual hash (only for images)

"""

STATUS_CHECKED = "[CHECKED]  "
STATUS_UNCHECKED = "[UNCHECKED]"
STATUS_UNIQUE = "[UNIQUE]   "


def render_audit_log(
    result: Optional[ScanResult],
    selected: Optional[Iterable[str]] = None,
    now: Optional[datetime] = None,
) -> str:
    """
    Render the audit log for a scan result.

    Args:
        result: Scan result, or None if nothing has been scanned
        selected: Paths selected for deletion (default: every group member
            except the first)
        now: Timestamp for the header (default: current time)

    Returns:
        Log text
    """
    generated = (now or datetime.now()).isoformat()
    text = LOG_HEADER.format(generated=generated)

    if result is None or not result.all_files:
        return text + "No files scanned yet.\n"

    checked = set(
        selected if selected is not None else DuplicateManager.default_selection(result)
    )
    duplicates = set(result.duplicate_paths)

    entries: List[Tuple[str, str]] = []
    counts = {STATUS_CHECKED: 0, STATUS_UNCHECKED: 0, STATUS_UNIQUE: 0}
    for record in result.all_files:
        if record.path in checked:
            status = STATUS_CHECKED
        elif record.path in duplicates:
            status = STATUS_UNCHECKED
        else:
            status = STATUS_UNIQUE
        counts[status] += 1

        dhash = record.perceptual_hash or "N/A"
        line = (
            f"{status} {record.name} | {record.content_hash} | {dhash} | {record.path}"
        )
        entries.append((record.name.lower(), line))

    # Sort alphabetically by file name for easier reading
    entries.sort(key=lambda entry: entry[0])

    lines = [
        f"Total files: {len(entries)} (Checked: {counts[STATUS_CHECKED]}, "
        f"Unchecked: {counts[STATUS_UNCHECKED]}, Unique: {counts[STATUS_UNIQUE]})",
        "",
    ]
    for counter, (_, line) in enumerate(entries, 1):
        lines.append(f"{counter:4d}. {line}")

    return text + "\n".join(lines) + "\n"


def default_log_name(now: Optional[datetime] = None) -> str:
    """File name for an exported log, e.g. duplicate_files_log_2024-01-31T12-00-00.txt."""
    timestamp = (now or datetime.now()).strftime("%Y-%m-%dT%H-%M-%S")
    return f"duplicate_files_log_{timestamp}.txt"


def export_audit_log(
    text: str,
    destination: Union[str, Path, None] = None,
    now: Optional[datetime] = None,
    as_directory: bool = False,
) -> Path:
    """
    Write log text to a file.

    Args:
        text: Rendered log
        destination: Target file, or a directory to place a timestamped log
            in (default: current directory)
        now: Timestamp used for the generated file name
        as_directory: Treat destination as a directory even if it does
            not exist yet; it is created

    Returns:
        Path of the written file
    """
    target = Path(destination) if destination is not None else Path.cwd()
    if as_directory or target.is_dir():
        target.mkdir(parents=True, exist_ok=True)
        target = target / default_log_name(now)
    else:
        target.parent.mkdir(parents=True, exist_ok=True)
    target.write_text(text, encoding="utf-8")
    return target
