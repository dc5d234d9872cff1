"""Directory walking and size bucketing."""

import logging
import os
import threading
from pathlib import Path
from typing import Callable, Iterator, List, Optional, Tuple, Union

from .errors import InvalidPathError, ScanCancelled
from .models import FileRecord, ProgressEvent, ScanStage, SizeBuckets

logger = logging.getLogger(__name__)

# Emit a "files found" progress event every N files
PROGRESS_INTERVAL = 100


def validate_root(root: Union[str, Path]) -> Path:
    """
    Check that root is an existing, readable directory.

    Returns:
        The resolved absolute root path

    Raises:
        InvalidPathError: If root does not exist, is not a directory or
            cannot be read
    """
    path = Path(root).expanduser()
    if not path.exists():
        raise InvalidPathError(f"Path does not exist: {path}")
    if not path.is_dir():
        raise InvalidPathError(f"Path is not a directory: {path}")
    if not os.access(path, os.R_OK | os.X_OK):
        raise InvalidPathError(f"Cannot read directory: {path}")
    return path.resolve()


class SizeBucketScanner:
    """Walks a directory tree and groups regular files by byte size."""

    def __init__(
        self,
        progress_callback: Optional[Callable[[ProgressEvent], None]] = None,
        should_stop: Optional[Callable[[], bool]] = None,
    ):
        """
        Initialize scanner.

        Args:
            progress_callback: Optional callback receiving ProgressEvents
            should_stop: Optional callback that returns True if the scan
                should stop (polled between entries)
        """
        self.progress_callback = progress_callback
        self.should_stop = should_stop
        self.errors: List[str] = []
        self._lock = threading.Lock()

    def scan(self, root: Union[str, Path]) -> Tuple[SizeBuckets, List[FileRecord]]:
        """
        Recursively find all regular, readable files below root.

        Args:
            root: Directory to scan

        Returns:
            Tuple of (buckets, all_files) where buckets maps byte size to the
            files of that size and all_files lists every file in discovery
            order

        Raises:
            InvalidPathError: If root is not a readable directory
            ScanCancelled: If should_stop() returned True during the walk
        """
        root_path = validate_root(root)
        buckets: SizeBuckets = {}
        all_files: List[FileRecord] = []

        for entry in self._iter_files(root_path):
            record = self._stat_entry(entry)
            if record is None:
                continue

            buckets.setdefault(record.size, []).append(record)
            all_files.append(record)

            if len(all_files) % PROGRESS_INTERVAL == 0:
                self._emit(
                    ProgressEvent(
                        ScanStage.SCANNING,
                        f"Found {len(all_files)} files...",
                        current=len(all_files),
                    )
                )

        self._emit(
            ProgressEvent(
                ScanStage.SCANNING,
                f"Found {len(all_files)} files. Analyzing for duplicates...",
                current=len(all_files),
                total=len(all_files),
                final=True,
            )
        )
        logger.info(
            "Scanned %s: %d files in %d size buckets",
            root_path,
            len(all_files),
            len(buckets),
        )
        return buckets, all_files

    def _iter_files(self, root: Path) -> Iterator[os.DirEntry]:
        """Depth-first walk yielding file entries; symlinks are not followed."""
        stack = [root]
        while stack:
            self._check_stop()
            current = stack.pop()

            try:
                with os.scandir(current) as it:
                    entries = list(it)
            except OSError as e:
                self._log_error(f"Cannot read directory {current}: {e}")
                continue

            # Sort for stable traversal order
            entries.sort(key=lambda e: e.name)

            dirs = []
            for entry in entries:
                try:
                    if entry.is_dir(follow_symlinks=False):
                        dirs.append(Path(entry.path))
                    elif entry.is_file(follow_symlinks=False):
                        yield entry
                except OSError as e:
                    self._log_error(f"Error checking file {entry.path}: {e}")

            # Reversed so subdirectories are visited in name order
            stack.extend(reversed(dirs))

    def _stat_entry(self, entry: os.DirEntry) -> Optional[FileRecord]:
        """Build a FileRecord from one stat call; None if inaccessible."""
        self._check_stop()
        try:
            if not os.access(entry.path, os.R_OK):
                self._log_error(f"File is not readable: {entry.path}")
                return None
            size = entry.stat(follow_symlinks=False).st_size
        except OSError as e:
            self._log_error(f"Error reading file size {entry.path}: {e}")
            return None
        return FileRecord(path=entry.path, size=size)

    def _check_stop(self) -> None:
        if self.should_stop is not None and self.should_stop():
            raise ScanCancelled("Scan cancelled while walking directories")

    def _emit(self, event: ProgressEvent) -> None:
        if self.progress_callback is not None:
            self.progress_callback(event)

    def _log_error(self, message: str) -> None:
        """Log a non-fatal per-file error and keep it for the audit trail."""
        logger.warning(message)
        with self._lock:
            self.errors.append(message)
