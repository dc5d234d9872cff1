"""Operations on scan results: deletion, selection and file display helpers."""

import logging
import platform
import subprocess
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, Iterable, List, Union

from .errors import DeleteError
from .models import DeleteOutcome, ScanResult

logger = logging.getLogger(__name__)


@dataclass
class DeleteReport:
    """Aggregated per-file outcomes of one deletion batch."""

    outcomes: Dict[str, DeleteOutcome] = field(default_factory=dict)
    messages: Dict[str, str] = field(default_factory=dict)

    @property
    def deleted(self) -> List[str]:
        return [p for p, o in self.outcomes.items() if o is DeleteOutcome.DELETED]

    @property
    def failed(self) -> List[str]:
        return [p for p, o in self.outcomes.items() if o is not DeleteOutcome.DELETED]

    @property
    def errors(self) -> List[DeleteError]:
        return [
            DeleteError(path, self.outcomes[path], self.messages.get(path, ""))
            for path in self.failed
        ]

    def summary(self) -> str:
        """Human-readable summary, one line per failed file."""
        lines = [f"Deleted {len(self.deleted)} files successfully."]
        if self.failed:
            lines.append("")
            lines.append("Errors:")
            for path in self.failed:
                outcome = self.outcomes[path]
                if outcome is DeleteOutcome.NOT_FOUND:
                    lines.append(f"File not found: {path}")
                elif outcome is DeleteOutcome.PERMISSION_DENIED:
                    lines.append(f"Permission denied: {path}")
                else:
                    detail = self.messages.get(path)
                    if detail:
                        lines.append(f"Error deleting {path}: {detail}")
                    else:
                        lines.append(f"Error deleting {path}")
        return "\n".join(lines)


class DuplicateManager:
    """Manages duplicate file operations like deletion."""

    @staticmethod
    def default_selection(result: ScanResult) -> List[str]:
        """
        Paths selected for deletion by default.

        Every group member except the first, which is always kept.
        """
        selected: List[str] = []
        for group in result.groups:
            selected.extend(record.path for record in group.redundant)
        return selected

    @staticmethod
    def delete_files(paths: Iterable[Union[str, Path]]) -> Dict[str, DeleteOutcome]:
        """
        Delete each path independently.

        A failure on one file never stops the remaining deletions.

        Args:
            paths: Files to delete

        Returns:
            Dict mapping each path to its outcome
        """
        return DuplicateManager.delete_selected(paths).outcomes

    @staticmethod
    def delete_selected(paths: Iterable[Union[str, Path]]) -> DeleteReport:
        """Delete each path independently and collect a DeleteReport."""
        report = DeleteReport()
        for path in paths:
            key = str(path)
            try:
                Path(key).unlink()
            except FileNotFoundError as e:
                report.outcomes[key] = DeleteOutcome.NOT_FOUND
                report.messages[key] = str(e)
            except PermissionError as e:
                report.outcomes[key] = DeleteOutcome.PERMISSION_DENIED
                report.messages[key] = str(e)
            except OSError as e:
                report.outcomes[key] = DeleteOutcome.OTHER_ERROR
                report.messages[key] = str(e)
            else:
                report.outcomes[key] = DeleteOutcome.DELETED
                logger.info("Deleted %s", key)
                continue
            logger.warning("Failed to delete %s: %s", key, report.messages[key])
        return report

    @staticmethod
    def open_containing_folder(file_path: Union[str, Path]) -> bool:
        """
        Reveal a file in the platform file manager.

        Returns:
            True if the file manager was launched, False if the path no
            longer exists or the launcher failed
        """
        path = Path(file_path)
        if not path.exists():
            logger.warning("Cannot open location, path no longer exists: %s", path)
            return False

        system = platform.system()
        if system == "Windows":
            cmd = ["explorer", f"/select,{path.absolute()}"]
        elif system == "Darwin":
            cmd = ["open", "-R", str(path.absolute())]
        else:
            cmd = ["xdg-open", str(path.absolute().parent)]

        try:
            subprocess.Popen(
                cmd, stdout=subprocess.DEVNULL, stderr=subprocess.DEVNULL
            )
        except OSError as e:
            logger.warning("Could not open file location %s: %s", path, e)
            return False
        return True

    @staticmethod
    def format_file_size(size_bytes: Union[int, float]) -> str:
        """Format file size in human-readable format."""
        if size_bytes < 0:
            return "Unknown size"
        size_float = float(size_bytes)
        for unit in ["B", "KB", "MB", "GB"]:
            if size_float < 1024.0:
                return f"{size_float:.1f} {unit}"
            size_float /= 1024.0
        return f"{size_float:.1f} TB"

