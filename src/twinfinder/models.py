"""Data model shared by the scanner, finder and engine."""

from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from types import MappingProxyType
from typing import Dict, List, Mapping, Optional, Tuple


class GroupKind(Enum):
    """How the members of a duplicate group were matched."""

    EXACT = "exact"  # identical SHA-256 content hash
    VISUAL = "visual"  # dHash within the similarity threshold


class ScanStage(Enum):
    """Pipeline stage that produced a progress event."""

    SCANNING = "scanning"
    HASHING = "hashing"
    VISUAL = "visual"
    DONE = "done"
    FAILED = "failed"
    CANCELLED = "cancelled"

    @property
    def is_terminal(self) -> bool:
        return self in (ScanStage.DONE, ScanStage.FAILED, ScanStage.CANCELLED)


class DeleteOutcome(Enum):
    """Result of deleting a single file."""

    DELETED = "deleted"
    NOT_FOUND = "not_found"
    PERMISSION_DENIED = "permission_denied"
    OTHER_ERROR = "other_error"


@dataclass(frozen=True)
class FileRecord:
    """A scanned file and the hashes computed for it."""

    path: str  # Absolute path
    size: int  # Size in bytes
    content_hash: Optional[str] = None  # SHA-256 hex, once computed
    perceptual_hash: Optional[str] = None  # dHash hex, images only

    @property
    def name(self) -> str:
        return Path(self.path).name

    @property
    def is_hashed(self) -> bool:
        return self.content_hash is not None


# Size in bytes -> files of exactly that size, in discovery order
SizeBuckets = Dict[int, List[FileRecord]]


@dataclass(frozen=True)
class DuplicateGroup:
    """
    A set of duplicate files.

    For exact groups ``key`` is the shared content hash; for visual groups it
    is the representative perceptual hash every member was compared against.
    The first file is the protected keeper.
    """

    key: str
    kind: GroupKind
    files: Tuple[FileRecord, ...]

    @property
    def keeper(self) -> FileRecord:
        return self.files[0]

    @property
    def redundant(self) -> Tuple[FileRecord, ...]:
        return self.files[1:]

    @property
    def paths(self) -> List[str]:
        return [record.path for record in self.files]

    def __len__(self) -> int:
        return len(self.files)


@dataclass(frozen=True)
class ProgressEvent:
    """Progress notification emitted while a scan runs."""

    stage: ScanStage
    message: str
    current: int = 0
    total: int = 0
    final: bool = False  # Last event of its stage, never coalesced away

    @property
    def percentage(self) -> Optional[float]:
        if self.total <= 0:
            return None
        return (self.current / self.total) * 100


@dataclass(frozen=True)
class ScanResult:
    """Immutable snapshot published once a scan completes."""

    root: str
    exact_groups: Mapping[str, DuplicateGroup]
    visual_groups: Mapping[str, DuplicateGroup]
    all_files: Tuple[FileRecord, ...]
    hashes_by_path: Mapping[str, str]
    perceptual_hashes_by_path: Mapping[str, str]
    errors: Tuple[str, ...] = ()
    duration: float = 0.0

    @property
    def groups(self) -> List[DuplicateGroup]:
        """All groups, exact first."""
        return list(self.exact_groups.values()) + list(self.visual_groups.values())

    @property
    def has_duplicates(self) -> bool:
        return bool(self.exact_groups) or bool(self.visual_groups)

    @property
    def duplicate_paths(self) -> List[str]:
        """Paths of every file that is a member of any group."""
        return [path for group in self.groups for path in group.paths]

    @property
    def redundant_count(self) -> int:
        return sum(len(group) - 1 for group in self.groups)


@dataclass
class ScanSession:
    """
    Mutable state of one scan, owned by the engine while the scan runs.

    A new session is created for every scan; nothing is carried over.
    """

    root: Path
    all_files: List[FileRecord] = field(default_factory=list)
    buckets: SizeBuckets = field(default_factory=dict)
    hashes_by_path: Dict[str, str] = field(default_factory=dict)
    perceptual_hashes_by_path: Dict[str, str] = field(default_factory=dict)
    exact_members: Dict[str, List[FileRecord]] = field(default_factory=dict)
    visual_members: Dict[str, List[FileRecord]] = field(default_factory=dict)
    errors: List[str] = field(default_factory=list)

    def to_result(self, duration: float = 0.0) -> ScanResult:
        """Freeze the session into a ScanResult with hashes filled in."""
        final: Dict[str, FileRecord] = {}
        for record in self.all_files:
            final[record.path] = FileRecord(
                path=record.path,
                size=record.size,
                content_hash=self.hashes_by_path.get(record.path),
                perceptual_hash=self.perceptual_hashes_by_path.get(record.path),
            )

        def freeze(
            members: Dict[str, List[FileRecord]], kind: GroupKind
        ) -> Mapping[str, DuplicateGroup]:
            return MappingProxyType(
                {
                    key: DuplicateGroup(
                        key=key,
                        kind=kind,
                        files=tuple(final[record.path] for record in files),
                    )
                    for key, files in members.items()
                }
            )

        return ScanResult(
            root=str(self.root),
            exact_groups=freeze(self.exact_members, GroupKind.EXACT),
            visual_groups=freeze(self.visual_members, GroupKind.VISUAL),
            all_files=tuple(final.values()),
            hashes_by_path=MappingProxyType(dict(self.hashes_by_path)),
            perceptual_hashes_by_path=MappingProxyType(
                dict(self.perceptual_hashes_by_path)
            ),
            errors=tuple(self.errors),
            duration=duration,
        )
