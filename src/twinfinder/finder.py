"""Core exact and visual duplicate finding logic."""

import logging
import threading
from collections import defaultdict
from concurrent.futures import Executor, ThreadPoolExecutor, as_completed
from contextlib import contextmanager
from typing import (
    Callable,
    Collection,
    Dict,
    Iterator,
    List,
    Optional,
    Sequence,
    Tuple,
)

from .errors import DecodeError, FileHashError, ScanCancelled
from .hasher import SIMILARITY_THRESHOLD, FileHasher
from .models import FileRecord, ProgressEvent, ScanStage, SizeBuckets

logger = logging.getLogger(__name__)


class DuplicateFinder:
    """Finds exact and visual duplicates among scanned files."""

    def __init__(
        self,
        max_workers: int = 8,
        similarity_threshold: int = SIMILARITY_THRESHOLD,
        progress_callback: Optional[Callable[[ProgressEvent], None]] = None,
        should_stop: Optional[Callable[[], bool]] = None,
    ):
        """
        Initialize duplicate finder.

        Args:
            max_workers: Maximum number of worker threads for parallel hashing
                (default: 8, use 1 for sequential)
            similarity_threshold: Maximum Hamming distance in bits for two
                images to be visual duplicates (default: 5)
            progress_callback: Optional callback receiving ProgressEvents
            should_stop: Optional callback that returns True if the scan
                should stop; checked before each file is hashed
        """
        self.max_workers = max_workers
        self.similarity_threshold = similarity_threshold
        self.progress_callback = progress_callback
        self.should_stop = should_stop
        self.errors: List[str] = []
        self._lock = threading.Lock()

    def group_exact(
        self, buckets: SizeBuckets, hashes: Dict[str, str]
    ) -> Dict[str, List[FileRecord]]:
        """
        Group files by identical content hash.

        Only buckets with more than one file can hold duplicates. Files in
        single-file buckets are still hashed so that every scanned file has a
        content hash.

        Args:
            buckets: Size buckets from the scanner
            hashes: Path -> content hash map, filled in for every file that
                could be hashed

        Returns:
            Dict mapping content hash to member files (at least 2 each),
            ordered by the path of the first member
        """
        singles = [files[0] for files in buckets.values() if len(files) == 1]
        multi = [files for files in buckets.values() if len(files) > 1]
        total_buckets = len(multi)
        duplicates: Dict[str, List[FileRecord]] = {}

        with self._executor() as executor:
            for record, file_hash in zip(
                singles, self._run_batch(self._hash_one, singles, executor)
            ):
                if file_hash is not None:
                    hashes[record.path] = file_hash
            self._check_stop()

            if total_buckets == 0:
                self._emit(
                    ProgressEvent(
                        ScanStage.HASHING,
                        "No files share a size, skipping content comparison",
                        final=True,
                    )
                )

            for processed, files in enumerate(multi, 1):
                results = self._run_batch(self._hash_one, files, executor)
                self._check_stop()

                hash_to_files: Dict[str, List[FileRecord]] = defaultdict(list)
                for record, file_hash in zip(files, results):
                    if file_hash is None:
                        continue
                    hashes[record.path] = file_hash
                    hash_to_files[file_hash].append(record)

                for file_hash, members in hash_to_files.items():
                    if len(members) > 1:
                        duplicates[file_hash] = members

                self._emit(
                    ProgressEvent(
                        ScanStage.HASHING,
                        f"Checking duplicates... ({processed}/{total_buckets} groups)",
                        current=processed,
                        total=total_buckets,
                        final=processed == total_buckets,
                    )
                )

        logger.info("Found %d exact duplicate group(s)", len(duplicates))
        return dict(sorted(duplicates.items(), key=lambda item: item[1][0].path))

    def group_visual(
        self,
        files: Sequence[FileRecord],
        exclude: Collection[str],
        perceptual_hashes: Dict[str, str],
    ) -> Dict[str, List[FileRecord]]:
        """
        Find visually similar images among files.

        Args:
            files: All scanned files
            exclude: Paths already claimed by exact duplicate groups
            perceptual_hashes: Path -> dHash map, filled in for every image
                that could be decoded

        Returns:
            Dict mapping representative dHash to member files (at least 2 each)
        """
        candidates = self.select_image_candidates(files, exclude)
        self._emit(
            ProgressEvent(
                ScanStage.VISUAL,
                f"Analyzing {len(candidates)} images for visual similarity...",
                total=len(candidates),
            )
        )

        hashed: List[Tuple[FileRecord, str]] = []
        with self._executor() as executor:
            results = self._run_batch(self._dhash_one, candidates, executor)
        self._check_stop()

        for record, dhash in zip(candidates, results):
            if dhash is None:
                continue
            perceptual_hashes[record.path] = dhash
            hashed.append((record, dhash))

        clusters = self.cluster_visual(hashed)
        self._emit(
            ProgressEvent(
                ScanStage.VISUAL,
                f"Found {len(clusters)} visual duplicate groups",
                current=len(clusters),
                total=len(clusters),
                final=True,
            )
        )
        logger.info("Found %d visual duplicate group(s)", len(clusters))
        return clusters

    @staticmethod
    def select_image_candidates(
        files: Sequence[FileRecord], exclude: Collection[str]
    ) -> List[FileRecord]:
        """Images not in exclude, sorted by path for reproducible clustering."""
        excluded = set(exclude)
        candidates = [
            record
            for record in files
            if FileHasher.is_image_file(record.path) and record.path not in excluded
        ]
        return sorted(candidates, key=lambda record: record.path)

    def cluster_visual(
        self, hashed: Sequence[Tuple[FileRecord, str]]
    ) -> Dict[str, List[FileRecord]]:
        """
        Cluster images by perceptual hash, first match wins.

        Each image is compared against the representative hash of every
        cluster in creation order and joins the first one within the
        threshold. An image that matches no cluster becomes the
        representative of a new cluster, which immediately takes every
        remaining unclaimed image within the threshold of it. Membership is
        decided against the representative only, so members of one cluster
        are not necessarily within the threshold of each other.

        Args:
            hashed: (file, dHash) pairs in processing order

        Returns:
            Dict mapping representative dHash to member files, clusters with
            a single member are dropped
        """
        clusters: Dict[str, List[FileRecord]] = {}
        claimed = set()

        for idx, (record, current_hash) in enumerate(hashed):
            if record.path in claimed:
                continue

            found_group = False
            for group_hash, members in clusters.items():
                if FileHasher.is_similar(
                    current_hash, group_hash, self.similarity_threshold
                ):
                    members.append(record)
                    claimed.add(record.path)
                    found_group = True
                    break
            if found_group:
                continue

            similar = [record]
            for other, other_hash in hashed[idx + 1 :]:
                if other.path not in claimed and FileHasher.is_similar(
                    current_hash, other_hash, self.similarity_threshold
                ):
                    similar.append(other)

            claimed.update(member.path for member in similar)
            if len(similar) > 1:
                clusters[current_hash] = similar

        return clusters

    def _hash_one(self, record: FileRecord) -> Optional[str]:
        """Content-hash a single file, None on error or stop request."""
        if self._stop_requested():
            return None
        try:
            return FileHasher.compute_file_hash(record.path)
        except FileHashError as e:
            self._log_error(f"Error calculating hash for {record.path}: {e}")
            return None

    def _dhash_one(self, record: FileRecord) -> Optional[str]:
        """dHash a single image, None on error or stop request."""
        if self._stop_requested():
            return None
        try:
            return FileHasher.compute_dhash(record.path)
        except (DecodeError, FileHashError) as e:
            self._log_error(f"Error calculating dHash for {record.path}: {e}")
            return None

    @contextmanager
    def _executor(self) -> Iterator[Optional[Executor]]:
        """Thread pool shared by all batches of one stage, None if sequential."""
        if self.max_workers <= 1:
            yield None
            return
        with ThreadPoolExecutor(
            max_workers=self.max_workers, thread_name_prefix="twinfinder-hash"
        ) as executor:
            yield executor

    def _run_batch(
        self,
        func: Callable[[FileRecord], Optional[str]],
        records: Sequence[FileRecord],
        executor: Optional[Executor],
    ) -> List[Optional[str]]:
        """
        Apply func to every record, in parallel when an executor is given.

        Results are returned in input order regardless of completion order.
        """
        results: List[Optional[str]] = [None] * len(records)

        if executor is None or len(records) <= 1:
            for idx, record in enumerate(records):
                results[idx] = func(record)
            return results

        future_to_index = {
            executor.submit(func, record): idx for idx, record in enumerate(records)
        }
        for future in as_completed(future_to_index):
            results[future_to_index[future]] = future.result()
        return results

    def _stop_requested(self) -> bool:
        return self.should_stop is not None and self.should_stop()

    def _check_stop(self) -> None:
        if self._stop_requested():
            raise ScanCancelled("Scan cancelled while hashing files")

    def _emit(self, event: ProgressEvent) -> None:
        if self.progress_callback is not None:
            self.progress_callback(event)

    def _log_error(self, message: str) -> None:
        """Log a non-fatal per-file error and keep it for the audit trail."""
        logger.warning(message)
        with self._lock:
            self.errors.append(message)
