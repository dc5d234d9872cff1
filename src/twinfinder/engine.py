"""Scan orchestration: background worker, progress channel and results."""

import logging
import threading
import time
from collections import deque
from pathlib import Path
from typing import Callable, Deque, Dict, Iterable, Iterator, Optional, Union

from .errors import ScanCancelled, ScanInProgressError
from .finder import DuplicateFinder
from .manager import DeleteReport, DuplicateManager
from .models import DeleteOutcome, ProgressEvent, ScanResult, ScanSession, ScanStage
from .scanner import SizeBucketScanner, validate_root

logger = logging.getLogger(__name__)


class ProgressChannel:
    """
    Ordered, thread-safe queue of progress events with latest-wins coalescing.

    A pending non-final event is replaced by a newer event of the same stage,
    so a slow consumer only sees the latest count. Final events are never
    replaced. Events are delivered in the order they were produced.
    """

    def __init__(self) -> None:
        self._events: Deque[ProgressEvent] = deque()
        self._cond = threading.Condition()
        self._closed = False

    def put(self, event: ProgressEvent) -> None:
        with self._cond:
            if self._closed:
                return
            if self._events:
                last = self._events[-1]
                if not last.final and last.stage == event.stage:
                    self._events.pop()
            self._events.append(event)
            self._cond.notify_all()

    def get(self, timeout: Optional[float] = None) -> Optional[ProgressEvent]:
        """
        Wait for the next event.

        Returns:
            The next event, or None once the channel is closed and drained
            (or the timeout expired)
        """
        with self._cond:
            if not self._cond.wait_for(
                lambda: self._events or self._closed, timeout=timeout
            ):
                return None
            if self._events:
                return self._events.popleft()
            return None

    def close(self) -> None:
        with self._cond:
            self._closed = True
            self._cond.notify_all()

    @property
    def closed(self) -> bool:
        with self._cond:
            return self._closed

    def __iter__(self) -> Iterator[ProgressEvent]:
        while True:
            event = self.get()
            if event is None:
                return
            yield event


class ScanHandle:
    """Handle to one running scan: progress stream, result and cancellation."""

    def __init__(self, root: Path):
        self.root = root
        self.channel = ProgressChannel()
        self._cancel = threading.Event()
        self._done = threading.Event()
        self._result: Optional[ScanResult] = None
        self._error: Optional[BaseException] = None
        self._thread: Optional[threading.Thread] = None

    def events(self) -> Iterator[ProgressEvent]:
        """Iterate progress events until the terminal one has been delivered."""
        return iter(self.channel)

    def cancel(self) -> None:
        """Request cancellation; takes effect before the next file."""
        self._cancel.set()

    @property
    def cancelled(self) -> bool:
        return self._cancel.is_set()

    def done(self) -> bool:
        return self._done.is_set()

    def wait(self, timeout: Optional[float] = None) -> bool:
        return self._done.wait(timeout)

    def result(self, timeout: Optional[float] = None) -> ScanResult:
        """
        Wait for the scan and return its result.

        Raises:
            TimeoutError: If the scan did not finish within timeout
            ScanCancelled: If the scan was cancelled
            Exception: Whatever error aborted the scan
        """
        if not self._done.wait(timeout):
            raise TimeoutError(f"Scan of {self.root} still running")
        if self._error is not None:
            raise self._error
        assert self._result is not None
        return self._result

    def _finish(self, result: ScanResult) -> None:
        self._result = result
        self._done.set()

    def _fail(self, error: BaseException) -> None:
        self._error = error
        self._done.set()


class ScanEngine:
    """
    Runs duplicate scans on a background thread.

    At most one scan runs per engine. Each scan starts from a fresh session
    and, on success, replaces the previously published result entirely.
    """

    def __init__(
        self,
        max_workers: int = 8,
        listener: Optional[Callable[[ProgressEvent], None]] = None,
    ):
        """
        Initialize scan engine.

        Args:
            max_workers: Worker threads for parallel hashing (1 = sequential)
            listener: Optional callback invoked on the scan thread for every
                progress event, before coalescing
        """
        self.max_workers = max_workers
        self.listener = listener
        self._lock = threading.Lock()
        self._active: Optional[ScanHandle] = None
        self._deleting = False
        self._result: Optional[ScanResult] = None

    @property
    def result(self) -> Optional[ScanResult]:
        """Last successfully published scan result."""
        with self._lock:
            return self._result

    @property
    def is_scanning(self) -> bool:
        with self._lock:
            return self._active is not None and not self._active.done()

    def start_scan(self, root: Union[str, Path]) -> ScanHandle:
        """
        Validate root and start scanning it in the background.

        Raises:
            InvalidPathError: If root is not a readable directory
            ScanInProgressError: If this engine is already scanning or
                deleting files
        """
        root_path = validate_root(root)

        with self._lock:
            if self._active is not None and not self._active.done():
                raise ScanInProgressError(
                    f"A scan of {self._active.root} is already running"
                )
            if self._deleting:
                raise ScanInProgressError(
                    "Cannot start a scan while files are being deleted"
                )
            handle = ScanHandle(root_path)
            self._active = handle

        thread = threading.Thread(
            target=self._run, args=(handle,), name="twinfinder-scan", daemon=True
        )
        handle._thread = thread
        thread.start()
        return handle

    def scan(self, root: Union[str, Path]) -> ScanResult:
        """Run a scan and block until its result is available."""
        return self.start_scan(root).result()

    def delete_files(
        self, paths: Iterable[Union[str, Path]]
    ) -> Dict[str, DeleteOutcome]:
        """
        Delete files one by one, returning the outcome for each path.

        Raises:
            ScanInProgressError: If a scan or another deletion is running
        """
        return self.delete_selected(paths).outcomes

    def delete_selected(self, paths: Iterable[Union[str, Path]]) -> DeleteReport:
        """
        Delete files one by one and collect a DeleteReport.

        No scan can start until the whole batch has been processed.

        Raises:
            ScanInProgressError: If a scan or another deletion is running
        """
        with self._lock:
            if self._active is not None and not self._active.done():
                raise ScanInProgressError("Cannot delete files while a scan is running")
            if self._deleting:
                raise ScanInProgressError("Another deletion is already running")
            self._deleting = True
        try:
            return DuplicateManager.delete_selected(paths)
        finally:
            with self._lock:
                self._deleting = False

    def _run(self, handle: ScanHandle) -> None:
        """Scan thread body: run the pipeline and publish the outcome."""

        def emit(event: ProgressEvent) -> None:
            if self.listener is not None:
                try:
                    self.listener(event)
                except Exception:
                    logger.exception("Progress listener failed")
            handle.channel.put(event)

        start_time = time.monotonic()
        try:
            result = self._execute(handle, emit, start_time)
        except ScanCancelled as e:
            logger.info("Scan of %s cancelled", handle.root)
            handle._fail(e)
            emit(ProgressEvent(ScanStage.CANCELLED, "Scan cancelled", final=True))
        except Exception as e:
            logger.exception("Scan of %s failed", handle.root)
            handle._fail(e)
            emit(
                ProgressEvent(
                    ScanStage.FAILED, f"Error occurred during scan: {e}", final=True
                )
            )
        else:
            with self._lock:
                self._result = result
            handle._finish(result)
            emit(
                ProgressEvent(
                    ScanStage.DONE,
                    f"Scan completed: {len(result.all_files)} files, "
                    f"{len(result.exact_groups)} exact and "
                    f"{len(result.visual_groups)} visual duplicate groups",
                    final=True,
                )
            )
        finally:
            handle.channel.close()

    def _execute(
        self,
        handle: ScanHandle,
        emit: Callable[[ProgressEvent], None],
        start_time: float,
    ) -> ScanResult:
        session = ScanSession(root=handle.root)
        should_stop = handle._cancel.is_set

        # 1. Size buckets
        scanner = SizeBucketScanner(progress_callback=emit, should_stop=should_stop)
        try:
            session.buckets, session.all_files = scanner.scan(session.root)
        finally:
            session.errors.extend(scanner.errors)

        finder = DuplicateFinder(
            max_workers=self.max_workers,
            progress_callback=emit,
            should_stop=should_stop,
        )
        try:
            # 2. Exact duplicates, hashes for every file
            session.exact_members = finder.group_exact(
                session.buckets, session.hashes_by_path
            )
            session.buckets = {}

            # 3. Visual duplicates among hashed images not already exact duplicates
            hashed_files = [
                record
                for record in session.all_files
                if record.path in session.hashes_by_path
            ]
            exact_paths = {
                record.path
                for members in session.exact_members.values()
                for record in members
            }
            session.visual_members = finder.group_visual(
                hashed_files, exact_paths, session.perceptual_hashes_by_path
            )
        finally:
            session.errors.extend(finder.errors)

        if should_stop():
            raise ScanCancelled("Scan cancelled")

        return session.to_result(duration=time.monotonic() - start_time)
