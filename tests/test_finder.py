"""Tests for exact and visual duplicate grouping."""

from pathlib import Path
from typing import Dict, List
from unittest.mock import patch

import pytest

from twinfinder.errors import FileHashError, ScanCancelled
from twinfinder.finder import DuplicateFinder
from twinfinder.models import FileRecord, ProgressEvent, ScanStage
from twinfinder.scanner import SizeBucketScanner


def record(path: str, size: int = 1) -> FileRecord:
    return FileRecord(path=path, size=size)


class TestDuplicateFinder:
    """Tests for DuplicateFinder initialization."""

    def test_init_defaults(self) -> None:
        """Test DuplicateFinder initialization with defaults."""
        finder = DuplicateFinder()
        assert finder.max_workers == 8
        assert finder.similarity_threshold == 5
        assert finder.errors == []

    def test_init_custom_values(self) -> None:
        """Test DuplicateFinder initialization with custom values."""
        finder = DuplicateFinder(max_workers=1, similarity_threshold=10)
        assert finder.max_workers == 1
        assert finder.similarity_threshold == 10


class TestGroupExact:
    """Tests for content-hash grouping."""

    def test_groups_identical_content(self, hello_tree: Path) -> None:
        """Test a/b share a group, c is hashed but not grouped."""
        buckets, _ = SizeBucketScanner().scan(hello_tree)
        hashes: Dict[str, str] = {}

        groups = DuplicateFinder().group_exact(buckets, hashes)

        assert len(groups) == 1
        (members,) = groups.values()
        assert [Path(r.path).name for r in members] == ["a.txt", "b.txt"]
        assert len(hashes) == 3

    def test_singleton_buckets_hashed_not_grouped(self, write_file, tmp_path) -> None:
        """Test files with a unique size still receive a content hash."""
        write_file("short.txt", "a")
        write_file("long.txt", "abc")
        buckets, _ = SizeBucketScanner().scan(tmp_path)
        hashes: Dict[str, str] = {}
        events: List[ProgressEvent] = []

        groups = DuplicateFinder(progress_callback=events.append).group_exact(
            buckets, hashes
        )

        assert groups == {}
        assert len(hashes) == 2
        assert events[-1].stage is ScanStage.HASHING
        assert events[-1].final

    def test_same_size_different_content(self, write_file, tmp_path) -> None:
        """Test equal sizes alone never make a group."""
        write_file("x.txt", "abcd")
        write_file("y.txt", "wxyz")
        buckets, _ = SizeBucketScanner().scan(tmp_path)

        assert DuplicateFinder().group_exact(buckets, {}) == {}

    def test_hash_failure_excludes_file(self, hello_tree: Path) -> None:
        """Test a file that cannot be hashed is logged and left out."""
        buckets, _ = SizeBucketScanner().scan(hello_tree)
        Path(buckets[5][1].path).unlink()  # b.txt disappears after the walk
        hashes: Dict[str, str] = {}
        finder = DuplicateFinder(max_workers=1)

        groups = finder.group_exact(buckets, hashes)

        assert groups == {}
        assert buckets[5][1].path not in hashes
        assert len(finder.errors) == 1
        assert "Error calculating hash" in finder.errors[0]

    def test_group_members_share_size_and_hash(self, write_file, tmp_path) -> None:
        """Test every group holds two or more files of one size and hash."""
        for name in ["a", "b", "c"]:
            write_file(f"{name}.bin", b"same bytes")
        write_file("d.bin", b"other")
        write_file("e.bin", b"other")
        write_file("f.bin", b"unique!")
        buckets, _ = SizeBucketScanner().scan(tmp_path)
        hashes: Dict[str, str] = {}

        groups = DuplicateFinder().group_exact(buckets, hashes)

        assert sorted(len(m) for m in groups.values()) == [2, 3]
        for key, members in groups.items():
            assert len({r.size for r in members}) == 1
            assert all(hashes[r.path] == key for r in members)

    def test_sequential_and_parallel_agree(self, write_file, tmp_path) -> None:
        """Test worker count does not change the grouping."""
        for i in range(20):
            write_file(f"dir{i % 3}/file{i:02d}.bin", bytes([i % 4]) * 64)
        buckets, _ = SizeBucketScanner().scan(tmp_path)

        sequential = DuplicateFinder(max_workers=1).group_exact(buckets, {})
        parallel = DuplicateFinder(max_workers=4).group_exact(buckets, {})

        assert sequential == parallel
        assert len(sequential) == 4

    def test_progress_counts_buckets(self, write_file, tmp_path) -> None:
        """Test one HASHING event per multi-file bucket, last one final."""
        write_file("a1", "a")
        write_file("a2", "b")
        write_file("b1", "cc")
        write_file("b2", "dd")
        buckets, _ = SizeBucketScanner().scan(tmp_path)
        events: List[ProgressEvent] = []

        DuplicateFinder(progress_callback=events.append).group_exact(buckets, {})

        assert [(e.current, e.total, e.final) for e in events] == [
            (1, 2, False),
            (2, 2, True),
        ]
        assert events[-1].message == "Checking duplicates... (2/2 groups)"

    def test_stop_request_cancels(self, hello_tree: Path) -> None:
        """Test should_stop aborts hashing with ScanCancelled."""
        buckets, _ = SizeBucketScanner().scan(hello_tree)
        finder = DuplicateFinder(should_stop=lambda: True)
        with pytest.raises(ScanCancelled):
            finder.group_exact(buckets, {})


class TestClusterVisual:
    """Tests for first-match perceptual clustering."""

    def test_chain_is_not_transitive(self) -> None:
        """Test membership is judged against the representative only."""
        # A-B and B-C are within 5 bits, A-C is 10 bits apart
        a = (record("/p/a.png"), "0000000000000000")
        b = (record("/p/b.png"), "000000000000001f")
        c = (record("/p/c.png"), "00000000000003ff")

        clusters = DuplicateFinder().cluster_visual([b, a, c])

        assert list(clusters) == ["000000000000001f"]
        members = clusters["000000000000001f"]
        assert [r.path for r in members] == ["/p/b.png", "/p/a.png", "/p/c.png"]

    def test_order_changes_clusters(self) -> None:
        """Test the same chain processed from one end splits up."""
        a = (record("/p/a.png"), "0000000000000000")
        b = (record("/p/b.png"), "000000000000001f")
        c = (record("/p/c.png"), "00000000000003ff")

        clusters = DuplicateFinder().cluster_visual([a, b, c])

        assert [[r.path for r in m] for m in clusters.values()] == [
            ["/p/a.png", "/p/b.png"]
        ]

    def test_singletons_dropped(self) -> None:
        """Test images with no similar partner form no cluster."""
        hashed = [
            (record("/p/a.png"), "0000000000000000"),
            (record("/p/b.png"), "ffffffffffffffff"),
        ]
        assert DuplicateFinder().cluster_visual(hashed) == {}

    def test_no_image_in_two_clusters(self) -> None:
        """Test every image belongs to at most one cluster."""
        hashed = [
            (record(f"/p/{i:02d}.png"), f"{value:016x}")
            for i, value in enumerate(
                [0x0, 0x1, 0x3, 0xFF00, 0xFF01, 0xFFFF, 0x7, 0xFF03]
            )
        ]

        clusters = DuplicateFinder().cluster_visual(hashed)

        paths = [r.path for members in clusters.values() for r in members]
        assert len(paths) == len(set(paths))
        assert all(len(members) >= 2 for members in clusters.values())

    def test_custom_threshold(self) -> None:
        """Test a stricter threshold separates near matches."""
        hashed = [
            (record("/p/a.png"), "0000000000000000"),
            (record("/p/b.png"), "0000000000000003"),
        ]
        assert DuplicateFinder(similarity_threshold=1).cluster_visual(hashed) == {}
        assert len(DuplicateFinder(similarity_threshold=2).cluster_visual(hashed)) == 1


class TestGroupVisual:
    """Tests for image candidate selection and visual grouping."""

    def test_candidates_exclude_and_sort(self) -> None:
        """Test only non-excluded images are candidates, ordered by path."""
        files = [
            record("/p/z.jpg"),
            record("/p/notes.txt"),
            record("/p/a.PNG"),
            record("/p/m.gif"),
        ]

        candidates = DuplicateFinder.select_image_candidates(files, {"/p/m.gif"})

        assert [r.path for r in candidates] == ["/p/a.PNG", "/p/z.jpg"]

    def test_same_pixels_grouped(self, png_pair_tree: Path) -> None:
        """Test re-encoded images with identical pixels form one visual group."""
        _, all_files = SizeBucketScanner().scan(png_pair_tree)
        perceptual: Dict[str, str] = {}

        clusters = DuplicateFinder().group_visual(all_files, set(), perceptual)

        assert len(clusters) == 1
        (members,) = clusters.values()
        assert [Path(r.path).name for r in members] == ["one.png", "two.png"]
        assert len(perceptual) == 3

    def test_excluded_images_not_hashed(self, png_pair_tree: Path) -> None:
        """Test images already in exact groups are skipped."""
        _, all_files = SizeBucketScanner().scan(png_pair_tree)
        two = next(r.path for r in all_files if r.path.endswith("two.png"))
        perceptual: Dict[str, str] = {}

        clusters = DuplicateFinder().group_visual(all_files, {two}, perceptual)

        assert clusters == {}
        assert two not in perceptual

    def test_decode_error_skipped(self, png_pair_tree: Path, write_file) -> None:
        """Test an undecodable image is logged and ignored."""
        write_file("broken.jpg", b"not really a jpeg")
        _, all_files = SizeBucketScanner().scan(png_pair_tree)
        finder = DuplicateFinder()
        perceptual: Dict[str, str] = {}

        clusters = finder.group_visual(all_files, set(), perceptual)

        assert len(clusters) == 1
        assert not any(p.endswith("broken.jpg") for p in perceptual)
        assert len(finder.errors) == 1
        assert "broken.jpg" in finder.errors[0]

    def test_read_error_skipped(self, png_pair_tree: Path) -> None:
        """Test an image that cannot be read is logged and ignored."""
        _, all_files = SizeBucketScanner().scan(png_pair_tree)
        finder = DuplicateFinder(max_workers=1)

        with patch(
            "twinfinder.finder.FileHasher.compute_dhash",
            side_effect=FileHashError("gone"),
        ):
            clusters = finder.group_visual(all_files, set(), {})

        assert clusters == {}
        assert len(finder.errors) == 3

    def test_progress_events(self, png_pair_tree: Path) -> None:
        """Test a start event and a final summary event."""
        _, all_files = SizeBucketScanner().scan(png_pair_tree)
        events: List[ProgressEvent] = []

        DuplicateFinder(progress_callback=events.append).group_visual(
            all_files, set(), {}
        )

        assert [e.stage for e in events] == [ScanStage.VISUAL, ScanStage.VISUAL]
        assert events[0].total == 3
        assert not events[0].final
        assert events[-1].final
        assert events[-1].message == "Found 1 visual duplicate groups"
