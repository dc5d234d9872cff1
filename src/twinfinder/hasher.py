"""Content and perceptual hashing utilities for duplicate detection."""

import hashlib
import string
import sys
from pathlib import Path
from typing import Union

from PIL import Image

from .errors import DecodeError, FileHashError

# Read buffer for content hashing, memory use stays constant per file
BUFFER_SIZE = 8192

# dHash grid: 9 columns give 8 horizontal comparisons per row
DHASH_WIDTH = 9
DHASH_HEIGHT = 8

# Maximum Hamming distance (in bits) for two images to count as visual duplicates
SIMILARITY_THRESHOLD = 5

# Returned by hamming_distance() for hashes that cannot be compared
MAX_DISTANCE = sys.maxsize

HEX_DIGITS = frozenset(string.hexdigits)

PathLike = Union[str, Path]


class FileHasher:
    """Handles content and image hashing for duplicate detection."""

    IMAGE_EXTENSIONS = {
        ".jpg",
        ".jpeg",
        ".png",
        ".gif",
        ".bmp",
        ".tiff",
        ".tif",
        ".webp",
    }

    @staticmethod
    def is_image_file(file_path: PathLike) -> bool:
        """Check if file has a supported raster image extension."""
        return Path(file_path).suffix.lower() in FileHasher.IMAGE_EXTENSIONS

    @staticmethod
    def compute_file_hash(file_path: PathLike) -> str:
        """
        Compute SHA-256 hash of file content.

        Args:
            file_path: Path to the file

        Returns:
            64 character lowercase hex digest

        Raises:
            FileHashError: If the file cannot be opened or a read fails
        """
        sha256_hash = hashlib.sha256()
        try:
            with open(file_path, "rb") as f:
                for chunk in iter(lambda: f.read(BUFFER_SIZE), b""):
                    sha256_hash.update(chunk)
        except OSError as e:
            raise FileHashError(
                e.errno, f"Cannot hash {file_path}: {e.strerror or e}"
            ) from e
        return sha256_hash.hexdigest()

    @staticmethod
    def compute_dhash(file_path: PathLike) -> str:
        """
        Compute the 64-bit difference hash (dHash) of an image.

        The image is converted to grayscale and resampled to a 9x8 grid with
        bilinear interpolation. Each row yields 8 bits, set when the left
        pixel is darker than its right neighbour. Bits are packed row by row,
        most significant bit first.

        Args:
            file_path: Path to the image

        Returns:
            16 character lowercase hex string

        Raises:
            FileHashError: If the file cannot be opened
            DecodeError: If the image data cannot be decoded
        """
        try:
            f = open(file_path, "rb")
        except OSError as e:
            raise FileHashError(
                e.errno, f"Cannot open {file_path}: {e.strerror or e}"
            ) from e

        with f:
            try:
                with Image.open(f) as img:
                    gray = img.convert("L").resize(
                        (DHASH_WIDTH, DHASH_HEIGHT), Image.Resampling.BILINEAR
                    )
            except (OSError, ValueError, SyntaxError, Image.DecompressionBombError) as e:
                raise DecodeError(f"Cannot decode image {file_path}: {e}") from e

        pixels = gray.load()
        bits = 0
        for y in range(DHASH_HEIGHT):
            for x in range(DHASH_WIDTH - 1):
                left = pixels[x, y]
                right = pixels[x + 1, y]
                bits = (bits << 1) | (1 if left < right else 0)

        nibbles = (DHASH_WIDTH - 1) * DHASH_HEIGHT // 4
        return f"{bits:0{nibbles}x}"

    @staticmethod
    def hamming_distance(hash_a: str, hash_b: str) -> int:
        """
        Count differing bits between two hex-encoded hashes.

        Args:
            hash_a: First hex hash
            hash_b: Second hex hash

        Returns:
            Number of differing bits, or MAX_DISTANCE if the hashes differ in
            length or are not valid hex
        """
        if not hash_a or len(hash_a) != len(hash_b):
            return MAX_DISTANCE
        # int() would also accept prefixes, signs, separators and whitespace
        if not HEX_DIGITS.issuperset(hash_a + hash_b):
            return MAX_DISTANCE
        diff = int(hash_a, 16) ^ int(hash_b, 16)
        return bin(diff).count("1")

    @staticmethod
    def is_similar(
        hash_a: str, hash_b: str, threshold: int = SIMILARITY_THRESHOLD
    ) -> bool:
        """Check whether two perceptual hashes are within the similarity threshold."""
        return FileHasher.hamming_distance(hash_a, hash_b) <= threshold
