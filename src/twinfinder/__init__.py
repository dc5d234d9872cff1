"""
twinfinder - find exact and visual duplicate files in a directory tree.

Exact duplicates are files with identical content (SHA-256). Visual
duplicates are raster images whose difference hashes are within a small
Hamming distance of each other.
"""

__version__ = "0.1.0"
