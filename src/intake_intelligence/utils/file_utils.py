"""
File utilities for the Intake Intelligence System.

Provides functions for reading image sources, hashing content, and
generating run identifiers.
"""

import hashlib
import mimetypes
import os
import uuid
from datetime import datetime
from typing import Iterable, Optional


def read_file_bytes(file_path: str, max_size_mb: Optional[float] = None) -> bytes:
    """
    Read a whole file as bytes.

    Args:
        file_path: Path to file
        max_size_mb: Optional size limit in megabytes

    Returns:
        File contents

    Raises:
        FileNotFoundError: If file doesn't exist
        ValueError: If file exceeds max_size_mb
    """
    if not os.path.isfile(file_path):
        raise FileNotFoundError(f"File not found: {file_path}")

    if max_size_mb is not None:
        size_mb = os.path.getsize(file_path) / (1024 * 1024)
        if size_mb > max_size_mb:
            raise ValueError(
                f"File {file_path} is {size_mb:.1f} MB, limit is {max_size_mb} MB"
            )

    with open(file_path, "rb") as f:
        return f.read()


def hash_parts(parts: Iterable[str], algorithm: str = "sha256") -> str:
    """
    Hash an ordered sequence of strings into one hex digest.

    Parts are length-prefixed so ``["ab", "c"]`` and ``["a", "bc"]`` differ.

    Args:
        parts: Strings to hash, in order
        algorithm: Hash algorithm ('md5', 'sha1', 'sha256')

    Returns:
        Hexadecimal hash string

    Raises:
        ValueError: If algorithm not supported
    """
    if algorithm not in ["md5", "sha256", "sha1"]:
        raise ValueError(f"Unsupported algorithm: {algorithm}")

    hash_obj = hashlib.new(algorithm)
    for part in parts:
        encoded = part.encode("utf-8")
        hash_obj.update(f"{len(encoded)}:".encode("ascii"))
        hash_obj.update(encoded)
    return hash_obj.hexdigest()


def guess_mime_type(filename: str, default: str = "image/jpeg") -> str:
    """Guess an image MIME type from a filename extension."""
    mime_type, _ = mimetypes.guess_type(filename)
    return mime_type or default


def generate_unique_id(prefix: str = "") -> str:
    """
    Generate unique ID with optional prefix.

    Format: PREFIX-YYYYMMDD-HHMMSS-UUID
    Example: RUN-20251102-143022-a1b2c3d4

    Args:
        prefix: Optional prefix (e.g., 'RUN')

    Returns:
        Unique ID string
    """
    timestamp = datetime.now().strftime("%Y%m%d-%H%M%S")
    unique_suffix = uuid.uuid4().hex[:8]

    if prefix:
        return f"{prefix}-{timestamp}-{unique_suffix}"
    else:
        return f"{timestamp}-{unique_suffix}"
