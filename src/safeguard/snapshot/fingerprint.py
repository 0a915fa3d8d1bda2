"""
Content fingerprinting for equality comparison of files and byte payloads.
"""

import hashlib
from pathlib import Path
from typing import BinaryIO, Union


DEFAULT_ALGORITHM = "sha256"
DEFAULT_CHUNK_SIZE = 64 * 1024


class ContentFingerprinter:
    """
    Computes a stable hex digest of a byte stream.

    The digest is deterministic for identical content. Read errors
    propagate to the caller, which decides how to treat them (the
    directory reconciler assumes the file changed).
    """

    def __init__(self, algorithm: str = DEFAULT_ALGORITHM, chunk_size: int = DEFAULT_CHUNK_SIZE):
        """
        Args:
            algorithm: Any hashlib algorithm name (sha256, md5, blake2b, ...)
            chunk_size: Bytes read per iteration when streaming

        Raises:
            ValueError: If the algorithm is unknown or the chunk size is not positive
        """
        try:
            hashlib.new(algorithm)
        except (ValueError, TypeError) as e:
            raise ValueError(f"Unknown digest algorithm: {algorithm}") from e
        if chunk_size <= 0:
            raise ValueError(f"chunk_size must be positive, got {chunk_size}")

        self.algorithm = algorithm
        self.chunk_size = chunk_size

    def digest_stream(self, stream: BinaryIO) -> str:
        """Digest everything remaining in a binary stream."""
        hasher = hashlib.new(self.algorithm)
        for chunk in iter(lambda: stream.read(self.chunk_size), b""):
            hasher.update(chunk)
        return hasher.hexdigest()

    def digest_file(self, path: Union[str, Path]) -> str:
        """
        Digest the full content of a file.

        Raises:
            OSError: If the file cannot be opened or read
        """
        with open(path, "rb") as f:
            return self.digest_stream(f)

    def digest_bytes(self, data: bytes) -> str:
        """Digest an in-memory payload."""
        return hashlib.new(self.algorithm, data).hexdigest()

    def __repr__(self) -> str:
        return f"ContentFingerprinter(algorithm={self.algorithm!r})"
