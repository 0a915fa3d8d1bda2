"""
Unit tests for content fingerprinting.
"""

import hashlib
import io

import pytest

from safeguard.snapshot import ContentFingerprinter


@pytest.mark.unit
class TestContentFingerprinter:
    """Tests for ContentFingerprinter."""

    def test_default_algorithm_is_sha256(self):
        fp = ContentFingerprinter()
        assert fp.algorithm == "sha256"
        assert fp.digest_bytes(b"abc") == hashlib.sha256(b"abc").hexdigest()

    def test_md5_supported(self):
        fp = ContentFingerprinter("md5")
        assert fp.digest_bytes(b"abc") == hashlib.md5(b"abc").hexdigest()

    def test_unknown_algorithm_rejected(self):
        with pytest.raises(ValueError, match="Unknown digest algorithm"):
            ContentFingerprinter("not-a-hash")

    def test_non_positive_chunk_size_rejected(self):
        with pytest.raises(ValueError):
            ContentFingerprinter(chunk_size=0)

    def test_identical_content_identical_digest(self, tmp_path):
        a = tmp_path / "a.bin"
        b = tmp_path / "b.bin"
        a.write_bytes(b"same bytes")
        b.write_bytes(b"same bytes")

        fp = ContentFingerprinter()
        assert fp.digest_file(a) == fp.digest_file(b)

    def test_different_content_different_digest(self, tmp_path):
        a = tmp_path / "a.bin"
        b = tmp_path / "b.bin"
        a.write_bytes(b"hello")
        b.write_bytes(b"world")

        fp = ContentFingerprinter()
        assert fp.digest_file(a) != fp.digest_file(b)

    def test_stream_digest_independent_of_chunk_size(self):
        data = bytes(range(256)) * 1000
        small = ContentFingerprinter(chunk_size=7).digest_stream(io.BytesIO(data))
        large = ContentFingerprinter(chunk_size=1 << 20).digest_stream(io.BytesIO(data))
        assert small == large == hashlib.sha256(data).hexdigest()

    def test_empty_file(self, tmp_path):
        empty = tmp_path / "empty"
        empty.write_bytes(b"")
        assert ContentFingerprinter().digest_file(empty) == hashlib.sha256(b"").hexdigest()

    def test_missing_file_raises_oserror(self, tmp_path):
        with pytest.raises(OSError):
            ContentFingerprinter().digest_file(tmp_path / "missing")
