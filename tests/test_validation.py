"""Tests for the validation gate."""

import pytest

from portfolio_uploader.config import MAX_FILE_BYTES
from portfolio_uploader.errors import ValidationError
from portfolio_uploader.models import SourceImage
from portfolio_uploader.validation import format_megabytes, validate


def _file(size: int, mime_type: str = "image/png") -> SourceImage:
    return SourceImage(data=b"\0" * size, mime_type=mime_type, name="upload.bin")


class TestValidate:
    """Tests for validate()."""

    def test_accepts_small_image(self):
        assert validate(_file(1024)).ok

    def test_rejects_non_image(self):
        """Should reject on declared type before looking at size."""
        outcome = validate(_file(10, "text/plain"))
        assert not outcome.ok
        assert outcome.reason == "Please select an image file"

    def test_rejects_missing_type(self):
        assert validate(_file(10, "")).reason == "Please select an image file"

    def test_accepts_exactly_max(self):
        assert validate(_file(MAX_FILE_BYTES)).ok

    def test_rejects_one_byte_over(self):
        outcome = validate(_file(MAX_FILE_BYTES + 1))
        assert not outcome.ok
        assert outcome.reason == "File size must be less than 15MB"

    def test_custom_limit(self):
        outcome = validate(_file(3 * 1024 * 1024), max_bytes=2 * 1024 * 1024)
        assert outcome.reason == "File size must be less than 2MB"

    def test_uppercase_mime(self):
        assert validate(_file(10, "IMAGE/JPEG")).ok

    def test_raise_for_reason(self):
        outcome = validate(_file(10, "application/pdf"))
        with pytest.raises(ValidationError, match="Please select an image file"):
            outcome.raise_for_reason()


def test_format_megabytes():
    assert format_megabytes(15 * 1024 * 1024) == "15MB"
    assert format_megabytes(5 * 1024 * 1024) == "5MB"
