"""Tests for registry_console/format_utils.py"""

from datetime import datetime, timedelta, timezone

import pytest

from registry_console.format_utils import (
    format_absolute_date,
    format_bytes,
    format_relative_date,
    pluralize,
    short_digest,
)

NOW = datetime(2024, 6, 15, 12, 0, tzinfo=timezone.utc)


class TestFormatBytes:
    @pytest.mark.parametrize(
        "value,expected",
        [
            (0, "0 Bytes"),
            (None, "0 Bytes"),
            (512, "512 Bytes"),
            (1024, "1 KB"),
            (1536, "1.5 KB"),
            (1024 ** 2 * 3, "3 MB"),
            (int(1024 ** 3 * 1.234), "1.23 GB"),
            (1024 ** 4 * 2, "2 TB"),
        ],
    )
    def test_formats_with_binary_units(self, value, expected):
        assert format_bytes(value) == expected

    def test_negative_is_zero(self):
        assert format_bytes(-5) == "0 Bytes"


class TestRelativeDate:
    @pytest.mark.parametrize(
        "days,expected",
        [
            (0, "Today"),
            (1, "Yesterday"),
            (3, "3 days ago"),
            (14, "2 weeks ago"),
            (65, "2 months ago"),
            (800, "2 years ago"),
        ],
    )
    def test_buckets(self, days, expected):
        assert format_relative_date(NOW - timedelta(days=days, hours=1), now=NOW) == expected

    def test_never(self):
        assert format_relative_date(None, now=NOW) == "Never"

    def test_naive_timestamp_is_utc(self):
        naive = (NOW - timedelta(days=3, hours=1)).replace(tzinfo=None)
        assert format_relative_date(naive, now=NOW) == "3 days ago"


class TestOtherHelpers:
    def test_absolute_date_never(self):
        assert format_absolute_date(None) == "Never"

    def test_absolute_date_format(self):
        text = format_absolute_date(NOW)
        assert len(text) == len("2024-06-15 12:00:00")

    def test_short_digest(self):
        digest = "sha256:" + "a" * 64
        assert short_digest(digest) == digest[:24] + "..."
        assert short_digest("sha256:abc") == "sha256:abc"
        assert short_digest(None) == ""

    def test_pluralize(self):
        assert pluralize(1, "image") == "1 image"
        assert pluralize(3, "image") == "3 images"
        assert pluralize(0, "entry", "entries") == "0 entries"
