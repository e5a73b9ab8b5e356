"""
Tests for input validation and normalisation helpers

Tests cover:
- Server URL to origin normalisation
- One insecure-transport warning per plain-http host
- Remote path sanitising
- Share link expiry clamping
- One-time password format checks
"""
import logging

import pytest

from filelink.utils.errors import InvalidInputError, InvalidOriginError, TwoFactorInvalidError
from filelink.utils.validation import (
    clamp_days,
    join_remote_path,
    normalize_origin,
    origin_hostname,
    require_text,
    sanitize_path,
    validate_otp,
    warn_insecure_transport,
)


class TestNormalizeOrigin:
    """Tests for normalize_origin"""

    def test_insecure_warning_once_per_host(self, caplog):
        warn_insecure_transport.cache_clear()

        with caplog.at_level(logging.WARNING, logger="filelink.utils.validation"):
            normalize_origin("http://plain.example.org")
            normalize_origin("HTTP://plain.example.org:8000/seafile")
            normalize_origin("http://other.example.org")
            normalize_origin("https://plain.example.org")

        warned = [r.getMessage() for r in caplog.records if "insecure HTTP" in r.getMessage()]
        assert len(warned) == 2
        assert "plain.example.org" in warned[0]
        assert "other.example.org" in warned[1]

    @pytest.mark.parametrize(
        "url, expected",
        [
            ("https://cloud.example.com", "https://cloud.example.com"),
            ("https://cloud.example.com/", "https://cloud.example.com"),
            ("HTTPS://Cloud.Example.COM/seafile/", "https://cloud.example.com"),
            ("https://cloud.example.com:443", "https://cloud.example.com"),
            ("http://cloud.example.com:80/", "http://cloud.example.com"),
            ("https://cloud.example.com:8443/path?x=1", "https://cloud.example.com:8443"),
            ("  https://cloud.example.com  ", "https://cloud.example.com"),
            ("https://[::1]:8000", "https://[::1]:8000"),
        ],
    )
    def test_normalises_to_origin(self, url, expected):
        """Test URLs reduce to scheme, host and non-default port"""
        assert normalize_origin(url) == expected

    @pytest.mark.parametrize(
        "url",
        [
            "https://cloud.example.com/a/b",
            "HTTP://LOCALHOST:8000",
            "https://[::1]",
            "https://cloud.example.com:443/",
        ],
    )
    def test_idempotent(self, url):
        """Test normalising an origin again does not change it"""
        once = normalize_origin(url)
        assert normalize_origin(once) == once

    @pytest.mark.parametrize(
        "url",
        ["", None, 42, "ftp://cloud.example.com", "javascript:alert(1)", "https://", "not a url",
         "https://cloud.example.com:99999"],
    )
    def test_rejects_invalid(self, url):
        """Test empty, non-http and unparsable URLs are rejected"""
        with pytest.raises(InvalidOriginError):
            normalize_origin(url)

    def test_invalid_origin_is_invalid_input(self):
        """Test origin errors belong to the input validation family"""
        with pytest.raises(InvalidInputError):
            normalize_origin("file:///etc/passwd")

    def test_origin_hostname(self):
        """Test host extraction for upload link comparison"""
        assert origin_hostname("https://cloud.example.com:8443") == "cloud.example.com"
        assert origin_hostname("relative/path") is None


class TestSanitizePath:
    """Tests for sanitize_path"""

    @pytest.mark.parametrize(
        "path, expected",
        [
            ("", "/"),
            (None, "/"),
            ("/", "/"),
            ("docs", "/docs"),
            ("//docs///sub//", "/docs/sub"),
            ("/docs/../../etc/passwd", "/docs/etc/passwd"),
            ("..", "/"),
            ("./a/./b", "/a/b"),
            ("a\\..\\b", "/a/b"),
            ("/Thunderbird-Attachments", "/Thunderbird-Attachments"),
        ],
    )
    def test_sanitises(self, path, expected):
        """Test separators collapse and traversal segments are dropped"""
        assert sanitize_path(path) == expected

    @pytest.mark.parametrize(
        "path",
        ["../../x", "a//..//b", "////", "/a/b/../c/./d//e", "..\\..\\windows"],
    )
    def test_output_properties(self, path):
        """Test output has one leading slash, no '..' and no empty segments"""
        result = sanitize_path(path)
        assert result.startswith("/")
        assert not result.startswith("//")
        assert "//" not in result
        assert ".." not in result.split("/")

    def test_join_remote_path(self):
        """Test joining a directory and file name"""
        assert join_remote_path("/uploads/", "report.pdf") == "/uploads/report.pdf"
        assert join_remote_path("", "report.pdf") == "/report.pdf"
        assert join_remote_path("/uploads", "../report.pdf") == "/uploads/report.pdf"


class TestClampDays:
    """Tests for clamp_days"""

    @pytest.mark.parametrize(
        "value, expected",
        [(0, 0), (7, 7), ("30", 30), (365, 365), (366, 365), (10_000, 365),
         (-1, 0), (None, 0), ("abc", 0)],
    )
    def test_clamps_into_range(self, value, expected):
        """Test values are bounded to [0, 365]"""
        assert clamp_days(value) == expected


class TestTextAndOtp:
    """Tests for require_text and validate_otp"""

    def test_require_text(self):
        """Test non-empty strings pass through"""
        assert require_text("alice", "Username") == "alice"

    @pytest.mark.parametrize("value", ["", None, 123, b"bytes"])
    def test_require_text_rejects(self, value):
        """Test empty and non-string values are rejected"""
        with pytest.raises(InvalidInputError, match="Username"):
            require_text(value, "Username")

    def test_otp_optional(self):
        """Test a missing code is allowed"""
        assert validate_otp(None) is None
        assert validate_otp("") is None

    def test_otp_valid(self):
        assert validate_otp("012345") == "012345"

    @pytest.mark.parametrize("code", ["12345", "1234567", "12a456", "123456\n", 123456])
    def test_otp_invalid(self, code):
        """Test malformed codes raise before any network call"""
        with pytest.raises(TwoFactorInvalidError):
            validate_otp(code)
