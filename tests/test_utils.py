"""
Unit tests for utility functions.
"""

import sys

from utils import (
    build_item_url,
    cookie_flags,
    cookie_options,
    extraction_command,
    format_duration,
    format_file_size,
    is_playlist_url,
    is_valid_session_id,
    list_directory_files,
    parse_cookies_from_browser,
    remove_directory,
    sanitize_user_input,
    validate_url_input,
)


class TestURLProcessing:
    """Test URL processing functions."""

    def test_is_playlist_url(self):
        assert is_playlist_url("https://www.youtube.com/playlist?list=PL123")
        assert is_playlist_url("https://www.youtube.com/watch?v=abc&list=PL123")
        assert not is_playlist_url("https://www.youtube.com/watch?v=abc")
        assert not is_playlist_url("")

    def test_build_item_url(self):
        assert build_item_url("abc") == "https://www.youtube.com/watch?v=abc"
        assert build_item_url("x", "https://media.example/{id}.json") == "https://media.example/x.json"

    def test_session_ids(self):
        assert is_valid_session_id("0f3c9a7e2b_-X")
        assert not is_valid_session_id("../secrets")
        assert not is_valid_session_id("")

    def test_sanitize_user_input(self):
        assert sanitize_user_input("  https://a.example/x\x00\n ") == "https://a.example/x"


class TestExternalTools:
    def test_extraction_command_defaults_to_module(self):
        assert extraction_command() == [sys.executable, "-m", "yt_dlp"]

    def test_parse_cookies_from_browser(self):
        assert parse_cookies_from_browser("") is None
        assert parse_cookies_from_browser(":profile") is None
        assert parse_cookies_from_browser("chrome") == ("chrome", None, None, None)
        assert parse_cookies_from_browser("firefox:default-release") == ("firefox", "default-release", None, None)
        assert parse_cookies_from_browser("firefox::Work") == ("firefox", None, None, "Work")
        assert parse_cookies_from_browser("chromium+gnomekeyring:Profile 1") == (
            "chromium",
            "Profile 1",
            "GNOMEKEYRING",
            None,
        )

    def test_cookie_flags_keep_container_apart_from_profile(self):
        assert cookie_flags("", "firefox::Work") == ["--cookies-from-browser", "firefox::Work"]
        assert cookie_flags("", "firefox:default-release::Work") == [
            "--cookies-from-browser",
            "firefox:default-release::Work",
        ]
        assert cookie_flags("", "chrome") == ["--cookies-from-browser", "chrome"]

    def test_cookie_settings(self, tmp_path):
        cookie_file = tmp_path / "cookies.txt"
        cookie_file.write_text("# Netscape HTTP Cookie File\n")

        assert cookie_flags(str(cookie_file), "firefox:work") == [
            "--cookies",
            str(cookie_file),
            "--cookies-from-browser",
            "firefox:work",
        ]
        assert cookie_options(str(cookie_file), "chrome") == {
            "cookiefile": str(cookie_file),
            "cookiesfrombrowser": ("chrome", None, None, None),
        }

    def test_missing_cookie_file_is_ignored(self, tmp_path):
        assert cookie_flags(str(tmp_path / "missing.txt"), "") == []
        assert cookie_options("", "") == {}


class TestFileOperations:
    """Test file operation utilities."""

    def test_list_directory_files_is_flat(self, tmp_path):
        (tmp_path / "b.mp3").write_bytes(b"b")
        (tmp_path / "a.mp4").write_bytes(b"a")
        (tmp_path / "sub").mkdir()
        (tmp_path / "sub" / "c.mp3").write_bytes(b"c")

        assert [path.name for path in list_directory_files(tmp_path)] == ["a.mp4", "b.mp3"]
        assert list_directory_files(tmp_path / "missing") == []

    def test_remove_directory(self, tmp_path):
        target = tmp_path / "session"
        target.mkdir()
        (target / "file.mp3").write_bytes(b"x")

        assert remove_directory(target)
        assert not target.exists()
        assert not remove_directory(target)

    def test_format_file_size(self):
        assert format_file_size(512) == "512.0 B"
        assert format_file_size(1536) == "1.5 KB"
        assert format_file_size(1048576) == "1.0 MB"

    def test_format_duration(self):
        assert format_duration(65) == "01:05"
        assert format_duration(3665) == "1:01:05"


class TestValidation:
    """Test validation functions."""

    def test_validate_url_input_valid(self):
        is_valid, error = validate_url_input("https://example.com/video")
        assert is_valid
        assert error == ""

    def test_validate_url_input_invalid_scheme(self):
        is_valid, error = validate_url_input("ftp://example.com/video")
        assert not is_valid
        assert "url" in error.lower()

    def test_validate_url_input_too_long(self):
        long_url = "https://example.com/" + "a" * 2000
        is_valid, error = validate_url_input(long_url)
        assert not is_valid
        assert "url" in error.lower()

    def test_validate_url_input_empty(self):
        is_valid, error = validate_url_input("")
        assert not is_valid
        assert "url" in error.lower()
