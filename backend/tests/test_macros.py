"""Tests for path macros and filename handling."""
import pytest

from filelink.uploads.macros import extension_of, resolve_path, safe_filename, web_path


class TestSafeFilename:
    @pytest.mark.parametrize("raw, expected", [
        ("photo.png", "photo.png"),
        ("../../etc/passwd", "passwd"),
        ("C:\\Users\\ann\\photo.png", "photo.png"),
        ("dir/sub/", ""),
        ("..", ""),
        (".", ""),
        ("", ""),
        ("bad\x00name.png", "badname.png"),
    ])
    def test_basename(self, raw, expected):
        assert safe_filename(raw) == expected


class TestExtensionOf:
    def test_last_dot_wins(self):
        assert extension_of("archive.tar.gz") == "gz"

    def test_case_preserved(self):
        assert extension_of("photo.PNG") == "PNG"

    def test_no_dot(self):
        assert extension_of("README") == ""

    def test_trailing_dot(self):
        assert extension_of("name.") == ""

    def test_dot_in_directory_ignored(self):
        assert extension_of("v1.2/README") == ""


class TestResolvePath:
    def test_all_macros(self):
        path = resolve_path("/srv/__ID__/__NAME__.__EXTN__", "photo.PNG", 42)
        assert path == "/srv/42/photo.PNG.PNG"

    def test_missing_id_becomes_empty(self):
        assert resolve_path("/srv/f__ID__.__EXTN__", "a.png", None) == "/srv/f.png"

    def test_unknown_tokens_left_alone(self):
        assert resolve_path("/srv/__DATE__/__ID__", "a.png", 3) == "/srv/__DATE__/3"

    def test_macros_in_filename_not_expanded(self):
        assert resolve_path("/srv/__ID__-__NAME__", "__ID__.png", 7) == "/srv/7-__ID__.png"

    def test_traversal_stripped(self):
        assert resolve_path("/srv/__NAME__", "../../etc/passwd", 1) == "/srv/passwd"

    def test_zero_id(self):
        assert resolve_path("/srv/__ID__", "a", 0) == "/srv/0"


class TestWebPath:
    def test_prefix_removed(self):
        assert web_path("/var/www/uploads/1.png", "/var/www") == "/uploads/1.png"

    def test_prefix_absent(self):
        assert web_path("/data/1.png", "/var/www") == "/data/1.png"

    def test_only_leading_occurrence(self):
        assert web_path("/data/var/www/1.png", "/var/www") == "/data/var/www/1.png"

    def test_empty_root(self):
        assert web_path("/data/1.png", "") == "/data/1.png"
