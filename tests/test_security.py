import sys

import pytest

from config import Settings
from security import sanitize_filename, validate_source_url
from utils.dependencies import DependencyReport, check_dependencies, command_exists

ALLOWED = Settings().allowed_hosts


class TestValidateSourceUrl:

    @pytest.mark.parametrize("url", [
        "https://www.youtube.com/watch?v=dQw4w9WgXcQ",
        "http://youtube.com/watch?v=dQw4w9WgXcQ",
        "https://m.youtube.com/watch?v=x",
        "https://music.youtube.com/watch?v=x",
        "https://youtu.be/dQw4w9WgXcQ",
        "https://www.youtube-nocookie.com/embed/x",
        "HTTPS://WWW.YOUTUBE.COM/watch?v=x",
        "https://www.youtube.com:443/watch?v=x",
    ])
    def test_accepts_allowed_hosts(self, url):
        assert validate_source_url(url, ALLOWED)

    @pytest.mark.parametrize("url", [
        None,
        "",
        "not a url",
        "evil.example.com/watch?v=x",
        "https://evil.example.com/watch?v=x",
        "https://youtube.com.evil.example/",
        "https://notyoutube.com/watch?v=x",
        "https://user@evil.example/youtube.com",
        "ftp://youtube.com/x",
        "file:///etc/passwd",
        "https://[::1/",
        123,
    ])
    def test_rejects_everything_else(self, url):
        assert not validate_source_url(url, ALLOWED)

    def test_custom_allow_list(self):
        assert validate_source_url("https://media.example.org/a", ["media.example.org"])
        assert not validate_source_url("https://www.youtube.com/a", ["media.example.org"])


class TestSanitizeFilename:

    @pytest.mark.parametrize("name, expected", [
        ("abc.mp3", "abc.mp3"),
        ("../../etc/passwd", ".._.._etc_passwd"),
        ('say "hi".mp3', "say _hi_.mp3"),
        ("a\\//b.mp3", "a_b.mp3"),
    ])
    def test_strips_separators_and_quotes(self, name, expected):
        assert sanitize_filename(name) == expected

    def test_default_when_missing(self):
        assert sanitize_filename(None) == "audio.mp3"
        assert sanitize_filename("", default="audio.m4a") == "audio.m4a"


class TestDependencies:

    def test_command_exists(self):
        assert command_exists(sys.executable, ["--version"])

    def test_command_missing(self, tmp_path):
        assert not command_exists(str(tmp_path / "nothing-here"), ["--version"])

    def test_command_failing(self, make_tool):
        tool = make_tool("import sys\nsys.exit(3)\n", header="#!{python}\n")
        assert not command_exists(tool, ["--version"])

    def test_check_dependencies(self, make_tool, tmp_path):
        settings = Settings(
            ytdlp_binary=make_tool("", header="#!{python}\n"),
            ffmpeg_binary=str(tmp_path / "no-ffmpeg"),
        )

        report = check_dependencies(settings)

        assert report.yt_dlp is True
        assert report.ffmpeg is False
        assert report.to_dict() == {
            "ok": False,
            "missing": ["ffmpeg"],
            "ytDlp": True,
            "ffmpeg": False,
        }

    def test_report_ok(self):
        assert DependencyReport(yt_dlp=True, ffmpeg=True).missing == []
        assert DependencyReport(yt_dlp=True, ffmpeg=True).ok
