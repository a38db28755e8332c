import stat
import sys
import textwrap

import pytest

from config import Settings
from job_store import JobStore

# Every fake yt-dlp starts with this; ``output(ext)`` resolves the -o template
FAKE_TOOL_HEADER = """\
#!{python}
import sys
import time

args = sys.argv[1:]
template = args[args.index("-o") + 1]
url = args[-1]


def output(ext):
    return template.replace("%(ext)s", ext)


def write_artifact(ext, data=b"ID3 fake audio"):
    with open(output(ext), "wb") as f:
        f.write(data)

"""


@pytest.fixture
def test_settings(tmp_path):
    downloads = tmp_path / "downloads"
    downloads.mkdir()
    return Settings(
        downloads_dir=str(downloads),
        log_file="",
        job_expiry_seconds=3600,
        sweep_interval_seconds=3600,
    )


@pytest.fixture
def store():
    return JobStore()


@pytest.fixture
def make_tool(tmp_path):
    """Write an executable Python script standing in for an external tool"""
    counter = {"n": 0}

    def _make(body: str, header: str = FAKE_TOOL_HEADER) -> str:
        counter["n"] += 1
        path = tmp_path / f"fake-tool-{counter['n']}"
        path.write_text(header.format(python=sys.executable) + textwrap.dedent(body))
        path.chmod(path.stat().st_mode | stat.S_IXUSR | stat.S_IXGRP | stat.S_IXOTH)
        return str(path)

    return _make


@pytest.fixture
def make_ytdlp(make_tool, test_settings):
    """Fake yt-dlp wired into ``test_settings``"""
    def _make(body: str) -> Settings:
        test_settings.ytdlp_binary = make_tool(body)
        return test_settings

    return _make
