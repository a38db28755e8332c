import subprocess
import logging
from dataclasses import dataclass
from typing import Any, Dict, List, Sequence

logger = logging.getLogger(__name__)


@dataclass
class DependencyReport:
    yt_dlp: bool
    ffmpeg: bool

    @property
    def missing(self) -> List[str]:
        missing = []
        if not self.yt_dlp:
            missing.append("yt-dlp")
        if not self.ffmpeg:
            missing.append("ffmpeg")
        return missing

    @property
    def ok(self) -> bool:
        return self.yt_dlp and self.ffmpeg

    def to_dict(self) -> Dict[str, Any]:
        return {
            "ok": self.ok,
            "missing": self.missing,
            "ytDlp": self.yt_dlp,
            "ffmpeg": self.ffmpeg,
        }


def command_exists(command: str, args: Sequence[str], timeout: float = 10) -> bool:
    """True when ``command args`` can be run and exits 0"""
    try:
        result = subprocess.run(
            [command, *args],
            stdin=subprocess.DEVNULL,
            stdout=subprocess.DEVNULL,
            stderr=subprocess.DEVNULL,
            timeout=timeout,
            check=False,
        )
    except (OSError, subprocess.SubprocessError) as e:
        logger.debug(f"{command} not usable: {e}")
        return False
    return result.returncode == 0


def check_dependencies(settings) -> DependencyReport:
    timeout = settings.dependency_check_timeout
    report = DependencyReport(
        yt_dlp=command_exists(settings.ytdlp_binary, ["--version"], timeout),
        ffmpeg=command_exists(settings.ffmpeg_binary, ["-version"], timeout),
    )
    if not report.ok:
        logger.warning(f"Missing external tools: {', '.join(report.missing)}")
    return report
