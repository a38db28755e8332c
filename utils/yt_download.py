import os
import logging
from typing import List, Optional, Tuple

logger = logging.getLogger(__name__)

# Leftovers of an interrupted yt-dlp download, never a finished artifact
TEMPORARY_SUFFIXES = (".part", ".ytdl")


def output_template(downloads_dir: str, job_id: str) -> str:
    """yt-dlp output template; the tool fills in the extension"""
    return os.path.join(downloads_dir, f"{job_id}.%(ext)s")


def build_command(settings, url: str, template: str) -> List[str]:
    """Build the yt-dlp command line for an audio-only conversion"""
    return [
        settings.ytdlp_binary,
        "--no-playlist",
        "--no-warnings",
        "--newline",
        "--progress",
        "-x",
        "--audio-format", settings.audio_format,
        "--audio-quality", settings.audio_quality,
        "-o", template,
        url,
    ]


def expected_artifact_path(downloads_dir: str, job_id: str, extension: str) -> str:
    return os.path.join(downloads_dir, f"{job_id}.{extension}")


def scan_for_artifact(downloads_dir: str, job_id: str) -> Optional[str]:
    """Recovery step: first file in the directory whose name starts with the job id"""
    try:
        entries = sorted(os.listdir(downloads_dir))
    except OSError as e:
        logger.warning(f"Job {job_id}: cannot scan {downloads_dir}: {e}")
        return None

    for fname in entries:
        if not fname.startswith(job_id) or fname.endswith(TEMPORARY_SUFFIXES):
            continue
        path = os.path.join(downloads_dir, fname)
        if os.path.isfile(path):
            return path
    return None


def locate_artifact(downloads_dir: str, job_id: str, extension: str) -> Optional[Tuple[str, str]]:
    """Find the file yt-dlp produced for a job.

    Checks the deterministic ``<job_id>.<extension>`` path first; yt-dlp may
    still pick its own container, so fall back to a prefix scan. Returns
    ``(file_name, file_path)`` or None.
    """
    expected = expected_artifact_path(downloads_dir, job_id, extension)
    if os.path.isfile(expected):
        return os.path.basename(expected), expected

    found = scan_for_artifact(downloads_dir, job_id)
    if found:
        logger.info(f"Job {job_id}: artifact found by directory scan: {found}")
        return os.path.basename(found), found

    return None
