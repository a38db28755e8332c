import asyncio
import logging
import time

from job_store import JobStore
from models import JobStatus, utcnow
from monitoring import record_job
from utils.lines import LineBuffer
from utils.progress import PERCENT, PHASE, EXTRACTING, parse_line
from utils.yt_download import build_command, locate_artifact, output_template

logger = logging.getLogger(__name__)

CHUNK_SIZE = 4096

# Shown before yt-dlp reports anything, so clients can tell the job is alive
INITIAL_PROGRESS = 2
EXTRACTION_PROGRESS = 90

TOOL_UNAVAILABLE_MESSAGE = "yt-dlp is not available on the server."
GENERIC_FAILURE_MESSAGE = "Conversion failed. Please try another link."
READY_MESSAGE = "Ready to download"


class ProcessSupervisor:
    """Runs yt-dlp for one job and reports everything through the job store.

    ``run`` never raises for conversion problems: spawn errors, non-zero exits
    and missing artifacts all end with the job marked ``failed``.
    """

    def __init__(self, store: JobStore, settings):
        self.store = store
        self.settings = settings

    async def run(self, job_id: str) -> JobStatus:
        start_time = time.time()
        job = self.store.get(job_id)
        if job is None:
            logger.warning(f"Job {job_id} vanished before it could start")
            return JobStatus.FAILED

        logger.info(f"Starting job {job_id} for URL: {job.url}")
        self.store.update_job_status(
            job_id,
            JobStatus.RUNNING,
            progress=INITIAL_PROGRESS,
            message="Starting download",
            started_at=utcnow(),
        )

        try:
            status = await self._convert(job_id, job.url)
        except asyncio.CancelledError:
            logger.warning(f"Job {job_id}: supervisor cancelled")
            raise
        except Exception as e:
            logger.error(f"Job {job_id} failed unexpectedly: {e}", exc_info=True)
            self._fail(job_id, GENERIC_FAILURE_MESSAGE, error=str(e))
            status = JobStatus.FAILED

        duration = time.time() - start_time
        record_job(status.value, duration)
        logger.info(f"Job {job_id}: {status.value} in {duration:.2f}s")
        return status

    async def _convert(self, job_id: str, url: str) -> JobStatus:
        template = output_template(self.settings.downloads_dir, job_id)
        cmd = build_command(self.settings, url, template)
        logger.info(f"Job {job_id}: command: {' '.join(cmd)}")

        try:
            process = await asyncio.create_subprocess_exec(
                *cmd,
                stdin=asyncio.subprocess.DEVNULL,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
            )
        except OSError as e:
            logger.error(f"Job {job_id}: could not launch {cmd[0]}: {e}")
            self._fail(job_id, TOOL_UNAVAILABLE_MESSAGE, error=str(e))
            return JobStatus.FAILED

        last_error = []

        def on_stderr(line: str) -> None:
            if "warning" in line.lower():
                return
            last_error[:] = [line]

        try:
            await asyncio.gather(
                self._consume(process.stdout, lambda line: self._on_stdout(job_id, line)),
                self._consume(process.stderr, on_stderr),
            )
            returncode = await process.wait()
        finally:
            if process.returncode is None:
                logger.warning(f"Job {job_id}: killing yt-dlp (pid {process.pid})")
                process.kill()
                await process.wait()

        error_line = last_error[0] if last_error else None
        if returncode != 0:
            logger.error(f"Job {job_id}: yt-dlp exited with code {returncode}: {error_line}")
            self._fail(job_id, error_line or GENERIC_FAILURE_MESSAGE, error=error_line)
            return JobStatus.FAILED

        return self._discover_artifact(job_id)

    async def _consume(self, stream, on_line) -> None:
        buffer = LineBuffer()
        while True:
            chunk = await stream.read(CHUNK_SIZE)
            if not chunk:
                break
            for line in buffer.feed(chunk):
                on_line(line)
        for line in buffer.flush():
            on_line(line)

    def _on_stdout(self, job_id: str, line: str) -> None:
        signal = parse_line(line)
        if signal is None:
            return

        job = self.store.get(job_id)
        if job is None or job.is_terminal():
            return

        if signal.kind == PERCENT:
            percent = int(signal.value)
            if percent > job.progress:
                self.store.update_job(job_id, progress=percent, message="Downloading audio")
        elif signal.kind == PHASE and signal.value == EXTRACTING:
            self.store.update_job(
                job_id,
                progress=max(job.progress, EXTRACTION_PROGRESS),
                message=f"Extracting {self.settings.audio_format.upper()}",
            )

    def _discover_artifact(self, job_id: str) -> JobStatus:
        found = locate_artifact(self.settings.downloads_dir, job_id, self.settings.audio_format)
        if not found:
            logger.error(f"Job {job_id}: yt-dlp succeeded but no artifact was found")
            self._fail(
                job_id,
                f"The {self.settings.audio_format.upper()} file could not be located.",
            )
            return JobStatus.FAILED

        file_name, file_path = found
        self.store.update_job_status(
            job_id,
            JobStatus.FINISHED,
            progress=100,
            message=READY_MESSAGE,
            file_name=file_name,
            file_path=file_path,
            completed_at=utcnow(),
        )
        return JobStatus.FINISHED

    def _fail(self, job_id: str, message: str, error=None) -> None:
        self.store.update_job_status(
            job_id,
            JobStatus.FAILED,
            message=message,
            error=error or message,
            completed_at=utcnow(),
        )
