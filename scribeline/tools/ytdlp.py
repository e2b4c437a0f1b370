"""
scribeline.tools.ytdlp - Remote video collaborators backed by yt-dlp.

YtDlpAudioExtractor downloads the audio track of a remote video to a local
temp file for Whisper inference. YtDlpCaptions fetches the video's caption
track verbatim, skipping inference entirely.
"""

from __future__ import annotations

import logging
import shutil
import tempfile
from pathlib import Path

from scribeline.exceptions import ExternalToolError
from scribeline.jobs.cancellation import CancellationToken
from scribeline.jobs.types import CaptionTrack, RemoteAudio
from scribeline.tools.runner import run_tool
from scribeline.tools.subtitles import captions_to_text, parse_captions
from scribeline.transcribe.engine import Segment

logger = logging.getLogger(__name__)

AUDIO_EXTENSIONS = (".wav", ".m4a", ".mp3", ".webm", ".opus", ".ogg")


def fetch_title(
    url: str,
    ytdlp_binary: str = "yt-dlp",
    timeout: float | None = None,
    cancel_token: CancellationToken | None = None,
) -> str:
    """Return the video title, or a generic name when yt-dlp cannot tell."""
    result = run_tool(
        [ytdlp_binary, "--no-playlist", "--no-warnings", "--skip-download", "--print", "title", url],
        timeout=timeout,
        cancel_token=cancel_token,
        check=False,
    )
    title = result.stdout.strip().splitlines()[0] if result.stdout.strip() else ""
    return title or "Remote video"


class YtDlpAudioExtractor:
    """Download a remote video's best audio track as WAV."""

    def __init__(self, ytdlp_binary: str = "yt-dlp", timeout: float | None = None) -> None:
        self.ytdlp_binary = ytdlp_binary
        self.timeout = timeout

    def extract(self, url: str, cancel_token: CancellationToken | None = None) -> RemoteAudio:
        title = fetch_title(url, self.ytdlp_binary, self.timeout, cancel_token)
        work_dir = Path(tempfile.mkdtemp(prefix="scribeline_remote_"))
        cmd = [
            self.ytdlp_binary,
            "-x",
            "--audio-format",
            "wav",
            "--audio-quality",
            "0",
            "--no-playlist",
            "--no-warnings",
            "-o",
            str(work_dir / "audio.%(ext)s"),
            url,
        ]
        logger.info("Downloading audio for %s", url)
        try:
            run_tool(cmd, timeout=self.timeout, cancel_token=cancel_token)
            audio_path = _find_audio(work_dir)
        except BaseException:
            shutil.rmtree(work_dir, ignore_errors=True)
            raise
        return RemoteAudio(path=audio_path, title=title, work_dir=work_dir)


class YtDlpCaptions:
    """Fetch a remote video's caption track (manual first, then automatic)."""

    def __init__(self, ytdlp_binary: str = "yt-dlp", timeout: float | None = None) -> None:
        self.ytdlp_binary = ytdlp_binary
        self.timeout = timeout

    def fetch(
        self,
        url: str,
        language: str | None,
        cancel_token: CancellationToken | None = None,
    ) -> CaptionTrack:
        lang = language or "en"
        title = fetch_title(url, self.ytdlp_binary, self.timeout, cancel_token)
        work_dir = Path(tempfile.mkdtemp(prefix="scribeline_captions_"))
        cmd = [
            self.ytdlp_binary,
            "--skip-download",
            "--write-subs",
            "--write-auto-subs",
            "--sub-langs",
            f"{lang}.*,{lang}",
            "--sub-format",
            "vtt",
            "--no-playlist",
            "--no-warnings",
            "-o",
            str(work_dir / "captions.%(ext)s"),
            url,
        ]
        try:
            run_tool(cmd, timeout=self.timeout, cancel_token=cancel_token)
            files = sorted(work_dir.glob("*.vtt"))
            if not files:
                raise ExternalToolError(self.ytdlp_binary, f"no '{lang}' captions available for {url}")
            lines = parse_captions(files[0].read_text(encoding="utf-8", errors="replace"))
        finally:
            shutil.rmtree(work_dir, ignore_errors=True)

        if not lines:
            raise ExternalToolError(self.ytdlp_binary, "caption track is empty")
        return CaptionTrack(
            title=title,
            language=lang,
            text=captions_to_text(lines),
            lines=[Segment(start=line.start, end=line.end, text=line.text) for line in lines],
        )


def _find_audio(work_dir: Path) -> Path:
    for path in sorted(work_dir.iterdir()):
        if path.suffix.lower() in AUDIO_EXTENSIONS:
            return path
    raise ExternalToolError("yt-dlp", "downloaded audio file not found")
