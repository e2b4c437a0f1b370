"""
scribeline.tools.runner - Bounded, cancellable subprocess execution.

External collaborators (ffmpeg, yt-dlp) run through ``run_tool``: the wait
is bounded by a timeout and polls a cancellation token, killing the process
when either fires.
"""

from __future__ import annotations

import logging
import subprocess
import tempfile
import time
from dataclasses import dataclass

from scribeline.exceptions import DependencyError, ExternalToolError, JobCancelled
from scribeline.jobs.cancellation import CancellationToken

logger = logging.getLogger(__name__)

POLL_INTERVAL = 0.1

INSTALL_HINTS = {
    "ffmpeg": "Install with: brew install ffmpeg (macOS) or apt install ffmpeg (Linux)",
    "yt-dlp": "Install with: pip install yt-dlp or brew install yt-dlp",
}


@dataclass(frozen=True)
class ToolResult:
    returncode: int
    stdout: str
    stderr: str


def run_tool(
    cmd: list[str],
    timeout: float | None = None,
    cancel_token: CancellationToken | None = None,
    check: bool = True,
) -> ToolResult:
    """Run an external tool with a bounded, cancellable wait.

    Args:
        cmd: Command and arguments; cmd[0] is the binary
        timeout: Seconds to wait before killing the process (None waits forever)
        cancel_token: Optional token polled while the process runs
        check: Raise ExternalToolError on a non-zero exit code

    Returns:
        ToolResult with the exit code and decoded output

    Raises:
        DependencyError: If the binary cannot be found
        ExternalToolError: On timeout, or non-zero exit when ``check`` is set
        JobCancelled: If the token was cancelled while the tool ran
    """
    tool = cmd[0]
    logger.debug("Running %s", " ".join(cmd))

    # Output goes to spooled temp files so a chatty tool never blocks on a full pipe.
    with tempfile.TemporaryFile() as out, tempfile.TemporaryFile() as err:
        try:
            proc = subprocess.Popen(cmd, stdout=out, stderr=err, stdin=subprocess.DEVNULL)
        except FileNotFoundError as e:
            raise DependencyError(
                tool, f"{tool} not found in PATH", INSTALL_HINTS.get(tool)
            ) from e

        deadline = time.monotonic() + timeout if timeout is not None else None
        while True:
            try:
                proc.wait(timeout=POLL_INTERVAL)
                break
            except subprocess.TimeoutExpired:
                pass
            if cancel_token is not None and cancel_token.cancelled:
                _kill(proc)
                raise JobCancelled(f"{tool} cancelled")
            if deadline is not None and time.monotonic() > deadline:
                _kill(proc)
                raise ExternalToolError(tool, f"timed out after {timeout:.0f}s")

        out.seek(0)
        err.seek(0)
        result = ToolResult(
            returncode=proc.returncode,
            stdout=out.read().decode("utf-8", errors="replace"),
            stderr=err.read().decode("utf-8", errors="replace"),
        )

    if check and result.returncode != 0:
        raise ExternalToolError(tool, _tail(result.stderr) or f"exited with {result.returncode}")
    return result


def _kill(proc: subprocess.Popen) -> None:
    proc.kill()
    proc.wait()


def _tail(text: str, lines: int = 5) -> str:
    return "\n".join(text.strip().splitlines()[-lines:])
