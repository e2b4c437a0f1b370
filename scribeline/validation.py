"""
scribeline.validation - Dependency checks and validation utilities.

Validates the environment, external tools and input files before processing.
"""

from __future__ import annotations

import shutil
import subprocess
from pathlib import Path
from typing import Any

from scribeline.audio.decoder import is_supported_extension, is_video_format
from scribeline.exceptions import DependencyError, NotFoundError, StorageError, UnsupportedFormat
from scribeline.tools.runner import INSTALL_HINTS


def _tool_version(binary_path: str, flag: str, field: int) -> str:
    try:
        proc = subprocess.run(
            [binary_path, flag],
            capture_output=True,
            text=True,
            timeout=5,
        )
        version_line = proc.stdout.split("\n")[0]
        return version_line.split()[field] if version_line else "unknown"
    except (subprocess.TimeoutExpired, OSError, IndexError):
        return "unknown"


def check_ffmpeg(ffmpeg_binary: str = "ffmpeg") -> dict[str, str]:
    """Check if FFmpeg is installed and get its version.

    Returns:
        Dict with 'ffmpeg_version'

    Raises:
        DependencyError: If FFmpeg is not found
    """
    ffmpeg_path = shutil.which(ffmpeg_binary)
    if not ffmpeg_path:
        raise DependencyError("ffmpeg", "FFmpeg not found in PATH", INSTALL_HINTS["ffmpeg"])

    return {"ffmpeg_version": _tool_version(ffmpeg_path, "-version", 2)}


def check_ytdlp(ytdlp_binary: str = "yt-dlp") -> dict[str, str]:
    """Check if yt-dlp is installed and get its version.

    Returns:
        Dict with 'ytdlp_version'

    Raises:
        DependencyError: If yt-dlp is not found
    """
    ytdlp_path = shutil.which(ytdlp_binary)
    if not ytdlp_path:
        raise DependencyError("yt-dlp", "yt-dlp not found in PATH", INSTALL_HINTS["yt-dlp"])

    return {"ytdlp_version": _tool_version(ytdlp_path, "--version", 0)}


def check_disk_space(path: Path, required_mb: int) -> dict[str, Any]:
    """Check if there's enough disk space at the given path.

    Args:
        path: Path to check (nearest existing parent is used)
        required_mb: Required space in megabytes

    Returns:
        Dict with 'available_mb', 'required_mb', 'sufficient'

    Raises:
        StorageError: If disk usage cannot be read
    """
    check_path = Path(path)
    while not check_path.exists() and check_path != check_path.parent:
        check_path = check_path.parent

    try:
        stat = shutil.disk_usage(check_path)
    except OSError as e:
        raise StorageError(f"Cannot check disk space: {e}") from e

    available_mb = stat.free // (1024 * 1024)
    return {
        "available_mb": available_mb,
        "required_mb": required_mb,
        "sufficient": available_mb >= required_mb,
    }


def validate_input_file(path: Path) -> dict[str, Any]:
    """Validate an input file exists and has a known audio/video extension.

    Returns:
        Dict with 'path', 'size_mb', 'format', 'is_video'

    Raises:
        NotFoundError: If the file doesn't exist
        UnsupportedFormat: If the extension is not a known audio/video format
    """
    path = Path(path)
    if not path.exists():
        raise NotFoundError(f"File not found: {path}")

    if not path.is_file():
        raise NotFoundError(f"Not a file: {path}")

    if not is_supported_extension(path):
        raise UnsupportedFormat(f"Unsupported file format: {path.suffix or path.name}")

    return {
        "path": str(path),
        "size_mb": path.stat().st_size // (1024 * 1024),
        "format": path.suffix.lower().lstrip("."),
        "is_video": is_video_format(path),
    }


def run_preflight_checks(config: Any) -> dict[str, Any]:
    """Run the environment checks reported by ``scribeline doctor``.

    Args:
        config: ScribelineConfig

    Returns:
        Dict with 'passed' and per-check results
    """
    results: dict[str, Any] = {"passed": True, "checks": {}}

    try:
        results["checks"]["ffmpeg"] = check_ffmpeg(config.ffmpeg_binary)
    except DependencyError as e:
        results["checks"]["ffmpeg"] = {"error": str(e), "install_hint": e.install_hint}
        results["passed"] = False

    # yt-dlp is only needed for remote inputs, so a missing binary is a warning.
    try:
        results["checks"]["yt-dlp"] = check_ytdlp(config.ytdlp_binary)
    except DependencyError as e:
        results["checks"]["yt-dlp"] = {
            "warning": str(e),
            "install_hint": e.install_hint,
        }

    try:
        disk = check_disk_space(config.models_dir, 1000)
        results["checks"]["disk_space"] = disk
        if not disk["sufficient"]:
            results["passed"] = False
    except StorageError as e:
        results["checks"]["disk_space"] = {"error": str(e)}
        results["passed"] = False

    return results
